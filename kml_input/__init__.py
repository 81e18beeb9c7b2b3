"""
KML/KMZ ingestion package for GeoVisor.

Turns raw KML documents and KMZ archives into GeoJSON FeatureCollections.

Modules:
    format_detection: Classify inputs by filename suffix
    archive: Open KMZ archives and select candidate documents
    decoding: UTF-8 decoding with legacy-encoding fallback
    sanitizer: Repair malformed markup before parsing
    converter: lxml parse and Placemark -> Feature conversion
    rehoming: Rewrite embedded image references to loadable handles
    assembler: Merge documents and apply the empty-result policy
    pipeline: End-to-end parse_raw_input / parse_file
    errors: Ingestion error taxonomy
"""

from kml_input.errors import (
    IngestError, UnsupportedFormat, CorruptArchive, NoReadableDocument,
    StructuralParseFailure, NetworkLinkRejected, NoDrawableContent,
    EncodingRecoveryFailed, RemoteFetchError
)
from kml_input.pipeline import parse_raw_input, parse_file

__version__ = '1.0.0'

__all__ = [
    'IngestError', 'UnsupportedFormat', 'CorruptArchive', 'NoReadableDocument',
    'StructuralParseFailure', 'NetworkLinkRejected', 'NoDrawableContent',
    'EncodingRecoveryFailed', 'RemoteFetchError',
    'parse_raw_input', 'parse_file',
]
