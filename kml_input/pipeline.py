"""
KML/KMZ Ingestion Pipeline

Orchestrates the full ingestion workflow for one input:
1. Detect the format from the filename
2. For KMZ: open the archive, select candidate documents, index images
3. For each document: decode, sanitize, parse, rehome embedded images, convert
4. Merge all documents into one validated FeatureCollection

Documents that fail to decode or parse are skipped; the input only fails
when no document yields drawable features.
"""

import functools
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from core.models import FeatureCollection, RawInput
from kml_input.archive import (
    index_image_resources, open_archive, select_candidate_documents
)
from kml_input.assembler import assemble_collection
from kml_input.converter import convert_tree, parse_document_tree
from kml_input.decoding import decode_document_bytes
from kml_input.errors import (
    EncodingRecoveryFailed, NoDrawableContent, StructuralParseFailure
)
from kml_input.format_detection import DetectedFormat, require_supported_format
from kml_input.rehoming import ResourceStore, rehome_resources
from kml_input.sanitizer import sanitize_document
from config.config_loader import load_ingest_settings
from utils.logger import get_logger

logger = get_logger(__name__)

# Per-document failures that skip the document instead of failing the input
DOCUMENT_ERRORS = (StructuralParseFailure, EncodingRecoveryFailed)


@dataclass
class Document:
    """Decoded text of one candidate document, before and after sanitizing."""

    name: str
    raw_text: str
    encoding: str
    sanitized_text: Optional[str] = None


@functools.lru_cache(maxsize=None)
def get_default_resource_store() -> ResourceStore:
    """Process-wide ResourceStore used when the caller does not supply one."""
    return ResourceStore()


def _document_sources(raw: RawInput,
                      detected: DetectedFormat,
                      settings: Dict[str, Any]) -> Tuple[str, List[Tuple[str, bytes]], list]:
    if detected is DetectedFormat.PLAIN_DOCUMENT:
        return 'plain-document', [(raw.filename, raw.data)], []

    archive = open_archive(raw.data, settings['image_extensions'])
    strategy, selected = select_candidate_documents(
        archive.entries, settings['default_document_name']
    )
    resources = index_image_resources(archive.entries)
    if resources:
        logger.info(f"  - Indexed {len(resources)} embedded image(s)")
    return strategy, [(entry.name, entry.data) for entry in selected], resources


def read_document(name: str, data: bytes, settings: Dict[str, Any]) -> Document:
    """Decode and sanitize one document's bytes."""
    text, encoding = decode_document_bytes(data, settings['fallback_encoding'], name)
    document = Document(name=name, raw_text=text, encoding=encoding)
    document.sanitized_text = sanitize_document(
        text, settings['network_link_policy'], name
    )
    return document


def parse_raw_input(raw: RawInput,
                    settings: Optional[Dict[str, Any]] = None,
                    resource_store: Optional[ResourceStore] = None,
                    allow_empty: Optional[bool] = None) -> Tuple[FeatureCollection, Dict]:
    """
    Parse a KML or KMZ input into a GeoJSON FeatureCollection.

    Parameters:
    -----------
    raw : RawInput
        Raw bytes and the filename they were supplied under
    settings : Optional[Dict[str, Any]]
        Ingest settings from load_ingest_settings(); defaults when omitted
    resource_store : Optional[ResourceStore]
        Store that receives embedded images; the process-wide store when omitted
    allow_empty : Optional[bool]
        Override settings['allow_empty']

    Returns:
    --------
    Tuple[FeatureCollection, Dict]
        - FeatureCollection with every drawable feature, in document order
        - Metadata: source_filename, format, selection_strategy, documents,
          skipped_documents, encodings, resources (path -> handle),
          feature_count, dropped_features, geometry_types, empty

    Raises:
    -------
    UnsupportedFormat
        If the filename suffix is not .kml or .kmz
    CorruptArchive
        If the KMZ container cannot be opened
    NoReadableDocument
        If the KMZ holds no KML document
    EncodingRecoveryFailed
        If every document failed to decode
    NoDrawableContent
        If nothing drawable remains (unless empty results are allowed)

    Example:
        >>> collection, metadata = parse_raw_input(RawInput(data, 'sites.kmz'))
        >>> metadata['feature_count']
        12
    """
    if settings is None:
        settings = load_ingest_settings({'settings': {}})
    if allow_empty is None:
        allow_empty = settings['allow_empty']

    logger.info(f"Parsing {raw.filename} ({raw.size:,} bytes)")

    detected = require_supported_format(raw.filename)
    strategy, sources, resources = _document_sources(raw, detected, settings)

    store = resource_store
    if store is None and resources:
        store = get_default_resource_store()

    materialized: Dict[str, str] = {}
    document_features = []
    skipped = []
    encodings = {}
    last_failure: Optional[Exception] = None

    try:
        for name, data in sources:
            try:
                document = read_document(name, data, settings)
                root = parse_document_tree(document.sanitized_text, name)
                if resources:
                    rehome_resources(root, resources, store, materialized)
                features = convert_tree(root)
            except DOCUMENT_ERRORS as e:
                logger.warning(f"  ⚠ Skipping {name}: {e}")
                skipped.append({'document': name, 'error': type(e).__name__, 'message': str(e)})
                last_failure = e
                continue

            encodings[name] = document.encoding
            document_features.append((name, features))
            logger.info(f"  - {name}: {len(features)} feature(s) ({document.encoding})")

        if not document_features and skipped:
            if all(s['error'] == EncodingRecoveryFailed.__name__ for s in skipped):
                raise last_failure

        try:
            collection, assembled = assemble_collection(
                document_features,
                source_name=raw.filename,
                allow_empty=allow_empty,
                skipped=skipped,
            )
        except NoDrawableContent as e:
            if last_failure is not None:
                raise e from last_failure
            raise
    except Exception:
        for handle in materialized.values():
            store.revoke(handle)
        raise

    metadata = {
        'source_filename': raw.filename,
        'format': detected.value,
        'selection_strategy': strategy,
        'encodings': encodings,
        'resources': dict(materialized),
        **assembled,
    }

    logger.info(
        f"  ✓ {raw.filename}: {metadata['feature_count']} feature(s) "
        f"from {len(document_features)} document(s)"
    )
    return collection, metadata


def parse_file(file_path: str,
               settings: Optional[Dict[str, Any]] = None,
               resource_store: Optional[ResourceStore] = None,
               allow_empty: Optional[bool] = None) -> Tuple[FeatureCollection, Dict]:
    """
    Parse a KML or KMZ file from disk.

    Raises:
        FileNotFoundError: If the file doesn't exist
        UnsupportedFormat: Before reading, if the suffix is not .kml or .kmz
    """
    path = Path(file_path)
    require_supported_format(path.name)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {file_path}")
    raw = RawInput(data=path.read_bytes(), filename=path.name)
    return parse_raw_input(raw, settings, resource_store, allow_empty)
