"""
Feature Collection Assembler

Merges the features converted from every selected document of one input into
a single FeatureCollection, in archive-listing order, and applies the
accept/reject policy for empty results.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from core.models import FeatureCollection, make_feature_collection
from kml_input.errors import NoDrawableContent
from utils.geometry_converters import is_drawable_feature, summarize_geometry_types
from utils.logger import get_logger

logger = get_logger(__name__)


def assemble_collection(document_features: Sequence[Tuple[str, List[Dict]]],
                        source_name: str = '',
                        allow_empty: bool = False,
                        skipped: Optional[Sequence[Dict]] = None
                        ) -> Tuple[FeatureCollection, Dict]:
    """
    Merge per-document features into one validated FeatureCollection.

    Parameters:
    -----------
    document_features : Sequence[Tuple[str, List[Dict]]]
        (document_name, features) pairs in archive-listing order
    source_name : str
        Original input filename, used in messages and metadata
    allow_empty : bool
        Return an empty, annotated collection instead of raising when
        nothing drawable remains
    skipped : Optional[Sequence[Dict]]
        Documents that failed and were skipped ({'document', 'error'} dicts)

    Returns:
    --------
    Tuple[FeatureCollection, Dict]
        - Merged FeatureCollection
        - Metadata dictionary with per-document counts, geometry types,
          dropped feature count and the 'empty' flag

    Raises:
    -------
    NoDrawableContent
        If no feature with drawable geometry remains and allow_empty is False
    """
    features = []
    documents = []
    dropped = 0

    for document_name, document_list in document_features:
        kept = [feature for feature in document_list if is_drawable_feature(feature)]
        dropped += len(document_list) - len(kept)
        documents.append({'document': document_name, 'feature_count': len(kept)})
        features.extend(kept)

    if dropped:
        logger.warning(f"  ⚠ Dropped {dropped} feature(s) with null or degenerate geometry")

    metadata = {
        'documents': documents,
        'skipped_documents': list(skipped or []),
        'feature_count': len(features),
        'dropped_features': dropped,
        'geometry_types': summarize_geometry_types(features),
        'empty': not features,
    }

    if not features:
        if not allow_empty:
            raise NoDrawableContent(source_name=source_name or None)
        logger.warning(f"  ⚠ {source_name or 'Input'} produced no drawable features; returning empty collection")

    return make_feature_collection(features), metadata
