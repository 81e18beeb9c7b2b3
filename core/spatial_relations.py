"""
Spatial relation analysis module for GeoVisor.

Compares a newly parsed FeatureCollection with layers that are already loaded
and reports which of them it intersects, or which of them it fully covers.
Both checks are read-only; layers are never modified.

Predicates are evaluated planar on lon/lat (EPSG:4326). Invalid polygons are
repaired with make_valid() first. Overlap areas in the reports are geodesic
estimates on the WGS84 ellipsoid and are informational only.

Functions:
    find_intersecting_layers: Layers sharing any point with the new collection
    find_covered_layers: Layers lying entirely inside the new collection
"""

from typing import Dict, Iterable, List, Optional, Tuple

import geopandas as gpd
from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry

from core.models import LayerRelation, MapLayer, RelationMode, RelationReport
from utils.geometry_converters import (
    collection_to_geodataframe, count_vertices, dissolve_geodataframe, geodesic_area_sq_km
)
from utils.logger import get_logger

logger = get_logger(__name__)


def _candidate_layers(layers: Iterable[MapLayer]) -> List[Tuple[MapLayer, gpd.GeoDataFrame]]:
    """Visible layers with at least one usable geometry, in supplied order."""
    candidates = []
    for layer in layers:
        if not layer.visible:
            logger.debug(f"  - Skipping hidden layer '{layer.name}'")
            continue
        gdf = collection_to_geodataframe(layer.data)
        if gdf.empty:
            logger.debug(f"  - Skipping layer '{layer.name}' (no usable geometry)")
            continue
        candidates.append((layer, gdf))
    return candidates


def _overlap_area(a: Optional[BaseGeometry], b: Optional[BaseGeometry]) -> float:
    if a is None or b is None:
        return 0.0
    try:
        return geodesic_area_sq_km(a.intersection(b))
    except GEOSException as e:
        logger.debug(f"  - Overlap area unavailable: {e}")
        return 0.0


def find_intersecting_layers(collection: Dict, layers: Iterable[MapLayer]) -> RelationReport:
    """
    Find existing layers that spatially intersect a new FeatureCollection.

    A layer is reported when any of its geometries intersects any geometry of
    the new collection (touching boundaries count).

    Parameters:
    -----------
    collection : Dict
        Newly parsed GeoJSON FeatureCollection
    layers : Iterable[MapLayer]
        Already loaded layers; hidden and empty layers are ignored

    Returns:
    --------
    RelationReport
        INTERSECTION report listing layers in the order supplied

    Example:
        >>> report = find_intersecting_layers(collection, store.list_layers())
        >>> report.layer_names
        ['Parcels', 'Roads']
    """
    report = RelationReport(RelationMode.INTERSECTION)

    new_gdf = collection_to_geodataframe(collection)
    if new_gdf.empty:
        logger.info("  - New collection has no usable geometry; nothing to intersect")
        return report

    new_union = None
    for layer, layer_gdf in _candidate_layers(layers):
        hits = new_gdf.sindex.query(layer_gdf.geometry, predicate='intersects')
        if hits.shape[1] == 0:
            continue

        if new_union is None:
            new_union = dissolve_geodataframe(new_gdf)
        area = _overlap_area(new_union, dissolve_geodataframe(layer_gdf))
        report.relations.append(LayerRelation(layer.id, layer.name, area))

    logger.info(f"  - Intersection check: {len(report)} layer(s) intersect")
    return report


def find_covered_layers(collection: Dict, layers: Iterable[MapLayer]) -> RelationReport:
    """
    Find existing layers whose geometry lies entirely inside a new FeatureCollection.

    Uses the 'covers' predicate on the dissolved geometries: no point of the
    layer may lie outside the new collection. Partially overlapping layers are
    never reported.

    Parameters:
    -----------
    collection : Dict
        Newly parsed GeoJSON FeatureCollection
    layers : Iterable[MapLayer]
        Already loaded layers; hidden and empty layers are ignored

    Returns:
    --------
    RelationReport
        COVERAGE report listing layers in the order supplied
    """
    report = RelationReport(RelationMode.COVERAGE)

    new_union = dissolve_geodataframe(collection_to_geodataframe(collection))
    if new_union is None:
        logger.info("  - New collection has no usable geometry; nothing can be covered")
        return report
    logger.debug(f"  - Dissolved new collection: {count_vertices(new_union):,} vertices")

    for layer, layer_gdf in _candidate_layers(layers):
        layer_union = dissolve_geodataframe(layer_gdf)
        try:
            covered = new_union.covers(layer_union)
        except GEOSException as e:
            logger.warning(f"  ⚠ Coverage check failed for '{layer.name}': {e}")
            continue
        if covered:
            report.relations.append(
                LayerRelation(layer.id, layer.name, geodesic_area_sq_km(layer_union))
            )

    logger.info(f"  - Coverage check: {len(report)} layer(s) fully covered")
    return report
