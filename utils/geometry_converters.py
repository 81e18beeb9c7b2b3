"""
Geometry conversion utilities for GeoVisor.

This module converts GeoJSON geometries produced by the KML converter into
Shapely/GeoPandas objects for validation and spatial analysis, and provides
helpers for degeneracy checks, repair, vertex counting and area estimates.

Functions:
    geojson_to_shapely: Convert a GeoJSON geometry dict to a Shapely geometry
    is_degenerate_geometry: Check whether a geometry has no drawable extent
    is_drawable_feature: Check whether a feature carries usable geometry
    repair_invalid_geometry: Repair invalid geometries with make_valid()
    collection_to_geodataframe: Build a GeoDataFrame (EPSG:4326) from a FeatureCollection
    dissolve_geodataframe: Union all geometries into one
    count_vertices: Count total vertices in a geometry
    geodesic_area_sq_km: Area on the WGS84 ellipsoid
    summarize_geometry_types: Count features per geometry type
"""

from collections import Counter
from typing import Dict, List, Optional

import geopandas as gpd
from pyproj import CRS, Geod
from shapely import make_valid
from shapely.geometry import (
    shape, Point, MultiPoint, LineString, MultiLineString,
    Polygon, MultiPolygon, GeometryCollection
)
from shapely.errors import ShapelyError
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from utils.logger import get_logger

logger = get_logger(__name__)

WGS84 = CRS.from_epsg(4326)
_GEOD = Geod(ellps='WGS84')


def _planar_coordinates(coords):
    if coords and isinstance(coords[0], (int, float)):
        return list(coords[:2])
    return [_planar_coordinates(part) for part in coords]


def _planar_geometry(geometry: Dict) -> Dict:
    """Copy a GeoJSON geometry keeping only lon/lat of every position."""
    if geometry.get('type') == 'GeometryCollection':
        return {
            'type': 'GeometryCollection',
            'geometries': [_planar_geometry(g) for g in geometry.get('geometries') or []],
        }
    return {'type': geometry.get('type'), 'coordinates': _planar_coordinates(geometry['coordinates'])}


def geojson_to_shapely(geometry: Optional[Dict]) -> Optional[BaseGeometry]:
    """
    Convert a GeoJSON geometry dictionary to a Shapely geometry.

    Parameters:
    -----------
    geometry : Optional[Dict]
        GeoJSON geometry with 'type' and 'coordinates' (or 'geometries')

    Returns:
    --------
    Optional[BaseGeometry]
        2D Shapely geometry, or None if the dictionary is missing or malformed

    Notes:
    ------
    Elevation is dropped. KML allows it on some positions of a ring or
    line and not others, which shapely cannot build as-is.
    """
    if not geometry:
        return None
    try:
        return shape(_planar_geometry(geometry))
    except (ShapelyError, ValueError, TypeError, KeyError, AttributeError, IndexError) as e:
        logger.debug(f"Unusable geometry {geometry.get('type')}: {e}")
        return None


def is_degenerate_geometry(geom: Optional[BaseGeometry]) -> bool:
    """
    Check whether a geometry has nothing to draw.

    Points are degenerate only when empty; lines need non-zero length and
    polygons non-zero area. Multi-part geometries and collections are
    degenerate only when every part is.
    """
    if geom is None or geom.is_empty:
        return True
    if isinstance(geom, (Point, MultiPoint)):
        return False
    if isinstance(geom, (LineString, MultiLineString)):
        return not geom.length > 0
    if isinstance(geom, (Polygon, MultiPolygon)):
        # Self-intersecting rings can cancel out to zero signed area
        if not geom.is_valid:
            geom = make_valid(geom)
        return not geom.area > 0
    if isinstance(geom, GeometryCollection):
        return all(is_degenerate_geometry(part) for part in geom.geoms)
    return True


def is_drawable_feature(feature: Dict) -> bool:
    if not isinstance(feature, dict):
        return False
    return not is_degenerate_geometry(geojson_to_shapely(feature.get('geometry')))


def repair_invalid_geometry(geom: BaseGeometry) -> BaseGeometry:
    """
    Repair invalid geometries using make_valid() or buffer(0) technique.

    Common issues fixed:
    - Self-intersecting (bow-tie) polygons drawn in Google Earth
    - Duplicate vertices
    - Invalid ring orientations

    Args:
        geom: Potentially invalid Shapely geometry

    Returns:
        Valid Shapely geometry

    Raises:
        ValueError: If neither repair method succeeds
    """
    if geom.is_valid:
        return geom

    logger.debug(f"Invalid geometry detected: {geom.geom_type}, repairing")

    try:
        return make_valid(geom)
    except Exception as e:
        logger.warning(f"make_valid() failed: {e}, trying buffer(0)...")
        try:
            return geom.buffer(0)
        except Exception as e2:
            raise ValueError(f"Cannot repair invalid geometry: {e2}") from e2


def collection_to_geodataframe(collection: Dict) -> gpd.GeoDataFrame:
    """
    Build a GeoDataFrame in EPSG:4326 from a GeoJSON FeatureCollection.

    Features without drawable geometry are left out; invalid geometries are
    repaired. The 'feature_index' column points back into collection['features'].

    Parameters:
    -----------
    collection : Dict
        GeoJSON FeatureCollection

    Returns:
    --------
    gpd.GeoDataFrame
        One row per drawable feature (possibly empty)
    """
    indices: List[int] = []
    geometries: List[BaseGeometry] = []

    for index, feature in enumerate(collection.get('features', [])):
        geom = geojson_to_shapely((feature or {}).get('geometry'))
        if is_degenerate_geometry(geom):
            continue
        indices.append(index)
        geometries.append(repair_invalid_geometry(geom))

    return gpd.GeoDataFrame(
        {'feature_index': indices},
        geometry=gpd.GeoSeries(geometries, crs=WGS84)
    )


def dissolve_geodataframe(gdf: gpd.GeoDataFrame) -> Optional[BaseGeometry]:
    """
    Dissolve all geometries in a GeoDataFrame into a single unified geometry.

    Returns None for an empty GeoDataFrame.
    """
    if gdf.empty:
        return None
    if len(gdf) == 1:
        return gdf.geometry.iloc[0]
    return repair_invalid_geometry(unary_union(list(gdf.geometry)))


def count_vertices(geometry: Optional[BaseGeometry]) -> int:
    """
    Count total vertices in a geometry.

    Handles Point, MultiPoint, LineString, MultiLineString,
    Polygon, MultiPolygon, and GeometryCollection types.
    """
    if geometry is None or geometry.is_empty:
        return 0

    if isinstance(geometry, Point):
        return 1
    elif isinstance(geometry, MultiPoint):
        return len(geometry.geoms)
    elif isinstance(geometry, LineString):
        return len(geometry.coords)
    elif isinstance(geometry, MultiLineString):
        return sum(len(line.coords) for line in geometry.geoms)
    elif isinstance(geometry, Polygon):
        count = len(geometry.exterior.coords)
        for interior in geometry.interiors:
            count += len(interior.coords)
        return count
    elif isinstance(geometry, (MultiPolygon, GeometryCollection)):
        return sum(count_vertices(geom) for geom in geometry.geoms)
    return 0


def geodesic_area_sq_km(geom: Optional[BaseGeometry]) -> float:
    """
    Area of a lon/lat geometry on the WGS84 ellipsoid in square kilometers.

    Points and lines have zero area; collections count their polygons only.
    """
    if geom is None or geom.is_empty or not geom.area > 0:
        return 0.0
    if isinstance(geom, (MultiPolygon, GeometryCollection)):
        return sum(geodesic_area_sq_km(part) for part in geom.geoms)
    area, _ = _GEOD.geometry_area_perimeter(geom)
    return abs(area) / 1_000_000


def summarize_geometry_types(features: List[Dict]) -> Dict[str, int]:
    """Count features per GeoJSON geometry type."""
    counts = Counter(
        (feature.get('geometry') or {}).get('type', 'None')
        for feature in features
    )
    return dict(counts)
