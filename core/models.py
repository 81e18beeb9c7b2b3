"""
Data model for GeoVisor.

Features and feature collections are plain GeoJSON dictionaries, the same
shape the rest of the pipeline (and any renderer) exchanges. Feature
properties are an open string-keyed map; the well-known keys are documented
by FeatureProperties, and any other key (ExtendedData fields) is
carried through unchanged.

Classes:
    RawInput: Raw bytes plus the original filename
    MapLayer: A loaded layer as held by the LayerStore
    RelationMode / LayerRelation / RelationReport: Spatial analysis results
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict

FeatureProperties = TypedDict('FeatureProperties', {
    'name': str,
    'description': str,
    'stroke': str,
    'stroke-width': float,
    'stroke-opacity': float,
    'fill': str,
    'fill-opacity': float,
    'icon': str,
    'icon-color': str,
    'icon-opacity': float,
    'icon-scale': float,
    'styleUrl': str,
    'visibility': bool,
    'timestamp': str,
    'timespan': Dict[str, Optional[str]],
}, total=False)

Feature = Dict[str, Any]
FeatureCollection = Dict[str, Any]


def make_feature(geometry: Optional[Dict], properties: Optional[Dict] = None) -> Feature:
    return {
        'type': 'Feature',
        'geometry': geometry,
        'properties': dict(properties or {}),
    }


def make_feature_collection(features: Optional[List[Feature]] = None) -> FeatureCollection:
    return {
        'type': 'FeatureCollection',
        'features': list(features or []),
    }


@dataclass(frozen=True)
class RawInput:
    """Raw file bytes and the filename they were supplied under."""

    data: bytes = field(repr=False)
    filename: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class MapLayer:
    """
    A named, colored FeatureCollection held in the active layer set.

    Attributes:
        id: Unique identifier for this layer
        name: Display name (usually the decoded source filename)
        visible: Whether the layer takes part in rendering and analysis
        data: GeoJSON FeatureCollection
        color: Hex display color from the layer palette
        resource_handles: Handles of embedded images materialized for this
            layer; released when the layer is removed
    """

    id: str
    name: str
    data: FeatureCollection
    color: str
    visible: bool = True
    resource_handles: List[str] = field(default_factory=list)

    @property
    def feature_count(self) -> int:
        return len(self.data.get('features', []))


class RelationMode(Enum):
    INTERSECTION = 'intersection'
    COVERAGE = 'coverage'


@dataclass(frozen=True)
class LayerRelation:
    layer_id: str
    layer_name: str
    overlap_area_sq_km: float = 0.0

    def describe(self, mode: RelationMode) -> str:
        verb = 'intersects' if mode is RelationMode.INTERSECTION else 'is fully covered by'
        text = f"'{self.layer_name}' {verb} the new layer"
        if self.overlap_area_sq_km > 0:
            text += f" (~{self.overlap_area_sq_km:,.3f} km²)"
        return text


@dataclass
class RelationReport:
    """
    Ordered result of an intersection or coverage check.

    An empty report means no relationship was found; it is not an error.
    """

    mode: RelationMode
    relations: List[LayerRelation] = field(default_factory=list)

    @property
    def layer_names(self) -> List[str]:
        return [relation.layer_name for relation in self.relations]

    @property
    def layer_ids(self) -> List[str]:
        return [relation.layer_id for relation in self.relations]

    def __bool__(self) -> bool:
        return bool(self.relations)

    def __len__(self) -> int:
        return len(self.relations)

    def describe(self) -> List[str]:
        return [relation.describe(self.mode) for relation in self.relations]

    def to_dict(self) -> Dict:
        return {
            'mode': self.mode.value,
            'layers': [
                {
                    'id': r.layer_id,
                    'name': r.layer_name,
                    'overlap_area_sq_km': round(r.overlap_area_sq_km, 6),
                }
                for r in self.relations
            ],
        }
