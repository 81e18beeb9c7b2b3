"""
Active layer set for GeoVisor.

Holds the loaded MapLayers in display order and assigns each new layer a
color from the palette. The store is shared between concurrent loaders, so
every mutation happens under a lock; batch appends read the existing ids,
drop duplicates and append in one step.

Removing a layer releases the embedded-image handles created while parsing it.

Classes:
    ColorAllocator: Protocol for palette color selection
    RandomColorAllocator: Pseudo-random choice with replacement
    SequenceColorAllocator: Deterministic cycling through a fixed sequence
    LayerStore: Thread-safe registry of MapLayers
"""

import itertools
import random
import threading
import uuid
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from config.config_loader import DEFAULT_COLOR_PALETTE
from core.models import FeatureCollection, MapLayer
from kml_input.rehoming import ResourceStore
from utils.logger import get_logger

logger = get_logger(__name__)


class ColorAllocator(Protocol):
    def next_color(self) -> str:
        ...


class RandomColorAllocator:
    """
    Pick palette colors at random, with replacement.

    Colors are not unique across layers. Pass a seeded random.Random for
    reproducible picks.
    """

    def __init__(self, palette: Sequence[str] = DEFAULT_COLOR_PALETTE,
                 rng: Optional[random.Random] = None):
        if not palette:
            raise ValueError("Color palette must contain at least one color")
        self.palette = list(palette)
        self._rng = rng or random.Random()

    def next_color(self) -> str:
        return self._rng.choice(self.palette)


class SequenceColorAllocator:
    """Cycle through a fixed color sequence."""

    def __init__(self, colors: Sequence[str] = DEFAULT_COLOR_PALETTE):
        if not colors:
            raise ValueError("Color sequence must contain at least one color")
        self._colors = itertools.cycle(list(colors))
        self._lock = threading.Lock()

    def next_color(self) -> str:
        with self._lock:
            return next(self._colors)


def new_layer_id() -> str:
    return f"layer-{uuid.uuid4().hex[:8]}"


def build_layer(name: str,
                collection: FeatureCollection,
                colors: ColorAllocator,
                metadata: Optional[Dict] = None,
                layer_id: Optional[str] = None) -> MapLayer:
    """
    Create a visible MapLayer for a parsed collection.

    Args:
        name: Display name
        collection: Parsed FeatureCollection
        colors: Allocator that provides the layer color
        metadata: Parse metadata; its 'resources' handles become owned by the layer
        layer_id: Explicit id (a new unique id when omitted)

    Returns:
        MapLayer ready to add to a LayerStore
    """
    resources = (metadata or {}).get('resources', {})
    return MapLayer(
        id=layer_id or new_layer_id(),
        name=name,
        data=collection,
        color=colors.next_color(),
        visible=True,
        resource_handles=list(resources.values()),
    )


class LayerStore:
    """
    Registry of active map layers, in display order.

    Attributes:
        resources: ResourceStore that owns the embedded-image handles of
            the stored layers (None when layers carry no handles)
        colors: ColorAllocator used by callers building new layers

    Example:
        >>> store = LayerStore(colors=SequenceColorAllocator(['#ef4444']))
        >>> layer = build_layer('Parcels', collection, store.colors)
        >>> store.add_layers([layer])
        1
    """

    def __init__(self, resources: Optional[ResourceStore] = None,
                 colors: Optional[ColorAllocator] = None):
        self._layers: List[MapLayer] = []
        self._lock = threading.Lock()
        self.resources = resources
        self.colors = colors or RandomColorAllocator()

    def add_layer(self, layer: MapLayer) -> bool:
        """Append one layer; returns False if its id is already present."""
        return self.add_layers([layer]) == 1

    def add_layers(self, layers: Iterable[MapLayer]) -> int:
        """
        Append layers whose ids are not yet present, atomically.

        Duplicates within the batch itself are also dropped (first wins).

        Returns:
            Number of layers appended
        """
        layers = list(layers)
        with self._lock:
            existing_ids = {layer.id for layer in self._layers}
            added = []
            for layer in layers:
                if layer.id in existing_ids:
                    continue
                existing_ids.add(layer.id)
                added.append(layer)
            self._layers.extend(added)

        skipped = len(layers) - len(added)
        if skipped:
            logger.debug(f"  - Skipped {skipped} layer(s) with duplicate ids")
        for layer in added:
            logger.info(f"  ✓ Added layer '{layer.name}' ({layer.feature_count} features, {layer.color})")
        return len(added)

    def remove_layer(self, layer_id: str) -> bool:
        """
        Remove a layer and release its embedded-image handles.

        Returns:
            True if the layer was removed, False if it didn't exist
        """
        with self._lock:
            for index, layer in enumerate(self._layers):
                if layer.id == layer_id:
                    del self._layers[index]
                    break
            else:
                return False

        if self.resources is not None:
            released = sum(1 for handle in layer.resource_handles if self.resources.revoke(handle))
            if released:
                logger.debug(f"  - Released {released} resource handle(s) of '{layer.name}'")
        logger.info(f"Removed layer '{layer.name}'")
        return True

    def get_layer(self, layer_id: str) -> Optional[MapLayer]:
        with self._lock:
            for layer in self._layers:
                if layer.id == layer_id:
                    return layer
        return None

    def set_visibility(self, layer_id: str, visible: bool) -> None:
        """
        Set the visibility of a layer.

        Raises:
            KeyError: If the layer_id is not found
        """
        with self._lock:
            layer = self._find(layer_id)
            layer.visible = visible

    def toggle_visibility(self, layer_id: str) -> bool:
        """Flip a layer's visibility and return the new value."""
        with self._lock:
            layer = self._find(layer_id)
            layer.visible = not layer.visible
            return layer.visible

    def list_layers(self) -> List[MapLayer]:
        with self._lock:
            return list(self._layers)

    def visible_layers(self) -> List[MapLayer]:
        with self._lock:
            return [layer for layer in self._layers if layer.visible]

    def clear(self) -> None:
        """Remove every layer, releasing all of their handles."""
        for layer in self.list_layers():
            self.remove_layer(layer.id)

    def _find(self, layer_id: str) -> MapLayer:
        for layer in self._layers:
            if layer.id == layer_id:
                return layer
        raise KeyError(f"Layer not found: {layer_id}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._layers)

    def __contains__(self, layer_id: str) -> bool:
        return self.get_layer(layer_id) is not None
