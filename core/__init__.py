"""
Core modules for GeoVisor.

This package contains the layer set, the spatial relation checks and the
loaders that feed parsed KML/KMZ files into them.

Modules:
    models: Layer, raw input and relation report types
    layer_store: Ordered layer set with color assignment and handle release
    spatial_relations: Intersection and full-coverage checks between layers
    remote_loader: Local and remote byte suppliers, concurrent batch loading
    output_generator: Save layer GeoJSON files and metadata
"""

__version__ = '1.0.0'
