"""
Utility modules for GeoVisor.

This package contains utility functions and helpers used throughout the application.

Modules:
    logger: Logging configuration and setup
    geometry_converters: GeoJSON to shapely/GeoDataFrame conversion and geodesic area
"""

__version__ = '1.0.0'
