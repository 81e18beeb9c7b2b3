"""
Configuration package for GeoVisor.

This package contains configuration loading and validation.

Modules:
    config_loader: Load and validate ingestion settings from JSON
"""

__version__ = '1.0.0'
