"""
Configuration loading for GeoVisor.

This module handles loading and validation of the GeoVisor configuration JSON file.

Constants:
    PROJECT_ROOT: Root directory of the project
    CONFIG_DIR: Configuration files directory
    OUTPUT_DIR: Output files directory
    DEFAULT_COLOR_PALETTE: Ten sRGB colors assigned to new layers

Functions:
    load_config: Load and validate configuration from JSON
    load_ingest_settings: Merge ingestion settings with defaults
"""

import json
from pathlib import Path
from typing import Dict, Optional

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / 'config'
OUTPUT_DIR = PROJECT_ROOT / 'outputs'
CONFIG_FILENAME = 'geovisor_config.json'

DEFAULT_COLOR_PALETTE = [
    '#ef4444', '#f97316', '#f59e0b', '#84cc16', '#10b981',
    '#06b6d4', '#3b82f6', '#8b5cf6', '#d946ef', '#f43f5e'
]

NETWORK_LINK_POLICIES = ('warn', 'reject')


def load_config(config_path: Optional[Path] = None) -> Dict:
    """
    Load GeoVisor configuration from JSON file.

    Reads geovisor_config.json (or the given path) and validates basic structure.

    Parameters:
    -----------
    config_path : Optional[Path]
        Alternate configuration file. Defaults to CONFIG_DIR / geovisor_config.json

    Returns:
    --------
    Dict
        Configuration dictionary with 'settings' and 'remote_maps' keys

    Raises:
    -------
    FileNotFoundError
        If configuration file doesn't exist
    json.JSONDecodeError
        If configuration file contains invalid JSON
    KeyError
        If required configuration keys are missing
    """
    if config_path is None:
        config_path = CONFIG_DIR / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    if 'settings' not in config:
        raise KeyError("Configuration missing required 'settings' key")

    config.setdefault('remote_maps', [])

    OUTPUT_DIR.mkdir(exist_ok=True)

    return config


def load_ingest_settings(config: Dict = None) -> Dict:
    """
    Load KML/KMZ ingestion settings from configuration.

    Args:
        config: Configuration dictionary (optional, will load if not provided)

    Returns:
        Dictionary with ingestion settings

    Defaults:
        - default_document_name: 'doc.kml'
        - image_extensions: ['.png', '.jpg', '.jpeg', '.gif', '.bmp', '.webp']
        - fallback_encoding: 'iso-8859-9'
        - network_link_policy: 'warn'
        - allow_empty: False
        - batch_allow_empty: True
        - fetch_timeout_seconds: 30
        - max_concurrent_downloads: 4
        - color_palette: DEFAULT_COLOR_PALETTE

    Raises:
        ValueError: If network_link_policy is not 'warn' or 'reject'

    Note:
        Returns defaults if the 'settings' section omits a key,
        so older config files keep working.
    """
    if config is None:
        config = load_config()

    defaults = {
        'default_document_name': 'doc.kml',
        'image_extensions': ['.png', '.jpg', '.jpeg', '.gif', '.bmp', '.webp'],
        'fallback_encoding': 'iso-8859-9',
        'network_link_policy': 'warn',
        'allow_empty': False,
        'batch_allow_empty': True,
        'fetch_timeout_seconds': 30,
        'max_concurrent_downloads': 4,
        'color_palette': list(DEFAULT_COLOR_PALETTE)
    }

    settings = config.get('settings', {})
    result = {**defaults, **settings}

    if result['network_link_policy'] not in NETWORK_LINK_POLICIES:
        raise ValueError(
            f"Invalid network_link_policy '{result['network_link_policy']}' "
            f"(expected one of {', '.join(NETWORK_LINK_POLICIES)})"
        )

    return result
