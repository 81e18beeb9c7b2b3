"""
Output generation module for GeoVisor.

This module saves the loaded layers and analysis results to the output directory.
Creates a timestamped directory structure with GeoJSON data files and metadata.

Functions:
    safe_layer_filename: Turn a layer name into a file-system safe stem
    generate_output: Save layer GeoJSON files and metadata to output directory
"""

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from config.config_loader import OUTPUT_DIR
from core.models import MapLayer, RelationReport
from utils.logger import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARACTERS = re.compile(r'[^\w.-]+')


def safe_layer_filename(layer_name: str) -> str:
    """
    Sanitize a layer name for use as a file name.

    Example:
        >>> safe_layer_filename('OVALAR (4).kmz')
        'ovalar_4_.kmz'
    """
    safe_name = _UNSAFE_CHARACTERS.sub('_', layer_name.strip()).lower()
    return safe_name or 'layer'


def generate_output(
    layers: Sequence[MapLayer],
    relation_reports: Optional[Dict[str, List[RelationReport]]] = None,
    layer_metadata: Optional[Dict[str, Dict]] = None,
    output_name: Optional[str] = None,
    output_dir: Optional[Path] = None
) -> Path:
    """
    Generate output directory with GeoJSON data files and metadata.

    Creates an output directory containing:
    - data/<layer>.geojson: One FeatureCollection per layer
    - metadata.json: Layer summary, parse metadata and relation reports

    Parameters:
    -----------
    layers : Sequence[MapLayer]
        Layers to save, in display order
    relation_reports : Optional[Dict[str, List[RelationReport]]]
        Layer id -> reports computed when that layer was added
    layer_metadata : Optional[Dict[str, Dict]]
        Layer id -> parse metadata from parse_raw_input()
    output_name : Optional[str]
        Custom output directory name (defaults to timestamped name)
    output_dir : Optional[Path]
        Parent directory (defaults to OUTPUT_DIR)

    Returns:
    --------
    Path
        Path to output directory

    Example:
        >>> output_path = generate_output(store.list_layers(), reports, metadata)
        >>> output_path
        Path('outputs/geovisor_20250108_143022')
    """
    logger.info("=" * 80)
    logger.info("Generating Output Files")
    logger.info("=" * 80)

    relation_reports = relation_reports or {}
    layer_metadata = layer_metadata or {}

    if output_name is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_name = f"geovisor_{timestamp}"

    output_path = (output_dir or OUTPUT_DIR) / output_name
    output_path.mkdir(parents=True, exist_ok=True)

    data_path = output_path / 'data'
    data_path.mkdir(exist_ok=True)

    logger.info(f"Output directory: {output_path}")

    layer_summaries = []
    used_names = set()
    for layer in layers:
        stem = safe_layer_filename(layer.name)
        candidate = stem
        suffix = 2
        while candidate in used_names:
            candidate = f"{stem}_{suffix}"
            suffix += 1
        used_names.add(candidate)

        logger.info(f"  - Saving {layer.name} features...")
        layer_file = data_path / f'{candidate}.geojson'
        with open(layer_file, 'w', encoding='utf-8') as f:
            json.dump(layer.data, f, ensure_ascii=False)

        layer_summaries.append({
            'id': layer.id,
            'name': layer.name,
            'color': layer.color,
            'visible': layer.visible,
            'feature_count': layer.feature_count,
            'file': f'data/{candidate}.geojson',
            'parse': layer_metadata.get(layer.id, {}),
            'relations': [r.to_dict() for r in relation_reports.get(layer.id, [])],
        })

    logger.info("  - Saving metadata...")
    summary = {
        'generated_at': datetime.now().isoformat(),
        'layers': layer_summaries,
        'total_features': sum(layer.feature_count for layer in layers),
        'layer_count': len(layer_summaries),
    }
    with open(output_path / 'metadata.json', 'w', encoding='utf-8') as f:
        json.dump(summary, f, indent=2, ensure_ascii=False)

    logger.info(f"  ✓ Saved {len(layer_summaries)} layer(s)\n")
    return output_path
