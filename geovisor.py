#!/usr/bin/env python
"""
GeoVisor
========
Loads KML and KMZ map files into a layer set, reports how each new file
relates to the layers already loaded (intersection and full coverage), and
writes every layer out as GeoJSON with a metadata summary.

Usage:
    python geovisor.py sites.kmz parcels.kml --remote --output-name survey
"""

import argparse
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from utils.logger import setup_logging, get_logger

from config.config_loader import load_config, load_ingest_settings
from core.layer_store import LayerStore, RandomColorAllocator
from core.models import MapLayer, RelationReport
from core.output_generator import generate_output
from core.remote_loader import load_layer, load_remote_layers, read_local_file
from core.spatial_relations import find_covered_layers, find_intersecting_layers
from kml_input.errors import IngestError
from kml_input.pipeline import get_default_resource_store


def analyze_new_layer(layer: MapLayer, existing: Sequence[MapLayer]) -> List[RelationReport]:
    """Run the intersection and coverage checks for a layer against the layers before it."""
    logger = get_logger(__name__)
    reports = [
        find_intersecting_layers(layer.data, existing),
        find_covered_layers(layer.data, existing),
    ]
    for report in reports:
        for line in report.describe():
            logger.info(f"    {line}")
    return reports


def main(input_files: Sequence[str],
         output_name: Optional[str] = None,
         include_remote: bool = False,
         config_path: Optional[Path] = None) -> Optional[Path]:
    """
    Main execution workflow for GeoVisor.

    Workflow Steps:
    1. Setup logging to console and file
    2. Load configuration
    3. Optionally load the configured remote maps concurrently
    4. Parse each input file, analyze it against the loaded layers, add it
    5. Generate output files

    Parameters:
    -----------
    input_files : Sequence[str]
        Paths to .kml / .kmz files, loaded in order
    output_name : Optional[str]
        Custom name for output directory (defaults to timestamped name)
    include_remote : bool
        Also load every URL listed under 'remote_maps' in the configuration
    config_path : Optional[Path]
        Alternate configuration file

    Returns:
    --------
    Optional[Path]
        Path to output directory if successful, None if failed

    Example:
        >>> output_path = main(['sites.kmz', 'parcels.kml'])
        >>> print(f"Layers saved to: {output_path / 'data'}")
    """
    workflow_start_time = time.time()

    log_file = setup_logging()
    logger = get_logger(__name__)

    logger.info("=" * 80)
    logger.info("GEOVISOR - KML/KMZ Layer Loader and Spatial Relations")
    logger.info("=" * 80)
    logger.info(f"Log file: {log_file}")
    logger.info("")

    try:
        config = load_config(config_path)
        settings = load_ingest_settings(config)
        logger.info(f"Configuration loaded: {len(config['remote_maps'])} remote map(s) defined")
        logger.info("")

        store = LayerStore(
            resources=get_default_resource_store(),
            colors=RandomColorAllocator(settings['color_palette'])
        )
        relation_reports: Dict[str, List[RelationReport]] = {}
        layer_metadata: Dict[str, Dict] = {}
        failures: Dict[str, str] = {}

        if include_remote and config['remote_maps']:
            _, remote_failures = load_remote_layers(config['remote_maps'], store, settings)
            failures.update(remote_failures)
            logger.info("")

        for input_file in input_files:
            existing = store.visible_layers()
            try:
                layer, metadata = load_layer(read_local_file(input_file), store, settings)
            except (IngestError, FileNotFoundError) as e:
                logger.error(f"✗ {input_file}: {e}")
                failures[input_file] = getattr(e, 'user_message', str(e))
                continue

            layer_metadata[layer.id] = metadata
            logger.info(f"Analyzing '{layer.name}' against {len(existing)} loaded layer(s)")
            relation_reports[layer.id] = analyze_new_layer(layer, existing)
            logger.info("")

        if not len(store):
            logger.warning("⚠ WARNING: No layers could be loaded.")

        output_path = generate_output(
            store.list_layers(), relation_reports, layer_metadata, output_name
        )

        total_execution_time = time.time() - workflow_start_time

        logger.info("")
        if failures:
            logger.warning(f"⚠ {len(failures)} input(s) failed:")
            for source, message in failures.items():
                logger.warning(f"    {source}: {message}")
        logger.info("✓ WORKFLOW COMPLETE")
        logger.info(f"✓ Layers loaded: {len(store)}")
        logger.info(f"✓ Total execution time: {total_execution_time:.2f} seconds")
        logger.info(f"✓ Output directory: {output_path}")
        logger.info(f"✓ Log file: {log_file}")
        logger.info("")

        return output_path

    except Exception as e:
        elapsed_time = time.time() - workflow_start_time

        logger.error("")
        logger.error("=" * 80)
        logger.error("✗ WORKFLOW FAILED")
        logger.error("=" * 80)
        logger.error(f"Error: {str(e)}", exc_info=True)
        logger.error(f"Workflow failed after {elapsed_time:.2f} seconds")
        logger.error("")
        logger.error(f"See log file for details: {log_file}")
        logger.error("=" * 80)
        return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='geovisor',
        description='Load KML/KMZ files and report their spatial relationships.'
    )
    parser.add_argument('inputs', nargs='*', help='KML or KMZ files, loaded in order')
    parser.add_argument('--output-name', help='Output directory name (default: timestamped)')
    parser.add_argument('--remote', action='store_true',
                        help="Also load the configured 'remote_maps'")
    parser.add_argument('--config', type=Path, help='Alternate configuration file')
    return parser


def cli(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.inputs and not args.remote:
        build_parser().error('provide at least one input file or --remote')

    output_dir = main(args.inputs, args.output_name, args.remote, args.config)

    if output_dir:
        print(f"\n✓ Success! Layers written to {output_dir / 'data'}")
        return 0
    print("\n✗ Failed to load maps. Check log file for details.")
    return 1


if __name__ == "__main__":
    sys.exit(cli())
