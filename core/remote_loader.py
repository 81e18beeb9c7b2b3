"""
Remote and local map loading for GeoVisor.

Supplies raw bytes plus a filename to the ingestion pipeline, then turns the
parsed collection into a MapLayer. Remote documents are fetched with exactly
one HTTP GET; there are no retries.

Batch loading runs each URL's full pipeline concurrently. A failure for one
URL is logged and reported but never aborts the others; finished layers are
appended to the LayerStore as they complete.

Functions:
    fetch_remote_document: Download one map file
    read_local_file: Read one map file from disk
    display_name_from_filename: URL-decode a filename for display
    load_layer: Parse a RawInput and add the resulting layer to a store
    load_remote_layers: Concurrently load a list of URLs into a store
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import unquote, urlsplit

import requests

from core.layer_store import LayerStore, build_layer
from core.models import MapLayer, RawInput
from kml_input.errors import IngestError, RemoteFetchError
from kml_input.pipeline import parse_raw_input
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_REMOTE_FILENAME = 'external-map.kml'


def filename_from_url(url: str) -> str:
    """Last path segment of a URL (still percent-encoded), or the default name."""
    path = urlsplit(url).path
    return path.rsplit('/', 1)[-1] or DEFAULT_REMOTE_FILENAME


def display_name_from_filename(filename: str) -> str:
    """
    Decode percent-escapes in a filename for display.

    Example:
        >>> display_name_from_filename('OVALAR%20(4).kmz')
        'OVALAR (4).kmz'
    """
    return unquote(filename)


def fetch_remote_document(url: str, timeout: float = 30) -> RawInput:
    """
    Download a KML/KMZ file with a single GET request.

    Parameters:
    -----------
    url : str
        Address of the map file
    timeout : float
        Request timeout in seconds (default: 30)

    Returns:
    --------
    RawInput
        Response bytes and the file name taken from the URL path

    Raises:
    -------
    RemoteFetchError
        On any transport error or non-2xx status
    """
    filename = filename_from_url(url)
    logger.info(f"Fetching {url}")

    start_time = time.time()
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.Timeout as e:
        raise RemoteFetchError(f"request timed out after {timeout}s",
                               source_name=display_name_from_filename(filename)) from e
    except requests.exceptions.RequestException as e:
        raise RemoteFetchError(str(e), source_name=display_name_from_filename(filename)) from e

    elapsed = time.time() - start_time
    logger.info(f"  - Downloaded {len(response.content):,} bytes in {elapsed:.2f}s")
    return RawInput(data=response.content, filename=filename)


def read_local_file(file_path: str) -> RawInput:
    """
    Read a map file from disk.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {file_path}")
    return RawInput(data=path.read_bytes(), filename=path.name)


def load_layer(raw: RawInput,
               store: LayerStore,
               settings: Dict[str, Any],
               allow_empty: Optional[bool] = None) -> Tuple[MapLayer, Dict]:
    """
    Parse a RawInput, build its layer and add it to the store.

    Returns:
        Tuple of (layer, parse metadata)
    """
    collection, metadata = parse_raw_input(
        raw, settings, resource_store=store.resources, allow_empty=allow_empty
    )
    layer = build_layer(display_name_from_filename(raw.filename), collection,
                        store.colors, metadata)
    store.add_layers([layer])
    return layer, metadata


def _load_one(url: str, store: LayerStore, settings: Dict[str, Any]) -> MapLayer:
    raw = fetch_remote_document(url, settings['fetch_timeout_seconds'])
    layer, _ = load_layer(raw, store, settings, allow_empty=settings['batch_allow_empty'])
    return layer


def load_remote_layers(urls: Sequence[str],
                       store: LayerStore,
                       settings: Dict[str, Any],
                       max_workers: Optional[int] = None) -> Tuple[List[MapLayer], Dict[str, str]]:
    """
    Load every URL into the store concurrently.

    Each URL runs fetch -> parse -> add independently. Empty documents are
    tolerated according to settings['batch_allow_empty'].

    Parameters:
    -----------
    urls : Sequence[str]
        Map file URLs
    store : LayerStore
        Destination store, updated as each layer completes
    settings : Dict[str, Any]
        Ingest settings from load_ingest_settings()
    max_workers : Optional[int]
        Thread count (default: settings['max_concurrent_downloads'])

    Returns:
    --------
    Tuple[List[MapLayer], Dict[str, str]]
        - Loaded layers in URL order
        - URL -> user-facing error message for every URL that failed
    """
    if not urls:
        return [], {}

    workers = max_workers or settings['max_concurrent_downloads']

    logger.info("=" * 80)
    logger.info(f"Loading {len(urls)} remote map(s) ({workers} concurrent)")
    logger.info("=" * 80)

    loaded: Dict[str, MapLayer] = {}
    failures: Dict[str, str] = {}

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(_load_one, url, store, settings): url for url in urls}
        for future in as_completed(futures):
            url = futures[future]
            try:
                loaded[url] = future.result()
            except IngestError as e:
                logger.error(f"  ✗ Failed to load {url}: {e}")
                failures[url] = e.user_message
            except Exception as e:
                logger.error(f"  ✗ Failed to load {url}: {e}", exc_info=True)
                failures[url] = str(e)

    layers = [loaded[url] for url in urls if url in loaded]
    logger.info(f"Remote maps: {len(layers)} loaded, {len(failures)} failed")
    return layers, failures
