"""
Embedded Resource Rehoming Module

KMZ archives bundle their icons next to the KML document, and the document
refers to them either by full in-archive path ('files/icons/pin.png') or by
bare file name ('pin.png'). Those references are meaningless once the archive
is unpacked in memory, so every referenced image is materialized into a
ResourceStore and each reference is rewritten to the resulting handle.

Rewriting walks the parsed tree (element text, tails and attribute values)
and uses plain string replacement, so file names are never interpreted as
patterns. Full paths are replaced before bare names, longest first.

Handles are file:// URIs of private copies; they contain neither the
original path nor the file name and stay loadable until revoked.
"""

import shutil
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from lxml import etree

from kml_input.archive import ArchiveEntry
from utils.logger import get_logger

logger = get_logger(__name__)


class ResourceStore:
    """
    Owner of materialized embedded resources.

    Each stored resource is written to a private temporary directory and
    addressed by an opaque file:// handle. Handles remain valid until
    revoke() (or close()) is called for them.

    Example:
        >>> with ResourceStore() as store:
        ...     handle = store.materialize(b'\\x89PNG...')
        ...     store.resolve(handle).exists()
        True
    """

    def __init__(self, base_dir: Optional[Path] = None):
        self._directory = Path(tempfile.mkdtemp(prefix='geovisor-resources-', dir=base_dir))
        self._paths: Dict[str, Path] = {}
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    def materialize(self, data: bytes) -> str:
        path = self._directory / uuid.uuid4().hex
        path.write_bytes(data)
        handle = path.as_uri()
        with self._lock:
            self._paths[handle] = path
        return handle

    def resolve(self, handle: str) -> Optional[Path]:
        with self._lock:
            return self._paths.get(handle)

    def revoke(self, handle: str) -> bool:
        with self._lock:
            path = self._paths.pop(handle, None)
        if path is None:
            return False
        path.unlink(missing_ok=True)
        return True

    def revoke_all(self) -> int:
        with self._lock:
            handles = list(self._paths)
        return sum(1 for handle in handles if self.revoke(handle))

    def close(self) -> None:
        self.revoke_all()
        shutil.rmtree(self._directory, ignore_errors=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def __enter__(self) -> 'ResourceStore':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _text_values(root: etree._Element) -> Iterator[str]:
    for element in root.iter():
        if not isinstance(element.tag, str):
            continue
        if element.text:
            yield element.text
        if element.tail:
            yield element.tail
        yield from element.attrib.values()


def _rewrite(value: str, replacements: Sequence[Tuple[str, str]]) -> str:
    for original, handle in replacements:
        if original in value:
            value = value.replace(original, handle)
    return value


def _rewrite_tree(root: etree._Element, replacements: Sequence[Tuple[str, str]]) -> None:
    for element in root.iter():
        if not isinstance(element.tag, str):
            continue
        if element.text:
            element.text = _rewrite(element.text, replacements)
        if element.tail:
            element.tail = _rewrite(element.tail, replacements)
        for key, value in element.attrib.items():
            new_value = _rewrite(value, replacements)
            if new_value != value:
                element.set(key, new_value)


def find_referenced_resources(root: etree._Element,
                              resources: Sequence[ArchiveEntry]) -> List[ArchiveEntry]:
    """Return resources whose full path or bare file name occurs anywhere in the tree."""
    values = list(_text_values(root))
    return [
        entry for entry in resources
        if any(entry.name in value or entry.basename in value for value in values)
    ]


def rehome_resources(root: etree._Element,
                     resources: Sequence[ArchiveEntry],
                     store: ResourceStore,
                     materialized: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Rewrite references to embedded images in a parsed KML tree.

    Args:
        root: Parsed document tree (modified in place)
        resources: Image entries indexed from the archive
        store: Store that materializes resource bytes into handles
        materialized: Cache of already materialized entries (path -> handle),
            shared between documents of the same archive so each image is
            stored once

    Returns:
        Dictionary of in-archive path -> handle for resources rehomed in this document
    """
    if materialized is None:
        materialized = {}

    referenced = find_referenced_resources(root, resources)
    if not referenced:
        return {}

    rehomed = {}
    for entry in referenced:
        handle = materialized.get(entry.name)
        if handle is None:
            handle = store.materialize(entry.data)
            materialized[entry.name] = handle
            logger.debug(f"  - Materialized {entry.name} -> {handle}")
        rehomed[entry.name] = handle

    full_paths = sorted(rehomed.items(), key=lambda item: len(item[0]), reverse=True)

    # First entry in listing order wins a shared bare file name
    bare_names: Dict[str, str] = {}
    for entry in referenced:
        if entry.basename != entry.name:
            bare_names.setdefault(entry.basename, rehomed[entry.name])
    bare = sorted(bare_names.items(), key=lambda item: len(item[0]), reverse=True)

    _rewrite_tree(root, full_paths + bare)

    logger.info(f"  - Rehomed {len(rehomed)} embedded resource(s)")
    return rehomed
