"""
KMZ Archive Extraction Module

Opens KMZ (zip) containers, classifies every entry and selects the KML
documents to parse.

Entry classification:
- candidate-document: '.kml' suffix
- resource: raster image suffix (embedded icons)
- ignorable: OS metadata artifacts ('__MACOSX/' folders, '._' hidden files)
  and directory entries
- other: anything else (kept in the listing, never parsed)

Candidate selection is an ordered strategy list; the first strategy that
yields at least one entry wins:
1. default-document: the entry whose base name is the conventional 'doc.kml'
2. all-documents: every '.kml' entry, in archive-listing order
"""

import io
import zipfile
import zlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Sequence, Tuple

from kml_input.errors import CorruptArchive, NoReadableDocument
from utils.logger import get_logger

logger = get_logger(__name__)

DOCUMENT_SUFFIX = '.kml'
DEFAULT_DOCUMENT_NAME = 'doc.kml'
IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.gif', '.bmp', '.webp')
METADATA_DIRECTORY = '__MACOSX'
HIDDEN_FILE_PREFIX = '._'

# Errors zipfile raises for truncated or otherwise unreadable containers
_CONTAINER_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError)


class EntryKind(Enum):
    CANDIDATE_DOCUMENT = 'candidate-document'
    RESOURCE = 'resource'
    IGNORABLE = 'ignorable'
    OTHER = 'other'


@dataclass(frozen=True)
class ArchiveEntry:
    """A single file inside a KMZ archive."""

    name: str
    data: bytes = field(repr=False)
    kind: EntryKind

    @property
    def basename(self) -> str:
        return entry_basename(self.name)


@dataclass
class ExtractedArchive:
    """All entries of an opened archive, in listing order."""

    entries: List[ArchiveEntry]


def entry_basename(name: str) -> str:
    return name.rstrip('/').rsplit('/', 1)[-1]


def is_ignorable_entry(name: str) -> bool:
    """
    Check whether an entry name is an OS metadata artifact.

    True for anything inside a '__MACOSX' directory (at any depth), for base
    names starting with the '._' AppleDouble prefix, and for directory entries.
    """
    if name.endswith('/'):
        return True
    parts = name.split('/')
    if METADATA_DIRECTORY in parts:
        return True
    return parts[-1].startswith(HIDDEN_FILE_PREFIX)


def classify_entry(name: str, image_extensions: Sequence[str] = IMAGE_EXTENSIONS) -> EntryKind:
    if is_ignorable_entry(name):
        return EntryKind.IGNORABLE

    lower_name = name.lower()
    if lower_name.endswith(DOCUMENT_SUFFIX):
        return EntryKind.CANDIDATE_DOCUMENT
    if any(lower_name.endswith(ext.lower()) for ext in image_extensions):
        return EntryKind.RESOURCE
    return EntryKind.OTHER


def open_archive(data: bytes,
                 image_extensions: Sequence[str] = IMAGE_EXTENSIONS) -> ExtractedArchive:
    """
    Open a KMZ container and read every non-ignorable entry.

    Args:
        data: Raw archive bytes
        image_extensions: Suffixes indexed as embedded image resources

    Returns:
        ExtractedArchive with classified entries in listing order.
        Ignorable entries are listed with empty data; their bytes are never read.

    Raises:
        CorruptArchive: If the container cannot be opened or an entry cannot be read
    """
    if not data:
        raise CorruptArchive("archive is empty")

    entries = []
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zip_ref:
            for info in zip_ref.infolist():
                kind = classify_entry(info.filename, image_extensions)
                if kind is EntryKind.IGNORABLE:
                    logger.debug(f"  - Ignoring metadata entry: {info.filename}")
                    entries.append(ArchiveEntry(info.filename, b'', kind))
                    continue
                entries.append(ArchiveEntry(info.filename, zip_ref.read(info), kind))
    except _CONTAINER_ERRORS as e:
        raise CorruptArchive(str(e)) from e

    logger.debug(f"  - Archive contains {len(entries)} entries")
    return ExtractedArchive(entries)


def _default_document_strategy(entries: Sequence[ArchiveEntry],
                               default_document_name: str) -> List[ArchiveEntry]:
    target = default_document_name.lower()
    for entry in entries:
        if entry.basename.lower() == target:
            return [entry]
    return []


def _all_documents_strategy(entries: Sequence[ArchiveEntry],
                            default_document_name: str) -> List[ArchiveEntry]:
    return list(entries)


SelectionStrategy = Callable[[Sequence[ArchiveEntry], str], List[ArchiveEntry]]

SELECTION_STRATEGIES: Tuple[Tuple[str, SelectionStrategy], ...] = (
    ('default-document', _default_document_strategy),
    ('all-documents', _all_documents_strategy),
)


def select_candidate_documents(entries: Iterable[ArchiveEntry],
                               default_document_name: str = DEFAULT_DOCUMENT_NAME
                               ) -> Tuple[str, List[ArchiveEntry]]:
    """
    Select the KML documents to parse from an archive listing.

    Args:
        entries: Archive entries in listing order
        default_document_name: Conventional main document name

    Returns:
        Tuple of (strategy_name, selected_entries)

    Raises:
        NoReadableDocument: If no strategy yields a candidate
    """
    candidates = [e for e in entries if e.kind is EntryKind.CANDIDATE_DOCUMENT]

    for strategy_name, strategy in SELECTION_STRATEGIES:
        selected = strategy(candidates, default_document_name)
        if selected:
            logger.info(
                f"  - Selected {len(selected)} document(s) via '{strategy_name}': "
                f"{', '.join(e.name for e in selected)}"
            )
            return strategy_name, selected

    raise NoReadableDocument("no .kml entry found")


def index_image_resources(entries: Iterable[ArchiveEntry]) -> List[ArchiveEntry]:
    """Return every embedded image entry, excluding metadata artifacts."""
    return [e for e in entries if e.kind is EntryKind.RESOURCE]
