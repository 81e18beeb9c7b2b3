"""
Ingestion error taxonomy.

Every fatal condition for a single file maps to its own exception class with a
specific, actionable ``user_message`` so callers can tell "format not
supported", "file is corrupt" and "file has no map data" apart.
All classes derive from ValueError, matching how file loading failures are
raised elsewhere in the code base.
"""

from typing import Optional


class IngestError(ValueError):
    """Base class for every KML/KMZ ingestion failure."""

    default_message = "The file could not be processed."

    def __init__(self, detail: str = '', *, source_name: Optional[str] = None):
        self.detail = detail
        self.source_name = source_name
        super().__init__(self._compose())

    def _compose(self) -> str:
        parts = []
        if self.source_name:
            parts.append(f"{self.source_name}:")
        parts.append(self.default_message)
        if self.detail:
            parts.append(f"({self.detail})")
        return ' '.join(parts)

    @property
    def user_message(self) -> str:
        return self.default_message


class UnsupportedFormat(IngestError):
    default_message = "Unsupported file format. Please upload a .kml or .kmz file."


class CorruptArchive(IngestError):
    default_message = (
        "The KMZ file is corrupted or was not fully downloaded. "
        "The file may be empty; try downloading it again."
    )


class NoReadableDocument(IngestError):
    default_message = "Invalid KMZ: the archive does not contain a readable KML document."


class StructuralParseFailure(IngestError):
    default_message = "The KML document is not well-formed and could not be parsed."


class NetworkLinkRejected(StructuralParseFailure):
    default_message = (
        "The KML document references external network links, "
        "which are not supported."
    )


class NoDrawableContent(IngestError):
    default_message = "The file contains no drawable map data (no points, lines or polygons)."


class EncodingRecoveryFailed(IngestError):
    default_message = "The file's text encoding could not be recognized."


class RemoteFetchError(IngestError):
    default_message = "The map file could not be downloaded."
