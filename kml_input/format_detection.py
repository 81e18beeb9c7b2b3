"""
Input format detection.

Classifies an input purely by its filename suffix. Query fragments such as
``?raw=true`` on names taken from URLs are ignored.
"""

from enum import Enum

from kml_input.errors import UnsupportedFormat


class DetectedFormat(Enum):
    PLAIN_DOCUMENT = 'kml'
    ARCHIVE = 'kmz'
    UNSUPPORTED = 'unsupported'


SUFFIX_FORMATS = {
    '.kml': DetectedFormat.PLAIN_DOCUMENT,
    '.kmz': DetectedFormat.ARCHIVE,
}


def clean_filename(filename: str) -> str:
    """Drop everything from the first '?' onward and lower-case the rest."""
    return filename.split('?', 1)[0].lower()


def detect_format(filename: str) -> DetectedFormat:
    """
    Detect the input format from a filename.

    Args:
        filename: Original filename, possibly carrying a query fragment

    Returns:
        DetectedFormat for the suffix, UNSUPPORTED when unknown

    Example:
        >>> detect_format('BOKA.KMZ?raw=true')
        <DetectedFormat.ARCHIVE: 'kmz'>
    """
    name = clean_filename(filename)
    for suffix, detected in SUFFIX_FORMATS.items():
        if name.endswith(suffix):
            return detected
    return DetectedFormat.UNSUPPORTED


def require_supported_format(filename: str) -> DetectedFormat:
    """Detect the format and fail fast with UnsupportedFormat when unknown."""
    detected = detect_format(filename)
    if detected is DetectedFormat.UNSUPPORTED:
        raise UnsupportedFormat(f"'{filename}'")
    return detected
