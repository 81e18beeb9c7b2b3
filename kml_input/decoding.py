"""
Text decoding with legacy-encoding fallback.

KML authored with older desktop tools is frequently saved in a regional 8-bit
code page instead of UTF-8. Decoding is attempted strictly as UTF-8 first; a
UnicodeDecodeError is the signal to retry, strictly, with the fallback
encoding. The default fallback (ISO-8859-9, Turkish Latin-5) maps every byte
value, so decoding with the default settings never fails.
"""

import codecs
from typing import Tuple

from kml_input.errors import EncodingRecoveryFailed
from utils.logger import get_logger

logger = get_logger(__name__)

PRIMARY_ENCODING = 'utf-8'
DEFAULT_FALLBACK_ENCODING = 'iso-8859-9'


def decode_document_bytes(data: bytes,
                          fallback_encoding: str = DEFAULT_FALLBACK_ENCODING,
                          source_name: str = '') -> Tuple[str, str]:
    """
    Decode document bytes to text.

    Args:
        data: Raw document bytes
        fallback_encoding: Legacy encoding tried when UTF-8 fails
        source_name: Document name used in log and error messages

    Returns:
        Tuple of (text, encoding_used)

    Raises:
        EncodingRecoveryFailed: If both decoders reject the bytes
    """
    try:
        return data.decode(PRIMARY_ENCODING), PRIMARY_ENCODING
    except UnicodeDecodeError as e:
        logger.info(
            f"  - {source_name or 'document'} is not valid UTF-8 "
            f"(byte {e.start}), retrying as {fallback_encoding}"
        )

    try:
        codecs.lookup(fallback_encoding)
        return data.decode(fallback_encoding), fallback_encoding
    except (UnicodeDecodeError, LookupError) as e:
        raise EncodingRecoveryFailed(
            f"not valid {PRIMARY_ENCODING} or {fallback_encoding}: {e}",
            source_name=source_name or None
        ) from e
