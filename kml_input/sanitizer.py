"""
KML Document Sanitizer

Repairs and neutralizes common markup problems before the structural parse.
Steps, in order:
1. Strip a leading byte-order mark
2. Remove comments
3. Remove processing instructions (including the XML declaration, which lxml
   refuses on already-decoded text)
4. Strip namespace declarations and the prefixes they bound
   ('<gx:Track>' -> '<Track>'), so the converter matches plain tag names
5. Escape every '&' that does not start a predefined or numeric character
   entity ('Ali & Veli' -> 'Ali &amp; Veli')

CDATA sections pass through every step untouched.

NetworkLink elements are detected here. With the 'warn' policy they are
logged and left in place (the converter never follows them); with 'reject'
the document is refused.
"""

import re
from typing import List

from kml_input.errors import NetworkLinkRejected
from utils.logger import get_logger

logger = get_logger(__name__)

BYTE_ORDER_MARK = '\ufeff'

_CDATA_OR_COMMENT = re.compile(r'<!\[CDATA\[.*?\]\]>|<!--.*?-->', re.DOTALL)
_CDATA_SPLIT = re.compile(r'(<!\[CDATA\[.*?\]\]>)', re.DOTALL)
_PROCESSING_INSTRUCTION = re.compile(r'<\?.*?\?>', re.DOTALL)
_NAMESPACE_DECLARATION = re.compile(
    r'\s+xmlns(?::[\w.-]+)?\s*=\s*(?:"[^"]*"|\'[^\']*\')'
)
_TAG = re.compile(r'<(/?)([^\s<>/!?]+)([^<>]*)>')
_ATTRIBUTE = re.compile(r'(\s+)(?:[\w.-]+:)?([\w.-]+)(\s*=\s*)("[^"]*"|\'[^\']*\')')
_BARE_AMPERSAND = re.compile(r'&(?!(?:amp|lt|gt|quot|apos|#[0-9]+|#[xX][0-9a-fA-F]+);)')
_NETWORK_LINK = re.compile(r'<NetworkLink[\s/>]')


def _keep_cdata(match: re.Match) -> str:
    token = match.group(0)
    return token if token.startswith('<![CDATA[') else ''


def _strip_tag_prefixes(match: re.Match) -> str:
    closing, name, rest = match.groups()
    name = name.split(':')[-1]

    seen = set()

    def _attribute(attr: re.Match) -> str:
        space, attr_name, equals, value = attr.groups()
        if attr_name in seen:
            return ''
        seen.add(attr_name)
        return f'{space}{attr_name}{equals}{value}'

    rest = _ATTRIBUTE.sub(_attribute, rest)
    return f'<{closing}{name}{rest}>'


def _sanitize_markup(chunk: str) -> str:
    chunk = _PROCESSING_INSTRUCTION.sub('', chunk)
    chunk = _NAMESPACE_DECLARATION.sub('', chunk)
    chunk = _TAG.sub(_strip_tag_prefixes, chunk)
    chunk = _BARE_AMPERSAND.sub('&amp;', chunk)
    return chunk


def find_network_links(text: str) -> List[int]:
    """Return offsets of NetworkLink start tags outside CDATA sections."""
    offsets = []
    position = 0
    for index, chunk in enumerate(_CDATA_SPLIT.split(text)):
        if index % 2 == 0:
            offsets.extend(position + m.start() for m in _NETWORK_LINK.finditer(chunk))
        position += len(chunk)
    return offsets


def sanitize_document(text: str,
                      network_link_policy: str = 'warn',
                      source_name: str = '') -> str:
    """
    Sanitize decoded KML text so that it parses as plain, namespace-free XML.

    Args:
        text: Decoded document text
        network_link_policy: 'warn' to log and continue, 'reject' to refuse
        source_name: Document name for log and error messages

    Returns:
        Sanitized document text

    Raises:
        NetworkLinkRejected: If the document contains NetworkLink elements and
            the policy is 'reject'

    Example:
        >>> sanitize_document('<name>Ali & Veli</name>')
        '<name>Ali &amp; Veli</name>'
    """
    if text.startswith(BYTE_ORDER_MARK):
        text = text[len(BYTE_ORDER_MARK):]

    text = _CDATA_OR_COMMENT.sub(_keep_cdata, text)

    chunks = _CDATA_SPLIT.split(text)
    sanitized = ''.join(
        chunk if index % 2 else _sanitize_markup(chunk)
        for index, chunk in enumerate(chunks)
    )

    network_links = find_network_links(sanitized)
    if network_links:
        label = source_name or 'document'
        if network_link_policy == 'reject':
            raise NetworkLinkRejected(
                f"{len(network_links)} NetworkLink element(s)",
                source_name=source_name or None
            )
        logger.warning(
            f"  ⚠ {label} contains {len(network_links)} NetworkLink element(s); "
            f"linked documents are not loaded"
        )

    return sanitized.strip()
