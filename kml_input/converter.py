"""
KML to GeoJSON Conversion Module

Parses sanitized (namespace-free) KML text with lxml and maps every Placemark
to at most one GeoJSON Feature.

Geometry mapping:
- Point -> Point
- LineString -> LineString
- LinearRing -> Polygon (single ring)
- Polygon (outerBoundaryIs + innerBoundaryIs) -> Polygon
- MultiGeometry -> Multi* when homogeneous, GeometryCollection when mixed,
  the child geometry itself when it holds only one
- Track / MultiTrack (gx extension, prefix stripped) -> LineString / MultiLineString

Properties: name, description, styleUrl, visibility, timestamp, timespan,
ExtendedData fields, and style hints (stroke, stroke-width, stroke-opacity,
fill, fill-opacity, icon, icon-color, icon-opacity, icon-scale) resolved from
shared Style/StyleMap definitions and inline Style elements.

Conversion is pure: the same tree always yields the same features.
NetworkLink subtrees are ignored and never followed.
"""

import re
from typing import Dict, List, Optional

from lxml import etree

from core.models import FeatureProperties, make_feature
from kml_input.errors import StructuralParseFailure
from utils.logger import get_logger

logger = get_logger(__name__)

GEOMETRY_TAGS = ('Point', 'LineString', 'LinearRing', 'Polygon',
                 'MultiGeometry', 'Track', 'MultiTrack')

_COMMA_SPACING = re.compile(r'\s*,\s*')

# Minimum positions for a usable geometry
MIN_LINE_POSITIONS = 2
MIN_RING_POSITIONS = 4


def _xml_parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        huge_tree=True,
        remove_comments=True,
        remove_pis=True,
    )


def parse_document_tree(text: str, source_name: str = '') -> etree._Element:
    """
    Parse sanitized KML text into an element tree.

    Args:
        text: Sanitized document text (no XML declaration, no namespaces)
        source_name: Document name for error messages

    Returns:
        Root element

    Raises:
        StructuralParseFailure: If the text is not well-formed XML
    """
    try:
        return etree.fromstring(text.encode('utf-8'), _xml_parser())
    except (etree.XMLSyntaxError, ValueError) as e:
        raise StructuralParseFailure(str(e), source_name=source_name or None) from e


# ---------------------------------------------------------------------------
# Coordinates
# ---------------------------------------------------------------------------

def parse_coordinates_text(text: Optional[str]) -> List[List[float]]:
    """
    Parse a KML coordinates string: 'lon,lat[,alt] lon,lat[,alt] ...'

    Tuples with fewer than two numeric components are skipped.
    Positions keep the elevation only when it was authored.

    Example:
        >>> parse_coordinates_text('30.0,40.0,0 31, 41')
        [[30.0, 40.0, 0.0], [31.0, 41.0]]
    """
    if not text:
        return []

    positions = []
    for token in _COMMA_SPACING.sub(',', text.strip()).split():
        parts = [p for p in token.split(',') if p != '']
        if len(parts) < 2:
            continue
        try:
            positions.append([float(p) for p in parts[:3]])
        except ValueError:
            continue
    return positions


def _coordinates_of(element: etree._Element) -> List[List[float]]:
    coord_elem = element.find('coordinates')
    if coord_elem is None:
        coord_elem = element.find('.//coordinates')
    if coord_elem is None:
        return []
    return parse_coordinates_text(coord_elem.text)


def _close_ring(ring: List[List[float]]) -> List[List[float]]:
    if len(ring) >= 3 and ring[0] != ring[-1]:
        return ring + [list(ring[0])]
    return ring


def _ring_of(container: Optional[etree._Element]) -> Optional[List[List[float]]]:
    if container is None:
        return None
    ring = _close_ring(_coordinates_of(container))
    if len(ring) < MIN_RING_POSITIONS:
        return None
    return ring


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def _point(element: etree._Element) -> Optional[Dict]:
    positions = _coordinates_of(element)
    if not positions:
        return None
    return {'type': 'Point', 'coordinates': positions[0]}


def _line_string(element: etree._Element) -> Optional[Dict]:
    positions = _coordinates_of(element)
    if len(positions) < MIN_LINE_POSITIONS:
        return None
    return {'type': 'LineString', 'coordinates': positions}


def _linear_ring(element: etree._Element) -> Optional[Dict]:
    ring = _ring_of(element)
    if ring is None:
        return None
    return {'type': 'Polygon', 'coordinates': [ring]}


def _polygon(element: etree._Element) -> Optional[Dict]:
    outer_boundary = element.find('outerBoundaryIs')
    outer = _ring_of(outer_boundary.find('LinearRing') if outer_boundary is not None else None)
    if outer is None:
        return None

    rings = [outer]
    for inner_boundary in element.findall('innerBoundaryIs'):
        for linear_ring in inner_boundary.findall('LinearRing'):
            inner = _ring_of(linear_ring)
            if inner is not None:
                rings.append(inner)
    return {'type': 'Polygon', 'coordinates': rings}


def _track(element: etree._Element) -> Optional[Dict]:
    positions = []
    for coord in element.findall('coord'):
        values = (coord.text or '').split()
        try:
            position = [float(v) for v in values[:3]]
        except ValueError:
            continue
        if len(position) >= 2:
            positions.append(position)
    if len(positions) < MIN_LINE_POSITIONS:
        return None
    return {'type': 'LineString', 'coordinates': positions}


def _multi_track(element: etree._Element) -> Optional[Dict]:
    lines = [g['coordinates'] for g in (_track(t) for t in element.findall('Track')) if g]
    if not lines:
        return None
    if len(lines) == 1:
        return {'type': 'LineString', 'coordinates': lines[0]}
    return {'type': 'MultiLineString', 'coordinates': lines}


_MULTI_TYPES = {
    'Point': 'MultiPoint',
    'LineString': 'MultiLineString',
    'Polygon': 'MultiPolygon',
}
_SINGLE_TYPES = {multi: single for single, multi in _MULTI_TYPES.items()}


def _flatten(geometries: List[Dict]) -> List[Dict]:
    """Split Multi* members into their single parts."""
    flat = []
    for geometry in geometries:
        single = _SINGLE_TYPES.get(geometry['type'])
        if single:
            flat.extend({'type': single, 'coordinates': c} for c in geometry['coordinates'])
        elif geometry['type'] == 'GeometryCollection':
            flat.extend(_flatten(geometry['geometries']))
        else:
            flat.append(geometry)
    return flat


def _multi_geometry(element: etree._Element) -> Optional[Dict]:
    parts = _flatten([g for g in (parse_geometry(child) for child in _geometry_children(element)) if g])
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]

    types = {part['type'] for part in parts}
    if len(types) == 1:
        single = types.pop()
        return {'type': _MULTI_TYPES[single], 'coordinates': [p['coordinates'] for p in parts]}
    return {'type': 'GeometryCollection', 'geometries': parts}


_GEOMETRY_PARSERS = {
    'Point': _point,
    'LineString': _line_string,
    'LinearRing': _linear_ring,
    'Polygon': _polygon,
    'MultiGeometry': _multi_geometry,
    'Track': _track,
    'MultiTrack': _multi_track,
}


def _geometry_children(element: etree._Element) -> List[etree._Element]:
    return [child for child in element if child.tag in GEOMETRY_TAGS]


def parse_geometry(element: etree._Element) -> Optional[Dict]:
    """Convert one KML geometry element to a GeoJSON geometry, or None if unusable."""
    parser = _GEOMETRY_PARSERS.get(element.tag)
    if parser is None:
        return None
    return parser(element)


def placemark_geometry(placemark: etree._Element) -> Optional[Dict]:
    geometries = [g for g in (parse_geometry(c) for c in _geometry_children(placemark)) if g]
    if not geometries:
        return None
    if len(geometries) == 1:
        return geometries[0]
    # Several geometry children on one Placemark behave like a MultiGeometry
    parts = _flatten(geometries)
    types = {part['type'] for part in parts}
    if len(types) == 1:
        return {'type': _MULTI_TYPES[types.pop()], 'coordinates': [p['coordinates'] for p in parts]}
    return {'type': 'GeometryCollection', 'geometries': parts}


# ---------------------------------------------------------------------------
# Styles
# ---------------------------------------------------------------------------

def parse_kml_color(value: Optional[str]):
    """
    Convert a KML 'aabbggrr' color to ('#rrggbb', opacity).

    Returns (None, None) for malformed values.

    Example:
        >>> parse_kml_color('7f0000ff')
        ('#ff0000', 0.498)
    """
    if not value:
        return None, None
    value = value.strip().lstrip('#')
    if len(value) == 6:
        value = 'ff' + value
    if len(value) != 8 or not re.fullmatch(r'[0-9a-fA-F]{8}', value):
        return None, None
    alpha, blue, green, red = value[0:2], value[2:4], value[4:6], value[6:8]
    return f'#{red}{green}{blue}'.lower(), round(int(alpha, 16) / 255, 3)


def _text(element: Optional[etree._Element], path: str) -> Optional[str]:
    if element is None:
        return None
    found = element.find(path)
    if found is None or found.text is None:
        return None
    text = found.text.strip()
    return text or None


def _float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def style_properties(style: Optional[etree._Element]) -> FeatureProperties:
    """Translate a KML Style element into GeoJSON style hint properties."""
    if style is None:
        return {}

    props = {}

    line_style = style.find('LineStyle')
    if line_style is not None:
        color, opacity = parse_kml_color(_text(line_style, 'color'))
        if color:
            props['stroke'] = color
            props['stroke-opacity'] = opacity
        width = _float(_text(line_style, 'width'))
        if width is not None:
            props['stroke-width'] = width

    poly_style = style.find('PolyStyle')
    if poly_style is not None:
        color, opacity = parse_kml_color(_text(poly_style, 'color'))
        if color:
            props['fill'] = color
            props['fill-opacity'] = opacity
        if _text(poly_style, 'fill') == '0':
            props['fill-opacity'] = 0
        if _text(poly_style, 'outline') == '0':
            props['stroke-opacity'] = 0

    icon_style = style.find('IconStyle')
    if icon_style is not None:
        href = _text(icon_style, 'Icon/href')
        if href:
            props['icon'] = href
        color, opacity = parse_kml_color(_text(icon_style, 'color'))
        if color:
            props['icon-color'] = color
            props['icon-opacity'] = opacity
        scale = _float(_text(icon_style, 'scale'))
        if scale is not None:
            props['icon-scale'] = scale

    return props


def _style_id(style_url: Optional[str]) -> Optional[str]:
    if not style_url or '#' not in style_url:
        return style_url
    return style_url.rsplit('#', 1)[-1]


def collect_shared_styles(root: etree._Element) -> Dict[str, FeatureProperties]:
    """
    Build a lookup of shared styles keyed by id.

    StyleMap entries resolve to their 'normal' pair, either through a
    styleUrl or an inline Style inside the Pair.
    """
    styles = {}
    for style in root.iter('Style'):
        style_id = style.get('id')
        if style_id:
            styles[style_id] = style_properties(style)

    for style_map in root.iter('StyleMap'):
        map_id = style_map.get('id')
        if not map_id:
            continue
        for pair in style_map.findall('Pair'):
            if _text(pair, 'key') != 'normal':
                continue
            inline = pair.find('Style')
            if inline is not None:
                styles[map_id] = style_properties(inline)
            else:
                styles[map_id] = dict(styles.get(_style_id(_text(pair, 'styleUrl')), {}))
            break

    return styles


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

def _extended_data(placemark: etree._Element) -> Dict:
    data = {}
    extended = placemark.find('ExtendedData')
    if extended is None:
        return data

    for item in extended.findall('Data'):
        name = item.get('name')
        if name:
            data[name] = _text(item, 'value') or ''
    for schema_data in extended.findall('SchemaData'):
        for simple in schema_data.findall('SimpleData'):
            name = simple.get('name')
            if name:
                data[name] = (simple.text or '').strip()
    return data


def placemark_properties(placemark: etree._Element,
                         shared_styles: Dict[str, FeatureProperties]) -> FeatureProperties:
    props = {}

    name = _text(placemark, 'name')
    if name:
        props['name'] = name

    description = placemark.find('description')
    if description is not None and description.text and description.text.strip():
        props['description'] = description.text.strip()

    style_url = _text(placemark, 'styleUrl')
    if style_url:
        props['styleUrl'] = style_url
        props.update(shared_styles.get(_style_id(style_url), {}))

    props.update(style_properties(placemark.find('Style')))

    visibility = _text(placemark, 'visibility')
    if visibility is not None:
        props['visibility'] = visibility not in ('0', 'false')

    timestamp = _text(placemark, 'TimeStamp/when')
    if timestamp:
        props['timestamp'] = timestamp
    time_span = placemark.find('TimeSpan')
    if time_span is not None:
        props['timespan'] = {
            'begin': _text(time_span, 'begin'),
            'end': _text(time_span, 'end'),
        }

    for key, value in _extended_data(placemark).items():
        props.setdefault(key, value)

    return props


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

def _inside_network_link(element: etree._Element) -> bool:
    return any(ancestor.tag == 'NetworkLink' for ancestor in element.iterancestors())


def convert_tree(root: etree._Element) -> List[Dict]:
    """
    Convert a parsed KML tree into GeoJSON features.

    Args:
        root: Root element returned by parse_document_tree()

    Returns:
        Features in document order. Placemarks without usable geometry are skipped.
    """
    shared_styles = collect_shared_styles(root)

    features = []
    skipped = 0
    for placemark in root.iter('Placemark'):
        if _inside_network_link(placemark):
            continue
        geometry = placemark_geometry(placemark)
        if geometry is None:
            skipped += 1
            continue
        feature = make_feature(geometry, placemark_properties(placemark, shared_styles))
        placemark_id = placemark.get('id')
        if placemark_id:
            feature['id'] = placemark_id
        features.append(feature)

    if skipped:
        logger.debug(f"  - Skipped {skipped} placemark(s) without usable geometry")

    return features


def convert_document(text: str, source_name: str = '') -> List[Dict]:
    """Parse sanitized KML text and convert it to GeoJSON features."""
    return convert_tree(parse_document_tree(text, source_name))
