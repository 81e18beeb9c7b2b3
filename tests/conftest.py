"""Pytest configuration: project root on sys.path plus shared builders."""

import io
import pathlib
import sys
import zipfile

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config.config_loader import load_ingest_settings  # noqa: E402
from core.models import MapLayer, make_feature, make_feature_collection  # noqa: E402
from kml_input.rehoming import ResourceStore  # noqa: E402

PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 16

KML_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<kml xmlns="http://www.opengis.net/kml/2.2" '
    'xmlns:gx="http://www.google.com/kml/ext/2.2">\n'
    '<Document>\n'
)
KML_FOOTER = '</Document>\n</kml>\n'


def point_placemark(name, lon, lat, extra=''):
    return (
        f'<Placemark><name>{name}</name>{extra}'
        f'<Point><coordinates>{lon},{lat},0</coordinates></Point></Placemark>'
    )


def square_feature(minx, miny, maxx, maxy, name='square'):
    ring = [[minx, miny], [maxx, miny], [maxx, maxy], [minx, maxy], [minx, miny]]
    return make_feature({'type': 'Polygon', 'coordinates': [ring]}, {'name': name})


@pytest.fixture
def kml_text():
    """Wrap placemark markup in a complete, namespaced KML document."""
    def _kml(*placemarks):
        return KML_HEADER + '\n'.join(placemarks) + '\n' + KML_FOOTER
    return _kml


@pytest.fixture
def png_bytes():
    return PNG_BYTES


@pytest.fixture
def placemark():
    return point_placemark


@pytest.fixture
def build_kmz():
    """Build KMZ bytes from (entry name, str or bytes) pairs, in listing order."""
    def _build(entries):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zip_ref:
            for name, data in entries:
                zip_ref.writestr(name, data)
        return buffer.getvalue()
    return _build


@pytest.fixture
def settings():
    return load_ingest_settings({'settings': {}})


@pytest.fixture
def resource_store(tmp_path):
    store = ResourceStore(base_dir=tmp_path)
    yield store
    store.close()


@pytest.fixture
def square_collection():
    def _collection(minx, miny, maxx, maxy, name='square'):
        return make_feature_collection([square_feature(minx, miny, maxx, maxy, name)])
    return _collection


@pytest.fixture
def square_layer(square_collection):
    def _layer(layer_id, minx, miny, maxx, maxy, visible=True):
        return MapLayer(
            id=layer_id,
            name=layer_id.title(),
            data=square_collection(minx, miny, maxx, maxy, layer_id),
            color='#3b82f6',
            visible=visible,
        )
    return _layer
