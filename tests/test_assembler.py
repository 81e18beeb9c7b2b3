"""Tests for merging per-document features and the empty-result policy."""

import pytest

from core.models import make_feature
from kml_input.assembler import assemble_collection
from kml_input.errors import NoDrawableContent


def point(lon, lat, name):
    return make_feature({'type': 'Point', 'coordinates': [lon, lat]}, {'name': name})


class TestAssembleCollection:
    def test_concatenates_in_listing_order(self):
        collection, metadata = assemble_collection([
            ('b.kml', [point(0, 0, 'b1'), point(1, 1, 'b2')]),
            ('a.kml', [point(2, 2, 'a1')]),
        ], source_name='layers.kmz')

        assert collection['type'] == 'FeatureCollection'
        assert [f['properties']['name'] for f in collection['features']] == ['b1', 'b2', 'a1']
        assert metadata['documents'] == [
            {'document': 'b.kml', 'feature_count': 2},
            {'document': 'a.kml', 'feature_count': 1},
        ]
        assert metadata['geometry_types'] == {'Point': 3}
        assert metadata['empty'] is False

    def test_null_and_degenerate_geometry_dropped(self):
        flat_line = make_feature({'type': 'LineString', 'coordinates': [[0, 0], [0, 0]]})
        collection, metadata = assemble_collection([
            ('doc.kml', [make_feature(None), flat_line, point(5, 5, 'ok')]),
        ])
        assert [f['properties'].get('name') for f in collection['features']] == ['ok']
        assert metadata['dropped_features'] == 2

    def test_empty_result_raises(self):
        with pytest.raises(NoDrawableContent) as excinfo:
            assemble_collection([('doc.kml', [])], source_name='empty.kml')
        assert excinfo.value.source_name == 'empty.kml'
        assert 'no drawable map data' in excinfo.value.user_message

    def test_empty_result_allowed(self):
        collection, metadata = assemble_collection(
            [('doc.kml', [])], allow_empty=True,
            skipped=[{'document': 'bad.kml', 'error': 'StructuralParseFailure', 'message': 'x'}]
        )
        assert collection == {'type': 'FeatureCollection', 'features': []}
        assert metadata['empty'] is True
        assert metadata['skipped_documents'][0]['document'] == 'bad.kml'
