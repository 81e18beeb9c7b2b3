"""Tests for GeoJSON and metadata output."""

import json

from core.models import LayerRelation, MapLayer, RelationMode, RelationReport
from core.output_generator import generate_output, safe_layer_filename


class TestSafeLayerFilename:
    def test_sanitized(self):
        assert safe_layer_filename('OVALAR (4).kmz') == 'ovalar_4_.kmz'
        assert safe_layer_filename('a/b\\c') == 'a_b_c'
        assert safe_layer_filename('   ') == 'layer'


class TestGenerateOutput:
    def test_writes_layers_and_metadata(self, tmp_path, square_layer):
        first = square_layer('parcels', 0, 0, 1, 1)
        second = square_layer('parcels', 5, 5, 6, 6)
        second.id = 'parcels-2'
        report = RelationReport(RelationMode.INTERSECTION, [LayerRelation('parcels', 'Parcels', 1.5)])

        output_path = generate_output(
            [first, second],
            relation_reports={'parcels-2': [report]},
            layer_metadata={'parcels': {'format': 'kml'}},
            output_name='run',
            output_dir=tmp_path,
        )

        assert output_path == tmp_path / 'run'
        written = sorted(p.name for p in (output_path / 'data').iterdir())
        assert written == ['parcels.geojson', 'parcels_2.geojson']

        with open(output_path / 'data' / 'parcels.geojson', encoding='utf-8') as f:
            assert json.load(f) == first.data

        with open(output_path / 'metadata.json', encoding='utf-8') as f:
            metadata = json.load(f)
        assert metadata['layer_count'] == 2
        assert metadata['total_features'] == 2
        assert metadata['layers'][0]['parse'] == {'format': 'kml'}
        assert metadata['layers'][1]['relations'] == [{
            'mode': 'intersection',
            'layers': [{'id': 'parcels', 'name': 'Parcels', 'overlap_area_sq_km': 1.5}],
        }]

    def test_default_name_is_timestamped(self, tmp_path):
        layer = MapLayer(id='a', name='A', data={'type': 'FeatureCollection', 'features': []},
                         color='#000000')
        output_path = generate_output([layer], output_dir=tmp_path)
        assert output_path.name.startswith('geovisor_')
        assert (output_path / 'data' / 'a.geojson').exists()
