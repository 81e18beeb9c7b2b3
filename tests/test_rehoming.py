"""Tests for embedded image rehoming and the ResourceStore."""

from lxml import etree

from kml_input.archive import ArchiveEntry, EntryKind
from kml_input.converter import convert_tree, parse_document_tree
from kml_input.rehoming import ResourceStore, find_referenced_resources, rehome_resources
from kml_input.sanitizer import sanitize_document


def resource(name, data=b'img'):
    return ArchiveEntry(name, data, EntryKind.RESOURCE)


def parse(text):
    return parse_document_tree(sanitize_document(text))


def serialized(root):
    return etree.tostring(root, encoding='unicode')


ICON_KML = """\
<kml><Document>
  <Style id="a"><IconStyle><Icon><href>icons/pin.png</href></Icon></IconStyle></Style>
  <Style id="b"><IconStyle><Icon><href>pin.png</href></Icon></IconStyle></Style>
  <Placemark>
    <styleUrl>#a</styleUrl>
    <description><![CDATA[<img src="icons/pin.png"> see pin.png]]></description>
    <Point><coordinates>1,2</coordinates></Point>
  </Placemark>
  <Placemark>
    <styleUrl>#b</styleUrl>
    <Point><coordinates>3,4</coordinates></Point>
  </Placemark>
  <ScreenOverlay><Icon href="icons/logo.jpg"/></ScreenOverlay>
</Document></kml>
"""


class TestResourceStore:
    def test_materialize_resolve_revoke(self, tmp_path, png_bytes):
        with ResourceStore(base_dir=tmp_path) as store:
            handle = store.materialize(png_bytes)
            assert handle.startswith('file://')
            path = store.resolve(handle)
            assert path.read_bytes() == png_bytes
            assert len(store) == 1

            assert store.revoke(handle) is True
            assert store.resolve(handle) is None
            assert not path.exists()
            assert store.revoke(handle) is False

    def test_close_removes_directory(self, tmp_path):
        store = ResourceStore(base_dir=tmp_path)
        store.materialize(b'a')
        store.materialize(b'b')
        directory = store.directory
        store.close()
        assert len(store) == 0
        assert not directory.exists()


class TestRehomeResources:
    def test_full_path_and_bare_name_replaced(self, resource_store, png_bytes):
        root = parse(ICON_KML)
        resources = [resource('icons/pin.png', png_bytes), resource('icons/logo.jpg')]

        rehomed = rehome_resources(root, resources, resource_store)

        assert set(rehomed) == {'icons/pin.png', 'icons/logo.jpg'}
        text = serialized(root)
        for name in ('icons/pin.png', 'pin.png', 'icons/logo.jpg', 'logo.jpg'):
            assert name not in text
        assert resource_store.resolve(rehomed['icons/pin.png']).read_bytes() == png_bytes

    def test_icon_property_carries_handle(self, resource_store):
        root = parse(ICON_KML)
        rehomed = rehome_resources(root, [resource('icons/pin.png')], resource_store)
        features = convert_tree(root)
        handle = rehomed['icons/pin.png']
        assert features[0]['properties']['icon'] == handle
        assert features[1]['properties']['icon'] == handle
        assert handle in features[0]['properties']['description']

    def test_unreferenced_resources_not_materialized(self, resource_store):
        root = parse(ICON_KML)
        rehomed = rehome_resources(
            root, [resource('icons/pin.png'), resource('icons/unused.gif')], resource_store
        )
        assert list(rehomed) == ['icons/pin.png']
        assert len(resource_store) == 1

    def test_no_references(self, resource_store):
        root = parse('<kml><Placemark><name>x</name></Placemark></kml>')
        assert rehome_resources(root, [resource('pin.png')], resource_store) == {}
        assert len(resource_store) == 0

    def test_dangling_reference_left_alone(self, resource_store):
        root = parse('<kml><Style><IconStyle><Icon><href>missing.png</href></Icon></IconStyle></Style></kml>')
        rehome_resources(root, [resource('icons/pin.png')], resource_store)
        assert 'missing.png' in serialized(root)

    def test_entries_sharing_a_base_name(self, resource_store):
        root = parse(
            '<kml>'
            '<href>a/pin.png</href><href>b/pin.png</href><href>pin.png</href>'
            '</kml>'
        )
        rehomed = rehome_resources(
            root, [resource('a/pin.png', b'A'), resource('b/pin.png', b'B')], resource_store
        )
        hrefs = [e.text for e in root.iter('href')]
        assert hrefs == [rehomed['a/pin.png'], rehomed['b/pin.png'], rehomed['a/pin.png']]
        assert rehomed['a/pin.png'] != rehomed['b/pin.png']
        assert resource_store.resolve(hrefs[1]).read_bytes() == b'B'

    def test_special_characters_in_names(self, resource_store):
        name = 'icons/pin (1)+[x].png'
        root = parse(f'<kml><href>{name}</href><href>pin (1)+[x].png</href></kml>')
        rehomed = rehome_resources(root, [resource(name)], resource_store)
        assert [e.text for e in root.iter('href')] == [rehomed[name]] * 2

    def test_shared_cache_materializes_once(self, resource_store):
        entries = [resource('icons/pin.png')]
        cache = {}
        first = rehome_resources(parse('<kml><href>pin.png</href></kml>'), entries, resource_store, cache)
        second = rehome_resources(parse('<kml><href>icons/pin.png</href></kml>'), entries, resource_store, cache)
        assert first == second
        assert len(resource_store) == 1

    def test_find_referenced_resources(self):
        root = parse(ICON_KML)
        entries = [resource('icons/logo.jpg'), resource('other/none.bmp')]
        assert [e.name for e in find_referenced_resources(root, entries)] == ['icons/logo.jpg']
