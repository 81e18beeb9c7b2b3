"""Tests for KMZ archive extraction and candidate selection."""

import pytest

from kml_input.archive import (
    EntryKind, classify_entry, index_image_resources,
    is_ignorable_entry, open_archive, select_candidate_documents
)
from kml_input.errors import CorruptArchive, NoReadableDocument


class TestEntryClassification:
    @pytest.mark.parametrize('name', [
        '__MACOSX/._doc.kml',
        '__MACOSX/icons/pin.png',
        'files/__MACOSX/doc.kml',
        '._doc.kml',
        'icons/._pin.png',
        'icons/',
    ])
    def test_metadata_artifacts_are_ignorable(self, name):
        assert is_ignorable_entry(name)
        assert classify_entry(name) is EntryKind.IGNORABLE

    def test_kinds(self):
        assert classify_entry('doc.kml') is EntryKind.CANDIDATE_DOCUMENT
        assert classify_entry('layers/Roads.KML') is EntryKind.CANDIDATE_DOCUMENT
        assert classify_entry('icons/pin.png') is EntryKind.RESOURCE
        assert classify_entry('photo.JPEG') is EntryKind.RESOURCE
        assert classify_entry('readme.txt') is EntryKind.OTHER

    def test_custom_image_extensions(self):
        assert classify_entry('icons/pin.svg', ['.svg']) is EntryKind.RESOURCE
        assert classify_entry('icons/pin.png', ['.svg']) is EntryKind.OTHER


class TestOpenArchive:
    def test_scenario_with_metadata_entry(self, build_kmz, png_bytes):
        data = build_kmz([
            ('doc.kml', '<kml/>'),
            ('icons/pin.png', png_bytes),
            ('__MACOSX/._doc.kml', b'\x00\x05\x16\x07'),
        ])
        archive = open_archive(data)

        strategy, selected = select_candidate_documents(archive.entries)
        assert strategy == 'default-document'
        assert [e.name for e in selected] == ['doc.kml']

        resources = index_image_resources(archive.entries)
        assert [e.name for e in resources] == ['icons/pin.png']
        assert resources[0].data == png_bytes

        ignored = [e for e in archive.entries if e.kind is EntryKind.IGNORABLE]
        assert [e.name for e in ignored] == ['__MACOSX/._doc.kml']
        assert ignored[0].data == b''

    def test_listing_order_preserved(self, build_kmz):
        archive = open_archive(build_kmz([('b.kml', 'b'), ('a.kml', 'a'), ('c.txt', 'c')]))
        assert [e.name for e in archive.entries] == ['b.kml', 'a.kml', 'c.txt']
        assert archive.entries[1].data == b'a'

    def test_corrupt_container(self):
        with pytest.raises(CorruptArchive):
            open_archive(b'this is not a zip file')

    def test_truncated_container(self, build_kmz):
        data = build_kmz([('doc.kml', '<kml>' + 'x' * 5000 + '</kml>')])
        with pytest.raises(CorruptArchive):
            open_archive(data[:len(data) // 2])

    def test_empty_bytes(self):
        with pytest.raises(CorruptArchive) as excinfo:
            open_archive(b'')
        assert 'corrupted' in excinfo.value.user_message


class TestSelectCandidateDocuments:
    def test_default_document_case_insensitive_and_nested(self, build_kmz):
        archive = open_archive(build_kmz([
            ('layers/a.kml', 'a'),
            ('files/DOC.KML', 'doc'),
        ]))
        strategy, selected = select_candidate_documents(archive.entries)
        assert strategy == 'default-document'
        assert [e.name for e in selected] == ['files/DOC.KML']

    def test_first_default_document_wins(self, build_kmz):
        archive = open_archive(build_kmz([('one/doc.kml', '1'), ('two/doc.kml', '2')]))
        _, selected = select_candidate_documents(archive.entries)
        assert [e.name for e in selected] == ['one/doc.kml']

    def test_all_documents_when_no_default(self, build_kmz, png_bytes):
        archive = open_archive(build_kmz([
            ('roads.kml', 'r'),
            ('__MACOSX/._roads.kml', 'x'),
            ('icons/pin.png', png_bytes),
            ('parcels.kml', 'p'),
        ]))
        strategy, selected = select_candidate_documents(archive.entries)
        assert strategy == 'all-documents'
        assert [e.name for e in selected] == ['roads.kml', 'parcels.kml']

    def test_custom_default_name(self, build_kmz):
        archive = open_archive(build_kmz([('a.kml', 'a'), ('main.kml', 'm')]))
        _, selected = select_candidate_documents(archive.entries, 'main.kml')
        assert [e.name for e in selected] == ['main.kml']

    def test_no_documents(self, build_kmz, png_bytes):
        archive = open_archive(build_kmz([
            ('icons/pin.png', png_bytes),
            ('__MACOSX/._doc.kml', 'x'),
        ]))
        with pytest.raises(NoReadableDocument):
            select_candidate_documents(archive.entries)
