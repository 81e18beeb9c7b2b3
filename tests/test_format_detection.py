"""Tests for filename-based format detection."""

import pytest

from kml_input.errors import UnsupportedFormat
from kml_input.format_detection import (
    DetectedFormat, clean_filename, detect_format, require_supported_format
)


class TestDetectFormat:
    def test_plain_document(self):
        assert detect_format('parcels.kml') is DetectedFormat.PLAIN_DOCUMENT

    def test_archive(self):
        assert detect_format('BOKA.kmz') is DetectedFormat.ARCHIVE

    def test_case_insensitive(self):
        assert detect_format('Sites.KML') is DetectedFormat.PLAIN_DOCUMENT
        assert detect_format('SITES.KmZ') is DetectedFormat.ARCHIVE

    def test_unknown_suffix(self):
        assert detect_format('parcels.geojson') is DetectedFormat.UNSUPPORTED
        assert detect_format('kml') is DetectedFormat.UNSUPPORTED

    @pytest.mark.parametrize('name', ['x.kmz', 'x.kml', 'x.txt'])
    def test_query_fragment_ignored(self, name):
        assert detect_format(f'{name}?v=1') is detect_format(name)
        assert detect_format(f'{name}?raw=true&x=.kml') is detect_format(name)

    def test_clean_filename(self):
        assert clean_filename('OVALAR%20(4).KMZ?raw=true') == 'ovalar%20(4).kmz'


class TestRequireSupportedFormat:
    def test_supported_passes_through(self):
        assert require_supported_format('a.kmz') is DetectedFormat.ARCHIVE

    def test_unsupported_raises(self):
        with pytest.raises(UnsupportedFormat) as excinfo:
            require_supported_format('notes.pdf')
        assert '.kml or .kmz' in excinfo.value.user_message
        assert isinstance(excinfo.value, ValueError)
