"""Tests for configuration loading and ingest setting defaults."""

import json

import pytest

from config import config_loader
from config.config_loader import (
    CONFIG_DIR, CONFIG_FILENAME, DEFAULT_COLOR_PALETTE, load_config, load_ingest_settings
)


class TestLoadConfig:
    def test_bundled_config_is_valid(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_loader, 'OUTPUT_DIR', tmp_path / 'outputs')
        config = load_config()
        assert 'settings' in config
        assert isinstance(config['remote_maps'], list)
        assert (tmp_path / 'outputs').is_dir()

    def test_missing_settings_key(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_loader, 'OUTPUT_DIR', tmp_path / 'outputs')
        path = tmp_path / 'bad.json'
        path.write_text(json.dumps({'remote_maps': []}))
        with pytest.raises(KeyError):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / 'nope.json')

    def test_remote_maps_default(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_loader, 'OUTPUT_DIR', tmp_path / 'outputs')
        path = tmp_path / 'minimal.json'
        path.write_text(json.dumps({'settings': {}}))
        assert load_config(path)['remote_maps'] == []


class TestIngestSettings:
    def test_defaults(self):
        settings = load_ingest_settings({'settings': {}})
        assert settings['default_document_name'] == 'doc.kml'
        assert settings['fallback_encoding'] == 'iso-8859-9'
        assert settings['network_link_policy'] == 'warn'
        assert settings['allow_empty'] is False
        assert settings['batch_allow_empty'] is True
        assert settings['color_palette'] == DEFAULT_COLOR_PALETTE
        assert '.png' in settings['image_extensions']

    def test_overrides(self):
        settings = load_ingest_settings({'settings': {'fallback_encoding': 'cp1254',
                                                      'max_concurrent_downloads': 8}})
        assert settings['fallback_encoding'] == 'cp1254'
        assert settings['max_concurrent_downloads'] == 8
        assert settings['fetch_timeout_seconds'] == 30

    def test_invalid_network_link_policy(self):
        with pytest.raises(ValueError, match='network_link_policy'):
            load_ingest_settings({'settings': {'network_link_policy': 'follow'}})

    def test_bundled_file_matches_defaults(self):
        with open(CONFIG_DIR / CONFIG_FILENAME, encoding='utf-8') as f:
            bundled = json.load(f)
        assert load_ingest_settings(bundled) == load_ingest_settings({'settings': {}})
