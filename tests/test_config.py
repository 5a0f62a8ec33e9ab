"""
tests/test_config.py
Config persistence, analysis settings and backend selection.
"""

import json

import pytest

from chatsentry.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    AnalysisSettings,
    build_llm,
    ensure_config,
    load_config,
    save_config,
)
from chatsentry.llm.ollama_adapter import OllamaAdapter
from chatsentry.llm.openai_adapter import OpenAIAdapter


class TestConfigFile:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_saved_values_merge_over_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({'provider': 'openai'}))
        config = load_config(tmp_path)
        assert config['provider'] == 'openai'
        assert config['model'] == DEFAULT_CONFIG['model']

    def test_corrupt_file_gives_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('{not json')
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_non_object_gives_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[1, 2]')
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_save_drops_unknown_keys(self, tmp_path):
        save_config({**DEFAULT_CONFIG, 'api_key': 'sk-secret'}, tmp_path)
        stored = json.loads((tmp_path / CONFIG_FILENAME).read_text())
        assert 'api_key' not in stored
        assert set(stored) == set(DEFAULT_CONFIG)

    def test_ensure_writes_defaults_once(self, tmp_path):
        ensure_config(tmp_path)
        path = tmp_path / CONFIG_FILENAME
        assert path.exists()
        save_config({**DEFAULT_CONFIG, 'max_workers': 2}, tmp_path)
        assert ensure_config(tmp_path)['max_workers'] == 2


class TestAnalysisSettings:
    def test_defaults_match_config(self):
        assert AnalysisSettings.from_config({}) == AnalysisSettings()

    def test_values_coerced(self):
        settings = AnalysisSettings.from_config({
            'self_tokens': ['Me', 'Sam'],
            'stalking_call_threshold': '30',
            'max_workers': 0,
        })
        assert settings.self_tokens == ('me', 'sam')
        assert settings.stalking_call_threshold == 30
        assert settings.max_workers == 1

    def test_malformed_value_raises(self):
        with pytest.raises(ValueError):
            AnalysisSettings.from_config({'stalking_risk_floor': 'high'})


class TestBuildLlm:
    def test_default_is_ollama(self):
        llm = build_llm({})
        assert isinstance(llm, OllamaAdapter)
        assert llm.model_name == DEFAULT_CONFIG['model']

    def test_openai(self, monkeypatch):
        monkeypatch.delenv('OPENAI_API_KEY', raising=False)
        llm = build_llm({'provider': 'openai'})
        assert isinstance(llm, OpenAIAdapter)
        assert llm.is_available() is False

    @pytest.mark.parametrize('config', [
        {'provider': 'none'},
        {'keyword_only_default': True},
    ])
    def test_keyword_only(self, config):
        assert build_llm(config) is None

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            build_llm({'provider': 'carrier-pigeon'})
