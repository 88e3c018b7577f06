"""Tests for TOML configuration loading and saving."""

import toml

from nodepatch import config_manager


def test_missing_file_uses_defaults(temp_config):
    assert config_manager.load_config() == config_manager.DEFAULT_CONFIGS["ollama"]
    assert config_manager.load_engine_config() == config_manager.DEFAULT_ENGINE_CONFIG


def test_malformed_file_uses_defaults(temp_config):
    temp_config.parent.mkdir(parents=True)
    temp_config.write_text("[llm\nprovider = ")

    assert config_manager.load_full_config() == {}
    assert config_manager.load_config()["provider"] == "ollama"


def test_engine_section_overrides_known_keys(temp_config):
    temp_config.parent.mkdir(parents=True)
    temp_config.write_text("[engine]\nthreshold = 80\nworkers = 4\nbogus = 1\ncontext_lines = \"many\"\n")

    engine = config_manager.load_engine_config()

    assert engine["threshold"] == 80
    assert engine["workers"] == 4
    assert engine["context_lines"] == 3
    assert "bogus" not in engine


def test_save_config_preserves_other_sections(temp_config):
    temp_config.parent.mkdir(parents=True)
    temp_config.write_text("[engine]\nthreshold = 75\n")

    assert config_manager.save_config("groq", "llama-3.3-70b-versatile", api_key="gsk_test")

    saved = toml.load(temp_config)
    assert saved["llm"] == {"provider": "groq", "model": "llama-3.3-70b-versatile", "api_key": "gsk_test"}
    assert saved["engine"]["threshold"] == 75
    assert config_manager.load_config()["provider"] == "groq"


def test_save_config_creates_home(temp_config):
    assert config_manager.save_config("ollama", "qwen2.5-coder:7b")
    assert temp_config.exists()
