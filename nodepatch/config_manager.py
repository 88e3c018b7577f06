"""Configuration manager for nodepatch using TOML files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict

import toml

BASE_DIR = Path(os.environ.get("NODEPATCH_HOME", str(Path.home() / ".nodepatch"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

logger = logging.getLogger(__name__)


# Default configurations for each provider
DEFAULT_CONFIGS = {
    "ollama": {
        "provider": "ollama",
        "model": "qwen2.5-coder:7b",
        "endpoint": "http://127.0.0.1:11434/api/generate",
    },
    "groq": {
        "provider": "groq",
        "model": "llama-3.3-70b-versatile",
        "api_key": "",
    },
    "openai": {
        "provider": "openai",
        "model": "gpt-4o",
        "api_key": "",
    },
    "anthropic": {
        "provider": "anthropic",
        "model": "claude-3-5-sonnet-20241022",
        "api_key": "",
    },
    "gemini": {
        "provider": "gemini",
        "model": "gemini-2.0-flash",
        "api_key": "",
    },
    "openrouter": {
        "provider": "openrouter",
        "model": "google/gemini-2.0-flash-exp:free",
        "api_key": "",
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
    },
}

DEFAULT_ENGINE_CONFIG: Dict[str, Any] = {
    "threshold": 70,
    "max_preview_nodes": 20,
    "preview_text_chars": 50,
    "context_lines": 3,
    "workers": 1,
    "oracle_concurrency": 1,
}


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", CONFIG_FILE, exc)
        return {}


def load_config() -> Dict[str, Any]:
    """Load the ``[llm]`` section.

    Returns:
        Provider settings. Falls back to Ollama defaults if the file or
        section doesn't exist.
    """
    config = load_full_config()
    llm = config.get("llm")
    if not isinstance(llm, dict):
        return DEFAULT_CONFIGS["ollama"].copy()
    return llm


def load_engine_config() -> Dict[str, Any]:
    """Load the ``[engine]`` section merged over the engine defaults."""
    merged = DEFAULT_ENGINE_CONFIG.copy()
    section = load_full_config().get("engine")
    if isinstance(section, dict):
        for key, value in section.items():
            if key in merged and isinstance(value, int) and not isinstance(value, bool):
                merged[key] = value
            else:
                logger.warning("Ignoring engine setting %s=%r", key, value)
    return merged


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config file %s: %s", CONFIG_FILE, exc)
        return False


def save_config(provider: str, model: str, api_key: str = "", endpoint: str = "") -> bool:
    """Save LLM configuration to the TOML file.

    Preserves other sections (e.g. ``[engine]``) in the file.

    Args:
        provider: Provider name (ollama, groq, openai, anthropic, gemini, openrouter)
        model: Model name
        api_key: API key for cloud providers
        endpoint: Custom endpoint (for Ollama or OpenAI-compatible gateways)

    Returns:
        True if saved successfully, False otherwise
    """
    config = load_full_config()

    config["llm"] = {
        "provider": provider,
        "model": model,
    }
    if api_key:
        config["llm"]["api_key"] = api_key
    if endpoint:
        config["llm"]["endpoint"] = endpoint

    return _save_full_config(config)


def get_provider_config(provider: str) -> Dict[str, Any]:
    """Get default configuration for a specific provider."""
    return DEFAULT_CONFIGS.get(provider, DEFAULT_CONFIGS["ollama"]).copy()
