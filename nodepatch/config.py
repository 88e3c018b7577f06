"""Configuration paths and engine defaults for nodepatch."""

from __future__ import annotations

from .config_manager import CONFIG_FILE, load_config, load_engine_config  # noqa: F401

# Files the indexer knows how to read for markup trees
MARKUP_EXTENSIONS = {".tsx", ".jsx", ".js"}

SKIP_DIRS = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "build", "dist", ".next", ".turbo", "coverage", ".cache",
    "temp-build", "temp-builds",
}

_toml_config = load_config()
_engine_config = load_engine_config()

# LLM provider settings, loaded from ~/.nodepatch/config.toml (set via `nodepatch set-llm`)
LLM_PROVIDER = _toml_config.get("provider", "ollama")
LLM_API_KEY = _toml_config.get("api_key", "")
LLM_MODEL = _toml_config.get("model", "qwen2.5-coder:7b")
LLM_ENDPOINT = _toml_config.get("endpoint", "http://127.0.0.1:11434/api/generate")

# Engine settings
RELEVANCE_THRESHOLD = int(_engine_config.get("threshold", 70))
MAX_PREVIEW_NODES = int(_engine_config.get("max_preview_nodes", 20))
PREVIEW_TEXT_CHARS = int(_engine_config.get("preview_text_chars", 50))
CONTEXT_LINES = int(_engine_config.get("context_lines", 3))
MAX_WORKERS = int(_engine_config.get("workers", 1))
ORACLE_CONCURRENCY = int(_engine_config.get("oracle_concurrency", 1))
