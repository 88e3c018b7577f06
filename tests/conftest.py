"""Pytest configuration and fixtures for nodepatch tests."""

import json
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from nodepatch.errors import OracleFailure
from nodepatch.models import MarkupNode, NodeSpan
from nodepatch.oracle import ContentOracle

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def relevance_answer(relevant: str = "YES", score: int = 90, targets: str = "node_1",
                     reason: str = "Matches the request") -> str:
    return f"RELEVANT: {relevant}\nSCORE: {score}\nREASON: {reason}\nTARGETS: {targets}\n"


def patch_answer(edits: dict) -> str:
    return "```json\n" + json.dumps(edits, indent=2) + "\n```"


class ScriptedOracle(ContentOracle):
    """Oracle that replays queued answers, or delegates to a handler.

    Queued items may be strings, exceptions (raised) or callables taking
    the prompt.
    """

    def __init__(self, responses=None, handler: Optional[Callable[[str], str]] = None):
        self.responses = list(responses or [])
        self.handler = handler
        self.prompts = []
        self._lock = threading.Lock()

    def generate(self, prompt: str, *, max_tokens: int = 1024) -> str:
        with self._lock:
            self.prompts.append(prompt)
            if self.handler is not None:
                item = self.handler
            elif self.responses:
                item = self.responses.pop(0)
            else:
                raise OracleFailure("no scripted response left")
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(prompt)
        return item


# Sign-in button on LoginPage.tsx (node_4, lines 11-13) made red
LOGIN_BUTTON_RED = (
    '      <button className="btn-primary bg-red-500" onClick={() => {}}>\n'
    "        Sign In\n"
    "      </button>"
)


def _scripted_llm_answer(prompt: str) -> str:
    if "GRAMMAR: relevance/v1" in prompt:
        if "FILE: LoginPage.tsx" in prompt:
            return relevance_answer(score=95, targets="node_4", reason="Contains the sign in button")
        return relevance_answer(relevant="NO", score=5, targets="", reason="No sign in controls")
    return patch_answer({"node_4": LOGIN_BUTTON_RED})


@pytest.fixture(autouse=True)
def _mock_local_llm(monkeypatch):
    """Automatically mock LocalLLM in all tests to avoid network connections.

    OllamaProvider.generate() tries to connect to localhost:11434, which
    makes CI hang. The mock answers both oracle grammars instantly.
    """

    class _MockLocalLLM:
        def __init__(self, **kwargs):
            self.provider_name = kwargs.get("provider", "mock")
            self.model = kwargs.get("model", "mock-model")
            self.api_key = kwargs.get("api_key")
            self.endpoint = kwargs.get("endpoint")

        def generate(self, prompt: str, max_tokens: int = 1024) -> Optional[str]:
            return _scripted_llm_answer(prompt)

    monkeypatch.setattr("nodepatch.cli.LocalLLM", _MockLocalLLM)
    monkeypatch.setattr("nodepatch.oracle.LocalLLM", _MockLocalLLM)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_app(temp_dir: Path) -> Path:
    """Writable copy of the sample React app."""
    root = temp_dir / "app"
    shutil.copytree(FIXTURES_DIR / "sample_app", root)
    return root


@pytest.fixture
def login_page_source() -> str:
    return (FIXTURES_DIR / "sample_app" / "LoginPage.tsx").read_text(encoding="utf-8")


@pytest.fixture
def temp_config(temp_dir: Path, monkeypatch) -> Path:
    """Point the TOML config at a temporary file."""
    config_file = temp_dir / "home" / "config.toml"
    monkeypatch.setattr("nodepatch.config_manager.BASE_DIR", config_file.parent)
    monkeypatch.setattr("nodepatch.config_manager.CONFIG_FILE", config_file)
    return config_file


@pytest.fixture
def make_node() -> Callable[..., MarkupNode]:
    """Factory for hand-built markup nodes."""

    def _make(node_id: str, start: int, end: Optional[int] = None, tag: str = "div",
              text: str = "", parent_id: Optional[str] = None, depth: int = 0,
              flags=frozenset()) -> MarkupNode:
        return MarkupNode(
            node_id=node_id,
            tag=tag,
            text_content=text,
            span=NodeSpan(start_line=start, end_line=end if end is not None else start),
            code_snippet="",
            flags=frozenset(flags),
            depth=depth,
            parent_id=parent_id,
        )

    return _make
