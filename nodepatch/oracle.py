"""Content oracle interface and the session-scoped client around it."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Optional

from .errors import OracleFailure
from .llm import LocalLLM

logger = logging.getLogger(__name__)


class ContentOracle(ABC):
    """Black-box service that scores relevance and writes replacement code."""

    @abstractmethod
    def generate(self, prompt: str, *, max_tokens: int = 1024) -> str:
        """Answer *prompt*; raise :class:`OracleFailure` when no answer exists."""
        ...


class LLMOracle(ContentOracle):
    """Oracle backed by a configured :class:`LocalLLM` provider."""

    def __init__(self, llm: Optional[LocalLLM] = None) -> None:
        self.llm = llm or LocalLLM()

    def generate(self, prompt: str, *, max_tokens: int = 1024) -> str:
        response = self.llm.generate(prompt, max_tokens=max_tokens)
        if not response or not response.strip():
            raise OracleFailure(
                f"LLM provider '{self.llm.provider_name}' returned no response",
                details={"model": self.llm.model},
            )
        return response


@dataclass
class OracleUsage:
    """Per-session oracle accounting. Counters only ever increase."""

    calls: int = 0
    failures: int = 0
    by_purpose: Counter = field(default_factory=Counter)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, purpose: str, failed: bool = False) -> None:
        with self._lock:
            self.calls += 1
            self.by_purpose[purpose] += 1
            if failed:
                self.failures += 1

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {"calls": self.calls, "failures": self.failures, **dict(self.by_purpose)}


class OracleClient:
    """Routes every oracle call of one session through a shared gate.

    The semaphore caps in-flight oracle calls independently of how many
    files are processed in parallel.
    """

    def __init__(self, oracle: ContentOracle, usage: Optional[OracleUsage] = None, max_concurrent: int = 1) -> None:
        self.oracle = oracle
        self.usage = usage or OracleUsage()
        self._gate = threading.BoundedSemaphore(max(1, max_concurrent))

    def ask(self, prompt: str, *, purpose: str, max_tokens: int = 1024) -> str:
        """Send *prompt*; any failure surfaces as :class:`OracleFailure`."""
        with self._gate:
            try:
                answer = self.oracle.generate(prompt, max_tokens=max_tokens)
            except OracleFailure:
                self.usage.record(purpose, failed=True)
                raise
            except Exception as exc:
                self.usage.record(purpose, failed=True)
                raise OracleFailure(f"{purpose} call failed: {exc}") from exc

        if not isinstance(answer, str) or not answer.strip():
            self.usage.record(purpose, failed=True)
            raise OracleFailure(f"{purpose} call returned an empty answer")

        self.usage.record(purpose)
        return answer
