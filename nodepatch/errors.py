"""Error taxonomy for the patch pipeline."""

from __future__ import annotations

from typing import Any, Mapping, Sequence


class NodePatchError(RuntimeError):
    """Base class for per-file pipeline errors."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ParseFailure(NodePatchError):
    """Raised when a source file cannot be parsed into a markup tree."""


class OracleFailure(NodePatchError):
    """Raised when the content oracle produced no usable answer."""


class StructuralViolation(NodePatchError):
    """Raised when patched content lost required declarations."""

    def __init__(self, message: str, violations: Sequence[str] = ()) -> None:
        super().__init__(message, details={"violations": list(violations)})
        self.violations = tuple(violations)


class WriteFailure(NodePatchError):
    """Raised when validated content could not be persisted."""


class SessionCancelled(NodePatchError):
    """Raised inside a file pipeline once its session has been cancelled."""
