"""Core data models shared by the indexing, planning and patching stages."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

_COMPONENT_NAME_PATTERNS = (
    re.compile(r"export\s+default\s+(?:async\s+)?function\s+([A-Za-z_$][\w$]*)"),
    re.compile(r"export\s+default\s+class\s+([A-Za-z_$][\w$]*)"),
    re.compile(r"^\s*export\s+default\s+([A-Z][\w$]*)\s*;?\s*$", re.MULTILINE),
    re.compile(r"export\s+(?:const|function|class)\s+([A-Z][\w$]*)"),
    re.compile(r"(?:function|const|class)\s+([A-Z][\w$]*)"),
)
_ACTIONABLE_RE = re.compile(r"<button|<Button|\bbtn\b|type=[\"']submit", re.IGNORECASE)
_AUTH_RE = re.compile(r"sign\s*-?\s*in|log\s*-?\s*in|sign\s*-?\s*up|log\s*-?\s*out|\bauth", re.IGNORECASE)
_MAIN_NAME_RE = re.compile(r"^(app|index|main|home)\.", re.IGNORECASE)


def find_component_name(content: str) -> Optional[str]:
    """Return the primary declared component identifier of *content*, if any."""
    for pattern in _COMPONENT_NAME_PATTERNS:
        match = pattern.search(content)
        if match:
            return match.group(1)
    return None


class FileState(str, Enum):
    """States a file passes through inside one patch session."""

    IDLE = "idle"
    INDEXING = "indexing"
    SELECTING = "selecting"
    PLANNING = "planning"
    APPLYING = "applying"
    VALIDATING = "validating"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SourceFile:
    """A project file held in memory for the duration of a session."""

    path: str
    content: str

    @property
    def lines(self) -> List[str]:
        return self.content.split("\n")

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def suffix(self) -> str:
        name = self.path.rsplit("/", 1)[-1]
        return "." + name.rsplit(".", 1)[-1].lower() if "." in name else ""

    @property
    def component_name(self) -> Optional[str]:
        return find_component_name(self.content)

    @property
    def has_actionable_controls(self) -> bool:
        return bool(_ACTIONABLE_RE.search(self.content))

    @property
    def mentions_auth(self) -> bool:
        return bool(_AUTH_RE.search(self.content))

    @property
    def is_main_file(self) -> bool:
        name = self.path.rsplit("/", 1)[-1]
        return bool(_MAIN_NAME_RE.match(name)) or "function App" in self.content

    def with_content(self, content: str) -> "SourceFile":
        return replace(self, content=content)


@dataclass(frozen=True)
class NodeSpan:
    """Inclusive 1-indexed line range plus 0-indexed columns."""

    start_line: int
    end_line: int
    start_column: int = 0
    end_column: int = 0

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def overlaps(self, other: "NodeSpan") -> bool:
        return self.start_line <= other.end_line and other.start_line <= self.end_line

    def __str__(self) -> str:
        return f"{self.start_line}-{self.end_line}"


@dataclass(frozen=True)
class MarkupNode:
    """One markup element of a file, as seen by a single indexing pass."""

    node_id: str
    tag: str
    text_content: str
    span: NodeSpan
    code_snippet: str
    context: str = ""
    attributes: Tuple[str, ...] = ()
    flags: FrozenSet[str] = frozenset()
    depth: int = 0
    parent_id: Optional[str] = None

    @property
    def start_line(self) -> int:
        return self.span.start_line

    @property
    def end_line(self) -> int:
        return self.span.end_line

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags

    def preview(self, max_chars: int = 50) -> str:
        return self.text_content[:max_chars]


@dataclass(frozen=True)
class RelevanceDecision:
    """The oracle's verdict on whether a file holds the requested targets."""

    is_relevant: bool
    score: int
    reasoning: str
    target_node_ids: Tuple[str, ...] = ()

    @classmethod
    def rejected(cls, reasoning: str) -> "RelevanceDecision":
        return cls(is_relevant=False, score=0, reasoning=reasoning)

    def is_eligible(self, threshold: int) -> bool:
        """A file enters the patch pipeline only when all three gates pass."""
        return self.is_relevant and self.score >= threshold and bool(self.target_node_ids)


@dataclass(frozen=True)
class PlainText:
    """Oracle edit given as a bare replacement string."""

    code: str


@dataclass(frozen=True)
class AnnotatedEdit:
    """Oracle edit given as an object with replacement code and metadata."""

    code: str
    required_imports: Tuple[str, ...] = ()
    extras: Dict[str, Any] = field(default_factory=dict)


NodeEditValue = Union[PlainText, AnnotatedEdit]


@dataclass(frozen=True)
class NodeEdit:
    node_id: str
    replacement_text: str
    required_imports: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StructuralFingerprint:
    """Pre-patch snapshot of the declarations a patch must not drop."""

    imports: Tuple[str, ...] = ()
    exports: Tuple[str, ...] = ()
    # 1-indexed line of each entry in ``exports``
    export_lines: Tuple[int, ...] = ()
    primary_identifier: Optional[str] = None
    has_default_export: bool = False


@dataclass
class ApplyResult:
    """Result of splicing node edits into a buffer."""

    new_content: str
    applied_count: int
    applied_ids: List[str] = field(default_factory=list)
    dropped_ids: List[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    """Result of validating patched content."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    violations: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        if self.valid:
            return "Validation passed"
        return f"Validation failed: {', '.join(self.errors)}"


@dataclass(frozen=True)
class PatchOutcome:
    """Per-file record of what one session did."""

    file_path: str
    nodes_analyzed: int
    nodes_selected: int
    nodes_modified: int
    success: bool
    reasoning: str
    state: FileState = FileState.SKIPPED
    score: int = 0
    errors: Tuple[str, ...] = ()
    follow_ups: Tuple[str, ...] = ()
    diff: str = ""

    @property
    def committed(self) -> bool:
        return self.state is FileState.COMMITTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "nodes_analyzed": self.nodes_analyzed,
            "nodes_selected": self.nodes_selected,
            "nodes_modified": self.nodes_modified,
            "success": self.success,
            "reasoning": self.reasoning,
            "state": self.state.value,
            "score": self.score,
            "errors": list(self.errors),
            "follow_ups": list(self.follow_ups),
            "diff": self.diff,
        }


@dataclass
class SessionReport:
    """Aggregate result of a patch session."""

    request: str
    outcomes: List[PatchOutcome] = field(default_factory=list)
    oracle_calls: int = 0
    oracle_failures: int = 0
    started_at: str = ""
    finished_at: str = ""
    dry_run: bool = False
    cancelled: bool = False

    @property
    def files_analyzed(self) -> int:
        return len(self.outcomes)

    @property
    def committed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.committed)

    @property
    def files_modified(self) -> int:
        return self.committed_count

    @property
    def nodes_analyzed(self) -> int:
        return sum(o.nodes_analyzed for o in self.outcomes)

    @property
    def nodes_selected(self) -> int:
        return sum(o.nodes_selected for o in self.outcomes)

    @property
    def nodes_modified(self) -> int:
        return sum(o.nodes_modified for o in self.outcomes)

    @property
    def success(self) -> bool:
        return self.committed_count > 0

    @property
    def failed_outcomes(self) -> List[PatchOutcome]:
        return [o for o in self.outcomes if o.state is FileState.ROLLED_BACK and not o.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request": self.request,
            "success": self.success,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "totals": {
                "files_analyzed": self.files_analyzed,
                "files_modified": self.files_modified,
                "nodes_analyzed": self.nodes_analyzed,
                "nodes_selected": self.nodes_selected,
                "nodes_modified": self.nodes_modified,
            },
            "oracle": {"calls": self.oracle_calls, "failures": self.oracle_failures},
            "outcomes": [o.to_dict() for o in self.outcomes],
        }

    def render(self) -> str:
        """Human-readable session summary."""
        if not self.outcomes:
            return "No files were processed in this session."

        rate = round(100 * self.committed_count / len(self.outcomes))
        lines = [
            "MODIFICATION SESSION SUMMARY",
            f"  Request: {self.request}",
            f"  Files analyzed: {self.files_analyzed}",
            f"  Files modified: {self.files_modified}",
            f"  Nodes analyzed/selected/modified: "
            f"{self.nodes_analyzed}/{self.nodes_selected}/{self.nodes_modified}",
            f"  Success rate: {rate}%",
            f"  Oracle calls: {self.oracle_calls} ({self.oracle_failures} failed)",
        ]
        if self.dry_run:
            lines.append("  Dry run: nothing was written to disk")
        if self.cancelled:
            lines.append("  Session was cancelled before all files were processed")

        lines.append("")
        lines.append("Changes:")
        for index, outcome in enumerate(self.outcomes, start=1):
            lines.append(f"  {index}. [{outcome.state.value}] {outcome.file_path}")
            lines.append(f"      {outcome.reasoning}")
            for follow_up in outcome.follow_ups:
                lines.append(f"      follow-up: {follow_up}")

        failed = self.failed_outcomes
        if failed:
            lines.append("")
            lines.append("Issues encountered:")
            for outcome in failed:
                detail = "; ".join(outcome.errors) or outcome.reasoning
                lines.append(f"  - {outcome.file_path}: {detail}")

        return "\n".join(lines)
