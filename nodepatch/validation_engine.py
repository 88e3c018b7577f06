"""Structure validator: detects and repairs dropped imports/exports after patching."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple

from .errors import StructuralViolation
from .models import NodeSpan, StructuralFingerprint, ValidationResult, find_component_name

logger = logging.getLogger(__name__)

VIOLATION_IMPORT = "missing_import"
VIOLATION_EXPORT = "missing_export"
VIOLATION_IDENTIFIER = "missing_identifier"
VIOLATION_DEFAULT_EXPORT = "missing_default_export"

_IMPORT_START_RE = re.compile(r"^\s*import(?:\s|\{|\*|['\"])")
_IMPORT_END_RE = re.compile(r"(?:\bfrom\s*['\"][^'\"]+['\"]|^\s*import\s*['\"][^'\"]+['\"])\s*;?\s*$")
_EXPORT_START_RE = re.compile(r"^\s*export(?:\s|\{|\*)")
_DEFAULT_EXPORT_RE = re.compile(r"\bexport\s+default\b|\bas\s+default\b")
# "export default function App" -> ("export default ", "function App")
_DECLARATION_HEAD_RE = re.compile(
    r"^\s*(export\s+(?:default\s+)?)((?:async\s+)?(?:function\s*\*?\s*|class\s+|const\s+|let\s+|var\s+)[\w$]+)"
)
_MAX_IMPORT_LINES = 50


class StructureValidator:
    """Captures a file's declarations before patching and checks them after."""

    def extract_fingerprint(self, content: str) -> StructuralFingerprint:
        """Snapshot imports, exports and the primary identifier of *content*."""
        lines = content.split("\n")
        exports = _export_statements(lines)
        return StructuralFingerprint(
            imports=tuple(stmt for _, stmt in _import_statements(lines)),
            exports=tuple(stmt for _, stmt in exports),
            export_lines=tuple(index + 1 for index, _ in exports),
            primary_identifier=find_component_name(content),
            has_default_export=bool(_DEFAULT_EXPORT_RE.search(content)),
        )

    def validate(
        self,
        new_content: str,
        fingerprint: StructuralFingerprint,
        edited_spans: Sequence[NodeSpan] = (),
    ) -> ValidationResult:
        """Check that every captured declaration survived.

        An export that shares a line with an edited element survives when its
        declaration head (``export const Banner``) is still there.

        Args:
            new_content: Patched file content
            fingerprint: Snapshot taken from the original content
            edited_spans: Original-line spans of the edits that were applied

        Returns:
            ValidationResult listing one error per violated check
        """
        errors: List[str] = []
        violations: List[str] = []

        for stmt in fingerprint.imports:
            if stmt.strip() not in new_content:
                errors.append(f"Missing import: {_first_line(stmt)}")
                violations.append(VIOLATION_IMPORT)

        export_lines = fingerprint.export_lines
        if len(export_lines) != len(fingerprint.exports):
            export_lines = (0,) * len(fingerprint.exports)
        for stmt, line in zip(fingerprint.exports, export_lines):
            if _is_missing(line - 1, stmt, new_content, edited_spans):
                errors.append(f"Missing export: {_first_line(stmt)}")
                violations.append(VIOLATION_EXPORT)

        identifier = fingerprint.primary_identifier
        if identifier and not _identifier_present(identifier, new_content):
            errors.append(f"Primary identifier '{identifier}' is no longer present")
            violations.append(VIOLATION_IDENTIFIER)

        if fingerprint.has_default_export and not _DEFAULT_EXPORT_RE.search(new_content):
            errors.append("Default export was removed")
            violations.append(VIOLATION_DEFAULT_EXPORT)

        return ValidationResult(valid=not errors, errors=errors, violations=violations)

    def enforce(
        self,
        new_content: str,
        fingerprint: StructuralFingerprint,
        original_content: str,
        edited_spans: Sequence[NodeSpan] = (),
    ) -> Tuple[str, ValidationResult]:
        """Validate *new_content*, repairing it once if needed.

        Returns:
            The content to commit and the result of the first validation

        Raises:
            StructuralViolation: if the repaired content still breaks a check
        """
        result = self.validate(new_content, fingerprint, edited_spans)
        if result.valid:
            return new_content, result

        logger.warning("Structure validation failed: %s", "; ".join(result.errors))
        repaired = self.repair(new_content, fingerprint, original_content, edited_spans)
        if repaired is None:
            raise StructuralViolation("; ".join(result.errors), result.violations)
        return repaired, result

    def repair(
        self,
        new_content: str,
        fingerprint: StructuralFingerprint,
        original_content: str,
        edited_spans: Sequence[NodeSpan] = (),
    ) -> Optional[str]:
        """Put missing import/export statements back at their original spot.

        Single pass, no oracle involvement. A statement outside the edited
        spans is re-inserted as a whole. One inside an edited span only gets
        its ``export`` keywords back on the edited declaration; re-inserting
        the old line would declare the component twice. Returns the repaired
        content if it passes validation, otherwise None.
        """
        original_lines = original_content.split("\n")
        new_lines = new_content.split("\n")

        statements = _import_statements(original_lines) + _export_statements(original_lines)
        missing = sorted(
            ((index, stmt) for index, stmt in statements
             if _is_missing(index, stmt, new_content, edited_spans)),
            key=lambda item: item[0],
        )
        if not missing:
            result = self.validate(new_content, fingerprint, edited_spans)
            return new_content if result.valid else None

        for index, stmt in missing:
            if not _is_missing(index, stmt, "\n".join(new_lines), edited_spans):
                continue
            stmt_lines = stmt.split("\n")
            if _within_spans(index, len(stmt_lines), edited_spans):
                if not _restore_declaration_head(stmt, new_lines):
                    logger.warning("Cannot restore '%s' inside an edited element", _first_line(stmt))
                    return None
                continue
            position = _insertion_point(original_lines, index, len(stmt_lines), new_lines)
            new_lines[position:position] = stmt_lines
            logger.info("Re-inserted '%s' at line %d", _first_line(stmt), position + 1)

        repaired = "\n".join(new_lines)
        result = self.validate(repaired, fingerprint, edited_spans)
        if not result.valid:
            logger.warning("Repair left violations: %s", "; ".join(result.errors))
            return None
        return repaired


# ---------------------------------------------------------------------------
# Statement capture
# ---------------------------------------------------------------------------

def _import_statements(lines: Sequence[str]) -> List[Tuple[int, str]]:
    """Return ``(line_index, raw_statement)`` for every top-level import."""
    statements: List[Tuple[int, str]] = []
    index = 0
    while index < len(lines):
        if not _IMPORT_START_RE.match(lines[index]):
            index += 1
            continue
        end = index
        while not _IMPORT_END_RE.search(lines[end]):
            end += 1
            if end >= len(lines) or end - index > _MAX_IMPORT_LINES or _IMPORT_START_RE.match(lines[end]):
                # Unterminated; keep just the first line
                end = index
                break
        statements.append((index, "\n".join(lines[index:end + 1])))
        index = end + 1
    return statements


def _export_statements(lines: Sequence[str]) -> List[Tuple[int, str]]:
    return [(index, line) for index, line in enumerate(lines) if _EXPORT_START_RE.match(line)]


def _first_line(stmt: str) -> str:
    lines = stmt.strip().split("\n")
    return lines[0] + (" ..." if len(lines) > 1 else "")


def _identifier_present(identifier: str, content: str) -> bool:
    return re.search(rf"(?<![\w$]){re.escape(identifier)}(?![\w$])", content) is not None


def _within_spans(index: int, length: int, spans: Sequence[NodeSpan]) -> bool:
    """True if original lines ``index .. index + length - 1`` (0-indexed) touch a span."""
    first, last = index + 1, index + length
    return any(span.start_line <= last and first <= span.end_line for span in spans)


def _is_missing(index: int, stmt: str, content: str, edited_spans: Sequence[NodeSpan]) -> bool:
    if stmt.strip() in content:
        return False
    if index >= 0 and _within_spans(index, len(stmt.split("\n")), edited_spans):
        return not _head_present(stmt, content)
    return True


def _head_present(stmt: str, content: str) -> bool:
    match = _DECLARATION_HEAD_RE.match(stmt)
    if match is None:
        return False
    pattern = r"(?m)^\s*" + _loose(match.group(1) + match.group(2)) + r"(?![\w$])"
    return re.search(pattern, content) is not None


def _loose(text: str) -> str:
    """Regex for *text* with any run of whitespace between its tokens."""
    return r"\s+".join(re.escape(token) for token in text.split())


# ---------------------------------------------------------------------------
# Repair helpers
# ---------------------------------------------------------------------------

def _insertion_point(original_lines: Sequence[str], index: int, length: int, new_lines: List[str]) -> int:
    """Find where a statement at ``original_lines[index]`` belongs in *new_lines*.

    Anchors on the nearest non-blank line that is unique in both versions,
    looking backward first, then forward. Without an anchor, statements
    from the top half of the file go to the top and the rest to the end.
    """
    for probe in range(index - 1, -1, -1):
        anchor = _unique_match(original_lines, probe, new_lines)
        if anchor is not None:
            position = anchor + 1
            # Step over the blank lines that separated anchor and statement
            for gap in range(probe + 1, index):
                if position < len(new_lines) and new_lines[position] == original_lines[gap]:
                    position += 1
            return position

    for probe in range(index + length, len(original_lines)):
        anchor = _unique_match(original_lines, probe, new_lines)
        if anchor is not None:
            position = anchor
            for gap in range(probe - 1, index + length - 1, -1):
                if position > 0 and new_lines[position - 1] == original_lines[gap]:
                    position -= 1
            return position

    if index < len(original_lines) / 2:
        return 0
    end = len(new_lines)
    if new_lines and new_lines[-1] == "":
        end -= 1
    return end


def _unique_match(original_lines: Sequence[str], probe: int, new_lines: List[str]) -> Optional[int]:
    line = original_lines[probe]
    if not line.strip():
        return None
    if sum(1 for candidate in original_lines if candidate == line) != 1:
        return None
    matches = [i for i, candidate in enumerate(new_lines) if candidate == line]
    return matches[0] if len(matches) == 1 else None


def _restore_declaration_head(stmt: str, new_lines: List[str]) -> bool:
    """Put the ``export`` keywords of *stmt* back on its edited declaration.

    ``export const Banner = ...`` is restored on the single line of
    *new_lines* that starts with ``const Banner``. Returns False when there
    is no such line or more than one.
    """
    match = _DECLARATION_HEAD_RE.match(stmt)
    if match is None:
        return False
    prefix = " ".join(match.group(1).split()) + " "
    pattern = re.compile(r"^(\s*)" + _loose(match.group(2)) + r"(?![\w$])")
    hits = [i for i, line in enumerate(new_lines) if pattern.match(line)]
    if len(hits) != 1:
        return False
    line = new_lines[hits[0]]
    indent = pattern.match(line).group(1)
    new_lines[hits[0]] = indent + prefix + line[len(indent):]
    logger.info("Restored '%s%s' at line %d", prefix, match.group(2), hits[0] + 1)
    return True
