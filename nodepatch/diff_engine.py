"""DiffEngine for splicing node edits into a file and previewing the change."""

from __future__ import annotations

import difflib
import logging
from typing import Dict, List, Sequence, Tuple

from .models import ApplyResult, MarkupNode, NodeEdit, SourceFile

logger = logging.getLogger(__name__)


class DiffEngine:
    """Applies node-level replacements to a line buffer."""

    def create_diff(self, original: str, modified: str, filename: str = "file") -> str:
        """Create unified diff between two versions.

        Args:
            original: Original content
            modified: Modified content
            filename: Name of file for diff header

        Returns:
            Unified diff string
        """
        diff = difflib.unified_diff(
            original.splitlines(keepends=True),
            modified.splitlines(keepends=True),
            fromfile=f"a/{filename}",
            tofile=f"b/{filename}",
        )
        return "".join(diff)

    def apply_edits(
        self,
        source: SourceFile,
        nodes: Sequence[MarkupNode],
        edits: Sequence[NodeEdit],
    ) -> ApplyResult:
        """Splice *edits* into *source* from the bottom of the file upward.

        Only edits whose node is in *nodes* are used. Replacing lines
        ``a..b`` with M lines shifts everything below ``b``, so edits run in
        descending start line and never see shifted coordinates. When two
        spans overlap, the lower-line (later-processed) edit wins.

        Args:
            source: File whose current content the node spans refer to
            nodes: Nodes produced by indexing that same content
            edits: Replacement text per node id

        Returns:
            ApplyResult with the new content and the ids actually applied
        """
        nodes_by_id: Dict[str, MarkupNode] = {node.node_id: node for node in nodes}
        edits_by_id: Dict[str, NodeEdit] = {}
        for edit in edits:
            if edit.node_id not in nodes_by_id:
                logger.debug("%s: no node for edit %s", source.path, edit.node_id)
                continue
            if edit.node_id in edits_by_id:
                logger.warning("%s: duplicate edit for %s, keeping the last one", source.path, edit.node_id)
            edits_by_id[edit.node_id] = edit

        ordered = sorted(
            ((nodes_by_id[node_id], edit) for node_id, edit in edits_by_id.items()),
            key=lambda pair: (pair[0].start_line, pair[0].end_line),
            reverse=True,
        )
        accepted, dropped = self._resolve_overlaps(source.path, ordered)

        lines = source.content.split("\n")
        applied: List[str] = []
        for node, edit in accepted:
            if node.end_line > len(lines) or node.start_line < 1:
                logger.warning(
                    "%s: span %s of %s is outside the buffer (%d lines), skipping",
                    source.path, node.span, node.node_id, len(lines),
                )
                dropped.append(node.node_id)
                continue
            original = lines[node.start_line - 1: node.end_line]
            lines[node.start_line - 1: node.end_line] = _replacement_lines(edit.replacement_text, original)
            applied.append(node.node_id)
            logger.debug("%s: applied %s (lines %s)", source.path, node.node_id, node.span)

        return ApplyResult(
            new_content="\n".join(lines),
            applied_count=len(applied),
            applied_ids=applied,
            dropped_ids=dropped,
        )

    @staticmethod
    def _resolve_overlaps(
        path: str,
        ordered: List[Tuple[MarkupNode, NodeEdit]],
    ) -> Tuple[List[Tuple[MarkupNode, NodeEdit]], List[str]]:
        accepted: List[Tuple[MarkupNode, NodeEdit]] = []
        dropped: List[str] = []
        for node, edit in ordered:
            # Everything accepted so far starts at or below this node
            clashing = [pair for pair in accepted if pair[0].span.overlaps(node.span)]
            for pair in clashing:
                logger.warning(
                    "%s: %s (lines %s) overlaps %s (lines %s); keeping %s",
                    path, node.node_id, node.span, pair[0].node_id, pair[0].span, node.node_id,
                )
                accepted.remove(pair)
                dropped.append(pair[0].node_id)
            accepted.append((node, edit))
        return accepted, dropped


def _replacement_lines(replacement: str, original: List[str]) -> List[str]:
    """Split *replacement* into lines, keeping CRLF endings if the original had them."""
    new_lines = replacement.split("\n")
    if len(new_lines) > 1 and new_lines[-1] == "":
        new_lines.pop()
    if original and all(line.endswith("\r") for line in original):
        new_lines = [line if line.endswith("\r") else line + "\r" for line in new_lines]
    return new_lines
