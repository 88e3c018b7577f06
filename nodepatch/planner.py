"""Patch planner: one oracle exchange per file producing per-node replacements."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import OracleFailure
from .models import AnnotatedEdit, MarkupNode, NodeEdit, SourceFile
from .oracle import OracleClient
from .parser import ancestor_ids
from .prompts import FileContext, PatchRequest, render_patch_prompt
from .responses import decode_patch_response

logger = logging.getLogger(__name__)

PATCH_MAX_TOKENS = 6000

# (needles, purpose) checked in order; the first hit wins
_PURPOSE_RULES = (
    (("Router", "Route"), "React routing component for navigation"),
    (("nav", "Nav", "header", "Header"), "Navigation or header component"),
    (("form", "Form", "input", "Input"), "Form or input component for user interaction"),
    (("card", "Card", "modal", "Modal"), "UI display component (card, modal, or layout element)"),
    (("button", "Button"), "Interactive button or action component"),
    (("list", "List", "map("), "List or data display component"),
)


@dataclass
class PatchPlan:
    """Edits the oracle produced for one file."""

    edits: List[NodeEdit] = field(default_factory=list)
    follow_ups: List[str] = field(default_factory=list)
    pruned_ids: List[str] = field(default_factory=list)


def prune_nested_targets(
    selected: Sequence[MarkupNode],
    all_nodes: Optional[Iterable[MarkupNode]] = None,
) -> List[MarkupNode]:
    """Drop every selected node that is an ancestor of another selected node."""
    nodes_by_id: Dict[str, MarkupNode] = {n.node_id: n for n in (all_nodes or selected)}
    for node in selected:
        nodes_by_id.setdefault(node.node_id, node)

    selected_ids = {node.node_id for node in selected}
    covering = set()
    for node in selected:
        for ancestor in ancestor_ids(node, nodes_by_id):
            if ancestor in selected_ids:
                covering.add(ancestor)
    return [node for node in selected if node.node_id not in covering]


def describe_component_purpose(source: SourceFile) -> str:
    content = source.content
    has_state = "useState" in content
    has_effect = "useEffect" in content
    if has_state and has_effect:
        return "Interactive React component with state management and side effects"
    if has_state:
        return "Interactive React component with state management"
    if has_effect:
        return "React component with side effects and lifecycle management"

    for needles, purpose in _PURPOSE_RULES:
        if any(needle in content for needle in needles):
            return purpose

    lowered = source.path.lower()
    if "page" in lowered:
        return "Full page component with multiple sections"
    if "layout" in lowered:
        return "Layout wrapper component"
    return "React component"


def summarize_project(files: Iterable[SourceFile]) -> str:
    files = list(files)
    if not files:
        return ""
    markup_files = sum(1 for f in files if f.suffix in (".tsx", ".jsx"))
    page_files = sum(1 for f in files if "page" in f.path.lower())
    has_routing = any("Router" in f.content or "Route" in f.content for f in files)
    has_state = any("useState" in f.content or "useContext" in f.content for f in files)
    key_files = [
        f.path for f in files
        if any(marker in f.path for marker in ("App.", "index.", "main.")) or "nav" in f.path.lower()
    ][:5]

    summary = f"React project with {len(files)} files ({markup_files} components"
    if page_files:
        summary += f", {page_files} pages"
    summary += "). "
    features = [name for name, present in (("React Router navigation", has_routing), ("state management", has_state)) if present]
    if features:
        summary += f"Features: {', '.join(features)}. "
    if key_files:
        summary += f"Key files: {', '.join(key_files)}."
    return summary.strip()


def analyze_file_context(source: SourceFile, project_files: Iterable[SourceFile] = ()) -> FileContext:
    return FileContext(
        file_path=source.path,
        component_name=source.component_name or "Component",
        component_purpose=describe_component_purpose(source),
        project_summary=summarize_project(project_files),
    )


class PatchPlanner:
    """Asks the oracle for replacement text for all selected nodes of one file."""

    def __init__(self, client: OracleClient) -> None:
        self.client = client

    def plan(
        self,
        request: str,
        selected_nodes: Sequence[MarkupNode],
        file_context: FileContext,
        all_nodes: Optional[Sequence[MarkupNode]] = None,
    ) -> PatchPlan:
        """Return the edits for *selected_nodes*; oracle trouble yields an empty plan."""
        result = PatchPlan()
        targets = prune_nested_targets(selected_nodes, all_nodes)
        kept_ids = {n.node_id for n in targets}
        result.pruned_ids = [n.node_id for n in selected_nodes if n.node_id not in kept_ids]
        if result.pruned_ids:
            logger.info(
                "%s: dropped enclosing targets %s in favour of nested selections",
                file_context.file_path, ", ".join(result.pruned_ids),
            )
        if not targets:
            return result

        prompt = render_patch_prompt(PatchRequest(request=request, context=file_context, nodes=list(targets)))
        try:
            answer = self.client.ask(prompt, purpose="patch", max_tokens=PATCH_MAX_TOKENS)
        except OracleFailure as exc:
            logger.warning("Patch planning failed for %s: %s", file_context.file_path, exc)
            return result

        decoded = decode_patch_response(answer)
        if not decoded:
            logger.warning("No usable edits in oracle response for %s", file_context.file_path)
            return result

        target_ids = {node.node_id for node in targets}
        for node in targets:
            value = decoded.get(node.node_id)
            if value is None:
                logger.debug("%s: oracle declined %s", file_context.file_path, node.node_id)
                continue
            required: tuple = ()
            if isinstance(value, AnnotatedEdit):
                required = value.required_imports
                for imp in required:
                    note = f"{node.node_id} requires import: {imp}"
                    logger.warning("%s: %s (not applied)", file_context.file_path, note)
                    result.follow_ups.append(note)
            result.edits.append(NodeEdit(node_id=node.node_id, replacement_text=value.code, required_imports=required))

        unknown = sorted(set(decoded) - target_ids)
        if unknown:
            logger.debug("%s: ignoring edits for unselected nodes %s", file_context.file_path, ", ".join(unknown))

        logger.info("%s: planned %d of %d edits", file_context.file_path, len(result.edits), len(targets))
        return result
