"""Structural indexer: turns JSX/TSX source into addressable markup nodes.

Built on Tree-sitter so that every element carries exact source locations:
- One preorder traversal per file, ids ``node_1``, ``node_2``, ... in
  document order, scoped to that pass only
- Snippets and context windows are cut from the buffer that was parsed,
  so they are never stale
- Fails closed: an unparsable file yields an empty node list
"""

from __future__ import annotations

import importlib
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import config
from .errors import ParseFailure
from .models import MarkupNode, NodeSpan, SourceFile

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".tsx": "tsx",
    ".jsx": "javascript",
    ".js": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
}

_MARKUP_TYPES = ("jsx_element", "jsx_self_closing_element")
_NAME_TYPES = ("identifier", "member_expression", "nested_identifier", "jsx_namespace_name", "property_identifier")

FLAG_ACTIONABLE = "actionable"
FLAG_AUTH = "auth"

_ACTIONABLE_TAG_RE = re.compile(r"button|btn", re.IGNORECASE)
_ACTIONABLE_TAGS = {"a", "input", "select", "textarea", "link", "navlink"}
_AUTH_TEXT_RE = re.compile(r"sign\s*in|log\s*in|login|signin|sign\s*up|signup|log\s*out|logout|auth", re.IGNORECASE)

# Advisory flags: name -> predicate(tag, text_content)
FLAG_RULES: Dict[str, Callable[[str, str], bool]] = {
    FLAG_ACTIONABLE: lambda tag, text: bool(_ACTIONABLE_TAG_RE.search(tag)) or tag.lower() in _ACTIONABLE_TAGS,
    FLAG_AUTH: lambda tag, text: bool(_AUTH_TEXT_RE.search(text)),
}


# ===================================================================
# Abstract Indexer Interface
# ===================================================================

class MarkupIndexer(ABC):
    """Abstract base class for markup indexers."""

    @abstractmethod
    def index(self, source: SourceFile) -> List[MarkupNode]:
        """Return every markup element of *source* in document order."""
        ...

    @abstractmethod
    def supports_language(self, language: str) -> bool:
        """Return True if this indexer can handle *language*."""
        ...


# ===================================================================
# Tree-sitter Indexer
# ===================================================================

class TreeSitterIndexer(MarkupIndexer):
    """JSX-aware indexer using the Tree-sitter JavaScript and TSX grammars."""

    # language -> (grammar module, function returning the Language capsule)
    _GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
        "javascript": ("tree_sitter_javascript", "language"),
        "tsx": ("tree_sitter_typescript", "language_tsx"),
        "typescript": ("tree_sitter_typescript", "language_typescript"),
    }

    def __init__(
        self,
        context_lines: Optional[int] = None,
        flag_rules: Optional[Dict[str, Callable[[str, str], bool]]] = None,
    ) -> None:
        self.context_lines = config.CONTEXT_LINES if context_lines is None else context_lines
        self.flag_rules = dict(FLAG_RULES if flag_rules is None else flag_rules)
        self._parsers: Dict[str, Any] = {}
        self._init_parsers()

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def _init_parsers(self) -> None:
        from tree_sitter import Language, Parser as TSParser

        for lang, (mod_name, func_name) in self._GRAMMAR_MODULES.items():
            try:
                mod = importlib.import_module(mod_name)
                ts_lang = Language(getattr(mod, func_name)())
                self._parsers[lang] = TSParser(ts_lang)
                logger.debug("Loaded tree-sitter parser for %s", lang)
            except ImportError:
                logger.warning(
                    "Grammar package '%s' not installed for language '%s'. "
                    "Install with: pip install %s",
                    mod_name, lang, mod_name.replace("_", "-"),
                )
            except (AttributeError, TypeError, ValueError) as exc:
                logger.warning("Could not load tree-sitter grammar for %s: %s", lang, exc)

    def supports_language(self, language: str) -> bool:
        return language in self._parsers

    # ------------------------------------------------------------------
    # File-level indexing
    # ------------------------------------------------------------------

    def index(self, source: SourceFile) -> List[MarkupNode]:
        """Index *source*; returns ``[]`` for unparsable or unsupported files."""
        try:
            tree = self._parse(source)
        except ParseFailure as exc:
            logger.info("Skipping %s: %s", source.path, exc)
            return []

        lines = source.content.split("\n")
        line_bytes = [line.encode("utf-8") for line in lines]
        nodes: List[MarkupNode] = []

        # Preorder walk; each entry is (ts_node, parent markup id, markup depth)
        stack: List[Tuple[Any, Optional[str], int]] = [(tree.root_node, None, 0)]
        while stack:
            ts_node, parent_id, depth = stack.pop()
            child_parent, child_depth = parent_id, depth

            if ts_node.type in _MARKUP_TYPES:
                node = self._build_node(ts_node, len(nodes) + 1, parent_id, depth, lines, line_bytes)
                if node is not None:
                    nodes.append(node)
                    child_parent, child_depth = node.node_id, depth + 1

            for child in reversed(ts_node.children):
                stack.append((child, child_parent, child_depth))

        logger.info("Indexed %s: %d markup nodes", source.path, len(nodes))
        return nodes

    def _parse(self, source: SourceFile) -> Any:
        lang = LANGUAGE_MAP.get(source.suffix)
        if lang is None:
            raise ParseFailure(f"unsupported file type '{source.suffix}'")
        parser = self._parsers.get(lang)
        if parser is None:
            raise ParseFailure(f"no grammar loaded for {lang}")

        tree = parser.parse(source.content.encode("utf-8"))
        if tree.root_node.has_error:
            raise ParseFailure("syntax errors in source", details={"language": lang})
        return tree

    # ------------------------------------------------------------------
    # Node construction
    # ------------------------------------------------------------------

    def _build_node(
        self,
        ts_node: Any,
        ordinal: int,
        parent_id: Optional[str],
        depth: int,
        lines: List[str],
        line_bytes: List[bytes],
    ) -> Optional[MarkupNode]:
        opening = ts_node.child_by_field_name("open_tag") if ts_node.type == "jsx_element" else ts_node
        if opening is None:
            return None
        tag = _tag_name(opening)
        if tag is None:
            # Fragments (<>...</>) have no tag and are not addressable
            return None

        start_row, start_col = ts_node.start_point[0], ts_node.start_point[1]
        end_row, end_col = ts_node.end_point[0], ts_node.end_point[1]
        start_line = start_row + 1
        end_line = end_row + 1

        span = NodeSpan(
            start_line=start_line,
            end_line=end_line,
            start_column=_char_column(line_bytes, start_row, start_col),
            end_column=_char_column(line_bytes, end_row, end_col),
        )
        text_content = _text_content(ts_node)
        ctx_start = max(0, start_line - 1 - self.context_lines)
        ctx_end = min(len(lines), end_line + self.context_lines)

        flags = frozenset(
            name for name, rule in self.flag_rules.items() if rule(tag, text_content)
        )

        node = MarkupNode(
            node_id=f"node_{ordinal}",
            tag=tag,
            text_content=text_content,
            span=span,
            code_snippet="\n".join(lines[start_line - 1: end_line]),
            context="\n".join(lines[ctx_start:ctx_end]),
            attributes=_attribute_names(opening),
            flags=flags,
            depth=depth,
            parent_id=parent_id,
        )
        logger.debug("%s <%s> lines %s depth %d", node.node_id, tag, span, depth)
        return node


# ===================================================================
# Tree-sitter helpers
# ===================================================================

def _tag_name(opening: Any) -> Optional[str]:
    name_node = opening.child_by_field_name("name")
    if name_node is None:
        return None
    if name_node.type in _NAME_TYPES:
        return name_node.text.decode("utf-8")
    return "unknown"


def _attribute_names(opening: Any) -> Tuple[str, ...]:
    names: List[str] = []
    for child in opening.named_children:
        if child.type != "jsx_attribute" or not child.named_children:
            continue
        names.append(child.named_children[0].text.decode("utf-8"))
    return tuple(names)


def _text_content(ts_node: Any) -> str:
    if ts_node.type != "jsx_element":
        return ""
    parts = []
    for child in ts_node.named_children:
        if child.type == "jsx_text":
            text = child.text.decode("utf-8").strip()
            if text:
                parts.append(" ".join(text.split()))
    return " ".join(parts)


def _char_column(line_bytes: List[bytes], row: int, byte_col: int) -> int:
    """Convert a tree-sitter byte column into a character column."""
    if row >= len(line_bytes):
        return byte_col
    return len(line_bytes[row][:byte_col].decode("utf-8", errors="ignore"))


def markup_depth(node: MarkupNode, nodes_by_id: Dict[str, MarkupNode]) -> int:
    """Count markup-element ancestors of *node* by walking parent links."""
    depth = 0
    current = node.parent_id
    while current is not None and current in nodes_by_id:
        depth += 1
        current = nodes_by_id[current].parent_id
    return depth


def ancestor_ids(node: MarkupNode, nodes_by_id: Dict[str, MarkupNode]) -> List[str]:
    """Return the ids of every indexed markup ancestor of *node*, nearest first."""
    ancestors: List[str] = []
    current = node.parent_id
    while current is not None and current in nodes_by_id:
        ancestors.append(current)
        current = nodes_by_id[current].parent_id
    return ancestors
