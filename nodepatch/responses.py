"""Decoders for the two oracle response grammars.

Both decoders are pure and never raise: anything missing or malformed
decodes to the conservative default (not relevant / no edit).
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from .models import AnnotatedEdit, NodeEditValue, PlainText, RelevanceDecision

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\r?\n(.*?)```", re.DOTALL)
_FIELD_RE = re.compile(r"^\s*[*_]*\s*(RELEVANT|SCORE|REASON|TARGETS)\s*[*_]*\s*:\s*(.*)$", re.IGNORECASE)
_SCORE_RE = re.compile(r"^\[?\s*(\d{1,3})\b")
_NODE_ID_RE = re.compile(r"node_\d+")


def extract_fenced_block(text: str) -> Optional[str]:
    """Return the body of the first fenced block in *text*, if any."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1)
    return None


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the first JSON object found in *text*.

    Fenced blocks are tried first, then every ``{`` in the raw text.
    """
    decoder = json.JSONDecoder()
    candidates: List[str] = [m.group(1) for m in _FENCE_RE.finditer(text)]
    candidates.append(text)

    for candidate in candidates:
        for start in _brace_positions(candidate):
            try:
                value, _ = decoder.raw_decode(candidate, start)
            except json.JSONDecodeError:
                continue
            if isinstance(value, dict):
                return value
    return None


def _brace_positions(text: str) -> Iterable[int]:
    index = text.find("{")
    while index != -1:
        yield index
        index = text.find("{", index + 1)


# ---------------------------------------------------------------------------
# Relevance grammar: RELEVANT / SCORE / REASON / TARGETS
# ---------------------------------------------------------------------------

def decode_relevance_response(text: Optional[str], known_ids: Iterable[str]) -> RelevanceDecision:
    """Decode a ``relevance/v1`` answer into a :class:`RelevanceDecision`.

    A missing or malformed RELEVANT or SCORE field yields
    ``is_relevant=False, score=0``. Target ids that are not in
    *known_ids* are dropped.
    """
    if not text or not text.strip():
        return RelevanceDecision.rejected("Empty response from oracle")

    block = extract_fenced_block(text)
    fields = _relevance_fields(block) if block else {}
    if not fields:
        fields = _relevance_fields(text)

    reasoning = fields.get("REASON") or "No reasoning provided"
    relevant = _decode_flag(fields.get("RELEVANT"))
    score = _decode_score(fields.get("SCORE"))

    if relevant is None or score is None:
        missing = [name for name, value in (("RELEVANT", relevant), ("SCORE", score)) if value is None]
        logger.debug("Relevance response missing/malformed fields: %s", ", ".join(missing))
        return RelevanceDecision.rejected(f"Malformed relevance response ({', '.join(missing)}); {reasoning}")

    return RelevanceDecision(
        is_relevant=relevant,
        score=score,
        reasoning=reasoning,
        target_node_ids=_decode_targets(fields.get("TARGETS", ""), known_ids),
    )


def _relevance_fields(body: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for line in body.splitlines():
        match = _FIELD_RE.match(line)
        if match:
            # First occurrence of each field wins
            fields.setdefault(match.group(1).upper(), match.group(2).strip().lstrip("*_").strip())
    return fields


def _decode_flag(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    token = value.strip().strip("[]*").strip().upper()
    if token.startswith("YES"):
        return True
    if token.startswith("NO"):
        return False
    return None


def _decode_score(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    match = _SCORE_RE.match(value.strip())
    if not match:
        return None
    return max(0, min(100, int(match.group(1))))


def _decode_targets(value: str, known_ids: Iterable[str]) -> tuple:
    known = set(known_ids)
    targets: List[str] = []
    for node_id in _NODE_ID_RE.findall(value):
        if node_id in known and node_id not in targets:
            targets.append(node_id)
    return tuple(targets)


# ---------------------------------------------------------------------------
# Patch grammar: {node_id: "code"} or {node_id: {"modifiedCode": ..., ...}}
# ---------------------------------------------------------------------------

def decode_patch_response(text: Optional[str]) -> Dict[str, NodeEditValue]:
    """Decode a ``node-patch/v1`` answer into ``node_id -> edit`` entries.

    Entries with an unknown shape or empty code are skipped.
    """
    if not text or not text.strip():
        return {}

    payload = extract_json_object(text)
    if payload is None:
        logger.debug("No JSON object found in patch response")
        return {}

    edits: Dict[str, NodeEditValue] = {}
    for node_id, raw in payload.items():
        value = decode_edit_value(raw)
        if value is None:
            logger.debug("Skipping undecodable edit for %s", node_id)
            continue
        edits[str(node_id)] = value
    return edits


def decode_edit_value(raw: Any) -> Optional[NodeEditValue]:
    """Decode one response entry using an explicit shape check."""
    if isinstance(raw, str):
        return PlainText(raw) if raw.strip() else None

    if isinstance(raw, dict):
        code = raw.get("modifiedCode", raw.get("modified_code"))
        if not isinstance(code, str) or not code.strip():
            return None
        imports = raw.get("requiredImports", raw.get("required_imports")) or []
        if not isinstance(imports, list):
            imports = []
        extras = {
            key: value for key, value in raw.items()
            if key not in ("modifiedCode", "modified_code", "requiredImports", "required_imports")
        }
        return AnnotatedEdit(
            code=code,
            required_imports=tuple(str(item) for item in imports if isinstance(item, str) and item.strip()),
            extras=extras,
        )

    return None
