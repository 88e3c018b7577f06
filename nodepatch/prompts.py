"""Versioned request renderers for the content oracle."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .models import MarkupNode

RELEVANCE_GRAMMAR = "relevance/v1"
PATCH_GRAMMAR = "node-patch/v1"

_FLAG_LABELS = {"actionable": "[ACTION]", "auth": "[AUTH]"}


@dataclass(frozen=True)
class CandidateNode:
    node_id: str
    tag: str
    text_preview: str
    flags: Sequence[str] = ()

    def render(self) -> str:
        labels = "".join(_FLAG_LABELS.get(flag, f"[{flag.upper()}]") for flag in sorted(self.flags))
        return f'{self.node_id}: <{self.tag}> "{self.text_preview}" {labels}'.rstrip()


@dataclass(frozen=True)
class RelevanceRequest:
    request: str
    file_path: str
    candidates: List[CandidateNode]
    component_name: Optional[str] = None
    has_actionable_controls: bool = False
    mentions_auth: bool = False
    total_nodes: int = 0


@dataclass(frozen=True)
class FileContext:
    file_path: str
    component_name: str = "Component"
    component_purpose: str = "React component"
    project_summary: str = ""


@dataclass(frozen=True)
class PatchRequest:
    request: str
    context: FileContext
    nodes: List[MarkupNode] = field(default_factory=list)


def render_relevance_prompt(req: RelevanceRequest) -> str:
    elements = "\n".join(candidate.render() for candidate in req.candidates)
    if req.total_nodes > len(req.candidates):
        elements += f"\n... ({req.total_nodes - len(req.candidates)} more elements not shown)"

    return f"""GRAMMAR: {RELEVANCE_GRAMMAR}
USER REQUEST: "{req.request}"
FILE: {req.file_path}
COMPONENT: {req.component_name or 'Unknown'}
HAS ACTIONABLE CONTROLS: {'yes' if req.has_actionable_controls else 'no'}
MENTIONS AUTHENTICATION: {'yes' if req.mentions_auth else 'no'}

ELEMENTS IN FILE:
{elements}

Question: Does this file contain specific elements that match the user's request?

Answer with ONLY this format:
RELEVANT: YES/NO
SCORE: 0-100
REASON: [brief explanation]
TARGETS: [comma-separated node IDs if relevant]

Example:
RELEVANT: YES
SCORE: 85
REASON: Contains the sign in button that matches the request
TARGETS: node_1,node_3
"""


def render_patch_prompt(req: PatchRequest) -> str:
    snippets = "\n\n".join(
        f"**{node.node_id}:** (lines {node.start_line}-{node.end_line})\n```jsx\n{node.code_snippet}\n```"
        for node in req.nodes
    )
    ctx = req.context

    return f"""GRAMMAR: {PATCH_GRAMMAR}
**USER REQUEST:** "{req.request}"

**FILE:** {ctx.file_path}
**COMPONENT:** {ctx.component_name} ({ctx.component_purpose})
**PROJECT:** {ctx.project_summary}

**CODE SNIPPETS TO MODIFY:**
{snippets}

**RULES:**
1. Each snippet covers whole source lines; return the complete replacement for those lines.
2. Change only what the request needs. Keep indentation, props and handlers you do not touch.
3. Do not add import or export statements. List any new import you rely on under "requiredImports".
4. Leave out any node you cannot change confidently.

**RESPONSE FORMAT:** Return ONLY this JSON:
```json
{{
  "node_1": {{"modifiedCode": "<modified JSX for node_1>", "requiredImports": []}},
  "node_5": "<modified JSX for node_5>"
}}
```
"""
