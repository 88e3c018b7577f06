"""Relevance selector: asks the oracle which nodes of a file a request targets."""

from __future__ import annotations

import logging
from typing import List, Optional

from . import config
from .errors import OracleFailure
from .models import MarkupNode, RelevanceDecision, SourceFile
from .oracle import OracleClient
from .prompts import CandidateNode, RelevanceRequest, render_relevance_prompt
from .responses import decode_relevance_response

logger = logging.getLogger(__name__)

RELEVANCE_MAX_TOKENS = 300


class RelevanceSelector:
    """Builds the bounded relevance request and decodes the verdict."""

    def __init__(
        self,
        client: OracleClient,
        max_nodes: Optional[int] = None,
        preview_chars: Optional[int] = None,
    ) -> None:
        self.client = client
        self.max_nodes = config.MAX_PREVIEW_NODES if max_nodes is None else max_nodes
        self.preview_chars = config.PREVIEW_TEXT_CHARS if preview_chars is None else preview_chars

    def build_request(self, request: str, source: SourceFile, nodes: List[MarkupNode]) -> RelevanceRequest:
        candidates = [
            CandidateNode(
                node_id=node.node_id,
                tag=node.tag,
                text_preview=node.preview(self.preview_chars),
                flags=tuple(sorted(node.flags)),
            )
            for node in nodes[: self.max_nodes]
        ]
        return RelevanceRequest(
            request=request,
            file_path=source.path,
            candidates=candidates,
            component_name=source.component_name,
            has_actionable_controls=source.has_actionable_controls,
            mentions_auth=source.mentions_auth,
            total_nodes=len(nodes),
        )

    def select_targets(self, request: str, source: SourceFile, nodes: List[MarkupNode]) -> RelevanceDecision:
        """Return the oracle's decision for *source*; never raises on oracle errors."""
        if not nodes:
            return RelevanceDecision.rejected("No markup nodes available")

        prompt = render_relevance_prompt(self.build_request(request, source, nodes))
        try:
            answer = self.client.ask(prompt, purpose="relevance", max_tokens=RELEVANCE_MAX_TOKENS)
        except OracleFailure as exc:
            logger.warning("Relevance analysis failed for %s: %s", source.path, exc)
            return RelevanceDecision.rejected(f"Oracle failure during relevance analysis: {exc}")

        decision = decode_relevance_response(answer, [node.node_id for node in nodes])
        logger.info(
            "Relevance for %s: relevant=%s score=%d targets=%s",
            source.path, decision.is_relevant, decision.score, ",".join(decision.target_node_ids) or "-",
        )
        return decision
