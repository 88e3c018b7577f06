"""Tests for the oracle response decoders."""

from nodepatch.models import AnnotatedEdit, PlainText
from nodepatch.responses import (
    decode_edit_value,
    decode_patch_response,
    decode_relevance_response,
    extract_json_object,
)

KNOWN = ["node_1", "node_2", "node_3"]


class TestRelevanceDecoding:

    def test_plain_answer(self):
        text = "RELEVANT: YES\nSCORE: 85\nREASON: Contains the button\nTARGETS: node_1, node_3"
        decision = decode_relevance_response(text, KNOWN)

        assert decision.is_relevant
        assert decision.score == 85
        assert decision.reasoning == "Contains the button"
        assert decision.target_node_ids == ("node_1", "node_3")

    def test_fenced_answer_with_prose(self):
        text = "Sure, here it is:\n```\nRELEVANT: YES\nSCORE: 77\nREASON: ok\nTARGETS: node_2\n```\nBye"
        decision = decode_relevance_response(text, KNOWN)

        assert decision.score == 77
        assert decision.target_node_ids == ("node_2",)

    def test_markdown_emphasis_is_ignored(self):
        text = "**RELEVANT:** YES\n**SCORE:** 90\n**REASON:** bold\n**TARGETS:** [node_1]"
        decision = decode_relevance_response(text, KNOWN)

        assert decision.is_relevant
        assert decision.score == 90
        assert decision.target_node_ids == ("node_1",)

    def test_missing_score_is_not_relevant(self):
        text = "RELEVANT: YES\nREASON: forgot the score\nTARGETS: node_1"
        decision = decode_relevance_response(text, KNOWN)

        assert decision.is_relevant is False
        assert decision.score == 0
        assert "Malformed" in decision.reasoning
        assert decision.target_node_ids == ()

    def test_non_numeric_score_is_not_relevant(self):
        decision = decode_relevance_response("RELEVANT: YES\nSCORE: high\nTARGETS: node_1", KNOWN)
        assert decision.is_relevant is False
        assert decision.score == 0

    def test_score_is_clamped(self):
        decision = decode_relevance_response("RELEVANT: YES\nSCORE: 150\nTARGETS: node_1", KNOWN)
        assert decision.score == 100

    def test_unknown_and_duplicate_targets_are_dropped(self):
        text = "RELEVANT: YES\nSCORE: 80\nTARGETS: node_1, node_9, node_1"
        decision = decode_relevance_response(text, KNOWN)

        assert decision.target_node_ids == ("node_1",)
        assert decision.reasoning == "No reasoning provided"

    def test_first_occurrence_wins(self):
        text = "RELEVANT: NO\nSCORE: 10\nRELEVANT: YES\nSCORE: 99"
        decision = decode_relevance_response(text, KNOWN)

        assert decision.is_relevant is False
        assert decision.score == 10

    def test_empty_answer(self):
        decision = decode_relevance_response("   ", KNOWN)
        assert not decision.is_relevant
        assert decision.reasoning == "Empty response from oracle"

    def test_eligibility_threshold_boundary(self):
        below = decode_relevance_response("RELEVANT: YES\nSCORE: 69\nTARGETS: node_1", KNOWN)
        at = decode_relevance_response("RELEVANT: YES\nSCORE: 70\nTARGETS: node_1", KNOWN)

        assert not below.is_eligible(70)
        assert at.is_eligible(70)

    def test_relevant_without_targets_is_not_eligible(self):
        decision = decode_relevance_response("RELEVANT: YES\nSCORE: 95\nTARGETS:", KNOWN)
        assert decision.is_relevant
        assert not decision.is_eligible(70)


class TestPatchDecoding:

    def test_plain_text_entries(self):
        edits = decode_patch_response('{"node_1": "<b>x</b>"}')
        assert edits == {"node_1": PlainText("<b>x</b>")}

    def test_annotated_entries(self):
        text = (
            '```json\n{"node_2": {"modifiedCode": "<Icon />", '
            '"requiredImports": ["import { Icon } from \'./Icon\';"], "note": "added icon"}}\n```'
        )
        edits = decode_patch_response(text)
        value = edits["node_2"]

        assert isinstance(value, AnnotatedEdit)
        assert value.code == "<Icon />"
        assert value.required_imports == ("import { Icon } from './Icon';",)
        assert value.extras == {"note": "added icon"}

    def test_json_inside_prose(self):
        edits = decode_patch_response('Here you go: {"node_3": "<p>hi</p>"} hope it helps')
        assert edits == {"node_3": PlainText("<p>hi</p>")}

    def test_unusable_entries_are_skipped(self):
        text = '{"node_1": 42, "node_2": "", "node_3": {"note": "no code"}, "node_4": "<i/>"}'
        assert decode_patch_response(text) == {"node_4": PlainText("<i/>")}

    def test_no_json(self):
        assert decode_patch_response("I cannot do that.") == {}
        assert decode_patch_response("") == {}

    def test_snake_case_keys(self):
        value = decode_edit_value({"modified_code": "<a/>", "required_imports": "not-a-list"})
        assert value == AnnotatedEdit(code="<a/>")

    def test_extract_json_prefers_fenced_block(self):
        text = 'noise {"a": 1}\n```json\n{"b": 2}\n```'
        assert extract_json_object(text) == {"b": 2}
