"""Tests for splicing node edits into a buffer."""

from nodepatch.diff_engine import DiffEngine
from nodepatch.models import NodeEdit, SourceFile


def _numbered(count: int) -> str:
    return "\n".join(f"line {i}" for i in range(1, count + 1))


def test_edits_of_different_sizes_land_in_place(make_node):
    """Bottom-up application keeps every replacement at its original position."""
    source = SourceFile(path="a.jsx", content=_numbered(22))
    nodes = [make_node("node_1", 2), make_node("node_2", 10, 12), make_node("node_3", 20)]
    edits = [
        NodeEdit("node_1", "A1\nA2\nA3"),
        NodeEdit("node_2", "B"),
        NodeEdit("node_3", "C1\nC2"),
    ]

    result = DiffEngine().apply_edits(source, nodes, edits)

    expected = (
        ["line 1", "A1", "A2", "A3"]
        + [f"line {i}" for i in range(3, 10)]
        + ["B"]
        + [f"line {i}" for i in range(13, 20)]
        + ["C1", "C2", "line 21", "line 22"]
    )
    assert result.new_content.split("\n") == expected
    assert result.applied_count == 3
    assert result.applied_ids == ["node_3", "node_2", "node_1"]
    assert result.dropped_ids == []


def test_edit_order_in_input_does_not_matter(make_node):
    source = SourceFile(path="a.jsx", content=_numbered(6))
    nodes = [make_node("node_1", 1), make_node("node_2", 5)]
    forward = DiffEngine().apply_edits(source, nodes, [NodeEdit("node_1", "X\nY"), NodeEdit("node_2", "Z")])
    backward = DiffEngine().apply_edits(source, nodes, [NodeEdit("node_2", "Z"), NodeEdit("node_1", "X\nY")])

    assert forward.new_content == backward.new_content == "X\nY\nline 2\nline 3\nline 4\nZ\nline 6"


def test_overlapping_spans_keep_the_enclosing_edit(make_node):
    source = SourceFile(path="a.jsx", content=_numbered(10))
    outer = make_node("node_1", 5, 9)
    inner = make_node("node_2", 6, 6, parent_id="node_1", depth=1)
    edits = [NodeEdit("node_1", "OUTER"), NodeEdit("node_2", "INNER")]

    result = DiffEngine().apply_edits(source, [outer, inner], edits)

    assert result.applied_ids == ["node_1"]
    assert result.dropped_ids == ["node_2"]
    assert result.new_content.split("\n") == ["line 1", "line 2", "line 3", "line 4", "OUTER", "line 10"]


def test_edits_for_unknown_nodes_are_ignored(make_node):
    source = SourceFile(path="a.jsx", content=_numbered(3))
    result = DiffEngine().apply_edits(source, [make_node("node_1", 2)], [NodeEdit("node_7", "nope")])

    assert result.applied_count == 0
    assert result.new_content == source.content


def test_span_outside_buffer_is_dropped(make_node):
    source = SourceFile(path="a.jsx", content=_numbered(3))
    result = DiffEngine().apply_edits(source, [make_node("node_1", 30, 31)], [NodeEdit("node_1", "x")])

    assert result.applied_count == 0
    assert result.dropped_ids == ["node_1"]
    assert result.new_content == source.content


def test_trailing_newline_in_replacement_is_not_doubled(make_node):
    source = SourceFile(path="a.jsx", content="a\nb\nc\n")
    result = DiffEngine().apply_edits(source, [make_node("node_1", 2)], [NodeEdit("node_1", "B\n")])

    assert result.new_content == "a\nB\nc\n"


def test_crlf_line_endings_are_preserved(make_node):
    source = SourceFile(path="a.jsx", content="a\r\nb\r\nc\r\n")
    result = DiffEngine().apply_edits(source, [make_node("node_1", 2)], [NodeEdit("node_1", "B1\nB2")])

    assert result.new_content == "a\r\nB1\r\nB2\r\nc\r\n"


def test_create_diff():
    diff = DiffEngine().create_diff("a\nb\n", "a\nc\n", "src/App.jsx")

    assert "--- a/src/App.jsx" in diff
    assert "+++ b/src/App.jsx" in diff
    assert "-b" in diff
    assert "+c" in diff
