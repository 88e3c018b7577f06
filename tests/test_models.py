"""Tests for data models and session reporting."""

import pytest

from nodepatch.models import (
    FileState,
    NodeSpan,
    PatchOutcome,
    SessionReport,
    SourceFile,
    find_component_name,
)


@pytest.mark.parametrize("content, expected", [
    ("export default function LoginPage() {}", "LoginPage"),
    ("export default async function Loader() {}", "Loader"),
    ("export default class Shell extends React.Component {}", "Shell"),
    ("const App = () => null;\nexport default App;\n", "App"),
    ("export const Card = () => null;", "Card"),
    ("function Widget() {}", "Widget"),
    ("const helper = 1;", None),
])
def test_find_component_name(content, expected):
    assert find_component_name(content) == expected


def test_source_file_properties():
    source = SourceFile("src/App.jsx", "function App() {\n  return <button>Log in</button>;\n}\n")

    assert source.suffix == ".jsx"
    assert source.line_count == 4
    assert source.has_actionable_controls
    assert source.mentions_auth
    assert source.is_main_file
    assert source.with_content("x").content == "x"
    assert source.content.startswith("function")


def test_span_overlap():
    assert NodeSpan(5, 9).overlaps(NodeSpan(9, 12))
    assert not NodeSpan(5, 9).overlaps(NodeSpan(10, 12))
    assert NodeSpan(3, 5).line_count == 3
    assert str(NodeSpan(3, 5)) == "3-5"


def _outcome(path, state, success, reasoning="done", errors=()):
    return PatchOutcome(
        file_path=path, nodes_analyzed=4, nodes_selected=1, nodes_modified=1 if state is FileState.COMMITTED else 0,
        success=success, reasoning=reasoning, state=state, errors=errors,
    )


def test_report_totals_and_dict():
    report = SessionReport(
        request="make it red",
        outcomes=[
            _outcome("a.jsx", FileState.COMMITTED, True),
            _outcome("b.jsx", FileState.SKIPPED, False),
            _outcome("c.jsx", FileState.ROLLED_BACK, False, errors=("Write failed",)),
        ],
        oracle_calls=5,
        oracle_failures=1,
    )

    assert report.files_analyzed == 3
    assert report.files_modified == 1
    assert report.nodes_analyzed == 12
    assert report.nodes_modified == 1
    assert report.success
    assert [o.file_path for o in report.failed_outcomes] == ["c.jsx"]

    data = report.to_dict()
    assert data["oracle"] == {"calls": 5, "failures": 1}
    assert data["outcomes"][1]["state"] == "skipped"


def test_report_render():
    report = SessionReport(
        request="make it red",
        outcomes=[
            _outcome("a.jsx", FileState.COMMITTED, True, reasoning="1 node(s) updated"),
            _outcome("c.jsx", FileState.ROLLED_BACK, False, errors=("Write failed",)),
        ],
        dry_run=True,
    )
    text = report.render()

    assert text.splitlines()[0] == "MODIFICATION SESSION SUMMARY"
    assert "Success rate: 50%" in text
    assert "Dry run: nothing was written to disk" in text
    assert "Issues encountered:" in text
    assert "  - c.jsx: Write failed" in text


def test_empty_report_render():
    report = SessionReport(request="x")

    assert report.render() == "No files were processed in this session."
    assert not report.success
