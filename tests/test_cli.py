"""Integration tests for CLI commands."""

import json
from pathlib import Path

import toml
from typer.testing import CliRunner

from nodepatch import __version__
from nodepatch.cli import app

runner = CliRunner()


class TestVersion:

    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"nodepatch v{__version__}" in result.stdout


class TestInspectCommand:
    """Tests for 'nodepatch inspect'."""

    def test_inspect_json(self, sample_app: Path):
        result = runner.invoke(app, ["inspect", str(sample_app / "LoginPage.tsx"), "--json"])

        assert result.exit_code == 0
        nodes = json.loads(result.stdout)
        assert [n["id"] for n in nodes] == ["node_1", "node_2", "node_3", "node_4", "node_5"]
        assert nodes[3]["tag"] == "button"
        assert nodes[3]["start_line"] == 11
        assert nodes[3]["parent_id"] == "node_1"
        assert nodes[3]["flags"] == ["actionable", "auth"]

    def test_inspect_table(self, sample_app: Path):
        result = runner.invoke(app, ["inspect", str(sample_app / "SiteChrome.jsx")])

        assert result.exit_code == 0
        assert "node_1" in result.stdout
        assert "node_2" in result.stdout

    def test_inspect_missing_file(self):
        result = runner.invoke(app, ["inspect", "/nonexistent/App.jsx"])
        assert result.exit_code != 0


class TestPatchCommand:
    """Tests for 'nodepatch patch' (LocalLLM is mocked in conftest)."""

    def test_patch_commits_relevant_file(self, sample_app: Path):
        result = runner.invoke(app, ["patch", str(sample_app), "make the sign in button red", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        states = {o["file_path"]: o["state"] for o in data["outcomes"]}
        assert states == {"LoginPage.tsx": "committed", "SiteChrome.jsx": "skipped"}
        assert data["totals"]["files_modified"] == 1
        assert "bg-red-500" in (sample_app / "LoginPage.tsx").read_text()

    def test_patch_dry_run_leaves_files(self, sample_app: Path):
        before = (sample_app / "LoginPage.tsx").read_text()

        result = runner.invoke(app, ["patch", str(sample_app), "make the sign in button red", "--dry-run"])

        assert result.exit_code == 0
        assert "Files modified: 1 of 2" in result.stdout
        assert (sample_app / "LoginPage.tsx").read_text() == before

    def test_patch_single_file_without_match_exits_nonzero(self, sample_app: Path):
        result = runner.invoke(app, ["patch", str(sample_app), "make the sign in button red", "-f", "SiteChrome.jsx"])

        assert result.exit_code == 1

    def test_patch_rejects_file_outside_project(self, sample_app: Path, temp_dir: Path):
        outside = temp_dir / "Outside.jsx"
        outside.write_text("export const O = () => <i />;\n")

        result = runner.invoke(app, ["patch", str(sample_app), "x", "-f", str(outside)])

        assert result.exit_code != 0

    def test_patch_empty_project(self, temp_dir: Path):
        result = runner.invoke(app, ["patch", str(temp_dir), "x"])

        assert result.exit_code == 1
        assert "No markup files found" in result.stdout


class TestLLMCommands:

    def test_show_llm(self):
        result = runner.invoke(app, ["show-llm"])

        assert result.exit_code == 0
        assert "Provider:" in result.stdout

    def test_set_llm(self, temp_config: Path):
        result = runner.invoke(app, ["set-llm", "--provider", "groq", "--api-key", "gsk_test"])

        assert result.exit_code == 0
        saved = toml.load(temp_config)
        assert saved["llm"]["provider"] == "groq"
        assert saved["llm"]["model"] == "llama-3.3-70b-versatile"

    def test_set_llm_unknown_provider(self, temp_config: Path):
        result = runner.invoke(app, ["set-llm", "--provider", "nope"])

        assert result.exit_code != 0
        assert not temp_config.exists()
