"""Typer-based CLI for nodepatch."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config
from .config_manager import DEFAULT_CONFIGS, get_provider_config, save_config
from .llm import LocalLLM
from .models import FileState, SessionReport
from .oracle import LLMOracle
from .orchestrator import PatchSession
from .parser import TreeSitterIndexer
from .project import canonical_path, load_source_files

console = Console()

app = typer.Typer(
    help="🧩 nodepatch: apply natural-language changes to JSX elements, node by node.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

_STATE_STYLES = {
    FileState.COMMITTED: "green",
    FileState.ROLLED_BACK: "yellow",
    FileState.SKIPPED: "dim",
}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"nodepatch v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """nodepatch: node-level patching of React/JSX files driven by an LLM."""
    pass


def _render_report(report: SessionReport) -> None:
    table = Table(title="Patch session", show_header=True, show_lines=False)
    table.add_column("File", style="cyan")
    table.add_column("State")
    table.add_column("Score", justify="right")
    table.add_column("Nodes (analyzed/selected/modified)", justify="right")
    table.add_column("Reasoning")

    for outcome in report.outcomes:
        style = _STATE_STYLES.get(outcome.state, "white")
        table.add_row(
            outcome.file_path,
            f"[{style}]{outcome.state.value}[/{style}]",
            str(outcome.score),
            f"{outcome.nodes_analyzed}/{outcome.nodes_selected}/{outcome.nodes_modified}",
            outcome.reasoning,
        )
    console.print(table)

    for outcome in report.outcomes:
        for follow_up in outcome.follow_ups:
            console.print(f"[yellow]⚠ {outcome.file_path}: {follow_up}[/yellow]")

    console.print(
        f"\nFiles modified: [bold]{report.files_modified}[/bold] of {report.files_analyzed} | "
        f"Oracle calls: {report.oracle_calls} ({report.oracle_failures} failed)"
        + (" | [magenta]dry run[/magenta]" if report.dry_run else "")
    )


@app.command("patch")
def patch_project(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Project root directory."),
    request: str = typer.Argument(..., help="Natural-language description of the change."),
    files: Optional[List[Path]] = typer.Option(None, "--file", "-f", help="Limit the session to these files."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the changes without writing them."),
    workers: int = typer.Option(config.MAX_WORKERS, "--workers", "-w", min=1, help="Files processed in parallel."),
    threshold: int = typer.Option(
        config.RELEVANCE_THRESHOLD, "--threshold", "-t", min=0, max=100, help="Minimum relevance score."
    ),
    show_diff: bool = typer.Option(False, "--diff", help="Print unified diffs of committed files."),
    as_json: bool = typer.Option(False, "--json", help="Print the session report as JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
    llm_provider: str = typer.Option(config.LLM_PROVIDER, help="LLM provider."),
    llm_model: str = typer.Option(config.LLM_MODEL, help="LLM model."),
    llm_api_key: Optional[str] = typer.Option(config.LLM_API_KEY, help="API key for cloud LLM providers."),
):
    """Apply REQUEST to the markup elements of a project.

    Example:
      nodepatch patch ./my-app 'make the sign in button red'
      nodepatch patch ./my-app 'rename the Save button to Submit' -f src/Form.tsx --dry-run
    """
    _configure_logging(verbose)
    root = project_path.resolve()
    try:
        sources = load_source_files(root, files)
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    if not sources:
        console.print("[red]✗[/red] No markup files found.")
        raise typer.Exit(code=1)

    oracle = LLMOracle(LocalLLM(model=llm_model, provider=llm_provider, api_key=llm_api_key))
    session = PatchSession(
        oracle,
        root,
        sources,
        threshold=threshold,
        max_workers=workers,
        dry_run=dry_run,
    )
    try:
        report = session.run(request)
    except KeyboardInterrupt:
        session.cancel()
        console.print("[yellow]Cancelled; files already committed stay committed.[/yellow]")
        raise typer.Exit(code=130)

    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _render_report(report)
        if show_diff:
            for outcome in report.outcomes:
                if outcome.diff:
                    console.print(outcome.diff, markup=False, highlight=False)

    if not report.success:
        raise typer.Exit(code=1)


@app.command("inspect")
def inspect_file(
    file_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSX/TSX file to index."),
    as_json: bool = typer.Option(False, "--json", help="Print nodes as JSON."),
):
    """List the markup nodes the indexer finds in a file."""
    root = file_path.resolve().parent
    sources = load_source_files(root, [file_path.resolve()])
    source = sources.get(canonical_path(root, file_path.resolve()))
    if source is None:
        console.print(f"[red]✗[/red] Could not read {file_path}")
        raise typer.Exit(code=1)

    nodes = TreeSitterIndexer().index(source)
    if as_json:
        typer.echo(json.dumps([
            {
                "id": node.node_id,
                "tag": node.tag,
                "start_line": node.start_line,
                "end_line": node.end_line,
                "depth": node.depth,
                "parent_id": node.parent_id,
                "attributes": list(node.attributes),
                "flags": sorted(node.flags),
                "text": node.text_content,
            }
            for node in nodes
        ], indent=2))
        return

    if not nodes:
        console.print("No markup nodes found (unparsable file or no JSX).")
        return

    table = Table(title=f"Markup nodes in {source.path}", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Tag")
    table.add_column("Lines", justify="right")
    table.add_column("Depth", justify="right")
    table.add_column("Flags")
    table.add_column("Text")
    for node in nodes:
        table.add_row(
            node.node_id,
            f"{'  ' * node.depth}<{node.tag}>",
            str(node.span),
            str(node.depth),
            ", ".join(sorted(node.flags)),
            node.preview(config.PREVIEW_TEXT_CHARS),
        )
    console.print(table)


@app.command("show-llm")
def show_llm():
    """Show the configured LLM provider."""
    console.print(f"Provider: [bold]{config.LLM_PROVIDER}[/bold]")
    console.print(f"Model:    {config.LLM_MODEL}")
    console.print(f"Endpoint: {config.LLM_ENDPOINT}")
    console.print(f"API key:  {'set' if config.LLM_API_KEY else 'not set'}")
    console.print(f"Config:   {config.CONFIG_FILE}")


@app.command("set-llm")
def set_llm(
    provider: str = typer.Option(..., "--provider", "-p", help="ollama, groq, openai, anthropic, gemini, openrouter."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name (provider default if omitted)."),
    api_key: str = typer.Option("", "--api-key", "-k", help="API key for cloud providers."),
    endpoint: str = typer.Option("", "--endpoint", "-e", help="Custom endpoint."),
):
    """Persist the LLM provider settings to config.toml."""
    provider = provider.lower()
    if provider not in DEFAULT_CONFIGS:
        raise typer.BadParameter(f"Unknown provider '{provider}'. Choose from: {', '.join(DEFAULT_CONFIGS)}")
    chosen_model = model or get_provider_config(provider)["model"]
    if save_config(provider, chosen_model, api_key=api_key, endpoint=endpoint):
        console.print(f"[green]✓[/green] Saved {provider} / {chosen_model} to {config.CONFIG_FILE}")
    else:
        console.print(f"[red]✗[/red] Could not write {config.CONFIG_FILE}")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
