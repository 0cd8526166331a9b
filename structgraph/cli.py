"""Typer-based CLI for structgraph."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config
from .analyzer import Analyzer, AnalyzerOptions
from .config_manager import mask_key, resolve_llm_settings
from .errors import FatalPreconditionError, SeedNotFoundError
from .graph_export import save_report
from .parser import build_source_model

console = Console()
err_console = Console(stderr=True)

REPORT_FORMATS = ("markdown", "json")
DEFAULT_OUTPUT = {"markdown": "analysis_report.md", "json": "analysis_report.json"}

app = typer.Typer(
    help="Go struct dependency graph analyzer.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"structgraph v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """Map the dependencies of a Go struct, breadth-first from a starting point."""


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False, show_time=verbose)],
        force=True,
    )


def _fail(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {message}", highlight=False)
    raise typer.Exit(code=1)


@app.command("analyze")
def analyze(
    project_path: Path = typer.Argument(..., help="Root directory of the Go project."),
    start: str = typer.Option(..., "--start", "-s", help="Struct to start from."),
    depth: int = typer.Option(config.DEFAULT_DEPTH, "--depth", "-d", help="Maximum traversal depth."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Report file path."),
    fmt: str = typer.Option("markdown", "--format", "-f", help="Report format: markdown or json."),
    blacklist: Optional[Path] = typer.Option(None, "--blacklist", "-b", help="YAML file with types/packages to ignore."),
    llm: str = typer.Option("", "--llm", help="LLM provider for descriptions: glm, claude, openai, ollama."),
    api_key: str = typer.Option("", "--api-key", "-k", help="API key for the LLM provider."),
    model: str = typer.Option("", "--model", "-m", help="LLM model name."),
    mermaid: Optional[Path] = typer.Option(None, "--mermaid", help="Also write a Mermaid graph to this file."),
    dot: Optional[Path] = typer.Option(None, "--dot", help="Also write a Graphviz DOT graph to this file."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Disable the description cache."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging."),
):
    """Analyze dependencies starting from a struct and write a report."""
    _configure_logging(verbose)

    fmt = fmt.lower()
    if fmt not in REPORT_FORMATS:
        _fail(f"unsupported format '{fmt}', choose one of: {', '.join(REPORT_FORMATS)}")

    try:
        settings = resolve_llm_settings(provider=llm, api_key=api_key, model=model)
    except ValueError as exc:
        _fail(str(exc))

    options = AnalyzerOptions(
        project_path=project_path,
        seed=start,
        max_depth=depth,
        blacklist_file=blacklist,
        llm_provider=settings.provider if settings.enabled else "",
        api_key=settings.api_key,
        llm_model=settings.model,
        llm_endpoint=settings.endpoint,
        enable_cache=not no_cache,
    )
    if settings.provider and not settings.enabled:
        err_console.print(f"[yellow]No API key for {settings.provider}; descriptions are skipped.[/yellow]")

    try:
        result = Analyzer(options).analyze()
    except SeedNotFoundError as exc:
        err_console.print(f"[bold red]Error:[/bold red] start struct '{exc.seed}' not found", highlight=False)
        if exc.available:
            err_console.print("Available structs:")
            for name in exc.available:
                err_console.print(f"  - {name}", highlight=False)
        raise typer.Exit(code=1)
    except FatalPreconditionError as exc:
        _fail(str(exc))

    report_path = save_report(result, output or Path(DEFAULT_OUTPUT[fmt]), fmt)
    if mermaid:
        save_report(result, mermaid, "mermaid")
    if dot:
        save_report(result, dot, "dot")

    table = Table(title=f"Dependencies of {result.seed}", show_lines=False)
    table.add_column("Struct", style="cyan")
    table.add_column("Package")
    table.add_column("Depth", justify="right")
    table.add_column("Deps", justify="right")
    for node in result.nodes:
        table.add_row(node.name, node.package, str(node.depth), str(len(node.edges)))
    console.print(table)

    console.print(f"Structs: {result.total_nodes} | Dependencies: {result.total_edges} | Cycles: {len(result.cycles)}")
    for cycle in result.cycles:
        console.print(f"  [yellow]cycle[/yellow] {' -> '.join(cycle)}", highlight=False)
    console.print(f"Report written to {report_path}", highlight=False)
    if mermaid:
        console.print(f"Mermaid graph written to {mermaid}", highlight=False)
    if dot:
        console.print(f"DOT graph written to {dot}", highlight=False)


@app.command("structs")
def structs(
    project_path: Path = typer.Argument(..., help="Root directory of the Go project."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging."),
):
    """List the structs found in a project."""
    _configure_logging(verbose)
    try:
        model = build_source_model(project_path)
    except FatalPreconditionError as exc:
        _fail(str(exc))

    symbols = sorted(model.types(), key=lambda s: (s.name, s.package))
    if not symbols:
        console.print("No structs found.")
        raise typer.Exit(code=0)

    table = Table(title=f"Structs in {model.module_name}")
    table.add_column("Struct", style="cyan")
    table.add_column("Package")
    table.add_column("Fields", justify="right")
    table.add_column("Methods", justify="right")
    for symbol in symbols:
        table.add_row(symbol.name, symbol.package, str(len(symbol.fields)), str(len(symbol.methods)))
    console.print(table)
    if model.failed_files:
        err_console.print(f"[yellow]{len(model.failed_files)} file(s) could not be parsed.[/yellow]")


@app.command("show-llm")
def show_llm(
    llm: str = typer.Option("", "--llm", help="Provider to inspect instead of the configured one."),
):
    """Show the effective LLM configuration."""
    try:
        settings = resolve_llm_settings(provider=llm)
    except ValueError as exc:
        _fail(str(exc))

    console.print("[bold]LLM configuration[/bold]")
    if not settings.provider:
        console.print("  Provider  (none, descriptions disabled)")
    else:
        console.print(f"  Provider  {settings.provider}", highlight=False)
        console.print(f"  Model     {settings.model}", highlight=False)
        if settings.endpoint:
            console.print(f"  Endpoint  {settings.endpoint}", highlight=False)
        source = f" (from {settings.api_key_source})" if settings.api_key_source else ""
        console.print(f"  API Key   {mask_key(settings.api_key)}{source}", highlight=False)
    console.print(f"  Config    {config.CONFIG_FILE}", highlight=False)


if __name__ == "__main__":
    app()
