"""Typer-based CLI for DocGraph documentation generation."""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__, config_manager
from .errors import DocGraphError
from .graph import DependencyGraphBuilder
from .llm import create_client
from .log import configure_logging
from .models import PipelineContext, Scope, SourceFile
from .orchestrator import generate_documentation
from .parser import collect_source_files
from .stages import StructuralInput, StructuralResult, StructuralStage

app = typer.Typer(
    help="📚 DocGraph CLI — structure-aware documentation generation.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"DocGraph CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log pipeline progress to stderr."),
):
    """DocGraph CLI: analyze a codebase and generate Markdown documentation."""
    configure_logging(verbose)


def _load_sources(project_path: Path) -> List[SourceFile]:
    files = collect_source_files(project_path.resolve())
    if not files:
        raise typer.BadParameter(f"No supported source files found under '{project_path}'.")
    return files


def _make_context(project_path: Path, scope: Scope = Scope.REPOSITORY, target: Optional[str] = None) -> PipelineContext:
    return PipelineContext(
        request_id=uuid.uuid4().hex,
        repository_id=project_path.resolve().name,
        user_id=os.environ.get("USER", "local"),
        scope=scope,
        target=target,
    )


def _analyze(project_path: Path) -> StructuralResult:
    sources = _load_sources(project_path)
    settings = config_manager.load_settings()
    stage = StructuralStage(workers=settings.workers)
    return stage.execute(_make_context(project_path), StructuralInput(files=sources))


@app.command("generate")
def generate(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    scope: Scope = typer.Option(Scope.REPOSITORY, "--scope", "-s", case_sensitive=False, help="file, module or repository."),
    target: Optional[str] = typer.Option(None, "--target", "-t", help="File path or module name for file/module scope."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write Markdown here instead of stdout."),
    provider: Optional[str] = typer.Option(None, help="LLM provider: anthropic, openai, openrouter, groq, ollama."),
    model: Optional[str] = typer.Option(None, help="Model name for the provider."),
    api_key: Optional[str] = typer.Option(None, help="API key for cloud providers."),
    max_tokens: Optional[int] = typer.Option(None, min=1, help="Maximum output tokens."),
):
    """Generate Markdown documentation for a project, module, or file."""
    settings = config_manager.load_settings(
        provider=provider,
        model=model,
        api_key=api_key,
        max_output_tokens=max_tokens,
    )
    sources = _load_sources(project_path)
    context = _make_context(project_path, scope, target)

    try:
        result = generate_documentation(context, sources, client=create_client(settings), settings=settings)
    except DocGraphError as exc:
        err_console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(code=1)

    if output:
        output.write_text(result.documentation, encoding="utf-8")
        err_console.print(f"[green]✓[/green] Wrote documentation to {output}")
    else:
        typer.echo(result.documentation)

    meta = result.metadata
    err_console.print(
        f"Files: {len(meta.files_analyzed)} | Functions: {meta.functions_documented} | "
        f"Classes: {meta.classes_documented} | Modules: {meta.modules_documented} | Time: {meta.generation_time}ms"
    )


@app.command("analyze")
def analyze(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    as_json: bool = typer.Option(False, "--json", help="Print the structural model as JSON."),
):
    """Show the structural model and insights without calling an LLM."""
    result = _analyze(project_path)

    if as_json:
        typer.echo(json.dumps({
            "structure": result.structure.to_dict(),
            "insights": asdict(result.insights),
        }, indent=2))
        return

    table = Table(title=f"Structure of {project_path.resolve().name}")
    table.add_column("File", style="cyan")
    table.add_column("Language")
    table.add_column("Functions", justify="right")
    table.add_column("Classes", justify="right")
    table.add_column("Imports", justify="right")
    for parsed in result.structure.files:
        table.add_row(
            parsed.path,
            parsed.language,
            str(len(parsed.functions)),
            str(len(parsed.classes)),
            str(len(parsed.imports)),
        )
    console.print(table)

    insights = result.insights
    body = "\n".join([
        f"[bold]Modules:[/bold] {', '.join(insights.modules) or '-'}",
        f"[bold]Most imported:[/bold] {', '.join(insights.critical_paths) or '-'}",
        f"[bold]Exported components:[/bold] {len(insights.key_components)}",
    ])
    console.print(Panel(body, title="Insights"))
    typer.echo(
        f"Files: {len(result.structure.files)} | Nodes: {len(result.graph.nodes)} | Edges: {len(result.graph.edges)}"
    )


@app.command("related")
def related(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    file_path: str = typer.Argument(..., help="Project-relative file path."),
    depth: int = typer.Option(2, min=1, max=10, help="Maximum file hops."),
):
    """List files connected to FILE_PATH within DEPTH hops."""
    result = _analyze(project_path)
    if not result.graph.is_file(file_path):
        raise typer.BadParameter(f"File '{file_path}' is not part of the project.")

    files = DependencyGraphBuilder().find_related_files(result.graph, file_path, max_depth=depth)
    if not files:
        typer.echo(f"No files related to '{file_path}'.")
        raise typer.Exit(code=0)
    for path in files:
        typer.echo(path)


@app.command("module")
def module(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    entry_file: str = typer.Argument(..., help="Project-relative entry file."),
):
    """List ENTRY_FILE and every project file it transitively imports."""
    result = _analyze(project_path)
    if not result.graph.is_file(entry_file):
        raise typer.BadParameter(f"File '{entry_file}' is not part of the project.")
    for path in DependencyGraphBuilder().get_module_files(result.graph, entry_file):
        typer.echo(path)


@app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help="anthropic, openai, openrouter, groq or ollama."),
    model: Optional[str] = typer.Option(None, help="Model name (provider default if omitted)."),
    api_key: Optional[str] = typer.Option(None, help="API key for cloud providers."),
    endpoint: Optional[str] = typer.Option(None, help="Custom endpoint URL."),
):
    """Save the LLM provider used by 'dg generate'."""
    provider = provider.lower()
    if provider not in config_manager.DEFAULT_CONFIGS:
        raise typer.BadParameter(f"Unknown provider '{provider}'.")
    defaults = config_manager.get_provider_config(provider)
    chosen_model = model or defaults["model"]
    if not config_manager.save_config(provider, chosen_model, api_key or "", endpoint or ""):
        err_console.print("[red]✗ Could not write configuration.[/red]")
        raise typer.Exit(code=1)
    typer.echo(f"LLM set to {provider} ({chosen_model}).")


@app.command("unset-llm")
def unset_llm(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Remove the saved LLM provider, model and API key."""
    if "llm" not in config_manager.load_full_config():
        typer.echo("No LLM configuration found. Nothing to unset.")
        raise typer.Exit(code=0)

    current = config_manager.load_config()
    if not yes and not typer.confirm(f"Remove {current['provider']} ({current.get('model', '')}) settings?", default=False):
        typer.echo("Cancelled.")
        raise typer.Exit(code=0)
    if not config_manager.clear_config():
        err_console.print("[red]✗ Could not write configuration.[/red]")
        raise typer.Exit(code=1)
    typer.echo(f"LLM configuration removed; using {config_manager.DEFAULT_PROVIDER} defaults.")


@app.command("show-llm")
def show_llm():
    """Show the active LLM configuration."""
    settings = config_manager.load_settings()
    masked = f"{settings.api_key[:4]}…" if settings.api_key else "(not set)"
    typer.echo(f"Provider: {settings.provider}")
    typer.echo(f"Model: {settings.model}")
    typer.echo(f"Endpoint: {settings.endpoint}")
    typer.echo(f"API key: {masked}")
    typer.echo(f"Max output tokens: {settings.max_output_tokens}")


if __name__ == "__main__":
    app()
