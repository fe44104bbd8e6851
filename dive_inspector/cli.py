"""CLI interface for Dive Inspector."""

import asyncio
import json
import sys
from typing import Any, Dict, Optional

import click
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskID, TextColumn

from shared.cli import create_table, error, handle_errors, info, print_table, success, warning
from shared.logger import setup_logger

from . import __version__
from .config import Settings
from .dive import DiveAnalyzer
from .docker_client import DockerClient
from .exceptions import InspectorError
from .inspection import InspectionService
from .models import ImageAnalysis
from .progress import ProgressRelay, ProgressTracker
from .validation import validate_image_name

console = Console()


class ProgressBarChannel:
    """Relay channel that renders inspection updates on a rich progress bar."""

    def __init__(self, progress: Progress, task: TaskID):
        self.progress = progress
        self.task = task

    async def send_json(self, payload: Dict[str, Any]) -> None:
        data = payload.get("data", {})
        if "progress" in data:
            self.progress.update(self.task, completed=data["progress"], description=data.get("message", ""))


def build_service(settings: Settings) -> InspectionService:
    analyzer = DiveAnalyzer(
        command=settings.dive_command,
        timeout=settings.analysis_timeout,
        max_concurrent=settings.max_concurrent_analyses,
        temp_dir=settings.temp_dir,
        mock_fallback=settings.mock_fallback,
    )
    relay = ProgressRelay(ProgressTracker(retention=settings.progress_retention))
    return InspectionService(DockerClient(), analyzer, relay)


def create_size_bar(size: int, max_size: int, width: int = 30) -> str:
    """
    Create ASCII bar for size visualization.

    Args:
        size: Current size
        max_size: Maximum size for scaling
        width: Width of bar in characters

    Returns:
        ASCII bar string
    """
    if max_size == 0:
        return ""

    filled = int((size / max_size) * width)
    return "█" * filled + "░" * (width - filled)


def efficiency_style(efficiency: float) -> str:
    if efficiency >= 95:
        return "green"
    if efficiency >= 80:
        return "yellow"
    return "red"


def display_analysis(analysis: ImageAnalysis, show_layers: bool = True, show_suggestions: bool = False) -> None:
    """
    Display an analysis with rich formatting.

    Args:
        analysis: ImageAnalysis object
        show_layers: Whether to show layer breakdown
        show_suggestions: Whether to list optimization suggestions
    """
    console.print(Panel(f"[bold cyan]{analysis.image_name}[/bold cyan]", title="Dive Image Analysis"))

    if analysis.source == "mock":
        warning("Dive analysis failed, showing sample data")

    style = efficiency_style(analysis.efficiency)
    meta = analysis.metadata
    console.print("\n[bold yellow]Image Information:[/bold yellow]")
    console.print(f"  ID:           {meta.image_id[:20]}")
    console.print(f"  Size:         [bold]{analysis.size_human}[/bold]")
    console.print(f"  Layers:       {analysis.layer_count}")
    console.print(f"  Efficiency:   [{style}]{analysis.efficiency:.1f}%[/{style}]")
    console.print(f"  Wasted:       {analysis.wasted_space} bytes ({analysis.wasted_percent:.1f}%)")
    console.print(f"  Architecture: {meta.architecture}")
    console.print(f"  OS:           {meta.os}")

    if show_layers and analysis.layers:
        console.print("\n[bold yellow]Layer Breakdown:[/bold yellow]")

        table = create_table(title=None)
        table.add_column("#", justify="right", style="cyan", width=4)
        table.add_column("Size", justify="right", style="yellow")
        table.add_column("Visual", width=32)
        table.add_column("Command", style="dim")

        max_layer_size = max((l.size for l in analysis.layers), default=1)

        for layer in analysis.layers:
            table.add_row(
                str(layer.index),
                layer.size_human,
                create_size_bar(layer.size, max_layer_size),
                layer.command[:60],
            )

        print_table(table)

    if analysis.inefficient_files:
        console.print("\n[bold yellow]Inefficient Files:[/bold yellow]")
        table = create_table(title=None)
        table.add_column("Count", justify="right", style="cyan")
        table.add_column("Wasted", justify="right", style="yellow")
        table.add_column("Path")
        for f in analysis.inefficient_files:
            table.add_row(str(f.count), str(f.wasted_size), f.path)
        print_table(table)

    if show_suggestions and analysis.suggestions:
        console.print("\n[bold yellow]Optimization Suggestions:[/bold yellow]")
        for suggestion in analysis.suggestions:
            console.print(f"  - {suggestion}")

    console.print()


@click.group()
@click.version_option(__version__, prog_name="dive-inspector")
def main():
    """
    Dive Inspector - Docker image layer efficiency reports.

    Wraps the dive CLI and the Docker Engine API, either as a web service
    or for one-off analyses in the terminal.
    """


@main.command()
@click.option("--host", help="Host to bind to (default: DIVE_INSPECTOR_HOST or 0.0.0.0)")
@click.option("--port", type=int, help="Port to bind to (default: DIVE_INSPECTOR_PORT or 3000)")
@click.option("--reload", is_flag=True, help="Enable auto-reload")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@handle_errors
def serve(host: Optional[str], port: Optional[int], reload: bool, verbose: bool):
    """
    Run the HTTP and WebSocket API.

    Examples:

        \b
        dive-inspector serve --port 8080
    """
    settings = Settings.from_env()
    log_level = "DEBUG" if verbose else settings.log_level
    setup_logger(__name__, level=log_level)

    uvicorn.run(
        "dive_inspector.server:create_app",
        factory=True,
        host=host or settings.host,
        port=port if port is not None else settings.port,
        reload=reload,
        log_level=log_level.lower(),
    )


@main.command()
@click.option("--image", "-i", required=True, help="Image reference to analyze")
@click.option(
    "--layers/--no-layers",
    default=True,
    help="Show layer breakdown (default: true)",
)
@click.option(
    "--suggestions",
    "-s",
    is_flag=True,
    help="Show optimization suggestions",
)
@click.option(
    "--output",
    "-o",
    type=click.Choice(["rich", "json"], case_sensitive=False),
    default="rich",
    show_default=True,
    help="Output format",
)
@click.option("--timeout", type=float, help="Seconds to wait for dive")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@handle_errors
def analyze(
    image: str,
    layers: bool,
    suggestions: bool,
    output: str,
    timeout: Optional[float],
    verbose: bool,
):
    """
    Analyze one image with dive, pulling it first if it is not local.

    Examples:

        \b
        # Analyze an image
        dive-inspector analyze --image nginx:latest

        \b
        # JSON output with suggestions
        dive-inspector analyze --image python:3.12-slim --suggestions --output json
    """
    settings = Settings.from_env()
    setup_logger(__name__, level="DEBUG" if verbose else settings.log_level)
    if timeout is not None:
        settings.analysis_timeout = timeout

    service = build_service(settings)

    try:
        image = validate_image_name(image)
        if output == "rich":
            info(f"Analyzing image: {image}")
            with Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                console=console,
            ) as progress:
                task = progress.add_task("Starting...", total=100)
                service.relay.subscribe(image, ProgressBarChannel(progress, task))
                analysis = asyncio.run(service.inspect(image))
        else:
            analysis = asyncio.run(service.inspect(image))
    except InspectorError as e:
        error(f"Failed to analyze {image}: {e}")
        sys.exit(1)

    if output == "rich":
        display_analysis(analysis, show_layers=layers, show_suggestions=suggestions)
        success("Analysis completed!")
    else:
        data = analysis.to_dict()
        if not suggestions:
            data.pop("suggestions")
        if not layers:
            data.pop("layers")
        click.echo(json.dumps(data, indent=2))


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Choice(["rich", "json"], case_sensitive=False),
    default="rich",
    show_default=True,
    help="Output format",
)
@handle_errors
def health(output: str):
    """Check that Docker and dive are usable."""
    settings = Settings.from_env()
    setup_logger(__name__, level=settings.log_level)
    report = asyncio.run(build_service(settings).health())

    if output == "json":
        click.echo(json.dumps(report, indent=2))
    else:
        table = create_table(title="Dependencies")
        table.add_column("Dependency", style="bold")
        table.add_column("Available")
        table.add_column("Version", style="dim")
        for name, dep in report["dependencies"].items():
            available = "[green]yes[/green]" if dep["available"] else "[red]no[/red]"
            table.add_row(name, available, dep.get("version") or "-")
        print_table(table)

    if report["status"] != "healthy":
        sys.exit(1)


if __name__ == "__main__":
    main()
