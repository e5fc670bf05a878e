"""Chart render server CLI - Main entry point."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from vis_render.client import DEFAULT_SERVER_URL, RenderClient, RenderClientError, decode_data_uri
from vis_render.config import Settings, get_settings
from vis_render.engine.charts import supported_chart_types

app = typer.Typer(
    name="vis-render",
    help="Chart render server - render chart descriptions to PNG images",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main() -> None:
    """Load ``.env`` before any command reads settings."""
    load_dotenv()


def _settings_with_overrides(**overrides: Any) -> Settings:
    settings = get_settings()
    changes = {key: value for key, value in overrides.items() if value is not None}
    if not changes:
        return settings
    return settings.model_copy(update=changes)


@app.command()
def status() -> None:
    """Show the resolved service configuration."""
    settings = get_settings()

    table = Table(title="Chart Render Server", border_style="cyan")
    table.add_column("Setting", style="bold white")
    table.add_column("Value", style="cyan")

    table.add_row("Listen", f"{settings.host}:{settings.port}")
    table.add_row("Image mode", settings.image_mode)
    if settings.image_mode == "url":
        table.add_row("Storage directory", str(settings.storage_dir))
        table.add_row("Public links", f"{settings.resolved_base_url}{settings.url_prefix}/<id>.png")
    table.add_row("Body limit", f"{settings.body_limit_bytes:,} bytes")
    table.add_row(
        "Render concurrency",
        str(settings.max_concurrent_renders) if settings.max_concurrent_renders else "unbounded",
    )
    table.add_row("Chart size", f"{settings.chart_width}x{settings.chart_height} @ {settings.chart_dpi} dpi")
    table.add_row("Chart types", ", ".join(supported_chart_types()))

    console.print(table)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Listening host"),
    port: Optional[int] = typer.Option(None, help="Listening port"),
    image_mode: Optional[str] = typer.Option(None, help="base64 or url"),
) -> None:
    """Start the render server and block until it shuts down."""
    from vis_render.main import run_server

    if image_mode is not None and image_mode not in ("base64", "url"):
        console.print(f"[red]Unknown image mode: {image_mode}[/red]")
        raise typer.Exit(2)

    settings = _settings_with_overrides(host=host, port=port, image_mode=image_mode)
    console.print(
        Panel(
            f"[bold cyan]Starting Chart Render Server[/bold cyan]\n\n"
            f"[cyan]Host:[/cyan]       {settings.host}\n"
            f"[cyan]Port:[/cyan]       {settings.port}\n"
            f"[cyan]Image mode:[/cyan] {settings.image_mode}",
            title="Server",
            border_style="cyan",
        )
    )
    raise typer.Exit(run_server(settings))


async def _render(spec: dict[str, Any], server: str, output: Path | None) -> None:
    async with RenderClient(server) as client:
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn(f"[bold cyan]Rendering {spec.get('type')} chart..."),
                console=console,
            ) as progress:
                progress.add_task("render", total=None)
                result = await client.render(spec)
        except RenderClientError as e:
            console.print(Panel(f"[red]Render failed: {e}[/red]", title="Error", border_style="red"))
            raise typer.Exit(1)

    result_obj = result.result_obj or ""
    if output is not None:
        if not result_obj.startswith("data:"):
            console.print("[yellow]Server is in url mode; nothing to write, the image is at:[/yellow]")
            console.print(result_obj)
            return
        output.write_bytes(decode_data_uri(result_obj))
        console.print(f"[green]Wrote {output}[/green]")
        return

    if result_obj.startswith("data:"):
        console.print(f"[green]Rendered inline image[/green] [dim]({len(result_obj):,} chars)[/dim]")
        console.print(result_obj[:80] + "...")
    else:
        console.print(f"[green]Rendered:[/green] {result_obj}")


@app.command()
def render(
    spec_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON chart description"),
    server: str = typer.Option(DEFAULT_SERVER_URL, help="Render server base URL"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write an inline result to this PNG"),
) -> None:
    """Send a chart description to a running server."""
    try:
        spec = json.loads(spec_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {spec_file}: {e}[/red]")
        raise typer.Exit(2)
    if not isinstance(spec, dict):
        console.print(f"[red]{spec_file} must contain a JSON object[/red]")
        raise typer.Exit(2)
    asyncio.run(_render(spec, server, output))


async def _health(server: str) -> None:
    async with RenderClient(server) as client:
        try:
            result = await client.health()
        except RenderClientError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
    console.print(
        f"[green]{result.status}[/green] at {result.timestamp} "
        f"[dim](uptime {result.uptime:.1f}s)[/dim]"
    )


@app.command()
def health(
    server: str = typer.Option(DEFAULT_SERVER_URL, help="Render server base URL"),
) -> None:
    """Check that a render server is alive."""
    asyncio.run(_health(server))


if __name__ == "__main__":
    app()
