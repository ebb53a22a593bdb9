"""
TruxTrack CLI - Main entry point.

Track shipments from the terminal or run the push server.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from truxtrack import __app_name__, __version__
from truxtrack.core.config import AppConfig, ConfigError, load_app_config, write_default_config
from truxtrack.core.logging import setup_logging
from truxtrack.core.models import InvalidRequestError, StatusRecord, TrackingRequest
from truxtrack.core.orchestrator import BatchSummary, ClientRequestRegistry, run_tracking_batch
from truxtrack.core.providers import build_providers

# Load environment variables from .env (if present)
load_dotenv()

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name=__app_name__,
    help="Multi-provider shipment status tracker",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """TruxTrack - Shipment status tracker."""
    pass


def _load_config(path: Optional[Path], log_level: Optional[str] = None) -> AppConfig:
    try:
        config = load_app_config(path)
    except ConfigError as e:
        err_console.print(f"[red]Error loading config:[/red] {e}")
        if e.details:
            err_console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(1)

    setup_logging(
        level=log_level or config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console,
    )
    return config


CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-C",
    help="Path to app.yaml (default: configs/app.yaml)",
)


# =============================================================================
# Track Command
# =============================================================================


@app.command()
def track(
    tracking_numbers: List[str] = typer.Argument(..., help="Tracking numbers to look up"),
    client: str = typer.Option(
        "cli",
        "--client",
        "-c",
        help="Client name the request is made for",
    ),
    config_path: Optional[Path] = CONFIG_OPTION,
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Override the configured log level",
    ),
) -> None:
    """Race all providers for each tracking number and print the results.

    Examples:
        truxtrack track 1234567
        truxtrack track 1234567 7654321 --client acme
    """
    config = _load_config(config_path, log_level)

    try:
        request = TrackingRequest.create(client, tracking_numbers)
    except InvalidRequestError as e:
        err_console.print(f"[red]Request rejected:[/red] {e}")
        raise typer.Exit(1)

    providers = build_providers(config)

    if not providers:
        err_console.print("[red]No providers enabled in configuration[/red]")
        raise typer.Exit(1)

    async def show(tracking_number: str, records: list[StatusRecord]) -> None:
        console.print(_history_table(tracking_number, records))

    async def track_all() -> BatchSummary:
        registry = ClientRequestRegistry()
        scope = registry.register(request.client_id)
        try:
            return await run_tracking_batch(
                request.client_id,
                request.tracking_numbers,
                show,
                scope,
                providers=providers,
            )
        finally:
            registry.unregister_all()

    try:
        summary = asyncio.run(track_all())
    except KeyboardInterrupt:
        err_console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(130)

    duration = f"{summary.duration_seconds:.1f}s" if summary.duration_seconds else "-"
    console.print(
        f"[bold]{summary.resolved}[/bold] resolved, [bold]{summary.empty}[/bold] empty "
        f"[dim]({duration})[/dim]"
    )


def _history_table(tracking_number: str, records: list[StatusRecord]) -> Table:
    table = Table(title=f"Tracking {tracking_number}", show_header=True, header_style="bold magenta")
    table.add_column("When", style="cyan")
    table.add_column("Status")
    table.add_column("Location")
    table.add_column("Carrier", style="dim")

    if not records:
        table.add_row("-", "[yellow]No status history found[/yellow]", "", "")

    for record in records:
        status = f"[green]{record.status}[/green]" if record.is_completed else record.status
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M"),
            status,
            record.location,
            record.company,
        )
    return table


# =============================================================================
# Server Command
# =============================================================================


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on"),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Run the push server (status endpoints + /ordertracker WebSocket)."""
    import uvicorn

    from truxtrack.server import create_app

    config = _load_config(config_path)
    bind_host = host or config.server.host
    bind_port = port or config.server.port

    console.print(f"[bold]Serving TruxTrack on[/bold] http://{bind_host}:{bind_port}")
    uvicorn.run(create_app(config), host=bind_host, port=bind_port, log_config=None)


# =============================================================================
# Provider Listing
# =============================================================================


@app.command()
def providers(config_path: Optional[Path] = CONFIG_OPTION) -> None:
    """List configured providers."""
    try:
        config = load_app_config(config_path)
    except ConfigError as e:
        err_console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Providers", show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Enabled", justify="center")
    table.add_column("Timeout", justify="right")
    table.add_column("URL")

    for provider in config.providers:
        enabled = "[green]yes[/green]" if provider.enabled else "[red]no[/red]"
        timeout = f"{provider.timeout_seconds:g}s" if provider.timeout_seconds else "none"
        table.add_row(provider.name.value, enabled, timeout, provider.resolved_url)

    console.print(table)


# =============================================================================
# Init Command
# =============================================================================


@app.command()
def init(
    path: Path = typer.Option(
        Path("configs/app.yaml"),
        "--path",
        help="Where to write the configuration",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Write a default configuration file."""
    try:
        written = write_default_config(path, force=force)
    except ConfigError as e:
        err_console.print(f"[red]{e}[/red] (use --force to overwrite)")
        raise typer.Exit(1)

    console.print(f"[green]Created[/green] {written}")


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
