"""CLI for mogilefs-client."""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from .client import MogileClient
from .config import load_client_config
from .errors import ConfigError, MogileError, TrackerConnectionError, UploadError


app = typer.Typer(help="""\
Store objects in and query a MogileFS tracker. Trackers are tried in the
order given; the first reachable one serves each request.""")

console = Console()

# Exit codes
EXIT_MISSING = 1
EXIT_ERROR = 2


@app.callback()
def main_options(
    ctx: typer.Context,
    tracker: Optional[List[str]] = typer.Option(
        None, "--tracker", "-t", help="Tracker HOST:PORT (repeatable, in priority order)"
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Timeout in seconds"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Global options shared by all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"tracker": tracker, "timeout": timeout, "config": config}


def _make_client(ctx: typer.Context) -> MogileClient:
    """Build a client from global options, exiting on bad configuration."""
    opts = ctx.obj or {}
    try:
        config = load_client_config(
            path=opts.get("config"),
            trackers=opts.get("tracker"),
            timeout=opts.get("timeout"),
        )
    except ConfigError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(EXIT_ERROR)
    return MogileClient(config)


def _report_error(e: MogileError) -> None:
    if isinstance(e, TrackerConnectionError):
        console.print("[red]✗[/red] No tracker reachable:")
        for endpoint, reason in e.attempts:
            console.print(f"   {endpoint}: [dim]{reason}[/dim]")
    elif isinstance(e, UploadError):
        console.print(f"[red]✗[/red] Upload failed: {e}")
    else:
        console.print(f"[red]✗[/red] {e}")


@app.command()
def exists(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Object key"),
    domain: str = typer.Option(..., "--domain", "-d", help="Tracker domain"),
):
    """Check whether KEY exists in a domain.

    Exits 0 when found, 1 when missing and 2 on error.
    """
    client = _make_client(ctx)
    try:
        found = client.exists(key, domain)
    except MogileError as e:
        _report_error(e)
        raise typer.Exit(EXIT_ERROR)

    if found:
        console.print(f"[green]✓[/green] {domain}/{key} exists")
    else:
        console.print(f"[yellow]✗[/yellow] {domain}/{key} not found")
        raise typer.Exit(EXIT_MISSING)


@app.command()
def put(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Object key"),
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="File to store"),
    domain: str = typer.Option(..., "--domain", "-d", help="Tracker domain"),
    storage_class: str = typer.Option(..., "--class", help="Storage class"),
):
    """Store FILE under KEY.

    Examples:
        mogilefs-client -t tracker1:7001 -t tracker2:7001 put img1 photo.jpg -d photos --class orig
    """
    client = _make_client(ctx)
    data = file.read_bytes()
    try:
        client.put(key, data, domain, storage_class)
    except MogileError as e:
        _report_error(e)
        raise typer.Exit(EXIT_ERROR)

    console.print(f"[green]✓[/green] Stored {domain}/{key} ({len(data)} bytes)")


def main():
    """Entry point for CLI."""
    app(prog_name="mogilefs-client")


if __name__ == "__main__":
    main()
