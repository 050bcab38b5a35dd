"""Typer-based CLI for operating the notifier."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table


# Import with local function to avoid circular imports
def _load_settings(config_path: Optional[Path] = None):
    from .config import load_settings
    return load_settings(config_path)


def _build_container(settings):
    from .di import build_container
    return build_container(settings)


app = typer.Typer(help="HTX ticker strike/ape-in notifier CLI")
console = Console()
logger = logging.getLogger(__name__)


def run_cli(argv: list[str] | None = None) -> None:
    """Run CLI with optional argv parameter."""
    app(argv)


@app.command()
def symbols(
    quote: Optional[str] = typer.Option(None, help="Only show pairs quoted in this asset"),
    config: Optional[Path] = typer.Option(None, help="Path to config file"),
) -> None:
    """Fetch the catalogue and show the pair selected for each base currency."""
    try:
        settings = _load_settings(config)
        pairs = asyncio.run(_select_pairs_async(settings))
    except Exception as e:
        logger.error("Failed to load symbols: %s", e, exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if pairs is None:
        console.print("[red]Error:[/red] catalogue unavailable")
        raise typer.Exit(1)

    if quote:
        pairs = [p for p in pairs if p.quote_currency == quote.upper()]

    if not pairs:
        console.print("[yellow]No tradable pairs selected[/yellow]")
        return

    table = Table(title="Selected Pairs")
    table.add_column("Base", style="cyan")
    table.add_column("Symbol", style="green")
    table.add_column("Quote", style="magenta")
    table.add_column("Price dp", style="yellow")
    table.add_column("Amount dp", style="yellow")

    for pair in sorted(pairs, key=lambda p: p.base_currency):
        table.add_row(
            pair.base_currency,
            pair.symbol,
            pair.quote_currency,
            str(pair.quote_precision),
            str(pair.base_precision),
        )

    console.print(table)
    console.print(
        f"\n[bold]Summary:[/bold] {len(pairs)} pairs, "
        f"priority {', '.join(settings.exchange.quote_assets)}"
    )


async def _select_pairs_async(settings):
    """Fetch once and reconcile into an empty registry."""
    from .catalogue import fetch_with_retry
    from .registry import SymbolRegistry

    container = _build_container(settings)
    try:
        descriptors = await fetch_with_retry(container.catalogue_client, settings.catalogue)
    finally:
        await container.catalogue_client.close()
        await container.dispatcher.close()

    if descriptors is None:
        return None
    registry = SymbolRegistry(settings.exchange.quote_assets)
    return registry.reconcile(descriptors).added


@app.command()
def config_show(
    config: Optional[Path] = typer.Option(None, help="Path to config file"),
) -> None:
    """Show the effective configuration with secrets redacted."""
    try:
        settings = _load_settings(config)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print_json(json.dumps(settings.redacted(), indent=2))


@app.command()
def notify_test(
    config: Optional[Path] = typer.Option(None, help="Path to config file"),
) -> None:
    """Send the startup notice through the configured dispatcher."""
    try:
        settings = _load_settings(config)
        delivered = asyncio.run(_notify_test_async(settings))
    except Exception as e:
        logger.error("Failed to send test notification: %s", e, exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    channel = "telegram" if settings.telegram.enabled else "log"
    if not delivered:
        console.print(f"[red]Error:[/red] {channel} did not accept the message")
        raise typer.Exit(1)
    console.print(Panel.fit(f"Channel: [cyan]{channel}[/cyan]\nStatus: [green]delivered[/green]", title="Notify Test"))


async def _notify_test_async(settings) -> bool:
    from .notifications.models import StartupNotice
    from .runtime import SERVICE_NAME

    container = _build_container(settings)
    try:
        return await container.dispatcher.send(StartupNotice(SERVICE_NAME))
    finally:
        await container.dispatcher.close()
        await container.catalogue_client.close()


def main():
    """CLI main entry point."""
    app()


if __name__ == "__main__":
    main()
