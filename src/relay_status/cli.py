"""relay-status CLI entry point."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from relay_status.status.models import RefreshResult, Status, StatusRecord

if TYPE_CHECKING:
    from relay_status.config.models import RelayStatusConfig

app = typer.Typer(
    name="relay-status",
    help="relay-status: one availability verdict per proxy endpoint",
    no_args_is_help=True,
)
console = Console()

STATUS_STYLES: dict[str, str] = {
    Status.AVAILABLE: "green",
    Status.WARNING: "yellow",
    Status.UNAVAILABLE: "red",
    Status.DISABLED: "dim",
    Status.UNTESTED: "cyan",
}


def _format_record(name: str, record: StatusRecord) -> tuple[str, str, str, str, str, str]:
    style = STATUS_STYLES.get(str(record.status), "magenta")
    latency = f"{record.latency_ms:.0f}ms" if record.latency_ms is not None else "—"
    observed = record.observed_at.strftime("%Y-%m-%d %H:%M:%S") if record.observed_at else "—"
    return (
        name,
        f"[{style}]{record.status}[/{style}]",
        str(record.source),
        latency,
        observed,
        escape(record.error_message or ""),
    )


def _load(path: Path | None) -> RelayStatusConfig:
    from relay_status.config.loader import load_config

    try:
        return load_config(path=path)
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)


@app.command()
def status(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .relay-status.yaml"),
) -> None:
    """Resolve and show the status of every configured endpoint."""
    from relay_status.events.emitter import create_cli_emitter
    from relay_status.status.coordinator import create_status_service

    config = _load(path)
    emitter = create_cli_emitter(config)
    service = create_status_service(config, emitter=emitter)

    async def _refresh() -> RefreshResult:
        result = await service.refresh()
        if emitter is not None:
            await emitter.drain()
        return result

    result = asyncio.run(_refresh())

    if not result.updated:
        console.print(f"[red]Refresh failed: {escape(result.error or '')}[/red]")
        raise typer.Exit(1)

    table = Table(title="Endpoint Status")
    table.add_column("Endpoint", style="bold")
    table.add_column("Status")
    table.add_column("Source")
    table.add_column("Latency")
    table.add_column("Observed")
    table.add_column("Error")
    for name, record in sorted(result.statuses.items()):
        table.add_row(*_format_record(name, record))
    console.print(table)


@app.command("record-test")
def record_test(
    endpoint: str = typer.Argument(help="Endpoint name"),
    success: bool = typer.Option(True, "--success/--failure", help="Outcome of the test"),
    latency_ms: float | None = typer.Option(None, "--latency-ms", help="Measured latency in milliseconds"),
    error: str | None = typer.Option(None, "--error", help="Diagnostic message from the test"),
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .relay-status.yaml"),
) -> None:
    """Persist a manual test result so the next resolution can use it."""
    from relay_status.store.manual_tests_sqlite import SqliteManualTestStore

    config = _load(path)
    if not config.manual_test_db_path:
        console.print("[red]manual_test_db_path is empty; nothing to persist to[/red]")
        raise typer.Exit(1)

    store = SqliteManualTestStore(config.manual_test_db_path)
    asyncio.run(store.record(
        endpoint, success, datetime.now(UTC), latency_ms=latency_ms, error_message=error or None
    ))
    outcome = "[green]passed[/green]" if success else "[red]failed[/red]"
    details: list[str] = []
    if latency_ms is not None:
        details.append(f"{latency_ms:.0f}ms")
    if error:
        details.append(escape(error))
    suffix = f" ({', '.join(details)})" if details else ""
    console.print(f"Recorded manual test for [bold]{endpoint}[/bold]: {outcome}{suffix}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8000, help="Bind port"),
) -> None:
    """Start the relay-status API server."""
    import uvicorn

    console.print(f"[bold]relay-status[/bold] starting on http://{host}:{port}")
    uvicorn.run("relay_status.api.app:app", host=host, port=port, reload=False)


config_app = typer.Typer(name="config", help="Configuration commands")
app.add_typer(config_app)


@config_app.command("validate")
def config_validate(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .relay-status.yaml"),
) -> None:
    """Validate configuration file."""
    from urllib.parse import urlparse

    import yaml

    from relay_status.config.loader import load_config
    from relay_status.events.emitter import EVENT_TYPES

    errors: list[str] = []
    try:
        config = load_config(path=path)
        console.print("[green]✓[/green] YAML parses correctly")
        console.print("[green]✓[/green] Pydantic validation passes")
    except FileNotFoundError as exc:
        console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(1)
    except yaml.YAMLError as exc:
        console.print(f"[red]✗ YAML parsing failed: {exc}[/red]")
        raise typer.Exit(1)
    except ValueError as exc:
        console.print("[green]✓[/green] YAML parses correctly")
        console.print(f"[red]✗ Pydantic validation failed: {exc}[/red]")
        raise typer.Exit(1)

    parsed = urlparse(config.provider.base_url)
    if not parsed.scheme or not parsed.netloc:
        errors.append(f"Provider: invalid base URL '{config.provider.base_url}'")
    else:
        console.print("[green]✓[/green] Provider URL is valid")

    if config.status.default_health_check_interval <= 0:
        errors.append("status.default_health_check_interval must be positive")
    if config.status.refresh_interval < 0:
        errors.append("status.refresh_interval must not be negative")

    warnings: list[str] = []
    for i, wh in enumerate(config.webhooks):
        parsed = urlparse(wh.url)
        if not parsed.scheme or not parsed.netloc:
            errors.append(f"Webhook {i}: invalid URL '{wh.url}'")
        for evt in wh.events:
            if evt not in EVENT_TYPES and evt != "*":
                warnings.append(f"Webhook {i}: unrecognized event type '{evt}'")

    if not errors:
        if config.webhooks:
            console.print(f"[green]✓[/green] {len(config.webhooks)} webhook(s) configured")
        for w in warnings:
            console.print(f"[yellow]! {w}[/yellow]")
        console.print("\n[green bold]Configuration is valid.[/green bold]")
    else:
        for err in errors:
            console.print(f"[red]✗ {err}[/red]")
        console.print(f"\n[red bold]{len(errors)} validation error(s) found.[/red bold]")
        raise typer.Exit(1)


@config_app.command("show")
def config_show(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .relay-status.yaml"),
) -> None:
    """Print resolved configuration."""
    config = _load(path)

    console.print(f"[bold]{config.relay.name}[/bold] v{config.relay.version}\n")

    console.print("[bold]Provider:[/bold]")
    console.print(f"  Base URL: {config.provider.base_url}")
    console.print(f"  Timeout: {config.provider.timeout}s\n")

    console.print("[bold]Status:[/bold]")
    console.print(f"  Default health check interval: {config.status.default_health_check_interval:.0f}s")
    refresh = f"{config.status.refresh_interval:.0f}s" if config.status.refresh_interval else "off"
    console.print(f"  Background refresh: {refresh}")
    console.print(f"  Manual test store: {config.manual_test_db_path or 'in-memory'}")

    if config.webhooks:
        console.print("\n[bold]Webhooks:[/bold]")
        for wh in config.webhooks:
            console.print(f"  {wh.url} ({', '.join(wh.events)})")


def main() -> None:
    app()
