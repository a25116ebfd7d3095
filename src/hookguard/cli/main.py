#!/usr/bin/env python3
"""
hookguard CLI - run webhook health checks and retries from the command line

Usage:
    hookguard check [--config-id ID] [--json]   # Run one health-check pass
    hookguard retry [--json]                    # Process due webhook retries
    hookguard retry-now ENTRY_ID                # Make a queued webhook due immediately
    hookguard init-db                           # Create database tables
    hookguard serve [--host HOST] [--port PORT] # Start the HTTP trigger service

Every command accepts --config PATH (YAML) and --database-url URL ahead of
the command name; anything not given falls back to HOOKGUARD_* environment
variables.
"""

import asyncio
import sys
from typing import Any, Awaitable, Callable, Optional

import click
from rich.console import Console
from rich.table import Table

from ..core.config import HookguardConfig, set_config
from ..exceptions.base import EntryNotFoundError, HookguardError
from ..services.health_service import HookguardService, run_server
from ..utils.logging import setup_logging

console = Console()

CLI_VERSION = "1.0.0"


def _run(config: HookguardConfig, action: Callable[[HookguardService], Awaitable[Any]]) -> Any:
    """Build the service, run one action against it, and always close it"""

    async def _main():
        service = HookguardService(config)
        try:
            await service.initialize()
            return await action(service)
        finally:
            await service.close()

    return asyncio.run(_main())


@click.group()
@click.version_option(version=CLI_VERSION)
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="YAML configuration file")
@click.option("--database-url", help="Database URL (overrides configuration)")
@click.pass_context
def cli(ctx, config_path: Optional[str], database_url: Optional[str]):
    """hookguard - webhook retry and health alerting"""
    try:
        config = HookguardConfig.from_yaml(config_path) if config_path else HookguardConfig.from_env()
        if database_url:
            config = config.update(database_url=database_url)
    except (ValueError, OSError) as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    setup_logging(config.log_level, "hookguard-cli", stream=sys.stderr)
    set_config(config)
    ctx.obj = {"config": config}


@cli.command("check")
@click.option("--config-id", help="Only evaluate this alert config")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON")
@click.pass_context
def check(ctx, config_id: Optional[str], as_json: bool):
    """Run one health-check pass"""
    try:
        summary = _run(ctx.obj["config"], lambda service: service.run_health_check(config_id))
    except HookguardError as e:
        console.print(f"[red]Health check failed: {e}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(summary.model_dump_json(indent=2))
        return

    table = Table(title="Health Check")
    table.add_column("Config", style="cyan")
    table.add_column("Tenant")
    table.add_column("Outcome")
    table.add_column("Triggered", justify="right")
    table.add_column("Sent", justify="right")
    table.add_column("Error", style="red")

    for result in summary.results:
        table.add_row(
            result.config_id,
            result.tenant_id,
            result.outcome.value,
            str(result.alerts_triggered),
            str(result.alerts_sent),
            result.error or "",
        )

    console.print(table)
    console.print(
        f"Configs checked: [bold]{summary.configs_checked}[/bold]  "
        f"Alerts sent: [bold]{summary.alerts_sent}[/bold]"
    )


@cli.command("retry")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON")
@click.pass_context
def retry(ctx, as_json: bool):
    """Process due webhook retries"""
    try:
        summary = _run(ctx.obj["config"], lambda service: service.run_retries())
    except HookguardError as e:
        console.print(f"[red]Retry pass failed: {e}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(summary.model_dump_json(indent=2))
        return

    console.print(
        f"Processed [bold]{summary.processed}[/bold]: "
        f"[green]{summary.succeeded} succeeded[/green], "
        f"[yellow]{summary.failed} failed[/yellow], "
        f"[red]{summary.abandoned} abandoned[/red], "
        f"{summary.deferred} deferred"
    )


@cli.command("retry-now")
@click.argument("entry_id")
@click.pass_context
def retry_now(ctx, entry_id: str):
    """Make a queued webhook due immediately"""
    try:
        entry = _run(ctx.obj["config"], lambda service: service.retry_now(entry_id))
    except EntryNotFoundError:
        console.print(f"[red]Retry queue entry '{entry_id}' not found[/red]")
        sys.exit(1)

    if entry.is_terminal:
        console.print(f"Entry {entry_id} is already {entry.status.value}; nothing to do")
    else:
        console.print(f"Entry {entry_id} will be retried on the next pass")


@cli.command("init-db")
@click.pass_context
def init_db(ctx):
    """Create database tables"""
    config = ctx.obj["config"]
    connected = _run(config, lambda service: service.db.test_connection())
    if not connected:
        console.print(f"[red]Database not reachable: {config.database_url}[/red]")
        sys.exit(1)
    console.print(f"Database initialized: [green]{config.database_url}[/green]")


@cli.command("serve")
@click.option("--host", help="Bind address")
@click.option("--port", type=int, help="Bind port")
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int]):
    """Start the HTTP trigger service"""
    config = ctx.obj["config"]
    console.print(f"Starting hookguard on {host or config.service_host}:{port or config.service_port}")
    try:
        asyncio.run(run_server(config, host=host, port=port))
    except KeyboardInterrupt:
        console.print("\nServer stopped")


def main():
    """Entry point for the CLI"""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\nGoodbye!")
        sys.exit(0)


if __name__ == "__main__":
    main()
