#!/usr/bin/env python3
"""
ViiRaa connector CLI.

Support tooling for the Junction link and the on-device error log.

Usage:
    viiraa-connect junction resolve <client-user-id>
    viiraa-connect junction create-user <client-user-id>
    viiraa-connect junction providers <junction-user-id>
    viiraa-connect junction glucose <junction-user-id> --hours 24
    viiraa-connect errors show
    viiraa-connect errors clear
"""

import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import Settings, get_settings
from .integrations.base import IntegrationError
from .integrations.junction import JunctionAPIClient
from .models.junction import AlreadyExists, Created, GlucoseClassification
from .utils.error_log import ErrorLog

console = Console()


def get_classification_color(classification: GlucoseClassification) -> str:
    """Get rich color for a glucose classification."""
    colors = {
        GlucoseClassification.LOW: "red",
        GlucoseClassification.IN_RANGE: "green",
        GlucoseClassification.HIGH: "yellow",
        GlucoseClassification.VERY_HIGH: "red",
    }
    return colors.get(classification, "white")


def _client(settings: Settings) -> JunctionAPIClient:
    return JunctionAPIClient(settings.junction_api_key, timeout=settings.junction_timeout_seconds)


def _run(coro) -> bool:
    try:
        return asyncio.run(coro) is not False
    except IntegrationError as e:
        console.print(f"[red]Junction request failed:[/red] {e}")
        return False


# ============================================================================
# Junction commands
# ============================================================================

async def _resolve(args, settings: Settings) -> None:
    async with _client(settings) as client:
        user_id = await client.resolve_user(args.client_user_id)
    console.print(f"[cyan]{args.client_user_id}[/cyan] -> [bold]{user_id}[/bold]")


async def _create_user(args, settings: Settings) -> bool:
    async with _client(settings) as client:
        result = await client.create_user(args.client_user_id)

    if isinstance(result, Created):
        console.print(f"[green]Created[/green] Junction user [bold]{result.remote_user_id}[/bold]")
    elif isinstance(result, AlreadyExists):
        created = f" (created {result.created_on})" if result.created_on else ""
        console.print(f"[yellow]Already exists[/yellow]: [bold]{result.remote_user_id}[/bold]{created}")
    else:
        console.print(f"[red]Failed[/red] (HTTP {result.status_code}): {result.reason}")
        return False
    return True


async def _providers(args, settings: Settings) -> None:
    async with _client(settings) as client:
        providers = await client.get_connected_providers(args.user_id)

    if not providers:
        console.print("No providers connected.")
        return
    table = Table(title=f"Providers for {args.user_id}", box=box.ROUNDED)
    table.add_column("Slug", style="cyan")
    for slug in providers:
        table.add_row(slug)
    console.print(table)


async def _glucose(args, settings: Settings) -> None:
    end = datetime.now(timezone.utc)
    start = end - timedelta(hours=args.hours)
    async with _client(settings) as client:
        readings = await client.get_glucose(args.user_id, start, end)

    if not readings:
        console.print(f"No glucose readings in the last {args.hours}h.")
        console.print(
            f"[dim]New data can take ~{settings.health_data_delay_hours}h to reach Junction.[/dim]"
        )
        return

    table = Table(title=f"Glucose ({len(readings)} readings)", box=box.ROUNDED)
    table.add_column("Time", style="cyan")
    table.add_column("mg/dL", justify="right")
    table.add_column("Status")
    table.add_column("Source", style="dim")
    for reading in sorted(readings, key=lambda r: r.timestamp):
        color = get_classification_color(reading.classification)
        table.add_row(
            reading.timestamp.strftime("%Y-%m-%d %H:%M"),
            f"{reading.value:.0f}",
            f"[{color}]{reading.classification.value}[/{color}]",
            reading.source,
        )
    console.print(table)


def cmd_junction(args, settings: Settings):
    """Run a Junction REST command."""
    if not settings.junction_api_key:
        console.print("[red]VIIRAA_JUNCTION_API_KEY is not set.[/red]")
        sys.exit(1)

    commands = {
        "resolve": _resolve,
        "create-user": _create_user,
        "providers": _providers,
        "glucose": _glucose,
    }
    if not _run(commands[args.junction_command](args, settings)):
        sys.exit(1)


# ============================================================================
# Error log commands
# ============================================================================

def cmd_errors(args, settings: Settings):
    """Show or clear the persistent error log."""
    error_log = ErrorLog(settings.error_log_path, settings.error_log_max_bytes)

    if args.errors_command == "clear":
        error_log.clear()
        console.print(f"[green]Cleared[/green] {error_log.path}")
        return

    console.print(Panel(error_log.contents(), title=str(error_log.path), box=box.ROUNDED))


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="ViiRaa connector - Junction and error log tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  viiraa-connect junction resolve 3f2c-user-id
  viiraa-connect junction glucose 8a1e-junction-id --hours 48
  viiraa-connect errors show
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Junction commands
    junction_p = subparsers.add_parser("junction", help="Query the Junction API")
    junction_sub = junction_p.add_subparsers(dest="junction_command", required=True)

    resolve_p = junction_sub.add_parser("resolve", help="Look up a Junction user by client user id")
    resolve_p.add_argument("client_user_id")

    create_p = junction_sub.add_parser("create-user", help="Create (or find) a Junction user")
    create_p.add_argument("client_user_id")

    providers_p = junction_sub.add_parser("providers", help="List connected providers")
    providers_p.add_argument("user_id", help="Junction user id")

    glucose_p = junction_sub.add_parser("glucose", help="Show glucose stored in Junction")
    glucose_p.add_argument("user_id", help="Junction user id")
    glucose_p.add_argument(
        "--hours", type=int, default=24, help="Trailing window in hours"
    )

    # Error log commands
    errors_p = subparsers.add_parser("errors", help="Show or clear the error log")
    errors_p.add_argument("errors_command", choices=["show", "clear"], nargs="?", default="show")

    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "junction":
        cmd_junction(args, settings)
    elif args.command == "errors":
        cmd_errors(args, settings)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
