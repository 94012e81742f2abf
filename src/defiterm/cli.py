"""defiterm CLI - command shell for DeFi protocols.

Usage:
    defiterm                    # Start interactive shell
    defiterm run "<line>" ...   # Run lines in one session and exit
    defiterm plugins            # Load plugins and show their status
    defiterm config             # Show effective settings
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import __version__
from .config import Settings, config_path
from .core.commands import register_core_commands
from .core.intents import ClearScreen
from .core.registry import CommandRegistry
from .core.types import WalletState
from .plugins.loader import PluginLoader
from .plugins.providers import builtin_plugins
from .render import render_outcome, render_value
from .session import ExecutionOutcome, OutcomeStatus, Session, SessionManager
from .terminal import QUIT_COMMANDS, TerminalInput

console = Console()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _build(settings: Settings) -> SessionManager:
    """Shared registry, loader and session manager for this process."""
    registry = CommandRegistry()
    register_core_commands(registry)
    loader = PluginLoader(registry)
    return SessionManager(registry, loader, settings)


def _wallet(address: Optional[str], chain_id: Optional[int]) -> Optional[WalletState]:
    if not address:
        return None
    return WalletState(address=address, chain_id=chain_id or 1, is_connected=True)


async def _show(session: Session, outcome: ExecutionOutcome) -> None:
    render_outcome(console, outcome)
    if outcome.status != OutcomeStatus.OK or outcome.result is None:
        return
    if isinstance(outcome.result.value, ClearScreen):
        console.clear()
    follow_up = await session.run_handler(outcome)
    if follow_up is None:
        return
    if follow_up.success:
        renderable = render_value(follow_up.value)
        if renderable is not None:
            console.print(renderable)
    else:
        console.print(Text.assemble(("Error: ", "red"), follow_up.error or "failed"))


async def run_shell(settings: Settings, wallet: Optional[WalletState]) -> int:
    manager = _build(settings)
    session = manager.open(wallet)
    session.start_loading(builtin_plugins(settings))

    console.print(
        Panel.fit(
            f"[bold cyan]defiterm[/bold cyan] {__version__}\n"
            f"Plugins: {', '.join(settings.plugins) or 'none'}\n"
            f"Wallet: {wallet.address if wallet else '[dim]not connected[/dim]'}\n\n"
            "[bold]Tips[/bold]\n"
            " - Type 'help' for commands, 'protocols' for loaded protocols.\n"
            " - Type a protocol id to enter it, 'exit' to leave.\n"
            " - Use protocol:command or --protocol to pick a protocol.\n"
            " - Use /quit to leave the shell.",
            title="defiterm",
        )
    )

    terminal = TerminalInput(session)
    while True:
        line = await terminal.prompt()
        if line is None:
            console.print("\n[cyan]Bye.[/cyan]")
            return 0
        line = line.strip()
        if line.lower() in QUIT_COMMANDS:
            console.print("[cyan]Bye.[/cyan]")
            return 0
        outcome = await session.execute(line)
        await _show(session, outcome)


async def run_lines(settings: Settings, lines: List[str], wallet: Optional[WalletState]) -> int:
    manager = _build(settings)
    session = manager.open(wallet)
    await session.load_plugins(builtin_plugins(settings))

    rc = 0
    for line in lines:
        outcome = await session.execute(line)
        await _show(session, outcome)
        if outcome.status not in (OutcomeStatus.OK, OutcomeStatus.EMPTY):
            rc = 1
    return rc


async def show_plugins(settings: Settings) -> int:
    manager = _build(settings)
    session = manager.open()
    results = await session.load_plugins(builtin_plugins(settings))
    loader = session.loader
    health = await loader.health_check_all(session.context)

    if not results:
        console.print("[yellow]No plugins configured.[/yellow]")
        return 0

    table = Table(title="Protocol Plugins")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Commands")
    table.add_column("Status")
    table.add_column("Health", justify="center")

    for record in loader.get_all_plugins():
        commands = ", ".join(c.id for c in record.plugin.commands)
        if record.loaded:
            status = Text("Loaded", style="green")
        else:
            status = Text(f"Error: {record.error}", style="red")
        healthy = health.get(record.plugin.id, False)
        table.add_row(
            record.plugin.id,
            record.plugin.name,
            commands,
            status,
            "[green]OK[/green]" if healthy else "[red]DOWN[/red]",
        )

    console.print(table)
    return 0 if all(r.success for r in results.values()) else 1


def show_config(settings: Settings, path: Path) -> int:
    table = Table(title=str(path), show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        if key == "oneinch_api_key" and value:
            value = value[:4] + "..."
        table.add_row(key, Text(str(value)))
    console.print(table)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="defiterm",
        description="defiterm: command shell for DeFi protocols",
    )
    parser.add_argument("--version", action="version", version=f"defiterm {__version__}")
    parser.add_argument("--config", type=Path, help=f"Config file (default {config_path()})")
    parser.add_argument("--log-level", help="Logging level override (e.g. DEBUG)")
    parser.add_argument("--wallet", help="Wallet address to use for the session")
    parser.add_argument("--chain", type=int, help="Chain id of the wallet (default 1)")

    sub = parser.add_subparsers(dest="subcmd")

    p_run = sub.add_parser("run", help="Run command lines in one session and exit")
    p_run.add_argument("lines", nargs="+", help="Command lines, e.g. \"1inch:price ETH\"")

    sub.add_parser("plugins", help="Load plugins and show their status and health")
    sub.add_parser("config", help="Show effective settings")

    args = parser.parse_args()

    path = args.config or config_path()
    settings = Settings.load(path)
    if args.log_level:
        settings.log_level = args.log_level.upper()
    _setup_logging(settings.log_level)

    wallet = _wallet(args.wallet, args.chain)

    if args.subcmd == "config":
        raise SystemExit(show_config(settings, path))

    if args.subcmd == "plugins":
        raise SystemExit(asyncio.run(show_plugins(settings)))

    if args.subcmd == "run":
        raise SystemExit(asyncio.run(run_lines(settings, args.lines, wallet)))

    try:
        raise SystemExit(asyncio.run(run_shell(settings, wallet)))
    except KeyboardInterrupt:
        console.print("\n[cyan]Bye.[/cyan]")
