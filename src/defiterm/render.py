"""Terminal rendering of command outcomes.

Turns ExecutionOutcome values into rich renderables. Client intents are
matched exhaustively; an intent this module does not know is a bug.
"""

from __future__ import annotations

from typing import Any, List, Optional

from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .core.commands import HelpEntry, HelpListing, ProtocolSummary
from .core.intents import (
    AddChart,
    ClearScreen,
    ClientIntent,
    EnterProtocol,
    ExitProtocol,
    FetchBalance,
    SetPreference,
    TransactionRequest,
)
from .core.types import CommandExecution
from .session import ExecutionOutcome, OutcomeStatus


def describe_intent(intent: ClientIntent) -> str:
    if isinstance(intent, EnterProtocol):
        return f"Entered {intent.name or intent.protocol}. Type 'help' for its commands, 'exit' to leave."
    if isinstance(intent, ExitProtocol):
        return f"Left {intent.previous}." if intent.previous else "Back to global namespace."
    if isinstance(intent, SetPreference):
        return f"'{intent.command_id}' now defaults to {intent.protocol}."
    if isinstance(intent, ClearScreen):
        return ""
    if isinstance(intent, AddChart):
        return f"Chart requested: {intent.chart_type} of {intent.symbol} ({intent.mode})."
    if isinstance(intent, TransactionRequest):
        chain = f" on chain {intent.chain_id}" if intent.chain_id else ""
        return f"{intent.protocol} {intent.action} prepared{chain}."
    if isinstance(intent, FetchBalance):
        chain = f" on chain {intent.chain_id}" if intent.chain_id else ""
        return f"{intent.token} balance of {intent.address} requested from the wallet{chain}."
    raise TypeError(f"Unhandled client intent: {intent!r}")


def _help_rows(table: Table, entries: List[HelpEntry]) -> None:
    for entry in entries:
        table.add_row(entry.id, entry.description, ", ".join(entry.aliases))


def render_help(listing: HelpListing) -> RenderableType:
    parts: List[RenderableType] = [Text(listing.message, style="bold")]

    if listing.fiber is not None:
        for protocol in listing.protocols:
            table = Table(show_header=False, box=None, padding=(0, 2))
            _help_rows(table, list(protocol.commands))
            parts.append(table)
        if listing.core:
            globals_table = Table(title="Global Commands", title_justify="left", show_header=False, box=None, padding=(0, 2))
            _help_rows(globals_table, list(listing.core))
            parts.append(globals_table)
        if listing.exit_hint:
            parts.append(Text(listing.exit_hint, style="dim"))
        return Group(*parts)

    core = Table(title="Core Commands", title_justify="left", show_header=False, box=None, padding=(0, 2))
    _help_rows(core, list(listing.core))
    parts.append(core)

    if listing.protocols:
        protocols = Table(title="Available Protocols", title_justify="left", show_header=False, box=None, padding=(0, 2))
        for protocol in listing.protocols:
            protocols.add_row(Text(protocol.id, style="cyan"), protocol.name, "")
            for entry in protocol.commands:
                protocols.add_row(f"  {entry.id}", entry.description, ", ".join(entry.aliases))
        parts.append(protocols)
    return Group(*parts)


def render_protocols(summaries: List[ProtocolSummary]) -> RenderableType:
    table = Table(title="Protocols")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Commands", justify="right")
    table.add_column("Chains")
    table.add_column("Description")
    for s in summaries:
        chains = ", ".join(str(c) for c in s.supported_chains) or "-"
        table.add_row(s.id, s.name, str(s.command_count), chains, s.description)
    return table


def render_history(history: List[CommandExecution]) -> RenderableType:
    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("#", justify="right")
    table.add_column("Command")
    table.add_column("Protocol", style="magenta")
    table.add_column("Time")
    table.add_column("Status")
    for i, item in enumerate(history, 1):
        status = Text("ok", style="green") if item.success else Text(item.error or "failed", style="red")
        command = f"{item.command_id} {item.args}".strip()
        table.add_row(str(i), Text(command), item.protocol or "", item.timestamp.astimezone().strftime("%H:%M:%S"), status)
    return table


def render_value(value: Any) -> Optional[RenderableType]:
    """Renderable for a successful result value, or None for nothing to show."""
    if value is None:
        return None
    if isinstance(value, ClientIntent):
        text = describe_intent(value)
        return Text(text) if text else None
    if isinstance(value, HelpListing):
        return render_help(value)
    if isinstance(value, str):
        return Text(value)
    if isinstance(value, dict):
        if not value:
            return Text("(none)", style="dim")
        table = Table(show_header=False, box=None, padding=(0, 2))
        for key, item in value.items():
            table.add_row(Text(str(key), style="cyan"), Text(str(item)))
        return table
    if isinstance(value, list):
        if not value:
            return Text("(none)", style="dim")
        if all(isinstance(v, ProtocolSummary) for v in value):
            return render_protocols(value)
        if all(isinstance(v, CommandExecution) for v in value):
            return render_history(value)
        if all(isinstance(v, dict) for v in value):
            columns = list(dict.fromkeys(k for v in value for k in v))
            table = Table()
            for column in columns:
                table.add_column(str(column))
            for row in value:
                table.add_row(*(Text(str(row.get(c, ""))) for c in columns))
            return table
    return Text(str(value))


def render_outcome(console: Console, outcome: ExecutionOutcome) -> None:
    if outcome.status == OutcomeStatus.EMPTY:
        return
    if outcome.status == OutcomeStatus.OK:
        renderable = render_value(outcome.result.value if outcome.result else None)
        if renderable is not None:
            console.print(renderable)
        return
    if outcome.status == OutcomeStatus.FAILED:
        console.print(Text.assemble(("Error: ", "red"), outcome.message or "failed"))
        return
    if outcome.status in (OutcomeStatus.BUSY, OutcomeStatus.NOT_FOUND):
        console.print(Text(outcome.message or "", style="yellow"))
        return
    console.print(Panel(Text(outcome.message or "Unknown error"), title="error", border_style="red"))
