"""Built-in commands.

These live in the core namespace and stay visible whatever fiber the
session is in. They get the registry by handle so ``help`` and ``use`` can
introspect what is loaded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .. import __version__
from .intents import ClearScreen, EnterProtocol, ExitProtocol, FetchBalance, SetPreference
from .registry import CommandRegistry
from .types import Command, CommandResult, ExecutionContext

# Core commands listed in fiber-scoped help
FIBER_HELP_CORE = ("help", "exit", "history", "clear", "whoami", "prefer")


@dataclass(frozen=True)
class HelpEntry:
    id: str
    description: str
    aliases: Tuple[str, ...] = ()

    @classmethod
    def of(cls, command: Command) -> "HelpEntry":
        return cls(
            id=command.id,
            description=command.description or "No description",
            aliases=tuple(sorted(command.aliases)),
        )


@dataclass(frozen=True)
class ProtocolHelp:
    id: str
    name: str
    commands: Tuple[HelpEntry, ...] = ()


@dataclass(frozen=True)
class HelpListing:
    """Help output. ``fiber`` is set for fiber-scoped help."""
    message: str
    core: Tuple[HelpEntry, ...] = ()
    protocols: Tuple[ProtocolHelp, ...] = ()
    fiber: Optional[str] = None
    exit_hint: Optional[str] = None


@dataclass(frozen=True)
class ProtocolSummary:
    id: str
    name: str
    description: str
    command_count: int
    supported_chains: Tuple[int, ...] = field(default_factory=tuple)


def build_core_commands(registry: CommandRegistry) -> List[Command]:
    """Create the core command set bound to ``registry``."""

    async def help_run(args: str, context: ExecutionContext) -> CommandResult:
        active = context.active_protocol
        plugin = registry.get_protocol(active) if active else None

        if plugin is not None:
            core = [registry.get_core(cid) for cid in FIBER_HELP_CORE]
            return CommandResult.ok(HelpListing(
                message=f"{plugin.name} commands",
                core=tuple(HelpEntry.of(c) for c in core if c is not None),
                protocols=(ProtocolHelp(
                    id=plugin.id,
                    name=plugin.name,
                    commands=tuple(HelpEntry.of(c) for c in plugin.commands),
                ),),
                fiber=plugin.id,
                exit_hint=f"Type 'exit' to leave {plugin.name}",
            ))

        return CommandResult.ok(HelpListing(
            message="Available commands",
            core=tuple(HelpEntry.of(c) for c in registry.core_commands()),
            protocols=tuple(
                ProtocolHelp(
                    id=p.id,
                    name=p.name,
                    commands=tuple(HelpEntry.of(c) for c in p.commands),
                )
                for p in registry.protocols()
            ),
        ))

    async def protocols_run(args: str, context: ExecutionContext) -> CommandResult:
        return CommandResult.ok([
            ProtocolSummary(
                id=p.id,
                name=p.name,
                description=p.description or "No description",
                command_count=len(p.commands),
                supported_chains=tuple(sorted(p.supported_chains)),
            )
            for p in registry.protocols()
        ])

    async def use_run(args: str, context: ExecutionContext) -> CommandResult:
        protocol_id = args.strip().split()[0] if args.strip() else ""
        if not protocol_id:
            return CommandResult.fail("Protocol id required. Usage: use <protocol>")

        plugin = registry.get_protocol(protocol_id)
        if plugin is None:
            available = ", ".join(registry.protocol_ids()) or "none"
            return CommandResult.fail(
                f"Protocol '{protocol_id}' not found. Available protocols: {available}"
            )

        active = context.active_protocol
        if active is not None and active != protocol_id:
            return CommandResult.fail(f"Already inside '{active}'. Type 'exit' first.")
        return CommandResult.ok(EnterProtocol(protocol=plugin.id, name=plugin.name))

    async def exit_run(args: str, context: ExecutionContext) -> CommandResult:
        if context.active_protocol is None:
            return CommandResult.fail("Not inside a protocol")
        return CommandResult.ok(ExitProtocol(previous=context.active_protocol))

    async def whoami_run(args: str, context: ExecutionContext) -> CommandResult:
        wallet = context.wallet
        if not wallet.is_connected or not wallet.address:
            return CommandResult.fail("Wallet not connected")
        return CommandResult.ok({"address": wallet.address, "chain_id": wallet.chain_id})

    async def balance_run(args: str, context: ExecutionContext) -> CommandResult:
        wallet = context.wallet
        if not wallet.is_connected or not wallet.address:
            return CommandResult.fail("Wallet not connected")
        token = args.strip().split()[0].upper() if args.strip() else "ETH"
        return CommandResult.ok(FetchBalance(address=wallet.address, token=token, chain_id=wallet.chain_id))

    async def history_run(args: str, context: ExecutionContext) -> CommandResult:
        return CommandResult.ok(list(context.history))

    async def clear_run(args: str, context: ExecutionContext) -> CommandResult:
        return CommandResult.ok(ClearScreen())

    async def prefer_run(args: str, context: ExecutionContext) -> CommandResult:
        parts = args.split()
        if not parts:
            return CommandResult.ok(dict(context.protocol_preferences))
        if len(parts) != 2:
            return CommandResult.fail("Usage: prefer <command> <protocol>")

        command_id, protocol_id = parts
        plugin = registry.get_protocol(protocol_id)
        if plugin is None:
            return CommandResult.fail(f"Protocol '{protocol_id}' not found")
        if not any(c.matches(command_id) for c in plugin.commands):
            return CommandResult.fail(f"Protocol '{protocol_id}' has no command '{command_id}'")
        return CommandResult.ok(SetPreference(command_id=command_id, protocol=protocol_id))

    async def version_run(args: str, context: ExecutionContext) -> CommandResult:
        return CommandResult.ok({"name": "defiterm", "version": __version__})

    return [
        Command("help", help_run, "Display available commands", frozenset({"h", "?"})),
        Command("protocols", protocols_run, "List loaded protocols",
                frozenset({"ls-protocols", "list-protocols"})),
        Command("use", use_run, "Enter a protocol namespace", frozenset({"enter"})),
        Command("exit", exit_run, "Leave the current protocol", frozenset({"back", ".."})),
        Command("whoami", whoami_run, "Show the connected wallet", frozenset({"me"})),
        Command("balance", balance_run, "Show the wallet balance", frozenset({"bal"})),
        Command("history", history_run, "Show command history", frozenset({"hist"})),
        Command("clear", clear_run, "Clear the terminal", frozenset({"cls"})),
        Command("prefer", prefer_run, "Set the default protocol for a command",
                frozenset({"default"})),
        Command("version", version_run, "Show version", frozenset({"v", "ver"})),
    ]


def register_core_commands(registry: CommandRegistry) -> List[Command]:
    """Register the core command set. Safe to call more than once."""
    existing = {c.id: c for c in registry.core_commands()}
    commands = []
    for command in build_core_commands(registry):
        if command.id in existing:
            commands.append(existing[command.id])
            continue
        registry.register_core(command)
        commands.append(command)
    return commands
