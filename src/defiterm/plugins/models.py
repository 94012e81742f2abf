"""Plugin models.

Defines what a protocol plugin exports, its per-load configuration and the
records the loader keeps about each load attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from ..core.registry import CORE_NAMESPACE
from ..core.types import Command, CommandResult, ExecutionContext

# Client-side follow-up for a command result (e.g. presenting a transaction to sign)
Handler = Callable[[Any, ExecutionContext], Awaitable[CommandResult]]
InitializeFn = Callable[[ExecutionContext, "PluginConfig"], Awaitable[None]]
HealthCheckFn = Callable[[ExecutionContext], Awaitable[bool]]


class PluginValidationError(Exception):
    """Malformed plugin command table."""
    pass


@dataclass
class PluginConfig:
    """Per-load plugin configuration."""
    enabled: bool = True
    config: Dict[str, Any] = field(default_factory=dict)
    credentials: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "config": self.config,
            "credentials": self.credentials,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PluginConfig":
        return cls(
            enabled=data.get("enabled", True),
            config=dict(data.get("config", {})),
            credentials=dict(data.get("credentials", {})),
        )


@dataclass(frozen=True)
class ProtocolPlugin:
    """A protocol integration: one namespace of commands."""
    id: str                                      # Namespace key
    name: str                                    # Human-readable name
    commands: Tuple[Command, ...] = ()           # Registration order matters
    handlers: Mapping[str, Handler] = field(default_factory=dict)
    supported_chains: FrozenSet[int] = frozenset()
    description: str = ""
    version: str = "1.0.0"

    # Optional async hooks
    initialize: Optional[InitializeFn] = field(default=None, repr=False)
    health_check: Optional[HealthCheckFn] = field(default=None, repr=False)
    default_config: Optional[PluginConfig] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if not isinstance(self.commands, tuple):
            object.__setattr__(self, "commands", tuple(self.commands))
        if not isinstance(self.supported_chains, frozenset):
            object.__setattr__(self, "supported_chains", frozenset(self.supported_chains))

    def get_command(self, command_id: str) -> Optional[Command]:
        for command in self.commands:
            if command.id == command_id:
                return command
        return None

    def signature(self) -> tuple:
        """Structural identity: the table a user sees, not the callables behind it.

        Two instances built by the same factory (one per session) share a
        signature even though their run functions are different closures.
        """
        return (
            self.id,
            self.name,
            tuple((c.id, tuple(sorted(c.aliases)), c.description) for c in self.commands),
            tuple(sorted(self.handlers)),
        )


@dataclass
class PluginLoadResult:
    success: bool
    error: Optional[str] = None


@dataclass
class PluginRecord:
    """Loader bookkeeping for one plugin id."""
    plugin: ProtocolPlugin
    config: PluginConfig
    loaded: bool
    loaded_at: Optional[datetime] = None
    error: Optional[str] = None


def _check_name(plugin_id: str, name: str, what: str) -> None:
    if not name or not name.strip():
        raise PluginValidationError(f"Plugin {plugin_id}: empty {what}")
    if any(ch.isspace() for ch in name):
        raise PluginValidationError(f"Plugin {plugin_id}: {what} '{name}' contains whitespace")


def validate_plugin(
    plugin: ProtocolPlugin,
    reserved: FrozenSet[str] = frozenset(),
    reserved_commands: FrozenSet[str] = frozenset(),
) -> None:
    """Check a plugin's own table for collisions.

    ``reserved`` holds names the plugin id must not take (core command ids
    and aliases). ``reserved_commands`` holds names no command id or alias
    may take, so the exit command stays reachable inside every fiber.
    Raises PluginValidationError.
    """
    if not plugin.id or not plugin.id.strip():
        raise PluginValidationError("Plugin id is required")
    _check_name(plugin.id, plugin.id, "id")
    if ":" in plugin.id:
        raise PluginValidationError(f"Plugin id '{plugin.id}' must not contain ':'")
    if plugin.id == CORE_NAMESPACE:
        raise PluginValidationError(f"Plugin id '{CORE_NAMESPACE}' is reserved")
    if plugin.id in reserved:
        raise PluginValidationError(f"Plugin id '{plugin.id}' collides with a core command")

    owners: Dict[str, str] = {}
    for command in plugin.commands:
        _check_name(plugin.id, command.id, "command id")
        for name in command.names:
            if name in reserved_commands:
                raise PluginValidationError(
                    f"Plugin {plugin.id}: '{name}' of '{command.id}' is reserved for leaving a protocol"
                )
        if command.id in owners:
            raise PluginValidationError(
                f"Plugin {plugin.id}: '{command.id}' is already used by '{owners[command.id]}'"
            )
        owners[command.id] = command.id

    for command in plugin.commands:
        for alias in sorted(command.aliases):
            _check_name(plugin.id, alias, "alias")
            if alias in owners and owners[alias] != command.id:
                raise PluginValidationError(
                    f"Plugin {plugin.id}: alias '{alias}' of '{command.id}' "
                    f"is already used by '{owners[alias]}'"
                )
            owners[alias] = command.id

    command_ids = {c.id for c in plugin.commands}
    for handler_id in plugin.handlers:
        if handler_id not in command_ids:
            raise PluginValidationError(
                f"Plugin {plugin.id}: handler '{handler_id}' has no matching command"
            )
