"""Core value types for the command shell.

Commands, results, the execution context threaded through every invocation
and the request/response shapes of the two resolvers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, FrozenSet, Iterator, Mapping, Optional, Tuple, Union


@dataclass
class CommandResult:
    """Discriminated result of a command run.

    Expected business failures (bad arguments, upstream errors) are returned
    as ``success=False`` with a message, never raised.
    """
    success: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: Any = None) -> "CommandResult":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, message: str, value: Any = None) -> "CommandResult":
        # value may still carry a fiber signal for the context update
        return cls(success=False, value=value, error=message)


RunFn = Callable[[str, "ExecutionContext"], Awaitable[CommandResult]]


@dataclass(frozen=True)
class Command:
    """A command descriptor. Immutable once registered."""
    id: str
    run: RunFn = field(repr=False, compare=True)
    description: str = ""
    aliases: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if not isinstance(self.aliases, frozenset):
            object.__setattr__(self, "aliases", frozenset(self.aliases))

    @property
    def names(self) -> Iterator[str]:
        """Id first, then aliases in a stable order."""
        yield self.id
        yield from sorted(self.aliases)

    def matches(self, token: str) -> bool:
        return token == self.id or token in self.aliases


# --- Namespace: Global | Fiber(protocol) ---

@dataclass(frozen=True)
class Global:
    """Root namespace: core and protocol-entry commands."""

    def __str__(self) -> str:
        return "global"


@dataclass(frozen=True)
class Fiber:
    """Namespace scoped to one loaded protocol."""
    protocol: str

    def __str__(self) -> str:
        return self.protocol


Namespace = Union[Global, Fiber]

GLOBAL = Global()


@dataclass(frozen=True)
class WalletState:
    """Wallet connection state as reported by the host."""
    address: Optional[str] = None
    chain_id: Optional[int] = None
    is_connected: bool = False
    is_connecting: bool = False
    is_disconnecting: bool = False


@dataclass(frozen=True)
class CommandExecution:
    """One entry of the session history."""
    command_id: str
    args: str
    success: bool
    protocol: Optional[str] = None
    value: Any = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ExecutionContext:
    """Per-session state. Value semantics: updates produce new instances."""
    wallet: WalletState = field(default_factory=WalletState)
    namespace: Namespace = GLOBAL
    protocol_preferences: Mapping[str, str] = field(default_factory=dict)
    history: Tuple[CommandExecution, ...] = ()

    @property
    def active_protocol(self) -> Optional[str]:
        if isinstance(self.namespace, Fiber):
            return self.namespace.protocol
        return None

    @property
    def last_command(self) -> Optional[str]:
        return self.history[-1].command_id if self.history else None

    @property
    def last_result(self) -> Optional[CommandExecution]:
        return self.history[-1] if self.history else None


@dataclass(frozen=True)
class ProtocolPreferences:
    """Protocol selection preferences for colliding command ids."""
    defaults: Mapping[str, str] = field(default_factory=dict)
    priority: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolutionRequest:
    input: str
    execution_context: ExecutionContext
    explicit_protocol: Optional[str] = None
    preferences: ProtocolPreferences = field(default_factory=ProtocolPreferences)


@dataclass(frozen=True)
class ResolvedCommand:
    """Result of exact resolution."""
    command: Command
    protocol: Optional[str] = None
    # Set when the input was a protocol id; the caller passes it as the argument
    protocol_name_as_command: Optional[str] = None


@dataclass(frozen=True)
class FuzzyMatch:
    """A ranked completion candidate."""
    command: Command
    score: float
    name: str
    protocol: Optional[str] = None
    protocol_name_as_command: Optional[str] = None
