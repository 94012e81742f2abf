"""Command registry, resolvers and execution context.

- Command / CommandResult: what plugins provide
- CommandRegistry: core + protocol namespaces, exact and fuzzy resolution
- ExecutionContext: per-session state, Global or inside one protocol fiber
"""

from .commands import build_core_commands, register_core_commands
from .context import (
    FiberTransitionError,
    create_execution_context,
    transition,
    update_execution_context,
    with_wallet,
)
from .registry import CORE_NAMESPACE, DEFAULT_FUZZY_THRESHOLD, CommandRegistry, RegistryError
from .types import (
    GLOBAL,
    Command,
    CommandExecution,
    CommandResult,
    ExecutionContext,
    Fiber,
    FuzzyMatch,
    Global,
    ProtocolPreferences,
    ResolutionRequest,
    ResolvedCommand,
    WalletState,
)

__all__ = [
    "CORE_NAMESPACE",
    "DEFAULT_FUZZY_THRESHOLD",
    "GLOBAL",
    "Command",
    "CommandExecution",
    "CommandRegistry",
    "CommandResult",
    "ExecutionContext",
    "Fiber",
    "FiberTransitionError",
    "FuzzyMatch",
    "Global",
    "ProtocolPreferences",
    "RegistryError",
    "ResolutionRequest",
    "ResolvedCommand",
    "WalletState",
    "build_core_commands",
    "create_execution_context",
    "register_core_commands",
    "transition",
    "update_execution_context",
    "with_wallet",
]
