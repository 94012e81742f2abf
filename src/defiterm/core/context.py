"""Execution context lifecycle and the protocol fiber state machine.

States are ``Global`` and ``Fiber(p)`` for each loaded protocol p:

- Global   -> Fiber(p)  on EnterProtocol(p)
- Fiber(p) -> Global    on ExitProtocol (or a new session)
- Fiber(p) -> Fiber(p)  on anything else
- Fiber(p) -> Fiber(q)  is not a transition; leave through Global first

Everything here is pure: functions take a context and return a new one.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Optional

from .intents import EnterProtocol, ExitProtocol, SetPreference
from .types import (
    GLOBAL,
    Command,
    CommandExecution,
    CommandResult,
    ExecutionContext,
    Fiber,
    Global,
    Namespace,
    WalletState,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 500


class FiberTransitionError(Exception):
    """Requested a fiber change the state machine does not allow."""
    pass


def create_execution_context(wallet: Optional[WalletState] = None) -> ExecutionContext:
    """Fresh context for a new session. Sessions always start Global."""
    return ExecutionContext(wallet=wallet or WalletState(), namespace=GLOBAL)


def transition(namespace: Namespace, intent: Any) -> Namespace:
    """Next namespace given the current one and a command's result value."""
    if isinstance(namespace, Global):
        if isinstance(intent, EnterProtocol):
            return Fiber(intent.protocol)
        return namespace

    if isinstance(namespace, Fiber):
        if isinstance(intent, ExitProtocol):
            return GLOBAL
        if isinstance(intent, EnterProtocol) and intent.protocol != namespace.protocol:
            raise FiberTransitionError(
                f"Cannot enter '{intent.protocol}' from inside '{namespace.protocol}'; exit first"
            )
        return namespace

    raise TypeError(f"Unknown namespace: {namespace!r}")


def update_execution_context(
    context: ExecutionContext,
    command: Command,
    args: str,
    result: CommandResult,
    protocol: Optional[str] = None,
) -> ExecutionContext:
    """Produce the context that follows one command execution.

    Fiber signals apply whether or not the command succeeded; preference
    signals only on success. ``protocol`` is the namespace the command was
    resolved in for this call and is only recorded, never made sticky.
    """
    execution = CommandExecution(
        command_id=command.id,
        args=args,
        success=result.success,
        protocol=protocol,
        value=result.value if result.success else None,
        error=result.error,
    )
    history = (context.history + (execution,))[-HISTORY_LIMIT:]

    try:
        namespace = transition(context.namespace, result.value)
    except FiberTransitionError as e:
        logger.warning("Ignoring fiber signal from %s: %s", command.id, e)
        namespace = context.namespace

    preferences = context.protocol_preferences
    if result.success and isinstance(result.value, SetPreference):
        preferences = {**preferences, result.value.command_id: result.value.protocol}

    return dataclasses.replace(
        context,
        namespace=namespace,
        protocol_preferences=preferences,
        history=history,
    )


def with_wallet(context: ExecutionContext, wallet: WalletState) -> ExecutionContext:
    return dataclasses.replace(context, wallet=wallet)
