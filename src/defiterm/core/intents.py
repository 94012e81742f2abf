"""Client intents returned by commands.

A command that needs more than plain text rendering returns one of these as
its ``CommandResult.value``. The set is closed: the context update consumes
the fiber and preference signals, the renderer handles the rest and rejects
anything it does not know.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class ClientIntent:
    """Base class for intents."""


@dataclass(frozen=True)
class EnterProtocol(ClientIntent):
    """Move the session into a protocol fiber."""
    protocol: str
    name: str = ""


@dataclass(frozen=True)
class ExitProtocol(ClientIntent):
    """Return the session to the global namespace."""
    previous: Optional[str] = None


@dataclass(frozen=True)
class SetPreference(ClientIntent):
    """Remember which protocol should serve a colliding command id."""
    command_id: str
    protocol: str


@dataclass(frozen=True)
class ClearScreen(ClientIntent):
    pass


@dataclass(frozen=True)
class AddChart(ClientIntent):
    chart_type: str
    symbol: str
    mode: str = "line"


@dataclass(frozen=True)
class TransactionRequest(ClientIntent):
    """A transaction the user has to review and sign outside the shell."""
    protocol: str
    action: str
    payload: Dict[str, Any] = field(default_factory=dict)
    chain_id: Optional[int] = None


@dataclass(frozen=True)
class FetchBalance(ClientIntent):
    """Ask the host wallet for a token balance."""
    address: str
    token: str = "ETH"
    chain_id: Optional[int] = None
