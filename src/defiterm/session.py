"""Shell sessions.

A session owns one ExecutionContext and runs at most one command at a time.
Input arriving while a command is in flight is rejected, not queued. The
registry and plugin loader are shared by every session of the process.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional

from .config import Settings
from .core.context import create_execution_context, update_execution_context, with_wallet
from .core.registry import CommandRegistry
from .core.types import (
    CommandResult,
    ExecutionContext,
    FuzzyMatch,
    ProtocolPreferences,
    ResolutionRequest,
    ResolvedCommand,
    WalletState,
)
from .plugins.loader import PluginLoader
from .plugins.models import Handler, PluginConfig, PluginLoadResult, ProtocolPlugin

logger = logging.getLogger(__name__)

PROTOCOL_FLAG = "--protocol"


@dataclass(frozen=True)
class ParsedLine:
    """One input line split into command token, arguments and override."""
    token: str
    args: str = ""
    explicit_protocol: Optional[str] = None


def parse_line(line: str) -> ParsedLine:
    """Split a line into (token, args, explicit protocol).

    ``--protocol X`` (or ``--protocol=X``) anywhere in the arguments and a
    ``protocol:command`` token both set the explicit protocol; the flag is
    removed from the arguments.
    """
    parts = line.strip().split()
    if not parts:
        return ParsedLine(token="")

    token, rest = parts[0], parts[1:]
    explicit: Optional[str] = None

    namespace, sep, command = token.partition(":")
    if sep and namespace and command:
        explicit, token = namespace, command

    args: List[str] = []
    i = 0
    while i < len(rest):
        part = rest[i]
        if part == PROTOCOL_FLAG and i + 1 < len(rest):
            explicit = rest[i + 1]
            i += 2
            continue
        if part.startswith(PROTOCOL_FLAG + "="):
            explicit = part.split("=", 1)[1] or explicit
            i += 1
            continue
        args.append(part)
        i += 1

    return ParsedLine(token=token, args=" ".join(args), explicit_protocol=explicit)


class OutcomeStatus(str, Enum):
    OK = "ok"                  # Command ran and succeeded
    FAILED = "failed"          # Command ran and returned a failure
    NOT_FOUND = "not_found"    # Nothing resolved
    ERROR = "error"            # Command raised
    BUSY = "busy"              # Rejected, another command in flight
    EMPTY = "empty"            # Blank input


@dataclass
class ExecutionOutcome:
    """What happened to one line of input."""
    status: OutcomeStatus
    line: str
    message: Optional[str] = None
    resolved: Optional[ResolvedCommand] = None
    result: Optional[CommandResult] = None
    handler: Optional[Handler] = None


class Session:
    """One shell session (one terminal tab)."""

    def __init__(
        self,
        registry: CommandRegistry,
        loader: PluginLoader,
        settings: Optional[Settings] = None,
        session_id: Optional[str] = None,
        context: Optional[ExecutionContext] = None,
    ):
        self.id = session_id or uuid.uuid4().hex[:8]
        self.settings = settings or Settings()
        self._registry = registry
        self._loader = loader
        self._context = context or create_execution_context()
        self._busy = False
        self._plugins_loading = False
        self._loading_task: Optional[asyncio.Future] = None

    @property
    def context(self) -> ExecutionContext:
        return self._context

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def loader(self) -> PluginLoader:
        return self._loader

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def plugins_loading(self) -> bool:
        return self._plugins_loading

    # --- Plugins ---

    async def load_plugins(
        self,
        plugins: Iterable[ProtocolPlugin],
        configs: Optional[Mapping[str, PluginConfig]] = None,
    ) -> Dict[str, PluginLoadResult]:
        """Load plugins for this session; resolution waits until this settles."""
        self._plugins_loading = True
        try:
            results = await self._loader.load_all(plugins, configs, self._context)
        finally:
            self._plugins_loading = False

        for plugin_id, result in results.items():
            if not result.success:
                logger.warning("Session %s: plugin %s not loaded: %s", self.id, plugin_id, result.error)
        return results

    def start_loading(
        self,
        plugins: Iterable[ProtocolPlugin],
        configs: Optional[Mapping[str, PluginConfig]] = None,
    ) -> asyncio.Future:
        """Schedule plugin loading in the background. Needs a running loop."""
        self._plugins_loading = True
        self._loading_task = asyncio.ensure_future(self.load_plugins(plugins, configs))
        return self._loading_task

    # --- Context ---

    def preferences(self) -> ProtocolPreferences:
        defaults = {**self.settings.protocol_defaults, **self._context.protocol_preferences}
        return ProtocolPreferences(defaults=defaults, priority=tuple(self.settings.protocol_priority))

    def set_wallet(self, wallet: WalletState) -> None:
        self._context = with_wallet(self._context, wallet)

    def reset(self) -> None:
        """Back to a fresh Global context, keeping the wallet."""
        self._context = create_execution_context(self._context.wallet)

    # --- Resolution ---

    def _request(self, parsed: ParsedLine) -> ResolutionRequest:
        return ResolutionRequest(
            input=parsed.token,
            execution_context=self._context,
            explicit_protocol=parsed.explicit_protocol,
            preferences=self.preferences(),
        )

    def resolve(self, line: str) -> Optional[ResolvedCommand]:
        """Resolve a line against the tables loaded so far.

        Does not wait for plugin loading; ``execute`` does.
        """
        return self._registry.resolve(self._request(parse_line(line)))

    def complete(self, text: str) -> List[FuzzyMatch]:
        """Completion candidates for the command token being typed.

        Empty while plugins are still loading.
        """
        if self._plugins_loading:
            return []
        if not text.strip() or text.lstrip() != text.lstrip().split(" ", 1)[0]:
            # Only the first word is completed
            return []
        parsed = parse_line(text)
        return self._registry.resolve_fuzzy(self._request(parsed), self.settings.fuzzy_threshold)

    # --- Execution ---

    async def execute(self, line: str) -> ExecutionOutcome:
        """Resolve and run one line of input."""
        text = line.strip()
        if not text:
            return ExecutionOutcome(status=OutcomeStatus.EMPTY, line=text)

        if self._busy:
            return ExecutionOutcome(
                status=OutcomeStatus.BUSY,
                line=text,
                message="A command is still running",
            )

        self._busy = True
        try:
            return await self._execute(text)
        finally:
            self._busy = False

    async def _execute(self, text: str) -> ExecutionOutcome:
        if self._loading_task is not None:
            await self._loading_task

        parsed = parse_line(text)
        resolved = self._registry.resolve(self._request(parsed))
        if resolved is None:
            logger.debug("Session %s: no command for %r", self.id, parsed.token)
            return ExecutionOutcome(
                status=OutcomeStatus.NOT_FOUND,
                line=text,
                message=f"Command not found: {parsed.token}. Type 'help' for available commands.",
            )

        args = resolved.protocol_name_as_command or parsed.args
        try:
            result = resolved.command.run(args, self._context)
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, CommandResult):
                raise TypeError(
                    f"Command '{resolved.command.id}' returned {type(result).__name__}, "
                    "expected CommandResult"
                )
            self._context = update_execution_context(
                self._context, resolved.command, args, result, resolved.protocol
            )
        except Exception as e:
            logger.exception("Command %s raised", resolved.command.id)
            return ExecutionOutcome(
                status=OutcomeStatus.ERROR,
                line=text,
                message=f"Error executing command: {e}",
                resolved=resolved,
            )

        return ExecutionOutcome(
            status=OutcomeStatus.OK if result.success else OutcomeStatus.FAILED,
            line=text,
            message=result.error,
            resolved=resolved,
            result=result,
            handler=self._handler_for(resolved) if result.success else None,
        )

    def _handler_for(self, resolved: ResolvedCommand) -> Optional[Handler]:
        if resolved.protocol is None:
            return None
        plugin = self._registry.get_protocol(resolved.protocol)
        if plugin is None:
            return None
        return plugin.handlers.get(resolved.command.id)

    async def run_handler(self, outcome: ExecutionOutcome) -> Optional[CommandResult]:
        """Run the client-side handler attached to an outcome, if any."""
        if outcome.handler is None or outcome.result is None:
            return None
        try:
            return await outcome.handler(outcome.result.value, self._context)
        except Exception as e:
            logger.exception("Handler for %s raised", outcome.line)
            return CommandResult.fail(f"Error executing command: {e}")


class SessionManager:
    """Independent sessions sharing one registry and loader."""

    def __init__(
        self,
        registry: CommandRegistry,
        loader: PluginLoader,
        settings: Optional[Settings] = None,
    ):
        self._registry = registry
        self._loader = loader
        self._settings = settings or Settings()
        self._sessions: Dict[str, Session] = {}

    def open(self, wallet: Optional[WalletState] = None) -> Session:
        """New session, always starting in the global namespace."""
        session = Session(
            self._registry,
            self._loader,
            self._settings,
            context=create_execution_context(wallet),
        )
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def sessions(self) -> List[Session]:
        return list(self._sessions.values())
