"""Terminal input module with readline-like features.

Provides:
- Command history with up/down arrow navigation
- Tab completion of command names, scored by the fuzzy resolver
- Standard line editing (Ctrl+A, Ctrl+E, Ctrl+K, etc.)
- Persistent history across sessions
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory, InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.styles import Style

from .core.types import Fiber
from .session import Session

QUIT_COMMANDS = ("/quit", "/exit-shell")


def _get_history_path() -> Path:
    """Get path to command history file."""
    if os.name == "nt":
        base = os.environ.get("APPDATA") or str(Path.home())
        return Path(base) / "defiterm" / "history"
    return Path(os.environ.get("XDG_DATA_HOME", str(Path.home() / ".local" / "share"))) / "defiterm" / "history"


class CommandCompleter(Completer):
    """Completes the command word against what the session can resolve."""

    def __init__(self, session: Session):
        self.session = session

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor
        if text.startswith("/"):
            for cmd in QUIT_COMMANDS:
                if cmd.startswith(text):
                    yield Completion(cmd, start_position=-len(text))
            return

        word = text.lstrip().rpartition(":")[2]
        for match in self.session.complete(text):
            meta = match.command.description
            if match.protocol:
                meta = f"{match.protocol}: {meta}" if meta else match.protocol
            yield Completion(match.name, start_position=-len(word), display_meta=meta)


def prompt_markup(session: Session) -> HTML:
    """Prompt showing the active protocol fiber, if any."""
    namespace = session.context.namespace
    if isinstance(namespace, Fiber):
        return HTML("<prompt>defi</prompt>/<protocol>{}</protocol>&gt; ").format(namespace.protocol)
    return HTML("<prompt>defi</prompt>&gt; ")


class TerminalInput:
    """Async terminal input bound to one shell session.

    Usage:
        terminal = TerminalInput(session)
        while True:
            line = await terminal.prompt()
            if line is None:  # EOF/Ctrl+D
                break
            await session.execute(line)
    """

    def __init__(self, session: Session, history_enabled: bool = True):
        self.session = session
        self._prompt_session = PromptSession(
            history=self._history(history_enabled),
            completer=CommandCompleter(session),
            complete_while_typing=True,
            style=Style.from_dict({
                "prompt": "bold green",
                "protocol": "bold magenta",
            }),
            key_bindings=self._bindings(),
            enable_history_search=True,  # Ctrl+R for reverse search
        )

    @staticmethod
    def _history(enabled: bool):
        if not enabled:
            return InMemoryHistory()
        history_path = _get_history_path()
        history_path.parent.mkdir(parents=True, exist_ok=True)
        return FileHistory(str(history_path))

    @staticmethod
    def _bindings() -> KeyBindings:
        bindings = KeyBindings()

        @bindings.add("c-l")
        def clear_screen(event):
            """Clear the screen."""
            event.app.renderer.clear()

        return bindings

    async def prompt(self) -> Optional[str]:
        """Read one line. Returns None on EOF (Ctrl+D) or Ctrl+C."""
        try:
            return await self._prompt_session.prompt_async(prompt_markup(self.session))
        except (EOFError, KeyboardInterrupt):
            return None
