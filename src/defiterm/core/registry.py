"""Command registry and resolvers.

Owns the core command namespace plus one namespace per loaded protocol
plugin, and exposes:

- ``resolve`` (exact resolver): single deterministic match used to execute
- ``resolve_fuzzy`` (fuzzy resolver): ranked suggestions used for completion

The registry is append-only. Registration is serialized by a lock; lookups
only read and are safe to call from any number of sessions.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple

from .fuzzy import similarity
from .types import (
    Command,
    FuzzyMatch,
    ProtocolPreferences,
    ResolutionRequest,
    ResolvedCommand,
)

if TYPE_CHECKING:
    from ..plugins.models import ProtocolPlugin

logger = logging.getLogger(__name__)

# Namespace key of the built-in commands; no protocol may use it as its id
CORE_NAMESPACE = "core"

# Core command that enters a protocol fiber
ENTRY_COMMAND_ID = "use"

# Core command that leaves a fiber; protocols may not shadow its names
EXIT_COMMAND_ID = "exit"

DEFAULT_FUZZY_THRESHOLD = 0.3


class RegistryError(Exception):
    """Conflicting registration."""
    pass


class CommandRegistry:
    """Registry of core commands and protocol command tables.

    Constructed once by the host application and passed by handle to
    everything that resolves commands.
    """

    def __init__(self, entry_command_id: str = ENTRY_COMMAND_ID, exit_command_id: str = EXIT_COMMAND_ID):
        self.entry_command_id = entry_command_id
        self.exit_command_id = exit_command_id
        self._core: List[Command] = []
        self._protocols: Dict[str, "ProtocolPlugin"] = {}
        # namespace -> name (id or alias) -> command, in registration order
        self._index: Dict[str, Dict[str, Command]] = {CORE_NAMESPACE: {}}
        self._lock = threading.RLock()

    # --- Registration ---

    def register_core(self, command: Command) -> bool:
        """Register a core command.

        Returns False when the identical command is already registered.
        """
        with self._lock:
            if command in self._core:
                return False

            core_index = self._index[CORE_NAMESPACE]
            for name in command.names:
                if name in core_index:
                    raise RegistryError(
                        f"Core command name '{name}' is already used by '{core_index[name].id}'"
                    )
                if name in self._protocols:
                    raise RegistryError(f"Core command name '{name}' collides with protocol '{name}'")

            self._core.append(command)
            for name in command.names:
                core_index[name] = command
            logger.debug("Registered core command %s", command.id)
            return True

    def register_protocol(self, plugin: "ProtocolPlugin") -> bool:
        """Register a protocol plugin's command table under its id.

        Returns False when the identical plugin is already registered.
        """
        with self._lock:
            existing = self._protocols.get(plugin.id)
            if existing is not None:
                if existing.signature() == plugin.signature():
                    return False
                raise RegistryError(
                    f"Protocol '{plugin.id}' is already registered with a different command table"
                )

            if plugin.id == CORE_NAMESPACE:
                raise RegistryError(f"Protocol id '{CORE_NAMESPACE}' is reserved")
            if plugin.id in self._index[CORE_NAMESPACE]:
                raise RegistryError(f"Protocol id '{plugin.id}' collides with a core command")

            exit_names = self.exit_names()
            index: Dict[str, Command] = {}
            for command in plugin.commands:
                for name in command.names:
                    if name in exit_names:
                        raise RegistryError(
                            f"Name '{name}' of '{plugin.id}:{command.id}' is reserved for leaving a protocol"
                        )
                    other = index.get(name)
                    if other is not None and other is not command:
                        raise RegistryError(
                            f"Name '{name}' is ambiguous in protocol '{plugin.id}' "
                            f"({other.id}, {command.id})"
                        )
                    index[name] = command

            self._protocols[plugin.id] = plugin
            self._index[plugin.id] = index
            logger.debug("Registered protocol %s with %d commands", plugin.id, len(plugin.commands))
            return True

    # --- Introspection ---

    def core_commands(self) -> List[Command]:
        return list(self._core)

    def get_core(self, command_id: str) -> Optional[Command]:
        return self._index[CORE_NAMESPACE].get(command_id)

    def exit_names(self) -> FrozenSet[str]:
        """Id and aliases of the exit command, empty if it is not registered."""
        command = self.get_core(self.exit_command_id)
        return frozenset(command.names) if command is not None else frozenset()

    def protocols(self) -> List["ProtocolPlugin"]:
        """Loaded protocols in registration order."""
        return list(self._protocols.values())

    def protocol_ids(self) -> List[str]:
        return list(self._protocols.keys())

    def get_protocol(self, protocol_id: str) -> Optional["ProtocolPlugin"]:
        return self._protocols.get(protocol_id)

    def has_protocol(self, protocol_id: str) -> bool:
        return protocol_id in self._protocols

    def all_commands(self) -> List[Tuple[Optional[str], Command]]:
        """Every registered command as (protocol or None, command)."""
        result: List[Tuple[Optional[str], Command]] = [(None, c) for c in self._core]
        for plugin in self._protocols.values():
            result.extend((plugin.id, c) for c in plugin.commands)
        return result

    def search_order(self, priority: Sequence[str] = ()) -> List[str]:
        """Protocol ids in global search order.

        Protocols listed in ``priority`` come first, in that order; the rest
        keep registration order.
        """
        ordered: List[str] = []
        for protocol_id in priority:
            if protocol_id in self._protocols and protocol_id not in ordered:
                ordered.append(protocol_id)
        for protocol_id in self._protocols:
            if protocol_id not in ordered:
                ordered.append(protocol_id)
        return ordered

    # --- Exact resolver ---

    def resolve(self, request: ResolutionRequest) -> Optional[ResolvedCommand]:
        """Resolve one input token to exactly one command, or None.

        The whole search order is tried with case-sensitive names first. Only
        when every namespace misses is it tried again ignoring case.
        """
        token = request.input.strip()
        if not token:
            return None

        active = request.execution_context.active_protocol
        if active is not None and not request.explicit_protocol and active not in self._protocols:
            logger.warning("Active protocol '%s' is not loaded; resolving against core only", active)

        resolved = self._resolve(token, request, fold=False)
        if resolved is None:
            resolved = self._resolve(token, request, fold=True)
        return resolved

    def _resolve(self, token: str, request: ResolutionRequest, fold: bool) -> Optional[ResolvedCommand]:
        if request.explicit_protocol:
            # Explicit override: that protocol only, no fallback
            return self._match_protocol(request.explicit_protocol, token, fold)

        active = request.execution_context.active_protocol
        if active is not None:
            resolved = self._match_protocol(active, token, fold)
            if resolved:
                return resolved
            return self._match_core(token, allow_entry=False, fold=fold)

        resolved = self._match_core(token, allow_entry=True, fold=fold)
        if resolved:
            return resolved
        return self._match_global(token, request.preferences, fold)

    def _lookup(self, namespace: str, token: str, fold: bool = False) -> Optional[Command]:
        index = self._index.get(namespace)
        if index is None:
            return None
        if not fold:
            return index.get(token)
        lowered = token.lower()
        for name, candidate in index.items():
            if name.lower() == lowered:
                return candidate
        return None

    def _match_protocol(self, protocol_id: str, token: str, fold: bool) -> Optional[ResolvedCommand]:
        command = self._lookup(protocol_id, token, fold)
        if command is None:
            return None
        return ResolvedCommand(command=command, protocol=protocol_id)

    def _match_core(self, token: str, allow_entry: bool, fold: bool) -> Optional[ResolvedCommand]:
        command = self._lookup(CORE_NAMESPACE, token, fold)
        if command is not None:
            return ResolvedCommand(command=command)

        if allow_entry:
            entry = self.get_core(self.entry_command_id)
            protocol_id = self._protocol_id_for(token, fold)
            if entry is not None and protocol_id is not None:
                return ResolvedCommand(command=entry, protocol_name_as_command=protocol_id)
        return None

    def _protocol_id_for(self, token: str, fold: bool) -> Optional[str]:
        if not fold:
            return token if token in self._protocols else None
        lowered = token.lower()
        for protocol_id in self._protocols:
            if protocol_id.lower() == lowered:
                return protocol_id
        return None

    def _match_global(
        self, token: str, preferences: ProtocolPreferences, fold: bool
    ) -> Optional[ResolvedCommand]:
        hits: List[Tuple[str, Command]] = []
        for protocol_id in self.search_order(preferences.priority):
            command = self._lookup(protocol_id, token, fold)
            if command is not None:
                hits.append((protocol_id, command))

        if not hits:
            if fold:
                logger.debug("No protocol defines '%s'", token)
            return None

        if len(hits) > 1:
            for protocol_id, command in hits:
                preferred = preferences.defaults.get(token) or preferences.defaults.get(command.id)
                if preferred == protocol_id:
                    return ResolvedCommand(command=command, protocol=protocol_id)

        protocol_id, command = hits[0]
        return ResolvedCommand(command=command, protocol=protocol_id)

    # --- Fuzzy resolver ---

    def resolve_fuzzy(
        self,
        request: ResolutionRequest,
        threshold: float = DEFAULT_FUZZY_THRESHOLD,
    ) -> List[FuzzyMatch]:
        """Rank visible commands by similarity to the input token.

        Uses the same visibility rules as ``resolve``. Results are sorted by
        score (descending), then shorter id, then registration order.

        Each command id is listed once. When several namespaces share an id
        the best-scoring one is kept; on a tie the one ``resolve`` would pick
        wins (fiber before core, preferred protocol, then search order).
        Protocol entries are listed once per protocol id.
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")

        token = request.input.strip()
        defaults = request.preferences.defaults
        global_search = not request.explicit_protocol and request.execution_context.active_protocol is None
        best: Dict[Tuple[str, str], Tuple[Tuple[float, int, int], FuzzyMatch]] = {}

        for position, (key, protocol_id, command, names, entry) in enumerate(self._visible(request)):
            best_name = names[0]
            best_score = -1.0
            for name in names:
                score = similarity(token, name)
                if score > best_score:
                    best_name, best_score = name, score

            if best_score < threshold:
                continue

            match = FuzzyMatch(
                command=command,
                score=round(best_score, 6),
                name=best_name,
                protocol=protocol_id,
                protocol_name_as_command=entry,
            )
            tier = 0
            if global_search and protocol_id is not None:
                # Core first, then the preferred protocol, then search order
                tier = 1 if defaults.get(command.id) == protocol_id else 2
            rank = (-match.score, tier, position)
            if key not in best or rank < best[key][0]:
                best[key] = (rank, match)

        # Shorter id first; a protocol entry counts by its protocol id
        ranked = sorted(best.items(), key=lambda item: (item[1][0][0], len(item[0][1]), item[1][0][2]))
        return [match for _, (_, match) in ranked]

    def _visible(
        self, request: ResolutionRequest
    ) -> Iterator[Tuple[Tuple[str, str], Optional[str], Command, List[str], Optional[str]]]:
        """Yield (dedup key, protocol, command, candidate names, entry target)."""
        if request.explicit_protocol:
            yield from self._visible_protocol(request.explicit_protocol)
            return

        active = request.execution_context.active_protocol
        if active is not None:
            yield from self._visible_protocol(active)
            yield from self._visible_core()
            return

        yield from self._visible_core()
        order = self.search_order(request.preferences.priority)
        entry = self.get_core(self.entry_command_id)
        if entry is not None:
            for protocol_id in order:
                yield ("entry", protocol_id), None, entry, [protocol_id], protocol_id
        for protocol_id in order:
            yield from self._visible_protocol(protocol_id)

    def _visible_core(self):
        for command in self._core:
            yield ("command", command.id), None, command, list(command.names), None

    def _visible_protocol(self, protocol_id: str):
        plugin = self._protocols.get(protocol_id)
        if plugin is None:
            return
        for command in plugin.commands:
            yield ("command", command.id), protocol_id, command, list(command.names), None
