"""Plugin Loader.

Validates protocol plugins, runs their async initialization and registers
their command tables with the command registry. Loading never raises: every
failure is reported as a PluginLoadResult.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional

from ..core.context import create_execution_context
from ..core.registry import CommandRegistry
from ..core.types import ExecutionContext
from .models import PluginConfig, PluginLoadResult, PluginRecord, ProtocolPlugin, validate_plugin

logger = logging.getLogger(__name__)


class PluginLoader:
    """Loads plugins into a registry and tracks their status.

    Responsibilities:
    - Validate plugin command tables
    - Await plugin initialization
    - Register command tables (once per plugin id)
    - Report load status and health
    """

    def __init__(self, registry: CommandRegistry):
        self._registry = registry
        self._plugins: Dict[str, PluginRecord] = {}

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    async def load_plugin(
        self,
        plugin: ProtocolPlugin,
        config: Optional[PluginConfig] = None,
        context: Optional[ExecutionContext] = None,
    ) -> PluginLoadResult:
        """Load a plugin.

        Loading an identical plugin again succeeds without registering
        anything new; identity is the plugin signature, so a fresh instance
        from the same factory counts as identical. A different plugin under
        an already loaded id fails.
        """
        plugin_config = config or plugin.default_config or PluginConfig()
        context = context or create_execution_context()

        try:
            existing = self._plugins.get(plugin.id)
            if existing is not None and existing.loaded:
                if existing.plugin.signature() == plugin.signature():
                    return PluginLoadResult(success=True)
                raise ValueError(
                    f"Plugin {plugin.id} is already loaded with a different command table"
                )

            if not plugin_config.enabled:
                return PluginLoadResult(success=False, error=f"Plugin {plugin.id} is disabled")

            reserved = frozenset(
                name for command in self._registry.core_commands() for name in command.names
            )
            validate_plugin(plugin, reserved, self._registry.exit_names())

            if plugin.initialize is not None:
                await plugin.initialize(context, plugin_config)

            self._registry.register_protocol(plugin)

            self._plugins[plugin.id] = PluginRecord(
                plugin=plugin,
                config=plugin_config,
                loaded=True,
                loaded_at=datetime.now(timezone.utc),
            )
            logger.info("Loaded plugin %s (%d commands)", plugin.id, len(plugin.commands))
            return PluginLoadResult(success=True)

        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.warning("Failed to load plugin %s: %s", plugin.id, message)
            if plugin.id not in self._plugins or not self._plugins[plugin.id].loaded:
                self._plugins[plugin.id] = PluginRecord(
                    plugin=plugin,
                    config=plugin_config,
                    loaded=False,
                    error=message,
                )
            return PluginLoadResult(success=False, error=message)

    async def load_all(
        self,
        plugins: Iterable[ProtocolPlugin],
        configs: Optional[Mapping[str, PluginConfig]] = None,
        context: Optional[ExecutionContext] = None,
    ) -> Dict[str, PluginLoadResult]:
        """Load several plugins one after another, in the given order.

        Sequential so registration order (and therefore global search order)
        does not depend on how long each plugin takes to initialize.
        """
        configs = configs or {}
        results: Dict[str, PluginLoadResult] = {}
        for plugin in plugins:
            results[plugin.id] = await self.load_plugin(plugin, configs.get(plugin.id), context)
        return results

    def get_plugin(self, protocol_id: str) -> Optional[PluginRecord]:
        return self._plugins.get(protocol_id)

    def get_all_plugins(self) -> List[PluginRecord]:
        return list(self._plugins.values())

    def loaded_ids(self) -> List[str]:
        return [pid for pid, record in self._plugins.items() if record.loaded]

    def is_loaded(self, protocol_id: str) -> bool:
        record = self._plugins.get(protocol_id)
        return record.loaded if record else False

    async def health_check_all(self, context: Optional[ExecutionContext] = None) -> Dict[str, bool]:
        """Run health checks on all known plugins.

        Failed loads are unhealthy; loaded plugins without a check are healthy.
        """
        context = context or create_execution_context()
        results: Dict[str, bool] = {}

        for plugin_id, record in self._plugins.items():
            if not record.loaded:
                results[plugin_id] = False
                continue
            if record.plugin.health_check is None:
                results[plugin_id] = True
                continue
            try:
                results[plugin_id] = bool(await record.plugin.health_check(context))
            except Exception as e:
                logger.warning("Health check for %s failed: %s", plugin_id, e)
                results[plugin_id] = False

        return results
