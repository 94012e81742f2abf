"""defiterm plugin system.

A plugin is one protocol integration: a namespace of commands plus optional
client-side handlers and async initialization. The loader validates each
plugin and registers its command table with the shared registry, once per
plugin id.
"""

from .loader import PluginLoader
from .models import (
    PluginConfig,
    PluginLoadResult,
    PluginRecord,
    PluginValidationError,
    ProtocolPlugin,
    validate_plugin,
)

__all__ = [
    "PluginConfig",
    "PluginLoadResult",
    "PluginLoader",
    "PluginRecord",
    "PluginValidationError",
    "ProtocolPlugin",
    "validate_plugin",
]
