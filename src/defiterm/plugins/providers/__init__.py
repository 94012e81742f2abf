"""Bundled protocol plugins."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from ...config import Settings
from ..models import ProtocolPlugin
from . import coinpaprika, oneinch
from .base import ProviderError

logger = logging.getLogger(__name__)

FACTORIES: Dict[str, Callable[[Settings], ProtocolPlugin]] = {
    coinpaprika.PROTOCOL_ID: coinpaprika.create_plugin,
    oneinch.PROTOCOL_ID: oneinch.create_plugin,
}


def builtin_plugins(settings: Optional[Settings] = None) -> List[ProtocolPlugin]:
    """Create the bundled plugins enabled in settings, in configured order."""
    settings = settings or Settings()
    plugins = []
    for plugin_id in settings.plugins:
        factory = FACTORIES.get(plugin_id)
        if factory is None:
            logger.warning("Unknown plugin in configuration: %s", plugin_id)
            continue
        plugins.append(factory(settings))
    return plugins


__all__ = ["FACTORIES", "ProviderError", "builtin_plugins"]
