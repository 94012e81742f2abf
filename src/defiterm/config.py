from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .core.registry import DEFAULT_FUZZY_THRESHOLD

APP = "defiterm"

logger = logging.getLogger(__name__)


def config_dir() -> Path:
    """
    Cross-platform config directory:
      - Windows: %APPDATA%\\defiterm
      - macOS/Linux: $XDG_CONFIG_HOME/defiterm or ~/.config/defiterm
    """
    if os.name == "nt":
        base = os.environ.get("APPDATA") or str(Path.home())
        return Path(base) / APP
    return Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))) / APP


def config_path() -> Path:
    return config_dir() / "config.json"


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _clamp_threshold(value: float) -> float:
    return min(1.0, max(0.0, value))


@dataclass
class Settings:
    # Protocol resolution
    protocol_priority: List[str] = field(default_factory=list)
    protocol_defaults: Dict[str, str] = field(default_factory=dict)  # command id -> protocol id
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD
    plugins: List[str] = field(default_factory=lambda: ["coinpaprika", "1inch"])
    # Provider endpoints
    oneinch_api_key: str = ""
    oneinch_base_url: str = "https://api.1inch.dev"
    coinpaprika_base_url: str = "https://api.coinpaprika.com/v1"
    http_timeout_s: float = 15.0
    log_level: str = "WARNING"

    @staticmethod
    def load(path: Optional[Path] = None) -> "Settings":
        path = path or config_path()
        defaults = Settings()

        data: dict = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable config %s: %s", path, e)
                data = {}

        s = Settings(
            protocol_priority=[str(p) for p in data.get("protocol_priority", defaults.protocol_priority)],
            protocol_defaults={str(k): str(v) for k, v in data.get("protocol_defaults", {}).items()},
            fuzzy_threshold=float(data.get("fuzzy_threshold", defaults.fuzzy_threshold)),
            plugins=[str(p) for p in data.get("plugins", defaults.plugins)],
            oneinch_api_key=str(data.get("oneinch_api_key", defaults.oneinch_api_key)),
            oneinch_base_url=str(data.get("oneinch_base_url", defaults.oneinch_base_url)),
            coinpaprika_base_url=str(data.get("coinpaprika_base_url", defaults.coinpaprika_base_url)),
            http_timeout_s=float(data.get("http_timeout_s", defaults.http_timeout_s)),
            log_level=str(data.get("log_level", defaults.log_level)),
        )

        # Environment overrides (highest priority)
        if "DEFITERM_PROTOCOL_PRIORITY" in os.environ:
            s.protocol_priority = _split_list(os.environ["DEFITERM_PROTOCOL_PRIORITY"])
        if "DEFITERM_PLUGINS" in os.environ:
            s.plugins = _split_list(os.environ["DEFITERM_PLUGINS"])
        if "DEFITERM_FUZZY_THRESHOLD" in os.environ:
            try:
                s.fuzzy_threshold = float(os.environ["DEFITERM_FUZZY_THRESHOLD"])
            except ValueError:
                logger.warning("Ignoring invalid DEFITERM_FUZZY_THRESHOLD")
        s.log_level = os.environ.get("DEFITERM_LOG_LEVEL", s.log_level).upper()
        s.oneinch_api_key = os.environ.get("ONEINCH_API_KEY", s.oneinch_api_key)
        s.oneinch_base_url = os.environ.get("ONEINCH_BASE_URL", s.oneinch_base_url)
        s.coinpaprika_base_url = os.environ.get("COINPAPRIKA_BASE_URL", s.coinpaprika_base_url)

        s.fuzzy_threshold = _clamp_threshold(s.fuzzy_threshold)
        return s

    def save(self, path: Optional[Path] = None) -> Path:
        path = path or config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return path

    def to_dict(self) -> dict:
        return {
            "protocol_priority": self.protocol_priority,
            "protocol_defaults": self.protocol_defaults,
            "fuzzy_threshold": self.fuzzy_threshold,
            "plugins": self.plugins,
            "oneinch_api_key": self.oneinch_api_key,
            "oneinch_base_url": self.oneinch_base_url,
            "coinpaprika_base_url": self.coinpaprika_base_url,
            "http_timeout_s": self.http_timeout_s,
            "log_level": self.log_level,
        }
