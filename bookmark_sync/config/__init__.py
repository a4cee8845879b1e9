from __future__ import annotations

from ._validators import _ensure_api_key
from .integrations import LinkdingConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config

__all__ = [
    "AppConfig",
    "LinkdingConfig",
    "RuntimeConfig",
    "Settings",
    "_ensure_api_key",
    "load_config",
]
