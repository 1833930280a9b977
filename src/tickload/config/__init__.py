from __future__ import annotations

from tickload.config.models import ConfigurationError, RunConfig, TargetConfig
from tickload.config.settings import Settings

__all__ = [
    "ConfigurationError",
    "RunConfig",
    "Settings",
    "TargetConfig",
]
