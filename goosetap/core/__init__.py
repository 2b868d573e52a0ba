"""
Core infrastructure layer for Goose Tap.

Provides a single import surface for configuration (Config, ConfigManager),
the database subsystem (DatabaseService, retry policy) and logging.
Configuration is imported first: logging reads Config at import time and
ConfigManager logs through it.

Domain exceptions are not re-exported here; import them from
`goosetap.modules.shared.exceptions`.
"""

from __future__ import annotations

from goosetap.core.config import Config, ConfigManager
from goosetap.core.database import DatabaseRetryPolicy, DatabaseService
from goosetap.core.logging import get_logger, setup_logging

__all__ = [
    "Config",
    "ConfigManager",
    "DatabaseService",
    "DatabaseRetryPolicy",
    "setup_logging",
    "get_logger",
]
