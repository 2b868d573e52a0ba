"""
Goose Tap logging: queue-backed console output and ledger log context.
"""

from goosetap.core.logging.logger import (
    LogContext,
    clear_log_context,
    get_log_context,
    get_logger,
    set_log_context,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "LogContext",
    "set_log_context",
    "get_log_context",
    "clear_log_context",
]
