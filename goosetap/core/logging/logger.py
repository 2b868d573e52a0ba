"""
Goose Tap Logging
=================

Every ledger log line carries the player it concerns, the operation being
applied (tap, claim_daily, load_game, ...) and a correlation id, so a single
tap batch or reward claim can be followed from the web app request through
referral fan-out to the post-commit events.

Records are handed to a QueueHandler and written by a QueueListener thread,
which keeps stdout writes off the event loop. Output is one console stream:
JSON lines in production (or with LOG_JSON=true), a compact text line
otherwise.

Context is bound with LogContext or set_log_context and stored in a
ContextVar, so concurrent requests on one loop never see each other's
player id.

    async with LogContext(player_id=42, operation="tap", source="webapp"):
        await ledger.tap(42, count=25)
"""

from __future__ import annotations

import atexit
import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Dict, Optional

from goosetap.core.config.config import Config

UNSET = "N/A"

# Fields every record carries, filled with UNSET outside a bound context
CONTEXT_FIELDS = ("player_id", "operation", "correlation_id", "source")

TEXT_FORMAT = (
    "%(asctime)s %(levelname)-8s %(name)s "
    "[player=%(player_id)s op=%(operation)s cid=%(correlation_id)s] %(message)s"
)

_ledger_context: ContextVar[Dict[str, Any]] = ContextVar("ledger_context", default={})

_listener: Optional[QueueListener] = None


# ============================================================================
# Filter & Formatter
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the bound ledger context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _ledger_context.get()
        for field in CONTEXT_FIELDS:
            # An explicit extra={"operation": ...} wins over the bound context
            if getattr(record, field, None) is None:
                setattr(record, field, context.get(field, UNSET))
        return True


_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; `extra=` fields are nested under "extra"."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, UNSET)
            if value != UNSET:
                payload[field] = value

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in CONTEXT_FIELDS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


# ============================================================================
# Setup
# ============================================================================


def _use_json() -> bool:
    if Config.LOG_JSON is None:
        return Config.is_production()
    return Config.LOG_JSON


def _log_level() -> int:
    return getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO)


def setup_logging() -> None:
    """Install the queue-backed console handler on the root logger once."""
    global _listener

    if _listener is not None:
        return

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(JSONFormatter() if _use_json() else logging.Formatter(TEXT_FORMAT))

    log_queue: "queue.SimpleQueue[logging.LogRecord]" = queue.SimpleQueue()
    queue_handler = QueueHandler(log_queue)
    # Context lives in a ContextVar, so it must be read before the record
    # crosses to the listener thread
    queue_handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.setLevel(_log_level())
    root.addHandler(queue_handler)

    _listener = QueueListener(log_queue, console)
    _listener.start()
    atexit.register(_listener.stop)

    for noisy in ("sqlalchemy.engine", "aiosqlite", "asyncio", "testcontainers"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": Config.ENVIRONMENT,
            "log_level": logging.getLevelName(_log_level()),
            "json": _use_json(),
        },
    )


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


# ============================================================================
# Ledger context
# ============================================================================


class LogContext:
    """
    Bind player, operation and correlation id for a block (sync or async).

    The previous context is restored on exit. A correlation id is generated
    when none is given.
    """

    def __init__(
        self,
        player_id: Optional[int] = None,
        operation: Optional[str] = None,
        source: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self.context: Dict[str, Any] = {
            "player_id": str(player_id) if player_id is not None else UNSET,
            "operation": operation or UNSET,
            "source": source or UNSET,
            "correlation_id": correlation_id or uuid.uuid4().hex[:8],
            **extra,
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _ledger_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _ledger_context.reset(self._token)

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(
    player_id: Optional[int] = None,
    operation: Optional[str] = None,
    source: Optional[str] = None,
    correlation_id: Optional[str] = None,
    **extra: Any,
) -> None:
    """Merge fields into the current context without a scope."""
    current = dict(_ledger_context.get())
    if player_id is not None:
        current["player_id"] = str(player_id)
    if operation is not None:
        current["operation"] = operation
    if source is not None:
        current["source"] = source
    if correlation_id is not None:
        current["correlation_id"] = correlation_id
    current.update(extra)
    _ledger_context.set(current)


def get_log_context() -> Dict[str, Any]:
    return dict(_ledger_context.get())


def clear_log_context() -> None:
    _ledger_context.set({})


setup_logging()
