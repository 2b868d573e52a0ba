"""
Structured error base for the Goose Tap ledger.

Ledger failures (not enough energy, reward already claimed, unknown player)
are returned to the web app as data, so every error the services raise can
render itself as a stable dict:

    {"error_type": "InsufficientEnergyError", "error_code": "INSUFFICIENT_ENERGY",
     "message": "...", "details": {...}, "severity": "info", "is_retryable": false}

The domain hierarchy lives in `goosetap.modules.shared.exceptions`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """How loudly a failure should be logged."""

    DEBUG = "debug"  # duplicate claims, expected races
    INFO = "info"  # player-caused rejections
    WARNING = "warning"  # handled, but worth a look
    ERROR = "error"


class StructuredError(Exception):
    """
    Exception with a machine-readable payload.

    Subclasses set DEFAULT_SEVERITY / DEFAULT_RETRYABLE and pass an
    `error_code` that clients can switch on.
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.error_code = error_code or type(self).__name__
        super().__init__(message)

    @property
    def severity(self) -> ErrorSeverity:
        return self.DEFAULT_SEVERITY

    @property
    def is_retryable(self) -> bool:
        return self.DEFAULT_RETRYABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | Details: {self.details}"
