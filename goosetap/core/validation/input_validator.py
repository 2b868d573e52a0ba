"""
Input Validation Layer for Goose Tap

Purpose
-------
Provide a centralized validation layer for all caller inputs reaching the
ledger. Enforces type safety, bounds checking and format validation before
any value reaches a transaction.

Responsibilities
----------------
- Validate and convert inputs to correct types (int, str)
- Enforce bounds checking for numerical inputs (tap counts, limits)
- Validate Telegram user IDs
- Validate catalog identifiers (upgrade ids, task ids)
- Validate display strings (username, names, photo URL)
- Parse client timestamps (datetime or ISO 8601 text) into aware UTC
- Raise ValidationError with caller-friendly messages

Non-Responsibilities
--------------------
- Business rule validation (service layer concern)
- Authentication (identity provider concern)

Observability
-------------
Every validation failure is logged at debug level with field_name, raw_value
(repr) and reason.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, NoReturn, Optional

from goosetap.core.logging.logger import get_logger
from goosetap.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

MAX_TELEGRAM_ID = 2**63 - 1

_IDENTIFIER_PATTERN = re.compile(r"^[a-z0-9][a-z0-9\-]{0,63}$")


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """Log and raise a ValidationError."""
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Centralized input validation.

    All validation methods:
    - Are stateless and deterministic
    - Return validated values on success
    - Raise ValidationError on failure
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        allow_zero: bool = True,
    ) -> int:
        """
        Validate and convert value to integer with optional bounds checking.

        Args:
            value: Input value to validate (string, int, etc.)
            field_name: Name of field for error messages/logging
            min_value: Minimum allowed value (inclusive)
            max_value: Maximum allowed value (inclusive)
            allow_zero: Whether zero is acceptable

        Raises:
            ValidationError: If validation fails
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a whole number, got a boolean")

        if isinstance(value, float) and not value.is_integer():
            _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")

        try:
            int_value = int(value)
        except (ValueError, TypeError):
            _raise_validation_error(
                field_name,
                value,
                f"Must be a whole number, got '{value}'",
            )

        if not allow_zero and int_value == 0:
            _raise_validation_error(field_name, int_value, "Cannot be zero")

        if min_value is not None and int_value < min_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Must be at least {min_value}, got {int_value}",
            )

        if max_value is not None and int_value > max_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Cannot exceed {max_value}, got {int_value}",
            )

        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a strictly positive integer (>= 1)."""
        return InputValidator.validate_integer(
            value=value,
            field_name=field_name,
            min_value=1,
            max_value=max_value,
            allow_zero=False,
        )

    @staticmethod
    def validate_non_negative_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a non-negative integer (>= 0)."""
        return InputValidator.validate_integer(
            value=value,
            field_name=field_name,
            min_value=0,
            max_value=max_value,
            allow_zero=True,
        )

    # =========================================================================
    # ID VALIDATION
    # =========================================================================

    @staticmethod
    def validate_telegram_id(
        value: Any,
        field_name: str = "telegram_id",
    ) -> int:
        """
        Validate a Telegram user ID.

        Telegram IDs are positive integers that fit a signed 64-bit column.
        """
        return InputValidator.validate_positive_integer(
            value=value,
            field_name=field_name,
            max_value=MAX_TELEGRAM_ID,
        )

    @staticmethod
    def validate_identifier(
        value: Any,
        field_name: str,
    ) -> str:
        """
        Validate a catalog identifier such as "golden-goose" or "invite-3-friends".

        Lowercase letters, digits and hyphens; 1 to 64 characters.
        """
        if not isinstance(value, str):
            _raise_validation_error(field_name, value, "Must be a string identifier")

        if not _IDENTIFIER_PATTERN.match(value):
            _raise_validation_error(
                field_name,
                value,
                "Must contain only lowercase letters, digits and hyphens",
            )

        return value

    # =========================================================================
    # STRING VALIDATION
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: int = 1,
        max_length: int = 100,
        allowed_chars: Optional[str] = None,
    ) -> str:
        """
        Validate string input with length and character restrictions.

        Args:
            value: String to validate
            field_name: Name of field for error messages
            min_length: Minimum length (after strip)
            max_length: Maximum length (after strip)
            allowed_chars: Optional whitelist of allowed characters

        Returns:
            Validated, stripped string
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if not isinstance(value, str):
            _raise_validation_error(field_name, value, "Must be text")

        stripped = value.strip()

        if len(stripped) < min_length:
            _raise_validation_error(
                field_name,
                stripped,
                f"Must be at least {min_length} characters",
            )

        if len(stripped) > max_length:
            _raise_validation_error(
                field_name,
                stripped,
                f"Cannot exceed {max_length} characters",
            )

        if allowed_chars is not None:
            invalid = sorted({ch for ch in stripped if ch not in allowed_chars})
            if invalid:
                _raise_validation_error(
                    field_name,
                    stripped,
                    f"Contains invalid characters: {''.join(invalid)}",
                )

        return stripped

    @staticmethod
    def validate_optional_string(
        value: Any,
        field_name: str,
        max_length: int = 100,
    ) -> Optional[str]:
        """Validate an optional display string; blank values become None."""
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        return InputValidator.validate_string(
            value, field_name, min_length=1, max_length=max_length
        )

    # =========================================================================
    # TIMESTAMP VALIDATION
    # =========================================================================

    @staticmethod
    def validate_timestamp(
        value: Any,
        field_name: str,
    ) -> datetime:
        """
        Validate a point in time sent by a client.

        Accepts a datetime or ISO 8601 text such as "2026-01-01T00:00:00Z".
        Values without an offset are taken as UTC; the result is always an
        aware UTC datetime.
        """
        if isinstance(value, str):
            text = value.strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                value = datetime.fromisoformat(text)
            except ValueError:
                _raise_validation_error(field_name, value, f"Must be an ISO 8601 timestamp, got '{value}'")

        if not isinstance(value, datetime):
            _raise_validation_error(field_name, value, "Must be a timestamp")

        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
