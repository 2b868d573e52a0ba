"""
Domain exceptions for the Goose Tap ledger.

Purpose
-------
Define the structured, domain-specific exception hierarchy for ledger rules.
Services raise these for business rule violations and resource constraints;
the request layer translates them into client responses.

Design Notes
------------
- All domain exceptions inherit from `GoosetapDomainException`, a
  `StructuredError` whose `to_dict()` is what clients receive.
- Errors raised inside a `DatabaseService.get_transaction()` block roll the
  whole transaction back before propagating.
- `ReferralResolutionFailedError` is the only domain error that registration
  catches and downgrades to a log line plus event.
"""

from __future__ import annotations

from typing import Any, Optional

from goosetap.core.exceptions import ErrorSeverity, StructuredError


class GoosetapDomainException(StructuredError):
    """
    Base exception for all domain-level errors.

    Example:
        >>> raise GoosetapDomainException(
        ...     "Tap rejected",
        ...     {"reason": "batch too large"}
        ... )
    """


class InvalidSessionError(GoosetapDomainException):
    """
    Raised when an identity token is missing, malformed or not verifiable.

    Args:
        reason: Why the session was rejected
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(
            f"Invalid session: {reason}",
            details={"reason": reason},
            error_code="INVALID_SESSION",
        )


class NotFoundError(GoosetapDomainException):
    """
    Raised when a requested entity or catalog entry does not exist.

    Args:
        resource_type: Type of resource (e.g., "Upgrade", "Task")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class PlayerNotFoundError(NotFoundError):
    """
    Raised when an operation targets a player row that does not exist.

    Players are created on first authenticated contact, so outside of that
    path a missing row means the caller skipped registration.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, telegram_id: int) -> None:
        self.telegram_id = telegram_id
        super().__init__("Player", telegram_id)


class InsufficientResourcesError(GoosetapDomainException):
    """
    Raised when a player lacks the resource an action consumes.

    Args:
        resource: Name of the resource type (e.g., "coins", "energy")
        required: Amount required for the action
        current: Amount player currently has
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource: str, required: int, current: int) -> None:
        self.resource = resource
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient {resource}: need {required:,}, have {current:,}",
            details={
                "resource": resource,
                "required": required,
                "current": current,
                "deficit": required - current,
            },
            error_code=f"INSUFFICIENT_{resource.upper()}",
        )


class InsufficientEnergyError(InsufficientResourcesError):
    """Raised when a tap batch needs more energy than is available."""

    def __init__(self, required: int, current: int) -> None:
        super().__init__("energy", required, current)


class InsufficientFundsError(InsufficientResourcesError):
    """Raised when an upgrade costs more coins than the player holds."""

    def __init__(self, required: int, current: int) -> None:
        super().__init__("coins", required, current)


class MaxLevelReachedError(GoosetapDomainException):
    """
    Raised when buying an upgrade that is already at its maximum level.

    Args:
        upgrade_id: Catalog id of the upgrade
        max_level: The upgrade's level ceiling
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, upgrade_id: str, max_level: int) -> None:
        self.upgrade_id = upgrade_id
        self.max_level = max_level
        super().__init__(
            f"Upgrade {upgrade_id} is already at max level {max_level}",
            details={"upgrade_id": upgrade_id, "max_level": max_level},
            error_code="MAX_LEVEL_REACHED",
        )


class AlreadyClaimedError(GoosetapDomainException):
    """Raised when a task reward has already been claimed."""

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(
            f"Task already claimed: {task_id}",
            details={"task_id": task_id},
            error_code="TASK_ALREADY_CLAIMED",
        )


class AlreadyClaimedTodayError(GoosetapDomainException):
    """
    Raised when the daily reward is claimed again within 24 hours.

    Args:
        retry_after_seconds: Seconds until the next claim opens
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG

    def __init__(self, retry_after_seconds: float) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Daily reward already claimed: retry after {retry_after_seconds:.0f}s",
            details={"retry_after": retry_after_seconds},
            error_code="DAILY_ALREADY_CLAIMED",
        )


class RequirementNotMetError(GoosetapDomainException):
    """
    Raised when a task's prerequisite or progress requirement is unmet.

    Args:
        task_id: Catalog id of the task
        reason: What is missing
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, task_id: str, reason: str) -> None:
        self.task_id = task_id
        self.reason = reason
        super().__init__(
            f"Requirement not met for {task_id}: {reason}",
            details={"task_id": task_id, "reason": reason},
            error_code="REQUIREMENT_NOT_MET",
        )


class ReferralResolutionFailedError(GoosetapDomainException):
    """
    Raised when the referral chain for a new player could not be written.

    Registration catches this and leaves the player without pointers.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, telegram_id: int, referrer_id: int, reason: str) -> None:
        self.telegram_id = telegram_id
        self.referrer_id = referrer_id
        self.reason = reason
        super().__init__(
            f"Referral resolution failed for {telegram_id} (referrer {referrer_id}): {reason}",
            details={
                "telegram_id": telegram_id,
                "referrer_id": referrer_id,
                "reason": reason,
            },
            error_code="REFERRAL_RESOLUTION_FAILED",
        )


class ValidationError(GoosetapDomainException):
    """
    Raised when caller input fails domain validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class InvalidOperationError(GoosetapDomainException):
    """
    Raised when an action is not allowed in the current context.

    Example:
        >>> raise InvalidOperationError("reset_player", "not allowed in production")
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )


__all__ = [
    "ErrorSeverity",
    "GoosetapDomainException",
    "InvalidSessionError",
    "NotFoundError",
    "PlayerNotFoundError",
    "InsufficientResourcesError",
    "InsufficientEnergyError",
    "InsufficientFundsError",
    "MaxLevelReachedError",
    "AlreadyClaimedError",
    "AlreadyClaimedTodayError",
    "RequirementNotMetError",
    "ReferralResolutionFailedError",
    "ValidationError",
    "InvalidOperationError",
]
