"""
Unit tests for the structured exception hierarchy.
"""

import pytest

from goosetap.core.exceptions import ErrorSeverity, StructuredError
from goosetap.modules.shared.exceptions import (
    AlreadyClaimedTodayError,
    GoosetapDomainException,
    InsufficientEnergyError,
    PlayerNotFoundError,
    ReferralResolutionFailedError,
    ValidationError,
)

pytestmark = pytest.mark.unit


class TestStructuredError:
    def test_insufficient_energy_payload(self):
        exc = InsufficientEnergyError(required=50, current=12)

        assert exc.required == 50
        assert exc.current == 12
        assert exc.to_dict() == {
            "error_type": "InsufficientEnergyError",
            "error_code": "INSUFFICIENT_ENERGY",
            "message": "Insufficient energy: need 50, have 12",
            "details": {"resource": "energy", "required": 50, "current": 12, "deficit": 38},
            "severity": "info",
            "is_retryable": False,
        }

    def test_str_includes_code_and_details(self):
        exc = ValidationError("telegram_id", "must be positive")

        assert str(exc).startswith("[")
        assert "must be positive" in str(exc)
        assert exc.field == "telegram_id"

    def test_domain_errors_share_base(self):
        assert isinstance(PlayerNotFoundError(1), GoosetapDomainException)
        assert isinstance(AlreadyClaimedTodayError(60.0), GoosetapDomainException)

    def test_referral_failure_details(self):
        exc = ReferralResolutionFailedError(7, 999, "referrer not found")

        assert exc.details == {"telegram_id": 7, "referrer_id": 999, "reason": "referrer not found"}
        assert exc.reason == "referrer not found"


class TestSeverity:
    def test_duplicate_claim_is_quiet(self):
        exc = AlreadyClaimedTodayError(3600.0)

        assert exc.severity is ErrorSeverity.DEBUG
        assert exc.is_retryable is False

    def test_missing_player_is_a_warning(self):
        assert PlayerNotFoundError(404).severity is ErrorSeverity.WARNING

    def test_bare_structured_error_defaults(self):
        exc = StructuredError("ledger unavailable")

        assert exc.severity is ErrorSeverity.ERROR
        assert exc.error_code == "StructuredError"
        assert str(exc) == "[StructuredError] ledger unavailable"
