"""
Unit tests for the identity contract and referral deep-link parameters.
"""

import pytest

from goosetap.modules.auth import VerifiedIdentity, parse_referral_param, referral_param

pytestmark = pytest.mark.unit


class TestReferralParam:
    def test_round_trip(self):
        assert referral_param(42) == "ref_42"
        assert parse_referral_param("ref_42") == 42

    @pytest.mark.parametrize(
        "param",
        [None, "", "42", "ref_", "ref_abc", "ref_-5", "ref_0", "invite_42", "ref_" + "9" * 20],
    )
    def test_malformed_params_ignored(self, param):
        assert parse_referral_param(param) is None

    def test_self_referral_ignored(self):
        assert parse_referral_param("ref_42", own_id=42) is None
        assert parse_referral_param("ref_42", own_id=7) == 42


class TestVerifiedIdentity:
    def test_profile_matches_registration_kwargs(self):
        identity = VerifiedIdentity(telegram_id=7, username="honk", first_name="Gus")

        assert identity.profile() == {
            "telegram_id": 7,
            "username": "honk",
            "first_name": "Gus",
            "last_name": None,
            "photo_url": None,
        }

    async def test_profile_feeds_registration(self, registration):
        identity = VerifiedIdentity(telegram_id=7, first_name="Gus")

        player = await registration.get_or_create_player(**identity.profile())

        assert player["telegram_id"] == 7
        assert player["first_name"] == "Gus"
