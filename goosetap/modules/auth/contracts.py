"""
Identity contract between the request layer and the ledger.

The ledger never sees raw session tokens. A request handler passes the
token to an `IdentityProvider`, which returns a `VerifiedIdentity` or raises
InvalidSessionError; the handler then calls ledger services with the
verified `telegram_id`. How tokens are signed and checked is the provider's
business.

Referral deep links carry the inviter as a start parameter of the form
`ref_<telegram_id>`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from goosetap.core.validation.input_validator import MAX_TELEGRAM_ID

REFERRAL_PARAM_PREFIX = "ref_"


@dataclass(frozen=True)
class VerifiedIdentity:
    telegram_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    photo_url: Optional[str] = None

    def profile(self) -> Dict[str, Any]:
        """Keyword arguments for PlayerRegistrationService.get_or_create_player."""
        return {
            "telegram_id": self.telegram_id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "photo_url": self.photo_url,
        }


class IdentityProvider(Protocol):
    async def verify(self, token: str) -> VerifiedIdentity:
        """
        Verify a session token.

        Raises:
            InvalidSessionError: Token missing, malformed, expired or forged
        """
        ...


def parse_referral_param(param: Optional[str], own_id: Optional[int] = None) -> Optional[int]:
    """
    Extract the referrer id from a `ref_<id>` start parameter.

    Returns None for a missing or malformed parameter, an id outside the
    Telegram range, or a self-referral.
    """
    if not param or not param.startswith(REFERRAL_PARAM_PREFIX):
        return None

    raw = param[len(REFERRAL_PARAM_PREFIX):]
    if not raw.isdigit():
        return None

    referrer_id = int(raw)
    if referrer_id < 1 or referrer_id > MAX_TELEGRAM_ID:
        return None
    if own_id is not None and referrer_id == own_id:
        return None
    return referrer_id


def referral_param(telegram_id: int) -> str:
    return f"{REFERRAL_PARAM_PREFIX}{telegram_id}"
