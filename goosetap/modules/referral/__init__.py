"""Three-tier referral chain: one-time resolution and the invitee read path."""

from goosetap.modules.referral.resolver import ReferralChainResolver
from goosetap.modules.referral.service import ReferralService

__all__ = ["ReferralChainResolver", "ReferralService"]
