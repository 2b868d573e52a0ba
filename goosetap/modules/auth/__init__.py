from goosetap.modules.auth.contracts import (
    IdentityProvider,
    VerifiedIdentity,
    parse_referral_param,
    referral_param,
)

__all__ = ["IdentityProvider", "VerifiedIdentity", "parse_referral_param", "referral_param"]
