"""
Player projection: the flat, client-safe view of a Player row.

Every service operation returns `PlayerProjection.to_dict()` rather than
the ORM object, so nothing detached or lazily loaded escapes a transaction.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from goosetap.core.database.base import ensure_utc
from goosetap.database.models.player import Player
from goosetap.modules.economy.formulas import level_info, next_level_xp


@dataclass(frozen=True)
class PlayerProjection:
    telegram_id: int
    username: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    photo_url: Optional[str]
    coins: int
    total_earnings: int
    xp: int
    level: int
    level_title: str
    next_level_xp: Optional[int]
    energy: int
    max_energy: int
    coins_per_tap: int
    coins_per_hour: int
    total_taps: int
    daily_taps: int
    last_energy_update: Optional[datetime]
    last_offline_earnings: Optional[datetime]
    last_daily_taps_reset: Optional[datetime]
    upgrades: Dict[str, int] = field(default_factory=dict)
    tasks: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    referrals: List[Dict[str, Any]] = field(default_factory=list)
    referrer_tier1: Optional[int] = None
    referrer_tier2: Optional[int] = None
    referrer_tier3: Optional[int] = None
    referral_earnings_tier1: int = 0
    referral_earnings_tier2: int = 0
    referral_earnings_tier3: int = 0
    last_daily_claim_at: Optional[datetime] = None
    daily_streak: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, player: Player) -> "PlayerProjection":
        return cls(
            telegram_id=player.telegram_id,
            username=player.username,
            first_name=player.first_name,
            last_name=player.last_name,
            photo_url=player.photo_url,
            coins=player.coins,
            total_earnings=player.total_earnings,
            xp=player.xp,
            level=player.level,
            level_title=level_info(player.level).title,
            next_level_xp=next_level_xp(player.level),
            energy=player.energy,
            max_energy=player.max_energy,
            coins_per_tap=player.coins_per_tap,
            coins_per_hour=player.coins_per_hour,
            total_taps=player.total_taps,
            daily_taps=player.daily_taps,
            last_energy_update=ensure_utc(player.last_energy_update),
            last_offline_earnings=ensure_utc(player.last_offline_earnings),
            last_daily_taps_reset=ensure_utc(player.last_daily_taps_reset),
            upgrades=dict(player.upgrades or {}),
            tasks={k: dict(v) for k, v in (player.tasks or {}).items()},
            referrals=[dict(r) for r in (player.referrals or [])],
            referrer_tier1=player.referrer_tier1,
            referrer_tier2=player.referrer_tier2,
            referrer_tier3=player.referrer_tier3,
            referral_earnings_tier1=player.referral_earnings_tier1,
            referral_earnings_tier2=player.referral_earnings_tier2,
            referral_earnings_tier3=player.referral_earnings_tier3,
            last_daily_claim_at=ensure_utc(player.last_daily_claim_at),
            daily_streak=player.daily_streak,
            created_at=ensure_utc(player.created_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialisable dict; datetimes become ISO-8601 strings."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        return data
