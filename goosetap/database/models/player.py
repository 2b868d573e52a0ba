"""
Player Model
============

One row per Telegram identity holding the whole game ledger.

Schema-only representation of:
- Display fields refreshed from the identity provider
- Balances (coins, lifetime earnings, xp) and energy
- Derived rates and level, cached and kept consistent by the reconciler
- Upgrade, task and referral collections (JSON)
- Referral chain pointers and per-tier lifetime earnings
- Daily reward streak

All behavior and game rules live in service/domain layers. JSON columns are
replaced wholesale on change (never mutated in place) so the ORM sees the
update.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from goosetap.core.database.base import Base, JSONType, TimestampMixin, utcnow
from goosetap.modules.economy.constants import (
    BASE_COINS_PER_TAP,
    BASE_MAX_ENERGY,
    DEFAULT_ENERGY,
    MIN_LEVEL,
)


class Player(Base, TimestampMixin):
    """
    Authoritative per-player game state.

    Derived fields (`level`, `coins_per_tap`, `coins_per_hour`,
    `max_energy`) are never written directly by callers; see
    `goosetap.modules.player.reconciler`.
    """

    # ========================================================================
    # TABLE CONFIGURATION
    # ========================================================================

    __tablename__ = "players"
    __table_args__ = (
        Index("ix_players_total_earnings", "total_earnings"),
        Index("ix_players_referrer_tier1", "referrer_tier1"),
        Index("ix_players_referrer_tier2", "referrer_tier2"),
        Index("ix_players_referrer_tier3", "referrer_tier3"),
    )

    # ========================================================================
    # IDENTITY
    # ========================================================================

    telegram_id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
        doc="Telegram user id",
    )
    username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    version: Mapped[int] = mapped_column(
        nullable=False,
        default=1,
        doc="Optimistic locking version for concurrent updates",
    )

    # ========================================================================
    # BALANCES
    # ========================================================================

    coins: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_earnings: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        doc="Lifetime coins credited; never decremented by spending",
    )
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    energy: Mapped[int] = mapped_column(nullable=False, default=DEFAULT_ENERGY)
    max_energy: Mapped[int] = mapped_column(nullable=False, default=BASE_MAX_ENERGY)

    # ========================================================================
    # DERIVED RATES
    # ========================================================================

    coins_per_tap: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=BASE_COINS_PER_TAP
    )
    coins_per_hour: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    level: Mapped[int] = mapped_column(nullable=False, default=MIN_LEVEL)

    # ========================================================================
    # COUNTERS & TIMESTAMPS
    # ========================================================================

    total_taps: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    daily_taps: Mapped[int] = mapped_column(nullable=False, default=0)

    last_energy_update: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    last_offline_earnings: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    last_daily_taps_reset: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    # ========================================================================
    # COLLECTIONS
    # ========================================================================

    upgrades: Mapped[Dict[str, int]] = mapped_column(
        JSONType, nullable=False, default=dict, doc="upgrade id -> owned level"
    )
    tasks: Mapped[Dict[str, Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        doc='task id -> {"status": "claimed", "completed_at": iso8601}',
    )
    referrals: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list, doc="Direct invitee display entries"
    )

    # ========================================================================
    # REFERRAL CHAIN
    # ========================================================================

    referrer_tier1: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    referrer_tier2: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    referrer_tier3: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    referral_earnings_tier1: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    referral_earnings_tier2: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    referral_earnings_tier3: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # ========================================================================
    # DAILY REWARD
    # ========================================================================

    last_daily_claim_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    daily_streak: Mapped[int] = mapped_column(nullable=False, default=0)

    __mapper_args__ = {"version_id_col": version}

    @property
    def referrer_chain(self) -> List[int]:
        """Resolved ancestors, tier 1 first."""
        return [
            ref
            for ref in (self.referrer_tier1, self.referrer_tier2, self.referrer_tier3)
            if ref is not None
        ]
