"""
Player Repository
=================

Data access for the `players` table. Besides the generic lookups inherited
from BaseRepository it provides the set-based statements the ledger needs:
ancestor credits for referral fan-out and ranking queries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List

from sqlalchemy import update

from goosetap.database.models.player import Player
from goosetap.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


_TIER_EARNINGS = {
    1: Player.referral_earnings_tier1,
    2: Player.referral_earnings_tier2,
    3: Player.referral_earnings_tier3,
}

_TIER_POINTERS = {
    1: Player.referrer_tier1,
    2: Player.referrer_tier2,
    3: Player.referrer_tier3,
}


class PlayerRepository(BaseRepository[Player]):
    """Repository for the Player model."""

    async def credit_referral_share(
        self,
        session: AsyncSession,
        ancestor_id: int,
        tier: int,
        amount: int,
    ) -> bool:
        """
        Add `amount` to an ancestor's coins, lifetime earnings and tier
        accumulator in a single UPDATE.

        The row lock is taken by the UPDATE itself. Returns False when the
        ancestor row no longer exists.
        """
        earnings_col = _TIER_EARNINGS[tier]
        stmt = (
            update(Player)
            .where(Player.telegram_id == ancestor_id)
            .values(
                {
                    Player.coins: Player.coins + amount,
                    Player.total_earnings: Player.total_earnings + amount,
                    earnings_col: earnings_col + amount,
                    Player.version: Player.version + 1,
                }
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        credited = result.rowcount == 1

        self.log.debug(
            "Repository.credit_referral_share: Player",
            extra={
                "ancestor_id": ancestor_id,
                "tier": tier,
                "amount": amount,
                "credited": credited,
            },
        )
        return credited

    async def list_by_referrer(
        self,
        session: AsyncSession,
        telegram_id: int,
        tier: int,
        limit: int,
    ) -> List[Player]:
        """Players whose tier-`tier` ancestor is `telegram_id`, newest first."""
        return await self.find_many_where(
            session,
            _TIER_POINTERS[tier] == telegram_id,
            order_by=[Player.created_at.desc()],
            limit=limit,
        )

    async def count_by_referrer(self, session: AsyncSession, telegram_id: int, tier: int) -> int:
        return await self.count(session, _TIER_POINTERS[tier] == telegram_id)

    async def top_by_earnings(self, session: AsyncSession, limit: int) -> List[Player]:
        return await self.find_many_where(
            session,
            Player.total_earnings > 0,
            order_by=[Player.total_earnings.desc(), Player.telegram_id.asc()],
            limit=limit,
        )

    async def count_ranked(self, session: AsyncSession) -> int:
        return await self.count(session, Player.total_earnings > 0)

    async def count_with_higher_earnings(self, session: AsyncSession, total_earnings: int) -> int:
        return await self.count(session, Player.total_earnings > total_earnings)
