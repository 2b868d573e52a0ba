"""
Referral Chain Resolver
=======================

Runs once per player, right after the player row is created, when a
referrer id was supplied and differs from the new player.

Algorithm
---------
1. Starting at the referrer, follow `referrer_tier1` upward for at most
   three hops. Each ancestor row is locked as it is visited (descendant
   before ancestor, the same order batch taps use).
2. Stop at a missing ancestor, a player with no upstream referrer, or an id
   already visited (cycle guard; the new player itself counts as visited).
3. Store the resolved ids on the new player as `referrer_tier1..3`.
4. Append a display entry to tier 1's `referrals` list and credit the flat
   signup bonus of each resolved tier.

The resolver works inside the caller's transaction and raises
ReferralResolutionFailedError for anything it cannot complete; registration
catches it so player creation is never undone by a referral problem.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from goosetap.modules.economy.constants import REFERRAL_BONUSES, REFERRAL_TIERS
from goosetap.modules.shared.exceptions import ReferralResolutionFailedError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from goosetap.database.models.player import Player
    from goosetap.modules.player.repository import PlayerRepository


class ReferralChainResolver:
    def __init__(self, players: PlayerRepository, logger: Logger) -> None:
        self._players = players
        self.log = logger

    async def walk(
        self,
        session: AsyncSession,
        new_player_id: int,
        referrer_id: int,
    ) -> List[Player]:
        """Locked ancestor rows, tier 1 first (0 to 3 entries)."""
        chain: List[Player] = []
        visited = {new_player_id}
        current: Optional[int] = referrer_id

        while current is not None and len(chain) < REFERRAL_TIERS:
            if current in visited:
                self.log.warning(
                    "Referral cycle detected; chain truncated",
                    extra={"player_id": new_player_id, "ancestor_id": current},
                )
                break

            ancestor = await self._players.get_for_update(session, current)
            if ancestor is None:
                break

            chain.append(ancestor)
            visited.add(current)
            current = ancestor.referrer_tier1

        return chain

    async def resolve(
        self,
        session: AsyncSession,
        new_player: Player,
        referrer_id: int,
        now: datetime,
    ) -> List[int]:
        """
        Resolve and persist the referral chain of `new_player`.

        Returns:
            Resolved ancestor ids, tier 1 first

        Raises:
            ReferralResolutionFailedError: self-referral, chain already set,
                or unknown referrer
        """
        player_id = new_player.telegram_id

        if referrer_id == player_id:
            raise ReferralResolutionFailedError(player_id, referrer_id, "self-referral")

        if new_player.referrer_chain:
            raise ReferralResolutionFailedError(
                player_id, referrer_id, "referral chain already resolved"
            )

        chain = await self.walk(session, player_id, referrer_id)
        if not chain:
            raise ReferralResolutionFailedError(player_id, referrer_id, "referrer not found")

        ids = [ancestor.telegram_id for ancestor in chain]
        new_player.referrer_tier1 = ids[0]
        new_player.referrer_tier2 = ids[1] if len(ids) > 1 else None
        new_player.referrer_tier3 = ids[2] if len(ids) > 2 else None

        tier1 = chain[0]
        tier1.referrals = [
            *(tier1.referrals or []),
            {
                "telegram_id": player_id,
                "username": new_player.username,
                "first_name": new_player.first_name,
                "joined_at": now.isoformat(),
            },
        ]

        for ancestor, bonus in zip(chain, REFERRAL_BONUSES):
            ancestor.coins += bonus
            ancestor.total_earnings += bonus

        self.log.info(
            "Referral chain resolved",
            extra={
                "player_id": player_id,
                "referrer_tier1": new_player.referrer_tier1,
                "referrer_tier2": new_player.referrer_tier2,
                "referrer_tier3": new_player.referrer_tier3,
                "tiers": len(ids),
            },
        )
        return ids
