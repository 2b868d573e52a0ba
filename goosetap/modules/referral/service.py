"""
Referral read path: a player's invitees per tier and what each tier earned.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List

from goosetap.core.database.base import ensure_utc
from goosetap.core.database.service import DatabaseService
from goosetap.core.logging.logger import get_logger
from goosetap.core.validation.input_validator import InputValidator
from goosetap.database.models.player import Player
from goosetap.modules.economy.constants import (
    REFERRAL_BONUSES,
    REFERRAL_PERCENTAGES,
    REFERRAL_TIERS,
)
from goosetap.modules.player.repository import PlayerRepository
from goosetap.modules.shared.base_service import BaseService
from goosetap.modules.shared.exceptions import PlayerNotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from goosetap.core.config.manager import ConfigManager
    from goosetap.core.event.bus import EventBus


DEFAULT_TREE_LIMIT = 100


class ReferralService(BaseService):
    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._players = PlayerRepository(
            model_class=Player,
            logger=get_logger(f"{__name__}.PlayerRepository"),
        )

    async def get_referral_tree(self, telegram_id: int) -> Dict[str, Any]:
        """
        Invitees of `telegram_id` on each tier, newest first.

        Returns:
            Dict with `tiers` (one entry per tier: percentage, signup bonus,
            count, earnings, players) and `total_earnings`

        Raises:
            PlayerNotFoundError: No player with this id
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)
        limit = int(self.get_config("gameplay.referral.tree_limit", DEFAULT_TREE_LIMIT))

        async with DatabaseService.get_session() as session:
            player = await self._players.get(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)

            earnings = (
                player.referral_earnings_tier1,
                player.referral_earnings_tier2,
                player.referral_earnings_tier3,
            )

            tiers: List[Dict[str, Any]] = []
            for tier in range(1, REFERRAL_TIERS + 1):
                invitees = await self._players.list_by_referrer(
                    session, telegram_id, tier, limit
                )
                count = await self._players.count_by_referrer(session, telegram_id, tier)
                tiers.append(
                    {
                        "tier": tier,
                        "percentage": REFERRAL_PERCENTAGES[tier - 1],
                        "signup_bonus": REFERRAL_BONUSES[tier - 1],
                        "count": count,
                        "earnings": earnings[tier - 1],
                        "players": [self._entry(p) for p in invitees],
                    }
                )

        return {
            "telegram_id": telegram_id,
            "tiers": tiers,
            "total_earnings": sum(earnings),
        }

    @staticmethod
    def _entry(player: Player) -> Dict[str, Any]:
        joined = ensure_utc(player.created_at)
        return {
            "telegram_id": player.telegram_id,
            "username": player.username,
            "first_name": player.first_name,
            "level": player.level,
            "joined_at": joined.isoformat() if joined else None,
        }
