"""
Leaderboard Service
===================

Read-only ranking of players by lifetime earnings.

Only players with `total_earnings > 0` are ranked. Ties share the ordering
of `telegram_id`, and a player's own rank is `count(players earning more) + 1`,
so tied players report the same rank. No pagination or caching.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from goosetap.core.database.service import DatabaseService
from goosetap.core.logging.logger import get_logger
from goosetap.core.validation.input_validator import InputValidator
from goosetap.database.models.player import Player
from goosetap.modules.player.repository import PlayerRepository
from goosetap.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from goosetap.core.config.manager import ConfigManager
    from goosetap.core.event.bus import EventBus


DEFAULT_LEADERBOARD_LIMIT = 50


class LeaderboardService(BaseService):
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

    async def get_leaderboard(
        self,
        telegram_id: Optional[int] = None,
        limit: int = DEFAULT_LEADERBOARD_LIMIT,
    ) -> Dict[str, Any]:
        """
        Top players by lifetime earnings.

        Args:
            telegram_id: Optional caller; adds `player_rank` to the result
            limit: Entries to return, capped at `gameplay.leaderboard.max_limit`

        Returns:
            Dict with `entries`, `total_players` and `player_rank` (None when
            the caller is absent or unranked)
        """
        max_limit = int(
            self.get_config("gameplay.leaderboard.max_limit", DEFAULT_LEADERBOARD_LIMIT)
        )
        limit = min(InputValidator.validate_positive_integer(limit, "limit"), max_limit)
        if telegram_id is not None:
            telegram_id = InputValidator.validate_telegram_id(telegram_id)

        async with DatabaseService.get_session() as session:
            top = await self._players.top_by_earnings(session, limit)
            total = await self._players.count_ranked(session)

            player_rank: Optional[Dict[str, Any]] = None
            if telegram_id is not None:
                me = await self._players.get(session, telegram_id)
                if me is not None and me.total_earnings > 0:
                    higher = await self._players.count_with_higher_earnings(
                        session, me.total_earnings
                    )
                    player_rank = {
                        "rank": higher + 1,
                        "total_earnings": me.total_earnings,
                        "level": me.level,
                    }

            entries: List[Dict[str, Any]] = [
                {
                    "rank": position,
                    "telegram_id": player.telegram_id,
                    "username": player.username,
                    "first_name": player.first_name,
                    "photo_url": player.photo_url,
                    "level": player.level,
                    "total_earnings": player.total_earnings,
                }
                for position, player in enumerate(top, start=1)
            ]

        self.log.debug(
            "Leaderboard read",
            extra={"entries": len(entries), "total_players": total, "player_id": telegram_id},
        )
        return {"entries": entries, "total_players": total, "player_rank": player_rank}
