"""
Sync Service
============

Purpose
-------
The load path a client hits when the game opens or regains focus: settle
offline earnings and energy regeneration, roll the daily tap counter over
on a new UTC day, repair any stale derived stats, and persist all of it in
one transaction.

Offline earnings accrue from `last_offline_earnings` for at most the
configured cap (3h by default); both settlement timestamps move to now, so
the same interval is never credited twice.

Events
------
- session.offline_settled (only when coins were credited)
- player.level_up
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

from goosetap.core.database.base import ensure_utc, utcnow
from goosetap.core.database.service import DatabaseService
from goosetap.core.logging.logger import get_logger
from goosetap.core.validation.input_validator import InputValidator
from goosetap.database.models.player import Player
from goosetap.modules.economy.constants import (
    DEFAULT_ENERGY_REGEN_PER_SECOND,
    DEFAULT_OFFLINE_CAP_HOURS,
)
from goosetap.modules.economy.formulas import settle_offline
from goosetap.modules.player.ledger_service import credit_coins, roll_over_daily_taps
from goosetap.modules.player.projection import PlayerProjection
from goosetap.modules.player.reconciler import DerivedStatReconciler
from goosetap.modules.player.repository import PlayerRepository
from goosetap.modules.shared.base_service import BaseService
from goosetap.modules.shared.exceptions import PlayerNotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from goosetap.core.config.manager import ConfigManager
    from goosetap.core.event.bus import EventBus


class SyncService(BaseService):
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
        self._reconciler = DerivedStatReconciler(
            get_logger(f"{__name__}.DerivedStatReconciler")
        )

    async def load_game(self, telegram_id: int) -> Dict[str, Any]:
        """
        Settle and return the player's state.

        Returns:
            Dict with `player`, `offline_earnings`, `offline_minutes` and
            `daily_reset`

        Raises:
            PlayerNotFoundError: No player with this id
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)
        cap_hours = float(
            self.get_config("gameplay.offline.max_hours", DEFAULT_OFFLINE_CAP_HOURS)
        )
        regen = float(
            self.get_config("gameplay.energy.regen_per_second", DEFAULT_ENERGY_REGEN_PER_SECOND)
        )

        self.log_operation("load_game", player_id=telegram_id)

        async with DatabaseService.get_transaction() as session:
            player = await self._players.get_for_update(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)
            now = utcnow()

            # Rates must be current before they are used for settlement
            result = self._reconciler.reconcile(player)

            settlement = settle_offline(
                energy=player.energy,
                max_energy=player.max_energy,
                coins_per_hour=player.coins_per_hour,
                energy_since=ensure_utc(player.last_energy_update),
                earnings_since=ensure_utc(player.last_offline_earnings),
                now=now,
                cap_hours=cap_hours,
                regen_per_second=regen,
            )

            if settlement.offline_earnings > 0:
                credit_coins(player, settlement.offline_earnings)
            player.energy = settlement.energy
            player.last_energy_update = settlement.energy_updated_at
            player.last_offline_earnings = now

            daily_reset = roll_over_daily_taps(player, now)
            projection = PlayerProjection.from_model(player)

        if settlement.offline_earnings > 0:
            await self.emit_event(
                "session.offline_settled",
                {
                    "player_id": telegram_id,
                    "offline_earnings": settlement.offline_earnings,
                    "offline_minutes": settlement.offline_minutes,
                },
            )
        if result.leveled_up:
            await self.emit_event(
                "player.level_up",
                {"player_id": telegram_id, "old_level": result.old_level, "new_level": result.new_level},
            )

        self.log.info(
            f"Player {telegram_id} loaded",
            extra={
                "player_id": telegram_id,
                "offline_earnings": settlement.offline_earnings,
                "offline_minutes": settlement.offline_minutes,
                "daily_reset": daily_reset,
                "stats_repaired": result.changed,
            },
        )
        return {
            "player": projection.to_dict(),
            "offline_earnings": settlement.offline_earnings,
            "offline_minutes": settlement.offline_minutes,
            "daily_reset": daily_reset,
        }
