"""
Player Registration Service
===========================

Purpose
-------
Lazily creates the player ledger on first authenticated contact and runs
the one-time referral chain resolution for brand-new players.

Domain
------
- Get-or-create by Telegram id, refreshing display fields for existing players
- Referral resolution exactly once, at creation, in its own transaction
- Development-only hard reset

Design Notes
------------
Creation and referral resolution are two transactions. The player row is
committed first; resolution then locks the new row and its ancestors. A
resolution failure is logged, published as `referral.resolution_failed`
and swallowed, leaving the player without chain pointers.

Two first-contact requests racing on the same id both try to INSERT; the
loser hits the primary-key violation, and the retry policy re-runs the
get-or-create, which then finds the committed row. The referral step only
runs for the request that actually created the row.

Events
------
- player.created
- player.reset
- referral.resolved
- referral.resolution_failed
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from goosetap.core.config.config import Config
from goosetap.core.database.base import utcnow
from goosetap.core.database.retry_policy import DatabaseRetryPolicy
from goosetap.core.database.service import DatabaseService
from goosetap.core.logging.logger import get_logger
from goosetap.core.validation.input_validator import InputValidator
from goosetap.database.models.player import Player
from goosetap.modules.economy.constants import DEFAULT_ENERGY, MIN_LEVEL
from goosetap.modules.economy.formulas import derive_stats
from goosetap.modules.player.projection import PlayerProjection
from goosetap.modules.player.repository import PlayerRepository
from goosetap.modules.referral.resolver import ReferralChainResolver
from goosetap.modules.shared.base_service import BaseService
from goosetap.modules.shared.exceptions import (
    InvalidOperationError,
    PlayerNotFoundError,
    ReferralResolutionFailedError,
)

if TYPE_CHECKING:
    from logging import Logger

    from goosetap.core.config.manager import ConfigManager
    from goosetap.core.event.bus import EventBus


_PROFILE_LIMITS = {
    "username": 64,
    "first_name": 128,
    "last_name": 128,
    "photo_url": 512,
}


class PlayerRegistrationService(BaseService):
    """
    Service for first-contact player creation.

    Public Methods
    --------------
    - get_or_create_player() -> Player projection, creating it if absent
    - player_exists() -> Existence check
    - reset_player() -> Development-only hard delete
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._players = PlayerRepository(
            model_class=Player,
            logger=get_logger(f"{__name__}.PlayerRepository"),
        )
        self._resolver = ReferralChainResolver(
            self._players, get_logger("goosetap.modules.referral.resolver")
        )
        self._retry = retry_policy or DatabaseRetryPolicy.from_config()

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def player_exists(self, telegram_id: int) -> bool:
        telegram_id = InputValidator.validate_telegram_id(telegram_id)

        async with DatabaseService.get_session() as session:
            return await self._players.exists(session, Player.telegram_id == telegram_id)

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def get_or_create_player(
        self,
        telegram_id: int,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        photo_url: Optional[str] = None,
        referrer_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Return the player, creating a defaulted ledger on first contact.

        `referrer_id` only matters when the row is created here; it is
        ignored for existing players and for self-referrals.

        Returns:
            Player projection dict (including resolved referral pointers
            when a chain was written)
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)
        raw_profile = {
            "username": username,
            "first_name": first_name,
            "last_name": last_name,
            "photo_url": photo_url,
        }
        profile = {
            field: InputValidator.validate_optional_string(
                value, field, max_length=_PROFILE_LIMITS[field]
            )
            for field, value in raw_profile.items()
        }
        if referrer_id is not None:
            referrer_id = InputValidator.validate_telegram_id(referrer_id, "referrer_id")

        self.log_operation(
            "get_or_create_player",
            player_id=telegram_id,
            referrer_id=referrer_id,
        )

        async def _upsert() -> Tuple[PlayerProjection, bool]:
            return await self._get_or_insert(telegram_id, profile)

        projection, created = await self._retry.execute(
            _upsert,
            operation_name="player.get_or_create",
            context={"player_id": telegram_id},
        )

        if not created:
            return projection.to_dict()

        await self.emit_event(
            "player.created",
            {"player_id": telegram_id, "referrer_id": referrer_id},
        )
        self.log.info(
            f"Player {telegram_id} created",
            extra={"player_id": telegram_id, "referrer_id": referrer_id},
        )

        if referrer_id is not None and referrer_id != telegram_id:
            resolved = await self._resolve_referral(telegram_id, referrer_id)
            if resolved is not None:
                projection = resolved

        return projection.to_dict()

    async def reset_player(self, telegram_id: int) -> Dict[str, Any]:
        """
        Hard-delete a player ledger.

        Only available in development and testing environments.

        Raises:
            InvalidOperationError: Called in any other environment
            PlayerNotFoundError: No player with this id
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)

        if not (Config.is_development() or Config.is_testing()):
            raise InvalidOperationError(
                "reset_player", f"not allowed in {Config.ENVIRONMENT} environment"
            )

        self.log_operation("reset_player", player_id=telegram_id)

        async with DatabaseService.get_transaction() as session:
            player = await self._players.get_for_update(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)
            await self._players.delete(session, player)

        await self.emit_event("player.reset", {"player_id": telegram_id})
        self.log.warning(
            f"Player {telegram_id} reset",
            extra={"player_id": telegram_id, "environment": Config.ENVIRONMENT},
        )
        return {"telegram_id": telegram_id, "deleted": True}

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _get_or_insert(
        self, telegram_id: int, profile: Dict[str, Optional[str]]
    ) -> Tuple[PlayerProjection, bool]:
        async with DatabaseService.get_transaction() as session:
            player = await self._players.get_for_update(session, telegram_id)

            if player is not None:
                for field, value in profile.items():
                    if value is not None and getattr(player, field) != value:
                        setattr(player, field, value)
                return PlayerProjection.from_model(player), False

            player = self._players.add(session, self._new_player(telegram_id, profile))
            await self._players.flush(session)
            return PlayerProjection.from_model(player), True

    @staticmethod
    def _new_player(telegram_id: int, profile: Dict[str, Optional[str]]) -> Player:
        now = utcnow()
        stats = derive_stats({}, MIN_LEVEL)
        return Player(
            telegram_id=telegram_id,
            **profile,
            coins=0,
            total_earnings=0,
            xp=0,
            level=stats.level,
            energy=min(DEFAULT_ENERGY, stats.max_energy),
            max_energy=stats.max_energy,
            coins_per_tap=stats.coins_per_tap,
            coins_per_hour=stats.coins_per_hour,
            total_taps=0,
            daily_taps=0,
            last_energy_update=now,
            last_offline_earnings=now,
            last_daily_taps_reset=now,
            upgrades={},
            tasks={},
            referrals=[],
            referral_earnings_tier1=0,
            referral_earnings_tier2=0,
            referral_earnings_tier3=0,
            daily_streak=0,
            created_at=now,
            updated_at=now,
        )

    async def _resolve_referral(
        self, telegram_id: int, referrer_id: int
    ) -> Optional[PlayerProjection]:
        """Best-effort chain resolution; failures are reported, never raised."""
        try:
            async with DatabaseService.get_transaction() as session:
                player = await self._players.get_for_update(session, telegram_id)
                if player is None:
                    raise ReferralResolutionFailedError(
                        telegram_id, referrer_id, "player row missing"
                    )
                chain: List[int] = await self._resolver.resolve(
                    session, player, referrer_id, utcnow()
                )
                projection = PlayerProjection.from_model(player)
        except ReferralResolutionFailedError as exc:
            await self._report_referral_failure(exc)
            return None
        except SQLAlchemyError as exc:
            await self._report_referral_failure(
                ReferralResolutionFailedError(telegram_id, referrer_id, type(exc).__name__)
            )
            return None

        await self.emit_event(
            "referral.resolved",
            {"player_id": telegram_id, "chain": chain},
        )
        return projection

    async def _report_referral_failure(self, error: ReferralResolutionFailedError) -> None:
        self.log.warning(
            f"Referral resolution failed for player {error.telegram_id}: {error.reason}",
            extra={
                "player_id": error.telegram_id,
                "referrer_id": error.referrer_id,
                "reason": error.reason,
                "error_code": error.error_code,
            },
        )
        await self.emit_event("referral.resolution_failed", error.to_dict()["details"])
