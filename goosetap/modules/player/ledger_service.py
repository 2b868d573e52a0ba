"""
Player Ledger Service
=====================

Purpose
-------
Balance-affecting player operations: taps (with referral fan-out), upgrade
purchases and the field-mask state update, plus the read and offline
settlement projections they rely on.

Domain
------
- Spend energy for coins and XP
- Credit batch-tap shares to up to three referral ancestors
- Buy upgrade levels and keep derived rates consistent
- Persist client-supplied state through an explicit field mask

Transaction discipline
----------------------
Every write is one `DatabaseService.get_transaction()` unit:

1. Lock the player row (`SELECT ... FOR UPDATE`)
2. Re-check every precondition against the locked row
3. Mutate
4. Reconcile derived stats on the same row
5. Commit (any exception rolls the whole unit back)

Tap and purchase are not idempotent and are never retried here; callers
must submit each accumulated batch exactly once.

Events
------
- player.tapped
- player.level_up
- player.upgrade_purchased
- player.state_saved
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from goosetap.core.database.base import ensure_utc, utcnow
from goosetap.core.database.service import DatabaseService
from goosetap.core.logging.logger import get_logger
from goosetap.core.validation.input_validator import InputValidator
from goosetap.database.models.player import Player
from goosetap.modules.economy.constants import (
    DAILY_TASK_PREFIX,
    DEFAULT_ENERGY_REGEN_PER_SECOND,
    DEFAULT_OFFLINE_CAP_HOURS,
    UPGRADES_BY_ID,
    XpReward,
)
from goosetap.modules.economy.formulas import (
    OfflineSettlement,
    referral_shares,
    regenerate_energy,
    settle_offline,
    should_reset_daily_taps,
    upgrade_cost,
)
from goosetap.modules.player.projection import PlayerProjection
from goosetap.modules.player.reconciler import DerivedStatReconciler, ReconcileResult
from goosetap.modules.player.repository import PlayerRepository
from goosetap.modules.shared.base_service import BaseService
from goosetap.modules.shared.exceptions import (
    InsufficientEnergyError,
    InsufficientFundsError,
    MaxLevelReachedError,
    NotFoundError,
    PlayerNotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from goosetap.core.config.manager import ConfigManager
    from goosetap.core.event.bus import EventBus


DEFAULT_MAX_TAP_BATCH = 1000


# ============================================================================
# Field-mask update
# ============================================================================


_DERIVED_FIELDS = frozenset({"level", "coins_per_tap", "coins_per_hour", "max_energy"})


@dataclass(frozen=True)
class StateUpdate:
    """
    Explicit field mask for `LedgerService.update_state`.

    Fields left as None are not touched. Derived fields are not part of the
    mask; they are always recomputed from `xp` and `upgrades`.
    """

    coins: Optional[int] = None
    xp: Optional[int] = None
    energy: Optional[int] = None
    upgrades: Optional[Mapping[str, int]] = None
    last_energy_update: Optional[datetime] = None
    last_offline_earnings: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StateUpdate":
        """
        Build a mask from a client payload.

        Raises:
            ValidationError: Unknown or derived key, or a value of the wrong
                shape (timestamps may be ISO 8601 text)
        """
        if not isinstance(data, Mapping):
            raise ValidationError("state", "must be an object")

        allowed = {f.name for f in fields(cls)}
        for key in data:
            if key in _DERIVED_FIELDS:
                raise ValidationError(key, "derived field cannot be set directly")
            if key not in allowed:
                raise ValidationError(key, "field cannot be updated")
        return cls(**validate_state_changes({k: v for k, v in data.items() if v is not None}))

    def provided(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


def validate_state_changes(changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Type and range checks for mask fields that need no player row."""
    validated = dict(changes)

    for name in ("coins", "xp", "energy"):
        if name in validated:
            validated[name] = InputValidator.validate_non_negative_integer(validated[name], name)

    for name in ("last_energy_update", "last_offline_earnings"):
        if name in validated:
            validated[name] = InputValidator.validate_timestamp(validated[name], name)

    if "upgrades" in validated:
        validated["upgrades"] = _validate_upgrades(validated["upgrades"])

    return validated


def _validate_upgrades(upgrades: Any) -> Dict[str, int]:
    if not isinstance(upgrades, Mapping):
        raise ValidationError("upgrades", "must map upgrade ids to levels")

    validated: Dict[str, int] = {}
    for upgrade_id, level in upgrades.items():
        upgrade_id = InputValidator.validate_identifier(upgrade_id, "upgrades")
        upgrade = UPGRADES_BY_ID.get(upgrade_id)
        if upgrade is None:
            raise ValidationError("upgrades", f"unknown upgrade {upgrade_id}")
        validated[upgrade_id] = InputValidator.validate_integer(
            level, "upgrades", min_value=0, max_value=upgrade.max_level
        )
    return validated


_SETTLEMENT_CLOCKS = ("last_energy_update", "last_offline_earnings")


def _check_settlement_clock(
    name: str, proposed: datetime, stored: Optional[datetime], now: datetime
) -> None:
    stored = ensure_utc(stored)
    if stored is not None and proposed < stored:
        raise ValidationError(name, f"cannot move back from {stored.isoformat()}")
    if proposed > now:
        raise ValidationError(name, "cannot be in the future")


# ============================================================================
# Helpers shared by ledger, rewards and sync
# ============================================================================


def roll_over_daily_taps(player: Player, now: datetime) -> bool:
    """
    Reset the daily tap counter on a new UTC day.

    Claimed daily-tap tasks are dropped so they can be earned again.
    """
    if not should_reset_daily_taps(ensure_utc(player.last_daily_taps_reset), now):
        return False

    player.daily_taps = 0
    player.last_daily_taps_reset = now
    player.tasks = {
        task_id: entry
        for task_id, entry in (player.tasks or {}).items()
        if not task_id.startswith(DAILY_TASK_PREFIX)
    }
    return True


def credit_coins(player: Player, amount: int) -> None:
    """Add earned coins; lifetime earnings move with every credit."""
    player.coins += amount
    player.total_earnings += amount


# ============================================================================
# LedgerService
# ============================================================================


class LedgerService(BaseService):
    """
    Tap, purchase and state persistence for a single player ledger.

    Public Methods
    --------------
    - get_player() -> Read-only projection
    - tap() -> Spend energy, earn coins/XP, fan out referral shares
    - purchase_upgrade() -> Buy the next level of an upgrade
    - update_state() -> Field-mask update of client-persisted state
    - settle_offline() -> Pure offline earnings/energy projection
    """

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

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_player(self, telegram_id: int) -> Dict[str, Any]:
        """
        Get the player projection.

        Raises:
            PlayerNotFoundError: No player with this id
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)

        async with DatabaseService.get_session() as session:
            player = await self._players.get(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)
            return PlayerProjection.from_model(player).to_dict()

    def settle_offline(
        self,
        player: Union[Player, PlayerProjection],
        now: Optional[datetime] = None,
    ) -> OfflineSettlement:
        """
        Project offline earnings and restored energy for `player`.

        Nothing is persisted; callers store the result through
        `update_state` (or use SyncService.load_game, which does both).
        """
        return settle_offline(
            energy=player.energy,
            max_energy=player.max_energy,
            coins_per_hour=player.coins_per_hour,
            energy_since=ensure_utc(player.last_energy_update),
            earnings_since=ensure_utc(player.last_offline_earnings),
            now=now or utcnow(),
            cap_hours=float(
                self.get_config("gameplay.offline.max_hours", DEFAULT_OFFLINE_CAP_HOURS)
            ),
            regen_per_second=float(
                self.get_config(
                    "gameplay.energy.regen_per_second", DEFAULT_ENERGY_REGEN_PER_SECOND
                )
            ),
        )

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def tap(
        self,
        telegram_id: int,
        count: int = 1,
        coins_per_tap_snapshot: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Apply `count` taps atomically.

        Energy regenerated since the last update is credited (up to max)
        before the energy check. For batches (`count > 1`) each resolved
        referral ancestor receives its tier share of the coins earned, in
        the same transaction.

        Args:
            telegram_id: Tapping player
            count: Number of taps in this batch (>= 1)
            coins_per_tap_snapshot: Rate the client last saw; defaults to the
                stored rate and may not exceed it

        Returns:
            Player projection dict

        Raises:
            PlayerNotFoundError: No player with this id
            InsufficientEnergyError: energy < count (nothing applied)
            ValidationError: Bad count or snapshot above the stored rate
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)
        max_batch = int(self.get_config("gameplay.tap.max_batch", DEFAULT_MAX_TAP_BATCH))
        count = InputValidator.validate_positive_integer(count, "count", max_value=max_batch)
        if coins_per_tap_snapshot is not None:
            coins_per_tap_snapshot = InputValidator.validate_positive_integer(
                coins_per_tap_snapshot, "coins_per_tap"
            )

        xp_per_tap = int(self.get_config("gameplay.xp.tap", XpReward.TAP))
        regen = float(
            self.get_config("gameplay.energy.regen_per_second", DEFAULT_ENERGY_REGEN_PER_SECOND)
        )

        self.log_operation("tap", player_id=telegram_id, count=count)

        async with DatabaseService.get_transaction() as session:
            player = await self._players.get_for_update(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)
            now = utcnow()

            rate = player.coins_per_tap
            if coins_per_tap_snapshot is not None:
                if coins_per_tap_snapshot > rate:
                    raise ValidationError(
                        "coins_per_tap",
                        f"snapshot {coins_per_tap_snapshot} exceeds current rate {rate}",
                    )
                rate = coins_per_tap_snapshot

            player.energy, player.last_energy_update = regenerate_energy(
                player.energy,
                player.max_energy,
                ensure_utc(player.last_energy_update),
                now,
                regen,
            )
            if player.energy < count:
                raise InsufficientEnergyError(count, player.energy)

            roll_over_daily_taps(player, now)

            earned = count * rate
            credit_coins(player, earned)
            player.xp += count * xp_per_tap
            player.energy -= count
            player.total_taps += count
            player.daily_taps += count

            shares: Dict[int, int] = {}
            if count > 1:
                shares = await self._fan_out_referral_shares(session, player, earned)

            result = self._reconciler.reconcile(player)
            projection = PlayerProjection.from_model(player)

        await self.emit_event(
            "player.tapped",
            {
                "player_id": telegram_id,
                "count": count,
                "coins_earned": earned,
                "referral_shares": shares,
            },
        )
        await self._emit_level_up(telegram_id, result)

        self.log.info(
            f"Player {telegram_id} tapped {count}x for {earned} coins",
            extra={
                "player_id": telegram_id,
                "count": count,
                "coins_earned": earned,
                "referral_tiers_credited": len(shares),
            },
        )
        return projection.to_dict()

    async def purchase_upgrade(self, telegram_id: int, upgrade_id: str) -> Dict[str, Any]:
        """
        Buy the next level of an upgrade.

        Cost is `floor(base_cost * multiplier ** owned_level)`; the purchase
        awards `upgrade XP * new owned level` and reconciles derived rates.

        Raises:
            PlayerNotFoundError: No player with this id
            NotFoundError: Unknown upgrade id
            MaxLevelReachedError: Upgrade already at its max level
            InsufficientFundsError: Not enough coins
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)
        upgrade_id = InputValidator.validate_identifier(upgrade_id, "upgrade_id")

        upgrade = UPGRADES_BY_ID.get(upgrade_id)
        if upgrade is None:
            raise NotFoundError("Upgrade", upgrade_id)

        xp_per_level = int(self.get_config("gameplay.xp.upgrade", XpReward.UPGRADE))

        self.log_operation("purchase_upgrade", player_id=telegram_id, upgrade_id=upgrade_id)

        async with DatabaseService.get_transaction() as session:
            player = await self._players.get_for_update(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)

            owned = (player.upgrades or {}).get(upgrade_id, 0)
            if owned >= upgrade.max_level:
                raise MaxLevelReachedError(upgrade_id, upgrade.max_level)

            cost = upgrade_cost(upgrade, owned)
            if player.coins < cost:
                raise InsufficientFundsError(cost, player.coins)

            new_level = owned + 1
            player.coins -= cost
            player.upgrades = {**(player.upgrades or {}), upgrade_id: new_level}
            player.xp += xp_per_level * new_level

            result = self._reconciler.reconcile(player)
            projection = PlayerProjection.from_model(player)

        await self.emit_event(
            "player.upgrade_purchased",
            {
                "player_id": telegram_id,
                "upgrade_id": upgrade_id,
                "new_level": new_level,
                "cost": cost,
            },
        )
        await self._emit_level_up(telegram_id, result)

        self.log.info(
            f"Player {telegram_id} bought {upgrade_id} level {new_level} for {cost}",
            extra={
                "player_id": telegram_id,
                "upgrade_id": upgrade_id,
                "new_level": new_level,
                "cost": cost,
            },
        )
        return projection.to_dict()

    async def update_state(self, telegram_id: int, update: StateUpdate) -> Dict[str, Any]:
        """
        Persist client-held state through an explicit field mask.

        Only the fields set on `update` are written. XP may not decrease,
        upgrade levels must be known and within their max, and energy is
        clamped to the recomputed max energy. A coin increase also advances
        lifetime earnings. Settlement timestamps may only move forward, up to
        the current time, so an interval that was already paid out cannot be
        settled again.

        Raises:
            PlayerNotFoundError: No player with this id
            ValidationError: A supplied field is malformed or out of range
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)
        changes = validate_state_changes(update.provided())

        self.log_operation("update_state", player_id=telegram_id, fields=sorted(changes))

        async with DatabaseService.get_transaction() as session:
            player = await self._players.get_for_update(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)
            now = utcnow()

            if "xp" in changes and changes["xp"] < player.xp:
                raise ValidationError("xp", f"cannot decrease from {player.xp} to {changes['xp']}")
            for name in _SETTLEMENT_CLOCKS:
                if name in changes:
                    _check_settlement_clock(name, changes[name], getattr(player, name), now)

            if "coins" in changes:
                gained = changes["coins"] - player.coins
                player.coins = changes["coins"]
                if gained > 0:
                    player.total_earnings += gained
            if "xp" in changes:
                player.xp = changes["xp"]
            if "upgrades" in changes:
                player.upgrades = changes["upgrades"]
            if "last_energy_update" in changes:
                player.last_energy_update = changes["last_energy_update"]
            if "last_offline_earnings" in changes:
                player.last_offline_earnings = changes["last_offline_earnings"]

            result = self._reconciler.reconcile(player)

            if "energy" in changes:
                player.energy = min(changes["energy"], player.max_energy)

            projection = PlayerProjection.from_model(player)

        await self.emit_event(
            "player.state_saved",
            {"player_id": telegram_id, "fields": sorted(changes)},
        )
        await self._emit_level_up(telegram_id, result)

        return projection.to_dict()

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _fan_out_referral_shares(
        self, session: AsyncSession, player: Player, earned: int
    ) -> Dict[int, int]:
        credited: Dict[int, int] = {}
        ancestors = (player.referrer_tier1, player.referrer_tier2, player.referrer_tier3)

        for tier, (ancestor_id, share) in enumerate(
            zip(ancestors, referral_shares(earned)), start=1
        ):
            if ancestor_id is None or share <= 0:
                continue
            if await self._players.credit_referral_share(session, ancestor_id, tier, share):
                credited[tier] = share
            else:
                self.log.warning(
                    "Referral ancestor missing; share not credited",
                    extra={"player_id": player.telegram_id, "ancestor_id": ancestor_id, "tier": tier},
                )

        return credited

    async def _emit_level_up(self, telegram_id: int, result: ReconcileResult) -> None:
        if not result.leveled_up:
            return
        await self.emit_event(
            "player.level_up",
            {
                "player_id": telegram_id,
                "old_level": result.old_level,
                "new_level": result.new_level,
            },
        )
