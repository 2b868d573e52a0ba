"""
Rewards Service
===============

Purpose
-------
Task rewards and the daily login reward.

Domain
------
- Claim catalog tasks (social, referral, progress, daily-tap chains)
- Claim the daily reward with a 24h cooldown and a 48h streak grace window
- Read-only task list and daily status for clients

Double-claim protection
-----------------------
The claimed-status (task) and last-claim timestamp (daily) are checked on the
locked row inside the same transaction that credits the reward, so two
concurrent claims have exactly one winner. The loser re-reads the committed
state and fails with AlreadyClaimedError / AlreadyClaimedTodayError. Claims
are therefore safe to retry, and run under DatabaseRetryPolicy.

Social tasks
------------
Channel subscription is checked through a `SubscriptionVerifier` before the
transaction opens (it is a network call and must not hold the row lock).
Without a verifier, social tasks cannot be claimed.

Events
------
- rewards.task_claimed
- rewards.daily_claimed
- player.level_up
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Set

from goosetap.core.database.base import ensure_utc, utcnow
from goosetap.core.database.retry_policy import DatabaseRetryPolicy
from goosetap.core.database.service import DatabaseService
from goosetap.core.logging.logger import get_logger
from goosetap.core.validation.input_validator import InputValidator
from goosetap.database.models.player import Player
from goosetap.modules.economy.constants import (
    DAILY_REWARDS,
    DAILY_TASK_PREFIX,
    TASKS,
    TASKS_BY_ID,
    Task,
    XpReward,
)
from goosetap.modules.economy.formulas import (
    TaskProgress,
    can_claim_daily,
    count_maxed_upgrades,
    count_owned_upgrades,
    daily_reward,
    effective_streak,
    seconds_until_daily,
    should_reset_daily_taps,
    task_progress_value,
    task_requirement_met,
)
from goosetap.modules.player.ledger_service import credit_coins, roll_over_daily_taps
from goosetap.modules.player.projection import PlayerProjection
from goosetap.modules.player.reconciler import DerivedStatReconciler
from goosetap.modules.player.repository import PlayerRepository
from goosetap.modules.shared.base_service import BaseService
from goosetap.modules.shared.exceptions import (
    AlreadyClaimedError,
    AlreadyClaimedTodayError,
    NotFoundError,
    PlayerNotFoundError,
    RequirementNotMetError,
)

if TYPE_CHECKING:
    from logging import Logger

    from goosetap.core.config.manager import ConfigManager
    from goosetap.core.event.bus import EventBus
    from goosetap.modules.economy.constants import DailyReward


CLAIMED = "claimed"


class SubscriptionVerifier(Protocol):
    """Checks channel membership against the messaging platform."""

    async def is_subscribed(self, telegram_id: int, channel: str) -> bool: ...


def _chain_task_ids() -> Set[str]:
    ids: Set[str] = set()
    for task in TASKS:
        if task.prerequisite is not None:
            ids.add(task.id)
            ids.add(task.prerequisite)
    return ids


_CHAIN_TASK_IDS = _chain_task_ids()


def _reward_to_dict(reward: DailyReward) -> Dict[str, Any]:
    return {"day": reward.day, "coins": reward.coins, "xp": reward.xp, "bonus": reward.bonus}


class RewardsService(BaseService):
    """
    Task and daily reward claims.

    Public Methods
    --------------
    - claim_task() -> Claim a catalog task reward
    - claim_daily() -> Claim today's login reward
    - list_tasks() -> Visible tasks with claim status and progress
    - get_daily_status() -> Cooldown, effective streak and schedule
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        subscription_verifier: Optional[SubscriptionVerifier] = None,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._players = PlayerRepository(
            model_class=Player,
            logger=get_logger(f"{__name__}.PlayerRepository"),
        )
        self._reconciler = DerivedStatReconciler(
            get_logger(f"{__name__}.DerivedStatReconciler")
        )
        self._verifier = subscription_verifier
        self._retry = retry_policy or DatabaseRetryPolicy.from_config()

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def list_tasks(self, telegram_id: int) -> List[Dict[str, Any]]:
        """
        Tasks to show the player, in catalog order.

        Claimed chain steps are hidden (the next step takes their place),
        unclaimed steps are shown only once their prerequisite is claimed,
        and claimed standalone tasks stay visible as done. Daily-tap
        progress reads as zero after a UTC day rollover that has not been
        persisted yet. Channel tasks are claimable only when the configured
        verifier confirms the subscription.
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)
        now = utcnow()

        async with DatabaseService.get_session() as session:
            player = await self._players.get(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)

            tasks = dict(player.tasks or {})
            daily_taps = player.daily_taps
            if should_reset_daily_taps(ensure_utc(player.last_daily_taps_reset), now):
                daily_taps = 0
                tasks = {
                    k: v for k, v in tasks.items() if not k.startswith(DAILY_TASK_PREFIX)
                }
            progress = self._progress_for(player, daily_taps=daily_taps)

        entries: List[Dict[str, Any]] = []
        for task in TASKS:
            claimed = tasks.get(task.id, {}).get("status") == CLAIMED
            prerequisite_met = (
                task.prerequisite is None
                or tasks.get(task.prerequisite, {}).get("status") == CLAIMED
            )

            if claimed and task.id in _CHAIN_TASK_IDS:
                continue
            if not claimed and not prerequisite_met:
                continue

            task_progress = progress
            if task.channel is not None and not claimed:
                task_progress = replace(
                    progress,
                    channel_subscribed=await self._is_subscribed(telegram_id, task.channel),
                )
            requirement_met = task_requirement_met(task, task_progress)
            entries.append(
                {
                    "id": task.id,
                    "title": task.title,
                    "type": task.task_type.value,
                    "reward": task.reward,
                    "requirement": task.requirement,
                    "progress": min(task_progress_value(task, task_progress), task.requirement),
                    "action_url": task.action_url,
                    "claimed": claimed,
                    "completed_at": tasks.get(task.id, {}).get("completed_at"),
                    "claimable": not claimed and requirement_met,
                }
            )
        return entries

    async def get_daily_status(self, telegram_id: int) -> Dict[str, Any]:
        telegram_id = InputValidator.validate_telegram_id(telegram_id)
        now = utcnow()

        async with DatabaseService.get_session() as session:
            player = await self._players.get(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)
            last_claim = ensure_utc(player.last_daily_claim_at)
            stored_streak = player.daily_streak

        streak = effective_streak(stored_streak, last_claim, now)
        return {
            "can_claim": can_claim_daily(last_claim, now),
            "streak": streak,
            "next_reward": _reward_to_dict(daily_reward(streak)),
            "retry_after_seconds": seconds_until_daily(last_claim, now),
            "last_claim_at": last_claim.isoformat() if last_claim else None,
            "schedule": [_reward_to_dict(r) for r in DAILY_REWARDS],
        }

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def claim_task(self, telegram_id: int, task_id: str) -> Dict[str, Any]:
        """
        Claim a task reward.

        Checks, in order: claim status, prerequisite task, requirement.

        Returns:
            Player projection dict

        Raises:
            PlayerNotFoundError: No player with this id
            NotFoundError: Unknown task id
            AlreadyClaimedError: Task already claimed
            RequirementNotMetError: Prerequisite or requirement unmet
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)
        task_id = InputValidator.validate_identifier(task_id, "task_id")

        task = TASKS_BY_ID.get(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)

        self.log_operation("claim_task", player_id=telegram_id, task_id=task_id)

        subscribed = False
        if task.channel is not None:
            subscribed = await self._is_subscribed(telegram_id, task.channel)

        async def _claim() -> Dict[str, Any]:
            return await self._claim_task_once(telegram_id, task, subscribed)

        projection = await self._retry.execute(
            _claim,
            operation_name="rewards.claim_task",
            context={"player_id": telegram_id, "task_id": task_id},
        )

        await self.emit_event(
            "rewards.task_claimed",
            {"player_id": telegram_id, "task_id": task_id, "reward": task.reward},
        )
        self.log.info(
            f"Player {telegram_id} claimed task {task_id} (+{task.reward})",
            extra={"player_id": telegram_id, "task_id": task_id, "reward": task.reward},
        )
        return projection

    async def claim_daily(self, telegram_id: int) -> Dict[str, Any]:
        """
        Claim the daily login reward.

        A streak older than the 48h grace window resets to zero first; the
        reward is picked from the pre-increment streak, then the streak
        advances by one.

        Returns:
            Dict with `reward`, `new_streak`, `streak_reset` and `player`

        Raises:
            PlayerNotFoundError: No player with this id
            AlreadyClaimedTodayError: Less than 24h since the last claim
        """
        telegram_id = InputValidator.validate_telegram_id(telegram_id)

        self.log_operation("claim_daily", player_id=telegram_id)

        async def _claim() -> Dict[str, Any]:
            return await self._claim_daily_once(telegram_id)

        result = await self._retry.execute(
            _claim,
            operation_name="rewards.claim_daily",
            context={"player_id": telegram_id},
        )

        await self.emit_event(
            "rewards.daily_claimed",
            {
                "player_id": telegram_id,
                "new_streak": result["new_streak"],
                "coins": result["reward"]["coins"],
                "xp": result["reward"]["xp"],
                "bonus": result["reward"]["bonus"],
            },
        )
        self.log.info(
            f"Player {telegram_id} claimed daily day {result['reward']['day']}",
            extra={
                "player_id": telegram_id,
                "new_streak": result["new_streak"],
                "streak_reset": result["streak_reset"],
            },
        )
        return result

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _claim_task_once(
        self, telegram_id: int, task: Task, subscribed: bool
    ) -> Dict[str, Any]:
        task_xp = int(self.get_config("gameplay.xp.task", XpReward.TASK))

        async with DatabaseService.get_transaction() as session:
            player = await self._players.get_for_update(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)
            now = utcnow()

            roll_over_daily_taps(player, now)
            tasks = player.tasks or {}

            if tasks.get(task.id, {}).get("status") == CLAIMED:
                raise AlreadyClaimedError(task.id)

            if (
                task.prerequisite is not None
                and tasks.get(task.prerequisite, {}).get("status") != CLAIMED
            ):
                raise RequirementNotMetError(task.id, f"claim {task.prerequisite} first")

            if task.channel is not None and self._verifier is None:
                raise RequirementNotMetError(task.id, "subscription cannot be verified")

            progress = self._progress_for(player, channel_subscribed=subscribed)
            if not task_requirement_met(task, progress):
                raise RequirementNotMetError(
                    task.id,
                    f"{task.metric.value} is {task_progress_value(task, progress)}, "
                    f"needs {task.requirement}",
                )

            player.tasks = {
                **tasks,
                task.id: {"status": CLAIMED, "completed_at": now.isoformat()},
            }
            credit_coins(player, task.reward)
            player.xp += task_xp

            result = self._reconciler.reconcile(player)
            projection = PlayerProjection.from_model(player)

        if result.leveled_up:
            await self.emit_event(
                "player.level_up",
                {"player_id": telegram_id, "old_level": result.old_level, "new_level": result.new_level},
            )
        return projection.to_dict()

    async def _claim_daily_once(self, telegram_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            player = await self._players.get_for_update(session, telegram_id)
            if player is None:
                raise PlayerNotFoundError(telegram_id)
            now = utcnow()

            last_claim = ensure_utc(player.last_daily_claim_at)
            if not can_claim_daily(last_claim, now):
                raise AlreadyClaimedTodayError(seconds_until_daily(last_claim, now))

            streak = effective_streak(player.daily_streak, last_claim, now)
            streak_reset = streak != player.daily_streak
            reward = daily_reward(streak)
            new_streak = streak + 1

            player.daily_streak = new_streak
            player.last_daily_claim_at = now
            credit_coins(player, reward.coins)
            player.xp += reward.xp

            result = self._reconciler.reconcile(player)
            projection = PlayerProjection.from_model(player)

        if result.leveled_up:
            await self.emit_event(
                "player.level_up",
                {"player_id": telegram_id, "old_level": result.old_level, "new_level": result.new_level},
            )
        return {
            "reward": _reward_to_dict(reward),
            "new_streak": new_streak,
            "streak_reset": streak_reset,
            "player": projection.to_dict(),
        }

    async def _is_subscribed(self, telegram_id: int, channel: str) -> bool:
        if self._verifier is None:
            return False
        return await self._verifier.is_subscribed(telegram_id, channel)

    @staticmethod
    def _progress_for(
        player: Player,
        *,
        daily_taps: Optional[int] = None,
        channel_subscribed: bool = False,
    ) -> TaskProgress:
        upgrades = player.upgrades or {}
        return TaskProgress(
            referrals=len(player.referrals or []),
            level=player.level,
            total_taps=player.total_taps,
            daily_taps=player.daily_taps if daily_taps is None else daily_taps,
            upgrades_owned=count_owned_upgrades(upgrades),
            upgrades_maxed=count_maxed_upgrades(upgrades),
            channel_subscribed=channel_subscribed,
        )
