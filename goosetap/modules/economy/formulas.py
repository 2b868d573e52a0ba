"""
Economy Formulas
================

Pure, deterministic game rules. Nothing in this module touches the database,
the clock, configuration or logging: callers pass `now` and tunables in
explicitly, which keeps every rule trivially testable.

Derived rates
-------------
    coins_per_tap  = 1 + total_bonus(upgrades, tap) + level tap bonus
    coins_per_hour = floor(total_bonus(upgrades, hour) * level passive multiplier)
    max_energy     = 1000 + total_bonus(upgrades, energy) + level energy bonus

Daily rewards
-------------
A claim is allowed once 24h have passed since the previous one. The streak
survives a gap of up to 48h; past that it resets to zero before the reward
is picked, so the player restarts at day 1.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Optional, Tuple

from goosetap.modules.economy.constants import (
    BASE_COINS_PER_TAP,
    BASE_MAX_ENERGY,
    DAILY_CLAIM_INTERVAL_HOURS,
    DAILY_REWARDS,
    DAILY_STREAK_GRACE_HOURS,
    LEVELS,
    MIN_LEVEL,
    REFERRAL_PERCENTAGES,
    UPGRADES_BY_ID,
    BonusType,
    DailyReward,
    Level,
    Task,
    TaskMetric,
    Upgrade,
)


# ============================================================================
# RESULT TYPES
# ============================================================================


@dataclass(frozen=True)
class LevelBonusTotals:
    tap: int
    energy: int
    passive_multiplier: float


@dataclass(frozen=True)
class DerivedStats:
    level: int
    coins_per_tap: int
    coins_per_hour: int
    max_energy: int


@dataclass(frozen=True)
class OfflineSettlement:
    offline_earnings: int
    energy: int
    offline_seconds: int
    energy_updated_at: datetime

    @property
    def offline_minutes(self) -> int:
        return self.offline_seconds // 60


@dataclass(frozen=True)
class TaskProgress:
    """Player counters that task requirements are checked against."""

    referrals: int = 0
    level: int = MIN_LEVEL
    total_taps: int = 0
    daily_taps: int = 0
    upgrades_owned: int = 0
    upgrades_maxed: int = 0
    channel_subscribed: bool = False


# ============================================================================
# UPGRADES
# ============================================================================


def upgrade_cost(upgrade: Upgrade, current_level: int) -> int:
    """Cost of buying the next level of `upgrade` from `current_level`."""
    return math.floor(upgrade.base_cost * upgrade.cost_multiplier ** current_level)


def total_bonus(owned: Mapping[str, int], bonus_type: BonusType) -> int:
    """Sum of bonus_value * owned level over owned upgrades of `bonus_type`."""
    total = 0
    for upgrade_id, owned_level in owned.items():
        upgrade = UPGRADES_BY_ID.get(upgrade_id)
        if upgrade is None or upgrade.bonus_type is not bonus_type:
            continue
        total += upgrade.bonus_value * owned_level
    return total


def count_owned_upgrades(owned: Mapping[str, int]) -> int:
    return sum(1 for level in owned.values() if level > 0)


def count_maxed_upgrades(owned: Mapping[str, int]) -> int:
    return sum(
        1
        for upgrade_id, level in owned.items()
        if upgrade_id in UPGRADES_BY_ID and level >= UPGRADES_BY_ID[upgrade_id].max_level
    )


# ============================================================================
# LEVELS
# ============================================================================


def level_from_xp(xp: int) -> int:
    """Highest level whose threshold is <= xp; never below level 1."""
    current = MIN_LEVEL
    for entry in LEVELS:
        if xp >= entry.xp_required:
            current = entry.level
        else:
            break
    return current


def level_info(level: int) -> Level:
    for entry in LEVELS:
        if entry.level == level:
            return entry
    return LEVELS[0]


def next_level_xp(level: int) -> Optional[int]:
    """XP threshold of the level after `level`, or None at the top."""
    for entry in LEVELS:
        if entry.level > level:
            return entry.xp_required
    return None


def level_bonuses(level: int) -> LevelBonusTotals:
    """
    Cumulative bonuses of every level up to and including `level`.

    Tap and energy bonuses add up; the passive multiplier is the most recent
    one granted (they are not compounded).
    """
    tap = 0
    energy = 0
    multiplier = 1.0

    for entry in LEVELS:
        if entry.level > level:
            break
        tap += entry.bonus.tap
        energy += entry.bonus.energy
        if entry.bonus.passive_multiplier is not None:
            multiplier = entry.bonus.passive_multiplier

    return LevelBonusTotals(tap=tap, energy=energy, passive_multiplier=multiplier)


def derive_stats(upgrades: Mapping[str, int], level: int) -> DerivedStats:
    bonuses = level_bonuses(level)
    return DerivedStats(
        level=level,
        coins_per_tap=BASE_COINS_PER_TAP
        + total_bonus(upgrades, BonusType.TAP)
        + bonuses.tap,
        coins_per_hour=math.floor(
            total_bonus(upgrades, BonusType.HOUR) * bonuses.passive_multiplier
        ),
        max_energy=BASE_MAX_ENERGY
        + total_bonus(upgrades, BonusType.ENERGY)
        + bonuses.energy,
    )


# ============================================================================
# DAILY REWARDS
# ============================================================================


def daily_reward(streak: int) -> DailyReward:
    return DAILY_REWARDS[streak % len(DAILY_REWARDS)]


def can_claim_daily(last_claim: Optional[datetime], now: datetime) -> bool:
    if last_claim is None:
        return True
    return now - last_claim >= timedelta(hours=DAILY_CLAIM_INTERVAL_HOURS)


def should_reset_streak(last_claim: Optional[datetime], now: datetime) -> bool:
    if last_claim is None:
        return False
    return now - last_claim >= timedelta(hours=DAILY_STREAK_GRACE_HOURS)


def effective_streak(streak: int, last_claim: Optional[datetime], now: datetime) -> int:
    """Streak after applying the grace-window reset."""
    return 0 if should_reset_streak(last_claim, now) else streak


def seconds_until_daily(last_claim: Optional[datetime], now: datetime) -> int:
    if last_claim is None:
        return 0
    remaining = last_claim + timedelta(hours=DAILY_CLAIM_INTERVAL_HOURS) - now
    return max(0, math.ceil(remaining.total_seconds()))


def should_reset_daily_taps(last_reset: Optional[datetime], now: datetime) -> bool:
    """True when `now` falls on a later UTC calendar day than `last_reset`."""
    if last_reset is None:
        return True
    return now.date() > last_reset.date()


# ============================================================================
# REFERRALS
# ============================================================================


def referral_shares(total_coins: int) -> Tuple[int, ...]:
    """Per-tier share of a batch-tap payout, tier 1 first."""
    return tuple(math.floor(total_coins * pct) for pct in REFERRAL_PERCENTAGES)


# ============================================================================
# OFFLINE SETTLEMENT
# ============================================================================


def settle_offline(
    *,
    energy: int,
    max_energy: int,
    coins_per_hour: int,
    energy_since: Optional[datetime],
    earnings_since: Optional[datetime],
    now: datetime,
    cap_hours: float,
    regen_per_second: float,
) -> OfflineSettlement:
    """
    Project offline earnings and regenerated energy as of `now`.

    Earnings accrue from `earnings_since` for at most `cap_hours`; energy
    regenerates from `energy_since` and never exceeds `max_energy`. Clock
    skew (a timestamp in the future) counts as zero elapsed time.
    """
    earnings_seconds = _elapsed_seconds(earnings_since, now)

    hours = min(earnings_seconds / 3600, cap_hours)
    offline_earnings = math.floor(hours * coins_per_hour)

    restored, energy_updated_at = regenerate_energy(
        energy, max_energy, energy_since, now, regen_per_second
    )

    return OfflineSettlement(
        offline_earnings=offline_earnings,
        energy=restored,
        offline_seconds=int(earnings_seconds),
        energy_updated_at=energy_updated_at,
    )


def regenerate_energy(
    energy: int,
    max_energy: int,
    since: Optional[datetime],
    now: datetime,
    regen_per_second: float,
) -> Tuple[int, datetime]:
    """
    Energy after regenerating from `since` to `now`, and the time it is
    settled up to.

    Only whole units are credited, so the timestamp advances by the time
    those units took and a partial tick carries into the next call. A full
    bar (or nothing to regenerate from) settles at `now`.
    """
    if since is None or since >= now or regen_per_second <= 0:
        return max(0, min(energy, max_energy)), now

    regenerated = math.floor(_elapsed_seconds(since, now) * regen_per_second)
    if energy + regenerated >= max_energy:
        return max(0, max_energy), now

    settled_at = since + timedelta(seconds=regenerated / regen_per_second)
    return max(0, energy + regenerated), settled_at


def _elapsed_seconds(since: Optional[datetime], now: datetime) -> float:
    if since is None:
        return 0.0
    return max(0.0, (now - since).total_seconds())


# ============================================================================
# TASKS
# ============================================================================


def task_progress_value(task: Task, progress: TaskProgress) -> int:
    """Current value of the counter `task` is measured against."""
    metric = task.metric
    if metric is TaskMetric.REFERRALS:
        return progress.referrals
    if metric is TaskMetric.LEVEL:
        return progress.level
    if metric is TaskMetric.TOTAL_TAPS:
        return progress.total_taps
    if metric is TaskMetric.DAILY_TAPS:
        return progress.daily_taps
    if metric is TaskMetric.UPGRADES_OWNED:
        return progress.upgrades_owned
    if metric is TaskMetric.UPGRADES_MAXED:
        return progress.upgrades_maxed
    return 1 if progress.channel_subscribed else 0


def task_requirement_met(task: Task, progress: TaskProgress) -> bool:
    return task_progress_value(task, progress) >= task.requirement
