"""
Economy Catalog
===============

Immutable game catalog: level table, upgrade cards, task chains, daily
reward schedule and referral constants.

Tunables that operators may want to adjust without a deploy (offline cap,
regen rate, XP per action) live in `config/gameplay.yaml` and are read
through ConfigManager; the values below are part of the game's content and
are versioned with the code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


# ============================================================================
# BASE STATS
# ============================================================================

BASE_COINS_PER_TAP = 1
BASE_MAX_ENERGY = 1000
DEFAULT_ENERGY = 1000

MIN_LEVEL = 1

DEFAULT_OFFLINE_CAP_HOURS = 3
DEFAULT_ENERGY_REGEN_PER_SECOND = 1


class XpReward:
    """Default XP per action; overridable under `gameplay.xp.*`."""

    TAP = 1
    UPGRADE = 100  # multiplied by the new owned level
    TASK = 500


# ============================================================================
# LEVELS
# ============================================================================


@dataclass(frozen=True)
class LevelBonus:
    tap: int = 0
    energy: int = 0
    passive_multiplier: Optional[float] = None


@dataclass(frozen=True)
class Level:
    level: int
    xp_required: int
    title: str
    bonus: LevelBonus = field(default_factory=LevelBonus)


LEVELS: Tuple[Level, ...] = (
    Level(1, 0, "Newbie"),
    Level(2, 500, "Beginner", LevelBonus(tap=1)),
    Level(3, 1_500, "Tapper", LevelBonus(energy=50)),
    Level(4, 4_000, "Amateur", LevelBonus(tap=1)),
    Level(5, 10_000, "Skilled", LevelBonus(energy=100)),
    Level(6, 20_000, "Expert", LevelBonus(tap=2)),
    Level(7, 40_000, "Pro", LevelBonus(passive_multiplier=1.05)),
    Level(8, 80_000, "Master", LevelBonus(tap=2, energy=150)),
    Level(9, 150_000, "Champion", LevelBonus(passive_multiplier=1.10)),
    Level(10, 300_000, "Legend", LevelBonus(tap=3, energy=200)),
    Level(11, 500_000, "Mythic", LevelBonus(passive_multiplier=1.15)),
    Level(12, 800_000, "Divine", LevelBonus(tap=5, energy=300)),
    Level(13, 1_200_000, "Immortal", LevelBonus(passive_multiplier=1.20)),
    Level(14, 2_000_000, "Goose King", LevelBonus(tap=10, energy=500)),
    Level(15, 5_000_000, "Goose God", LevelBonus(tap=20, passive_multiplier=1.50)),
    Level(16, 8_000_000, "Celestial", LevelBonus(tap=25, energy=750)),
    Level(17, 12_000_000, "Eternal", LevelBonus(passive_multiplier=1.75)),
    Level(18, 18_000_000, "Transcendent", LevelBonus(tap=35, energy=1000)),
    Level(19, 27_000_000, "Omnipotent", LevelBonus(tap=50, passive_multiplier=2.0)),
    Level(
        20,
        40_000_000,
        "Ultimate Goose",
        LevelBonus(tap=100, energy=2000, passive_multiplier=2.5),
    ),
)

MAX_LEVEL = LEVELS[-1].level


# ============================================================================
# UPGRADES
# ============================================================================


class BonusType(str, Enum):
    TAP = "tap"
    HOUR = "hour"
    ENERGY = "energy"


@dataclass(frozen=True)
class Upgrade:
    id: str
    name: str
    description: str
    base_cost: int
    cost_multiplier: float
    bonus_type: BonusType
    bonus_value: int
    max_level: int
    category: str


UPGRADES: Tuple[Upgrade, ...] = (
    Upgrade(
        "golden-goose", "Golden Goose", "Increases coins per tap",
        1000, 1.5, BonusType.TAP, 1, 50, "cards",
    ),
    Upgrade(
        "egg-farm", "Egg Farm", "Passive income per hour",
        2000, 1.6, BonusType.HOUR, 100, 30, "cards",
    ),
    Upgrade(
        "golden-egg", "Golden Egg", "Increases passive income",
        5000, 1.7, BonusType.HOUR, 250, 20, "cards",
    ),
    Upgrade(
        "goose-nest", "Goose Nest", "Bonus tap power",
        3000, 1.5, BonusType.TAP, 2, 25, "cards",
    ),
    Upgrade(
        "energy-drink", "Energy Drink", "Increases max energy",
        1500, 1.4, BonusType.ENERGY, 100, 20, "boosts",
    ),
    Upgrade(
        "turbo-tap", "Turbo Tap", "Massive tap boost",
        10000, 2.0, BonusType.TAP, 5, 10, "boosts",
    ),
)

UPGRADES_BY_ID: Dict[str, Upgrade] = {u.id: u for u in UPGRADES}


# ============================================================================
# TASKS
# ============================================================================


class TaskType(str, Enum):
    SOCIAL = "social"
    REFERRAL = "referral"
    PROGRESS = "progress"
    DAILY = "daily"


class TaskMetric(str, Enum):
    """Player counter a task requirement is compared against."""

    CHANNEL_SUBSCRIPTION = "channel_subscription"
    REFERRALS = "referrals"
    LEVEL = "level"
    TOTAL_TAPS = "total_taps"
    DAILY_TAPS = "daily_taps"
    UPGRADES_OWNED = "upgrades_owned"
    UPGRADES_MAXED = "upgrades_maxed"


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    task_type: TaskType
    reward: int
    metric: TaskMetric
    requirement: int = 1
    prerequisite: Optional[str] = None
    channel: Optional[str] = None
    action_url: Optional[str] = None


def _chain(
    task_type: TaskType,
    metric: TaskMetric,
    entries: Tuple[Tuple[str, str, int, int], ...],
) -> Tuple[Task, ...]:
    """Build a task chain where each step requires the previous one."""
    tasks = []
    previous: Optional[str] = None
    for task_id, title, requirement, reward in entries:
        tasks.append(
            Task(
                id=task_id,
                title=title,
                task_type=task_type,
                reward=reward,
                metric=metric,
                requirement=requirement,
                prerequisite=previous,
            )
        )
        previous = task_id
    return tuple(tasks)


TASKS: Tuple[Task, ...] = (
    Task(
        id="subscribe-gooselabs",
        title="Subscribe to Goose Labs",
        task_type=TaskType.SOCIAL,
        reward=5000,
        metric=TaskMetric.CHANNEL_SUBSCRIPTION,
        channel="@gooselabs",
        action_url="https://t.me/gooselabs",
    ),
    *_chain(
        TaskType.REFERRAL,
        TaskMetric.REFERRALS,
        (
            ("invite-1-friend", "Invite first friend", 1, 5_000),
            ("invite-3-friends", "Invite 3 friends", 3, 10_000),
            ("invite-10-friends", "Invite 10 friends", 10, 50_000),
            ("invite-25-friends", "Invite 25 friends", 25, 100_000),
            ("invite-50-friends", "Invite 50 friends", 50, 200_000),
            ("invite-100-friends", "Invite 100 friends", 100, 500_000),
        ),
    ),
    *_chain(
        TaskType.PROGRESS,
        TaskMetric.LEVEL,
        (
            ("reach-level-3", "Reach level 3", 3, 2_000),
            ("reach-level-5", "Reach level 5", 5, 5_000),
            ("reach-level-10", "Reach level 10", 10, 25_000),
            ("reach-level-15", "Reach level 15", 15, 75_000),
            ("reach-level-20", "Reach level 20", 20, 200_000),
        ),
    ),
    *_chain(
        TaskType.PROGRESS,
        TaskMetric.TOTAL_TAPS,
        (
            ("tap-1000", "Tap 1,000 times", 1_000, 2_000),
            ("tap-10000", "Tap 10,000 times", 10_000, 10_000),
            ("tap-100000", "Tap 100,000 times", 100_000, 25_000),
        ),
    ),
    Task(
        id="first-upgrade",
        title="Buy your first upgrade",
        task_type=TaskType.PROGRESS,
        reward=2000,
        metric=TaskMetric.UPGRADES_OWNED,
    ),
    Task(
        id="max-upgrade",
        title="Max out an upgrade",
        task_type=TaskType.PROGRESS,
        reward=20000,
        metric=TaskMetric.UPGRADES_MAXED,
    ),
    *_chain(
        TaskType.DAILY,
        TaskMetric.DAILY_TAPS,
        (
            ("daily-tap-100", "Tap 100 times", 100, 500),
            ("daily-tap-250", "Tap 250 times", 250, 1_000),
            ("daily-tap-500", "Tap 500 times", 500, 1_500),
            ("daily-tap-1000", "Tap 1,000 times", 1_000, 2_500),
            ("daily-tap-2500", "Tap 2,500 times", 2_500, 5_000),
            ("daily-tap-5000", "Tap 5,000 times", 5_000, 10_000),
            ("daily-tap-10000", "Tap 10,000 times", 10_000, 25_000),
        ),
    ),
)

TASKS_BY_ID: Dict[str, Task] = {t.id: t for t in TASKS}

DAILY_TASK_PREFIX = "daily-tap-"


# ============================================================================
# DAILY REWARDS
# ============================================================================


@dataclass(frozen=True)
class DailyReward:
    day: int
    coins: int
    xp: int
    bonus: Optional[str] = None


WEEK_COMPLETE_BONUS = "week_complete"

DAILY_REWARDS: Tuple[DailyReward, ...] = (
    DailyReward(1, 500, 50),
    DailyReward(2, 1_000, 100),
    DailyReward(3, 2_000, 200),
    DailyReward(4, 3_500, 350),
    DailyReward(5, 5_000, 500),
    DailyReward(6, 7_500, 750),
    DailyReward(7, 15_000, 1_500, WEEK_COMPLETE_BONUS),
)

DAILY_CLAIM_INTERVAL_HOURS = 24
DAILY_STREAK_GRACE_HOURS = 48


# ============================================================================
# REFERRALS
# ============================================================================

REFERRAL_TIERS = 3

# Share of batch-tap earnings credited to each ancestor tier
REFERRAL_PERCENTAGES: Tuple[float, ...] = (0.10, 0.03, 0.01)

# Flat signup bonus per tier
REFERRAL_BONUSES: Tuple[int, ...] = (10_000, 2_000, 500)
