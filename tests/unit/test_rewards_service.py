"""
Unit tests for RewardsService.

Task claims (prerequisites, requirements, social verification, daily-tap
rollover), the daily login reward and the read-only task/daily views.
"""

import pytest

from goosetap.core.logging.logger import get_logger
from goosetap.modules.economy.constants import DAILY_REWARDS, WEEK_COMPLETE_BONUS
from goosetap.modules.player import RewardsService
from goosetap.modules.shared.exceptions import (
    AlreadyClaimedError,
    AlreadyClaimedTodayError,
    NotFoundError,
    PlayerNotFoundError,
    RequirementNotMetError,
)
from tests.conftest import (
    StubSubscriptionVerifier,
    event_payload,
    hours_ago,
    published_events,
)

pytestmark = [pytest.mark.unit, pytest.mark.database]


def _rewards_with_verifier(config_manager, event_bus, retry_policy, verifier) -> RewardsService:
    return RewardsService(
        config_manager,
        event_bus,
        get_logger("tests.rewards"),
        subscription_verifier=verifier,
        retry_policy=retry_policy,
    )


class TestClaimTask:
    async def test_referral_task(self, rewards, make_player, event_bus, mocker):
        """One invitee unlocks invite-1-friend: +5000 coins and 500 task XP."""
        await make_player(1)
        await make_player(2, referrer_id=1)
        spy = mocker.spy(event_bus, "publish")

        player = await rewards.claim_task(1, "invite-1-friend")

        # 10,000 signup bonus from the invitee plus the task reward
        assert player["coins"] == 15_000
        assert player["xp"] == 500
        assert player["level"] == 2
        assert player["tasks"]["invite-1-friend"]["status"] == "claimed"
        assert event_payload(spy, "rewards.task_claimed") == {
            "player_id": 1,
            "task_id": "invite-1-friend",
            "reward": 5_000,
        }
        assert "player.level_up" in published_events(spy)

    async def test_second_claim_rejected(self, rewards, make_player, load_player):
        await make_player(1)
        await make_player(2, referrer_id=1)
        await rewards.claim_task(1, "invite-1-friend")

        with pytest.raises(AlreadyClaimedError):
            await rewards.claim_task(1, "invite-1-friend")

        assert (await load_player(1)).coins == 15_000

    async def test_requirement_not_met(self, rewards, make_player):
        await make_player(1)

        with pytest.raises(RequirementNotMetError) as exc_info:
            await rewards.claim_task(1, "invite-1-friend")

        assert "needs 1" in exc_info.value.reason

    async def test_prerequisite_checked_before_requirement(
        self, rewards, make_player, set_player_state
    ):
        """invite-3-friends needs invite-1-friend claimed first, even with 3 invitees."""
        await make_player(1)
        await set_player_state(1, referrals=[{"telegram_id": i} for i in (2, 3, 4)])

        with pytest.raises(RequirementNotMetError) as exc_info:
            await rewards.claim_task(1, "invite-3-friends")

        assert "invite-1-friend" in exc_info.value.reason

    async def test_chain_step_after_prerequisite(self, rewards, make_player, set_player_state):
        await make_player(1)
        await set_player_state(1, referrals=[{"telegram_id": i} for i in (2, 3, 4)])
        await rewards.claim_task(1, "invite-1-friend")

        player = await rewards.claim_task(1, "invite-3-friends")

        assert player["coins"] == 5_000 + 10_000
        assert player["xp"] == 1_000

    async def test_progress_task(self, rewards, make_player, set_player_state):
        await make_player(1)
        await set_player_state(1, upgrades={"golden-goose": 1}, coins_per_tap=2)

        player = await rewards.claim_task(1, "first-upgrade")

        assert player["coins"] == 2_000

    async def test_unknown_task(self, rewards, make_player):
        await make_player(1)

        with pytest.raises(NotFoundError):
            await rewards.claim_task(1, "invite-1000-friends")

    async def test_unknown_player(self, rewards):
        with pytest.raises(PlayerNotFoundError):
            await rewards.claim_task(404, "first-upgrade")


class TestSocialTask:
    async def test_unverifiable_without_verifier(self, rewards, make_player):
        await make_player(1)

        with pytest.raises(RequirementNotMetError):
            await rewards.claim_task(1, "subscribe-gooselabs")

    async def test_subscribed_player_can_claim(
        self, database, make_player, config_manager, event_bus, retry_policy
    ):
        verifier = StubSubscriptionVerifier(subscribers={1})
        service = _rewards_with_verifier(config_manager, event_bus, retry_policy, verifier)
        await make_player(1)

        player = await service.claim_task(1, "subscribe-gooselabs")

        assert player["coins"] == 5_000
        assert verifier.calls == [(1, "@gooselabs")]

    async def test_unsubscribed_player_rejected(
        self, database, make_player, config_manager, event_bus, retry_policy
    ):
        verifier = StubSubscriptionVerifier()
        service = _rewards_with_verifier(config_manager, event_bus, retry_policy, verifier)
        await make_player(1)

        with pytest.raises(RequirementNotMetError):
            await service.claim_task(1, "subscribe-gooselabs")


class TestDailyTapTasks:
    async def test_claimable_again_after_utc_rollover(
        self, rewards, ledger, make_player, set_player_state
    ):
        await make_player(1)
        await ledger.tap(1, count=100)
        await rewards.claim_task(1, "daily-tap-100")

        with pytest.raises(AlreadyClaimedError):
            await rewards.claim_task(1, "daily-tap-100")

        await set_player_state(1, last_daily_taps_reset=hours_ago(30))
        await ledger.tap(1, count=100)
        player = await rewards.claim_task(1, "daily-tap-100")

        assert player["daily_taps"] == 100
        assert player["tasks"]["daily-tap-100"]["status"] == "claimed"

    async def test_stale_daily_counter_does_not_count(
        self, rewards, make_player, set_player_state
    ):
        """Yesterday's taps are zeroed before the requirement is checked."""
        await make_player(1)
        await set_player_state(1, daily_taps=500, last_daily_taps_reset=hours_ago(30))

        with pytest.raises(RequirementNotMetError):
            await rewards.claim_task(1, "daily-tap-100")


class TestListTasks:
    async def test_new_player_sees_chain_heads(self, rewards, make_player):
        await make_player(1)

        tasks = await rewards.list_tasks(1)

        assert [t["id"] for t in tasks] == [
            "subscribe-gooselabs",
            "invite-1-friend",
            "reach-level-3",
            "tap-1000",
            "first-upgrade",
            "max-upgrade",
            "daily-tap-100",
        ]
        assert not any(t["claimed"] for t in tasks)
        assert not any(t["claimable"] for t in tasks)

    async def test_claimed_step_replaced_by_next(self, rewards, make_player):
        await make_player(1)
        await make_player(2, referrer_id=1)
        await rewards.claim_task(1, "invite-1-friend")

        tasks = {t["id"]: t for t in await rewards.list_tasks(1)}

        assert "invite-1-friend" not in tasks
        assert tasks["invite-3-friends"]["progress"] == 1
        assert tasks["invite-3-friends"]["claimable"] is False

    async def test_claimed_standalone_task_stays_visible(
        self, rewards, make_player, set_player_state
    ):
        await make_player(1)
        await set_player_state(1, upgrades={"golden-goose": 1}, coins_per_tap=2)
        await rewards.claim_task(1, "first-upgrade")

        tasks = {t["id"]: t for t in await rewards.list_tasks(1)}

        assert tasks["first-upgrade"]["claimed"] is True
        assert tasks["first-upgrade"]["claimable"] is False
        assert tasks["first-upgrade"]["completed_at"] is not None

    async def test_progress_capped_at_requirement(self, rewards, make_player, set_player_state):
        await make_player(1)
        await set_player_state(1, total_taps=5_000)

        tasks = {t["id"]: t for t in await rewards.list_tasks(1)}

        assert tasks["tap-1000"]["progress"] == 1_000
        assert tasks["tap-1000"]["claimable"] is True

    async def test_channel_task_follows_verifier(
        self, database, make_player, config_manager, event_bus, retry_policy
    ):
        """Only a confirmed subscriber sees the channel task as claimable."""
        verifier = StubSubscriptionVerifier(subscribers={1})
        service = _rewards_with_verifier(config_manager, event_bus, retry_policy, verifier)
        await make_player(1)
        await make_player(2)

        subscriber = {t["id"]: t for t in await service.list_tasks(1)}
        outsider = {t["id"]: t for t in await service.list_tasks(2)}

        assert subscriber["subscribe-gooselabs"]["claimable"] is True
        assert subscriber["subscribe-gooselabs"]["progress"] == 1
        assert outsider["subscribe-gooselabs"]["claimable"] is False
        assert outsider["subscribe-gooselabs"]["progress"] == 0
        assert verifier.calls == [(1, "@gooselabs"), (2, "@gooselabs")]

    async def test_claimed_channel_task_not_rechecked(
        self, database, make_player, config_manager, event_bus, retry_policy
    ):
        verifier = StubSubscriptionVerifier(subscribers={1})
        service = _rewards_with_verifier(config_manager, event_bus, retry_policy, verifier)
        await make_player(1)
        await service.claim_task(1, "subscribe-gooselabs")
        verifier.calls.clear()

        tasks = {t["id"]: t for t in await service.list_tasks(1)}

        assert tasks["subscribe-gooselabs"]["claimed"] is True
        assert tasks["subscribe-gooselabs"]["claimable"] is False
        assert verifier.calls == []


class TestClaimDaily:
    async def test_first_claim(self, rewards, make_player, event_bus, mocker):
        await make_player(1)
        spy = mocker.spy(event_bus, "publish")

        result = await rewards.claim_daily(1)

        assert result["reward"] == {"day": 1, "coins": 500, "xp": 50, "bonus": None}
        assert result["new_streak"] == 1
        assert result["streak_reset"] is False
        assert result["player"]["coins"] == 500
        assert result["player"]["daily_streak"] == 1
        assert event_payload(spy, "rewards.daily_claimed")["new_streak"] == 1

    async def test_second_claim_within_24h_rejected(self, rewards, make_player, load_player):
        await make_player(1)
        await rewards.claim_daily(1)

        with pytest.raises(AlreadyClaimedTodayError) as exc_info:
            await rewards.claim_daily(1)

        assert 0 < exc_info.value.retry_after_seconds <= 24 * 3600
        assert (await load_player(1)).coins == 500

    async def test_streak_survives_30h_gap(self, rewards, make_player, set_player_state):
        await make_player(1)
        await rewards.claim_daily(1)
        await set_player_state(1, last_daily_claim_at=hours_ago(30))

        result = await rewards.claim_daily(1)

        assert result["reward"]["day"] == 2
        assert result["new_streak"] == 2
        assert result["player"]["coins"] == 500 + 1_000

    async def test_streak_resets_after_48h(self, rewards, make_player, set_player_state):
        await make_player(1)
        await set_player_state(1, daily_streak=4, last_daily_claim_at=hours_ago(50))

        result = await rewards.claim_daily(1)

        assert result["streak_reset"] is True
        assert result["reward"]["day"] == 1
        assert result["new_streak"] == 1

    async def test_seventh_day_completes_week(self, rewards, make_player, set_player_state):
        await make_player(1)
        await set_player_state(1, daily_streak=6, last_daily_claim_at=hours_ago(25))

        result = await rewards.claim_daily(1)

        assert result["reward"]["bonus"] == WEEK_COMPLETE_BONUS
        assert result["reward"]["coins"] == 15_000
        assert result["new_streak"] == 7


class TestDailyStatus:
    async def test_new_player(self, rewards, make_player):
        await make_player(1)

        status = await rewards.get_daily_status(1)

        assert status["can_claim"] is True
        assert status["streak"] == 0
        assert status["next_reward"]["day"] == 1
        assert status["retry_after_seconds"] == 0
        assert status["last_claim_at"] is None
        assert len(status["schedule"]) == len(DAILY_REWARDS)

    async def test_after_claim(self, rewards, make_player):
        await make_player(1)
        await rewards.claim_daily(1)

        status = await rewards.get_daily_status(1)

        assert status["can_claim"] is False
        assert status["streak"] == 1
        assert status["next_reward"]["day"] == 2
        assert status["retry_after_seconds"] > 23 * 3600

    async def test_expired_streak_reads_as_zero(self, rewards, make_player, set_player_state):
        await make_player(1)
        await set_player_state(1, daily_streak=4, last_daily_claim_at=hours_ago(50))

        status = await rewards.get_daily_status(1)

        assert status["can_claim"] is True
        assert status["streak"] == 0
        assert status["next_reward"]["day"] == 1
