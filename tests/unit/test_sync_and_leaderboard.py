"""
Unit tests for SyncService.load_game and LeaderboardService.
"""

from datetime import timedelta

import pytest

from goosetap.core.database.base import ensure_utc, utcnow
from goosetap.modules.player import StateUpdate
from goosetap.modules.shared.exceptions import PlayerNotFoundError, ValidationError
from tests.conftest import event_payload, hours_ago, published_events

pytestmark = [pytest.mark.unit, pytest.mark.database]


@pytest.fixture
async def farmer(make_player, set_player_state):
    """Player 100 earning 1000 coins/hour, last seen two hours ago."""
    await make_player(100)
    await set_player_state(
        100,
        upgrades={"egg-farm": 10},
        coins_per_hour=1_000,
        energy=100,
        last_energy_update=utcnow() - timedelta(seconds=60),
        last_offline_earnings=hours_ago(2),
    )
    return 100


class TestLoadGame:
    async def test_offline_earnings_credited(self, sync, farmer, event_bus, mocker):
        spy = mocker.spy(event_bus, "publish")

        result = await sync.load_game(farmer)

        assert result["offline_earnings"] == 2_000
        assert result["offline_minutes"] == 120
        assert result["player"]["coins"] == 2_000
        assert result["player"]["total_earnings"] == 2_000
        assert 160 <= result["player"]["energy"] <= 162
        assert event_payload(spy, "session.offline_settled")["offline_earnings"] == 2_000

    async def test_interval_credited_once(self, sync, farmer, load_player):
        await sync.load_game(farmer)

        again = await sync.load_game(farmer)

        assert again["offline_earnings"] == 0
        assert (await load_player(farmer)).coins == 2_000

    async def test_settled_interval_cannot_be_reopened(self, sync, ledger, farmer, load_player):
        """Moving the earnings clock back after a load does not pay twice."""
        first = await sync.load_game(farmer)

        with pytest.raises(ValidationError):
            await ledger.update_state(farmer, StateUpdate(last_offline_earnings=hours_ago(3)))
        second = await sync.load_game(farmer)

        assert first["offline_earnings"] == 2_000
        assert second["offline_earnings"] == 0
        assert (await load_player(farmer)).coins == 2_000

    async def test_energy_clock_keeps_partial_tick(
        self, sync, farmer, set_player_state, load_player, config_manager
    ):
        config_manager.set("gameplay.energy.regen_per_second", 0.5)
        since = utcnow() - timedelta(seconds=7.2)
        await set_player_state(farmer, last_energy_update=since)

        result = await sync.load_game(farmer)

        assert result["player"]["energy"] == 103
        stored = await load_player(farmer)
        assert ensure_utc(stored.last_energy_update) == since + timedelta(seconds=6)

    async def test_offline_cap(self, sync, farmer, set_player_state):
        await set_player_state(farmer, last_offline_earnings=hours_ago(10))

        result = await sync.load_game(farmer)

        assert result["offline_earnings"] == 3_000

    async def test_offline_cap_from_config(self, sync, farmer, config_manager):
        config_manager.set("gameplay.offline.max_hours", 1)

        result = await sync.load_game(farmer)

        assert result["offline_earnings"] == 1_000

    async def test_stale_rates_repaired_before_settlement(
        self, sync, make_player, set_player_state, event_bus, mocker
    ):
        """Rates are recomputed first, so the settlement uses the real income."""
        await make_player(100)
        await set_player_state(
            100,
            xp=1_500,
            upgrades={"egg-farm": 10},
            last_offline_earnings=hours_ago(1),
        )
        spy = mocker.spy(event_bus, "publish")

        result = await sync.load_game(100)

        assert result["player"]["level"] == 3
        assert result["player"]["coins_per_hour"] == 1_000
        assert 1_000 <= result["offline_earnings"] <= 1_001
        assert "player.level_up" in published_events(spy)

    async def test_no_event_without_earnings(self, sync, make_player, event_bus, mocker):
        await make_player(100)
        spy = mocker.spy(event_bus, "publish")

        result = await sync.load_game(100)

        assert result["offline_earnings"] == 0
        assert "session.offline_settled" not in published_events(spy)

    async def test_daily_counter_reset(self, sync, make_player, set_player_state):
        await make_player(100)
        await set_player_state(100, daily_taps=250, last_daily_taps_reset=hours_ago(30))

        result = await sync.load_game(100)

        assert result["daily_reset"] is True
        assert result["player"]["daily_taps"] == 0

    async def test_unknown_player(self, sync):
        with pytest.raises(PlayerNotFoundError):
            await sync.load_game(404)


@pytest.fixture
async def ranked_players(make_player, set_player_state):
    earnings = {1: 500, 2: 1_000, 3: 0, 4: 1_000}
    for telegram_id, total in earnings.items():
        await make_player(telegram_id)
        await set_player_state(telegram_id, total_earnings=total)
    return earnings


class TestLeaderboard:
    async def test_ranked_by_earnings(self, leaderboard, ranked_players):
        board = await leaderboard.get_leaderboard()

        assert [(e["rank"], e["telegram_id"]) for e in board["entries"]] == [
            (1, 2),
            (2, 4),
            (3, 1),
        ]
        assert board["total_players"] == 3
        assert board["player_rank"] is None

    async def test_player_rank(self, leaderboard, ranked_players):
        board = await leaderboard.get_leaderboard(telegram_id=1)

        assert board["player_rank"] == {"rank": 3, "total_earnings": 500, "level": 1}

    async def test_tied_players_share_rank(self, leaderboard, ranked_players):
        second = await leaderboard.get_leaderboard(telegram_id=2)
        fourth = await leaderboard.get_leaderboard(telegram_id=4)

        assert second["player_rank"]["rank"] == fourth["player_rank"]["rank"] == 1

    async def test_zero_earnings_unranked(self, leaderboard, ranked_players):
        board = await leaderboard.get_leaderboard(telegram_id=3)

        assert board["player_rank"] is None
        assert 3 not in [e["telegram_id"] for e in board["entries"]]

    async def test_limit_capped(self, leaderboard, ranked_players, config_manager):
        config_manager.set("gameplay.leaderboard.max_limit", 2)

        board = await leaderboard.get_leaderboard(limit=10)

        assert len(board["entries"]) == 2

    async def test_invalid_limit(self, leaderboard):
        with pytest.raises(ValidationError):
            await leaderboard.get_leaderboard(limit=0)
