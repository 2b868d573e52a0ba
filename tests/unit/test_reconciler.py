"""
Unit tests for DerivedStatReconciler.

Runs on transient Player instances; no database needed.
"""

import logging

import pytest

from goosetap.database.models.player import Player
from goosetap.modules.player.reconciler import DerivedStatReconciler

pytestmark = pytest.mark.unit


def _player(**overrides) -> Player:
    values = dict(
        telegram_id=42,
        xp=0,
        level=1,
        coins_per_tap=1,
        coins_per_hour=0,
        max_energy=1000,
        energy=1000,
        upgrades={},
    )
    values.update(overrides)
    return Player(**values)


@pytest.fixture
def reconciler() -> DerivedStatReconciler:
    return DerivedStatReconciler(logging.getLogger("tests.reconciler"))


class TestStaleness:
    def test_fresh_player_is_consistent(self, reconciler):
        assert reconciler.is_stale(_player()) is False

    def test_xp_past_threshold_is_stale(self, reconciler):
        assert reconciler.is_stale(_player(xp=500)) is True

    def test_new_upgrade_is_stale(self, reconciler):
        assert reconciler.is_stale(_player(upgrades={"golden-goose": 1})) is True


class TestReconcile:
    def test_noop_when_consistent(self, reconciler):
        player = _player()

        result = reconciler.reconcile(player)

        assert result.changed is False
        assert result.leveled_up is False
        assert player.level == 1

    def test_level_up_assigns_all_rates(self, reconciler):
        """Crossing 1500 XP moves to level 3 with its tap and energy bonuses."""
        player = _player(xp=1_500, upgrades={"egg-farm": 1})

        result = reconciler.reconcile(player)

        assert result.changed is True
        assert (result.old_level, result.new_level) == (1, 3)
        assert result.leveled_up is True
        assert player.level == 3
        assert player.coins_per_tap == 2
        assert player.coins_per_hour == 100
        assert player.max_energy == 1050
        assert reconciler.is_stale(player) is False

    def test_energy_clamped_to_new_max(self, reconciler):
        """Max energy can shrink when a stale cache overstated it."""
        player = _player(max_energy=1400, energy=1400)

        reconciler.reconcile(player)

        assert player.max_energy == 1000
        assert player.energy == 1000

    def test_energy_below_max_untouched(self, reconciler):
        player = _player(upgrades={"energy-drink": 2}, energy=300)

        reconciler.reconcile(player)

        assert player.max_energy == 1200
        assert player.energy == 300

    def test_overstated_level_is_repaired(self, reconciler):
        """A cached level above what xp supports is brought back down."""
        player = _player(xp=600, level=5, coins_per_tap=3, max_energy=1150)

        result = reconciler.reconcile(player)

        assert player.level == 2
        assert result.leveled_up is False
        assert result.changed is True
