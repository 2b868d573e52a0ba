"""
Derived-Stat Reconciler
=======================

Keeps the cached derived columns of a Player (`level`, `coins_per_tap`,
`coins_per_hour`, `max_energy`) equal to what the economy formulas produce
for the stored `xp` and `upgrades`.

States
------
- Consistent: stored values match `derive_stats(upgrades, level_from_xp(xp))`
- Stale: `xp` or `upgrades` changed and the cached columns were not updated

`reconcile()` moves a row from Stale to Consistent by assigning all four
columns together on the locked instance; they are flushed with the rest of
the mutation in the caller's transaction, so a new level is never persisted
without its rates. Energy is clamped to the recomputed max.

The reconciler never opens a transaction of its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from goosetap.modules.economy.formulas import DerivedStats, derive_stats, level_from_xp

if TYPE_CHECKING:
    from logging import Logger

    from goosetap.database.models.player import Player


@dataclass(frozen=True)
class ReconcileResult:
    changed: bool
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


class DerivedStatReconciler:
    def __init__(self, logger: Logger) -> None:
        self.log = logger

    @staticmethod
    def expected(player: Player) -> DerivedStats:
        return derive_stats(player.upgrades or {}, level_from_xp(player.xp))

    def is_stale(self, player: Player) -> bool:
        expected = self.expected(player)
        return (
            player.level != expected.level
            or player.coins_per_tap != expected.coins_per_tap
            or player.coins_per_hour != expected.coins_per_hour
            or player.max_energy != expected.max_energy
        )

    def reconcile(self, player: Player) -> ReconcileResult:
        old_level = player.level

        if not self.is_stale(player):
            return ReconcileResult(changed=False, old_level=old_level, new_level=old_level)

        expected = self.expected(player)
        player.level = expected.level
        player.coins_per_tap = expected.coins_per_tap
        player.coins_per_hour = expected.coins_per_hour
        player.max_energy = expected.max_energy
        if player.energy > expected.max_energy:
            player.energy = expected.max_energy

        self.log.debug(
            "Derived stats reconciled",
            extra={
                "player_id": player.telegram_id,
                "old_level": old_level,
                "new_level": expected.level,
                "coins_per_tap": expected.coins_per_tap,
                "coins_per_hour": expected.coins_per_hour,
                "max_energy": expected.max_energy,
            },
        )
        return ReconcileResult(changed=True, old_level=old_level, new_level=expected.level)
