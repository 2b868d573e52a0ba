"""
Session Reconciliation
======================

Client-side session model, kept here because its merge rule is a contract
the server read path has to support.

A client holds two explicit states:

- server: the last authoritative projection it fetched
- local: an optimistic copy advanced immediately on every tap

Taps accumulate in a pending batch that is flushed to `LedgerService.tap`
once it reaches the batch size (or when the app is hidden). When a fresh
server projection arrives (load, focus/resume, after a flush) the two are
merged with `merge_game_states`: coins and XP take the maximum so visible
progress never regresses because of an in-flight batch; everything else
comes from the server.

The authoritative ledger is always the database row; losing an unflushed
batch on hard termination is an accepted, bounded loss.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Mapping

DEFAULT_TAP_BATCH_SIZE = 25

_MAX_MERGED_FIELDS = ("coins", "xp")


def merge_game_states(local: Mapping[str, Any], server: Mapping[str, Any]) -> Dict[str, Any]:
    """Server values, except coins and xp which take the larger of the two."""
    merged = copy.deepcopy(dict(server))
    for key in _MAX_MERGED_FIELDS:
        if key in local and key in server:
            merged[key] = max(local[key], server[key])
    return merged


class OptimisticSession:
    """
    Local-optimistic and server-authoritative state for one player.

    Args:
        server_state: Player projection dict from the server
        batch_size: Pending taps that trigger a flush
        xp_per_tap: Local XP credited per tap
    """

    def __init__(
        self,
        server_state: Mapping[str, Any],
        batch_size: int = DEFAULT_TAP_BATCH_SIZE,
        xp_per_tap: int = 1,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._server: Dict[str, Any] = copy.deepcopy(dict(server_state))
        self._local: Dict[str, Any] = copy.deepcopy(dict(server_state))
        self._pending = 0
        self.batch_size = batch_size
        self.xp_per_tap = xp_per_tap

    @property
    def local(self) -> Dict[str, Any]:
        return copy.deepcopy(self._local)

    @property
    def server(self) -> Dict[str, Any]:
        return copy.deepcopy(self._server)

    @property
    def pending_taps(self) -> int:
        return self._pending

    @property
    def should_flush(self) -> bool:
        return self._pending >= self.batch_size

    def record_tap(self) -> bool:
        """Advance the local state by one tap; False when out of energy."""
        if self._local.get("energy", 0) < 1:
            return False

        rate = self._local.get("coins_per_tap", 1)
        self._local["coins"] = self._local.get("coins", 0) + rate
        self._local["total_earnings"] = self._local.get("total_earnings", 0) + rate
        self._local["xp"] = self._local.get("xp", 0) + self.xp_per_tap
        self._local["energy"] -= 1
        self._local["total_taps"] = self._local.get("total_taps", 0) + 1
        self._local["daily_taps"] = self._local.get("daily_taps", 0) + 1
        self._pending += 1
        return True

    def take_pending_taps(self) -> int:
        """Drain the pending batch; the caller sends it in one tap call."""
        pending, self._pending = self._pending, 0
        return pending

    def reconcile(self, server_state: Mapping[str, Any]) -> Dict[str, Any]:
        """Adopt a fresh server projection and merge the local copy into it."""
        self._server = copy.deepcopy(dict(server_state))
        self._local = merge_game_states(self._local, self._server)
        return self.local
