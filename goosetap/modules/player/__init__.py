"""
Player ledger services.

- PlayerRegistrationService: first-contact creation, referral resolution, dev reset
- LedgerService: taps, upgrade purchases, field-mask state updates
- RewardsService: task and daily reward claims
- SyncService: load-time offline settlement
"""

from goosetap.modules.player.ledger_service import LedgerService, StateUpdate
from goosetap.modules.player.projection import PlayerProjection
from goosetap.modules.player.reconciler import DerivedStatReconciler, ReconcileResult
from goosetap.modules.player.registration_service import PlayerRegistrationService
from goosetap.modules.player.repository import PlayerRepository
from goosetap.modules.player.rewards_service import RewardsService, SubscriptionVerifier
from goosetap.modules.player.sync_service import SyncService

__all__ = [
    "DerivedStatReconciler",
    "LedgerService",
    "PlayerProjection",
    "PlayerRegistrationService",
    "PlayerRepository",
    "ReconcileResult",
    "RewardsService",
    "StateUpdate",
    "SubscriptionVerifier",
    "SyncService",
]
