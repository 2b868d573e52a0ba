from goosetap.modules.session.reconciliation import (
    DEFAULT_TAP_BATCH_SIZE,
    OptimisticSession,
    merge_game_states,
)

__all__ = ["DEFAULT_TAP_BATCH_SIZE", "OptimisticSession", "merge_game_states"]
