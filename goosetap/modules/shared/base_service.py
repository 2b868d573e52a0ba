"""
Ledger Service Base
===================

Every ledger service (registration, ledger, rewards, sync, referral,
leaderboard) is built from the same three collaborators:

- ConfigManager for gameplay tunables (`gameplay.*` keys)
- EventBus for post-commit notifications such as `player.tapped`
- a named Logger from `goosetap.core.logging`

Services own their transactions through `DatabaseService` and only publish
events after the transaction has committed, so listeners never observe a
balance that could still roll back.

    class SyncService(BaseService):
        def __init__(self, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._players = PlayerRepository(Player, logger)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from logging import Logger

    from goosetap.core.config.manager import ConfigManager
    from goosetap.core.event.bus import EventBus


class BaseService:
    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(self, key: str, default: Optional[Any] = None) -> Any:
        """Read a gameplay tunable such as `gameplay.offline.max_hours`."""
        return self._config.get(key, default)

    async def emit_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """Publish a post-commit event; listener failures stay on the bus."""
        await self._events.publish(event_type, data)

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Ledger operation: {operation}",
            extra={"operation": operation, **context},
        )
