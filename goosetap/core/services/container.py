"""
Service Container
=================

Purpose
-------
Composition root for the ledger. Creates every domain service once, with
the shared ConfigManager, EventBus and a per-service logger, and hands them
out to request handlers.

Responsibilities
----------------
- Initialize all domain services with required dependencies
- Own collaborators with a lifecycle (identity provider, subscription
  verifier, retry policy) so nothing relies on module-global init flags
- Provide typed access to services after initialization

Non-Responsibilities
--------------------
- Database/engine lifecycle (DatabaseService)
- Request routing and token transport

Architecture Notes
------------------
All domain services follow the same constructor pattern:
(config_manager, event_bus, logger), plus optional keyword collaborators.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from goosetap.core.config.manager import ConfigManager
from goosetap.core.database.retry_policy import DatabaseRetryPolicy
from goosetap.core.logging.logger import get_logger
from goosetap.modules.leaderboard import LeaderboardService
from goosetap.modules.player import (
    LedgerService,
    PlayerRegistrationService,
    RewardsService,
    SyncService,
)
from goosetap.modules.referral import ReferralService

if TYPE_CHECKING:
    from logging import Logger

    from goosetap.core.event.bus import EventBus
    from goosetap.modules.auth.contracts import IdentityProvider
    from goosetap.modules.player.rewards_service import SubscriptionVerifier


_NOT_INITIALIZED = "ServiceContainer not initialized. Call initialize() first."


class ServiceContainer:
    """
    Dependency injection container for all domain services.

    Usage:
        container = ServiceContainer(config_manager, event_bus, logger)
        await container.initialize()

        player = await container.registration.get_or_create_player(123)
        await container.ledger.tap(123, count=10)
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        identity_provider: Optional[IdentityProvider] = None,
        subscription_verifier: Optional[SubscriptionVerifier] = None,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger

        self._identity_provider = identity_provider
        self._subscription_verifier = subscription_verifier
        self._retry_policy = retry_policy

        self._registration: Optional[PlayerRegistrationService] = None
        self._ledger: Optional[LedgerService] = None
        self._rewards: Optional[RewardsService] = None
        self._sync: Optional[SyncService] = None
        self._referral: Optional[ReferralService] = None
        self._leaderboard: Optional[LeaderboardService] = None

        self._initialized = False

        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        retry = self._retry_policy or DatabaseRetryPolicy.from_config()

        self._registration = self._create_service(
            "registration", PlayerRegistrationService, retry_policy=retry
        )
        self._ledger = self._create_service("ledger", LedgerService)
        self._rewards = self._create_service(
            "rewards",
            RewardsService,
            subscription_verifier=self._subscription_verifier,
            retry_policy=retry,
        )
        self._sync = self._create_service("sync", SyncService)
        self._referral = self._create_service("referral", ReferralService)
        self._leaderboard = self._create_service("leaderboard", LeaderboardService)

        self._initialized = True
        self._init_end = time.perf_counter()

        self._logger.info(
            "Service container initialized",
            extra={
                "service_count": len(self._service_init_times),
                "init_time_seconds": round(self._init_end - self._init_start, 3),
                "subscription_verifier": self._subscription_verifier is not None,
                "identity_provider": self._identity_provider is not None,
            },
        )

    def _create_service(self, name: str, cls: type, **collaborators: Any) -> Any:
        start = time.perf_counter()

        try:
            instance = cls(
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(f"{cls.__module__}.{cls.__name__}"),
                **collaborators,
            )
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    async def shutdown(self) -> None:
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")
        await self._event_bus.drain()
        self._initialized = False
        self._logger.info("Service container shut down")

    def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "total_init_time_seconds": (
                round(self._init_end - self._init_start, 3)
                if self._init_start and self._init_end
                else None
            ),
            "identity_provider": self._identity_provider is not None,
            "subscription_verifier": self._subscription_verifier is not None,
        }

    # ========================================================================
    # Services
    # ========================================================================

    @property
    def registration(self) -> PlayerRegistrationService:
        if not self._initialized or self._registration is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._registration

    @property
    def ledger(self) -> LedgerService:
        if not self._initialized or self._ledger is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._ledger

    @property
    def rewards(self) -> RewardsService:
        if not self._initialized or self._rewards is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._rewards

    @property
    def sync(self) -> SyncService:
        if not self._initialized or self._sync is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._sync

    @property
    def referral(self) -> ReferralService:
        if not self._initialized or self._referral is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._referral

    @property
    def leaderboard(self) -> LeaderboardService:
        if not self._initialized or self._leaderboard is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._leaderboard

    @property
    def identity_provider(self) -> IdentityProvider:
        if self._identity_provider is None:
            raise RuntimeError("No identity provider configured")
        return self._identity_provider

    # ========================================================================
    # Utility
    # ========================================================================

    @property
    def is_initialized(self) -> bool:
        return self._initialized
