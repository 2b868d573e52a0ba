"""
Pytest Configuration and Fixtures for the Goose Tap Ledger Tests
================================================================

Purpose
-------
Shared fixtures for the ledger test suite: a throwaway SQLite database per
test, the gameplay ConfigManager, a real EventBus and every domain service
wired the way ServiceContainer wires them.

Responsibilities
----------------
- Environment setup before any goosetap import (testing env, no log files)
- DatabaseService lifecycle against an aiosqlite file in `tmp_path`
- Service fixtures with a zero-backoff retry policy
- Helpers for creating players and moving row timestamps ("time travel")

Non-Responsibilities
--------------------
- PostgreSQL containers (tests/integration/conftest.py)
- Test implementation (delegated to test files)

Architecture Notes
------------------
- Unit tests run real transactions; SQLite ignores FOR UPDATE, which is
  fine for single-connection sequential tests
- The clock is never patched: tests rewrite stored timestamps instead
- Every fixture is function scoped, so each test starts from an empty ledger
"""

from __future__ import annotations

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import timedelta  # noqa: E402
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Generator, List  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from goosetap.core.config.manager import ConfigManager  # noqa: E402
from goosetap.core.database.base import utcnow  # noqa: E402
from goosetap.core.database.retry_policy import (  # noqa: E402
    DatabaseRetryConfig,
    DatabaseRetryPolicy,
)
from goosetap.core.database.service import DatabaseService  # noqa: E402
from goosetap.core.event.bus import EventBus  # noqa: E402
from goosetap.core.logging.logger import get_logger  # noqa: E402
from goosetap.database.models.player import Player  # noqa: E402
from goosetap.modules.leaderboard import LeaderboardService  # noqa: E402
from goosetap.modules.player import (  # noqa: E402
    LedgerService,
    PlayerRegistrationService,
    RewardsService,
    SyncService,
)
from goosetap.modules.referral import ReferralService  # noqa: E402

logger = get_logger(__name__)


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================


@pytest.fixture
def config_manager() -> Generator[type, None, None]:
    """
    Gameplay ConfigManager loaded from config/*.yaml.

    Scope: function (overrides made with ConfigManager.set are dropped)
    """
    ConfigManager.reset()
    yield ConfigManager
    ConfigManager.reset()


@pytest.fixture
def event_bus(config_manager) -> EventBus:
    return EventBus(config_manager=config_manager)


@pytest.fixture
def retry_policy() -> DatabaseRetryPolicy:
    """Retry policy with no backoff so retried tests stay fast."""
    return DatabaseRetryPolicy(
        DatabaseRetryConfig(
            max_attempts=3,
            initial_backoff_ms=0,
            max_backoff_ms=0,
            jitter_ms=0,
        )
    )


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[type, None]:
    """
    Initialize DatabaseService against a fresh SQLite file.

    Scope: function (clean slate per test)
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"
    await DatabaseService.initialize(url)
    await DatabaseService.create_schema()

    yield DatabaseService

    await DatabaseService.shutdown()


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


def _service_logger(cls: type):
    return get_logger(f"{cls.__module__}.{cls.__name__}")


@pytest.fixture
def registration(database, config_manager, event_bus, retry_policy) -> PlayerRegistrationService:
    return PlayerRegistrationService(
        config_manager,
        event_bus,
        _service_logger(PlayerRegistrationService),
        retry_policy=retry_policy,
    )


@pytest.fixture
def ledger(database, config_manager, event_bus) -> LedgerService:
    return LedgerService(config_manager, event_bus, _service_logger(LedgerService))


@pytest.fixture
def rewards(database, config_manager, event_bus, retry_policy) -> RewardsService:
    return RewardsService(
        config_manager,
        event_bus,
        _service_logger(RewardsService),
        retry_policy=retry_policy,
    )


@pytest.fixture
def sync(database, config_manager, event_bus) -> SyncService:
    return SyncService(config_manager, event_bus, _service_logger(SyncService))


@pytest.fixture
def referrals(database, config_manager, event_bus) -> ReferralService:
    return ReferralService(config_manager, event_bus, _service_logger(ReferralService))


@pytest.fixture
def leaderboard(database, config_manager, event_bus) -> LeaderboardService:
    return LeaderboardService(config_manager, event_bus, _service_logger(LeaderboardService))


# ============================================================================
# DATA HELPERS
# ============================================================================


@pytest.fixture
def make_player(registration) -> Callable[..., Awaitable[Dict[str, Any]]]:
    """
    Factory creating a player through the registration service.

    Usage:
        player = await make_player(1001, referrer_id=1000)
    """

    async def _make(telegram_id: int, **kwargs: Any) -> Dict[str, Any]:
        kwargs.setdefault("username", f"goose{telegram_id}")
        kwargs.setdefault("first_name", "Goose")
        return await registration.get_or_create_player(telegram_id, **kwargs)

    return _make


@pytest.fixture
def set_player_state(database) -> Callable[..., Awaitable[None]]:
    """
    Write raw column values onto a stored player, bypassing the services.

    Used to set up balances and to move timestamps into the past.

    Usage:
        await set_player_state(1001, coins=5000, last_daily_claim_at=hours_ago(25))
    """

    async def _set(telegram_id: int, **values: Any) -> None:
        async with DatabaseService.get_transaction() as session:
            player = await session.get(Player, telegram_id)
            assert player is not None, f"player {telegram_id} missing"
            for column, value in values.items():
                setattr(player, column, value)

    return _set


@pytest.fixture
def load_player(database) -> Callable[[int], Awaitable[Player]]:
    """Fetch the stored Player row (detached, all columns loaded)."""

    async def _load(telegram_id: int) -> Player:
        async with DatabaseService.get_session() as session:
            player = await session.get(Player, telegram_id)
            assert player is not None, f"player {telegram_id} missing"
            return player

    return _load


def hours_ago(hours: float):
    return utcnow() - timedelta(hours=hours)


def published_events(publish_spy) -> List[str]:
    """Event names passed to a `mocker.spy(event_bus, "publish")` spy."""
    return [call.args[0] for call in publish_spy.call_args_list]


def event_payload(publish_spy, event_name: str) -> Dict[str, Any]:
    """Payload of the last `event_name` publication."""
    for call in reversed(publish_spy.call_args_list):
        if call.args[0] == event_name:
            return call.args[1]
    raise AssertionError(f"{event_name} was not published")


class StubSubscriptionVerifier:
    """SubscriptionVerifier answering from a fixed set of subscribers."""

    def __init__(self, subscribers=()) -> None:
        self.subscribers = set(subscribers)
        self.calls: List[tuple] = []

    async def is_subscribed(self, telegram_id: int, channel: str) -> bool:
        self.calls.append((telegram_id, channel))
        return telegram_id in self.subscribers
