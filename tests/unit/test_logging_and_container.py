"""
Unit tests for the logging context/formatters and the ServiceContainer.
"""

import json
import logging

import pytest

from goosetap.core.logging import (
    LogContext,
    clear_log_context,
    get_log_context,
    get_logger,
    set_log_context,
)
from goosetap.core.logging.logger import ContextFilter, JSONFormatter
from goosetap.core.services.container import ServiceContainer
from goosetap.modules.player import LedgerService
from goosetap.modules.shared.base_service import BaseService

pytestmark = pytest.mark.unit


def _record(message: str = "Tap batch applied", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="goosetap.modules.player.ledger_service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _clean_log_context():
    clear_log_context()
    yield
    clear_log_context()


class TestLogContext:
    def test_context_bound_and_restored(self):
        with LogContext(player_id=42, operation="tap", correlation_id="abc123"):
            context = get_log_context()
            assert context["player_id"] == "42"
            assert context["operation"] == "tap"
            assert context["correlation_id"] == "abc123"
            assert context["source"] == "N/A"

        assert get_log_context() == {}

    def test_nested_context_restores_outer(self):
        with LogContext(player_id=1, operation="load_game"):
            with LogContext(player_id=2, operation="tap"):
                assert get_log_context()["player_id"] == "2"
            assert get_log_context()["operation"] == "load_game"

    async def test_async_context(self):
        async with LogContext(operation="claim_daily") as ctx:
            assert get_log_context()["operation"] == "claim_daily"
            assert len(ctx.context["correlation_id"]) == 8

        assert get_log_context() == {}

    def test_set_log_context_merges(self):
        set_log_context(player_id=7)
        set_log_context(correlation_id="req-1", source="webapp", batch=3)

        assert get_log_context() == {
            "player_id": "7",
            "correlation_id": "req-1",
            "source": "webapp",
            "batch": 3,
        }


class TestFormatters:
    def test_context_filter_fills_defaults(self):
        record = _record()

        assert ContextFilter().filter(record) is True
        assert record.player_id == "N/A"
        assert record.operation == "N/A"
        assert record.correlation_id == "N/A"
        assert record.source == "N/A"

    def test_explicit_operation_wins(self):
        record = _record(operation="purchase_upgrade")
        with LogContext(operation="tap"):
            ContextFilter().filter(record)

        assert record.operation == "purchase_upgrade"

    def test_json_formatter_includes_context_and_extra(self):
        record = _record(telegram_id=42, count=10)
        with LogContext(player_id=42, operation="tap", correlation_id="abc123"):
            ContextFilter().filter(record)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Tap batch applied"
        assert payload["level"] == "INFO"
        assert payload["player_id"] == "42"
        assert payload["operation"] == "tap"
        assert payload["correlation_id"] == "abc123"
        assert "source" not in payload
        assert payload["extra"] == {"telegram_id": 42, "count": 10}


class TestServiceContainer:
    def _container(self, config_manager, event_bus, retry_policy) -> ServiceContainer:
        return ServiceContainer(
            config_manager,
            event_bus,
            get_logger("tests.container"),
            retry_policy=retry_policy,
        )

    def test_services_unavailable_before_initialize(self, config_manager, event_bus, retry_policy):
        container = self._container(config_manager, event_bus, retry_policy)

        with pytest.raises(RuntimeError):
            _ = container.ledger
        with pytest.raises(RuntimeError):
            _ = container.identity_provider
        assert container.health_check()["initialized"] is False

    async def test_initialize_wires_services(self, config_manager, event_bus, retry_policy):
        container = self._container(config_manager, event_bus, retry_policy)

        await container.initialize()

        assert isinstance(container.ledger, LedgerService)
        assert container.registration is not None
        assert container.rewards is not None
        assert container.sync is not None
        assert container.referral is not None
        assert container.leaderboard is not None
        health = container.health_check()
        assert health["initialized"] is True
        assert health["service_count"] == 6
        assert health["subscription_verifier"] is False

    async def test_shutdown(self, config_manager, event_bus, retry_policy):
        container = self._container(config_manager, event_bus, retry_policy)
        await container.initialize()

        await container.shutdown()

        assert container.is_initialized is False
        with pytest.raises(RuntimeError):
            _ = container.sync

    async def test_end_to_end_through_container(
        self, database, config_manager, event_bus, retry_policy
    ):
        container = self._container(config_manager, event_bus, retry_policy)
        await container.initialize()

        await container.registration.get_or_create_player(1)
        player = await container.ledger.tap(1, count=5)

        assert player["coins"] == 5


class TestBaseService:
    def _service(self, config_manager, event_bus) -> BaseService:
        return BaseService(config_manager, event_bus, get_logger("tests.base_service"))

    def test_reads_gameplay_tunables(self, config_manager, event_bus):
        config_manager.set("gameplay.offline.max_hours", 5)
        service = self._service(config_manager, event_bus)

        assert service.get_config("gameplay.offline.max_hours") == 5
        assert service.get_config("gameplay.nothing.here", 7) == 7

    async def test_emit_event_publishes(self, config_manager, event_bus, mocker):
        spy = mocker.spy(event_bus, "publish")
        service = self._service(config_manager, event_bus)

        await service.emit_event("player.tapped", {"telegram_id": 1})

        spy.assert_called_once_with("player.tapped", {"telegram_id": 1})

    def test_log_operation_tags_record(self, config_manager, event_bus, caplog):
        service = self._service(config_manager, event_bus)

        with caplog.at_level(logging.INFO, logger="tests.base_service"):
            service.log_operation("claim_daily", telegram_id=1)

        record = caplog.records[-1]
        assert record.getMessage() == "Ledger operation: claim_daily"
        assert record.operation == "claim_daily"
        assert record.telegram_id == 1
