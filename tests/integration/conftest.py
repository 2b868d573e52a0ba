"""
Integration fixtures: a real PostgreSQL server via testcontainers.

The session-scoped container replaces the SQLite `database` fixture from
the root conftest, so every service fixture runs against PostgreSQL with
real row locks. Tests are skipped when no container runtime is available.
"""

from __future__ import annotations

from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer

from goosetap.core.database.service import DatabaseService
from goosetap.core.logging.logger import get_logger

logger = get_logger(__name__)


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"PostgreSQL testcontainer unavailable: {exc}")

    logger.info("PostgreSQL testcontainer started: %s", container.get_connection_url())

    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest_asyncio.fixture
async def database(postgres_container) -> AsyncGenerator[type, None]:
    """
    Initialize DatabaseService against the container with a fresh schema.

    Scope: function (clean slate per test)
    """
    await DatabaseService.initialize(postgres_container.get_connection_url())
    await DatabaseService.drop_schema()
    await DatabaseService.create_schema()

    yield DatabaseService

    await DatabaseService.shutdown()
