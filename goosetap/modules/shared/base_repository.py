"""
Base Repository Pattern

Purpose
-------
Provides a type-safe, generic repository abstraction for database operations
following SQLAlchemy 2.0 async patterns. Repositories encapsulate data access
and give services a consistent interface for reads, locks and writes.

Design Notes
------------
This base repository provides:
- Primary-key lookups resolved from the mapper (models key on `telegram_id`,
  not a surrogate `id`)
- Pessimistic locking support (`get_for_update`, `for_update=True`)
- Existence/counting utilities
- Structured debug logging for every call

What this class does NOT do:
- Manage transactions (services/DatabaseService handle that)
- Contain business logic

Usage
-----
    class PlayerRepository(BaseRepository[Player]):
        async def list_direct_referrals(self, session, telegram_id):
            return await self.find_many_where(
                session, Player.referrer_tier1 == telegram_id
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, inspect, select

from goosetap.core.database.service import DatabaseService

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository for type-safe database operations.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger
        self._pk = inspect(model_class).primary_key[0]

    @property
    def model_name(self) -> str:
        return self.model_class.__name__

    async def get(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Get a single record by primary key (no lock)."""
        stmt = select(self.model_class).where(self._pk == id_value)
        result = await session.execute(stmt)
        instance = result.scalar_one_or_none()

        self.log.debug(
            f"Repository.get: {self.model_name}",
            extra={"model": self.model_name, "id": id_value, "found": instance is not None},
        )
        return instance

    async def get_for_update(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """
        Get a single record by primary key with SELECT FOR UPDATE lock.

        Values already in the identity map are overwritten with the locked
        row so preconditions are checked against committed state.
        """
        instance = await DatabaseService.get_locked_entity(session, self.model_class, id_value)

        self.log.debug(
            f"Repository.get_for_update: {self.model_name}",
            extra={
                "model": self.model_name,
                "id": id_value,
                "found": instance is not None,
                "locked": True,
            },
        )
        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
    ) -> List[T]:
        """
        Find multiple records matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            order_by: Optional ordering clauses
            limit: Optional maximum number of results
        """
        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await session.execute(stmt)
        instances = list(result.scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self.model_name}",
            extra={
                "model": self.model_name,
                "found_count": len(instances),
                "limit": limit,
            },
        )
        return instances

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count(session, *conditions) > 0

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        """Count records matching conditions."""
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        result = await session.execute(stmt)
        count = int(result.scalar_one())

        self.log.debug(
            f"Repository.count: {self.model_name}",
            extra={"model": self.model_name, "count": count},
        )
        return count

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        self.log.debug(f"Repository.add: {self.model_name}", extra={"model": self.model_name})
        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)
        self.log.debug(
            f"Repository.delete: {self.model_name}", extra={"model": self.model_name}
        )

    async def flush(self, session: AsyncSession) -> None:
        await session.flush()
        self.log.debug(
            f"Repository.flush: {self.model_name}", extra={"model": self.model_name}
        )
