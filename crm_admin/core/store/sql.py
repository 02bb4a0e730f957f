"""
SQL store backed by SQLAlchemy async sessions.

Each transaction is one ``session.begin()`` block: every staged write is
flushed immediately so constraint violations surface inside the block,
and the whole block commits or rolls back together.
"""
import asyncio
from collections.abc import Mapping
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from crm_admin.core.database.engine import create_engine, init_db
from crm_admin.core.errors import Conflict
from crm_admin.core.store.base import (
    COLLECTIONS,
    active_filters,
    search_fields,
    stamp_changes,
)
from crm_admin.utils import get_logger


log = get_logger(__name__)


class SQLRepository:
    def __init__(self, model: type, session: AsyncSession, writable: bool):
        self.model = model
        self.session = session
        self.writable = writable

    def _check_writable(self) -> None:
        if not self.writable:
            raise RuntimeError(f"{self.model.__name__} repository is read-only outside a transaction")

    def _where(self, stmt, filters: Optional[Mapping[str, Any]], search: Optional[str] = None):
        for key, value in active_filters(self.model, filters):
            stmt = stmt.where(getattr(self.model, key) == value)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(*(
                getattr(self.model, field).ilike(pattern) for field in search_fields(self.model)
            )))
        return stmt

    async def _flush(self) -> None:
        try:
            await self.session.flush()
        except IntegrityError as e:
            log.info(f"Integrity error on {self.model.__tablename__}: {e.orig}")
            raise Conflict(f"{self.model.__name__} violates a uniqueness constraint") from e

    async def get(self, entity_id: str) -> Optional[Any]:
        return await self.session.get(self.model, entity_id)

    async def list(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        search: Optional[str] = None,
    ) -> list[Any]:
        stmt = self._where(select(self.model), filters, search)
        stmt = stmt.order_by(*(getattr(self.model, column) for column in self.model.__order_by__))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count(self, filters: Optional[Mapping[str, Any]] = None) -> int:
        stmt = self._where(select(func.count()).select_from(self.model), filters)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def add(self, entity: Any) -> Any:
        self._check_writable()
        self.session.add(entity)
        await self._flush()
        return entity

    async def update(self, entity: Any, changes: Mapping[str, Any]) -> Any:
        self._check_writable()
        for key, value in stamp_changes(entity, changes).items():
            setattr(entity, key, value)
        await self._flush()
        return entity

    async def delete(self, entity: Any) -> None:
        self._check_writable()
        await self.session.delete(entity)
        await self._flush()


class SQLSession:
    def __init__(self, session: AsyncSession, writable: bool):
        for name, model in COLLECTIONS.items():
            setattr(self, name, SQLRepository(model, session, writable))


class SQLStore:
    """Store over any SQLAlchemy async database URL."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._sessionmaker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._lock = asyncio.Lock()

    @classmethod
    async def connect(cls, url: Optional[str] = None) -> "SQLStore":
        """Create the engine for ``url``, make sure tables exist, and wrap it."""
        engine = create_engine(url)
        await init_db(engine)
        return cls(engine)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[SQLSession]:
        async with self._sessionmaker() as session:
            yield SQLSession(session, writable=False)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLSession]:
        async with self._lock:
            async with self._sessionmaker() as session:
                async with session.begin():
                    yield SQLSession(session, writable=True)

    async def close(self) -> None:
        await self.engine.dispose()
