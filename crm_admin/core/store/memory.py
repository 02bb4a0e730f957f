"""
In-memory store.

One dict per collection, keyed by id, iterated in insertion order. A
transaction records an undo entry for every write and replays the journal
in reverse if the block raises, so a failed operation leaves no trace.
"""
import asyncio
from collections.abc import Callable, Mapping
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from crm_admin.core.errors import Conflict
from crm_admin.core.store.base import (
    COLLECTIONS,
    active_filters,
    search_fields,
    stamp_changes,
)
from crm_admin.utils import get_logger


log = get_logger(__name__)


UndoJournal = list[Callable[[], None]]


class MemoryRepository:
    def __init__(
        self,
        model: type,
        items: dict[str, Any],
        journal: Optional[UndoJournal] = None,
    ):
        self.model = model
        self._items = items
        # None means the session is read-only
        self._journal = journal

    def _writable(self) -> UndoJournal:
        if self._journal is None:
            raise RuntimeError(f"{self.model.__name__} repository is read-only outside a transaction")
        return self._journal

    async def get(self, entity_id: str) -> Optional[Any]:
        return self._items.get(entity_id)

    async def list(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        search: Optional[str] = None,
    ) -> list[Any]:
        conditions = active_filters(self.model, filters)
        needle = search.strip().lower() if search else None
        fields = search_fields(self.model)

        results = []
        for item in self._items.values():
            if any(getattr(item, key) != value for key, value in conditions):
                continue
            if needle and not any(
                needle in str(getattr(item, field) or "").lower() for field in fields
            ):
                continue
            results.append(item)
        return results

    async def count(self, filters: Optional[Mapping[str, Any]] = None) -> int:
        return len(await self.list(filters))

    async def add(self, entity: Any) -> Any:
        journal = self._writable()
        if entity.id in self._items:
            # Same failure the SQL store reports for a duplicate primary key
            raise Conflict(f"{self.model.__name__} '{entity.id}' already exists")
        self._items[entity.id] = entity
        journal.append(lambda: self._items.pop(entity.id, None))
        return entity

    async def update(self, entity: Any, changes: Mapping[str, Any]) -> Any:
        journal = self._writable()
        staged = stamp_changes(entity, changes)
        previous = {key: getattr(entity, key) for key in staged}

        def undo():
            for key, value in previous.items():
                setattr(entity, key, value)

        for key, value in staged.items():
            setattr(entity, key, value)
        journal.append(undo)
        return entity

    async def delete(self, entity: Any) -> None:
        journal = self._writable()
        keys = list(self._items)
        position = keys.index(entity.id)
        self._items.pop(entity.id)

        def undo():
            entries = list(self._items.items())
            entries.insert(position, (entity.id, entity))
            self._items.clear()
            self._items.update(entries)

        journal.append(undo)


class MemorySession:
    def __init__(self, data: dict[str, dict[str, Any]], journal: Optional[UndoJournal] = None):
        for name, model in COLLECTIONS.items():
            setattr(self, name, MemoryRepository(model, data[name], journal))


class MemoryStore:
    """Process-local store owning every collection."""

    def __init__(self):
        self._data: dict[str, dict[str, Any]] = {name: {} for name in COLLECTIONS}
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[MemorySession]:
        yield MemorySession(self._data)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemorySession]:
        async with self._lock:
            journal: UndoJournal = []
            try:
                yield MemorySession(self._data, journal)
            except BaseException:
                log.info(f"Rolling back {len(journal)} staged writes")
                for undo in reversed(journal):
                    undo()
                raise

    async def close(self) -> None:
        for items in self._data.values():
            items.clear()
