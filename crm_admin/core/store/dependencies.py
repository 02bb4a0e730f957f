"""
Store lifecycle and FastAPI dependency.

The application owns a single store for its lifetime. ``init_store`` runs
on startup, ``close_store`` on shutdown, and routes receive the store
through ``Depends(get_store)`` so tests can override it.
"""
from typing import Optional

from crm_admin.core import config
from crm_admin.core.store.base import Store
from crm_admin.core.store.memory import MemoryStore
from crm_admin.core.store.sql import SQLStore
from crm_admin.utils import get_logger


log = get_logger(__name__)

_store: Optional[Store] = None


async def create_store(backend: Optional[str] = None) -> Store:
    backend = (backend or config.STORE_BACKEND).lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "sql":
        return await SQLStore.connect(config.SQLALCHEMY_DATABASE_URL)
    raise ValueError(f"Unknown STORE_BACKEND '{backend}' (expected 'memory' or 'sql')")


async def init_store() -> Store:
    """Create the configured store and seed demo data into an empty one."""
    global _store
    from crm_admin.features.members.fixtures import seed_demo_data
    from crm_admin.features.versions.fixtures import seed_release_data

    _store = await create_store()
    log.info(f"Store initialized: {type(_store).__name__}")

    if config.SEED_DEMO_DATA:
        async with _store.session() as db:
            empty = await db.permissions.count() == 0
        if empty:
            await seed_demo_data(_store)
            await seed_release_data(_store)
    return _store


async def close_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None


def get_store() -> Store:
    if _store is None:
        raise RuntimeError("Store is not initialized; the application has not started")
    return _store
