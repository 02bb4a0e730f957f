"""
Repository and store interfaces.

Services depend on these protocols only. Two implementations exist:

- MemoryStore: an owned dict per collection, keyed by id (default)
- SQLStore: SQLAlchemy async sessions against DATABASE_URL

Writes happen inside ``Store.transaction()``, which serializes all writers
and is all-or-nothing. ``Store.session()`` gives read-only access.
"""
from collections.abc import Iterable, Mapping
from typing import Any, AsyncContextManager, Generic, Optional, Protocol, TypeVar

from crm_admin.core import timeutils
from crm_admin.core.errors import ValidationFailed
from crm_admin.features.members.models import Department, Role, User
from crm_admin.features.permissions.models import Permission
from crm_admin.features.versions.models import Deployment, Version


ModelT = TypeVar("ModelT")


class Repository(Protocol, Generic[ModelT]):
    """Collection of one entity type, keyed by id."""

    async def get(self, entity_id: str) -> Optional[ModelT]:
        ...

    async def list(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        search: Optional[str] = None,
    ) -> list[ModelT]:
        """Exact-match conjunction over ``filters`` plus an optional substring ``search``."""
        ...

    async def count(self, filters: Optional[Mapping[str, Any]] = None) -> int:
        ...

    async def add(self, entity: ModelT) -> ModelT:
        ...

    async def update(self, entity: ModelT, changes: Mapping[str, Any]) -> ModelT:
        """Apply ``changes`` and refresh ``updated_at``."""
        ...

    async def delete(self, entity: ModelT) -> None:
        ...


class StoreSession(Protocol):
    users: Repository[User]
    roles: Repository[Role]
    departments: Repository[Department]
    permissions: Repository[Permission]
    versions: Repository[Version]
    deployments: Repository[Deployment]


class Store(Protocol):
    def session(self) -> AsyncContextManager[StoreSession]:
        """Read-only access to the current state."""
        ...

    def transaction(self) -> AsyncContextManager[StoreSession]:
        """Serialized, all-or-nothing write access."""
        ...

    async def close(self) -> None:
        ...


COLLECTIONS: dict[str, type] = {
    "users": User,
    "roles": Role,
    "departments": Department,
    "permissions": Permission,
    "versions": Version,
    "deployments": Deployment,
}


def active_filters(model: type, filters: Optional[Mapping[str, Any]]) -> list[tuple[str, Any]]:
    """
    Filters that apply to ``model``, skipping None values.

    Raises:
        ValidationFailed: if a filter names a field the model does not have
    """
    if not filters:
        return []
    columns = model.__table__.columns.keys()
    active = []
    for key, value in filters.items():
        if value is None:
            continue
        if key not in columns:
            raise ValidationFailed(f"Unknown filter field '{key}'")
        active.append((key, value))
    return active


def stamp_changes(entity: Any, changes: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of ``changes`` with updated_at refreshed when the entity has one."""
    staged = dict(changes)
    if hasattr(type(entity), "updated_at"):
        staged["updated_at"] = timeutils.utcnow()
    return staged


def search_fields(model: type) -> Iterable[str]:
    return getattr(model, "__search_fields__", ("name",))
