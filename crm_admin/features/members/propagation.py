"""
Propagation of structural changes to denormalized fields.

Users copy their role name, role permissions, department name and manager
name; departments copy their manager's name and cache member counts;
roles cache user counts. Whenever a source changes, the engine works out
every affected row first, then stages the writes in the open transaction.

If any staged write fails, PropagationFailed reports which rows were
written, which row failed and which were never reached. The caller lets
it escape the transaction, so the store rolls everything back, including
the change that triggered the fan-out.
"""
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from crm_admin.core.errors import PropagationFailed
from crm_admin.core.store.base import Repository, StoreSession
from crm_admin.features.members.models import Department, Role, User
from crm_admin.features.permissions.access import PermissionSet
from crm_admin.utils import get_logger


log = get_logger(__name__)


Changes = Union[Mapping[str, Any], Callable[[Any], Mapping[str, Any]]]


@dataclass
class PropagationReport:
    reason: str
    collection: str
    updated: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.reason}: {len(self.updated)} {self.collection} updated"


class PropagationEngine:
    def __init__(self, db: StoreSession):
        self.db = db

    async def _fan_out(
        self,
        reason: str,
        collection: str,
        repo: Repository,
        rows: Sequence[Any],
        changes: Changes,
    ) -> PropagationReport:
        report = PropagationReport(reason=reason, collection=collection)
        for index, row in enumerate(rows):
            try:
                await repo.update(row, changes(row) if callable(changes) else changes)
            except Exception as e:
                log.warning(f"Propagation '{reason}' failed on {collection} '{row.id}': {e}")
                raise PropagationFailed(
                    f"Propagation '{reason}' failed after {len(report.updated)} of {len(rows)} {collection}",
                    details={
                        "reason": reason,
                        "applied": list(report.updated),
                        "failed": row.id,
                        "pending": [pending.id for pending in rows[index + 1:]],
                        "error": str(e),
                    },
                ) from e
            report.updated.append(row.id)

        if report.updated:
            log.info(str(report))
        return report

    # ------------------------------------------------------------------
    # Role changes
    # ------------------------------------------------------------------

    async def role_permissions_changed(self, role: Role) -> PropagationReport:
        """Rewrite the resolved permissions of every holder of ``role``."""
        resolved = PermissionSet.from_stored(role.permissions).to_stored()
        holders = await self.db.users.list({"role_id": role.id})
        return await self._fan_out(
            "role permissions changed",
            "users",
            self.db.users,
            holders,
            lambda _user: {"permissions": list(resolved)},
        )

    async def role_renamed(self, role: Role) -> PropagationReport:
        holders = await self.db.users.list({"role_id": role.id})
        return await self._fan_out("role renamed", "users", self.db.users, holders, {"role": role.name})

    # ------------------------------------------------------------------
    # Department changes
    # ------------------------------------------------------------------

    async def department_renamed(self, department: Department) -> PropagationReport:
        members = await self.db.users.list({"department_id": department.id})
        return await self._fan_out(
            "department renamed",
            "users",
            self.db.users,
            members,
            {"department": department.name},
        )

    # ------------------------------------------------------------------
    # User changes
    # ------------------------------------------------------------------

    async def user_renamed(self, user: User) -> list[PropagationReport]:
        reports = await self.db.users.list({"report_to_id": user.id})
        managed = await self.db.departments.list({"manager_id": user.id})
        return [
            await self._fan_out("manager renamed", "users", self.db.users, reports, {"report_to": user.name}),
            await self._fan_out(
                "manager renamed", "departments", self.db.departments, managed, {"manager": user.name}
            ),
        ]

    async def user_removed(self, user: User) -> list[PropagationReport]:
        """Unlink direct reports and managed departments from a deleted user."""
        reports = await self.db.users.list({"report_to_id": user.id})
        managed = await self.db.departments.list({"manager_id": user.id})
        return [
            await self._fan_out(
                "manager removed",
                "users",
                self.db.users,
                reports,
                {"report_to_id": None, "report_to": None},
            ),
            await self._fan_out(
                "manager removed", "departments", self.db.departments, managed, {"manager_id": None}
            ),
        ]

    # ------------------------------------------------------------------
    # Cached counters
    # ------------------------------------------------------------------

    async def refresh_member_count(self, department_id: Optional[str]) -> Optional[PropagationReport]:
        """Recompute ``member_count`` for one department from its users."""
        department = await self.db.departments.get(department_id) if department_id else None
        if department is None:
            return None
        count = await self.db.users.count({"department_id": department.id})
        rows = [department] if department.member_count != count else []
        return await self._fan_out(
            "member count", "departments", self.db.departments, rows, {"member_count": count}
        )

    async def refresh_user_count(self, role_id: Optional[str]) -> Optional[PropagationReport]:
        """Recompute ``user_count`` for one role from its holders."""
        role = await self.db.roles.get(role_id) if role_id else None
        if role is None:
            return None
        count = await self.db.users.count({"role_id": role.id})
        rows = [role] if role.user_count != count else []
        return await self._fan_out("user count", "roles", self.db.roles, rows, {"user_count": count})
