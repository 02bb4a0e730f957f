"""
Referential integrity rules for users, roles and departments.

Every check runs against the state visible through the open store
transaction and raises before anything is written:

- Conflict: uniqueness violations, deletes blocked by dependents,
  department level ordering, reporting-line cycles
- ValidationFailed: bad code pattern or level range, self-parenting,
  department cycles, references to ids that do not exist
"""
import re
from dataclasses import dataclass
from collections.abc import Mapping
from typing import Any, Optional

from crm_admin.core.errors import Conflict, ValidationFailed
from crm_admin.core.store.base import Repository, StoreSession
from crm_admin.features.members.models import Department, Role, User


CODE_PATTERN = re.compile(r"^[A-Z_]+$")
MIN_LEVEL = 1
MAX_LEVEL = 10


@dataclass
class UserReferences:
    """Entities a user payload points at, resolved during the check."""
    department: Department
    role: Role
    report_to: Optional[User] = None


def _effective(changes: Mapping[str, Any], key: str, current: Any) -> Any:
    return changes[key] if key in changes else current


class IntegrityChecker:
    def __init__(self, db: StoreSession):
        self.db = db

    # ------------------------------------------------------------------
    # Shared rules
    # ------------------------------------------------------------------

    async def _ensure_unique(
        self,
        repo: Repository,
        entity: str,
        field: str,
        value: Any,
        exclude_id: Optional[str] = None,
    ) -> None:
        if value is None:
            return
        for match in await repo.list({field: value}):
            if match.id != exclude_id:
                raise Conflict(
                    f"{entity} with {field.replace('_', ' ')} '{value}' already exists",
                    details={"field": field, "value": value},
                )

    @staticmethod
    def _ensure_code(code: Optional[str]) -> None:
        if code is not None and not CODE_PATTERN.match(code):
            raise ValidationFailed(
                "Code must contain only uppercase letters and underscores",
                details={"field": "code", "value": code},
            )

    @staticmethod
    def _ensure_level(level: Optional[int]) -> None:
        if level is not None and not MIN_LEVEL <= level <= MAX_LEVEL:
            raise ValidationFailed(
                f"Level must be between {MIN_LEVEL} and {MAX_LEVEL}",
                details={"field": "level", "value": level},
            )

    async def _resolve(self, repo: Repository, entity_id: Optional[str], field: str, entity: str):
        if entity_id is None:
            return None
        found = await repo.get(entity_id)
        if found is None:
            raise ValidationFailed(
                f"{entity} '{entity_id}' does not exist",
                details={"field": field, "value": entity_id},
            )
        return found

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def check_user(self, changes: Mapping[str, Any], user: Optional[User] = None) -> UserReferences:
        """
        Check a user create (``user`` is None) or update.

        Returns the department, role and manager the user will point at.
        """
        exclude_id = user.id if user else None
        await self._ensure_unique(self.db.users, "User", "email", changes.get("email"), exclude_id)
        await self._ensure_unique(self.db.users, "User", "employee_id", changes.get("employee_id"), exclude_id)

        department_id = _effective(changes, "department_id", user.department_id if user else None)
        role_id = _effective(changes, "role_id", user.role_id if user else None)
        if department_id is None:
            raise ValidationFailed("Department is required", details={"field": "department_id"})
        if role_id is None:
            raise ValidationFailed("Role is required", details={"field": "role_id"})

        department = await self._resolve(self.db.departments, department_id, "department_id", "Department")
        role = await self._resolve(self.db.roles, role_id, "role_id", "Role")

        report_to = None
        report_to_id = _effective(changes, "report_to_id", user.report_to_id if user else None)
        if report_to_id is not None:
            if user is not None and report_to_id == user.id:
                raise ValidationFailed(
                    "A user cannot report to themselves",
                    details={"field": "report_to_id", "value": report_to_id},
                )
            report_to = await self._resolve(self.db.users, report_to_id, "report_to_id", "User")
            if user is not None and "report_to_id" in changes:
                await self._ensure_no_reporting_cycle(user, report_to)

        return UserReferences(department=department, role=role, report_to=report_to)

    async def _ensure_no_reporting_cycle(self, user: User, manager: User) -> None:
        seen = {user.id}
        current: Optional[User] = manager
        while current is not None:
            if current.id in seen:
                raise Conflict(
                    "Reporting line would form a cycle",
                    details={"userId": user.id, "reportToId": manager.id},
                )
            seen.add(current.id)
            current = await self.db.users.get(current.report_to_id) if current.report_to_id else None

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    async def check_role(self, changes: Mapping[str, Any], role: Optional[Role] = None) -> None:
        exclude_id = role.id if role else None
        self._ensure_code(changes.get("code"))
        self._ensure_level(changes.get("level"))
        await self._ensure_unique(self.db.roles, "Role", "name", changes.get("name"), exclude_id)
        await self._ensure_unique(self.db.roles, "Role", "code", changes.get("code"), exclude_id)

    async def check_role_delete(self, role: Role) -> None:
        holders = await self.db.users.count({"role_id": role.id})
        if holders:
            raise Conflict(
                f"Cannot delete role: {holders} user(s) still hold it",
                details={"users": holders},
            )

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------

    async def check_department(
        self,
        changes: Mapping[str, Any],
        department: Optional[Department] = None,
    ) -> Optional[User]:
        """
        Check a department create (``department`` is None) or update.

        Returns the managing user when the payload names one.
        """
        exclude_id = department.id if department else None
        self._ensure_code(changes.get("code"))
        self._ensure_level(changes.get("level"))
        await self._ensure_unique(self.db.departments, "Department", "name", changes.get("name"), exclude_id)
        await self._ensure_unique(self.db.departments, "Department", "code", changes.get("code"), exclude_id)
        manager = await self._resolve(self.db.users, changes.get("manager_id"), "manager_id", "User")

        if department is None:
            if changes.get("level") is None:
                raise ValidationFailed("Level is required", details={"field": "level"})
            await self._check_parent(None, changes.get("parent_id"), changes["level"])
            return manager

        if "parent_id" in changes or "level" in changes:
            parent_id = _effective(changes, "parent_id", department.parent_id)
            level = _effective(changes, "level", department.level)
            await self._check_parent(department, parent_id, level)
        if "level" in changes and changes["level"] != department.level:
            await self._check_children(department, changes["level"])
        return manager

    async def _check_parent(self, department: Optional[Department], parent_id: Optional[str], level: int) -> None:
        if parent_id is None:
            return
        if department is not None and parent_id == department.id:
            raise ValidationFailed(
                "A department cannot be its own parent",
                details={"field": "parent_id", "value": parent_id},
            )
        parent = await self._resolve(self.db.departments, parent_id, "parent_id", "Parent department")
        if department is not None:
            await self._ensure_no_department_cycle(department, parent)
        if level <= parent.level:
            raise Conflict(
                f"Child department level ({level}) must be greater than parent level ({parent.level})",
                details={"level": level, "parentLevel": parent.level},
            )

    async def _ensure_no_department_cycle(self, department: Department, parent: Department) -> None:
        seen = set()
        current: Optional[Department] = parent
        while current is not None and current.id not in seen:
            if current.id == department.id:
                raise ValidationFailed(
                    "Parent department would form a cycle",
                    details={"field": "parent_id", "value": parent.id},
                )
            seen.add(current.id)
            current = await self.db.departments.get(current.parent_id) if current.parent_id else None

    async def _check_children(self, department: Department, level: int) -> None:
        children = await self.db.departments.list({"parent_id": department.id})
        blocking = [child.id for child in children if child.level <= level]
        if blocking:
            raise Conflict(
                f"Level {level} is not above {len(blocking)} child department(s)",
                details={"children": blocking},
            )

    async def check_department_delete(self, department: Department) -> None:
        members = await self.db.users.count({"department_id": department.id})
        children = await self.db.departments.count({"parent_id": department.id})
        if members or children:
            raise Conflict(
                f"Cannot delete department: {members} user(s) and {children} child department(s) still reference it",
                details={"users": members, "children": children},
            )
