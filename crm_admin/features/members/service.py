"""
Member management service.

Each mutation runs in one store transaction: integrity checks, the write
itself and every propagated write either all land or none do. Reads use a
plain session.

Payloads are dicts keyed by model field name (snake_case). Partial updates
carry only the fields being changed.
"""
import enum
from collections.abc import Mapping
from typing import Any, Optional

from starlette.concurrency import run_in_threadpool

from crm_admin.core import config, timeutils
from crm_admin.core.errors import Forbidden, NotFound, ValidationFailed
from crm_admin.core.store.base import Repository, Store, StoreSession
from crm_admin.features.auth.passwords import hash_password
from crm_admin.features.members.integrity import IntegrityChecker
from crm_admin.features.members.models import (
    Department,
    EntityStatus,
    Role,
    User,
    UserStatus,
    generate_ulid,
)
from crm_admin.features.members.propagation import PropagationEngine
from crm_admin.features.permissions.access import Caller, PermissionSet, RoleTier
from crm_admin.features.permissions.models import Permission
from crm_admin.features.permissions.tree import build_permission_tree, build_tree
from crm_admin.utils import get_logger


log = get_logger(__name__)


USER_FIELDS = (
    "employee_id", "name", "email", "phone", "avatar", "position",
    "department_id", "role_id", "status", "report_to_id",
)
ROLE_FIELDS = ("name", "code", "description", "permissions", "level", "status")
DEPARTMENT_FIELDS = ("name", "code", "description", "parent_id", "manager", "manager_id", "level", "status")

USER_REQUIRED = ("employee_id", "name", "email", "department_id", "role_id", "status")
ROLE_REQUIRED = ("name", "code", "level", "status", "permissions")
DEPARTMENT_REQUIRED = ("name", "code", "level", "status")

# Query-string filters for the user list, mapped onto model fields
USER_FILTERS = {
    "department_id": "department_id",
    "role_id": "role_id",
    "status": "status",
    "department": "department",
    "role": "role",
}


def _clean(
    data: Mapping[str, Any],
    fields: tuple[str, ...],
    required: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Keep known fields; empty strings mean "unset" for optional references."""
    cleaned = {}
    for key in fields:
        if key not in data:
            continue
        value = data[key]
        if value == "" and key.endswith("_id"):
            value = None
        if value is None and key in required:
            raise ValidationFailed(f"Field '{key}' cannot be empty", details={"field": key})
        if isinstance(value, enum.Enum):
            value = value.value
        cleaned[key] = value
    return cleaned


def _status(status_enum: type[enum.Enum], value: Any) -> str:
    try:
        return status_enum(value).value
    except ValueError as e:
        raise ValidationFailed(f"Invalid status '{value}'", details={"field": "status", "value": value}) from e


def _ensure_present(payload: Mapping[str, Any], fields: tuple[str, ...]) -> None:
    missing = [key for key in fields if payload.get(key) is None]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})


async def _require(repo: Repository, entity_id: str, entity: str):
    found = await repo.get(entity_id)
    if found is None:
        raise NotFound(f"{entity} '{entity_id}' not found", details={"id": entity_id})
    return found


async def _ensure_within_authority(db: StoreSession, caller: Optional[Caller], role: Role) -> None:
    """
    Non-admin callers may only act on roles at or below their own.

    A role is above the caller when it belongs to an admin tier, grants
    every permission, or has a lower level than the caller's role.
    """
    if caller is None or caller.is_admin:
        return
    own = await db.roles.get(caller.role_id)
    if (
        own is None
        or RoleTier.from_role_code(role.code) in (RoleTier.SUPER_ADMIN, RoleTier.ADMIN)
        or PermissionSet.from_stored(role.permissions).is_all
        or role.level < own.level
    ):
        raise Forbidden(
            f"Role '{role.name}' is above your own role",
            details={"roleId": role.id},
        )


async def _hash(password: Optional[str]) -> Optional[str]:
    # bcrypt is CPU bound; keep it off the event loop and out of the write lock
    return await run_in_threadpool(hash_password, password) if password else None


class MemberService:
    def __init__(self, store: Store):
        self.store = store

    # ==================================================================
    # Users
    # ==================================================================

    async def list_users(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        search: Optional[str] = None,
    ) -> list[User]:
        """List users matching every given filter, plus an optional name/email/employee id search."""
        conditions = {
            USER_FILTERS[key]: value
            for key, value in (filters or {}).items()
            if key in USER_FILTERS and value not in (None, "")
        }
        async with self.store.session() as db:
            return await db.users.list(conditions, search=search)

    async def get_user(self, user_id: str) -> User:
        async with self.store.session() as db:
            return await _require(db.users, user_id, "User")

    async def get_user_permissions(self, user_id: str) -> list[str]:
        user = await self.get_user(user_id)
        return list(user.permissions or [])

    async def create_user(self, data: Mapping[str, Any], caller: Optional[Caller] = None) -> User:
        """Create a user; a non-admin ``caller`` may not hand out a role above their own."""
        payload = _clean(data, USER_FIELDS, USER_REQUIRED)
        _ensure_present(payload, ("employee_id", "name", "email"))
        password_hash = await _hash(data.get("password"))
        async with self.store.transaction() as db:
            refs = await IntegrityChecker(db).check_user(payload)
            await _ensure_within_authority(db, caller, refs.role)
            now = timeutils.utcnow()
            user = User(
                id=generate_ulid(),
                employee_id=payload["employee_id"],
                name=payload["name"],
                email=payload["email"],
                phone=payload.get("phone"),
                avatar=payload.get("avatar") or "",
                position=payload.get("position"),
                department_id=refs.department.id,
                department=refs.department.name,
                role_id=refs.role.id,
                role=refs.role.name,
                permissions=PermissionSet.from_stored(refs.role.permissions).to_stored(),
                status=_status(UserStatus, payload.get("status") or UserStatus.PENDING),
                report_to_id=refs.report_to.id if refs.report_to else None,
                report_to=refs.report_to.name if refs.report_to else None,
                password_hash=password_hash,
                join_date=data.get("join_date") or now,
                last_login=None,
                created_at=now,
                updated_at=now,
            )
            await db.users.add(user)

            engine = PropagationEngine(db)
            await engine.refresh_member_count(user.department_id)
            await engine.refresh_user_count(user.role_id)

        log.info(f"Created user {user.id} ({user.email})")
        return user

    async def update_user(self, user_id: str, data: Mapping[str, Any], caller: Optional[Caller] = None) -> User:
        changes = _clean(data, USER_FIELDS, USER_REQUIRED)
        password_hash = await _hash(data.get("password"))
        async with self.store.transaction() as db:
            user = await _require(db.users, user_id, "User")
            current_role = await db.roles.get(user.role_id)
            if current_role is not None:
                await _ensure_within_authority(db, caller, current_role)
            refs = await IntegrityChecker(db).check_user(changes, user)
            if "role_id" in changes:
                await _ensure_within_authority(db, caller, refs.role)

            previous_department_id = user.department_id
            previous_role_id = user.role_id
            previous_name = user.name

            if "status" in changes:
                changes["status"] = _status(UserStatus, changes["status"])
            if "department_id" in changes:
                changes["department"] = refs.department.name
            if "role_id" in changes:
                changes["role"] = refs.role.name
                changes["permissions"] = PermissionSet.from_stored(refs.role.permissions).to_stored()
            if "report_to_id" in changes:
                changes["report_to"] = refs.report_to.name if refs.report_to else None
            if password_hash:
                changes["password_hash"] = password_hash

            await db.users.update(user, changes)

            engine = PropagationEngine(db)
            if user.department_id != previous_department_id:
                await engine.refresh_member_count(previous_department_id)
                await engine.refresh_member_count(user.department_id)
            if user.role_id != previous_role_id:
                await engine.refresh_user_count(previous_role_id)
                await engine.refresh_user_count(user.role_id)
            if user.name != previous_name:
                await engine.user_renamed(user)

        log.info(f"Updated user {user.id}: {sorted(changes)}")
        return user

    async def delete_user(self, user_id: str, caller: Optional[Caller] = None) -> None:
        async with self.store.transaction() as db:
            user = await _require(db.users, user_id, "User")
            role = await db.roles.get(user.role_id)
            if role is not None:
                await _ensure_within_authority(db, caller, role)

            engine = PropagationEngine(db)
            await engine.user_removed(user)
            await db.users.delete(user)
            await engine.refresh_member_count(user.department_id)
            await engine.refresh_user_count(user.role_id)

        log.info(f"Deleted user {user_id}")

    async def find_login(self, username: str) -> Optional[User]:
        """Look a user up by email or employee id."""
        async with self.store.session() as db:
            for field in ("email", "employee_id"):
                matches = await db.users.list({field: username})
                if matches:
                    return matches[0]
        return None

    async def record_login(self, user_id: str) -> User:
        async with self.store.transaction() as db:
            user = await _require(db.users, user_id, "User")
            await db.users.update(user, {"last_login": timeutils.utcnow()})
        return user

    # ==================================================================
    # Roles
    # ==================================================================

    async def list_roles(self, search: Optional[str] = None) -> list[Role]:
        async with self.store.session() as db:
            return await db.roles.list(search=search)

    async def get_role(self, role_id: str) -> Role:
        async with self.store.session() as db:
            return await _require(db.roles, role_id, "Role")

    async def create_role(self, data: Mapping[str, Any]) -> Role:
        payload = _clean(data, ROLE_FIELDS, ROLE_REQUIRED)
        _ensure_present(payload, ("name", "code", "level"))
        async with self.store.transaction() as db:
            await IntegrityChecker(db).check_role(payload)
            now = timeutils.utcnow()
            role = Role(
                id=generate_ulid(),
                name=payload["name"],
                code=payload["code"],
                description=payload.get("description"),
                permissions=list(payload.get("permissions") or []),
                level=payload["level"],
                status=_status(EntityStatus, payload.get("status") or EntityStatus.ACTIVE),
                user_count=0,
                created_at=now,
                updated_at=now,
            )
            await db.roles.add(role)

        log.info(f"Created role {role.id} ({role.code})")
        return role

    async def update_role(self, role_id: str, data: Mapping[str, Any]) -> Role:
        changes = _clean(data, ROLE_FIELDS, ROLE_REQUIRED)
        async with self.store.transaction() as db:
            role = await _require(db.roles, role_id, "Role")
            await IntegrityChecker(db).check_role(changes, role)

            if "status" in changes:
                changes["status"] = _status(EntityStatus, changes["status"])
            if "permissions" in changes:
                changes["permissions"] = list(changes["permissions"] or [])
            permissions_changed = "permissions" in changes and changes["permissions"] != list(role.permissions or [])
            renamed = "name" in changes and changes["name"] != role.name

            await db.roles.update(role, changes)

            engine = PropagationEngine(db)
            if permissions_changed:
                await engine.role_permissions_changed(role)
            if renamed:
                await engine.role_renamed(role)

        log.info(f"Updated role {role.id}: {sorted(changes)}")
        return role

    async def delete_role(self, role_id: str) -> None:
        async with self.store.transaction() as db:
            role = await _require(db.roles, role_id, "Role")
            await IntegrityChecker(db).check_role_delete(role)
            await db.roles.delete(role)

        log.info(f"Deleted role {role_id}")

    # ==================================================================
    # Departments
    # ==================================================================

    async def list_departments(self, search: Optional[str] = None) -> list[Department]:
        async with self.store.session() as db:
            return await db.departments.list(search=search)

    async def get_department(self, department_id: str) -> Department:
        async with self.store.session() as db:
            return await _require(db.departments, department_id, "Department")

    async def create_department(self, data: Mapping[str, Any]) -> Department:
        payload = _clean(data, DEPARTMENT_FIELDS, DEPARTMENT_REQUIRED)
        _ensure_present(payload, ("name", "code", "level"))
        async with self.store.transaction() as db:
            manager = await IntegrityChecker(db).check_department(payload)
            now = timeutils.utcnow()
            department = Department(
                id=generate_ulid(),
                name=payload["name"],
                code=payload["code"],
                description=payload.get("description"),
                parent_id=payload.get("parent_id"),
                manager=payload.get("manager") or (manager.name if manager else None),
                manager_id=payload.get("manager_id"),
                level=payload["level"],
                status=_status(EntityStatus, payload.get("status") or EntityStatus.ACTIVE),
                member_count=0,
                created_at=now,
                updated_at=now,
            )
            await db.departments.add(department)

        log.info(f"Created department {department.id} ({department.code})")
        return department

    async def update_department(self, department_id: str, data: Mapping[str, Any]) -> Department:
        changes = _clean(data, DEPARTMENT_FIELDS, DEPARTMENT_REQUIRED)
        async with self.store.transaction() as db:
            department = await _require(db.departments, department_id, "Department")
            manager = await IntegrityChecker(db).check_department(changes, department)

            if "status" in changes:
                changes["status"] = _status(EntityStatus, changes["status"])
            if manager is not None and not changes.get("manager"):
                changes["manager"] = manager.name
            renamed = "name" in changes and changes["name"] != department.name

            await db.departments.update(department, changes)

            if renamed:
                await PropagationEngine(db).department_renamed(department)

        log.info(f"Updated department {department.id}: {sorted(changes)}")
        return department

    async def delete_department(self, department_id: str) -> None:
        async with self.store.transaction() as db:
            department = await _require(db.departments, department_id, "Department")
            await IntegrityChecker(db).check_department_delete(department)
            await db.departments.delete(department)

        log.info(f"Deleted department {department_id}")

    # ==================================================================
    # Permissions and organization
    # ==================================================================

    async def list_permissions(self, type: Optional[str] = None, search: Optional[str] = None) -> list[Permission]:
        async with self.store.session() as db:
            return await db.permissions.list({"type": type}, search=search)

    async def get_permission_tree(self) -> list[dict]:
        async with self.store.session() as db:
            permissions = await db.permissions.list()
        return build_permission_tree(permissions)

    async def get_organization_tree(self) -> list[dict]:
        """Departments nested under a single company node."""
        async with self.store.session() as db:
            departments = await db.departments.list()

        def render(department: Department, children: list[dict]) -> dict:
            return {
                "id": department.id,
                "name": department.name,
                "type": "department",
                "code": department.code,
                "level": department.level,
                "manager": department.manager,
                "memberCount": department.member_count,
                "children": children,
            }

        return [{
            "id": "company",
            "name": config.COMPANY_NAME,
            "type": "company",
            "children": build_tree(
                departments,
                id_of=lambda d: d.id,
                parent_of=lambda d: d.parent_id,
                render=render,
            ),
        }]

    async def get_report_relations(self) -> list[dict]:
        async with self.store.session() as db:
            users = await db.users.list()
        return [
            {
                "from": user.id,
                "to": user.report_to_id,
                "from_name": user.name,
                "to_name": user.report_to,
            }
            for user in users
            if user.report_to_id
        ]

    async def get_statistics(self) -> dict:
        async with self.store.session() as db:
            users = await db.users.list()
            roles = await db.roles.list()
            departments = await db.departments.list()

        by_status = {status.value: 0 for status in UserStatus}
        for user in users:
            by_status[user.status] = by_status.get(user.status, 0) + 1

        recent = sorted(users, key=lambda u: u.created_at, reverse=True)[:5]
        return {
            "users": {"total": len(users), **by_status},
            "roles": {"total": len(roles)},
            "departments": {"total": len(departments)},
            "department_stats": [
                {
                    "department_id": department.id,
                    "department_name": department.name,
                    "user_count": sum(1 for user in users if user.department_id == department.id),
                }
                for department in departments
            ],
            "role_stats": [
                {
                    "role_id": role.id,
                    "role_name": role.name,
                    "user_count": sum(1 for user in users if user.role_id == role.id),
                }
                for role in roles
            ],
            "recent_users": [
                {
                    "id": user.id,
                    "name": user.name,
                    "department": user.department,
                    "join_date": user.join_date.date(),
                }
                for user in recent
            ],
        }
