"""
Access decisions for authenticated callers.

A caller is the resolved identity behind a bearer token: who they are,
which role tier they hold, which department they belong to and what
they may do. Routes state what they need as a sequence of requirements;
``check_access`` evaluates them in order and stops at the first failure.
"""
import enum
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional, Union

from crm_admin.core import config
from crm_admin.core.errors import Forbidden, Unauthenticated
from crm_admin.features.permissions.models import WILDCARD
from crm_admin.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class PermissionSet:
    """
    Either every permission, or an explicit ordered set of permission ids.

    Stored form is a list of ids; a ``"*"`` entry anywhere in the stored
    list means every permission.
    """
    grants: tuple[str, ...] = ()
    is_all: bool = False

    @classmethod
    def everything(cls) -> "PermissionSet":
        return cls(is_all=True)

    @classmethod
    def of(cls, permissions: Iterable[str]) -> "PermissionSet":
        # dict.fromkeys drops duplicates and keeps first-seen order
        return cls(grants=tuple(dict.fromkeys(permissions)))

    @classmethod
    def from_stored(cls, permissions: Optional[Iterable[str]]) -> "PermissionSet":
        permissions = list(permissions or [])
        if WILDCARD in permissions:
            return cls.everything()
        return cls.of(permissions)

    def to_stored(self) -> list[str]:
        if self.is_all:
            return [WILDCARD]
        return list(self.grants)

    def allows(self, permission: str) -> bool:
        return self.is_all or permission in self.grants


class RoleTier(str, enum.Enum):
    """Authority tiers recognised by access checks, derived from the role code."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    DEPARTMENT_ADMIN = "department_admin"
    MEMBER = "member"

    @classmethod
    def from_role_code(cls, code: Optional[str]) -> "RoleTier":
        if code == config.SUPER_ADMIN_ROLE_CODE:
            return cls.SUPER_ADMIN
        if code == config.ADMIN_ROLE_CODE:
            return cls.ADMIN
        if code == config.DEPARTMENT_ADMIN_ROLE_CODE:
            return cls.DEPARTMENT_ADMIN
        return cls.MEMBER


@dataclass(frozen=True)
class Caller:
    id: str
    name: str
    role_id: str
    role_code: Optional[str]
    tier: RoleTier
    department_id: str
    permissions: PermissionSet = field(default_factory=PermissionSet)

    @property
    def is_admin(self) -> bool:
        return self.tier in (RoleTier.SUPER_ADMIN, RoleTier.ADMIN) or self.permissions.is_all


# Requirements

@dataclass(frozen=True)
class Authenticated:
    pass


@dataclass(frozen=True)
class RequirePermission:
    permission: str


@dataclass(frozen=True)
class RequireRole:
    role_codes: tuple[str, ...]


@dataclass(frozen=True)
class RequireAdmin:
    pass


@dataclass(frozen=True)
class RequireDepartmentScope:
    """Target department of the operation; None means no department is targeted."""
    department_id: Optional[str]


Requirement = Union[
    Authenticated,
    RequirePermission,
    RequireRole,
    RequireAdmin,
    RequireDepartmentScope,
]


def _check(caller: Caller, requirement: Requirement) -> None:
    if isinstance(requirement, Authenticated):
        return

    if isinstance(requirement, RequirePermission):
        if not caller.permissions.allows(requirement.permission):
            raise Forbidden(
                f"Missing permission '{requirement.permission}'",
                details={"permission": requirement.permission},
            )
        return

    if isinstance(requirement, RequireRole):
        if caller.role_code not in requirement.role_codes:
            raise Forbidden(
                "Role not allowed for this operation",
                details={"roles": list(requirement.role_codes)},
            )
        return

    if isinstance(requirement, RequireAdmin):
        if not caller.is_admin:
            raise Forbidden("Administrator privileges required")
        return

    if isinstance(requirement, RequireDepartmentScope):
        if caller.tier == RoleTier.SUPER_ADMIN or caller.permissions.is_all:
            return
        if (
            caller.tier == RoleTier.DEPARTMENT_ADMIN
            and requirement.department_id is not None
            and requirement.department_id != caller.department_id
        ):
            raise Forbidden(
                "Department admins may only manage their own department",
                details={"departmentId": requirement.department_id},
            )
        return

    raise TypeError(f"Unknown access requirement: {requirement!r}")


def check_access(caller: Optional[Caller], *requirements: Requirement) -> Caller:
    """
    Evaluate ``requirements`` in order for ``caller``.

    Every requirement implies authentication, so a missing caller fails
    first with Unauthenticated.

    Returns:
        The caller, when every requirement holds

    Raises:
        Unauthenticated: no caller
        Forbidden: the first requirement that does not hold
    """
    if caller is None:
        raise Unauthenticated("Authentication required")
    for requirement in requirements:
        try:
            _check(caller, requirement)
        except Forbidden as e:
            log.info(f"Access denied for user {caller.id}: {e.message}")
            raise
    return caller


def is_allowed(caller: Optional[Caller], *requirements: Requirement) -> bool:
    try:
        check_access(caller, *requirements)
    except (Unauthenticated, Forbidden):
        return False
    return True
