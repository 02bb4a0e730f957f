"""
FastAPI dependencies for route protection.

Each factory returns a dependency that resolves the caller, runs the
access checks and hands the caller to the route.
"""
from typing import Annotated
from fastapi import Depends

from crm_admin.features.auth.dependencies import get_current_caller
from crm_admin.features.permissions.access import (
    Caller,
    Requirement,
    RequireAdmin,
    RequirePermission,
    check_access,
)


def require(*requirements: Requirement):
    """
    FastAPI dependency requiring every one of ``requirements``, in order.

    Usage:
        @router.post("/roles")
        async def create_role(
            caller: Caller = Depends(require(RequireAdmin(), RequirePermission("role.create")))
        ):
            ...

    Raises:
        Unauthenticated: 401 if there is no valid bearer token
        Forbidden: 403 on the first requirement the caller fails
    """
    async def access_dependency(
        caller: Annotated[Caller, Depends(get_current_caller)],
    ) -> Caller:
        return check_access(caller, *requirements)

    return access_dependency


def require_permission(permission: str):
    """
    FastAPI dependency to require a specific permission.

    Usage:
        @router.get("/users")
        async def list_users(caller: Caller = Depends(require_permission("user.read"))):
            ...
    """
    return require(RequirePermission(permission))


def require_admin_permission(permission: str):
    """Administrator tier plus a specific permission."""
    return require(RequireAdmin(), RequirePermission(permission))
