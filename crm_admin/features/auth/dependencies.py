"""
FastAPI dependencies for authentication.
"""
from typing import Annotated, Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from crm_admin.core.errors import Forbidden, Unauthenticated
from crm_admin.core.store.base import Store
from crm_admin.core.store.dependencies import get_store
from crm_admin.features.auth.tokens import TokenRegistry, decode_token, get_token_registry
from crm_admin.features.members.models import User, UserStatus
from crm_admin.features.permissions.access import Caller, PermissionSet, RoleTier


# auto_error=False so a missing header becomes Unauthenticated (401) in the envelope
security = HTTPBearer(auto_error=False)


async def resolve_caller(store: Store, user: User) -> Caller:
    """Build the access-control identity for ``user`` from its role."""
    async with store.session() as db:
        role = await db.roles.get(user.role_id)
    role_code = role.code if role else None
    return Caller(
        id=user.id,
        name=user.name,
        role_id=user.role_id,
        role_code=role_code,
        tier=RoleTier.from_role_code(role_code),
        department_id=user.department_id,
        permissions=PermissionSet.from_stored(user.permissions),
    )


async def get_bearer_token(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> str:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Access token is missing")
    return credentials.credentials


async def get_current_user(
    token: Annotated[str, Depends(get_bearer_token)],
    store: Annotated[Store, Depends(get_store)],
    registry: Annotated[TokenRegistry, Depends(get_token_registry)],
) -> User:
    """
    Get the user behind the bearer token.

    This dependency:
    1. Verifies the JWT signature and expiry
    2. Checks the token has not been revoked by logout
    3. Loads the user it was issued to

    Raises:
        Unauthenticated: invalid, expired or revoked token, or the user no longer exists
        Forbidden: the user account is disabled
    """
    payload = decode_token(token)
    if not registry.is_active(token):
        raise Unauthenticated("Access token has been revoked")

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Invalid token payload")

    async with store.session() as db:
        user = await db.users.get(user_id)
    if user is None:
        raise Unauthenticated("User no longer exists")
    if user.status == UserStatus.DISABLED.value:
        raise Forbidden("User account is disabled")
    return user


async def get_current_caller(
    user: Annotated[User, Depends(get_current_user)],
    store: Annotated[Store, Depends(get_store)],
) -> Caller:
    """
    Resolved identity of the authenticated caller.

    Usage:
        @router.get("/users")
        async def list_users(caller: Caller = Depends(get_current_caller)):
            ...
    """
    return await resolve_caller(store, user)
