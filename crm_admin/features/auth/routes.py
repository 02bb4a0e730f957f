"""
Authentication routes: login, logout and the current user.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from crm_admin.core import config
from crm_admin.core.errors import Forbidden, Unauthenticated
from crm_admin.core.ratelimit import limiter
from crm_admin.core.schemas import Envelope, ok
from crm_admin.features.auth.dependencies import (
    get_bearer_token,
    get_current_caller,
    get_current_user,
    resolve_caller,
)
from crm_admin.features.auth.passwords import verify_password
from crm_admin.features.auth.schemas import LoginRequest, LoginResponse, MeResponse
from crm_admin.features.auth.tokens import TokenRegistry, get_token_registry, issue_token
from crm_admin.features.members.dependencies import get_member_service
from crm_admin.features.members.models import User, UserStatus
from crm_admin.features.members.schemas import UserResponse
from crm_admin.features.members.service import MemberService
from crm_admin.features.permissions.access import Caller
from crm_admin.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["auth"])


@router.post("/login", response_model=Envelope[LoginResponse])
@limiter.limit(config.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    credentials: LoginRequest,
    service: Annotated[MemberService, Depends(get_member_service)],
    registry: Annotated[TokenRegistry, Depends(get_token_registry)],
):
    """Exchange an email or employee id and password for a bearer token."""
    user = await service.find_login(credentials.username)
    valid = user is not None and await run_in_threadpool(verify_password, credentials.password, user.password_hash)
    if not valid:
        log.info(f"Failed login for {credentials.username!r}")
        raise Unauthenticated("Invalid username or password")

    if user.status != UserStatus.ACTIVE.value:
        raise Forbidden("Account is not active", details={"status": user.status})

    caller = await resolve_caller(service.store, user)
    token = issue_token(user.id, user.email, caller.role_code)
    registry.add(token)
    user = await service.record_login(user.id)

    log.info(f"User {user.id} logged in")
    return ok(
        {
            "user": UserResponse.model_validate(user),
            "token": token,
            "expires_in": config.JWT_EXPIRES_MINUTES * 60,
        },
        message="Login successful",
    )


@router.post("/logout", response_model=Envelope[None])
async def logout(
    token: Annotated[str, Depends(get_bearer_token)],
    registry: Annotated[TokenRegistry, Depends(get_token_registry)],
):
    """Revoke the presented token. Unknown tokens are ignored."""
    if registry.revoke(token):
        log.info("Token revoked")
    return ok(message="Logout successful")


@router.get("/me", response_model=Envelope[MeResponse])
async def me(
    user: Annotated[User, Depends(get_current_user)],
    caller: Annotated[Caller, Depends(get_current_caller)],
):
    """Get the current authenticated user's profile."""
    return ok({
        "user": UserResponse.model_validate(user),
        "role_code": caller.role_code,
        "tier": caller.tier.value,
    })
