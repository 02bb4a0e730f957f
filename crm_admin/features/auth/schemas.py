"""
Pydantic schemas for login and the current-user endpoint.
"""
from pydantic import Field

from crm_admin.core.schemas import CamelModel
from crm_admin.features.members.schemas import UserResponse


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1, description="Email address or employee id")
    password: str = Field(..., min_length=1, max_length=72)


class LoginResponse(CamelModel):
    user: UserResponse
    token: str
    token_type: str = "Bearer"
    expires_in: int = Field(..., description="Token lifetime in seconds")


class MeResponse(CamelModel):
    user: UserResponse
    role_code: str | None = None
    tier: str
