"""
Pydantic schemas for member management requests and responses.

Fields are snake_case in Python and camelCase on the wire; requests accept
either spelling.
"""
from datetime import date, datetime
from typing import Optional
from pydantic import EmailStr, Field

from crm_admin.core.schemas import CamelModel
from crm_admin.features.members.models import EntityStatus, UserStatus


CODE_PATTERN = r"^[A-Z_]+$"
PHONE_PATTERN = r"^\+?[0-9][0-9 \-]{5,19}$"


# ============================================================================
# User Schemas
# ============================================================================

class UserCreate(CamelModel):
    """Schema for creating a user. Permissions always come from the role."""
    employee_id: str = Field(..., min_length=1, max_length=32)
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    avatar: Optional[str] = Field(None, max_length=500)
    position: Optional[str] = Field(None, max_length=100)
    department_id: str
    role_id: str
    status: UserStatus = UserStatus.PENDING
    report_to_id: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6, max_length=72)


class UserUpdate(CamelModel):
    """Schema for a partial user update; only the fields sent are changed."""
    employee_id: Optional[str] = Field(None, min_length=1, max_length=32)
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    avatar: Optional[str] = Field(None, max_length=500)
    position: Optional[str] = Field(None, max_length=100)
    department_id: Optional[str] = None
    role_id: Optional[str] = None
    status: Optional[UserStatus] = None
    report_to_id: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6, max_length=72)


class UserResponse(CamelModel):
    """Schema for user responses. The password hash is never exposed."""
    id: str
    employee_id: str
    name: str
    email: str
    phone: Optional[str] = None
    avatar: Optional[str] = None
    position: Optional[str] = None
    department_id: str
    department: str
    role_id: str
    role: str
    permissions: list[str] = []
    status: UserStatus
    report_to_id: Optional[str] = None
    report_to: Optional[str] = None
    join_date: datetime
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Role Schemas
# ============================================================================

class RoleCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    code: str = Field(..., pattern=CODE_PATTERN, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    permissions: list[str] = []
    level: int = Field(..., ge=1, le=10, description="Lower level means more authority")
    status: EntityStatus = EntityStatus.ACTIVE


class RoleUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    code: Optional[str] = Field(None, pattern=CODE_PATTERN, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    permissions: Optional[list[str]] = None
    level: Optional[int] = Field(None, ge=1, le=10)
    status: Optional[EntityStatus] = None


class RoleResponse(CamelModel):
    id: str
    name: str
    code: str
    description: Optional[str] = None
    permissions: list[str] = []
    level: int
    status: EntityStatus
    user_count: int
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Department Schemas
# ============================================================================

class DepartmentCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    code: str = Field(..., pattern=CODE_PATTERN, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    parent_id: Optional[str] = None
    manager: Optional[str] = Field(None, max_length=100)
    manager_id: Optional[str] = None
    level: int = Field(..., ge=1, le=10, description="Must be greater than the parent's level")
    status: EntityStatus = EntityStatus.ACTIVE


class DepartmentUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    code: Optional[str] = Field(None, pattern=CODE_PATTERN, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    parent_id: Optional[str] = None
    manager: Optional[str] = Field(None, max_length=100)
    manager_id: Optional[str] = None
    level: Optional[int] = Field(None, ge=1, le=10)
    status: Optional[EntityStatus] = None


class DepartmentResponse(CamelModel):
    id: str
    name: str
    code: str
    description: Optional[str] = None
    parent_id: Optional[str] = None
    manager: Optional[str] = None
    manager_id: Optional[str] = None
    member_count: int
    level: int
    status: EntityStatus
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Organization Schemas
# ============================================================================

class OrganizationNode(CamelModel):
    id: str
    name: str
    type: str
    code: Optional[str] = None
    level: Optional[int] = None
    manager: Optional[str] = None
    member_count: Optional[int] = None
    children: list["OrganizationNode"] = []


class ReportRelation(CamelModel):
    """One reporting line: ``from`` reports to ``to``."""
    from_: str = Field(..., alias="from")
    to: str = Field(..., alias="to")
    from_name: str
    to_name: Optional[str] = None


# ============================================================================
# Statistics Schemas
# ============================================================================

class UserCounts(CamelModel):
    total: int
    active: int
    pending: int
    disabled: int


class Total(CamelModel):
    total: int


class DepartmentStat(CamelModel):
    department_id: str
    department_name: str
    user_count: int


class RoleStat(CamelModel):
    role_id: str
    role_name: str
    user_count: int


class RecentUser(CamelModel):
    id: str
    name: str
    department: str
    join_date: date


class StatisticsResponse(CamelModel):
    users: UserCounts
    roles: Total
    departments: Total
    department_stats: list[DepartmentStat]
    role_stats: list[RoleStat]
    recent_users: list[RecentUser]
