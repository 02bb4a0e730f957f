"""
Pydantic schemas for permissions and access checks.
"""
from typing import Optional
from pydantic import Field, model_validator

from crm_admin.core.schemas import CamelModel
from crm_admin.features.permissions.models import PermissionType


class PermissionResponse(CamelModel):
    id: str
    name: str
    type: PermissionType
    parent_id: Optional[str] = None
    level: int


class PermissionNode(PermissionResponse):
    children: list["PermissionNode"] = []


class PermissionCheckRequest(CamelModel):
    """
    Requirements to evaluate for the calling user, in this order:
    admin, roles, permission, department scope. At least one is required.
    """
    permission: Optional[str] = Field(None, description="Permission id, e.g. 'user.create'")
    roles: Optional[list[str]] = Field(None, description="Allowed role codes")
    admin: bool = False
    department_id: Optional[str] = Field(None, description="Target department for the scope check")

    @model_validator(mode="after")
    def at_least_one_requirement(self) -> "PermissionCheckRequest":
        if not (self.permission or self.roles or self.admin or self.department_id):
            raise ValueError("At least one of permission, roles, admin or departmentId is required")
        return self


class PermissionCheckResponse(CamelModel):
    allowed: bool
    reason: Optional[str] = None
