"""
Member management API routes.

Provides endpoints for users, roles, departments, the permission catalogue,
the organization tree, reporting lines and member statistics.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query, status

from crm_admin.core.errors import Forbidden
from crm_admin.core.schemas import Envelope, Page, ok, paginate
from crm_admin.features.auth.dependencies import get_current_caller
from crm_admin.features.members.dependencies import get_member_service
from crm_admin.features.members.models import UserStatus
from crm_admin.features.members.schemas import (
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
    OrganizationNode,
    ReportRelation,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    StatisticsResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from crm_admin.features.members.service import MemberService
from crm_admin.features.permissions.access import (
    Caller,
    RequireAdmin,
    RequireDepartmentScope,
    RequirePermission,
    RequireRole,
    RoleTier,
    check_access,
)
from crm_admin.features.permissions.dependencies import require_admin_permission, require_permission
from crm_admin.features.permissions.schemas import (
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionNode,
    PermissionResponse,
)
from crm_admin.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


Service = Annotated[MemberService, Depends(get_member_service)]


# ============================================================================
# User Routes
# ============================================================================

@router.get("/users", response_model=Envelope[Page[UserResponse]])
async def list_users(
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("user.read"))],
    department_id: Annotated[Optional[str], Query(alias="departmentId")] = None,
    role_id: Annotated[Optional[str], Query(alias="roleId")] = None,
    user_status: Annotated[Optional[UserStatus], Query(alias="status")] = None,
    department: Optional[str] = None,
    role: Optional[str] = None,
    search: Optional[str] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
):
    """List users with optional filtering, search and pagination. Department admins see their own department."""
    if department_id is None and caller.tier == RoleTier.DEPARTMENT_ADMIN:
        department_id = caller.department_id
    check_access(caller, RequireDepartmentScope(department_id))
    users = await service.list_users(
        {
            "department_id": department_id,
            "role_id": role_id,
            "status": user_status.value if user_status else None,
            "department": department,
            "role": role,
        },
        search=search,
    )
    result = paginate(users, page, limit)
    result["items"] = [UserResponse.model_validate(user) for user in result["items"]]
    return ok(result)


@router.get("/users/{user_id}", response_model=Envelope[UserResponse])
async def get_user(
    user_id: str,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("user.read"))],
):
    """Get a specific user by ID."""
    user = await service.get_user(user_id)
    check_access(caller, RequireDepartmentScope(user.department_id))
    return ok(UserResponse.model_validate(user))


@router.get("/users/{user_id}/permissions", response_model=Envelope[list[str]])
async def get_user_permissions(
    user_id: str,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("user.read"))],
):
    """Resolved permissions of a user; ``["*"]`` means every permission."""
    user = await service.get_user(user_id)
    check_access(caller, RequireDepartmentScope(user.department_id))
    return ok(await service.get_user_permissions(user_id))


@router.post("/users", response_model=Envelope[UserResponse], status_code=status.HTTP_201_CREATED)
async def create_user(
    user: UserCreate,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("user.create"))],
):
    """Create a new user. Department admins may only create users in their own department."""
    check_access(caller, RequireDepartmentScope(user.department_id))
    created = await service.create_user(user.model_dump(), caller=caller)
    return ok(UserResponse.model_validate(created), message="User created", code=201)


async def _update_user(user_id: str, user: UserUpdate, service: MemberService, caller: Caller):
    changes = user.model_dump(exclude_unset=True)
    existing = await service.get_user(user_id)
    check_access(caller, RequireDepartmentScope(existing.department_id))
    if changes.get("department_id"):
        check_access(caller, RequireDepartmentScope(changes["department_id"]))
    updated = await service.update_user(user_id, changes, caller=caller)
    return ok(UserResponse.model_validate(updated), message="User updated")


@router.put("/users/{user_id}", response_model=Envelope[UserResponse])
async def update_user(
    user_id: str,
    user: UserUpdate,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("user.update"))],
):
    """Update a user. Only the fields sent are changed."""
    return await _update_user(user_id, user, service, caller)


@router.patch("/users/{user_id}", response_model=Envelope[UserResponse])
async def patch_user(
    user_id: str,
    user: UserUpdate,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("user.update"))],
):
    """Partially update a user."""
    return await _update_user(user_id, user, service, caller)


@router.delete("/users/{user_id}", response_model=Envelope[None])
async def delete_user(
    user_id: str,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("user.delete"))],
):
    """Delete a user. Direct reports and managed departments are unlinked."""
    existing = await service.get_user(user_id)
    check_access(caller, RequireDepartmentScope(existing.department_id))
    if existing.id == caller.id:
        log.info(f"User {caller.id} tried to delete their own account")
        raise Forbidden("You cannot delete your own account")
    await service.delete_user(user_id, caller=caller)
    return ok(message="User deleted")


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=Envelope[list[RoleResponse]])
async def list_roles(
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("role.read"))],
    search: Optional[str] = None,
):
    """List all roles."""
    return ok([RoleResponse.model_validate(role) for role in await service.list_roles(search)])


@router.get("/roles/{role_id}", response_model=Envelope[RoleResponse])
async def get_role(
    role_id: str,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("role.read"))],
):
    return ok(RoleResponse.model_validate(await service.get_role(role_id)))


@router.post("/roles", response_model=Envelope[RoleResponse], status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    service: Service,
    caller: Annotated[Caller, Depends(require_admin_permission("role.create"))],
):
    """Create a new role (admin only)."""
    created = await service.create_role(role.model_dump())
    return ok(RoleResponse.model_validate(created), message="Role created", code=201)


async def _update_role(role_id: str, role: RoleUpdate, service: MemberService):
    updated = await service.update_role(role_id, role.model_dump(exclude_unset=True))
    return ok(RoleResponse.model_validate(updated), message="Role updated")


@router.put("/roles/{role_id}", response_model=Envelope[RoleResponse])
async def update_role(
    role_id: str,
    role: RoleUpdate,
    service: Service,
    caller: Annotated[Caller, Depends(require_admin_permission("role.update"))],
):
    """Update a role (admin only). Permission changes reach every holder."""
    return await _update_role(role_id, role, service)


@router.patch("/roles/{role_id}", response_model=Envelope[RoleResponse])
async def patch_role(
    role_id: str,
    role: RoleUpdate,
    service: Service,
    caller: Annotated[Caller, Depends(require_admin_permission("role.update"))],
):
    return await _update_role(role_id, role, service)


@router.delete("/roles/{role_id}", response_model=Envelope[None])
async def delete_role(
    role_id: str,
    service: Service,
    caller: Annotated[Caller, Depends(require_admin_permission("role.delete"))],
):
    """Delete a role (admin only). Fails while any user holds it."""
    await service.delete_role(role_id)
    return ok(message="Role deleted")


# ============================================================================
# Department Routes
# ============================================================================

@router.get("/departments", response_model=Envelope[list[DepartmentResponse]])
async def list_departments(
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("dept.read"))],
    search: Optional[str] = None,
):
    """List all departments."""
    departments = await service.list_departments(search)
    return ok([DepartmentResponse.model_validate(department) for department in departments])


@router.get("/departments/{department_id}", response_model=Envelope[DepartmentResponse])
async def get_department(
    department_id: str,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("dept.read"))],
):
    return ok(DepartmentResponse.model_validate(await service.get_department(department_id)))


@router.post("/departments", response_model=Envelope[DepartmentResponse], status_code=status.HTTP_201_CREATED)
async def create_department(
    department: DepartmentCreate,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("dept.create"))],
):
    created = await service.create_department(department.model_dump())
    return ok(DepartmentResponse.model_validate(created), message="Department created", code=201)


async def _update_department(department_id: str, department: DepartmentUpdate, service: MemberService):
    updated = await service.update_department(department_id, department.model_dump(exclude_unset=True))
    return ok(DepartmentResponse.model_validate(updated), message="Department updated")


@router.put("/departments/{department_id}", response_model=Envelope[DepartmentResponse])
async def update_department(
    department_id: str,
    department: DepartmentUpdate,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("dept.update"))],
):
    """Update a department. A new name reaches every member."""
    return await _update_department(department_id, department, service)


@router.patch("/departments/{department_id}", response_model=Envelope[DepartmentResponse])
async def patch_department(
    department_id: str,
    department: DepartmentUpdate,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("dept.update"))],
):
    return await _update_department(department_id, department, service)


@router.delete("/departments/{department_id}", response_model=Envelope[None])
async def delete_department(
    department_id: str,
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("dept.delete"))],
):
    """Delete a department. Fails while it has members or child departments."""
    await service.delete_department(department_id)
    return ok(message="Department deleted")


# ============================================================================
# Permission Routes
# ============================================================================

@router.get("/permissions", response_model=Envelope[list[PermissionResponse]])
async def list_permissions(
    service: Service,
    caller: Annotated[Caller, Depends(get_current_caller)],
    type: Optional[str] = None,
    search: Optional[str] = None,
):
    """List the permission catalogue in seed order."""
    permissions = await service.list_permissions(type=type, search=search)
    return ok([PermissionResponse.model_validate(permission) for permission in permissions])


@router.get("/permissions/tree", response_model=Envelope[list[PermissionNode]])
async def get_permission_tree(
    service: Service,
    caller: Annotated[Caller, Depends(get_current_caller)],
):
    return ok(await service.get_permission_tree())


@router.post("/permissions/check", response_model=Envelope[PermissionCheckResponse])
async def check_permission(
    check: PermissionCheckRequest,
    caller: Annotated[Caller, Depends(get_current_caller)],
):
    """Evaluate access requirements for the calling user without raising."""
    requirements = []
    if check.admin:
        requirements.append(RequireAdmin())
    if check.roles:
        requirements.append(RequireRole(tuple(check.roles)))
    if check.permission:
        requirements.append(RequirePermission(check.permission))
    if check.department_id:
        requirements.append(RequireDepartmentScope(check.department_id))

    try:
        check_access(caller, *requirements)
    except Forbidden as e:
        return ok(PermissionCheckResponse(allowed=False, reason=e.message))
    return ok(PermissionCheckResponse(allowed=True))


# ============================================================================
# Organization Routes
# ============================================================================

@router.get("/organization/tree", response_model=Envelope[list[OrganizationNode]])
async def get_organization_tree(
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("dept.read"))],
):
    """Departments nested under the company node."""
    return ok(await service.get_organization_tree())


@router.get("/organization/reports", response_model=Envelope[list[ReportRelation]])
async def get_report_relations(
    service: Service,
    caller: Annotated[Caller, Depends(require_permission("user.read"))],
):
    return ok(await service.get_report_relations())


# ============================================================================
# Statistics
# ============================================================================

@router.get("/statistics", response_model=Envelope[StatisticsResponse])
async def get_statistics(
    service: Service,
    caller: Annotated[Caller, Depends(get_current_caller)],
):
    """User, role and department totals with per-department and per-role breakdowns."""
    return ok(await service.get_statistics())
