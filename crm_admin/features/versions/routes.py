"""
Release management API routes: versions, rollbacks and deployments.

Anyone signed in may read. Writes are limited by role code: managers
create, edit, roll back and deploy; only admins delete.
"""
from typing import Annotated, Literal, Optional
from fastapi import APIRouter, Depends, Query, status

from crm_admin.core import config
from crm_admin.core.schemas import Envelope, Page, ok, paginate
from crm_admin.features.auth.dependencies import get_current_caller
from crm_admin.features.permissions.access import Caller, RequireRole
from crm_admin.features.permissions.dependencies import require
from crm_admin.features.versions.dependencies import get_version_service
from crm_admin.features.versions.models import DeploymentStatus, Environment, Priority, VersionStatus
from crm_admin.features.versions.schemas import (
    DeploymentCreate,
    DeploymentResponse,
    RollbackRequest,
    VersionCreate,
    VersionResponse,
    VersionUpdate,
)
from crm_admin.features.versions.service import VersionService


router = APIRouter()


Service = Annotated[VersionService, Depends(get_version_service)]
SortOrder = Literal["asc", "desc"]

require_manager = require(RequireRole(config.VERSION_MANAGER_ROLE_CODES))
require_release_admin = require(RequireRole(config.VERSION_ADMIN_ROLE_CODES))


# ============================================================================
# Deployment Routes
# ============================================================================

@router.get("/deployments", response_model=Envelope[Page[DeploymentResponse]])
async def list_deployments(
    service: Service,
    caller: Annotated[Caller, Depends(get_current_caller)],
    environment: Optional[Environment] = None,
    deployment_status: Annotated[Optional[DeploymentStatus], Query(alias="status")] = None,
    version: Optional[str] = None,
    sort_by: Annotated[str, Query(alias="sortBy")] = "deployTime",
    sort_order: Annotated[SortOrder, Query(alias="sortOrder")] = "desc",
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
):
    """List deployments, most recent first."""
    deployments = await service.list_deployments(
        {"environment": environment, "status": deployment_status, "version": version},
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = paginate(deployments, page, limit)
    result["items"] = [DeploymentResponse.model_validate(deployment) for deployment in result["items"]]
    return ok(result)


@router.post("/deployments", response_model=Envelope[DeploymentResponse], status_code=status.HTTP_201_CREATED)
async def create_deployment(
    deployment: DeploymentCreate,
    service: Service,
    caller: Annotated[Caller, Depends(require_manager)],
):
    """Start deploying an existing version."""
    created = await service.create_deployment(deployment.model_dump(mode="json"))
    return ok(DeploymentResponse.model_validate(created), message="Deployment started", code=201)


# ============================================================================
# Version Routes
# ============================================================================

@router.get("", response_model=Envelope[Page[VersionResponse]])
async def list_versions(
    service: Service,
    caller: Annotated[Caller, Depends(get_current_caller)],
    version_status: Annotated[Optional[VersionStatus], Query(alias="status")] = None,
    priority: Optional[Priority] = None,
    developer: Optional[str] = None,
    sort_by: Annotated[str, Query(alias="sortBy")] = "createdAt",
    sort_order: Annotated[SortOrder, Query(alias="sortOrder")] = "desc",
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
):
    """List versions with optional filtering, sorting and pagination."""
    versions = await service.list_versions(
        {"status": version_status, "priority": priority, "developer": developer},
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = paginate(versions, page, limit)
    result["items"] = [VersionResponse.model_validate(version) for version in result["items"]]
    return ok(result)


@router.get("/{version_id}", response_model=Envelope[VersionResponse])
async def get_version(
    version_id: str,
    service: Service,
    caller: Annotated[Caller, Depends(get_current_caller)],
):
    return ok(VersionResponse.model_validate(await service.get_version(version_id)))


@router.post("", response_model=Envelope[VersionResponse], status_code=status.HTTP_201_CREATED)
async def create_version(
    version: VersionCreate,
    service: Service,
    caller: Annotated[Caller, Depends(require_manager)],
):
    """Create a version. It starts in development and untested."""
    created = await service.create_version(version.model_dump())
    return ok(VersionResponse.model_validate(created), message="Version created", code=201)


@router.put("/{version_id}", response_model=Envelope[VersionResponse])
async def update_version(
    version_id: str,
    version: VersionUpdate,
    service: Service,
    caller: Annotated[Caller, Depends(require_manager)],
):
    """Update a version. Only the fields sent are changed."""
    updated = await service.update_version(version_id, version.model_dump(exclude_unset=True))
    return ok(VersionResponse.model_validate(updated), message="Version updated")


@router.delete("/{version_id}", response_model=Envelope[None])
async def delete_version(
    version_id: str,
    service: Service,
    caller: Annotated[Caller, Depends(require_release_admin)],
):
    """Delete a version that has not been released."""
    await service.delete_version(version_id)
    return ok(message="Version deleted")


@router.post("/{version_id}/rollback", response_model=Envelope[VersionResponse])
async def rollback_version(
    version_id: str,
    rollback: RollbackRequest,
    service: Service,
    caller: Annotated[Caller, Depends(require_manager)],
):
    """Mark a version rolled back to an existing version."""
    updated = await service.rollback_version(version_id, rollback.rollback_version)
    return ok(VersionResponse.model_validate(updated), message="Version rolled back")
