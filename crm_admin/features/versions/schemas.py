"""
Pydantic schemas for versions and deployments.
"""
from datetime import date, datetime
from typing import Optional
from pydantic import Field

from crm_admin.core.schemas import CamelModel
from crm_admin.features.versions.models import (
    VERSION_PATTERN,
    DeploymentStatus,
    Environment,
    Priority,
    TestStatus,
    VersionStatus,
)


# ============================================================================
# Version Schemas
# ============================================================================

class VersionCreate(CamelModel):
    """New versions always start in development and untested."""
    version: str = Field(..., pattern=VERSION_PATTERN, max_length=32)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    release_date: date
    priority: Priority = Priority.MEDIUM
    developer: str = Field(..., min_length=1, max_length=50)


class VersionUpdate(CamelModel):
    version: Optional[str] = Field(None, pattern=VERSION_PATTERN, max_length=32)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    release_date: Optional[date] = None
    status: Optional[VersionStatus] = None
    priority: Optional[Priority] = None
    developer: Optional[str] = Field(None, min_length=1, max_length=50)
    test_status: Optional[TestStatus] = None


class RollbackRequest(CamelModel):
    rollback_version: str = Field(..., min_length=1, max_length=32)


class VersionResponse(CamelModel):
    id: str
    version: str
    name: str
    description: Optional[str] = None
    release_date: date
    status: VersionStatus
    priority: Priority
    developer: str
    test_status: TestStatus
    rollback_version: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Deployment Schemas
# ============================================================================

class DeploymentCreate(CamelModel):
    environment: Environment
    version: str = Field(..., min_length=1, max_length=32)
    operator: str = Field(..., min_length=1, max_length=50)


class DeploymentResponse(CamelModel):
    id: str
    environment: Environment
    version: str
    deploy_time: datetime
    status: DeploymentStatus
    progress: int
    operator: str
    duration_minutes: int
    logs: list[str] = []
    created_at: datetime
    updated_at: datetime
