"""
Release management service: versions, rollbacks and deployments.

Version strings look like ``v2.1.0`` and are unique. A released version
cannot be deleted. A rollback marks the version rolled back and records
which existing version replaced it.
"""
import enum
import re
from collections.abc import Mapping
from typing import Any, Optional

from pydantic.alias_generators import to_camel

from crm_admin.core import timeutils
from crm_admin.core.errors import Conflict, NotFound, ValidationFailed
from crm_admin.core.store.base import Repository, Store, StoreSession
from crm_admin.features.members.models import generate_ulid
from crm_admin.features.versions.models import (
    VERSION_PATTERN,
    Deployment,
    DeploymentStatus,
    Environment,
    Priority,
    TestStatus,
    Version,
    VersionStatus,
)
from crm_admin.utils import get_logger


log = get_logger(__name__)


VERSION_FIELDS = ("version", "name", "description", "release_date", "status", "priority", "developer", "test_status")
VERSION_FILTERS = ("status", "priority", "developer")
DEPLOYMENT_FILTERS = ("environment", "status", "version")

VERSION_SORT_FIELDS = ("created_at", "updated_at", "release_date", "version", "name", "status", "priority")
DEPLOYMENT_SORT_FIELDS = ("deploy_time", "created_at", "environment", "version", "status", "progress")

VALUE_ENUMS: dict[str, type[enum.Enum]] = {
    "status": VersionStatus,
    "priority": Priority,
    "test_status": TestStatus,
}


def _sorted(items: list[Any], fields: tuple[str, ...], sort_by: str, sort_order: str) -> list[Any]:
    """Sort by a known field, given in snake_case or camelCase."""
    names = {**{to_camel(name): name for name in fields}, **{name: name for name in fields}}
    if sort_by not in names:
        raise ValidationFailed(f"Cannot sort by '{sort_by}'", details={"sortBy": sort_by, "allowed": list(fields)})
    if sort_order not in ("asc", "desc"):
        raise ValidationFailed(f"Invalid sort order '{sort_order}'", details={"sortOrder": sort_order})
    key = names[sort_by]
    return sorted(items, key=lambda item: getattr(item, key), reverse=sort_order == "desc")


def _conditions(filters: Optional[Mapping[str, Any]], allowed: tuple[str, ...]) -> dict[str, Any]:
    return {
        key: value.value if isinstance(value, enum.Enum) else value
        for key, value in (filters or {}).items()
        if key in allowed and value not in (None, "")
    }


def _clean(data: Mapping[str, Any]) -> dict[str, Any]:
    cleaned = {}
    for key in VERSION_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if value is None and key != "description":
            raise ValidationFailed(f"Field '{key}' cannot be empty", details={"field": key})
        if key in VALUE_ENUMS:
            try:
                value = VALUE_ENUMS[key](value).value
            except ValueError as e:
                raise ValidationFailed(f"Invalid {key} '{value}'", details={"field": key, "value": value}) from e
        cleaned[key] = value
    return cleaned


def _ensure_version_string(version: Optional[str]) -> None:
    if version is not None and not re.match(VERSION_PATTERN, version):
        raise ValidationFailed(
            f"Version '{version}' must look like v1.0.0",
            details={"field": "version", "value": version},
        )


async def _ensure_unique_version(db: StoreSession, version: Optional[str], exclude_id: Optional[str] = None) -> None:
    if version is None:
        return
    for existing in await db.versions.list({"version": version}):
        if existing.id != exclude_id:
            raise Conflict(f"Version '{version}' already exists", details={"field": "version", "value": version})


async def _find_version(db: StoreSession, version: str) -> Optional[Version]:
    matches = await db.versions.list({"version": version})
    return matches[0] if matches else None


async def _require(repo: Repository, entity_id: str, entity: str):
    found = await repo.get(entity_id)
    if found is None:
        raise NotFound(f"{entity} '{entity_id}' not found", details={"id": entity_id})
    return found


class VersionService:
    def __init__(self, store: Store):
        self.store = store

    # ==================================================================
    # Versions
    # ==================================================================

    async def list_versions(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> list[Version]:
        """Versions matching every given filter, newest first by default."""
        async with self.store.session() as db:
            versions = await db.versions.list(_conditions(filters, VERSION_FILTERS))
        return _sorted(versions, VERSION_SORT_FIELDS, sort_by, sort_order)

    async def get_version(self, version_id: str) -> Version:
        async with self.store.session() as db:
            return await _require(db.versions, version_id, "Version")

    async def create_version(self, data: Mapping[str, Any]) -> Version:
        payload = _clean(data)
        missing = [key for key in ("version", "name", "release_date", "developer") if not payload.get(key)]
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})
        _ensure_version_string(payload["version"])

        async with self.store.transaction() as db:
            await _ensure_unique_version(db, payload["version"])
            now = timeutils.utcnow()
            version = await db.versions.add(Version(
                id=generate_ulid(),
                version=payload["version"],
                name=payload["name"],
                description=payload.get("description") or "",
                release_date=payload["release_date"],
                status=VersionStatus.DEVELOPMENT.value,
                priority=payload.get("priority") or Priority.MEDIUM.value,
                developer=payload["developer"],
                test_status=TestStatus.UNTESTED.value,
                rollback_version=None,
                created_at=now,
                updated_at=now,
            ))

        log.info(f"Created version {version.version} ({version.id})")
        return version

    async def update_version(self, version_id: str, data: Mapping[str, Any]) -> Version:
        changes = _clean(data)
        _ensure_version_string(changes.get("version"))
        async with self.store.transaction() as db:
            version = await _require(db.versions, version_id, "Version")
            await _ensure_unique_version(db, changes.get("version"), exclude_id=version.id)
            await db.versions.update(version, changes)

        log.info(f"Updated version {version.version}: {sorted(changes)}")
        return version

    async def delete_version(self, version_id: str) -> None:
        async with self.store.transaction() as db:
            version = await _require(db.versions, version_id, "Version")
            if version.status == VersionStatus.RELEASED.value:
                raise Conflict(
                    f"Version '{version.version}' is released and cannot be deleted",
                    details={"status": version.status},
                )
            await db.versions.delete(version)

        log.info(f"Deleted version {version.version}")

    async def rollback_version(self, version_id: str, rollback_version: Optional[str]) -> Version:
        """Mark a version rolled back to an existing earlier ``rollback_version``."""
        if not rollback_version:
            raise ValidationFailed("Rollback version is required", details={"field": "rollback_version"})
        async with self.store.transaction() as db:
            version = await _require(db.versions, version_id, "Version")
            if rollback_version == version.version:
                raise ValidationFailed(
                    "A version cannot be rolled back to itself",
                    details={"field": "rollback_version", "value": rollback_version},
                )
            if await _find_version(db, rollback_version) is None:
                raise ValidationFailed(
                    f"Rollback version '{rollback_version}' does not exist",
                    details={"field": "rollback_version", "value": rollback_version},
                )
            await db.versions.update(version, {
                "status": VersionStatus.ROLLED_BACK.value,
                "rollback_version": rollback_version,
            })

        log.warning(f"Version {version.version} rolled back to {rollback_version}")
        return version

    # ==================================================================
    # Deployments
    # ==================================================================

    async def list_deployments(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort_by: str = "deploy_time",
        sort_order: str = "desc",
    ) -> list[Deployment]:
        async with self.store.session() as db:
            deployments = await db.deployments.list(_conditions(filters, DEPLOYMENT_FILTERS))
        return _sorted(deployments, DEPLOYMENT_SORT_FIELDS, sort_by, sort_order)

    async def create_deployment(self, data: Mapping[str, Any]) -> Deployment:
        """Start deploying an existing version to an environment."""
        missing = [key for key in ("environment", "version", "operator") if not data.get(key)]
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})
        try:
            environment = Environment(data["environment"]).value
        except ValueError as e:
            raise ValidationFailed(
                f"Unknown environment '{data['environment']}'",
                details={"field": "environment", "value": data["environment"]},
            ) from e

        async with self.store.transaction() as db:
            if await _find_version(db, data["version"]) is None:
                raise ValidationFailed(
                    f"Version '{data['version']}' does not exist",
                    details={"field": "version", "value": data["version"]},
                )
            now = timeutils.utcnow()
            deployment = await db.deployments.add(Deployment(
                id=generate_ulid(),
                environment=environment,
                version=data["version"],
                deploy_time=now,
                status=DeploymentStatus.DEPLOYING.value,
                progress=0,
                operator=data["operator"],
                duration_minutes=0,
                logs=["Deployment started"],
                created_at=now,
                updated_at=now,
            ))

        log.info(f"Deploying {deployment.version} to {deployment.environment} ({deployment.id})")
        return deployment
