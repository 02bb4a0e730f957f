"""
Demo release data: four versions and three deployments.

Loaded alongside the member demo data on startup and by
scripts/seed_database.py.
"""
from datetime import date, datetime, timezone

from crm_admin.core.store.base import Store
from crm_admin.features.versions.models import Deployment, Version
from crm_admin.utils import get_logger


log = get_logger(__name__)


def _at(day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


VERSIONS = [
    {
        "id": "ver_1",
        "version": "v2.1.0",
        "name": "Permission management improvements",
        "description": "Role assignment for users and tighter access checks",
        "release_date": date(2024, 1, 15),
        "status": "released",
        "priority": "high",
        "developer": "Zhang San",
        "test_status": "passed",
        "rollback_version": None,
        "created_at": _at(10),
        "updated_at": _at(15),
    },
    {
        "id": "ver_2",
        "version": "v2.0.8",
        "name": "Performance tuning",
        "description": "Faster responses and shorter page loads",
        "release_date": date(2024, 1, 10),
        "status": "released",
        "priority": "medium",
        "developer": "Li Si",
        "test_status": "passed",
        "rollback_version": None,
        "created_at": _at(5),
        "updated_at": _at(10),
    },
    {
        "id": "ver_3",
        "version": "v2.1.1",
        "name": "Bug fixes",
        "description": "Fixes for issues reported by users",
        "release_date": date(2024, 1, 20),
        "status": "testing",
        "priority": "high",
        "developer": "Wang Wu",
        "test_status": "testing",
        "rollback_version": None,
        "created_at": _at(15),
        "updated_at": _at(20),
    },
    {
        "id": "ver_4",
        "version": "v2.0.7",
        "name": "Interface refresh",
        "description": "Visual polish across the console",
        "release_date": date(2024, 1, 5),
        "status": "rolled_back",
        "priority": "low",
        "developer": "Zhao Liu",
        "test_status": "passed",
        "rollback_version": "v2.0.6",
        "created_at": _at(1),
        "updated_at": _at(5),
    },
]

DEPLOYMENTS = [
    {
        "id": "dep_1",
        "environment": "production",
        "version": "v2.1.0",
        "deploy_time": _at(15, 14, 30),
        "status": "succeeded",
        "progress": 100,
        "operator": "Zhang San",
        "duration_minutes": 15,
        "logs": ["Deployment started", "Code synced", "Database migrated", "Services restarted", "Deployment succeeded"],
        "created_at": _at(15, 14, 30),
        "updated_at": _at(15, 14, 45),
    },
    {
        "id": "dep_2",
        "environment": "testing",
        "version": "v2.1.1",
        "deploy_time": _at(20, 10),
        "status": "deploying",
        "progress": 65,
        "operator": "Li Si",
        "duration_minutes": 8,
        "logs": ["Deployment started", "Code synced", "Migrating database"],
        "created_at": _at(20, 10),
        "updated_at": _at(20, 10, 8),
    },
    {
        "id": "dep_3",
        "environment": "staging",
        "version": "v2.1.0",
        "deploy_time": _at(14, 16),
        "status": "succeeded",
        "progress": 100,
        "operator": "Wang Wu",
        "duration_minutes": 12,
        "logs": ["Deployment started", "Code synced", "Services restarted", "Deployment succeeded"],
        "created_at": _at(14, 16),
        "updated_at": _at(14, 16, 12),
    },
]


async def seed_release_data(store: Store) -> None:
    async with store.transaction() as db:
        for data in VERSIONS:
            await db.versions.add(Version(**data))
        for data in DEPLOYMENTS:
            await db.deployments.add(Deployment(**{**data, "logs": list(data["logs"])}))

    log.info(f"Seeded {len(VERSIONS)} versions and {len(DEPLOYMENTS)} deployments")
