from datetime import date

import pytest

from crm_admin.core.errors import Conflict, NotFound, ValidationFailed


def new_version(version: str = "v2.2.0", **extra) -> dict:
    return {
        "version": version,
        "name": "Reporting",
        "release_date": date(2024, 2, 1),
        "developer": "Zhang San",
        **extra,
    }


# Versions

async def test_list_versions_newest_first(releases):
    versions = await releases.list_versions()
    assert [v.id for v in versions] == ["ver_3", "ver_1", "ver_2", "ver_4"]


async def test_list_versions_filters_and_sorting(releases):
    released = await releases.list_versions({"status": "released"})
    assert [v.version for v in released] == ["v2.1.0", "v2.0.8"]

    by_release = await releases.list_versions(sort_by="releaseDate", sort_order="asc")
    assert [v.version for v in by_release] == ["v2.0.7", "v2.0.8", "v2.1.0", "v2.1.1"]

    assert [v.id for v in await releases.list_versions({"developer": "Li Si", "priority": ""})] == ["ver_2"]

    with pytest.raises(ValidationFailed):
        await releases.list_versions(sort_by="password")


async def test_create_version_defaults(releases):
    created = await releases.create_version(new_version(priority="high"))
    assert created.status == "development"
    assert created.test_status == "untested"
    assert created.priority == "high"
    assert created.rollback_version is None

    fetched = await releases.get_version(created.id)
    assert fetched.release_date == date(2024, 2, 1)


async def test_create_version_validation(releases):
    with pytest.raises(ValidationFailed):
        await releases.create_version(new_version("2.2"))
    with pytest.raises(ValidationFailed):
        await releases.create_version({"version": "v2.2.0", "name": "Reporting"})
    with pytest.raises(Conflict):
        await releases.create_version(new_version("v2.1.0"))
    assert len(await releases.list_versions()) == 4


async def test_update_version_keeps_versions_unique(releases):
    # Keeping its own version string is not a clash
    updated = await releases.update_version("ver_3", {"version": "v2.1.1", "test_status": "passed"})
    assert updated.test_status == "passed"

    with pytest.raises(Conflict):
        await releases.update_version("ver_3", {"version": "v2.1.0"})
    with pytest.raises(ValidationFailed):
        await releases.update_version("ver_3", {"status": "shipped"})
    with pytest.raises(NotFound):
        await releases.update_version("ver_missing", {"name": "Ghost"})


async def test_released_version_cannot_be_deleted(releases):
    with pytest.raises(Conflict) as exc_info:
        await releases.delete_version("ver_1")
    assert exc_info.value.details == {"status": "released"}

    await releases.delete_version("ver_3")
    with pytest.raises(NotFound):
        await releases.get_version("ver_3")


async def test_rollback_version(releases):
    with pytest.raises(ValidationFailed):
        await releases.rollback_version("ver_3", "")
    with pytest.raises(ValidationFailed):
        await releases.rollback_version("ver_3", "v1.0.0")
    with pytest.raises(ValidationFailed):
        await releases.rollback_version("ver_3", "v2.1.1")
    assert (await releases.get_version("ver_3")).status == "testing"

    rolled_back = await releases.rollback_version("ver_3", "v2.1.0")
    assert rolled_back.status == "rolled_back"
    assert rolled_back.rollback_version == "v2.1.0"


# Deployments

async def test_list_deployments_latest_first(releases):
    deployments = await releases.list_deployments()
    assert [d.id for d in deployments] == ["dep_2", "dep_1", "dep_3"]

    production = await releases.list_deployments({"environment": "production"})
    assert [d.version for d in production] == ["v2.1.0"]


async def test_create_deployment(releases):
    deployment = await releases.create_deployment({
        "environment": "staging",
        "version": "v2.1.1",
        "operator": "Li Si",
    })
    assert deployment.status == "deploying"
    assert deployment.progress == 0
    assert deployment.logs == ["Deployment started"]
    assert (await releases.list_deployments())[0].id == deployment.id


async def test_deployment_needs_an_existing_version(releases):
    with pytest.raises(ValidationFailed):
        await releases.create_deployment({"environment": "staging", "version": "v9.9.9", "operator": "Li Si"})
    with pytest.raises(ValidationFailed):
        await releases.create_deployment({"environment": "moon", "version": "v2.1.1", "operator": "Li Si"})
    assert len(await releases.list_deployments()) == 3
