from datetime import date

import pytest

from crm_admin.core.errors import Forbidden, NotFound
from crm_admin.features.auth.passwords import verify_password
from crm_admin.features.permissions.access import Caller, PermissionSet, RoleTier


async def test_role_permissions_follow_the_role(service):
    qa = await service.create_role({"name": "QA", "code": "QA", "level": 3, "permissions": ["project.read"]})
    x = await service.create_user({
        "employee_id": "U100",
        "name": "Tester X",
        "email": "x@company.com",
        "department_id": "dept_1",
        "role_id": qa.id,
    })
    assert x.permissions == ["project.read"]
    assert x.role == "QA"
    assert x.status == "pending"

    await service.update_role(qa.id, {"permissions": ["project.read", "project.update"]})

    assert (await service.get_user(x.id)).permissions == ["project.read", "project.update"]
    assert (await service.get_role(qa.id)).user_count == 1


async def test_list_users_filters(service):
    pending = await service.list_users({"status": "pending"})
    assert [u.id for u in pending] == ["user_4"]

    technology = await service.list_users({"department": "Technology"})
    assert {u.id for u in technology} == {"user_0", "user_1", "user_2"}

    both = await service.list_users({"department_id": "dept_1", "role_id": "role_2"})
    assert [u.id for u in both] == ["user_2"]

    # Blank filters are ignored
    assert len(await service.list_users({"status": "", "role": None})) == 6


async def test_list_users_search(service):
    assert {u.id for u in await service.list_users(search="LI")} == {"user_2", "user_4"}
    assert [u.id for u in await service.list_users(search="u005")] == ["user_5"]
    assert await service.list_users(search="nobody") == []


async def test_list_permissions(service):
    permissions = await service.list_permissions()
    assert permissions[0].id == "system"
    assert len(permissions) == 21

    menus = await service.list_permissions(type="menu")
    assert [p.id for p in menus] == ["system", "user", "role", "dept", "business", "project"]

    assert [p.id for p in await service.list_permissions(search="project.")] == [
        "project.read", "project.create", "project.update",
    ]


async def test_permission_tree(service):
    tree = await service.get_permission_tree()
    assert [node["id"] for node in tree] == ["system", "business"]
    system = tree[0]
    assert [node["id"] for node in system["children"]] == ["user", "role", "dept"]
    assert [node["id"] for node in system["children"][0]["children"]] == [
        "user.read", "user.create", "user.update", "user.delete",
    ]


async def test_organization_tree(service):
    [company] = await service.get_organization_tree()
    assert company["id"] == "company"
    assert company["type"] == "company"

    departments = company["children"]
    assert [d["id"] for d in departments] == ["dept_1", "dept_2", "dept_4"]
    assert departments[0]["memberCount"] == 3
    assert departments[0]["manager"] == "Li Si"
    assert [d["id"] for d in departments[1]["children"]] == ["dept_3"]


async def test_report_relations(service):
    relations = await service.get_report_relations()
    assert {(r["from"], r["to"], r["to_name"]) for r in relations} == {
        ("user_1", "user_2", "Li Si"),
        ("user_2", "user_3", "Wang Wu"),
        ("user_4", "user_3", "Wang Wu"),
    }


async def test_statistics(service):
    stats = await service.get_statistics()

    assert stats["users"] == {"total": 6, "active": 5, "pending": 1, "disabled": 0}
    assert stats["roles"] == {"total": 4}
    assert stats["departments"] == {"total": 4}

    by_department = {s["department_id"]: s["user_count"] for s in stats["department_stats"]}
    assert by_department == {"dept_1": 3, "dept_2": 1, "dept_3": 1, "dept_4": 1}
    by_role = {s["role_id"]: s["user_count"] for s in stats["role_stats"]}
    assert by_role == {"role_1": 1, "role_2": 3, "role_3": 1, "role_4": 1}

    recent = stats["recent_users"]
    assert [u["id"] for u in recent] == ["user_4", "user_1", "user_5", "user_2", "user_3"]
    assert isinstance(recent[0]["join_date"], date)


async def test_find_login_by_email_or_employee_id(service):
    assert (await service.find_login("lisi@company.com")).id == "user_2"
    assert (await service.find_login("U002")).id == "user_2"
    assert await service.find_login("nobody@company.com") is None


async def test_record_login(service):
    assert (await service.get_user("user_1")).last_login is None
    await service.record_login("user_1")
    assert (await service.get_user("user_1")).last_login is not None


async def test_password_change_is_hashed(service):
    await service.update_user("user_1", {"password": "new-secret"})
    user = await service.get_user("user_1")
    assert user.password_hash != "new-secret"
    assert verify_password("new-secret", user.password_hash)
    assert not verify_password("password123", user.password_hash)


async def test_user_permissions_of_unknown_user(service):
    with pytest.raises(NotFound):
        await service.get_user_permissions("user_missing")


async def test_delete_user(service):
    await service.delete_user("user_1")
    with pytest.raises(NotFound):
        await service.get_user("user_1")
    assert (await service.get_role("role_4")).user_count == 0


async def test_password_hashing_runs_outside_the_write_lock(service, monkeypatch):
    from crm_admin.features.members import service as member_service

    held = []
    original = member_service.hash_password

    def recording_hash(password):
        held.append(service.store._lock.locked())
        return original(password)

    monkeypatch.setattr(member_service, "hash_password", recording_hash)
    await service.update_user("user_1", {"password": "new-secret"})
    await service.create_user({
        "employee_id": "U100",
        "name": "Tester X",
        "email": "x@company.com",
        "department_id": "dept_1",
        "role_id": "role_3",
        "password": "another-secret",
    })
    assert held == [False, False]


# Role authority of department admins

def department_admin() -> Caller:
    return Caller(
        id="user_2",
        name="Li Si",
        role_id="role_2",
        role_code="DEPT_ADMIN",
        tier=RoleTier.DEPARTMENT_ADMIN,
        department_id="dept_1",
        permissions=PermissionSet.of(["user.read", "user.create", "user.update"]),
    )


async def test_department_admin_cannot_grant_a_higher_role(service):
    caller = department_admin()
    payload = {
        "employee_id": "U100",
        "name": "Tester X",
        "email": "x@company.com",
        "department_id": "dept_1",
        "role_id": "role_1",
        "password": "hunter22",
    }
    with pytest.raises(Forbidden):
        await service.create_user(payload, caller=caller)
    assert await service.find_login("x@company.com") is None

    with pytest.raises(Forbidden):
        await service.update_user("user_1", {"role_id": "role_1"}, caller=caller)
    assert (await service.get_user("user_1")).role_id == "role_4"

    # Roles at or below their own level are fine
    created = await service.create_user({**payload, "role_id": "role_4"}, caller=caller)
    assert created.role == "Developer"
    updated = await service.update_user("user_1", {"role_id": "role_3"}, caller=caller)
    assert updated.role_id == "role_3"


async def test_department_admin_cannot_touch_a_super_admin(service):
    caller = department_admin()
    before = (await service.get_user("user_0")).password_hash

    with pytest.raises(Forbidden):
        await service.update_user("user_0", {"password": "hunter22"}, caller=caller)
    assert (await service.get_user("user_0")).password_hash == before

    with pytest.raises(Forbidden):
        await service.delete_user("user_0", caller=caller)
    await service.get_user("user_0")


async def test_admin_may_grant_any_role(service):
    admin = Caller(
        id="user_0",
        name="Admin",
        role_id="role_1",
        role_code="SUPER_ADMIN",
        tier=RoleTier.SUPER_ADMIN,
        department_id="dept_1",
        permissions=PermissionSet.everything(),
    )
    updated = await service.update_user("user_1", {"role_id": "role_1"}, caller=admin)
    assert updated.permissions == ["*"]
