import pytest

from crm_admin.core.errors import Forbidden, Unauthenticated
from crm_admin.features.permissions.access import (
    Authenticated,
    Caller,
    PermissionSet,
    RequireAdmin,
    RequireDepartmentScope,
    RequirePermission,
    RequireRole,
    RoleTier,
    check_access,
    is_allowed,
)


def make_caller(role_code: str, permissions, department_id: str = "dept_1") -> Caller:
    return Caller(
        id="user_x",
        name="Tester",
        role_id="role_x",
        role_code=role_code,
        tier=RoleTier.from_role_code(role_code),
        department_id=department_id,
        permissions=PermissionSet.from_stored(permissions),
    )


@pytest.fixture
def super_admin():
    return make_caller("SUPER_ADMIN", ["*"])


@pytest.fixture
def dept_admin():
    return make_caller("DEPT_ADMIN", ["user.read", "user.create"])


@pytest.fixture
def member():
    return make_caller("USER", ["user.read"])


def test_permission_set_from_stored():
    assert PermissionSet.from_stored(["user.read", "*"]).is_all
    assert PermissionSet.from_stored(None) == PermissionSet()
    assert PermissionSet.of(["b", "a", "b"]).grants == ("b", "a")
    assert PermissionSet.everything().to_stored() == ["*"]
    assert PermissionSet.of(["a"]).allows("a")
    assert not PermissionSet.of(["a"]).allows("b")


def test_role_tier_from_role_code():
    assert RoleTier.from_role_code("SUPER_ADMIN") is RoleTier.SUPER_ADMIN
    assert RoleTier.from_role_code("ADMIN") is RoleTier.ADMIN
    assert RoleTier.from_role_code("DEPT_ADMIN") is RoleTier.DEPARTMENT_ADMIN
    assert RoleTier.from_role_code("DEVELOPER") is RoleTier.MEMBER
    assert RoleTier.from_role_code(None) is RoleTier.MEMBER


def test_missing_caller_is_unauthenticated():
    with pytest.raises(Unauthenticated):
        check_access(None)
    assert not is_allowed(None, Authenticated())


def test_wildcard_allows_any_permission(super_admin):
    assert check_access(super_admin, RequirePermission("anything.at.all")) is super_admin


def test_missing_permission_is_forbidden(member):
    with pytest.raises(Forbidden) as exc_info:
        check_access(member, RequirePermission("user.delete"))
    assert exc_info.value.details == {"permission": "user.delete"}


def test_role_requirement_matches_role_code(member, dept_admin):
    requirement = RequireRole(("DEPT_ADMIN", "SUPER_ADMIN"))
    assert is_allowed(dept_admin, requirement)
    assert not is_allowed(member, requirement)


def test_admin_requirement(super_admin, dept_admin):
    assert is_allowed(super_admin, RequireAdmin())
    assert is_allowed(make_caller("ADMIN", ["user.read"]), RequireAdmin())
    assert not is_allowed(dept_admin, RequireAdmin())


def test_department_scope_limits_department_admins(dept_admin):
    assert is_allowed(dept_admin, RequireDepartmentScope("dept_1"))
    assert is_allowed(dept_admin, RequireDepartmentScope(None))
    assert not is_allowed(dept_admin, RequireDepartmentScope("dept_2"))


def test_department_scope_ignores_other_tiers(super_admin, member):
    assert is_allowed(super_admin, RequireDepartmentScope("dept_2"))
    assert is_allowed(member, RequireDepartmentScope("dept_2"))


def test_requirements_stop_at_first_failure(dept_admin):
    with pytest.raises(Forbidden) as exc_info:
        check_access(
            dept_admin,
            RequirePermission("user.create"),
            RequireDepartmentScope("dept_2"),
            RequirePermission("user.delete"),
        )
    assert exc_info.value.details == {"departmentId": "dept_2"}


def test_unknown_requirement_raises_type_error(member):
    with pytest.raises(TypeError):
        check_access(member, "user.read")


def test_member_without_permissions_is_denied():
    nobody = make_caller("USER", [])
    assert not nobody.is_admin
    with pytest.raises(Forbidden):
        check_access(nobody, RequirePermission("user.read"))
    with pytest.raises(Forbidden):
        check_access(nobody, RequireAdmin())
    assert is_allowed(nobody, Authenticated())
