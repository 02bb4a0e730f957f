NEW_USER = {
    "employeeId": "U100",
    "name": "New Hire",
    "email": "newhire@company.com",
    "departmentId": "dept_1",
    "roleId": "role_3",
    "status": "active",
    "password": "password123",
}


def test_root_and_health(client):
    assert client.get("/").json()["data"]["status"] == "online"
    assert client.get("/health").json()["data"] == {"status": "healthy"}


# Users

def test_list_users_envelope_and_pagination(client, admin_headers):
    response = client.get("/api/members/users", params={"page": 2, "limit": 4}, headers=admin_headers)
    assert response.status_code == 200

    body = response.json()
    assert body["success"] is True
    assert body["message"] == "success"
    assert "timestamp" in body
    assert body["data"]["pagination"] == {"current": 2, "pageSize": 4, "total": 6, "pages": 2}
    assert [u["id"] for u in body["data"]["items"]] == ["user_4", "user_5"]
    assert body["data"]["items"][0]["departmentId"] == "dept_3"


def test_list_users_filters_and_search(client, admin_headers):
    response = client.get(
        "/api/members/users",
        params={"departmentId": "dept_1", "search": "zhang"},
        headers=admin_headers,
    )
    assert [u["id"] for u in response.json()["data"]["items"]] == ["user_1"]

    response = client.get("/api/members/users", params={"status": "retired"}, headers=admin_headers)
    assert response.status_code == 400


def test_list_users_requires_authentication(client):
    assert client.get("/api/members/users").status_code == 401


def test_get_unknown_user(client, admin_headers):
    response = client.get("/api/members/users/user_missing", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_get_user_permissions(client, developer_headers):
    response = client.get("/api/members/users/user_0/permissions", headers=developer_headers)
    assert response.json()["data"] == ["*"]


def test_create_user(client, admin_headers):
    response = client.post("/api/members/users", json=NEW_USER, headers=admin_headers)
    assert response.status_code == 201

    body = response.json()
    assert body["code"] == 201
    assert body["data"]["role"] == "Member"
    assert body["data"]["department"] == "Technology"
    assert body["data"]["permissions"] == ["user.read", "project.read"]

    listed = client.get("/api/members/users", params={"limit": 100}, headers=admin_headers)
    assert listed.json()["data"]["pagination"]["total"] == 7


def test_create_user_validation_errors(client, admin_headers):
    response = client.post(
        "/api/members/users",
        json={**NEW_USER, "email": "not-an-email", "password": "123"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    errors = response.json()["data"]
    assert set(errors) >= {"email", "password"}


def test_create_user_with_duplicate_email(client, admin_headers):
    response = client.post("/api/members/users", json={**NEW_USER, "email": "lisi@company.com"}, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["data"] == {"field": "email", "value": "lisi@company.com"}


def test_developer_cannot_create_users(client, developer_headers):
    response = client.post("/api/members/users", json=NEW_USER, headers=developer_headers)
    assert response.status_code == 403
    assert response.json()["data"] == {"permission": "user.create"}


def test_department_admin_is_scoped_to_their_department(client, dept_admin_headers):
    response = client.post(
        "/api/members/users",
        json={**NEW_USER, "departmentId": "dept_2"},
        headers=dept_admin_headers,
    )
    assert response.status_code == 403

    response = client.post("/api/members/users", json=NEW_USER, headers=dept_admin_headers)
    assert response.status_code == 201

    response = client.get("/api/members/users", params={"departmentId": "dept_2"}, headers=dept_admin_headers)
    assert response.status_code == 403


def test_department_admin_cannot_hand_out_super_admin(client, dept_admin_headers, login_as):
    response = client.post(
        "/api/members/users",
        json={**NEW_USER, "roleId": "role_1", "password": "hunter22"},
        headers=dept_admin_headers,
    )
    assert response.status_code == 403
    assert response.json()["data"] == {"roleId": "role_1"}
    assert client.post("/api/auth/login", json={"username": NEW_USER["email"], "password": "hunter22"}).status_code == 401

    response = client.patch("/api/members/users/user_1", json={"roleId": "role_1"}, headers=dept_admin_headers)
    assert response.status_code == 403

    # The super admin sits in the same department
    response = client.patch("/api/members/users/user_0", json={"password": "hunter22"}, headers=dept_admin_headers)
    assert response.status_code == 403
    assert login_as("admin@company.com", "admin123")


def test_admin_can_hand_out_super_admin(client, admin_headers, login_as):
    response = client.post("/api/members/users", json={**NEW_USER, "roleId": "role_1"}, headers=admin_headers)
    assert response.status_code == 201

    headers = login_as(NEW_USER["email"], NEW_USER["password"])
    assert client.get("/api/auth/me", headers=headers).json()["data"]["tier"] == "super_admin"


def test_department_admin_reads_only_their_department(client, dept_admin_headers):
    response = client.get("/api/members/users", headers=dept_admin_headers)
    assert response.status_code == 200
    assert [u["id"] for u in response.json()["data"]["items"]] == ["user_0", "user_1", "user_2"]

    assert client.get("/api/members/users/user_3", headers=dept_admin_headers).status_code == 403
    assert client.get("/api/members/users/user_3/permissions", headers=dept_admin_headers).status_code == 403
    assert client.get("/api/members/users/user_1", headers=dept_admin_headers).status_code == 200


def test_department_admin_cannot_move_users_out(client, dept_admin_headers):
    response = client.patch(
        "/api/members/users/user_1",
        json={"departmentId": "dept_2"},
        headers=dept_admin_headers,
    )
    assert response.status_code == 403

    response = client.patch("/api/members/users/user_3", json={"position": "CPO"}, headers=dept_admin_headers)
    assert response.status_code == 403


def test_update_user(client, admin_headers):
    response = client.put(
        "/api/members/users/user_1",
        json={"name": "Zhang San Jr", "roleId": "role_3"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Zhang San Jr"
    assert data["role"] == "Member"
    assert data["email"] == "zhangsan@company.com"


def test_reporting_cycle_is_a_conflict(client, admin_headers):
    response = client.patch("/api/members/users/user_3", json={"reportToId": "user_1"}, headers=admin_headers)
    assert response.status_code == 409


def test_users_cannot_delete_themselves(client, admin_headers):
    response = client.delete("/api/members/users/user_0", headers=admin_headers)
    assert response.status_code == 403


def test_delete_user(client, admin_headers):
    response = client.delete("/api/members/users/user_3", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"] is None

    report = client.get("/api/members/users/user_2", headers=admin_headers).json()["data"]
    assert report["reportToId"] is None


# Roles

def test_list_roles(client, dept_admin_headers):
    response = client.get("/api/members/roles", headers=dept_admin_headers)
    roles = response.json()["data"]
    assert [r["code"] for r in roles] == ["SUPER_ADMIN", "DEPT_ADMIN", "USER", "DEVELOPER"]
    assert roles[1]["userCount"] == 3


def test_only_admins_manage_roles(client, admin_headers, dept_admin_headers):
    qa = {"name": "QA", "code": "QA", "level": 3, "permissions": ["project.read"]}

    assert client.post("/api/members/roles", json=qa, headers=dept_admin_headers).status_code == 403

    response = client.post("/api/members/roles", json=qa, headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["data"]["userCount"] == 0


def test_role_code_must_be_uppercase(client, admin_headers):
    response = client.post(
        "/api/members/roles",
        json={"name": "QA", "code": "qa", "level": 3},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert "code" in response.json()["data"]


def test_role_permission_update_reaches_holders(client, admin_headers):
    response = client.patch(
        "/api/members/roles/role_4",
        json={"permissions": ["project.read"]},
        headers=admin_headers,
    )
    assert response.status_code == 200
    user = client.get("/api/members/users/user_1", headers=admin_headers).json()["data"]
    assert user["permissions"] == ["project.read"]


def test_role_with_holders_cannot_be_deleted(client, admin_headers):
    response = client.delete("/api/members/roles/role_2", headers=admin_headers)
    assert response.status_code == 409
    assert "3" in response.json()["message"]


# Departments

def test_department_crud(client, admin_headers):
    response = client.post(
        "/api/members/departments",
        json={"name": "Sales", "code": "SALES", "level": 1, "managerId": "user_5"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    sales = response.json()["data"]
    assert sales["manager"] == "Qian Qi"
    assert sales["memberCount"] == 0

    response = client.put(
        f"/api/members/departments/{sales['id']}",
        json={"description": "Direct sales"},
        headers=admin_headers,
    )
    assert response.json()["data"]["description"] == "Direct sales"

    assert client.delete(f"/api/members/departments/{sales['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/members/departments/{sales['id']}", headers=admin_headers).status_code == 404


def test_child_department_level_conflict(client, admin_headers):
    response = client.post(
        "/api/members/departments",
        json={"name": "Platform", "code": "PLATFORM", "level": 1, "parentId": "dept_1"},
        headers=admin_headers,
    )
    assert response.status_code == 409


def test_department_with_members_cannot_be_deleted(client, admin_headers):
    response = client.delete("/api/members/departments/dept_1", headers=admin_headers)
    assert response.status_code == 409
    assert "3" in response.json()["message"]


def test_department_admin_cannot_create_departments(client, dept_admin_headers):
    response = client.post(
        "/api/members/departments",
        json={"name": "Sales", "code": "SALES", "level": 1},
        headers=dept_admin_headers,
    )
    assert response.status_code == 403


# Permissions

def test_permission_list_and_tree(client, developer_headers):
    permissions = client.get("/api/members/permissions", params={"type": "menu"}, headers=developer_headers)
    assert len(permissions.json()["data"]) == 6

    tree = client.get("/api/members/permissions/tree", headers=developer_headers).json()["data"]
    assert [node["id"] for node in tree] == ["system", "business"]
    assert tree[1]["children"][0]["parentId"] == "business"


def test_permission_check(client, dept_admin_headers):
    def check(payload):
        response = client.post("/api/members/permissions/check", json=payload, headers=dept_admin_headers)
        assert response.status_code == 200
        return response.json()["data"]

    assert check({"permission": "user.create"}) == {"allowed": True, "reason": None}
    assert check({"permission": "user.delete"})["allowed"] is False
    assert check({"admin": True})["allowed"] is False
    assert check({"roles": ["DEPT_ADMIN"], "departmentId": "dept_1"})["allowed"] is True
    assert check({"departmentId": "dept_2"})["allowed"] is False


def test_permission_check_needs_a_requirement(client, admin_headers):
    response = client.post("/api/members/permissions/check", json={}, headers=admin_headers)
    assert response.status_code == 400


# Organization and statistics

def test_organization_tree(client, dept_admin_headers):
    response = client.get("/api/members/organization/tree", headers=dept_admin_headers)
    [company] = response.json()["data"]
    assert company["type"] == "company"
    assert [d["code"] for d in company["children"]] == ["TECH", "PROD", "HR"]
    assert company["children"][1]["children"][0]["memberCount"] == 1


def test_report_relations(client, admin_headers):
    relations = client.get("/api/members/organization/reports", headers=admin_headers).json()["data"]
    assert {"from": "user_1", "to": "user_2", "fromName": "Zhang San", "toName": "Li Si"} in relations
    assert len(relations) == 3


def test_statistics(client, developer_headers):
    data = client.get("/api/members/statistics", headers=developer_headers).json()["data"]
    assert data["users"] == {"total": 6, "active": 5, "pending": 1, "disabled": 0}
    assert len(data["departmentStats"]) == 4
    assert data["recentUsers"][0]["name"] == "Zhao Liu"
