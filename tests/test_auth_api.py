import asyncio

ADMIN = ("admin@company.com", "admin123")
DEVELOPER = ("zhangsan@company.com", "password123")


def test_login_by_email(client):
    response = client.post("/api/auth/login", json={"username": ADMIN[0], "password": ADMIN[1]})
    assert response.status_code == 200

    body = response.json()
    assert body["success"] is True
    assert body["code"] == 200
    data = body["data"]
    assert data["tokenType"] == "Bearer"
    assert data["expiresIn"] > 0
    assert data["user"]["id"] == "user_0"
    assert data["user"]["lastLogin"] is not None
    assert "passwordHash" not in data["user"]
    assert client.registry.is_active(data["token"])


def test_login_by_employee_id(client):
    response = client.post("/api/auth/login", json={"username": "U001", "password": DEVELOPER[1]})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == DEVELOPER[0]


def test_login_with_wrong_password(client):
    response = client.post("/api/auth/login", json={"username": ADMIN[0], "password": "wrong-password"})
    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["code"] == 401
    assert body["data"] is None


def test_login_with_unknown_user(client):
    response = client.post("/api/auth/login", json={"username": "ghost@company.com", "password": "password123"})
    assert response.status_code == 401


def test_login_of_pending_account_is_forbidden(client):
    response = client.post("/api/auth/login", json={"username": "zhaoliu@company.com", "password": "password123"})
    assert response.status_code == 403
    assert response.json()["data"] == {"status": "pending"}


def test_login_requires_both_fields(client):
    response = client.post("/api/auth/login", json={"username": ADMIN[0]})
    assert response.status_code == 400
    assert "password" in response.json()["data"]


def test_me(client, dept_admin_headers):
    response = client.get("/api/auth/me", headers=dept_admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["name"] == "Li Si"
    assert data["roleCode"] == "DEPT_ADMIN"
    assert data["tier"] == "department_admin"


def test_missing_token(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_invalid_token(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_logout_revokes_the_token(client, admin_headers, login_as):
    assert client.get("/api/auth/me", headers=admin_headers).status_code == 200

    response = client.post("/api/auth/logout", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Logout successful"

    assert client.get("/api/auth/me", headers=admin_headers).status_code == 401
    # Other sessions stay valid
    assert client.get("/api/auth/me", headers=login_as(*ADMIN)).status_code == 200


def test_disabled_user_is_forbidden(client, developer_headers):
    async def disable():
        async with client.store.transaction() as db:
            user = await db.users.get("user_1")
            await db.users.update(user, {"status": "disabled"})

    asyncio.run(disable())
    assert client.get("/api/auth/me", headers=developer_headers).status_code == 403


def test_deleted_user_token_is_rejected(client, admin_headers, developer_headers):
    assert client.delete("/api/members/users/user_1", headers=admin_headers).status_code == 200
    assert client.get("/api/auth/me", headers=developer_headers).status_code == 401
