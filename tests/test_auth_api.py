async def test_register_login_and_me(client, auth):
    response = await client.get("/auth/me", headers=auth)

    assert response.status_code == 200
    body = response.json()
    assert body["username"] == "alice"
    assert body["storage"]["used"] == 0
    assert body["storage"]["total"] > 0


async def test_duplicate_username_rejected(client, auth):
    response = await client.post("/auth/register", json={"username": "alice", "password": "x"})
    assert response.status_code == 400


async def test_wrong_password(client, auth):
    response = await client.post("/auth/token", data={"username": "alice", "password": "wrong"})
    assert response.status_code == 401


async def test_protected_routes_require_token(client):
    assert (await client.get("/files")).status_code == 401
    response = await client.get("/files", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


async def test_change_password(client, auth):
    wrong = await client.post(
        "/auth/password", headers=auth, json={"currentPassword": "nope", "newPassword": "Str0ng!pass"}
    )
    assert wrong.status_code == 400

    weak = await client.post(
        "/auth/password", headers=auth, json={"currentPassword": "secret", "newPassword": "short"}
    )
    assert weak.status_code == 400

    response = await client.post(
        "/auth/password", headers=auth, json={"currentPassword": "secret", "newPassword": "Str0ng!pass"}
    )
    assert response.status_code == 200

    old = await client.post("/auth/token", data={"username": "alice", "password": "secret"})
    assert old.status_code == 401
    new = await client.post("/auth/token", data={"username": "alice", "password": "Str0ng!pass"})
    assert new.status_code == 200
