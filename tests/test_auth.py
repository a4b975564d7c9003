from conftest import auth_headers, PASSWORD
from common.security import decode_token


def _register(client, email="ana@example.com", password="s3cret-pass"):
    return client.post("/users/register", json={
        "firstName": "Ana", "lastName": "Costa", "email": email, "password": password,
    })


def test_register_and_login(client):
    resp = _register(client, email="Ana@Example.com")
    assert resp.status_code == 201
    user = resp.json()["user"]
    assert user["email"] == "ana@example.com"
    assert user["role"] == "USER"
    assert "password_hash" not in user

    resp = client.post("/users/login", json={"email": "ana@example.com", "password": "s3cret-pass"})
    assert resp.status_code == 200
    payload = decode_token(resp.json()["token"])
    assert payload["sub"] == str(user["id"])
    assert payload["role"] == "USER"


def test_duplicate_email_is_409(client):
    assert _register(client).status_code == 201
    resp = _register(client, email="ANA@example.com")
    assert resp.status_code == 409


def test_bad_credentials_are_401(client, make_user):
    user = make_user()
    resp = client.post("/users/login", json={"email": user.email, "password": "wrong-password"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid email or password."}


def test_deactivated_user_cannot_use_token(client, make_user):
    user = make_user(is_active=False)
    resp = client.get("/users/profile", headers=auth_headers(user))
    assert resp.status_code == 401
    resp = client.post("/users/login", json={"email": user.email, "password": PASSWORD})
    assert resp.status_code == 401


def test_register_validation(client):
    resp = client.post("/users/register", json={"firstName": "A", "email": "not-an-email", "password": "short"})
    assert resp.status_code == 400
    paths = {d["path"] for d in resp.json()["details"]}
    assert {"firstName", "email", "password"} <= paths or {"first_name", "email", "password"} <= paths


def test_profile_update_ignores_role(client, make_user):
    user = make_user()
    headers = auth_headers(user)
    resp = client.put("/users/profile", json={"firstName": "Joana", "phone": "+351900000000"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["user"]["first_name"] == "Joana"

    resp = client.put("/users/profile", json={"role": "OWNER"}, headers=headers)
    assert resp.status_code == 400
    assert client.get("/users/profile", headers=headers).json()["role"] == "USER"


def test_change_password(client, make_user):
    user = make_user()
    headers = auth_headers(user)

    resp = client.put("/users/change-password", json={
        "currentPassword": "not-it", "newPassword": "brand-new-pass", "confirmPassword": "brand-new-pass",
    }, headers=headers)
    assert resp.status_code == 401

    resp = client.put("/users/change-password", json={
        "currentPassword": PASSWORD, "newPassword": "brand-new-pass", "confirmPassword": "different-pass",
    }, headers=headers)
    assert resp.status_code == 400

    resp = client.put("/users/change-password", json={
        "currentPassword": PASSWORD, "newPassword": "brand-new-pass", "confirmPassword": "brand-new-pass",
    }, headers=headers)
    assert resp.status_code == 200

    ok = client.post("/users/login", json={"email": user.email, "password": "brand-new-pass"})
    assert ok.status_code == 200
