from conftest import PASSWORD, auth_header

from collabtrack.auth.security import create_access_token, create_password_reset_token
from collabtrack.models.user import User
from collabtrack.seed import DEMO_PASSWORD, seed_demo_data


def test_register_returns_token_and_member_role(client, register):
    user, headers, _token = register("Alice", "alice@example.com")

    assert user["role"] == "member"
    assert user["is_active"] is True
    assert "password_hash" not in user

    me = client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == "alice@example.com"


def test_register_duplicate_email(client, register):
    register("Alice", "alice@example.com")
    response = client.post(
        "/api/auth/register",
        json={"name": "Alice Again", "email": "alice@example.com", "password": PASSWORD},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "User with this email already exists"


def test_login_sets_last_login(client, register):
    register("Alice", "alice@example.com")
    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["last_login"] is not None


def test_login_rejects_wrong_password(client, register):
    register("Alice", "alice@example.com")
    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong-password"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_login_rejects_unknown_and_inactive_users(app, client, register):
    response = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert response.status_code == 401

    user, _headers, _token = register("Alice", "alice@example.com")
    with app.state.database.session() as db:
        db.get(User, user["id"]).is_active = False
        db.commit()

    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_me_requires_a_valid_token(client, settings):
    missing = client.get("/api/auth/me")
    assert missing.status_code == 401
    assert missing.json()["detail"] == "No token provided"

    garbage = client.get("/api/auth/me", headers=auth_header("not-a-jwt"))
    assert garbage.status_code == 401
    assert garbage.json()["detail"] == "Invalid or expired token"

    expired = create_access_token("1", settings, minutes=-1)
    assert client.get("/api/auth/me", headers=auth_header(expired)).status_code == 401


def test_token_for_deleted_user_is_rejected(client, settings):
    token = create_access_token("999", settings)
    response = client.get("/api/auth/me", headers=auth_header(token))
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid user"


def test_seeded_admin_can_log_in(app, client):
    with app.state.database.session() as db:
        seed_demo_data(db, app.state.settings)
        # a second run must not duplicate anything
        seed_demo_data(db, app.state.settings)
        assert db.query(User).count() == 5

    response = client.post(
        "/api/auth/login",
        json={"email": "admin@collabtrack.com", "password": DEMO_PASSWORD},
    )
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "admin"

    pm = client.post("/api/auth/login", json={"email": "pm@collabtrack.com", "password": DEMO_PASSWORD})
    projects = client.get("/api/projects", headers=auth_header(pm.json()["access_token"])).json()
    assert {p["title"] for p in projects} == {"Website Redesign", "Mobile App Development"}


def test_forgot_password_does_not_leak_existence(client, register):
    register("Alice", "alice@example.com")
    known = client.post("/api/auth/forgot-password", json={"email": "alice@example.com"})
    unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()


def test_reset_password_flow(client, register, settings):
    user, _headers, _token = register("Alice", "alice@example.com")
    reset_token = create_password_reset_token(user["id"], settings)

    # a reset token is not an access token
    assert client.get("/api/auth/me", headers=auth_header(reset_token)).status_code == 401

    response = client.post(
        "/api/auth/reset-password",
        json={"token": reset_token, "new_password": "brand-new-secret"},
    )
    assert response.status_code == 200

    old = client.post("/api/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
    new = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "brand-new-secret"})
    assert old.status_code == 401
    assert new.status_code == 200


def test_reset_password_rejects_access_tokens(client, register):
    _user, _headers, token = register("Alice", "alice@example.com")
    response = client.post("/api/auth/reset-password", json={"token": token, "new_password": "brand-new-secret"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid reset token"
