def test_user_listing_is_admin_only(client, register, make_admin):
    _alice, alice_headers, _ = register("Alice", "alice@example.com")
    _admin, admin_headers = make_admin()

    denied = client.get("/api/users", headers=alice_headers)
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Insufficient permissions"

    page = client.get("/api/users", params={"search": "alice"}, headers=admin_headers).json()
    assert [u["email"] for u in page["data"]] == ["alice@example.com"]
    assert page["pagination"]["total"] == 1


def test_admin_creates_users(client, register, make_admin):
    _alice, alice_headers, _ = register("Alice", "alice@example.com")
    _admin, admin_headers = make_admin()
    payload = {"name": "Paula", "email": "pm@example.com", "password": "password123", "role": "manager"}

    assert client.post("/api/users", json=payload, headers=alice_headers).status_code == 403

    created = client.post("/api/users", json=payload, headers=admin_headers)
    assert created.status_code == 201
    assert created.json()["role"] == "manager"

    duplicate = client.post("/api/users", json=payload, headers=admin_headers)
    assert duplicate.status_code == 400


def test_users_see_only_themselves(client, register, make_admin):
    alice, alice_headers, _ = register("Alice", "alice@example.com")
    bob, _bob_headers, _ = register("Bob", "bob@example.com")
    _admin, admin_headers = make_admin()

    assert client.get(f"/api/users/{alice['id']}", headers=alice_headers).status_code == 200
    assert client.get(f"/api/users/{bob['id']}", headers=alice_headers).status_code == 403
    assert client.get(f"/api/users/{bob['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/users/9999", headers=admin_headers).status_code == 404


def test_self_update_cannot_change_role(client, register, make_admin):
    alice, alice_headers, _ = register("Alice", "alice@example.com")
    bob, _bob_headers, _ = register("Bob", "bob@example.com")
    _admin, admin_headers = make_admin()

    response = client.put(
        f"/api/users/{alice['id']}",
        json={"name": "Alice Cooper", "role": "admin", "is_active": False},
        headers=alice_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Alice Cooper"
    assert body["role"] == "member"
    assert body["is_active"] is True

    assert client.put(f"/api/users/{bob['id']}", json={"name": "X Y"}, headers=alice_headers).status_code == 403

    promoted = client.put(f"/api/users/{bob['id']}", json={"role": "manager"}, headers=admin_headers)
    assert promoted.json()["role"] == "manager"


def test_email_change_must_be_unique(client, register):
    alice, alice_headers, _ = register("Alice", "alice@example.com")
    register("Bob", "bob@example.com")

    response = client.put(f"/api/users/{alice['id']}", json={"email": "bob@example.com"}, headers=alice_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Email is already taken"


def test_admin_delete(client, register, make_admin):
    bob, _bob_headers, _ = register("Bob", "bob@example.com")
    admin, admin_headers = make_admin()

    own = client.delete(f"/api/users/{admin['id']}", headers=admin_headers)
    assert own.status_code == 400
    assert own.json()["detail"] == "Cannot delete your own account"

    assert client.delete(f"/api/users/{bob['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/users/{bob['id']}", headers=admin_headers).status_code == 404


def test_search_excludes_existing_members(client, register, create_project, invite):
    _alice, alice_headers, _ = register("Alice", "alice@example.com")
    register("Bob", "bob@example.com")
    register("Bobby", "bobby@example.com")
    project = create_project(alice_headers)
    invite(alice_headers, project["id"], "bob@example.com")

    everyone = client.get("/api/users/search", params={"q": "bob"}, headers=alice_headers).json()
    assert [u["email"] for u in everyone] == ["bob@example.com", "bobby@example.com"]

    outside = client.get(
        "/api/users/search",
        params={"q": "bob", "project_id": project["id"]},
        headers=alice_headers,
    ).json()
    assert [u["email"] for u in outside] == ["bobby@example.com"]
