import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("SECRET_KEY", "tests-secret-key")

from collabtrack.auth.security import hash_password
from collabtrack.config import Settings
from collabtrack.main import create_app
from collabtrack.models.enums import UserRole
from collabtrack.models.user import User


PASSWORD = "password123"
MAX_FILE_SIZE = 1024


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        secret_key="tests-secret-key",
        database_url=f"sqlite:///{tmp_path / 'collabtrack.sqlite3'}",
        upload_dir=str(tmp_path / "uploads"),
        max_file_size=MAX_FILE_SIZE,
        log_level="WARNING",
        bcrypt_rounds=4,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def register(client):
    """Register through the API; returns ``(user, headers, token)``."""

    def _register(name: str, email: str, password: str = PASSWORD):
        response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
        assert response.status_code == 201, response.text
        body = response.json()
        return body["user"], auth_header(body["access_token"]), body["access_token"]

    return _register


@pytest.fixture
def make_admin(app, client):
    def _make_admin(email: str = "admin@example.com"):
        with app.state.database.session() as db:
            db.add(
                User(
                    name="Admin",
                    email=email,
                    password_hash=hash_password(PASSWORD, app.state.settings),
                    role=UserRole.ADMIN.value,
                )
            )
            db.commit()
        response = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
        assert response.status_code == 200, response.text
        body = response.json()
        return body["user"], auth_header(body["access_token"])

    return _make_admin


@pytest.fixture
def create_project(client):
    def _create_project(headers: dict, title: str = "Website Redesign"):
        response = client.post(
            "/api/projects",
            json={"title": title, "description": f"{title} description"},
            headers=headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _create_project


@pytest.fixture
def invite(client):
    def _invite(headers: dict, project_id: int, email: str, role: str = "member"):
        response = client.post(
            f"/api/projects/{project_id}/invite",
            json={"email": email, "role": role},
            headers=headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _invite


@pytest.fixture
def create_task(client):
    def _create_task(headers: dict, project_id: int, title: str = "Design homepage", **extra):
        payload = {"title": title, "description": f"{title} details", "project_id": project_id, **extra}
        response = client.post("/api/tasks", json=payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _create_task


def notifications_for(client, headers: dict) -> list:
    response = client.get("/api/notifications", params={"limit": 100}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]
