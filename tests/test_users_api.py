"""
Tests for user endpoints and service health checks.
"""

import logging
from fastapi.testclient import TestClient

from flowboard import models
from tests.conftest import auth_headers

logger = logging.getLogger(__name__)


def test_health(client: TestClient):
    assert client.get("/health").json() == {"status": "healthy"}


def test_ping(client: TestClient):
    response = client.get("/api/ping")
    assert response.status_code == 200
    assert response.json()["ok"] == 1


def test_list_users_is_admin_only(client: TestClient, admin_user: models.User, owner_user: models.User):
    assert client.get("/api/users", headers=auth_headers(owner_user)).status_code == 403

    response = client.get("/api/users", headers=auth_headers(admin_user))
    assert response.status_code == 200
    assert {u["username"] for u in response.json()} == {"admin", "owner"}


def test_get_user_hides_password(client: TestClient, owner_user: models.User, outsider_user: models.User):
    response = client.get(f"/api/users/{owner_user.id}", headers=auth_headers(outsider_user))

    assert response.status_code == 200
    assert response.json()["email"] == "owner@test.com"
    assert "passwordHash" not in response.json()


def test_update_own_profile(client: TestClient, owner_user: models.User):
    response = client.patch(
        f"/api/users/{owner_user.id}",
        json={"firstName": "Olive", "contactNumber": "555-0100"},
        headers=auth_headers(owner_user),
    )

    assert response.status_code == 200, response.json()
    assert response.json()["firstName"] == "Olive"
    assert response.json()["contactNumber"] == "555-0100"


def test_cannot_update_other_user(client: TestClient, owner_user: models.User, outsider_user: models.User):
    response = client.patch(
        f"/api/users/{outsider_user.id}", json={"firstName": "X"}, headers=auth_headers(owner_user)
    )
    assert response.status_code == 403


def test_only_admin_changes_role(client: TestClient, owner_user: models.User, admin_user: models.User):
    response = client.patch(
        f"/api/users/{owner_user.id}", json={"role": "admin"}, headers=auth_headers(owner_user)
    )
    assert response.status_code == 403

    response = client.patch(
        f"/api/users/{owner_user.id}", json={"role": "admin"}, headers=auth_headers(admin_user)
    )
    assert response.status_code == 200
    assert response.json()["role"] == "admin"


def test_email_must_stay_unique(client: TestClient, owner_user: models.User, outsider_user: models.User):
    response = client.patch(
        f"/api/users/{owner_user.id}", json={"email": outsider_user.email}, headers=auth_headers(owner_user)
    )
    assert response.status_code == 400


def test_password_change_allows_login(client: TestClient, owner_user: models.User):
    response = client.patch(
        f"/api/users/{owner_user.id}", json={"password": "brand-new-secret"}, headers=auth_headers(owner_user)
    )
    assert response.status_code == 200, response.json()

    response = client.post("/api/auth/login", json={"userNameOrEmail": "owner", "password": "brand-new-secret"})
    assert response.status_code == 200


def test_null_profile_field_is_rejected(client: TestClient, owner_user: models.User):
    for field in ("firstName", "middleName", "lastName", "contactNumber"):
        response = client.patch(
            f"/api/users/{owner_user.id}", json={field: None}, headers=auth_headers(owner_user)
        )
        assert response.status_code == 400, f"{field}: {response.status_code} {response.json()}"

    response = client.get(f"/api/users/{owner_user.id}", headers=auth_headers(owner_user))
    assert response.json()["firstName"] == "Owner"
