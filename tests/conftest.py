"""
Test configuration and fixtures for Flowboard tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- Authentication helpers (JWT token generation)
- Common fixtures for users with each project role, and a shared project
"""

import os
import logging
from datetime import timedelta
from typing import Generator, Dict

import pytest

# Must be set before flowboard.auth.security is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from flowboard import models
from flowboard.database import Database, get_db
from flowboard.main import app
from flowboard.auth.security import hash_password, create_access_token

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite://"


@pytest.fixture(scope="function")
def database() -> Generator[Database, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    logger.debug("Creating test database")
    database = Database(SQLALCHEMY_TEST_DATABASE_URL)
    database.create_all()
    try:
        yield database
    finally:
        database.dispose()
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def test_db(database: Database) -> Generator[Session, None, None]:
    db = database.session()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client(database: Database, test_db: Session) -> TestClient:
    """
    Create FastAPI test client with database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.state.database = database
    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    app.state.database = None


def make_user(test_db: Session, username: str, role: models.UserRole = models.UserRole.user) -> models.User:
    user = models.User(
        username=username,
        email=f"{username}@test.com",
        first_name=username.capitalize(),
        password_hash=hash_password(f"{username}-password"),
        role=role,
    )
    test_db.add(user)
    test_db.commit()
    test_db.refresh(user)
    logger.info(f"Created user {username} with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def admin_user(test_db: Session) -> models.User:
    """Global admin holding no project roles."""
    return make_user(test_db, "admin", models.UserRole.admin)


@pytest.fixture(scope="function")
def owner_user(test_db: Session) -> models.User:
    return make_user(test_db, "owner")


@pytest.fixture(scope="function")
def editor_user(test_db: Session) -> models.User:
    return make_user(test_db, "editor")


@pytest.fixture(scope="function")
def viewer_user(test_db: Session) -> models.User:
    return make_user(test_db, "viewer")


@pytest.fixture(scope="function")
def outsider_user(test_db: Session) -> models.User:
    """A user with no relation to any project."""
    return make_user(test_db, "outsider")


def create_auth_token(user: models.User, expires_delta: timedelta = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override

    Returns:
        JWT access token string
    """
    logger.debug(f"Creating auth token for user {user.id}")
    token_data = {
        "sub": str(user.id),
        "role": user.role.value,
        "email": user.email
    }
    return create_access_token(token_data, expires_delta)


def auth_headers(user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(user)}"}


@pytest.fixture(scope="function")
def project(
    test_db: Session,
    owner_user: models.User,
    editor_user: models.User,
    viewer_user: models.User,
) -> models.Project:
    """
    Project created by owner_user, with editor_user as Editor and viewer_user as Viewer.
    """
    logger.debug("Creating test project")
    project = models.Project(
        name="Launch",
        description="A project for testing",
        created_by=owner_user.id,
        team_members=[owner_user.id, editor_user.id, viewer_user.id],
        permissions={
            str(owner_user.id): "Owner",
            str(editor_user.id): "Editor",
            str(viewer_user.id): "Viewer",
        },
    )
    test_db.add(project)
    test_db.commit()
    test_db.refresh(project)
    logger.info(f"Created test project with ID: {project.id}")
    return project


@pytest.fixture(scope="function")
def other_project(test_db: Session, outsider_user: models.User) -> models.Project:
    """Project owned by outsider_user that nobody else belongs to."""
    project = models.Project(
        name="Elsewhere",
        created_by=outsider_user.id,
        team_members=[outsider_user.id],
        permissions={str(outsider_user.id): "Owner"},
    )
    test_db.add(project)
    test_db.commit()
    test_db.refresh(project)
    return project


@pytest.fixture(scope="function")
def category(test_db: Session, project: models.Project, owner_user: models.User) -> models.Category:
    category = models.Category(project_id=project.id, category_name="Backlog", created_by=owner_user.id)
    test_db.add(category)
    test_db.commit()
    test_db.refresh(category)
    return category
