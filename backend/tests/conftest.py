"""
Test configuration and fixtures for workspace tracker tests.

Provides:
- A fresh file-backed SQLite database per test (a file rather than
  ``:memory:`` so the analytics thread pool can open its own sessions)
- FastAPI test client with database dependency overrides
- Authentication helpers (JWT token generation)
- Common fixtures for users, workspaces, members, projects, and tasks
"""

import os
import sys
import logging
import tempfile
from datetime import datetime, timedelta
from typing import Callable, Dict, Generator, Optional

# Settings are read at import time, so the environment is prepared first
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.mkdtemp(), "unused.db")
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp()
os.environ.pop("MAIL_SERVER", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db, get_session_factory
from main import app
import models
from auth.security import hash_password, create_access_token
from invites import generate_invite_code
from repository import SqlAlchemyRepository

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


@pytest.fixture(scope="function")
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """
    Create a fresh SQLite database file for each test.

    This ensures test isolation; every session opened from the factory sees
    the data committed by the others.
    """
    logger.debug("Creating test database")
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def test_db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def repo(test_db: Session) -> SqlAlchemyRepository:
    return SqlAlchemyRepository(test_db)


@pytest.fixture(scope="function")
def client(test_db: Session, session_factory: sessionmaker) -> TestClient:
    """
    Create FastAPI test client with database dependency overrides.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def make_user(db: Session, name: str, email: str, password: str = "password123") -> models.User:
    user = models.User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {email} with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def user(test_db: Session) -> models.User:
    """Workspace owner (ADMIN of the ``workspace`` fixture)."""
    return make_user(test_db, "Alice Admin", "alice@test.com")


@pytest.fixture(scope="function")
def other_user(test_db: Session) -> models.User:
    """Plain MEMBER of the ``workspace`` fixture (once ``member`` is requested)."""
    return make_user(test_db, "Bob Member", "bob@test.com")


@pytest.fixture(scope="function")
def outsider(test_db: Session) -> models.User:
    """User with no membership anywhere."""
    return make_user(test_db, "Carol Outsider", "carol@test.com")


def create_auth_token(user: models.User, expires_delta: Optional[timedelta] = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override

    Returns:
        JWT access token string
    """
    logger.debug(f"Creating auth token for user {user.id}")
    return create_access_token(user.id, expires_delta)


@pytest.fixture(scope="function")
def headers_for() -> Callable[[models.User], Dict[str, str]]:
    """Build authorization headers for any user."""
    def _headers(user: models.User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_auth_token(user)}"}
    return _headers


@pytest.fixture(scope="function")
def auth_headers(user: models.User, headers_for) -> Dict[str, str]:
    return headers_for(user)


@pytest.fixture(scope="function")
def member_headers(other_user: models.User, headers_for) -> Dict[str, str]:
    return headers_for(other_user)


@pytest.fixture(scope="function")
def outsider_headers(outsider: models.User, headers_for) -> Dict[str, str]:
    return headers_for(outsider)


@pytest.fixture(scope="function")
def workspace(test_db: Session, user: models.User) -> models.Workspace:
    """
    Create a test workspace with ``user`` as its ADMIN.
    """
    logger.debug("Creating test workspace")
    workspace = models.Workspace(
        name="Test Workspace",
        user_id=user.id,
        invite_code=generate_invite_code(),
    )
    test_db.add(workspace)
    test_db.commit()
    test_db.refresh(workspace)

    test_db.add(models.Member(workspace_id=workspace.id, user_id=user.id, role=models.MemberRole.ADMIN))
    test_db.commit()

    logger.info(f"Created test workspace with ID: {workspace.id}")
    return workspace


@pytest.fixture(scope="function")
def admin_member(test_db: Session, workspace: models.Workspace, user: models.User) -> models.Member:
    return (
        test_db.query(models.Member)
        .filter(models.Member.workspace_id == workspace.id, models.Member.user_id == user.id)
        .one()
    )


@pytest.fixture(scope="function")
def member(test_db: Session, workspace: models.Workspace, other_user: models.User) -> models.Member:
    """``other_user`` joined to ``workspace`` as a plain MEMBER."""
    member = models.Member(workspace_id=workspace.id, user_id=other_user.id, role=models.MemberRole.MEMBER)
    test_db.add(member)
    test_db.commit()
    test_db.refresh(member)
    return member


@pytest.fixture(scope="function")
def project(test_db: Session, workspace: models.Workspace) -> models.Project:
    project = models.Project(workspace_id=workspace.id, name="Test Project")
    test_db.add(project)
    test_db.commit()
    test_db.refresh(project)
    logger.info(f"Created test project with ID: {project.id}")
    return project


@pytest.fixture(scope="function")
def make_task(test_db: Session) -> Callable[..., models.Task]:
    """Factory inserting tasks directly, with full control over position and timestamps."""
    def _make_task(
        project: models.Project,
        name: str = "Task",
        status: models.TaskStatus = models.TaskStatus.TODO,
        position: int = 1000,
        assignee: Optional[models.Member] = None,
        due_date: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        **kwargs,
    ) -> models.Task:
        fields = dict(
            name=name,
            status=status,
            priority=models.TaskPriority.MEDIUM,
            workspace_id=project.workspace_id,
            project_id=project.id,
            assignee_id=assignee.id if assignee is not None else None,
            position=position,
            due_date=due_date,
            **kwargs,
        )
        if created_at is not None:
            fields["created_at"] = created_at
        task = models.Task(**fields)
        test_db.add(task)
        test_db.commit()
        test_db.refresh(task)
        return task
    return _make_task
