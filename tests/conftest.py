"""Pytest configuration and fixtures"""

import os
import uuid
from datetime import datetime

import pytest
from sqlalchemy.pool import StaticPool

from permgate.config import Settings
from permgate.database.database import Base, create_db_engine, create_session_factory
from permgate.database import models  # noqa: F401
from permgate.database.models import Group, Organization, Project, User

# In-memory SQLite unless a real database is provided
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")

NOW = datetime(2024, 1, 15, 10, 30, 0)


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment's .env file."""
    values = {"DATABASE_URL": TEST_DATABASE_URL}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(scope="function")
def engine():
    """Fresh engine with all tables created."""
    kwargs = {}
    if TEST_DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    test_engine = create_db_engine(make_settings(), **kwargs)
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    """Database session for one test."""
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock():
    """Fixed clock for authorization timestamps."""
    return lambda: NOW


@pytest.fixture
def organization(db):
    """Default organization."""
    org = Organization(key=f"org-{uuid.uuid4().hex[:6]}", name="Default Organization")
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def make_user(db):
    """Factory creating users by login."""
    def _make_user(login: str = None) -> User:
        login = login or f"user-{uuid.uuid4().hex[:6]}"
        user = User(login=login, name=login.capitalize(), email=f"{login}@example.com")
        db.add(user)
        db.commit()
        return user
    return _make_user


@pytest.fixture
def make_group(db, organization):
    """Factory creating groups in the default organization."""
    def _make_group(name: str = None) -> Group:
        group = Group(
            name=name or f"group-{uuid.uuid4().hex[:6]}",
            organization_id=organization.id,
        )
        db.add(group)
        db.commit()
        return group
    return _make_group


@pytest.fixture
def make_project(db, organization):
    """Factory creating projects in the default organization."""
    def _make_project(key: str = None) -> Project:
        key = key or f"project-{uuid.uuid4().hex[:6]}"
        project = Project(key=key, name=key, organization_id=organization.id)
        db.add(project)
        db.commit()
        return project
    return _make_project


@pytest.fixture
def add_member(db):
    """Add a user to a group."""
    def _add_member(user: User, group: Group) -> None:
        group.users.append(user)
        db.commit()
    return _add_member
