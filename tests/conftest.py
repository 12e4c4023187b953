"""Shared fixtures: in-memory database, settings and API client."""

import os

# must be set before erp_backend is imported; database.py builds its engine at import
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from erp_backend.auth.auth_router import create_access_token
from erp_backend.auth.permissions import UserRole, ensure_roles
from erp_backend.config import Settings, get_settings
from erp_backend.database import Base, get_db, get_session_factory
from erp_backend.models import notification, report_audit_log  # noqa: F401
from erp_backend.models.project import Project
from erp_backend.models.task import Task, TaskAssignee
from erp_backend.models.user import Role, User


NOW = datetime(2026, 10, 19, 17, 46)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    ensure_roles(session)
    yield session
    session.close()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        secret_key="test-secret",
        service_role_key="service-role-key",
        resend_api_key="re_test_key",
        resend_from_email="ERP <noreply@example.com>",
        app_url="https://app.example.com",
    )


@pytest.fixture
def api_settings(settings):
    # no provider key: emails scheduled by API calls end as "skipped"
    return settings.model_copy(update={"resend_api_key": None})


@pytest.fixture
def client(db, session_factory, api_settings):
    from erp_backend.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: api_settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# -------------------------
# Factories
# -------------------------

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=UserRole.USER, full_name=None, email=None, **kwargs):
        counter["n"] += 1
        role_row = db.query(Role).filter(Role.name == role.value).first()
        user = User(
            email=email or f"user{counter['n']}@example.com",
            full_name=full_name,
            role_id=role_row.id,
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_project(db):
    def _make(name="Apollo", **kwargs):
        project = Project(name=name, **kwargs)
        db.add(project)
        db.commit()
        db.refresh(project)
        return project

    return _make


@pytest.fixture
def make_task(db):
    def _make(title="Task", assignees=(), **kwargs):
        kwargs.setdefault("created_at", NOW)
        task = Task(title=title, **kwargs)
        db.add(task)
        db.commit()
        for user in assignees:
            db.add(TaskAssignee(task_id=task.id, user_id=user.id))
        db.commit()
        db.refresh(task)
        return task

    return _make


@pytest.fixture
def auth_headers(api_settings):
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(str(user.id), api_settings)}"}

    return _headers
