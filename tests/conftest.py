import os
import sqlite3
import uuid
from datetime import UTC

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402


class _JoseDateTimeProxy:
    @staticmethod
    def utcnow():
        from datetime import datetime

        return datetime.now(UTC)

    @staticmethod
    def now(tz=None):
        from datetime import datetime

        return datetime.now(tz)

    def __getattr__(self, name: str):
        from datetime import datetime

        return getattr(datetime, name)


@pytest.fixture(autouse=True)
def _patch_jose_datetime(monkeypatch):
    import jose.jwt as jose_jwt

    monkeypatch.setattr(jose_jwt, "datetime", _JoseDateTimeProxy, raising=False)


# Register UUID adapter for SQLite - store as string
sqlite3.register_adapter(uuid.UUID, lambda u: str(u))

# Monkey-patch SQLAlchemy's UUID type for SQLite compatibility
# This must happen before any models are imported
from sqlalchemy.sql import sqltypes  # noqa: E402

_original_uuid_bind_processor = sqltypes.Uuid.bind_processor
_original_uuid_result_processor = sqltypes.Uuid.result_processor


def _sqlite_uuid_bind_processor(self, dialect):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return str(value)
                return str(uuid.UUID(value)) if value else None
            return None
        return process
    return _original_uuid_bind_processor(self, dialect)


def _sqlite_uuid_result_processor(self, dialect, coltype):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return value
                return uuid.UUID(value) if value else None
            return None
        return process
    return _original_uuid_result_processor(self, dialect, coltype)


sqltypes.Uuid.bind_processor = _sqlite_uuid_bind_processor
sqltypes.Uuid.result_processor = _sqlite_uuid_result_processor

import app.models  # noqa: F401,E402
from app.container import container  # noqa: E402
from app.db import Base  # noqa: E402
from app.models.auth import Account  # noqa: E402
from app.models.organization import Department, Member, Role  # noqa: E402
from app.models.projects import Project, Task, TaskMember, TaskMemberRole  # noqa: E402
from app.services import auth_flow  # noqa: E402
from app.services.identity import identity_from_account  # noqa: E402

DEFAULT_PASSWORD = "secret123"

ROLE_NAMES = {
    "admin": "Admin",
    "director": "Director",
    "pmo": "PMO",
    "leader": "Leader",
    "staff": "Staff",
}


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_cache():
    cache = container.cache()
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def roles(db_session):
    created = {}
    for key, name in ROLE_NAMES.items():
        role = Role(name=name)
        db_session.add(role)
        created[key] = role
    db_session.commit()
    return created


@pytest.fixture()
def department(db_session):
    department = Department(name="Engineering")
    db_session.add(department)
    db_session.commit()
    db_session.refresh(department)
    return department


@pytest.fixture()
def other_department(db_session):
    department = Department(name="Marketing")
    db_session.add(department)
    db_session.commit()
    db_session.refresh(department)
    return department


@pytest.fixture()
def make_account(db_session, roles):
    def _make(role_key, department=None, username=None, full_name=None, with_member=True, role_name=None):
        username = username or f"{role_key}-{uuid.uuid4().hex[:8]}"
        member = None
        if with_member:
            member = Member(
                full_name=full_name or username.title(),
                email=f"{username}@example.com",
                department_id=department.id if department else None,
            )
            db_session.add(member)
            db_session.flush()
        if role_name is not None:
            role = Role(name=role_name)
            db_session.add(role)
            db_session.flush()
        else:
            role = roles[role_key]
        account = Account(
            username=username,
            email=f"{username}@example.com",
            password_hash=auth_flow.hash_password(DEFAULT_PASSWORD),
            role_id=role.id,
            member_id=member.id if member else None,
            failed_login_attempts=0,
        )
        db_session.add(account)
        db_session.commit()
        db_session.refresh(account)
        return account

    return _make


@pytest.fixture()
def admin_account(make_account):
    return make_account("admin", username="admin")


@pytest.fixture()
def director_account(make_account):
    return make_account("director", username="director")


@pytest.fixture()
def pmo_account(make_account):
    return make_account("pmo", username="pmo")


@pytest.fixture()
def leader_account(make_account, department):
    return make_account("leader", department, username="leader")


@pytest.fixture()
def other_leader_account(make_account, other_department):
    return make_account("leader", other_department, username="leader2")


@pytest.fixture()
def staff_account(make_account, department):
    return make_account("staff", department, username="staff")


@pytest.fixture()
def second_staff_account(make_account, department):
    return make_account("staff", department, username="staff2")


@pytest.fixture()
def outside_staff_account(make_account, other_department):
    return make_account("staff", other_department, username="staff3")


@pytest.fixture()
def identity_for(db_session):
    def _identity(account):
        db_session.refresh(account)
        return identity_from_account(account)

    return _identity


@pytest.fixture()
def project(db_session, department, pmo_account):
    project = Project(
        name="Website relaunch",
        department_id=department.id,
        status="active",
        created_by_account_id=pmo_account.id,
    )
    db_session.add(project)
    db_session.commit()
    db_session.refresh(project)
    return project


@pytest.fixture()
def make_task(db_session, pmo_account):
    def _make(project, title="Build landing page", assignees=(), parent=None, status="pending"):
        task = Task(
            project_id=project.id,
            parent_task_id=parent.id if parent else None,
            title=title,
            status=status,
            progress=0,
            created_by_account_id=pmo_account.id,
        )
        db_session.add(task)
        db_session.flush()
        for position, account in enumerate(assignees):
            task.members.append(
                TaskMember(
                    member_id=account.member_id,
                    role=TaskMemberRole.lead.value if position == 0 else TaskMemberRole.member.value,
                    position=position,
                )
            )
        if assignees:
            task.assigned_member_id = assignees[0].member_id
        db_session.commit()
        db_session.refresh(task)
        return task

    return _make


@pytest.fixture()
def task(make_task, project, staff_account):
    return make_task(project, assignees=[staff_account])


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient

    from app.db import get_db
    from app.main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def auth_headers():
    def _headers(account):
        token = auth_flow.issue_tokens(account)["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _headers
