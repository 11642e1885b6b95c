import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from temanagement.api import app
from temanagement.database import Base, get_db, make_engine
from temanagement.models import Department, Employee
from temanagement.services import create_user


@pytest.fixture
def session_local():
    """Provide an isolated in-memory database for each test."""
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def db(session_local):
    session = session_local()
    yield session
    session.close()


@pytest.fixture
def client(session_local):
    def override_get_db():
        session = session_local()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db):
    """Active admin with an employee profile in the IT department."""
    user = create_user(db, "admin@x.com", "Admin@123", role="admin")
    department = Department(name="IT Department")
    db.add(department)
    db.commit()
    db.add(
        Employee(
            user_id=user.id,
            department_id=department.id,
            first_name="System",
            last_name="Administrator",
            avatar_url="https://cdn.example.com/a.png",
        )
    )
    db.commit()
    return user


@pytest.fixture
def employee(db):
    """Active employee login without a profile row."""
    return create_user(db, "employee@x.com", "Employee@123", role="employee")
