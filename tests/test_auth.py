import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from temanagement.auth import (
    AUTHENTICATED,
    PUBLIC,
    AccessKind,
    CurrentUser,
    authorize,
    roles,
)
from temanagement.database import get_db
from temanagement.errors import register_exception_handlers
from temanagement.models import UserRole
from temanagement.security import TokenClaims, TokenService


@pytest.fixture
def guarded_client(session_local):
    """Small app exercising each access policy."""
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/open", dependencies=[Depends(authorize(PUBLIC))])
    def open_route():
        return {"ok": True}

    @app.get("/any")
    def any_route(request: Request, user: CurrentUser = Depends(authorize(AUTHENTICATED))):
        assert request.state.user == user
        return {"id": user.id, "role": user.role}

    @app.get(
        "/managers",
        dependencies=[Depends(authorize(roles(UserRole.ADMIN, UserRole.MANAGER)))],
    )
    def managers_route():
        return {"ok": True}

    def override_get_db():
        session = session_local()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def _token_for(user) -> dict:
    token = TokenService().issue_access_token(
        TokenClaims(subject_id=user.id, email=user.email, role=user.role)
    )
    return {"Authorization": f"Bearer {token}"}


def test_public_route_needs_no_token(guarded_client):
    assert guarded_client.get("/open").status_code == 200


def test_authenticated_route(guarded_client, employee):
    assert guarded_client.get("/any").status_code == 401
    resp = guarded_client.get("/any", headers=_token_for(employee))
    assert resp.status_code == 200
    assert resp.json() == {"id": employee.id, "role": "employee"}


def test_role_route_allows_listed_roles(guarded_client, admin):
    assert guarded_client.get("/managers", headers=_token_for(admin)).status_code == 200


def test_role_route_forbids_other_roles(guarded_client, employee):
    resp = guarded_client.get("/managers", headers=_token_for(employee))
    assert resp.status_code == 403
    assert resp.json() == {"detail": "Forbidden", "code": "forbidden"}


def test_role_route_still_requires_token(guarded_client):
    assert guarded_client.get("/managers").status_code == 401


def test_role_comes_from_the_store_not_the_token(guarded_client, employee):
    forged = TokenService().issue_access_token(
        TokenClaims(subject_id=employee.id, email=employee.email, role="admin")
    )
    resp = guarded_client.get("/managers", headers={"Authorization": f"Bearer {forged}"})
    assert resp.status_code == 403


def test_token_with_stale_email_rejected(guarded_client, employee):
    token = TokenService().issue_access_token(
        TokenClaims(subject_id=employee.id, email="old@x.com", role="employee")
    )
    resp = guarded_client.get("/any", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_roles_policy():
    policy = roles("admin")
    assert policy.kind is AccessKind.ROLES
    assert policy.permits("admin")
    assert not policy.permits("employee")
    assert AUTHENTICATED.permits("employee")
    with pytest.raises(ValueError):
        roles()


def _failing_client(debug: bool) -> TestClient:
    app = FastAPI()
    register_exception_handlers(app, debug=debug)

    @app.get("/db")
    def db_route():
        raise SQLAlchemyError("boom")

    @app.get("/crash")
    def crash_route():
        raise RuntimeError("boom")

    return TestClient(app, raise_server_exceptions=False)


@pytest.mark.parametrize(
    "path, code, detail",
    [
        ("/db", "database_error", "Database error"),
        ("/crash", "internal_error", "Internal server error"),
    ],
)
def test_server_errors_hide_traceback(path, code, detail):
    resp = _failing_client(debug=False).get(path)
    assert resp.status_code == 500
    assert resp.json() == {"detail": detail, "code": code}


@pytest.mark.parametrize("path, code", [("/db", "database_error"), ("/crash", "internal_error")])
def test_server_errors_include_traceback_in_debug(path, code):
    resp = _failing_client(debug=True).get(path)
    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == code
    assert "boom" in "".join(body["traceback"])
