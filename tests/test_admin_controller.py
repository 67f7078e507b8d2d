import logging
from http import HTTPStatus

import pytest
from flask import Flask, g
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from marketauth.admin_controller import AdminController
from marketauth.repository import UserNotFoundError, UserRepository, create_schema
from marketauth.service import AuthService


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def repo(engine):
    return UserRepository(engine)


@pytest.fixture
def app():
    return Flask(__name__)


@pytest.fixture
def controller(repo):
    return AdminController(repo, logging.getLogger("test-admin"))


def _run(app, action, *args, user_id=None, **request_kwargs):
    with app.test_request_context(**request_kwargs):
        if user_id is not None:
            g.user_id = user_id
        response, status = action(*args)
        return status, response.get_json()


def test_create_user_stores_user_with_role(app, controller, repo):
    body = {"email": "new@example.com", "password": "password", "role": "seller"}
    status, data = _run(app, controller.create_user, method="POST", json=body)
    assert status == HTTPStatus.CREATED
    assert data["email"] == "new@example.com"
    assert data["role"] == "seller"
    assert "password_hash" not in data
    stored = repo.get_by_email("new@example.com")
    assert stored.role == "seller"
    assert stored.id == data["id"]


def test_created_user_can_log_in(app, controller, repo):
    body = {"email": "login@example.com", "password": "password", "role": "user"}
    _run(app, controller.create_user, method="POST", json=body)

    class _Tokens:
        def create_refresh_token(self, user_id, token, expires_at):
            return None

    from marketauth.config import JWTConfig

    service = AuthService(JWTConfig(access_secret="secret"), repo, _Tokens())
    pair = service.login("login@example.com", "password")
    claims = service.validate_access_token(pair.access_token)
    assert claims.email == "login@example.com"


def test_create_user_rejects_unknown_role(app, controller):
    body = {"email": "new@example.com", "password": "password", "role": "overlord"}
    status, data = _run(app, controller.create_user, method="POST", json=body)
    assert status == HTTPStatus.BAD_REQUEST
    assert data["error"].startswith("invalid role")


def test_create_user_requires_fields(app, controller):
    status, data = _run(app, controller.create_user, method="POST", json={"email": "a@example.com"})
    assert status == HTTPStatus.BAD_REQUEST
    assert "Password" in data["error"]


def test_create_user_duplicate_is_conflict(app, controller):
    body = {"email": "dup@example.com", "password": "password", "role": "user"}
    _run(app, controller.create_user, method="POST", json=body)
    status, data = _run(app, controller.create_user, method="POST", json=body)
    assert status == HTTPStatus.CONFLICT
    assert data == {"error": "user already exists"}


def test_create_user_password_too_long_is_server_error(app, controller):
    body = {"email": "long@example.com", "password": "password" * 10, "role": "user"}
    status, data = _run(app, controller.create_user, method="POST", json=body)
    assert status == HTTPStatus.INTERNAL_SERVER_ERROR
    assert data == {"error": "internal server error"}


def test_update_user_role_changes_role(app, controller, repo):
    user = repo.create_with_role("someone@example.com", "placeholder", "user")
    status, data = _run(
        app, controller.update_user_role, str(user.id), method="PUT", json={"role": "admin"}
    )
    assert status == HTTPStatus.OK
    assert data["role"] == "admin"
    assert repo.get_by_id(user.id).role == "admin"


@pytest.mark.parametrize("raw_id", ["abc", "", "1.5"])
def test_update_user_role_rejects_bad_id(app, controller, raw_id):
    status, data = _run(
        app, controller.update_user_role, raw_id, method="PUT", json={"role": "admin"}
    )
    assert status == HTTPStatus.BAD_REQUEST
    assert data == {"error": "invalid user id"}


def test_update_user_role_unknown_user(app, controller):
    status, data = _run(
        app, controller.update_user_role, "999", method="PUT", json={"role": "user"}
    )
    assert status == HTTPStatus.NOT_FOUND
    assert data == {"error": "user not found"}


def test_update_user_role_rejects_invalid_role(app, controller, repo):
    user = repo.create_with_role("someone@example.com", "placeholder", "user")
    status, data = _run(
        app, controller.update_user_role, str(user.id), method="PUT", json={"role": "king"}
    )
    assert status == HTTPStatus.BAD_REQUEST
    assert data["error"].startswith("invalid role")
    assert repo.get_by_id(user.id).role == "user"


def test_delete_user_removes_user(app, controller, repo):
    user = repo.create_with_role("gone@example.com", "placeholder", "user")
    status, data = _run(app, controller.delete_user, str(user.id), method="DELETE")
    assert status == HTTPStatus.OK
    assert data == {"message": "user deleted successfully"}
    with pytest.raises(UserNotFoundError):
        repo.get_by_id(user.id)


def test_delete_user_refuses_self(app, controller, repo):
    admin = repo.create_with_role("admin@example.com", "placeholder", "admin")
    status, data = _run(
        app, controller.delete_user, str(admin.id), user_id=admin.id, method="DELETE"
    )
    assert status == HTTPStatus.BAD_REQUEST
    assert data == {"error": "cannot delete yourself"}
    assert repo.get_by_id(admin.id).email == "admin@example.com"


def test_delete_user_missing(app, controller):
    status, data = _run(app, controller.delete_user, "12345", method="DELETE")
    assert status == HTTPStatus.NOT_FOUND
    assert data == {"error": "user not found"}


def test_delete_user_bad_id(app, controller):
    status, data = _run(app, controller.delete_user, "x1", method="DELETE")
    assert status == HTTPStatus.BAD_REQUEST
    assert data == {"error": "invalid user id"}


def _seed(repo, count):
    return [
        repo.create_with_role(f"user{n}@example.com", "placeholder", "user") for n in range(count)
    ]


def test_list_users_newest_first(app, controller, repo):
    created = _seed(repo, 3)
    status, data = _run(app, controller.list_users, method="GET")
    assert status == HTTPStatus.OK
    assert [item["email"] for item in data] == [user.email for user in reversed(created)]
    assert all("password_hash" not in item for item in data)


def test_list_users_limit_and_offset(app, controller, repo):
    created = _seed(repo, 3)
    _, first = _run(app, controller.list_users, method="GET", query_string={"limit": "2"})
    _, rest = _run(
        app, controller.list_users, method="GET", query_string={"limit": "2", "offset": "2"}
    )
    assert len(first) == 2
    emails = [item["email"] for item in first + rest]
    assert sorted(emails) == sorted(user.email for user in created)


@pytest.mark.parametrize("limit, offset", [("-1", "-5"), ("abc", "x"), ("0", "")])
def test_list_users_ignores_bad_paging(app, controller, repo, limit, offset):
    created = _seed(repo, 3)
    _, data = _run(
        app,
        controller.list_users,
        method="GET",
        query_string={"limit": limit, "offset": offset},
    )
    assert len(data) == len(created)