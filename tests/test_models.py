from datetime import datetime, timezone

import pytest

from marketauth.models import (
    CreateUserRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    RequestValidationError,
    TokenPair,
    UpdateRoleRequest,
    User,
)


def test_user_to_dict_hides_password_hash():
    created = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    user = User(
        id=7,
        email="user@example.com",
        password_hash="placeholder",
        role="user",
        created_at=created,
        updated_at=created,
    )
    data = user.to_dict()
    assert "password_hash" not in data
    assert "placeholder" not in data.values()
    assert data["id"] == 7
    assert data["email"] == "user@example.com"
    assert data["created_at"] == created.isoformat()


def test_user_to_dict_zero_time():
    assert User(id=1).to_dict()["updated_at"] == "0001-01-01T00:00:00Z"


def test_token_pair_to_dict():
    pair = TokenPair(access_token="token", refresh_token="token", expires_in=900)
    assert pair.to_dict() == {"access_token": "token", "refresh_token": "token", "expires_in": 900}


def test_register_request_valid_without_role():
    req = RegisterRequest.from_dict({"email": "user@example.com", "password": "password"})
    assert req.email == "user@example.com"
    assert req.password == "password"
    assert req.role == ""


def test_register_request_short_password():
    with pytest.raises(RequestValidationError, match="Password"):
        RegisterRequest.from_dict({"email": "user@example.com", "password": "secret"})


def test_register_request_bad_email():
    with pytest.raises(RequestValidationError, match="Email"):
        RegisterRequest.from_dict({"email": "not-an-address", "password": "password"})


def test_register_request_reports_all_fields():
    with pytest.raises(RequestValidationError) as info:
        RegisterRequest.from_dict({})
    message = str(info.value)
    assert "Email" in message
    assert "Password" in message


def test_login_request_requires_password():
    with pytest.raises(RequestValidationError, match="Password"):
        LoginRequest.from_dict({"email": "user@example.com"})


def test_login_request_accepts_short_password():
    req = LoginRequest.from_dict({"email": "user@example.com", "password": "secret"})
    assert req.password == "secret"


def test_non_mapping_body_rejected():
    with pytest.raises(RequestValidationError):
        LoginRequest.from_dict(["user@example.com"])


def test_non_string_field_rejected():
    with pytest.raises(RequestValidationError):
        LoginRequest.from_dict({"email": 5, "password": "password"})


def test_refresh_request():
    assert RefreshRequest.from_dict({"refresh_token": "token"}).refresh_token == "token"
    with pytest.raises(RequestValidationError, match="RefreshToken"):
        RefreshRequest.from_dict({"refresh_token": None})


def test_create_user_request_requires_role():
    with pytest.raises(RequestValidationError, match="Role"):
        CreateUserRequest.from_dict({"email": "admin@example.com", "password": "password"})
    req = CreateUserRequest.from_dict(
        {"email": "admin@example.com", "password": "password", "role": "admin"}
    )
    assert req.role == "admin"


def test_update_role_request():
    assert UpdateRoleRequest.from_dict({"role": "seller"}).role == "seller"
    with pytest.raises(RequestValidationError, match="Role"):
        UpdateRoleRequest.from_dict({"role": ""})