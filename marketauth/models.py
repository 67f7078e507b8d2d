"""Data records and request bodies of the auth service."""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

_ZERO_TIME = "0001-01-01T00:00:00Z"

_EMAIL = re.compile(
    r"[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)*"
)


class RequestValidationError(ValueError):
    """Raised when a request body is malformed or fails validation."""


def _timestamp(value):
    return value.isoformat() if value is not None else _ZERO_TIME


def _required(value):
    return bool(value)


def _email(value):
    return _EMAIL.fullmatch(value) is not None


def _min_length(size):
    return lambda value: len(value) >= size


_REQUIRED = ("required", _required)
_EMAIL_RULE = ("email", _email)
_MIN_8 = ("min", _min_length(8))


def _strings(struct_name, data, keys):
    if not isinstance(data, Mapping):
        raise RequestValidationError("request body must be a JSON object")
    values = {}
    for key in keys:
        value = data.get(key)
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise RequestValidationError(
                f"cannot read {type(value).__name__} into field {struct_name}.{key} of type string"
            )
        values[key] = value
    return values


def _check(struct_name, rules):
    problems = []
    for field_name, value, checks in rules:
        for tag, predicate in checks:
            if not predicate(value):
                problems.append(
                    f"Key: '{struct_name}.{field_name}' Error:Field validation "
                    f"for '{field_name}' failed on the '{tag}' tag"
                )
                break
    if problems:
        raise RequestValidationError("\n".join(problems))


@dataclass
class User:
    id: int = 0
    email: str = ""
    password_hash: str = field(default="", repr=False)
    role: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self):
        """Public JSON form; the password hash is never included."""
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "created_at": _timestamp(self.created_at),
            "updated_at": _timestamp(self.updated_at),
        }


@dataclass
class RefreshToken:
    id: int = 0
    user_id: int = 0
    token: str = field(default="", repr=False)
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    revoked: bool = False


@dataclass
class TokenBlacklist:
    id: str = ""
    token_jti: str = ""
    user_id: int = 0
    blacklisted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    reason: str = ""


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int

    def to_dict(self):
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
        }


@dataclass
class RegisterRequest:
    email: str
    password: str = field(repr=False)
    role: str = ""

    @classmethod
    def from_dict(cls, data):
        values = _strings("RegisterRequest", data, ("email", "password", "role"))
        _check(
            "RegisterRequest",
            [
                ("Email", values["email"], (_REQUIRED, _EMAIL_RULE)),
                ("Password", values["password"], (_REQUIRED, _MIN_8)),
            ],
        )
        return cls(email=values["email"], password=values["password"], role=values["role"])


@dataclass
class LoginRequest:
    email: str
    password: str = field(repr=False)

    @classmethod
    def from_dict(cls, data):
        values = _strings("LoginRequest", data, ("email", "password"))
        _check(
            "LoginRequest",
            [
                ("Email", values["email"], (_REQUIRED, _EMAIL_RULE)),
                ("Password", values["password"], (_REQUIRED,)),
            ],
        )
        return cls(email=values["email"], password=values["password"])


@dataclass
class RefreshRequest:
    refresh_token: str = field(repr=False)

    @classmethod
    def from_dict(cls, data):
        values = _strings("RefreshRequest", data, ("refresh_token",))
        _check("RefreshRequest", [("RefreshToken", values["refresh_token"], (_REQUIRED,))])
        return cls(refresh_token=values["refresh_token"])


@dataclass
class AccessTokenClaims:
    user_id: int
    email: str
    role: str
    jti: str = ""


@dataclass
class RefreshTokenClaims:
    user_id: int = 0
    token_id: int = 0


@dataclass
class CreateUserRequest:
    email: str
    password: str = field(repr=False)
    role: str = ""

    @classmethod
    def from_dict(cls, data):
        values = _strings("CreateUserRequest", data, ("email", "password", "role"))
        _check(
            "CreateUserRequest",
            [
                ("Email", values["email"], (_REQUIRED, _EMAIL_RULE)),
                ("Password", values["password"], (_REQUIRED, _MIN_8)),
                ("Role", values["role"], (_REQUIRED,)),
            ],
        )
        return cls(email=values["email"], password=values["password"], role=values["role"])


@dataclass
class UpdateRoleRequest:
    role: str

    @classmethod
    def from_dict(cls, data):
        values = _strings("UpdateRoleRequest", data, ("role",))
        _check("UpdateRoleRequest", [("Role", values["role"], (_REQUIRED,))])
        return cls(role=values["role"])