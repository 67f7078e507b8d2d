"""HTTP handlers for administering user accounts."""

import json
import logging
import re

import bcrypt
from flask import jsonify, request

from marketauth.middleware import get_user_id
from marketauth.models import CreateUserRequest, RequestValidationError, UpdateRoleRequest
from marketauth.repository import UserExistsError, UserNotFoundError
from marketauth.roles import InvalidRoleError, validate_role

_BCRYPT_COST = 10
_BCRYPT_MAX_BYTES = 72
_DEFAULT_LIMIT = 10
_DEFAULT_OFFSET = 0
_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_LIMIT = 1 << 63


def _parse_int(text):
    """Parse a signed decimal 64-bit integer, or return None."""
    if not _INTEGER.fullmatch(text):
        return None
    value = int(text)
    if not -_INT64_LIMIT <= value < _INT64_LIMIT:
        return None
    return value


def _bind(model):
    raw = request.get_data(cache=True)
    if not raw.strip():
        raise RequestValidationError("EOF")
    try:
        data = json.loads(raw)
    except ValueError as err:
        raise RequestValidationError(str(err)) from err
    return model.from_dict({} if data is None else data)


def _hash_password(password):
    raw = password.encode()
    if len(raw) > _BCRYPT_MAX_BYTES:
        raise ValueError("bcrypt: password length exceeds 72 bytes")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=_BCRYPT_COST)).decode()


def _error(status, message):
    return jsonify({"error": message}), status


def _fields(**values):
    return {"fields": values}


class AdminController:
    """Endpoints for creating, listing, re-roling and deleting users."""

    def __init__(self, user_repo, log=None):
        self._users = user_repo
        self._log = log if log is not None else logging.getLogger(__name__)

    def _validated_role(self, role):
        try:
            validate_role(role)
        except InvalidRoleError as err:
            self._log.warning("invalid role", extra=_fields(role=role, error=str(err)))
            return str(err)
        return None

    def create_user(self):
        """Create a user with an explicit role."""
        try:
            req = _bind(CreateUserRequest)
        except RequestValidationError as err:
            self._log.warning("invalid create user request", extra=_fields(error=str(err)))
            return _error(400, str(err))

        problem = self._validated_role(req.role)
        if problem is not None:
            return _error(400, problem)

        try:
            password_hash = _hash_password(req.password)
        except ValueError:
            self._log.error("failed to hash password", exc_info=True)
            return _error(500, "internal server error")

        try:
            user = self._users.create_with_role(req.email, password_hash, req.role)
        except UserExistsError:
            self._log.warning("user already exists", extra=_fields(email=req.email))
            return _error(409, "user already exists")
        except Exception:
            self._log.error("failed to create user", exc_info=True)
            return _error(500, "internal server error")

        self._log.info("user created by admin", extra=_fields(email=req.email, role=req.role))
        return jsonify(user.to_dict()), 201

    def update_user_role(self, user_id):
        """Change the role of the user with id ``user_id`` (a path segment)."""
        target = _parse_int(user_id)
        if target is None:
            self._log.warning("invalid user id", extra=_fields(id=user_id))
            return _error(400, "invalid user id")

        try:
            req = _bind(UpdateRoleRequest)
        except RequestValidationError as err:
            self._log.warning("invalid update role request", extra=_fields(error=str(err)))
            return _error(400, str(err))

        problem = self._validated_role(req.role)
        if problem is not None:
            return _error(400, problem)

        try:
            user = self._users.update_role(target, req.role)
        except UserNotFoundError:
            self._log.warning("user not found", extra=_fields(user_id=target))
            return _error(404, "user not found")
        except Exception:
            self._log.error("failed to update user role", exc_info=True)
            return _error(500, "internal server error")

        self._log.info(
            "user role updated by admin",
            extra=_fields(user_id=target, email=user.email, new_role=req.role),
        )
        return jsonify(user.to_dict()), 200

    def delete_user(self, user_id):
        """Delete the user with id ``user_id``; an admin cannot delete themselves."""
        target = _parse_int(user_id)
        if target is None:
            self._log.warning("invalid user id", extra=_fields(id=user_id))
            return _error(400, "invalid user id")

        current = get_user_id()
        if current is not None and current == target:
            self._log.warning("admin attempted to delete themselves", extra=_fields(user_id=target))
            return _error(400, "cannot delete yourself")

        try:
            self._users.delete(target)
        except UserNotFoundError:
            self._log.warning("user not found for deletion", extra=_fields(user_id=target))
            return _error(404, "user not found")
        except Exception:
            self._log.error("failed to delete user", exc_info=True)
            return _error(500, "internal server error")

        self._log.info("user deleted by admin", extra=_fields(user_id=target))
        return jsonify({"message": "user deleted successfully"}), 200

    def list_users(self):
        """List users newest first, honouring ``limit`` and ``offset`` query values."""
        limit = _DEFAULT_LIMIT
        offset = _DEFAULT_OFFSET

        parsed = _parse_int(request.args.get("limit", ""))
        if parsed is not None and parsed > 0:
            limit = parsed
        parsed = _parse_int(request.args.get("offset", ""))
        if parsed is not None and parsed >= 0:
            offset = parsed

        try:
            found = self._users.list(limit, offset)
        except Exception:
            self._log.error("failed to list users", exc_info=True)
            return _error(500, "internal server error")

        self._log.info(
            "users listed by admin",
            extra=_fields(count=len(found), limit=limit, offset=offset),
        )
        return jsonify([user.to_dict() for user in found]), 200