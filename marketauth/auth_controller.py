"""HTTP handlers for registration, login, token refresh and logout."""

import json
import logging

from flask import jsonify, request

from marketauth.models import LoginRequest, RefreshRequest, RegisterRequest, RequestValidationError
from marketauth.repository import UserExistsError
from marketauth.roles import is_valid_role
from marketauth.service import InvalidCredentialsError

_ACCESS_COOKIE = "access_token"
_REFRESH_COOKIE = "refresh_token"
_ACCESS_COOKIE_AGE = 15 * 60
_REFRESH_COOKIE_AGE = 24 * 60 * 60
_REFRESH_ACTION = "refresh"
_LOGOUT_ACTION = "logout"


def _bind(model):
    raw = request.get_data(cache=True)
    if not raw.strip():
        raise RequestValidationError("EOF")
    try:
        data = json.loads(raw)
    except ValueError as err:
        raise RequestValidationError(str(err)) from err
    return model.from_dict({} if data is None else data)


def _error(status, message):
    return jsonify({"error": message}), status


def _fields(**values):
    return {"fields": values}


def _set_cookies(response, access_token, refresh_token, clear=False):
    for name, value, age in (
        (_ACCESS_COOKIE, access_token, _ACCESS_COOKIE_AGE),
        (_REFRESH_COOKIE, refresh_token, _REFRESH_COOKIE_AGE),
    ):
        if clear:
            response.set_cookie(name, "", max_age=0, expires=0, path="/", secure=False, httponly=True)
        else:
            response.set_cookie(name, value, max_age=age, path="/", secure=False, httponly=True)


def _token_response(tokens, status):
    response = jsonify(tokens.to_dict())
    response.status_code = status
    _set_cookies(response, tokens.access_token, tokens.refresh_token)
    return response


class AuthController:
    """Public authentication endpoints."""

    def __init__(self, auth_service, log=None):
        self._auth = auth_service
        self._log = log if log is not None else logging.getLogger(__name__)

    def _presented_refresh(self, action):
        from_cookie = request.cookies.get(_REFRESH_COOKIE)
        if from_cookie:
            return from_cookie
        try:
            return _bind(RefreshRequest).refresh_token
        except RequestValidationError as err:
            self._log.warning(f"invalid {action} request", extra=_fields(error=str(err)))
            return None

    def register(self):
        try:
            req = _bind(RegisterRequest)
        except RequestValidationError as err:
            self._log.warning("invalid registration request", extra=_fields(error=str(err)))
            return _error(400, str(err))

        if req.role and not is_valid_role(req.role):
            self._log.warning("invalid role provided", extra=_fields(role=req.role))
            return _error(400, "invalid role")

        try:
            tokens = self._auth.register(req.email, req.password, req.role)
        except UserExistsError:
            self._log.warning("user already exists", extra=_fields(email=req.email))
            return _error(409, "user already exists")
        except Exception:
            self._log.error("failed to register user", exc_info=True)
            return _error(500, "internal server error")

        self._log.info("user registered successfully", extra=_fields(email=req.email))
        return _token_response(tokens, 201)

    def login(self):
        try:
            req = _bind(LoginRequest)
        except RequestValidationError as err:
            self._log.warning("invalid login request", extra=_fields(error=str(err)))
            return _error(400, str(err))

        try:
            tokens = self._auth.login(req.email, req.password)
        except InvalidCredentialsError:
            self._log.warning("invalid credentials", extra=_fields(email=req.email))
            return _error(401, "invalid credentials")
        except Exception:
            self._log.error("failed to login user", exc_info=True)
            return _error(500, "internal server error")

        self._log.info("user logged in successfully", extra=_fields(email=req.email))
        return _token_response(tokens, 200)

    def refresh(self):
        presented = self._presented_refresh(_REFRESH_ACTION)
        if presented is None:
            return _error(400, "refresh token required in cookie or body")

        try:
            tokens = self._auth.refresh_tokens(presented)
        except Exception:
            self._log.warning("failed to refresh tokens", exc_info=True)
            return _error(401, "invalid or expired refresh token")

        self._log.info("tokens refreshed successfully")
        return _token_response(tokens, 200)

    def logout(self):
        presented = self._presented_refresh(_LOGOUT_ACTION)
        if presented is None:
            return _error(400, "refresh token required in cookie or body")

        try:
            self._auth.revoke_token(presented)
        except Exception:
            self._log.error("failed to revoke token", exc_info=True)

        response = jsonify({"message": "logged out successfully"})
        _set_cookies(response, None, None, clear=True)
        self._log.info("user logged out successfully")
        return response