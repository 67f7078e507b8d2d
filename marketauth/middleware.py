"""Request hooks that authenticate bearer tokens and check roles."""

from flask import g, jsonify, request

HEADER_AUTHORIZATION = "Authorization"
HEADER_USER_ID = "X-User-ID"
HEADER_USER_EMAIL = "X-User-Email"
HEADER_USER_ROLE = "X-User-Role"
CONTEXT_USER_ID = "user_id"
CONTEXT_USER_EMAIL = "user_email"
CONTEXT_USER_ROLE = "user_role"


def _environ_key(header):
    return "HTTP_" + header.upper().replace("-", "_")


def _reject(status, message):
    return jsonify({"error": message}), status


def jwt_auth(auth_service):
    """Return a before-request hook that requires a valid bearer access token."""

    def authenticate():
        header = request.headers.get(HEADER_AUTHORIZATION, "")
        if not header:
            return _reject(401, "authorization header required")
        parts = header.split(" ", 1)
        if len(parts) != 2 or parts[0] != "Bearer":
            return _reject(401, "invalid authorization header format")
        try:
            claims = auth_service.validate_access_token(parts[1])
        except Exception:
            return _reject(401, "invalid or expired token")

        setattr(g, CONTEXT_USER_ID, claims.user_id)
        setattr(g, CONTEXT_USER_EMAIL, claims.email)
        setattr(g, CONTEXT_USER_ROLE, claims.role)

        request.environ[_environ_key(HEADER_USER_ID)] = str(claims.user_id)
        request.environ[_environ_key(HEADER_USER_EMAIL)] = claims.email
        request.environ[_environ_key(HEADER_USER_ROLE)] = claims.role
        return None

    return authenticate


def require_role(role):
    """Return a before-request hook that admits only users with ``role``."""

    def check():
        user_role = get_user_role()
        if user_role is None:
            return _reject(403, "role not found in context")
        if user_role != role:
            return _reject(403, "insufficient permissions")
        return None

    return check


def get_user_id():
    """The authenticated user's id, or None."""
    value = g.get(CONTEXT_USER_ID)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def get_user_email():
    """The authenticated user's e-mail, or None."""
    value = g.get(CONTEXT_USER_EMAIL)
    return value if isinstance(value, str) else None


def get_user_role():
    """The authenticated user's role, or None."""
    value = g.get(CONTEXT_USER_ROLE)
    return value if isinstance(value, str) else None