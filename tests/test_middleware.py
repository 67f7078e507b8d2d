from flask import Blueprint, Flask, jsonify, request

from marketauth.middleware import (
    get_user_email,
    get_user_id,
    get_user_role,
    jwt_auth,
    require_role,
)
from marketauth.models import AccessTokenClaims
from marketauth.roles import ROLE_SELLER, ROLE_USER
from marketauth.service import InvalidTokenError


class StubAuth:
    def __init__(self, claims=None):
        self.claims = claims
        self.seen = []

    def validate_access_token(self, token):
        self.seen.append(token)
        if self.claims is None:
            raise InvalidTokenError()
        return self.claims


def make_client(auth=None, role=None):
    app = Flask(__name__)
    bp = Blueprint("protected", __name__)
    if auth is not None:
        bp.before_request(jwt_auth(auth))
    if role is not None:
        bp.before_request(require_role(role))

    @bp.route("/protected")
    def protected():
        return jsonify(
            {
                "user_id": get_user_id(),
                "email": get_user_email(),
                "role": get_user_role(),
                "header_id": request.headers.get("X-User-ID"),
                "header_email": request.headers.get("X-User-Email"),
                "header_role": request.headers.get("X-User-Role"),
            }
        )

    app.register_blueprint(bp)
    return app.test_client()


def test_jwt_auth_sets_context_and_headers():
    claims = AccessTokenClaims(user_id=42, email="seller@example.com", role=ROLE_SELLER)
    auth = StubAuth(claims)
    client = make_client(auth, ROLE_SELLER)
    response = client.get("/protected", headers={"Authorization": "Bearer token"})
    assert response.status_code == 200
    body = response.get_json()
    assert body["user_id"] == 42
    assert body["email"] == "seller@example.com"
    assert body["role"] == ROLE_SELLER
    assert body["header_id"] == "42"
    assert body["header_email"] == "seller@example.com"
    assert body["header_role"] == ROLE_SELLER
    assert auth.seen == ["token"]


def test_require_role_forbidden():
    claims = AccessTokenClaims(user_id=1, email="user@example.com", role=ROLE_USER)
    client = make_client(StubAuth(claims), ROLE_SELLER)
    response = client.get("/protected", headers={"Authorization": "Bearer token"})
    assert response.status_code == 403
    assert response.get_json() == {"error": "insufficient permissions"}


def test_missing_header():
    client = make_client(StubAuth())
    response = client.get("/protected")
    assert response.status_code == 401
    assert response.get_json() == {"error": "authorization header required"}


def test_wrong_scheme():
    auth = StubAuth()
    client = make_client(auth)
    response = client.get("/protected", headers={"Authorization": "Basic token"})
    assert response.status_code == 401
    assert response.get_json() == {"error": "invalid authorization header format"}
    assert auth.seen == []


def test_scheme_without_token():
    client = make_client(StubAuth())
    response = client.get("/protected", headers={"Authorization": "Bearer"})
    assert response.get_json() == {"error": "invalid authorization header format"}


def test_invalid_token():
    client = make_client(StubAuth())
    response = client.get("/protected", headers={"Authorization": "Bearer token"})
    assert response.status_code == 401
    assert response.get_json() == {"error": "invalid or expired token"}


def test_require_role_without_authentication():
    client = make_client(role=ROLE_SELLER)
    response = client.get("/protected")
    assert response.status_code == 403
    assert response.get_json() == {"error": "role not found in context"}


def test_getters_without_authentication():
    app = Flask(__name__)
    with app.test_request_context("/"):
        assert (get_user_id(), get_user_email(), get_user_role()) == (None, None, None)