"""Registration, login and token issuing."""

import base64
import secrets
from datetime import datetime, timezone

import bcrypt
import jwt

from marketauth.models import AccessTokenClaims, RefreshTokenClaims, TokenPair
from marketauth.repository import UserNotFoundError
from marketauth.roles import ROLE_USER, default_role

_BCRYPT_COST = 10
_BCRYPT_MAX_BYTES = 72
_REFRESH_TOKEN_BYTES = 32
_HMAC_ALGORITHMS = ["HS256", "HS384", "HS512"]


class InvalidCredentialsError(Exception):
    """Raised when an e-mail and password do not match a user."""

    def __init__(self, message="invalid credentials"):
        super().__init__(message)


class InvalidTokenError(Exception):
    """Raised when a token is malformed, badly signed or expired."""

    def __init__(self, message="invalid token"):
        super().__init__(message)


def _hash_password(password):
    raw = password.encode()
    if len(raw) > _BCRYPT_MAX_BYTES:
        raise ValueError("bcrypt: password length exceeds 72 bytes")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=_BCRYPT_COST)).decode()


def _password_matches(password_hash, password):
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class AuthService:
    """Issues access and refresh tokens for users held by the repositories."""

    def __init__(self, cfg, user_repo, token_repo):
        self._cfg = cfg
        self._users = user_repo
        self._tokens = token_repo

    def register(self, email, password, role=""):
        """Create a user and return a fresh token pair."""
        password_hash = _hash_password(password)
        if not role:
            role = default_role()
        user = self._users.create_with_role(email, password_hash, role)
        user.role = role
        return self._generate_token_pair(user)

    def login(self, email, password):
        """Check the credentials and return a fresh token pair."""
        try:
            user = self._users.get_by_email(email)
        except UserNotFoundError as err:
            raise InvalidCredentialsError() from err
        if not _password_matches(user.password_hash, password):
            raise InvalidCredentialsError()
        return self._generate_token_pair(user)

    def refresh_tokens(self, refresh_token):
        """Swap a live refresh token for a new token pair, revoking the old one."""
        self._validate_refresh_token(refresh_token)
        stored = self._tokens.get_refresh_token(refresh_token)
        user = self._users.get_by_id(stored.user_id)
        self._tokens.revoke_refresh_token(refresh_token)
        return self._generate_token_pair(user)

    def revoke_token(self, refresh_token):
        self._tokens.revoke_refresh_token(refresh_token)

    def validate_access_token(self, token):
        """Return the claims of a valid access token or raise InvalidTokenError."""
        try:
            claims = jwt.decode(
                token,
                self._cfg.access_secret,
                algorithms=_HMAC_ALGORITHMS,
                options={"verify_aud": False, "verify_iat": False},
            )
        except jwt.PyJWTError as err:
            raise InvalidTokenError() from err

        user_id = claims.get("user_id")
        if not _is_number(user_id):
            raise InvalidTokenError()
        email = claims.get("email")
        if not isinstance(email, str):
            raise InvalidTokenError()
        role = claims.get("role")
        if not isinstance(role, str):
            role = ROLE_USER
        return AccessTokenClaims(user_id=int(user_id), email=email, role=role)

    def _generate_token_pair(self, user):
        access_token = self._generate_access_token(user)
        refresh_token = self._generate_refresh_token()
        expires_at = datetime.now(timezone.utc) + self._cfg.refresh_expiration
        self._tokens.create_refresh_token(user.id, refresh_token, expires_at)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self._cfg.access_expiration.total_seconds()),
        )

    def _generate_access_token(self, user):
        now = datetime.now(timezone.utc)
        claims = {
            "user_id": user.id,
            "email": user.email,
            "role": user.role,
            "iss": self._cfg.issuer,
            "iat": int(now.timestamp()),
            "exp": int((now + self._cfg.access_expiration).timestamp()),
        }
        return jwt.encode(claims, self._cfg.access_secret, algorithm="HS256")

    @staticmethod
    def _generate_refresh_token():
        return base64.urlsafe_b64encode(secrets.token_bytes(_REFRESH_TOKEN_BYTES)).decode()

    @staticmethod
    def _validate_refresh_token(token):
        if not token:
            raise InvalidTokenError()
        return RefreshTokenClaims()