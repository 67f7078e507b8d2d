"""Persistence of users and refresh tokens."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    delete,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError

from marketauth.config import JWTConfig
from marketauth.models import RefreshToken, User
from marketauth.roles import ROLE_ADMIN, ROLE_USER, validate_role


class UserNotFoundError(LookupError):
    def __init__(self, message="user not found"):
        super().__init__(message)


class UserExistsError(ValueError):
    def __init__(self, message="user already exists"):
        super().__init__(message)


class TokenNotFoundError(LookupError):
    def __init__(self, message="refresh token not found"):
        super().__init__(message)


class TokenRevokedError(ValueError):
    def __init__(self, message="refresh token revoked"):
        super().__init__(message)


class TokenExpiredError(ValueError):
    def __init__(self, message="refresh token expired"):
        super().__init__(message)


metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("role", String(32), nullable=False, server_default=ROLE_USER),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("token", String(512), nullable=False, unique=True),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("revoked", Boolean, nullable=False, default=False),
)

_USER_COLUMNS = (
    users.c.id,
    users.c.email,
    users.c.password_hash,
    users.c.role,
    users.c.created_at,
    users.c.updated_at,
)


def create_schema(engine):
    """Create the users and refresh_tokens tables if they are missing."""
    metadata.create_all(engine)


def _now():
    return datetime.now(timezone.utc)


def _aware(value):
    """Treat naive timestamps as UTC so they compare with aware ones."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _user(row):
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _token(row):
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=_aware(row.expires_at),
        created_at=_aware(row.created_at),
        revoked=bool(row.revoked),
    )


def _is_duplicate_email(err):
    message = str(err.orig) if err.orig is not None else str(err)
    return "users_email_key" in message or "users.email" in message


class UserRepository:
    """Stores user accounts."""

    def __init__(self, engine, cfg=None):
        self._engine = engine
        self._cfg = cfg if cfg is not None else JWTConfig()

    def _insert(self, email, password_hash, role):
        now = _now()
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    insert(users).values(
                        email=email,
                        password_hash=password_hash,
                        role=role,
                        created_at=now,
                        updated_at=now,
                    )
                )
                user_id = result.inserted_primary_key[0]
                row = conn.execute(select(*_USER_COLUMNS).where(users.c.id == user_id)).one()
        except IntegrityError as err:
            if _is_duplicate_email(err):
                raise UserExistsError() from err
            raise
        return _user(row)

    def create(self, email, password_hash):
        """Create a user; the configured first admin e-mail gets the admin role."""
        role = ROLE_USER
        first_admin = self._cfg.first_admin_email
        if first_admin and email == first_admin:
            role = ROLE_ADMIN
        return self._insert(email, password_hash, role)

    def create_with_role(self, email, password_hash, role):
        """Create a user with an explicit, validated role."""
        validate_role(role)
        return self._insert(email, password_hash, role)

    def _get_one(self, condition):
        with self._engine.connect() as conn:
            row = conn.execute(select(*_USER_COLUMNS).where(condition)).first()
        if row is None:
            raise UserNotFoundError()
        return _user(row)

    def get_by_email(self, email):
        return self._get_one(users.c.email == email)

    def get_by_id(self, user_id):
        return self._get_one(users.c.id == user_id)

    def update_role(self, user_id, role):
        """Change a user's role and return the updated user."""
        validate_role(role)
        with self._engine.begin() as conn:
            result = conn.execute(
                update(users).where(users.c.id == user_id).values(role=role, updated_at=_now())
            )
            if result.rowcount == 0:
                raise UserNotFoundError()
            row = conn.execute(select(*_USER_COLUMNS).where(users.c.id == user_id)).one()
        return _user(row)

    def delete(self, user_id):
        with self._engine.begin() as conn:
            result = conn.execute(delete(users).where(users.c.id == user_id))
        if result.rowcount == 0:
            raise UserNotFoundError()

    def list(self, limit, offset):
        """Return users, newest first."""
        query = (
            select(*_USER_COLUMNS)
            .order_by(users.c.created_at.desc(), users.c.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with self._engine.connect() as conn:
            return [_user(row) for row in conn.execute(query)]


class TokenRepository:
    """Stores refresh tokens."""

    def __init__(self, engine):
        self._engine = engine

    def create_refresh_token(self, user_id, token, expires_at):
        with self._engine.begin() as conn:
            result = conn.execute(
                insert(refresh_tokens).values(
                    user_id=user_id,
                    token=token,
                    expires_at=_aware(expires_at),
                    created_at=_now(),
                    revoked=False,
                )
            )
            token_id = result.inserted_primary_key[0]
            row = conn.execute(select(refresh_tokens).where(refresh_tokens.c.id == token_id)).one()
        return _token(row)

    def get_refresh_token(self, token):
        """Return a live token; raise if it is unknown, revoked or expired."""
        with self._engine.connect() as conn:
            row = conn.execute(select(refresh_tokens).where(refresh_tokens.c.token == token)).first()
        if row is None:
            raise TokenNotFoundError()
        stored = _token(row)
        if stored.revoked:
            raise TokenRevokedError()
        if _now() > stored.expires_at:
            raise TokenExpiredError()
        return stored

    def revoke_refresh_token(self, token):
        with self._engine.begin() as conn:
            conn.execute(
                update(refresh_tokens).where(refresh_tokens.c.token == token).values(revoked=True)
            )

    def revoke_all_user_tokens(self, user_id):
        with self._engine.begin() as conn:
            conn.execute(
                update(refresh_tokens)
                .where(refresh_tokens.c.user_id == user_id, refresh_tokens.c.revoked.is_(False))
                .values(revoked=True)
            )

    def cleanup_expired_tokens(self):
        """Delete tokens that have expired or been revoked."""
        with self._engine.begin() as conn:
            conn.execute(
                delete(refresh_tokens).where(
                    or_(refresh_tokens.c.expires_at < _now(), refresh_tokens.c.revoked.is_(True))
                )
            )