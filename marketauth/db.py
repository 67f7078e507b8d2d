"""Database connection set-up and a timeout-bounded connection wrapper."""

from dataclasses import dataclass, field
from datetime import timedelta
from urllib.parse import quote, urlencode

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

from marketauth.config import DatabaseConfig

_USERINFO_SAFE = "$&+,;="
_PATH_SAFE = "$&+,/:;=@"
_PING_TIMEOUT_SECONDS = 5
_APPLICATION_NAME = "marketback-auth"


class DatabaseError(Exception):
    """Raised when the database cannot be configured or reached."""


def build_dsn(cfg):
    """Return the ``postgres://`` connection URL for ``cfg``."""
    userinfo = f"{quote(cfg.user, safe=_USERINFO_SAFE)}:{quote(cfg.password, safe=_USERINFO_SAFE)}"
    path = quote(cfg.name, safe=_PATH_SAFE)
    if path and not path.startswith("/"):
        path = "/" + path
    query = urlencode({"sslmode": cfg.sslmode})
    return f"postgres://{userinfo}@{cfg.host}:{cfg.port}{path}?{query}"


def _is_postgres(engine):
    return engine.dialect.name == "postgresql"


def connect(cfg, url=None):
    """Create an engine for ``cfg`` (or ``url``) and check that it answers."""
    if url is None:
        url = "postgresql://" + build_dsn(cfg)[len("postgres://"):]
    try:
        parsed = make_url(url)
        if parsed.get_backend_name() == "postgresql":
            engine = create_engine(
                parsed,
                pool_size=max(cfg.min_conns, 1),
                max_overflow=max(cfg.max_conns - cfg.min_conns, 0),
                pool_recycle=int(cfg.max_conn_lifetime.total_seconds()),
                pool_pre_ping=True,
                connect_args={
                    "application_name": _APPLICATION_NAME,
                    "connect_timeout": _PING_TIMEOUT_SECONDS,
                },
            )
        else:
            engine = create_engine(parsed)
    except (SQLAlchemyError, ImportError, ValueError) as err:
        raise DatabaseError(f"failed to parse database config: {err}") from err

    try:
        TimeoutPool(engine, timedelta(seconds=_PING_TIMEOUT_SECONDS)).ping()
    except DatabaseError as err:
        engine.dispose()
        raise DatabaseError(f"failed to ping database: {err.__cause__ or err}") from err
    return engine


@dataclass
class TimeoutPool:
    """Runs statements on ``engine`` with a per-statement time limit."""

    engine: object
    query_timeout: timedelta = field(default_factory=lambda: DatabaseConfig().query_timeout)

    def _limit(self, conn):
        if _is_postgres(self.engine):
            millis = int(self.query_timeout.total_seconds() * 1000)
            conn.execute(
                text("SELECT set_config('statement_timeout', :ms, true)"),
                {"ms": str(millis)},
            )

    def ping(self):
        """Raise DatabaseError unless the database answers a trivial query."""
        try:
            with self.engine.begin() as conn:
                self._limit(conn)
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as err:
            raise DatabaseError(str(err)) from err

    def execute(self, statement, params=None):
        """Run one statement in its own transaction and return the affected row count."""
        if isinstance(statement, str):
            statement = text(statement)
        with self.engine.begin() as conn:
            self._limit(conn)
            result = conn.execute(statement, params or {})
            return result.rowcount