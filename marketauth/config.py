"""Service configuration read from environment variables."""

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from fractions import Fraction


class ConfigError(ValueError):
    """Raised when a configuration value is missing or malformed."""


_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_PART = re.compile(r"([0-9]*\.?[0-9]*)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)?")
_INTEGER = re.compile(r"[+-]?[0-9]+")


def parse_duration(text):
    """Parse a duration such as ``"300ms"``, ``"1.5h"`` or ``"2h45m"``."""
    rest = text
    sign = 1
    if rest[:1] in ("+", "-"):
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ConfigError(f'invalid duration "{text}"')
    total = Fraction(0)
    pos = 0
    while pos < len(rest):
        match = _PART.match(rest, pos)
        number, unit = match.group(1), match.group(2)
        if number in ("", "."):
            raise ConfigError(f'invalid duration "{text}"')
        if unit is None:
            raise ConfigError(f'missing unit in duration "{text}"')
        if number.startswith("."):
            number = "0" + number
        if number.endswith("."):
            number += "0"
        total += Fraction(number) * _UNIT_NS[unit]
        pos = match.end()
    return timedelta(microseconds=sign * round(total / 1000))


@dataclass
class DatabaseConfig:
    host: str = "localhost"
    port: int = 5432
    user: str = "auth"
    password: str = field(default="", repr=False)
    name: str = "auth"
    sslmode: str = "disable"
    max_conns: int = 25
    min_conns: int = 5
    max_conn_lifetime: timedelta = timedelta(hours=1)
    max_conn_idle_time: timedelta = timedelta(minutes=30)
    health_check_period: timedelta = timedelta(minutes=1)
    query_timeout: timedelta = timedelta(seconds=5)


@dataclass
class HTTPConfig:
    host: str = ":8081"
    shutdown_timeout: timedelta = timedelta(seconds=10)
    request_timeout: timedelta = timedelta(seconds=30)


@dataclass
class LoggerConfig:
    level: str = "info"


@dataclass
class RedisConfig:
    enabled: bool = True
    addr: str = "localhost:6379"
    password: str = field(default="", repr=False)
    db: int = 1
    prefix: str = "auth:"
    ttl: timedelta = timedelta(hours=24)


@dataclass
class JWTConfig:
    access_secret: str = field(default="", repr=False)
    refresh_secret: str = field(default="", repr=False)
    access_expiration: timedelta = timedelta(minutes=15)
    refresh_expiration: timedelta = timedelta(hours=24)
    issuer: str = "marketback-auth"
    first_admin_email: str = ""


@dataclass
class RateLimitConfig:
    enabled: bool = False
    interval: timedelta = timedelta(minutes=1)
    max: int = 100


@dataclass
class Config:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    logger: LoggerConfig = field(default_factory=LoggerConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    jwt: JWTConfig = field(default_factory=JWTConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)


def _integer(key, text, bits=64):
    if not _INTEGER.fullmatch(text):
        raise ConfigError(f'invalid {key}: parsing "{text}": invalid syntax')
    value = int(text)
    limit = 1 << (bits - 1)
    if not -limit <= value < limit:
        raise ConfigError(f'invalid {key}: parsing "{text}": value out of range')
    return value


def _duration(key, text):
    try:
        return parse_duration(text)
    except ConfigError as err:
        raise ConfigError(f"invalid {key}: {err}") from err


def load(environ=None):
    """Build a Config from ``environ`` (the process environment by default)."""
    env = os.environ if environ is None else environ

    def get(key, default):
        return env.get(key) or default

    port = _integer("DB_PORT", get("DB_PORT", "5432"))
    max_conns = _integer("DB_MAX_CONNS", get("DB_MAX_CONNS", "25"), bits=32)
    min_conns = _integer("DB_MIN_CONNS", get("DB_MIN_CONNS", "5"), bits=32)
    query_timeout = _duration("DB_QUERY_TIMEOUT", get("DB_QUERY_TIMEOUT", "5s"))
    database = DatabaseConfig(
        host=get("DB_HOST", "localhost"),
        port=port,
        user=get("DB_USER", "auth"),
        password=get("DB_PASSWORD", ""),
        name=get("DB_NAME", "auth"),
        sslmode=get("DB_SSLMODE", "disable"),
        max_conns=max_conns,
        min_conns=min_conns,
        query_timeout=query_timeout,
    )

    http = HTTPConfig(
        shutdown_timeout=_duration("SHUTDOWN_TIMEOUT", get("SHUTDOWN_TIMEOUT", "10s")),
        request_timeout=_duration("REQUEST_TIMEOUT", get("REQUEST_TIMEOUT", "30s")),
        host=get("HTTP_HOST", ":8081"),
    )

    logger = LoggerConfig(level=get("LOG_LEVEL", "info"))

    redis_db = _integer("REDIS_DB", get("REDIS_DB", "1"))
    redis_ttl = _duration("REDIS_TTL", get("REDIS_TTL", "24h"))
    redis = RedisConfig(
        enabled=get("REDIS_ENABLED", "true") == "true",
        addr=get("REDIS_ADDR", "localhost:6379"),
        password=get("REDIS_PASSWORD", ""),
        db=redis_db,
        prefix=get("REDIS_PREFIX", "auth:"),
        ttl=redis_ttl,
    )

    access_expiration = _duration("JWT_ACCESS_EXPIRATION", get("JWT_ACCESS_EXPIRATION", "15m"))
    refresh_expiration = _duration(
        "JWT_REFRESH_EXPIRATION", get("JWT_REFRESH_EXPIRATION", "24h")
    )
    access_secret = get("JWT_ACCESS_SECRET", "")
    if not access_secret:
        raise ConfigError("JWT_ACCESS_SECRET is required")
    refresh_secret = get("JWT_REFRESH_SECRET", "")
    if not refresh_secret:
        raise ConfigError("JWT_REFRESH_SECRET is required")
    jwt = JWTConfig(
        access_secret=access_secret,
        refresh_secret=refresh_secret,
        access_expiration=access_expiration,
        refresh_expiration=refresh_expiration,
        issuer=get("JWT_ISSUER", "marketback-auth"),
        first_admin_email=get("FIRST_ADMIN_EMAIL", ""),
    )

    interval = _duration("RATE_LIMIT_INTERVAL", get("RATE_LIMIT_INTERVAL", "1m"))
    rate_max = _integer("RATE_LIMIT_MAX", get("RATE_LIMIT_MAX", "100"))
    rate_limit = RateLimitConfig(
        enabled=get("RATE_LIMIT_ENABLED", "false") == "true",
        interval=interval,
        max=rate_max,
    )

    return Config(
        database=database,
        http=http,
        logger=logger,
        redis=redis,
        jwt=jwt,
        rate_limit=rate_limit,
    )