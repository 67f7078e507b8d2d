"""Health report covering the database, Redis and the running process."""

import gc
import logging
import platform
import sys
import threading
import time
from datetime import datetime, timedelta, timezone

import redis
from flask import jsonify

from marketauth.db import DatabaseError, TimeoutPool

try:
    import resource
except ImportError:
    resource = None

SERVICE_NAME = "auth-service"
_SECOND_NS = 1_000_000_000
_MINUTE_NS = 60 * _SECOND_NS
_HOUR_NS = 60 * _MINUTE_NS
_SMALL_UNITS = (("ms", 1_000_000), ("\u00b5s", 1_000), ("ns", 1))


def _decimal(value, unit):
    whole, fraction = divmod(value, unit)
    if not fraction:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{fraction:0{digits}d}".rstrip("0")


def _format_duration(delta):
    """Render a timedelta like ``1h2m3.5s`` or ``250ms``."""
    nanos = (delta // timedelta(microseconds=1)) * 1000
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)
    if nanos == 0:
        return "0s"
    if nanos < _SECOND_NS:
        for unit, size in _SMALL_UNITS:
            if nanos >= size:
                return sign + _decimal(nanos, size) + unit
    hours, rest = divmod(nanos, _HOUR_NS)
    minutes, rest = divmod(rest, _MINUTE_NS)
    seconds = _decimal(rest, _SECOND_NS) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return sign + seconds


def _utc_timestamp():
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _memory():
    info = {"num_gc": sum(stats["collections"] for stats in gc.get_stats())}
    if resource is not None:
        peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        peak_bytes = peak if sys.platform == "darwin" else peak * 1024
        info["max_rss_mb"] = peak_bytes / 1024 / 1024
    return info


class HealthController:
    """Serves the health report."""

    def __init__(self, engine, redis_client=None, log=None, start_time=None, version="1.0.0"):
        self._engine = engine
        self._redis = redis_client
        self._log = log if log is not None else logging.getLogger(__name__)
        self._start = start_time if start_time is not None else datetime.now(timezone.utc)
        self._version = version

    def _postgres(self):
        started = time.perf_counter()
        try:
            TimeoutPool(self._engine).ping()
        except DatabaseError:
            self._log.error("postgres health check failed", exc_info=True)
            return {"status": "error", "latency_ms": 0}
        latency = int((time.perf_counter() - started) * 1000)
        return {"status": "ok", "latency_ms": latency}

    def _redis_status(self):
        if self._redis is None:
            return "disabled"
        try:
            self._redis.ping()
        except (redis.RedisError, OSError):
            self._log.error("redis health check failed", exc_info=True)
            return "error"
        return "ok"

    def health(self):
        """Return the health report; the status code is always 200."""
        postgres = self._postgres()
        redis_status = self._redis_status()
        uptime = datetime.now(self._start.tzinfo) - self._start
        body = {
            "status": "ok",
            "timestamp": _utc_timestamp(),
            "service_name": SERVICE_NAME,
            "version": self._version,
            "uptime": _format_duration(uptime),
            "python_version": platform.python_version(),
            "num_threads": threading.active_count(),
            "checks": {
                "postgres": postgres,
                "redis": {"status": redis_status},
            },
            "memory": _memory(),
        }
        return jsonify(body), 200