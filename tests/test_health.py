import logging
from datetime import datetime, timedelta, timezone

import pytest
import redis
from flask import Flask
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from marketauth.health import HealthController


class _Redis:
    def __init__(self, error=None):
        self.error = error
        self.pings = 0

    def ping(self):
        self.pings += 1
        if self.error is not None:
            raise self.error
        return True


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    yield eng
    eng.dispose()


@pytest.fixture
def broken_engine(tmp_path):
    eng = create_engine("sqlite:///" + str(tmp_path / "missing" / "auth.db"))
    yield eng
    eng.dispose()


def _report(controller):
    app = Flask(__name__)
    with app.app_context():
        response, status = controller.health()
        return status, response.get_json()


def _controller(engine, redis_client=None, start_time=None, version="1.0.0"):
    return HealthController(
        engine, redis_client, logging.getLogger("test-health"), start_time, version
    )


def test_healthy_database_without_redis(engine):
    status, body = _report(_controller(engine, version="9.9.9"))
    assert status == 200
    assert body["status"] == "ok"
    assert body["service_name"] == "auth-service"
    assert body["version"] == "9.9.9"
    assert body["checks"]["postgres"]["status"] == "ok"
    assert body["checks"]["redis"] == {"status": "disabled"}


def test_latency_is_non_negative_integer(engine):
    _, body = _report(_controller(engine))
    latency = body["checks"]["postgres"]["latency_ms"]
    assert isinstance(latency, int) and latency >= 0


def test_broken_database_reports_error_but_stays_200(broken_engine):
    status, body = _report(_controller(broken_engine))
    assert status == 200
    assert body["status"] == "ok"
    assert body["checks"]["postgres"] == {"status": "error", "latency_ms": 0}


def test_redis_ok(engine):
    client = _Redis()
    _, body = _report(_controller(engine, client))
    assert body["checks"]["redis"]["status"] == "ok"
    assert client.pings == 1


def test_redis_error(engine):
    client = _Redis(redis.ConnectionError("down"))
    _, body = _report(_controller(engine, client))
    assert body["checks"]["redis"]["status"] == "error"
    assert client.pings == 1


def test_uptime_in_hours_and_minutes(engine):
    start = datetime.now(timezone.utc) - timedelta(hours=2, minutes=3)
    _, body = _report(_controller(engine, start_time=start))
    assert body["uptime"].startswith("2h3m")
    assert body["uptime"].endswith("s")


def test_uptime_with_naive_start_is_short(engine):
    _, body = _report(_controller(engine, start_time=datetime.now()))
    assert body["uptime"].endswith("s")
    assert "h" not in body["uptime"]


def test_timestamp_is_utc(engine):
    _, body = _report(_controller(engine))
    stamp = datetime.fromisoformat(body["timestamp"].replace("Z", "+00:00"))
    assert stamp.utcoffset() == timedelta(0)
    assert abs(datetime.now(timezone.utc) - stamp) < timedelta(minutes=1)


def test_memory_reports_gc_count(engine):
    _, body = _report(_controller(engine))
    assert body["memory"]["num_gc"] >= 0