"""Application assembly and the command that runs the auth service."""

import argparse
import logging
import signal
import threading
from datetime import datetime, timezone
from socketserver import ThreadingMixIn
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import redis
from flask import Blueprint, Flask, Response, jsonify, request

from marketauth.admin_controller import AdminController
from marketauth.auth_controller import AuthController
from marketauth.config import ConfigError, load
from marketauth.db import DatabaseError, connect
from marketauth.health import HealthController
from marketauth.logger import new_logger
from marketauth.middleware import get_user_email, get_user_id, get_user_role, jwt_auth, require_role
from marketauth.repository import TokenRepository, UserRepository
from marketauth.roles import ROLE_ADMIN
from marketauth.service import AuthService

VERSION = "1.0.0"
_ALLOW_ORIGIN = "*"
_ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
_ALLOW_HEADERS = "Authorization, Content-Type"

_wire_log = logging.getLogger("marketauth.http")


def _fields(**values):
    return {"fields": values}


def create_app(cfg, engine, redis_client=None, log=None):
    """Wire repositories, services and controllers into a Flask application."""
    log = log if log is not None else logging.getLogger("marketauth")

    user_repo = UserRepository(engine, cfg.jwt)
    token_repo = TokenRepository(engine)
    auth_service = AuthService(cfg.jwt, user_repo, token_repo)

    auth_controller = AuthController(auth_service, log)
    admin_controller = AdminController(user_repo, log)
    health_controller = HealthController(
        engine, redis_client, log, datetime.now(timezone.utc), VERSION
    )

    app = Flask("marketauth")

    @app.before_request
    def _preflight():
        if request.method == "OPTIONS":
            return Response(status=204)
        return None

    @app.after_request
    def _cors_and_log(response):
        response.headers["Access-Control-Allow-Origin"] = _ALLOW_ORIGIN
        response.headers["Access-Control-Allow-Methods"] = _ALLOW_METHODS
        response.headers["Access-Control-Allow-Headers"] = _ALLOW_HEADERS
        log.info(
            "request served",
            extra=_fields(method=request.method, path=request.path, status=response.status_code),
        )
        return response

    app.add_url_rule("/health", view_func=health_controller.health, methods=["GET"])

    auth = Blueprint("auth", __name__, url_prefix="/auth")
    auth.add_url_rule("/register", view_func=auth_controller.register, methods=["POST"])
    auth.add_url_rule("/login", view_func=auth_controller.login, methods=["POST"])
    auth.add_url_rule("/refresh", view_func=auth_controller.refresh, methods=["POST"])
    auth.add_url_rule("/logout", view_func=auth_controller.logout, methods=["POST"])
    app.register_blueprint(auth)

    protected = Blueprint("api", __name__, url_prefix="/api")
    protected.before_request(jwt_auth(auth_service))

    def me():
        return jsonify(
            {"user_id": get_user_id(), "email": get_user_email(), "role": get_user_role()}
        )

    protected.add_url_rule("/me", view_func=me, methods=["GET"])
    app.register_blueprint(protected)

    admin = Blueprint("admin", __name__, url_prefix="/admin")
    admin.before_request(jwt_auth(auth_service))
    admin.before_request(require_role(ROLE_ADMIN))
    admin.add_url_rule("/users", view_func=admin_controller.list_users, methods=["GET"])
    admin.add_url_rule("/users", view_func=admin_controller.create_user, methods=["POST"])
    admin.add_url_rule(
        "/users/<user_id>/role", view_func=admin_controller.update_user_role, methods=["PUT"]
    )
    admin.add_url_rule(
        "/users/<user_id>", view_func=admin_controller.delete_user, methods=["DELETE"]
    )
    app.register_blueprint(admin)

    return app


class _Server(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _LoggingHandler(WSGIRequestHandler):
    """Send the server's own access lines to the debug log instead of stderr."""

    def log_message(self, format, *args):
        _wire_log.debug("%s - " + format, self.address_string(), *args)


def _split_addr(addr, default_host):
    host, _, port = addr.rpartition(":")
    return host.strip("[]") or default_host, int(port)


def _connect_redis(cfg):
    host, port = _split_addr(cfg.addr, "localhost")
    client = redis.Redis(host=host, port=port, password=cfg.password or None, db=cfg.db)
    client.ping()
    return client


def _serve(app, cfg, log):
    host, port = _split_addr(cfg.http.host, "0.0.0.0")
    server = make_server(host, port, app, server_class=_Server, handler_class=_LoggingHandler)

    stop = threading.Event()

    def on_signal(signum, frame):
        stop.set()

    previous = {sig: signal.signal(sig, on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
    serving = threading.Thread(target=server.serve_forever, daemon=True)
    log.info("starting HTTP server", extra=_fields(addr=cfg.http.host))
    serving.start()
    try:
        while not stop.wait(0.5):
            if not serving.is_alive():
                log.critical("server failed")
                return 1
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    grace = cfg.http.shutdown_timeout.total_seconds()
    log.info(
        "shutting down", extra=_fields(signal="terminated", grace_period_sec=grace)
    )

    def close():
        server.shutdown()
        server.server_close()

    closer = threading.Thread(target=close, daemon=True)
    closer.start()
    closer.join(grace)
    if closer.is_alive():
        log.critical("server forced to shutdown")
        return 1
    log.info("server exited properly")
    return 0


def main(argv=None):
    """Run the auth service until SIGINT or SIGTERM; return the exit status."""
    parser = argparse.ArgumentParser(
        prog="marketauth",
        description="JWT-based authentication service with refresh tokens.",
    )
    parser.parse_args(argv)

    try:
        cfg = load()
    except ConfigError as err:
        new_logger().critical("failed to load config", extra=_fields(error=str(err)))
        return 1

    log = new_logger()
    log.info(
        "config loaded",
        extra=_fields(
            service="auth",
            http_addr=cfg.http.host,
            shutdown_timeout=str(cfg.http.shutdown_timeout),
            req_timeout=str(cfg.http.request_timeout),
            db_query_timeout=str(cfg.database.query_timeout),
        ),
    )

    try:
        engine = connect(cfg.database)
    except DatabaseError as err:
        log.critical("failed to connect to database", extra=_fields(error=str(err)))
        return 1

    redis_client = None
    try:
        if cfg.redis.enabled:
            try:
                redis_client = _connect_redis(cfg.redis)
            except (redis.RedisError, OSError, ValueError) as err:
                log.critical("failed to connect to redis", extra=_fields(error=str(err)))
                return 1
            log.info("redis connected")

        app = create_app(cfg, engine, redis_client, log)
        try:
            return _serve(app, cfg, log)
        except (OSError, ValueError) as err:
            log.critical("server failed", extra=_fields(error=str(err)))
            return 1
    finally:
        if redis_client is not None:
            redis_client.close()
        log.info("closing database connection pool")
        engine.dispose()


if __name__ == "__main__":
    raise SystemExit(main())