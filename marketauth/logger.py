"""Logger set-up: JSON in production, key=value text elsewhere."""

import json
import logging
import os
import re
import sys
from datetime import datetime

_LEVELS = {
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}

_BARE = re.compile(r"[A-Za-z0-9\-._/@^+]*")


def _level_name(levelno):
    if levelno >= logging.CRITICAL:
        return "fatal"
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warning"
    if levelno >= logging.INFO:
        return "info"
    return "debug"


def _fields(record):
    data = dict(getattr(record, "fields", None) or {})
    if record.exc_info and record.exc_info[1] is not None:
        data["error"] = str(record.exc_info[1])
    return data


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with ``@timestamp``, ``severity`` and ``message``."""

    def format(self, record):
        data = _fields(record)
        stamp = datetime.fromtimestamp(record.created).astimezone()
        data["@timestamp"] = stamp.isoformat()
        data["severity"] = _level_name(record.levelno)
        data["message"] = record.getMessage()
        return json.dumps(data, sort_keys=True, default=str)


class _TextFormatter(logging.Formatter):
    def format(self, record):
        stamp = datetime.fromtimestamp(record.created).astimezone()
        text = stamp.isoformat(timespec="seconds").replace("+00:00", "Z")
        parts = [
            f"time={_quote(text)}",
            f"level={_level_name(record.levelno)}",
            f"msg={_quote(record.getMessage())}",
        ]
        parts.extend(f"{key}={_quote(value)}" for key, value in sorted(_fields(record).items()))
        return " ".join(parts)


def _quote(value):
    text = value if isinstance(value, str) else str(value)
    if _BARE.fullmatch(text):
        return text
    return json.dumps(text)


def new_logger(environ=None, stream=None):
    """Return a configured logger; structured fields go in ``extra={"fields": {...}}``."""
    env = os.environ if environ is None else environ
    logger = logging.Logger("marketauth")
    handler = logging.StreamHandler(sys.stdout if stream is None else stream)
    if env.get("ENV") == "production":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(_TextFormatter())
    logger.addHandler(handler)
    level = (env.get("LOG_LEVEL") or "info").lower()
    logger.setLevel(_LEVELS.get(level, logging.INFO))
    return logger