"""Redis-backed blacklist of invalidated access tokens."""

import json
import time
from datetime import datetime, timedelta

import redis

BLACKLIST_KEY_PREFIX = "blacklist:token:"
_SCAN_BATCH = 100


class BlacklistError(Exception):
    """Raised when the blacklist cannot be read or written."""


def _ttl_ms(ttl):
    """Milliseconds to keep a key, or None to keep it without expiry."""
    if ttl is None:
        return None
    if isinstance(ttl, timedelta):
        millis = ttl // timedelta(milliseconds=1)
    else:
        millis = int(ttl * 1000)
    return millis if millis > 0 else None


def _rfc3339_now():
    text = datetime.now().astimezone().isoformat(timespec="seconds")
    return text.replace("+00:00", "Z")


def _text(value):
    return value.decode() if isinstance(value, bytes) else str(value)


class TokenBlacklistService:
    """Marks token ids (and whole users) as invalid for a limited time."""

    def __init__(self, redis_client, prefix):
        self._redis = redis_client
        self._prefix = prefix

    def _key(self, jti):
        return f"{self._prefix}{BLACKLIST_KEY_PREFIX}{jti}"

    def _user_key(self, user_id):
        return f"{self._prefix}user:{user_id}"

    def blacklist_token(self, jti, user_id, ttl, reason):
        if not jti:
            raise BlacklistError("jti cannot be empty")
        value = json.dumps(
            {"user_id": user_id, "reason": reason, "blacklisted_at": _rfc3339_now()},
            separators=(",", ":"),
        )
        try:
            self._redis.set(self._key(jti), value, px=_ttl_ms(ttl))
        except redis.RedisError as err:
            raise BlacklistError(f"failed to blacklist token: {err}") from err

    def is_blacklisted(self, jti):
        if not jti:
            return False
        try:
            return self._redis.exists(self._key(jti)) > 0
        except redis.RedisError as err:
            raise BlacklistError(f"failed to check blacklist: {err}") from err

    def remove_token(self, jti):
        if not jti:
            return
        try:
            self._redis.delete(self._key(jti))
        except redis.RedisError as err:
            raise BlacklistError(f"failed to remove token: {err}") from err

    def blacklist_all_user_tokens(self, user_id, ttl):
        try:
            self._redis.set(self._user_key(user_id), int(time.time()), px=_ttl_ms(ttl))
        except redis.RedisError as err:
            raise BlacklistError(f"failed to blacklist user tokens: {err}") from err

    def is_user_blacklisted(self, user_id):
        try:
            return self._redis.exists(self._user_key(user_id)) > 0
        except redis.RedisError as err:
            raise BlacklistError(f"failed to check user blacklist: {err}") from err

    def get_blacklist_info(self, jti):
        """Return the stored JSON record for ``jti``, or "" if there is none."""
        try:
            value = self._redis.get(self._key(jti))
        except redis.RedisError as err:
            raise BlacklistError(f"failed to get blacklist info: {err}") from err
        return "" if value is None else _text(value)

    def count_blacklisted_tokens(self):
        pattern = f"{self._prefix}{BLACKLIST_KEY_PREFIX}*"
        cursor = 0
        count = 0
        try:
            while True:
                cursor, keys = self._redis.scan(cursor=cursor, match=pattern, count=_SCAN_BATCH)
                count += len(keys)
                if int(cursor) == 0:
                    break
        except redis.RedisError as err:
            raise BlacklistError(f"failed to count blacklisted tokens: {err}") from err
        return count