from __future__ import annotations

import json
import logging
from typing import Any

import redis

from presensi.errors import StoreUnavailableError

logger = logging.getLogger("presensi.store")

# GET and DEL run inside one server-side call, so two callers racing on the
# same key can never both observe the value.
_TAKE_SCRIPT = """
local value = redis.call('GET', KEYS[1])
if not value then
  return nil
end
redis.call('DEL', KEYS[1])
return value
"""


def build_redis_client(redis_url: str) -> redis.Redis:
    return redis.Redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
    )


def _decode(raw: Any) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, bytes):
        return raw.decode("utf-8")
    return str(raw)


class EphemeralStore:
    """TTL-keyed JSON store on top of Redis.

    Every Redis failure surfaces as ``StoreUnavailableError`` so callers can
    decide between failing open and failing closed.
    """

    def __init__(self, client: Any) -> None:
        self._client = client
        self._take = client.register_script(_TAKE_SCRIPT)

    def put_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        self.put_text(key, json.dumps(value, separators=(",", ":")), ttl_seconds)

    def get_json(self, key: str) -> dict[str, Any] | None:
        raw = self.get_text(key)
        return self._loads(key, raw)

    def take_json(self, key: str) -> dict[str, Any] | None:
        try:
            raw = _decode(self._take(keys=[key]))
        except redis.RedisError as exc:
            raise StoreUnavailableError(str(exc)) from exc
        return self._loads(key, raw)

    def put_text(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._client.set(key, value, ex=max(1, int(ttl_seconds)))
        except redis.RedisError as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def get_text(self, key: str) -> str | None:
        try:
            return _decode(self._client.get(key))
        except redis.RedisError as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def hit_counter(self, key: str, window_seconds: int) -> int:
        """Fixed-window counter: the window starts at the first hit."""
        try:
            count = int(self._client.incr(key))
            if count == 1:
                self._client.expire(key, window_seconds)
        except redis.RedisError as exc:
            raise StoreUnavailableError(str(exc)) from exc
        return count

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    @staticmethod
    def _loads(key: str, raw: str | None) -> dict[str, Any] | None:
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("store_value_not_json", extra={"key": key})
            return None
        if not isinstance(value, dict):
            return None
        return value
