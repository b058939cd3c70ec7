from __future__ import annotations

import threading
import unittest
from datetime import datetime, timedelta, timezone

import redis

from presensi.context import AppContext
from presensi.errors import ApiError
from presensi.services.challenge import challenge_key, consume_challenge, issue_challenge
from presensi.settings import Settings
from presensi.store import EphemeralStore


class _FakeRedis:
    """In-memory stand-in for the handful of redis-py calls the store makes."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self._lock = threading.Lock()

    def register_script(self, _script: str):  # type: ignore[no-untyped-def]
        def _take(keys=None, args=None):  # type: ignore[no-untyped-def]
            with self._lock:
                return self.values.pop(keys[0], None)

        return _take

    def set(self, key: str, value: str, ex: int | None = None) -> bool:
        with self._lock:
            self.values[key] = value
            if ex is not None:
                self.ttls[key] = ex
        return True

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def delete(self, key: str) -> int:
        with self._lock:
            return 1 if self.values.pop(key, None) is not None else 0

    def incr(self, key: str) -> int:
        with self._lock:
            value = int(self.values.get(key, "0")) + 1
            self.values[key] = str(value)
            return value

    def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return True

    def ping(self) -> bool:
        return True


class _DownRedis(_FakeRedis):
    def register_script(self, _script: str):  # type: ignore[no-untyped-def]
        def _take(keys=None, args=None):  # type: ignore[no-untyped-def]
            raise redis.ConnectionError("connection refused")

        return _take

    def set(self, key: str, value: str, ex: int | None = None) -> bool:
        raise redis.ConnectionError("connection refused")

    def incr(self, key: str) -> int:
        raise redis.ConnectionError("connection refused")


NOW = datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc)


def _ctx(client: _FakeRedis | None = None, *, now: datetime = NOW, **overrides) -> AppContext:  # type: ignore[no-untyped-def]
    settings = Settings(jwt_secret="test", **overrides)
    return AppContext(
        settings=settings,
        db=None,  # type: ignore[arg-type]
        store=EphemeralStore(client or _FakeRedis()),
        clock=lambda: now,
    )


class ChallengeServiceTests(unittest.TestCase):
    def test_issue_stores_binding_with_ttl(self) -> None:
        client = _FakeRedis()
        ctx = _ctx(client)

        issued = issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-1")

        key = challenge_key(issued.challenge_id)
        self.assertIn(key, client.values)
        self.assertEqual(client.ttls[key], 60)
        self.assertEqual(issued.expires_at, NOW + timedelta(seconds=60))
        self.assertEqual(len(issued.nonce), 32)

    def test_consume_returns_payload_once(self) -> None:
        ctx = _ctx()
        issued = issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-1")

        payload = consume_challenge(ctx, challenge_id=issued.challenge_id, user_id=7, satker_id=3, device_id="dev-1")
        self.assertEqual(payload["nonce"], issued.nonce)

        with self.assertRaises(ApiError) as exc:
            consume_challenge(ctx, challenge_id=issued.challenge_id, user_id=7, satker_id=3, device_id="dev-1")
        self.assertEqual(exc.exception.code, "CHALLENGE_INVALID")

    def test_concurrent_consumers_only_one_wins(self) -> None:
        ctx = _ctx()
        issued = issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-1")
        outcomes: list[str] = []
        outcomes_lock = threading.Lock()
        barrier = threading.Barrier(8)

        def _worker() -> None:
            barrier.wait()
            try:
                consume_challenge(ctx, challenge_id=issued.challenge_id, user_id=7, satker_id=3, device_id="dev-1")
                result = "ok"
            except ApiError as exc:
                result = exc.code
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=_worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(outcomes.count("ok"), 1)
        self.assertEqual(outcomes.count("CHALLENGE_INVALID"), 7)

    def test_consume_rejects_other_device_and_burns_challenge(self) -> None:
        ctx = _ctx()
        issued = issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-1")

        with self.assertRaises(ApiError) as exc:
            consume_challenge(ctx, challenge_id=issued.challenge_id, user_id=7, satker_id=3, device_id="dev-2")
        self.assertEqual(exc.exception.code, "CHALLENGE_MISMATCH")
        self.assertEqual(exc.exception.status_code, 403)

        with self.assertRaises(ApiError) as exc:
            consume_challenge(ctx, challenge_id=issued.challenge_id, user_id=7, satker_id=3, device_id="dev-1")
        self.assertEqual(exc.exception.code, "CHALLENGE_INVALID")

    def test_consume_rejects_other_user(self) -> None:
        ctx = _ctx()
        issued = issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-1")

        with self.assertRaises(ApiError) as exc:
            consume_challenge(ctx, challenge_id=issued.challenge_id, user_id=8, satker_id=3, device_id="dev-1")
        self.assertEqual(exc.exception.code, "CHALLENGE_MISMATCH")

    def test_consume_rejects_expired_payload(self) -> None:
        client = _FakeRedis()
        issued = issue_challenge(_ctx(client), user_id=7, satker_id=3, device_id="dev-1")
        later = _ctx(client, now=NOW + timedelta(seconds=61))

        with self.assertRaises(ApiError) as exc:
            consume_challenge(later, challenge_id=issued.challenge_id, user_id=7, satker_id=3, device_id="dev-1")
        self.assertEqual(exc.exception.code, "CHALLENGE_EXPIRED")

    def test_consume_requires_challenge_id(self) -> None:
        with self.assertRaises(ApiError) as exc:
            consume_challenge(_ctx(), challenge_id="  ", user_id=7, satker_id=3, device_id="dev-1")
        self.assertEqual(exc.exception.code, "CHALLENGE_REQUIRED")

    def test_issue_requires_device_id(self) -> None:
        with self.assertRaises(ApiError) as exc:
            issue_challenge(_ctx(), user_id=7, satker_id=3, device_id=" ")
        self.assertEqual(exc.exception.code, "DEVICE_ID_REQUIRED")

    def test_device_rate_limit_returns_429(self) -> None:
        ctx = _ctx(challenge_device_limit_per_minute=2)
        issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-1")
        issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-1")

        with self.assertRaises(ApiError) as exc:
            issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-1")
        self.assertEqual(exc.exception.status_code, 429)
        self.assertEqual(exc.exception.code, "RATE_LIMITED")

    def test_user_rate_limit_spans_devices(self) -> None:
        ctx = _ctx(challenge_user_limit_per_minute=2)
        issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-1")
        issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-2")

        with self.assertRaises(ApiError) as exc:
            issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-3")
        self.assertEqual(exc.exception.code, "RATE_LIMITED")

    def test_store_down_maps_to_503(self) -> None:
        ctx = _ctx(_DownRedis())

        with self.assertRaises(ApiError) as exc:
            issue_challenge(ctx, user_id=7, satker_id=3, device_id="dev-1")
        self.assertEqual(exc.exception.status_code, 503)
        self.assertEqual(exc.exception.code, "STORE_UNAVAILABLE")

        with self.assertRaises(ApiError) as exc:
            consume_challenge(ctx, challenge_id="abc", user_id=7, satker_id=3, device_id="dev-1")
        self.assertEqual(exc.exception.code, "STORE_UNAVAILABLE")


if __name__ == "__main__":
    unittest.main()
