from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from presensi.context import AppContext
from presensi.errors import ApiError, StoreUnavailableError, store_unavailable

logger = logging.getLogger("presensi.challenge")

RATE_LIMIT_WINDOW_SECONDS = 60


@dataclass(frozen=True)
class IssuedChallenge:
    challenge_id: str
    nonce: str
    expires_at: datetime


def challenge_key(challenge_id: str) -> str:
    return f"att_chal:{challenge_id}"


def _user_rate_key(user_id: int) -> str:
    return f"att_chal_rl:user:{user_id}"


def _device_rate_key(device_id: str) -> str:
    return f"att_chal_rl:dev:{device_id}"


def _require_device_id(device_id: str | None) -> str:
    value = (device_id or "").strip()
    if not value:
        raise ApiError(status_code=422, code="DEVICE_ID_REQUIRED", message="device_id is required.")
    return value


def _enforce_rate_limit(ctx: AppContext, *, key: str, limit: int, scope: str) -> None:
    count = ctx.store.hit_counter(key, RATE_LIMIT_WINDOW_SECONDS)
    if count > limit:
        logger.warning("challenge_rate_limited", extra={"scope": scope, "count": count, "limit": limit})
        raise ApiError(
            status_code=429,
            code="RATE_LIMITED",
            message="Too many challenge requests. Please wait a minute and retry.",
        )


def issue_challenge(
    ctx: AppContext,
    *,
    user_id: int,
    satker_id: int,
    device_id: str | None,
) -> IssuedChallenge:
    device = _require_device_id(device_id)
    settings = ctx.settings
    try:
        _enforce_rate_limit(
            ctx,
            key=_user_rate_key(user_id),
            limit=settings.challenge_user_limit_per_minute,
            scope="user",
        )
        _enforce_rate_limit(
            ctx,
            key=_device_rate_key(device),
            limit=settings.challenge_device_limit_per_minute,
            scope="device",
        )

        challenge_id = str(uuid4())
        nonce = secrets.token_hex(16)
        expires_at = ctx.now() + timedelta(seconds=settings.challenge_ttl_seconds)
        ctx.store.put_json(
            challenge_key(challenge_id),
            {
                "user_id": user_id,
                "satker_id": satker_id,
                "device_id": device,
                "nonce": nonce,
                "exp_unix": int(expires_at.timestamp()),
            },
            settings.challenge_ttl_seconds,
        )
    except StoreUnavailableError as exc:
        logger.error("challenge_store_unavailable", extra={"user_id": user_id, "error": str(exc)})
        raise store_unavailable() from exc

    logger.info(
        "challenge_issued",
        extra={"user_id": user_id, "satker_id": satker_id, "device_id": device, "challenge_id": challenge_id},
    )
    return IssuedChallenge(challenge_id=challenge_id, nonce=nonce, expires_at=expires_at)


def consume_challenge(
    ctx: AppContext,
    *,
    challenge_id: str | None,
    user_id: int,
    satker_id: int,
    device_id: str | None,
) -> dict:
    """Atomically take the stored challenge and verify its binding.

    The stored value is removed whatever the verdict, so a rejected
    challenge cannot be presented again.
    """
    raw_id = (challenge_id or "").strip()
    if not raw_id:
        raise ApiError(status_code=422, code="CHALLENGE_REQUIRED", message="challenge_id is required.")
    device = _require_device_id(device_id)

    try:
        payload = ctx.store.take_json(challenge_key(raw_id))
    except StoreUnavailableError as exc:
        logger.error("challenge_store_unavailable", extra={"user_id": user_id, "error": str(exc)})
        raise store_unavailable() from exc

    if payload is None:
        logger.info("challenge_rejected", extra={"reason": "missing", "user_id": user_id, "challenge_id": raw_id})
        raise ApiError(
            status_code=409,
            code="CHALLENGE_INVALID",
            message="Challenge not found, expired or already used.",
        )

    if (
        payload.get("user_id") != user_id
        or payload.get("satker_id") != satker_id
        or payload.get("device_id") != device
    ):
        logger.warning("challenge_rejected", extra={"reason": "mismatch", "user_id": user_id, "challenge_id": raw_id})
        raise ApiError(
            status_code=403,
            code="CHALLENGE_MISMATCH",
            message="Challenge does not belong to this user, satker or device.",
        )

    exp_unix = int(payload.get("exp_unix") or 0)
    if exp_unix < int(ctx.now().timestamp()):
        logger.info("challenge_rejected", extra={"reason": "expired", "user_id": user_id, "challenge_id": raw_id})
        raise ApiError(status_code=409, code="CHALLENGE_EXPIRED", message="Challenge has expired.")

    payload["expires_at"] = datetime.fromtimestamp(exp_unix, tz=timezone.utc)
    return payload
