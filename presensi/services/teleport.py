from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from presensi.context import AppContext
from presensi.errors import ApiError, StoreUnavailableError, store_unavailable
from presensi.services.location import distance_m

logger = logging.getLogger("presensi.teleport")


@dataclass(frozen=True)
class MovementVerdict:
    ok: bool
    code: str | None
    distance_m: float
    elapsed_seconds: int
    speed_mps: float


def last_location_key(user_id: int, device_id: str) -> str:
    return f"att:lastloc:{user_id}:{device_id}"


def evaluate_movement(
    previous: dict | None,
    *,
    lat: float,
    lon: float,
    now_unix: int,
    window_seconds: int = 120,
    max_distance_m: float = 5000.0,
    max_speed_mps: float = 45.0,
) -> MovementVerdict:
    if previous is None:
        return MovementVerdict(ok=True, code=None, distance_m=0.0, elapsed_seconds=0, speed_mps=0.0)

    elapsed = max(now_unix - int(previous["ts_unix"]), 1)
    moved = distance_m(float(previous["lat"]), float(previous["lon"]), lat, lon)
    speed = moved / elapsed

    code = None
    if elapsed < window_seconds and moved > max_distance_m:
        code = "TELEPORT_DETECTED"
    elif speed > max_speed_mps:
        code = "SPEED_IMPLAUSIBLE"
    return MovementVerdict(ok=code is None, code=code, distance_m=moved, elapsed_seconds=elapsed, speed_mps=speed)


def check_and_record_location(
    ctx: AppContext,
    *,
    user_id: int,
    device_id: str,
    lat: float,
    lon: float,
    now: datetime,
) -> MovementVerdict | None:
    """Reject implausible movement, then remember the accepted point.

    Returns ``None`` when the store is down and the guard is configured to
    fail open.
    """
    settings = ctx.settings
    key = last_location_key(user_id, device_id)
    now_unix = int(now.timestamp())
    try:
        previous = ctx.store.get_json(key)
        verdict = evaluate_movement(
            previous,
            lat=lat,
            lon=lon,
            now_unix=now_unix,
            window_seconds=settings.teleport_window_seconds,
            max_distance_m=settings.teleport_max_distance_m,
            max_speed_mps=settings.teleport_max_speed_mps,
        )
        if not verdict.ok:
            logger.warning(
                "teleport_rejected",
                extra={
                    "user_id": user_id,
                    "device_id": device_id,
                    "reason": verdict.code,
                    "distance_m": round(verdict.distance_m, 1),
                    "elapsed_seconds": verdict.elapsed_seconds,
                },
            )
            if verdict.code == "TELEPORT_DETECTED":
                message = "Location jumped too far in too short a time."
            else:
                message = "Movement speed since the last attendance is not plausible."
            raise ApiError(status_code=409, code=verdict.code or "TELEPORT_DETECTED", message=message)

        ctx.store.put_json(
            key,
            {"lat": lat, "lon": lon, "ts_unix": now_unix},
            settings.last_location_ttl_seconds,
        )
    except StoreUnavailableError as exc:
        if settings.teleport_guard_fail_open:
            logger.warning(
                "teleport_guard_skipped",
                extra={"user_id": user_id, "device_id": device_id, "error": str(exc)},
            )
            return None
        logger.error(
            "teleport_guard_store_unavailable",
            extra={"user_id": user_id, "device_id": device_id, "error": str(exc)},
        )
        raise store_unavailable() from exc
    return verdict
