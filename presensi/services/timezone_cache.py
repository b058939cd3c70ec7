from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from presensi.context import AppContext
from presensi.errors import ApiError, StoreUnavailableError
from presensi.models import AppSetting

logger = logging.getLogger("presensi.timezone")

TIMEZONE_CACHE_KEY = "app:settings:timezone"
TIMEZONE_SETTING_KEY = "timezone"


def _zone_or_none(name: str | None) -> ZoneInfo | None:
    raw = (name or "").strip()
    if not raw:
        return None
    try:
        return ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def _default_zone(ctx: AppContext) -> ZoneInfo:
    return _zone_or_none(ctx.settings.default_timezone) or ZoneInfo("Asia/Jakarta")


def get_timezone(ctx: AppContext) -> ZoneInfo:
    """Organisation timezone via cache-aside; the store is optional."""
    try:
        cached = ctx.store.get_text(TIMEZONE_CACHE_KEY)
    except StoreUnavailableError as exc:
        logger.warning("timezone_cache_unavailable", extra={"op": "read", "error": str(exc)})
        cached = None

    zone = _zone_or_none(cached)
    if zone is not None:
        return zone

    setting = ctx.db.get(AppSetting, TIMEZONE_SETTING_KEY)
    zone = _zone_or_none(setting.value if setting is not None else None)
    if zone is None:
        if setting is not None:
            logger.warning("timezone_setting_invalid", extra={"value": setting.value})
        zone = _default_zone(ctx)

    try:
        ctx.store.put_text(TIMEZONE_CACHE_KEY, zone.key, ctx.settings.timezone_cache_ttl_seconds)
    except StoreUnavailableError as exc:
        logger.warning("timezone_cache_unavailable", extra={"op": "refill", "error": str(exc)})
    return zone


def set_timezone(ctx: AppContext, name: str) -> ZoneInfo:
    zone = _zone_or_none(name)
    if zone is None:
        raise ApiError(status_code=422, code="INVALID_TIMEZONE", message=f"Unknown timezone: {name}")

    setting = ctx.db.get(AppSetting, TIMEZONE_SETTING_KEY)
    if setting is None:
        ctx.db.add(AppSetting(key=TIMEZONE_SETTING_KEY, value=zone.key))
    else:
        setting.value = zone.key
    ctx.db.commit()

    try:
        ctx.store.delete(TIMEZONE_CACHE_KEY)
    except StoreUnavailableError as exc:
        logger.warning("timezone_cache_unavailable", extra={"op": "invalidate", "error": str(exc)})
    return zone
