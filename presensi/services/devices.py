from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from presensi.errors import ApiError
from presensi.models import UserDevice
from presensi.schemas import AttendancePayload

logger = logging.getLogger("presensi.devices")


def ensure_device_bound(db: Session, *, user_id: int, device_id: str, payload: AttendancePayload) -> None:
    """Bind an unseen device to this user, or reject a device owned by someone else.

    The insert joins the caller's transaction, so a binding only sticks once
    the attendance event that created it commits.
    """
    db.execute(
        pg_insert(UserDevice)
        .values(
            user_id=user_id,
            device_id=device_id,
            device_model=payload.device_model,
            android_version=payload.android_version,
            app_build=payload.app_build,
            client_version=payload.client_version,
        )
        .on_conflict_do_nothing(constraint="uq_user_devices_device_id")
    )
    owner_id = db.scalar(select(UserDevice.user_id).where(UserDevice.device_id == device_id))
    if owner_id is not None and owner_id != user_id:
        logger.warning(
            "device_bound_to_other_user",
            extra={"user_id": user_id, "device_id": device_id, "owner_user_id": owner_id},
        )
        raise ApiError(
            status_code=403,
            code="DEVICE_BOUND_TO_OTHER_USER",
            message="This device is already registered to another user.",
        )
