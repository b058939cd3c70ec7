from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone, tzinfo

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from presensi.audit import log_audit
from presensi.context import AppContext
from presensi.errors import ApiError
from presensi.models import (
    AttendanceEvent,
    AttendanceEventType,
    AttendanceLeaveType,
    AttendanceSession,
    AttendanceSessionStatus,
    AuditActorType,
    DutySchedule,
    User,
)
from presensi.schemas import AttendanceCorrectionRequest, AttendancePayload, AttendanceSnapshot
from presensi.services.challenge import consume_challenge
from presensi.services.devices import ensure_device_bound
from presensi.services.duty_schedules import find_active_duty, find_duty_on_local_date
from presensi.services.geofence import NearestGeofence, resolve_nearest_geofence
from presensi.services.location import validate_coordinates
from presensi.services.teleport import check_and_record_location
from presensi.services.timezone_cache import get_timezone

logger = logging.getLogger("presensi.attendance")

MIN_NOTE_LENGTH = 3
ADMIN_DEVICE_ID = "ADMIN"


def _normalize_ts(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _upsert_session(db: Session, *, satker_id: int, user_id: int, work_date: date) -> AttendanceSession:
    stmt = (
        pg_insert(AttendanceSession)
        .values(satker_id=satker_id, user_id=user_id, work_date=work_date)
        .on_conflict_do_update(
            constraint="uq_attendance_sessions_user_work_date",
            set_={"updated_at": func.now()},
        )
        .returning(AttendanceSession.id)
    )
    session_id = db.scalar(stmt)
    # Row lock keeps two same-day requests from both passing the event check.
    session = db.get(AttendanceSession, session_id, with_for_update=True, populate_existing=True)
    if session is None:
        raise ApiError(status_code=500, code="SESSION_UPSERT_FAILED", message="Attendance session could not be loaded.")
    return session


def _find_event(db: Session, *, session_id: int, event_type: AttendanceEventType) -> AttendanceEvent | None:
    return db.scalar(
        select(AttendanceEvent).where(
            AttendanceEvent.session_id == session_id,
            AttendanceEvent.event_type == event_type,
        )
    )


def _find_session(db: Session, *, user_id: int, work_date: date) -> AttendanceSession | None:
    return db.scalar(
        select(AttendanceSession).where(
            AttendanceSession.user_id == user_id,
            AttendanceSession.work_date == work_date,
        )
    )


def _ensure_previous_duty_closed(ctx: AppContext, *, user_id: int, now: datetime, tz: tzinfo, today: date) -> None:
    yesterday = today - timedelta(days=1)
    duty = find_duty_on_local_date(ctx.db, user_id=user_id, day=yesterday, tz=tz)
    if duty is None or now > duty.end_at + timedelta(hours=ctx.settings.duty_open_block_hours):
        return
    session = _find_session(ctx.db, user_id=user_id, work_date=yesterday)
    if session is None or session.check_in_at is None or session.check_out_at is not None:
        return
    raise ApiError(
        status_code=409,
        code="PREVIOUS_DUTY_OPEN",
        message=(
            "Check out of the duty "
            f"{duty.start_at.astimezone(tz):%d %b %Y %H:%M} - {duty.end_at.astimezone(tz):%d %b %Y %H:%M} first."
        ),
    )


def _resolve_work_date(
    ctx: AppContext,
    *,
    user_id: int,
    now: datetime,
    tz: tzinfo,
    event_type: AttendanceEventType,
) -> tuple[date, DutySchedule | None]:
    """Pick the session date an event belongs to.

    While a duty is active both events are filed under the local date the
    duty starts on, so an overnight shift is checked out on the session it
    was checked in on. Check-in honours only the early grace; check-out also
    honours the late grace, unless today's session is already checked in.
    """
    today = now.astimezone(tz).date()
    if event_type == AttendanceEventType.CHECK_OUT:
        current = _find_session(ctx.db, user_id=user_id, work_date=today)
        if current is not None and current.check_in_at is not None:
            return today, None

    grace_before = timedelta(minutes=ctx.settings.duty_grace_before_minutes)
    grace_after = timedelta(0)
    if event_type == AttendanceEventType.CHECK_OUT:
        grace_after = timedelta(minutes=ctx.settings.duty_grace_after_minutes)
    duty = find_active_duty(ctx.db, user_id=user_id, now=now, grace_before=grace_before, grace_after=grace_after)
    if duty is not None:
        return duty.start_at.astimezone(tz).date(), duty

    if event_type == AttendanceEventType.CHECK_IN:
        _ensure_previous_duty_closed(ctx, user_id=user_id, now=now, tz=tz, today=today)
    return today, None


def _resolve_leave_type(
    nearest: NearestGeofence,
    payload: AttendancePayload,
) -> tuple[AttendanceLeaveType, str | None]:
    if nearest.inside:
        return AttendanceLeaveType.NORMAL, None

    leave_type = payload.attendance_leave_type or AttendanceLeaveType.NORMAL
    if leave_type == AttendanceLeaveType.NORMAL:
        raise ApiError(
            status_code=422,
            code="OUT_OF_GEOFENCE",
            message=(
                f"Outside geofence {nearest.name} ({round(nearest.distance_m)} m, radius {round(nearest.radius_m)} m). "
                "Declare an attendance_leave_type with notes."
            ),
        )
    notes = (payload.attendance_leave_notes or "").strip()
    if len(notes) < MIN_NOTE_LENGTH:
        raise ApiError(
            status_code=422,
            code="LEAVE_NOTES_REQUIRED",
            message="attendance_leave_notes is required when attending outside the geofence.",
        )
    return leave_type, notes


def _snapshot(
    session: AttendanceSession,
    *,
    event: AttendanceEvent | None = None,
    nearest: NearestGeofence | None = None,
) -> AttendanceSnapshot:
    return AttendanceSnapshot(
        session_id=session.id,
        user_id=session.user_id,
        work_date=session.work_date,
        status=session.status,
        check_in_at=session.check_in_at,
        check_out_at=session.check_out_at,
        is_manual=bool(session.is_manual),
        event_id=event.id if event is not None else None,
        event_type=event.event_type if event is not None else None,
        geofence_id=nearest.geofence_id if nearest is not None else None,
        geofence_name=nearest.name if nearest is not None else None,
        distance_to_fence_m=round(nearest.distance_m, 2) if nearest is not None else None,
        inside_geofence=nearest.inside if nearest is not None else None,
        attendance_leave_type=event.attendance_leave_type if event is not None else None,
    )


def _record_attendance(
    ctx: AppContext,
    *,
    user_id: int,
    satker_id: int,
    payload: AttendancePayload,
    event_type: AttendanceEventType,
) -> AttendanceSnapshot:
    db = ctx.db
    now = ctx.now()

    validate_coordinates(payload.latitude, payload.longitude)
    device_id = payload.device_id.strip()
    if not device_id:
        raise ApiError(status_code=422, code="DEVICE_ID_REQUIRED", message="device_id is required.")
    if payload.is_mock:
        logger.warning("mock_location_rejected", extra={"user_id": user_id, "device_id": device_id})
        raise ApiError(status_code=422, code="MOCK_LOCATION", message="Mock location is not allowed.")
    if payload.accuracy_meters is not None and payload.accuracy_meters > ctx.settings.max_accuracy_m:
        raise ApiError(
            status_code=422,
            code="ACCURACY_TOO_LOW",
            message=f"GPS accuracy must be within {ctx.settings.max_accuracy_m:g} m.",
        )
    ensure_device_bound(db, user_id=user_id, device_id=device_id, payload=payload)

    consume_challenge(
        ctx,
        challenge_id=payload.challenge_id,
        user_id=user_id,
        satker_id=satker_id,
        device_id=device_id,
    )
    check_and_record_location(
        ctx,
        user_id=user_id,
        device_id=device_id,
        lat=payload.latitude,
        lon=payload.longitude,
        now=now,
    )

    nearest = resolve_nearest_geofence(db, satker_id=satker_id, lat=payload.latitude, lon=payload.longitude)
    if nearest is None:
        raise ApiError(
            status_code=409,
            code="NO_ACTIVE_GEOFENCE",
            message="No active geofence is configured for this satker.",
        )
    leave_type, leave_notes = _resolve_leave_type(nearest, payload)

    work_date, duty = _resolve_work_date(ctx, user_id=user_id, now=now, tz=get_timezone(ctx), event_type=event_type)
    session = _upsert_session(db, satker_id=satker_id, user_id=user_id, work_date=work_date)

    if event_type == AttendanceEventType.CHECK_IN:
        if _find_event(db, session_id=session.id, event_type=AttendanceEventType.CHECK_IN) is not None:
            raise ApiError(status_code=409, code="ALREADY_CHECKED_IN", message="Already checked in today.")
        if session.check_in_at is None:
            session.check_in_at = now
    else:
        if session.check_in_at is None:
            raise ApiError(status_code=409, code="NOT_CHECKED_IN", message="Check in before checking out.")
        if _find_event(db, session_id=session.id, event_type=AttendanceEventType.CHECK_OUT) is not None:
            raise ApiError(status_code=409, code="ALREADY_CHECKED_OUT", message="Already checked out today.")
        if session.check_out_at is None:
            session.check_out_at = now
        session.status = AttendanceSessionStatus.CLOSED

    event = AttendanceEvent(
        session_id=session.id,
        satker_id=satker_id,
        user_id=user_id,
        event_type=event_type,
        occurred_at=now,
        lat=payload.latitude,
        lon=payload.longitude,
        accuracy_meters=payload.accuracy_meters,
        geofence_id=nearest.geofence_id,
        distance_to_fence_m=round(nearest.distance_m, 2),
        selfie_object_key=payload.selfie_object_key,
        liveness_score=payload.liveness_score,
        face_match_score=payload.face_match_score,
        device_id=device_id,
        device_model=payload.device_model,
        android_version=payload.android_version,
        app_build=payload.app_build,
        client_version=payload.client_version,
        server_challenge_id=payload.challenge_id,
        attendance_leave_type=leave_type,
        attendance_leave_notes=leave_notes,
    )
    db.add(event)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        code = "ALREADY_CHECKED_IN" if event_type == AttendanceEventType.CHECK_IN else "ALREADY_CHECKED_OUT"
        raise ApiError(status_code=409, code=code, message="Attendance event already recorded.") from exc
    db.refresh(event)

    logger.info(
        "attendance_recorded",
        extra={
            "user_id": user_id,
            "satker_id": satker_id,
            "event_type": event_type.value,
            "work_date": work_date.isoformat(),
            "duty_schedule_id": duty.id if duty is not None else None,
            "geofence_id": nearest.geofence_id,
            "distance_m": round(nearest.distance_m, 2),
            "leave_type": leave_type.value,
        },
    )
    return _snapshot(session, event=event, nearest=nearest)


def check_in(ctx: AppContext, *, user_id: int, satker_id: int, payload: AttendancePayload) -> AttendanceSnapshot:
    return _record_attendance(
        ctx,
        user_id=user_id,
        satker_id=satker_id,
        payload=payload,
        event_type=AttendanceEventType.CHECK_IN,
    )


def check_out(ctx: AppContext, *, user_id: int, satker_id: int, payload: AttendancePayload) -> AttendanceSnapshot:
    return _record_attendance(
        ctx,
        user_id=user_id,
        satker_id=satker_id,
        payload=payload,
        event_type=AttendanceEventType.CHECK_OUT,
    )


def _manual_event(
    *,
    session: AttendanceSession,
    event_type: AttendanceEventType,
    occurred_at: datetime,
    geofence_id: int | None,
    distance_to_fence_m: float | None,
    leave_type: AttendanceLeaveType | None,
    leave_notes: str | None,
    payload: AttendanceCorrectionRequest,
) -> AttendanceEvent:
    return AttendanceEvent(
        session_id=session.id,
        satker_id=session.satker_id,
        user_id=session.user_id,
        event_type=event_type,
        occurred_at=occurred_at,
        geofence_id=geofence_id,
        distance_to_fence_m=distance_to_fence_m,
        device_id=(payload.device_id or "").strip() or ADMIN_DEVICE_ID,
        device_model=payload.device_model,
        client_version=payload.client_version,
        attendance_leave_type=leave_type or AttendanceLeaveType.NORMAL,
        attendance_leave_notes=leave_notes,
    )


def admin_correct_session(
    ctx: AppContext,
    *,
    actor_user_id: int,
    user_id: int,
    work_date: date,
    payload: AttendanceCorrectionRequest,
) -> AttendanceSnapshot:
    """Overwrite a day's attendance and replace its events.

    Unlike the device flow this path may overwrite timestamps that are
    already set.
    """
    db = ctx.db
    manual_note = (payload.manual_note or "").strip()
    if len(manual_note) < MIN_NOTE_LENGTH:
        raise ApiError(
            status_code=422,
            code="MANUAL_NOTE_REQUIRED",
            message="manual_note is required (at least 3 characters).",
        )
    if payload.check_in_at is None:
        raise ApiError(status_code=422, code="CHECK_IN_REQUIRED", message="check_in_at is required.")
    check_in_at = _normalize_ts(payload.check_in_at)
    check_out_at = _normalize_ts(payload.check_out_at) if payload.check_out_at is not None else None
    if check_out_at is not None and check_out_at < check_in_at:
        raise ApiError(
            status_code=422,
            code="INVALID_RANGE",
            message="check_out_at must not be earlier than check_in_at.",
        )

    user = db.get(User, user_id)
    if user is None:
        raise ApiError(status_code=404, code="USER_NOT_FOUND", message="User not found.")

    session = _upsert_session(db, satker_id=user.satker_id, user_id=user.id, work_date=work_date)
    session.check_in_at = check_in_at
    session.check_out_at = check_out_at
    session.status = AttendanceSessionStatus.CLOSED if check_out_at is not None else AttendanceSessionStatus.OPEN
    session.is_manual = True
    session.manual_note = manual_note
    session.manual_updated_by = actor_user_id
    session.manual_updated_at = ctx.now()

    db.execute(
        delete(AttendanceEvent).where(
            AttendanceEvent.session_id == session.id,
            AttendanceEvent.event_type.in_([AttendanceEventType.CHECK_IN, AttendanceEventType.CHECK_OUT]),
        )
    )
    db.add(
        _manual_event(
            session=session,
            event_type=AttendanceEventType.CHECK_IN,
            occurred_at=check_in_at,
            geofence_id=payload.check_in_geofence_id,
            distance_to_fence_m=payload.check_in_distance_to_fence_m,
            leave_type=payload.check_in_leave_type,
            leave_notes=payload.check_in_leave_notes,
            payload=payload,
        )
    )
    if check_out_at is not None:
        db.add(
            _manual_event(
                session=session,
                event_type=AttendanceEventType.CHECK_OUT,
                occurred_at=check_out_at,
                geofence_id=payload.check_out_geofence_id,
                distance_to_fence_m=payload.check_out_distance_to_fence_m,
                leave_type=payload.check_out_leave_type,
                leave_notes=payload.check_out_leave_notes,
                payload=payload,
            )
        )
    db.commit()
    db.refresh(session)

    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=actor_user_id,
        action="attendance_corrected",
        entity_type="attendance_session",
        entity_id=session.id,
        details={
            "user_id": user.id,
            "work_date": work_date.isoformat(),
            "check_in_at": check_in_at.isoformat(),
            "check_out_at": check_out_at.isoformat() if check_out_at is not None else None,
            "manual_note": manual_note,
        },
    )
    return _snapshot(session)


def delete_session(ctx: AppContext, *, actor_user_id: int, user_id: int, work_date: date) -> int:
    db = ctx.db
    session = _find_session(db, user_id=user_id, work_date=work_date)
    if session is None:
        raise ApiError(status_code=404, code="SESSION_NOT_FOUND", message="Attendance session not found.")

    session_id = session.id
    db.execute(delete(AttendanceEvent).where(AttendanceEvent.session_id == session_id))
    db.delete(session)
    db.commit()

    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=actor_user_id,
        action="attendance_deleted",
        entity_type="attendance_session",
        entity_id=session_id,
        details={"user_id": user_id, "work_date": work_date.isoformat()},
    )
    return session_id


def list_sessions(
    db: Session,
    *,
    satker_id: int | None,
    user_id: int | None,
    date_from: date,
    date_to: date,
) -> list[AttendanceSession]:
    if date_to < date_from:
        raise ApiError(status_code=422, code="INVALID_RANGE", message="date_to must be >= date_from.")

    stmt = (
        select(AttendanceSession)
        .where(AttendanceSession.work_date >= date_from, AttendanceSession.work_date <= date_to)
        .order_by(AttendanceSession.work_date.asc(), AttendanceSession.user_id.asc())
    )
    if satker_id is not None:
        stmt = stmt.where(AttendanceSession.satker_id == satker_id)
    if user_id is not None:
        stmt = stmt.where(AttendanceSession.user_id == user_id)
    return list(db.scalars(stmt).all())
