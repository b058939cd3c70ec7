from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from presensi.audit import log_audit
from presensi.context import AppContext
from presensi.errors import ApiError
from presensi.models import AuditActorType, DutyRequestStatus, DutySchedule, DutyScheduleRequest, User, UserRole
from presensi.schemas import DutyRequestCreateRequest, DutyScheduleCreateRequest
from presensi.security import AuthContext, ensure_satker_access
from presensi.services.timezone_cache import get_timezone

logger = logging.getLogger("presensi.duty_schedules")

MAX_DUTY_DURATION = timedelta(hours=24)
MIN_REASON_LENGTH = 3
OVERLAP_REJECT_REASON = "Overlaps an existing duty schedule."


def _normalize_ts(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_duty_window(start_at: datetime, end_at: datetime) -> None:
    duration = end_at - start_at
    if duration <= timedelta(0):
        raise ApiError(status_code=422, code="INVALID_RANGE", message="end_at must be after start_at.")
    if duration > MAX_DUTY_DURATION:
        raise ApiError(status_code=422, code="DUTY_TOO_LONG", message="A duty schedule may last at most 24 hours.")


def _validate_not_in_past(ctx: AppContext, start_at: datetime) -> None:
    tz = get_timezone(ctx)
    if start_at.astimezone(tz).date() < ctx.now().astimezone(tz).date():
        raise ApiError(
            status_code=422,
            code="START_DATE_IN_PAST",
            message="Duty start date must not be before today.",
        )


def _has_schedule_overlap(
    db: Session,
    *,
    user_id: int,
    start_at: datetime,
    end_at: datetime,
    exclude_id: int | None = None,
) -> bool:
    stmt = select(DutySchedule.id).where(
        DutySchedule.user_id == user_id,
        DutySchedule.deleted_at.is_(None),
        DutySchedule.start_at < end_at,
        DutySchedule.end_at > start_at,
    )
    if exclude_id is not None:
        stmt = stmt.where(DutySchedule.id != exclude_id)
    return db.scalar(stmt.limit(1)) is not None


def _has_pending_overlap(
    db: Session,
    *,
    user_id: int,
    start_at: datetime,
    end_at: datetime,
    exclude_id: int | None = None,
) -> bool:
    stmt = select(DutyScheduleRequest.id).where(
        DutyScheduleRequest.user_id == user_id,
        DutyScheduleRequest.status == DutyRequestStatus.SUBMITTED,
        DutyScheduleRequest.start_at < end_at,
        DutyScheduleRequest.end_at > start_at,
    )
    if exclude_id is not None:
        stmt = stmt.where(DutyScheduleRequest.id != exclude_id)
    return db.scalar(stmt.limit(1)) is not None


def _overlap_error(message: str = OVERLAP_REJECT_REASON) -> ApiError:
    return ApiError(status_code=409, code="DUTY_SCHEDULE_OVERLAP", message=message)


def create_duty_schedule(ctx: AppContext, *, auth: AuthContext, payload: DutyScheduleCreateRequest) -> DutySchedule:
    db = ctx.db
    start_at = _normalize_ts(payload.start_at)
    end_at = _normalize_ts(payload.end_at)
    validate_duty_window(start_at, end_at)

    user = db.get(User, payload.user_id)
    if user is None:
        raise ApiError(status_code=404, code="USER_NOT_FOUND", message="User not found.")
    ensure_satker_access(auth, user.satker_id)

    if _has_schedule_overlap(db, user_id=user.id, start_at=start_at, end_at=end_at):
        raise _overlap_error()

    schedule = DutySchedule(
        satker_id=user.satker_id,
        user_id=user.id,
        start_at=start_at,
        end_at=end_at,
        schedule_type=payload.schedule_type,
        title=payload.title,
        note=payload.note,
        created_by=auth.user_id,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    logger.info(
        "duty_schedule_created",
        extra={"duty_schedule_id": schedule.id, "user_id": user.id, "start_at": start_at.isoformat()},
    )
    return schedule


def delete_duty_schedule(ctx: AppContext, *, auth: AuthContext, schedule_id: int) -> None:
    schedule = ctx.db.get(DutySchedule, schedule_id)
    if schedule is None or schedule.deleted_at is not None:
        raise ApiError(status_code=404, code="DUTY_SCHEDULE_NOT_FOUND", message="Duty schedule not found.")
    ensure_satker_access(auth, schedule.satker_id)

    schedule.deleted_at = ctx.now()
    ctx.db.commit()
    log_audit(
        ctx.db,
        actor_type=AuditActorType.ADMIN,
        actor_id=auth.user_id,
        action="duty_schedule_deleted",
        entity_type="duty_schedule",
        entity_id=schedule_id,
    )


def list_duty_schedules(
    db: Session,
    *,
    user_id: int,
    start_from: datetime,
    start_before: datetime,
) -> list[DutySchedule]:
    stmt = (
        select(DutySchedule)
        .where(
            DutySchedule.user_id == user_id,
            DutySchedule.deleted_at.is_(None),
            DutySchedule.start_at >= start_from,
            DutySchedule.start_at < start_before,
        )
        .order_by(DutySchedule.start_at.asc(), DutySchedule.id.asc())
    )
    return list(db.scalars(stmt).all())


def find_active_duty(
    db: Session,
    *,
    user_id: int,
    now: datetime,
    grace_before: timedelta,
    grace_after: timedelta,
) -> DutySchedule | None:
    """Earliest live duty whose widened window [start - before, end + after] contains now."""
    stmt = (
        select(DutySchedule)
        .where(
            DutySchedule.user_id == user_id,
            DutySchedule.deleted_at.is_(None),
            DutySchedule.start_at <= now + grace_before,
            DutySchedule.end_at >= now - grace_after,
        )
        .order_by(DutySchedule.start_at.asc(), DutySchedule.id.asc())
        .limit(1)
    )
    return db.scalar(stmt)


def find_duty_on_local_date(db: Session, *, user_id: int, day: date, tz: tzinfo) -> DutySchedule | None:
    local_start = datetime.combine(day, time.min, tzinfo=tz)
    local_end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    schedules = list_duty_schedules(
        db,
        user_id=user_id,
        start_from=local_start.astimezone(timezone.utc),
        start_before=local_end.astimezone(timezone.utc),
    )
    return schedules[0] if schedules else None


def submit_duty_request(
    ctx: AppContext,
    *,
    auth: AuthContext,
    payload: DutyRequestCreateRequest,
) -> DutyScheduleRequest:
    db = ctx.db
    start_at = _normalize_ts(payload.start_at)
    end_at = _normalize_ts(payload.end_at)
    validate_duty_window(start_at, end_at)
    _validate_not_in_past(ctx, start_at)

    if _has_schedule_overlap(db, user_id=auth.user_id, start_at=start_at, end_at=end_at):
        raise _overlap_error()
    if _has_pending_overlap(db, user_id=auth.user_id, start_at=start_at, end_at=end_at):
        raise _overlap_error("Overlaps a duty schedule request that is still being processed.")

    request_row = DutyScheduleRequest(
        satker_id=auth.satker_id,
        user_id=auth.user_id,
        start_at=start_at,
        end_at=end_at,
        schedule_type=payload.schedule_type,
        title=payload.title,
        note=payload.note,
        status=DutyRequestStatus.SUBMITTED,
    )
    db.add(request_row)
    db.commit()
    db.refresh(request_row)
    logger.info("duty_request_submitted", extra={"request_id": request_row.id, "user_id": auth.user_id})
    return request_row


def _get_request_for_update(db: Session, request_id: int) -> DutyScheduleRequest:
    request_row = db.get(DutyScheduleRequest, request_id, with_for_update=True)
    if request_row is None:
        raise ApiError(status_code=404, code="REQUEST_NOT_FOUND", message="Duty schedule request not found.")
    return request_row


def _ensure_pending(request_row: DutyScheduleRequest) -> None:
    if request_row.status != DutyRequestStatus.SUBMITTED:
        raise ApiError(
            status_code=409,
            code="REQUEST_NOT_PENDING",
            message=f"Request is {request_row.status.value}; only SUBMITTED requests can change.",
        )


def _ensure_can_decide(auth: AuthContext, request_row: DutyScheduleRequest) -> None:
    if auth.role == UserRole.MEMBER:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
    ensure_satker_access(auth, request_row.satker_id)


def cancel_duty_request(ctx: AppContext, *, auth: AuthContext, request_id: int) -> DutyScheduleRequest:
    db = ctx.db
    request_row = _get_request_for_update(db, request_id)
    if request_row.user_id != auth.user_id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Only the requester may cancel this request.")
    _ensure_pending(request_row)

    request_row.status = DutyRequestStatus.CANCELLED
    db.commit()
    db.refresh(request_row)
    return request_row


def approve_duty_request(ctx: AppContext, *, auth: AuthContext, request_id: int) -> DutyScheduleRequest:
    db = ctx.db
    request_row = _get_request_for_update(db, request_id)
    _ensure_can_decide(auth, request_row)
    _ensure_pending(request_row)

    start_at = _normalize_ts(request_row.start_at)
    end_at = _normalize_ts(request_row.end_at)
    validate_duty_window(start_at, end_at)
    _validate_not_in_past(ctx, start_at)

    now = ctx.now()
    if _has_schedule_overlap(db, user_id=request_row.user_id, start_at=start_at, end_at=end_at):
        request_row.status = DutyRequestStatus.REJECTED
        request_row.reject_reason = OVERLAP_REJECT_REASON
        request_row.decided_by = auth.user_id
        request_row.decided_at = now
        db.commit()
        logger.info("duty_request_auto_rejected", extra={"request_id": request_row.id, "reason": "overlap"})
        raise _overlap_error()

    schedule = DutySchedule(
        satker_id=request_row.satker_id,
        user_id=request_row.user_id,
        start_at=start_at,
        end_at=end_at,
        schedule_type=request_row.schedule_type,
        title=request_row.title,
        note=request_row.note,
        created_by=request_row.user_id,
    )
    db.add(schedule)
    db.flush()

    request_row.status = DutyRequestStatus.APPROVED
    request_row.decided_by = auth.user_id
    request_row.decided_at = now
    request_row.duty_schedule_id = schedule.id
    db.commit()
    db.refresh(request_row)

    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=auth.user_id,
        action="duty_request_approved",
        entity_type="duty_schedule_request",
        entity_id=request_row.id,
        details={"duty_schedule_id": schedule.id},
    )
    return request_row


def reject_duty_request(
    ctx: AppContext,
    *,
    auth: AuthContext,
    request_id: int,
    reject_reason: str,
) -> DutyScheduleRequest:
    reason = (reject_reason or "").strip()
    if len(reason) < MIN_REASON_LENGTH:
        raise ApiError(
            status_code=422,
            code="REJECT_REASON_REQUIRED",
            message="reject_reason is required (at least 3 characters).",
        )

    db = ctx.db
    request_row = _get_request_for_update(db, request_id)
    _ensure_can_decide(auth, request_row)
    _ensure_pending(request_row)

    request_row.status = DutyRequestStatus.REJECTED
    request_row.reject_reason = reason
    request_row.decided_by = auth.user_id
    request_row.decided_at = ctx.now()
    db.commit()
    db.refresh(request_row)

    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=auth.user_id,
        action="duty_request_rejected",
        entity_type="duty_schedule_request",
        entity_id=request_row.id,
        details={"reason": reason},
    )
    return request_row
