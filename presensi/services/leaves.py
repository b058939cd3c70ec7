from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from presensi.audit import log_audit
from presensi.context import AppContext
from presensi.errors import ApiError
from presensi.models import AuditActorType, LeaveRequest, LeaveStatus
from presensi.schemas import LeaveCreateRequest
from presensi.security import AuthContext

_DECIDABLE = {LeaveStatus.APPROVED, LeaveStatus.REJECTED}


def create_leave(ctx: AppContext, *, auth: AuthContext, payload: LeaveCreateRequest) -> LeaveRequest:
    if payload.end_date < payload.start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_RANGE",
            message="end_date must be greater than or equal to start_date.",
        )

    leave = LeaveRequest(
        satker_id=auth.satker_id,
        user_id=auth.user_id,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        status=LeaveStatus.SUBMITTED,
    )
    ctx.db.add(leave)
    ctx.db.commit()
    ctx.db.refresh(leave)
    return leave


def decide_leave(ctx: AppContext, *, auth: AuthContext, leave_id: int, status: LeaveStatus) -> LeaveRequest:
    if status not in _DECIDABLE:
        raise ApiError(status_code=422, code="VALIDATION_ERROR", message="status must be APPROVED or REJECTED.")

    leave = ctx.db.get(LeaveRequest, leave_id)
    if leave is None:
        raise ApiError(status_code=404, code="LEAVE_NOT_FOUND", message="Leave request not found.")
    if not auth.is_superadmin and leave.satker_id != auth.satker_id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="No access to this leave request.")
    if leave.status != LeaveStatus.SUBMITTED:
        raise ApiError(status_code=409, code="REQUEST_NOT_PENDING", message="Leave request was already decided.")

    leave.status = status
    leave.decided_by = auth.user_id
    leave.decided_at = ctx.now()
    ctx.db.commit()
    ctx.db.refresh(leave)

    log_audit(
        ctx.db,
        actor_type=AuditActorType.ADMIN,
        actor_id=auth.user_id,
        action="leave_decided",
        entity_type="leave_request",
        entity_id=leave.id,
        details={"status": status.value},
    )
    return leave


def list_approved_leaves(db: Session, *, user_id: int, date_from: date, date_to: date) -> list[LeaveRequest]:
    stmt = (
        select(LeaveRequest)
        .where(
            LeaveRequest.user_id == user_id,
            LeaveRequest.status == LeaveStatus.APPROVED,
            LeaveRequest.start_date <= date_to,
            LeaveRequest.end_date >= date_from,
        )
        .order_by(LeaveRequest.start_date.asc(), LeaveRequest.id.asc())
    )
    return list(db.scalars(stmt).all())
