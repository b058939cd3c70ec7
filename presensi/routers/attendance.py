from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status

from presensi.context import AppContext, get_context
from presensi.models import UserRole
from presensi.schemas import (
    AttendancePayload,
    AttendanceSessionRead,
    AttendanceSnapshot,
    ChallengeIssueRequest,
    ChallengeResponse,
    DutyRequestCreateRequest,
    DutyRequestRead,
    DutyRequestRejectRequest,
    LeaveCreateRequest,
    LeaveRead,
    TukinCalculationRead,
    TukinUserSummary,
)
from presensi.security import SATKER_MANAGER_ROLES, AuthContext, require_roles, require_user
from presensi.services.attendance import check_in, check_out, list_sessions
from presensi.services.challenge import issue_challenge
from presensi.services.duty_schedules import (
    approve_duty_request,
    cancel_duty_request,
    reject_duty_request,
    submit_duty_request,
)
from presensi.services.leaves import create_leave
from presensi.services.tukin import generate_tukin, list_calculations, preview_tukin

router = APIRouter(tags=["attendance"])


@router.post("/attendance/challenge", response_model=ChallengeResponse, status_code=status.HTTP_201_CREATED)
def create_challenge(
    payload: ChallengeIssueRequest,
    auth: AuthContext = Depends(require_user),
    ctx: AppContext = Depends(get_context),
) -> ChallengeResponse:
    issued = issue_challenge(ctx, user_id=auth.user_id, satker_id=auth.satker_id, device_id=payload.device_id)
    return ChallengeResponse(
        challenge_id=issued.challenge_id,
        nonce=issued.nonce,
        expires_at=issued.expires_at,
    )


@router.post("/attendance/check-in", response_model=AttendanceSnapshot)
def attendance_check_in(
    payload: AttendancePayload,
    request: Request,
    auth: AuthContext = Depends(require_user),
    ctx: AppContext = Depends(get_context),
) -> AttendanceSnapshot:
    snapshot = check_in(ctx, user_id=auth.user_id, satker_id=auth.satker_id, payload=payload)
    request.state.event_id = snapshot.event_id
    return snapshot


@router.post("/attendance/check-out", response_model=AttendanceSnapshot)
def attendance_check_out(
    payload: AttendancePayload,
    request: Request,
    auth: AuthContext = Depends(require_user),
    ctx: AppContext = Depends(get_context),
) -> AttendanceSnapshot:
    snapshot = check_out(ctx, user_id=auth.user_id, satker_id=auth.satker_id, payload=payload)
    request.state.event_id = snapshot.event_id
    return snapshot


@router.get("/attendance/sessions", response_model=list[AttendanceSessionRead])
def get_sessions(
    date_from: date = Query(alias="from"),
    date_to: date = Query(alias="to"),
    satker_id: int | None = Query(default=None, ge=1),
    user_id: int | None = Query(default=None, ge=1),
    auth: AuthContext = Depends(require_user),
    ctx: AppContext = Depends(get_context),
) -> list[AttendanceSessionRead]:
    if auth.role == UserRole.MEMBER:
        satker_id, user_id = auth.satker_id, auth.user_id
    elif not auth.is_superadmin:
        satker_id = auth.satker_id
    rows = list_sessions(ctx.db, satker_id=satker_id, user_id=user_id, date_from=date_from, date_to=date_to)
    return [AttendanceSessionRead.model_validate(row) for row in rows]


@router.post("/duty-requests", response_model=DutyRequestRead, status_code=status.HTTP_201_CREATED)
def create_duty_request(
    payload: DutyRequestCreateRequest,
    auth: AuthContext = Depends(require_user),
    ctx: AppContext = Depends(get_context),
) -> DutyRequestRead:
    return DutyRequestRead.model_validate(submit_duty_request(ctx, auth=auth, payload=payload))


@router.post("/duty-requests/{request_id}/cancel", response_model=DutyRequestRead)
def cancel_request(
    request_id: int,
    auth: AuthContext = Depends(require_user),
    ctx: AppContext = Depends(get_context),
) -> DutyRequestRead:
    return DutyRequestRead.model_validate(cancel_duty_request(ctx, auth=auth, request_id=request_id))


@router.post("/duty-requests/{request_id}/approve", response_model=DutyRequestRead)
def approve_request(
    request_id: int,
    auth: AuthContext = Depends(require_roles(*SATKER_MANAGER_ROLES)),
    ctx: AppContext = Depends(get_context),
) -> DutyRequestRead:
    return DutyRequestRead.model_validate(approve_duty_request(ctx, auth=auth, request_id=request_id))


@router.post("/duty-requests/{request_id}/reject", response_model=DutyRequestRead)
def reject_request(
    request_id: int,
    payload: DutyRequestRejectRequest,
    auth: AuthContext = Depends(require_roles(*SATKER_MANAGER_ROLES)),
    ctx: AppContext = Depends(get_context),
) -> DutyRequestRead:
    row = reject_duty_request(ctx, auth=auth, request_id=request_id, reject_reason=payload.reject_reason)
    return DutyRequestRead.model_validate(row)


@router.post("/leaves", response_model=LeaveRead, status_code=status.HTTP_201_CREATED)
def submit_leave(
    payload: LeaveCreateRequest,
    auth: AuthContext = Depends(require_user),
    ctx: AppContext = Depends(get_context),
) -> LeaveRead:
    return LeaveRead.model_validate(create_leave(ctx, auth=auth, payload=payload))


@router.get("/tukin/preview", response_model=list[TukinUserSummary])
def tukin_preview(
    month: str = Query(),
    satker_id: int | None = Query(default=None, ge=1),
    user_id: int | None = Query(default=None, ge=1),
    auth: AuthContext = Depends(require_user),
    ctx: AppContext = Depends(get_context),
) -> list[TukinUserSummary]:
    return preview_tukin(ctx, auth=auth, month=month, satker_id=satker_id, user_id=user_id)


@router.post("/tukin/generate", response_model=list[TukinCalculationRead])
def tukin_generate(
    month: str = Query(),
    satker_id: int | None = Query(default=None, ge=1),
    user_id: int | None = Query(default=None, ge=1),
    force: bool = Query(default=False),
    auth: AuthContext = Depends(require_roles(*SATKER_MANAGER_ROLES)),
    ctx: AppContext = Depends(get_context),
) -> list[TukinCalculationRead]:
    rows = generate_tukin(ctx, auth=auth, month=month, satker_id=satker_id, user_id=user_id, force=force)
    return [TukinCalculationRead.model_validate(row) for row in rows]


@router.get("/tukin/calculations", response_model=list[TukinCalculationRead])
def tukin_calculations(
    month: str = Query(),
    satker_id: int | None = Query(default=None, ge=1),
    user_id: int | None = Query(default=None, ge=1),
    auth: AuthContext = Depends(require_user),
    ctx: AppContext = Depends(get_context),
) -> list[TukinCalculationRead]:
    rows = list_calculations(ctx, auth=auth, month=month, satker_id=satker_id, user_id=user_id)
    return [TukinCalculationRead.model_validate(row) for row in rows]
