from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status

from presensi.context import AppContext, get_context
from presensi.models import User, UserRole
from presensi.schemas import (
    AttendanceCorrectionRequest,
    AttendanceSnapshot,
    CalendarDayRead,
    CalendarDayUpsertRequest,
    CalendarGenerateRequest,
    CalendarGenerateResponse,
    DutyScheduleCreateRequest,
    DutyScheduleRead,
    LeaveDecisionRequest,
    LeaveRead,
    TimezoneResponse,
    TimezoneUpdateRequest,
    TukinLeaveRuleItem,
    TukinLeaveRulesReplaceRequest,
    TukinPolicyCreateRequest,
    TukinPolicyRead,
    TukinPolicyUpdateRequest,
    WorkPatternRead,
    WorkPatternUpsertRequest,
)
from presensi.security import ADMIN_ROLES, SATKER_MANAGER_ROLES, AuthContext, ensure_satker_access, require_roles
from presensi.services.attendance import admin_correct_session, delete_session
from presensi.services.calendar import generate_calendar, upsert_calendar_day, upsert_work_pattern
from presensi.services.duty_schedules import create_duty_schedule, delete_duty_schedule
from presensi.services.leaves import decide_leave
from presensi.services.timezone_cache import get_timezone, set_timezone
from presensi.services.tukin_policy import (
    create_policy,
    delete_policy,
    list_policies,
    replace_leave_rules,
    update_policy,
)

router = APIRouter(prefix="/admin", tags=["admin"])

require_admin = require_roles(*ADMIN_ROLES)
require_manager = require_roles(*SATKER_MANAGER_ROLES)
require_superadmin = require_roles(UserRole.SUPERADMIN)


def _ensure_user_access(ctx: AppContext, auth: AuthContext, user_id: int) -> None:
    user = ctx.db.get(User, user_id)
    if user is not None:
        ensure_satker_access(auth, user.satker_id)


@router.put("/attendance/sessions", response_model=AttendanceSnapshot)
def correct_session(
    payload: AttendanceCorrectionRequest,
    user_id: int = Query(ge=1),
    work_date: date = Query(),
    auth: AuthContext = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
) -> AttendanceSnapshot:
    _ensure_user_access(ctx, auth, user_id)
    return admin_correct_session(
        ctx,
        actor_user_id=auth.user_id,
        user_id=user_id,
        work_date=work_date,
        payload=payload,
    )


@router.delete("/attendance/sessions", status_code=status.HTTP_204_NO_CONTENT)
def remove_session(
    user_id: int = Query(ge=1),
    work_date: date = Query(),
    auth: AuthContext = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
) -> Response:
    _ensure_user_access(ctx, auth, user_id)
    delete_session(ctx, actor_user_id=auth.user_id, user_id=user_id, work_date=work_date)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/satkers/{satker_id}/calendar/generate", response_model=CalendarGenerateResponse)
def calendar_generate(
    satker_id: int,
    payload: CalendarGenerateRequest,
    auth: AuthContext = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
) -> CalendarGenerateResponse:
    ensure_satker_access(auth, satker_id)
    days = generate_calendar(ctx, satker_id=satker_id, date_from=payload.date_from, date_to=payload.date_to)
    return CalendarGenerateResponse(satker_id=satker_id, days_generated=days)


@router.put("/satkers/{satker_id}/calendar/{work_date}", response_model=CalendarDayRead)
def calendar_day_upsert(
    satker_id: int,
    work_date: date,
    payload: CalendarDayUpsertRequest,
    auth: AuthContext = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
) -> CalendarDayRead:
    ensure_satker_access(auth, satker_id)
    row = upsert_calendar_day(
        ctx,
        satker_id=satker_id,
        work_date=work_date,
        day_type=payload.day_type,
        expected_start=payload.expected_start,
        expected_end=payload.expected_end,
        note=payload.note,
    )
    return CalendarDayRead.model_validate(row)


@router.put("/satkers/{satker_id}/work-patterns", response_model=WorkPatternRead)
def work_pattern_upsert(
    satker_id: int,
    payload: WorkPatternUpsertRequest,
    auth: AuthContext = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
) -> WorkPatternRead:
    ensure_satker_access(auth, satker_id)
    return WorkPatternRead.model_validate(upsert_work_pattern(ctx, satker_id=satker_id, payload=payload))


@router.post("/duty-schedules", response_model=DutyScheduleRead, status_code=status.HTTP_201_CREATED)
def duty_schedule_create(
    payload: DutyScheduleCreateRequest,
    auth: AuthContext = Depends(require_manager),
    ctx: AppContext = Depends(get_context),
) -> DutyScheduleRead:
    return DutyScheduleRead.model_validate(create_duty_schedule(ctx, auth=auth, payload=payload))


@router.delete("/duty-schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def duty_schedule_delete(
    schedule_id: int,
    auth: AuthContext = Depends(require_manager),
    ctx: AppContext = Depends(get_context),
) -> Response:
    delete_duty_schedule(ctx, auth=auth, schedule_id=schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/leaves/{leave_id}/decision", response_model=LeaveRead)
def leave_decide(
    leave_id: int,
    payload: LeaveDecisionRequest,
    auth: AuthContext = Depends(require_manager),
    ctx: AppContext = Depends(get_context),
) -> LeaveRead:
    return LeaveRead.model_validate(decide_leave(ctx, auth=auth, leave_id=leave_id, status=payload.status))


@router.get("/tukin/policies", response_model=list[TukinPolicyRead])
def policy_list(
    satker_id: int | None = Query(default=None, ge=1),
    auth: AuthContext = Depends(require_manager),
    ctx: AppContext = Depends(get_context),
) -> list[TukinPolicyRead]:
    return [TukinPolicyRead.model_validate(row) for row in list_policies(ctx.db, auth=auth, satker_id=satker_id)]


@router.post("/tukin/policies", response_model=TukinPolicyRead, status_code=status.HTTP_201_CREATED)
def policy_create(
    payload: TukinPolicyCreateRequest,
    auth: AuthContext = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
) -> TukinPolicyRead:
    return TukinPolicyRead.model_validate(create_policy(ctx, auth=auth, payload=payload))


@router.patch("/tukin/policies/{policy_id}", response_model=TukinPolicyRead)
def policy_update(
    policy_id: int,
    payload: TukinPolicyUpdateRequest,
    auth: AuthContext = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
) -> TukinPolicyRead:
    return TukinPolicyRead.model_validate(update_policy(ctx, auth=auth, policy_id=policy_id, payload=payload))


@router.delete("/tukin/policies/{policy_id}", status_code=status.HTTP_204_NO_CONTENT)
def policy_delete(
    policy_id: int,
    auth: AuthContext = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
) -> Response:
    delete_policy(ctx, auth=auth, policy_id=policy_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/tukin/policies/{policy_id}/leave-rules", response_model=list[TukinLeaveRuleItem])
def policy_leave_rules_replace(
    policy_id: int,
    payload: TukinLeaveRulesReplaceRequest,
    auth: AuthContext = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
) -> list[TukinLeaveRuleItem]:
    rules = replace_leave_rules(ctx, auth=auth, policy_id=policy_id, rules=payload.rules)
    return [TukinLeaveRuleItem.model_validate(rule) for rule in rules]


@router.get("/settings/timezone", response_model=TimezoneResponse)
def timezone_read(
    _: AuthContext = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
) -> TimezoneResponse:
    return TimezoneResponse(timezone=get_timezone(ctx).key)


@router.put("/settings/timezone", response_model=TimezoneResponse)
def timezone_update(
    payload: TimezoneUpdateRequest,
    _: AuthContext = Depends(require_superadmin),
    ctx: AppContext = Depends(get_context),
) -> TimezoneResponse:
    return TimezoneResponse(timezone=set_timezone(ctx, payload.timezone).key)
