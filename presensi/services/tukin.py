from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from presensi.context import AppContext
from presensi.errors import ApiError
from presensi.models import AttendanceEvent, Rank, TukinCalculation, User, UserRole
from presensi.schemas import TukinUserSummary
from presensi.security import AuthContext
from presensi.services.attendance import list_sessions
from presensi.services.calendar import ResolvedDay, list_calendar_days, list_holidays, list_work_patterns, resolve_range
from presensi.services.duty_schedules import list_duty_schedules
from presensi.services.leaves import list_approved_leaves
from presensi.services.timezone_cache import get_timezone
from presensi.services.tukin_calc import accrue_user_month, final_payout, month_dates, parse_month
from presensi.services.tukin_policy import active_policy, leave_credit_map, list_leave_rules

logger = logging.getLogger("presensi.tukin")


def resolve_scope(auth: AuthContext, satker_id: int | None, user_id: int | None) -> tuple[int | None, int | None]:
    """Clamp the requested satker/user to what the caller may see."""
    if auth.role == UserRole.MEMBER:
        if user_id is not None and user_id != auth.user_id:
            raise ApiError(status_code=403, code="FORBIDDEN", message="Members may only view their own tukin.")
        return auth.satker_id, auth.user_id
    if not auth.is_superadmin:
        if satker_id is not None and satker_id != auth.satker_id:
            raise ApiError(status_code=403, code="FORBIDDEN", message="No access to this satker.")
        return auth.satker_id, user_id
    return satker_id, user_id


def _load_users(db: Session, *, satker_id: int | None, user_id: int | None) -> list[User]:
    if user_id is not None:
        user = db.get(User, user_id)
        if user is None:
            raise ApiError(status_code=404, code="USER_NOT_FOUND", message="User not found.")
        if satker_id is not None and user.satker_id != satker_id:
            raise ApiError(status_code=403, code="FORBIDDEN", message="User is outside the requested satker.")
        return [user]

    if satker_id is None:
        raise ApiError(status_code=422, code="SATKER_REQUIRED", message="satker_id is required without user_id.")
    stmt = (
        select(User)
        .where(User.satker_id == satker_id, User.is_active.is_(True))
        .order_by(User.id.asc())
    )
    return list(db.scalars(stmt).all())


def _base_tukin(db: Session, user: User) -> int:
    if user.rank_id is None:
        return 0
    rank = db.get(Rank, user.rank_id)
    return int(rank.tukin_base) if rank is not None else 0


def _calendar_for_month(db: Session, *, satker_id: int, start: date, end: date) -> dict[date, ResolvedDay]:
    """Stored calendar rows first, gaps filled from work patterns and holidays."""
    resolved = resolve_range(
        list_work_patterns(db, satker_id=satker_id),
        list_holidays(db, satker_id=satker_id, date_from=start, date_to=end),
        start,
        end,
        strict=False,
    )
    for row in list_calendar_days(db, satker_id=satker_id, date_from=start, date_to=end):
        resolved[row.work_date] = ResolvedDay(
            work_date=row.work_date,
            day_type=row.day_type,
            expected_start=row.expected_start,
            expected_end=row.expected_end,
            note=row.note,
        )
    return resolved


def _list_events(db: Session, *, user_id: int, start: datetime, end: datetime) -> list[AttendanceEvent]:
    stmt = (
        select(AttendanceEvent)
        .where(
            AttendanceEvent.user_id == user_id,
            AttendanceEvent.occurred_at >= start,
            AttendanceEvent.occurred_at < end,
        )
        .order_by(AttendanceEvent.occurred_at.asc())
    )
    return list(db.scalars(stmt).all())


def _month_bounds_utc(start: date, end_exclusive: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    return (
        datetime.combine(start, time.min, tzinfo=tz).astimezone(timezone.utc),
        datetime.combine(end_exclusive, time.min, tzinfo=tz).astimezone(timezone.utc),
    )


def _summarize_user(
    ctx: AppContext,
    *,
    user: User,
    month: str,
    start: date,
    end_exclusive: date,
    tz: ZoneInfo,
    calendar: dict[date, ResolvedDay],
) -> TukinUserSummary:
    db = ctx.db
    settings = ctx.settings
    last_day = end_exclusive - timedelta(days=1)
    policy = active_policy(db, satker_id=user.satker_id, period_start=start)
    credits = leave_credit_map(list_leave_rules(db, policy_id=policy.id))

    month_start_utc, month_end_utc = _month_bounds_utc(start, end_exclusive, tz)
    grace_before = timedelta(minutes=settings.duty_grace_before_minutes)
    grace_after = timedelta(minutes=settings.duty_grace_after_minutes)

    sessions = {
        row.work_date: row
        for row in list_sessions(db, satker_id=None, user_id=user.id, date_from=start, date_to=last_day)
    }
    duties = list_duty_schedules(db, user_id=user.id, start_from=month_start_utc, start_before=month_end_utc)
    # Duties starting late on the last day may end in the next month.
    events = _list_events(
        db,
        user_id=user.id,
        start=month_start_utc - grace_before,
        end=month_end_utc + timedelta(days=1) + grace_after,
    )
    leaves = list_approved_leaves(db, user_id=user.id, date_from=start, date_to=last_day)

    accrual = accrue_user_month(
        dates=month_dates(start, end_exclusive),
        tz=tz,
        calendar=calendar,
        sessions=sessions,
        duty_schedules=duties,
        events=events,
        leaves=leaves,
        leave_credits=credits,
        missing_checkout_penalty_pct=policy.missing_checkout_penalty_pct,
        grace_before=grace_before,
        grace_after=grace_after,
    )
    base_tukin = _base_tukin(db, user)
    ratio, final_tukin = final_payout(base_tukin, accrual.expected_units, accrual.earned_credit)

    return TukinUserSummary(
        user_id=user.id,
        satker_id=user.satker_id,
        nrp=user.nrp,
        full_name=user.full_name,
        month=month,
        policy_id=policy.id,
        base_tukin=base_tukin,
        expected_units=accrual.expected_units,
        earned_credit=accrual.earned_credit,
        attendance_ratio=ratio,
        final_tukin=final_tukin,
        present_days=accrual.present_days,
        absent_days=accrual.absent_days,
        missing_checkout_days=accrual.missing_checkout_days,
        duty_present=accrual.duty_present,
        duty_absent=accrual.duty_absent,
        total_late_minutes=accrual.total_late_minutes,
        days=accrual.days,
    )


def _compute_summaries(
    ctx: AppContext,
    *,
    month: str,
    start: date,
    end_exclusive: date,
    users: list[User],
) -> list[TukinUserSummary]:
    tz = get_timezone(ctx)
    last_day = end_exclusive - timedelta(days=1)
    calendars: dict[int, dict[date, ResolvedDay]] = {}
    summaries: list[TukinUserSummary] = []
    for user in users:
        if user.satker_id not in calendars:
            calendars[user.satker_id] = _calendar_for_month(ctx.db, satker_id=user.satker_id, start=start, end=last_day)
        summaries.append(
            _summarize_user(
                ctx,
                user=user,
                month=month,
                start=start,
                end_exclusive=end_exclusive,
                tz=tz,
                calendar=calendars[user.satker_id],
            )
        )
    return summaries


def preview_tukin(
    ctx: AppContext,
    *,
    auth: AuthContext,
    month: str,
    satker_id: int | None = None,
    user_id: int | None = None,
) -> list[TukinUserSummary]:
    start, end_exclusive = parse_month(month)
    satker_id, user_id = resolve_scope(auth, satker_id, user_id)
    users = _load_users(ctx.db, satker_id=satker_id, user_id=user_id)
    return _compute_summaries(ctx, month=month, start=start, end_exclusive=end_exclusive, users=users)


def _existing_calculations(
    db: Session,
    *,
    month_start: date,
    user_ids: list[int],
) -> list[TukinCalculation]:
    if not user_ids:
        return []
    stmt = (
        select(TukinCalculation)
        .where(TukinCalculation.month == month_start, TukinCalculation.user_id.in_(user_ids))
        .order_by(TukinCalculation.user_id.asc())
    )
    return list(db.scalars(stmt).all())


def _calculation_values(summary: TukinUserSummary) -> dict[str, object]:
    return {
        "satker_id": summary.satker_id,
        "policy_id": summary.policy_id,
        "base_tukin": summary.base_tukin,
        "expected_units": summary.expected_units,
        "earned_credit": summary.earned_credit,
        "attendance_ratio": summary.attendance_ratio,
        "final_tukin": summary.final_tukin,
        "breakdown": summary.model_dump(mode="json"),
    }


def _upsert_calculation(db: Session, *, month_start: date, summary: TukinUserSummary) -> None:
    values = _calculation_values(summary)
    stmt = (
        pg_insert(TukinCalculation)
        .values(month=month_start, user_id=summary.user_id, **values)
        .on_conflict_do_update(
            constraint="uq_tukin_calculations_month_user",
            set_={**values, "updated_at": func.now()},
        )
    )
    db.execute(stmt)


def generate_tukin(
    ctx: AppContext,
    *,
    auth: AuthContext,
    month: str,
    satker_id: int | None = None,
    user_id: int | None = None,
    force: bool = False,
) -> list[TukinCalculation]:
    """Persist monthly snapshots for the scope.

    Without ``force`` only users lacking a snapshot for the month are
    computed; existing rows are kept as they are.
    """
    db = ctx.db
    start, end_exclusive = parse_month(month)
    satker_id, user_id = resolve_scope(auth, satker_id, user_id)
    users = _load_users(db, satker_id=satker_id, user_id=user_id)
    user_ids = [user.id for user in users]

    pending = users
    if not force:
        existing = _existing_calculations(db, month_start=start, user_ids=user_ids)
        cached_ids = {row.user_id for row in existing}
        pending = [user for user in users if user.id not in cached_ids]
        if not pending:
            logger.info(
                "tukin_generate_cached",
                extra={"month": month, "satker_id": satker_id, "user_id": user_id, "rows": len(existing)},
            )
            return existing

    summaries = _compute_summaries(ctx, month=month, start=start, end_exclusive=end_exclusive, users=pending)
    try:
        for summary in summaries:
            _upsert_calculation(db, month_start=start, summary=summary)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "tukin_generated",
        extra={
            "month": month,
            "satker_id": satker_id,
            "user_id": user_id,
            "rows": len(summaries),
            "cached": len(users) - len(pending),
            "force": force,
        },
    )
    return _existing_calculations(db, month_start=start, user_ids=user_ids)


def list_calculations(
    ctx: AppContext,
    *,
    auth: AuthContext,
    month: str,
    satker_id: int | None = None,
    user_id: int | None = None,
) -> list[TukinCalculation]:
    start, _ = parse_month(month)
    satker_id, user_id = resolve_scope(auth, satker_id, user_id)
    stmt = select(TukinCalculation).where(TukinCalculation.month == start).order_by(TukinCalculation.user_id.asc())
    if satker_id is not None:
        stmt = stmt.where(TukinCalculation.satker_id == satker_id)
    if user_id is not None:
        stmt = stmt.where(TukinCalculation.user_id == user_id)
    return list(ctx.db.scalars(stmt).all())
