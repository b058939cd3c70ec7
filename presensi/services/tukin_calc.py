from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from presensi.errors import ApiError
from presensi.models import AttendanceEventType, CalendarDayType, LeaveType
from presensi.schemas import TukinDayBreakdown
from presensi.services.calendar import ResolvedDay

NOTE_DUTY_SCHEDULE = "DUTY_SCHEDULE"
NOTE_HOLIDAY_IGNORED = "HOLIDAY_IGNORED"


@dataclass
class UserAccrual:
    expected_units: float = 0.0
    earned_credit: float = 0.0
    present_days: int = 0
    absent_days: int = 0
    missing_checkout_days: int = 0
    duty_present: int = 0
    duty_absent: int = 0
    total_late_minutes: int = 0
    days: list[TukinDayBreakdown] = field(default_factory=list)

    def count(self, day: TukinDayBreakdown) -> None:
        self.days.append(day)
        self.expected_units += day.expected_unit
        if day.expected_unit <= 0:
            return
        self.earned_credit += day.earned_credit
        if day.earned_credit > 0:
            self.present_days += 1
        else:
            self.absent_days += 1
        if day.missing_checkout:
            self.missing_checkout_days += 1
        if day.late_minutes:
            self.total_late_minutes += day.late_minutes
        if day.is_duty_schedule:
            if day.earned_credit > 0:
                self.duty_present += 1
            else:
                self.duty_absent += 1


def parse_month(month: str) -> tuple[date, date]:
    """``YYYY-MM`` to ``(first day, first day of next month)``."""
    parts = (month or "").strip().split("-")
    if len(parts) != 2 or len(parts[0]) != 4 or len(parts[1]) != 2:
        raise ApiError(status_code=422, code="INVALID_MONTH", message="month must use the YYYY-MM format.")
    try:
        year = int(parts[0])
        month_number = int(parts[1])
    except ValueError as exc:
        raise ApiError(status_code=422, code="INVALID_MONTH", message="month must use the YYYY-MM format.") from exc
    if not 1 <= month_number <= 12:
        raise ApiError(status_code=422, code="INVALID_MONTH", message="month must be within 01..12.")
    if year < 1:
        raise ApiError(status_code=422, code="INVALID_MONTH", message="year is not valid.")

    start = date(year, month_number, 1)
    if month_number == 12:
        end_exclusive = date(year + 1, 1, 1)
    else:
        end_exclusive = date(year, month_number + 1, 1)
    return start, end_exclusive


def month_dates(start: date, end_exclusive: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range((end_exclusive - start).days)]


def missing_checkout_credit(missing_checkout_penalty_pct: float) -> float:
    return max(0.0, 1.0 - float(missing_checkout_penalty_pct) / 100.0)


def presence_credit(
    check_in_at: datetime | None,
    check_out_at: datetime | None,
    *,
    missing_checkout_penalty_pct: float,
) -> tuple[float, bool]:
    """Return ``(credit, missing_checkout)`` for one day of attendance."""
    if check_in_at is None:
        return 0.0, False
    if check_out_at is None:
        return missing_checkout_credit(missing_checkout_penalty_pct), True
    return 1.0, False


def late_minutes(check_in_at: datetime, expected_at: datetime) -> int:
    seconds = (check_in_at - expected_at).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 60)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def final_payout(base_tukin: int, expected_units: float, earned_credit: float) -> tuple[float, int]:
    ratio = earned_credit / expected_units if expected_units > 0 else 0.0
    return ratio, round_half_up(base_tukin * ratio)


def leave_credit_for_date(
    leaves: Sequence[Any],
    credits: Mapping[LeaveType, float],
    day: date,
) -> tuple[LeaveType, float] | None:
    # First covering leave wins; a leave type without a rule earns nothing.
    for leave in leaves:
        if leave.start_date <= day <= leave.end_date:
            return leave.leave_type, float(credits.get(leave.leave_type, 0.0))
    return None


def duty_by_local_date(duty_schedules: Iterable[Any], tz: ZoneInfo) -> dict[date, Any]:
    by_date: dict[date, Any] = {}
    for duty in sorted(duty_schedules, key=lambda item: (item.start_at, item.id)):
        by_date.setdefault(_as_utc(duty.start_at).astimezone(tz).date(), duty)
    return by_date


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _events_in_window(
    events: Sequence[Any],
    event_type: AttendanceEventType,
    window_start: datetime,
    window_end: datetime,
) -> list[datetime]:
    return sorted(
        _as_utc(event.occurred_at)
        for event in events
        if event.event_type == event_type and window_start <= _as_utc(event.occurred_at) <= window_end
    )


def _duty_day(
    day: date,
    duty: Any,
    events: Sequence[Any],
    *,
    missing_checkout_penalty_pct: float,
    grace_before: timedelta,
    grace_after: timedelta,
) -> TukinDayBreakdown:
    start_at = _as_utc(duty.start_at)
    window_start = start_at - grace_before
    window_end = _as_utc(duty.end_at) + grace_after

    check_ins = _events_in_window(events, AttendanceEventType.CHECK_IN, window_start, window_end)
    check_in_at = check_ins[0] if check_ins else None
    check_out_at = None
    if check_in_at is not None:
        check_outs = [
            ts
            for ts in _events_in_window(events, AttendanceEventType.CHECK_OUT, window_start, window_end)
            if ts >= check_in_at
        ]
        check_out_at = check_outs[-1] if check_outs else None

    credit, missing_checkout = presence_credit(
        check_in_at,
        check_out_at,
        missing_checkout_penalty_pct=missing_checkout_penalty_pct,
    )
    return TukinDayBreakdown(
        work_date=day,
        expected_unit=1.0,
        earned_credit=credit,
        is_duty_schedule=True,
        duty_schedule_id=duty.id,
        check_in_at=check_in_at,
        check_out_at=check_out_at,
        late_minutes=late_minutes(check_in_at, start_at) if check_in_at is not None else None,
        missing_checkout=missing_checkout,
        note=NOTE_DUTY_SCHEDULE,
    )


def _regular_day(
    day: date,
    calendar_day: ResolvedDay | None,
    session: Any | None,
    leave: tuple[LeaveType, float] | None,
    *,
    tz: ZoneInfo,
    missing_checkout_penalty_pct: float,
) -> TukinDayBreakdown:
    day_type = calendar_day.day_type if calendar_day is not None else CalendarDayType.WORKDAY
    if day_type == CalendarDayType.HOLIDAY:
        return TukinDayBreakdown(
            work_date=day,
            expected_unit=0.0,
            earned_credit=0.0,
            note=NOTE_HOLIDAY_IGNORED,
        )

    check_in_at = _as_utc(session.check_in_at) if session is not None and session.check_in_at else None
    check_out_at = _as_utc(session.check_out_at) if session is not None and session.check_out_at else None
    credit, missing_checkout = presence_credit(
        check_in_at,
        check_out_at,
        missing_checkout_penalty_pct=missing_checkout_penalty_pct,
    )

    late: int | None = None
    expected_start = calendar_day.expected_start if calendar_day is not None else None
    # Approved leave days are never late.
    if leave is None and check_in_at is not None and expected_start is not None:
        expected_at = datetime.combine(day, expected_start, tzinfo=tz).astimezone(timezone.utc)
        late = late_minutes(check_in_at, expected_at)

    leave_type: LeaveType | None = None
    leave_credit: float | None = None
    note = day_type.value
    if leave is not None:
        leave_type, leave_credit = leave
        credit = max(credit, leave_credit)
        note = leave_type.value

    return TukinDayBreakdown(
        work_date=day,
        expected_unit=1.0,
        earned_credit=credit,
        check_in_at=check_in_at,
        check_out_at=check_out_at,
        late_minutes=late,
        missing_checkout=missing_checkout,
        leave_type=leave_type,
        leave_credit=leave_credit,
        note=note,
    )


def accrue_user_month(
    *,
    dates: Sequence[date],
    tz: ZoneInfo,
    calendar: Mapping[date, ResolvedDay],
    sessions: Mapping[date, Any],
    duty_schedules: Sequence[Any],
    events: Sequence[Any],
    leaves: Sequence[Any],
    leave_credits: Mapping[LeaveType, float],
    missing_checkout_penalty_pct: float,
    grace_before: timedelta = timedelta(minutes=30),
    grace_after: timedelta = timedelta(minutes=180),
) -> UserAccrual:
    """Reconcile one user's month day by day.

    A duty schedule starting on a date takes that date over entirely;
    otherwise the calendar decides, holidays are skipped and the day earns
    the better of attendance credit and approved leave credit.
    """
    accrual = UserAccrual()
    duty_map = duty_by_local_date(duty_schedules, tz)

    for day in dates:
        duty = duty_map.get(day)
        if duty is not None:
            accrual.count(
                _duty_day(
                    day,
                    duty,
                    events,
                    missing_checkout_penalty_pct=missing_checkout_penalty_pct,
                    grace_before=grace_before,
                    grace_after=grace_after,
                )
            )
            continue

        accrual.count(
            _regular_day(
                day,
                calendar.get(day),
                sessions.get(day),
                leave_credit_for_date(leaves, leave_credits, day),
                tz=tz,
                missing_checkout_penalty_pct=missing_checkout_penalty_pct,
            )
        )
    return accrual
