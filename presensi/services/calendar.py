from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from presensi.context import AppContext
from presensi.errors import ApiError
from presensi.models import CalendarDay, CalendarDayType, Holiday, HolidayKind, HolidayScope, WorkPattern
from presensi.schemas import WorkPatternUpsertRequest

logger = logging.getLogger("presensi.calendar")

HALF_DAY_WEEKDAY = 5  # Saturday
DEFAULT_OFF_DAY_NOTE = "Hari libur"

_WEEKDAY_FLAGS = ("mon_work", "tue_work", "wed_work", "thu_work", "fri_work", "sat_work", "sun_work")


@dataclass(frozen=True)
class ResolvedDay:
    work_date: date
    day_type: CalendarDayType
    expected_start: time | None
    expected_end: time | None
    note: str | None


def parse_time_field(value: str, field: str) -> time:
    raw = (value or "").strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    raise ApiError(status_code=422, code="INVALID_TIME", message=f"{field}: invalid time format ({value}).")


def parse_optional_time_field(value: str | None, field: str) -> time | None:
    if value is None or not value.strip():
        return None
    return parse_time_field(value, field)


def validate_work_pattern(work_start: time, work_end: time, half_day_end: time | None) -> None:
    if work_end <= work_start:
        raise ApiError(status_code=422, code="INVALID_WORK_PATTERN", message="work_end must be after work_start.")
    if half_day_end is not None:
        if half_day_end <= work_start:
            raise ApiError(
                status_code=422,
                code="INVALID_WORK_PATTERN",
                message="half_day_end must be after work_start.",
            )
        if half_day_end > work_end:
            raise ApiError(
                status_code=422,
                code="INVALID_WORK_PATTERN",
                message="half_day_end must not be after work_end.",
            )


def effective_pattern(patterns: Iterable[WorkPattern], day: date) -> WorkPattern | None:
    selected: WorkPattern | None = None
    for pattern in sorted(patterns, key=lambda item: item.effective_from):
        if pattern.effective_from <= day:
            selected = pattern
        else:
            break
    return selected


def build_holiday_override_map(holidays: Iterable[Holiday]) -> dict[date, Holiday]:
    """One holiday per date; a SATKER entry replaces a NATIONAL one."""
    by_date: dict[date, Holiday] = {}
    for holiday in holidays:
        current = by_date.get(holiday.holiday_date)
        if current is None:
            by_date[holiday.holiday_date] = holiday
        elif current.scope == HolidayScope.NATIONAL and holiday.scope == HolidayScope.SATKER:
            by_date[holiday.holiday_date] = holiday
    return by_date


def weekday_is_work(pattern: WorkPattern, day: date) -> bool:
    return bool(getattr(pattern, _WEEKDAY_FLAGS[day.weekday()]))


def resolve_day(pattern: WorkPattern, day: date, holiday: Holiday | None = None) -> ResolvedDay:
    expected_start: time | None = None
    expected_end: time | None = None
    note: str | None = None

    if weekday_is_work(pattern, day):
        day_type = CalendarDayType.WORKDAY
        expected_start = pattern.work_start
        expected_end = pattern.work_end
        if day.weekday() == HALF_DAY_WEEKDAY and pattern.half_day_end is not None:
            day_type = CalendarDayType.HALF_DAY
            expected_end = pattern.half_day_end
    else:
        day_type = CalendarDayType.HOLIDAY
        note = DEFAULT_OFF_DAY_NOTE

    if holiday is not None:
        note = holiday.name
        if holiday.kind == HolidayKind.HOLIDAY:
            day_type = CalendarDayType.HOLIDAY
            expected_start = None
            expected_end = None
        else:
            day_type = CalendarDayType.HALF_DAY
            expected_start = pattern.work_start
            expected_end = holiday.half_day_end or pattern.half_day_end or pattern.work_end

    return ResolvedDay(
        work_date=day,
        day_type=day_type,
        expected_start=expected_start,
        expected_end=expected_end,
        note=note,
    )


def iter_dates(date_from: date, date_to: date) -> Iterable[date]:
    current = date_from
    while current <= date_to:
        yield current
        current += timedelta(days=1)


def resolve_range(
    patterns: Sequence[WorkPattern],
    holidays: Iterable[Holiday],
    date_from: date,
    date_to: date,
    *,
    strict: bool = True,
) -> dict[date, ResolvedDay]:
    """Resolve every date in the inclusive range.

    With ``strict`` a date without an effective pattern is an error;
    otherwise it is left out of the result.
    """
    holiday_by_date = build_holiday_override_map(holidays)
    resolved: dict[date, ResolvedDay] = {}
    for day in iter_dates(date_from, date_to):
        pattern = effective_pattern(patterns, day)
        if pattern is None:
            if strict:
                raise ApiError(
                    status_code=422,
                    code="WORK_PATTERN_MISSING",
                    message=f"No work pattern is effective on {day.isoformat()}.",
                )
            continue
        resolved[day] = resolve_day(pattern, day, holiday_by_date.get(day))
    return resolved


def list_work_patterns(db: Session, *, satker_id: int) -> list[WorkPattern]:
    stmt = (
        select(WorkPattern)
        .where(WorkPattern.satker_id == satker_id)
        .order_by(WorkPattern.effective_from.asc())
    )
    return list(db.scalars(stmt).all())


def list_holidays(db: Session, *, satker_id: int, date_from: date, date_to: date) -> list[Holiday]:
    stmt = (
        select(Holiday)
        .where(
            Holiday.holiday_date >= date_from,
            Holiday.holiday_date <= date_to,
            or_(
                Holiday.scope == HolidayScope.NATIONAL,
                and_(Holiday.scope == HolidayScope.SATKER, Holiday.satker_id == satker_id),
            ),
        )
        .order_by(Holiday.holiday_date.asc(), Holiday.id.asc())
    )
    return list(db.scalars(stmt).all())


def list_calendar_days(db: Session, *, satker_id: int, date_from: date, date_to: date) -> list[CalendarDay]:
    stmt = (
        select(CalendarDay)
        .where(
            CalendarDay.satker_id == satker_id,
            CalendarDay.work_date >= date_from,
            CalendarDay.work_date <= date_to,
        )
        .order_by(CalendarDay.work_date.asc())
    )
    return list(db.scalars(stmt).all())


def _upsert_calendar_row(
    db: Session,
    *,
    satker_id: int,
    work_date: date,
    day_type: CalendarDayType,
    expected_start: time | None,
    expected_end: time | None,
    note: str | None,
) -> None:
    values = {
        "day_type": day_type,
        "expected_start": expected_start,
        "expected_end": expected_end,
        "note": note,
    }
    stmt = (
        pg_insert(CalendarDay)
        .values(satker_id=satker_id, work_date=work_date, **values)
        .on_conflict_do_update(constraint="uq_satker_calendar_days_satker_work_date", set_=values)
    )
    db.execute(stmt)


def generate_calendar(ctx: AppContext, *, satker_id: int, date_from: date, date_to: date) -> int:
    if date_to < date_from:
        raise ApiError(status_code=422, code="INVALID_RANGE", message="to must be >= from.")
    max_days = ctx.settings.calendar_generate_max_days
    days = (date_to - date_from).days + 1
    if days > max_days:
        raise ApiError(
            status_code=422,
            code="RANGE_TOO_LARGE",
            message=f"Range too large (max {max_days} days).",
        )

    db = ctx.db
    patterns = list_work_patterns(db, satker_id=satker_id)
    if not patterns:
        raise ApiError(
            status_code=422,
            code="WORK_PATTERN_MISSING",
            message="No work pattern is configured for this satker.",
        )
    holidays = list_holidays(db, satker_id=satker_id, date_from=date_from, date_to=date_to)
    resolved = resolve_range(patterns, holidays, date_from, date_to, strict=True)

    for day in resolved.values():
        _upsert_calendar_row(
            db,
            satker_id=satker_id,
            work_date=day.work_date,
            day_type=day.day_type,
            expected_start=day.expected_start,
            expected_end=day.expected_end,
            note=day.note,
        )
    db.commit()

    logger.info(
        "calendar_generated",
        extra={
            "satker_id": satker_id,
            "date_from": date_from.isoformat(),
            "date_to": date_to.isoformat(),
            "days_generated": len(resolved),
        },
    )
    return len(resolved)


def upsert_calendar_day(
    ctx: AppContext,
    *,
    satker_id: int,
    work_date: date,
    day_type: CalendarDayType,
    expected_start: str | None,
    expected_end: str | None,
    note: str | None,
) -> CalendarDay:
    start = parse_optional_time_field(expected_start, "expected_start")
    end = parse_optional_time_field(expected_end, "expected_end")

    if day_type == CalendarDayType.HOLIDAY:
        start = None
        end = None
    else:
        if start is None or end is None:
            raise ApiError(
                status_code=422,
                code="INVALID_CALENDAR_DAY",
                message="expected_start and expected_end are required for WORKDAY and HALF_DAY.",
            )
        if end <= start:
            raise ApiError(
                status_code=422,
                code="INVALID_CALENDAR_DAY",
                message="expected_end must be after expected_start.",
            )

    db = ctx.db
    _upsert_calendar_row(
        db,
        satker_id=satker_id,
        work_date=work_date,
        day_type=day_type,
        expected_start=start,
        expected_end=end,
        note=(note or "").strip() or None,
    )
    db.commit()
    row = db.scalar(
        select(CalendarDay).where(CalendarDay.satker_id == satker_id, CalendarDay.work_date == work_date)
    )
    if row is None:
        raise ApiError(status_code=500, code="CALENDAR_UPSERT_FAILED", message="Calendar day could not be loaded.")
    return row


def upsert_work_pattern(ctx: AppContext, *, satker_id: int, payload: WorkPatternUpsertRequest) -> WorkPattern:
    work_start = parse_time_field(payload.work_start, "work_start")
    work_end = parse_time_field(payload.work_end, "work_end")
    half_day_end = parse_optional_time_field(payload.half_day_end, "half_day_end")
    validate_work_pattern(work_start, work_end, half_day_end)

    values = {
        "mon_work": payload.mon_work,
        "tue_work": payload.tue_work,
        "wed_work": payload.wed_work,
        "thu_work": payload.thu_work,
        "fri_work": payload.fri_work,
        "sat_work": payload.sat_work,
        "sun_work": payload.sun_work,
        "work_start": work_start,
        "work_end": work_end,
        "half_day_end": half_day_end,
    }
    db = ctx.db
    stmt = (
        pg_insert(WorkPattern)
        .values(satker_id=satker_id, effective_from=payload.effective_from, **values)
        .on_conflict_do_update(constraint="uq_satker_work_patterns_satker_effective_from", set_=values)
        .returning(WorkPattern.id)
    )
    pattern_id = db.scalar(stmt)
    db.commit()
    pattern = db.get(WorkPattern, pattern_id, populate_existing=True)
    if pattern is None:
        raise ApiError(status_code=500, code="WORK_PATTERN_UPSERT_FAILED", message="Work pattern could not be loaded.")
    return pattern
