from __future__ import annotations

import enum
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from presensi.db import Base


def _closed_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    # validate_strings makes the column refuse values outside the enum.
    return Enum(enum_cls, name=name, validate_strings=True)


class UserRole(str, enum.Enum):
    SUPERADMIN = "SUPERADMIN"
    SATKER_ADMIN = "SATKER_ADMIN"
    SATKER_HEAD = "SATKER_HEAD"
    MEMBER = "MEMBER"


class AttendanceEventType(str, enum.Enum):
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"


class AttendanceSessionStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    INVALID = "INVALID"


class AttendanceLeaveType(str, enum.Enum):
    NORMAL = "NORMAL"
    DINAS_LUAR = "DINAS_LUAR"
    WFA = "WFA"
    WFH = "WFH"
    IJIN = "IJIN"
    SAKIT = "SAKIT"


class LeaveType(str, enum.Enum):
    IJIN = "IJIN"
    SAKIT = "SAKIT"
    CUTI = "CUTI"
    DINAS_LUAR = "DINAS_LUAR"


class LeaveStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class ScheduleType(str, enum.Enum):
    REGULAR = "REGULAR"
    SHIFT = "SHIFT"
    ON_CALL = "ON_CALL"
    SPECIAL = "SPECIAL"


class DutyRequestStatus(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class HolidayScope(str, enum.Enum):
    NATIONAL = "NATIONAL"
    SATKER = "SATKER"


class HolidayKind(str, enum.Enum):
    HOLIDAY = "HOLIDAY"
    HALF_DAY = "HALF_DAY"


class CalendarDayType(str, enum.Enum):
    WORKDAY = "WORKDAY"
    HOLIDAY = "HOLIDAY"
    HALF_DAY = "HALF_DAY"


class PolicyScope(str, enum.Enum):
    GLOBAL = "GLOBAL"
    SATKER = "SATKER"


class AuditActorType(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class Satker(Base):
    __tablename__ = "satkers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    users: Mapped[list[User]] = relationship(back_populates="satker")
    geofences: Mapped[list[Geofence]] = relationship(back_populates="satker")


class Rank(Base):
    __tablename__ = "ranks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    tukin_base: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default=text("0"))


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    satker_id: Mapped[int] = mapped_column(ForeignKey("satkers.id", ondelete="RESTRICT"), nullable=False, index=True)
    rank_id: Mapped[int | None] = mapped_column(ForeignKey("ranks.id", ondelete="SET NULL"), nullable=True)
    nrp: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(_closed_enum(UserRole, "user_role"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    satker: Mapped[Satker] = relationship(back_populates="users")
    rank: Mapped[Rank | None] = relationship()


class UserDevice(Base):
    __tablename__ = "user_devices"
    __table_args__ = (UniqueConstraint("device_id", name="uq_user_devices_device_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id: Mapped[str] = mapped_column(String(255), nullable=False)
    device_model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    android_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    app_build: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class AppSetting(Base):
    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class Geofence(Base):
    __tablename__ = "geofences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    satker_id: Mapped[int] = mapped_column(ForeignKey("satkers.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    radius_m: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    satker: Mapped[Satker] = relationship(back_populates="geofences")


class AttendanceSession(Base):
    __tablename__ = "attendance_sessions"
    __table_args__ = (
        UniqueConstraint("user_id", "work_date", name="uq_attendance_sessions_user_work_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    satker_id: Mapped[int] = mapped_column(ForeignKey("satkers.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[AttendanceSessionStatus] = mapped_column(
        _closed_enum(AttendanceSessionStatus, "attendance_session_status"),
        nullable=False,
        default=AttendanceSessionStatus.OPEN,
        server_default=text("'OPEN'"),
    )
    is_manual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    manual_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    manual_updated_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    manual_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    events: Mapped[list[AttendanceEvent]] = relationship(back_populates="session")


class AttendanceEvent(Base):
    __tablename__ = "attendance_events"
    __table_args__ = (
        UniqueConstraint("session_id", "event_type", name="uq_attendance_events_session_event_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("attendance_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    satker_id: Mapped[int] = mapped_column(ForeignKey("satkers.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type: Mapped[AttendanceEventType] = mapped_column(
        _closed_enum(AttendanceEventType, "attendance_event_type"),
        nullable=False,
    )
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    accuracy_meters: Mapped[float | None] = mapped_column(Float, nullable=True)
    geofence_id: Mapped[int | None] = mapped_column(ForeignKey("geofences.id", ondelete="SET NULL"), nullable=True)
    distance_to_fence_m: Mapped[float | None] = mapped_column(Float, nullable=True)
    selfie_object_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    liveness_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    face_match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    device_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    android_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    app_build: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    server_challenge_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    attendance_leave_type: Mapped[AttendanceLeaveType] = mapped_column(
        _closed_enum(AttendanceLeaveType, "attendance_leave_type"),
        nullable=False,
        default=AttendanceLeaveType.NORMAL,
        server_default=text("'NORMAL'"),
    )
    attendance_leave_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    session: Mapped[AttendanceSession] = relationship(back_populates="events")


class DutySchedule(Base):
    __tablename__ = "duty_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    satker_id: Mapped[int] = mapped_column(ForeignKey("satkers.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    schedule_type: Mapped[ScheduleType] = mapped_column(
        _closed_enum(ScheduleType, "schedule_type"),
        nullable=False,
        default=ScheduleType.REGULAR,
    )
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class DutyScheduleRequest(Base):
    __tablename__ = "duty_schedule_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    satker_id: Mapped[int] = mapped_column(ForeignKey("satkers.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    schedule_type: Mapped[ScheduleType] = mapped_column(
        _closed_enum(ScheduleType, "schedule_type"),
        nullable=False,
        default=ScheduleType.REGULAR,
    )
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[DutyRequestStatus] = mapped_column(
        _closed_enum(DutyRequestStatus, "duty_request_status"),
        nullable=False,
        default=DutyRequestStatus.SUBMITTED,
        server_default=text("'SUBMITTED'"),
    )
    reject_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duty_schedule_id: Mapped[int | None] = mapped_column(
        ForeignKey("duty_schedules.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class WorkPattern(Base):
    __tablename__ = "satker_work_patterns"
    __table_args__ = (
        UniqueConstraint("satker_id", "effective_from", name="uq_satker_work_patterns_satker_effective_from"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    satker_id: Mapped[int] = mapped_column(ForeignKey("satkers.id", ondelete="CASCADE"), nullable=False, index=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    mon_work: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tue_work: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    wed_work: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    thu_work: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    fri_work: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sat_work: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sun_work: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    work_start: Mapped[time] = mapped_column(Time, nullable=False)
    work_end: Mapped[time] = mapped_column(Time, nullable=False)
    half_day_end: Mapped[time | None] = mapped_column(Time, nullable=True)


class Holiday(Base):
    __tablename__ = "holidays"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    scope: Mapped[HolidayScope] = mapped_column(_closed_enum(HolidayScope, "holiday_scope"), nullable=False)
    satker_id: Mapped[int | None] = mapped_column(
        ForeignKey("satkers.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    kind: Mapped[HolidayKind] = mapped_column(_closed_enum(HolidayKind, "holiday_kind"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    half_day_end: Mapped[time | None] = mapped_column(Time, nullable=True)


class CalendarDay(Base):
    __tablename__ = "satker_calendar_days"
    __table_args__ = (
        UniqueConstraint("satker_id", "work_date", name="uq_satker_calendar_days_satker_work_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    satker_id: Mapped[int] = mapped_column(ForeignKey("satkers.id", ondelete="CASCADE"), nullable=False)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    day_type: Mapped[CalendarDayType] = mapped_column(
        _closed_enum(CalendarDayType, "calendar_day_type"),
        nullable=False,
    )
    expected_start: Mapped[time | None] = mapped_column(Time, nullable=True)
    expected_end: Mapped[time | None] = mapped_column(Time, nullable=True)
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    satker_id: Mapped[int] = mapped_column(ForeignKey("satkers.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type: Mapped[LeaveType] = mapped_column(_closed_enum(LeaveType, "leave_type"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[LeaveStatus] = mapped_column(
        _closed_enum(LeaveStatus, "leave_status"),
        nullable=False,
        default=LeaveStatus.SUBMITTED,
        server_default=text("'SUBMITTED'"),
    )
    decided_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class TukinPolicy(Base):
    __tablename__ = "tukin_policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    scope: Mapped[PolicyScope] = mapped_column(_closed_enum(PolicyScope, "tukin_policy_scope"), nullable=False)
    satker_id: Mapped[int | None] = mapped_column(
        ForeignKey("satkers.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    missing_checkout_penalty_pct: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=25.0,
        server_default=text("25"),
    )
    late_tolerance_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    late_penalty_per_minute_pct: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        server_default=text("0"),
    )
    max_daily_penalty_pct: Mapped[float] = mapped_column(Float, nullable=False, default=100.0, server_default=text("100"))
    out_of_geofence_penalty_pct: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        server_default=text("0"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    leave_rules: Mapped[list[TukinLeaveRule]] = relationship(
        back_populates="policy",
        cascade="all, delete-orphan",
    )


class TukinLeaveRule(Base):
    __tablename__ = "tukin_leave_rules"
    __table_args__ = (
        UniqueConstraint("policy_id", "leave_type", name="uq_tukin_leave_rules_policy_leave_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    policy_id: Mapped[int] = mapped_column(ForeignKey("tukin_policies.id", ondelete="CASCADE"), nullable=False)
    leave_type: Mapped[LeaveType] = mapped_column(_closed_enum(LeaveType, "leave_type"), nullable=False)
    credit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    counts_as_present: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    policy: Mapped[TukinPolicy] = relationship(back_populates="leave_rules")


class TukinCalculation(Base):
    __tablename__ = "tukin_calculations"
    __table_args__ = (
        UniqueConstraint("month", "user_id", name="uq_tukin_calculations_month_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    month: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    satker_id: Mapped[int] = mapped_column(ForeignKey("satkers.id", ondelete="CASCADE"), nullable=False, index=True)
    policy_id: Mapped[int | None] = mapped_column(
        ForeignKey("tukin_policies.id", ondelete="SET NULL"),
        nullable=True,
    )
    base_tukin: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expected_units: Mapped[float] = mapped_column(Float, nullable=False)
    earned_credit: Mapped[float] = mapped_column(Float, nullable=False)
    attendance_ratio: Mapped[float] = mapped_column(Float, nullable=False)
    final_tukin: Mapped[int] = mapped_column(BigInteger, nullable=False)
    breakdown: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        _closed_enum(AuditActorType, "audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )
