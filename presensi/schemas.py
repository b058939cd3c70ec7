from datetime import date, datetime, time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from presensi.models import (
    AttendanceEventType,
    AttendanceLeaveType,
    AttendanceSessionStatus,
    CalendarDayType,
    DutyRequestStatus,
    LeaveStatus,
    LeaveType,
    PolicyScope,
    ScheduleType,
)


class ChallengeIssueRequest(BaseModel):
    device_id: str = Field(min_length=1, max_length=255)


class ChallengeResponse(BaseModel):
    challenge_id: str
    nonce: str
    expires_at: datetime


class AttendancePayload(BaseModel):
    challenge_id: str = Field(min_length=1, max_length=64)
    device_id: str = Field(min_length=1, max_length=255)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_meters: float | None = Field(default=None, ge=0)
    is_mock: bool = False
    attendance_leave_type: AttendanceLeaveType | None = None
    attendance_leave_notes: str | None = Field(default=None, max_length=1000)
    selfie_object_key: str | None = Field(default=None, max_length=512)
    liveness_score: float | None = None
    face_match_score: float | None = None
    device_model: str | None = Field(default=None, max_length=255)
    android_version: str | None = Field(default=None, max_length=64)
    app_build: str | None = Field(default=None, max_length=64)
    client_version: str | None = Field(default=None, max_length=64)

    model_config = ConfigDict(extra="forbid")


class AttendanceSnapshot(BaseModel):
    session_id: int
    user_id: int
    work_date: date
    status: AttendanceSessionStatus
    check_in_at: datetime | None = None
    check_out_at: datetime | None = None
    is_manual: bool = False
    event_id: int | None = None
    event_type: AttendanceEventType | None = None
    geofence_id: int | None = None
    geofence_name: str | None = None
    distance_to_fence_m: float | None = None
    inside_geofence: bool | None = None
    attendance_leave_type: AttendanceLeaveType | None = None


class AttendanceSessionRead(BaseModel):
    id: int
    satker_id: int
    user_id: int
    work_date: date
    check_in_at: datetime | None = None
    check_out_at: datetime | None = None
    status: AttendanceSessionStatus
    is_manual: bool
    manual_note: str | None = None

    model_config = ConfigDict(from_attributes=True)


class AttendanceCorrectionRequest(BaseModel):
    check_in_at: datetime | None = None
    check_out_at: datetime | None = None
    check_in_geofence_id: int | None = None
    check_out_geofence_id: int | None = None
    check_in_distance_to_fence_m: float | None = None
    check_out_distance_to_fence_m: float | None = None
    check_in_leave_type: AttendanceLeaveType | None = None
    check_in_leave_notes: str | None = Field(default=None, max_length=1000)
    check_out_leave_type: AttendanceLeaveType | None = None
    check_out_leave_notes: str | None = Field(default=None, max_length=1000)
    device_id: str | None = Field(default=None, max_length=255)
    device_model: str | None = Field(default=None, max_length=255)
    client_version: str | None = Field(default=None, max_length=64)
    manual_note: str = Field(max_length=1000)


class WorkPatternUpsertRequest(BaseModel):
    effective_from: date
    mon_work: bool = True
    tue_work: bool = True
    wed_work: bool = True
    thu_work: bool = True
    fri_work: bool = True
    sat_work: bool = False
    sun_work: bool = False
    work_start: str
    work_end: str
    half_day_end: str | None = None


class WorkPatternRead(BaseModel):
    id: int
    satker_id: int
    effective_from: date
    mon_work: bool
    tue_work: bool
    wed_work: bool
    thu_work: bool
    fri_work: bool
    sat_work: bool
    sun_work: bool
    work_start: time
    work_end: time
    half_day_end: time | None = None

    model_config = ConfigDict(from_attributes=True)


class CalendarGenerateRequest(BaseModel):
    date_from: date = Field(alias="from")
    date_to: date = Field(alias="to")

    model_config = ConfigDict(populate_by_name=True)


class CalendarGenerateResponse(BaseModel):
    satker_id: int
    days_generated: int


class CalendarDayUpsertRequest(BaseModel):
    day_type: CalendarDayType
    expected_start: str | None = None
    expected_end: str | None = None
    note: str | None = Field(default=None, max_length=255)


class CalendarDayRead(BaseModel):
    satker_id: int
    work_date: date
    day_type: CalendarDayType
    expected_start: time | None = None
    expected_end: time | None = None
    note: str | None = None

    model_config = ConfigDict(from_attributes=True)


class DutyScheduleCreateRequest(BaseModel):
    user_id: int = Field(ge=1)
    start_at: datetime
    end_at: datetime
    schedule_type: ScheduleType = ScheduleType.REGULAR
    title: str | None = Field(default=None, max_length=255)
    note: str | None = Field(default=None, max_length=1000)


class DutyScheduleRead(BaseModel):
    id: int
    satker_id: int
    user_id: int
    start_at: datetime
    end_at: datetime
    schedule_type: ScheduleType
    title: str | None = None
    note: str | None = None

    model_config = ConfigDict(from_attributes=True)


class DutyRequestCreateRequest(BaseModel):
    start_at: datetime
    end_at: datetime
    schedule_type: ScheduleType = ScheduleType.REGULAR
    title: str | None = Field(default=None, max_length=255)
    note: str | None = Field(default=None, max_length=1000)


class DutyRequestRejectRequest(BaseModel):
    reject_reason: str = Field(max_length=1000)


class DutyRequestRead(BaseModel):
    id: int
    satker_id: int
    user_id: int
    start_at: datetime
    end_at: datetime
    schedule_type: ScheduleType
    title: str | None = None
    note: str | None = None
    status: DutyRequestStatus
    reject_reason: str | None = None
    decided_by: int | None = None
    decided_at: datetime | None = None
    duty_schedule_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class LeaveCreateRequest(BaseModel):
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str | None = Field(default=None, max_length=1000)


class LeaveDecisionRequest(BaseModel):
    status: LeaveStatus


class LeaveRead(BaseModel):
    id: int
    satker_id: int
    user_id: int
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str | None = None
    status: LeaveStatus

    model_config = ConfigDict(from_attributes=True)


class TukinPolicyCreateRequest(BaseModel):
    scope: PolicyScope
    satker_id: int | None = Field(default=None, ge=1)
    effective_from: date
    effective_to: date | None = None
    missing_checkout_penalty_pct: float = Field(default=25.0, ge=0, le=100)
    late_tolerance_minutes: int = Field(default=0, ge=0)
    late_penalty_per_minute_pct: float = Field(default=0.0, ge=0, le=100)
    max_daily_penalty_pct: float = Field(default=100.0, ge=0, le=100)
    out_of_geofence_penalty_pct: float = Field(default=0.0, ge=0, le=100)

    @model_validator(mode="after")
    def validate_period(self) -> "TukinPolicyCreateRequest":
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError("effective_to must be greater than or equal to effective_from")
        return self


class TukinPolicyUpdateRequest(BaseModel):
    effective_from: date | None = None
    effective_to: date | None = None
    missing_checkout_penalty_pct: float | None = Field(default=None, ge=0, le=100)
    late_tolerance_minutes: int | None = Field(default=None, ge=0)
    late_penalty_per_minute_pct: float | None = Field(default=None, ge=0, le=100)
    max_daily_penalty_pct: float | None = Field(default=None, ge=0, le=100)
    out_of_geofence_penalty_pct: float | None = Field(default=None, ge=0, le=100)


class TukinPolicyRead(BaseModel):
    id: int
    scope: PolicyScope
    satker_id: int | None = None
    effective_from: date
    effective_to: date | None = None
    missing_checkout_penalty_pct: float
    late_tolerance_minutes: int
    late_penalty_per_minute_pct: float
    max_daily_penalty_pct: float
    out_of_geofence_penalty_pct: float

    model_config = ConfigDict(from_attributes=True)


class TukinLeaveRuleItem(BaseModel):
    leave_type: LeaveType
    credit: float = Field(ge=0, le=1)
    counts_as_present: bool = False

    model_config = ConfigDict(from_attributes=True)


class TukinLeaveRulesReplaceRequest(BaseModel):
    rules: list[TukinLeaveRuleItem]


class TukinDayBreakdown(BaseModel):
    work_date: date
    expected_unit: float
    earned_credit: float
    is_duty_schedule: bool = False
    duty_schedule_id: int | None = None
    check_in_at: datetime | None = None
    check_out_at: datetime | None = None
    late_minutes: int | None = None
    missing_checkout: bool = False
    leave_type: LeaveType | None = None
    leave_credit: float | None = None
    note: str | None = None


class TukinUserSummary(BaseModel):
    user_id: int
    satker_id: int
    nrp: str | None = None
    full_name: str | None = None
    month: str
    policy_id: int
    base_tukin: int
    expected_units: float
    earned_credit: float
    attendance_ratio: float
    final_tukin: int
    present_days: int
    absent_days: int
    missing_checkout_days: int
    duty_present: int
    duty_absent: int
    total_late_minutes: int
    days: list[TukinDayBreakdown]


class TukinCalculationRead(BaseModel):
    id: int
    month: date
    user_id: int
    satker_id: int
    policy_id: int | None = None
    base_tukin: int
    expected_units: float
    earned_credit: float
    attendance_ratio: float
    final_tukin: int
    breakdown: dict[str, Any]
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class TimezoneUpdateRequest(BaseModel):
    timezone: str = Field(min_length=1, max_length=64)


class TimezoneResponse(BaseModel):
    timezone: str


class HealthResponse(BaseModel):
    status: str
    database: bool
    store: bool
