"""Initial presensi schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-01 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = postgresql.ENUM("SUPERADMIN", "SATKER_ADMIN", "SATKER_HEAD", "MEMBER", name="user_role", create_type=False)
attendance_event_type = postgresql.ENUM("CHECK_IN", "CHECK_OUT", name="attendance_event_type", create_type=False)
attendance_session_status = postgresql.ENUM(
    "OPEN",
    "CLOSED",
    "INVALID",
    name="attendance_session_status",
    create_type=False,
)
attendance_leave_type = postgresql.ENUM(
    "NORMAL",
    "DINAS_LUAR",
    "WFA",
    "WFH",
    "IJIN",
    "SAKIT",
    name="attendance_leave_type",
    create_type=False,
)
leave_type = postgresql.ENUM("IJIN", "SAKIT", "CUTI", "DINAS_LUAR", name="leave_type", create_type=False)
leave_status = postgresql.ENUM(
    "DRAFT",
    "SUBMITTED",
    "APPROVED",
    "REJECTED",
    "CANCELLED",
    name="leave_status",
    create_type=False,
)
schedule_type = postgresql.ENUM("REGULAR", "SHIFT", "ON_CALL", "SPECIAL", name="schedule_type", create_type=False)
duty_request_status = postgresql.ENUM(
    "SUBMITTED",
    "APPROVED",
    "REJECTED",
    "CANCELLED",
    name="duty_request_status",
    create_type=False,
)
holiday_scope = postgresql.ENUM("NATIONAL", "SATKER", name="holiday_scope", create_type=False)
holiday_kind = postgresql.ENUM("HOLIDAY", "HALF_DAY", name="holiday_kind", create_type=False)
calendar_day_type = postgresql.ENUM("WORKDAY", "HOLIDAY", "HALF_DAY", name="calendar_day_type", create_type=False)
tukin_policy_scope = postgresql.ENUM("GLOBAL", "SATKER", name="tukin_policy_scope", create_type=False)
audit_actor_type = postgresql.ENUM("USER", "ADMIN", "SYSTEM", name="audit_actor_type", create_type=False)

_ENUMS = (
    user_role,
    attendance_event_type,
    attendance_session_status,
    attendance_leave_type,
    leave_type,
    leave_status,
    schedule_type,
    duty_request_status,
    holiday_scope,
    holiday_kind,
    calendar_day_type,
    tukin_policy_scope,
    audit_actor_type,
)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in _ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "satkers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.UniqueConstraint("code", name="uq_satkers_code"),
    )

    op.create_table(
        "ranks",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("tukin_base", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint("code", name="uq_ranks_code"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=False),
        sa.Column("rank_id", sa.Integer(), nullable=True),
        sa.Column("nrp", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["rank_id"], ["ranks.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("nrp", name="uq_users_nrp"),
    )
    op.create_index("ix_users_satker_id", "users", ["satker_id"])

    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        _timestamp("updated_at"),
    )

    op.create_table(
        "geofences",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("radius_m", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
        sa.CheckConstraint("radius_m > 0", name="ck_geofences_radius_positive"),
    )
    op.create_index("ix_geofences_satker_id", "geofences", ["satker_id"])

    op.create_table(
        "attendance_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("check_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", attendance_session_status, nullable=False, server_default=sa.text("'OPEN'")),
        sa.Column("is_manual", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("manual_note", sa.Text(), nullable=True),
        sa.Column("manual_updated_by", sa.Integer(), nullable=True),
        sa.Column("manual_updated_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["manual_updated_by"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("user_id", "work_date", name="uq_attendance_sessions_user_work_date"),
    )
    op.create_index("ix_attendance_sessions_satker_id", "attendance_sessions", ["satker_id"])
    op.create_index("ix_attendance_sessions_user_id", "attendance_sessions", ["user_id"])
    op.create_index("ix_attendance_sessions_work_date", "attendance_sessions", ["work_date"])

    op.create_table(
        "attendance_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("event_type", attendance_event_type, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lon", sa.Float(), nullable=True),
        sa.Column("accuracy_meters", sa.Float(), nullable=True),
        sa.Column("geofence_id", sa.Integer(), nullable=True),
        sa.Column("distance_to_fence_m", sa.Float(), nullable=True),
        sa.Column("selfie_object_key", sa.String(length=512), nullable=True),
        sa.Column("liveness_score", sa.Float(), nullable=True),
        sa.Column("face_match_score", sa.Float(), nullable=True),
        sa.Column("device_id", sa.String(length=255), nullable=True),
        sa.Column("device_model", sa.String(length=255), nullable=True),
        sa.Column("android_version", sa.String(length=64), nullable=True),
        sa.Column("app_build", sa.String(length=64), nullable=True),
        sa.Column("client_version", sa.String(length=64), nullable=True),
        sa.Column("server_challenge_id", sa.String(length=64), nullable=True),
        sa.Column("attendance_leave_type", attendance_leave_type, nullable=False, server_default=sa.text("'NORMAL'")),
        sa.Column("attendance_leave_notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["session_id"], ["attendance_sessions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["geofence_id"], ["geofences.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("session_id", "event_type", name="uq_attendance_events_session_event_type"),
    )
    op.create_index("ix_attendance_events_session_id", "attendance_events", ["session_id"])
    op.create_index("ix_attendance_events_user_id", "attendance_events", ["user_id"])
    op.create_index("ix_attendance_events_occurred_at", "attendance_events", ["occurred_at"])

    op.create_table(
        "duty_schedules",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("schedule_type", schedule_type, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("end_at > start_at", name="ck_duty_schedules_range"),
    )
    op.create_index("ix_duty_schedules_satker_id", "duty_schedules", ["satker_id"])
    op.create_index("ix_duty_schedules_user_id", "duty_schedules", ["user_id"])
    op.create_index("ix_duty_schedules_start_at", "duty_schedules", ["start_at"])

    op.create_table(
        "duty_schedule_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("schedule_type", schedule_type, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("status", duty_request_status, nullable=False, server_default=sa.text("'SUBMITTED'")),
        sa.Column("reject_reason", sa.Text(), nullable=True),
        sa.Column("decided_by", sa.Integer(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duty_schedule_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["decided_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["duty_schedule_id"], ["duty_schedules.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_duty_schedule_requests_satker_id", "duty_schedule_requests", ["satker_id"])
    op.create_index("ix_duty_schedule_requests_user_id", "duty_schedule_requests", ["user_id"])

    op.create_table(
        "satker_work_patterns",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("mon_work", sa.Boolean(), nullable=False),
        sa.Column("tue_work", sa.Boolean(), nullable=False),
        sa.Column("wed_work", sa.Boolean(), nullable=False),
        sa.Column("thu_work", sa.Boolean(), nullable=False),
        sa.Column("fri_work", sa.Boolean(), nullable=False),
        sa.Column("sat_work", sa.Boolean(), nullable=False),
        sa.Column("sun_work", sa.Boolean(), nullable=False),
        sa.Column("work_start", sa.Time(), nullable=False),
        sa.Column("work_end", sa.Time(), nullable=False),
        sa.Column("half_day_end", sa.Time(), nullable=True),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("satker_id", "effective_from", name="uq_satker_work_patterns_satker_effective_from"),
    )
    op.create_index("ix_satker_work_patterns_satker_id", "satker_work_patterns", ["satker_id"])

    op.create_table(
        "holidays",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("scope", holiday_scope, nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=True),
        sa.Column("holiday_date", sa.Date(), nullable=False),
        sa.Column("kind", holiday_kind, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("half_day_end", sa.Time(), nullable=True),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_holidays_satker_id", "holidays", ["satker_id"])
    op.create_index("ix_holidays_holiday_date", "holidays", ["holiday_date"])

    op.create_table(
        "satker_calendar_days",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("day_type", calendar_day_type, nullable=False),
        sa.Column("expected_start", sa.Time(), nullable=True),
        sa.Column("expected_end", sa.Time(), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("satker_id", "work_date", name="uq_satker_calendar_days_satker_work_date"),
    )

    op.create_table(
        "leave_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("leave_type", leave_type, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", leave_status, nullable=False, server_default=sa.text("'SUBMITTED'")),
        sa.Column("decided_by", sa.Integer(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["decided_by"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_requests_range"),
    )
    op.create_index("ix_leave_requests_satker_id", "leave_requests", ["satker_id"])
    op.create_index("ix_leave_requests_user_id", "leave_requests", ["user_id"])

    op.create_table(
        "tukin_policies",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("scope", tukin_policy_scope, nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=True),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("effective_to", sa.Date(), nullable=True),
        sa.Column("missing_checkout_penalty_pct", sa.Float(), nullable=False, server_default=sa.text("25")),
        sa.Column("late_tolerance_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("late_penalty_per_minute_pct", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_daily_penalty_pct", sa.Float(), nullable=False, server_default=sa.text("100")),
        sa.Column("out_of_geofence_penalty_pct", sa.Float(), nullable=False, server_default=sa.text("0")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "(scope = 'GLOBAL' AND satker_id IS NULL) OR (scope = 'SATKER' AND satker_id IS NOT NULL)",
            name="ck_tukin_policies_scope_satker",
        ),
    )
    op.create_index("ix_tukin_policies_satker_id", "tukin_policies", ["satker_id"])

    op.create_table(
        "tukin_leave_rules",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("policy_id", sa.Integer(), nullable=False),
        sa.Column("leave_type", leave_type, nullable=False),
        sa.Column("credit", sa.Float(), nullable=False),
        sa.Column("counts_as_present", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["policy_id"], ["tukin_policies.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("policy_id", "leave_type", name="uq_tukin_leave_rules_policy_leave_type"),
        sa.CheckConstraint("credit >= 0 AND credit <= 1", name="ck_tukin_leave_rules_credit_range"),
    )

    op.create_table(
        "tukin_calculations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("month", sa.Date(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("satker_id", sa.Integer(), nullable=False),
        sa.Column("policy_id", sa.Integer(), nullable=True),
        sa.Column("base_tukin", sa.BigInteger(), nullable=False),
        sa.Column("expected_units", sa.Float(), nullable=False),
        sa.Column("earned_credit", sa.Float(), nullable=False),
        sa.Column("attendance_ratio", sa.Float(), nullable=False),
        sa.Column("final_tukin", sa.BigInteger(), nullable=False),
        sa.Column(
            "breakdown",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["satker_id"], ["satkers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["policy_id"], ["tukin_policies.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("month", "user_id", name="uq_tukin_calculations_month_user"),
    )
    op.create_index("ix_tukin_calculations_month", "tukin_calculations", ["month"])
    op.create_index("ix_tukin_calculations_satker_id", "tukin_calculations", ["satker_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _timestamp("ts_utc"),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "tukin_calculations",
        "tukin_leave_rules",
        "tukin_policies",
        "leave_requests",
        "satker_calendar_days",
        "holidays",
        "satker_work_patterns",
        "duty_schedule_requests",
        "duty_schedules",
        "attendance_events",
        "attendance_sessions",
        "geofences",
        "app_settings",
        "users",
        "ranks",
        "satkers",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in reversed(_ENUMS):
        enum_type.drop(bind, checkfirst=True)
