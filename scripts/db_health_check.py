#!/usr/bin/env python
from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import create_engine, text

from presensi.settings import get_settings
from presensi.store import EphemeralStore, build_redis_client


EXPECTED_HEAD = "0002_user_devices"
REQUIRED_TABLES = (
    "satkers",
    "users",
    "user_devices",
    "geofences",
    "attendance_sessions",
    "attendance_events",
    "duty_schedules",
    "duty_schedule_requests",
    "satker_work_patterns",
    "holidays",
    "satker_calendar_days",
    "leave_requests",
    "tukin_policies",
    "tukin_leave_rules",
    "tukin_calculations",
)


def run() -> dict:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    store = EphemeralStore(build_redis_client(settings.redis_url))
    add("ephemeral_store_ping", "ok" if store.ping() else "fail", {})

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing else "ok", {"tables": missing})

        if "attendance_sessions" in tables:
            out_before_in = conn.execute(
                text(
                    """
                    select id
                    from attendance_sessions
                    where check_out_at is not null
                      and (check_in_at is null or check_out_at < check_in_at)
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "attendance_checkout_before_checkin",
                "fail" if out_before_in else "ok",
                {"sample_ids": [row[0] for row in out_before_in]},
            )

        if "duty_schedules" in tables:
            overlapping = conn.execute(
                text(
                    """
                    select a.id, b.id
                    from duty_schedules a
                    join duty_schedules b
                      on a.user_id = b.user_id
                     and a.id < b.id
                     and a.start_at < b.end_at
                     and a.end_at > b.start_at
                    where a.deleted_at is null and b.deleted_at is null
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "duty_schedule_overlap",
                "fail" if overlapping else "ok",
                {"pairs": [list(row) for row in overlapping]},
            )

        if "geofences" in tables:
            satkers_without_fence = conn.execute(
                text(
                    """
                    select s.id
                    from satkers s
                    left join geofences g on g.satker_id = s.id and g.is_active = true
                    where s.is_active = true and g.id is null
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "active_satker_without_geofence",
                "warn" if satkers_without_fence else "ok",
                {"satker_ids": [row[0] for row in satkers_without_fence]},
            )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
