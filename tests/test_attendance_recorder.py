from __future__ import annotations

import unittest
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError

from presensi.context import AppContext
from presensi.errors import ApiError
from presensi.models import (
    AttendanceEvent,
    AttendanceEventType,
    AttendanceLeaveType,
    AttendanceSession,
    AttendanceSessionStatus,
    DutySchedule,
    User,
)
from presensi.schemas import AttendanceCorrectionRequest, AttendancePayload
from presensi.services.attendance import admin_correct_session, check_in, check_out, delete_session
from presensi.services.geofence import NearestGeofence
from presensi.settings import Settings

# 23:30 UTC on the 1st is already 06:30 on the 2nd in Jakarta.
NOW = datetime(2026, 3, 1, 23, 30, tzinfo=timezone.utc)
INSIDE = NearestGeofence(geofence_id=3, name="Kantor", distance_m=20.0, radius_m=100.0)
OUTSIDE = NearestGeofence(geofence_id=3, name="Kantor", distance_m=850.0, radius_m=100.0)
# 22:00 on the 1st until 06:00 on the 2nd, Jakarta time.
NIGHT_DUTY = DutySchedule(
    id=41,
    user_id=7,
    start_at=datetime(2026, 3, 1, 15, 0, tzinfo=timezone.utc),
    end_at=datetime(2026, 3, 1, 23, 0, tzinfo=timezone.utc),
)
NIGHT_CHECK_IN = datetime(2026, 3, 1, 14, 55, tzinfo=timezone.utc)


class _FakeDB:
    def __init__(self, *, fail_commit: bool = False, users: dict[int, User] | None = None) -> None:
        self.added: list[object] = []
        self.deleted: list[object] = []
        self.executed: list[object] = []
        self.users = users or {}
        self.commits = 0
        self.rollbacks = 0
        self.fail_commit = fail_commit

    def get(self, model, pk, **_kwargs):  # type: ignore[no-untyped-def]
        return self.users.get(pk) if model is User else None

    def execute(self, stmt):  # type: ignore[no-untyped-def]
        self.executed.append(stmt)

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def delete(self, obj: object) -> None:
        self.deleted.append(obj)

    def commit(self) -> None:
        if self.fail_commit:
            raise IntegrityError("insert", {}, Exception("duplicate"))
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def refresh(self, obj: object) -> None:
        if isinstance(obj, AttendanceEvent) and obj.id is None:
            obj.id = 99


def _payload(**overrides) -> AttendancePayload:  # type: ignore[no-untyped-def]
    data = {
        "challenge_id": "c" * 32,
        "device_id": "device-1",
        "latitude": -6.2,
        "longitude": 106.8,
        "accuracy_meters": 12.0,
    }
    data.update(overrides)
    return AttendancePayload(**data)


def _session(**overrides) -> AttendanceSession:  # type: ignore[no-untyped-def]
    data = {
        "id": 10,
        "satker_id": 1,
        "user_id": 7,
        "work_date": date(2026, 3, 2),
        "status": AttendanceSessionStatus.OPEN,
        "is_manual": False,
        "check_in_at": None,
        "check_out_at": None,
    }
    data.update(overrides)
    return AttendanceSession(**data)


def _ctx(db: _FakeDB, now: datetime = NOW) -> AppContext:
    return AppContext(
        settings=Settings(jwt_secret="test"),
        db=db,  # type: ignore[arg-type]
        store=MagicMock(),
        clock=lambda: now,
    )


class _RecorderCase(unittest.TestCase):
    @contextmanager
    def _patched(  # type: ignore[no-untyped-def]
        self,
        *,
        nearest=INSIDE,
        session=None,
        existing_event=None,
        active_duty=None,
        yesterday_duty=None,
        stored_session=None,
    ) -> Iterator[None]:
        self.bind = MagicMock()
        self.consume = MagicMock()
        self.guard = MagicMock()
        self.upsert = MagicMock(return_value=session if session is not None else _session())
        self.active_duty = MagicMock(return_value=active_duty)
        self.duty_on_date = MagicMock(return_value=yesterday_duty)
        self.find_session = MagicMock(return_value=stored_session)
        targets = {
            "ensure_device_bound": self.bind,
            "consume_challenge": self.consume,
            "check_and_record_location": self.guard,
            "resolve_nearest_geofence": MagicMock(return_value=nearest),
            "get_timezone": MagicMock(return_value=ZoneInfo("Asia/Jakarta")),
            "find_active_duty": self.active_duty,
            "find_duty_on_local_date": self.duty_on_date,
            "_find_session": self.find_session,
            "_upsert_session": self.upsert,
            "_find_event": MagicMock(return_value=existing_event),
        }
        with ExitStack() as stack:
            for name, mock in targets.items():
                stack.enter_context(patch(f"presensi.services.attendance.{name}", mock))
            yield


class AttendanceRecorderTests(_RecorderCase):
    def test_check_in_inside_geofence_records_event(self) -> None:
        db = _FakeDB()
        with self._patched():
            snapshot = check_in(_ctx(db), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(snapshot.check_in_at, NOW)
        self.assertEqual(snapshot.event_id, 99)
        self.assertEqual(snapshot.event_type, AttendanceEventType.CHECK_IN)
        self.assertTrue(snapshot.inside_geofence)
        self.assertEqual(db.commits, 1)
        self.assertEqual(self.upsert.call_args.kwargs["work_date"], date(2026, 3, 2))
        self.bind.assert_called_once()
        self.assertEqual(self.bind.call_args.kwargs["device_id"], "device-1")
        self.consume.assert_called_once()
        self.guard.assert_called_once()
        event = db.added[0]
        self.assertEqual(event.attendance_leave_type, AttendanceLeaveType.NORMAL)  # type: ignore[attr-defined]
        self.assertEqual(event.server_challenge_id, "c" * 32)  # type: ignore[attr-defined]

    def test_mock_location_rejected_before_challenge(self) -> None:
        db = _FakeDB()
        with self._patched():
            with self.assertRaises(ApiError) as exc:
                check_in(_ctx(db), user_id=7, satker_id=1, payload=_payload(is_mock=True))

        self.assertEqual(exc.exception.code, "MOCK_LOCATION")
        self.consume.assert_not_called()
        self.bind.assert_not_called()
        self.assertEqual(db.added, [])

    def test_low_accuracy_rejected(self) -> None:
        with self._patched():
            with self.assertRaises(ApiError) as exc:
                check_in(_ctx(_FakeDB()), user_id=7, satker_id=1, payload=_payload(accuracy_meters=5000))

        self.assertEqual(exc.exception.code, "ACCURACY_TOO_LOW")

    def test_device_of_another_user_rejected_before_challenge(self) -> None:
        db = _FakeDB()
        error = ApiError(status_code=403, code="DEVICE_BOUND_TO_OTHER_USER", message="taken")
        with self._patched():
            self.bind.side_effect = error
            with self.assertRaises(ApiError) as exc:
                check_in(_ctx(db), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(exc.exception.code, "DEVICE_BOUND_TO_OTHER_USER")
        self.consume.assert_not_called()
        self.upsert.assert_not_called()
        self.assertEqual(db.commits, 0)

    def test_outside_geofence_without_declaration(self) -> None:
        db = _FakeDB()
        with self._patched(nearest=OUTSIDE):
            with self.assertRaises(ApiError) as exc:
                check_in(_ctx(db), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(exc.exception.code, "OUT_OF_GEOFENCE")
        self.assertIn("850 m", exc.exception.message)
        self.assertEqual(db.commits, 0)

    def test_outside_geofence_requires_notes(self) -> None:
        with self._patched(nearest=OUTSIDE):
            with self.assertRaises(ApiError) as exc:
                check_in(
                    _ctx(_FakeDB()),
                    user_id=7,
                    satker_id=1,
                    payload=_payload(attendance_leave_type="DINAS_LUAR", attendance_leave_notes=" x "),
                )

        self.assertEqual(exc.exception.code, "LEAVE_NOTES_REQUIRED")

    def test_outside_geofence_with_declaration_is_recorded(self) -> None:
        db = _FakeDB()
        with self._patched(nearest=OUTSIDE):
            snapshot = check_in(
                _ctx(db),
                user_id=7,
                satker_id=1,
                payload=_payload(attendance_leave_type="DINAS_LUAR", attendance_leave_notes="Rapat di kementerian"),
            )

        self.assertFalse(snapshot.inside_geofence)
        self.assertEqual(snapshot.attendance_leave_type, AttendanceLeaveType.DINAS_LUAR)
        self.assertEqual(db.added[0].attendance_leave_notes, "Rapat di kementerian")  # type: ignore[attr-defined]

    def test_no_active_geofence(self) -> None:
        with self._patched(nearest=None):
            with self.assertRaises(ApiError) as exc:
                check_in(_ctx(_FakeDB()), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(exc.exception.code, "NO_ACTIVE_GEOFENCE")

    def test_second_check_in_same_day_rejected(self) -> None:
        existing = AttendanceEvent(id=5, event_type=AttendanceEventType.CHECK_IN)
        with self._patched(session=_session(check_in_at=NOW), existing_event=existing):
            with self.assertRaises(ApiError) as exc:
                check_in(_ctx(_FakeDB()), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(exc.exception.code, "ALREADY_CHECKED_IN")
        self.assertEqual(exc.exception.status_code, 409)

    def test_check_out_without_check_in_rejected(self) -> None:
        with self._patched():
            with self.assertRaises(ApiError) as exc:
                check_out(_ctx(_FakeDB()), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(exc.exception.code, "NOT_CHECKED_IN")

    def test_check_out_closes_session(self) -> None:
        check_in_at = datetime(2026, 3, 1, 0, 55, tzinfo=timezone.utc)
        db = _FakeDB()
        with self._patched(session=_session(check_in_at=check_in_at)):
            snapshot = check_out(_ctx(db), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(snapshot.status, AttendanceSessionStatus.CLOSED)
        self.assertEqual(snapshot.check_in_at, check_in_at)
        self.assertEqual(snapshot.check_out_at, NOW)

    def test_unique_violation_maps_to_conflict(self) -> None:
        db = _FakeDB(fail_commit=True)
        with self._patched():
            with self.assertRaises(ApiError) as exc:
                check_in(_ctx(db), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(exc.exception.code, "ALREADY_CHECKED_IN")
        self.assertEqual(db.rollbacks, 1)


class DutyWorkDateTests(_RecorderCase):
    def test_overnight_check_out_files_against_duty_start_date(self) -> None:
        night_session = _session(work_date=date(2026, 3, 1), check_in_at=NIGHT_CHECK_IN)
        db = _FakeDB()
        with self._patched(session=night_session, active_duty=NIGHT_DUTY):
            snapshot = check_out(_ctx(db), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(self.upsert.call_args.kwargs["work_date"], date(2026, 3, 1))
        self.assertEqual(snapshot.work_date, date(2026, 3, 1))
        self.assertEqual(snapshot.status, AttendanceSessionStatus.CLOSED)
        self.assertEqual(snapshot.check_out_at, NOW)
        self.assertEqual(self.active_duty.call_args.kwargs["grace_after"], timedelta(minutes=180))
        self.assertEqual(self.active_duty.call_args.kwargs["grace_before"], timedelta(minutes=30))

    def test_check_out_prefers_todays_checked_in_session(self) -> None:
        today_session = _session(check_in_at=datetime(2026, 3, 1, 23, 0, tzinfo=timezone.utc))
        with self._patched(session=today_session, active_duty=NIGHT_DUTY, stored_session=today_session):
            snapshot = check_out(_ctx(_FakeDB()), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(self.find_session.call_args.kwargs["work_date"], date(2026, 3, 2))
        self.assertEqual(self.upsert.call_args.kwargs["work_date"], date(2026, 3, 2))
        self.assertEqual(snapshot.work_date, date(2026, 3, 2))
        self.active_duty.assert_not_called()

    def test_early_duty_check_in_files_against_duty_start_date(self) -> None:
        # 21:40 Jakarta on the 1st, twenty minutes before the night duty starts.
        now = datetime(2026, 3, 1, 14, 40, tzinfo=timezone.utc)
        with self._patched(session=_session(work_date=date(2026, 3, 1)), active_duty=NIGHT_DUTY):
            check_in(_ctx(_FakeDB(), now), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(self.upsert.call_args.kwargs["work_date"], date(2026, 3, 1))
        self.assertEqual(self.active_duty.call_args.kwargs["grace_after"], timedelta(0))
        self.duty_on_date.assert_not_called()

    def test_check_in_blocked_while_yesterday_duty_open(self) -> None:
        open_session = _session(work_date=date(2026, 3, 1), check_in_at=NIGHT_CHECK_IN)
        db = _FakeDB()
        with self._patched(yesterday_duty=NIGHT_DUTY, stored_session=open_session):
            with self.assertRaises(ApiError) as exc:
                check_in(_ctx(db), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(exc.exception.status_code, 409)
        self.assertEqual(exc.exception.code, "PREVIOUS_DUTY_OPEN")
        self.assertIn("01 Mar 2026 22:00", exc.exception.message)
        self.assertEqual(self.duty_on_date.call_args.kwargs["day"], date(2026, 3, 1))
        self.assertEqual(self.find_session.call_args.kwargs["work_date"], date(2026, 3, 1))
        self.upsert.assert_not_called()
        self.assertEqual(db.commits, 0)

    def test_check_in_allowed_once_block_window_passes(self) -> None:
        open_session = _session(work_date=date(2026, 3, 1), check_in_at=NIGHT_CHECK_IN)
        # One minute past the six-hour block after the 06:00 duty end.
        later = datetime(2026, 3, 2, 5, 1, tzinfo=timezone.utc)
        with self._patched(yesterday_duty=NIGHT_DUTY, stored_session=open_session):
            check_in(_ctx(_FakeDB(), later), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(self.upsert.call_args.kwargs["work_date"], date(2026, 3, 2))

    def test_check_in_allowed_when_yesterday_duty_closed(self) -> None:
        closed = _session(
            work_date=date(2026, 3, 1),
            check_in_at=datetime(2026, 3, 1, 14, 55, tzinfo=timezone.utc),
            check_out_at=datetime(2026, 3, 1, 23, 5, tzinfo=timezone.utc),
        )
        with self._patched(yesterday_duty=NIGHT_DUTY, stored_session=closed):
            snapshot = check_in(_ctx(_FakeDB()), user_id=7, satker_id=1, payload=_payload())

        self.assertEqual(snapshot.work_date, date(2026, 3, 2))
        self.assertEqual(self.upsert.call_args.kwargs["work_date"], date(2026, 3, 2))


class AdminCorrectionTests(unittest.TestCase):
    def _correction(self, **overrides) -> AttendanceCorrectionRequest:  # type: ignore[no-untyped-def]
        data = {
            "check_in_at": datetime(2026, 3, 2, 0, 45, tzinfo=timezone.utc),
            "check_out_at": datetime(2026, 3, 2, 9, 10, tzinfo=timezone.utc),
            "check_out_leave_type": AttendanceLeaveType.DINAS_LUAR,
            "check_out_leave_notes": "Apel di polda",
            "manual_note": "Lupa absen, dikonfirmasi kasubbag",
        }
        data.update(overrides)
        return AttendanceCorrectionRequest(**data)

    def _db(self) -> _FakeDB:
        return _FakeDB(users={7: User(id=7, satker_id=1)})

    def test_correction_overwrites_existing_timestamps(self) -> None:
        db = self._db()
        session = _session(
            check_in_at=datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc),
            check_out_at=datetime(2026, 3, 2, 5, 0, tzinfo=timezone.utc),
            status=AttendanceSessionStatus.CLOSED,
        )
        payload = self._correction()
        with (
            patch("presensi.services.attendance._upsert_session", return_value=session) as upsert,
            patch("presensi.services.attendance.log_audit") as audit,
        ):
            snapshot = admin_correct_session(
                _ctx(db), actor_user_id=2, user_id=7, work_date=date(2026, 3, 2), payload=payload
            )

        self.assertEqual(upsert.call_args.kwargs, {"satker_id": 1, "user_id": 7, "work_date": date(2026, 3, 2)})
        self.assertEqual(snapshot.check_in_at, payload.check_in_at)
        self.assertEqual(snapshot.check_out_at, payload.check_out_at)
        self.assertEqual(snapshot.status, AttendanceSessionStatus.CLOSED)
        self.assertTrue(snapshot.is_manual)
        self.assertTrue(session.is_manual)
        self.assertEqual(session.manual_updated_by, 2)
        self.assertEqual(session.manual_updated_at, NOW)
        self.assertEqual(session.manual_note, "Lupa absen, dikonfirmasi kasubbag")
        self.assertEqual(db.commits, 1)
        self.assertEqual(audit.call_args.kwargs["action"], "attendance_corrected")

    def test_events_replaced_with_check_in_and_check_out(self) -> None:
        db = self._db()
        session = _session(check_in_at=datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc))
        with (
            patch("presensi.services.attendance._upsert_session", return_value=session),
            patch("presensi.services.attendance.log_audit"),
        ):
            admin_correct_session(
                _ctx(db), actor_user_id=2, user_id=7, work_date=date(2026, 3, 2), payload=self._correction()
            )

        self.assertEqual(len(db.executed), 1)
        self.assertEqual(db.executed[0].table.name, "attendance_events")  # type: ignore[attr-defined]
        events = [obj for obj in db.added if isinstance(obj, AttendanceEvent)]
        self.assertEqual(
            [event.event_type for event in events],
            [AttendanceEventType.CHECK_IN, AttendanceEventType.CHECK_OUT],
        )
        self.assertEqual(events[0].attendance_leave_type, AttendanceLeaveType.NORMAL)
        self.assertEqual(events[0].device_id, "ADMIN")
        self.assertEqual(events[1].occurred_at, datetime(2026, 3, 2, 9, 10, tzinfo=timezone.utc))
        self.assertEqual(events[1].attendance_leave_type, AttendanceLeaveType.DINAS_LUAR)
        self.assertEqual(events[1].attendance_leave_notes, "Apel di polda")

    def test_check_in_only_leaves_session_open(self) -> None:
        db = self._db()
        session = _session()
        with (
            patch("presensi.services.attendance._upsert_session", return_value=session),
            patch("presensi.services.attendance.log_audit"),
        ):
            snapshot = admin_correct_session(
                _ctx(db),
                actor_user_id=2,
                user_id=7,
                work_date=date(2026, 3, 2),
                payload=self._correction(check_out_at=None),
            )

        self.assertEqual(snapshot.status, AttendanceSessionStatus.OPEN)
        self.assertIsNone(snapshot.check_out_at)
        events = [obj for obj in db.added if isinstance(obj, AttendanceEvent)]
        self.assertEqual([event.event_type for event in events], [AttendanceEventType.CHECK_IN])

    def test_naive_timestamps_read_as_utc(self) -> None:
        session = _session()
        with (
            patch("presensi.services.attendance._upsert_session", return_value=session),
            patch("presensi.services.attendance.log_audit"),
        ):
            admin_correct_session(
                _ctx(self._db()),
                actor_user_id=2,
                user_id=7,
                work_date=date(2026, 3, 2),
                payload=self._correction(check_in_at=datetime(2026, 3, 2, 1, 0), check_out_at=None),
            )

        self.assertEqual(session.check_in_at, datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc))

    def _assert_rejected(  # type: ignore[no-untyped-def]
        self, code: str, status_code: int, db: _FakeDB, **overrides
    ) -> None:
        with patch("presensi.services.attendance._upsert_session") as upsert:
            with self.assertRaises(ApiError) as exc:
                admin_correct_session(
                    _ctx(db),
                    actor_user_id=2,
                    user_id=7,
                    work_date=date(2026, 3, 2),
                    payload=self._correction(**overrides),
                )

        self.assertEqual(exc.exception.code, code)
        self.assertEqual(exc.exception.status_code, status_code)
        upsert.assert_not_called()
        self.assertEqual(db.commits, 0)

    def test_manual_note_required(self) -> None:
        self._assert_rejected("MANUAL_NOTE_REQUIRED", 422, self._db(), manual_note="  ok ")

    def test_check_in_required(self) -> None:
        self._assert_rejected("CHECK_IN_REQUIRED", 422, self._db(), check_in_at=None)

    def test_check_out_before_check_in_rejected(self) -> None:
        self._assert_rejected(
            "INVALID_RANGE",
            422,
            self._db(),
            check_out_at=datetime(2026, 3, 2, 0, 30, tzinfo=timezone.utc),
        )

    def test_unknown_user(self) -> None:
        self._assert_rejected("USER_NOT_FOUND", 404, _FakeDB())


class DeleteSessionTests(unittest.TestCase):
    def test_delete_removes_events_and_session(self) -> None:
        db = _FakeDB()
        session = _session(id=15)
        with (
            patch("presensi.services.attendance._find_session", return_value=session) as find,
            patch("presensi.services.attendance.log_audit") as audit,
        ):
            deleted_id = delete_session(_ctx(db), actor_user_id=2, user_id=7, work_date=date(2026, 3, 2))

        self.assertEqual(deleted_id, 15)
        self.assertEqual(find.call_args.kwargs, {"user_id": 7, "work_date": date(2026, 3, 2)})
        self.assertEqual(db.executed[0].table.name, "attendance_events")  # type: ignore[attr-defined]
        self.assertEqual(db.deleted, [session])
        self.assertEqual(db.commits, 1)
        self.assertEqual(audit.call_args.kwargs["action"], "attendance_deleted")
        self.assertEqual(audit.call_args.kwargs["entity_id"], 15)

    def test_missing_session(self) -> None:
        db = _FakeDB()
        with patch("presensi.services.attendance._find_session", return_value=None):
            with self.assertRaises(ApiError) as exc:
                delete_session(_ctx(db), actor_user_id=2, user_id=7, work_date=date(2026, 3, 2))

        self.assertEqual(exc.exception.code, "SESSION_NOT_FOUND")
        self.assertEqual(exc.exception.status_code, 404)
        self.assertEqual(db.executed, [])


if __name__ == "__main__":
    unittest.main()
