from __future__ import annotations

import unittest
from collections.abc import Generator
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.exc import OperationalError

from presensi.context import AppContext, get_context
from presensi.errors import ApiError
from presensi.main import create_app
from presensi.models import UserRole
from presensi.schemas import TukinUserSummary
from presensi.security import AuthContext, require_user
from presensi.settings import Settings

SECRET = "unit-test-secret"
MEMBER = AuthContext(user_id=7, satker_id=3, role=UserRole.MEMBER)
HEAD = AuthContext(user_id=2, satker_id=3, role=UserRole.SATKER_HEAD)


def _settings() -> Settings:
    return Settings(jwt_secret=SECRET, database_url="postgresql+psycopg://u:p@localhost:5432/presensi_test")


def _token(**overrides) -> str:  # type: ignore[no-untyped-def]
    claims = {
        "sub": "7",
        "satker_id": 3,
        "role": "MEMBER",
        "iss": "presensi",
        "aud": "presensi-api",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    claims.update(overrides)
    return jwt.encode(claims, SECRET, algorithm="HS256")


def _summary() -> TukinUserSummary:
    return TukinUserSummary(
        user_id=7,
        satker_id=3,
        month="2024-03",
        policy_id=1,
        base_tukin=1_000_000,
        expected_units=20,
        earned_credit=18,
        attendance_ratio=0.9,
        final_tukin=900_000,
        present_days=18,
        absent_days=2,
        missing_checkout_days=0,
        duty_present=0,
        duty_absent=0,
        total_late_minutes=0,
        days=[],
    )


class _Base(unittest.TestCase):
    def setUp(self) -> None:
        self.app = create_app(_settings())
        self.ctx = AppContext(settings=self.app.state.settings, db=MagicMock(), store=MagicMock())

        def _override_context() -> Generator[AppContext, None, None]:
            yield self.ctx

        self.app.dependency_overrides[get_context] = _override_context
        self.client = TestClient(self.app)

    def tearDown(self) -> None:
        self.app.dependency_overrides.clear()

    def _as(self, auth: AuthContext) -> None:
        self.app.dependency_overrides[require_user] = lambda: auth


class AuthEnvelopeTests(_Base):
    def test_missing_token_uses_error_envelope(self) -> None:
        response = self.client.get("/tukin/preview?month=2024-03", headers={"X-Request-Id": "req-1"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(
            response.json(),
            {"error": {"code": "INVALID_TOKEN", "message": "Missing bearer token.", "request_id": "req-1"}},
        )
        self.assertEqual(response.headers["X-Request-Id"], "req-1")

    def test_expired_token_rejected(self) -> None:
        token = _token(exp=datetime.now(timezone.utc) - timedelta(minutes=1))

        response = self.client.get("/tukin/preview?month=2024-03", headers={"Authorization": f"Bearer {token}"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_TOKEN")

    def test_valid_token_reaches_service(self) -> None:
        with patch("presensi.routers.attendance.preview_tukin", return_value=[_summary()]) as preview:
            response = self.client.get(
                "/tukin/preview?month=2024-03",
                headers={"Authorization": f"Bearer {_token()}"},
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()[0]["final_tukin"], 900_000)
        self.assertEqual(preview.call_args.kwargs["auth"], MEMBER)

    def test_unknown_role_claim_rejected(self) -> None:
        response = self.client.get(
            "/tukin/preview?month=2024-03",
            headers={"Authorization": f"Bearer {_token(role='JANITOR')}"},
        )

        self.assertEqual(response.status_code, 401)


class RouteTests(_Base):
    def test_service_error_is_wrapped(self) -> None:
        self._as(MEMBER)
        error = ApiError(status_code=422, code="INVALID_MONTH", message="month must use the YYYY-MM format.")
        with patch("presensi.routers.attendance.preview_tukin", side_effect=error):
            response = self.client.get("/tukin/preview?month=03-2024")

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "INVALID_MONTH")
        self.assertTrue(response.json()["error"]["request_id"])

    def test_body_validation_error(self) -> None:
        self._as(MEMBER)

        response = self.client.post("/attendance/check-in", json={"device_id": "d"})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_member_cannot_generate(self) -> None:
        self._as(MEMBER)

        with patch("presensi.routers.attendance.generate_tukin") as generate:
            response = self.client.post("/tukin/generate?month=2024-03")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")
        generate.assert_not_called()

    def test_head_can_generate_with_force(self) -> None:
        self._as(HEAD)

        with patch("presensi.routers.attendance.generate_tukin", return_value=[]) as generate:
            response = self.client.post("/tukin/generate?month=2024-03&force=true")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(generate.call_args.kwargs["force"])

    def test_member_sessions_scoped_to_self(self) -> None:
        self._as(MEMBER)

        with patch("presensi.routers.attendance.list_sessions", return_value=[]) as list_mock:
            response = self.client.get("/attendance/sessions?from=2024-03-01&to=2024-03-31&user_id=99&satker_id=8")

        self.assertEqual(response.status_code, 200)
        kwargs = list_mock.call_args.kwargs
        self.assertEqual((kwargs["satker_id"], kwargs["user_id"]), (3, 7))
        self.assertEqual(kwargs["date_from"], date(2024, 3, 1))

    def test_member_blocked_from_admin_routes(self) -> None:
        self._as(MEMBER)

        response = self.client.get("/admin/tukin/policies")

        self.assertEqual(response.status_code, 403)


class HealthTests(unittest.TestCase):
    def test_health_ok(self) -> None:
        app = create_app(_settings())
        app.state.session_factory = MagicMock()
        app.state.store = MagicMock()
        app.state.store.ping.return_value = True

        response = TestClient(app).get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "database": True, "store": True})

    def test_health_degraded_when_database_down(self) -> None:
        app = create_app(_settings())
        failing = MagicMock()
        failing.return_value.__enter__.return_value.execute.side_effect = OperationalError("SELECT 1", {}, Exception())
        app.state.session_factory = failing
        app.state.store = MagicMock()
        app.state.store.ping.return_value = False

        response = TestClient(app).get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "degraded", "database": False, "store": False})


if __name__ == "__main__":
    unittest.main()
