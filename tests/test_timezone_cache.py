from __future__ import annotations

import unittest
from unittest.mock import MagicMock

from presensi.context import AppContext
from presensi.errors import ApiError, StoreUnavailableError
from presensi.models import AppSetting
from presensi.services.timezone_cache import TIMEZONE_CACHE_KEY, get_timezone, set_timezone
from presensi.settings import Settings


class _SettingsDB:
    def __init__(self, setting: AppSetting | None = None) -> None:
        self.setting = setting
        self.get_calls = 0
        self.added: list[object] = []
        self.commits = 0

    def get(self, _model, _pk):  # type: ignore[no-untyped-def]
        self.get_calls += 1
        return self.setting

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def commit(self) -> None:
        self.commits += 1


def _ctx(db: _SettingsDB, store: MagicMock) -> AppContext:
    return AppContext(settings=Settings(jwt_secret="test"), db=db, store=store)  # type: ignore[arg-type]


class TimezoneCacheTests(unittest.TestCase):
    def test_cache_hit_skips_database(self) -> None:
        db = _SettingsDB()
        store = MagicMock()
        store.get_text.return_value = "Asia/Makassar"

        zone = get_timezone(_ctx(db, store))

        self.assertEqual(zone.key, "Asia/Makassar")
        self.assertEqual(db.get_calls, 0)
        store.put_text.assert_not_called()

    def test_cache_miss_reads_setting_and_refills(self) -> None:
        db = _SettingsDB(AppSetting(key="timezone", value="Asia/Jayapura"))
        store = MagicMock()
        store.get_text.return_value = None

        zone = get_timezone(_ctx(db, store))

        self.assertEqual(zone.key, "Asia/Jayapura")
        store.put_text.assert_called_once_with(TIMEZONE_CACHE_KEY, "Asia/Jayapura", 300)

    def test_store_down_falls_back_to_database(self) -> None:
        db = _SettingsDB(AppSetting(key="timezone", value="Asia/Makassar"))
        store = MagicMock()
        store.get_text.side_effect = StoreUnavailableError("down")
        store.put_text.side_effect = StoreUnavailableError("down")

        with self.assertLogs("presensi.timezone", level="WARNING") as captured:
            zone = get_timezone(_ctx(db, store))

        self.assertEqual(zone.key, "Asia/Makassar")
        self.assertTrue(any("timezone_cache_unavailable" in line for line in captured.output))

    def test_missing_or_invalid_setting_uses_default(self) -> None:
        store = MagicMock()
        store.get_text.return_value = None

        self.assertEqual(get_timezone(_ctx(_SettingsDB(), store)).key, "Asia/Jakarta")
        invalid = _SettingsDB(AppSetting(key="timezone", value="Mars/Olympus"))
        self.assertEqual(get_timezone(_ctx(invalid, store)).key, "Asia/Jakarta")

    def test_set_timezone_persists_and_invalidates(self) -> None:
        db = _SettingsDB()
        store = MagicMock()

        zone = set_timezone(_ctx(db, store), "Asia/Makassar")

        self.assertEqual(zone.key, "Asia/Makassar")
        self.assertEqual(db.commits, 1)
        self.assertEqual(db.added[0].value, "Asia/Makassar")  # type: ignore[attr-defined]
        store.delete.assert_called_once_with(TIMEZONE_CACHE_KEY)

    def test_set_timezone_rejects_unknown_zone(self) -> None:
        with self.assertRaises(ApiError) as exc:
            set_timezone(_ctx(_SettingsDB(), MagicMock()), "Nowhere/City")
        self.assertEqual(exc.exception.code, "INVALID_TIMEZONE")


if __name__ == "__main__":
    unittest.main()
