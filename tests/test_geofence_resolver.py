from __future__ import annotations

import unittest

from presensi.errors import ApiError
from presensi.models import Geofence
from presensi.services.geofence import nearest_geofence
from presensi.services.location import distance_m, validate_coordinates

METERS_PER_DEGREE_LAT = 111_194.93
BASE_LAT = -6.2
BASE_LON = 106.8


def _fence(fence_id: int, meters_north: float, *, radius_m: float = 100.0, is_active: bool = True) -> Geofence:
    return Geofence(
        id=fence_id,
        satker_id=1,
        name=f"Fence {fence_id}",
        latitude=BASE_LAT + meters_north / METERS_PER_DEGREE_LAT,
        longitude=BASE_LON,
        radius_m=radius_m,
        is_active=is_active,
    )


class LocationTests(unittest.TestCase):
    def test_distance_zero_for_same_point(self) -> None:
        self.assertAlmostEqual(distance_m(BASE_LAT, BASE_LON, BASE_LAT, BASE_LON), 0.0, places=6)

    def test_one_degree_longitude_on_equator(self) -> None:
        self.assertAlmostEqual(distance_m(0.0, 0.0, 0.0, 1.0), 111_195, delta=300)

    def test_validate_coordinates_rejects_out_of_range(self) -> None:
        with self.assertRaises(ApiError) as exc:
            validate_coordinates(91.0, 0.0)
        self.assertEqual(exc.exception.code, "INVALID_COORDINATES")
        with self.assertRaises(ApiError):
            validate_coordinates(0.0, -180.5)


class NearestGeofenceTests(unittest.TestCase):
    def test_nearest_of_three_is_chosen_and_inside(self) -> None:
        fences = [_fence(1, 120), _fence(2, 45), _fence(3, 300)]

        nearest = nearest_geofence(fences, BASE_LAT, BASE_LON)

        self.assertIsNotNone(nearest)
        assert nearest is not None
        self.assertEqual(nearest.geofence_id, 2)
        self.assertAlmostEqual(nearest.distance_m, 45.0, delta=0.5)
        self.assertTrue(nearest.inside)

    def test_outside_when_nearest_radius_too_small(self) -> None:
        nearest = nearest_geofence([_fence(1, 45, radius_m=30)], BASE_LAT, BASE_LON)

        assert nearest is not None
        self.assertFalse(nearest.inside)

    def test_boundary_distance_counts_as_inside(self) -> None:
        fence = _fence(1, 45)
        fence.radius_m = distance_m(fence.latitude, fence.longitude, BASE_LAT, BASE_LON)
        nearest = nearest_geofence([fence], BASE_LAT, BASE_LON)

        assert nearest is not None
        self.assertEqual(nearest.distance_m, nearest.radius_m)
        self.assertTrue(nearest.inside)

    def test_equal_distance_prefers_lowest_id(self) -> None:
        fences = [_fence(9, 50), _fence(4, 50)]

        nearest = nearest_geofence(fences, BASE_LAT, BASE_LON)

        assert nearest is not None
        self.assertEqual(nearest.geofence_id, 4)

    def test_inactive_fences_are_ignored(self) -> None:
        fences = [_fence(1, 10, is_active=False), _fence(2, 200)]

        nearest = nearest_geofence(fences, BASE_LAT, BASE_LON)

        assert nearest is not None
        self.assertEqual(nearest.geofence_id, 2)

    def test_no_active_fence_returns_none(self) -> None:
        self.assertIsNone(nearest_geofence([_fence(1, 10, is_active=False)], BASE_LAT, BASE_LON))


if __name__ == "__main__":
    unittest.main()
