from math import asin, cos, radians, sin, sqrt

from presensi.errors import ApiError

EARTH_RADIUS_M = 6371000.0


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * asin(min(1.0, sqrt(a)))
    return EARTH_RADIUS_M * c


def validate_coordinates(lat: float, lon: float) -> None:
    if not -90.0 <= lat <= 90.0:
        raise ApiError(status_code=422, code="INVALID_COORDINATES", message="latitude must be within -90..90.")
    if not -180.0 <= lon <= 180.0:
        raise ApiError(status_code=422, code="INVALID_COORDINATES", message="longitude must be within -180..180.")
