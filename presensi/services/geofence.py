from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from presensi.models import Geofence
from presensi.services.location import distance_m


@dataclass(frozen=True)
class NearestGeofence:
    geofence_id: int
    name: str
    distance_m: float
    radius_m: float

    @property
    def inside(self) -> bool:
        return self.distance_m <= self.radius_m


def nearest_geofence(fences: Iterable[Geofence], lat: float, lon: float) -> NearestGeofence | None:
    best: tuple[float, int, Geofence] | None = None
    for fence in fences:
        if not fence.is_active:
            continue
        candidate = (distance_m(fence.latitude, fence.longitude, lat, lon), fence.id, fence)
        # Ties on distance resolve to the lowest id.
        if best is None or candidate[:2] < best[:2]:
            best = candidate

    if best is None:
        return None
    distance, _fence_id, fence = best
    return NearestGeofence(
        geofence_id=fence.id,
        name=fence.name,
        distance_m=distance,
        radius_m=float(fence.radius_m),
    )


def list_active_geofences(db: Session, *, satker_id: int) -> list[Geofence]:
    stmt = (
        select(Geofence)
        .where(Geofence.satker_id == satker_id, Geofence.is_active.is_(True))
        .order_by(Geofence.id.asc())
    )
    return list(db.scalars(stmt).all())


def resolve_nearest_geofence(db: Session, *, satker_id: int, lat: float, lon: float) -> NearestGeofence | None:
    return nearest_geofence(list_active_geofences(db, satker_id=satker_id), lat, lon)
