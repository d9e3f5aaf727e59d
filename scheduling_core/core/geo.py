from __future__ import annotations

import math
from typing import Any, Iterable, NamedTuple

from scheduling_core.core.errors import LocationNotSet, ValidationError


EARTH_RADIUS_KM = 6371.0


class CenterMatch(NamedTuple):
    center: Any
    distance_km: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push `a` a hair past 1.0 for antipodal points.
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def _coordinate(value: Any) -> float | None:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def suggest_centers(
    tutor_lat: float | None,
    tutor_lon: float | None,
    radius_km: float,
    centers: Iterable[Any],
) -> list[CenterMatch]:
    """Centers within ``radius_km`` of the tutor, nearest first.

    ``centers`` may be ORM rows or any object exposing ``latitude``,
    ``longitude`` and ``name``. Centers without coordinates are skipped. An
    empty list means nothing is in range; callers widen the radius.
    """
    lat = _coordinate(tutor_lat)
    lon = _coordinate(tutor_lon)
    if lat is None or lon is None:
        raise LocationNotSet('Tutor has not set a location yet; coordinates are required to suggest centers.')
    try:
        radius = float(radius_km)
    except (TypeError, ValueError) as exc:
        raise ValidationError('Search radius must be a number of kilometres.', code='invalid_radius') from exc
    if math.isnan(radius) or radius < 0:
        raise ValidationError('Search radius cannot be negative.', code='invalid_radius')

    matches: list[CenterMatch] = []
    for center in centers:
        center_lat = _coordinate(getattr(center, 'latitude', None))
        center_lon = _coordinate(getattr(center, 'longitude', None))
        if center_lat is None or center_lon is None:
            continue
        distance = haversine_km(lat, lon, center_lat, center_lon)
        if distance <= radius:
            matches.append(CenterMatch(center=center, distance_km=distance))

    matches.sort(
        key=lambda item: (
            item.distance_km,
            str(getattr(item.center, 'name', '') or ''),
            str(getattr(item.center, 'id', '') or ''),
        )
    )
    return matches
