from math import asin, cos, radians, sin, sqrt
from typing import Iterable

from hrportal.models import WorkLocation


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    earth_radius_m = 6371000.0

    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * asin(sqrt(a))
    return earth_radius_m * c


def evaluate_location(
    work_locations: Iterable[WorkLocation],
    lat: float | None,
    lon: float | None,
) -> tuple[bool, dict[str, float | int | str]]:
    if lat is None or lon is None:
        return False, {"reason": "no_location_payload"}

    active_locations = [item for item in work_locations if item.is_active]
    if not active_locations:
        return True, {"reason": "no_work_locations"}

    nearest = min(active_locations, key=lambda item: distance_m(item.lat, item.lon, lat, lon))
    distance_value = distance_m(nearest.lat, nearest.lon, lat, lon)
    flags: dict[str, float | int | str] = {
        "nearest_location_id": nearest.id,
        "distance_m": round(distance_value, 2),
        "radius_m": nearest.radius_m,
    }

    if distance_value <= nearest.radius_m:
        return True, flags

    flags["reason"] = "outside_work_location"
    return False, flags
