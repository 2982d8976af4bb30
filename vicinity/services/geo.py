"""Great-circle distance helpers."""

import math

EARTH_RADIUS_M = 6_371_008.8  # mean Earth radius


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two lat/lng points in meters."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    # clamp: rounding can push a slightly above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_distance(meters: float) -> str:
    """Human label: "850m" under a kilometre, "1.2km" above."""
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"


def degrees_for_meters(meters: float, latitude: float) -> tuple[float, float]:
    """Approximate (lat, lon) degree span covering ``meters`` at ``latitude``.

    Returns math.inf for the longitude span near the poles.
    """
    dlat = math.degrees(meters / EARTH_RADIUS_M)
    cos_lat = math.cos(math.radians(latitude))
    if cos_lat < 1e-6:
        return dlat, math.inf
    dlon = math.degrees(meters / (EARTH_RADIUS_M * cos_lat))
    return dlat, dlon
