"""
Great-circle distance and unit conversion for route scoring.

Everything inside the engine is kilometers; meters only appear when results
are serialized.
"""
import math
from functools import lru_cache

# Mean Earth radius (IUGG)
EARTH_RADIUS_KM = 6371.0

METERS_PER_KM = 1000


@lru_cache(maxsize=10000)
def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Haversine distance in kilometers between two WGS-84 points.

    Cached because the same zone centers are measured against the same
    route vertices for every alternative being scored.

    Examples:
        >>> # Kuala Lumpur City Centre to Petaling Jaya
        >>> haversine_distance(3.1390, 101.6869, 3.1073, 101.5951)
        10.7...
        >>> haversine_distance(3.1390, 101.6869, 3.1390, 101.6869)
        0.0

    Inputs are not validated; use utils.geo.distance_km at API boundaries.
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    half_dphi = math.radians(lat2 - lat1) / 2
    half_dlambda = math.radians(lon2 - lon1) / 2

    h = math.sin(half_dphi) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(half_dlambda) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def km_to_meters(distance_km: float) -> float:
    """Exact conversion used when distances leave the engine."""
    return distance_km * METERS_PER_KM


def meters_to_km(distance_meters: float) -> float:
    return distance_meters / METERS_PER_KM


def clear_distance_cache() -> None:
    """Drop memoized haversine results (tests reset it between cases)."""
    haversine_distance.cache_clear()


def get_cache_info() -> dict:
    """haversine_distance cache statistics as a JSON-safe dict."""
    info = haversine_distance.cache_info()
    return {
        'hits': info.hits,
        'misses': info.misses,
        'maxsize': info.maxsize,
        'currsize': info.currsize,
    }
