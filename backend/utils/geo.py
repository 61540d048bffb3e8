"""
Geospatial primitives for route hazard analysis.

Points are any objects exposing ``lat`` and ``lon`` attributes in WGS-84
degrees (GeoPoint, RoutePoint). Great-circle distances use the haversine
formula; point-to-polyline distances use a local planar projection, which is
accurate for the intra-metro segment lengths (< ~50 km) routes are made of.
"""
import math
from typing import Sequence

from shapely.geometry import LineString, Point

from utils.distance import EARTH_RADIUS_KM, haversine_distance
from utils.errors import DegenerateRoute, InvalidCoordinate


def is_valid_coordinates(latitude: float, longitude: float) -> bool:
    """
    True for finite, numeric lat in [-90, 90] and lon in [-180, 180].

    Zero is a real coordinate (equator, prime meridian); booleans and
    NaN/inf are rejected.

        >>> is_valid_coordinates(3.1390, 101.6869)  # Kuala Lumpur
        True
        >>> is_valid_coordinates(91, 0)
        False
        >>> is_valid_coordinates(float('nan'), 0)
        False
    """
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        return False
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        return False

    if math.isnan(lat) or math.isnan(lon) or math.isinf(lat) or math.isinf(lon):
        return False

    return -90 <= lat <= 90 and -180 <= lon <= 180


def validate_point(point) -> None:
    """
    Raise InvalidCoordinate unless ``point`` carries a usable lat/lon pair.

    Raises:
        InvalidCoordinate: NaN, infinite, non-numeric or out-of-range values
    """
    lat = getattr(point, 'lat', None)
    lon = getattr(point, 'lon', None)
    if not is_valid_coordinates(lat, lon):
        raise InvalidCoordinate(f"Invalid coordinates: ({lat}, {lon})")


def normalize_longitude(longitude: float) -> float:
    """
    Normalize longitude to the range [-180, 180].

    Used on longitude *differences* so that segments crossing the
    International Date Line are measured the short way round.

    Examples:
        >>> normalize_longitude(181)
        -179.0
        >>> normalize_longitude(-181)
        179.0
        >>> normalize_longitude(360)
        0.0
    """
    normalized = longitude % 360
    if normalized > 180:
        normalized -= 360
    elif normalized < -180:
        normalized += 360
    return float(normalized)


def distance_km(a, b) -> float:
    """
    Great-circle distance between two points in kilometers.

    Raises:
        InvalidCoordinate: If either point is invalid
    """
    validate_point(a)
    validate_point(b)
    return haversine_distance(float(a.lat), float(a.lon), float(b.lat), float(b.lon))


def point_in_circle(point, center, radius_km: float) -> bool:
    """Return True if ``point`` lies within ``radius_km`` of ``center`` (boundary inclusive)."""
    return distance_km(point, center) <= radius_km


def _project(point, origin, cos_lat: float) -> tuple:
    """Equirectangular projection of ``point`` to km offsets (x east, y north) from ``origin``."""
    dlon = normalize_longitude(float(point.lon) - float(origin.lon))
    dlat = float(point.lat) - float(origin.lat)
    x = math.radians(dlon) * EARTH_RADIUS_KM * cos_lat
    y = math.radians(dlat) * EARTH_RADIUS_KM
    return (x, y)


def min_distance_to_polyline_km(point, line: Sequence) -> float:
    """
    Minimum distance in kilometers from ``point`` to any segment of ``line``.

    The polyline is projected onto a plane tangent at ``point``; shapely then
    measures to the nearest point *on each segment* (projection parameter
    clamped to the segment ends), not to the infinite line through it.

    Args:
        point: Object with lat/lon (e.g. a hazard zone center)
        line: Ordered sequence of objects with lat/lon, at least 2 long

    Returns:
        Distance in kilometers (0.0 when the polyline passes through the point)

    Raises:
        DegenerateRoute: If ``line`` has fewer than 2 points
        InvalidCoordinate: If ``point`` or any vertex is invalid
    """
    vertices = list(line)
    if len(vertices) < 2:
        raise DegenerateRoute(f"Polyline needs at least 2 points, got {len(vertices)}")

    validate_point(point)
    for vertex in vertices:
        validate_point(vertex)

    cos_lat = math.cos(math.radians(float(point.lat)))
    route_geometry = LineString([_project(vertex, point, cos_lat) for vertex in vertices])
    return float(route_geometry.distance(Point(0.0, 0.0)))
