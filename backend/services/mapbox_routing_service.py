"""
Mapbox Routing Service for Disaster-Aware Navigation

Fetches candidate routes from the Mapbox Directions API. The service only
supplies geometry and travel summaries; scoring and selection happen in
RouteEvaluationService.

Features:
- Up to 3 alternatives per request (driving, walking or cycling profile)
- Avoidance detours: waypoints offset perpendicular to the direct line
  around high-risk zones, requested as an extra candidate
- Near-duplicate route removal (within 1 km and 2 minutes)
- Connection health probe
"""

import logging
import math
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence

import requests

from services.route_models import CandidateRoute, GeoPoint, HazardZone, RoutePoint, VehicleType
from utils.distance import haversine_distance
from utils.errors import (
    InvalidCoordinate,
    MissingCredentialsError,
    NoRoutesFound,
    RoutingProviderError,
)
from utils.geo import min_distance_to_polyline_km

logger = logging.getLogger(__name__)


class MapboxRoutingService:
    """
    Candidate route provider backed by the Mapbox Directions API.

    Usage:
        service = MapboxRoutingService()
        routes = service.calculate_candidate_routes(start, end, VehicleType.DRIVING, hazard_zones)
    """

    # Mapbox API Configuration
    MAPBOX_BASE_URL = "https://api.mapbox.com/directions/v5/mapbox"
    MAPBOX_TIMEOUT_SECONDS = 30

    # Detour waypoints sit this many zone radii away from the direct line
    AVOIDANCE_RADIUS_MULTIPLIER = 1.5
    MAX_AVOIDANCE_WAYPOINTS = 3

    # Routes closer than this in both distance and duration are the same route
    DUPLICATE_DISTANCE_METERS = 1000
    DUPLICATE_DURATION_SECONDS = 120

    KM_PER_DEGREE = 111.0

    # Kuala Lumpur City Centre to Petaling Jaya
    TEST_START = RoutePoint(lat=3.139, lon=101.6869, name='Kuala Lumpur City Centre')
    TEST_END = RoutePoint(lat=3.1073, lon=101.5951, name='Petaling Jaya')

    def __init__(self, access_token: Optional[str] = None):
        """
        Initialize the Mapbox Routing Service.

        Args:
            access_token: Mapbox access token. If None, reads from MAPBOX_ACCESS_TOKEN env variable
        """
        self.access_token = access_token or os.getenv('MAPBOX_ACCESS_TOKEN')
        if not self.access_token:
            logger.warning("MAPBOX_ACCESS_TOKEN not provided - route calculation will be unavailable")
            self.enabled = False
        else:
            self.enabled = True
            logger.info("Mapbox Routing Service initialized successfully")

    def is_enabled(self) -> bool:
        """Check if Mapbox routing is available (access token configured)."""
        return self.enabled

    def get_candidate_routes(
        self,
        start: RoutePoint,
        end: RoutePoint,
        vehicle_type: VehicleType = VehicleType.DRIVING
    ) -> List[CandidateRoute]:
        """
        Request the direct route plus Mapbox's alternatives.

        Raises:
            MissingCredentialsError: If no access token is configured
            RoutingProviderError: If the request fails or the body is malformed
            NoRoutesFound: If Mapbox answered without any usable route
        """
        params = {
            'alternatives': 'true',
            'geometries': 'geojson',
            'overview': 'full',
            'steps': 'false',
        }
        data = self._request_directions([start, end], vehicle_type, params)
        routes = self.parse_directions_response(data, vehicle_type, id_prefix='route')
        logger.info(f"Mapbox returned {len(routes)} candidate route(s) for {vehicle_type.value}")
        return routes

    def get_candidate_routes_via(
        self,
        start: RoutePoint,
        end: RoutePoint,
        waypoints: Sequence[RoutePoint],
        vehicle_type: VehicleType = VehicleType.DRIVING
    ) -> List[CandidateRoute]:
        """
        Request a single route forced through ``waypoints`` (detour candidate).

        Raises:
            Same as get_candidate_routes
        """
        params = {
            'geometries': 'geojson',
            'overview': 'full',
            'steps': 'false',
        }
        data = self._request_directions([start, *waypoints, end], vehicle_type, params)
        return self.parse_directions_response(data, vehicle_type, id_prefix='detour')

    def calculate_candidate_routes(
        self,
        start: RoutePoint,
        end: RoutePoint,
        vehicle_type: VehicleType = VehicleType.DRIVING,
        hazard_zones: Iterable[HazardZone] = ()
    ) -> List[CandidateRoute]:
        """
        Direct routes plus, when high-risk zones sit on the direct line, one
        avoidance detour. Near-duplicates are removed, first occurrence kept.

        A failed detour request is logged and skipped; the direct request
        failing is an error.
        """
        routes = self.get_candidate_routes(start, end, vehicle_type)

        waypoints = self.build_avoidance_waypoints(start, end, hazard_zones)
        if waypoints:
            logger.info(f"Requesting avoidance detour through {len(waypoints)} waypoint(s)")
            try:
                routes.extend(self.get_candidate_routes_via(start, end, waypoints, vehicle_type))
            except (RoutingProviderError, NoRoutesFound) as e:
                logger.warning(f"Avoidance detour unavailable: {e}")

        return self.remove_duplicate_routes(routes)

    def parse_directions_response(
        self,
        data: Dict[str, Any],
        vehicle_type: VehicleType,
        id_prefix: str = 'route'
    ) -> List[CandidateRoute]:
        """
        Convert a Directions API response into CandidateRoutes.

        Mapbox response format:
        {
          "code": "Ok",
          "routes": [
            {"distance": 12345.6, "duration": 987.6,
             "geometry": {"type": "LineString", "coordinates": [[lon, lat], ...]}}
          ]
        }

        Raises:
            NoRoutesFound: If the response holds no routes (code NoRoute etc.)
            RoutingProviderError: If a route is malformed
        """
        if not isinstance(data, dict):
            raise RoutingProviderError("Invalid response from Mapbox API")

        code = data.get('code')
        if code != 'Ok':
            message = data.get('message', code or 'Unknown error')
            if code in ('NoRoute', 'NoSegment'):
                raise NoRoutesFound(f"Mapbox found no route: {message}")
            raise RoutingProviderError(f"Mapbox API error: {message}")

        raw_routes = data.get('routes') or []
        if not raw_routes:
            raise NoRoutesFound("Mapbox returned no routes")

        routes = []
        for i, raw in enumerate(raw_routes, start=1):
            try:
                coordinates = raw['geometry']['coordinates']
                routes.append(CandidateRoute(
                    id=f"{id_prefix}_{i}",
                    polyline=tuple(GeoPoint.from_lonlat(coord) for coord in coordinates),
                    distance_meters=float(raw['distance']),
                    duration_seconds=float(raw['duration']),
                    vehicle_type=vehicle_type,
                ))
            except (KeyError, TypeError, ValueError, InvalidCoordinate) as e:
                logger.error(f"Malformed Mapbox route {i}: {e}")
                raise RoutingProviderError(f"Invalid route in Mapbox response: {e}")

        return routes

    def build_avoidance_waypoints(
        self,
        start: RoutePoint,
        end: RoutePoint,
        hazard_zones: Iterable[HazardZone]
    ) -> List[RoutePoint]:
        """
        Detour waypoints around high/extreme zones that touch the direct line.

        Each waypoint is the midpoint of start-end pushed perpendicular to the
        line by 1.5x the zone radius, on whichever side is farther from the
        zone center. At most three waypoints are returned.
        """
        if (start.lat, start.lon) == (end.lat, end.lon):
            return []

        direct_line = [start.to_geo_point(), end.to_geo_point()]
        waypoints = []

        for zone in hazard_zones:
            if not zone.severity.is_high_risk:
                continue
            if min_distance_to_polyline_km(zone.center, direct_line) > zone.radius_km:
                continue

            waypoint = self._perpendicular_waypoint(start, end, zone)
            if waypoint is not None:
                waypoints.append(waypoint)
            if len(waypoints) >= self.MAX_AVOIDANCE_WAYPOINTS:
                break

        return waypoints

    def remove_duplicate_routes(self, routes: Iterable[CandidateRoute]) -> List[CandidateRoute]:
        """Drop routes within 1 km and 2 minutes of an earlier route."""
        unique: List[CandidateRoute] = []
        for route in routes:
            is_duplicate = any(
                abs(existing.distance_meters - route.distance_meters) < self.DUPLICATE_DISTANCE_METERS
                and abs(existing.duration_seconds - route.duration_seconds) < self.DUPLICATE_DURATION_SECONDS
                for existing in unique
            )
            if is_duplicate:
                logger.debug(f"Dropping near-duplicate route {route.id}")
            else:
                unique.append(route)
        return unique

    def test_connection(self) -> Dict[str, Any]:
        """
        Probe the API with a short Kuala Lumpur route.

        Returns:
            {"success": bool, "message": str}
        """
        try:
            routes = self.get_candidate_routes(self.TEST_START, self.TEST_END)
        except (MissingCredentialsError, RoutingProviderError, NoRoutesFound) as e:
            return {'success': False, 'message': f"Mapbox Routing API connection failed: {e}"}

        route = routes[0]
        return {
            'success': True,
            'message': (
                f"Mapbox Routing API connected successfully. Test route: "
                f"{route.distance_meters / 1000:.1f}km, {round(route.duration_seconds / 60)} minutes"
            ),
        }

    # ========== Private Helper Methods ==========

    def _request_directions(
        self,
        points: Sequence[RoutePoint],
        vehicle_type: VehicleType,
        params: Dict[str, str]
    ) -> Dict[str, Any]:
        if not self.enabled:
            raise MissingCredentialsError("Mapbox access token not configured")

        coordinates = ';'.join(f"{point.lon},{point.lat}" for point in points)
        url = f"{self.MAPBOX_BASE_URL}/{vehicle_type.value}/{coordinates}"

        try:
            response = requests.get(
                url,
                params={**params, 'access_token': self.access_token},
                timeout=self.MAPBOX_TIMEOUT_SECONDS
            )
        except requests.exceptions.Timeout:
            logger.error("Mapbox API request timed out")
            raise RoutingProviderError("Mapbox API request timed out")
        except requests.exceptions.RequestException as e:
            # Exception text carries the request URL, access token included
            logger.error(f"Mapbox API request failed: {type(e).__name__}")
            raise RoutingProviderError(f"Mapbox API request failed: {type(e).__name__}")

        try:
            data = response.json()
        except ValueError:
            logger.error(f"Unparseable Mapbox response ({response.status_code}): {response.text[:500]}")
            raise RoutingProviderError(f"Invalid response from Mapbox API (HTTP {response.status_code})")

        # Mapbox reports NoRoute with HTTP 200 but InvalidInput/auth errors with 4xx
        if response.status_code == 401:
            raise MissingCredentialsError("Mapbox rejected the access token")
        if not isinstance(data, dict):
            logger.error(f"Mapbox returned {type(data).__name__} (HTTP {response.status_code}), expected an object")
            raise RoutingProviderError(f"Invalid response from Mapbox API (HTTP {response.status_code})")

        if response.status_code >= 400 and data.get('code') not in ('NoRoute', 'NoSegment'):
            message = data.get('message', f"HTTP {response.status_code}")
            logger.error(f"Mapbox API error: {message}")
            raise RoutingProviderError(f"Mapbox API error: {message}")

        return data

    def _perpendicular_waypoint(
        self,
        start: RoutePoint,
        end: RoutePoint,
        zone: HazardZone
    ) -> Optional[RoutePoint]:
        mid_lat = (start.lat + end.lat) / 2
        mid_lon = (start.lon + end.lon) / 2

        # Work in km so the offset is the same on both axes
        cos_lat = max(math.cos(math.radians(mid_lat)), 1e-6)
        dy = (end.lat - start.lat) * self.KM_PER_DEGREE
        dx = (end.lon - start.lon) * self.KM_PER_DEGREE * cos_lat
        length = math.hypot(dx, dy)
        if length == 0:
            return None

        offset_km = zone.radius_km * self.AVOIDANCE_RADIUS_MULTIPLIER
        offset_lat = (dx / length) * offset_km / self.KM_PER_DEGREE
        offset_lon = (-dy / length) * offset_km / (self.KM_PER_DEGREE * cos_lat)

        options = [
            (mid_lat + offset_lat, mid_lon + offset_lon),
            (mid_lat - offset_lat, mid_lon - offset_lon),
        ]
        lat, lon = max(
            options,
            key=lambda option: haversine_distance(option[0], option[1], zone.center.lat, zone.center.lon)
        )
        return RoutePoint(lat=lat, lon=lon, name=f"Avoidance point for {zone.display_name}")
