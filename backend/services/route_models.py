"""
Data model for risk-aware route scoring.

Value types are frozen dataclasses: hazard zones and candidate routes are
read-only inputs for the lifetime of one scoring request, and assessments are
derived entirely from them. ``from_dict`` parsers validate request payloads
and raise the typed errors from ``utils.errors``; ``to_dict`` produces
JSON-safe dictionaries for the API (distances leave the engine in meters).
"""
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import Any, Dict, List, Optional, Tuple

from utils.distance import km_to_meters
from utils.errors import InvalidCoordinate, InvalidHazardZone
from utils.validators import CoordinateValidator, HazardZoneValidator, RouteValidator


@total_ordering
class Severity(Enum):
    """Hazard severity with a total order: low < medium < high < extreme."""

    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    EXTREME = 'extreme'

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    @property
    def is_high_risk(self) -> bool:
        return self >= Severity.HIGH

    @classmethod
    def parse(cls, value) -> 'Severity':
        """
        Parse a severity name (case-insensitive, feed aliases accepted).

        Raises:
            ValueError: If the value is not a known severity
        """
        if isinstance(value, cls):
            return value
        normalized = HazardZoneValidator.normalize_severity(value)
        if normalized is None:
            raise ValueError(f"Unknown severity: {value!r}")
        return cls(normalized)


class VehicleType(Enum):
    DRIVING = 'driving'
    WALKING = 'walking'
    CYCLING = 'cycling'

    @classmethod
    def parse(cls, value) -> 'VehicleType':
        if isinstance(value, cls):
            return value
        if not RouteValidator.validate_vehicle_type(value):
            raise ValueError(f"Unknown vehicle type: {value!r}")
        return cls(value.lower())


@dataclass(frozen=True)
class GeoPoint:
    """WGS-84 position in decimal degrees."""

    lat: float
    lon: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GeoPoint':
        """Parse ``{"lat": ..., "lon": ...}``, raising InvalidCoordinate on bad input."""
        if not CoordinateValidator.validate_coordinate_dict(data):
            raise InvalidCoordinate(f"Invalid coordinates: {data!r}")
        return cls(lat=float(data['lat']), lon=float(data['lon']))

    @classmethod
    def from_lonlat(cls, coord) -> 'GeoPoint':
        """Parse a GeoJSON ``[lon, lat]`` pair."""
        try:
            lon, lat = coord[0], coord[1]
        except (TypeError, IndexError, KeyError):
            raise InvalidCoordinate(f"Invalid [lon, lat] pair: {coord!r}")
        if not CoordinateValidator.validate_coordinates(lat, lon):
            raise InvalidCoordinate(f"Invalid coordinates: ({lat}, {lon})")
        return cls(lat=float(lat), lon=float(lon))

    @classmethod
    def parse(cls, value) -> 'GeoPoint':
        """Accept either a lat/lon dict or a GeoJSON [lon, lat] pair."""
        if isinstance(value, dict):
            return cls.from_dict(value)
        return cls.from_lonlat(value)

    def to_dict(self) -> Dict[str, float]:
        return {'lat': self.lat, 'lon': self.lon}


@dataclass(frozen=True)
class RoutePoint:
    """Start or end anchor of a trip."""

    lat: float
    lon: float
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoutePoint':
        if not CoordinateValidator.validate_coordinate_dict(data):
            raise InvalidCoordinate(f"Invalid coordinates: {data!r}")
        return cls(lat=float(data['lat']), lon=float(data['lon']), name=data.get('name'))

    def to_geo_point(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lon)

    def to_dict(self) -> Dict[str, Any]:
        return {'lat': self.lat, 'lon': self.lon, 'name': self.name}


@dataclass(frozen=True)
class HazardZone:
    """Circular disaster-risk area produced by the hazard assessment step."""

    id: str
    center: GeoPoint
    radius_km: float
    severity: Severity
    confidence: float = 1.0
    label: str = ''
    hazard_type: str = 'weather'

    def __post_init__(self):
        if not isinstance(self.severity, Severity):
            raise InvalidHazardZone(f"Hazard zone {self.id}: severity must be a Severity")
        is_valid, error_msg = HazardZoneValidator.validate_radius(self.radius_km)
        if not is_valid:
            raise InvalidHazardZone(f"Hazard zone {self.id}: {error_msg}")
        is_valid, error_msg = HazardZoneValidator.validate_confidence(self.confidence)
        if not is_valid:
            raise InvalidHazardZone(f"Hazard zone {self.id}: {error_msg}")

    @property
    def display_name(self) -> str:
        return self.label or self.id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HazardZone':
        """
        Parse a hazard zone payload.

        Raises:
            InvalidHazardZone: Missing fields, bad radius, severity or confidence
            InvalidCoordinate: Bad center coordinates
        """
        is_valid, error_msg = HazardZoneValidator.validate_zone_data(data)
        if not is_valid:
            raise InvalidHazardZone(error_msg)

        return cls(
            id=str(data['id']),
            center=GeoPoint.parse(data['center']),
            radius_km=float(data['radius_km']),
            severity=Severity.parse(data['severity']),
            confidence=float(data.get('confidence', 1.0)),
            label=str(data.get('label') or ''),
            hazard_type=str(data.get('hazard_type') or 'weather'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'center': self.center.to_dict(),
            'radius_km': self.radius_km,
            'radius_meters': km_to_meters(self.radius_km),
            'severity': self.severity.value,
            'confidence': self.confidence,
            'label': self.label,
            'hazard_type': self.hazard_type,
        }


@dataclass(frozen=True)
class CandidateRoute:
    """Route geometry and travel summary supplied by the routing provider."""

    id: str
    polyline: Tuple[GeoPoint, ...]
    distance_meters: float = 0.0
    duration_seconds: float = 0.0
    vehicle_type: VehicleType = VehicleType.DRIVING

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CandidateRoute':
        """
        Parse a candidate route payload.

        Polyline points may be ``{"lat", "lon"}`` dicts or GeoJSON
        ``[lon, lat]`` pairs. Point count is checked by the scorer.

        Raises:
            ValueError: Missing fields or bad distance/duration/vehicle type
            InvalidCoordinate: Bad polyline point
        """
        is_valid, error_msg = RouteValidator.validate_route_data(data)
        if not is_valid:
            raise ValueError(error_msg)

        return cls(
            id=str(data['id']),
            polyline=tuple(GeoPoint.parse(point) for point in data['polyline']),
            distance_meters=float(data.get('distance_meters', 0.0)),
            duration_seconds=float(data.get('duration_seconds', 0.0)),
            vehicle_type=VehicleType.parse(data.get('vehicle_type', 'driving')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'distance_meters': self.distance_meters,
            'duration_seconds': self.duration_seconds,
            'estimated_time_minutes': round(self.duration_seconds / 60),
            'vehicle_type': self.vehicle_type.value,
            'geometry': [[point.lon, point.lat] for point in self.polyline],
        }


@dataclass(frozen=True)
class RouteRiskDetail:
    """One hazard zone's relationship to one route."""

    zone: HazardZone
    min_distance_km: float
    encountered: bool
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'zone': self.zone.to_dict(),
            'location': self.zone.display_name,
            'risk_level': self.zone.severity.value,
            'min_distance_km': self.min_distance_km,
            'min_distance_meters': km_to_meters(self.min_distance_km),
            'encountered': self.encountered,
            'recommendation': self.recommendation,
        }


@dataclass(frozen=True)
class RouteAssessment:
    """Scored view of one candidate route against the current hazard zones."""

    route: CandidateRoute
    safety_score: int
    risk_level: Severity
    risk_details: Tuple[RouteRiskDetail, ...]
    risk_areas_encountered: int
    risk_areas_avoided: int
    warnings: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'route': self.route.to_dict(),
            'safety_score': self.safety_score,
            'risk_level': self.risk_level.value,
            'risk_details': [detail.to_dict() for detail in self.risk_details],
            'risk_areas_encountered': self.risk_areas_encountered,
            'risk_areas_avoided': self.risk_areas_avoided,
            'warnings': list(self.warnings),
        }


@dataclass(frozen=True)
class RoutingPolicy:
    """Caller's choice between optimizing for time/distance and for safety."""

    avoid_high_risk: bool = True
    vehicle_type: VehicleType = VehicleType.DRIVING

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'RoutingPolicy':
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError('policy must be an object')
        avoid = data.get('avoid_high_risk', True)
        if not isinstance(avoid, bool):
            raise ValueError('avoid_high_risk must be a boolean')
        return cls(
            avoid_high_risk=avoid,
            vehicle_type=VehicleType.parse(data.get('vehicle_type', 'driving')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'avoid_high_risk': self.avoid_high_risk,
            'vehicle_type': self.vehicle_type.value,
        }


@dataclass(frozen=True)
class SelectionResult:
    """
    Winning route plus the explanation shown to the user.

    ``assessments`` keeps the original route order; ``ranked`` is the same
    set ordered best-first under the policy, for listing alternatives.
    """

    chosen: RouteAssessment
    rationale: str
    policy: RoutingPolicy
    assessments: Tuple[RouteAssessment, ...] = field(default_factory=tuple)
    ranked: Tuple[RouteAssessment, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        routes: List[Dict[str, Any]] = [assessment.to_dict() for assessment in self.assessments]
        return {
            'chosen_route_id': self.chosen.route.id,
            'chosen': self.chosen.to_dict(),
            'rationale': self.rationale,
            'policy': self.policy.to_dict(),
            'routes': routes,
            'ranked_route_ids': [assessment.route.id for assessment in self.ranked],
        }
