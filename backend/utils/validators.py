"""
Validation utilities for route safety requests.

Provides centralized validation logic for:
- Coordinate ranges (latitude/longitude)
- Hazard zone payloads (radius, severity, confidence)
- Candidate route payloads (polyline, distance, duration, vehicle type)

Validators return ``(is_valid, error_message)`` tuples; the model parsers in
``services.route_models`` turn failures into typed errors.
"""
import math
from typing import Dict, Tuple, Optional

from utils.geo import is_valid_coordinates


class CoordinateValidator:
    """Validator for geographic coordinates."""

    @staticmethod
    def validate_coordinates(lat: float, lon: float) -> bool:
        """
        Validate latitude and longitude ranges (NaN and infinity rejected).

        Examples:
            >>> CoordinateValidator.validate_coordinates(3.1390, 101.6869)
            True
            >>> CoordinateValidator.validate_coordinates(91, 0)  # Invalid latitude
            False
        """
        return is_valid_coordinates(lat, lon)

    @staticmethod
    def validate_coordinate_dict(coord: Dict[str, float]) -> bool:
        """
        Validate coordinate dictionary with 'lat' and 'lon' keys.

        Examples:
            >>> CoordinateValidator.validate_coordinate_dict({'lat': 3.1390, 'lon': 101.6869})
            True
            >>> CoordinateValidator.validate_coordinate_dict({'invalid': 'keys'})
            False
        """
        try:
            return CoordinateValidator.validate_coordinates(coord['lat'], coord['lon'])
        except (KeyError, TypeError):
            return False


def _as_finite_number(value) -> Optional[float]:
    """Return ``value`` as a finite float, or None."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


class HazardZoneValidator:
    """Validator for hazard zone payloads."""

    VALID_SEVERITIES = ['low', 'medium', 'high', 'extreme']

    # Severity names used by weather feeds and older reports
    SEVERITY_ALIASES = {
        'minor': 'low',
        'moderate': 'medium',
        'severe': 'high',
        'critical': 'extreme',
    }

    @staticmethod
    def normalize_severity(severity: str) -> Optional[str]:
        """
        Map a severity string to one of VALID_SEVERITIES, or None.

        Examples:
            >>> HazardZoneValidator.normalize_severity('High')
            'high'
            >>> HazardZoneValidator.normalize_severity('critical')
            'extreme'
            >>> HazardZoneValidator.normalize_severity('catastrophic') is None
            True
        """
        if not isinstance(severity, str) or not severity.strip():
            return None
        value = severity.strip().lower()
        value = HazardZoneValidator.SEVERITY_ALIASES.get(value, value)
        return value if value in HazardZoneValidator.VALID_SEVERITIES else None

    @staticmethod
    def validate_radius(radius_km) -> Tuple[bool, Optional[str]]:
        """Radius must be a finite number greater than zero."""
        radius = _as_finite_number(radius_km)
        if radius is None:
            return False, 'radius_km must be a valid number'
        if radius <= 0:
            return False, 'radius_km must be greater than 0'
        return True, None

    @staticmethod
    def validate_confidence(confidence) -> Tuple[bool, Optional[str]]:
        """
        Confidence must lie in [0, 1].

        Examples:
            >>> HazardZoneValidator.validate_confidence(0.9)
            (True, None)
            >>> HazardZoneValidator.validate_confidence(1.5)
            (False, 'confidence must be between 0 and 1')
        """
        value = _as_finite_number(confidence)
        if value is None:
            return False, 'confidence must be a number'
        if not (0 <= value <= 1):
            return False, 'confidence must be between 0 and 1'
        return True, None

    @staticmethod
    def validate_zone_data(data: Dict) -> Tuple[bool, Optional[str]]:
        """
        Validate everything about a hazard zone payload except its center.

        Center coordinates are checked separately so that a bad center can be
        reported as an invalid coordinate rather than an invalid zone.
        """
        if not isinstance(data, dict):
            return False, 'hazard zone must be an object'

        required_fields = ['id', 'center', 'radius_km', 'severity']
        missing_fields = [field for field in required_fields if field not in data]
        if missing_fields:
            return False, f'Missing required fields: {", ".join(missing_fields)}'

        is_valid, error_msg = HazardZoneValidator.validate_radius(data['radius_km'])
        if not is_valid:
            return False, error_msg

        if HazardZoneValidator.normalize_severity(data['severity']) is None:
            valid_severities_str = ', '.join(HazardZoneValidator.VALID_SEVERITIES)
            return False, f'Invalid severity. Must be one of: {valid_severities_str}'

        if 'confidence' in data:
            is_valid, error_msg = HazardZoneValidator.validate_confidence(data['confidence'])
            if not is_valid:
                return False, error_msg

        return True, None


class RouteValidator:
    """Validator for candidate route payloads."""

    VALID_VEHICLE_TYPES = ['driving', 'walking', 'cycling']

    @staticmethod
    def validate_vehicle_type(vehicle_type: str) -> bool:
        """
        Examples:
            >>> RouteValidator.validate_vehicle_type('walking')
            True
            >>> RouteValidator.validate_vehicle_type('flying')
            False
        """
        if not isinstance(vehicle_type, str):
            return False
        return vehicle_type.lower() in RouteValidator.VALID_VEHICLE_TYPES

    @staticmethod
    def validate_route_data(data: Dict) -> Tuple[bool, Optional[str]]:
        """
        Validate the scalar fields of a candidate route payload.

        Polyline point count and coordinates are checked where the polyline is
        parsed, so they can raise the dedicated route/coordinate errors.
        """
        if not isinstance(data, dict):
            return False, 'route must be an object'

        required_fields = ['id', 'polyline']
        missing_fields = [field for field in required_fields if field not in data]
        if missing_fields:
            return False, f'Missing required fields: {", ".join(missing_fields)}'

        if not isinstance(data['polyline'], (list, tuple)):
            return False, 'polyline must be a list of points'

        for field in ('distance_meters', 'duration_seconds'):
            if field in data:
                value = _as_finite_number(data[field])
                if value is None:
                    return False, f'{field} must be a valid number'
                if value < 0:
                    return False, f'{field} must be >= 0'

        if 'vehicle_type' in data and not RouteValidator.validate_vehicle_type(data['vehicle_type']):
            valid_types_str = ', '.join(RouteValidator.VALID_VEHICLE_TYPES)
            return False, f'Invalid vehicle_type. Must be one of: {valid_types_str}'

        return True, None
