"""
Hazard index: answers "which hazard zones lie near this route" queries.
"""
import logging
from typing import Iterable, List, Sequence, Tuple

from services.route_models import HazardZone
from utils.geo import min_distance_to_polyline_km

logger = logging.getLogger(__name__)


class HazardIndex:
    """
    Read-only set of hazard zones for one scoring request.

    Holds no state beyond the zone tuple, so concurrent ``near`` queries from
    several routes are safe. Duplicate zones (same id or same location) are
    kept as given; each one produces its own match.
    """

    def __init__(self, zones: Iterable[HazardZone] = ()):
        self._zones: Tuple[HazardZone, ...] = tuple(zones)
        logger.debug(f"HazardIndex built with {len(self._zones)} zones")

    @property
    def zones(self) -> Tuple[HazardZone, ...]:
        return self._zones

    def __len__(self) -> int:
        return len(self._zones)

    def __iter__(self):
        return iter(self._zones)

    def high_risk_zones(self) -> List[HazardZone]:
        """Zones whose severity is high or extreme."""
        return [zone for zone in self._zones if zone.severity.is_high_risk]

    def near(self, line: Sequence, buffer_km: float) -> List[Tuple[HazardZone, float]]:
        """
        Find zones within ``radius_km + buffer_km`` of a polyline.

        Args:
            line: Ordered route points (objects with lat/lon), at least 2
            buffer_km: Corridor width beyond each zone's radius that still
                counts as "near" (proximity warnings, not encounters)

        Returns:
            List of (zone, min_distance_km), closest first. Zones at equal
            distance keep their input order.

        Raises:
            DegenerateRoute: If ``line`` has fewer than 2 points
        """
        matches = []
        for zone in self._zones:
            distance = min_distance_to_polyline_km(zone.center, line)
            if distance <= zone.radius_km + buffer_km:
                matches.append((zone, distance))

        matches.sort(key=lambda match: match[1])
        return matches
