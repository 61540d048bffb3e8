"""
Route Scorer for Disaster-Aware Navigation

Walks one candidate route against the hazard index and produces a
RouteAssessment: which hazard zones the route crosses or passes close to,
a 0-100 safety score, the overall risk level, and user-facing warnings.

Scoring:
- Start at 100 points
- Every hazard zone the route physically enters costs a severity-weighted
  penalty, scaled by the zone's confidence and by how deep the route cuts
  into it (1 - distance/radius), plus a flat encounter penalty
- Zones that are only nearby (within the proximity buffer) cost nothing but
  are reported so the user can monitor them
- The result is clamped to [0, 100]
"""

import logging
from typing import List

from services.hazard_index import HazardIndex
from services.route_models import (
    CandidateRoute,
    HazardZone,
    RouteAssessment,
    RouteRiskDetail,
    Severity,
)
from utils.errors import EmptyPolyline

logger = logging.getLogger(__name__)


class RouteScorer:
    """
    Scores candidate routes against a HazardIndex.

    Stateless apart from its configuration, so one instance can score many
    routes concurrently; every assessment is built from local accumulators.
    """

    # Corridor beyond a zone's radius that still triggers a proximity detail
    PROXIMITY_BUFFER_KM = 2.0

    # Points deducted for crossing the center of a fully-confident zone
    SEVERITY_PENALTIES = {
        Severity.LOW: 5,
        Severity.MEDIUM: 15,
        Severity.HIGH: 30,
        Severity.EXTREME: 50,
    }

    # Flat cost of entering any hazard footprint, however briefly
    ENCOUNTER_PENALTY = 5

    MAX_SCORE = 100
    MIN_SCORE = 0

    RECOMMENDATION_AVOID = "Avoid if possible, seek alternate transportation"
    RECOMMENDATION_CAUTION = "Proceed with caution"
    RECOMMENDATION_LOW = "Exercise caution in this area"
    RECOMMENDATION_MONITOR = "Monitor conditions near this area"

    ALL_CLEAR_WARNING = "Route avoids all known risk areas"

    def __init__(self, proximity_buffer_km: float = PROXIMITY_BUFFER_KM):
        self.proximity_buffer_km = proximity_buffer_km

    def score(self, route: CandidateRoute, hazard_index: HazardIndex) -> RouteAssessment:
        """
        Assess one route.

        Args:
            route: Candidate route from the routing provider
            hazard_index: Hazard zones for this request

        Returns:
            RouteAssessment with details ordered closest first

        Raises:
            EmptyPolyline: If the route has fewer than 2 points
        """
        if len(route.polyline) < 2:
            raise EmptyPolyline(
                f"Route {route.id} has {len(route.polyline)} point(s); at least 2 are required"
            )

        # Steps 1-2: nearby zones, closest first
        matches = hazard_index.near(route.polyline, buffer_km=self.proximity_buffer_km)
        details = [self._build_detail(zone, distance) for zone, distance in matches]
        encountered = [detail for detail in details if detail.encountered]

        # Step 3: encountered / structurally avoided counts
        risk_areas_avoided = sum(
            1 for zone in hazard_index.high_risk_zones()
            if not any(detail.zone is zone for detail in encountered)
        )

        # Step 4: overall risk level is the worst encountered severity
        risk_level = max((detail.zone.severity for detail in encountered), default=Severity.LOW)

        # Step 5: safety score
        safety_score = self._calculate_safety_score(encountered)

        # Step 6: warnings
        warnings = self._build_warnings(encountered)

        logger.debug(
            f"Route {route.id}: score={safety_score}, risk={risk_level.value}, "
            f"encountered={len(encountered)}, nearby={len(details) - len(encountered)}, "
            f"avoided={risk_areas_avoided}"
        )

        return RouteAssessment(
            route=route,
            safety_score=safety_score,
            risk_level=risk_level,
            risk_details=tuple(details),
            risk_areas_encountered=len(encountered),
            risk_areas_avoided=risk_areas_avoided,
            warnings=tuple(warnings),
        )

    # ========== Private Helper Methods ==========

    def _build_detail(self, zone: HazardZone, distance_km: float) -> RouteRiskDetail:
        encountered = distance_km <= zone.radius_km
        return RouteRiskDetail(
            zone=zone,
            min_distance_km=distance_km,
            encountered=encountered,
            recommendation=self._recommendation(zone.severity, encountered),
        )

    def _recommendation(self, severity: Severity, encountered: bool) -> str:
        if not encountered:
            return self.RECOMMENDATION_MONITOR
        if severity.is_high_risk:
            return self.RECOMMENDATION_AVOID
        if severity == Severity.MEDIUM:
            return self.RECOMMENDATION_CAUTION
        return self.RECOMMENDATION_LOW

    def _encounter_penalty(self, detail: RouteRiskDetail) -> float:
        """Penalty for one encountered zone; deeper, surer and more severe costs more."""
        zone = detail.zone
        proximity = max(0.0, 1.0 - detail.min_distance_km / zone.radius_km)
        weighted = self.SEVERITY_PENALTIES[zone.severity] * zone.confidence * proximity
        return weighted + self.ENCOUNTER_PENALTY

    def _calculate_safety_score(self, encountered: List[RouteRiskDetail]) -> int:
        score = float(self.MAX_SCORE)
        for detail in encountered:
            score -= self._encounter_penalty(detail)

        score = max(float(self.MIN_SCORE), min(float(self.MAX_SCORE), score))
        return int(round(score))

    def _build_warnings(self, encountered: List[RouteRiskDetail]) -> List[str]:
        if not encountered:
            return [self.ALL_CLEAR_WARNING]

        # Highest severity first; sorted() is stable so equal severities stay closest first
        ordered = sorted(encountered, key=lambda detail: -detail.zone.severity.rank)
        return [self._format_warning(detail) for detail in ordered]

    @staticmethod
    def _format_warning(detail: RouteRiskDetail) -> str:
        zone = detail.zone
        return (
            f"{zone.severity.value.capitalize()} {zone.hazard_type} risk near "
            f"{zone.display_name}, consider alternate route"
        )
