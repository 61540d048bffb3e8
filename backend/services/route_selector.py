"""
Route selection: picks the winning route from scored alternatives and explains why.
"""
import logging
from typing import Sequence, Tuple

from services.route_models import RouteAssessment, RoutingPolicy, SelectionResult
from utils.errors import NoRoutesAvailable

logger = logging.getLogger(__name__)


class RouteSelector:
    """
    Deterministic route selection.

    - Avoidance off: fastest route, then shortest, then earliest in input order
    - Avoidance on: highest safety score, then fastest, shortest, earliest
    """

    SAFE_SCORE_THRESHOLD = 80

    RATIONALE_SAFEST = "Automatically selected the safest available route"
    RATIONALE_LEAST_RISKY = "Selected the least risky option available"

    def select(
        self,
        assessments: Sequence[RouteAssessment],
        avoid_high_risk: bool,
        policy: RoutingPolicy = None
    ) -> SelectionResult:
        """
        Choose one route.

        Args:
            assessments: Scored routes in the order the routing provider returned them
            avoid_high_risk: Optimize for safety score instead of travel time
            policy: Full policy to echo back in the result (defaults to one
                built from ``avoid_high_risk``)

        Returns:
            SelectionResult with the chosen route, rationale and the full ranking

        Raises:
            NoRoutesAvailable: If ``assessments`` is empty
        """
        if not assessments:
            raise NoRoutesAvailable("No routes available to select from")

        if policy is None:
            policy = RoutingPolicy(avoid_high_risk=avoid_high_risk)

        indexed = list(enumerate(assessments))
        sort_key = self._safety_key if avoid_high_risk else self._speed_key
        ranked = [assessment for _, assessment in sorted(indexed, key=sort_key)]
        chosen = ranked[0]

        rationale = self.build_rationale(chosen)
        logger.info(
            f"Selected route {chosen.route.id} (avoid_high_risk={avoid_high_risk}, "
            f"safety={chosen.safety_score}, duration={chosen.route.duration_seconds:.0f}s) "
            f"from {len(assessments)} candidates"
        )

        return SelectionResult(
            chosen=chosen,
            rationale=rationale,
            policy=policy,
            assessments=tuple(assessments),
            ranked=tuple(ranked),
        )

    def build_rationale(self, chosen: RouteAssessment) -> str:
        """
        Explain the choice in user-facing terms.

        Examples:
            score 92, nothing encountered ->
                "Automatically selected the safest available route"
            score 55, 2 avoided, high risk ->
                "Selected the least risky option available and avoided 2
                high-risk area(s). Caution: this route still passes through
                high risk areas, consider alternative transportation."
        """
        if chosen.safety_score >= self.SAFE_SCORE_THRESHOLD:
            return self.RATIONALE_SAFEST

        rationale = self.RATIONALE_LEAST_RISKY
        if chosen.risk_areas_avoided > 0:
            rationale += f" and avoided {chosen.risk_areas_avoided} high-risk area(s)"
        rationale += "."

        if chosen.risk_level.is_high_risk:
            rationale += (
                f" Caution: this route still passes through {chosen.risk_level.value} "
                f"risk areas, consider alternative transportation."
            )
        return rationale

    # ========== Private Helper Methods ==========

    @staticmethod
    def _speed_key(item: Tuple[int, RouteAssessment]):
        index, assessment = item
        return (assessment.route.duration_seconds, assessment.route.distance_meters, index)

    @staticmethod
    def _safety_key(item: Tuple[int, RouteAssessment]):
        index, assessment = item
        return (
            -assessment.safety_score,
            assessment.route.duration_seconds,
            assessment.route.distance_meters,
            index,
        )
