"""
Route Evaluation Service

Coordinates one scoring request: builds a HazardIndex from the supplied hazard
zones, scores every candidate route (in parallel), and hands the assessments,
still in the original route order, to the RouteSelector.

The service is a pure function of its arguments. It never fetches routes or
hazard data and never touches global state; callers resolve those through the
routing, weather and hazard assessment services first.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence

from services.hazard_index import HazardIndex
from services.route_models import (
    CandidateRoute,
    HazardZone,
    RouteAssessment,
    RoutingPolicy,
    SelectionResult,
)
from services.route_scorer import RouteScorer
from services.route_selector import RouteSelector
from utils.errors import EvaluationCancelled, NoRoutesAvailable

logger = logging.getLogger(__name__)


class RouteEvaluationService:
    """
    Scores candidate routes against hazard zones and selects the best one.

    Usage:
        service = RouteEvaluationService()
        result = service.evaluate(routes, hazard_zones, RoutingPolicy(avoid_high_risk=True))
        print(result.chosen.route.id, result.rationale)
    """

    # Routing providers return a handful of alternatives
    DEFAULT_MAX_WORKERS = 5

    def __init__(
        self,
        scorer: Optional[RouteScorer] = None,
        selector: Optional[RouteSelector] = None,
        max_workers: int = DEFAULT_MAX_WORKERS
    ):
        self.scorer = scorer or RouteScorer()
        self.selector = selector or RouteSelector()
        self.max_workers = max(1, int(max_workers))

    def evaluate(
        self,
        routes: Sequence[CandidateRoute],
        hazard_zones: Iterable[HazardZone],
        policy: Optional[RoutingPolicy] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> SelectionResult:
        """
        Score every route and select one under ``policy``.

        Args:
            routes: Candidate routes from the routing provider
            hazard_zones: Current hazard zones (may be empty)
            policy: Avoidance policy; defaults to avoiding high risk, driving
            cancel_event: Set by the caller to abandon the request; checked
                before each route is scored and between collected results

        Returns:
            SelectionResult whose ``assessments`` follow the input route order

        Raises:
            NoRoutesAvailable: If ``routes`` is empty
            EmptyPolyline: If a route has fewer than 2 points
            EvaluationCancelled: If ``cancel_event`` was set before all routes were scored
        """
        routes = list(routes)
        if not routes:
            raise NoRoutesAvailable("No candidate routes to evaluate")

        policy = policy or RoutingPolicy()
        hazard_index = HazardIndex(hazard_zones)

        if not len(hazard_index):
            logger.info("No hazard zones supplied - routes are scored against an empty hazard set")

        mismatched = [route.id for route in routes if route.vehicle_type != policy.vehicle_type]
        if mismatched:
            logger.warning(
                f"Routes {mismatched} were computed for a different vehicle type "
                f"than the requested {policy.vehicle_type.value}"
            )

        logger.info(
            f"Evaluating {len(routes)} routes against {len(hazard_index)} hazard zones "
            f"(avoid_high_risk={policy.avoid_high_risk})"
        )

        assessments = self._score_routes(routes, hazard_index, cancel_event)
        return self.selector.select(assessments, policy.avoid_high_risk, policy=policy)

    # ========== Private Helper Methods ==========

    def _score_routes(
        self,
        routes: List[CandidateRoute],
        hazard_index: HazardIndex,
        cancel_event: Optional[threading.Event]
    ) -> List[RouteAssessment]:
        self._check_cancelled(cancel_event, scored=0, total=len(routes))

        workers = min(self.max_workers, len(routes))
        if workers == 1:
            assessments = []
            for route in routes:
                self._check_cancelled(cancel_event, scored=len(assessments), total=len(routes))
                assessments.append(self.scorer.score(route, hazard_index))
            return assessments

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='route-scorer') as executor:
            futures = [
                executor.submit(self._score_one, route, hazard_index, cancel_event)
                for route in routes
            ]
            assessments = []
            try:
                # Collect in submission order so ties resolve by input position
                for future in futures:
                    self._check_cancelled(cancel_event, scored=len(assessments), total=len(routes))
                    assessments.append(future.result())
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

        return assessments

    def _score_one(
        self,
        route: CandidateRoute,
        hazard_index: HazardIndex,
        cancel_event: Optional[threading.Event]
    ) -> RouteAssessment:
        if cancel_event is not None and cancel_event.is_set():
            raise EvaluationCancelled(f"Evaluation cancelled before scoring route {route.id}")
        return self.scorer.score(route, hazard_index)

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event], scored: int, total: int) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Route evaluation cancelled after {scored}/{total} routes")
            raise EvaluationCancelled(f"Evaluation cancelled after {scored} of {total} routes")
