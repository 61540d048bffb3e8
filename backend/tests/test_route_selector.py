"""
Tests for RouteSelector: policy ordering, tie-breaks and rationale text
"""
import pytest

from services.route_models import RouteAssessment, RoutingPolicy, Severity, VehicleType
from services.route_selector import RouteSelector
from tests.route_fixtures import make_route
from utils.errors import NoRoutesAvailable


def assessment(route_id, score=100, duration=600.0, distance=10000.0,
               risk_level=Severity.LOW, avoided=0, encountered=0):
    return RouteAssessment(
        route=make_route(route_id, duration=duration, distance=distance),
        safety_score=score,
        risk_level=risk_level,
        risk_details=(),
        risk_areas_encountered=encountered,
        risk_areas_avoided=avoided,
        warnings=(),
    )


@pytest.fixture
def selector():
    return RouteSelector()


class TestSelection:

    def test_empty_list_rejected(self, selector):
        with pytest.raises(NoRoutesAvailable):
            selector.select([], avoid_high_risk=True)

    def test_avoidance_prefers_safety(self, selector):
        fast_risky = assessment('A', score=68, duration=600, risk_level=Severity.HIGH, encountered=1)
        slow_safe = assessment('B', score=100, duration=900, avoided=1)
        result = selector.select([fast_risky, slow_safe], avoid_high_risk=True)
        assert result.chosen.route.id == 'B'

    def test_no_avoidance_prefers_speed(self, selector):
        fast_risky = assessment('A', score=40, duration=600, risk_level=Severity.EXTREME)
        slow_safe = assessment('B', score=100, duration=900)
        result = selector.select([fast_risky, slow_safe], avoid_high_risk=False)
        assert result.chosen.route.id == 'A'

    def test_equal_safety_breaks_tie_on_duration(self, selector):
        slow = assessment('slow', score=90, duration=900)
        fast = assessment('fast', score=90, duration=700)
        assert selector.select([slow, fast], avoid_high_risk=True).chosen.route.id == 'fast'

    def test_equal_duration_breaks_tie_on_distance(self, selector):
        long_route = assessment('long', duration=600, distance=12000)
        short_route = assessment('short', duration=600, distance=9000)
        assert selector.select([long_route, short_route], avoid_high_risk=False).chosen.route.id == 'short'

    @pytest.mark.parametrize('avoid_high_risk', [True, False])
    def test_full_tie_resolves_to_earliest_input(self, selector, avoid_high_risk):
        routes = [assessment('first', score=80), assessment('second', score=80), assessment('third', score=80)]
        result = selector.select(routes, avoid_high_risk=avoid_high_risk)
        assert result.chosen.route.id == 'first'
        assert [a.route.id for a in result.ranked] == ['first', 'second', 'third']

    def test_ranked_and_input_order(self, selector):
        routes = [assessment('A', score=50), assessment('B', score=95), assessment('C', score=75)]
        result = selector.select(routes, avoid_high_risk=True)
        assert [a.route.id for a in result.ranked] == ['B', 'C', 'A']
        assert [a.route.id for a in result.assessments] == ['A', 'B', 'C']

    def test_policy_defaults_from_flag(self, selector):
        result = selector.select([assessment('A')], avoid_high_risk=False)
        assert result.policy == RoutingPolicy(avoid_high_risk=False)

    def test_explicit_policy_echoed(self, selector):
        policy = RoutingPolicy(avoid_high_risk=True, vehicle_type=VehicleType.WALKING)
        result = selector.select([assessment('A')], avoid_high_risk=True, policy=policy)
        assert result.policy is policy

    def test_to_dict(self, selector):
        result = selector.select([assessment('A', score=50), assessment('B', score=95)], avoid_high_risk=True)
        data = result.to_dict()
        assert data['chosen_route_id'] == 'B'
        assert data['ranked_route_ids'] == ['B', 'A']
        assert [route['route']['id'] for route in data['routes']] == ['A', 'B']
        assert data['policy'] == {'avoid_high_risk': True, 'vehicle_type': 'driving'}


class TestRationale:

    def test_safe_route(self, selector):
        text = selector.build_rationale(assessment('A', score=80))
        assert text == 'Automatically selected the safest available route'

    def test_least_risky_without_avoidance(self, selector):
        text = selector.build_rationale(assessment('A', score=79, risk_level=Severity.MEDIUM))
        assert text == 'Selected the least risky option available.'

    def test_least_risky_with_avoided_areas(self, selector):
        text = selector.build_rationale(assessment('A', score=60, risk_level=Severity.MEDIUM, avoided=2))
        assert text == 'Selected the least risky option available and avoided 2 high-risk area(s).'

    def test_caution_when_high_risk_remains(self, selector):
        text = selector.build_rationale(assessment('A', score=55, risk_level=Severity.HIGH, avoided=1))
        assert text == (
            'Selected the least risky option available and avoided 1 high-risk area(s). '
            'Caution: this route still passes through high risk areas, consider alternative transportation.'
        )

    def test_caution_for_extreme(self, selector):
        text = selector.build_rationale(assessment('A', score=10, risk_level=Severity.EXTREME))
        assert text.endswith('passes through extreme risk areas, consider alternative transportation.')

    def test_rationale_in_result(self, selector):
        result = selector.select([assessment('A', score=92)], avoid_high_risk=True)
        assert result.rationale == 'Automatically selected the safest available route'
