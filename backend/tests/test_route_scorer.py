"""
Tests for RouteScorer

Covers the scoring bounds, monotonicity in depth/severity/confidence,
risk level aggregation, recommendations and warning text.
"""
import random

import pytest

from services.hazard_index import HazardIndex
from services.route_models import CandidateRoute, GeoPoint, Severity
from services.route_scorer import RouteScorer
from tests.route_fixtures import make_route, make_zone
from utils.errors import DegenerateRoute, EmptyPolyline


@pytest.fixture
def scorer():
    return RouteScorer()


def score(scorer, route, zones):
    return scorer.score(route, HazardIndex(zones))


class TestScoreBounds:
    """Scores stay within [0, 100]"""

    def test_no_hazards_is_perfect(self, scorer):
        assessment = score(scorer, make_route(), [])
        assert assessment.safety_score == 100
        assert assessment.risk_level == Severity.LOW
        assert assessment.risk_areas_encountered == 0
        assert assessment.risk_areas_avoided == 0
        assert assessment.risk_details == ()
        assert assessment.warnings == ('Route avoids all known risk areas',)

    def test_distant_hazards_ignored(self, scorer):
        zones = [make_zone(severity=Severity.EXTREME, radius_km=5, offset_km=7.1)]
        assessment = score(scorer, make_route(), zones)
        assert assessment.safety_score == 100
        assert assessment.risk_level == Severity.LOW
        assert assessment.risk_areas_encountered == 0
        assert assessment.risk_details == ()

    def test_score_clamped_at_zero(self, scorer):
        zones = [make_zone(f'z{i}', severity=Severity.EXTREME) for i in range(5)]
        assessment = score(scorer, make_route(), zones)
        assert assessment.safety_score == 0
        assert assessment.risk_areas_encountered == 5

    def test_score_is_an_int(self, scorer):
        assessment = score(scorer, make_route(), [make_zone(confidence=0.33, offset_km=1.7)])
        assert isinstance(assessment.safety_score, int)

    def test_random_inputs_stay_in_range(self, scorer):
        rng = random.Random(20240601)
        severities = list(Severity)
        for _ in range(50):
            zones = [
                make_zone(
                    f'z{i}',
                    severity=rng.choice(severities),
                    radius_km=rng.uniform(0.1, 10),
                    confidence=rng.uniform(0, 1),
                    offset_km=rng.uniform(-15, 15),
                )
                for i in range(rng.randint(0, 8))
            ]
            assessment = score(scorer, make_route(offset_km=rng.uniform(-5, 5)), zones)
            assert 0 <= assessment.safety_score <= 100
            assert assessment.risk_areas_encountered == sum(1 for d in assessment.risk_details if d.encountered)


class TestKualaLumpurScenario:
    """High-severity flood zone over KL City Centre, 5 km radius, 0.9 confidence"""

    @pytest.fixture
    def zone(self):
        return make_zone('kl', severity=Severity.HIGH, radius_km=5, confidence=0.9, label='Kuala Lumpur')

    def test_route_through_center(self, scorer, zone):
        assessment = score(scorer, make_route('A', offset_km=0), [zone])
        assert assessment.risk_areas_encountered == 1
        assert assessment.risk_level == Severity.HIGH
        assert assessment.safety_score <= 70
        assert assessment.risk_areas_avoided == 0
        detail = assessment.risk_details[0]
        assert detail.encountered is True
        assert detail.min_distance_km == pytest.approx(0.0, abs=1e-6)
        assert detail.recommendation == 'Avoid if possible, seek alternate transportation'

    def test_route_six_km_away(self, scorer, zone):
        assessment = score(scorer, make_route('B', offset_km=6), [zone])
        assert assessment.risk_areas_encountered == 0
        assert assessment.safety_score == 100
        assert assessment.risk_level == Severity.LOW
        assert assessment.risk_areas_avoided == 1
        # Inside the 2 km corridor: reported, not penalised
        assert len(assessment.risk_details) == 1
        assert assessment.risk_details[0].encountered is False
        assert assessment.risk_details[0].recommendation == 'Monitor conditions near this area'
        assert assessment.warnings == ('Route avoids all known risk areas',)


class TestMonotonicity:
    """Closer, more severe and more confident hazards cost more"""

    def test_center_crossing_scores_lower_than_edge_grazing(self, scorer):
        zone = make_zone(radius_km=5, confidence=0.9)
        center = score(scorer, make_route(offset_km=0), [zone])
        edge = score(scorer, make_route(offset_km=4.9), [zone])
        assert edge.risk_areas_encountered == 1
        assert center.safety_score < edge.safety_score

    def test_score_non_decreasing_with_distance(self, scorer):
        zone = make_zone(severity=Severity.EXTREME, radius_km=5)
        scores = [score(scorer, make_route(offset_km=km), [zone]).safety_score for km in (0, 1, 2, 3, 4, 5, 6)]
        assert scores == sorted(scores)

    def test_boundary_counts_as_encountered(self, scorer):
        zone = make_zone(radius_km=5)
        assert score(scorer, make_route(offset_km=4.999), [zone]).risk_areas_encountered == 1
        assert score(scorer, make_route(offset_km=5.001), [zone]).risk_areas_encountered == 0

    def test_higher_severity_costs_more(self, scorer):
        scores = [
            score(scorer, make_route(), [make_zone(severity=severity)]).safety_score
            for severity in Severity
        ]
        assert scores == sorted(scores, reverse=True)
        assert len(set(scores)) == len(scores)

    def test_higher_confidence_costs_more(self, scorer):
        unsure = score(scorer, make_route(), [make_zone(confidence=0.2)])
        sure = score(scorer, make_route(), [make_zone(confidence=0.95)])
        assert sure.safety_score < unsure.safety_score

    def test_zero_confidence_still_penalised_for_entry(self, scorer):
        assessment = score(scorer, make_route(), [make_zone(confidence=0.0)])
        assert 0 < assessment.safety_score < 100


class TestRiskAggregation:

    def test_risk_level_is_max_not_sum(self, scorer):
        extreme = make_zone('extreme', severity=Severity.EXTREME, offset_km=0.5)
        low = make_zone('low', severity=Severity.LOW, offset_km=-0.5)
        both = score(scorer, make_route(), [extreme, low])
        only_extreme = score(scorer, make_route(), [extreme])

        assert both.risk_level == Severity.EXTREME
        assert both.risk_areas_encountered == 2
        assert both.safety_score < only_extreme.safety_score

    def test_risk_areas_avoided_counts_unencountered_high_risk_zones(self, scorer):
        zones = [
            make_zone('crossed_high', severity=Severity.HIGH),
            make_zone('far_extreme', severity=Severity.EXTREME, offset_km=30),
            make_zone('far_high', severity=Severity.HIGH, offset_km=-30),
            make_zone('far_low', severity=Severity.LOW, offset_km=40),
        ]
        assessment = score(scorer, make_route(), zones)
        assert assessment.risk_areas_avoided == 2

    def test_details_ordered_closest_first(self, scorer):
        zones = [make_zone('b', offset_km=3), make_zone('a', offset_km=1)]
        assessment = score(scorer, make_route(), zones)
        assert [detail.zone.id for detail in assessment.risk_details] == ['a', 'b']


class TestRecommendationsAndWarnings:

    @pytest.mark.parametrize('severity,recommendation', [
        (Severity.EXTREME, 'Avoid if possible, seek alternate transportation'),
        (Severity.HIGH, 'Avoid if possible, seek alternate transportation'),
        (Severity.MEDIUM, 'Proceed with caution'),
        (Severity.LOW, 'Exercise caution in this area'),
    ])
    def test_recommendation_by_severity(self, scorer, severity, recommendation):
        assessment = score(scorer, make_route(), [make_zone(severity=severity)])
        assert assessment.risk_details[0].recommendation == recommendation

    def test_warning_text(self, scorer):
        zone = make_zone(severity=Severity.HIGH, label='Kuala Lumpur', hazard_type='flood')
        assessment = score(scorer, make_route(), [zone])
        assert assessment.warnings == ('High flood risk near Kuala Lumpur, consider alternate route',)

    def test_warnings_highest_severity_first(self, scorer):
        zones = [
            make_zone('near_low', severity=Severity.LOW, offset_km=0.1, label='Cheras'),
            make_zone('far_extreme', severity=Severity.EXTREME, offset_km=2, label='Ampang'),
        ]
        assessment = score(scorer, make_route(), zones)
        assert assessment.warnings[0].startswith('Extreme weather risk near Ampang')
        assert assessment.warnings[1].startswith('Low weather risk near Cheras')

    def test_nearby_only_zones_produce_no_warning(self, scorer):
        assessment = score(scorer, make_route(), [make_zone(radius_km=1, offset_km=2)])
        assert assessment.risk_details[0].encountered is False
        assert assessment.warnings == ('Route avoids all known risk areas',)


class TestPreconditions:

    def test_single_point_route_rejected(self, scorer):
        route = CandidateRoute(id='stub', polyline=(GeoPoint(3.139, 101.6869),))
        with pytest.raises(EmptyPolyline):
            score(scorer, route, [make_zone()])

    def test_empty_polyline_is_a_degenerate_route(self, scorer):
        route = CandidateRoute(id='empty', polyline=())
        with pytest.raises(DegenerateRoute):
            score(scorer, route, [])
