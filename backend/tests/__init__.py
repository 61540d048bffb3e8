"""
Test suite for the disaster-aware routing backend.

This package contains:
- test_geo.py / test_validators.py: Geometry helpers and payload validation
- test_route_models.py / test_hazard_index.py: Value types and hazard lookup
- test_route_scorer.py / test_route_selector.py: Safety scoring and route choice
- test_route_evaluation_service.py: Parallel evaluation, ordering and cancellation
- test_cache_manager.py: TTL cache with single-flight fetches
- test_mapbox_routing_service.py / test_weather_service.py / test_geocoding_service.py:
  Upstream clients with mocked HTTP
- test_hazard_assessment_service.py: Weather-to-hazard classification
- test_api.py: Flask endpoints

Run tests (from the repository root):
    python -m pytest

Run specific test file:
    python -m pytest backend/tests/test_route_scorer.py
"""
