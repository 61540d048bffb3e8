from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
import os
import logging
from datetime import datetime, timezone
from config import config
from services.cache_manager import CacheManager
from services.geocoding_service import GeocodingService
from services.hazard_assessment_service import HazardAssessmentService
from services.mapbox_routing_service import MapboxRoutingService
from services.route_evaluation_service import RouteEvaluationService
from services.route_models import CandidateRoute, HazardZone, RoutePoint, RoutingPolicy
from services.weather_service import WeatherService
from utils.errors import (
    DegenerateRoute,
    EvaluationCancelled,
    HazardDataUnavailable,
    InvalidCoordinate,
    InvalidHazardZone,
    LocationNotFound,
    MissingCredentialsError,
    NoRoutesAvailable,
    NoRoutesFound,
    RouteSafetyError,
    UpstreamServiceError,
)

app_config = config[os.getenv('FLASK_ENV', 'default')]

logging.basicConfig(
    level=app_config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
)

app = Flask(__name__)
app.config.from_object(app_config)
logger = logging.getLogger(__name__)

CORS(app, origins=app_config.CORS_ORIGINS)


@app.after_request
def set_security_headers(response):
    """Add security headers to all responses."""
    if os.getenv('FLASK_ENV') == 'production':
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    return response


# Set REDIS_URL to share rate limits across multiple workers: redis://your-redis-host:6379
limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"],
    storage_uri=app_config.RATELIMIT_STORAGE_URI
)

# Initialize services
hazard_ttl_minutes = app_config.HAZARD_CACHE_TTL_SECONDS / 60
cache_manager = CacheManager(durations={'weather': hazard_ttl_minutes, 'hazard_zones': hazard_ttl_minutes})
geocoding_service = GeocodingService(cache_manager)
weather_service = WeatherService(api_key=app_config.OPENWEATHER_API_KEY, cache_manager=cache_manager)
hazard_assessment_service = HazardAssessmentService(
    weather_service=weather_service,
    cache_manager=cache_manager,
    model=app_config.OPENAI_MODEL
)
routing_service = MapboxRoutingService(access_token=app_config.MAPBOX_ACCESS_TOKEN)
route_evaluation_service = RouteEvaluationService(max_workers=app_config.ROUTE_SCORING_WORKERS)

# Most specific first; the first isinstance match decides the response
ERROR_RESPONSES = [
    (NoRoutesAvailable, 404, 'Could not calculate routes'),
    (NoRoutesFound, 404, 'Could not calculate routes'),
    (LocationNotFound, 404, 'Location not found'),
    (HazardDataUnavailable, 503, 'Risk data unavailable'),
    (MissingCredentialsError, 503, 'Service not configured'),
    (EvaluationCancelled, 503, 'Route evaluation cancelled'),
    (UpstreamServiceError, 502, 'Upstream service unavailable'),
    (InvalidCoordinate, 400, 'Invalid coordinates'),
    (InvalidHazardZone, 400, 'Invalid hazard zone'),
    (DegenerateRoute, 400, 'Invalid route geometry'),
]


def _json_body():
    """Request JSON object, or None if the body is missing or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _parse_list(data, key, parser, required=False):
    value = data.get(key)
    if value is None:
        if required:
            raise ValueError(f"{key} is required")
        return []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list")
    return [parser(item) for item in value]


def _parse_hazard_zone(item):
    if not isinstance(item, dict):
        raise InvalidHazardZone(f"Hazard zone must be an object, got {type(item).__name__}")
    return HazardZone.from_dict(item)


def _parse_route(item):
    if not isinstance(item, dict):
        raise ValueError(f"Route must be an object, got {type(item).__name__}")
    return CandidateRoute.from_dict(item)


def _resolve_point(data, key, query_key):
    """Coordinates from ``data[key]``, or a geocoded ``data[query_key]``."""
    point = data.get(key)
    if isinstance(point, dict):
        return RoutePoint.from_dict(point)
    query = data.get(query_key)
    if isinstance(query, str) and query.strip():
        return geocoding_service.geocode(query)
    raise ValueError(f"{key} with lat and lon (or {query_key}) is required")


@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({
        'status': 'healthy',
        'service': 'disasterguard-routing-api',
        'integrations': {
            'routing': routing_service.is_enabled(),
            'weather': weather_service.is_enabled(),
            'ai_classification': hazard_assessment_service.openai_client is not None,
        },
        'cache': cache_manager.get_stats(),
    })


@app.route('/api/routes/evaluate', methods=['POST'])
@limiter.limit("60 per minute")
def evaluate_routes():
    """
    Score caller-supplied candidate routes against caller-supplied hazard zones.

    Request Body:
        routes (list): [{"id", "polyline": [[lon, lat], ...] | [{"lat", "lon"}, ...],
                         "distance_meters", "duration_seconds", "vehicle_type"}]
        hazard_zones (list, optional): [{"id", "center": {"lat", "lon"}, "radius_km",
                                         "severity", "confidence", "label", "hazard_type"}]
        policy (dict, optional): {"avoid_high_risk": bool, "vehicle_type": str}

    Returns:
        200: SelectionResult (chosen route, rationale, every assessment, ranking)
        400: Invalid routes, hazard zones or policy
        404: No routes supplied
    """
    data = _json_body()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    try:
        routes = _parse_list(data, 'routes', _parse_route, required=True)
        hazard_zones = _parse_list(data, 'hazard_zones', _parse_hazard_zone)
        policy = RoutingPolicy.from_dict(data.get('policy'))
    except (ValueError, TypeError) as e:
        return jsonify({'error': str(e)}), 400

    result = route_evaluation_service.evaluate(routes, hazard_zones, policy)
    return jsonify(result.to_dict()), 200


@app.route('/api/routes/calculate', methods=['POST'])
@limiter.limit("40 per hour")  # Each call fans out to Mapbox, OpenWeather and OpenAI
@limiter.limit("10 per minute")
def calculate_routes():
    """
    Fetch candidate routes and pick the one that fits the routing policy.

    Request Body:
        start (dict) or start_query (str): Trip origin, coordinates or place name
        destination (dict) or destination_query (str): Trip end
        avoid_high_risk (bool, optional): Optimize for safety (default: True)
        vehicle_type (str, optional): driving | walking | cycling (default: driving)
        hazard_zones (list, optional): Known hazard zones
        monitored_locations (list, optional): [{"lat", "lon", "name"}] to assess from
            live weather. When neither hazard_zones nor monitored_locations is given,
            the start and destination are assessed.

    Returns:
        200: SelectionResult plus the hazard zones used and calculation metadata
        400: Invalid parameters
        404: Location not found / no routes
        502: Routing, weather or geocoding provider failed
        503: Risk data unavailable or provider not configured
    """
    data = _json_body()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    try:
        policy = RoutingPolicy.from_dict({
            'avoid_high_risk': data.get('avoid_high_risk', True),
            'vehicle_type': data.get('vehicle_type', 'driving'),
        })
        hazard_zones = _parse_list(data, 'hazard_zones', _parse_hazard_zone)
        monitored_locations = data.get('monitored_locations')
        if monitored_locations is not None and not isinstance(monitored_locations, list):
            raise ValueError('monitored_locations must be a list')
        start = _resolve_point(data, 'start', 'start_query')
        destination = _resolve_point(data, 'destination', 'destination_query')
    except (ValueError, TypeError) as e:
        return jsonify({'error': str(e)}), 400

    if monitored_locations is None and 'hazard_zones' not in data:
        monitored_locations = [start.to_dict(), destination.to_dict()]

    if monitored_locations:
        try:
            hazard_zones = hazard_zones + hazard_assessment_service.assess_locations(monitored_locations)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

    logger.info(
        f"Calculating {policy.vehicle_type.value} routes from ({start.lat}, {start.lon}) to "
        f"({destination.lat}, {destination.lon}) with {len(hazard_zones)} hazard zones "
        f"(avoid_high_risk={policy.avoid_high_risk})"
    )

    routes = routing_service.calculate_candidate_routes(start, destination, policy.vehicle_type, hazard_zones)
    result = route_evaluation_service.evaluate(routes, hazard_zones, policy)

    response = result.to_dict()
    response['hazard_zones'] = [zone.to_dict() for zone in hazard_zones]
    response['calculation_metadata'] = {
        'start': start.to_dict(),
        'destination': destination.to_dict(),
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'hazard_zones_considered': len(hazard_zones),
        'candidate_routes': len(routes),
    }
    return jsonify(response), 200


@app.route('/api/hazards/assess', methods=['POST'])
@limiter.limit("30 per hour")
def assess_hazards():
    """
    Assess live weather risk at monitored locations.

    Request Body:
        locations (list): [{"lat": float, "lon": float, "name": str}]

    Returns:
        200: {"hazard_zones": [...], "count": int}
        400: Invalid locations
        503: Risk data unavailable or weather provider not configured
    """
    data = _json_body()
    if data is None:
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    locations = data.get('locations')
    if not isinstance(locations, list) or not locations:
        return jsonify({'error': 'locations must be a non-empty list'}), 400

    try:
        zones = hazard_assessment_service.assess_locations(locations)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({'hazard_zones': [zone.to_dict() for zone in zones], 'count': len(zones)}), 200


# ===== ERROR HANDLERS =====

@app.errorhandler(RouteSafetyError)
def route_safety_error(error):
    """Map typed errors to status codes; 'no data' is never reported as 'no risk'."""
    for error_class, status, message in ERROR_RESPONSES:
        if isinstance(error, error_class):
            if status >= 500:
                # Upstream failure text stays in the logs, never in the response
                logger.error(f"{request.path} failed with {type(error).__name__}: {error}")
                return jsonify({'error': message}), status
            logger.warning(f"{request.path} failed with {type(error).__name__}: {error}")
            return jsonify({'error': message, 'details': str(error)}), status

    logger.error(f"Unmapped error on {request.path}: {error}", exc_info=True)
    return jsonify({'error': 'Internal server error'}), 500


@app.errorhandler(413)
def request_entity_too_large(error):
    """
    Handle requests that exceed MAX_CONTENT_LENGTH.

    Returns:
        413: Payload too large error
    """
    return jsonify({
        'error': 'Request payload too large',
        'max_size': '2 MB',
        'message': 'Please reduce the number of routes or simplify route geometry.'
    }), 413


@app.errorhandler(400)
def bad_request(error):
    """
    Handle malformed requests.

    Returns:
        400: Bad request error
    """
    return jsonify({
        'error': 'Bad request',
        'message': str(error)
    }), 400


@app.errorhandler(Exception)
def unexpected_error(error):
    if isinstance(error, HTTPException):
        return error
    logger.error(f"Unexpected error on {request.path}: {error}", exc_info=True)
    return jsonify({'error': 'Internal server error'}), 500


if __name__ == '__main__':
    # Use environment variable to control debug mode (defaults to False for production)
    debug_mode = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    app.run(debug=debug_mode, host='0.0.0.0', port=5001)
