"""
Hazard assessment: turns weather observations into HazardZones.

Uses OpenAI (GPT-4o-mini) to classify severity, confidence, hazard type and
affected radius from current conditions, the next 24 hours of forecast and
active alerts. When no OpenAI key is configured, or the model's answer is
unusable, a deterministic rule-based classifier is used instead.
"""
import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI, OpenAIError

from services.cache_manager import CacheManager
from services.route_models import GeoPoint, HazardZone, Severity
from services.weather_service import WeatherService
from utils.errors import HazardDataUnavailable, InvalidHazardZone, MissingCredentialsError, WeatherServiceError
from utils.validators import CoordinateValidator

logger = logging.getLogger(__name__)


class HazardAssessmentService:
    """Assess disaster risk around monitored locations"""

    DEFAULT_MODEL = "gpt-4o-mini"

    # Affected radius (km) when the classifier doesn't give a usable one
    RADIUS_BY_SEVERITY_KM = {
        Severity.LOW: 1.0,
        Severity.MEDIUM: 2.0,
        Severity.HIGH: 3.5,
        Severity.EXTREME: 5.0,
    }
    MAX_RADIUS_KM = 25.0

    # Rule-based thresholds (metric units)
    HEAVY_RAIN_MM_3H = 10.0       # heavy rain in a 3-hour window
    EXTREME_RAIN_MM_3H = 30.0     # flash-flood territory
    STRONG_WIND_MS = 13.9         # ~50 km/h
    STORM_WIND_MS = 24.5          # ~88 km/h, storm force
    LOW_VISIBILITY_KM = 1.0
    STORM_CONDITIONS = {'Thunderstorm', 'Tornado', 'Squall'}

    # Alert severity tags mapped onto the zone severity scale
    ALERT_SEVERITY_MAP = {
        'minor': Severity.LOW,
        'moderate': Severity.MEDIUM,
        'severe': Severity.HIGH,
        'extreme': Severity.EXTREME,
    }

    HEURISTIC_CONFIDENCE = 0.6

    SYSTEM_PROMPT = (
        "You are a disaster risk analyst for road travel. Given current weather, the "
        "next 24 hours of forecast and any active alerts for one location, classify "
        "the travel risk. Respond with a JSON object containing 'severity' (one of "
        "low, medium, high, extreme), 'confidence' (0.0-1.0), 'hazard_type' (e.g. "
        "flood, storm, wind, fog, weather), 'radius_km' (affected radius, 0.5-25) "
        "and 'reasoning' (brief explanation)."
    )

    def __init__(
        self,
        weather_service: Optional[WeatherService] = None,
        cache_manager: Optional[CacheManager] = None,
        openai_client=None,
        model: Optional[str] = None,
        max_workers: int = 4
    ):
        """
        Args:
            weather_service: Source of observations (shares ``cache_manager`` by default)
            cache_manager: Cache for assessed zones
            openai_client: Injected OpenAI client; built from OPENAI_API_KEY when None
            model: Chat model name (OPENAI_MODEL env variable, else gpt-4o-mini)
            max_workers: Concurrent location lookups in assess_locations
        """
        self.cache_manager = cache_manager or CacheManager()
        self.weather_service = weather_service or WeatherService(cache_manager=self.cache_manager)
        self.model = model or os.getenv('OPENAI_MODEL') or self.DEFAULT_MODEL
        self.max_workers = max(1, int(max_workers))

        if openai_client is not None:
            self.openai_client = openai_client
        else:
            api_key = os.getenv('OPENAI_API_KEY')
            self.openai_client = OpenAI(api_key=api_key) if api_key else None

        if self.openai_client:
            logger.info(f"OpenAI client initialized ({self.model}) for hazard classification")
        else:
            logger.warning("No AI provider available - using rule-based hazard classification")

    def assess_weather(self, observation: Dict[str, Any], zone_id: Optional[str] = None) -> HazardZone:
        """
        Classify one weather observation into a HazardZone centred on its location.

        Args:
            observation: Normalised observation from WeatherService.get_weather
            zone_id: Zone identifier (defaults to "hazard_<lat>_<lon>")

        Raises:
            HazardDataUnavailable: If the observation has no usable location
        """
        location = observation.get('location') or {}
        lat, lon = location.get('lat'), location.get('lon')
        if not CoordinateValidator.validate_coordinates(lat, lon):
            raise HazardDataUnavailable(f"Observation has no valid location: {location!r}")

        name = location.get('name') or ''
        zone_id = zone_id or f"hazard_{CacheManager.location_key(lat, lon).replace(',', '_')}"

        classification = self._classify_with_ai(observation) or self._classify_with_rules(observation)

        try:
            zone = HazardZone(
                id=zone_id,
                center=GeoPoint(float(lat), float(lon)),
                radius_km=classification['radius_km'],
                severity=classification['severity'],
                confidence=classification['confidence'],
                label=name,
                hazard_type=classification['hazard_type'],
            )
        except InvalidHazardZone as e:
            logger.error(f"Classifier produced an invalid zone for {name or zone_id}: {e}")
            raise HazardDataUnavailable(f"Could not build hazard zone for {name or zone_id}: {e}")

        logger.info(
            f"Hazard assessment for {zone.display_name}: {zone.severity.value} {zone.hazard_type} "
            f"(confidence {zone.confidence:.2f}, radius {zone.radius_km}km, via {classification['provider']})"
        )
        return zone

    def assess_location(self, lat: float, lon: float, name: str = '') -> HazardZone:
        """
        Fetch weather for one location and assess it, cached per rounded coordinates.

        Raises:
            MissingCredentialsError: If OpenWeather is not configured
            HazardDataUnavailable: If weather could not be fetched or classified
        """
        def fetch() -> HazardZone:
            try:
                observation = self.weather_service.get_weather(lat, lon, name)
            except WeatherServiceError as e:
                raise HazardDataUnavailable(f"Weather unavailable for {name or (lat, lon)}: {e}")
            return self.assess_weather(observation)

        return self.cache_manager.get_or_fetch_location('hazard_zones', lat, lon, fetch)

    def assess_locations(self, locations: Sequence[Dict[str, Any]]) -> List[HazardZone]:
        """
        Assess every monitored location; the result follows the input order.

        Args:
            locations: [{"lat": float, "lon": float, "name": str}, ...]

        Raises:
            ValueError: If a location has invalid coordinates
            MissingCredentialsError: If OpenWeather is not configured
            HazardDataUnavailable: If any location could not be assessed. A
                partial result is never returned, since a missing zone would
                read as "no risk" there.
        """
        for location in locations:
            if not CoordinateValidator.validate_coordinate_dict(location):
                raise ValueError(f"Invalid monitored location: {location!r}")

        if not locations:
            return []

        workers = min(self.max_workers, len(locations))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='hazard-assess') as executor:
            futures = [
                executor.submit(
                    self.assess_location,
                    float(location['lat']),
                    float(location['lon']),
                    location.get('name') or ''
                )
                for location in locations
            ]
            try:
                return [future.result() for future in futures]
            except (HazardDataUnavailable, MissingCredentialsError):
                for future in futures:
                    future.cancel()
                raise

    # ========== Private Helper Methods ==========

    def _classify_with_ai(self, observation: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.openai_client:
            return None

        try:
            response = self.openai_client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {"role": "user", "content": self._build_ai_prompt(observation)}
                ],
                response_format={"type": "json_object"},
                temperature=0.2,
                max_tokens=200
            )
            result = json.loads(response.choices[0].message.content)
        except (OpenAIError, ValueError, TypeError, IndexError, AttributeError) as e:
            logger.warning(f"OpenAI hazard classification failed: {e}. Falling back to rules...")
            return None

        return self._normalize_ai_result(result)

    def _normalize_ai_result(self, result: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(result, dict):
            logger.warning("OpenAI hazard classification was not a JSON object")
            return None

        try:
            severity = Severity.parse(result.get('severity'))
        except ValueError:
            logger.warning(f"OpenAI returned unknown severity {result.get('severity')!r}")
            return None

        try:
            confidence = min(max(float(result.get('confidence', 0.5)), 0.0), 1.0)
        except (TypeError, ValueError):
            confidence = 0.5

        try:
            radius_km = float(result.get('radius_km'))
            if not 0 < radius_km <= self.MAX_RADIUS_KM:
                raise ValueError(radius_km)
        except (TypeError, ValueError):
            radius_km = self.RADIUS_BY_SEVERITY_KM[severity]

        hazard_type = str(result.get('hazard_type') or 'weather').strip().lower() or 'weather'

        return {
            'severity': severity,
            'confidence': confidence,
            'radius_km': radius_km,
            'hazard_type': hazard_type,
            'reasoning': str(result.get('reasoning', '')),
            'provider': 'openai',
        }

    @staticmethod
    def _build_ai_prompt(observation: Dict[str, Any]) -> str:
        location = observation.get('location') or {}
        current = observation.get('current') or {}
        lines = [
            f"Location: {location.get('name') or 'unnamed'} ({location.get('lat')}, {location.get('lon')})",
            f"Current: {current.get('weather_main')} - {current.get('weather_description')}, "
            f"{current.get('temperature')}°C, humidity {current.get('humidity')}%, "
            f"wind {current.get('wind_speed')} m/s, visibility {current.get('visibility_km')} km",
            "Forecast (3-hour steps):",
        ]
        for item in observation.get('forecast') or []:
            lines.append(
                f"- {item.get('datetime')}: {item.get('weather_main')}, rain {item.get('rainfall_mm')} mm, "
                f"wind {item.get('wind_speed')} m/s"
            )
        alerts = observation.get('alerts') or []
        if alerts:
            lines.append("Active alerts:")
            for alert in alerts:
                lines.append(f"- [{alert.get('severity')}] {alert.get('event')}: {alert.get('description', '')[:200]}")
        else:
            lines.append("Active alerts: none")
        return "\n".join(lines)

    def _classify_with_rules(self, observation: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deterministic classification: the worst signal wins.

        Signals:
        - Heaviest 3-hour rainfall in the forecast (flood)
        - Strongest current or forecast wind (wind)
        - Thunderstorm/tornado/squall conditions (storm)
        - Visibility below 1 km (fog)
        - Active alert severity tags (alert event name)
        """
        current = observation.get('current') or {}
        forecast = observation.get('forecast') or []

        candidates = [(Severity.LOW, 'weather')]

        max_rain = max((self._as_float(item.get('rainfall_mm')) for item in forecast), default=0.0)
        if max_rain >= self.EXTREME_RAIN_MM_3H:
            candidates.append((Severity.HIGH, 'flood'))
        elif max_rain >= self.HEAVY_RAIN_MM_3H:
            candidates.append((Severity.MEDIUM, 'flood'))

        max_wind = max(
            [self._as_float(current.get('wind_speed'))]
            + [self._as_float(item.get('wind_speed')) for item in forecast]
        )
        if max_wind >= self.STORM_WIND_MS:
            candidates.append((Severity.HIGH, 'wind'))
        elif max_wind >= self.STRONG_WIND_MS:
            candidates.append((Severity.MEDIUM, 'wind'))

        conditions = {current.get('weather_main')} | {item.get('weather_main') for item in forecast}
        if conditions & self.STORM_CONDITIONS:
            candidates.append((Severity.MEDIUM, 'storm'))

        visibility = current.get('visibility_km')
        if visibility is not None and self._as_float(visibility) < self.LOW_VISIBILITY_KM:
            candidates.append((Severity.MEDIUM, 'fog'))

        for alert in observation.get('alerts') or []:
            severity = self.ALERT_SEVERITY_MAP.get(str(alert.get('severity', '')).lower(), Severity.MEDIUM)
            event = str(alert.get('event') or 'weather').strip().lower() or 'weather'
            candidates.append((severity, event))

        # Highest severity; first signal listed wins ties
        severity, hazard_type = max(candidates, key=lambda candidate: candidate[0].rank)

        return {
            'severity': severity,
            'confidence': self.HEURISTIC_CONFIDENCE,
            'radius_km': self.RADIUS_BY_SEVERITY_KM[severity],
            'hazard_type': hazard_type,
            'reasoning': 'rule-based classification',
            'provider': 'rules',
        }

    @staticmethod
    def _as_float(value) -> float:
        try:
            return float(value or 0)
        except (TypeError, ValueError):
            return 0.0
