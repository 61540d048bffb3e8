"""
OpenWeather Integration
Fetches current conditions, the short-range forecast and (where the account
allows) active alerts for a monitored location.
Documentation: https://openweathermap.org/api
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from services.cache_manager import CacheManager
from utils.errors import MissingCredentialsError, WeatherServiceError
from utils.validators import CoordinateValidator

logger = logging.getLogger(__name__)


class WeatherService:
    """Service to fetch weather observations from OpenWeather"""

    BASE_URL = "https://api.openweathermap.org/data/2.5"
    TIMEOUT_SECONDS = 15

    # 8 x 3-hour steps = next 24 hours
    FORECAST_STEPS = 8

    # Visibility OpenWeather reports when it has no reading (meters)
    DEFAULT_VISIBILITY_METERS = 10000

    ALERT_SEVERITIES = {'minor', 'moderate', 'severe', 'extreme'}

    def __init__(self, api_key: Optional[str] = None, cache_manager: Optional[CacheManager] = None):
        self.api_key = api_key or os.getenv('OPENWEATHER_API_KEY')
        self.cache_manager = cache_manager or CacheManager()
        if not self.api_key:
            logger.warning("OPENWEATHER_API_KEY not provided - weather observations will be unavailable")

    def is_enabled(self) -> bool:
        return bool(self.api_key)

    def get_weather(self, lat: float, lon: float, location_name: str = '') -> Dict[str, Any]:
        """
        Weather observation for a location, shared through the cache.

        Concurrent requests for the same rounded coordinates issue one set of
        API calls.

        Returns:
            {
              "location": {"lat", "lon", "name"},
              "current": {"temperature", "humidity", "wind_speed", "wind_direction",
                          "pressure", "visibility_km", "weather_main", "weather_description"},
              "forecast": [{"datetime", "temperature", "rainfall_mm", "wind_speed",
                            "wind_direction", "weather_main", "weather_description"}, ...],
              "alerts": [{"event", "description", "severity", "start", "end"}, ...]
            }

        Raises:
            ValueError: If the coordinates are invalid
            MissingCredentialsError: If no API key is configured
            WeatherServiceError: If the current or forecast request fails
        """
        if not CoordinateValidator.validate_coordinates(lat, lon):
            raise ValueError(f"Invalid coordinates: ({lat}, {lon})")
        if not self.is_enabled():
            raise MissingCredentialsError("OpenWeather API key not configured")

        return self.cache_manager.get_or_fetch_location(
            'weather', lat, lon, lambda: self._fetch_weather(lat, lon, location_name)
        )

    def test_connection(self) -> Dict[str, Any]:
        """Probe the API with a Kuala Lumpur lookup."""
        try:
            current = self._get_json('weather', 3.139, 101.6869)
        except (MissingCredentialsError, WeatherServiceError) as e:
            return {'success': False, 'message': f"OpenWeather API connection failed: {e}"}
        return {
            'success': True,
            'message': (
                f"Successfully connected to OpenWeather API. Test location: "
                f"{current.get('name', 'unknown')}, Temperature: {current.get('main', {}).get('temp')}°C"
            ),
        }

    # ========== Private Helper Methods ==========

    def _fetch_weather(self, lat: float, lon: float, location_name: str) -> Dict[str, Any]:
        logger.info(f"Fetching weather for {location_name or 'location'} ({lat:.4f}, {lon:.4f})")
        current = self._get_json('weather', lat, lon)
        forecast = self._get_json('forecast', lat, lon)

        try:
            observation = {
                'location': {'lat': lat, 'lon': lon, 'name': location_name or current.get('name', '')},
                'current': self._parse_current(current),
                'forecast': [self._parse_forecast_item(item) for item in forecast.get('list', [])[:self.FORECAST_STEPS]],
                'alerts': self._fetch_alerts(lat, lon),
            }
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected OpenWeather response shape: {e}")
            raise WeatherServiceError(f"Invalid response from OpenWeather API: {e}")

        return observation

    def _get_json(self, endpoint: str, lat: float, lon: float) -> Dict[str, Any]:
        if not self.is_enabled():
            raise MissingCredentialsError("OpenWeather API key not configured")

        try:
            response = requests.get(
                f"{self.BASE_URL}/{endpoint}",
                params={'lat': lat, 'lon': lon, 'appid': self.api_key, 'units': 'metric'},
                timeout=self.TIMEOUT_SECONDS
            )
            if response.status_code == 401:
                raise MissingCredentialsError("OpenWeather rejected the API key")
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout:
            logger.error(f"OpenWeather {endpoint} request timed out")
            raise WeatherServiceError(f"OpenWeather {endpoint} request timed out")
        except requests.exceptions.HTTPError:
            # Exception text carries the request URL, appid included
            logger.error(f"OpenWeather {endpoint} request failed: HTTP {response.status_code}")
            raise WeatherServiceError(f"OpenWeather {endpoint} request failed: HTTP {response.status_code}")
        except requests.exceptions.RequestException as e:
            logger.error(f"OpenWeather {endpoint} request failed: {type(e).__name__}")
            raise WeatherServiceError(f"OpenWeather {endpoint} request failed: {type(e).__name__}")
        except ValueError:
            logger.error(f"Failed to parse OpenWeather {endpoint} response")
            raise WeatherServiceError(f"Invalid response from OpenWeather {endpoint} API")

        if not isinstance(data, dict):
            logger.error(f"OpenWeather {endpoint} returned {type(data).__name__}, expected an object")
            raise WeatherServiceError(f"Invalid response from OpenWeather {endpoint} API")
        return data

    def _fetch_alerts(self, lat: float, lon: float) -> List[Dict[str, Any]]:
        # One Call alerts need a separate subscription; missing alerts are not an error
        try:
            response = requests.get(
                f"{self.BASE_URL}/onecall",
                params={'lat': lat, 'lon': lon, 'appid': self.api_key, 'exclude': 'minutely,hourly,daily'},
                timeout=self.TIMEOUT_SECONDS
            )
            if not response.ok:
                logger.debug(f"Weather alerts not available for ({lat}, {lon}): HTTP {response.status_code}")
                return []
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Weather alerts not available for ({lat}, {lon}): {type(e).__name__}")
            return []

        raw_alerts = data.get('alerts') if isinstance(data, dict) else None
        if not isinstance(raw_alerts, list):
            return []

        return [self._parse_alert(alert) for alert in raw_alerts]

    def _parse_current(self, current: Dict[str, Any]) -> Dict[str, Any]:
        main = current['main']
        wind = current.get('wind') or {}
        weather = current['weather'][0]
        visibility = current.get('visibility') or self.DEFAULT_VISIBILITY_METERS
        return {
            'temperature': main['temp'],
            'humidity': main.get('humidity'),
            'wind_speed': wind.get('speed') or 0,
            'wind_direction': wind.get('deg') or 0,
            'pressure': main.get('pressure'),
            'visibility_km': visibility / 1000,
            'weather_main': weather.get('main', ''),
            'weather_description': weather.get('description', ''),
        }

    @staticmethod
    def _parse_forecast_item(item: Dict[str, Any]) -> Dict[str, Any]:
        wind = item.get('wind') or {}
        weather = item['weather'][0]
        return {
            'datetime': item.get('dt_txt'),
            'temperature': item['main']['temp'],
            'rainfall_mm': (item.get('rain') or {}).get('3h', 0),
            'wind_speed': wind.get('speed') or 0,
            'wind_direction': wind.get('deg') or 0,
            'weather_main': weather.get('main', ''),
            'weather_description': weather.get('description', ''),
        }

    def _parse_alert(self, alert: Dict[str, Any]) -> Dict[str, Any]:
        tags = alert.get('tags') or []
        severity = str(tags[0]).lower() if tags else 'moderate'
        if severity not in self.ALERT_SEVERITIES:
            severity = 'moderate'
        return {
            'event': alert.get('event', 'Weather Alert'),
            'description': alert.get('description', ''),
            'severity': severity,
            'start': self._to_iso(alert.get('start')),
            'end': self._to_iso(alert.get('end')),
        }

    @staticmethod
    def _to_iso(timestamp) -> Optional[str]:
        if timestamp is None:
            return None
        try:
            return datetime.fromtimestamp(float(timestamp), tz=timezone.utc).isoformat()
        except (TypeError, ValueError, OverflowError):
            return None
