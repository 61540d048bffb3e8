"""
Geocoding Service - Place Name Search with OpenStreetMap Nominatim

Resolves free-text place names ("KLCC", "Petaling Jaya") to coordinates for
route start/end points.

Features:
- OpenStreetMap Nominatim search API (free, no API key)
- In-memory caching through CacheManager (30-day TTL), one fetch per query
- Rate limiting (1 request/second as per Nominatim ToS)
- Failures raised as GeocodingError / LocationNotFound, never a silent None
"""

import logging
import threading
import time
from typing import Dict, List, Optional

import requests

from services.cache_manager import CacheManager
from services.route_models import RoutePoint
from utils.errors import GeocodingError, LocationNotFound
from utils.validators import CoordinateValidator

logger = logging.getLogger(__name__)


class GeocodingService:
    """
    Forward geocoding service using the OpenStreetMap Nominatim API

    Usage:
        service = GeocodingService(cache_manager)
        point = service.geocode("Kuala Lumpur City Centre")
        # RoutePoint(lat=3.1579, lon=101.7116, name='Kuala Lumpur City Centre, ...')
    """

    BASE_URL = "https://nominatim.openstreetmap.org/search"
    TIMEOUT_SECONDS = 5
    MAX_RESULTS = 5
    USER_AGENT = 'DisasterGuardRouting/1.0'

    def __init__(self, cache_manager: Optional[CacheManager] = None, country_codes: Optional[str] = None):
        """
        Args:
            cache_manager: CacheManager shared with the other upstream services
            country_codes: Optional comma-separated ISO country codes to bias results (e.g. "my")
        """
        self.cache_manager = cache_manager or CacheManager()
        self.country_codes = country_codes
        self.last_request_time = 0.0
        self.rate_limit_delay = 1.0  # 1 second between requests (Nominatim ToS)
        self._rate_limit_lock = threading.Lock()

    def search(self, query: str, limit: int = MAX_RESULTS) -> List[RoutePoint]:
        """
        Search for places matching ``query``.

        Args:
            query: Free-text place name or address
            limit: Maximum number of matches (1-5)

        Returns:
            Matching places, best first (may be empty)

        Raises:
            ValueError: If the query is blank
            GeocodingError: If the Nominatim request fails
        """
        normalized = self._normalize_query(query)
        if not normalized:
            raise ValueError("Search query must not be empty")

        limit = max(1, min(self.MAX_RESULTS, int(limit)))
        cache_key = f"{normalized}|{limit}|{self.country_codes or ''}"
        return self.cache_manager.get_or_fetch(
            'geocode', cache_key, lambda: self._fetch_places(normalized, limit)
        )

    def geocode(self, query: str) -> RoutePoint:
        """
        Resolve ``query`` to its best match.

        Raises:
            LocationNotFound: If Nominatim has no match
            GeocodingError: If the Nominatim request fails
        """
        places = self.search(query, limit=1)
        if not places:
            raise LocationNotFound(f"No location found for '{query}'")
        return places[0]

    # ========== Private Helper Methods ==========

    @staticmethod
    def _normalize_query(query: str) -> str:
        if not isinstance(query, str):
            return ''
        return ' '.join(query.split()).lower()

    def _wait_for_rate_limit(self) -> None:
        with self._rate_limit_lock:
            time_since_last = time.time() - self.last_request_time
            if time_since_last < self.rate_limit_delay:
                time.sleep(self.rate_limit_delay - time_since_last)
            self.last_request_time = time.time()

    def _fetch_places(self, query: str, limit: int) -> List[RoutePoint]:
        self._wait_for_rate_limit()

        params = {
            'q': query,
            'format': 'json',
            'limit': limit,
            'addressdetails': 0,
        }
        if self.country_codes:
            params['countrycodes'] = self.country_codes

        try:
            response = requests.get(
                self.BASE_URL,
                params=params,
                headers={'User-Agent': self.USER_AGENT},
                timeout=self.TIMEOUT_SECONDS
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout:
            logger.error(f"Geocoding request timed out after {self.TIMEOUT_SECONDS}s")
            raise GeocodingError("Geocoding service timed out")
        except requests.exceptions.HTTPError:
            logger.error(f"Geocoding request failed: HTTP {response.status_code}")
            raise GeocodingError(f"Geocoding service request failed: HTTP {response.status_code}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Geocoding request failed: {type(e).__name__}")
            raise GeocodingError(f"Geocoding service request failed: {type(e).__name__}")
        except ValueError:
            logger.error("Failed to parse geocoding response")
            raise GeocodingError("Geocoding service returned an unreadable response")

        if not isinstance(data, list):
            raise GeocodingError("Geocoding service returned an unexpected response")

        places = [place for place in (self._parse_nominatim_result(item) for item in data) if place]
        logger.info(f"Geocoding '{query}' returned {len(places)} match(es)")
        return places

    @staticmethod
    def _parse_nominatim_result(item: Dict) -> Optional[RoutePoint]:
        """Convert one Nominatim result to a RoutePoint, skipping malformed entries."""
        try:
            lat = float(item['lat'])
            lon = float(item['lon'])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Skipping malformed geocoding result: {item!r}")
            return None

        if not CoordinateValidator.validate_coordinates(lat, lon):
            logger.warning(f"Skipping geocoding result with invalid coordinates: ({lat}, {lon})")
            return None

        return RoutePoint(lat=lat, lon=lon, name=item.get('display_name') or None)
