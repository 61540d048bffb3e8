"""
Tests for WeatherService (OpenWeather client)
"""
from unittest.mock import Mock, patch

import pytest
import requests

from services.cache_manager import CacheManager
from services.weather_service import WeatherService
from utils.errors import MissingCredentialsError, WeatherServiceError

CURRENT = {
    'name': 'Kuala Lumpur',
    'main': {'temp': 31.2, 'humidity': 70, 'pressure': 1008},
    'wind': {'speed': 4.1, 'deg': 200},
    'visibility': 8000,
    'weather': [{'main': 'Rain', 'description': 'moderate rain'}],
}

FORECAST = {
    'list': [
        {
            'dt_txt': f'2025-01-01 {hour:02d}:00:00',
            'main': {'temp': 29},
            'rain': {'3h': 2.5 * i},
            'wind': {'speed': 5},
            'weather': [{'main': 'Rain', 'description': 'light rain'}],
        }
        for i, hour in enumerate(range(0, 30, 3))
    ]
}

ALERTS = {
    'alerts': [
        {'event': 'Flood Warning', 'description': 'River levels rising', 'tags': ['Severe'],
         'start': 1735689600, 'end': 1735732800},
    ]
}


def mock_response(data, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f'{status_code} error')
    return response


def route_by_endpoint(current=CURRENT, forecast=FORECAST, alerts=ALERTS, alerts_status=200):
    def fake_get(url, params=None, timeout=None):
        if url.endswith('/weather'):
            return mock_response(current)
        if url.endswith('/forecast'):
            return mock_response(forecast)
        return mock_response(alerts, status_code=alerts_status)
    return fake_get


@pytest.fixture
def service():
    return WeatherService(api_key='test-key', cache_manager=CacheManager())


class TestGetWeather:

    @patch('services.weather_service.requests.get')
    def test_normalised_observation(self, mock_get, service):
        mock_get.side_effect = route_by_endpoint()

        observation = service.get_weather(3.139, 101.6869, 'KLCC')

        assert observation['location'] == {'lat': 3.139, 'lon': 101.6869, 'name': 'KLCC'}
        assert observation['current']['temperature'] == 31.2
        assert observation['current']['visibility_km'] == 8.0
        assert observation['current']['weather_main'] == 'Rain'
        assert len(observation['forecast']) == 8
        assert observation['forecast'][2]['rainfall_mm'] == 5.0
        assert observation['alerts'][0]['severity'] == 'severe'
        assert observation['alerts'][0]['start'].startswith('2025-01-01T00:00:00')

    @patch('services.weather_service.requests.get')
    def test_metric_units_requested(self, mock_get, service):
        mock_get.side_effect = route_by_endpoint()
        service.get_weather(3.139, 101.6869)
        first_params = mock_get.call_args_list[0][1]['params']
        assert first_params['units'] == 'metric'
        assert first_params['appid'] == 'test-key'

    @patch('services.weather_service.requests.get')
    def test_alerts_optional(self, mock_get, service):
        mock_get.side_effect = route_by_endpoint(alerts_status=401)
        observation = service.get_weather(3.139, 101.6869)
        assert observation['alerts'] == []

    @patch('services.weather_service.requests.get')
    def test_cached_by_rounded_location(self, mock_get, service):
        mock_get.side_effect = route_by_endpoint()
        service.get_weather(3.139001, 101.686901)
        calls_after_first = mock_get.call_count
        service.get_weather(3.139004, 101.686899)
        assert mock_get.call_count == calls_after_first

    @patch('services.weather_service.requests.get')
    def test_forecast_failure(self, mock_get, service):
        def fake_get(url, params=None, timeout=None):
            if url.endswith('/forecast'):
                return mock_response({}, status_code=500)
            return mock_response(CURRENT)
        mock_get.side_effect = fake_get

        with pytest.raises(WeatherServiceError):
            service.get_weather(3.139, 101.6869)

    @patch('services.weather_service.requests.get')
    def test_timeout(self, mock_get, service):
        mock_get.side_effect = requests.exceptions.Timeout()
        with pytest.raises(WeatherServiceError):
            service.get_weather(3.139, 101.6869)

    @patch('services.weather_service.requests.get')
    def test_rejected_key(self, mock_get, service):
        mock_get.return_value = mock_response({'message': 'Invalid API key'}, status_code=401)
        with pytest.raises(MissingCredentialsError):
            service.get_weather(3.139, 101.6869)

    @patch('services.weather_service.requests.get')
    def test_server_error_hides_api_key(self, mock_get, service, caplog):
        response = mock_response({}, status_code=500)
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            '500 Server Error: Internal Server Error for url: '
            'https://api.openweathermap.org/data/2.5/weather?lat=3.139&lon=101.6869&appid=test-key'
        )
        mock_get.return_value = response

        with pytest.raises(WeatherServiceError) as exc_info:
            service.get_weather(3.139, 101.6869)

        assert 'test-key' not in str(exc_info.value)
        assert 'HTTP 500' in str(exc_info.value)
        assert 'test-key' not in caplog.text

    @patch('services.weather_service.requests.get')
    def test_connection_error_hides_api_key(self, mock_get, service, caplog):
        mock_get.side_effect = requests.exceptions.ConnectionError(
            'Max retries exceeded with url: /data/2.5/weather?lat=3.139&lon=101.6869&appid=test-key'
        )
        with pytest.raises(WeatherServiceError) as exc_info:
            service.get_weather(3.139, 101.6869)
        assert 'test-key' not in str(exc_info.value)
        assert 'test-key' not in caplog.text

    @patch('services.weather_service.requests.get')
    def test_non_object_body(self, mock_get, service):
        mock_get.side_effect = route_by_endpoint(current=['not', 'an', 'object'])
        with pytest.raises(WeatherServiceError):
            service.get_weather(3.139, 101.6869)

    @patch('services.weather_service.requests.get')
    def test_non_object_alerts_body(self, mock_get, service):
        mock_get.side_effect = route_by_endpoint(alerts=['unexpected'])
        assert service.get_weather(3.139, 101.6869)['alerts'] == []

    @patch('services.weather_service.requests.get')
    def test_unexpected_shape(self, mock_get, service):
        mock_get.side_effect = route_by_endpoint(current={'name': 'x'})
        with pytest.raises(WeatherServiceError):
            service.get_weather(3.139, 101.6869)

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv('OPENWEATHER_API_KEY', raising=False)
        service = WeatherService()
        assert service.is_enabled() is False
        with pytest.raises(MissingCredentialsError):
            service.get_weather(3.139, 101.6869)

    def test_invalid_coordinates(self, service):
        with pytest.raises(ValueError):
            service.get_weather(120, 0)
