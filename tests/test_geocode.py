"""
Tests for venue lookup and weather forecasts, with the HTTP layer mocked out.
"""
import pytest
import sys
import os
from datetime import datetime, timezone
from unittest.mock import patch, MagicMock

import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tourney.errors import GeocodingError
from tourney.geocode import geocode_location, suggest_locations, get_weather_forecast


def _response(payload, ok=True, status_code=200):
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.json.return_value = payload
    response.text = ''
    return response


def _timestamp(year, month, day, hour):
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp())


class TestGeocodeLocation:
    @patch('tourney.geocode.requests.get')
    def test_first_feature(self, mock_get):
        mock_get.return_value = _response({'features': [
            {'center': [-122.51, 37.76], 'place_name': 'Ocean Beach, San Francisco'},
        ]})
        result = geocode_location('Ocean Beach', 'token')
        assert result == {'lat': 37.76, 'lng': -122.51, 'place_name': 'Ocean Beach, San Francisco'}
        url = mock_get.call_args[0][0]
        assert url.endswith('/Ocean%20Beach.json')
        assert mock_get.call_args[1]['params']['limit'] == 1

    def test_missing_query(self):
        with pytest.raises(GeocodingError) as exc_info:
            geocode_location('  ', 'token')
        assert exc_info.value.status_code == 400

    def test_missing_token(self):
        with pytest.raises(GeocodingError) as exc_info:
            geocode_location('Ocean Beach', None)
        assert exc_info.value.status_code == 500

    @patch('tourney.geocode.requests.get')
    def test_no_results(self, mock_get):
        mock_get.return_value = _response({'features': []})
        with pytest.raises(GeocodingError) as exc_info:
            geocode_location('Nowhere', 'token')
        assert exc_info.value.status_code == 404

    @patch('tourney.geocode.requests.get')
    def test_upstream_failure(self, mock_get):
        mock_get.return_value = _response({}, ok=False, status_code=401)
        with pytest.raises(GeocodingError) as exc_info:
            geocode_location('Ocean Beach', 'token')
        assert exc_info.value.status_code == 502

    @patch('tourney.geocode.requests.get', side_effect=requests.ConnectionError('down'))
    def test_network_failure(self, mock_get):
        with pytest.raises(GeocodingError) as exc_info:
            geocode_location('Ocean Beach', 'token')
        assert exc_info.value.status_code == 502


class TestSuggestLocations:
    @patch('tourney.geocode.requests.get')
    def test_suggestions(self, mock_get):
        mock_get.return_value = _response({'features': [
            {'id': 'place.1', 'place_name': 'Ocean Beach, San Francisco', 'center': [-122.51, 37.76]},
            {'id': 'poi.2', 'text': 'Ocean Beach Pier'},
        ]})
        suggestions = suggest_locations('Ocean', 'token')
        assert suggestions[0] == {'id': 'place.1', 'place_name': 'Ocean Beach, San Francisco',
                                  'lat': 37.76, 'lng': -122.51}
        assert suggestions[1]['place_name'] == 'Ocean Beach Pier'
        assert suggestions[1]['lat'] is None

    def test_short_query(self):
        assert suggest_locations('O', 'token') == []

    @patch('tourney.geocode.requests.get')
    def test_failure_gives_no_suggestions(self, mock_get):
        mock_get.return_value = _response({}, ok=False, status_code=500)
        assert suggest_locations('Ocean', 'token') == []


class TestWeatherForecast:
    @patch('tourney.geocode.requests.get')
    def test_forecast_for_start_date(self, mock_get):
        forecasts = [{'dt': _timestamp(2026, 7, 10, 21)}]
        forecasts += [{'dt': _timestamp(2026, 7, 11, hour)} for hour in range(0, 24, 3)]
        forecasts += [{'dt': _timestamp(2026, 7, 12, 0)}]
        mock_get.side_effect = [
            _response([{'lat': 37.76, 'lon': -122.51}]),
            _response({'city': {'name': 'San Francisco'}, 'list': forecasts}),
        ]
        result = get_weather_forecast('San Francisco', 'key', '2026-07-11')
        assert result['city'] == {'name': 'San Francisco'}
        assert len(result['forecasts']) == 8
        assert result['forecasts'][0]['dt'] == _timestamp(2026, 7, 11, 0)

    @patch('tourney.geocode.requests.get')
    def test_forecast_capped_without_date(self, mock_get):
        forecasts = [{'dt': _timestamp(2026, 7, 11, 0) + i * 10800} for i in range(20)]
        mock_get.side_effect = [
            _response([{'lat': 1, 'lon': 2}]),
            _response({'city': None, 'list': forecasts}),
        ]
        assert len(get_weather_forecast('Somewhere', 'key')['forecasts']) == 8

    @patch('tourney.geocode.requests.get')
    def test_unknown_location(self, mock_get):
        mock_get.return_value = _response([])
        with pytest.raises(GeocodingError) as exc_info:
            get_weather_forecast('Atlantis', 'key')
        assert exc_info.value.status_code == 404

    def test_not_configured(self):
        with pytest.raises(GeocodingError) as exc_info:
            get_weather_forecast('San Francisco', '')
        assert exc_info.value.status_code == 500

    def test_location_required(self):
        with pytest.raises(GeocodingError) as exc_info:
            get_weather_forecast('', 'key')
        assert exc_info.value.status_code == 400
