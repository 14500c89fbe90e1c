"""
Location lookup (Mapbox) and weather forecasts (OpenWeather) for tournament venues.
"""
import datetime
import logging
from urllib.parse import quote

import requests

from .errors import GeocodingError

logger = logging.getLogger(__name__)

MAPBOX_GEOCODE_URL = 'https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json'
OPENWEATHER_GEO_URL = 'https://api.openweathermap.org/geo/1.0/direct'
OPENWEATHER_FORECAST_URL = 'https://api.openweathermap.org/data/2.5/forecast'
SUGGESTION_TYPES = 'place,postcode,locality,region,address,poi'
MAX_FORECASTS = 8
REQUEST_TIMEOUT = 10


def _mapbox_url(query):
    return MAPBOX_GEOCODE_URL.format(query=quote(query, safe=''))


def geocode_location(query, token):
    """Resolve a free-text location to {'lat', 'lng', 'place_name'}."""
    if not query or not isinstance(query, str) or not query.strip():
        raise GeocodingError('Invalid or missing "query"', 400)
    if not token:
        raise GeocodingError('MAPBOX_PUBLIC_TOKEN not configured', 500)

    try:
        response = requests.get(_mapbox_url(query), params={'access_token': token, 'limit': 1},
                                timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        logger.error("Mapbox request failed: %s", e)
        raise GeocodingError('Geocoding failed', 502)
    if not response.ok:
        logger.error("Mapbox error %s: %s", response.status_code, response.text)
        raise GeocodingError('Geocoding failed', 502)

    features = (response.json() or {}).get('features') or []
    feature = features[0] if features else {}
    center = feature.get('center') or []
    if len(center) < 2:
        raise GeocodingError('No results found', 404)

    lng, lat = center[0], center[1]
    return {'lat': lat, 'lng': lng, 'place_name': feature.get('place_name')}


def suggest_locations(query, token, limit=5):
    """Autocomplete suggestions; lookup failures give an empty list."""
    if not query or not isinstance(query, str) or len(query.strip()) < 2:
        return []
    if not token:
        raise GeocodingError('Missing MAPBOX_PUBLIC_TOKEN', 500)

    params = {'limit': limit, 'types': SUGGESTION_TYPES, 'access_token': token}
    try:
        response = requests.get(_mapbox_url(query), params=params, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        logger.error("Mapbox request failed: %s", e)
        return []
    if not response.ok:
        logger.error("Mapbox error %s: %s", response.status_code, response.text)
        return []

    suggestions = []
    for feature in (response.json() or {}).get('features') or []:
        center = feature.get('center') or []
        suggestions.append({
            'id': str(feature.get('id')),
            'place_name': str(feature.get('place_name') or feature.get('text') or ''),
            'lat': center[1] if len(center) >= 2 else None,
            'lng': center[0] if len(center) >= 2 else None,
        })
    return suggestions


def _forecast_date(item):
    return datetime.datetime.fromtimestamp(item['dt'], tz=datetime.timezone.utc).date()


def get_weather_forecast(location, api_key, start_date=None):
    """
    Forecast for a venue: {'city': ..., 'forecasts': [...]}.

    With ``start_date`` only the forecasts for that day are kept. At most
    MAX_FORECASTS entries (3-hour steps) are returned.
    """
    if not location:
        raise GeocodingError('Location is required', 400)
    if not api_key:
        logger.error("OPENWEATHER_API_KEY not configured")
        raise GeocodingError('Weather service not configured', 500)

    try:
        geo_response = requests.get(OPENWEATHER_GEO_URL, params={'q': location, 'limit': 1, 'appid': api_key},
                                    timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        logger.error("OpenWeather geocoding failed: %s", e)
        raise GeocodingError('Failed to geocode location', 500)
    if not geo_response.ok:
        logger.error("OpenWeather geocoding error %s: %s", geo_response.status_code, geo_response.text)
        raise GeocodingError('Failed to geocode location', 500)

    places = geo_response.json() or []
    if not places:
        raise GeocodingError('Location not found', 404)
    lat, lon = places[0]['lat'], places[0]['lon']

    try:
        weather_response = requests.get(
            OPENWEATHER_FORECAST_URL,
            params={'lat': lat, 'lon': lon, 'units': 'imperial', 'appid': api_key},
            timeout=REQUEST_TIMEOUT
        )
    except requests.RequestException as e:
        logger.error("OpenWeather forecast failed: %s", e)
        raise GeocodingError('Failed to fetch weather data', 500)
    if not weather_response.ok:
        logger.error("OpenWeather forecast error %s: %s", weather_response.status_code, weather_response.text)
        raise GeocodingError('Failed to fetch weather data', 500)

    weather = weather_response.json() or {}
    forecasts = weather.get('list') or []
    if start_date:
        if isinstance(start_date, str):
            start_date = datetime.datetime.fromisoformat(start_date).date()
        elif isinstance(start_date, datetime.datetime):
            start_date = start_date.date()
        forecasts = [item for item in forecasts if _forecast_date(item) == start_date]

    return {'city': weather.get('city'), 'forecasts': forecasts[:MAX_FORECASTS]}
