"""Shared fixtures for airportwx tests."""

import json
from datetime import datetime, timedelta, timezone as dt_timezone
from pathlib import Path

from apps.airportwx.airports import Airport, WeatherSourceConfig
from apps.airportwx.services.records import WeatherRecord


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 6, 21, 18, 0, 0, tzinfo=dt_timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_airport(airport_id='kspb', source_type='tempest', **overrides):
    source = overrides.pop('weather_source', None) or WeatherSourceConfig(
        type=source_type,
        station_id='12345',
        api_key='secret-token',
        application_key='secret-app-key' if source_type == 'ambient' else None,
    )
    values = {
        'name': 'Scappoose Industrial Airpark',
        'icao': 'KSPB',
        'lat': 45.0,
        'lon': -122.0,
        'elevation_ft': 100,
        'timezone': 'America/Los_Angeles',
        'metar_station': 'KSPB',
    }
    values.update(overrides)
    return Airport(id=airport_id, weather_source=source, **values)


def make_record(now, **overrides):
    values = {
        'last_updated_primary': now,
        'last_updated_metar': now,
        'last_updated': now,
        'temperature_c': 15.0,
        'temperature_f': 59,
        'dewpoint_c': 10.0,
        'dewpoint_f': 50,
        'humidity_pct': 72,
        'pressure_inhg': 30.01,
        'wind_speed_kt': 8,
        'wind_direction_deg': 270,
        'gust_speed_kt': 14,
        'gust_factor_kt': 6,
        'precip_accum_in': 0.0,
        'dewpoint_spread_c': 5.0,
        'pressure_altitude_ft': 10,
        'density_altitude_ft': 143,
        'visibility_sm': 10.0,
        'ceiling_ft': 5000,
        'cloud_cover': 'BKN',
        'flight_category': 'VFR',
        'flight_category_class': 'status-vfr',
        'temp_high_today_c': 18.0,
        'temp_high_time': now - timedelta(hours=2),
        'temp_low_today_c': 9.0,
        'temp_low_time': now - timedelta(hours=10),
        'peak_gust_today_kt': 22,
        'peak_gust_time': now - timedelta(hours=1),
        'sunrise': '05:21',
        'sunset': '20:58',
    }
    values.update(overrides)
    return WeatherRecord(**values)


def write_airports_config(directory, airports=None):
    """Write an airports.json into directory and return its path."""
    if airports is None:
        airports = {
            'kspb': {
                'name': 'Scappoose Industrial Airpark',
                'icao': 'KSPB',
                'lat': 45.0,
                'lon': -122.0,
                'elevation_ft': 100,
                'timezone': 'America/Los_Angeles',
                'metar_station': 'KSPB',
                'weather_source': {
                    'type': 'tempest',
                    'station_id': '12345',
                    'api_key': 'secret-token',
                },
            },
            'kczk': {
                'name': 'Cascade Locks State',
                'icao': 'KCZK',
                'lat': 45.67,
                'lon': -121.87,
                'elevation_ft': 151,
                'timezone': 'America/Los_Angeles',
                'weather_refresh_seconds': 300,
                'weather_source': {'type': 'metar'},
            },
        }
    path = Path(directory) / 'airports.json'
    path.write_text(json.dumps({'airports': airports}))
    return path


def tempest_payload(**fields):
    obs = {
        'air_temperature': 15.0,
        'relative_humidity': 70,
        'sea_level_pressure': 1013.25,
        'wind_avg': 5.0,
        'wind_gust': 7.5,
        'wind_direction': 270,
        'precip_accum_local_day_final': 25.4,
        'dew_point': 9.6,
    }
    obs.update(fields)
    return json.dumps({'station_id': 12345, 'obs': [obs]})


def ambient_payload(**fields):
    last = {
        'tempf': 59.0,
        'humidity': 70,
        'baromrelin': 29.92,
        'windspeedmph': 10,
        'windgustmph': 20,
        'winddir': 180,
        'dailyrainin': 0.1,
        'dewPoint': 50.0,
    }
    last.update(fields)
    return json.dumps([{'macAddress': '00:00:00:00:00:00', 'lastData': last}])


def metar_payload(**fields):
    report = {
        'icaoId': 'KSPB',
        'temp': 10,
        'dewp': 5,
        'altim': 1013.2,
        'wdir': 250,
        'wspd': 8,
        'wgust': 15,
        'visib': '10+',
        'pcp24hr': None,
        'clouds': [
            {'cover': 'FEW', 'base': 2000},
            {'cover': 'BKN', 'base': 4500},
        ],
    }
    report.update(fields)
    return json.dumps([report])
