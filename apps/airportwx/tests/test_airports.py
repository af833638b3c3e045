"""Tests for airport configuration loading."""

import json
import os
import tempfile
from pathlib import Path

from django.test import SimpleTestCase

from apps.airportwx.airports import (
    Airport,
    AirportRegistry,
    ConfigurationError,
    SourceType,
    WeatherSourceConfig,
    normalize_airport_id,
    validate_airport_id,
)
from apps.airportwx.tests.helpers import write_airports_config


class AirportIdTests(SimpleTestCase):
    """Tests for airport id validation."""

    def test_valid_ids(self):
        for raw_id in ('kspb', 'KSPB', ' kspb ', '0s9', 'S43'):
            self.assertTrue(validate_airport_id(raw_id), raw_id)

    def test_invalid_ids(self):
        for raw_id in (None, '', '  ', 'ks', 'kspbx', 'ks_b', 'k/pb', '../../x'):
            self.assertFalse(validate_airport_id(raw_id), raw_id)

    def test_normalize(self):
        self.assertEqual(normalize_airport_id('  KSPB\n'), 'kspb')


class AirportConfigTests(SimpleTestCase):
    """Tests for Airport.from_config and source types."""

    def test_from_config(self):
        airport = Airport.from_config('kspb', {
            'name': 'Scappoose',
            'icao': 'KSPB',
            'lat': 45.77,
            'lon': -122.86,
            'elevation_ft': 58,
            'timezone': 'America/Los_Angeles',
            'weather_refresh_seconds': '120',
            'weather_source': {'type': 'Tempest', 'station_id': '999', 'api_key': 'k'},
        })
        self.assertEqual(airport.elevation_ft, 58)
        self.assertEqual(airport.weather_refresh_seconds, 120)
        self.assertEqual(airport.weather_source.source_type, SourceType.TEMPEST)
        self.assertEqual(airport.weather_source.station_id, '999')

    def test_defaults(self):
        airport = Airport.from_config('kxyz', {})
        self.assertEqual(airport.timezone, 'UTC')
        self.assertEqual(airport.elevation_ft, 0)
        self.assertIsNone(airport.weather_refresh_seconds)
        self.assertEqual(airport.weather_source.source_type, SourceType.METAR)

    def test_unknown_source_type(self):
        self.assertIsNone(WeatherSourceConfig(type='davis').source_type)

    def test_concurrent_fetch_sources(self):
        self.assertTrue(SourceType.TEMPEST.supports_concurrent_fetch)
        self.assertTrue(SourceType.AMBIENT.supports_concurrent_fetch)
        self.assertFalse(SourceType.METAR.supports_concurrent_fetch)

    def test_credentials_not_in_repr(self):
        source = WeatherSourceConfig(type='ambient', api_key='secret-a', application_key='secret-b')
        self.assertNotIn('secret', repr(source))


class AirportRegistryTests(SimpleTestCase):
    """Tests for AirportRegistry."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_get_and_all(self):
        registry = AirportRegistry(str(write_airports_config(self.directory)))
        self.assertEqual(registry.get('KSPB').name, 'Scappoose Industrial Airpark')
        self.assertIsNone(registry.get('kxyz'))
        self.assertEqual(sorted(a.id for a in registry.all()), ['kczk', 'kspb'])

    def test_reloads_when_file_changes(self):
        path = write_airports_config(self.directory)
        registry = AirportRegistry(str(path))
        self.assertIsNone(registry.get('khio'))

        write_airports_config(self.directory, {'khio': {'name': 'Hillsboro'}})
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))

        self.assertEqual(registry.get('khio').name, 'Hillsboro')
        self.assertIsNone(registry.get('kspb'))

    def test_missing_file(self):
        registry = AirportRegistry(str(self.directory / 'missing.json'))
        with self.assertLogs('apps.airportwx.airports', level='ERROR'):
            with self.assertRaises(ConfigurationError):
                registry.get('kspb')

    def test_invalid_json(self):
        path = self.directory / 'airports.json'
        path.write_text('{"airports": ')
        with self.assertLogs('apps.airportwx.airports', level='ERROR'):
            with self.assertRaises(ConfigurationError):
                AirportRegistry(str(path)).get('kspb')

    def test_missing_airports_object(self):
        path = self.directory / 'airports.json'
        path.write_text(json.dumps({'airports': []}))
        with self.assertLogs('apps.airportwx.airports', level='ERROR'):
            with self.assertRaises(ConfigurationError):
                AirportRegistry(str(path)).all()

    def test_malformed_entry_is_skipped(self):
        path = write_airports_config(self.directory, {'kspb': 'oops', 'kczk': {'name': 'Cascade'}})
        registry = AirportRegistry(str(path))
        with self.assertLogs('apps.airportwx.airports', level='WARNING'):
            airports = registry.all()
        self.assertEqual([a.id for a in airports], ['kczk'])

    def test_non_numeric_refresh_interval_is_skipped(self):
        path = write_airports_config(self.directory, {
            'kspb': {'name': 'Scappoose', 'weather_refresh_seconds': 'often'},
            'kczk': {'name': 'Cascade', 'weather_refresh_seconds': 300},
        })
        registry = AirportRegistry(str(path))
        with self.assertLogs('apps.airportwx.airports', level='WARNING'):
            self.assertIsNone(registry.get('kspb'))
        self.assertEqual(registry.get('kczk').weather_refresh_seconds, 300)

    def test_keys_are_normalized(self):
        path = write_airports_config(self.directory, {'KHIO': {'name': 'Hillsboro'}})
        self.assertIsNotNone(AirportRegistry(str(path)).get('khio'))
