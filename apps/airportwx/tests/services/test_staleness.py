"""Tests for per-source stale data suppression."""

from datetime import datetime, timedelta, timezone as dt_timezone

from django.test import SimpleTestCase

from apps.airportwx.services.records import DAILY_TRACKING_FIELDS, METAR_FIELDS, PRIMARY_FIELDS
from apps.airportwx.services.staleness import STALE_THRESHOLD_SECONDS, suppress_stale
from apps.airportwx.tests.helpers import make_record

NOW = datetime(2024, 6, 21, 18, 0, 0, tzinfo=dt_timezone.utc)


class SuppressStaleTests(SimpleTestCase):
    """Tests for suppress_stale."""

    def aged(self, primary_seconds=0, metar_seconds=0):
        return make_record(
            NOW,
            last_updated_primary=NOW - timedelta(seconds=primary_seconds),
            last_updated_metar=NOW - timedelta(seconds=metar_seconds),
        )

    def test_fresh_record_unchanged(self):
        record = self.aged()
        self.assertEqual(suppress_stale(record, now=NOW), record)

    def test_primary_at_threshold_is_nulled(self):
        result = suppress_stale(self.aged(primary_seconds=STALE_THRESHOLD_SECONDS), now=NOW)
        for name in PRIMARY_FIELDS:
            self.assertIsNone(getattr(result, name), name)

    def test_primary_just_under_threshold_is_kept(self):
        result = suppress_stale(self.aged(primary_seconds=STALE_THRESHOLD_SECONDS - 1), now=NOW)
        self.assertEqual(result.temperature_c, 15.0)
        self.assertEqual(result.wind_speed_kt, 8)

    def test_stale_primary_keeps_metar_fields(self):
        result = suppress_stale(self.aged(primary_seconds=4 * 3600), now=NOW)
        self.assertEqual(result.visibility_sm, 10.0)
        self.assertEqual(result.ceiling_ft, 5000)
        self.assertEqual(result.flight_category, 'VFR')

    def test_stale_metar_keeps_primary_fields(self):
        result = suppress_stale(self.aged(metar_seconds=STALE_THRESHOLD_SECONDS), now=NOW)
        for name in METAR_FIELDS:
            self.assertIsNone(getattr(result, name), name)
        self.assertEqual(result.temperature_c, 15.0)
        self.assertEqual(result.density_altitude_ft, 143)

    def test_daily_tracking_and_sun_times_survive(self):
        record = self.aged(primary_seconds=86400, metar_seconds=86400)
        result = suppress_stale(record, now=NOW)
        for name in DAILY_TRACKING_FIELDS + ('sunrise', 'sunset'):
            self.assertEqual(getattr(result, name), getattr(record, name), name)

    def test_flight_category_recomputed_from_surviving_fields(self):
        record = make_record(NOW, visibility_sm=2.0, ceiling_ft=None,
                             flight_category='VFR', flight_category_class='status-vfr')
        result = suppress_stale(record, now=NOW)
        self.assertEqual(result.flight_category, 'IFR')
        self.assertEqual(result.flight_category_class, 'status-ifr')

    def test_custom_threshold(self):
        result = suppress_stale(self.aged(primary_seconds=600), threshold_seconds=600, now=NOW)
        self.assertIsNone(result.temperature_c)

    def test_input_not_mutated(self):
        record = self.aged(primary_seconds=86400, metar_seconds=86400)
        suppress_stale(record, now=NOW)
        self.assertEqual(record.temperature_c, 15.0)
        self.assertEqual(record.flight_category, 'VFR')
