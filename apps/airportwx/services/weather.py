"""
Weather aggregation service.

Builds one WeatherRecord per refresh cycle for an airport:
- Primary source: a Tempest or Ambient Weather station, or METAR itself
- Supplementary METAR (aviationweather.gov) for visibility, ceiling and clouds

Station airports fetch the station and METAR in parallel. The primary
source is mandatory; METAR only fills sky-condition fields the station
cannot provide. Derived aviation metrics and daily extremes are added
before the record is returned. Persistence belongs to the caller.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError, as_completed
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from django.conf import settings
from django.utils import timezone

from ..airports import Airport, SourceType
from .derived import (
    celsius_to_fahrenheit,
    density_altitude,
    dewpoint_spread,
    flight_category,
    flight_category_class,
    gust_factor,
    humidity_from_dewpoint,
    pressure_altitude,
    sun_times,
)
from .extremes import PeakGustTracker, TemperatureExtremes
from .parsers import metar_station_for, parse_ambient, parse_metar, parse_tempest
from .records import SourceObservation, WeatherRecord

logger = logging.getLogger(__name__)

TEMPEST_URL = 'https://swd.weatherflow.com/swd/rest/observations/station/{station_id}'
AMBIENT_URL = 'https://api.ambientweather.net/v1/devices'
METAR_URL = 'https://aviationweather.gov/api/data/metar'

STATION_PARSERS = {
    SourceType.TEMPEST: parse_tempest,
    SourceType.AMBIENT: parse_ambient,
}


class WeatherServiceError(Exception):
    """Base exception for weather service errors."""
    pass


class WeatherService:
    """Fetches, fuses and enriches weather for one airport at a time."""

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        temperature_extremes: Optional[TemperatureExtremes] = None,
        peak_gusts: Optional[PeakGustTracker] = None,
    ):
        self.clock = clock or timezone.now
        # Upper bound on one upstream call, body included; httpx bounds each read
        self.total_timeout = getattr(settings, 'WEATHER_HTTP_TIMEOUT', 10.0)
        self.timeout = httpx.Timeout(
            self.total_timeout,
            connect=getattr(settings, 'WEATHER_HTTP_CONNECT_TIMEOUT', 5.0),
        )
        self.temperature_extremes = temperature_extremes or TemperatureExtremes(clock=self.clock)
        self.peak_gusts = peak_gusts or PeakGustTracker(clock=self.clock)

    def refresh(self, airport: Airport) -> WeatherRecord:
        """
        Run one refresh cycle for an airport.

        Raises WeatherServiceError if the primary source yields no data or
        the configured source type is unknown.
        """
        source_type = airport.weather_source.source_type
        if source_type is None:
            raise WeatherServiceError(f"Unknown weather source type: {airport.weather_source.type}")

        logger.info(f"Refreshing weather for {airport.id} ({source_type.value})")

        if source_type.supports_concurrent_fetch:
            fetch_station = self._fetch_tempest if source_type == SourceType.TEMPEST else self._fetch_ambient
            bodies = self._fetch_concurrently(airport, {'primary': fetch_station, 'metar': self._fetch_metar})
            primary = STATION_PARSERS[source_type](bodies['primary'])
            metar = parse_metar(bodies['metar'], airport)
            if metar is None:
                logger.info(f"No METAR supplement for {airport.id}")
        else:
            bodies = self._fetch_concurrently(airport, {'primary': self._fetch_metar})
            primary = parse_metar(bodies['primary'], airport)
            metar = None

        if primary is None:
            raise WeatherServiceError(f"No data from primary weather source for {airport.id}")

        now = self.clock()
        record = self._build_record(airport, primary, metar, now)
        self._apply_daily_extremes(airport, record, now)
        return record

    def _fetch_concurrently(self, airport: Airport, fetchers: dict[str, Callable]) -> dict[str, Optional[str]]:
        """
        Run fetchers in parallel and return their bodies by name.

        Waits at most total_timeout for all of them; a fetch still running
        at the deadline counts as no data and is not waited for.
        """
        results = dict.fromkeys(fetchers)
        executor = ThreadPoolExecutor(max_workers=len(fetchers))
        try:
            futures = {
                executor.submit(fetch, airport): source_name
                for source_name, fetch in fetchers.items()
            }
            try:
                for future in as_completed(futures, timeout=self.total_timeout):
                    source_name = futures[future]
                    try:
                        results[source_name] = future.result()
                    except Exception:
                        logger.exception(f"Error fetching {source_name} weather for {airport.id}")
                        results[source_name] = None
            except FuturesTimeoutError:
                late = sorted(name for future, name in futures.items() if not future.done())
                logger.warning(f"Weather fetch for {airport.id} exceeded {self.total_timeout}s: {', '.join(late)}")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def _get(self, url: str, params: dict, label: str) -> Optional[str]:
        """
        GET a URL and return the body, or None on any transport failure.

        The whole call, including reading the body, is bounded by
        total_timeout. Query parameters may carry credentials, so only the
        source label and status are logged, never the URL.
        """
        deadline = time.monotonic() + self.total_timeout
        try:
            with httpx.Client(timeout=self.timeout) as client:
                with client.stream('GET', url, params=params) as response:
                    if response.status_code != 200:
                        logger.warning(f"{label} API error: {response.status_code}")
                        return None
                    chunks = []
                    for chunk in response.iter_bytes():
                        if time.monotonic() > deadline:
                            logger.warning(f"{label} request exceeded {self.total_timeout}s")
                            return None
                        chunks.append(chunk)
                    encoding = response.charset_encoding or 'utf-8'
        except httpx.TimeoutException:
            logger.warning(f"{label} request timed out")
            return None
        except httpx.RequestError as e:
            logger.warning(f"{label} request failed: {type(e).__name__}")
            return None

        return b''.join(chunks).decode(encoding, errors='replace')

    def _fetch_tempest(self, airport: Airport) -> Optional[str]:
        source = airport.weather_source
        if not source.station_id or not source.api_key:
            logger.warning(f"Tempest source for {airport.id} missing station_id or api_key")
            return None
        url = TEMPEST_URL.format(station_id=source.station_id)
        return self._get(url, {'token': source.api_key}, f"Tempest ({airport.id})")

    def _fetch_ambient(self, airport: Airport) -> Optional[str]:
        source = airport.weather_source
        if not source.api_key or not source.application_key:
            logger.warning(f"Ambient source for {airport.id} requires api_key and application_key")
            return None
        params = {'applicationKey': source.application_key, 'apiKey': source.api_key}
        return self._get(AMBIENT_URL, params, f"Ambient ({airport.id})")

    def _fetch_metar(self, airport: Airport) -> Optional[str]:
        station = metar_station_for(airport)
        if not station:
            logger.warning(f"No METAR station configured for {airport.id}")
            return None
        params = {'ids': station, 'format': 'json', 'taf': 'false', 'hours': 0}
        return self._get(METAR_URL, params, f"METAR {station}")

    def _build_record(
        self,
        airport: Airport,
        primary: SourceObservation,
        metar: Optional[SourceObservation],
        now: datetime,
    ) -> WeatherRecord:
        visibility = primary.visibility_sm
        ceiling = primary.ceiling_ft
        cloud_cover = primary.cloud_cover

        # METAR never overrides station readings, it only fills sky condition
        if metar is not None:
            if visibility is None:
                visibility = metar.visibility_sm
            if ceiling is None:
                ceiling = metar.ceiling_ft
            if metar.cloud_cover is not None:
                cloud_cover = metar.cloud_cover

        temp_c = primary.temperature_c
        dewpoint_c = primary.dewpoint_c
        humidity = primary.humidity_pct
        if humidity is None:
            humidity = humidity_from_dewpoint(temp_c, dewpoint_c)
        pressure = primary.pressure_inhg
        category = flight_category(ceiling, visibility)
        sunrise, sunset = self._sun_times(airport, now)

        return WeatherRecord(
            last_updated_primary=now,
            last_updated_metar=now,
            last_updated=now,
            temperature_c=temp_c,
            temperature_f=celsius_to_fahrenheit(temp_c),
            dewpoint_c=dewpoint_c,
            dewpoint_f=celsius_to_fahrenheit(dewpoint_c),
            humidity_pct=humidity,
            pressure_inhg=pressure,
            wind_speed_kt=primary.wind_speed_kt,
            wind_direction_deg=primary.wind_direction_deg,
            gust_speed_kt=primary.gust_speed_kt,
            gust_factor_kt=gust_factor(primary.gust_speed_kt, primary.wind_speed_kt),
            precip_accum_in=primary.precip_accum_in,
            dewpoint_spread_c=dewpoint_spread(temp_c, dewpoint_c),
            pressure_altitude_ft=pressure_altitude(airport.elevation_ft, pressure),
            density_altitude_ft=density_altitude(airport.elevation_ft, temp_c, pressure),
            visibility_sm=visibility,
            ceiling_ft=ceiling,
            cloud_cover=cloud_cover,
            flight_category=category,
            flight_category_class=flight_category_class(category),
            sunrise=sunrise,
            sunset=sunset,
        )

    def _sun_times(self, airport: Airport, now: datetime) -> tuple[Optional[str], Optional[str]]:
        if airport.lat is None or airport.lon is None:
            return None, None
        try:
            local_date = now.astimezone(ZoneInfo(airport.timezone)).date()
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {airport.timezone!r} for {airport.id}")
            return None, None
        return sun_times(airport.lat, airport.lon, airport.timezone, local_date)

    def _apply_daily_extremes(self, airport: Airport, record: WeatherRecord, now: datetime) -> None:
        current_gust = record.gust_speed_kt if record.gust_speed_kt is not None else 0
        self.peak_gusts.record(airport.id, current_gust, now)
        peak = self.peak_gusts.query(airport.id, current_gust)
        record.peak_gust_today_kt = peak['value']
        record.peak_gust_time = peak['ts']

        if record.temperature_c is not None:
            self.temperature_extremes.record(airport.id, record.temperature_c, now)
            extremes = self.temperature_extremes.query(airport.id, record.temperature_c)
            record.temp_high_today_c = extremes['high']
            record.temp_high_time = extremes['high_ts']
            record.temp_low_today_c = extremes['low']
            record.temp_low_time = extremes['low_ts']
