"""
Upstream payload parsers.

Each parser turns one upstream response body into a SourceObservation in
canonical units, or returns None when the payload holds no usable data:
- Tempest (WeatherFlow) station observations
- Ambient Weather device readings
- aviationweather.gov METAR

Parsers never raise on bad input. A field that is missing or not numeric
becomes None; other fields in the same payload are unaffected.
"""

import json
import logging
import math
import re
from typing import Any, Optional

from .derived import (
    dewpoint,
    fahrenheit_to_celsius,
    humidity_from_dewpoint,
    mb_to_inhg,
    mm_to_inches,
    mph_to_knots,
    ms_to_knots,
)
from .records import CEILING_COVERS, CloudCover, SourceObservation

logger = logging.getLogger(__name__)

# METAR altimeter settings above this are hectopascals, not inHg
ALTIMETER_HPA_THRESHOLD = 100

_VISIBILITY_RE = re.compile(r'^(?:(\d+)\s+)?(\d+)/(\d+)$')


def _decode(payload: Any) -> Any:
    """Decode a raw body to JSON; already-decoded values pass through."""
    if payload is None:
        return None
    if isinstance(payload, bytes):
        try:
            payload = payload.decode('utf-8')
        except UnicodeDecodeError:
            return None
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except ValueError:
            return None
    return payload


def as_number(value: Any) -> Optional[float]:
    """Numeric value or None; booleans, NaN and non-numeric strings are None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _as_int(value: Any) -> Optional[int]:
    number = as_number(value)
    if number is None:
        return None
    return round(number)


def parse_visibility(token: Any) -> Optional[float]:
    """
    Statute miles from a METAR visibility token.

    Accepts numbers, whole-number strings, fractions ("1/2"), mixed
    numbers ("1 1/2") and a trailing "+" meaning "at least" ("10+").
    """
    if token is None or isinstance(token, bool):
        return None
    if isinstance(token, (int, float)):
        return as_number(token)
    if not isinstance(token, str):
        return None

    text = token.strip().upper()
    if text.endswith('SM'):
        text = text[:-2].strip()
    text = text.rstrip('+').strip()
    if not text:
        return None

    number = as_number(text)
    if number is not None:
        return number

    match = _VISIBILITY_RE.match(text)
    if match is None:
        return None
    whole, numerator, denominator = match.groups()
    if int(denominator) == 0:
        return None
    value = int(numerator) / int(denominator)
    if whole:
        value += int(whole)
    return value


def _fill_dewpoint(obs: SourceObservation) -> SourceObservation:
    if obs.dewpoint_c is None:
        obs.dewpoint_c = dewpoint(obs.temperature_c, obs.humidity_pct)
    return obs


def parse_tempest(payload: Any) -> Optional[SourceObservation]:
    """Parse a Tempest station observations response."""
    data = _decode(payload)
    if not isinstance(data, dict):
        return None

    observations = data.get('obs')
    if not isinstance(observations, list) or not observations:
        return None
    obs = observations[0]
    if not isinstance(obs, dict):
        return None

    result = SourceObservation(
        temperature_c=as_number(obs.get('air_temperature')),
        humidity_pct=as_number(obs.get('relative_humidity')),
        pressure_inhg=mb_to_inhg(as_number(obs.get('sea_level_pressure'))),
        wind_speed_kt=ms_to_knots(as_number(obs.get('wind_avg'))),
        wind_direction_deg=_as_int(obs.get('wind_direction')),
        gust_speed_kt=ms_to_knots(as_number(obs.get('wind_gust'))),
        precip_accum_in=mm_to_inches(as_number(obs.get('precip_accum_local_day_final'))),
        dewpoint_c=as_number(obs.get('dew_point')),
    )
    return _fill_dewpoint(result)


def parse_ambient(payload: Any) -> Optional[SourceObservation]:
    """Parse an Ambient Weather devices response (first device only)."""
    data = _decode(payload)
    if not isinstance(data, list) or not data:
        return None
    device = data[0]
    if not isinstance(device, dict):
        return None
    last = device.get('lastData')
    if not isinstance(last, dict) or not last:
        return None

    result = SourceObservation(
        temperature_c=fahrenheit_to_celsius(as_number(last.get('tempf'))),
        humidity_pct=as_number(last.get('humidity')),
        pressure_inhg=as_number(last.get('baromrelin')),
        wind_speed_kt=mph_to_knots(as_number(last.get('windspeedmph'))),
        wind_direction_deg=_as_int(last.get('winddir')),
        gust_speed_kt=mph_to_knots(as_number(last.get('windgustmph'))),
        precip_accum_in=as_number(last.get('dailyrainin')),
        dewpoint_c=fahrenheit_to_celsius(as_number(last.get('dewPoint'))),
    )
    return _fill_dewpoint(result)


def _sky_condition(clouds: Any) -> tuple[Optional[int], Optional[str]]:
    """Ceiling height and reported cover from a METAR cloud layer list."""
    if not isinstance(clouds, list):
        return None, None

    layers = [layer for layer in clouds if isinstance(layer, dict)]
    for layer in layers:
        cover = str(layer.get('cover') or '').upper()
        base = _as_int(layer.get('base'))
        if cover in CEILING_COVERS and base is not None:
            return base, cover

    valid_covers = {c.value for c in CloudCover}
    for layer in layers:
        cover = str(layer.get('cover') or '').upper()
        if cover in valid_covers:
            return None, cover
    return None, None


def parse_metar(payload: Any, airport=None) -> Optional[SourceObservation]:
    """
    Parse an aviationweather.gov METAR JSON response.

    The report matching the airport's METAR station (falling back to its
    ICAO code) is used when present, otherwise the first report.
    """
    data = _decode(payload)
    if not isinstance(data, list) or not data:
        return None

    report = data[0]
    station = metar_station_for(airport) if airport is not None else None
    if station:
        for candidate in data:
            if isinstance(candidate, dict) and str(candidate.get('icaoId', '')).upper() == station:
                report = candidate
                break
    if not isinstance(report, dict):
        return None

    temp_c = as_number(report.get('temp'))
    dewpoint_c = as_number(report.get('dewp'))

    pressure = as_number(report.get('altim'))
    if pressure is not None and pressure > ALTIMETER_HPA_THRESHOLD:
        pressure = mb_to_inhg(pressure)

    ceiling, cover = _sky_condition(report.get('clouds'))

    return SourceObservation(
        temperature_c=temp_c,
        dewpoint_c=dewpoint_c,
        humidity_pct=humidity_from_dewpoint(temp_c, dewpoint_c),
        pressure_inhg=pressure,
        wind_speed_kt=_as_int(report.get('wspd')),
        wind_direction_deg=_as_int(report.get('wdir')),
        gust_speed_kt=_as_int(report.get('wgust')),
        precip_accum_in=as_number(report.get('pcp24hr')),
        visibility_sm=parse_visibility(report.get('visib')),
        ceiling_ft=ceiling,
        cloud_cover=cover,
    )


def metar_station_for(airport) -> Optional[str]:
    """METAR station id for an airport: explicit station, else its ICAO code."""
    station = getattr(airport, 'metar_station', None) or getattr(airport, 'icao', None)
    if not station:
        return None
    return str(station).strip().upper() or None
