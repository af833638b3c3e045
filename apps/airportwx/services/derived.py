"""
Unit conversions and derived aviation metrics.

Every function is pure and null-propagating: a missing input yields None
rather than a default, because zero is a valid measurement.
"""

import math
from datetime import date, datetime, timedelta, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo

# Unit conversion factors
MB_PER_INHG = 33.8639
KT_PER_MS = 1.943844
KT_PER_MPH = 0.868976
IN_PER_MM = 0.0393701

STANDARD_PRESSURE_INHG = 29.92


def mb_to_inhg(mb: Optional[float]) -> Optional[float]:
    if mb is None:
        return None
    return mb / MB_PER_INHG


def ms_to_knots(ms: Optional[float]) -> Optional[int]:
    if ms is None:
        return None
    return round(ms * KT_PER_MS)


def mph_to_knots(mph: Optional[float]) -> Optional[int]:
    if mph is None:
        return None
    return round(mph * KT_PER_MPH)


def fahrenheit_to_celsius(temp_f: Optional[float]) -> Optional[float]:
    if temp_f is None:
        return None
    return (temp_f - 32) * 5 / 9


def celsius_to_fahrenheit(temp_c: Optional[float]) -> Optional[int]:
    """Whole-degree Fahrenheit for display."""
    if temp_c is None:
        return None
    return round(temp_c * 9 / 5 + 32)


def mm_to_inches(mm: Optional[float]) -> Optional[float]:
    if mm is None:
        return None
    return mm * IN_PER_MM


def dewpoint(temp_c: Optional[float], humidity_pct: Optional[float]) -> Optional[float]:
    """Dewpoint in Celsius from temperature and relative humidity (Magnus)."""
    if temp_c is None or humidity_pct is None or humidity_pct <= 0:
        return None
    b = 17.368
    c = 238.88
    gamma = math.log(humidity_pct / 100) + (b * temp_c) / (c + temp_c)
    return (c * gamma) / (b - gamma)


def humidity_from_dewpoint(temp_c: Optional[float], dewpoint_c: Optional[float]) -> Optional[int]:
    """Relative humidity (whole percent) from temperature and dewpoint."""
    if temp_c is None or dewpoint_c is None:
        return None
    saturation = math.exp((17.67 * temp_c) / (temp_c + 243.5))
    actual = math.exp((17.67 * dewpoint_c) / (dewpoint_c + 243.5))
    return round(100 * actual / saturation)


def pressure_altitude(elevation_ft: float, pressure_inhg: Optional[float]) -> Optional[int]:
    if pressure_inhg is None:
        return None
    return round(elevation_ft + (STANDARD_PRESSURE_INHG - pressure_inhg) * 1000)


def density_altitude(
    elevation_ft: float,
    temp_c: Optional[float],
    pressure_inhg: Optional[float],
) -> Optional[int]:
    """
    Simplified density altitude.

    Pressure is not part of the formula but must be present: without it the
    station is not reporting a complete observation.
    """
    if temp_c is None or pressure_inhg is None:
        return None
    standard_temp_f = 59 - 0.003566 * elevation_ft
    actual_temp_f = temp_c * 9 / 5 + 32
    return round(elevation_ft + 120 * (actual_temp_f - standard_temp_f))


def flight_category(ceiling_ft: Optional[float], visibility_sm: Optional[float]) -> Optional[str]:
    """
    VFR/MVFR/IFR/LIFR from ceiling and visibility.

    A missing value never forces a stricter category on its own; with both
    missing the category cannot be decided and None is returned.
    """
    if ceiling_ft is None and visibility_sm is None:
        return None

    if (ceiling_ft is not None and ceiling_ft < 500) or (visibility_sm is not None and visibility_sm < 1):
        return 'LIFR'
    if (ceiling_ft is not None and ceiling_ft <= 1000) or (visibility_sm is not None and visibility_sm <= 3):
        return 'IFR'
    if (ceiling_ft is not None and ceiling_ft < 3000) or (visibility_sm is not None and visibility_sm < 5):
        return 'MVFR'
    return 'VFR'


def flight_category_class(category: Optional[str]) -> Optional[str]:
    """CSS status class used by the dashboard."""
    if category is None:
        return None
    return f"status-{category.lower()}"


def gust_factor(gust_kt: Optional[float], wind_kt: Optional[float]) -> int:
    """Spread between gust and sustained wind; 0 when either is missing or calm."""
    if gust_kt and wind_kt:
        return round(gust_kt - wind_kt)
    return 0


def dewpoint_spread(temp_c: Optional[float], dewpoint_c: Optional[float]) -> Optional[float]:
    if temp_c is None or dewpoint_c is None:
        return None
    return round(temp_c - dewpoint_c, 1)


def sun_times(lat: float, lon: float, tz_name: str, on_date: date) -> tuple[Optional[str], Optional[str]]:
    """
    Local sunrise and sunset as "HH:MM" strings for the given date.

    Uses the NOAA sunrise equation with the standard -0.833 degree solar
    altitude. Returns (None, None) during polar day or night.
    """
    day_of_year = on_date.timetuple().tm_yday
    gamma = 2 * math.pi / 365 * (day_of_year - 1)

    equation_of_time = 229.18 * (
        0.000075
        + 0.001868 * math.cos(gamma)
        - 0.032077 * math.sin(gamma)
        - 0.014615 * math.cos(2 * gamma)
        - 0.040849 * math.sin(2 * gamma)
    )
    declination = (
        0.006918
        - 0.399912 * math.cos(gamma)
        + 0.070257 * math.sin(gamma)
        - 0.006758 * math.cos(2 * gamma)
        + 0.000907 * math.sin(2 * gamma)
        - 0.002697 * math.cos(3 * gamma)
        + 0.00148 * math.sin(3 * gamma)
    )

    lat_rad = math.radians(lat)
    cos_hour_angle = (
        math.cos(math.radians(90.833)) / (math.cos(lat_rad) * math.cos(declination))
        - math.tan(lat_rad) * math.tan(declination)
    )
    if cos_hour_angle < -1 or cos_hour_angle > 1:
        return None, None
    hour_angle = math.degrees(math.acos(cos_hour_angle))

    # Minutes after UTC midnight
    solar_noon = 720 - 4 * lon - equation_of_time
    sunrise_min = solar_noon - 4 * hour_angle
    sunset_min = solar_noon + 4 * hour_angle

    midnight_utc = datetime(on_date.year, on_date.month, on_date.day, tzinfo=dt_timezone.utc)
    local_tz = ZoneInfo(tz_name)

    def _format(minutes: float) -> str:
        moment = midnight_utc + timedelta(minutes=minutes)
        return moment.astimezone(local_tz).strftime('%H:%M')

    return _format(sunrise_min), _format(sunset_min)
