"""Canonical weather record and the per-source observation it is built from."""

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone as dt_timezone
from enum import Enum
from typing import Optional


class CloudCover(Enum):
    """Cloud layer cover codes that can be reported as cloud_cover."""
    FEW = 'FEW'
    SCT = 'SCT'
    BKN = 'BKN'
    OVC = 'OVC'
    OVX = 'OVX'


# Cover codes that constitute a ceiling
CEILING_COVERS = frozenset({'BKN', 'OVC', 'OVX'})


@dataclass
class SourceObservation:
    """Normalized reading from one upstream source, in canonical units."""
    temperature_c: Optional[float] = None
    dewpoint_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    pressure_inhg: Optional[float] = None
    wind_speed_kt: Optional[int] = None
    wind_direction_deg: Optional[int] = None
    gust_speed_kt: Optional[int] = None
    precip_accum_in: Optional[float] = None
    visibility_sm: Optional[float] = None
    ceiling_ft: Optional[int] = None
    cloud_cover: Optional[str] = None


# Fields produced from the primary station (or derived from its readings)
PRIMARY_FIELDS = (
    'temperature_c',
    'temperature_f',
    'dewpoint_c',
    'dewpoint_f',
    'humidity_pct',
    'pressure_inhg',
    'wind_speed_kt',
    'wind_direction_deg',
    'gust_speed_kt',
    'gust_factor_kt',
    'precip_accum_in',
    'dewpoint_spread_c',
    'pressure_altitude_ft',
    'density_altitude_ft',
)

# Sky-condition fields supplied by METAR
METAR_FIELDS = (
    'visibility_sm',
    'ceiling_ft',
    'cloud_cover',
    'flight_category',
    'flight_category_class',
)

# Historical extrema for the day; never subject to staleness nulling
DAILY_TRACKING_FIELDS = (
    'temp_high_today_c',
    'temp_high_time',
    'temp_low_today_c',
    'temp_low_time',
    'peak_gust_today_kt',
    'peak_gust_time',
)

_INSTANT_FIELDS = frozenset({
    'temp_high_time',
    'temp_low_time',
    'peak_gust_time',
    'last_updated_primary',
    'last_updated_metar',
    'last_updated',
})


def to_timestamp(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp())


def from_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


@dataclass
class WeatherRecord:
    """One airport's weather for one refresh cycle."""
    last_updated_primary: datetime
    last_updated_metar: datetime
    last_updated: datetime

    # Primary source
    temperature_c: Optional[float] = None
    temperature_f: Optional[int] = None
    dewpoint_c: Optional[float] = None
    dewpoint_f: Optional[int] = None
    humidity_pct: Optional[float] = None
    pressure_inhg: Optional[float] = None
    wind_speed_kt: Optional[int] = None
    wind_direction_deg: Optional[int] = None
    gust_speed_kt: Optional[int] = None
    gust_factor_kt: Optional[int] = None
    precip_accum_in: Optional[float] = None
    dewpoint_spread_c: Optional[float] = None
    pressure_altitude_ft: Optional[int] = None
    density_altitude_ft: Optional[int] = None

    # METAR
    visibility_sm: Optional[float] = None
    ceiling_ft: Optional[int] = None
    cloud_cover: Optional[str] = None
    flight_category: Optional[str] = None
    flight_category_class: Optional[str] = None

    # Daily tracking
    temp_high_today_c: Optional[float] = None
    temp_high_time: Optional[datetime] = None
    temp_low_today_c: Optional[float] = None
    temp_low_time: Optional[datetime] = None
    peak_gust_today_kt: Optional[float] = None
    peak_gust_time: Optional[datetime] = None

    # Astronomical, local time of day
    sunrise: Optional[str] = None
    sunset: Optional[str] = None

    def to_dict(self) -> dict:
        """JSON-ready form; instants become UNIX seconds (UTC)."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _INSTANT_FIELDS:
                value = to_timestamp(value)
            data[f.name] = value
        data['last_updated_iso'] = self.last_updated.astimezone(dt_timezone.utc).isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'WeatherRecord':
        """
        Rebuild a record from to_dict() output.

        Missing keys become None and unknown keys are ignored. Raises
        ValueError if a provenance timestamp is missing or unusable.
        """
        if not isinstance(data, dict):
            raise ValueError("weather record must be a JSON object")
        kwargs = {}
        for f in fields(cls):
            value = data.get(f.name)
            if f.name in _INSTANT_FIELDS:
                try:
                    value = from_timestamp(value)
                except (TypeError, ValueError, OverflowError, OSError) as e:
                    raise ValueError(f"invalid timestamp for {f.name}: {e}")
            kwargs[f.name] = value
        for name in ('last_updated_primary', 'last_updated_metar', 'last_updated'):
            if kwargs[name] is None:
                raise ValueError(f"missing {name}")
        return cls(**kwargs)

    def copy(self, **changes) -> 'WeatherRecord':
        return replace(self, **changes)
