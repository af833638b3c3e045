"""
Airport configuration.

Airports are defined in a JSON document (airports.json) of the form
{"airports": {"kspb": {...}, ...}}. The registry reloads the file whenever
its modification time changes, so edits take effect without a restart.
"""

import json
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from django.conf import settings

logger = logging.getLogger(__name__)

AIRPORT_ID_RE = re.compile(r'^[a-z0-9]{3,4}$')


class SourceType(Enum):
    """Primary weather source kind for an airport."""
    TEMPEST = 'tempest'
    AMBIENT = 'ambient'
    METAR = 'metar'

    @property
    def supports_concurrent_fetch(self) -> bool:
        """Station sources are fetched alongside a supplementary METAR."""
        return self in (SourceType.TEMPEST, SourceType.AMBIENT)


class ConfigurationError(Exception):
    """Airport configuration is missing or unreadable."""
    pass


@dataclass
class WeatherSourceConfig:
    """Primary weather source settings. Credentials are never logged."""
    type: str
    station_id: Optional[str] = None
    api_key: Optional[str] = field(default=None, repr=False)
    application_key: Optional[str] = field(default=None, repr=False)

    @property
    def source_type(self) -> Optional[SourceType]:
        try:
            return SourceType(self.type)
        except ValueError:
            return None


@dataclass
class Airport:
    """One configured airport."""
    id: str
    name: str = ''
    icao: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    elevation_ft: float = 0
    timezone: str = 'UTC'
    metar_station: Optional[str] = None
    weather_refresh_seconds: Optional[int] = None
    weather_source: WeatherSourceConfig = field(default_factory=lambda: WeatherSourceConfig(type='metar'))

    @classmethod
    def from_config(cls, airport_id: str, data: dict) -> 'Airport':
        source = data.get('weather_source') or {}
        refresh = data.get('weather_refresh_seconds')
        return cls(
            id=airport_id,
            name=data.get('name', ''),
            icao=data.get('icao'),
            lat=data.get('lat'),
            lon=data.get('lon'),
            elevation_ft=data.get('elevation_ft') or 0,
            timezone=data.get('timezone') or 'UTC',
            metar_station=data.get('metar_station'),
            weather_refresh_seconds=int(refresh) if refresh else None,
            weather_source=WeatherSourceConfig(
                type=str(source.get('type', 'metar')).lower(),
                station_id=source.get('station_id'),
                api_key=source.get('api_key'),
                application_key=source.get('application_key'),
            ),
        )


def normalize_airport_id(raw_id) -> str:
    return str(raw_id or '').strip().lower()


def validate_airport_id(raw_id) -> bool:
    """True if the id is 3-4 alphanumerics after trimming and lowercasing."""
    if not raw_id:
        return False
    return AIRPORT_ID_RE.match(normalize_airport_id(raw_id)) is not None


class AirportRegistry:
    """Loads airports.json and reloads it when the file changes."""

    def __init__(self, path: Optional[str] = None):
        self.path = path or getattr(settings, 'AIRPORTS_CONFIG_PATH', 'airports.json')
        self._lock = threading.Lock()
        self._airports: Optional[dict[str, Airport]] = None
        self._mtime: Optional[float] = None

    def _load(self) -> dict[str, Airport]:
        try:
            mtime = os.path.getmtime(self.path)
        except OSError:
            logger.error(f"Configuration file not found: {self.path}")
            raise ConfigurationError("Configuration unavailable")

        with self._lock:
            if self._airports is not None and self._mtime == mtime:
                return self._airports

            try:
                with open(self.path, encoding='utf-8') as f:
                    document = json.load(f)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to read configuration file {self.path}: {e}")
                raise ConfigurationError("Configuration unavailable")

            raw_airports = document.get('airports') if isinstance(document, dict) else None
            if not isinstance(raw_airports, dict):
                logger.error(f"Configuration file has no airports object: {self.path}")
                raise ConfigurationError("Configuration unavailable")

            airports = {}
            for airport_id, data in raw_airports.items():
                key = normalize_airport_id(airport_id)
                if not isinstance(data, dict):
                    logger.warning(f"Skipping malformed airport entry: {airport_id}")
                    continue
                try:
                    airports[key] = Airport.from_config(key, data)
                except (TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed airport entry {airport_id}: {e}")

            self._airports = airports
            self._mtime = mtime
            logger.info(f"Loaded {len(airports)} airports from {self.path}")
            return airports

    def get(self, airport_id: str) -> Optional[Airport]:
        """Airport for an id, or None if unknown. Raises ConfigurationError."""
        return self._load().get(normalize_airport_id(airport_id))

    def all(self) -> list[Airport]:
        return list(self._load().values())
