"""
Weather cache and delivery.

Serves per-airport weather snapshots from an on-disk cache using
stale-while-revalidate:
- FRESH: the snapshot is younger than the airport's refresh interval and
  is served as-is (HIT)
- STALE: the snapshot is served immediately and one background refresh is
  scheduled for the airport
- MISS: no usable snapshot, so the aggregator runs synchronously

Every served record passes through the staleness filter first. The file
modification time of a snapshot is its freshness clock.
"""

import hashlib
import json
import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from pathlib import Path
from typing import Callable, Optional

from django.conf import settings
from django.utils import timezone
from django.utils.http import http_date, parse_etags, parse_http_date_safe, quote_etag

from ..airports import Airport, AirportRegistry, ConfigurationError, normalize_airport_id, validate_airport_id
from ..rate_limit import RateLimiter
from .records import WeatherRecord
from .staleness import STALE_THRESHOLD_SECONDS, stale_sources, suppress_stale
from .storage import atomic_write_json
from .weather import WeatherService, WeatherServiceError

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = 'Too many requests. Please try again later.'
INVALID_ID_MESSAGE = 'Invalid airport ID'
NOT_FOUND_MESSAGE = 'Airport not found'
CONFIG_UNAVAILABLE_MESSAGE = 'Service temporarily unavailable'
UNAVAILABLE_MESSAGE = 'Weather data unavailable'


class SnapshotStore:
    """One JSON snapshot per airport: <directory>/weather_<airport>.json."""

    def __init__(self, directory=None):
        if directory is None:
            directory = Path(getattr(settings, 'WEATHER_CACHE_DIR', 'cache')) / 'weather'
        self.directory = Path(directory)

    def path_for(self, airport_id: str) -> Path:
        return self.directory / f"weather_{airport_id}.json"

    def read(self, airport_id: str) -> Optional[tuple[WeatherRecord, datetime]]:
        """Cached record and its modification time, or None if absent or unreadable."""
        path = self.path_for(airport_id)
        try:
            mtime = path.stat().st_mtime
            with open(path, encoding='utf-8') as f:
                data = json.load(f)
            record = WeatherRecord.from_dict(data)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable weather cache for {airport_id}: {e}")
            return None
        return record, datetime.fromtimestamp(mtime, tz=dt_timezone.utc)

    def write(self, airport_id: str, record: WeatherRecord) -> Optional[datetime]:
        """Persist a record atomically; returns the new mtime, or None on failure."""
        path = self.path_for(airport_id)
        try:
            atomic_write_json(path, record.to_dict())
            mtime = path.stat().st_mtime
        except OSError:
            logger.exception(f"Failed to write weather cache for {airport_id}")
            return None
        return datetime.fromtimestamp(mtime, tz=dt_timezone.utc)

    def paths(self, airport_id: Optional[str] = None) -> list[Path]:
        """Existing snapshot files, for one airport or all of them."""
        if airport_id is not None:
            path = self.path_for(airport_id)
            return [path] if path.exists() else []
        if not self.directory.is_dir():
            return []
        return sorted(self.directory.glob('weather_*.json'))

    def clear(self, airport_id: Optional[str] = None) -> list[Path]:
        """Delete snapshots; returns the paths removed."""
        removed = []
        for path in self.paths(airport_id):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError:
                logger.exception(f"Failed to delete weather cache {path}")
                continue
            removed.append(path)
        return removed


class BackgroundRefresher:
    """Runs at most one background refresh per airport on a daemon thread."""

    def __init__(self):
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        self._threads: list[threading.Thread] = []

    def schedule(self, key: str, target: Callable, *args) -> bool:
        """Start target(*args) unless a refresh for key is already running."""
        with self._lock:
            if key in self._in_flight:
                logger.debug(f"Background refresh already running for {key}")
                return False
            self._in_flight.add(key)
            thread = threading.Thread(
                target=self._run,
                args=(key, target, args),
                name=f"weather-refresh-{key}",
                daemon=True,
            )
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)

        thread.start()
        return True

    def _run(self, key: str, target: Callable, args: tuple):
        try:
            target(*args)
        except Exception:
            logger.exception(f"Background refresh failed for {key}")
        finally:
            with self._lock:
                self._in_flight.discard(key)

    def is_running(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for scheduled refreshes to finish."""
        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)


@dataclass
class WeatherResponse:
    """Transport-neutral response: status, JSON payload, headers and body."""
    status: int
    payload: Optional[dict] = None
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b''

    @classmethod
    def json(cls, status: int, payload: dict, headers: Optional[dict] = None) -> 'WeatherResponse':
        content = json.dumps(payload).encode('utf-8')
        return cls(status=status, payload=payload, headers=headers or {}, content=content)


def _error(status: int, message: str, headers: Optional[dict] = None) -> WeatherResponse:
    return WeatherResponse.json(status, {'success': False, 'error': message}, headers)


def _etag_matches(etag: str, if_none_match: str) -> bool:
    if if_none_match.strip() == '*':
        return True
    # Weak comparison
    candidates = {tag[2:] if tag.startswith('W/') else tag for tag in parse_etags(if_none_match)}
    return etag in candidates


class WeatherDelivery:
    """Process-wide entry point for weather requests."""

    def __init__(
        self,
        service: Optional[WeatherService] = None,
        store: Optional[SnapshotStore] = None,
        airports: Optional[AirportRegistry] = None,
        rate_limiter: Optional[RateLimiter] = None,
        refresher: Optional[BackgroundRefresher] = None,
        clock: Optional[Callable[[], datetime]] = None,
        default_refresh: Optional[int] = None,
        stale_threshold: Optional[int] = None,
    ):
        self.clock = clock or timezone.now
        self.service = service or WeatherService(clock=self.clock)
        self.store = store or SnapshotStore()
        self.airports = airports or AirportRegistry()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.refresher = refresher or BackgroundRefresher()
        if default_refresh is None:
            default_refresh = getattr(settings, 'WEATHER_REFRESH_DEFAULT', 60)
        if stale_threshold is None:
            stale_threshold = getattr(settings, 'WEATHER_STALE_THRESHOLD_SECONDS', STALE_THRESHOLD_SECONDS)
        self.default_refresh = default_refresh
        self.stale_threshold = stale_threshold

    def refresh_interval(self, airport: Airport) -> int:
        if airport.weather_refresh_seconds is not None:
            return airport.weather_refresh_seconds
        return self.default_refresh

    def request(
        self,
        raw_airport_id,
        client_key: str,
        if_none_match: Optional[str] = None,
        if_modified_since: Optional[str] = None,
    ) -> WeatherResponse:
        """Serve weather for one airport following the cache protocol."""
        if not self.rate_limiter.allow(client_key):
            logger.warning(f"Rate limit exceeded for {client_key}")
            return _error(429, RATE_LIMITED_MESSAGE, {'Retry-After': str(self.rate_limiter.window)})

        if not validate_airport_id(raw_airport_id):
            return _error(400, INVALID_ID_MESSAGE)
        airport_id = normalize_airport_id(raw_airport_id)

        try:
            airport = self.airports.get(airport_id)
        except ConfigurationError:
            return _error(503, CONFIG_UNAVAILABLE_MESSAGE)
        if airport is None:
            return _error(404, NOT_FOUND_MESSAGE)

        interval = self.refresh_interval(airport)
        now = self.clock()

        cached = self.store.read(airport_id)
        if cached is not None:
            record, modified = cached
            age = (now - modified).total_seconds()
            if age < interval:
                logger.debug(f"Weather cache hit for {airport_id} (age {age:.0f}s)")
                max_age = min(interval, math.ceil(interval - age))
                return self._fresh_response(
                    airport_id, record, modified, max_age, 'HIT', now, if_none_match, if_modified_since,
                )

            logger.debug(f"Weather cache stale for {airport_id} (age {age:.0f}s)")
            self.refresher.schedule(airport_id, self.refresh_and_store, airport)
            return self._stale_response(record, now)

        logger.debug(f"Weather cache miss for {airport_id}")
        try:
            record = self.service.refresh(airport)
        except WeatherServiceError as e:
            logger.warning(f"Weather refresh failed for {airport_id}: {e}")
            return _error(503, UNAVAILABLE_MESSAGE)

        modified = self.store.write(airport_id, record) or now
        return self._fresh_response(
            airport_id, record, modified, interval, 'MISS', now, if_none_match, if_modified_since,
        )

    def refresh_and_store(self, airport: Airport) -> Optional[WeatherRecord]:
        """Run the aggregator and overwrite the snapshot; failures are logged."""
        try:
            record = self.service.refresh(airport)
        except WeatherServiceError as e:
            logger.warning(f"Background weather refresh failed for {airport.id}: {e}")
            return None
        self.store.write(airport.id, record)
        logger.info(f"Weather cache updated for {airport.id}")
        return record

    def _fresh_response(
        self,
        airport_id: str,
        record: WeatherRecord,
        modified: datetime,
        max_age: int,
        cache_status: str,
        now: datetime,
        if_none_match: Optional[str],
        if_modified_since: Optional[str],
    ) -> WeatherResponse:
        # ETag names the snapshot version and the nulled sources; a 304 never serializes the record
        stale = stale_sources(record, self.stale_threshold, now=now)
        version = f"{airport_id}:{modified.timestamp():.6f}:{int(stale[0])}{int(stale[1])}"
        etag = quote_etag(hashlib.sha256(version.encode('utf-8')).hexdigest())
        modified_ts = int(modified.timestamp())
        headers = {
            'Cache-Control': f"public, max-age={max_age}",
            'Expires': http_date(now.timestamp() + max_age),
            'ETag': etag,
            'Last-Modified': http_date(modified_ts),
            'X-Cache-Status': cache_status,
        }

        if if_none_match:
            not_modified = _etag_matches(etag, if_none_match)
        elif if_modified_since:
            since = parse_http_date_safe(if_modified_since)
            not_modified = since is not None and modified_ts <= since
        else:
            not_modified = False

        if not_modified:
            return WeatherResponse(status=304, headers=headers)

        record = suppress_stale(record, self.stale_threshold, now=now)
        return WeatherResponse.json(200, {'success': True, 'weather': record.to_dict()}, headers)

    def _stale_response(self, record: WeatherRecord, now: datetime) -> WeatherResponse:
        record = suppress_stale(record, self.stale_threshold, now=now)
        payload = {'success': True, 'weather': record.to_dict(), 'stale': True}
        headers = {
            'Cache-Control': 'no-cache',
            'X-Cache-Status': 'STALE',
        }
        return WeatherResponse.json(200, payload, headers)
