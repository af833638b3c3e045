"""
Daily extremes tracking.

Keeps, per airport and per UTC calendar day, the running peak gust and the
running high/low temperature together with the instant each was set.

Each metric lives in its own JSON document under the weather cache
directory, keyed by date then airport id:

    {"2024-06-01": {"kspb": {"value": 23, "ts": 1717250000}}}

Documents are rewritten atomically and entries older than two days are
dropped on every write. A process-wide lock per document serialises the
read-modify-write cycle; separate processes remain last-writer-wins.
"""

import json
import logging
import threading
from datetime import date, datetime, timedelta, timezone as dt_timezone
from pathlib import Path
from typing import Callable, Optional

from django.conf import settings
from django.utils import timezone

from .parsers import as_number
from .records import from_timestamp, to_timestamp
from .storage import atomic_write_json

logger = logging.getLogger(__name__)

# Days of history kept in an extremes document besides today
RETENTION_DAYS = 2

_document_locks: dict[str, threading.Lock] = {}
_document_locks_guard = threading.Lock()


def _as_ts(value) -> Optional[int]:
    number = as_number(value)
    return int(number) if number is not None else None


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _document_locks_guard:
        lock = _document_locks.get(key)
        if lock is None:
            lock = _document_locks[key] = threading.Lock()
        return lock


class ExtremesDocument:
    """Base class for one date-keyed extremes document."""

    FILENAME = ''

    def __init__(self, directory=None, clock: Optional[Callable[[], datetime]] = None):
        directory = directory or getattr(settings, 'WEATHER_CACHE_DIR', 'cache')
        self.path = Path(directory) / self.FILENAME
        self.clock = clock or timezone.now
        self._lock = _lock_for(self.path)
        # Document that could not be persisted; served until a write succeeds
        self._unsaved: Optional[dict] = None

    def _today(self) -> date:
        return self.clock().astimezone(dt_timezone.utc).date()

    def _date_key(self) -> str:
        return self._today().isoformat()

    def normalize_entry(self, entry):
        """Return the current storage shape for a stored entry, or None."""
        raise NotImplementedError

    def _read(self) -> dict:
        if self._unsaved is not None:
            return self._unsaved
        try:
            with open(self.path, encoding='utf-8') as f:
                raw = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable extremes document {self.path}: {e}")
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring malformed extremes document {self.path}")
            return {}

        document = {}
        for date_key, airports in raw.items():
            if not isinstance(airports, dict):
                continue
            day = {}
            for airport_id, entry in airports.items():
                normalized = self.normalize_entry(entry)
                if normalized is not None:
                    day[airport_id] = normalized
            document[date_key] = day
        return document

    def _purge(self, document: dict) -> dict:
        oldest = self._today() - timedelta(days=RETENTION_DAYS)
        kept = {}
        for date_key, airports in document.items():
            try:
                day = date.fromisoformat(date_key)
            except (TypeError, ValueError):
                continue
            if day >= oldest:
                kept[date_key] = airports
        return kept

    def _write(self, document: dict) -> None:
        document = self._purge(document)
        try:
            atomic_write_json(self.path, document)
        except OSError:
            logger.exception(f"Failed to write extremes document {self.path}")
            self._unsaved = document
        else:
            self._unsaved = None

    def _entry(self, airport_id: str) -> Optional[dict]:
        return self._read().get(self._date_key(), {}).get(airport_id)

    def _update(self, airport_id: str, apply: Callable[[Optional[dict]], Optional[dict]]) -> None:
        """Apply a change to today's entry and persist only if it changed."""
        with self._lock:
            document = self._read()
            date_key = self._date_key()
            existing = document.get(date_key, {}).get(airport_id)
            updated = apply(existing)
            if updated is None:
                return
            document.setdefault(date_key, {})[airport_id] = updated
            self._write(document)


class PeakGustTracker(ExtremesDocument):
    """Today's peak gust per airport."""

    FILENAME = 'peak_gusts.json'

    def normalize_entry(self, entry):
        # Older documents stored a bare number
        if isinstance(entry, dict):
            value = as_number(entry.get('value'))
            return {'value': value if value is not None else 0, 'ts': _as_ts(entry.get('ts'))}
        value = as_number(entry)
        if value is None:
            return None
        return {'value': value, 'ts': None}

    def record(self, airport_id: str, value: float, instant: Optional[datetime] = None) -> None:
        """Record an observed gust; only a strictly higher value replaces the peak."""
        ts = to_timestamp(instant or self.clock())

        def apply(existing):
            if existing is None or value > existing['value']:
                return {'value': value, 'ts': ts}
            return None

        self._update(airport_id, apply)

    def query(self, airport_id: str, current_value: float) -> dict:
        """
        Peak gust for today, never lower than current_value.

        Returns {'value': ..., 'ts': datetime or None}; ts is None when the
        current value is the peak and no stored instant applies.
        """
        entry = self._entry(airport_id)
        if entry is None or current_value > entry['value']:
            return {'value': current_value, 'ts': None}
        return {'value': entry['value'], 'ts': from_timestamp(entry['ts'])}


class TemperatureExtremes(ExtremesDocument):
    """Today's high and low temperature (Celsius) per airport."""

    FILENAME = 'temp_extremes.json'

    def normalize_entry(self, entry):
        if not isinstance(entry, dict):
            return None
        high = as_number(entry.get('high'))
        low = as_number(entry.get('low'))
        if high is None or low is None:
            return None
        # Entries written before timestamps were tracked lack *_ts
        return {
            'high': high,
            'high_ts': _as_ts(entry.get('high_ts')),
            'low': low,
            'low_ts': _as_ts(entry.get('low_ts')),
        }

    def record(self, airport_id: str, value: float, instant: Optional[datetime] = None) -> None:
        """Record an observed temperature, seeding both extremes on the first of the day."""
        ts = to_timestamp(instant or self.clock())

        def apply(existing):
            if existing is None:
                return {'high': value, 'high_ts': ts, 'low': value, 'low_ts': ts}
            updated = dict(existing)
            if value > existing['high']:
                updated['high'] = value
                updated['high_ts'] = ts
            if value < existing['low']:
                updated['low'] = value
                updated['low_ts'] = ts
            return updated if updated != existing else None

        self._update(airport_id, apply)

    def query(self, airport_id: str, current_value: float) -> dict:
        """Today's {high, high_ts, low, low_ts}, widened to include current_value."""
        entry = self._entry(airport_id)
        if entry is None:
            return {'high': current_value, 'high_ts': None, 'low': current_value, 'low_ts': None}

        result = {
            'high': entry['high'],
            'high_ts': from_timestamp(entry['high_ts']),
            'low': entry['low'],
            'low_ts': from_timestamp(entry['low_ts']),
        }
        if current_value > entry['high']:
            result['high'] = current_value
            result['high_ts'] = None
        if current_value < entry['low']:
            result['low'] = current_value
            result['low_ts'] = None
        return result
