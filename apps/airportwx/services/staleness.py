"""
Stale data suppression.

Weather that has not been refreshed for a long time must not be shown as
current for flight decisions. Each source is judged on its own timestamp:
an old primary station nulls only the primary fields, an old METAR nulls
only the sky-condition fields. Daily extremes and sun times are kept.
"""

import logging
from datetime import datetime
from typing import Optional

from django.utils import timezone

from .derived import flight_category, flight_category_class
from .records import METAR_FIELDS, PRIMARY_FIELDS, WeatherRecord

logger = logging.getLogger(__name__)

STALE_THRESHOLD_SECONDS = 10800  # 3 hours


def is_stale(updated_at: datetime, now: datetime, threshold_seconds: int) -> bool:
    return (now - updated_at).total_seconds() >= threshold_seconds


def stale_sources(
    record: WeatherRecord,
    threshold_seconds: int = STALE_THRESHOLD_SECONDS,
    now: Optional[datetime] = None,
) -> tuple[bool, bool]:
    """(primary is stale, METAR is stale) for a record."""
    now = now or timezone.now()
    return (
        is_stale(record.last_updated_primary, now, threshold_seconds),
        is_stale(record.last_updated_metar, now, threshold_seconds),
    )


def suppress_stale(
    record: WeatherRecord,
    threshold_seconds: int = STALE_THRESHOLD_SECONDS,
    now: Optional[datetime] = None,
) -> WeatherRecord:
    """Return a copy of record with fields from stale sources set to None."""
    primary_stale, metar_stale = stale_sources(record, threshold_seconds, now)
    changes = {}

    if primary_stale:
        logger.debug("Primary source data is stale; suppressing primary fields")
        changes.update(dict.fromkeys(PRIMARY_FIELDS))

    if metar_stale:
        logger.debug("METAR data is stale; suppressing sky condition fields")
        changes.update(dict.fromkeys(METAR_FIELDS))

    result = record.copy(**changes)
    category = flight_category(result.ceiling_ft, result.visibility_sm)
    result.flight_category = category
    result.flight_category_class = flight_category_class(category)
    return result
