from .delivery import (
    BackgroundRefresher,
    SnapshotStore,
    WeatherDelivery,
    WeatherResponse,
)
from .extremes import PeakGustTracker, TemperatureExtremes
from .records import SourceObservation, WeatherRecord
from .staleness import STALE_THRESHOLD_SECONDS, suppress_stale
from .weather import WeatherService, WeatherServiceError

__all__ = [
    'BackgroundRefresher',
    'PeakGustTracker',
    'SnapshotStore',
    'SourceObservation',
    'STALE_THRESHOLD_SECONDS',
    'TemperatureExtremes',
    'WeatherDelivery',
    'WeatherRecord',
    'WeatherResponse',
    'WeatherService',
    'WeatherServiceError',
    'suppress_stale',
]
