"""
Prediction API.

Joins the tile cache and the harmonic synthesizer for callers.  Each
request first looks for a tile covering the location; the level and
extremes are then computed harmonically either way, and the response
reports which source served it (``'tile'`` or ``'harmonic'``) so that
presentation layers can label harmonic-only results as estimates.

A failed, timed-out or cancelled tile lookup never fails the request; it
only downgrades ``data_source`` to ``'harmonic'``.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import pandas as pd

from sunmoon_tide.errors import InvalidInputError, SunmoonTideError
from sunmoon_tide.tidal_analysis.ephemerides import to_utc_timestamp
from sunmoon_tide.tidal_analysis.extremes import TideExtreme, find_extremes
from sunmoon_tide.tidal_analysis.tidal_prediction import (
    HARMONIC_CONFIDENCE,
    GraphPoint,
    day_arguments,
    dominant_constituent,
    generate_graph_data,
    location_coordinates,
    predict_level,
    prediction_instant,
)
from sunmoon_tide.tiles.resolver import ResolvedTile, TileResolver

logger = logging.getLogger(__name__)

DATA_SOURCE_TILE = 'tile'
DATA_SOURCE_HARMONIC = 'harmonic'
DEFAULT_TILE_TIMEOUT = 5.0


@dataclass(frozen=True)
class TimeRange:
    """Hours of the day ``[start_hour, end_hour)`` for a series."""

    start_hour: int = 0
    end_hour: int = 24
    interval_minutes: int = 60

    def __post_init__(self):
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise InvalidInputError(
                f"Invalid hour range {self.start_hour}-{self.end_hour}.")
        if self.interval_minutes <= 0 or 1440 % self.interval_minutes:
            raise InvalidInputError(
                'interval_minutes must be a positive divisor of 1440.')


@dataclass(frozen=True)
class PredictionRequest:
    location: object
    date: object
    time_range: TimeRange | None = None


@dataclass(frozen=True)
class LevelPrediction:
    time: pd.Timestamp
    level: float
    confidence: float
    data_source: str
    dominant_constituent: str


@dataclass(frozen=True)
class ExtremesPrediction:
    extremes: list[TideExtreme]
    data_source: str


@dataclass
class PredictionResponse:
    """Extremes, optional series and provenance for one day and location."""

    location: object
    date: pd.Timestamp
    extremes: list[TideExtreme]
    data_source: str
    confidence: float
    response_time: float
    from_cache: bool
    series: list[GraphPoint] | None = None
    tile_id: str | None = None


@dataclass(frozen=True)
class PredictionStats:
    request_count: int
    avg_response_time: float
    cache_hit_rate: float
    total_cache_size: int


@dataclass
class _Counters:
    request_count: int = 0
    total_response_time: float = 0.0
    cache_hits: int = 0


class TidePredictionAPI:
    """
    Tide predictions with tile lookup and harmonic fallback.

    Parameters
    ----------
    resolver : TileResolver, optional
        Tile lookup.  Without one every request is served harmonically.
    tile_timeout : float, optional
        Deadline in seconds for a tile lookup (default 5).
    clock : callable, optional
        Monotonic clock in seconds used for response times.
    logger : logging.Logger, optional
        Logger instance for diagnostic messages.
    """

    def __init__(
        self,
        resolver: TileResolver | None = None,
        tile_timeout: float | None = DEFAULT_TILE_TIMEOUT,
        clock: Callable[[], float] = time.perf_counter,
        logger: logging.Logger | None = None,
    ):
        self.resolver = resolver
        self.tile_timeout = tile_timeout
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)
        self._counters = _Counters()

    async def _lookup(self, location) -> ResolvedTile | None:
        if self.resolver is None:
            return None
        lat, lon = location_coordinates(location)
        try:
            return await asyncio.wait_for(
                self.resolver.load_tile(lat, lon), self.tile_timeout)
        except asyncio.TimeoutError:
            self._log.warning('Tile lookup for (%.4f, %.4f) timed out; '
                              'using harmonic prediction.', lat, lon)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            self._log.warning('Tile lookup for (%.4f, %.4f) was cancelled; '
                              'using harmonic prediction.', lat, lon)
        except SunmoonTideError as ex:
            self._log.warning('Tile lookup for (%.4f, %.4f) failed: %s',
                              lat, lon, ex)
        except Exception:
            self._log.exception('Unexpected error looking up the tile for '
                                '(%.4f, %.4f); using harmonic prediction.',
                                lat, lon)
        return None

    def _record(self, started: float, resolved: ResolvedTile | None) -> float:
        elapsed_ms = (self._clock() - started) * 1000.0
        self._counters.request_count += 1
        self._counters.total_response_time += elapsed_ms
        if resolved is not None and resolved.from_cache:
            self._counters.cache_hits += 1
        return round(elapsed_ms, 2)

    @staticmethod
    def _source(resolved: ResolvedTile | None) -> str:
        return DATA_SOURCE_TILE if resolved is not None else DATA_SOURCE_HARMONIC

    async def predict_level(self, location, date, time_of_day=None) -> LevelPrediction:
        """
        Predict the water level at one instant.

        Parameters
        ----------
        location : LocationData, mapping or (lat, lon)
            Where to predict.
        date : date-like
            Day (or instant) of the prediction, UTC.
        time_of_day : str, optional
            ``'HH:MM'`` on *date*.

        Returns
        -------
        LevelPrediction
        """
        started = self._clock()
        instant = prediction_instant(date, time_of_day)
        resolved = await self._lookup(location)
        arguments = day_arguments(instant, location)
        level = predict_level(instant, location, arguments=arguments)
        dominant = dominant_constituent(instant, location, arguments=arguments)
        self._record(started, resolved)
        return LevelPrediction(instant, level, HARMONIC_CONFIDENCE,
                               self._source(resolved), dominant)

    async def find_extremes(self, location, date) -> ExtremesPrediction:
        """High and low water events of one day."""
        started = self._clock()
        day = to_utc_timestamp(date).normalize()
        resolved = await self._lookup(location)
        extremes = find_extremes(day, location,
                                 arguments=day_arguments(day, location))
        self._record(started, resolved)
        return ExtremesPrediction(extremes, self._source(resolved))

    async def get_predictions(
        self,
        request: PredictionRequest,
        now=None,
    ) -> PredictionResponse:
        """
        Bundle a day's extremes with an optional tide curve.

        All values in the response share the astronomical arguments of
        00:00 UTC on the requested day.

        Parameters
        ----------
        request : PredictionRequest
            Location, date and optional hour range for the series.
        now : date-like, optional
            Reference instant for flagging future series points.

        Returns
        -------
        PredictionResponse
        """
        started = self._clock()
        day = to_utc_timestamp(request.date).normalize()
        location_coordinates(request.location)
        resolved = await self._lookup(request.location)

        arguments = day_arguments(day, request.location)
        extremes = find_extremes(day, request.location, arguments=arguments)

        series = None
        time_range = request.time_range
        if time_range is not None:
            points = generate_graph_data(day, request.location,
                                         time_range.interval_minutes,
                                         arguments=arguments, now=now)
            series = [p for p in points
                      if time_range.start_hour <= int(p.time[:2]) < time_range.end_hour]

        response_time = self._record(started, resolved)
        source = self._source(resolved)
        self._log.info('Predictions for %s served from %s in %.2f ms.',
                       day.date(), source, response_time)
        return PredictionResponse(
            location=request.location,
            date=day,
            extremes=extremes,
            data_source=source,
            confidence=HARMONIC_CONFIDENCE,
            response_time=response_time,
            from_cache=bool(resolved is not None and resolved.from_cache),
            series=series,
            tile_id=resolved.package.tile_id if resolved is not None else None,
        )

    def get_stats(self) -> PredictionStats:
        """Counters accumulated since construction or the last reset."""
        counters = self._counters
        count = counters.request_count
        cache_size = 0
        if self.resolver is not None:
            cache_size = self.resolver.storage.current_size
        return PredictionStats(
            request_count=count,
            avg_response_time=counters.total_response_time / count if count else 0.0,
            cache_hit_rate=counters.cache_hits / count * 100.0 if count else 0.0,
            total_cache_size=cache_size,
        )

    def reset_stats(self) -> None:
        self._counters = _Counters()
