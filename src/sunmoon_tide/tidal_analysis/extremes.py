"""
Extrema extraction: high and low water.

:func:`find_extremes` sweeps one day of regional harmonic predictions and
reports each turning point.  :func:`extract_water_level_extrema` finds
high and low water in an arbitrary series (observed, or predicted over
several days) with a minimum separation between events.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy.signal import argrelextrema

from .ephemerides import AstronomicalArguments, to_utc_timestamp
from .tidal_prediction import (
    classify_region,
    predict_series,
    regional_tide_means,
)

logger = logging.getLogger(__name__)

SAMPLE_INTERVAL_MINUTES = 15
DETECTED_CONFIDENCE = 92.0
FALLBACK_CONFIDENCE = 70.0


@dataclass(frozen=True)
class TideExtreme:
    """A high or low water event."""

    time: pd.Timestamp
    level: float
    type: str
    confidence: float

    def to_dict(self) -> dict:
        return {
            'time': self.time.isoformat(),
            'level': self.level,
            'type': self.type,
            'confidence': self.confidence,
        }


def _difference_signs(levels: np.ndarray) -> np.ndarray:
    """Signs of the first difference, zero steps carrying the previous sign."""
    signs = np.sign(np.diff(levels))
    for i in range(1, len(signs)):
        if signs[i] == 0:
            signs[i] = signs[i - 1]
    return signs


def find_extremes(
    date,
    location,
    arguments: AstronomicalArguments | None = None,
    logger: logging.Logger | None = None,
) -> list[TideExtreme]:
    """
    Find the high and low water events of one day.

    The day is sampled every 15 minutes from 00:00 UTC.  A sample is an
    extreme where the sign of the first difference flips: ``'high'`` when
    the level was rising before it, ``'low'`` when falling.

    Parameters
    ----------
    date : date-like
        Day of interest (UTC).
    location : LocationData, mapping or (lat, lon)
        Where to predict.
    arguments : AstronomicalArguments, optional
        Shared nodal arguments; defaults to the day's.
    logger : logging.Logger, optional
        Logger instance for diagnostic messages.

    Returns
    -------
    list of TideExtreme
        Events in time order.  If the day shows no turning point, one
        synthetic high (06:00, mean high water) and one synthetic low
        (12:00, mean low water) are returned so the result is never empty.
    """
    _log = logger or logging.getLogger(__name__)

    day = to_utc_timestamp(date).normalize()
    times = pd.date_range(day, periods=24 * 60 // SAMPLE_INTERVAL_MINUTES,
                          freq=f'{SAMPLE_INTERVAL_MINUTES}min')
    series = predict_series(times, location, arguments=arguments)
    levels = series.to_numpy()
    signs = _difference_signs(levels)

    extremes = []
    for i in range(1, len(signs)):
        before, after = signs[i - 1], signs[i]
        if before != 0 and after != 0 and before != after:
            extremes.append(TideExtreme(
                time=times[i],
                level=float(levels[i]),
                type='high' if before > 0 else 'low',
                confidence=DETECTED_CONFIDENCE,
            ))

    if not extremes:
        means = regional_tide_means(classify_region(location))
        _log.warning('No tide turning point found on %s; using regional '
                     'mean high/low water.', day.date())
        return [
            TideExtreme(day + pd.Timedelta(hours=6), means.mean_high_water,
                        'high', FALLBACK_CONFIDENCE),
            TideExtreme(day + pd.Timedelta(hours=12), means.mean_low_water,
                        'low', FALLBACK_CONFIDENCE),
        ]

    if not 2 <= len(extremes) <= 4:
        _log.info('Unusual extreme count %d on %s.', len(extremes), day.date())
    return extremes


def extract_water_level_extrema(
    time: np.ndarray,
    water_level: np.ndarray,
    min_separation_hours: float = 4.0,
    logger: logging.Logger | None = None,
) -> dict:
    """
    Extract high-water and low-water extrema from a water level series.

    Uses :func:`scipy.signal.argrelextrema` with a minimum separation
    constraint to avoid detecting spurious local peaks.

    Parameters
    ----------
    time : np.ndarray
        Timestamps (datetime64 or DatetimeIndex).
    water_level : np.ndarray
        Water level values.
    min_separation_hours : float, optional
        Minimum time between consecutive extrema of the same type
        (default 4.0 hours).
    logger : logging.Logger, optional
        Logger instance for diagnostic messages.

    Returns
    -------
    dict
        ``"high_water_times"`` : np.ndarray of timestamps.
        ``"high_water_amplitudes"`` : np.ndarray of water levels at HW.
        ``"low_water_times"`` : np.ndarray of timestamps.
        ``"low_water_amplitudes"`` : np.ndarray of water levels at LW.

    Raises
    ------
    ValueError
        If *time* and *water_level* have different lengths or fewer than
        3 points.
    """
    _log = logger or logging.getLogger(__name__)

    time = np.asarray(time)
    water_level = np.asarray(water_level, dtype=float)

    if len(time) != len(water_level):
        raise ValueError(
            f"time ({len(time)}) and water_level ({len(water_level)}) must "
            f"have the same length."
        )
    if len(time) < 3:
        raise ValueError('At least 3 data points are required.')

    dt_hours = _median_dt_hours(time)
    order = max(1, int(min_separation_hours / dt_hours))

    hw_idx = argrelextrema(water_level, np.greater, order=order)[0]
    lw_idx = argrelextrema(water_level, np.less, order=order)[0]

    _log.info(
        'Extrema extraction: %d HW, %d LW (order=%d samples, dt=%.3f h).',
        len(hw_idx), len(lw_idx), order, dt_hours,
    )

    return {
        'high_water_times': time[hw_idx],
        'high_water_amplitudes': water_level[hw_idx],
        'low_water_times': time[lw_idx],
        'low_water_amplitudes': water_level[lw_idx],
    }


def series_extremes(
    series: pd.Series,
    min_separation_hours: float = 4.0,
    logger: logging.Logger | None = None,
) -> list[TideExtreme]:
    """Extremes of a predicted series as :class:`TideExtreme` events."""
    index = pd.DatetimeIndex(series.index)
    found = extract_water_level_extrema(
        index.tz_convert('UTC').tz_localize(None) if index.tz else index,
        series.to_numpy(), min_separation_hours, logger,
    )
    tz = index.tz or 'UTC'
    events = [
        TideExtreme(pd.Timestamp(t).tz_localize(tz), float(level), kind,
                    DETECTED_CONFIDENCE)
        for kind, times, levels in (
            ('high', found['high_water_times'], found['high_water_amplitudes']),
            ('low', found['low_water_times'], found['low_water_amplitudes']),
        )
        for t, level in zip(times, levels)
    ]
    return sorted(events, key=lambda e: e.time)


def _median_dt_hours(time: np.ndarray) -> float:
    """Estimate the median sampling interval in hours."""
    time = np.asarray(time, dtype='datetime64[ns]')
    diffs = np.diff(time)
    median_ns = np.median(diffs.astype(float))
    return float(median_ns) / 3.6e12  # ns to hours
