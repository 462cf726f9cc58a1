"""
Tidal prediction from harmonic constants.

Implements the harmonic prediction formula::

    h = H0 + sum{ f * H * cos[a*t + kappa + u] }

where *t* is hours since 2000-01-01T00:00Z, *a* the constituent speed,
*kappa* the regional phase lag and (*f*, *u*) the nodal correction.  The
sum runs over every constituent with a non-zero amplitude in the region
and is clamped to half a metre beyond the regional mean high and low
water.

Three families of entry points are provided:

* :func:`predict_level`, :func:`predict_series` and :func:`predict_range`
  -- regional harmonic synthesis for a location.
* :func:`generate_graph_data` -- a day of points for plotting.
* :func:`predict_from_tile` -- synthesis from a packaged tile's
  constituents by wrapping :func:`utide.reconstruct`.
"""
from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass

import numpy as np
import pandas as pd
from utide import reconstruct
from utide.utilities import Bunch

from sunmoon_tide.errors import InvalidInputError

from .constituents import (
    ANDAMAN_SEA,
    GULF_OF_THAILAND,
    active_constituents,
    normalize_constituent_name,
)
from .ephemerides import (
    AstronomicalArguments,
    astronomical_arguments,
    to_utc_timestamp,
)
from .nodal_corrections import nodal_correction

logger = logging.getLogger(__name__)

PREDICTION_EPOCH = pd.Timestamp('2000-01-01', tz='UTC')
"""Origin of the elapsed-hours time argument."""

HARMONIC_CONFIDENCE = 88.0
"""Confidence (%) reported for a regional harmonic level."""

CLAMP_MARGIN_M = 0.5


@dataclass(frozen=True)
class LocationData:
    """A point of interest."""

    lat: float
    lon: float
    name: str = ''


@dataclass(frozen=True)
class RegionalTideMeans:
    """Mean high and low water for a region, in metres above datum."""

    mean_high_water: float
    mean_low_water: float

    @property
    def mean_sea_level(self) -> float:
        return (self.mean_high_water + self.mean_low_water) / 2.0

    @property
    def mean_tide_range(self) -> float:
        return self.mean_high_water - self.mean_low_water

    @property
    def lower_bound(self) -> float:
        return self.mean_low_water - CLAMP_MARGIN_M

    @property
    def upper_bound(self) -> float:
        return self.mean_high_water + CLAMP_MARGIN_M


REGIONAL_MEANS: dict[str, RegionalTideMeans] = {
    GULF_OF_THAILAND: RegionalTideMeans(1.85, 0.35),
    ANDAMAN_SEA: RegionalTideMeans(2.95, 0.25),
}


@dataclass(frozen=True)
class GraphPoint:
    """One point of a day's tide curve."""

    time: str
    level: float
    prediction: bool


def location_coordinates(location) -> tuple[float, float]:
    """
    Return ``(lat, lon)`` for a location.

    Accepts :class:`LocationData` (or any object with ``lat``/``lon``
    attributes), a mapping with ``lat``/``lon`` keys, or a ``(lat, lon)``
    pair.

    Raises
    ------
    InvalidInputError
        If the coordinates are missing or not finite.
    """
    try:
        if isinstance(location, dict):
            lat, lon = location['lat'], location['lon']
        elif hasattr(location, 'lat') and hasattr(location, 'lon'):
            lat, lon = location.lat, location.lon
        else:
            lat, lon = location
        lat, lon = float(lat), float(lon)
    except (KeyError, TypeError, ValueError) as ex:
        raise InvalidInputError(f"Invalid location: {location!r}") from ex
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidInputError(f"Location must be finite, got {location!r}")
    if not -90.0 <= lat <= 90.0:
        raise InvalidInputError(f"Latitude {lat} out of range.")
    return lat, lon


def classify_region(location) -> str:
    """
    Classify a location as Andaman Sea or Gulf of Thailand.

    West of 99 E between 5 N and 15 N is the Andaman Sea; everything
    else is treated as the Gulf of Thailand.
    """
    lat, lon = location_coordinates(location)
    if lon < 99.0 and 5.0 < lat < 15.0:
        return ANDAMAN_SEA
    return GULF_OF_THAILAND


def regional_tide_means(region: str) -> RegionalTideMeans:
    """Mean high/low water for *region*; unknown keys use the Gulf."""
    return REGIONAL_MEANS.get(region, REGIONAL_MEANS[GULF_OF_THAILAND])


def _parse_time_of_day(time_of_day) -> pd.Timedelta:
    if isinstance(time_of_day, dt.time):
        return pd.Timedelta(hours=time_of_day.hour,
                            minutes=time_of_day.minute,
                            seconds=time_of_day.second)
    if isinstance(time_of_day, pd.Timedelta):
        return time_of_day
    try:
        hours, minutes = str(time_of_day).strip().split(':')[:2]
        hours, minutes = int(hours), int(minutes)
    except ValueError as ex:
        raise InvalidInputError(
            f"Time of day must be 'HH:MM', got {time_of_day!r}") from ex
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise InvalidInputError(f"Time of day out of range: {time_of_day!r}")
    return pd.Timedelta(hours=hours, minutes=minutes)


def prediction_instant(date, time_of_day=None) -> pd.Timestamp:
    """
    Combine a date with an optional ``'HH:MM'`` time of day (UTC).

    Without *time_of_day* the instant is *date* itself.
    """
    ts = to_utc_timestamp(date)
    if time_of_day is None:
        return ts
    return ts.normalize() + _parse_time_of_day(time_of_day)


def day_arguments(date, location=None) -> AstronomicalArguments:
    """Astronomical arguments at 00:00 UTC of the day containing *date*."""
    lon = location_coordinates(location)[1] if location is not None else 0.0
    return astronomical_arguments(to_utc_timestamp(date).normalize(), lon)


def as_utc_index(times) -> pd.DatetimeIndex:
    """Coerce one or many date-likes into a UTC ``DatetimeIndex``."""
    if isinstance(times, (str, dt.date, np.datetime64)):
        times = [times]
    try:
        index = pd.DatetimeIndex(times)
    except (TypeError, ValueError) as ex:
        raise InvalidInputError(f"Invalid prediction times: {times!r}") from ex
    if index.tz is None:
        return index.tz_localize('UTC')
    return index.tz_convert('UTC')


def hours_since_epoch(times) -> np.ndarray:
    """Elapsed hours since :data:`PREDICTION_EPOCH` for one or many times."""
    index = as_utc_index(times)
    return np.asarray((index - PREDICTION_EPOCH) / pd.Timedelta(hours=1),
                      dtype=float)


def _contributions(
    hours: np.ndarray,
    region: str,
    arguments: AstronomicalArguments,
) -> dict[str, np.ndarray]:
    contributions = {}
    for constituent in active_constituents(region):
        amplitude, phase_lag = constituent.regional[region]
        f, u = nodal_correction(constituent.name, arguments)
        phase = np.mod(constituent.speed * hours + phase_lag + u, 360.0)
        contributions[constituent.name] = amplitude * f * np.cos(np.radians(phase))
    return contributions


def synthesize(
    hours: np.ndarray,
    region: str,
    arguments: AstronomicalArguments,
) -> np.ndarray:
    """
    Sum regional constituents at the given elapsed hours.

    Parameters
    ----------
    hours : np.ndarray
        Hours since :data:`PREDICTION_EPOCH`.
    region : str
        Region key.
    arguments : AstronomicalArguments
        Arguments used for every nodal correction in the sum.

    Returns
    -------
    np.ndarray
        Clamped water levels in metres.
    """
    means = regional_tide_means(region)
    hours = np.asarray(hours, dtype=float)
    level = np.full(hours.shape, means.mean_sea_level)
    for contribution in _contributions(hours, region, arguments).values():
        level = level + contribution
    return np.clip(level, means.lower_bound, means.upper_bound)


def predict_level(
    date,
    location,
    time_of_day=None,
    arguments: AstronomicalArguments | None = None,
    logger: logging.Logger | None = None,
) -> float:
    """
    Predict the water level at one instant.

    Parameters
    ----------
    date : date-like
        Day (or instant) of the prediction, UTC.
    location : LocationData, mapping or (lat, lon)
        Where to predict.
    time_of_day : str or datetime.time, optional
        ``'HH:MM'`` on *date*.  If ``None``, *date* is the instant.
    arguments : AstronomicalArguments, optional
        Arguments for the nodal corrections.  Defaults to those of 00:00
        UTC on the prediction day.
    logger : logging.Logger, optional
        Logger instance for diagnostic messages.

    Returns
    -------
    float
        Water level in metres above datum.

    Raises
    ------
    InvalidInputError
        If the date, time or location is not usable.
    """
    _log = logger or logging.getLogger(__name__)
    instant = prediction_instant(date, time_of_day)
    region = classify_region(location)
    if arguments is None:
        arguments = day_arguments(instant, location)
    level = float(synthesize(hours_since_epoch(instant), region, arguments)[0])
    _log.debug('Predicted %.3f m at %s (%s).', level, instant, region)
    return level


def dominant_constituent(
    date,
    location,
    time_of_day=None,
    arguments: AstronomicalArguments | None = None,
) -> str:
    """Name of the constituent with the largest contribution at an instant."""
    instant = prediction_instant(date, time_of_day)
    region = classify_region(location)
    if arguments is None:
        arguments = day_arguments(instant, location)
    contributions = _contributions(hours_since_epoch(instant), region,
                                   arguments)
    return max(contributions, key=lambda name: abs(contributions[name][0]))


def predict_series(
    times,
    location,
    arguments: AstronomicalArguments | None = None,
    logger: logging.Logger | None = None,
) -> pd.Series:
    """
    Predict water levels at many instants with a single set of arguments.

    Parameters
    ----------
    times : array-like of datetimes
        Prediction times.  Naive values are UTC.
    location : LocationData, mapping or (lat, lon)
        Where to predict.
    arguments : AstronomicalArguments, optional
        Defaults to the arguments at 00:00 UTC of the first time.
    logger : logging.Logger, optional
        Logger instance for diagnostic messages.

    Returns
    -------
    pd.Series
        Levels in metres indexed by UTC time.
    """
    _log = logger or logging.getLogger(__name__)
    index = as_utc_index(times)
    if len(index) == 0:
        raise ValueError('At least one prediction time is required.')
    if index.hasnans:
        raise InvalidInputError('Prediction times must not contain NaT.')

    region = classify_region(location)
    if arguments is None:
        arguments = day_arguments(index[0], location)
    levels = synthesize(hours_since_epoch(index), region, arguments)
    _log.info('Predicted %d levels for %s.', len(index), region)
    return pd.Series(levels, index=index, name='level')


def predict_range(
    start,
    end,
    location,
    step_minutes: int = 10,
    logger: logging.Logger | None = None,
) -> pd.Series:
    """
    Predict water levels from *start* to *end* inclusive.

    Raises
    ------
    ValueError
        If *end* precedes *start* or *step_minutes* is not positive.
    """
    start_ts = to_utc_timestamp(start)
    end_ts = to_utc_timestamp(end)
    if end_ts < start_ts:
        raise ValueError(f"end ({end_ts}) precedes start ({start_ts}).")
    if step_minutes <= 0:
        raise ValueError('step_minutes must be positive.')
    times = pd.date_range(start_ts, end_ts, freq=f'{int(step_minutes)}min')
    return predict_series(times, location, logger=logger)


def generate_graph_data(
    date,
    location,
    interval_minutes: int = 60,
    arguments: AstronomicalArguments | None = None,
    now=None,
) -> list[GraphPoint]:
    """
    Build a day of tide-curve points.

    Parameters
    ----------
    date : date-like
        Day to plot (UTC).
    location : LocationData, mapping or (lat, lon)
        Where to predict.
    interval_minutes : int, optional
        Spacing of points (default 60).
    arguments : AstronomicalArguments, optional
        Shared nodal arguments; defaults to the day's.
    now : date-like, optional
        Reference instant; points after it are flagged as predictions.

    Returns
    -------
    list of GraphPoint
    """
    if interval_minutes <= 0 or 1440 % interval_minutes:
        raise ValueError('interval_minutes must be a positive divisor of 1440.')
    day = to_utc_timestamp(date).normalize()
    now_ts = to_utc_timestamp(now) if now is not None else pd.Timestamp.now(tz='UTC')
    times = pd.date_range(day, periods=1440 // interval_minutes,
                          freq=f'{interval_minutes}min')
    levels = predict_series(times, location, arguments=arguments)
    return [
        GraphPoint(time=ts.strftime('%H:%M'), level=float(level),
                   prediction=bool(ts > now_ts))
        for ts, level in levels.items()
    ]


# ---------------------------------------------------------------------------
# Tile-backed synthesis (UTide)
# ---------------------------------------------------------------------------

def predict_from_constants(
    time: pd.DatetimeIndex,
    amplitudes: dict[str, float],
    phases: dict[str, float],
    mean_level: float,
    latitude: float,
    logger: logging.Logger | None = None,
) -> np.ndarray:
    """
    Generate predictions from amplitude/phase dictionaries.

    Nodal corrections and equilibrium arguments are computed internally
    by UTide.

    Parameters
    ----------
    time : pd.DatetimeIndex
        Prediction times (UTC).
    amplitudes : dict
        ``{constituent_name: amplitude}`` in metres.
    phases : dict
        ``{constituent_name: phase_lag}`` in degrees (Greenwich epoch).
    mean_level : float
        Mean water level H0 (metres above datum).
    latitude : float
        Latitude in decimal degrees.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    np.ndarray
        Predicted tidal heights.
    """
    _log = logger or logging.getLogger(__name__)
    time = pd.DatetimeIndex(time)
    if time.tz is not None:
        time = time.tz_convert('UTC').tz_localize(None)

    coef = _build_coef_from_constants(amplitudes, phases, mean_level,
                                      latitude, _log)
    _log.info('Generating tidal predictions for %d time steps.', len(time))
    result = reconstruct(t=time, coef=coef, verbose=False)
    return result.h


def predict_from_tile(
    time,
    tile,
    latitude: float | None = None,
    logger: logging.Logger | None = None,
) -> pd.Series:
    """
    Predict water levels from a packaged tile's constituents.

    The tile's local calibration, when present, shifts the mean level by
    ``height_offset`` and every phase by ``phase_offset``.

    Parameters
    ----------
    time : array-like of datetimes
        Prediction times (UTC).
    tile : TileData
        Tile whose constituents drive the prediction.
    latitude : float, optional
        Defaults to the tile centroid latitude.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    pd.Series
        Levels in metres indexed by UTC time.
    """
    index = as_utc_index(time)

    calibration = tile.local_calibration
    height_offset = calibration.height_offset if calibration else 0.0
    phase_offset = calibration.phase_offset if calibration else 0.0

    amplitudes = {c.name: c.amplitude for c in tile.constituents}
    phases = {c.name: c.phase + phase_offset for c in tile.constituents}
    lat = tile.centroid[1] if latitude is None else latitude

    levels = predict_from_constants(index, amplitudes, phases,
                                    mean_level=height_offset, latitude=lat,
                                    logger=logger)
    return pd.Series(np.asarray(levels, dtype=float), index=index, name='level')


def _build_coef_from_constants(
    amplitudes: dict[str, float],
    phases: dict[str, float],
    mean_level: float,
    latitude: float,
    logger: logging.Logger,
) -> Bunch:
    """
    Build a synthetic UTide Bunch coefficient structure from dictionaries.

    Constituents unknown to UTide are dropped with a warning.

    Returns
    -------
    utide.utilities.Bunch
        Coefficient structure accepted by :func:`utide.reconstruct`.

    Raises
    ------
    ValueError
        If no constituent is usable.
    """
    from utide._ut_constants import ut_constants

    const_names = [n.strip() for n in ut_constants['const']['name']]
    const_freqs = ut_constants['const']['freq']  # cycles per hour

    common = {normalize_constituent_name(n): n
              for n in set(amplitudes) & set(phases)}
    names = sorted(n for n in common if n in const_names)
    dropped = sorted(set(common) - set(names))
    if dropped:
        logger.warning('Constituents not known to UTide dropped: %s',
                       ', '.join(dropped))
    if not names:
        raise ValueError('No common constituents found in amplitudes and phases.')

    coef = Bunch()
    coef.name = np.array(names)
    coef.A = np.array([amplitudes[common[n]] for n in names], dtype=float)
    coef.g = np.array([phases[common[n]] for n in names], dtype=float) % 360.0
    coef.mean = mean_level
    coef.slope = 0.0
    coef.aux = Bunch()
    coef.aux.lat = latitude
    coef.aux.frq = np.array([float(const_freqs[const_names.index(n)])
                             for n in names])
    coef.aux.lind = np.array([const_names.index(n) for n in names])
    coef.aux.reftime = 0.0
    coef.aux.opt = Bunch()
    coef.aux.opt.twodim = False
    coef.aux.opt.nodsatlint = False
    coef.aux.opt.nodsatnone = False
    coef.aux.opt.gwchlint = False
    coef.aux.opt.gwchnone = False
    coef.aux.opt.nodiagn = True
    coef.aux.opt.notrend = True
    coef.aux.opt.prefilt = []
    return coef
