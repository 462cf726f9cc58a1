"""
Astronomical arguments for harmonic tide prediction.

Computes the fundamental lunar and solar arguments used in the Doodson
expansion of the tide-generating potential:

* ``s``  -- mean longitude of the Moon
* ``h``  -- mean longitude of the Sun
* ``p``  -- longitude of lunar perigee
* ``N``  -- longitude of the Moon's ascending node
* ``pp`` -- longitude of solar perigee (p')
* ``tau`` -- local mean lunar time in hours

Polynomials are the Meeus (1998, ch. 47) expansions in Julian centuries
since J2000.0.  Delta T is interpolated from the Espenak & Meeus tabulation
and leap seconds follow IERS Bulletin C.
"""
from __future__ import annotations

import bisect
import datetime as dt
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass

import numpy as np
import pandas as pd

from sunmoon_tide.errors import InvalidInputError

logger = logging.getLogger(__name__)

J2000_JD = 2451545.0
"""Julian Day of the J2000.0 epoch (2000-01-01 12:00 TT)."""

DAYS_PER_CENTURY = 36525.0

EPHEMERIDES_METADATA: dict[str, str] = {
    'id': 'DE430',
    'source': 'NASA JPL Development Ephemeris 430 (DE430)',
    'deltaTSource': 'NASA polynomial fit (Espenak & Meeus, 2015 update)',
    'leapSecondsVersion': 'IERS Bulletin C (Jan 2017)',
    'updatedAt': '2025-05-01T00:00:00Z',
}
"""Source block embedded in tile manifests."""

# ---------------------------------------------------------------------------
# Delta T (TT - UT1) in seconds, sampled every five years.
# ---------------------------------------------------------------------------

_DELTA_T_YEARS = np.array([
    1950, 1955, 1960, 1965, 1970, 1975, 1980, 1985, 1990,
    1995, 2000, 2005, 2010, 2015, 2020, 2025, 2030, 2035,
], dtype=float)

_DELTA_T_SECONDS = np.array([
    29.15, 30.07, 33.15, 45.48, 50.54, 52.17, 54.87, 56.97, 57.95,
    60.75, 63.83, 64.69, 66.07, 68.75, 70.32, 72.60, 74.10, 75.60,
])

# ---------------------------------------------------------------------------
# Cumulative TAI - UTC offsets (IERS Bulletin C).
# ---------------------------------------------------------------------------

_LEAP_SECONDS: list[tuple[dt.date, int]] = [
    (dt.date(1972, 1, 1), 10),
    (dt.date(1972, 7, 1), 11),
    (dt.date(1973, 1, 1), 12),
    (dt.date(1974, 1, 1), 13),
    (dt.date(1975, 1, 1), 14),
    (dt.date(1976, 1, 1), 15),
    (dt.date(1977, 1, 1), 16),
    (dt.date(1978, 1, 1), 17),
    (dt.date(1979, 1, 1), 18),
    (dt.date(1980, 1, 1), 19),
    (dt.date(1981, 7, 1), 20),
    (dt.date(1982, 7, 1), 21),
    (dt.date(1983, 7, 1), 22),
    (dt.date(1985, 7, 1), 23),
    (dt.date(1988, 1, 1), 24),
    (dt.date(1990, 1, 1), 25),
    (dt.date(1991, 1, 1), 26),
    (dt.date(1992, 7, 1), 27),
    (dt.date(1993, 7, 1), 28),
    (dt.date(1994, 7, 1), 29),
    (dt.date(1996, 1, 1), 30),
    (dt.date(1997, 7, 1), 31),
    (dt.date(1999, 1, 1), 32),
    (dt.date(2006, 1, 1), 33),
    (dt.date(2009, 1, 1), 34),
    (dt.date(2012, 7, 1), 35),
    (dt.date(2015, 7, 1), 36),
    (dt.date(2017, 1, 1), 37),
]

_LEAP_SECOND_DATES = [d for d, _ in _LEAP_SECONDS]

SYNODIC_MONTH_DAYS = 29.530588853
"""Mean synodic month in days."""

REFERENCE_NEW_MOON = pd.Timestamp('2000-01-06 18:14', tz='UTC')
"""First new moon after J2000.0."""


@dataclass(frozen=True)
class AstronomicalArguments:
    """Fundamental arguments for one instant and longitude.

    Angles are in degrees within [0, 360); ``tau`` is in hours within
    [0, 24).
    """

    s: float
    h: float
    p: float
    N: float
    pp: float
    tau: float


@dataclass(frozen=True)
class MoonPhase:
    """Lunar phase for a date.

    ``fraction`` is the position in the synodic cycle (0 new, 0.5 full),
    ``illumination`` the illuminated fraction of the disk and ``source``
    either ``'table'`` or ``'computed'``.
    """

    age_days: float
    fraction: float
    illumination: float
    source: str


def to_utc_timestamp(date) -> pd.Timestamp:
    """
    Convert a date-like value into a timezone-aware UTC timestamp.

    Naive values are interpreted as UTC.

    Raises
    ------
    InvalidInputError
        If *date* is missing, NaT, unparsable or out of range.
    """
    if date is None or isinstance(date, (bool, int, float)):
        raise InvalidInputError(f"Invalid date: {date!r}")
    try:
        ts = pd.Timestamp(date)
    except (ValueError, TypeError, OverflowError) as ex:
        raise InvalidInputError(f"Invalid date: {date!r}") from ex
    if pd.isna(ts):
        raise InvalidInputError(f"Invalid date: {date!r}")
    if ts.tzinfo is None:
        return ts.tz_localize('UTC')
    return ts.tz_convert('UTC')


def _check_longitude(longitude) -> float:
    try:
        value = float(longitude)
    except (TypeError, ValueError) as ex:
        raise InvalidInputError(f"Invalid longitude: {longitude!r}") from ex
    if not math.isfinite(value):
        raise InvalidInputError(f"Longitude must be finite, got {longitude!r}")
    return value


def _normalize_degrees(angle: float) -> float:
    value = angle % 360.0
    # -1e-15 % 360 rounds to 360.0
    return 0.0 if value >= 360.0 else value


def _ut_hours(ts: pd.Timestamp) -> float:
    return (ts.hour + ts.minute / 60.0
            + (ts.second + ts.microsecond / 1e6) / 3600.0)


def delta_t_seconds(date) -> float:
    """
    Return Delta T (TT - UT1) in seconds for *date*.

    Linear interpolation over the five-yearly table at the fractional
    year ``year + month / 12``.  Dates outside 1950-2035 clamp to the
    nearest tabulated value.
    """
    ts = to_utc_timestamp(date)
    year = ts.year + ts.month / 12.0
    return float(np.interp(year, _DELTA_T_YEARS, _DELTA_T_SECONDS))


def leap_second_offset(date) -> int:
    """
    Return the cumulative TAI - UTC offset in seconds at *date*.

    Zero before 1972-01-01.
    """
    ts = to_utc_timestamp(date)
    idx = bisect.bisect_right(_LEAP_SECOND_DATES, ts.date())
    if idx == 0:
        return 0
    return _LEAP_SECONDS[idx - 1][1]


def leap_second_table() -> list[tuple[dt.date, int]]:
    """Return a copy of the leap-second table as ``(date, offset)`` pairs."""
    return list(_LEAP_SECONDS)


def julian_day(date) -> float:
    """
    Return the Julian Day of *date* (Meeus, Gregorian calendar).

    Parameters
    ----------
    date : datetime, date, str, pd.Timestamp or np.datetime64
        Instant to convert.  Naive values are UTC.

    Returns
    -------
    float
        Julian Day number including the day fraction.
    """
    ts = to_utc_timestamp(date)
    year, month = ts.year, ts.month
    day = ts.day + _ut_hours(ts) / 24.0
    if month <= 2:
        year -= 1
        month += 12
    a = math.floor(year / 100)
    b = 2 - a + math.floor(a / 4)
    return (math.floor(365.25 * (year + 4716))
            + math.floor(30.6001 * (month + 1))
            + day + b - 1524.5)


def julian_centuries(date) -> float:
    """Julian centuries elapsed since J2000.0."""
    return (julian_day(date) - J2000_JD) / DAYS_PER_CENTURY


def local_mean_lunar_time(date, longitude: float = 0.0) -> float:
    """
    Return local mean lunar time in hours, wrapped into [0, 24).

    ``UT hours + longitude / 15`` plus the nutation-in-longitude term and
    Delta T expressed in hours.
    """
    lon = _check_longitude(longitude)
    ts = to_utc_timestamp(date)
    t = julian_centuries(ts)
    nutation = 0.00256 * math.cos(math.radians(125.04 - 1934.136 * t))
    tau = _ut_hours(ts) + lon / 15.0 + nutation + delta_t_seconds(ts) / 3600.0
    tau %= 24.0
    return 0.0 if tau >= 24.0 else tau


def astronomical_arguments(date, longitude: float = 0.0) -> AstronomicalArguments:
    """
    Compute the six fundamental astronomical arguments.

    Parameters
    ----------
    date : datetime, date, str, pd.Timestamp or np.datetime64
        Instant of interest.  Naive values are UTC.
    longitude : float, optional
        East longitude in decimal degrees, used for local lunar time.

    Returns
    -------
    AstronomicalArguments
        ``s, h, p, N, pp`` in degrees and ``tau`` in hours.

    Raises
    ------
    InvalidInputError
        If *date* or *longitude* is not a usable value.
    """
    lon = _check_longitude(longitude)
    ts = to_utc_timestamp(date)
    t = julian_centuries(ts)
    t2, t3, t4 = t * t, t ** 3, t ** 4

    s = (218.3164477 + 481267.88123421 * t - 0.0015786 * t2
         + t3 / 538841.0 - t4 / 65194000.0)
    h = (280.4664567 + 36000.76982779 * t + 0.0003032 * t2
         + t3 / 49931000.0 - t4 / 153000000.0)
    p = (83.3532465 + 4069.0137287 * t - 0.0103200 * t2
         - t3 / 80053.0 + t4 / 18999000.0)
    n = (125.0445479 - 1934.1362891 * t + 0.0020754 * t2
         + t3 / 467441.0 - t4 / 60616000.0)
    pp = 282.9373480 + 1.71945766 * t + 0.0004527 * t2 + t3 / 300000000.0

    return AstronomicalArguments(
        s=_normalize_degrees(s),
        h=_normalize_degrees(h),
        p=_normalize_degrees(p),
        N=_normalize_degrees(n),
        pp=_normalize_degrees(pp),
        tau=local_mean_lunar_time(ts, lon),
    )


def get_ephemerides_metadata() -> dict[str, str]:
    """Return a copy of the ephemerides source metadata."""
    return dict(EPHEMERIDES_METADATA)


def resolve_moon_phase(
    date,
    table: Mapping[dt.date, float] | None = None,
    logger: logging.Logger | None = None,
) -> MoonPhase:
    """
    Resolve the lunar phase for *date*.

    An authoritative table, when supplied and containing the calendar
    date, wins.  Otherwise the phase is computed from the mean synodic
    month counted from the January 2000 new moon.

    Parameters
    ----------
    date : date-like
        Date of interest (UTC).
    table : mapping, optional
        ``{datetime.date: phase_fraction}`` with fractions in [0, 1).
    logger : logging.Logger, optional
        Logger instance for diagnostic messages.

    Returns
    -------
    MoonPhase
    """
    _log = logger or logging.getLogger(__name__)
    ts = to_utc_timestamp(date)

    if table:
        fraction = table.get(ts.date())
        if fraction is not None:
            fraction = float(fraction) % 1.0
            return MoonPhase(
                age_days=fraction * SYNODIC_MONTH_DAYS,
                fraction=fraction,
                illumination=(1.0 - math.cos(2.0 * math.pi * fraction)) / 2.0,
                source='table',
            )
        _log.debug('No tabulated moon phase for %s, computing.', ts.date())

    elapsed_days = (ts - REFERENCE_NEW_MOON) / pd.Timedelta(days=1)
    age = elapsed_days % SYNODIC_MONTH_DAYS
    fraction = age / SYNODIC_MONTH_DAYS
    return MoonPhase(
        age_days=age,
        fraction=fraction,
        illumination=(1.0 - math.cos(2.0 * math.pi * fraction)) / 2.0,
        source='computed',
    )
