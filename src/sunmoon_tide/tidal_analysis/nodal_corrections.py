"""
Nodal corrections (f, u) for tidal constituents.

The lunar node regresses around the ecliptic with an 18.61-year period,
modulating the amplitude (factor *f*) and phase (correction *u*, degrees)
of the lunar constituents.  Base constituents use the closed forms of
Schureman (1958) SP98 Table 14 in the node longitude ``N`` and, for L2 and
LDA2, lunar perigee ``p``.

Compound (shallow-water) constituents are composed from their parents::

    f = prod(f_parent ** |k|)
    u = sum(k * u_parent)

so every pure M2 overtide gets ``f = f_M2 ** k`` and ``u = k * u_M2``.
This is the usual approximation for overtides and is applied uniformly,
including where a rigorous derivation for a particular compound differs
slightly.

Solar constituents and constituents without a tabulated correction are
left uncorrected (``f = 1``, ``u = 0``).
"""
from __future__ import annotations

import math
from typing import Callable, NamedTuple

from .constituents import TIDAL_CONSTITUENTS, normalize_constituent_name
from .ephemerides import AstronomicalArguments


class NodalCorrection(NamedTuple):
    """Amplitude factor *f* and phase correction *u* (degrees)."""

    f: float
    u: float


UNCORRECTED = NodalCorrection(1.0, 0.0)


def _m2(n: float, p: float) -> NodalCorrection:
    f = 1.0 - 0.03731 * math.cos(n) + 0.00052 * math.cos(2 * n)
    u = -2.1408 * math.sin(n) + 0.0138 * math.sin(2 * n)
    return NodalCorrection(f, u)


def _l2(n: float, p: float) -> NodalCorrection:
    f, u = _m2(n, p)
    return NodalCorrection(f, u + 0.1643 * math.sin(p))


def _lda2(n: float, p: float) -> NodalCorrection:
    f, u = _m2(n, p)
    return NodalCorrection(f, u - 0.3285 * math.sin(p))


def _k2(n: float, p: float) -> NodalCorrection:
    f = 1.024 + 0.2852 * math.cos(n) + 0.0073 * math.cos(2 * n)
    u = -17.74 * math.sin(n) + 0.68 * math.sin(2 * n)
    return NodalCorrection(f, u)


def _k1(n: float, p: float) -> NodalCorrection:
    f = 1.006 + 0.1150 * math.cos(n) - 0.0088 * math.cos(2 * n)
    u = (-8.86 * math.sin(n) + 0.68 * math.sin(2 * n)
         - 0.07 * math.sin(3 * n))
    return NodalCorrection(f, u)


def _o1(n: float, p: float) -> NodalCorrection:
    f = 1.009 + 0.1870 * math.cos(n) - 0.0147 * math.cos(2 * n)
    u = (10.8 * math.sin(n) - 1.34 * math.sin(2 * n)
         + 0.19 * math.sin(3 * n))
    return NodalCorrection(f, u)


def _mf(n: float, p: float) -> NodalCorrection:
    f = 1.043 + 0.414 * math.cos(n)
    u = -23.7 * math.sin(n) + 2.7 * math.sin(2 * n)
    return NodalCorrection(f, u)


def _msf(n: float, p: float) -> NodalCorrection:
    return NodalCorrection(1.043 + 0.414 * math.cos(n),
                           -23.7 * math.sin(n))


def _mm(n: float, p: float) -> NodalCorrection:
    return NodalCorrection(1.0 - 0.130 * math.cos(n), 0.0)


BASE_CORRECTIONS: dict[str, Callable[[float, float], NodalCorrection]] = {
    'M2': _m2,
    'L2': _l2,
    'LDA2': _lda2,
    'K2': _k2,
    'K1': _k1,
    'O1': _o1,
    'MF': _mf,
    'MSF': _msf,
    'MM': _mm,
}
"""Closed-form corrections keyed by base family, taking N and p in radians."""

NODAL_FACTOR_BOUNDS: dict[str, tuple[float, float]] = {
    'M2': (0.95, 1.05),
    'L2': (0.95, 1.05),
    'LDA2': (0.95, 1.05),
    'K2': (0.7, 1.35),
    'K1': (0.85, 1.15),
    'O1': (0.78, 1.2),
    'MF': (0.55, 1.5),
    'MSF': (0.55, 1.5),
    'MM': (0.85, 1.15),
}
"""Physical range of *f* over a full nodal cycle for each base family.

Most families stay within roughly 0.7-1.3.  K2 and the fortnightly
constituents swing further, as tabulated by Schureman.
"""


def nodal_correction(
    name: str,
    arguments: AstronomicalArguments,
) -> NodalCorrection:
    """
    Compute the nodal correction for one constituent.

    Parameters
    ----------
    name : str
        Constituent name (case-insensitive).
    arguments : AstronomicalArguments
        Astronomical arguments the correction is valid for.

    Returns
    -------
    NodalCorrection
        ``(f, u)`` with *u* in degrees.  Unknown constituents and those
        without a correction return ``(1.0, 0.0)``.
    """
    key = normalize_constituent_name(name)
    constituent = TIDAL_CONSTITUENTS.get(key)
    if constituent is None:
        terms = ((key, 1),) if key in BASE_CORRECTIONS else ()
    else:
        terms = constituent.nodal_terms
    if not terms:
        return UNCORRECTED

    n = math.radians(arguments.N)
    p = math.radians(arguments.p)
    f, u = 1.0, 0.0
    for parent, k in terms:
        parent_f, parent_u = BASE_CORRECTIONS[parent](n, p)
        f *= parent_f ** abs(k)
        u += k * parent_u
    return NodalCorrection(f, u)


def nodal_corrections(
    arguments: AstronomicalArguments,
    names: list[str] | None = None,
) -> dict[str, NodalCorrection]:
    """Nodal corrections for several constituents (default: all)."""
    if names is None:
        names = list(TIDAL_CONSTITUENTS)
    return {name: nodal_correction(name, arguments) for name in names}


def nodal_factor_bounds(name: str) -> tuple[float, float]:
    """
    Return the documented ``(f_min, f_max)`` range for a constituent.

    Compound constituents combine their parents' ranges.  Uncorrected
    constituents return ``(1.0, 1.0)``.
    """
    key = normalize_constituent_name(name)
    constituent = TIDAL_CONSTITUENTS.get(key)
    if constituent is None:
        terms = ((key, 1),) if key in NODAL_FACTOR_BOUNDS else ()
    else:
        terms = constituent.nodal_terms
    low, high = 1.0, 1.0
    for parent, k in terms:
        parent_low, parent_high = NODAL_FACTOR_BOUNDS[parent]
        low *= parent_low ** abs(k)
        high *= parent_high ** abs(k)
    return low, high
