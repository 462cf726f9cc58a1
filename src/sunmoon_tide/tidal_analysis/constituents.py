"""
Tidal constituent catalogue.

Defines the 37 NOS standard tidal constituents plus the 2MS6 overtide,
with angular speeds, Doodson numbers, nodal-correction composition and
regional harmonic constants for the Gulf of Thailand and the Andaman Sea.

Constituent speeds are from Schureman (1958) Special Publication No. 98.
Doodson numbers are ordered ``(tau, s, h, p, N', p')``.

The catalogue is built once at import and exposed read-only; it is safe
to share between any number of concurrent callers.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

# ---------------------------------------------------------------------------
# The 37 NOS standard tidal constituents, grouped by type.
# ---------------------------------------------------------------------------

# -- Semidiurnal (period ~ 12 h) --
_SEMIDIURNAL = [
    'M2', 'S2', 'N2', 'K2', '2N2', 'MU2', 'NU2', 'L2', 'T2', 'R2', 'LDA2',
]

# -- Diurnal (period ~ 24 h) --
_DIURNAL = [
    'K1', 'O1', 'P1', 'Q1', 'J1', 'M1', 'OO1', '2Q1', 'RHO1',
]

# -- Long-period (period > 1 day) --
_LONG_PERIOD = [
    'MF', 'MM', 'SSA', 'SA', 'MSM', 'MSF',
]

# -- Shallow-water / overtides --
_SHALLOW_WATER = [
    'M4', 'M6', 'M8', 'MS4', 'MN4', 'MK3', 'S4', 'S6', '2MK3', '2SM2', 'MO3',
]

NOS_37_CONSTITUENTS: list[str] = (
    _SEMIDIURNAL + _DIURNAL + _LONG_PERIOD + _SHALLOW_WATER
)
"""List of the 37 NOS standard tidal constituents."""

CONSTITUENT_SPEEDS: dict[str, float] = {
    # Semidiurnal
    'M2':   28.9841042,
    'S2':   30.0000000,
    'N2':   28.4397295,
    'K2':   30.0821373,
    '2N2':  27.8953548,
    'MU2':  27.9682084,
    'NU2':  28.5125831,
    'L2':   29.5284789,
    'T2':   29.9589333,
    'R2':   30.0410667,
    'LDA2': 29.4556253,
    # Diurnal
    'K1':   15.0410686,
    'O1':   13.9430356,
    'P1':   14.9589314,
    'Q1':   13.3986609,
    'J1':   15.5854433,
    'M1':   14.4966939,
    'OO1':  16.1391017,
    '2Q1':  12.8542862,
    'RHO1': 13.4715145,
    # Long-period
    'MF':    1.0980331,
    'MM':    0.5443747,
    'SSA':   0.0821373,
    'SA':    0.0410686,
    'MSM':   0.4715211,
    'MSF':   1.0158958,
    # Shallow-water / overtides
    'M4':   57.9682084,
    'M6':   86.9523127,
    'M8':  115.9364169,
    'MS4':  58.9841042,
    'MN4':  57.4238337,
    'MK3':  44.0251729,
    'S4':   60.0000000,
    'S6':   90.0000000,
    '2MK3': 42.9271398,
    '2SM2': 31.0158958,
    'MO3':  42.9271398,
    '2MS6': 87.9682084,
}
"""Angular speeds (degrees/hour) for every catalogued constituent."""

FAMILIES = ('semidiurnal', 'diurnal', 'long_period', 'shallow_water')
"""Constituent family tags."""

GULF_OF_THAILAND = 'gulf_of_thailand'
ANDAMAN_SEA = 'andaman_sea'
REGIONS = (GULF_OF_THAILAND, ANDAMAN_SEA)
DEFAULT_REGION = GULF_OF_THAILAND
"""Region used when an unsupported region key is requested."""

CONSTITUENT_ALIASES: dict[str, str] = {
    'LAMBDA2': 'LDA2',
    'LAM2':    'LDA2',
    'RHO':     'RHO1',
}
"""Alternative spellings mapped onto catalogue names."""


@dataclass(frozen=True, eq=False)
class TidalConstituent:
    """A harmonic tidal constituent.

    Attributes
    ----------
    name : str
        Catalogue name, e.g. ``'M2'``.
    description : str
        Short physical description.
    speed : float
        Angular speed in degrees per hour.
    doodson : tuple of int
        Multiples of ``(tau, s, h, p, N', p')``.
    family : str
        One of :data:`FAMILIES`.
    nodal_terms : tuple
        ``((parent, k), ...)`` pairs composing the nodal correction as
        ``f = prod(f_parent ** |k|)`` and ``u = sum(k * u_parent)``.
        Empty for constituents without a nodal correction.
    regional : Mapping
        ``{region: (amplitude_m, phase_lag_deg)}``.
    """

    name: str
    description: str
    speed: float
    doodson: tuple[int, int, int, int, int, int]
    family: str
    nodal_terms: tuple[tuple[str, int], ...]
    regional: Mapping[str, tuple[float, float]]

    @property
    def period_hours(self) -> float:
        """Period in hours."""
        return 360.0 / self.speed


# name, description, family, doodson, nodal terms,
# (gulf amplitude, gulf phase), (andaman amplitude, andaman phase)
_CATALOGUE_ROWS = [
    ('M2', 'Principal lunar semidiurnal', 'semidiurnal',
     (2, 0, 0, 0, 0, 0), (('M2', 1),), (0.85, 45.0), (1.25, 65.0)),
    ('S2', 'Principal solar semidiurnal', 'semidiurnal',
     (2, 2, -2, 0, 0, 0), (), (0.25, 0.0), (0.40, 0.0)),
    ('N2', 'Larger lunar elliptic semidiurnal', 'semidiurnal',
     (2, -1, 0, 1, 0, 0), (('M2', 1),), (0.15, 45.0), (0.22, 65.0)),
    ('K2', 'Lunisolar semidiurnal', 'semidiurnal',
     (2, 2, 0, 0, 0, 0), (('K2', 1),), (0.07, 0.0), (0.10, 0.0)),
    ('2N2', 'Lunar elliptic semidiurnal second-order', 'semidiurnal',
     (2, -2, 0, 2, 0, 0), (('M2', 1),), (0.03, 45.0), (0.04, 65.0)),
    ('MU2', 'Variational', 'semidiurnal',
     (2, -2, 2, 0, 0, 0), (('M2', 1),), (0.012, 0.0), (0.018, 0.0)),
    ('NU2', 'Larger lunar evectional', 'semidiurnal',
     (2, -1, 2, -1, 0, 0), (('M2', 1),), (0.03, 45.0), (0.04, 65.0)),
    ('L2', 'Smaller lunar elliptic semidiurnal', 'semidiurnal',
     (2, 1, 0, -1, 0, 0), (('L2', 1),), (0.0, 0.0), (0.0, 0.0)),
    ('T2', 'Larger solar elliptic', 'semidiurnal',
     (2, 2, -3, 0, 0, 1), (), (0.0, 0.0), (0.0, 0.0)),
    ('R2', 'Smaller solar elliptic', 'semidiurnal',
     (2, 2, -1, 0, 0, -1), (), (0.0, 0.0), (0.0, 0.0)),
    ('LDA2', 'Smaller lunar evectional', 'semidiurnal',
     (2, 1, -2, 1, 0, 0), (('LDA2', 1),), (0.0, 0.0), (0.0, 0.0)),
    ('K1', 'Lunisolar diurnal', 'diurnal',
     (1, 1, 0, 0, 0, 0), (('K1', 1),), (0.18, 90.0), (0.12, 110.0)),
    ('O1', 'Principal lunar diurnal', 'diurnal',
     (1, -1, 0, 0, 0, 0), (('O1', 1),), (0.12, 90.0), (0.08, 110.0)),
    ('P1', 'Principal solar diurnal', 'diurnal',
     (1, 1, -2, 0, 0, 0), (), (0.06, 0.0), (0.04, 0.0)),
    ('Q1', 'Larger lunar elliptic diurnal', 'diurnal',
     (1, -2, 0, 1, 0, 0), (('O1', 1),), (0.024, 90.0), (0.016, 110.0)),
    ('J1', 'Smaller lunar elliptic diurnal', 'diurnal',
     (1, 2, 0, -1, 0, 0), (('K1', 1),), (0.0, 0.0), (0.0, 0.0)),
    ('M1', 'Smaller lunar elliptic diurnal (M1)', 'diurnal',
     (1, 0, 0, 1, 0, 0), (), (0.012, 0.0), (0.008, 0.0)),
    ('OO1', 'Lunar diurnal second-order', 'diurnal',
     (1, 3, 0, 0, 0, 0), (('O1', 1),), (0.0, 0.0), (0.0, 0.0)),
    ('2Q1', 'Lunar elliptic diurnal second-order', 'diurnal',
     (1, -3, 0, 2, 0, 0), (('O1', 1),), (0.0, 0.0), (0.0, 0.0)),
    ('RHO1', 'Larger lunar evectional diurnal', 'diurnal',
     (1, -2, 2, -1, 0, 0), (('O1', 1),), (0.018, 0.0), (0.012, 0.0)),
    ('MF', 'Lunisolar fortnightly', 'long_period',
     (0, 2, 0, 0, 0, 0), (('MF', 1),), (0.03, 0.0), (0.02, 0.0)),
    ('MM', 'Lunar monthly', 'long_period',
     (0, 1, 0, -1, 0, 0), (('MM', 1),), (0.018, 0.0), (0.012, 0.0)),
    ('SSA', 'Solar semiannual', 'long_period',
     (0, 0, 2, 0, 0, 0), (), (0.006, 0.0), (0.004, 0.0)),
    ('SA', 'Solar annual', 'long_period',
     (0, 0, 1, 0, 0, 0), (), (0.012, 0.0), (0.008, 0.0)),
    ('MSM', 'Lunar monthly (solar-modulated)', 'long_period',
     (0, 1, -2, 1, 0, 0), (), (0.0, 0.0), (0.0, 0.0)),
    ('MSF', 'Lunisolar synodic fortnightly', 'long_period',
     (0, 2, -2, 0, 0, 0), (('MSF', 1),), (0.0, 0.0), (0.0, 0.0)),
    ('M4', 'Shallow water overtide of principal lunar', 'shallow_water',
     (4, 0, 0, 0, 0, 0), (('M2', 2),), (0.04, 45.0), (0.015, 65.0)),
    ('M6', 'Shallow water overtide of principal lunar', 'shallow_water',
     (6, 0, 0, 0, 0, 0), (('M2', 3),), (0.0, 0.0), (0.0, 0.0)),
    ('M8', 'Shallow water eighth diurnal', 'shallow_water',
     (8, 0, 0, 0, 0, 0), (('M2', 4),), (0.0, 0.0), (0.0, 0.0)),
    ('MS4', 'Shallow water quarter diurnal', 'shallow_water',
     (4, 2, -2, 0, 0, 0), (('M2', 1),), (0.02, 0.0), (0.01, 0.0)),
    ('MN4', 'Shallow water quarter diurnal', 'shallow_water',
     (4, -1, 0, 1, 0, 0), (('M2', 2),), (0.015, 45.0), (0.009, 65.0)),
    ('MK3', 'Shallow water terdiurnal', 'shallow_water',
     (3, 1, 0, 0, 0, 0), (('M2', 1), ('K1', 1)), (0.0, 0.0), (0.0, 0.0)),
    ('S4', 'Shallow water overtide of principal solar', 'shallow_water',
     (4, 4, -4, 0, 0, 0), (), (0.0, 0.0), (0.0, 0.0)),
    ('S6', 'Shallow water overtide of principal solar', 'shallow_water',
     (6, 6, -6, 0, 0, 0), (), (0.0, 0.0), (0.0, 0.0)),
    ('2MK3', 'Shallow water terdiurnal', 'shallow_water',
     (3, -1, 0, 0, 0, 0), (('M2', 2), ('K1', -1)), (0.0, 0.0), (0.0, 0.0)),
    ('2SM2', 'Shallow water semidiurnal', 'shallow_water',
     (2, 4, -4, 0, 0, 0), (('M2', -1),), (0.0, 0.0), (0.0, 0.0)),
    ('MO3', 'Lunar terdiurnal', 'shallow_water',
     (3, -1, 0, 0, 0, 0), (('M2', 1), ('O1', 1)), (0.0, 0.0), (0.0, 0.0)),
    ('2MS6', 'Shallow water sixth diurnal', 'shallow_water',
     (6, 2, -2, 0, 0, 0), (('M2', 2),), (0.008, 0.0), (0.004, 0.0)),
]


def _build_catalogue() -> Mapping[str, TidalConstituent]:
    catalogue = {}
    for (name, description, family, doodson, nodal_terms,
         gulf, andaman) in _CATALOGUE_ROWS:
        catalogue[name] = TidalConstituent(
            name=name,
            description=description,
            speed=CONSTITUENT_SPEEDS[name],
            doodson=doodson,
            family=family,
            nodal_terms=nodal_terms,
            regional=MappingProxyType({
                GULF_OF_THAILAND: gulf,
                ANDAMAN_SEA: andaman,
            }),
        )
    return MappingProxyType(catalogue)


TIDAL_CONSTITUENTS: Mapping[str, TidalConstituent] = _build_catalogue()
"""Read-only catalogue of all constituents keyed by name."""

CONSTITUENT_STATS: dict[str, int] = {
    family: sum(1 for c in TIDAL_CONSTITUENTS.values() if c.family == family)
    for family in FAMILIES
}
"""Number of catalogued constituents per family."""


def normalize_constituent_name(name: str) -> str:
    """
    Normalize a constituent name to catalogue convention.

    Parameters
    ----------
    name : str
        Constituent name in any case, e.g. ``'Mf'`` or ``'lambda2'``.

    Returns
    -------
    str
        Normalized name.  If the name is not recognized, it is returned
        unchanged (uppercased).
    """
    cleaned = name.strip().upper()
    return CONSTITUENT_ALIASES.get(cleaned, cleaned)


def get_constituent(name: str) -> TidalConstituent | None:
    """Look up a constituent by name, or ``None`` if it is not catalogued."""
    return TIDAL_CONSTITUENTS.get(normalize_constituent_name(name))


def get_constituents_by_family(family: str) -> list[TidalConstituent]:
    """
    Return all constituents of one family.

    Raises
    ------
    ValueError
        If *family* is not one of :data:`FAMILIES`.
    """
    key = family.strip().lower().replace('-', '_')
    if key not in FAMILIES:
        raise ValueError(
            f"Unknown constituent family '{family}'; expected one of "
            f"{', '.join(FAMILIES)}."
        )
    return [c for c in TIDAL_CONSTITUENTS.values() if c.family == key]


def resolve_region(region: str | None) -> str:
    """Map a region key onto a supported region, defaulting to the Gulf."""
    if region in REGIONS:
        return region
    return DEFAULT_REGION


def _as_constituent(constituent: TidalConstituent | str) -> TidalConstituent:
    if isinstance(constituent, TidalConstituent):
        return constituent
    found = get_constituent(constituent)
    if found is None:
        raise KeyError(f"Unknown constituent '{constituent}'.")
    return found


def regional_constants(
    constituent: TidalConstituent | str,
    region: str | None,
) -> tuple[float, float]:
    """
    Return ``(amplitude_m, phase_lag_deg)`` for a constituent in a region.

    Unsupported region keys fall back to the Gulf of Thailand.

    Raises
    ------
    KeyError
        If a constituent name is not catalogued.
    """
    return _as_constituent(constituent).regional[resolve_region(region)]


def regional_amplitude(constituent: TidalConstituent | str,
                       region: str | None) -> float:
    """Regional amplitude in metres."""
    return regional_constants(constituent, region)[0]


def regional_phase_lag(constituent: TidalConstituent | str,
                       region: str | None) -> float:
    """Regional phase lag in degrees."""
    return regional_constants(constituent, region)[1]


def active_constituents(region: str | None) -> list[TidalConstituent]:
    """Constituents with a non-zero amplitude in *region*."""
    key = resolve_region(region)
    return [c for c in TIDAL_CONSTITUENTS.values() if c.regional[key][0] > 0]
