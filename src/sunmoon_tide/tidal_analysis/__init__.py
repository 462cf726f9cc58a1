"""
Tidal Analysis Subpackage

Provides functionality for:
- Astronomical arguments, Delta T and leap seconds
- Tidal constituent catalogue with regional harmonic constants
- Nodal corrections
- Harmonic water level prediction
- Extrema extraction (high/low water)
"""

from sunmoon_tide.tidal_analysis.constituents import (
    CONSTITUENT_SPEEDS,
    NOS_37_CONSTITUENTS,
    TIDAL_CONSTITUENTS,
    TidalConstituent,
    get_constituent,
    get_constituents_by_family,
    normalize_constituent_name,
    regional_amplitude,
    regional_constants,
    regional_phase_lag,
)
from sunmoon_tide.tidal_analysis.ephemerides import (
    AstronomicalArguments,
    astronomical_arguments,
    delta_t_seconds,
    get_ephemerides_metadata,
    julian_day,
    leap_second_offset,
    resolve_moon_phase,
)
from sunmoon_tide.tidal_analysis.extremes import (
    TideExtreme,
    extract_water_level_extrema,
    find_extremes,
)
from sunmoon_tide.tidal_analysis.nodal_corrections import (
    NodalCorrection,
    nodal_correction,
)
from sunmoon_tide.tidal_analysis.tidal_prediction import (
    LocationData,
    classify_region,
    generate_graph_data,
    predict_from_constants,
    predict_from_tile,
    predict_level,
    predict_range,
    predict_series,
)

__all__ = [
    # Ephemerides
    'AstronomicalArguments',
    'astronomical_arguments',
    'delta_t_seconds',
    'leap_second_offset',
    'julian_day',
    'get_ephemerides_metadata',
    'resolve_moon_phase',
    # Constituent definitions
    'NOS_37_CONSTITUENTS',
    'CONSTITUENT_SPEEDS',
    'TIDAL_CONSTITUENTS',
    'TidalConstituent',
    'get_constituent',
    'get_constituents_by_family',
    'normalize_constituent_name',
    'regional_amplitude',
    'regional_phase_lag',
    'regional_constants',
    # Nodal corrections
    'NodalCorrection',
    'nodal_correction',
    # Tidal prediction
    'LocationData',
    'classify_region',
    'predict_level',
    'predict_series',
    'predict_range',
    'generate_graph_data',
    'predict_from_constants',
    'predict_from_tile',
    # Extrema extraction
    'TideExtreme',
    'find_extremes',
    'extract_water_level_extrema',
]
