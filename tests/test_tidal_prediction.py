"""
Unit tests for the tidal_analysis subpackage.

Tests cover:
- Ephemerides: Julian day, Delta T, leap seconds, astronomical arguments,
  moon phase
- Constituent catalogue and regional constants
- Nodal corrections
- Regional harmonic prediction, graph data and extremes
- Tile-backed prediction through UTide
"""
import datetime as dt

import numpy as np
import pandas as pd
import pytest

BANGKOK = (13.7563, 100.5018)
PHUKET = (7.9, 98.3)


# -----------------------------------------------------------------------
# Ephemerides tests
# -----------------------------------------------------------------------

class TestEphemerides:
    """Tests for ephemerides.py."""

    def test_julian_day_j2000(self):
        """2000-01-01 12:00 UTC is JD 2451545.0."""
        from sunmoon_tide.tidal_analysis.ephemerides import julian_day
        assert julian_day('2000-01-01 12:00') == pytest.approx(2451545.0)

    def test_julian_day_aware_input(self):
        """Timezone-aware inputs are converted to UTC first."""
        from sunmoon_tide.tidal_analysis.ephemerides import julian_day
        local = pd.Timestamp('2000-01-01 19:00', tz='Asia/Bangkok')
        assert julian_day(local) == pytest.approx(2451545.0)

    def test_delta_t_interpolates(self):
        """Delta T in 2020 lies between the 2015 and 2025 table values."""
        from sunmoon_tide.tidal_analysis.ephemerides import delta_t_seconds
        value = delta_t_seconds('2020-06-15')
        assert 68.75 < value < 72.60

    def test_delta_t_clamps_outside_table(self):
        """Dates outside the table clamp to the nearest endpoint."""
        from sunmoon_tide.tidal_analysis.ephemerides import delta_t_seconds
        assert delta_t_seconds('1900-06-01') == delta_t_seconds('1940-01-01')
        assert delta_t_seconds('2100-01-01') == delta_t_seconds('2090-06-01')

    def test_leap_seconds(self):
        """Cumulative offsets follow the IERS table."""
        from sunmoon_tide.tidal_analysis.ephemerides import leap_second_offset
        assert leap_second_offset('1970-01-01') == 0
        assert leap_second_offset('1972-01-01') == 10
        assert leap_second_offset('2016-12-31') == 36
        assert leap_second_offset('2024-01-01') == 37

    def test_leap_second_table_is_a_copy(self):
        """Mutating the returned table does not affect lookups."""
        from sunmoon_tide.tidal_analysis.ephemerides import (
            leap_second_offset,
            leap_second_table,
        )
        table = leap_second_table()
        table.clear()
        assert leap_second_offset('2024-01-01') == 37

    def test_arguments_in_range(self):
        """Angles lie in [0, 360) and tau in [0, 24)."""
        from sunmoon_tide.tidal_analysis.ephemerides import astronomical_arguments
        for date in ('1990-03-01', '2000-01-01', '2024-06-15 18:30',
                     '2035-12-31 23:59'):
            args = astronomical_arguments(date, longitude=100.5)
            for angle in (args.s, args.h, args.p, args.N, args.pp):
                assert 0.0 <= angle < 360.0
            assert 0.0 <= args.tau < 24.0

    def test_arguments_deterministic(self):
        """The same instant always yields the same arguments."""
        from sunmoon_tide.tidal_analysis.ephemerides import astronomical_arguments
        first = astronomical_arguments('2024-06-15', 100.5)
        second = astronomical_arguments(dt.datetime(2024, 6, 15), 100.5)
        assert first == second

    @pytest.mark.parametrize('bad', [None, 'not-a-date', float('nan'), pd.NaT, True])
    def test_invalid_dates_raise(self, bad):
        """Missing or unparsable dates raise InvalidInputError."""
        from sunmoon_tide.errors import InvalidInputError
        from sunmoon_tide.tidal_analysis.ephemerides import astronomical_arguments
        with pytest.raises(InvalidInputError):
            astronomical_arguments(bad)

    def test_invalid_date_is_value_error(self):
        """InvalidInputError can be caught as ValueError."""
        from sunmoon_tide.tidal_analysis.ephemerides import julian_day
        with pytest.raises(ValueError):
            julian_day('2024-13-45')

    def test_nonfinite_longitude_raises(self):
        """A non-finite longitude is rejected."""
        from sunmoon_tide.errors import InvalidInputError
        from sunmoon_tide.tidal_analysis.ephemerides import local_mean_lunar_time
        with pytest.raises(InvalidInputError):
            local_mean_lunar_time('2024-01-01', float('inf'))

    def test_moon_phase_computed(self):
        """The reference new moon has age zero."""
        from sunmoon_tide.tidal_analysis.ephemerides import resolve_moon_phase
        phase = resolve_moon_phase('2000-01-06 18:14')
        assert phase.source == 'computed'
        assert phase.age_days == pytest.approx(0.0, abs=1e-6)
        assert phase.illumination == pytest.approx(0.0, abs=1e-6)

    def test_moon_phase_full_after_half_cycle(self):
        """Half a synodic month after new moon the disk is fully lit."""
        from sunmoon_tide.tidal_analysis.ephemerides import (
            REFERENCE_NEW_MOON,
            SYNODIC_MONTH_DAYS,
            resolve_moon_phase,
        )
        date = REFERENCE_NEW_MOON + pd.Timedelta(days=SYNODIC_MONTH_DAYS / 2)
        phase = resolve_moon_phase(date)
        assert phase.fraction == pytest.approx(0.5, abs=1e-6)
        assert phase.illumination == pytest.approx(1.0, abs=1e-6)

    def test_moon_phase_table_wins(self):
        """A tabulated phase overrides the computed one."""
        from sunmoon_tide.tidal_analysis.ephemerides import resolve_moon_phase
        table = {dt.date(2024, 1, 1): 0.5}
        phase = resolve_moon_phase('2024-01-01 08:00', table=table)
        assert phase.source == 'table'
        assert phase.fraction == 0.5
        assert phase.illumination == pytest.approx(1.0)

    def test_moon_phase_table_miss_computes(self):
        """Dates absent from the table fall back to computation."""
        from sunmoon_tide.tidal_analysis.ephemerides import resolve_moon_phase
        table = {dt.date(2024, 1, 1): 0.5}
        assert resolve_moon_phase('2024-01-02', table=table).source == 'computed'

    def test_ephemerides_metadata_copy(self):
        """Metadata is DE430 and returned as a copy."""
        from sunmoon_tide.tidal_analysis.ephemerides import get_ephemerides_metadata
        meta = get_ephemerides_metadata()
        assert meta['id'] == 'DE430'
        meta['id'] = 'changed'
        assert get_ephemerides_metadata()['id'] == 'DE430'


# -----------------------------------------------------------------------
# Constituent tests
# -----------------------------------------------------------------------

class TestConstituents:
    """Tests for constituents.py definitions."""

    def test_nos_37_count(self):
        """NOS_37_CONSTITUENTS must contain exactly 37 unique entries."""
        from sunmoon_tide.tidal_analysis.constituents import NOS_37_CONSTITUENTS
        assert len(NOS_37_CONSTITUENTS) == 37
        assert len(set(NOS_37_CONSTITUENTS)) == 37

    def test_catalogue_covers_nos_37(self):
        """Every NOS constituent is catalogued, plus 2MS6."""
        from sunmoon_tide.tidal_analysis.constituents import (
            NOS_37_CONSTITUENTS,
            TIDAL_CONSTITUENTS,
        )
        assert set(NOS_37_CONSTITUENTS) <= set(TIDAL_CONSTITUENTS)
        assert '2MS6' in TIDAL_CONSTITUENTS
        assert len(TIDAL_CONSTITUENTS) == 38

    def test_family_counts_sum(self):
        """Per-family statistics add up to the catalogue size."""
        from sunmoon_tide.tidal_analysis.constituents import (
            CONSTITUENT_STATS,
            TIDAL_CONSTITUENTS,
        )
        assert sum(CONSTITUENT_STATS.values()) == len(TIDAL_CONSTITUENTS)

    def test_m2_definition(self):
        """M2 speed and period match the principal lunar semidiurnal tide."""
        from sunmoon_tide.tidal_analysis.constituents import get_constituent
        m2 = get_constituent('m2')
        assert m2.family == 'semidiurnal'
        assert abs(m2.speed - 28.9841042) < 1e-6
        assert m2.period_hours == pytest.approx(12.4206, abs=1e-4)

    def test_aliases(self):
        """Alternative spellings resolve to catalogue names."""
        from sunmoon_tide.tidal_analysis.constituents import (
            get_constituent,
            normalize_constituent_name,
        )
        assert normalize_constituent_name('lambda2') == 'LDA2'
        assert normalize_constituent_name(' Mf ') == 'MF'
        assert get_constituent('rho').name == 'RHO1'
        assert get_constituent('XYZ') is None

    def test_family_lookup(self):
        """Diurnal lookup returns only diurnal constituents."""
        from sunmoon_tide.tidal_analysis.constituents import get_constituents_by_family
        diurnal = get_constituents_by_family('diurnal')
        assert {'K1', 'O1', 'P1', 'Q1'} <= {c.name for c in diurnal}
        assert all(c.family == 'diurnal' for c in diurnal)

    def test_unknown_family_raises(self):
        """An unknown family raises ValueError."""
        from sunmoon_tide.tidal_analysis.constituents import get_constituents_by_family
        with pytest.raises(ValueError, match='Unknown constituent family'):
            get_constituents_by_family('quarterdiurnal')

    def test_regional_constants(self):
        """M2 constants differ between the two seas."""
        from sunmoon_tide.tidal_analysis.constituents import (
            ANDAMAN_SEA,
            GULF_OF_THAILAND,
            regional_amplitude,
            regional_constants,
            regional_phase_lag,
        )
        assert regional_constants('M2', GULF_OF_THAILAND) == (0.85, 45.0)
        assert regional_amplitude('M2', ANDAMAN_SEA) == 1.25
        assert regional_phase_lag('M2', ANDAMAN_SEA) == 65.0

    def test_unknown_region_falls_back_to_gulf(self):
        """Unsupported region keys use the Gulf of Thailand constants."""
        from sunmoon_tide.tidal_analysis.constituents import (
            GULF_OF_THAILAND,
            regional_constants,
        )
        assert (regional_constants('K1', 'south_china_sea')
                == regional_constants('K1', GULF_OF_THAILAND))

    def test_unknown_constituent_raises(self):
        """Regional lookup of an uncatalogued name raises KeyError."""
        from sunmoon_tide.tidal_analysis.constituents import regional_constants
        with pytest.raises(KeyError):
            regional_constants('XYZ', 'andaman_sea')

    def test_active_constituents_have_amplitude(self):
        """Inactive constituents (e.g. L2) are excluded."""
        from sunmoon_tide.tidal_analysis.constituents import (
            GULF_OF_THAILAND,
            active_constituents,
        )
        names = {c.name for c in active_constituents(GULF_OF_THAILAND)}
        assert 'M2' in names
        assert 'L2' not in names


# -----------------------------------------------------------------------
# Nodal correction tests
# -----------------------------------------------------------------------

def _arguments(node_deg, perigee_deg=0.0):
    from sunmoon_tide.tidal_analysis.ephemerides import AstronomicalArguments
    return AstronomicalArguments(s=0.0, h=0.0, p=perigee_deg, N=node_deg,
                                 pp=0.0, tau=0.0)


class TestNodalCorrections:
    """Tests for nodal_corrections.py."""

    def test_factors_within_bounds_over_nodal_cycle(self):
        """f stays inside the documented range for every constituent."""
        from sunmoon_tide.tidal_analysis.constituents import TIDAL_CONSTITUENTS
        from sunmoon_tide.tidal_analysis.nodal_corrections import (
            nodal_correction,
            nodal_factor_bounds,
        )
        for node in range(0, 360, 5):
            for perigee in (0.0, 90.0, 180.0, 270.0):
                args = _arguments(float(node), perigee)
                for name in TIDAL_CONSTITUENTS:
                    f, _ = nodal_correction(name, args)
                    low, high = nodal_factor_bounds(name)
                    assert low - 1e-9 <= f <= high + 1e-9, (
                        f"{name} f={f:.4f} outside [{low}, {high}] at N={node}"
                    )

    def test_solar_constituents_uncorrected(self):
        """S2 and P1 have f = 1 and u = 0."""
        from sunmoon_tide.tidal_analysis.nodal_corrections import (
            UNCORRECTED,
            nodal_correction,
        )
        args = _arguments(123.0)
        assert nodal_correction('S2', args) == UNCORRECTED
        assert nodal_correction('P1', args) == UNCORRECTED

    def test_unknown_constituent_uncorrected(self):
        """Names outside the catalogue are left uncorrected."""
        from sunmoon_tide.tidal_analysis.nodal_corrections import (
            UNCORRECTED,
            nodal_correction,
        )
        assert nodal_correction('XYZ', _arguments(40.0)) == UNCORRECTED

    def test_m4_is_m2_squared(self):
        """M4 takes f = f_M2 ** 2 and u = 2 u_M2."""
        from sunmoon_tide.tidal_analysis.nodal_corrections import nodal_correction
        args = _arguments(57.0)
        m2 = nodal_correction('M2', args)
        m4 = nodal_correction('M4', args)
        assert m4.f == pytest.approx(m2.f ** 2)
        assert m4.u == pytest.approx(2 * m2.u)

    def test_compound_with_negative_power(self):
        """2MK3 combines M2 twice and K1 with a negative phase term."""
        from sunmoon_tide.tidal_analysis.nodal_corrections import nodal_correction
        args = _arguments(200.0)
        m2 = nodal_correction('M2', args)
        k1 = nodal_correction('K1', args)
        mk = nodal_correction('2MK3', args)
        assert mk.f == pytest.approx(m2.f ** 2 * k1.f)
        assert mk.u == pytest.approx(2 * m2.u - k1.u)

    def test_m2_factor_at_node_zero(self):
        """At N = 0 the M2 factor is at its minimum."""
        from sunmoon_tide.tidal_analysis.nodal_corrections import nodal_correction
        f, u = nodal_correction('M2', _arguments(0.0))
        assert f == pytest.approx(1.0 - 0.03731 + 0.00052)
        assert u == pytest.approx(0.0, abs=1e-12)

    def test_corrections_for_all(self):
        """nodal_corrections covers the whole catalogue by default."""
        from sunmoon_tide.tidal_analysis.constituents import TIDAL_CONSTITUENTS
        from sunmoon_tide.tidal_analysis.nodal_corrections import nodal_corrections
        result = nodal_corrections(_arguments(10.0))
        assert set(result) == set(TIDAL_CONSTITUENTS)


# -----------------------------------------------------------------------
# Regional harmonic prediction tests
# -----------------------------------------------------------------------

class TestHarmonicPrediction:
    """Tests for the regional synthesizer in tidal_prediction.py."""

    def test_region_classification(self):
        """Phuket is in the Andaman Sea, Bangkok in the Gulf."""
        from sunmoon_tide.tidal_analysis.constituents import (
            ANDAMAN_SEA,
            GULF_OF_THAILAND,
        )
        from sunmoon_tide.tidal_analysis.tidal_prediction import (
            LocationData,
            classify_region,
        )
        assert classify_region(PHUKET) == ANDAMAN_SEA
        assert classify_region(LocationData(*BANGKOK)) == GULF_OF_THAILAND
        assert classify_region({'lat': 20.0, 'lon': 98.0}) == GULF_OF_THAILAND

    def test_invalid_location_raises(self):
        """Locations without finite coordinates are rejected."""
        from sunmoon_tide.errors import InvalidInputError
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_level
        with pytest.raises(InvalidInputError):
            predict_level('2024-06-15', {'lat': 13.0})
        with pytest.raises(InvalidInputError):
            predict_level('2024-06-15', (float('nan'), 100.0))
        with pytest.raises(InvalidInputError):
            predict_level('2024-06-15', (95.0, 100.0))

    def test_predict_level_deterministic(self):
        """Repeated predictions for Bangkok are identical."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_level
        first = predict_level('2024-06-15', BANGKOK, '10:30')
        second = predict_level('2024-06-15', BANGKOK, '10:30')
        assert first == second
        assert np.isfinite(first)

    def test_predict_level_within_regional_bounds(self):
        """Levels stay within the clamped regional range."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import (
            REGIONAL_MEANS,
            classify_region,
            predict_range,
        )
        for location in (BANGKOK, PHUKET):
            means = REGIONAL_MEANS[classify_region(location)]
            levels = predict_range('2024-06-15', '2024-06-17', location,
                                   step_minutes=30)
            assert levels.min() >= means.lower_bound
            assert levels.max() <= means.upper_bound

    def test_time_of_day_matches_instant(self):
        """'HH:MM' on a date equals the combined instant."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_level
        assert (predict_level('2024-06-15', BANGKOK, '06:45')
                == predict_level('2024-06-15 06:45', BANGKOK))

    @pytest.mark.parametrize('bad', ['25:00', '12:75', 'noon'])
    def test_bad_time_of_day(self, bad):
        """Malformed or out-of-range times raise InvalidInputError."""
        from sunmoon_tide.errors import InvalidInputError
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_level
        with pytest.raises(InvalidInputError):
            predict_level('2024-06-15', BANGKOK, bad)

    def test_series_shares_arguments(self):
        """A series point equals a single prediction with the same arguments."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import (
            day_arguments,
            predict_level,
            predict_series,
        )
        times = pd.date_range('2024-06-15', periods=24, freq='1h')
        series = predict_series(times, BANGKOK)
        args = day_arguments('2024-06-15', BANGKOK)
        expected = predict_level(times[7], BANGKOK, arguments=args)
        assert series.iloc[7] == pytest.approx(expected)
        assert str(series.index.tz) == 'UTC'
        assert series.name == 'level'

    def test_empty_series_raises(self):
        """predict_series needs at least one time."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_series
        with pytest.raises(ValueError, match='At least one prediction time'):
            predict_series([], BANGKOK)

    def test_predict_range_errors(self):
        """Reversed ranges and non-positive steps raise ValueError."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_range
        with pytest.raises(ValueError, match='precedes start'):
            predict_range('2024-06-16', '2024-06-15', BANGKOK)
        with pytest.raises(ValueError, match='step_minutes must be positive'):
            predict_range('2024-06-15', '2024-06-16', BANGKOK, step_minutes=0)

    def test_predict_range_inclusive(self):
        """Both endpoints are included."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_range
        levels = predict_range('2024-06-15 00:00', '2024-06-15 01:00', BANGKOK)
        assert len(levels) == 7

    def test_dominant_constituent(self):
        """The dominant constituent is an active catalogue entry."""
        from sunmoon_tide.tidal_analysis.constituents import (
            GULF_OF_THAILAND,
            active_constituents,
        )
        from sunmoon_tide.tidal_analysis.tidal_prediction import dominant_constituent
        name = dominant_constituent('2024-06-15', BANGKOK, '03:00')
        assert name in {c.name for c in active_constituents(GULF_OF_THAILAND)}

    def test_graph_data(self):
        """Hourly graph data has 24 labelled points flagged after *now*."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import generate_graph_data
        points = generate_graph_data('2024-06-15', BANGKOK, 60,
                                     now='2024-06-15 12:00')
        assert len(points) == 24
        assert points[0].time == '00:00'
        assert points[-1].time == '23:00'
        assert sum(p.prediction for p in points) == 11
        assert not points[12].prediction

    def test_graph_data_interval_must_divide_day(self):
        """Intervals that do not divide 1440 minutes are rejected."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import generate_graph_data
        with pytest.raises(ValueError, match='divisor of 1440'):
            generate_graph_data('2024-06-15', BANGKOK, 7)


# -----------------------------------------------------------------------
# Extremes tests
# -----------------------------------------------------------------------

class TestExtremes:
    """Tests for extremes.py."""

    @pytest.mark.parametrize('location', [BANGKOK, PHUKET])
    def test_daily_extreme_count(self, location):
        """A day has between one and six alternating extremes."""
        from sunmoon_tide.tidal_analysis.extremes import find_extremes
        extremes = find_extremes('2024-06-15', location)
        assert 1 <= len(extremes) <= 6
        types = [e.type for e in extremes]
        assert all(a != b for a, b in zip(types, types[1:]))
        times = [e.time for e in extremes]
        assert times == sorted(times)

    def test_extremes_are_turning_points(self):
        """A high is above and a low below its 15-minute neighbours."""
        from sunmoon_tide.tidal_analysis.extremes import find_extremes
        from sunmoon_tide.tidal_analysis.tidal_prediction import (
            day_arguments,
            predict_level,
        )
        args = day_arguments('2024-06-15', PHUKET)
        step = pd.Timedelta(minutes=15)
        for extreme in find_extremes('2024-06-15', PHUKET, arguments=args):
            before = predict_level(extreme.time - step, PHUKET, arguments=args)
            after = predict_level(extreme.time + step, PHUKET, arguments=args)
            if extreme.type == 'high':
                assert extreme.level >= max(before, after)
            else:
                assert extreme.level <= min(before, after)

    def test_flat_day_falls_back(self, monkeypatch):
        """With no turning point the regional means are returned."""
        from sunmoon_tide.tidal_analysis import extremes as extremes_module
        from sunmoon_tide.tidal_analysis.tidal_prediction import REGIONAL_MEANS

        def flat(times, location, arguments=None, logger=None):
            return pd.Series(np.ones(len(times)), index=times, name='level')

        monkeypatch.setattr(extremes_module, 'predict_series', flat)
        result = extremes_module.find_extremes('2024-06-15', BANGKOK)
        means = REGIONAL_MEANS['gulf_of_thailand']
        assert [e.type for e in result] == ['high', 'low']
        assert result[0].level == means.mean_high_water
        assert result[1].level == means.mean_low_water
        assert result[0].time == pd.Timestamp('2024-06-15 06:00', tz='UTC')
        assert result[0].confidence == extremes_module.FALLBACK_CONFIDENCE

    def test_extreme_to_dict(self):
        """TideExtreme serializes its time as ISO text."""
        from sunmoon_tide.tidal_analysis.extremes import TideExtreme
        extreme = TideExtreme(pd.Timestamp('2024-06-15 06:00', tz='UTC'),
                              1.2, 'high', 92.0)
        assert extreme.to_dict()['time'].startswith('2024-06-15T06:00')

    def test_water_level_extrema_count(self):
        """Pure M2 cosine over 2 days gives about 4 HW and 4 LW."""
        from sunmoon_tide.tidal_analysis.extremes import extract_water_level_extrema

        dt_hours = 0.1
        n = int(2 * 24 / dt_hours)
        times = pd.date_range('2024-01-01', periods=n, freq='6min')
        hours = np.arange(n) * dt_hours
        wl = np.cos(np.radians(28.9841042 * hours))

        result = extract_water_level_extrema(times.values, wl,
                                             min_separation_hours=4.0)
        assert 3 <= len(result['high_water_times']) <= 5
        assert 3 <= len(result['low_water_times']) <= 5

    def test_extrema_length_mismatch_raises(self):
        """Mismatched inputs raise ValueError."""
        from sunmoon_tide.tidal_analysis.extremes import extract_water_level_extrema
        times = pd.date_range('2024-01-01', periods=5, freq='6min')
        with pytest.raises(ValueError, match='same length'):
            extract_water_level_extrema(times.values, np.ones(3))

    def test_series_extremes(self):
        """series_extremes returns sorted UTC events."""
        from sunmoon_tide.tidal_analysis.extremes import series_extremes
        times = pd.date_range('2024-01-01', periods=480, freq='6min', tz='UTC')
        hours = np.arange(480) * 0.1
        series = pd.Series(np.cos(np.radians(28.9841042 * hours)), index=times)
        events = series_extremes(series)
        assert events
        assert all(str(e.time.tz) == 'UTC' for e in events)
        assert [e.time for e in events] == sorted(e.time for e in events)
        assert all(e.level > 0.9 for e in events if e.type == 'high')


# -----------------------------------------------------------------------
# Tile-backed (UTide) prediction tests
# -----------------------------------------------------------------------

class TestTilePrediction:
    """Tests for predict_from_constants and predict_from_tile."""

    def test_predict_from_constants_m2(self):
        """predict_from_constants with M2 only produces a tidal signal."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_from_constants

        times = pd.date_range('2024-01-01', periods=240, freq='6min')
        predicted = predict_from_constants(
            time=times,
            amplitudes={'M2': 0.5},
            phases={'M2': 45.0},
            mean_level=1.0,
            latitude=13.7,
        )

        assert len(predicted) == 240
        assert np.isfinite(predicted).all()
        assert abs(np.mean(predicted) - 1.0) < 0.1
        assert (np.max(predicted) - np.min(predicted)) / 2.0 > 0.3

    def test_predict_from_constants_empty_raises(self):
        """Empty amplitude/phase dicts raise ValueError."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_from_constants

        times = pd.date_range('2024-01-01', periods=10, freq='6min')
        with pytest.raises(ValueError, match='No common constituents'):
            predict_from_constants(time=times, amplitudes={}, phases={},
                                   mean_level=0.0, latitude=13.7)

    def test_unknown_constituents_dropped(self):
        """Names UTide does not know are dropped, the rest still predict."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_from_constants

        times = pd.date_range('2024-01-01', periods=24, freq='1h')
        predicted = predict_from_constants(
            time=times,
            amplitudes={'M2': 0.5, 'XX9': 0.2},
            phases={'M2': 0.0, 'XX9': 0.0},
            mean_level=0.0,
            latitude=13.7,
        )
        assert np.isfinite(predicted).all()

    def test_predict_from_tile(self):
        """A packaged sample tile drives a finite UTC series."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_from_tile
        from sunmoon_tide.tiles.samples import package_sample_tiles

        tile = package_sample_tiles(now=0)[0].tile
        times = pd.date_range('2024-06-15', periods=144, freq='10min')
        levels = predict_from_tile(times, tile)
        assert len(levels) == 144
        assert np.isfinite(levels.to_numpy()).all()
        assert str(levels.index.tz) == 'UTC'
        assert levels.max() - levels.min() > 0.2

    def test_calibration_shifts_level(self):
        """A height offset raises every level by the same amount."""
        from sunmoon_tide.tidal_analysis.tidal_prediction import predict_from_tile
        from sunmoon_tide.tiles.models import CalibrationData
        from sunmoon_tide.tiles.samples import package_sample_tiles

        tile = package_sample_tiles(now=0)[0].tile
        calibration = CalibrationData(height_offset=1.0, phase_offset=0.0)
        shifted = tile.model_copy(update={'local_calibration': calibration})
        times = pd.date_range('2024-06-15', periods=48, freq='30min')
        base = predict_from_tile(times, tile)
        raised = predict_from_tile(times, shifted)
        np.testing.assert_allclose(raised.to_numpy() - base.to_numpy(), 1.0,
                                   atol=1e-9)
