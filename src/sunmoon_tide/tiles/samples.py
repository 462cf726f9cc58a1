"""
Sample tiles for the Thai coast.

Representative harmonic constants for the Gulf of Thailand and the
Andaman Sea, and four named tiles used for demos, packaging runs and
tests.
"""
from __future__ import annotations

from dataclasses import dataclass

from sunmoon_tide.tidal_analysis.constituents import ANDAMAN_SEA, CONSTITUENT_SPEEDS
from sunmoon_tide.tidal_analysis.tidal_prediction import classify_region

from .models import ConstituentData, TilePackage
from .packaging import create_tile_package


def _constituents(rows) -> list[ConstituentData]:
    return [ConstituentData(name=name, amplitude=amplitude, phase=phase,
                            speed=CONSTITUENT_SPEEDS[name])
            for name, amplitude, phase in rows]


# name, amplitude (m), phase (deg)
_GULF_BASE = [
    ('M2', 0.42, 188.0),
    ('S2', 0.18, 176.0),
    ('N2', 0.07, 170.0),
    ('K1', 0.48, 118.0),
    ('O1', 0.36, 110.0),
    ('P1', 0.17, 115.0),
    ('Q1', 0.08, 104.0),
    ('M4', 0.09, 92.0),
    ('MS4', 0.05, 96.0),
]

_ANDAMAN_BASE = [
    ('M2', 0.90, 205.0),
    ('S2', 0.44, 198.0),
    ('N2', 0.20, 192.0),
    ('K2', 0.13, 200.0),
    ('K1', 0.42, 126.0),
    ('O1', 0.30, 115.0),
    ('P1', 0.14, 120.0),
    ('Q1', 0.06, 108.0),
    ('M4', 0.07, 102.0),
    ('MS4', 0.04, 104.0),
]


def gulf_of_thailand_constituents() -> list[ConstituentData]:
    """Representative Gulf of Thailand constants (mixed, diurnal-leaning)."""
    return _constituents(_GULF_BASE)


def andaman_sea_constituents() -> list[ConstituentData]:
    """Representative Andaman Sea constants (semidiurnal)."""
    return _constituents(_ANDAMAN_BASE)


@dataclass(frozen=True)
class SampleTile:
    tile_id: str
    bbox: tuple[float, float, float, float]
    centroid: tuple[float, float]
    location: str


SAMPLE_TILES: tuple[SampleTile, ...] = (
    SampleTile('TH-BKK', (100.3, 13.4, 100.9, 13.9), (100.6, 13.6),
               'Bangkok (upper Gulf of Thailand)'),
    SampleTile('TH-SAMUI', (99.9, 9.3, 100.2, 9.7), (100.05, 9.5),
               'Ko Samui (lower Gulf of Thailand)'),
    SampleTile('TH-PHUKET', (98.1, 7.7, 98.6, 8.2), (98.3, 8.0),
               'Phuket (Andaman Sea)'),
    SampleTile('TH-TRAT', (102.2, 11.5, 102.6, 12.0), (102.4, 11.75),
               'Trat (eastern seaboard)'),
)


def sample_constituents(sample: SampleTile) -> list[ConstituentData]:
    """Regional base constants for the sample's centroid."""
    lon, lat = sample.centroid
    if classify_region((lat, lon)) == ANDAMAN_SEA:
        return andaman_sea_constituents()
    return gulf_of_thailand_constituents()


def package_sample_tiles(now: int | None = None, **options) -> list[TilePackage]:
    """Package every sample tile; *options* go to :func:`create_tile_package`."""
    return [
        create_tile_package(sample.tile_id, sample.bbox, sample.centroid,
                            sample_constituents(sample), now=now, **options)
        for sample in SAMPLE_TILES
    ]
