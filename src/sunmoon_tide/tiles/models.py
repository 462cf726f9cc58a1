"""
Tile data model.

Python attributes are snake_case; the JSON wire form used for payloads,
manifests and the tile server uses camelCase keys.  Optional fields that
are ``None`` are left out of the JSON form.  Validation errors surface as
:class:`pydantic.ValidationError`, which is a :class:`ValueError`.
"""
from __future__ import annotations

import base64
import binascii
from typing import Annotated

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    model_validator,
)
from pydantic.alias_generators import to_camel


def _decode_base64(value):
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as ex:
            raise ValueError('Tile payload is not valid base64.') from ex
    return value


Base64Bytes = Annotated[
    bytes,
    BeforeValidator(_decode_base64),
    PlainSerializer(lambda payload: base64.b64encode(payload).decode('ascii'),
                    return_type=str),
]
"""Bytes carried as standard base64 text in JSON."""


class WireModel(BaseModel):
    """Base for records exchanged as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data):
        return cls.model_validate(data)


class ConstituentData(WireModel):
    """Packaged harmonic constants for one constituent."""

    model_config = ConfigDict(frozen=True)

    name: str
    amplitude: float
    phase: float
    speed: float = Field(alias='speedDegHr')


class MinorRuleData(WireModel):
    """Inference of a minor constituent from major ones."""

    model_config = ConfigDict(frozen=True)

    target_constituent: str
    source_constituents: tuple[str, ...]
    amplitude_factors: tuple[float, ...]
    phase_offsets: tuple[float, ...]

    @model_validator(mode='after')
    def _check_lengths(self) -> MinorRuleData:
        count = len(self.source_constituents)
        if len(self.amplitude_factors) != count or len(self.phase_offsets) != count:
            raise ValueError(
                f"Minor rule for {self.target_constituent} needs one factor and "
                f"one offset per source constituent ({count})."
            )
        return self


class CalibrationData(WireModel):
    """Local height/phase adjustment with its validity window and errors."""

    model_config = ConfigDict(frozen=True)

    height_offset: float
    phase_offset: float
    valid_from: str | None = None
    valid_to: str | None = None
    rmse: float | None = None
    mae: float | None = None


_BOOKKEEPING = {'checksum', 'compressed_size', 'original_size',
                'downloaded_at', 'last_accessed_at', 'access_count'}


class TileData(WireModel):
    """
    A tile of harmonic constants plus cache bookkeeping.

    ``bbox`` is ``(west, south, east, north)`` and ``centroid`` is
    ``(lon, lat)``, both in decimal degrees.  Timestamps are epoch
    milliseconds.  ``checksum`` is the SHA-256 hex digest of the
    compressed payload that travels with the tile.
    """

    tile_id: str
    bbox: tuple[float, float, float, float]
    centroid: tuple[float, float]
    model: str
    datum: str
    constituents: list[ConstituentData]
    version: str
    minor_rules: list[MinorRuleData] | None = None
    local_calibration: CalibrationData | None = None
    checksum: str = ''
    compressed_size: int = 0
    original_size: int = 0
    downloaded_at: int = 0
    last_accessed_at: int = 0
    access_count: int = 0

    def canonical_dict(self) -> dict:
        """Fields covered by the payload, without bookkeeping."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True,
                               exclude=_BOOKKEEPING)


class TilePackage(WireModel):
    """
    A tile with the compressed payload it was checksummed against.

    The wire form is ``{"tile": ..., "payload": base64}``.
    """

    tile: TileData
    payload: Base64Bytes

    @property
    def tile_id(self) -> str:
        return self.tile.tile_id


class ManifestTileEntry(WireModel):
    """Per-tile line of a manifest."""

    model_config = ConfigDict(frozen=True)

    tile_id: str
    checksum: str
    compressed_size: int
    original_size: int
    bbox: tuple[float, float, float, float]
    centroid: tuple[float, float]
    model: str
    datum: str
    version: str

    @classmethod
    def from_tile(cls, tile: TileData) -> ManifestTileEntry:
        return cls(
            tile_id=tile.tile_id,
            checksum=tile.checksum,
            compressed_size=tile.compressed_size,
            original_size=tile.original_size,
            bbox=tile.bbox,
            centroid=tile.centroid,
            model=tile.model,
            datum=tile.datum,
            version=tile.version,
        )


class TilePackageManifest(WireModel):
    """Index over many tiles, optionally HMAC-signed."""

    version: str
    generated_at: str
    ephemerides: dict
    tiles: list[ManifestTileEntry] = Field(default_factory=list)
    signature: str | None = None

    def unsigned_dict(self) -> dict:
        """The signed content: every field except ``signature``."""
        return self.model_dump(mode='json', by_alias=True, exclude={'signature'})


class PatchOperation(WireModel):
    """One audit entry of a tile delta."""

    model_config = ConfigDict(frozen=True)

    op: str
    path: str
    value: dict | None = None


class TilePatch(WireModel):
    """Delta between two versions of a tile plus the new full payload."""

    tile_id: str
    checksum: str
    compressed_payload: Base64Bytes
    operations: list[PatchOperation]
    from_version: str | None = None
    to_version: str | None = None
