"""
Tile packaging: canonical serialization, compression, checksums and
signed manifests.

A tile's payload is the key-sorted compact JSON of its canonical fields,
deflated with zlib at level 9.  The checksum is the SHA-256 hex digest of
the *compressed* bytes, so a tile can be verified before it is inflated.
Constituents are rounded and sorted by name before serialization, which
makes the payload (and therefore the checksum) independent of input
order.

Manifests index many tiles and may carry a base64 HMAC-SHA256 signature
over their canonical JSON with the ``signature`` field left out.
"""
from __future__ import annotations

import base64
import datetime as dt
import hashlib
import hmac
import json
import logging
import math
import time
import zlib
from collections.abc import Iterable
from pathlib import Path

from sunmoon_tide.errors import CorruptPayloadError, IntegrityError
from sunmoon_tide.tidal_analysis.ephemerides import get_ephemerides_metadata

from .models import (
    CalibrationData,
    ConstituentData,
    ManifestTileEntry,
    MinorRuleData,
    PatchOperation,
    TileData,
    TilePackage,
    TilePackageManifest,
    TilePatch,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = 'FES2022'
DEFAULT_DATUM = 'MSL'
DEFAULT_VERSION = '1.0.0'
COMPRESSION_LEVEL = 9
PATCH_TOLERANCE = 1e-6
"""Smallest amplitude/phase/speed change recorded in a delta patch."""


# ---------------------------------------------------------------------------
# Hashing and signing
# ---------------------------------------------------------------------------

def digest(data: bytes) -> str:
    """SHA-256 hex digest of *data*."""
    return hashlib.sha256(data).hexdigest()


def hmac_sign(secret: str | bytes, data: bytes) -> str:
    """Base64-encoded HMAC-SHA256 of *data* under *secret*."""
    key = secret.encode('utf-8') if isinstance(secret, str) else secret
    mac = hmac.new(key, data, hashlib.sha256).digest()
    return base64.b64encode(mac).decode('ascii')


# ---------------------------------------------------------------------------
# Canonical form
# ---------------------------------------------------------------------------

def _strip_none(value):
    if isinstance(value, dict):
        return {k: _strip_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_strip_none(v) for v in value]
    return value


def canonical_json(value) -> str:
    """
    Serialize *value* deterministically.

    Keys are sorted at every level, separators are compact and ``None``
    values are dropped from objects.
    """
    return json.dumps(_strip_none(value), sort_keys=True,
                      separators=(',', ':'), ensure_ascii=False,
                      allow_nan=False)


def _round_constituent(item) -> ConstituentData:
    if isinstance(item, ConstituentData):
        name, amplitude, phase, speed = (item.name, item.amplitude,
                                         item.phase, item.speed)
    else:
        speed = item.get('speed', item.get('speedDegHr'))
        name, amplitude, phase = item['name'], item['amplitude'], item['phase']
    values = (float(amplitude), float(phase), float(speed))
    if not all(math.isfinite(v) for v in values):
        raise ValueError(f"Constituent '{name}' has a non-finite value.")
    if values[0] < 0:
        raise ValueError(f"Constituent '{name}' has a negative amplitude.")
    return ConstituentData(
        name=str(name),
        amplitude=round(values[0], 4),
        phase=round(values[1], 2),
        speed=round(values[2], 6),
    )


def normalize_constituents(constituents: Iterable) -> list[ConstituentData]:
    """
    Round and sort constituents for packaging.

    Amplitudes are rounded to 4 decimals, phases to 2 and speeds to 6;
    the list is sorted by name.

    Parameters
    ----------
    constituents : iterable
        :class:`ConstituentData` items or mappings with ``name``,
        ``amplitude``, ``phase`` and ``speed`` (or ``speedDegHr``).

    Returns
    -------
    list of ConstituentData

    Raises
    ------
    ValueError
        On duplicate names, non-finite values or negative amplitudes.
    """
    normalized = sorted((_round_constituent(c) for c in constituents),
                        key=lambda c: c.name)
    names = [c.name for c in normalized]
    if len(set(names)) != len(names):
        raise ValueError('Duplicate constituent names in tile.')
    return normalized


def compress_payload(text: str) -> bytes:
    """Deflate canonical JSON text at the maximum compression level."""
    return zlib.compress(text.encode('utf-8'), COMPRESSION_LEVEL)


def decompress_payload(payload: bytes) -> str:
    """
    Inflate a tile payload back into its canonical JSON text.

    Raises
    ------
    CorruptPayloadError
        If the bytes are not a valid zlib stream of UTF-8 text.
    """
    try:
        return zlib.decompress(payload).decode('utf-8')
    except (zlib.error, UnicodeDecodeError, TypeError) as ex:
        raise CorruptPayloadError(f"Tile payload cannot be inflated: {ex}") from ex


def unpack_tile(payload: bytes) -> TileData:
    """
    Inflate and parse a payload into a :class:`TileData`.

    Bookkeeping fields of the returned tile are zero.

    Raises
    ------
    CorruptPayloadError
        If the payload cannot be inflated or parsed.
    """
    text = decompress_payload(payload)
    try:
        return TileData.from_dict(json.loads(text))
    except ValueError as ex:
        raise CorruptPayloadError(f"Tile payload cannot be parsed: {ex}") from ex


def _now_ms() -> int:
    return int(time.time() * 1000)


def _check_geometry(bbox, centroid) -> tuple[tuple, tuple]:
    bbox = tuple(float(v) for v in bbox)
    centroid = tuple(float(v) for v in centroid)
    if len(bbox) != 4 or len(centroid) != 2:
        raise ValueError('bbox needs 4 values and centroid 2.')
    if not all(math.isfinite(v) for v in bbox + centroid):
        raise ValueError('bbox and centroid must be finite.')
    west, south, east, north = bbox
    if west > east or south > north:
        raise ValueError(f"bbox {bbox} is not (west, south, east, north).")
    return bbox, centroid


def create_tile_package(
    tile_id: str,
    bbox,
    centroid,
    constituents: Iterable,
    *,
    model: str = DEFAULT_MODEL,
    datum: str = DEFAULT_DATUM,
    version: str = DEFAULT_VERSION,
    minor_rules: list[MinorRuleData] | None = None,
    local_calibration: CalibrationData | None = None,
    now: int | None = None,
    logger: logging.Logger | None = None,
) -> TilePackage:
    """
    Package a tile's constituents.

    Parameters
    ----------
    tile_id : str
        Tile identifier.
    bbox : sequence of float
        ``(west, south, east, north)`` in decimal degrees.
    centroid : sequence of float
        ``(lon, lat)`` in decimal degrees.
    constituents : iterable
        Harmonic constants; see :func:`normalize_constituents`.
    model, datum, version : str, optional
        Tide model name, vertical datum and tile version.
    minor_rules : list of MinorRuleData, optional
        Minor-constituent inference rules.
    local_calibration : CalibrationData, optional
        Local height/phase adjustment.
    now : int, optional
        Epoch milliseconds for the bookkeeping timestamps.
    logger : logging.Logger, optional
        Logger instance for diagnostic messages.

    Returns
    -------
    TilePackage
        The tile with checksum, sizes and zeroed access counter, plus its
        compressed payload.
    """
    _log = logger or logging.getLogger(__name__)
    if not tile_id:
        raise ValueError('tile_id must be a non-empty string.')
    bbox, centroid = _check_geometry(bbox, centroid)

    tile = TileData(
        tile_id=tile_id,
        bbox=bbox,
        centroid=centroid,
        model=model,
        datum=datum,
        constituents=normalize_constituents(constituents),
        version=version,
        minor_rules=list(minor_rules) if minor_rules else None,
        local_calibration=local_calibration,
    )
    canonical = canonical_json(tile.canonical_dict())
    payload = compress_payload(canonical)
    stamp = _now_ms() if now is None else int(now)

    tile.checksum = digest(payload)
    tile.compressed_size = len(payload)
    tile.original_size = len(canonical.encode('utf-8'))
    tile.downloaded_at = stamp
    tile.last_accessed_at = stamp
    tile.access_count = 0

    _log.debug('Packaged tile %s: %d constituents, %d -> %d bytes.',
               tile_id, len(tile.constituents), tile.original_size,
               tile.compressed_size)
    return TilePackage(tile=tile, payload=payload)


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------

def verify_tile_integrity(tile: TileData, payload: bytes) -> bool:
    """Whether *payload* hashes to the tile's recorded checksum."""
    if not tile.checksum:
        return False
    return hmac.compare_digest(digest(payload), tile.checksum)


def ensure_tile_integrity(tile: TileData, payload: bytes) -> None:
    """
    Raise unless *payload* matches the tile's checksum.

    Raises
    ------
    IntegrityError
        On a checksum mismatch.
    """
    if not verify_tile_integrity(tile, payload):
        raise IntegrityError(f"Checksum mismatch for tile {tile.tile_id}.")


def verify_package(package: TilePackage) -> TileData:
    """
    Fully verify a received package.

    The checksum is checked first; the payload is then inflated and its
    tile id compared with the declared one.

    Returns
    -------
    TileData
        The tile as decoded from the payload.

    Raises
    ------
    IntegrityError
        On a checksum or tile id mismatch.
    CorruptPayloadError
        If the payload cannot be inflated or parsed.
    """
    ensure_tile_integrity(package.tile, package.payload)
    unpacked = unpack_tile(package.payload)
    if unpacked.tile_id != package.tile.tile_id:
        raise IntegrityError(
            f"Payload is for tile {unpacked.tile_id}, "
            f"not {package.tile.tile_id}."
        )
    return unpacked


# ---------------------------------------------------------------------------
# Manifests
# ---------------------------------------------------------------------------

def _iso_now() -> str:
    now = dt.datetime.now(dt.timezone.utc)
    return now.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def _manifest_bytes(manifest: TilePackageManifest) -> bytes:
    return canonical_json(manifest.unsigned_dict()).encode('utf-8')


def create_tile_manifest(
    packages: Iterable[TilePackage | TileData],
    version: str = DEFAULT_VERSION,
    hmac_secret: str | bytes | None = None,
    generated_at: str | None = None,
) -> TilePackageManifest:
    """
    Build a manifest over packaged tiles.

    Parameters
    ----------
    packages : iterable of TilePackage or TileData
        Tiles to index.
    version : str, optional
        Manifest version.
    hmac_secret : str or bytes, optional
        If given, the manifest is signed with HMAC-SHA256.
    generated_at : str, optional
        ISO-8601 generation time (defaults to now).

    Returns
    -------
    TilePackageManifest
    """
    tiles = [p.tile if isinstance(p, TilePackage) else p for p in packages]
    manifest = TilePackageManifest(
        version=version,
        generated_at=generated_at or _iso_now(),
        ephemerides=get_ephemerides_metadata(),
        tiles=[ManifestTileEntry.from_tile(t) for t in tiles],
    )
    if hmac_secret:
        manifest.signature = hmac_sign(hmac_secret, _manifest_bytes(manifest))
    logger.info('Manifest %s built over %d tiles (%s).', version, len(tiles),
                'signed' if manifest.signature else 'unsigned')
    return manifest


def verify_manifest_signature(
    manifest: TilePackageManifest,
    secret: str | bytes,
) -> bool:
    """Whether the manifest carries a valid signature under *secret*."""
    if not manifest.signature:
        return False
    expected = hmac_sign(secret, _manifest_bytes(manifest))
    return hmac.compare_digest(expected, manifest.signature)


def ensure_manifest_signature(
    manifest: TilePackageManifest,
    secret: str | bytes,
) -> None:
    """
    Raise unless the manifest signature is valid.

    Raises
    ------
    IntegrityError
        If the signature is missing or does not match.
    """
    if not verify_manifest_signature(manifest, secret):
        raise IntegrityError(
            f"Manifest {manifest.version} signature is missing or invalid."
        )


def write_manifest(manifest: TilePackageManifest, path: str | Path) -> Path:
    """Write a manifest as indented JSON and return the resolved path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(manifest.to_dict(), indent=2, sort_keys=True),
                    encoding='utf-8')
    return path.resolve()


def read_manifest(path: str | Path) -> TilePackageManifest:
    """
    Read a manifest file.

    Raises
    ------
    ValueError
        If the file is not valid manifest JSON.
    """
    text = Path(path).read_text(encoding='utf-8')
    try:
        data = json.loads(text)
    except json.JSONDecodeError as ex:
        raise ValueError(f"Manifest {path} is not valid JSON: {ex}") from ex
    return TilePackageManifest.from_dict(data)


# ---------------------------------------------------------------------------
# Delta patches
# ---------------------------------------------------------------------------

def _changed(old: ConstituentData, new: ConstituentData) -> bool:
    return (abs(old.amplitude - new.amplitude) > PATCH_TOLERANCE
            or abs(old.phase - new.phase) > PATCH_TOLERANCE
            or abs(old.speed - new.speed) > PATCH_TOLERANCE)


def create_delta_patch(
    old: TilePackage | TileData,
    new: TilePackage,
) -> TilePatch:
    """
    Diff two versions of a tile.

    The operation list is an audit trail keyed by constituent name
    (``constituents.<name>``).  The patch also carries the new version's
    full compressed payload, which is what :func:`apply_delta_patch`
    uses.

    Raises
    ------
    ValueError
        If the two tiles have different ids.
    """
    old_tile = old.tile if isinstance(old, TilePackage) else old
    if old_tile.tile_id != new.tile.tile_id:
        raise ValueError(
            f"Cannot diff tile {old_tile.tile_id} against {new.tile.tile_id}."
        )
    before = {c.name: c for c in old_tile.constituents}
    after = {c.name: c for c in new.tile.constituents}

    operations = []
    for name in sorted(before.keys() | after.keys()):
        path = f'constituents.{name}'
        if name not in after:
            operations.append(PatchOperation(op='remove', path=path))
        elif name not in before:
            operations.append(PatchOperation(op='add', path=path,
                                             value=after[name].to_dict()))
        elif _changed(before[name], after[name]):
            operations.append(PatchOperation(op='replace', path=path,
                                             value=after[name].to_dict()))

    return TilePatch(
        tile_id=new.tile.tile_id,
        checksum=new.tile.checksum,
        compressed_payload=new.payload,
        operations=operations,
        from_version=old_tile.version,
        to_version=new.tile.version,
    )


def apply_delta_patch(
    current: TilePackage | TileData | None,
    patch: TilePatch,
    now: int | None = None,
) -> TilePackage:
    """
    Produce the patched tile from the patch's embedded full payload.

    The operation list is never replayed.

    Raises
    ------
    ValueError
        If *current* is a different tile.
    IntegrityError
        If the embedded payload does not match the patch checksum or
        decodes to another tile.
    CorruptPayloadError
        If the embedded payload cannot be inflated or parsed.
    """
    if current is not None:
        current_id = (current.tile.tile_id if isinstance(current, TilePackage)
                      else current.tile_id)
        if current_id != patch.tile_id:
            raise ValueError(
                f"Patch for tile {patch.tile_id} cannot apply to {current_id}."
            )

    payload = patch.compressed_payload
    if not hmac.compare_digest(digest(payload), patch.checksum):
        raise IntegrityError(f"Patch payload checksum mismatch for {patch.tile_id}.")
    text = decompress_payload(payload)
    tile = unpack_tile(payload)
    if tile.tile_id != patch.tile_id:
        raise IntegrityError(
            f"Patch payload is for tile {tile.tile_id}, not {patch.tile_id}."
        )

    stamp = _now_ms() if now is None else int(now)
    tile = tile.model_copy(update={
        'checksum': patch.checksum,
        'compressed_size': len(payload),
        'original_size': len(text.encode('utf-8')),
        'downloaded_at': stamp,
        'last_accessed_at': stamp,
        'access_count': 0,
    })
    return TilePackage(tile=tile, payload=payload)


# ---------------------------------------------------------------------------
# Reporting helpers
# ---------------------------------------------------------------------------

def compression_ratio(original_size: int, compressed_size: int) -> float:
    """Percentage of bytes saved by compression."""
    if original_size <= 0:
        return 0.0
    return (1.0 - compressed_size / original_size) * 100.0


def format_storage_size(size_bytes: int) -> str:
    """Human readable size, e.g. ``'1.50 MB'``."""
    if size_bytes <= 0:
        return '0 B'
    units = ('B', 'KB', 'MB', 'GB', 'TB')
    exponent = min(int(math.log(size_bytes, 1024)), len(units) - 1)
    return f'{size_bytes / 1024 ** exponent:.2f} {units[exponent]}'
