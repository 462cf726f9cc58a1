"""
Tiles Subpackage

Provides functionality for:
- Tile data model and JSON wire form
- Packaging: canonical serialization, compression, checksums, manifests
  and delta patches
- Quota-bounded LRU tile cache over SQLite or in-memory stores
- Tile server client and cache-then-network resolution
- Sample tiles for the Thai coast
"""

from sunmoon_tide.tiles.client import TileClient
from sunmoon_tide.tiles.models import (
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
from sunmoon_tide.tiles.packaging import (
    apply_delta_patch,
    create_delta_patch,
    create_tile_manifest,
    create_tile_package,
    decompress_payload,
    digest,
    hmac_sign,
    read_manifest,
    verify_manifest_signature,
    verify_tile_integrity,
    write_manifest,
)
from sunmoon_tide.tiles.resolver import (
    ResolvedTile,
    TileResolver,
    tile_bounds,
    tile_id_for,
)
from sunmoon_tide.tiles.storage import (
    MemoryTileStore,
    SQLiteTileStore,
    StorageMetadata,
    TileStorageManager,
    TileStore,
)

__all__ = [
    # Data model
    'ConstituentData',
    'MinorRuleData',
    'CalibrationData',
    'TileData',
    'TilePackage',
    'ManifestTileEntry',
    'TilePackageManifest',
    'PatchOperation',
    'TilePatch',
    # Packaging
    'create_tile_package',
    'create_tile_manifest',
    'verify_manifest_signature',
    'verify_tile_integrity',
    'create_delta_patch',
    'apply_delta_patch',
    'decompress_payload',
    'digest',
    'hmac_sign',
    'read_manifest',
    'write_manifest',
    # Storage
    'TileStore',
    'MemoryTileStore',
    'SQLiteTileStore',
    'StorageMetadata',
    'TileStorageManager',
    # Network
    'TileClient',
    'TileResolver',
    'ResolvedTile',
    'tile_id_for',
    'tile_bounds',
]
