"""
Package the sample tiles, write them in tile server form and build a
(optionally signed) manifest.  With --Cache the packages are also loaded
into the local SQLite tile cache.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging.config
import os
from pathlib import Path

from sunmoon_tide import utils
from sunmoon_tide.tiles.packaging import (
    compression_ratio,
    create_tile_manifest,
    format_storage_size,
    write_manifest,
)
from sunmoon_tide.tiles.samples import package_sample_tiles
from sunmoon_tide.tiles.storage import SQLiteTileStore, TileStorageManager


def _setup_logger(logger):
    """Initialize logger if not provided."""
    if logger is not None:
        return logger

    log_config_file = (Path(__file__).parent.parent.parent / 'conf/logging.conf').resolve()
    if os.path.isfile(log_config_file):
        logging.config.fileConfig(log_config_file)
    else:
        logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger('root')
    logger.info('Using config %s', utils.Utils().get_config_file())
    return logger


async def _load_cache(packages, logger):
    storage_conf = utils.Utils().read_config_section('storage', logger)
    store = SQLiteTileStore(storage_conf['db_path'])
    manager = TileStorageManager(
        store,
        quota_bytes=int(float(storage_conf['quota_mb']) * 1024 * 1024),
        max_tile_age_days=float(storage_conf['max_tile_age_days']),
        hot_capacity=int(storage_conf['hot_capacity']),
    )
    async with manager:
        for package in packages:
            await manager.put_package(package)
        metadata = manager.get_metadata()
    logger.info('Tile cache %s now holds %d tiles (%s, %.1f%% of quota).',
                storage_conf['db_path'], metadata.tile_count,
                format_storage_size(metadata.total_size), metadata.usage)


def package_tiles(output_dir, secret=None, version=None, cache=False, logger=None):
    """Package sample tiles into *output_dir* and return the manifest path."""
    logger = _setup_logger(logger)
    options = utils.Utils().read_config_section('packaging', logger)
    version = version or options['version']

    packages = package_sample_tiles(model=options['model'],
                                    datum=options['datum'], version=version)
    tiles_dir = Path(output_dir) / 'tiles'
    tiles_dir.mkdir(parents=True, exist_ok=True)
    for package in packages:
        tile = package.tile
        (tiles_dir / f'{tile.tile_id}.json').write_text(
            json.dumps(package.to_dict(), indent=2), encoding='utf-8')
        logger.info('%s: %d constituents, %s -> %s (%.1f%% saved), sha256 %s',
                    tile.tile_id, len(tile.constituents),
                    format_storage_size(tile.original_size),
                    format_storage_size(tile.compressed_size),
                    compression_ratio(tile.original_size, tile.compressed_size),
                    tile.checksum[:12])

    manifest = create_tile_manifest(packages, version=version, hmac_secret=secret)
    manifest_path = write_manifest(manifest, Path(output_dir) / 'manifest.json')
    logger.info('Manifest written to %s', manifest_path)

    if cache:
        asyncio.run(_load_cache(packages, logger))
    return manifest_path


if __name__ == '__main__':
    parser = argparse.ArgumentParser(
        prog='python package_tiles.py',
        description='Package sample tidal constituent tiles and build a manifest',
    )
    parser.add_argument('-o', '--Output', required=True, help='Output directory')
    parser.add_argument('-s', '--Secret', required=False,
                        help='HMAC secret used to sign the manifest')
    parser.add_argument('-v', '--Version', required=False, help='Tile/manifest version')
    parser.add_argument('-c', '--Cache', action='store_true',
                        help='Also load the tiles into the local tile cache')

    args = parser.parse_args()
    package_tiles(args.Output, args.Secret, args.Version, args.Cache)
