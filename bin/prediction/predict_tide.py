"""
Print a day of tide predictions for a location.

Without --Tile the prediction goes through TidePredictionAPI, which looks
for a cached (or, with --Online, downloaded) tile and reports the data
source.  With --Tile a packaged tile file (tile server JSON form) drives a
UTide reconstruction instead.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging.config
import os
from pathlib import Path

import pandas as pd

from sunmoon_tide import utils
from sunmoon_tide.prediction_api import (
    PredictionRequest,
    TidePredictionAPI,
    TimeRange,
)
from sunmoon_tide.tidal_analysis.extremes import series_extremes
from sunmoon_tide.tidal_analysis.tidal_prediction import (
    LocationData,
    predict_from_tile,
)
from sunmoon_tide.tiles.client import TileClient
from sunmoon_tide.tiles.models import TilePackage
from sunmoon_tide.tiles.packaging import verify_package
from sunmoon_tide.tiles.resolver import TileResolver
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
    return logging.getLogger('root')


async def _api_predictions(location, date, interval, online, logger):
    config = utils.Utils()
    storage_conf = config.read_config_section('storage', logger)
    prediction_conf = config.read_config_section('prediction', logger)

    manager = TileStorageManager(
        SQLiteTileStore(storage_conf['db_path']),
        quota_bytes=int(float(storage_conf['quota_mb']) * 1024 * 1024),
        max_tile_age_days=float(storage_conf['max_tile_age_days']),
        verify_on_read=storage_conf['verify_on_read'].lower() == 'true',
        hot_capacity=int(storage_conf['hot_capacity']),
        logger=logger,
    )
    client = TileClient(logger=logger) if online else None
    async with manager:
        api = TidePredictionAPI(
            TileResolver(manager, client, logger=logger),
            tile_timeout=float(prediction_conf['tile_timeout_seconds']),
            logger=logger,
        )
        try:
            response = await api.get_predictions(PredictionRequest(
                location, date, TimeRange(interval_minutes=interval)))
        finally:
            if client is not None:
                await client.close()
    return response


def predict_tide(lat, lon, date, interval=60, tile_file=None, online=False,
                 logger=None):
    """Log a day's tide curve and extremes; returns the curve as a DataFrame."""
    logger = _setup_logger(logger)
    location = LocationData(lat, lon)

    if tile_file is not None:
        package = TilePackage.from_dict(
            json.loads(Path(tile_file).read_text(encoding='utf-8')))
        tile = verify_package(package)
        times = pd.date_range(pd.Timestamp(date, tz='UTC').normalize(),
                              periods=1440 // interval, freq=f'{interval}min')
        levels = predict_from_tile(times, tile, logger=logger)
        frame = levels.to_frame()
        extremes = series_extremes(levels, logger=logger)
        logger.info('Tile %s (%s, %s) drove the prediction.',
                    tile.tile_id, tile.model, tile.datum)
    else:
        response = asyncio.run(
            _api_predictions(location, date, interval, online, logger))
        frame = pd.DataFrame(
            [{'time': p.time, 'level': p.level, 'prediction': p.prediction}
             for p in response.series]).set_index('time')
        extremes = response.extremes
        logger.info('Data source: %s (from cache: %s, %.2f ms).',
                    response.data_source, response.from_cache,
                    response.response_time)

    for extreme in extremes:
        logger.info('%-4s %s %.3f m (confidence %.0f%%)', extreme.type,
                    extreme.time.strftime('%Y-%m-%d %H:%M'), extreme.level,
                    extreme.confidence)
    print(frame.to_string())
    return frame


if __name__ == '__main__':
    parser = argparse.ArgumentParser(
        prog='python predict_tide.py',
        description='Predict tides for a location on the Thai coast',
    )
    parser.add_argument('-a', '--Lat', required=True, type=float, help='Latitude')
    parser.add_argument('-n', '--Lon', required=True, type=float, help='Longitude')
    parser.add_argument('-d', '--Date', required=True, help='Date YYYY-MM-DD (UTC)')
    parser.add_argument('-i', '--Interval', required=False, type=int, default=60,
                        help='Curve spacing in minutes')
    parser.add_argument('-t', '--Tile', required=False,
                        help='Packaged tile JSON file for a tile-driven prediction')
    parser.add_argument('--Online', action='store_true',
                        help='Download missing tiles from the tile server')

    args = parser.parse_args()
    predict_tide(args.Lat, args.Lon, args.Date, args.Interval, args.Tile, args.Online)
