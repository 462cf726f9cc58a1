"""
Map coordinates to tiles and resolve them from the cache or the network.

Tiles cover 1 x 1 degree cells named ``tile_{floor(lat)}_{floor(lon)}``.
:meth:`TileResolver.load_tile` tries the local cache first, then the tile
server (caching what it downloads), and returns ``None`` when neither
produces a verified tile.  Failures and timeouts are logged, not raised.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass

from sunmoon_tide.errors import InvalidInputError, SunmoonTideError

from .client import TileClient
from .models import TilePackage
from .storage import TileStorageManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TileBounds:
    """Edges and centre of a 1-degree tile cell."""

    north: float
    south: float
    east: float
    west: float
    center_lat: float
    center_lon: float

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        return (self.west, self.south, self.east, self.north)

    @property
    def centroid(self) -> tuple[float, float]:
        return (self.center_lon, self.center_lat)


@dataclass(frozen=True)
class ResolvedTile:
    """A verified tile and whether it came from the local cache."""

    package: TilePackage
    from_cache: bool


def _cell(lat: float, lon: float) -> tuple[int, int]:
    lat, lon = float(lat), float(lon)
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidInputError(f"Coordinates must be finite: ({lat}, {lon})")
    return math.floor(lat), math.floor(lon)


def tile_id_for(lat: float, lon: float) -> str:
    """Tile id of the 1-degree cell containing ``(lat, lon)``."""
    south, west = _cell(lat, lon)
    return f'tile_{south}_{west}'


def tile_bounds(lat: float, lon: float) -> TileBounds:
    """Bounds of the 1-degree cell containing ``(lat, lon)``."""
    south, west = _cell(lat, lon)
    return TileBounds(
        north=south + 1.0,
        south=float(south),
        east=west + 1.0,
        west=float(west),
        center_lat=south + 0.5,
        center_lon=west + 0.5,
    )


class TileResolver:
    """
    Cache-then-network tile lookup.

    Parameters
    ----------
    storage : TileStorageManager
        Initialized tile cache.
    client : TileClient, optional
        Tile server client.  Without one, only cached tiles resolve.
    """

    def __init__(
        self,
        storage: TileStorageManager,
        client: TileClient | None = None,
        logger: logging.Logger | None = None,
    ):
        self.storage = storage
        self.client = client
        self._log = logger or logging.getLogger(__name__)

    async def _load(self, tile_id: str) -> ResolvedTile | None:
        package = await self.storage.get(tile_id)
        if package is not None:
            return ResolvedTile(package, from_cache=True)
        if self.client is None:
            return None

        package = await self.client.fetch_tile(tile_id)
        try:
            await self.storage.put_package(package)
        except SunmoonTideError as ex:
            self._log.warning('Downloaded tile %s not cached: %s', tile_id, ex)
        return ResolvedTile(package, from_cache=False)

    async def load_tile(
        self,
        lat: float,
        lon: float,
        timeout: float | None = None,
    ) -> ResolvedTile | None:
        """
        Resolve the tile covering ``(lat, lon)``.

        Parameters
        ----------
        lat, lon : float
            Position in decimal degrees.
        timeout : float, optional
            Deadline in seconds for the whole lookup.

        Returns
        -------
        ResolvedTile or None
            ``None`` when the tile is unavailable or corrupt, the
            deadline passes, or the cache or network fails.
        """
        tile_id = tile_id_for(lat, lon)
        try:
            return await asyncio.wait_for(self._load(tile_id), timeout)
        except asyncio.TimeoutError:
            self._log.warning('Tile %s lookup timed out after %s s.',
                              tile_id, timeout)
        except SunmoonTideError as ex:
            self._log.warning('Tile %s unavailable: %s', tile_id, ex)
        except Exception:
            self._log.exception('Unexpected error resolving tile %s.', tile_id)
        return None
