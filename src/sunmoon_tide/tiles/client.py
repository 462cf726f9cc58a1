"""
Download packaged tiles from the tile server.

``GET {base_url}/tiles/{tile_id}`` returns
``{"tile": TileData, "payload": "<base64>"}``.  The payload is decoded
and verified against the tile checksum before the package is handed
back; nothing unverified leaves this module.

Network errors are raised as :class:`~sunmoon_tide.errors.TileFetchError`
so that higher-level code (the resolver) can decide on fallback
behaviour.
"""
from __future__ import annotations

import logging

import httpx

from sunmoon_tide.errors import TileFetchError
from sunmoon_tide.utils import Utils

from .models import TilePackage
from .packaging import verify_package

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT: float = 10.0
"""Default HTTP timeout in seconds."""


class TileClient:
    """
    Asynchronous tile server client.

    Parameters
    ----------
    base_url : str, optional
        Server root; defaults to ``[urls] tile_base_url`` from the
        configuration file.
    timeout : float, optional
        HTTP timeout in seconds.
    transport : httpx.AsyncBaseTransport, optional
        Custom transport, e.g. :class:`httpx.MockTransport` in tests.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self._log = logger or logging.getLogger(__name__)
        if base_url is None:
            base_url = Utils().read_config_section('urls', self._log)['tile_base_url']
        self.base_url = base_url.rstrip('/')
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> TileClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def fetch_tile(self, tile_id: str) -> TilePackage:
        """
        Download and verify one tile.

        Parameters
        ----------
        tile_id : str
            Tile identifier.

        Returns
        -------
        TilePackage
            A package whose payload matches its checksum.

        Raises
        ------
        TileFetchError
            On network failure, a non-2xx status or a malformed response.
        IntegrityError
            If the payload does not match the tile checksum.
        CorruptPayloadError
            If the verified payload cannot be inflated or parsed.
        """
        url = f'/tiles/{tile_id}'
        self._log.info('Downloading tile %s from %s', tile_id, self.base_url)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as ex:
            raise TileFetchError(
                f"Tile server returned {ex.response.status_code} for {tile_id}."
            ) from ex
        except (httpx.HTTPError, httpx.InvalidURL) as ex:
            raise TileFetchError(f"Could not download tile {tile_id}: {ex}") from ex

        try:
            package = TilePackage.from_dict(response.json())
        except ValueError as ex:
            raise TileFetchError(
                f"Malformed tile response for {tile_id}: {ex}") from ex

        if package.tile_id != tile_id:
            raise TileFetchError(
                f"Requested tile {tile_id} but received {package.tile_id}.")
        verify_package(package)
        self._log.debug('Tile %s verified (%d bytes).', tile_id,
                        len(package.payload))
        return package
