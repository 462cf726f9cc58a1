"""
Quota-bounded tile cache.

:class:`TileStorageManager` keeps packaged tiles in a durable
:class:`TileStore` with a small in-memory hot layer in front of it.
Writes that would exceed the quota first evict least-recently-used tiles,
together with any tile older than the maximum age.  Reads re-verify the
persisted payload checksum and discard corrupt or malformed entries; a
missing tile is reported as ``None``, never as an exception.  A read only
updates the access fields of the stored record, it never rewrites the
payload.

Two stores are provided: :class:`SQLiteTileStore` (tables ``tiles`` and
``metadata``) and :class:`MemoryTileStore`.

Concurrency: every tile id has its own :class:`asyncio.Lock`, dropped
once no task holds or waits for it.  Writes, deletes and evictions also
take a single writer lock, always *before* any tile lock, so a read and
a write of the same tile never interleave while reads of unrelated tiles
proceed concurrently.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import sqlite3
import time
from collections import OrderedDict
from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from sunmoon_tide.errors import CorruptPayloadError, StorageCapacityError

from .models import TileData, TilePackage, WireModel
from .packaging import ensure_tile_integrity, verify_tile_integrity

logger = logging.getLogger(__name__)

MAX_STORAGE_MB = 100
MAX_TILE_AGE_DAYS = 30
DAY_MS = 86_400_000


class StorageMetadata(WireModel):
    """Singleton bookkeeping record of the cache."""

    total_size: int = 0
    tile_count: int = 0
    last_cleanup: int = 0
    quota: int = 0
    usage: float = 0.0


class TileStore(Protocol):
    """Durable key/value storage for packaged tiles."""

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def get(self, tile_id: str) -> TilePackage | None: ...

    async def put(self, package: TilePackage) -> None: ...

    async def touch(self, tile_id: str, last_accessed_at: int,
                    access_count: int) -> bool: ...

    async def delete(self, tile_id: str) -> bool: ...

    async def list_all(self) -> tuple[list[TileData], list[str]]: ...

    async def estimate_usage(self) -> int: ...

    async def read_metadata(self) -> StorageMetadata | None: ...

    async def write_metadata(self, metadata: StorageMetadata) -> None: ...

    async def clear(self) -> None: ...


def _encode_tile(tile: TileData) -> str:
    return tile.model_dump_json(by_alias=True, exclude_none=True)


def _decode_tile(tile_id: str, tile_json: str) -> TileData:
    try:
        return TileData.model_validate_json(tile_json)
    except ValueError as ex:
        raise CorruptPayloadError(f"Stored record for {tile_id} is malformed.") from ex


def _touched_json(tile_id: str, tile_json: str, last_accessed_at: int,
                  access_count: int) -> str:
    tile = _decode_tile(tile_id, tile_json).model_copy(update={
        'last_accessed_at': last_accessed_at,
        'access_count': access_count,
    })
    return _encode_tile(tile)


def _decode_rows(rows) -> tuple[list[TileData], list[str]]:
    """Split ``(tile_id, tile_json)`` rows into tiles and malformed ids."""
    tiles, malformed = [], []
    for tile_id, tile_json in rows:
        try:
            tiles.append(_decode_tile(tile_id, tile_json))
        except CorruptPayloadError:
            malformed.append(tile_id)
    return tiles, malformed


class MemoryTileStore:
    """Process-local store, mainly for tests and ephemeral caches."""

    def __init__(self):
        self._tiles: dict[str, tuple[str, bytes]] = {}
        self._metadata: StorageMetadata | None = None

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get(self, tile_id: str) -> TilePackage | None:
        record = self._tiles.get(tile_id)
        if record is None:
            return None
        return TilePackage(tile=_decode_tile(tile_id, record[0]), payload=record[1])

    async def put(self, package: TilePackage) -> None:
        self._tiles[package.tile_id] = (_encode_tile(package.tile),
                                        bytes(package.payload))

    async def touch(self, tile_id: str, last_accessed_at: int,
                    access_count: int) -> bool:
        record = self._tiles.get(tile_id)
        if record is None:
            return False
        tile_json = _touched_json(tile_id, record[0], last_accessed_at, access_count)
        self._tiles[tile_id] = (tile_json, record[1])
        return True

    async def delete(self, tile_id: str) -> bool:
        return self._tiles.pop(tile_id, None) is not None

    async def list_all(self) -> tuple[list[TileData], list[str]]:
        return _decode_rows((k, v[0]) for k, v in self._tiles.items())

    async def estimate_usage(self) -> int:
        return sum(len(payload) for _, payload in self._tiles.values())

    async def read_metadata(self) -> StorageMetadata | None:
        return None if self._metadata is None else self._metadata.model_copy()

    async def write_metadata(self, metadata: StorageMetadata) -> None:
        self._metadata = metadata.model_copy()

    async def clear(self) -> None:
        self._tiles.clear()
        self._metadata = None


class SQLiteTileStore:
    """
    SQLite-backed store.

    Blocking sqlite3 calls run in a worker thread through
    :func:`asyncio.to_thread`; an :class:`asyncio.Lock` keeps them on the
    connection one at a time.
    """

    SCHEMA = '''
        CREATE TABLE IF NOT EXISTS tiles (
            tile_id TEXT PRIMARY KEY,
            tile_json TEXT NOT NULL,
            payload BLOB NOT NULL,
            compressed_size INTEGER NOT NULL,
            last_accessed_at INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_tiles_last_accessed
            ON tiles(last_accessed_at);
        CREATE TABLE IF NOT EXISTS metadata (
            key TEXT PRIMARY KEY,
            value TEXT
        );
    '''

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    def _connect(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.executescript(self.SCHEMA)
        conn.commit()
        self._conn = conn

    async def _run(self, fn, *args):
        if self._conn is None:
            raise RuntimeError('SQLiteTileStore is not open; call open() first.')
        async with self._lock:
            return await asyncio.to_thread(fn, *args)

    async def open(self) -> None:
        if self._conn is None:
            async with self._lock:
                await asyncio.to_thread(self._connect)
            logger.debug('Opened tile store %s', self.db_path)

    async def close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            async with self._lock:
                await asyncio.to_thread(conn.close)

    def _get(self, tile_id: str) -> tuple[str, bytes] | None:
        row = self._conn.execute(
            'SELECT tile_json, payload FROM tiles WHERE tile_id = ?',
            (tile_id,)).fetchone()
        return None if row is None else (row[0], bytes(row[1]))

    async def get(self, tile_id: str) -> TilePackage | None:
        row = await self._run(self._get, tile_id)
        if row is None:
            return None
        return TilePackage(tile=_decode_tile(tile_id, row[0]), payload=row[1])

    def _put(self, package: TilePackage) -> None:
        tile = package.tile
        self._conn.execute(
            'INSERT OR REPLACE INTO tiles '
            '(tile_id, tile_json, payload, compressed_size, last_accessed_at) '
            'VALUES (?, ?, ?, ?, ?)',
            (tile.tile_id, _encode_tile(tile),
             sqlite3.Binary(package.payload), len(package.payload),
             tile.last_accessed_at))
        self._conn.commit()

    async def put(self, package: TilePackage) -> None:
        await self._run(self._put, package)

    def _touch(self, tile_id: str, last_accessed_at: int, access_count: int) -> bool:
        row = self._conn.execute(
            'SELECT tile_json FROM tiles WHERE tile_id = ?', (tile_id,)).fetchone()
        if row is None:
            return False
        tile_json = _touched_json(tile_id, row[0], last_accessed_at, access_count)
        self._conn.execute(
            'UPDATE tiles SET tile_json = ?, last_accessed_at = ? WHERE tile_id = ?',
            (tile_json, last_accessed_at, tile_id))
        self._conn.commit()
        return True

    async def touch(self, tile_id: str, last_accessed_at: int,
                    access_count: int) -> bool:
        """Update only the access fields of a stored tile."""
        return await self._run(self._touch, tile_id, last_accessed_at, access_count)

    def _delete(self, tile_id: str) -> bool:
        cursor = self._conn.execute('DELETE FROM tiles WHERE tile_id = ?',
                                    (tile_id,))
        self._conn.commit()
        return cursor.rowcount > 0

    async def delete(self, tile_id: str) -> bool:
        return await self._run(self._delete, tile_id)

    def _list_all(self) -> list[tuple[str, str]]:
        return self._conn.execute(
            'SELECT tile_id, tile_json FROM tiles '
            'ORDER BY last_accessed_at').fetchall()

    async def list_all(self) -> tuple[list[TileData], list[str]]:
        """Decoded tiles, least recently used first, and malformed ids."""
        return _decode_rows(await self._run(self._list_all))

    def _usage(self) -> int:
        row = self._conn.execute(
            'SELECT COALESCE(SUM(compressed_size), 0) FROM tiles').fetchone()
        return int(row[0])

    async def estimate_usage(self) -> int:
        return await self._run(self._usage)

    def _read_metadata(self) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM metadata WHERE key = 'storage'").fetchone()
        return None if row is None else row[0]

    async def read_metadata(self) -> StorageMetadata | None:
        value = await self._run(self._read_metadata)
        if value is None:
            return None
        return StorageMetadata.model_validate_json(value)

    def _write_metadata(self, value: str) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES ('storage', ?)",
            (value,))
        self._conn.commit()

    async def write_metadata(self, metadata: StorageMetadata) -> None:
        await self._run(self._write_metadata,
                        metadata.model_dump_json(by_alias=True))

    def _clear(self) -> None:
        self._conn.execute('DELETE FROM tiles')
        self._conn.execute('DELETE FROM metadata')
        self._conn.commit()

    async def clear(self) -> None:
        await self._run(self._clear)


@dataclass
class _IndexEntry:
    size: int
    downloaded_at: int
    last_accessed_at: int


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


def _copy_package(package: TilePackage) -> TilePackage:
    return TilePackage(tile=package.tile.model_copy(deep=True),
                       payload=package.payload)


class TileStorageManager:
    """
    LRU, quota-bounded tile cache over a :class:`TileStore`.

    Parameters
    ----------
    store : TileStore
        Durable backend.
    quota_bytes : int, optional
        Maximum total compressed size (default 100 MB).
    max_tile_age_days : float, optional
        Tiles downloaded longer ago than this are evicted whenever
        eviction runs (default 30).
    verify_on_read : bool, optional
        Re-verify checksums on every read (default ``True``).
    hot_capacity : int, optional
        Number of packages kept in memory.
    clock : callable, optional
        Returns the current time in epoch seconds (default
        :func:`time.time`).
    logger : logging.Logger, optional
        Logger instance for diagnostic messages.
    """

    def __init__(
        self,
        store: TileStore,
        quota_bytes: int = MAX_STORAGE_MB * 1024 * 1024,
        max_tile_age_days: float = MAX_TILE_AGE_DAYS,
        verify_on_read: bool = True,
        hot_capacity: int = 64,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ):
        if quota_bytes <= 0:
            raise ValueError('quota_bytes must be positive.')
        if hot_capacity < 0:
            raise ValueError('hot_capacity must not be negative.')
        self.store = store
        self._quota = int(quota_bytes)
        self.max_tile_age_ms = int(max_tile_age_days * DAY_MS)
        self.verify_on_read = verify_on_read
        self.hot_capacity = hot_capacity
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self._hot: OrderedDict[str, TilePackage] = OrderedDict()
        self._index: dict[str, _IndexEntry] = {}
        self._current_size = 0
        self._last_cleanup = 0
        self._last_reclaimed = 0
        self._write_lock = asyncio.Lock()
        self._key_locks: dict[str, _KeyLock] = {}
        self._initialized = False

    # -- lifecycle ---------------------------------------------------------

    async def init(self) -> None:
        """Open the store and load the index of known tiles."""
        if self._initialized:
            return
        await self.store.open()
        tiles, malformed = await self.store.list_all()
        for tile_id in malformed:
            self._log.warning('Discarding tile %s: stored record is malformed.',
                              tile_id)
            await self.store.delete(tile_id)
        self._index = {
            t.tile_id: _IndexEntry(t.compressed_size, t.downloaded_at,
                                   t.last_accessed_at)
            for t in tiles
        }
        self._current_size = sum(e.size for e in self._index.values())
        metadata = await self.store.read_metadata()
        if metadata is not None:
            self._last_cleanup = metadata.last_cleanup
        self._initialized = True
        self._log.info('Tile cache ready: %d tiles, %d of %d bytes.',
                       len(self._index), self._current_size, self._quota)

    async def close(self) -> None:
        """Persist metadata and close the store."""
        if not self._initialized:
            return
        await self.store.write_metadata(self.get_metadata())
        await self.store.close()
        self._hot.clear()
        self._initialized = False

    async def __aenter__(self) -> TileStorageManager:
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_init(self) -> None:
        if not self._initialized:
            raise RuntimeError('TileStorageManager is not initialized; '
                               'call init() first.')

    # -- bookkeeping -------------------------------------------------------

    @property
    def quota(self) -> int:
        return self._quota

    @property
    def current_size(self) -> int:
        return self._current_size

    @property
    def last_reclaimed(self) -> int:
        """Bytes freed by the most recent eviction run."""
        return self._last_reclaimed

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, tile_id: str) -> bool:
        return tile_id in self._index

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @asynccontextmanager
    async def _key_lock(self, tile_id: str):
        entry = self._key_locks.get(tile_id)
        if entry is None:
            entry = self._key_locks[tile_id] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if not entry.users:
                del self._key_locks[tile_id]

    def get_metadata(self) -> StorageMetadata:
        """Current usage summary."""
        return StorageMetadata(
            total_size=self._current_size,
            tile_count=len(self._index),
            last_cleanup=self._last_cleanup,
            quota=self._quota,
            usage=self._current_size / self._quota * 100.0,
        )

    def _remember(self, package: TilePackage) -> None:
        tile = package.tile
        previous = self._index.get(tile.tile_id)
        if previous is not None:
            self._current_size -= previous.size
        self._index[tile.tile_id] = _IndexEntry(
            len(package.payload), tile.downloaded_at, tile.last_accessed_at)
        self._current_size += len(package.payload)
        if self.hot_capacity:
            self._hot[tile.tile_id] = package
            self._hot.move_to_end(tile.tile_id)
            while len(self._hot) > self.hot_capacity:
                self._hot.popitem(last=False)

    def _forget(self, tile_id: str) -> None:
        entry = self._index.pop(tile_id, None)
        if entry is not None:
            self._current_size -= entry.size
        self._hot.pop(tile_id, None)

    async def _discard(self, tile_id: str, reason: str) -> None:
        self._log.warning('Discarding tile %s: %s', tile_id, reason)
        await self.store.delete(tile_id)
        self._forget(tile_id)

    # -- reads -------------------------------------------------------------

    async def get(self, tile_id: str) -> TilePackage | None:
        """
        Return a cached tile, or ``None`` if it is absent or corrupt.

        With ``verify_on_read`` the persisted record is read and verified
        on every call; otherwise the hot layer may answer.  A hit updates
        ``last_accessed_at`` and ``access_count`` of the stored record.
        """
        self._require_init()
        async with self._key_lock(tile_id):
            package = None if self.verify_on_read else self._hot.get(tile_id)
            if package is None:
                try:
                    package = await self.store.get(tile_id)
                except CorruptPayloadError as ex:
                    await self._discard(tile_id, str(ex))
                    return None
                if package is None:
                    self._forget(tile_id)
                    return None

            if self.verify_on_read and not verify_tile_integrity(
                    package.tile, package.payload):
                await self._discard(tile_id, 'checksum mismatch')
                return None

            now = self._now_ms()
            count = package.tile.access_count + 1
            try:
                await self.store.touch(tile_id, now, count)
            except CorruptPayloadError as ex:
                await self._discard(tile_id, str(ex))
                return None
            tile = package.tile.model_copy(update={'last_accessed_at': now,
                                                   'access_count': count})
            touched = TilePackage(tile=tile, payload=package.payload)
            self._remember(touched)
            return _copy_package(touched)

    async def validate_checksum(self, tile_id: str) -> bool:
        """Whether the stored payload of *tile_id* matches its checksum."""
        self._require_init()
        async with self._key_lock(tile_id):
            try:
                package = await self.store.get(tile_id)
            except CorruptPayloadError:
                return False
            if package is None:
                return False
            return verify_tile_integrity(package.tile, package.payload)

    async def list_tiles(self) -> list[TileData]:
        """
        Metadata of every stored tile, least recently used first.

        Malformed records are discarded.
        """
        self._require_init()
        tiles, malformed = await self.store.list_all()
        if malformed:
            async with self._write_lock:
                for tile_id in malformed:
                    async with self._key_lock(tile_id):
                        try:
                            await self.store.get(tile_id)
                        except CorruptPayloadError as ex:
                            await self._discard(tile_id, str(ex))
                await self.store.write_metadata(self.get_metadata())
        return sorted(tiles, key=lambda t: t.last_accessed_at)

    # -- writes ------------------------------------------------------------

    async def put(self, tile: TileData, payload: bytes) -> TileData:
        """
        Store a tile, evicting older tiles if the quota requires it.

        Returns
        -------
        TileData
            The stored tile with refreshed bookkeeping.

        Raises
        ------
        IntegrityError
            If *payload* does not match the tile checksum.
        StorageCapacityError
            If the tile cannot fit in the quota.
        """
        self._require_init()
        ensure_tile_integrity(tile, payload)
        size = len(payload)
        if size > self._quota:
            raise StorageCapacityError(
                f"Tile {tile.tile_id} ({size} bytes) exceeds the storage "
                f"quota of {self._quota} bytes."
            )

        async with self._write_lock:
            now = self._now_ms()
            existing = self._index.get(tile.tile_id)
            needed = (self._current_size - (existing.size if existing else 0)
                      + size - self._quota)
            if needed > 0:
                await self._evict(needed, now, exclude=tile.tile_id)
            if (self._current_size - (existing.size if existing else 0)
                    + size > self._quota):
                raise StorageCapacityError(
                    f"Could not free enough space for tile {tile.tile_id}."
                )

            async with self._key_lock(tile.tile_id):
                stored = tile.model_copy(deep=True, update={
                    'compressed_size': size,
                    'downloaded_at': now,
                    'last_accessed_at': now,
                })
                package = TilePackage(tile=stored, payload=bytes(payload))
                await self.store.put(package)
                self._remember(package)
            await self.store.write_metadata(self.get_metadata())

        self._log.debug('Stored tile %s (%d bytes); cache at %d/%d bytes.',
                        tile.tile_id, size, self._current_size, self._quota)
        return stored.model_copy(deep=True)

    async def put_package(self, package: TilePackage) -> TileData:
        """Store a :class:`TilePackage`."""
        return await self.put(package.tile, package.payload)

    async def put_base64(self, tile: TileData, payload_b64: str) -> TileData:
        """
        Store a tile whose payload arrives base64-encoded.

        Raises
        ------
        CorruptPayloadError
            If *payload_b64* is not valid base64.
        """
        try:
            payload = base64.b64decode(payload_b64, validate=True)
        except (binascii.Error, ValueError) as ex:
            raise CorruptPayloadError(
                f"Payload for tile {tile.tile_id} is not valid base64.") from ex
        return await self.put(tile, payload)

    async def delete(self, tile_id: str) -> bool:
        """Remove a tile; returns whether it was present."""
        self._require_init()
        async with self._write_lock:
            async with self._key_lock(tile_id):
                removed = await self.store.delete(tile_id)
                present = tile_id in self._index
                self._forget(tile_id)
            await self.store.write_metadata(self.get_metadata())
        return removed or present

    async def clear(self) -> None:
        """Remove every tile."""
        self._require_init()
        async with self._write_lock:
            await self.store.clear()
            self._hot.clear()
            self._index.clear()
            self._current_size = 0
            await self.store.write_metadata(self.get_metadata())
        self._log.info('Tile cache cleared.')

    async def cleanup(self) -> int:
        """Evict tiles older than the maximum age; returns bytes freed."""
        self._require_init()
        async with self._write_lock:
            freed = await self._evict(0, self._now_ms())
            await self.store.write_metadata(self.get_metadata())
        return freed

    async def _evict(self, needed: int, now: int, exclude: str | None = None) -> int:
        """
        Delete expired tiles and least-recently-used tiles.

        Must be called with the writer lock held.  Tiles are visited
        oldest access first; each is removed if it is past the maximum
        age or while fewer than *needed* bytes have been freed.
        """
        candidates = sorted(
            ((tile_id, entry) for tile_id, entry in self._index.items()
             if tile_id != exclude),
            key=lambda item: item[1].last_accessed_at,
        )
        freed = 0
        evicted = 0
        for tile_id, entry in candidates:
            expired = now - entry.downloaded_at > self.max_tile_age_ms
            if not expired and freed >= needed:
                continue
            async with self._key_lock(tile_id):
                current = self._index.get(tile_id)
                if current is None:
                    continue
                await self.store.delete(tile_id)
                self._forget(tile_id)
            freed += current.size
            evicted += 1

        self._last_reclaimed = freed
        self._last_cleanup = now
        if evicted:
            self._log.info('Evicted %d tiles, reclaimed %d bytes.', evicted, freed)
        return freed
