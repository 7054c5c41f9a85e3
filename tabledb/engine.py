"""
TableDB Engine - Cache-Coherent, Write-Batching Table Storage

FastStorageProvider sits in front of the JSON file store:
- Read path: cache hit -> shared in-flight load -> fresh disk load
- In-flight loads are deduplicated: one disk read per table at a time,
  every concurrent caller gets the identical result
- Tables read from disk hot_data_threshold times are promoted into the cache
- put() updates the cache immediately (read-your-write) and queues the
  snapshot for a debounced, coalesced flush
- Bounded cache with hysteresis LRU eviction

Concurrency: single event loop, cooperative scheduling. The cache, the
pending-read map and the pending-write map are only mutated between
suspension points on the loop thread, so no locks guard them. Running this
on several threads would need a mutex around those maps.

The data directory must not be shared between processes.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from tabledb.config import StorageBackend, TableDBConfig
from tabledb.exceptions import StoreClosedError, TableDBError
from tabledb.file_store import FileStore, validate_table_name
from tabledb.range_index import RangeIndex
from tabledb.storage_engine import LatencyCollector, StorageProvider
from tabledb.table_cache import TableCache, freeze, thaw
from tabledb.write_queue import WriteQueue

logger = logging.getLogger(__name__)


class FastStorageProvider(StorageProvider):
    """
    File-backed table store with a coherent in-memory cache.

    Guarantees:
    - A put() is visible to every get() issued after it returns
    - The last snapshot queued for a table before a flush is the one on disk
    - A crash never leaves a torn table file

    Not guaranteed:
    - Compare-and-swap: concurrent read-modify-write callers can lose updates
    - Fresh reads of a table evicted while its write is still queued; the
      disk copy is returned until that flush lands
    """

    def __init__(
        self,
        data_dir: str = "./data",
        preload: Optional[List[str]] = None,
        write_delay_ms: int = 100,
        hot_data_threshold: int = 10,
        cache_high_water: int = 50,
        cache_low_water: int = 40,
    ) -> None:
        """
        Initialize the provider. Nothing touches disk until connect().

        Args:
            data_dir: Directory holding <table>.json files
            preload: Tables to load into the cache on connect
            write_delay_ms: Debounce window before queued writes are flushed
            hot_data_threshold: Disk loads of a table before it is cached
            cache_high_water: Cached table count that triggers eviction
            cache_low_water: Cached table count eviction trims down to
        """
        self.data_dir = data_dir
        self.preload = list(preload or [])
        self.hot_data_threshold = hot_data_threshold

        self.file_store = FileStore(data_dir)
        self.cache = TableCache(high_water=cache_high_water, low_water=cache_low_water)
        self.write_queue = WriteQueue(self.file_store, write_delay_ms=write_delay_ms)
        self.range_index = RangeIndex(self.file_store, self.get)

        # Loads in progress, shared by every concurrent reader of a table
        self._pending_reads: Dict[str, asyncio.Task] = {}
        self._read_counts: Dict[str, int] = {}

        # Process-wide write version, and the version of each table's last write
        self._version = 0
        self._table_versions: Dict[str, int] = {}

        self._connected = False
        self._latency = LatencyCollector()
        self._stats = {
            "gets": 0,
            "puts": 0,
            "disk_loads": 0,
            "coalesced_reads": 0,
            "load_failures": 0,
            "preload_failures": 0,
        }

    @classmethod
    def from_config(cls, config: TableDBConfig) -> "FastStorageProvider":
        return cls(
            data_dir=config.data_dir,
            preload=config.preload,
            write_delay_ms=config.write_delay_ms,
            hot_data_threshold=config.hot_data_threshold,
            cache_high_water=config.cache_high_water,
            cache_low_water=config.cache_low_water,
        )

    @property
    def version(self) -> int:
        return self._version

    @property
    def connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Create the data directory and warm the cache with preload tables."""
        if self._connected:
            return

        await self.file_store.ensure_dir()
        self._connected = True

        if self.preload:
            await asyncio.gather(*(self._warm(table) for table in self.preload))

        logger.info(
            f"Storage connected at {self.data_dir} "
            f"({len(self.cache)}/{len(self.preload)} tables preloaded)"
        )

    async def _warm(self, table: str) -> None:
        version_at_start = self._table_versions.get(table, 0)
        try:
            records = await self.file_store.load(table)
        except TableDBError as e:
            self._stats["preload_failures"] += 1
            logger.warning(f"Preload of '{table}' failed, skipping: {e}")
            return

        # put() is accepted while preloading; its snapshot is newer than disk
        if self._can_promote(table, version_at_start):
            self._promote(table, records or [])

    async def close(self) -> None:
        """Flush pending writes, wait for in-flight loads, drop the cache."""
        if not self._connected:
            return

        results = await self.write_queue.drain()
        failed = [table for table, error in results.items() if error is not None]
        if failed:
            logger.error(f"Final flush failed for tables: {', '.join(failed)}")

        if self._pending_reads:
            await asyncio.gather(*list(self._pending_reads.values()), return_exceptions=True)

        self.cache.clear()
        self._pending_reads.clear()
        self._read_counts.clear()
        self._connected = False

        logger.info("Storage closed")

    def _ensure_open(self, operation: str) -> None:
        if not self._connected:
            raise StoreClosedError(operation)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def get(self, table: str) -> List[Dict[str, Any]]:
        """
        Read the current records of a table.

        Cache hits return a private copy without suspending. Concurrent
        misses for the same table share one disk load and receive the very
        same list. A table with no file reads as [].
        """
        self._ensure_open("get")
        validate_table_name(table)

        start = time.monotonic()
        self._stats["gets"] += 1

        entry = self.cache.touch(table)
        if entry is not None:
            self._record_latency("get", start)
            return thaw(entry.snapshot)

        load = self._pending_reads.get(table)
        if load is None:
            load = asyncio.ensure_future(self._load(table))
            self._pending_reads[table] = load
        else:
            self._stats["coalesced_reads"] += 1

        # Shielded: a caller giving up must not cancel the shared load
        records = await asyncio.shield(load)
        self._record_latency("get", start)
        return records

    async def _load(self, table: str) -> List[Dict[str, Any]]:
        version_at_start = self._table_versions.get(table, 0)
        start = time.monotonic()

        try:
            records = await self.file_store.load(table)
        except TableDBError as e:
            self._stats["load_failures"] += 1
            logger.error(f"Disk load of '{table}' failed: {e}")
            raise
        finally:
            if self._pending_reads.get(table) is asyncio.current_task():
                del self._pending_reads[table]

        if records is None:
            records = []

        self._stats["disk_loads"] += 1
        self._record_latency("load", start)

        reads = self._read_counts.get(table, 0) + 1
        self._read_counts[table] = reads

        if reads >= self.hot_data_threshold and self._can_promote(table, version_at_start):
            self._promote(table, records)

        return records

    def _can_promote(self, table: str, version_at_start: int) -> bool:
        # A load must never replace state written while it was in flight
        return (
            table not in self.cache
            and not self.write_queue.is_dirty(table)
            and self._table_versions.get(table, 0) == version_at_start
        )

    def _promote(self, table: str, records) -> None:
        evicted = self.cache.promote(table, records, self._version)
        if evicted:
            logger.info(f"Evicted {len(evicted)} cached tables: {', '.join(evicted)}")

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def put(self, table: str, records: List[Dict[str, Any]]) -> None:
        """
        Replace a table's records.

        Returns once the cache holds the new snapshot; the disk write happens
        in the next flush. Later writes to the same table before that flush
        supersede this one on disk.
        """
        self._ensure_open("put")
        validate_table_name(table)

        start = time.monotonic()
        self._stats["puts"] += 1

        self._version += 1
        self._table_versions[table] = self._version

        snapshot = freeze(records)
        self._promote(table, snapshot)
        self.write_queue.enqueue(table, snapshot)
        self._record_latency("put", start)

    async def flush(self) -> Dict[str, Optional[BaseException]]:
        """Persist all queued writes now instead of waiting for the timer."""
        self._ensure_open("flush")
        return await self.write_queue.flush()

    def add_listener(self, event: str, callback: Callable) -> None:
        """Subscribe to "write_complete" (table) or "write_failed" (table, error)."""
        self.write_queue.add_listener(event, callback)

    def remove_listener(self, event: str, callback: Callable) -> None:
        self.write_queue.remove_listener(event, callback)

    # ------------------------------------------------------------------
    # Range index
    # ------------------------------------------------------------------

    async def create_index(self, table: str, field: str) -> int:
        """Build (or rebuild) the sorted index of table on field."""
        self._ensure_open("create_index")
        return await self.range_index.build(table, field)

    async def drop_index(self, table: str, field: str) -> None:
        """Delete an index; range queries on it scan the table until rebuilt."""
        self._ensure_open("drop_index")
        await self.range_index.drop(table, field)

    async def query_range(
        self,
        table: str,
        field: str,
        low: Optional[Any] = None,
        high: Optional[Any] = None,
    ) -> List[Dict[str, Any]]:
        """Records with low <= record[field] <= high, ordered by field."""
        self._ensure_open("query_range")
        start = time.monotonic()
        result = await self.range_index.range_query(table, field, low, high)
        self._record_latency("range_query", start)
        return result

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def _record_latency(self, operation: str, start: float) -> None:
        self._latency.record(operation, (time.monotonic() - start) * 1_000_000)

    def info(self) -> Dict[str, Any]:
        """Get comprehensive statistics."""
        return {
            "backend": StorageBackend.FAST.value,
            "data_dir": str(self.data_dir),
            "connected": self._connected,
            "version": self._version,
            "pending_reads": len(self._pending_reads),
            **self._stats,
            "cache": self.cache.info(),
            "write_queue": self.write_queue.get_stats(),
            "file_store": self.file_store.get_stats(),
            "range_index": self.range_index.get_stats(),
            "latency_us": self._latency.get_stats(),
        }


class InMemoryStorageProvider(StorageProvider):
    """Process-memory provider: same contract, nothing persisted."""

    def __init__(self) -> None:
        self._tables: Dict[str, tuple] = {}
        self._version = 0
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def get(self, table: str) -> List[Dict[str, Any]]:
        self._ensure_open("get")
        return thaw(self._tables.get(table, ()))

    async def put(self, table: str, records: List[Dict[str, Any]]) -> None:
        self._ensure_open("put")
        self._version += 1
        self._tables[table] = freeze(records)

    async def close(self) -> None:
        self._tables.clear()
        self._connected = False

    def _ensure_open(self, operation: str) -> None:
        if not self._connected:
            raise StoreClosedError(operation)

    def info(self) -> Dict[str, Any]:
        return {
            "backend": StorageBackend.MEMORY.value,
            "connected": self._connected,
            "version": self._version,
            "tables": len(self._tables),
        }


def open_provider(config: TableDBConfig) -> StorageProvider:
    """Create the provider selected by config (not yet connected)."""
    if config.storage_backend == StorageBackend.MEMORY:
        return InMemoryStorageProvider()
    return FastStorageProvider.from_config(config)
