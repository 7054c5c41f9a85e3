"""
TableDB Table Cache - Immutable Snapshots with Hysteresis LRU Eviction

Bounded mapping from table name to a frozen snapshot of its records:
- Snapshots are published once and never mutated; readers get copies
- Each entry carries the write version it was published at
- Monotonic clock for last-access tracking
- Evicts least-recently-accessed tables once above the high-water mark,
  down to the low-water mark, so inserts at capacity do not thrash

Not thread-safe: every method must be called from the event-loop thread.
"""

import itertools
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

Record = Dict[str, Any]
Snapshot = Tuple[Record, ...]


def freeze(records) -> Snapshot:
    """Copy records into an immutable snapshot."""
    return tuple(dict(record) for record in records)


def thaw(snapshot: Snapshot) -> List[Record]:
    """Hand out a private, mutable copy of a snapshot."""
    return [dict(record) for record in snapshot]


@dataclass
class CacheEntry:
    """A published table snapshot plus its bookkeeping."""
    table: str
    snapshot: Snapshot
    version: int
    last_access: float
    access_seq: int = 0  # Breaks last_access ties
    hits: int = 0


@dataclass
class CacheStats:
    """Statistics for monitoring and observability."""
    hits: int = 0
    misses: int = 0
    promotions: int = 0
    evictions_total: int = 0
    last_evicted_table: Optional[str] = None
    last_eviction_time: Optional[float] = None


class TableCache:
    """
    Table-name keyed snapshot cache.

    Eviction policy: after a promotion pushes the entry count above
    high_water, sort all entries by last access (oldest first) and drop
    the oldest until low_water remain.
    """

    def __init__(self, high_water: int = 50, low_water: int = 40) -> None:
        """
        Args:
            high_water: Entry count that triggers eviction
            low_water: Entry count eviction trims down to
        """
        if low_water > high_water:
            raise ValueError(f"low_water ({low_water}) exceeds high_water ({high_water})")

        self.high_water = high_water
        self.low_water = low_water
        self._entries: Dict[str, CacheEntry] = {}
        self._access_counter = itertools.count(1)
        self._stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, table: str) -> bool:
        return table in self._entries

    def tables(self) -> List[str]:
        return list(self._entries)

    def touch(self, table: str) -> Optional[CacheEntry]:
        """
        Look up an entry and mark it as just accessed.

        Returns:
            The entry, or None on a miss
        """
        entry = self._entries.get(table)
        if entry is None:
            self._stats.misses += 1
            return None

        entry.last_access = time.monotonic()
        entry.access_seq = next(self._access_counter)
        entry.hits += 1
        self._stats.hits += 1
        return entry

    def promote(self, table: str, records, version: int) -> List[str]:
        """
        Publish a frozen copy of records as the table's cached snapshot.

        Returns:
            Tables evicted as a consequence of this promotion
        """
        self._entries[table] = CacheEntry(
            table=table,
            snapshot=freeze(records),
            version=version,
            last_access=time.monotonic(),
            access_seq=next(self._access_counter),
        )
        self._stats.promotions += 1
        return self.evict_if_needed()

    def evict_if_needed(self) -> List[str]:
        """Trim to low_water if above high_water; return evicted tables."""
        if len(self._entries) <= self.high_water:
            return []

        by_age = sorted(
            self._entries.values(),
            key=lambda entry: (entry.last_access, entry.access_seq),
        )
        victims = by_age[: len(by_age) - self.low_water]

        for entry in victims:
            del self._entries[entry.table]

        if victims:
            self._stats.evictions_total += len(victims)
            self._stats.last_evicted_table = victims[-1].table
            self._stats.last_eviction_time = time.time()

        return [entry.table for entry in victims]

    def clear(self) -> None:
        self._entries.clear()

    def info(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "cached_tables": len(self._entries),
            "tables": self.tables(),
            "high_water": self.high_water,
            "low_water": self.low_water,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "promotions": self._stats.promotions,
            "evictions_total": self._stats.evictions_total,
            "last_evicted_table": self._stats.last_evicted_table,
            "last_eviction_time": self._stats.last_eviction_time,
        }
