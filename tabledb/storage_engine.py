"""
Storage Provider Abstraction

Separates the table-level data API from how tables are kept, allowing:
- A file-backed, write-batching provider (FastStorageProvider)
- A process-memory provider for tests and throwaway contexts
- Provider substitution behind one interface contract

Collaborators (TableSet, the HTTP service) only ever talk to this interface.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List


class StorageProvider(ABC):
    """
    Abstract table storage interface.

    Every table is read and replaced as a whole snapshot (a list of
    record dicts). Implementations must return copies: mutating a returned
    list or record never changes stored state.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Prepare storage (directories, preloads). Idempotent."""
        pass

    @abstractmethod
    async def get(self, table: str) -> List[Dict[str, Any]]:
        """Read the current snapshot of a table ([] if it does not exist)."""
        pass

    @abstractmethod
    async def put(self, table: str, records: List[Dict[str, Any]]) -> None:
        """Replace the snapshot of a table."""
        pass

    async def query(
        self,
        table: str,
        predicate: Callable[[Dict[str, Any]], bool],
    ) -> List[Dict[str, Any]]:
        """Read a table and keep the records matching predicate."""
        records = await self.get(table)
        return [record for record in records if predicate(record)]

    @abstractmethod
    async def close(self) -> None:
        """Release resources, persisting anything still pending."""
        pass

    @abstractmethod
    def info(self) -> Dict[str, Any]:
        """Get provider statistics."""
        pass

    async def __aenter__(self) -> "StorageProvider":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class LatencyCollector:
    """Thread-safe rolling latency statistics per operation."""

    def __init__(self, window_size: int = 1000):
        """Track last N operations per operation type."""
        self.window_size = window_size
        self._latencies: Dict[str, List[float]] = {
            "get": [],
            "put": [],
            "load": [],
            "range_query": [],
        }
        self._lock = threading.Lock()

    def record(self, operation: str, latency_us: float) -> None:
        """Record operation latency in microseconds."""
        with self._lock:
            if operation not in self._latencies:
                self._latencies[operation] = []

            self._latencies[operation].append(latency_us)

            # Keep only last window_size entries
            if len(self._latencies[operation]) > self.window_size:
                self._latencies[operation].pop(0)

    def get_stats(self) -> Dict[str, Dict[str, float]]:
        """Get P50/P95/P99 percentiles for each operation."""
        with self._lock:
            result = {}
            for op, latencies in self._latencies.items():
                if not latencies:
                    continue

                sorted_latencies = sorted(latencies)
                count = len(sorted_latencies)

                result[op] = {
                    "count": count,
                    "min": sorted_latencies[0],
                    "p50": sorted_latencies[count // 2],
                    "p95": sorted_latencies[int(count * 0.95)],
                    "p99": sorted_latencies[int(count * 0.99)],
                    "max": sorted_latencies[-1],
                    "avg": sum(latencies) / count,
                }

            return result
