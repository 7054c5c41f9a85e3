"""
TableDB Write Queue - Debounced, Coalesced Snapshot Flushing

Write-behind persistence for full-table snapshots:
- Only the latest snapshot per table is kept while a flush is pending
- One debounce timer per burst: every write inside the window shares it
- A flush swaps out the whole pending map and persists tables concurrently
- Each table succeeds or fails on its own; failures are reported, not retried
- Writes of one table are serialized across overlapping flushes, so the
  newest queued snapshot is always the one left on disk

Listeners are told about every outcome:
- "write_complete" (table)
- "write_failed" (table, error)

Not thread-safe: enqueue() and flush() must run on the event-loop thread.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Set

from tabledb.file_store import FileStore

logger = logging.getLogger(__name__)

WRITE_COMPLETE = "write_complete"
WRITE_FAILED = "write_failed"
EVENTS = (WRITE_COMPLETE, WRITE_FAILED)


class WriteQueue:
    """
    Pending-write map plus the flusher that drains it.

    The queue owns every pending snapshot until a flush consumes it.
    """

    def __init__(self, file_store: FileStore, write_delay_ms: int = 100):
        """
        Args:
            file_store: Destination for flushed snapshots
            write_delay_ms: Debounce window between first write and flush
        """
        self.file_store = file_store
        self.write_delay_secs = write_delay_ms / 1000.0

        self._pending: Dict[str, List[Dict[str, Any]]] = {}
        self._timer: Optional[asyncio.TimerHandle] = None
        self._flush_tasks: Set[asyncio.Task] = set()

        # Per-table ordering across overlapping flushes
        self._table_locks: Dict[str, asyncio.Lock] = {}
        self._writing: Dict[str, int] = {}

        self._listeners: Dict[str, List[Callable]] = {event: [] for event in EVENTS}

        self._stats = {
            "writes_queued": 0,
            "writes_coalesced": 0,
            "flushes": 0,
            "tables_written": 0,
            "write_failures": 0,
            "last_flush_ms": 0.0,
            "last_flush_tables": 0,
        }

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, event: str, callback: Callable) -> None:
        """
        Register a callback for a flush outcome.

        Args:
            event: "write_complete" or "write_failed"
            callback: Function to call (can be async or sync)
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown event: {event}")
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Callable) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    async def _emit(self, event: str, *args) -> None:
        for callback in list(self._listeners[event]):
            try:
                result = callback(*args)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                name = getattr(callback, "__name__", repr(callback))
                logger.error(f"Error in {event} listener {name}: {e}")

    # ------------------------------------------------------------------
    # Queueing
    # ------------------------------------------------------------------

    def enqueue(self, table: str, records: List[Dict[str, Any]]) -> None:
        """
        Queue a snapshot for the next flush, superseding any pending one.

        Must be called from a running event loop.
        """
        if table in self._pending:
            self._stats["writes_coalesced"] += 1

        self._pending[table] = records
        self._stats["writes_queued"] += 1

        if self._timer is None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.write_delay_secs, self._on_timer)

    def is_dirty(self, table: str) -> bool:
        """True while the table has a write that is queued or being written."""
        return table in self._pending or table in self._writing

    @property
    def pending_tables(self) -> List[str]:
        return list(self._pending)

    @property
    def flush_scheduled(self) -> bool:
        return self._timer is not None

    def cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self._scheduled_flush())
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def _scheduled_flush(self) -> None:
        try:
            await self.flush()
        except Exception as e:
            logger.error(f"Scheduled flush error: {e}")

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    async def flush(self) -> Dict[str, Optional[BaseException]]:
        """
        Persist every pending snapshot now.

        Returns:
            Mapping of table -> None on success, or the exception it failed with
        """
        self.cancel_timer()

        batch = self._pending
        self._pending = {}
        if not batch:
            return {}

        start = time.monotonic()
        outcomes = await asyncio.gather(
            *(self._persist(table, records) for table, records in batch.items()),
            return_exceptions=True,
        )

        results: Dict[str, Optional[BaseException]] = {}
        for table, outcome in zip(batch, outcomes):
            results[table] = outcome if isinstance(outcome, BaseException) else None

        elapsed_ms = (time.monotonic() - start) * 1000
        failed = sum(1 for error in results.values() if error is not None)

        self._stats["flushes"] += 1
        self._stats["tables_written"] += len(results) - failed
        self._stats["write_failures"] += failed
        self._stats["last_flush_ms"] = round(elapsed_ms, 3)
        self._stats["last_flush_tables"] = len(results)

        logger.debug(f"Flushed {len(results)} tables in {elapsed_ms:.1f}ms ({failed} failed)")
        return results

    async def _persist(self, table: str, records: List[Dict[str, Any]]) -> None:
        lock = self._table_locks.setdefault(table, asyncio.Lock())
        self._writing[table] = self._writing.get(table, 0) + 1

        try:
            async with lock:
                await self.file_store.store(table, records)
        except Exception as e:
            logger.error(f"Flush of table '{table}' failed: {e}")
            await self._emit(WRITE_FAILED, table, e)
            raise
        finally:
            remaining = self._writing[table] - 1
            if remaining:
                self._writing[table] = remaining
            else:
                # Every waiter counts itself in _writing first, so none holds this lock
                del self._writing[table]
                if not lock.locked():
                    del self._table_locks[table]

        await self._emit(WRITE_COMPLETE, table)

    async def drain(self) -> Dict[str, Optional[BaseException]]:
        """Flush everything pending and wait for scheduled flushes to settle."""
        results = await self.flush()
        if self._flush_tasks:
            await asyncio.gather(*list(self._flush_tasks), return_exceptions=True)
        return results

    def get_stats(self) -> Dict[str, Any]:
        """Get write queue statistics."""
        return {
            **self._stats,
            "pending_tables": len(self._pending),
            "table_locks": len(self._table_locks),
            "flush_scheduled": self.flush_scheduled,
        }
