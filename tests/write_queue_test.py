"""
Write queue tests: coalescing, debouncing, per-table failure isolation
and flush ordering.
"""

import asyncio
import tempfile
import unittest

from tabledb.exceptions import SnapshotWriteError
from tabledb.file_store import FileStore
from tabledb.write_queue import WriteQueue


class RecordingFileStore(FileStore):
    """FileStore that records writes and can fail or slow down per table."""

    def __init__(self, data_dir, failing=(), delay=0.0):
        super().__init__(data_dir)
        self.calls = []
        self.failing = set(failing)
        self.delay = delay

    async def store(self, table, records):
        self.calls.append((table, list(records)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if table in self.failing:
            raise SnapshotWriteError(table, "disk full")
        await super().store(table, records)


class WriteQueueTestSuite(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.file_store = RecordingFileStore(self._tmp.name)
        self.queue = WriteQueue(self.file_store, write_delay_ms=20)

    async def asyncTearDown(self):
        self.queue.cancel_timer()
        self._tmp.cleanup()

    async def test_burst_coalesces_into_one_write_of_last_snapshot(self):
        for version in range(1, 4):
            self.queue.enqueue("products", [{"id": 1, "version": version}])

        self.assertTrue(self.queue.flush_scheduled)
        self.assertEqual(self.queue.pending_tables, ["products"])

        await asyncio.sleep(0.15)
        await self.queue.drain()

        self.assertEqual(self.file_store.calls, [("products", [{"id": 1, "version": 3}])])
        self.assertEqual(await self.file_store.load("products"), [{"id": 1, "version": 3}])

        stats = self.queue.get_stats()
        self.assertEqual(stats["writes_queued"], 3)
        self.assertEqual(stats["writes_coalesced"], 2)
        self.assertEqual(stats["flushes"], 1)
        self.assertFalse(stats["flush_scheduled"])

    async def test_manual_flush_cancels_timer(self):
        self.queue.enqueue("products", [{"id": 1}])
        results = await self.queue.flush()

        self.assertEqual(results, {"products": None})
        self.assertFalse(self.queue.flush_scheduled)

        await asyncio.sleep(0.05)
        self.assertEqual(len(self.file_store.calls), 1)

    async def test_flush_with_nothing_pending(self):
        self.assertEqual(await self.queue.flush(), {})
        self.assertEqual(self.queue.get_stats()["flushes"], 0)

    async def test_failure_is_isolated_per_table(self):
        self.file_store.failing.add("orders")
        completed, failed = [], []
        self.queue.add_listener("write_complete", completed.append)
        self.queue.add_listener("write_failed", lambda table, error: failed.append((table, error)))

        self.queue.enqueue("products", [{"id": 1}])
        self.queue.enqueue("orders", [{"id": 7}])
        results = await self.queue.flush()

        self.assertIsNone(results["products"])
        self.assertIsInstance(results["orders"], SnapshotWriteError)
        self.assertEqual(completed, ["products"])
        self.assertEqual([table for table, _ in failed], ["orders"])
        self.assertEqual(await self.file_store.load("products"), [{"id": 1}])
        self.assertIsNone(await self.file_store.load("orders"))

        stats = self.queue.get_stats()
        self.assertEqual((stats["tables_written"], stats["write_failures"]), (1, 1))

    async def test_failed_write_is_not_retried(self):
        self.file_store.failing.add("orders")
        self.queue.enqueue("orders", [{"id": 7}])
        await self.queue.flush()

        self.assertEqual(await self.queue.flush(), {})
        self.assertEqual(len(self.file_store.calls), 1)

    async def test_async_listener_is_awaited(self):
        seen = []

        async def on_complete(table):
            await asyncio.sleep(0)
            seen.append(table)

        self.queue.add_listener("write_complete", on_complete)
        self.queue.enqueue("products", [])
        await self.queue.flush()

        self.assertEqual(seen, ["products"])

    async def test_broken_listener_does_not_fail_flush(self):
        def explode(table):
            raise RuntimeError("listener bug")

        self.queue.add_listener("write_complete", explode)
        self.queue.enqueue("products", [{"id": 1}])

        with self.assertLogs("tabledb.write_queue", level="ERROR"):
            results = await self.queue.flush()
        self.assertEqual(results, {"products": None})

    async def test_remove_listener(self):
        seen = []
        self.queue.add_listener("write_complete", seen.append)
        self.queue.remove_listener("write_complete", seen.append)
        self.queue.enqueue("products", [])
        await self.queue.flush()

        self.assertEqual(seen, [])

    async def test_unknown_event_rejected(self):
        with self.assertRaises(ValueError):
            self.queue.add_listener("write_started", print)

    async def test_dirty_until_written(self):
        self.file_store.delay = 0.05
        self.queue.enqueue("products", [{"id": 1}])
        self.assertTrue(self.queue.is_dirty("products"))

        flush = asyncio.ensure_future(self.queue.flush())
        await asyncio.sleep(0.01)
        self.assertEqual(self.queue.pending_tables, [])
        self.assertTrue(self.queue.is_dirty("products"))

        await flush
        self.assertFalse(self.queue.is_dirty("products"))

    async def test_overlapping_flushes_leave_newest_snapshot(self):
        self.file_store.delay = 0.05
        self.queue.enqueue("products", [{"id": 1, "version": 1}])
        first = asyncio.ensure_future(self.queue.flush())
        await asyncio.sleep(0.01)

        self.queue.enqueue("products", [{"id": 1, "version": 2}])
        await self.queue.flush()
        await first

        self.assertEqual(await self.file_store.load("products"), [{"id": 1, "version": 2}])
        self.assertEqual([records[0]["version"] for _, records in self.file_store.calls], [1, 2])
        self.assertEqual(self.queue.get_stats()["table_locks"], 0)

    async def test_table_locks_released_after_writes(self):
        self.file_store.delay = 0.05
        self.file_store.failing.add("orders")
        for i in range(20):
            self.queue.enqueue(f"table{i}", [{"id": i}])
        self.queue.enqueue("orders", [{"id": 1}])

        flush = asyncio.ensure_future(self.queue.flush())
        await asyncio.sleep(0.01)
        self.assertEqual(self.queue.get_stats()["table_locks"], 21)

        await flush
        self.assertEqual(self.queue.get_stats()["table_locks"], 0)
        self.assertFalse(self.queue.is_dirty("orders"))


if __name__ == "__main__":
    unittest.main()
