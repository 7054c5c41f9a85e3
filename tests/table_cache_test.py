"""
Table cache tests: private copies and hysteresis LRU eviction.
"""

import unittest

from tabledb.table_cache import TableCache, freeze, thaw


class SnapshotTestSuite(unittest.TestCase):

    def test_freeze_copies_records(self):
        records = [{"id": 1}]
        snapshot = freeze(records)
        records[0]["id"] = 99

        self.assertIsInstance(snapshot, tuple)
        self.assertEqual(snapshot[0]["id"], 1)

    def test_thaw_hands_out_private_copies(self):
        snapshot = freeze([{"id": 1}])
        first = thaw(snapshot)
        first[0]["id"] = 99
        first.append({"id": 2})

        self.assertEqual(thaw(snapshot), [{"id": 1}])


class TableCacheTestSuite(unittest.TestCase):
    """Eviction and bookkeeping."""

    def test_touch_counts_hits_and_misses(self):
        cache = TableCache()
        self.assertIsNone(cache.touch("products"))

        cache.promote("products", [{"id": 1}], version=3)
        entry = cache.touch("products")

        self.assertEqual(entry.version, 3)
        self.assertEqual(entry.hits, 1)
        info = cache.info()
        self.assertEqual((info["hits"], info["misses"]), (1, 1))

    def test_promote_freezes_input(self):
        cache = TableCache()
        records = [{"id": 1}]
        cache.promote("products", records, version=1)
        records[0]["id"] = 2

        self.assertEqual(cache.touch("products").snapshot, ({"id": 1},))

    def test_no_eviction_at_high_water(self):
        cache = TableCache(high_water=5, low_water=3)
        for i in range(5):
            self.assertEqual(cache.promote(f"t{i}", [], version=0), [])
        self.assertEqual(len(cache), 5)

    def test_eviction_trims_to_low_water_oldest_first(self):
        cache = TableCache(high_water=5, low_water=3)
        for i in range(5):
            cache.promote(f"t{i}", [], version=0)

        # t0 becomes the most recently used
        cache.touch("t0")
        evicted = cache.promote("t5", [], version=0)

        self.assertEqual(evicted, ["t1", "t2", "t3"])
        self.assertEqual(sorted(cache.tables()), ["t0", "t4", "t5"])
        self.assertEqual(cache.info()["evictions_total"], 3)
        self.assertEqual(cache.info()["last_evicted_table"], "t3")

    def test_default_marks_keep_forty_of_fifty_one(self):
        cache = TableCache()
        for i in range(51):
            cache.promote(f"table{i}", [{"id": i}], version=i)

        self.assertEqual(len(cache), 40)
        self.assertNotIn("table10", cache)
        self.assertIn("table11", cache)
        self.assertIn("table50", cache)

    def test_count_never_exceeds_high_water_after_promote(self):
        cache = TableCache(high_water=4, low_water=2)
        for i in range(20):
            cache.promote(f"t{i % 7}", [], version=i)
            self.assertLessEqual(len(cache), 4)

    def test_low_water_above_high_water_rejected(self):
        with self.assertRaises(ValueError):
            TableCache(high_water=10, low_water=11)

    def test_info_lists_tables_and_clear_empties(self):
        cache = TableCache()
        cache.promote("a", [], version=0)
        cache.promote("b", [], version=0)
        self.assertEqual(cache.info()["tables"], ["a", "b"])

        cache.clear()
        self.assertEqual(len(cache), 0)
        self.assertEqual(cache.info()["tables"], [])


if __name__ == "__main__":
    unittest.main()
