"""
Metrics collector tests.
"""

import json
import unittest

from tabledb.engine import InMemoryStorageProvider
from tabledb.exceptions import SnapshotWriteError
from tabledb.metrics import MetricsCollector


class MetricsCollectorTestSuite(unittest.TestCase):

    def setUp(self):
        self.collector = MetricsCollector()
        self.provider = InMemoryStorageProvider()

    def test_command_metrics(self):
        self.collector.record_command("GET", 2.0)
        self.collector.record_command("GET", 4.0, error=True)

        metrics = self.collector.get_command_metrics("GET")
        self.assertEqual(metrics["count"], 2)
        self.assertEqual(metrics["error_count"], 1)
        self.assertEqual(metrics["avg_latency_ms"], 3.0)
        self.assertEqual(self.collector.get_command_metrics("PUT"), {})

    def test_flush_outcomes(self):
        self.collector.record_flush("products")
        self.collector.record_flush("orders", SnapshotWriteError("orders", "disk full"))

        data = json.loads(self.collector.export_json(self.provider))
        self.assertEqual(data["flushes"], {"tables_flushed": 1, "flush_failures": 1})
        self.assertEqual(data["store"]["backend"], "memory")

    def test_prometheus_export_tolerates_minimal_info(self):
        self.collector.record_command("PUT", 1.5)
        text = self.collector.export_prometheus(self.provider)

        self.assertIn("tabledb_info{backend=\"memory\"} 1", text)
        self.assertIn("tabledb_cached_tables 0", text)
        self.assertIn("tabledb_cmd_put_count 1", text)


if __name__ == "__main__":
    unittest.main()
