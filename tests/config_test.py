"""
Configuration tests: environment loading, connection strings, validation.
"""

import os
import unittest
from unittest.mock import patch

from tabledb.config import LogLevel, StorageBackend, TableDBConfig, parse_table_list


class ConfigTestSuite(unittest.TestCase):

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = TableDBConfig.from_env()

        self.assertEqual(config.storage_backend, StorageBackend.FAST)
        self.assertEqual(config.data_dir, "./data")
        self.assertEqual(config.write_delay_ms, 100)
        self.assertEqual(config.hot_data_threshold, 10)
        self.assertEqual((config.cache_high_water, config.cache_low_water), (50, 40))
        self.assertEqual(config.preload, [])
        self.assertTrue(config.validate())

    def test_from_env(self):
        env = {
            "TABLEDB_DATA_DIR": "/var/lib/tabledb",
            "TABLEDB_PRELOAD": "products, orders,,",
            "TABLEDB_WRITE_DELAY_MS": "250",
            "TABLEDB_HOT_DATA_THRESHOLD": "3",
            "TABLEDB_HTTP_PORT": "9000",
            "TABLEDB_LOG_LEVEL": "DEBUG",
            "TABLEDB_METRICS_ENABLED": "no",
        }
        with patch.dict(os.environ, env, clear=True):
            config = TableDBConfig.from_env()

        self.assertEqual(config.data_dir, "/var/lib/tabledb")
        self.assertEqual(config.preload, ["products", "orders"])
        self.assertEqual(config.write_delay_ms, 250)
        self.assertEqual(config.hot_data_threshold, 3)
        self.assertEqual(config.http_port, 9000)
        self.assertEqual(config.log_level, LogLevel.DEBUG)
        self.assertFalse(config.metrics_enabled)

    def test_bad_values_fall_back_to_defaults(self):
        env = {"TABLEDB_WRITE_DELAY_MS": "soon", "TABLEDB_STORAGE_BACKEND": "mongo"}
        with patch.dict(os.environ, env, clear=True):
            config = TableDBConfig.from_env()

        self.assertEqual(config.write_delay_ms, 100)
        self.assertEqual(config.storage_backend, StorageBackend.FAST)

    def test_connection_string_from_env(self):
        with patch.dict(os.environ, {"TABLEDB_CONNECTION_STRING": "memory://"}, clear=True):
            config = TableDBConfig.from_env()
        self.assertEqual(config.storage_backend, StorageBackend.MEMORY)

    def test_connection_strings(self):
        relative = TableDBConfig.from_connection_string("fast://./data")
        absolute = TableDBConfig.from_connection_string("fast:///srv/tables")
        bare = TableDBConfig(data_dir="/keep").with_connection_string("fast://")

        self.assertEqual(relative.data_dir, "./data")
        self.assertEqual(absolute.data_dir, "/srv/tables")
        self.assertEqual(bare.data_dir, "/keep")
        self.assertEqual(relative.storage_backend, StorageBackend.FAST)

    def test_unknown_connection_string(self):
        with self.assertRaises(ValueError):
            TableDBConfig.from_connection_string("mongodb://localhost")

    def test_validate_rejects_bad_values(self):
        bad = [
            {"http_port": 80},
            {"write_delay_ms": 0},
            {"hot_data_threshold": 0},
            {"cache_high_water": 10, "cache_low_water": 20},
            {"data_dir": ""},
        ]
        for overrides in bad:
            with self.subTest(**overrides):
                with self.assertRaises(ValueError):
                    TableDBConfig(**overrides).validate()

    def test_to_dict_and_str(self):
        config = TableDBConfig(preload=["products"])
        self.assertEqual(config.to_dict()["storage_backend"], "fast")
        self.assertEqual(config.to_dict()["preload"], ["products"])
        self.assertIn("write_delay_ms: 100", str(config))

    def test_parse_table_list(self):
        self.assertEqual(parse_table_list(" a, ,b "), ["a", "b"])
        self.assertEqual(parse_table_list(""), [])


if __name__ == "__main__":
    unittest.main()
