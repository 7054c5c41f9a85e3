"""
Client tests with a mocked requests session.
"""

import unittest
from unittest.mock import MagicMock

from tabledb.client import TableDBClient


def make_response(payload=None, text="", content_type="application/json"):
    response = MagicMock()
    response.headers = {"content-type": content_type}
    response.json.return_value = payload
    response.text = text
    return response


class TableDBClientTestSuite(unittest.TestCase):

    def setUp(self):
        self.client = TableDBClient("http://localhost:8000/", timeout=3)
        self.client.session = MagicMock()

    def test_get_table(self):
        self.client.session.request.return_value = make_response(
            {"table": "products", "count": 1, "records": [{"id": 1}]}
        )

        self.assertEqual(self.client.get_table("products"), [{"id": 1}])
        self.client.session.request.assert_called_once_with(
            "GET", "http://localhost:8000/api/tables/products", timeout=3
        )

    def test_put_table_sends_json_array(self):
        self.client.session.request.return_value = make_response({"status": "ok"})
        self.client.put_table("products", [{"id": 1}])

        args, kwargs = self.client.session.request.call_args
        self.assertEqual(args, ("PUT", "http://localhost:8000/api/tables/products"))
        self.assertEqual(kwargs["json"], [{"id": 1}])

    def test_range_query_encodes_bounds_as_json(self):
        self.client.session.request.return_value = make_response({"records": []})
        self.client.range_query("products", "name", low="a", high=None)

        _, kwargs = self.client.session.request.call_args
        self.assertEqual(kwargs["params"], {"field": "name", "min": "\"a\""})

    def test_drop_index_quotes_field(self):
        self.client.session.request.return_value = make_response({"status": "ok"})
        self.client.drop_index("products", "unit price")

        self.client.session.request.assert_called_once_with(
            "DELETE", "http://localhost:8000/api/tables/products/indexes/unit%20price", timeout=3
        )

    def test_metrics_returns_text(self):
        self.client.session.request.return_value = make_response(
            text="tabledb_cached_tables 0", content_type="text/plain; charset=utf-8"
        )
        self.assertEqual(self.client.metrics(), "tabledb_cached_tables 0")

    def test_http_errors_propagate(self):
        response = make_response({})
        response.raise_for_status.side_effect = RuntimeError("500 Server Error")
        self.client.session.request.return_value = response

        with self.assertRaises(RuntimeError):
            self.client.flush()

    def test_context_manager_closes_session(self):
        session = self.client.session
        with self.client:
            pass
        session.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
