"""
TableDB API Client
A simple Python client for the TableDB HTTP service.
"""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urljoin

import requests


class TableDBClient:
    """
    Simple HTTP client for the TableDB service.

    Example:
        >>> client = TableDBClient("http://localhost:8000")
        >>> client.put_table("products", [{"id": 1, "price": 10}])
        >>> client.get_table("products")
        [{'id': 1, 'price': 10}]
    """

    def __init__(self, base_url: str = "http://localhost:8000", timeout: int = 5):
        """
        Initialize the client.

        Args:
            base_url: The base URL of the TableDB API
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Make an HTTP request to the API.

        Raises:
            requests.exceptions.RequestException: If request fails
        """
        url = urljoin(self.base_url, endpoint)
        kwargs.setdefault("timeout", self.timeout)

        response = self.session.request(method, url, **kwargs)
        response.raise_for_status()

        if response.headers.get("content-type", "").startswith("application/json"):
            return response.json()
        return response.text

    @staticmethod
    def _table_path(table: str) -> str:
        return f"/api/tables/{quote(table, safe='')}"

    def get_table(self, table: str) -> List[Dict[str, Any]]:
        """Read all records of a table."""
        return self._request("GET", self._table_path(table))["records"]

    def put_table(self, table: str, records: List[Dict[str, Any]]) -> dict:
        """Replace all records of a table."""
        return self._request("PUT", self._table_path(table), json=records)

    def build_index(self, table: str, field: str) -> dict:
        """Build the range index of a table on field."""
        return self._request(
            "POST", f"{self._table_path(table)}/indexes/{quote(field, safe='')}"
        )

    def drop_index(self, table: str, field: str) -> dict:
        return self._request(
            "DELETE", f"{self._table_path(table)}/indexes/{quote(field, safe='')}"
        )

    def range_query(
        self,
        table: str,
        field: str,
        low: Optional[Any] = None,
        high: Optional[Any] = None,
    ) -> List[Dict[str, Any]]:
        """Records whose field lies within [low, high]."""
        params = {"field": field}
        if low is not None:
            params["min"] = json.dumps(low)
        if high is not None:
            params["max"] = json.dumps(high)

        return self._request("GET", f"{self._table_path(table)}/range", params=params)["records"]

    def flush(self) -> dict:
        """Persist queued writes now."""
        return self._request("POST", "/api/flush")

    def health(self) -> dict:
        """Check the health of the service."""
        return self._request("GET", "/health")

    def info(self) -> dict:
        return self._request("GET", "/api/info")

    def metrics(self) -> str:
        """Prometheus metrics text."""
        return self._request("GET", "/api/metrics")

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


# Example usage
if __name__ == "__main__":
    with TableDBClient("http://localhost:8000") as client:
        print("Health Check:")
        print(client.health())
        print()

        print("Replacing products:")
        print(client.put_table("products", [
            {"id": 1, "name": "Pen", "price": 2},
            {"id": 2, "name": "Notebook", "price": 6},
            {"id": 3, "name": "Lamp", "price": 25},
        ]))
        print()

        print("Reading products:")
        print(client.get_table("products"))
        print()

        print("Range query price 2..10:")
        client.build_index("products", "price")
        print(client.range_query("products", "price", 2, 10))
