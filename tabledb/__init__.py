"""
TableDB - File-backed JSON table store with a coherent write-batching cache.

    >>> provider = FastStorageProvider(data_dir="./data")
    >>> await provider.connect()
    >>> await provider.put("products", [{"id": 1, "price": 10}])
    >>> await provider.get("products")
    [{'id': 1, 'price': 10}]
    >>> await provider.close()
"""

__version__ = "1.0.0"

from tabledb.config import StorageBackend, TableDBConfig
from tabledb.engine import FastStorageProvider, InMemoryStorageProvider, open_provider
from tabledb.exceptions import TableDBError
from tabledb.storage_engine import StorageProvider
from tabledb.table_set import EntityConfig, TableSet

__all__ = [
    "__version__",
    "EntityConfig",
    "FastStorageProvider",
    "InMemoryStorageProvider",
    "StorageBackend",
    "StorageProvider",
    "TableDBConfig",
    "TableDBError",
    "TableSet",
    "open_provider",
]
