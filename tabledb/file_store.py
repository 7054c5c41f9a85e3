"""
TableDB Stable File Store - Crash-Safe JSON Table Files

One UTF-8 JSON file per table at <data_dir>/<table>.json:
- Atomic writes: serialize to a temp sibling, fsync, then rename into place
- A crash mid-write leaves either the old file or a finished temp file,
  never a torn table
- A missing file is reported as "not found" (None), not as an error

Blocking file I/O runs in a worker thread so the event loop is never
stalled; callers only ever see coroutines.
"""

import asyncio
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from tabledb.exceptions import (
    InvalidTableName,
    SnapshotDecodeError,
    SnapshotReadError,
    SnapshotWriteError,
)

logger = logging.getLogger(__name__)

TABLE_SUFFIX = ".json"
INDEX_SUFFIX = ".idx"
TEMP_SUFFIX = ".tmp"


def validate_table_name(table: str) -> str:
    """Reject names that would escape the data directory or hide the file."""
    if (
        not isinstance(table, str)
        or not table
        or table.startswith(".")
        or "/" in table
        or "\\" in table
        or "\x00" in table
    ):
        raise InvalidTableName(table)
    return table


class FileStore:
    """
    Reads and atomically replaces table files under a data directory.

    Thread Safety: each call works on its own file handles; ordering of
    concurrent writes to the same table is the caller's responsibility
    (the write queue serializes them per table).
    """

    def __init__(self, data_dir: str = "./data"):
        """
        Initialize the file store.

        Args:
            data_dir: Directory holding one JSON file per table
        """
        self.data_dir = Path(data_dir)

        self._stats = {
            "loads": 0,
            "loads_not_found": 0,
            "stores": 0,
            "store_failures": 0,
            "bytes_written": 0,
        }
        self._stats_lock = threading.Lock()

    async def ensure_dir(self) -> None:
        """Create the data directory if needed."""
        await asyncio.to_thread(self.data_dir.mkdir, parents=True, exist_ok=True)

    def table_path(self, table: str) -> Path:
        return self.data_dir / f"{validate_table_name(table)}{TABLE_SUFFIX}"

    def index_path(self, table: str, field: str) -> Path:
        validate_table_name(field)
        return self.data_dir / f"{validate_table_name(table)}.{field}{INDEX_SUFFIX}"

    async def load(self, table: str) -> Optional[List[Dict[str, Any]]]:
        """
        Load a table snapshot.

        Returns:
            The records, or None if the table file does not exist

        Raises:
            SnapshotDecodeError: File content is not a JSON array
            SnapshotReadError: Any other I/O failure
        """
        return await self.load_path(self.table_path(table), table)

    async def store(self, table: str, records: List[Dict[str, Any]]) -> None:
        """
        Atomically replace a table file with the given records.

        Raises:
            SnapshotWriteError: Serialization, write or rename failed
        """
        await self.store_path(self.table_path(table), table, records, indent=2)

    async def load_path(self, path: Path, label: str) -> Optional[List[Dict[str, Any]]]:
        """Load any array-of-records file; label names it in errors."""
        return await asyncio.to_thread(self._read_sync, path, label)

    async def store_path(
        self,
        path: Path,
        label: str,
        records: List[Dict[str, Any]],
        indent: Optional[int] = None,
    ) -> None:
        """Atomically replace any array-of-records file."""
        await asyncio.to_thread(self._write_sync, path, label, records, indent)

    async def delete_path(self, path: Path) -> None:
        await asyncio.to_thread(path.unlink, missing_ok=True)

    def _read_sync(self, path: Path, label: str) -> Optional[List[Dict[str, Any]]]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except FileNotFoundError:
            with self._stats_lock:
                self._stats["loads_not_found"] += 1
            return None
        except OSError as e:
            raise SnapshotReadError(label, str(e)) from e
        except UnicodeDecodeError as e:
            raise SnapshotDecodeError(label, str(e)) from e

        try:
            records = json.loads(content)
        except json.JSONDecodeError as e:
            raise SnapshotDecodeError(label, str(e)) from e

        if not isinstance(records, list):
            raise SnapshotDecodeError(label, f"expected a JSON array, got {type(records).__name__}")

        with self._stats_lock:
            self._stats["loads"] += 1

        return records

    def _write_sync(
        self,
        path: Path,
        label: str,
        records: List[Dict[str, Any]],
        indent: Optional[int],
    ) -> None:
        temp_path = path.with_name(path.name + TEMP_SUFFIX)

        try:
            payload = json.dumps(records, default=str, indent=indent, ensure_ascii=False)

            # Write to temp file
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())

            # Atomic rename
            temp_path.replace(path)

        except (OSError, TypeError, ValueError) as e:
            with self._stats_lock:
                self._stats["store_failures"] += 1
            # Clean up temp file on error
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                logger.warning(f"Could not remove temp file {temp_path}")
            raise SnapshotWriteError(label, str(e)) from e

        with self._stats_lock:
            self._stats["stores"] += 1
            self._stats["bytes_written"] += len(payload)

        logger.debug(f"Persisted {label}: {len(records)} records -> {path}")

    def get_stats(self) -> Dict[str, Any]:
        """Get file store statistics."""
        with self._stats_lock:
            return dict(self._stats)
