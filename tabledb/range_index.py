"""
TableDB Range Index - Best-Effort Sorted Projections

A range index is a copy of a table's records sorted by one field, stored
at <data_dir>/<table>.<field>.idx. Range queries binary-search it:
- bisect_left finds the first record whose value is not less than low
- bisect_right finds the end of the records whose value is not greater than high
- The inclusive slice between them is the answer

The index is an accelerator only. When it is missing or unreadable the
query falls back to a full read plus linear filter and stable sort, which
returns the same records in the same order. Indexes are not invalidated by
writes: a stale index answers from the data it was built on until rebuilt.
"""

import logging
from bisect import bisect_left, bisect_right
from operator import itemgetter
from typing import Any, Awaitable, Callable, Dict, List, Optional

from tabledb.exceptions import IndexBuildError, InvalidRangeError, TableDBError
from tabledb.file_store import FileStore

logger = logging.getLogger(__name__)

Reader = Callable[[str], Awaitable[List[Dict[str, Any]]]]


def _has_value(record: Dict[str, Any], field: str) -> bool:
    return record.get(field) is not None


class RangeIndex:
    """
    Builds and queries per-field sorted index files.

    Records without a value for the field can never fall inside a range,
    so they are left out of the index and out of every result.
    """

    def __init__(self, file_store: FileStore, reader: Reader):
        """
        Args:
            file_store: Where index files live
            reader: Coroutine returning a table's current records
        """
        self.file_store = file_store
        self._read = reader
        self._stats = {
            "builds": 0,
            "index_queries": 0,
            "fallback_queries": 0,
        }

    async def build(self, table: str, field: str) -> int:
        """
        Sort the table by field and persist the result.

        Returns:
            Number of indexed records

        Raises:
            IndexBuildError: Field values cannot be ordered (mixed types)
        """
        path = self.file_store.index_path(table, field)
        records = await self._read(table)

        indexed = [record for record in records if _has_value(record, field)]
        try:
            indexed.sort(key=itemgetter(field))
        except TypeError as e:
            raise IndexBuildError(table, field, str(e)) from e

        await self.file_store.store_path(path, f"{table}.{field}", indexed)
        self._stats["builds"] += 1

        logger.info(f"Built index {table}.{field}: {len(indexed)} records")
        return len(indexed)

    async def drop(self, table: str, field: str) -> None:
        await self.file_store.delete_path(self.file_store.index_path(table, field))

    async def range_query(
        self,
        table: str,
        field: str,
        low: Optional[Any] = None,
        high: Optional[Any] = None,
    ) -> List[Dict[str, Any]]:
        """
        Records with low <= record[field] <= high, sorted by field.

        A bound of None leaves that side open.

        Raises:
            InvalidRangeError: Bounds cannot be compared with each other
                or with the field's values
        """
        path = self.file_store.index_path(table, field)

        if low is not None and high is not None:
            try:
                if low > high:
                    return []
            except TypeError as e:
                raise InvalidRangeError(table, field, str(e)) from e

        try:
            sorted_records = await self.file_store.load_path(path, f"{table}.{field}")
        except TableDBError as e:
            logger.warning(f"Index {table}.{field} unreadable, scanning table: {e}")
            sorted_records = None

        if sorted_records is not None:
            try:
                result = self._slice(sorted_records, field, low, high)
            except (KeyError, AttributeError) as e:
                logger.warning(f"Index {table}.{field} is malformed, scanning table: {e}")
            except TypeError as e:
                # Bounds of another type than the indexed values, or non-record entries
                logger.debug(f"Index {table}.{field} cannot answer [{low!r}, {high!r}], scanning table: {e}")
            else:
                self._stats["index_queries"] += 1
                return result

        self._stats["fallback_queries"] += 1
        return await self._scan(table, field, low, high)

    @staticmethod
    def _slice(
        sorted_records: List[Dict[str, Any]],
        field: str,
        low: Optional[Any],
        high: Optional[Any],
    ) -> List[Dict[str, Any]]:
        key = itemgetter(field)
        start = 0 if low is None else bisect_left(sorted_records, low, key=key)
        end = len(sorted_records) if high is None else bisect_right(sorted_records, high, key=key)
        return sorted_records[start:end]

    async def _scan(
        self,
        table: str,
        field: str,
        low: Optional[Any],
        high: Optional[Any],
    ) -> List[Dict[str, Any]]:
        records = await self._read(table)

        matches = []
        try:
            for record in records:
                if not _has_value(record, field):
                    continue
                value = record[field]
                if low is not None and value < low:
                    continue
                if high is not None and value > high:
                    continue
                matches.append(record)

            # Stable, so ties keep table order just like a freshly built index
            matches.sort(key=itemgetter(field))
        except TypeError as e:
            raise InvalidRangeError(table, field, str(e)) from e

        return matches

    def get_stats(self) -> Dict[str, Any]:
        """Get index statistics."""
        return dict(self._stats)
