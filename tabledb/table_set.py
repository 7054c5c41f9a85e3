"""
TableSet - Record-Level Access to One Table

A thin collaborator over a StorageProvider: every mutation reads the
table snapshot, edits a private copy and replaces the snapshot.

Mutations through one TableSet are serialized, so its own
read-modify-write cycles never interleave. Two TableSets over the same
table (or direct provider.put callers) are not coordinated: the store is
last-write-wins and one of the concurrent updates is lost.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from tabledb.exceptions import EntityNotFound
from tabledb.storage_engine import StorageProvider


@dataclass(frozen=True)
class EntityConfig:
    """Explicit table metadata: where records live and how they are keyed."""
    table: str
    primary_key: str = "id"


class TableSet:
    """
    Record-level operations on one table.

    Example:
        >>> products = TableSet(provider, EntityConfig("products"))
        >>> await products.add({"name": "Pen", "price": 2})
        {'name': 'Pen', 'price': 2, 'id': 1}
    """

    def __init__(self, provider: StorageProvider, entity: EntityConfig):
        self.provider = provider
        self.entity = entity
        self._write_lock = asyncio.Lock()

    @property
    def table(self) -> str:
        return self.entity.table

    def _next_id(self, records: List[Dict[str, Any]]) -> int:
        key = self.entity.primary_key
        return max([0] + [record.get(key) or 0 for record in records]) + 1

    async def to_list(self) -> List[Dict[str, Any]]:
        return await self.provider.get(self.table)

    async def where(self, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        return await self.provider.query(self.table, predicate)

    async def count(self) -> int:
        return len(await self.provider.get(self.table))

    async def find(self, key: Any) -> Optional[Dict[str, Any]]:
        """Record whose primary key equals key, or None."""
        pk = self.entity.primary_key
        for record in await self.provider.get(self.table):
            if record.get(pk) == key:
                return record
        return None

    async def add(self, entity: Dict[str, Any]) -> Dict[str, Any]:
        """
        Append a record, assigning max(primary key) + 1 when it has none.

        Returns:
            The stored record (a copy of entity with its key filled in)
        """
        return (await self.add_range([entity]))[0]

    async def add_range(self, entities: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Append several records, assigning consecutive keys where missing."""
        pk = self.entity.primary_key

        async with self._write_lock:
            # Coalesced loads share one list between readers; edit a copy
            records = list(await self.provider.get(self.table))
            next_id = self._next_id(records)
            added = []

            for entity in entities:
                record = dict(entity)
                if not record.get(pk):
                    record[pk] = next_id
                    next_id += 1
                records.append(record)
                added.append(record)

            await self.provider.put(self.table, records)

        return [dict(record) for record in added]

    async def update(self, entity: Dict[str, Any]) -> Dict[str, Any]:
        """
        Replace the record sharing entity's primary key.

        Raises:
            EntityNotFound: No record has that key
        """
        pk = self.entity.primary_key
        key = entity.get(pk)

        async with self._write_lock:
            records = list(await self.provider.get(self.table))
            for position, record in enumerate(records):
                if record.get(pk) == key:
                    records[position] = dict(entity)
                    break
            else:
                raise EntityNotFound(self.table, key)

            await self.provider.put(self.table, records)

        return dict(entity)

    async def remove(self, entity: Dict[str, Any]) -> bool:
        """
        Delete the record sharing entity's primary key.

        Returns:
            True if a record was removed
        """
        pk = self.entity.primary_key
        key = entity.get(pk)

        async with self._write_lock:
            records = await self.provider.get(self.table)
            remaining = [record for record in records if record.get(pk) != key]
            if len(remaining) == len(records):
                return False

            await self.provider.put(self.table, remaining)

        return True
