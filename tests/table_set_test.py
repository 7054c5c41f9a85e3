"""
TableSet tests: key assignment and record-level edits over a provider.
"""

import asyncio
import tempfile
import unittest

from tabledb.engine import FastStorageProvider, InMemoryStorageProvider
from tabledb.exceptions import EntityNotFound
from tabledb.table_set import EntityConfig, TableSet


class TableSetTestSuite(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.provider = InMemoryStorageProvider()
        await self.provider.connect()
        self.products = TableSet(self.provider, EntityConfig("products"))

    async def asyncTearDown(self):
        await self.provider.close()

    async def test_add_assigns_next_key(self):
        first = await self.products.add({"name": "Pen"})
        second = await self.products.add({"name": "Lamp"})

        self.assertEqual((first["id"], second["id"]), (1, 2))
        self.assertEqual(await self.products.count(), 2)

    async def test_add_keeps_explicit_key(self):
        await self.products.add({"id": 10, "name": "Pen"})
        added = await self.products.add({"name": "Lamp"})
        self.assertEqual(added["id"], 11)

    async def test_add_does_not_mutate_argument(self):
        entity = {"name": "Pen"}
        await self.products.add(entity)
        self.assertNotIn("id", entity)

    async def test_add_range_assigns_consecutive_keys(self):
        added = await self.products.add_range([{"name": "a"}, {"name": "b"}, {"name": "c"}])
        self.assertEqual([record["id"] for record in added], [1, 2, 3])

    async def test_find_and_where(self):
        await self.products.add_range([{"name": "Pen", "price": 2}, {"name": "Lamp", "price": 25}])

        self.assertEqual((await self.products.find(2))["name"], "Lamp")
        self.assertIsNone(await self.products.find(3))
        cheap = await self.products.where(lambda record: record["price"] < 10)
        self.assertEqual([record["name"] for record in cheap], ["Pen"])

    async def test_update_replaces_record(self):
        await self.products.add({"name": "Pen", "price": 2})
        await self.products.update({"id": 1, "name": "Pen", "price": 3})

        self.assertEqual(await self.products.to_list(), [{"id": 1, "name": "Pen", "price": 3}])

    async def test_update_missing_record(self):
        with self.assertRaises(EntityNotFound) as ctx:
            await self.products.update({"id": 5, "name": "Ghost"})
        self.assertEqual(ctx.exception.details, {"table": "products", "key": 5})

    async def test_remove(self):
        await self.products.add_range([{"name": "Pen"}, {"name": "Lamp"}])

        self.assertTrue(await self.products.remove({"id": 1}))
        self.assertFalse(await self.products.remove({"id": 1}))
        self.assertEqual(await self.products.to_list(), [{"id": 2, "name": "Lamp"}])

    async def test_custom_primary_key(self):
        users = TableSet(self.provider, EntityConfig("users", primary_key="user_id"))
        added = await users.add({"name": "ann"})
        self.assertEqual(added, {"name": "ann", "user_id": 1})


class TableSetOnFileStoreTestSuite(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.provider = FastStorageProvider(data_dir=self._tmp.name)
        await self.provider.connect()

    async def asyncTearDown(self):
        await self.provider.close()
        self._tmp.cleanup()

    async def test_concurrent_adds_get_unique_keys(self):
        orders = TableSet(self.provider, EntityConfig("orders"))
        added = await asyncio.gather(*(orders.add({"n": n}) for n in range(10)))

        self.assertEqual(sorted(record["id"] for record in added), list(range(1, 11)))
        self.assertEqual(await orders.count(), 10)

        await self.provider.flush()
        self.assertEqual(len(await self.provider.file_store.load("orders")), 10)


if __name__ == "__main__":
    unittest.main()
