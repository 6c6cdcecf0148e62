from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from item_factory import NOW, make_item
from models.saved_item import Collection
from services.decision_engine import recompute_decision_groups
from storage.database import Database
from storage.item_store import SQLiteItemStore
from storage.token_store import TokenStore, hash_token


class SQLiteItemStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db = Database(Path(self._tmp.name) / "test.db")
        self.store = SQLiteItemStore(self.db)
        await self.store.insert_collection(Collection(id="c1", owner_id="u1", title="Trip"))

    async def asyncTearDown(self) -> None:
        self.db.close()
        self._tmp.cleanup()

    async def test_round_trip_and_recent_order(self) -> None:
        await self.store.insert_item(make_item("old", hours_ago=5, title="Old"))
        await self.store.insert_item(make_item("new", hours_ago=1, last_opened_at=NOW))

        items = await self.store.list_recent_items("c1", 10)
        self.assertEqual([i.id for i in items], ["new", "old"])
        self.assertEqual(items[0].last_opened_at, NOW)
        self.assertEqual(items[1].title, "Old")
        self.assertEqual(len(await self.store.list_recent_items("c1", 1)), 1)

    async def test_collection_owner(self) -> None:
        self.assertEqual(await self.store.collection_owner("c1"), "u1")
        self.assertIsNone(await self.store.collection_owner("missing"))

    async def test_update_and_bulk_update(self) -> None:
        for item_id in ("a", "b", "c"):
            await self.store.insert_item(make_item(item_id))

        updated = await self.store.update_item("a", {"shortlisted": True, "decision_group_id": "g"})
        self.assertTrue(updated.shortlisted)
        self.assertEqual(updated.decision_group_id, "g")
        self.assertIsNone(await self.store.update_item("missing", {"chosen": True}))

        count = await self.store.bulk_update_items(["b", "c", "missing"], {"decision_group_id": "g"})
        self.assertEqual(count, 2)
        self.assertEqual(
            sorted(i.id for i in await self.store.list_group_items("c1", "g")), ["a", "b", "c"]
        )
        self.assertEqual(len(await self.store.list_grouped_items("c1")), 3)

    async def test_patch_rejects_unknown_fields(self) -> None:
        await self.store.insert_item(make_item("a"))
        with self.assertRaises(ValueError):
            await self.store.update_item("a", {"url": "https://evil.example"})

    async def test_recompute_against_sqlite(self) -> None:
        await self.store.insert_item(make_item("x", hours_ago=1))
        await self.store.insert_item(make_item("y", hours_ago=2))

        out = await recompute_decision_groups(self.store, "c1", now=NOW)
        self.assertEqual(out, {"groupsCreated": 1, "linksUpdated": 2})
        x, y = await self.store.get_item("x"), await self.store.get_item("y")
        self.assertEqual(x.decision_group_id, y.decision_group_id)


class TokenStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db = Database(Path(self._tmp.name) / "test.db")

    async def asyncTearDown(self) -> None:
        self.db.close()
        self._tmp.cleanup()

    async def test_hash_uses_pepper(self) -> None:
        self.assertNotEqual(hash_token("tok", pepper="a"), hash_token("tok", pepper="b"))
        self.assertEqual(len(hash_token("tok", pepper="a")), 64)

    async def test_lookup_and_revoke(self) -> None:
        for store in (TokenStore(db=self.db), TokenStore(use_sqlite=False)):
            await store.register_token("u1", "lx_secret")
            self.assertEqual(await store.user_for_token("lx_secret"), "u1")
            self.assertIsNone(await store.user_for_token("lx_other"))
            self.assertIsNone(await store.user_for_token(""))

            self.assertTrue(await store.revoke_token("lx_secret"))
            self.assertIsNone(await store.user_for_token("lx_secret"))
            self.assertFalse(await store.revoke_token("lx_secret"))


if __name__ == "__main__":
    unittest.main()
