from __future__ import annotations

import asyncio
import unittest

from fastapi.testclient import TestClient

from item_factory import make_item, seeded_store
from models.saved_item import Collection
from storage.item_store import InMemoryItemStore, StoreError, init_item_store
from storage.token_store import TokenStore, init_token_store
from utils.timestamps import utc_now

import main

TOKEN = "lx_owner_token"
OTHER_TOKEN = "lx_other_token"


class DecisionApiTests(unittest.TestCase):
    def setUp(self) -> None:
        now = utc_now()
        self.store = asyncio.run(seeded_store([
            make_item("x", hours_ago=1, now=now),
            make_item("y", hours_ago=2, now=now),
            make_item("z", hours_ago=20 * 24, now=now),
        ]))
        asyncio.run(self.store.insert_collection(Collection(id="c2", owner_id="u2")))
        tokens = TokenStore(use_sqlite=False)
        asyncio.run(tokens.register_token("u1", TOKEN))
        asyncio.run(tokens.register_token("u2", OTHER_TOKEN))
        init_item_store(self.store)
        init_token_store(tokens)
        self.client = TestClient(main.app)

    def _post(self, path: str, body, token: str = TOKEN):
        return self.client.post(path, json=body, headers={"Authorization": f"Bearer {token}"})

    def _item(self, item_id: str):
        return asyncio.run(self.store.get_item(item_id))

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"status": "healthy"})

    def test_missing_or_bad_token_is_401(self) -> None:
        res = self.client.post("/decision-groups/recompute", json={"collectionId": "c1"})
        self.assertEqual(res.status_code, 401)
        res = self.client.post(
            "/decision-groups/recompute",
            json={"collectionId": "c1"},
            headers={"Authorization": "Basic abc"},
        )
        self.assertEqual(res.status_code, 401)
        res = self._post("/decision-groups/recompute", {"collectionId": "c1"}, token="lx_unknown")
        self.assertEqual(res.status_code, 401)
        self.assertIsNone(self._item("x").decision_group_id)

    def test_missing_field_is_400_with_hint(self) -> None:
        res = self._post("/decision-groups/recompute", {})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["detail"], "collectionId is required.")

        res = self._post("/decision-groups/resolve", {"collectionId": "c1"})
        self.assertEqual(res.status_code, 400)
        self.assertIn("decisionGroupId", res.json()["detail"])

        res = self._post("/links/flags", {"shortlisted": True})
        self.assertEqual(res.json()["detail"], "linkId is required.")

    def test_malformed_json_is_400(self) -> None:
        res = self.client.post(
            "/links/open",
            content=b"{not json",
            headers={"Authorization": f"Bearer {TOKEN}", "Content-Type": "application/json"},
        )
        self.assertEqual(res.status_code, 400)

    def test_header_present_but_not_bearer_says_unauthorized(self) -> None:
        res = self.client.post("/links/open", json={"linkId": "x"})
        self.assertEqual(res.json()["detail"], "Missing Authorization header")
        res = self.client.post(
            "/links/open", json={"linkId": "x"}, headers={"Authorization": "Basic abc"}
        )
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json()["detail"], "Unauthorized")

    def test_malformed_json_is_reported_before_auth(self) -> None:
        res = self.client.post(
            "/decision-groups/recompute",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["detail"], "Invalid JSON body.")

    def test_other_users_collection_is_404(self) -> None:
        res = self._post("/decision-groups/recompute", {"collectionId": "c1"}, token=OTHER_TOKEN)
        self.assertEqual(res.status_code, 404)
        res = self._post("/decision-groups/recompute", {"collectionId": "nope"})
        self.assertEqual(res.status_code, 404)
        res = self._post("/links/flags", {"linkId": "x", "dismissed": True}, token=OTHER_TOKEN)
        self.assertEqual(res.status_code, 404)
        res = self._post("/links/open", {"linkId": "x"}, token=OTHER_TOKEN)
        self.assertEqual(res.status_code, 404)
        self.assertFalse(self._item("x").dismissed)

    def test_recompute_dismiss_resolve_flow(self) -> None:
        res = self._post("/decision-groups/recompute", {"collectionId": "c1"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"groupsCreated": 1, "linksUpdated": 2})
        group_id = self._item("x").decision_group_id
        self.assertIsNone(self._item("z").decision_group_id)

        res = self._post("/links/flags", {"linkId": "y", "shortlisted": True, "dismissed": True})
        self.assertEqual(
            res.json(), {"id": "y", "shortlisted": False, "dismissed": True, "chosen": False}
        )

        res = self._post("/decision-groups/resolve", {"collectionId": "c1", "decisionGroupId": group_id})
        self.assertEqual(res.json(), {"status": "chosen", "linkId": "x"})
        self.assertTrue(self._item("x").chosen)

    def test_resolve_unknown_group_is_no_resolution(self) -> None:
        res = self._post("/decision-groups/resolve", {"collectionId": "c1", "decisionGroupId": "nope"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"status": "no_resolution", "linkId": None})

    def test_archive_others(self) -> None:
        asyncio.run(self.store.insert_item(make_item("w", hours_ago=3, now=utc_now())))
        self._post("/decision-groups/recompute", {"collectionId": "c1"})
        group_id = self._item("x").decision_group_id

        res = self._post("/decision-groups/archive-others", {
            "collectionId": "c1", "decisionGroupId": group_id, "chosenLinkId": "x",
        })
        self.assertEqual(res.json(), {"updated": 2})
        self.assertFalse(self._item("x").dismissed)
        self.assertTrue(self._item("y").dismissed)
        self.assertTrue(self._item("w").dismissed)

    def test_record_open(self) -> None:
        res = self._post("/links/open", {"linkId": "z"})
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body["openCount"], 1)
        self.assertIsNotNone(body["lastOpenedAt"])

        # Opening makes z a candidate again, but it was saved too long before x and y
        res = self._post("/decision-groups/recompute", {"collectionId": "c1"})
        self.assertEqual(res.json()["groupsCreated"], 1)
        self.assertIsNone(self._item("z").decision_group_id)
        self.assertEqual(self._item("z").open_count, 1)

    def test_list_groups(self) -> None:
        self._post("/decision-groups/recompute", {"collectionId": "c1"})
        res = self.client.get("/decision-groups/c1", headers={"Authorization": f"Bearer {TOKEN}"})
        groups = res.json()["groups"]
        self.assertEqual(len(groups), 1)
        self.assertEqual(sorted(i["id"] for i in groups[0]["items"]), ["x", "y"])

        res = self.client.get("/decision-groups/c1", headers={"Authorization": f"Bearer {OTHER_TOKEN}"})
        self.assertEqual(res.status_code, 404)


class FailingItemStore(InMemoryItemStore):
    """Allows a fixed number of item writes, then fails every one after."""

    def __init__(self, writes_allowed: int):
        super().__init__()
        self.writes_allowed = writes_allowed

    async def update_item(self, item_id, patch):
        if self.writes_allowed <= 0:
            raise StoreError(f"write to {item_id} failed")
        self.writes_allowed -= 1
        return await super().update_item(item_id, patch)


class StorageFailureApiTests(unittest.TestCase):
    def setUp(self) -> None:
        now = utc_now()
        self.store = FailingItemStore(writes_allowed=1)
        asyncio.run(self.store.insert_collection(Collection(id="c1", owner_id="u1")))
        for item in (make_item("x", hours_ago=1, now=now), make_item("y", hours_ago=2, now=now)):
            asyncio.run(self.store.insert_item(item))
        tokens = TokenStore(use_sqlite=False)
        asyncio.run(tokens.register_token("u1", TOKEN))
        init_item_store(self.store)
        init_token_store(tokens)
        self.client = TestClient(main.app)

    def test_store_failure_is_500_and_earlier_writes_stay(self) -> None:
        res = self.client.post(
            "/decision-groups/recompute",
            json={"collectionId": "c1"},
            headers={"Authorization": f"Bearer {TOKEN}"},
        )
        self.assertEqual(res.status_code, 500)
        self.assertEqual(res.json(), {"detail": "Storage error. Safe to retry."})

        x = asyncio.run(self.store.get_item("x"))
        y = asyncio.run(self.store.get_item("y"))
        self.assertIsNotNone(x.decision_group_id)
        self.assertIsNone(y.decision_group_id)


if __name__ == "__main__":
    unittest.main()
