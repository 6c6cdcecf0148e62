"""
Item repository - storage port for saved links and their collections.

The decision engine only talks to an ItemRepository. Two adapters ship:
SQLiteItemStore (default, backed by storage.database) and InMemoryItemStore
(ephemeral, used by tests and ITEM_STORE=memory).
"""
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from config import settings
from models.saved_item import Collection, SavedItem, PATCHABLE_FIELDS
from utils.timestamps import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class StoreError(Exception):
    """Raised when the backing store fails a read or write."""


def _check_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported item fields in patch: {sorted(unknown)}")
    return dict(patch)


class ItemRepository(ABC):
    """Narrow storage interface consumed by the decision services."""

    @abstractmethod
    async def collection_owner(self, collection_id: str) -> Optional[str]:
        """Owner user id of a collection, or None if it doesn't exist."""

    @abstractmethod
    async def list_recent_items(self, collection_id: str, limit: int) -> List[SavedItem]:
        """Most recently added items of a collection, newest first."""

    @abstractmethod
    async def get_item(self, item_id: str) -> Optional[SavedItem]:
        """Get an item by ID"""

    @abstractmethod
    async def update_item(self, item_id: str, patch: Dict[str, Any]) -> Optional[SavedItem]:
        """Apply a patch to one item and return the updated item (None if missing)."""

    @abstractmethod
    async def bulk_update_items(self, item_ids: Iterable[str], patch: Dict[str, Any]) -> int:
        """Apply the same patch to several items, returns count updated."""

    @abstractmethod
    async def list_grouped_items(self, collection_id: str) -> List[SavedItem]:
        """All items of a collection carrying any decision group id."""

    @abstractmethod
    async def list_group_items(self, collection_id: str, decision_group_id: str) -> List[SavedItem]:
        """Members of one decision group within a collection."""


class InMemoryItemStore(ItemRepository):
    """Dictionary-backed repository. Returned items are copies."""

    def __init__(self):
        self._collections: Dict[str, Collection] = {}
        self._items: Dict[str, SavedItem] = {}

    async def insert_collection(self, collection: Collection) -> Collection:
        if collection.created_at is None:
            collection = replace(collection, created_at=utc_now())
        self._collections[collection.id] = collection
        return replace(collection)

    async def insert_item(self, item: SavedItem) -> SavedItem:
        if item.added_at is None:
            item = replace(item, added_at=utc_now())
        self._items[item.id] = replace(item)
        return replace(item)

    async def collection_owner(self, collection_id: str) -> Optional[str]:
        collection = self._collections.get(collection_id)
        return collection.owner_id if collection else None

    async def list_recent_items(self, collection_id: str, limit: int) -> List[SavedItem]:
        items = [i for i in self._items.values() if i.collection_id == collection_id]
        items.sort(key=lambda i: i.added_at or _EPOCH, reverse=True)
        return [replace(i) for i in items[:limit]]

    async def get_item(self, item_id: str) -> Optional[SavedItem]:
        item = self._items.get(item_id)
        return replace(item) if item else None

    async def update_item(self, item_id: str, patch: Dict[str, Any]) -> Optional[SavedItem]:
        patch = _check_patch(patch)
        item = self._items.get(item_id)
        if item is None:
            return None
        if "last_opened_at" in patch:
            patch["last_opened_at"] = parse_timestamp(patch["last_opened_at"])
        updated = replace(item, **patch)
        self._items[item_id] = updated
        return replace(updated)

    async def bulk_update_items(self, item_ids: Iterable[str], patch: Dict[str, Any]) -> int:
        patch = _check_patch(patch)
        count = 0
        for item_id in dict.fromkeys(item_ids):
            if await self.update_item(item_id, patch) is not None:
                count += 1
        return count

    async def list_grouped_items(self, collection_id: str) -> List[SavedItem]:
        return [
            replace(i) for i in self._items.values()
            if i.collection_id == collection_id and i.decision_group_id
        ]

    async def list_group_items(self, collection_id: str, decision_group_id: str) -> List[SavedItem]:
        return [
            replace(i) for i in self._items.values()
            if i.collection_id == collection_id and i.decision_group_id == decision_group_id
        ]


class SQLiteItemStore(ItemRepository):
    """Repository over the collections/saved_items tables."""

    def __init__(self, db=None):
        from storage.database import get_db
        self._db = db or get_db()

    def _conn(self) -> sqlite3.Connection:
        return self._db.get_connection()

    def _row_to_item(self, row) -> SavedItem:
        return SavedItem.from_dict(dict(row))

    def _to_column(self, key: str, value: Any) -> Any:
        if key == "last_opened_at":
            return format_timestamp(parse_timestamp(value))
        if key in ("shortlisted", "dismissed", "chosen"):
            return 1 if value else 0
        return value

    def _fetch_items(self, sql: str, params: tuple) -> List[SavedItem]:
        try:
            rows = self._conn().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Item query failed: {e}")
            raise StoreError(str(e)) from e
        return [self._row_to_item(r) for r in rows]

    async def insert_collection(self, collection: Collection) -> Collection:
        created_at = collection.created_at or utc_now()
        conn = self._conn()
        conn.execute(
            "INSERT INTO collections (id, owner_id, title, created_at) VALUES (?, ?, ?, ?)",
            (collection.id, collection.owner_id, collection.title, format_timestamp(created_at)),
        )
        conn.commit()
        return replace(collection, created_at=created_at)

    async def insert_item(self, item: SavedItem) -> SavedItem:
        if item.added_at is None:
            item = replace(item, added_at=utc_now())
        d = item.to_dict()
        conn = self._conn()
        conn.execute(
            """INSERT INTO saved_items
               (id, collection_id, url, domain, title, added_at, last_opened_at,
                open_count, decision_group_id, shortlisted, dismissed, chosen)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (d["id"], d["collection_id"], d["url"], d["domain"], d["title"],
             d["added_at"], d["last_opened_at"], d["open_count"], d["decision_group_id"],
             int(d["shortlisted"]), int(d["dismissed"]), int(d["chosen"]))
        )
        conn.commit()
        return item

    async def collection_owner(self, collection_id: str) -> Optional[str]:
        try:
            row = self._conn().execute(
                "SELECT owner_id FROM collections WHERE id = ?", (collection_id,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Collection lookup failed for {collection_id}: {e}")
            raise StoreError(str(e)) from e
        return row["owner_id"] if row else None

    async def list_recent_items(self, collection_id: str, limit: int) -> List[SavedItem]:
        return self._fetch_items(
            "SELECT * FROM saved_items WHERE collection_id = ? ORDER BY added_at DESC LIMIT ?",
            (collection_id, limit),
        )

    async def get_item(self, item_id: str) -> Optional[SavedItem]:
        items = self._fetch_items("SELECT * FROM saved_items WHERE id = ?", (item_id,))
        return items[0] if items else None

    async def update_item(self, item_id: str, patch: Dict[str, Any]) -> Optional[SavedItem]:
        patch = _check_patch(patch)
        if not patch:
            return await self.get_item(item_id)
        sets = [f"{k} = ?" for k in patch]
        params = [self._to_column(k, v) for k, v in patch.items()]
        params.append(item_id)
        conn = self._conn()
        try:
            cursor = conn.execute(f"UPDATE saved_items SET {', '.join(sets)} WHERE id = ?", params)
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Update failed for item {item_id}: {e}")
            raise StoreError(str(e)) from e
        if cursor.rowcount == 0:
            return None
        return await self.get_item(item_id)

    async def bulk_update_items(self, item_ids: Iterable[str], patch: Dict[str, Any]) -> int:
        patch = _check_patch(patch)
        ids = list(dict.fromkeys(item_ids))
        if not ids or not patch:
            return 0
        sets = [f"{k} = ?" for k in patch]
        params = [self._to_column(k, v) for k, v in patch.items()]
        placeholders = ", ".join("?" for _ in ids)
        conn = self._conn()
        try:
            cursor = conn.execute(
                f"UPDATE saved_items SET {', '.join(sets)} WHERE id IN ({placeholders})",
                params + ids,
            )
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Bulk update failed for {len(ids)} items: {e}")
            raise StoreError(str(e)) from e
        return cursor.rowcount

    async def list_grouped_items(self, collection_id: str) -> List[SavedItem]:
        return self._fetch_items(
            "SELECT * FROM saved_items WHERE collection_id = ? AND decision_group_id IS NOT NULL",
            (collection_id,),
        )

    async def list_group_items(self, collection_id: str, decision_group_id: str) -> List[SavedItem]:
        return self._fetch_items(
            "SELECT * FROM saved_items WHERE collection_id = ? AND decision_group_id = ?",
            (collection_id, decision_group_id),
        )


item_store: Optional[ItemRepository] = None


def init_item_store(store: Optional[ItemRepository] = None) -> ItemRepository:
    """Initialize the item store from settings (or install the given one)."""
    global item_store
    if store is not None:
        item_store = store
    elif settings.item_store == "memory":
        item_store = InMemoryItemStore()
    else:
        item_store = SQLiteItemStore()
    logger.info(f"Item store initialized: {type(item_store).__name__}")
    return item_store


def get_item_store() -> ItemRepository:
    """Get the item store instance."""
    if item_store is None:
        raise RuntimeError("Item store not initialized. Call init_item_store first.")
    return item_store
