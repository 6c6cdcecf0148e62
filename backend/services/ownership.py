"""Ownership checks shared by the decision endpoints.

Not-found and not-owned are deliberately the same outcome (None / False) so
callers can't probe for other users' collections or links.
"""
from typing import Optional

from models.saved_item import SavedItem
from storage.item_store import ItemRepository


async def owns_collection(repo: ItemRepository, collection_id: str, user_id: str) -> bool:
    owner = await repo.collection_owner(collection_id)
    return owner is not None and owner == user_id


async def get_owned_item(repo: ItemRepository, item_id: str, user_id: str) -> Optional[SavedItem]:
    """The item if it exists and its collection belongs to user_id."""
    item = await repo.get_item(item_id)
    if item is None:
        return None
    if not await owns_collection(repo, item.collection_id, user_id):
        return None
    return item
