"""
Flag Mutator and Archive-Others - manual overrides of an item's decision state.

Invariant enforced here (the store doesn't): a dismissed item is never
shortlisted. Dismissal is terminal; neither operation un-dismisses an item.
Neither operation reclusters or resolves; callers compose that themselves.
"""
import logging
from typing import Any, Dict, Optional

from services.ownership import get_owned_item, owns_collection
from storage.item_store import ItemRepository, StoreError

logger = logging.getLogger(__name__)


def build_flag_patch(
    current_dismissed: bool,
    shortlisted: Optional[bool] = None,
    dismissed: Optional[bool] = None,
) -> Dict[str, Any]:
    """Translate requested flags into a store patch."""
    patch: Dict[str, Any] = {}
    if shortlisted is not None:
        patch["shortlisted"] = shortlisted
    if dismissed is not None:
        patch["dismissed"] = dismissed or current_dismissed

    if patch and patch.get("dismissed", current_dismissed):
        patch["shortlisted"] = False
    return patch


async def set_link_flags(
    repo: ItemRepository,
    user_id: str,
    link_id: str,
    shortlisted: Optional[bool] = None,
    dismissed: Optional[bool] = None,
) -> Optional[Dict[str, Any]]:
    """Update shortlisted/dismissed on an owned link.

    Returns the {id, shortlisted, dismissed, chosen} snapshot, or None if the
    link doesn't exist or isn't the caller's.
    """
    item = await get_owned_item(repo, link_id, user_id)
    if item is None:
        return None

    if dismissed is False and item.dismissed:
        logger.warning(f"Ignoring un-dismiss of {link_id}: dismissal is final")

    patch = build_flag_patch(item.dismissed, shortlisted=shortlisted, dismissed=dismissed)
    if not patch:
        return item.flags()

    updated = await repo.update_item(link_id, patch)
    if updated is None:
        raise StoreError(f"Failed to update flags on {link_id}")
    return updated.flags()


async def archive_group_others(
    repo: ItemRepository,
    user_id: str,
    collection_id: str,
    decision_group_id: str,
    chosen_link_id: str,
) -> Optional[int]:
    """Dismiss every member of a group except chosen_link_id.

    The chosen link's own flags are left alone. Returns the number of items
    updated, or None if the collection isn't the caller's.
    """
    if not await owns_collection(repo, collection_id, user_id):
        return None

    members = await repo.list_group_items(collection_id, decision_group_id)
    others = [m.id for m in members if m.id != chosen_link_id]
    if not others:
        return 0

    updated = await repo.bulk_update_items(others, {"dismissed": True, "shortlisted": False})
    logger.info(
        f"Archived {updated} of {len(members)} links in group {decision_group_id} "
        f"keeping {chosen_link_id}"
    )
    return updated
