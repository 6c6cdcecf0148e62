"""Engagement Tracker - record link opens.

Open counts feed the grouper's group scoring and last_opened_at keeps an
item inside the candidate window. Nothing is reclustered here.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from services.ownership import get_owned_item
from storage.item_store import ItemRepository, StoreError
from utils.timestamps import format_timestamp, utc_now

logger = logging.getLogger(__name__)


async def record_link_open(
    repo: ItemRepository,
    user_id: str,
    link_id: str,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """Increment open_count and stamp last_opened_at on an owned link."""
    item = await get_owned_item(repo, link_id, user_id)
    if item is None:
        return None

    now = now or utc_now()
    updated = await repo.update_item(link_id, {
        "open_count": (item.open_count or 0) + 1,
        "last_opened_at": now,
    })
    if updated is None:
        raise StoreError(f"Failed to record open on {link_id}")

    logger.debug(f"Link {link_id} opened ({updated.open_count} total)")
    return {
        "openCount": updated.open_count,
        "lastOpenedAt": format_timestamp(updated.last_opened_at),
    }
