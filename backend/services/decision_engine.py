"""
Decision Engine - recompute decision groups for a collection.

Pipeline: read recent items -> select candidates -> cluster by domain ->
persist group ids -> normalize chosen flags.

There is no lock or transaction around the pipeline. Two concurrent recomputes
on one collection can interleave their writes; rerunning on a quiesced
collection converges to the same partition, so callers should retry rather
than rely on atomicity.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config import settings
from models.saved_item import SavedItem
from services.candidate_selector import select_candidates
from services.decision_resolver import group_by_decision_id, normalize_chosen_flags
from services.domain_grouper import cluster_candidates, persist_clusters
from services.ownership import owns_collection
from storage.item_store import ItemRepository
from utils.timestamps import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)
MIN_VISIBLE_ACTIVE = 2
MOMENTUM_OPEN_COUNT = 2


async def recompute_decision_groups(
    repo: ItemRepository,
    collection_id: str,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Recluster a collection and normalize chosen flags.

    Returns groupsCreated (clusters formed this pass) and linksUpdated
    (group id assignments written).
    """
    now = now or utc_now()
    items = await repo.list_recent_items(collection_id, settings.max_candidates)
    candidates = select_candidates(items, now=now)
    clusters = cluster_candidates(candidates)

    links_updated = await persist_clusters(repo, clusters)
    normalized = await normalize_chosen_flags(repo, collection_id)

    logger.info(
        f"Recomputed decision groups for {collection_id}: "
        f"{len(items)} items, {len(candidates)} candidates, {len(clusters)} groups, "
        f"{links_updated} links grouped, {normalized} chosen flags normalized"
    )
    return {"groupsCreated": len(clusters), "linksUpdated": links_updated}


async def recompute_for_user(
    repo: ItemRepository,
    user_id: str,
    collection_id: str,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, int]]:
    """Recompute if user_id owns the collection, else None."""
    if not await owns_collection(repo, collection_id, user_id):
        return None
    return await recompute_decision_groups(repo, collection_id, now=now)


def _last_activity(items: List[SavedItem]) -> Optional[datetime]:
    moments = [i.last_opened_at or i.added_at for i in items]
    return max((m for m in moments if m), default=None)


def summarize_groups(grouped: List[SavedItem]) -> List[Dict[str, Any]]:
    """Groups worth showing as comparisons, momentum first.

    A group is shown while it has 2..max_group_size active members. Momentum
    groups have an active member opened at least twice or shortlisted.
    """
    summaries = []
    for group_id, members in group_by_decision_id(grouped).items():
        active = [m for m in members if not m.dismissed]
        if not (MIN_VISIBLE_ACTIVE <= len(active) <= settings.max_group_size):
            continue
        momentum = any(
            (m.open_count or 0) >= MOMENTUM_OPEN_COUNT or m.shortlisted for m in active
        )
        last_active = _last_activity(members)
        summaries.append({
            "id": group_id,
            "activeCount": len(active),
            "momentum": momentum,
            "lastActiveAt": format_timestamp(last_active),
            "items": [_item_view(m) for m in members],
        })
    summaries.sort(
        key=lambda s: (s["momentum"], parse_timestamp(s["lastActiveAt"]) or _EPOCH),
        reverse=True,
    )
    return summaries


def _item_view(item: SavedItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "url": item.url,
        "title": item.title,
        "domain": item.domain,
        "addedAt": format_timestamp(item.added_at),
        "lastOpenedAt": format_timestamp(item.last_opened_at),
        "openCount": item.open_count,
        "shortlisted": item.shortlisted,
        "dismissed": item.dismissed,
        "chosen": item.chosen,
    }


async def list_decision_groups(
    repo: ItemRepository,
    user_id: str,
    collection_id: str,
) -> Optional[List[Dict[str, Any]]]:
    """Visible decision groups of an owned collection, else None."""
    if not await owns_collection(repo, collection_id, user_id):
        return None
    grouped = await repo.list_grouped_items(collection_id)
    return summarize_groups(grouped)
