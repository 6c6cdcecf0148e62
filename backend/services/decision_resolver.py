"""
Resolution Engine - a decision group with exactly one remaining member has a winner.

Two entry points share that rule:
- normalize_chosen_flags(): bulk sweep over every grouped item of a collection,
  run right after group ids are persisted.
- resolve_group(): targeted query for one group that looks at dismissed and
  shortlisted state and may mark the sole active member chosen.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from models.saved_item import SavedItem
from services.ownership import owns_collection
from storage.item_store import ItemRepository, StoreError

logger = logging.getLogger(__name__)


class ResolutionStatus(str, Enum):
    """Outcome of a targeted resolve"""
    CHOSEN = "chosen"                        # Sole active member, marked chosen
    CANDIDATE_CHOSEN = "candidate_chosen"    # One shortlisted among several active (advisory)
    NO_RESOLUTION = "no_resolution"


@dataclass
class Resolution:
    status: ResolutionStatus
    link_id: Optional[str] = None

    def to_dict(self) -> Dict:
        return {"status": self.status.value, "linkId": self.link_id}


def group_by_decision_id(items: List[SavedItem]) -> Dict[str, List[SavedItem]]:
    groups: Dict[str, List[SavedItem]] = {}
    for item in items:
        if not item.decision_group_id:
            continue
        groups.setdefault(item.decision_group_id, []).append(item)
    return groups


async def normalize_chosen_flags(repo: ItemRepository, collection_id: str) -> int:
    """Single-member groups get chosen=True, larger groups chosen=False.

    Covers every grouped item of the collection, not only current candidates.
    Returns the number of item writes issued.
    """
    grouped = await repo.list_grouped_items(collection_id)
    writes = 0
    for group_id, members in group_by_decision_id(grouped).items():
        if len(members) == 1:
            if await repo.update_item(members[0].id, {"chosen": True}) is not None:
                writes += 1
        else:
            writes += await repo.bulk_update_items([m.id for m in members], {"chosen": False})
    return writes


def evaluate_group(members: List[SavedItem]) -> Resolution:
    """Pure resolution rule over a group's members."""
    active = [m for m in members if not m.dismissed]
    shortlisted = [m for m in active if m.shortlisted]

    if len(active) == 1:
        return Resolution(ResolutionStatus.CHOSEN, active[0].id)
    if len(shortlisted) == 1 and len(active) >= 2:
        return Resolution(ResolutionStatus.CANDIDATE_CHOSEN, shortlisted[0].id)
    return Resolution(ResolutionStatus.NO_RESOLUTION, None)


async def resolve_group(repo: ItemRepository, collection_id: str, decision_group_id: str) -> Resolution:
    """Resolve one group, marking the sole active member chosen."""
    members = await repo.list_group_items(collection_id, decision_group_id)
    resolution = evaluate_group(members)

    if resolution.status == ResolutionStatus.CHOSEN:
        updated = await repo.update_item(resolution.link_id, {"chosen": True})
        if updated is None:
            raise StoreError(f"Failed to set chosen on {resolution.link_id}")
        logger.info(f"Decision group {decision_group_id} resolved: {resolution.link_id} chosen")

    return resolution


async def resolve_for_user(
    repo: ItemRepository,
    user_id: str,
    collection_id: str,
    decision_group_id: str,
) -> Optional[Resolution]:
    """Resolve if user_id owns the collection, else None."""
    if not await owns_collection(repo, collection_id, user_id):
        return None
    return await resolve_group(repo, collection_id, decision_group_id)
