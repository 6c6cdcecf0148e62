"""
Domain Grouper - cluster recent candidates into decision groups.

Alternatives are almost always compared within one merchant/site, so
candidates are bucketed by domain and then clustered greedily by save time.
Group identity is kept stable across runs: a cluster keeps the id most of its
members already carry, so reruns never shuffle ids between clusters.
"""
import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set

from config import settings
from models.saved_item import Candidate, DecisionCluster
from services.decision_domain import normalize_title, overlap_ratio, recency_window
from storage.item_store import ItemRepository

logger = logging.getLogger(__name__)


@dataclass
class ExistingGroup:
    """Score and recency of a group id already present among candidates."""
    id: str
    domain: str
    score: int = 0
    last_active: float = 0.0


def _ts(moment: Optional[datetime]) -> float:
    return moment.timestamp() if moment else 0.0


def index_existing_groups(candidates: List[Candidate]) -> Dict[str, ExistingGroup]:
    """Accumulate score (opens + 2 per shortlist) and last activity per group id."""
    groups: Dict[str, ExistingGroup] = {}
    for candidate in candidates:
        item = candidate.item
        if not item.decision_group_id or not candidate.domain:
            continue
        boost = (item.open_count or 0) + (2 if item.shortlisted else 0)
        last_active = max(_ts(item.last_opened_at), _ts(item.added_at))
        group = groups.get(item.decision_group_id)
        if group is None:
            groups[item.decision_group_id] = ExistingGroup(
                id=item.decision_group_id,
                domain=candidate.domain,
                score=boost,
                last_active=last_active,
            )
        else:
            group.score += boost
            group.last_active = max(group.last_active, last_active)
    return groups


def pick_reusable_group(existing: Dict[str, ExistingGroup], domain: str) -> Optional[str]:
    """Highest scoring existing group of the domain, most recently active on ties."""
    matching = [g for g in existing.values() if g.domain == domain]
    if not matching:
        return None
    matching.sort(key=lambda g: (g.score, g.last_active), reverse=True)
    return matching[0].id


def bucket_by_domain(candidates: List[Candidate]) -> Dict[str, List[Candidate]]:
    buckets: Dict[str, List[Candidate]] = {}
    for candidate in candidates:
        if not candidate.domain:
            continue
        buckets.setdefault(candidate.domain, []).append(candidate)
    return buckets


def _carried_group(
    members: List[Candidate],
    existing: Dict[str, ExistingGroup],
    claimed: Set[str],
) -> Optional[str]:
    """Unclaimed existing id carried by most members; score then recency break ties."""
    counts = Counter(m.item.decision_group_id for m in members if m.item.decision_group_id)
    ranked = [gid for gid in counts if gid not in claimed]
    if not ranked:
        return None

    def rank(gid: str):
        group = existing.get(gid)
        return (counts[gid], group.score if group else 0, group.last_active if group else 0.0)

    return max(ranked, key=rank)


def _greedy_clusters(
    ordered: List[Candidate],
    window_seconds: float,
    max_group_size: int,
    similarity_threshold: float,
) -> List[List[Candidate]]:
    consumed = [False] * len(ordered)
    formed: List[List[Candidate]] = []

    for seed_index, seed in enumerate(ordered):
        if consumed[seed_index]:
            continue
        consumed[seed_index] = True
        seed_tokens = normalize_title(seed.item.title)
        cluster = [seed]

        for index in range(seed_index + 1, len(ordered)):
            if len(cluster) >= max_group_size:
                break
            if consumed[index]:
                continue
            candidate = ordered[index]
            if abs(_ts(seed.item.added_at) - _ts(candidate.item.added_at)) > window_seconds:
                break
            similarity = overlap_ratio(seed_tokens, normalize_title(candidate.item.title))
            if similarity_threshold > 0 and similarity < similarity_threshold:
                logger.debug(
                    f"Skipping {candidate.id} for seed {seed.id}: title overlap {similarity:.2f}"
                )
                continue
            cluster.append(candidate)
            consumed[index] = True

        if len(cluster) >= 2:
            formed.append(cluster)
    return formed


def cluster_candidates(
    candidates: List[Candidate],
    window: Optional[timedelta] = None,
    max_group_size: Optional[int] = None,
    similarity_threshold: Optional[float] = None,
    new_group_id: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> List[DecisionCluster]:
    """Greedy windowed clustering per domain.

    Seeds are taken newest first; following items join while their save time
    is within the window of the seed's and the cluster is below max size.
    Only clusters of two or more members are returned.

    Each cluster keeps the existing id most of its members already carry. The
    first cluster of a domain falls back to the domain's strongest existing id
    when none of its members carry one; anything left gets a fresh id.
    """
    window = window if window is not None else recency_window()
    max_group_size = max_group_size or settings.max_group_size
    if similarity_threshold is None:
        similarity_threshold = settings.title_similarity_threshold

    existing = index_existing_groups(candidates)
    claimed: Set[str] = set()
    clusters: List[DecisionCluster] = []

    for domain, members in bucket_by_domain(candidates).items():
        ordered = sorted(members, key=lambda c: _ts(c.item.added_at), reverse=True)
        formed = _greedy_clusters(ordered, window.total_seconds(), max_group_size, similarity_threshold)

        ids: List[Optional[str]] = []
        for cluster in formed:
            group_id = _carried_group(cluster, existing, claimed)
            if group_id:
                claimed.add(group_id)
            ids.append(group_id)

        reusable = pick_reusable_group(existing, domain)
        if formed and ids[0] is None and reusable and reusable not in claimed:
            ids[0] = reusable
            claimed.add(reusable)

        for cluster, group_id in zip(formed, ids):
            clusters.append(DecisionCluster(
                id=group_id or new_group_id(),
                domain=domain,
                members=cluster,
            ))

    return clusters


async def persist_clusters(repo: ItemRepository, clusters: List[DecisionCluster]) -> int:
    """Write group ids for every clustered item, clearing chosen. Returns items written."""
    written = 0
    for cluster in clusters:
        for item_id in cluster.item_ids:
            updated = await repo.update_item(item_id, {"decision_group_id": cluster.id, "chosen": False})
            if updated is not None:
                written += 1
            else:
                logger.warning(f"Item {item_id} disappeared before group {cluster.id} was written")
    return written
