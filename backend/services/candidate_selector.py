"""Candidate selection - which saved items are recent enough to be compared"""
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from models.saved_item import Candidate, SavedItem
from services.decision_domain import get_domain, recency_window, within_window
from utils.timestamps import utc_now


def comparison_domain(item: SavedItem) -> str:
    """Stored domain if present, otherwise parsed from the URL ("" if unparseable)."""
    return item.domain or get_domain(item.url)


def select_candidates(
    items: Iterable[SavedItem],
    now: Optional[datetime] = None,
    window: Optional[timedelta] = None,
) -> List[Candidate]:
    """Keep items added or opened within the recency window, in input order.

    Items without a usable domain are kept (with domain "") so callers see
    the full candidate set; the grouper skips them.
    """
    now = now or utc_now()
    window = window if window is not None else recency_window()
    candidates = []
    for item in items:
        if within_window(item.added_at, now, window) or within_window(item.last_opened_at, now, window):
            candidates.append(Candidate(item=item, domain=comparison_domain(item)))
    return candidates
