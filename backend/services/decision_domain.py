"""
Shared helpers for decision grouping: comparison domains, the recency window
and title token overlap.
"""
import re
from datetime import datetime, timedelta
from typing import List, Optional
from urllib.parse import urlsplit

from config import settings

STOP_WORDS = frozenset({
    "the", "and", "or", "for", "with", "from", "this", "that", "your", "you",
    "our", "are", "was", "were", "to", "of", "in", "on", "at", "a", "an",
    "by", "is", "it", "as", "be", "we", "us",
})

_TRAILING_PUNCTUATION = ")].,}>\"'"
_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_HOSTNAME_RE = re.compile(r"^[\w.-]+$")


def recency_window() -> timedelta:
    """Lookback for candidates, also the max spread inside one cluster."""
    return timedelta(days=settings.recency_window_days)


def within_window(moment: Optional[datetime], now: datetime, window: Optional[timedelta] = None) -> bool:
    """True if moment is set and no older than window relative to now."""
    if moment is None:
        return False
    window = window if window is not None else recency_window()
    return now - moment <= window


def normalize_url(raw: str) -> str:
    """Trim stray trailing punctuation and default the scheme to https."""
    value = (raw or "").strip()
    if not value:
        return value
    value = value.rstrip(_TRAILING_PUNCTUATION)
    if not _SCHEME_RE.match(value):
        value = f"https://{value}"
    return value


def get_domain(url: str) -> str:
    """Hostname of a URL without a leading www., or "" if it can't be parsed."""
    value = normalize_url(url)
    if not value:
        return ""
    try:
        hostname = urlsplit(value).hostname or ""
    except ValueError:
        return ""
    if not hostname or not _HOSTNAME_RE.match(hostname):
        return ""
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname


def normalize_title(title: str) -> List[str]:
    """Lowercase alphanumeric title tokens with stop words removed."""
    cleaned = re.sub(r"[^a-z0-9\s]", " ", (title or "").lower())
    return [word for word in cleaned.split() if word not in STOP_WORDS]


def overlap_ratio(a_tokens: List[str], b_tokens: List[str]) -> float:
    """Share of b's tokens found in a, over the longer token list."""
    if not a_tokens or not b_tokens:
        return 0.0
    seen = set(a_tokens)
    overlap = sum(1 for token in b_tokens if token in seen)
    return overlap / max(len(a_tokens), len(b_tokens))
