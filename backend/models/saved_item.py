"""Saved link models for decision grouping"""
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from utils.timestamps import parse_timestamp, format_timestamp


# Fields the decision engine is allowed to patch through the item repository
PATCHABLE_FIELDS = {
    "decision_group_id",
    "chosen",
    "shortlisted",
    "dismissed",
    "open_count",
    "last_opened_at",
}


@dataclass
class Collection:
    """A user-owned collection of saved links."""
    id: str
    owner_id: str
    title: str = ""
    created_at: Optional[datetime] = None


@dataclass
class SavedItem:
    """One saved link inside one collection."""
    id: str
    collection_id: str
    url: str = ""
    domain: str = ""  # Stored domain; may be empty, see derive_domain()
    title: str = ""
    added_at: Optional[datetime] = None
    last_opened_at: Optional[datetime] = None
    open_count: int = 0
    decision_group_id: Optional[str] = None
    shortlisted: bool = False
    dismissed: bool = False
    chosen: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["added_at"] = format_timestamp(self.added_at)
        data["last_opened_at"] = format_timestamp(self.last_opened_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavedItem":
        return cls(
            id=data["id"],
            collection_id=data["collection_id"],
            url=data.get("url") or "",
            domain=data.get("domain") or "",
            title=data.get("title") or "",
            added_at=parse_timestamp(data.get("added_at")),
            last_opened_at=parse_timestamp(data.get("last_opened_at")),
            open_count=int(data.get("open_count") or 0),
            decision_group_id=data.get("decision_group_id"),
            shortlisted=bool(data.get("shortlisted")),
            dismissed=bool(data.get("dismissed")),
            chosen=bool(data.get("chosen")),
        )

    def flags(self) -> Dict[str, Any]:
        """Snapshot returned by the flag endpoints."""
        return {
            "id": self.id,
            "shortlisted": self.shortlisted,
            "dismissed": self.dismissed,
            "chosen": self.chosen,
        }


@dataclass
class Candidate:
    """A recently active item annotated with its comparison domain."""
    item: SavedItem
    domain: str

    @property
    def id(self) -> str:
        return self.item.id


@dataclass
class DecisionCluster:
    """A cluster of two or more candidates assigned a shared group id."""
    id: str
    domain: str
    members: List[Candidate] = field(default_factory=list)

    @property
    def item_ids(self) -> List[str]:
        return [m.id for m in self.members]
