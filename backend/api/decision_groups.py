"""
Decision Groups API - recompute, resolve and archive comparison groups.

Endpoints:
- POST /decision-groups/recompute - Recluster a collection's recent links
- POST /decision-groups/resolve - Resolve one group (may mark a winner chosen)
- POST /decision-groups/archive-others - Dismiss every member but the winner
- GET /decision-groups/{collection_id} - Comparison groups worth showing
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException

from api.auth import require_user
from models.camel import CamelModel
from services.decision_engine import list_decision_groups, recompute_for_user
from services.decision_resolver import resolve_for_user
from services.link_flags import archive_group_others
from storage.item_store import get_item_store

router = APIRouter(prefix="/decision-groups", tags=["decision-groups"])


# =============================================================================
# Request/Response Models
# =============================================================================

class RecomputeRequest(CamelModel):
    collection_id: Optional[str] = None


class RecomputeResponse(CamelModel):
    groups_created: int
    links_updated: int


class ResolveRequest(CamelModel):
    collection_id: Optional[str] = None
    decision_group_id: Optional[str] = None


class ResolveResponse(CamelModel):
    status: str  # 'chosen' | 'candidate_chosen' | 'no_resolution'
    link_id: Optional[str] = None


class ArchiveOthersRequest(CamelModel):
    collection_id: Optional[str] = None
    decision_group_id: Optional[str] = None
    chosen_link_id: Optional[str] = None


class ArchiveOthersResponse(CamelModel):
    updated: int


def _require(fields: Dict[str, Optional[str]]) -> None:
    """400 naming the first missing field."""
    for name, value in fields.items():
        if not value:
            raise HTTPException(status_code=400, detail=f"{name} is required.")


# =============================================================================
# API Endpoints
# =============================================================================

@router.post("/recompute", response_model=RecomputeResponse)
async def recompute_groups(request: RecomputeRequest, user_id: str = Depends(require_user)):
    """Recluster recent links of a collection into decision groups."""
    _require({"collectionId": request.collection_id})

    result = await recompute_for_user(get_item_store(), user_id, request.collection_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return RecomputeResponse(**result)


@router.post("/resolve", response_model=ResolveResponse)
async def resolve_group(request: ResolveRequest, user_id: str = Depends(require_user)):
    """Resolve one decision group."""
    _require({
        "collectionId": request.collection_id,
        "decisionGroupId": request.decision_group_id,
    })

    resolution = await resolve_for_user(
        get_item_store(), user_id, request.collection_id, request.decision_group_id
    )
    if resolution is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return ResolveResponse(**resolution.to_dict())


@router.post("/archive-others", response_model=ArchiveOthersResponse)
async def archive_others(request: ArchiveOthersRequest, user_id: str = Depends(require_user)):
    """Dismiss every member of a group except the chosen link."""
    _require({
        "collectionId": request.collection_id,
        "decisionGroupId": request.decision_group_id,
        "chosenLinkId": request.chosen_link_id,
    })

    updated = await archive_group_others(
        get_item_store(),
        user_id,
        request.collection_id,
        request.decision_group_id,
        request.chosen_link_id,
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return ArchiveOthersResponse(updated=updated)


@router.get("/{collection_id}")
async def get_decision_groups(collection_id: str, user_id: str = Depends(require_user)) -> Dict[str, List[Any]]:
    """List comparison groups of a collection, momentum groups first."""
    groups = await list_decision_groups(get_item_store(), user_id, collection_id)
    if groups is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return {"groups": groups}
