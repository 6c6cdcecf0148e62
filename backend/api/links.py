"""Links API endpoints - per-link decision flags and open tracking"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from api.auth import require_user
from models.camel import CamelModel
from services.engagement_tracker import record_link_open
from services.link_flags import set_link_flags
from storage.item_store import get_item_store

router = APIRouter()


class LinkFlagsRequest(CamelModel):
    link_id: Optional[str] = None
    shortlisted: Optional[bool] = None
    dismissed: Optional[bool] = None


class LinkFlagsResponse(CamelModel):
    id: str
    shortlisted: bool
    dismissed: bool
    chosen: bool


class LinkOpenRequest(CamelModel):
    link_id: Optional[str] = None


class LinkOpenResponse(CamelModel):
    open_count: int
    last_opened_at: Optional[str] = None


@router.post("/flags", response_model=LinkFlagsResponse)
async def update_link_flags(request: LinkFlagsRequest, user_id: str = Depends(require_user)):
    """Set shortlisted and/or dismissed on a link"""
    if not request.link_id:
        raise HTTPException(status_code=400, detail="linkId is required.")

    result = await set_link_flags(
        get_item_store(),
        user_id,
        request.link_id,
        shortlisted=request.shortlisted,
        dismissed=request.dismissed,
    )
    if result is None:
        raise HTTPException(status_code=404, detail="Link not found")
    return LinkFlagsResponse(**result)


@router.post("/open", response_model=LinkOpenResponse)
async def record_open(request: LinkOpenRequest, user_id: str = Depends(require_user)):
    """Record that a link was opened"""
    if not request.link_id:
        raise HTTPException(status_code=400, detail="linkId is required.")

    result = await record_link_open(get_item_store(), user_id, request.link_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Link not found")
    return LinkOpenResponse(**result)
