"""Bearer token authentication dependency"""
import logging
from typing import Optional

from fastapi import Header, HTTPException

from storage.token_store import get_token_store

logger = logging.getLogger(__name__)


def parse_bearer(header: Optional[str]) -> Optional[str]:
    """Token from an 'Authorization: Bearer <token>' header, else None."""
    if not header:
        return None
    parts = header.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


async def require_user(authorization: Optional[str] = Header(default=None)) -> str:
    """Resolve the calling user id, 401 before any collection access otherwise."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    token = parse_bearer(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user_id = await get_token_store().user_for_token(token)
    if user_id is None:
        logger.warning("Rejected request with unknown or revoked token")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id
