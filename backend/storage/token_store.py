"""Bearer token storage

Tokens are never stored in plain text: rows hold sha256(token + pepper).
Issuing tokens to users happens elsewhere; register_token() only seeds rows.
"""
import hashlib
import logging
import sqlite3
from typing import Dict, Optional

from config import settings
from storage.item_store import StoreError
from utils.timestamps import format_timestamp, utc_now

logger = logging.getLogger(__name__)


def hash_token(raw_token: str, pepper: Optional[str] = None) -> str:
    """Hash a raw bearer token with the configured pepper."""
    pepper = settings.token_pepper if pepper is None else pepper
    return hashlib.sha256(f"{raw_token}{pepper}".encode("utf-8")).hexdigest()


class TokenStore:
    """Look up the user behind a bearer token."""

    def __init__(self, db=None, use_sqlite: bool = True):
        self._use_sqlite = use_sqlite
        self._db = db
        self._tokens: Dict[str, Dict] = {}

    def _get_db(self):
        if self._db is None:
            from storage.database import get_db
            self._db = get_db()
        return self._db.get_connection()

    async def register_token(self, user_id: str, raw_token: str, name: str = "") -> str:
        """Store a token hash for a user, returns the hash"""
        token_hash = hash_token(raw_token)
        now = format_timestamp(utc_now())
        if self._use_sqlite:
            conn = self._get_db()
            conn.execute(
                """INSERT OR REPLACE INTO api_tokens (token_hash, user_id, name, created_at, revoked_at)
                   VALUES (?, ?, ?, ?, NULL)""",
                (token_hash, user_id, name, now)
            )
            conn.commit()
        else:
            self._tokens[token_hash] = {
                "user_id": user_id, "name": name, "created_at": now, "revoked_at": None
            }
        return token_hash

    async def revoke_token(self, raw_token: str) -> bool:
        """Mark a token revoked"""
        token_hash = hash_token(raw_token)
        now = format_timestamp(utc_now())
        if self._use_sqlite:
            conn = self._get_db()
            cursor = conn.execute(
                "UPDATE api_tokens SET revoked_at = ? WHERE token_hash = ? AND revoked_at IS NULL",
                (now, token_hash)
            )
            conn.commit()
            return cursor.rowcount > 0
        row = self._tokens.get(token_hash)
        if row and not row["revoked_at"]:
            row["revoked_at"] = now
            return True
        return False

    async def user_for_token(self, raw_token: str) -> Optional[str]:
        """User id for a live (non-revoked) token, or None"""
        if not raw_token:
            return None
        token_hash = hash_token(raw_token)
        if self._use_sqlite:
            try:
                row = self._get_db().execute(
                    "SELECT user_id FROM api_tokens WHERE token_hash = ? AND revoked_at IS NULL",
                    (token_hash,)
                ).fetchone()
            except sqlite3.Error as e:
                logger.error(f"Token lookup failed: {e}")
                raise StoreError(str(e)) from e
            return row["user_id"] if row else None
        row = self._tokens.get(token_hash)
        if row and not row["revoked_at"]:
            return row["user_id"]
        return None


token_store: Optional[TokenStore] = None


def init_token_store(store: Optional[TokenStore] = None) -> TokenStore:
    """Initialize the token store, matching the item store backend."""
    global token_store
    token_store = store or TokenStore(use_sqlite=settings.item_store != "memory")
    return token_store


def get_token_store() -> TokenStore:
    """Get the token store instance."""
    if token_store is None:
        raise RuntimeError("Token store not initialized. Call init_token_store first.")
    return token_store
