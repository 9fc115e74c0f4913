"""Persistence for Kroger tokens, cart sessions, selected stores and the product cache.

Every read and write of gateway state goes through this module so that
nothing is kept in process memory between requests.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from .database import get_db_session
from .models import (
    CartSession,
    CartSessionStatus,
    ProductCacheEntry,
    UserStore,
    UserToken,
    normalize_search_term,
)

logger = logging.getLogger(__name__)

# Columns the orchestrator may change on a cart session
CART_SESSION_FIELDS = {
    "status",
    "progress",
    "items_added",
    "items_failed",
    "cart_id",
    "cart_url",
    "error_message",
}


def _upsert(write, what: str):
    """Run a query-then-insert write, retrying once as an update.

    Two writers for the same key can both miss the query; the loser's insert
    hits the unique constraint, and on retry its query finds the winner's row.
    """
    try:
        return write()
    except IntegrityError:
        logger.info(f"Concurrent insert of {what}, retrying as update")
        return write()


# =============================================================================
# Token Management
# =============================================================================


def save_user_token(user_id: str, token_data: dict) -> UserToken:
    """Insert or update the user's token row from a token-endpoint response.

    Args:
        user_id: Application user id the token belongs to.
        token_data: Dict with access_token, expires_in and optionally
            refresh_token, scope and token_type.

    Returns:
        The stored row.
    """
    expires_at = datetime.utcnow() + timedelta(seconds=int(token_data.get("expires_in") or 0))

    def write() -> UserToken:
        with get_db_session() as db:
            row = db.query(UserToken).filter(UserToken.user_id == user_id).first()
            if not row:
                row = UserToken(user_id=user_id)
                db.add(row)

            row.access_token = token_data["access_token"]
            row.refresh_token = token_data.get("refresh_token")
            row.expires_at = expires_at
            row.scope = token_data.get("scope")
            row.token_type = token_data.get("token_type") or "Bearer"
            db.flush()
            return row

    row = _upsert(write, f"token for user {user_id}")
    logger.info(f"Saved Kroger token for user {user_id} (expires {expires_at.isoformat()})")
    return row


def get_user_token(user_id: str) -> UserToken | None:
    with get_db_session() as db:
        return db.query(UserToken).filter(UserToken.user_id == user_id).first()


def delete_user_token(user_id: str) -> bool:
    """Remove the user's token row. Returns True if a row was deleted."""
    with get_db_session() as db:
        deleted = db.query(UserToken).filter(UserToken.user_id == user_id).delete()

    if deleted:
        logger.info(f"Deleted Kroger token for user {user_id}")
    return bool(deleted)


# =============================================================================
# Cart Sessions
# =============================================================================


def create_cart_session(
    user_id: str, grocery_items: list, meal_plan_id: str | None = None
) -> CartSession:
    """Start a new order attempt in the pending state."""
    with get_db_session() as db:
        cart_session = CartSession(
            user_id=user_id,
            meal_plan_id=meal_plan_id,
            grocery_items=list(grocery_items),
            status=CartSessionStatus.PENDING,
            progress=0,
            items_added=[],
            items_failed=[],
        )
        db.add(cart_session)
        db.flush()
        return cart_session


def update_cart_session(session_id: int, **updates) -> CartSession:
    """Apply updates to a cart session by id.

    Raises:
        LookupError: If the session does not exist.
        ValueError: On unknown fields, or if the session is already completed.
    """
    unknown = set(updates) - CART_SESSION_FIELDS
    if unknown:
        raise ValueError(f"Cannot update cart session fields: {sorted(unknown)}")

    with get_db_session() as db:
        cart_session = db.get(CartSession, session_id)
        if cart_session is None:
            raise LookupError(f"Cart session {session_id} not found")
        if cart_session.status == CartSessionStatus.COMPLETED:
            raise ValueError(f"Cart session {session_id} is already completed")

        for field, value in updates.items():
            if field in ("items_added", "items_failed"):
                value = list(value)
            setattr(cart_session, field, value)
        db.flush()
        return cart_session


def get_cart_session(session_id: int) -> CartSession | None:
    with get_db_session() as db:
        return db.get(CartSession, session_id)


def get_user_cart_sessions(user_id: str, limit: int = 20) -> list[CartSession]:
    """Most recent order attempts for a user, newest first."""
    with get_db_session() as db:
        return (
            db.query(CartSession)
            .filter(CartSession.user_id == user_id)
            .order_by(CartSession.created_at.desc(), CartSession.id.desc())
            .limit(limit)
            .all()
        )


# =============================================================================
# Store Selection
# =============================================================================


def save_user_store(
    user_id: str, store_id: str, store_name: str = "", store_address: str = ""
) -> UserStore:
    def write() -> UserStore:
        with get_db_session() as db:
            row = db.query(UserStore).filter(UserStore.user_id == user_id).first()
            if not row:
                row = UserStore(user_id=user_id)
                db.add(row)

            row.store_id = store_id
            row.store_name = store_name or ""
            row.store_address = store_address or ""
            db.flush()
            return row

    return _upsert(write, f"store for user {user_id}")


def get_user_store(user_id: str) -> UserStore | None:
    with get_db_session() as db:
        return db.query(UserStore).filter(UserStore.user_id == user_id).first()


# =============================================================================
# Product Cache
# =============================================================================


def get_cached_products(search_term: str, store_id: str) -> list | None:
    """Return cached raw product data, or None on a miss or expired row."""
    term = normalize_search_term(search_term)

    with get_db_session() as db:
        row = (
            db.query(ProductCacheEntry)
            .filter(
                ProductCacheEntry.search_term == term,
                ProductCacheEntry.store_id == (store_id or ""),
                ProductCacheEntry.expires_at > datetime.utcnow(),
            )
            .first()
        )
        if row is None:
            return None
        return row.product_data


def cache_products(
    search_term: str, store_id: str, product_data: list, expires_in_hours: int = 24
) -> ProductCacheEntry:
    """Upsert the search results for (term, store) with a fresh expiry."""
    term = normalize_search_term(search_term)
    expires_at = datetime.utcnow() + timedelta(hours=expires_in_hours)

    with get_db_session() as db:
        row = (
            db.query(ProductCacheEntry)
            .filter(
                ProductCacheEntry.search_term == term,
                ProductCacheEntry.store_id == (store_id or ""),
            )
            .first()
        )
        if not row:
            row = ProductCacheEntry(search_term=term, store_id=store_id or "")
            db.add(row)

        row.product_data = list(product_data)
        row.expires_at = expires_at
        db.flush()
        return row
