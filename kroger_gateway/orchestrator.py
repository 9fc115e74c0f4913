"""Turn a grocery list into Kroger cart contents, recording progress as it goes."""

import logging
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field

from . import token_store
from .kroger_client import KROGER_CART_URL, KrogerClient
from .matcher import find_best_match
from .models import CartSession, CartSessionStatus

logger = logging.getLogger(__name__)

NO_MATCH_ERROR = "No matching product found"


@dataclass
class OrderResult:
    """Outcome of one order attempt."""
    session_id: int
    cart_url: str | None
    cart_id: str | None = None
    items_added: list[dict] = field(default_factory=list)
    items_failed: list[dict] = field(default_factory=list)
    estimated_total: float | None = None


class OrderOrchestrator:
    """Drives the matcher and Kroger client over a grocery list.

    Items of one order are worked off a queue one at a time, and cart writes
    for the same user are serialized across orders, because Kroger keeps a
    single active cart per user.
    """

    def __init__(self, client: KrogerClient):
        self.client = client
        # user id -> [lock, number of orders holding or waiting on it]
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _user_lock(self, user_id: str):
        with self._locks_guard:
            entry = self._locks.setdefault(user_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[user_id]

    def place_order(
        self,
        user_id: str,
        items: list[str],
        store_id: str,
        meal_plan_id: str | None = None,
    ) -> OrderResult:
        """Match and add every item to the user's cart.

        The session ends completed even when some items failed; items_failed
        carries the partial failure. Anything escaping the item loop marks the
        session failed and is re-raised.
        """
        cart_session = token_store.create_cart_session(user_id, items, meal_plan_id)
        session_id = cart_session.id
        logger.info(f"Order session {session_id}: {len(items)} items for user {user_id} at store {store_id}")

        try:
            with self._user_lock(user_id):
                token_store.update_cart_session(session_id, status=CartSessionStatus.PROCESSING)
                added, failed = self._add_items(session_id, user_id, store_id, items)
                cart = self.client.get_cart(user_id)

            token_store.update_cart_session(
                session_id,
                status=CartSessionStatus.COMPLETED,
                progress=100,
                cart_id=cart.cart_id,
                cart_url=KROGER_CART_URL,
            )

        except Exception as e:
            logger.error(f"Order session {session_id} failed: {type(e).__name__}: {e}")
            token_store.update_cart_session(
                session_id,
                status=CartSessionStatus.FAILED,
                error_message=str(e),
            )
            raise

        logger.info(
            f"Order session {session_id} completed: {len(added)} added, {len(failed)} failed"
        )
        return OrderResult(
            session_id=session_id,
            cart_url=KROGER_CART_URL,
            cart_id=cart.cart_id,
            items_added=added,
            items_failed=failed,
            estimated_total=estimate_total(added),
        )

    def _add_items(
        self, session_id: int, user_id: str, store_id: str, items: list[str]
    ) -> tuple[list[dict], list[dict]]:
        total = len(items)
        added: list[dict] = []
        failed: list[dict] = []
        queue = deque(items)

        while queue:
            item = queue.popleft()
            try:
                product = find_best_match(self.client, item, store_id)
                if product is None:
                    failed.append({"item": item, "error": NO_MATCH_ERROR})
                else:
                    self.client.add_to_cart(user_id, store_id, product.upc or product.product_id)
                    added.append({**product.model_dump(by_alias=True), "name": item})
            except Exception as e:
                logger.warning(f"Order session {session_id}: '{item}' failed: {e}")
                failed.append({"item": item, "error": getattr(e, "message", str(e))})

            token_store.update_cart_session(
                session_id,
                progress=len(added) * 100 // total,
                items_added=added,
                items_failed=failed,
            )

        return added, failed

    def get_session(self, session_id: int) -> CartSession | None:
        return token_store.get_cart_session(session_id)

    def list_sessions(self, user_id: str) -> list[CartSession]:
        return token_store.get_user_cart_sessions(user_id)


def estimate_total(items_added: list[dict]) -> float | None:
    """Sum of known shelf prices of the added products."""
    prices = [item["price"] for item in items_added if item.get("price") is not None]
    if not prices:
        return None
    return round(sum(prices), 2)
