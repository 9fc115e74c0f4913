from __future__ import annotations

import threading
import time
import unittest
from unittest import mock

import requests

from tests.support import SALMON, SPINACH, FakeKrogerHttp, reset_database

from kroger_gateway import token_store
from kroger_gateway.config import get_settings
from kroger_gateway.errors import CartError, ReauthRequired
from kroger_gateway.kroger_client import KrogerClient
from kroger_gateway.models import CartSessionStatus
from kroger_gateway.orchestrator import NO_MATCH_ERROR, OrderOrchestrator, estimate_total


class TestPlaceOrder(unittest.TestCase):
    def setUp(self) -> None:
        reset_database()
        self.http = FakeKrogerHttp(catalog=[SALMON, SPINACH])
        self.client = KrogerClient(settings=get_settings(), http=self.http)
        self.orchestrator = OrderOrchestrator(self.client)
        token_store.save_user_token("user-1", {
            "access_token": "user-token",
            "refresh_token": "user-refresh",
            "expires_in": 3600,
        })

    def test_partial_success_still_completes(self) -> None:
        self.http.catalog = [SALMON]

        result = self.orchestrator.place_order(
            "user-1", ["Wild-caught salmon (1 lb)", "XYZ-nonexistent-item"], "70100443"
        )

        self.assertEqual([item["upc"] for item in result.items_added], [SALMON["upc"]])
        self.assertEqual(result.items_added[0]["name"], "Wild-caught salmon (1 lb)")
        self.assertEqual(
            result.items_failed,
            [{"item": "XYZ-nonexistent-item", "error": NO_MATCH_ERROR}],
        )
        self.assertEqual(result.cart_url, "https://www.kroger.com/cart")
        self.assertEqual(result.estimated_total, 12.99)

        session = token_store.get_cart_session(result.session_id)
        self.assertEqual(session.status, CartSessionStatus.COMPLETED)
        self.assertEqual(session.progress, 100)
        self.assertEqual(session.cart_id, "cart-123")
        self.assertEqual(len(session.items_added), 1)
        self.assertEqual(session.items_failed, result.items_failed)
        self.assertEqual(self.http.count("PUT", "/cart/add"), 1)

    def test_cart_error_on_one_item_does_not_stop_the_rest(self) -> None:
        self.http.cart_failures[SALMON["upc"]] = (400, {"message": "Out of stock"})

        result = self.orchestrator.place_order(
            "user-1", ["salmon", "organic baby spinach (5 oz)"], "70100443"
        )

        self.assertEqual([item["upc"] for item in result.items_added], [SPINACH["upc"]])
        self.assertEqual(len(result.items_failed), 1)
        self.assertEqual(result.items_failed[0]["item"], "salmon")
        self.assertIn("Out of stock", result.items_failed[0]["error"])

    def test_items_are_added_in_list_order(self) -> None:
        self.orchestrator.place_order("user-1", ["spinach", "salmon"], "70100443")

        added = [body["items"][0]["upc"] for m, _, body in self.http.calls if m == "PUT"]
        self.assertEqual(added, [SPINACH["upc"], SALMON["upc"]])

    def test_progress_is_saved_after_each_item(self) -> None:
        with mock.patch.object(
            token_store, "update_cart_session", wraps=token_store.update_cart_session
        ) as update:
            self.orchestrator.place_order(
                "user-1", ["salmon", "nothing-here", "spinach"], "70100443"
            )

        progress = [c.kwargs["progress"] for c in update.call_args_list if "progress" in c.kwargs]
        self.assertEqual(progress, [33, 33, 66, 100])

    def test_failure_outside_the_item_loop_marks_session_failed(self) -> None:
        self.http.errors["/cart"] = requests.exceptions.ConnectionError("down")

        with self.assertRaises(CartError):
            self.orchestrator.place_order("user-1", ["salmon"], "70100443")

        session = token_store.get_user_cart_sessions("user-1")[0]
        self.assertEqual(session.status, CartSessionStatus.FAILED)
        self.assertIn("Failed to get cart", session.error_message)
        self.assertEqual(len(session.items_added), 1)

    def test_missing_token_fails_every_item_then_the_session(self) -> None:
        token_store.delete_user_token("user-1")

        with self.assertRaises(ReauthRequired):
            self.orchestrator.place_order("user-1", ["salmon"], "70100443")

        session = token_store.get_user_cart_sessions("user-1")[0]
        self.assertEqual(session.status, CartSessionStatus.FAILED)
        self.assertEqual(session.items_failed[0]["item"], "salmon")

    def test_sessions_are_listed_for_polling(self) -> None:
        result = self.orchestrator.place_order("user-1", ["salmon"], "70100443")

        self.assertEqual(self.orchestrator.get_session(result.session_id).progress, 100)
        self.assertEqual(
            [s.id for s in self.orchestrator.list_sessions("user-1")], [result.session_id]
        )


class TestUserLock(unittest.TestCase):
    def setUp(self) -> None:
        reset_database()
        self.http = FakeKrogerHttp(catalog=[SALMON])
        self.orchestrator = OrderOrchestrator(KrogerClient(settings=get_settings(), http=self.http))
        token_store.save_user_token("user-1", {
            "access_token": "user-token",
            "refresh_token": "user-refresh",
            "expires_in": 3600,
        })

    def test_lock_is_released_after_the_order(self) -> None:
        self.orchestrator.place_order("user-1", ["salmon"], "70100443")
        self.assertEqual(self.orchestrator._locks, {})

    def test_lock_is_released_after_a_failed_order(self) -> None:
        self.http.errors["/cart"] = requests.exceptions.ConnectionError("down")
        with self.assertRaises(CartError):
            self.orchestrator.place_order("user-1", ["salmon"], "70100443")
        self.assertEqual(self.orchestrator._locks, {})

    def test_waiting_order_stays_pending(self) -> None:
        results = []
        worker = threading.Thread(
            target=lambda: results.append(
                self.orchestrator.place_order("user-1", ["salmon"], "70100443")
            )
        )

        with self.orchestrator._user_lock("user-1"):
            worker.start()
            deadline = time.monotonic() + 5
            while self.orchestrator._locks["user-1"][1] < 2:
                self.assertLess(time.monotonic(), deadline)
                time.sleep(0.01)

            session = token_store.get_user_cart_sessions("user-1")[0]
            self.assertEqual(session.status, CartSessionStatus.PENDING)
            self.assertEqual(session.progress, 0)

        worker.join(timeout=5)
        self.assertEqual(results[0].items_failed, [])
        self.assertEqual(
            token_store.get_cart_session(results[0].session_id).status, CartSessionStatus.COMPLETED
        )
        self.assertEqual(self.orchestrator._locks, {})


class TestEstimateTotal(unittest.TestCase):
    def test_sums_known_prices(self) -> None:
        self.assertEqual(estimate_total([{"price": 1.10}, {"price": None}, {"price": 2.25}]), 3.35)

    def test_none_without_prices(self) -> None:
        self.assertIsNone(estimate_total([{"price": None}]))
        self.assertIsNone(estimate_total([]))


if __name__ == "__main__":
    unittest.main()
