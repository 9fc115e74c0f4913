"""Shared test setup: environment, a throwaway SQLite database and a fake Kroger."""

from __future__ import annotations

import json
import os
import tempfile

import requests

_TMP = tempfile.mkdtemp(prefix="kroger-gateway-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'gateway.db')}"
os.environ["KROGER_CLIENT_ID"] = "test-client"
os.environ["KROGER_CLIENT_SECRET"] = "test-secret"
os.environ["KROGER_REDIRECT_URI"] = "http://localhost:3001/auth/callback"
os.environ["FRONTEND_URL"] = "http://localhost:3000"
os.environ["ANTHROPIC_API_KEY"] = ""

from kroger_gateway.config import get_settings  # noqa: E402

get_settings.cache_clear()

from kroger_gateway.database import engine  # noqa: E402
from kroger_gateway.models import Base  # noqa: E402

SALMON = {
    "productId": "0001111041000",
    "upc": "0001111041000",
    "description": "Wild Caught Atlantic Salmon Fillet",
    "brand": "Kroger",
    "items": [{"size": "1 lb", "price": {"regular": 12.99, "promo": 0}}],
}

SPINACH = {
    "productId": "0001111044000",
    "upc": "0001111044000",
    "description": "Simple Truth Organic Baby Spinach",
    "brand": "Simple Truth",
    "items": [{"size": "5 oz", "price": {"regular": 3.99}}],
}


def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def make_response(status_code: int = 200, body=None, text: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.encoding = "utf-8"
    response.url = "https://api.kroger.com/v1/test"
    if body is not None:
        response._content = json.dumps(body).encode("utf-8")
    else:
        response._content = text.encode("utf-8")
    return response


class FakeKrogerHttp:
    """Stands in for requests.Session against the Kroger REST API.

    Product searches return every catalog entry whose description contains
    the search term.
    """

    def __init__(self, catalog: list[dict] | None = None):
        self.catalog = catalog or []
        self.calls: list[tuple[str, str, dict]] = []
        self.failed_grants: set[str] = set()
        self.errors: dict[str, Exception] = {}
        self.cart_failures: dict[str, tuple[int, dict]] = {}
        self.grant_responses: dict[str, dict] = {
            "client_credentials": {"access_token": "app-token", "expires_in": 1800},
            "authorization_code": {
                "access_token": "user-token",
                "refresh_token": "user-refresh",
                "expires_in": 1800,
                "scope": "cart.basic:write",
                "token_type": "bearer",
            },
            "refresh_token": {
                "access_token": "refreshed-token",
                "refresh_token": "refreshed-refresh",
                "expires_in": 1800,
                "token_type": "bearer",
            },
        }

    def count(self, method: str, suffix: str) -> int:
        return sum(1 for m, url, _ in self.calls if m == method and url.endswith(suffix))

    def _raise_if_configured(self, url: str) -> None:
        for suffix, error in self.errors.items():
            if url.endswith(suffix):
                raise error

    def post(self, url, data=None, auth=None, timeout=None, **kwargs):
        self.calls.append(("POST", url, dict(data or {})))
        self._raise_if_configured(url)
        grant = (data or {}).get("grant_type")
        if grant in self.failed_grants:
            return make_response(
                400, {"error": "invalid_grant", "error_description": "The grant is invalid"}
            )
        return make_response(200, self.grant_responses[grant])

    def get(self, url, params=None, headers=None, timeout=None, **kwargs):
        self.calls.append(("GET", url, dict(params or {})))
        self._raise_if_configured(url)
        if url.endswith("/products"):
            term = params["filter.term"].lower()
            matches = [p for p in self.catalog if term in p["description"].lower()]
            return make_response(200, {"data": matches, "meta": {}})
        if url.endswith("/locations"):
            return make_response(200, {"data": [{
                "locationId": "70100443",
                "name": "Kroger Marketplace",
                "chain": "KROGER",
                "address": {
                    "addressLine1": "456 Oak Ave",
                    "city": "Austin",
                    "state": "TX",
                    "zipCode": "78702",
                },
            }]})
        if url.endswith("/cart"):
            return make_response(200, {"data": {"id": "cart-123", "items": []}})
        return make_response(404, {"message": "Not found"})

    def put(self, url, json=None, headers=None, timeout=None, **kwargs):
        self.calls.append(("PUT", url, dict(json or {})))
        self._raise_if_configured(url)
        upc = json["items"][0]["upc"]
        if upc in self.cart_failures:
            status, body = self.cart_failures[upc]
            return make_response(status, body)
        return make_response(204)
