"""Kroger API client for OAuth, store lookup, product search and cart management.

Handles OAuth2 authentication (client credentials for catalog and store reads,
per-user authorization code for cart writes), product search through the
database-backed cache, and cart operations. User tokens are always read from
and written to the token store, never kept on the client.
"""

import logging
import time
from datetime import datetime, timedelta
from urllib.parse import urlencode

import requests
from pydantic import BaseModel, ConfigDict, Field

from . import token_store
from .config import Settings, get_settings
from .errors import AuthError, CartError, OAuthError, ReauthRequired

logger = logging.getLogger(__name__)

# Kroger API base URLs
KROGER_API_BASE = "https://api.kroger.com/v1"
KROGER_AUTH_BASE = "https://api.kroger.com/v1/connect/oauth2"
KROGER_CART_URL = "https://www.kroger.com/cart"

# A stored user token this close to expiry is refreshed before use
TOKEN_EXPIRY_BUFFER = timedelta(minutes=5)

SEARCH_LIMIT = 10


# =============================================================================
# Response Types
# =============================================================================


class TokenResponse(BaseModel):
    """Body returned by the Kroger token endpoint."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    expires_in: int = 1800
    scope: str | None = None
    token_type: str = "Bearer"


class Product(BaseModel):
    """A catalog product, flattened from the Kroger products payload."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_id: str = Field(default="", alias="productId")
    upc: str = ""
    description: str = ""
    brand: str = ""
    size: str = ""
    price: float | None = None
    match_score: int | None = Field(default=None, alias="matchScore")

    @classmethod
    def from_api(cls, data: dict) -> "Product":
        product = {
            "productId": data.get("productId") or "",
            "upc": data.get("upc") or data.get("productId") or "",
            "description": data.get("description") or "",
            "brand": data.get("brand") or "",
        }

        items = data.get("items") or []
        if items:
            product["size"] = items[0].get("size") or ""
            price_info = items[0].get("price") or {}
            if price_info:
                product["price"] = price_info.get("regular", price_info.get("promo"))

        return cls.model_validate(product)


class Store(BaseModel):
    """A Kroger location returned by the locations endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    location_id: str = Field(default="", alias="locationId")
    name: str = ""
    chain: str = ""
    address: str = ""
    phone: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "Store":
        address = data.get("address") or {}
        line = ", ".join(
            part
            for part in (
                address.get("addressLine1", ""),
                address.get("city", ""),
                f"{address.get('state', '')} {address.get('zipCode', '')}".strip(),
            )
            if part
        )
        return cls.model_validate({
            "locationId": data.get("locationId") or "",
            "name": data.get("name") or "",
            "chain": data.get("chain") or "",
            "address": line,
            "phone": data.get("phone") or "",
        })


class Cart(BaseModel):
    """The user's Kroger cart as far as the gateway needs it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    cart_id: str | None = Field(default=None, alias="cartId")
    items: list[dict] = Field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "Cart":
        if not isinstance(data, dict):
            data = {}
        body = data.get("data") if isinstance(data.get("data"), dict) else data
        cart_id = body.get("cartId") or body.get("id")
        return cls.model_validate({
            "cartId": str(cart_id) if cart_id is not None else None,
            "items": body.get("items") or [],
        })


def _data_list(response: requests.Response) -> list[dict]:
    """The "data" array of a Kroger list response, or [] if it is missing."""
    body = response.json()
    data = body.get("data") if isinstance(body, dict) else None
    return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []


def _error_message(response: requests.Response | None, default: str) -> str:
    """Pull the partner's own error message out of a failed response."""
    if response is None:
        return default
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or default
    if isinstance(body, dict):
        for key in ("message", "error_description", "reason", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
        errors = body.get("errors")
        if isinstance(errors, dict) and errors.get("reason"):
            return str(errors["reason"])
    return default


# =============================================================================
# Client
# =============================================================================


class KrogerClient:
    """Kroger partner API client.

    The only state held on the instance is the app-level client-credentials
    token, which is not tied to any user.
    """

    def __init__(self, settings: Settings | None = None, http: requests.Session | None = None):
        self.settings = settings or get_settings()
        self.http = http or requests.Session()
        self._app_token: str | None = None
        self._app_token_expiry: float = 0

    @property
    def timeout(self) -> float:
        return self.settings.kroger_timeout_seconds

    def is_configured(self) -> bool:
        """Check if Kroger API credentials are configured."""
        return self.settings.kroger_configured

    def _client_auth(self) -> tuple[str, str]:
        return (self.settings.kroger_client_id, self.settings.kroger_client_secret)

    # -------------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------------

    def build_authorize_url(self, state: str) -> str:
        """Generate the Kroger OAuth authorization URL carrying state."""
        params = {
            "scope": self.settings.kroger_scopes,
            "response_type": "code",
            "client_id": self.settings.kroger_client_id,
            "redirect_uri": self.settings.kroger_redirect_uri,
            "state": state,
        }
        return f"{KROGER_AUTH_BASE}/authorize?{urlencode(params)}"

    def get_app_access_token(self) -> str:
        """Get a client credentials token for catalog and store reads."""
        if self._app_token and time.time() < self._app_token_expiry:
            return self._app_token

        if not self.is_configured():
            raise AuthError("Kroger API credentials not configured")

        try:
            response = self.http.post(
                f"{KROGER_AUTH_BASE}/token",
                data={
                    "grant_type": "client_credentials",
                    "scope": "product.compact",
                },
                auth=self._client_auth(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            token = TokenResponse.model_validate(response.json())

        except requests.exceptions.HTTPError as e:
            logger.error(f"Kroger client credentials rejected: {e}")
            if e.response is not None:
                logger.error(f"Response body: {e.response.text}")
            raise AuthError("Failed to authenticate with Kroger API") from e

        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Kroger client credentials request failed: {e}")
            raise AuthError("Failed to authenticate with Kroger API") from e

        self._app_token = token.access_token
        self._app_token_expiry = time.time() + token.expires_in - 60

        logger.info("Obtained Kroger client credentials token")
        return self._app_token

    def _token_grant(self, data: dict, failure: str) -> TokenResponse:
        try:
            response = self.http.post(
                f"{KROGER_AUTH_BASE}/token",
                data=data,
                auth=self._client_auth(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return TokenResponse.model_validate(response.json())

        except requests.exceptions.HTTPError as e:
            message = _error_message(e.response, failure)
            logger.error(f"Kroger {data['grant_type']} grant failed: {message}")
            raise OAuthError(failure) from e

        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Kroger {data['grant_type']} grant error: {e}")
            raise OAuthError(failure) from e

    def exchange_code_for_token(self, code: str) -> TokenResponse:
        """Exchange an authorization code for access and refresh tokens."""
        token = self._token_grant(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.settings.kroger_redirect_uri,
            },
            "Kroger authorization failed, please retry",
        )
        logger.info("Exchanged Kroger auth code for user tokens")
        return token

    def refresh_user_token(self, refresh_token: str) -> TokenResponse:
        """Refresh a user's access token using their refresh token."""
        token = self._token_grant(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            "Failed to refresh access token",
        )
        logger.info("Refreshed Kroger user token")
        return token

    def get_user_token(self, user_id: str) -> str:
        """Return a usable access token for user_id, refreshing it if needed.

        Raises:
            ReauthRequired: No stored token, or it expired and could not be
                refreshed. The stored row is deleted in the latter case.
        """
        stored = token_store.get_user_token(user_id)
        if stored is None:
            raise ReauthRequired("User not authenticated with Kroger")

        if stored.expires_at - datetime.utcnow() >= TOKEN_EXPIRY_BUFFER:
            return stored.access_token

        if not stored.refresh_token:
            token_store.delete_user_token(user_id)
            raise ReauthRequired("Token expired. Please re-authenticate with Kroger.")

        try:
            token = self.refresh_user_token(stored.refresh_token)
        except OAuthError as e:
            logger.warning(f"Dropping Kroger token for user {user_id}: {e}")
            token_store.delete_user_token(user_id)
            raise ReauthRequired("Token expired. Please re-authenticate with Kroger.") from e

        token_data = token.model_dump()
        token_data["refresh_token"] = token.refresh_token or stored.refresh_token
        token_store.save_user_token(user_id, token_data)
        return token.access_token

    def get_auth_status(self, user_id: str) -> str:
        """Get a user's authentication status.

        Returns:
            "connected" | "not_connected" | "not_configured"
        """
        if not self.is_configured():
            return "not_configured"
        try:
            self.get_user_token(user_id)
        except ReauthRequired:
            return "not_connected"
        return "connected"

    # -------------------------------------------------------------------------
    # Stores & Products
    # -------------------------------------------------------------------------

    def get_stores(self, lat: float, lon: float, radius_miles: int = 10) -> list[Store]:
        """Find grocery stores near a point. Any failure yields an empty list."""
        try:
            token = self.get_app_access_token()
            response = self.http.get(
                f"{KROGER_API_BASE}/locations",
                params={
                    "filter.lat": lat,
                    "filter.lon": lon,
                    "filter.radiusInMiles": radius_miles,
                    "filter.department": "grocery",
                },
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            locations = _data_list(response)

        except (AuthError, requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Failed to get Kroger stores: {e}")
            return []

        return [Store.from_api(loc) for loc in locations]

    def search_products(
        self, query: str, store_id: str, user_token: str | None = None
    ) -> list[Product]:
        """Search the catalog for query at store_id, reading through the cache.

        user_token is accepted for callers that hold one; catalog reads only
        need the app token. Any API failure yields an empty list.
        """
        cached = token_store.get_cached_products(query, store_id)
        if cached is not None:
            logger.info(f"Product cache hit for '{query}' at store {store_id or '-'}")
            return [Product.from_api(p) for p in cached]

        params = {
            "filter.term": query,
            "filter.limit": SEARCH_LIMIT,
        }
        if store_id:
            params["filter.locationId"] = store_id

        try:
            token = self.get_app_access_token()
            response = self.http.get(
                f"{KROGER_API_BASE}/products",
                params=params,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            products = _data_list(response)

        except (AuthError, requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Failed to search Kroger products for '{query}': {e}")
            return []

        token_store.cache_products(
            query, store_id, products, self.settings.product_cache_ttl_hours
        )
        return [Product.from_api(p) for p in products]

    # -------------------------------------------------------------------------
    # Cart
    # -------------------------------------------------------------------------

    def add_to_cart(
        self, user_id: str, store_id: str, product_id: str, quantity: int = 1
    ) -> dict:
        """Add one product (by UPC) to the user's Kroger cart.

        Raises:
            ReauthRequired: The user has no usable token.
            CartError: Kroger refused the item.
        """
        token = self.get_user_token(user_id)

        try:
            response = self.http.put(
                f"{KROGER_API_BASE}/cart/add",
                json={"items": [{"upc": product_id, "quantity": quantity}]},
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()

        except requests.exceptions.HTTPError as e:
            message = _error_message(e.response, str(e))
            logger.error(f"Kroger cart API error for {product_id} at store {store_id}: {message}")
            raise CartError(f"Failed to add item to cart: {message}") from e

        except requests.exceptions.RequestException as e:
            logger.error(f"Kroger cart error: {e}")
            raise CartError(f"Failed to add item to cart: {e}") from e

        logger.info(f"Added {product_id} x{quantity} to Kroger cart for user {user_id}")
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    def get_cart(self, user_id: str) -> Cart:
        """Read the user's current Kroger cart."""
        token = self.get_user_token(user_id)

        try:
            response = self.http.get(
                f"{KROGER_API_BASE}/cart",
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return Cart.from_api(response.json() or {})

        except requests.exceptions.HTTPError as e:
            message = _error_message(e.response, str(e))
            logger.error(f"Failed to get Kroger cart: {message}")
            raise CartError(f"Failed to get cart: {message}") from e

        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Failed to get Kroger cart: {e}")
            raise CartError(f"Failed to get cart: {e}") from e
