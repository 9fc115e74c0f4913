"""Gateway endpoints consumed by the wellness front-end."""

import json
import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse, JSONResponse

from . import token_store
from .config import get_settings
from .errors import KrogerError
from .kroger_client import KrogerClient
from .meal_planner import MealPlanner
from .orchestrator import OrderOrchestrator
from .schemas import (
    CartSessionOut,
    GroceryListRequest,
    MealPlanRequest,
    OrderRequest,
    StoreSelection,
    store_to_dict,
)

logger = logging.getLogger(__name__)

router = APIRouter()

NOT_AUTHENTICATED = "User not authenticated with Kroger"

OAUTH_DONE_PAGE = """<!DOCTYPE html>
<html>
  <head><title>Kroger connected</title></head>
  <body>
    <p>Your Kroger account is connected. You can close this window.</p>
    <script>
      if (window.opener) {{
        window.opener.postMessage({{ type: "kroger-auth", status: "connected" }}, {origin});
      }}
      window.close();
    </script>
  </body>
</html>
"""


# =============================================================================
# Dependencies
# =============================================================================


@lru_cache
def get_kroger_client() -> KrogerClient:
    return KrogerClient()


@lru_cache
def get_orchestrator() -> OrderOrchestrator:
    return OrderOrchestrator(get_kroger_client())


@lru_cache
def get_meal_planner() -> MealPlanner:
    return MealPlanner()


def _require(value, message: str):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise HTTPException(status_code=400, detail=message)
    return value


def _require_kroger_token(user_id: str) -> None:
    if token_store.get_user_token(user_id) is None:
        raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED)


# =============================================================================
# OAuth
# =============================================================================


@router.get("/auth/kroger", tags=["auth"])
def start_kroger_auth(
    user_id: str | None = Query(default=None, alias="userId"),
    client: KrogerClient = Depends(get_kroger_client),
):
    """Return the Kroger authorize URL; the user id travels as OAuth state."""
    _require(user_id, "User ID is required")
    if not client.is_configured():
        raise HTTPException(status_code=500, detail="Kroger integration is not configured")

    return {
        "success": True,
        "authUrl": client.build_authorize_url(state=user_id),
        "message": "Redirect to Kroger for authentication",
    }


@router.get("/auth/callback", tags=["auth"])
def kroger_auth_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    client: KrogerClient = Depends(get_kroger_client),
):
    """Finish the OAuth popup flow: store the user's token and close the popup."""
    if error:
        logger.warning(f"Kroger authorization denied for state={state}: {error}")
        raise HTTPException(status_code=401, detail="Kroger authorization was denied")
    if not code or not state:
        raise HTTPException(
            status_code=400, detail="Authorization code and state (user ID) are required"
        )

    token = client.exchange_code_for_token(code)
    token_store.save_user_token(state, token.model_dump())

    settings = get_settings()
    return HTMLResponse(OAUTH_DONE_PAGE.format(origin=json.dumps(settings.frontend_url)))


@router.get("/auth/status", tags=["auth"])
def kroger_auth_status(
    user_id: str | None = Query(default=None, alias="userId"),
    client: KrogerClient = Depends(get_kroger_client),
):
    _require(user_id, "User ID is required")
    return {"success": True, "status": client.get_auth_status(user_id)}


# =============================================================================
# Stores
# =============================================================================


@router.get("/api/stores", tags=["stores"])
def list_stores(
    user_id: str | None = Query(default=None, alias="userId"),
    lat: float | None = None,
    lon: float | None = None,
    radius: int = 10,
    client: KrogerClient = Depends(get_kroger_client),
):
    """Nearby Kroger stores for a user who has connected their account."""
    _require(user_id, "User ID is required")
    _require(lat, "Latitude is required")
    _require(lon, "Longitude is required")
    _require_kroger_token(user_id)

    stores = client.get_stores(lat, lon, radius_miles=radius)
    return {
        "success": True,
        "stores": [store.model_dump(by_alias=True) for store in stores],
    }


@router.get("/api/stores/selected", tags=["stores"])
def get_selected_store(user_id: str | None = Query(default=None, alias="userId")):
    _require(user_id, "User ID is required")
    store = token_store.get_user_store(user_id)
    return {"success": True, "store": store_to_dict(store) if store else None}


@router.put("/api/stores/selected", tags=["stores"])
def select_store(body: StoreSelection):
    """Remember which store the user orders from."""
    _require(body.user_id, "User ID is required")
    _require(body.store_id, "Store ID is required")

    store = token_store.save_user_store(
        body.user_id, body.store_id, body.store_name, body.store_address
    )
    return {"success": True, "store": store_to_dict(store)}


# =============================================================================
# Orders
# =============================================================================


@router.post("/api/orders", tags=["orders"])
def place_order(
    body: OrderRequest,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """Match every grocery item and add it to the user's Kroger cart.

    Runs to completion before responding; per-item failures are reported in
    itemsFailed rather than failing the request.
    """
    _require(body.user_id, "User ID is required")
    if not body.items:
        raise HTTPException(status_code=400, detail="Grocery items are required")

    store_id = body.store_id
    if not store_id:
        saved = token_store.get_user_store(body.user_id)
        store_id = saved.store_id if saved else None
    _require(store_id, "Store ID is required")
    _require_kroger_token(body.user_id)

    try:
        result = orchestrator.place_order(
            body.user_id, body.items, store_id, meal_plan_id=body.meal_plan_id
        )
    except KrogerError:
        raise
    except Exception:
        logger.exception(f"Failed to place order for user {body.user_id}")
        return JSONResponse(status_code=500, content={"error": "Failed to place order"})

    return {
        "success": True,
        "sessionId": result.session_id,
        "cartUrl": result.cart_url,
        "cartId": result.cart_id,
        "estimatedTotal": result.estimated_total,
        "itemsAdded": result.items_added,
        "itemsFailed": result.items_failed,
        "message": "Groceries added to Kroger cart successfully!",
    }


@router.get("/api/orders", tags=["orders"])
def list_orders(
    user_id: str | None = Query(default=None, alias="userId"),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    _require(user_id, "User ID is required")
    sessions = orchestrator.list_sessions(user_id)
    return {
        "success": True,
        "sessions": [
            CartSessionOut.from_model(s).model_dump(by_alias=True, mode="json") for s in sessions
        ],
    }


@router.get("/api/orders/{session_id}", tags=["orders"])
def get_order(
    session_id: int,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """Progress and outcome of one order attempt."""
    cart_session = orchestrator.get_session(session_id)
    if cart_session is None:
        raise HTTPException(status_code=404, detail="Order session not found")
    return {
        "success": True,
        "session": CartSessionOut.from_model(cart_session).model_dump(by_alias=True, mode="json"),
    }


# =============================================================================
# Products
# =============================================================================


@router.get("/api/products/search", tags=["products"])
def search_products(
    term: str | None = None,
    store_id: str | None = Query(default=None, alias="storeId"),
    client: KrogerClient = Depends(get_kroger_client),
):
    _require(term, "Search term is required")
    store = store_id or client.settings.kroger_location_id

    products = client.search_products(term.strip(), store)
    return {
        "success": True,
        "products": [p.model_dump(by_alias=True, exclude_none=True) for p in products],
    }


# =============================================================================
# Meal Planner
# =============================================================================


@router.post("/api/meal-plan/ai-generate", tags=["meal-plan"])
def generate_meal_plan(
    body: MealPlanRequest,
    planner: MealPlanner = Depends(get_meal_planner),
):
    plan = planner.generate_meal_plan(body.preferences)
    return {
        "success": True,
        "mealPlan": {day: meals.model_dump() for day, meals in plan.days.items()},
        "preferences": body.preferences,
        "message": "AI meal plan generated successfully!",
    }


@router.post("/api/meal-plan/grocery-list", tags=["meal-plan"])
def meal_plan_grocery_list(
    body: GroceryListRequest,
    planner: MealPlanner = Depends(get_meal_planner),
):
    if not body.meal_plan:
        raise HTTPException(status_code=400, detail="Meal plan is required")

    grocery_list = planner.build_grocery_list(body.meal_plan)
    return {"success": True, "groceryList": grocery_list.items}
