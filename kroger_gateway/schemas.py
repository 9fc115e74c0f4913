"""Pydantic schemas for gateway request bodies and response payloads."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import CartSession, UserStore


class CamelModel(BaseModel):
    """Accepts the camelCase keys the front-end sends, or snake_case."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class OrderRequest(CamelModel):
    user_id: str | None = Field(default=None, alias="userId")
    items: list[str] | None = None
    store_id: str | None = Field(default=None, alias="storeId")
    meal_plan_id: str | None = Field(default=None, alias="mealPlanId")


class StoreSelection(CamelModel):
    user_id: str | None = Field(default=None, alias="userId")
    store_id: str | None = Field(default=None, alias="storeId")
    store_name: str = Field(default="", alias="storeName")
    store_address: str = Field(default="", alias="storeAddress")


class MealPlanRequest(CamelModel):
    preferences: dict = Field(default_factory=dict)


class GroceryListRequest(CamelModel):
    meal_plan: dict | None = Field(default=None, alias="mealPlan")


class CartSessionOut(CamelModel):
    """Cart session as returned to the front-end for progress polling."""

    id: int
    user_id: str = Field(serialization_alias="userId")
    meal_plan_id: str | None = Field(default=None, serialization_alias="mealPlanId")
    grocery_items: list = Field(default_factory=list, serialization_alias="groceryItems")
    cart_id: str | None = Field(default=None, serialization_alias="cartId")
    status: str
    progress: int
    items_added: list = Field(default_factory=list, serialization_alias="itemsAdded")
    items_failed: list = Field(default_factory=list, serialization_alias="itemsFailed")
    error_message: str | None = Field(default=None, serialization_alias="errorMessage")
    cart_url: str | None = Field(default=None, serialization_alias="cartUrl")
    created_at: datetime | None = Field(default=None, serialization_alias="createdAt")
    updated_at: datetime | None = Field(default=None, serialization_alias="updatedAt")

    @classmethod
    def from_model(cls, cart_session: CartSession) -> "CartSessionOut":
        return cls(
            id=cart_session.id,
            user_id=cart_session.user_id,
            meal_plan_id=cart_session.meal_plan_id,
            grocery_items=cart_session.grocery_items or [],
            cart_id=cart_session.cart_id,
            status=cart_session.status.value,
            progress=cart_session.progress,
            items_added=cart_session.items_added or [],
            items_failed=cart_session.items_failed or [],
            error_message=cart_session.error_message,
            cart_url=cart_session.cart_url,
            created_at=cart_session.created_at,
            updated_at=cart_session.updated_at,
        )


def store_to_dict(store: UserStore) -> dict:
    return {
        "storeId": store.store_id,
        "storeName": store.store_name,
        "storeAddress": store.store_address,
    }
