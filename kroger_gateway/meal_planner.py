"""Claude-backed weekly meal plans and the grocery lists derived from them."""

import json
import logging
import re

from anthropic import Anthropic, AnthropicError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import Settings, get_settings
from .errors import MealPlanError

logger = logging.getLogger(__name__)

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

MEAL_PLAN_SYSTEM_PROMPT = """You are a nutrition-focused meal planner for a wellness app.
Plan whole-food meals that respect the user's preferences and restrictions.
Reply with JSON only, no prose, shaped like:
{"mealPlan": {"Monday": {"breakfast": "...", "lunch": "...", "snack": "...", "dinner": "..."}, ...}}"""

GROCERY_LIST_SYSTEM_PROMPT = """You turn a weekly meal plan into a grocery list.
Combine duplicates and give each line a plain product name with an amount in
parentheses, e.g. "Wild-caught salmon (1 lb)".
Reply with JSON only, no prose, shaped like:
{"groceryList": ["...", "..."]}"""

JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


# =============================================================================
# Result Types
# =============================================================================


class DayMeals(BaseModel):
    model_config = ConfigDict(extra="ignore")

    breakfast: str = ""
    lunch: str = ""
    snack: str = ""
    dinner: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def coerce_text(cls, v):
        if v is None:
            return ""
        if isinstance(v, list):
            return ", ".join(str(part) for part in v)
        return str(v)


class MealPlan(BaseModel):
    days: dict[str, DayMeals] = Field(default_factory=dict)


class GroceryList(BaseModel):
    items: list[str] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def flatten_items(cls, v):
        """Accept plain strings or objects carrying a name/item field."""
        if not isinstance(v, list):
            return []
        items = []
        for entry in v:
            if isinstance(entry, dict):
                entry = entry.get("name") or entry.get("item") or entry.get("description")
            if entry:
                items.append(str(entry).strip())
        return items


# =============================================================================
# Response Helpers
# =============================================================================


def _extract_text_from_response(response) -> str:
    """Extract text content from Claude response."""
    for block in response.content:
        if hasattr(block, "text"):
            return block.text
    return ""


def _parse_json_reply(text: str) -> dict:
    """Parse the first JSON object in a reply, fenced in markdown or not."""
    match = JSON_OBJECT.search(text)
    if not match:
        raise MealPlanError("Meal planner returned no JSON")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise MealPlanError(f"Meal planner returned invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise MealPlanError("Meal planner returned an unexpected shape")
    return parsed


def parse_meal_plan(text: str) -> MealPlan:
    parsed = _parse_json_reply(text)
    days = parsed.get("mealPlan") or parsed.get("meal_plan") or parsed.get("days") or parsed
    if not isinstance(days, dict):
        raise MealPlanError("Meal planner returned an unexpected shape")

    # Keep weekday order regardless of how the model ordered its keys
    ordered = {day: days[day] for day in WEEKDAYS if isinstance(days.get(day), dict)}
    ordered.update({k: v for k, v in days.items() if k not in ordered and isinstance(v, dict)})
    try:
        plan = MealPlan.model_validate({"days": ordered})
    except ValidationError as e:
        raise MealPlanError(f"Meal plan failed validation: {e}") from e
    if not plan.days:
        raise MealPlanError("Meal planner returned an empty plan")
    return plan


def parse_grocery_list(text: str) -> GroceryList:
    parsed = _parse_json_reply(text)
    items = parsed.get("groceryList") or parsed.get("grocery_list") or parsed.get("items") or []
    return GroceryList.model_validate({"items": items})


# =============================================================================
# Planner
# =============================================================================


class MealPlanner:
    """Thin wrapper over the Anthropic Messages API for meal planning."""

    def __init__(self, settings: Settings | None = None, client: Anthropic | None = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> Anthropic:
        if self._client is None:
            if not self.settings.anthropic_api_key:
                raise MealPlanError("Meal planner is not configured")
            self._client = Anthropic(api_key=self.settings.anthropic_api_key)
        return self._client

    def _ask(self, system_prompt: str, message: str) -> str:
        try:
            response = self.client.messages.create(
                model=self.settings.anthropic_model,
                max_tokens=4096,
                timeout=60.0,
                system=system_prompt,
                messages=[{"role": "user", "content": message}],
            )
        except AnthropicError as e:
            logger.error(f"Claude API error: {e}")
            raise MealPlanError("Meal planner is unavailable, please try again") from e

        logger.info(
            f"Claude replied: {response.usage.input_tokens} in, {response.usage.output_tokens} out"
        )
        return _extract_text_from_response(response)

    def generate_meal_plan(self, preferences: dict) -> MealPlan:
        """Ask Claude for a Monday-to-Friday (or longer) plan honoring preferences."""
        message = (
            "Create a weekly meal plan for these preferences:\n"
            f"{json.dumps(preferences or {}, indent=2)}"
        )
        return parse_meal_plan(self._ask(MEAL_PLAN_SYSTEM_PROMPT, message))

    def build_grocery_list(self, meal_plan: dict) -> GroceryList:
        message = (
            "Build the grocery list for this meal plan:\n"
            f"{json.dumps(meal_plan or {}, indent=2)}"
        )
        return parse_grocery_list(self._ask(GROCERY_LIST_SYSTEM_PROMPT, message))
