"""Resolve free-text grocery list lines to a single Kroger product.

This is a scoring heuristic, not a guarantee: the best-scoring search
candidate wins, ties go to whichever Kroger returned first.
"""

import logging
import re

from .kroger_client import KrogerClient, Product

logger = logging.getLogger(__name__)

EXACT_MATCH_SCORE = 100
WORD_MATCH_SCORE = 10
QUALITY_MATCH_SCORE = 20

QUANTITY_PATTERN = re.compile(
    r"\d+\s*(lbs?|oz|ounces?|pieces?|count|jar|bag|head|bunch|dozen)", re.IGNORECASE
)
DESCRIPTOR_PATTERN = re.compile(r"organic|grass-fed|free-range|wild-caught", re.IGNORECASE)
WORD_SPLIT = re.compile(r"[\s-]+")

# Descriptor in the shopper's line -> keyword looked for in the product description
QUALITY_KEYWORDS = {
    "organic": "organic",
    "grass-fed": "grass",
    "free-range": "free",
}


def normalize_item(grocery_item: str) -> str:
    """Strip quantities, parentheticals and quality descriptors from a list line.

    "Wild-caught salmon (1 lb)" -> "salmon"
    """
    item = grocery_item.lower()
    item = re.sub(r"\([^)]*\)", "", item)
    item = QUANTITY_PATTERN.sub("", item)
    item = DESCRIPTOR_PATTERN.sub("", item)
    return re.sub(r"\s+", " ", item).strip()


def _words(text: str) -> list[str]:
    return [w for w in WORD_SPLIT.split(text) if w]


def score_product(product: Product, normalized: str, original: str) -> int:
    """Relevance of product to a normalized list line."""
    name = product.description.lower()
    score = 0

    if normalized and normalized in name:
        score += EXACT_MATCH_SCORE

    for word in _words(normalized):
        if word in name:
            score += WORD_MATCH_SCORE

    original = original.lower()
    for descriptor, keyword in QUALITY_KEYWORDS.items():
        if descriptor in original and keyword in name:
            score += QUALITY_MATCH_SCORE

    return score


def find_best_match(client: KrogerClient, grocery_item: str, store_id: str) -> Product | None:
    """Search Kroger for grocery_item and return the best-scoring product.

    Falls back to one-word searches when the cleaned line finds nothing.
    Returns None when no search produced any candidates.
    """
    normalized = normalize_item(grocery_item)

    products = client.search_products(normalized, store_id) if normalized else []

    if not products:
        for word in _words(normalized):
            if len(word) <= 2:
                continue
            products = client.search_products(word, store_id)
            if products:
                break

    if not products:
        logger.info(f"No Kroger candidates for '{grocery_item}'")
        return None

    scored = [
        product.model_copy(update={"match_score": score_product(product, normalized, grocery_item)})
        for product in products
    ]
    scored.sort(key=lambda p: p.match_score, reverse=True)

    best = scored[0]
    logger.info(
        f"Matched '{grocery_item}' -> {best.description} ({best.upc}, score={best.match_score})"
    )
    return best
