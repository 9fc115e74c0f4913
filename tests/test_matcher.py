from __future__ import annotations

import unittest

from tests.support import SALMON, SPINACH

from kroger_gateway.kroger_client import Product
from kroger_gateway.matcher import find_best_match, normalize_item, score_product


class StubCatalog:
    """search_products stand-in answering from a {term: [raw products]} map."""

    def __init__(self, results: dict[str, list[dict]]):
        self.results = results
        self.searches: list[str] = []

    def search_products(self, query, store_id, user_token=None):
        self.searches.append(query)
        return [Product.from_api(p) for p in self.results.get(query, [])]


def product(description: str, upc: str = "1") -> dict:
    return {"productId": upc, "upc": upc, "description": description}


class TestNormalizeItem(unittest.TestCase):
    def test_strips_parentheticals_and_descriptors(self) -> None:
        self.assertEqual(normalize_item("Wild-caught salmon (1 lb)"), "salmon")

    def test_strips_quantities(self) -> None:
        self.assertEqual(normalize_item("2 lbs Grass-fed ground beef"), "ground beef")
        self.assertEqual(normalize_item("Eggs 1 dozen"), "eggs")
        self.assertEqual(normalize_item("Organic baby spinach 5 oz"), "baby spinach")

    def test_plain_item_is_lowercased(self) -> None:
        self.assertEqual(normalize_item("Avocados"), "avocados")


class TestScoreProduct(unittest.TestCase):
    def test_full_phrase_and_words(self) -> None:
        spinach = Product.from_api(SPINACH)
        # phrase +100, "baby" +10, "spinach" +10, organic descriptor +20
        self.assertEqual(score_product(spinach, "baby spinach", "Organic baby spinach"), 140)

    def test_descriptor_bonus_needs_both_sides(self) -> None:
        spinach = Product.from_api(SPINACH)
        self.assertEqual(score_product(spinach, "baby spinach", "baby spinach"), 120)

    def test_grass_fed_matches_grass_in_description(self) -> None:
        beef = Product.from_api(product("Grass Fed Ground Beef"))
        self.assertEqual(score_product(beef, "ground beef", "Grass-fed ground beef"), 140)


class TestFindBestMatch(unittest.TestCase):
    def test_returns_highest_score(self) -> None:
        catalog = StubCatalog({"salmon": [
            product("Atlantic Cod Fillet", "1"),
            SALMON,
        ]})
        best = find_best_match(catalog, "Wild-caught salmon (1 lb)", "70100443")

        self.assertEqual(best.upc, SALMON["upc"])
        self.assertEqual(best.match_score, 110)

    def test_ties_keep_first_seen(self) -> None:
        catalog = StubCatalog({"milk": [product("2% Milk", "a"), product("Whole Milk", "b")]})
        self.assertEqual(find_best_match(catalog, "milk", "1").upc, "a")

    def test_falls_back_to_single_words(self) -> None:
        catalog = StubCatalog({"berries": [product("Mixed Berries", "b")]})
        best = find_best_match(catalog, "frozen mixed-berries (12 oz)", "1")

        self.assertEqual(best.upc, "b")
        # "frozen mixed-berries" fails, then "frozen", "mixed", "berries" in order
        self.assertEqual(catalog.searches, ["frozen mixed-berries", "frozen", "mixed", "berries"])

    def test_short_words_are_skipped(self) -> None:
        catalog = StubCatalog({})
        find_best_match(catalog, "ox tail", "1")
        self.assertEqual(catalog.searches, ["ox tail", "tail"])

    def test_no_candidates_returns_none(self) -> None:
        catalog = StubCatalog({})
        self.assertIsNone(find_best_match(catalog, "XYZ-nonexistent-item", "1"))
        self.assertEqual(catalog.searches, ["xyz-nonexistent-item", "xyz", "nonexistent", "item"])


if __name__ == "__main__":
    unittest.main()
