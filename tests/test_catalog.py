from __future__ import annotations

import unittest

from copy_engine.config import settings
from copy_engine.services.catalog import DeliverableCatalog, MarketRegistry
from copy_engine.services.errors import CatalogIntegrityError, UnknownDeliverableError


def _catalog(sections: list) -> DeliverableCatalog:
    return DeliverableCatalog.from_dict({"deliverables": {"Page": {"sections": sections}}})


class DeliverableCatalogTests(unittest.TestCase):
    def setUp(self) -> None:
        self.catalog = DeliverableCatalog.load(settings.CATALOG_PATH)

    def test_shipped_catalog_loads_in_file_order(self) -> None:
        names = self.catalog.names()
        self.assertEqual(names[0], "Product Detail Page")
        self.assertIn("Email", names)
        self.assertEqual(len(self.catalog), len(names))

    def test_subsection_fields_are_flattened_in_order(self) -> None:
        gallery = self.catalog.find_section("Gallery")
        self.assertIsNotNone(gallery)
        self.assertEqual(gallery.all_fields()[:3], ["Gallery 1 Headline", "Gallery 1 Body", "Gallery 2 Headline"])

    def test_assets_are_loaded(self) -> None:
        pdp = self.catalog.get("Product Detail Page")
        hero = pdp.assets[0]
        self.assertEqual(hero.name, "Hero Image")
        self.assertEqual((hero.width, hero.height), (1920, 1080))
        self.assertEqual(hero.max_file_size_mb, 2)
        self.assertEqual(hero.formats, ["JPG", "PNG"])

    def test_unknown_deliverable_raises(self) -> None:
        with self.assertRaises(UnknownDeliverableError):
            self.catalog.get("Billboard")

    def test_duplicate_field_in_section_is_rejected(self) -> None:
        with self.assertRaises(CatalogIntegrityError):
            _catalog([{"name": "Hero", "fields": ["Headline", "Headline"]}])

    def test_duplicate_field_across_subsections_is_rejected(self) -> None:
        with self.assertRaises(CatalogIntegrityError):
            _catalog([{
                "name": "Gallery",
                "subsections": [
                    {"name": "Item 1", "fields": ["Headline"]},
                    {"name": "Item 2", "fields": ["Headline"]},
                ],
            }])

    def test_same_field_in_different_sections_is_allowed(self) -> None:
        catalog = _catalog([
            {"name": "Hero", "fields": ["Headline"]},
            {"name": "Footer", "fields": ["Headline"]},
        ])
        self.assertEqual(len(catalog), 1)

    def test_numbered_heading_fallback(self) -> None:
        self.assertIsNone(self.catalog.find_section("Gallery 2"))
        section = self.catalog.find_section("Gallery 2", numbered_fallback=True)
        self.assertEqual(section.name, "Gallery")
        self.assertIsNone(self.catalog.find_section("Promo 2", numbered_fallback=True))

    def test_subsection_map(self) -> None:
        mapping = self.catalog.subsection_map("Gallery")
        self.assertEqual(mapping["Gallery 2 Body"], "Gallery Item 2")
        self.assertEqual(self.catalog.subsection_map("Hero"), {})


class MarketRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = MarketRegistry.load(settings.MARKETS_PATH)

    def test_known_market(self) -> None:
        market = self.registry.get("es-MX")
        self.assertEqual(market.language, "es")
        self.assertIn("es-MX", self.registry)

    def test_unknown_market_resolves_to_code(self) -> None:
        market = self.registry.resolve("xx-YY")
        self.assertEqual(market.code, "xx-YY")
        self.assertEqual(market.name, "xx-YY")
        self.assertEqual(self.registry.unknown_codes(["en-US", "xx-YY"]), ["xx-YY"])

    def test_markets_grouped_by_region(self) -> None:
        regions = self.registry.by_region()
        codes = [m.code for m in regions["Europe"]]
        self.assertIn("fr-FR", codes)
        self.assertNotIn("en-US", codes)


if __name__ == "__main__":
    unittest.main()
