import unittest

from collection_engine.collection_model import array_field, field, object_field
from collection_engine.errors import ConfigurationError
from collection_engine.response import (
    DataArrayMarker,
    MetaFieldMarker,
    ObjectNode,
    Passthrough,
    ResponseComposer,
    calculate_aggregate,
    meta,
    parse_descriptor,
    parse_meta_field,
)

PRICES = [100, 200, 150, 300, 250]


class TestParseDescriptor(unittest.TestCase):
    def test_data_markers(self):
        self.assertIsInstance(parse_descriptor("$data"), DataArrayMarker)
        self.assertIsInstance(parse_descriptor([{"id": "x"}]), DataArrayMarker)
        self.assertIsInstance(parse_descriptor(array_field(field("string"))), DataArrayMarker)
        self.assertIsInstance(parse_descriptor([]), Passthrough)

    def test_object_descriptors_become_object_nodes(self):
        tree = parse_descriptor(object_field(items=array_field(field()), label=field()))
        self.assertIsInstance(tree, ObjectNode)
        self.assertIsInstance(tree.children["items"], DataArrayMarker)
        self.assertIsInstance(tree.children["label"], Passthrough)

    def test_underscore_keys_are_skipped(self):
        tree = parse_descriptor({"_internal": "$data", "data": "$data"})
        self.assertEqual(list(tree.children), ["data"])

    def test_meta_markers(self):
        self.assertEqual(parse_meta_field("collectionsMeta.totalPages"), MetaFieldMarker(kind="totalPages"))
        self.assertEqual(parse_meta_field("collectionsMeta.avg:price"), MetaFieldMarker(kind="avg", field="price"))
        self.assertEqual(
            parse_meta_field('collectionsMeta.count:status:"active"'),
            MetaFieldMarker(kind="count", field="status", value="active", has_value=True),
        )
        self.assertEqual(parse_meta_field("collectionsMeta.count"), MetaFieldMarker(kind="count"))
        self.assertIsNone(parse_meta_field("collectionsMeta.median:price"))
        self.assertIsNone(parse_meta_field("plain text"))

    def test_meta_builders_round_trip_through_parser(self):
        self.assertEqual(meta.page(), "collectionsMeta.page")
        self.assertEqual(meta.avg("price"), "collectionsMeta.avg:price")
        self.assertEqual(meta.count("status", "active"), 'collectionsMeta.count:status:"active"')
        self.assertEqual(parse_meta_field(meta.count("paid", True)).value, True)
        self.assertEqual(parse_meta_field(meta.total_pages()).kind, "totalPages")

    def test_aggregate_without_field_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            parse_meta_field("collectionsMeta.sum")

    def test_count_value_must_be_json(self):
        with self.assertRaises(ConfigurationError):
            parse_meta_field("collectionsMeta.count:status:active")


class TestAggregates(unittest.TestCase):
    def setUp(self) -> None:
        self.items = [{"price": p, "status": "active" if p > 150 else "inactive"} for p in PRICES]

    def test_numeric_aggregates(self):
        self.assertEqual(calculate_aggregate(self.items, MetaFieldMarker("avg", "price")), 200)
        self.assertEqual(calculate_aggregate(self.items, MetaFieldMarker("sum", "price")), 1000)
        self.assertEqual(calculate_aggregate(self.items, MetaFieldMarker("min", "price")), 100)
        self.assertEqual(calculate_aggregate(self.items, MetaFieldMarker("max", "price")), 300)

    def test_count_variants(self):
        self.assertEqual(calculate_aggregate(self.items, MetaFieldMarker("count")), 5)
        self.assertEqual(calculate_aggregate(self.items, MetaFieldMarker("count", "status", "active", True)), 3)
        # a field without a value filter counts every item
        self.assertEqual(calculate_aggregate(self.items + [{}], MetaFieldMarker("count", "price")), 6)
        mixed = [{"status": "a"}, {"status": None}, {}]
        self.assertEqual(calculate_aggregate(mixed, parse_meta_field("collectionsMeta.count:status")), 3)

    def test_no_numeric_values_yields_none(self):
        self.assertIsNone(calculate_aggregate([], MetaFieldMarker("avg", "price")))
        self.assertIsNone(calculate_aggregate([{"price": "10"}], MetaFieldMarker("sum", "price")))
        self.assertIsNone(calculate_aggregate([{"price": True}], MetaFieldMarker("max", "price")))

    def test_non_numeric_values_are_skipped(self):
        items = [{"v": 4}, {"v": None}, {"v": "x"}, {"v": 8.0}]
        self.assertEqual(calculate_aggregate(items, MetaFieldMarker("avg", "v")), 6.0)


class TestCompose(unittest.TestCase):
    def setUp(self) -> None:
        self.composer = ResponseComposer()
        self.all_items = [{"id": str(i), "price": p} for i, p in enumerate(PRICES)]
        self.page = self.all_items[:2]
        self.pagination = {"page": 1, "limit": 2, "total": 5, "totalPages": 3}

    def test_nested_shape_with_pagination_and_aggregates(self):
        tree = self.composer.parse(
            {
                "items": "$data",
                "meta": {
                    "page": meta.page(),
                    "pages": meta.total_pages(),
                    "stats": {"avg": meta.avg("price"), "max": meta.max("price")},
                },
                "note": "not a marker",
            }
        )
        out = self.composer.compose(tree, self.page, self.all_items, self.pagination)

        self.assertEqual(out["items"], self.page)
        self.assertEqual(out["meta"]["page"], 1)
        self.assertEqual(out["meta"]["pages"], 3)
        # aggregates see every item, not just the page
        self.assertEqual(out["meta"]["stats"], {"avg": 200, "max": 300})
        self.assertNotIn("note", out)

    def test_empty_nested_objects_are_omitted(self):
        tree = self.composer.parse({"data": "$data", "extra": {"label": "text", "_hidden": meta.page()}})
        out = self.composer.compose(tree, self.page, self.all_items, self.pagination)
        self.assertEqual(list(out), ["data"])

    def test_null_aggregate_keeps_its_key(self):
        tree = self.composer.parse({"rows": "$data", "avgRating": meta.avg("rating")})
        out = self.composer.compose(tree, self.page, self.all_items, self.pagination)
        self.assertIn("avgRating", out)
        self.assertIsNone(out["avgRating"])

    def test_top_level_data_marker_returns_page(self):
        tree = self.composer.parse(array_field(field()))
        self.assertEqual(self.composer.compose(tree, self.page, self.all_items, self.pagination), self.page)


if __name__ == "__main__":
    unittest.main()
