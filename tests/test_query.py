import unittest

from collection_engine.query import apply_filters, apply_sorting, matches_condition, paginate


class TestFilters(unittest.TestCase):
    def setUp(self) -> None:
        self.rows = [
            {"id": "a", "price": 50, "status": "active"},
            {"id": "b", "price": 60, "status": "inactive"},
            {"id": "c", "price": 61, "status": "active"},
            {"id": "d", "price": 100, "status": "pending"},
            {"id": "e", "price": None, "status": "active"},
        ]

    def _ids(self, rows):
        return [r["id"] for r in rows]

    def test_gt_returns_exact_subset(self):
        out = apply_filters(self.rows, {"price": {"$gt": 60}})
        self.assertEqual(self._ids(out), ["c", "d"])

    def test_operators_in_one_dict_are_anded(self):
        out = apply_filters(self.rows, {"price": {"$gte": 60, "$lt": 100}})
        self.assertEqual(self._ids(out), ["b", "c"])

    def test_fields_are_anded(self):
        out = apply_filters(self.rows, {"status": "active", "price": {"$lte": 61}})
        self.assertEqual(self._ids(out), ["a", "c"])

    def test_in_and_nin(self):
        self.assertEqual(self._ids(apply_filters(self.rows, {"status": {"$in": ["pending", "inactive"]}})), ["b", "d"])
        self.assertEqual(self._ids(apply_filters(self.rows, {"status": {"$nin": ["active"]}})), ["b", "d"])

    def test_eq_and_ne(self):
        self.assertEqual(self._ids(apply_filters(self.rows, {"price": {"$eq": 50}})), ["a"])
        self.assertEqual(len(apply_filters(self.rows, {"status": {"$ne": "active"}})), 2)

    def test_none_filter_value_is_ignored(self):
        out = apply_filters(self.rows, {"status": None})
        self.assertEqual(len(out), 5)

    def test_unorderable_comparison_does_not_match(self):
        self.assertFalse(matches_condition(None, {"$gt": 1}))
        self.assertFalse(matches_condition("x", {"$lt": 5}))

    def test_unknown_operator_raises(self):
        with self.assertRaises(ValueError) as ctx:
            apply_filters(self.rows, {"price": {"$regex": "1"}})
        self.assertIn("Fix:", str(ctx.exception))

    def test_in_requires_list_operand(self):
        with self.assertRaises(ValueError):
            apply_filters(self.rows, {"status": {"$in": "active"}})

    def test_plain_dict_value_is_exact_match(self):
        rows = [{"id": 1, "meta": {"tier": "gold"}}, {"id": 2, "meta": {"tier": "silver"}}]
        self.assertEqual([r["id"] for r in apply_filters(rows, {"meta": {"tier": "gold"}})], [1])


class TestSorting(unittest.TestCase):
    def test_ascending_with_none_last(self):
        rows = [{"n": 3}, {"n": None}, {"n": 1}, {}, {"n": 2}]
        self.assertEqual([r.get("n") for r in apply_sorting(rows, "n")], [1, 2, 3, None, None])

    def test_descending_keeps_none_last(self):
        rows = [{"n": 3}, {"n": None}, {"n": 1}]
        self.assertEqual([r.get("n") for r in apply_sorting(rows, "n", "desc")], [3, 1, None])

    def test_stable_for_equal_keys(self):
        rows = [{"k": 1, "tag": "first"}, {"k": 0, "tag": "x"}, {"k": 1, "tag": "second"}]
        out = apply_sorting(rows, "k")
        self.assertEqual([r["tag"] for r in out], ["x", "first", "second"])

    def test_bad_sort_order_raises(self):
        with self.assertRaises(ValueError):
            apply_sorting([{"n": 1}], "n", "sideways")


class TestPagination(unittest.TestCase):
    def setUp(self) -> None:
        self.rows = [{"id": i} for i in range(25)]

    def test_pages_are_disjoint_and_total_pages_rounds_up(self):
        p1, meta1 = paginate(self.rows, 1, 10)
        p2, meta2 = paginate(self.rows, 2, 10)
        p3, meta3 = paginate(self.rows, 3, 10)

        self.assertEqual(len(p1), 10)
        self.assertEqual(len(p2), 10)
        self.assertEqual(len(p3), 5)
        self.assertFalse({r["id"] for r in p1} & {r["id"] for r in p2})
        self.assertEqual(meta1, {"page": 1, "limit": 10, "total": 25, "totalPages": 3})
        self.assertEqual(meta2["totalPages"], 3)

    def test_out_of_range_page_is_empty(self):
        page, meta = paginate(self.rows, 9, 10)
        self.assertEqual(page, [])
        self.assertEqual(meta["total"], 25)

    def test_defaults_and_clamping(self):
        page, meta = paginate(self.rows, None, None, default_limit=20)
        self.assertEqual(len(page), 20)
        self.assertEqual(meta["page"], 1)

        page, meta = paginate(self.rows, 0, -5, default_limit=7)
        self.assertEqual(meta["page"], 1)
        self.assertEqual(meta["limit"], 7)
        self.assertEqual(len(page), 7)

    def test_empty_input(self):
        page, meta = paginate([], 1, 10)
        self.assertEqual(page, [])
        self.assertEqual(meta["totalPages"], 0)


if __name__ == "__main__":
    unittest.main()
