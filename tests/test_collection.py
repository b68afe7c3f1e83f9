import asyncio
import time
import unittest

from collection_engine.collection_model import (
    CollectionDefinition,
    CollectionHooks,
    OperationConfig,
    field,
)
from collection_engine.config import EngineConfig
from collection_engine.errors import NotFoundError, OperationDisabledError
from collection_engine.registry import CollectionRegistry
from collection_engine.response import meta


def _products(seed_count=0, **kwargs):
    return CollectionDefinition(
        "products",
        {"name": field("commerce.productName"), "price": field("commerce.price"), "status": field("choice", values=["active", "archived"])},
        seed_count=seed_count,
        **kwargs,
    )


class TestCollectionCrud(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.registry = CollectionRegistry(EngineConfig(seed=8))
        self.products = self.registry.register(_products())

    async def test_create_get_update_replace_delete(self):
        created = await self.products.create({"name": "Lamp", "price": 20})
        self.assertEqual(await self.products.get(created["id"]), created)

        updated = await self.products.update(created["id"], {"price": 25})
        self.assertEqual(updated["id"], created["id"])
        self.assertEqual(updated["createdAt"], created["createdAt"])
        self.assertGreater(updated["updatedAt"], created["updatedAt"])
        self.assertEqual(updated["name"], "Lamp")

        replaced = await self.products.replace(created["id"], {"name": "Desk"})
        self.assertEqual(replaced["id"], created["id"])
        self.assertEqual(replaced["createdAt"], created["createdAt"])
        self.assertGreater(replaced["updatedAt"], updated["updatedAt"])
        self.assertNotIn("price", replaced)

        await self.products.delete(created["id"])
        with self.assertRaises(NotFoundError) as ctx:
            await self.products.get(created["id"])
        self.assertEqual(str(ctx.exception), f"products not found: {created['id']}")

    async def test_missing_ids_raise_not_found(self):
        with self.assertRaises(NotFoundError):
            await self.products.update("missing", {"price": 1})
        with self.assertRaises(NotFoundError):
            await self.products.replace("missing", {"price": 1})
        with self.assertRaises(LookupError):
            await self.products.delete("missing")
        self.assertFalse(await self.products.store.delete("missing"))

    async def test_list_pages_are_disjoint(self):
        registry = CollectionRegistry(EngineConfig(seed=2))
        products = registry.register(_products(seed_count=25))

        p1 = await products.list(page=1, limit=10)
        p2 = await products.list(page=2, limit=10)
        self.assertEqual(len(p1["data"]), 10)
        self.assertEqual(len(p2["data"]), 10)
        self.assertFalse({r["id"] for r in p1["data"]} & {r["id"] for r in p2["data"]})
        self.assertEqual(p1["pagination"]["totalPages"], 3)
        self.assertEqual(p1["pagination"]["total"], 25)

    async def test_list_filter_and_sort(self):
        for price in [50, 60, 61, 100]:
            await self.products.create({"price": price})
        result = await self.products.list(filter={"price": {"$gt": 60}}, sort_by="price", sort_order="desc")
        self.assertEqual([r["price"] for r in result["data"]], [100, 61])

    async def test_concurrent_first_access_sees_seed_count(self):
        registry = CollectionRegistry(EngineConfig(seed=4))
        products = registry.register(_products(seed_count=7))
        results = await asyncio.gather(*(products.list(limit=50) for _ in range(6)))
        self.assertTrue(all(r["pagination"]["total"] == 7 for r in results))


class TestOperationConfig(unittest.IsolatedAsyncioTestCase):
    async def test_disabled_operation_raises(self):
        registry = CollectionRegistry()
        products = registry.register(_products(operations={"delete": False, "create": OperationConfig(enabled=False)}))

        self.assertFalse(products.is_enabled("delete"))
        with self.assertRaises(OperationDisabledError):
            await products.delete("any")
        with self.assertRaises(OperationDisabledError) as ctx:
            await products.create({"name": "x"})
        self.assertEqual(ctx.exception.operation, "create")

    async def test_delay_is_simulated_and_logged(self):
        registry = CollectionRegistry()
        products = registry.register(_products(seed_count=1, operations={"list": OperationConfig(delay_ms=30)}))

        started = time.monotonic()
        with self.assertLogs("collection", level="INFO") as logs:
            await products.list()
        self.assertGreaterEqual(time.monotonic() - started, 0.025)
        self.assertIn("30ms", logs.output[0])

    async def test_negative_delay_means_none(self):
        registry = CollectionRegistry()
        products = registry.register(_products(seed_count=1, operations={"get": OperationConfig(delay_ms=-5)}))
        row = (await products.list())["data"][0]
        self.assertEqual((await products.get(row["id"]))["id"], row["id"])

    async def test_response_shape_uses_all_items_for_aggregates(self):
        registry = CollectionRegistry()
        shape = {
            "items": "$data",
            "meta": {
                "page": meta.page(),
                "total": meta.total(),
                "avg": meta.avg("price"),
                "sum": meta.sum("price"),
                "min": meta.min("price"),
                "max": meta.max("price"),
                "active": meta.count("status", "active"),
            },
        }
        products = registry.register(_products(operations={"list": OperationConfig(response_shape=shape)}))
        for i, price in enumerate([100, 200, 150, 300, 250]):
            await products.create({"price": price, "status": "active" if i % 2 == 0 else "archived"})

        out = await products.list(page=2, limit=2)

        self.assertEqual(len(out["items"]), 2)
        self.assertEqual(out["meta"]["page"], 2)
        self.assertEqual(out["meta"]["total"], 5)
        self.assertEqual(out["meta"]["avg"], 200)
        self.assertEqual(out["meta"]["sum"], 1000)
        self.assertEqual(out["meta"]["min"], 100)
        self.assertEqual(out["meta"]["max"], 300)
        self.assertEqual(out["meta"]["active"], 3)

    async def test_aggregates_follow_the_filter(self):
        registry = CollectionRegistry()
        shape = {"rows": "$data", "sum": meta.sum("price")}
        products = registry.register(_products(operations={"list": OperationConfig(response_shape=shape)}))
        for price in [10, 20, 30]:
            await products.create({"price": price})
        out = await products.list(filter={"price": {"$gte": 20}})
        self.assertEqual(out["sum"], 50)

    async def test_disable_query_params_ignores_arguments(self):
        registry = CollectionRegistry(EngineConfig(default_page_limit=20))
        products = registry.register(
            _products(seed_count=5, operations={"list": OperationConfig(disable_query_params=True)})
        )
        out = await products.list(limit=1, filter={"price": {"$lt": 0}})
        self.assertEqual(len(out["data"]), 5)
        self.assertEqual(out["pagination"]["limit"], 20)


class TestHooks(unittest.IsolatedAsyncioTestCase):
    async def test_hooks_run_in_order_and_may_rewrite_input(self):
        events = []

        async def before_create(data):
            events.append("before_create")
            return {**data, "slug": data["name"].lower()}

        def after_create(record):
            events.append(("after_create", record["slug"]))

        def before_update(record_id, changes):
            events.append("before_update")
            return {**changes, "touched": True}

        async def after_update(record):
            events.append(("after_update", record["touched"]))

        def before_delete(record_id):
            events.append(("before_delete", record_id))

        def after_delete(record_id):
            events.append(("after_delete", record_id))

        hooks = CollectionHooks(
            before_create=before_create,
            after_create=after_create,
            before_update=before_update,
            after_update=after_update,
            before_delete=before_delete,
            after_delete=after_delete,
        )
        registry = CollectionRegistry()
        products = registry.register(_products(hooks=hooks))

        created = await products.create({"name": "Lamp"})
        self.assertEqual(created["slug"], "lamp")
        updated = await products.update(created["id"], {"price": 3})
        self.assertTrue(updated["touched"])
        await products.delete(created["id"])

        self.assertEqual(
            events,
            [
                "before_create",
                ("after_create", "lamp"),
                "before_update",
                ("after_update", True),
                ("before_delete", created["id"]),
                ("after_delete", created["id"]),
            ],
        )

    async def test_hook_returning_none_keeps_input(self):
        hooks = CollectionHooks(before_create=lambda data: None)
        registry = CollectionRegistry()
        products = registry.register(_products(hooks=hooks))
        created = await products.create({"name": "Mug"})
        self.assertEqual(created["name"], "Mug")

    async def test_delete_hooks_skipped_for_missing_record(self):
        calls = []
        hooks = CollectionHooks(before_delete=calls.append)
        registry = CollectionRegistry()
        products = registry.register(_products(hooks=hooks))
        with self.assertRaises(NotFoundError):
            await products.delete("missing")
        self.assertEqual(calls, [])


if __name__ == "__main__":
    unittest.main()
