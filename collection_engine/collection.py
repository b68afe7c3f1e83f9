from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from collection_engine.async_utils import maybe_await
from collection_engine.collection_model import CollectionDefinition, OperationConfig, accessor_name
from collection_engine.errors import NotFoundError, OperationDisabledError, RelationResolutionError
from collection_engine.response import ResponseComposer

if TYPE_CHECKING:
    from collection_engine.registry import CollectionRegistry
    from collection_engine.store import CollectionStore

logger = logging.getLogger("collection")

Record = dict[str, Any]


class Collection:
    """
    Public handle for one registered collection.

    Exposes list/get/create/update/replace/delete over the collection's
    store, honoring the per-operation config (enabled flag, simulated delay,
    joins, list response shape) and the lifecycle hooks. Related records are
    reached through `related(relation, key)` or the accessor table built
    from the relation declarations.
    """

    def __init__(self, definition: CollectionDefinition, store: CollectionStore, registry: CollectionRegistry) -> None:
        self.definition = definition
        self.name = definition.name
        self.store = store
        self._registry = registry
        self._composer = ResponseComposer()

        shape = definition.operation("list").response_shape
        self._response_tree = self._composer.parse(shape) if shape is not None else None

        # accessor name -> relation name
        self.accessors: dict[str, str] = {
            accessor_name(rel_name, rel): rel_name for rel_name, rel in definition.relations.items()
        }

    def __repr__(self) -> str:
        return f"Collection(name={self.name!r}, base_path={self.base_path!r})"

    @property
    def base_path(self) -> str:
        return self.definition.base_path or f"/{self.name}"

    def is_enabled(self, operation: str) -> bool:
        return self.definition.operation(operation).enabled

    # -------------------------
    # Internals
    # -------------------------
    async def _begin(self, operation: str) -> OperationConfig:
        op = self.definition.operation(operation)
        if not op.enabled:
            raise OperationDisabledError(self.name, operation)
        if op.delay_ms > 0:
            logger.info("Simulating %dms delay for %s.%s", op.delay_ms, self.name, operation)
            await asyncio.sleep(op.delay_ms / 1000)
        return op

    async def _run_hook(self, hook: str, *args: Any) -> Any:
        fn = getattr(self.definition.hooks, hook)
        if fn is None:
            return None
        return await maybe_await(fn(*args))

    # -------------------------
    # Operations
    # -------------------------
    async def list(
        self,
        *,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
        sort_order: str = "asc",
        filter: dict[str, Any] | None = None,
    ) -> Any:
        op = await self._begin("list")
        if op.disable_query_params:
            page = limit = sort_by = filter = None
            sort_order = "asc"

        result = await self.store.query(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order, filter=filter)
        data = await self._registry.joins.apply_joins(result["data"], self.definition.relations, op.joins)

        if self._response_tree is None:
            return {"data": data, "pagination": result["pagination"]}

        all_items = await self.store.query_all(filter=filter, sort_by=sort_by, sort_order=sort_order)
        return self._composer.compose(self._response_tree, data, all_items, result["pagination"])

    async def get(self, record_id: Any) -> Record:
        op = await self._begin("get")
        record = await self.store.find_by_id(record_id)
        if record is None:
            raise NotFoundError(self.name, record_id)
        return await self._registry.joins.apply_joins(record, self.definition.relations, op.joins)

    async def create(self, data: Record) -> Record:
        await self._begin("create")
        processed = await self._run_hook("before_create", dict(data))
        if processed is None:
            processed = data
        created = await self.store.insert(processed)
        await self._run_hook("after_create", created)
        return created

    async def update(self, record_id: Any, changes: Record) -> Record:
        await self._begin("update")
        processed = await self._run_hook("before_update", record_id, dict(changes))
        if processed is None:
            processed = changes
        updated = await self.store.update(record_id, processed)
        if updated is None:
            raise NotFoundError(self.name, record_id)
        await self._run_hook("after_update", updated)
        return updated

    async def replace(self, record_id: Any, data: Record) -> Record:
        await self._begin("replace")
        replaced = await self.store.replace(record_id, data)
        if replaced is None:
            raise NotFoundError(self.name, record_id)
        return replaced

    async def delete(self, record_id: Any) -> None:
        await self._begin("delete")
        if not await self.store.exists(record_id):
            raise NotFoundError(self.name, record_id)
        await self._run_hook("before_delete", record_id)
        await self.store.delete(record_id)
        await self._run_hook("after_delete", record_id)

    # -------------------------
    # Relations
    # -------------------------
    async def related(self, relation_name: str, key: Any) -> Record | list[Record] | None:
        """
        Records on the other side of a declared relation:
          - belongsTo: `key` is the foreign key value; returns the parent or None
          - hasMany: `key` is this collection's referenced value; returns a list
          - hasOne: as hasMany, first match or None
        """
        relation = self.definition.relations.get(relation_name)
        if relation is None:
            raise RelationResolutionError(
                f"Relation '{relation_name}' not found on collection '{self.name}'"
            )
        return await self._registry.joins.related_records(relation, key)

    def accessor(self, name: str) -> Callable[[Any], Awaitable[Record | list[Record] | None]]:
        relation_name = self.accessors.get(name)
        if relation_name is None:
            available = ", ".join(sorted(self.accessors)) or "none"
            raise KeyError(f"Unknown relation accessor '{name}' on '{self.name}'. Available: {available}")

        async def call(key: Any) -> Record | list[Record] | None:
            return await self.related(relation_name, key)

        return call
