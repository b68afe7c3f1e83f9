from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from collection_engine.async_utils import maybe_await
from collection_engine.collection_model import CollectionDefinition
from collection_engine.persistence import MemoryPersistence, Persistence
from collection_engine.query import apply_filters, apply_sorting, paginate

if TYPE_CHECKING:
    from collection_engine.seeding import ReferentialSeeder

logger = logging.getLogger("store")

Record = dict[str, Any]


def _iso_utc(dt: datetime) -> str:
    return dt.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _parse_iso_utc(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def new_record_id() -> str:
    return str(uuid.uuid4())


class CollectionStore:
    """
    In-memory record table for one collection.

    Lifecycle:
      - constructed empty when the collection is registered
      - initialized once on first use: load from persistence, or seed
        `seed_count` synthetic records (FK fields drawn from parent pools)
      - mutated by CRUD; every mutation is mirrored to the persistence hooks

    Concurrent first callers share a single initialization task.
    """

    def __init__(
        self,
        definition: CollectionDefinition,
        *,
        synthesizer: Any,
        persistence: Persistence | None = None,
        seeder: ReferentialSeeder | None = None,
        default_page_limit: int = 20,
    ) -> None:
        self.definition = definition
        self.name = definition.name
        self._synthesizer = synthesizer
        self._persistence = persistence or MemoryPersistence()
        self._seeder = seeder
        self._default_page_limit = default_page_limit

        self._data: dict[Any, Record] = {}
        self._initialized = False
        self._init_task: asyncio.Future[None] | None = None
        self._last_stamp = datetime.min.replace(tzinfo=timezone.utc)

    # -------------------------
    # Initialization
    # -------------------------
    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        task = self._init_task
        try:
            # shield: one cancelled caller must not cancel the shared task
            await asyncio.shield(task)
        except BaseException:
            if task.done() and self._init_task is task and not self._initialized:
                self._init_task = None
            raise

    async def _initialize(self) -> None:
        loaded = await self._load()
        if loaded:
            for row in loaded:
                record = dict(row)
                record["id"] = record.get("id") or new_record_id()
                self._observe_stamp(record.get("updatedAt"))
                self._data[record["id"]] = record
            self._initialized = True
            logger.debug("Loaded collection '%s' rows=%d from persistence", self.name, len(loaded))
            return

        records = await self._generate_seed_records()
        for record in records:
            self._data[record["id"]] = record

        await self._persist("save", self.name, self._snapshot())
        self._initialized = True
        logger.info("Seeded collection '%s' rows=%d", self.name, len(records))

    async def _generate_seed_records(self) -> list[Record]:
        pools = {}
        if self._seeder is not None:
            pools = await self._seeder.build_pools(self.definition)

        fields = self.definition.schema.children or {}  # type: ignore[union-attr]
        seed_count = int(self.definition.seed_count or 0)

        records: list[Record] = []
        seen_ids: set[Any] = set()
        for _ in range(seed_count):
            row: Record = {}
            for field_name, spec in fields.items():
                pool = pools.get(field_name)
                if pool is not None:
                    row[field_name] = pool.draw()
                else:
                    row[field_name] = await maybe_await(self._synthesizer.synthesize(spec))

            # FK fields the entity schema does not declare still get a value
            for fk_field, pool in pools.items():
                if fk_field not in row:
                    row[fk_field] = pool.draw()

            record = self._stamp_new(row)
            if record["id"] in seen_ids:
                record["id"] = new_record_id()
            seen_ids.add(record["id"])
            records.append(record)

        return records

    # -------------------------
    # Timestamps
    # -------------------------
    def _observe_stamp(self, value: object) -> None:
        dt = _parse_iso_utc(value)
        if dt is not None and dt > self._last_stamp:
            self._last_stamp = dt

    def _next_stamp(self) -> str:
        now = datetime.now(timezone.utc)
        if now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return _iso_utc(now)

    def _stamp_new(self, row: Record) -> Record:
        now = self._next_stamp()
        record = dict(row)
        record["id"] = row.get("id") or new_record_id()
        record["createdAt"] = row.get("createdAt") or now
        record["updatedAt"] = now
        return record

    # -------------------------
    # Persistence
    # -------------------------
    async def _load(self) -> list[Record] | None:
        try:
            return await maybe_await(self._persistence.load(self.name))
        except Exception:
            logger.exception("Failed to load collection '%s' from persistence; seeding instead", self.name)
            return None

    async def _persist(self, hook: str, *args: Any) -> None:
        try:
            await maybe_await(getattr(self._persistence, hook)(*args))
        except Exception:
            logger.exception("Failed to persist %s for collection '%s'", hook, self.name)

    def _snapshot(self) -> list[Record]:
        return [copy.deepcopy(r) for r in self._data.values()]

    # -------------------------
    # Reads
    # -------------------------
    async def query(
        self,
        *,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
        sort_order: str = "asc",
        filter: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        items = await self.query_all(filter=filter, sort_by=sort_by, sort_order=sort_order)
        data, pagination = paginate(items, page, limit, default_limit=self._default_page_limit)
        return {"data": data, "pagination": pagination}

    async def query_all(
        self,
        *,
        filter: dict[str, Any] | None = None,
        sort_by: str | None = None,
        sort_order: str = "asc",
    ) -> list[Record]:
        await self.initialize()
        items = apply_filters(self._data.values(), filter)
        if sort_by:
            items = apply_sorting(items, sort_by, sort_order or "asc")
        return [copy.deepcopy(r) for r in items]

    async def find_by_id(self, record_id: Any) -> Record | None:
        await self.initialize()
        if record_id is None:
            return None
        record = self._data.get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def exists(self, record_id: Any) -> bool:
        await self.initialize()
        return record_id is not None and record_id in self._data

    async def count(self, filter: dict[str, Any] | None = None) -> int:
        await self.initialize()
        if not filter:
            return len(self._data)
        return len(apply_filters(self._data.values(), filter))

    async def to_list(self) -> list[Record]:
        await self.initialize()
        return self._snapshot()

    async def values_of(self, field_name: str) -> list[Any]:
        """Non-null values of one field in insertion order (FK pool source)."""
        await self.initialize()
        return [r[field_name] for r in self._data.values() if r.get(field_name) is not None]

    # -------------------------
    # Writes
    # -------------------------
    async def insert(self, item: Record) -> Record:
        await self.initialize()
        record = self._stamp_new(copy.deepcopy(item))
        self._data[record["id"]] = record
        await self._persist("create", self.name, copy.deepcopy(record))
        return copy.deepcopy(record)

    async def update(self, record_id: Any, changes: Record) -> Record | None:
        await self.initialize()
        existing = self._data.get(record_id) if record_id is not None else None
        if existing is None:
            return None

        updated = {**existing, **copy.deepcopy(changes)}
        updated["id"] = existing["id"]
        updated["createdAt"] = existing["createdAt"]
        updated["updatedAt"] = self._next_stamp()
        self._data[record_id] = updated

        persisted = {k: v for k, v in updated.items() if k in changes or k == "updatedAt"}
        persisted.pop("id", None)
        persisted.pop("createdAt", None)
        await self._persist("update", self.name, record_id, persisted)
        return copy.deepcopy(updated)

    async def replace(self, record_id: Any, item: Record) -> Record | None:
        await self.initialize()
        existing = self._data.get(record_id) if record_id is not None else None
        if existing is None:
            return None

        replaced = copy.deepcopy(item)
        replaced["id"] = existing["id"]
        replaced["createdAt"] = existing["createdAt"]
        replaced["updatedAt"] = self._next_stamp()
        self._data[record_id] = replaced

        # a full rewrite can drop keys, which incremental merge hooks cannot express
        await self._persist("save", self.name, self._snapshot())
        return copy.deepcopy(replaced)

    async def delete(self, record_id: Any) -> bool:
        await self.initialize()
        if record_id is None or record_id not in self._data:
            return False
        del self._data[record_id]
        await self._persist("delete", self.name, record_id)
        return True

    async def clear(self) -> None:
        """Empty the table. The store stays initialized, so it is not re-seeded."""
        if self._init_task is not None and not self._initialized:
            await self.initialize()
        self._data.clear()
        self._initialized = True
        await self._persist("save", self.name, [])

    def reset(self) -> None:
        """Forget data and initialization state; the next access seeds again."""
        self._data.clear()
        self._initialized = False
        self._init_task = None
