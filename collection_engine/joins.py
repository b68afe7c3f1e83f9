from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from collection_engine.collection_model import JoinField, RelationSpec
from collection_engine.errors import RelationResolutionError

if TYPE_CHECKING:
    from collection_engine.registry import CollectionRegistry
    from collection_engine.store import CollectionStore

logger = logging.getLogger("joins")

Record = dict[str, Any]


class JoinResolver:
    """
    Read-time joins over registered collections. Related data is looked up
    on every call; nothing denormalized is ever stored.
    """

    def __init__(self, registry: CollectionRegistry) -> None:
        self._registry = registry

    def _target(self, relation: RelationSpec) -> CollectionStore:
        store = self._registry.get_store(relation.collection)
        if store is None:
            raise RelationResolutionError(f"Related collection '{relation.collection}' not found")
        return store

    async def related_records(self, relation: RelationSpec, key: Any) -> Record | list[Record] | None:
        """
        Look up the other side of `relation` for an owner key:
          - belongsTo: key is the FK value; match target[references]
          - hasMany / hasOne: key is the owner's referenced value; match target[foreign_key]
        """
        store = self._target(relation)
        if relation.kind == "belongsTo":
            if key is None or key == "":
                return None
            for row in await store.to_list():
                if row.get(relation.references) == key:
                    return row
            return None

        if key is None:
            return [] if relation.kind == "hasMany" else None
        matches = [row for row in await store.to_list() if row.get(relation.foreign_key) == key]
        if relation.kind == "hasMany":
            return matches
        return matches[0] if matches else None

    async def resolve_path(
        self,
        record: Record,
        relations: dict[str, RelationSpec] | None,
        path: str,
        field: str | None = None,
    ) -> Any:
        if not relations:
            raise RelationResolutionError(f"No relations configured for join path '{path}'")

        head, _, rest = path.partition(".")
        relation = relations.get(head)
        if relation is None:
            raise RelationResolutionError(f"Relation '{head}' not found in relations config")

        self._target(relation)
        if relation.kind == "belongsTo":
            related = await self.related_records(relation, record.get(relation.foreign_key))
        else:
            related = await self.related_records(relation, record.get(relation.references))

        if related is None:
            return None

        if rest:
            target_def = self._registry.get_definition(relation.collection)
            target_relations = target_def.relations if target_def is not None else None
            if isinstance(related, list):
                return [await self.resolve_path(item, target_relations, rest, field) for item in related]
            return await self.resolve_path(related, target_relations, rest, field)

        if field:
            if isinstance(related, list):
                return [item.get(field) for item in related]
            return related.get(field)
        return related

    async def apply_joins(
        self,
        data: Record | list[Record],
        relations: dict[str, RelationSpec] | None,
        joins: dict[str, JoinField],
    ) -> Record | list[Record]:
        if not joins:
            return data
        if isinstance(data, list):
            return [await self._apply_one(item, relations, joins) for item in data]
        return await self._apply_one(data, relations, joins)

    async def _apply_one(
        self,
        record: Record,
        relations: dict[str, RelationSpec] | None,
        joins: dict[str, JoinField],
    ) -> Record:
        result = dict(record)
        for out_field, join in joins.items():
            try:
                result[out_field] = await self.resolve_path(record, relations, join.path, join.field)
            except RelationResolutionError as exc:
                logger.warning("Failed to resolve join for field '%s': %s", out_field, exc)
                result[out_field] = None
        return result
