"""Response-shape composition for list operations.

A response descriptor is any nesting of dicts, field descriptors and marker
values. It is parsed once into a small tagged tree and then interpreted by a
single recursive visitor:

    {
        "items": "$data",                              # data page goes here
        "meta": {
            "page": "collectionsMeta.page",
            "avgPrice": "collectionsMeta.avg:price",
            "active": 'collectionsMeta.count:status:"active"',
        },
    }
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Union

from collection_engine.collection_model import FieldSpec
from collection_engine.errors import ConfigurationError, runtime_error

META_PREFIX = "collectionsMeta."
DATA_MARKER = "$data"
PAGINATION_KINDS: tuple[str, ...] = ("page", "limit", "total", "totalPages")
NUMERIC_AGGREGATES: tuple[str, ...] = ("avg", "sum", "min", "max")

Record = dict[str, Any]


@dataclass(frozen=True)
class DataArrayMarker:
    pass


@dataclass(frozen=True)
class MetaFieldMarker:
    kind: str
    field: str | None = None
    value: Any = None
    has_value: bool = False


@dataclass(frozen=True)
class ObjectNode:
    children: dict[str, "Node"]


@dataclass(frozen=True)
class Passthrough:
    value: Any = None


Node = Union[DataArrayMarker, MetaFieldMarker, ObjectNode, Passthrough]


class meta:
    """Builders for meta marker strings."""

    @staticmethod
    def page() -> str:
        return f"{META_PREFIX}page"

    @staticmethod
    def limit() -> str:
        return f"{META_PREFIX}limit"

    @staticmethod
    def total() -> str:
        return f"{META_PREFIX}total"

    @staticmethod
    def total_pages() -> str:
        return f"{META_PREFIX}totalPages"

    @staticmethod
    def avg(field: str) -> str:
        return f"{META_PREFIX}avg:{field}"

    @staticmethod
    def sum(field: str) -> str:
        return f"{META_PREFIX}sum:{field}"

    @staticmethod
    def min(field: str) -> str:
        return f"{META_PREFIX}min:{field}"

    @staticmethod
    def max(field: str) -> str:
        return f"{META_PREFIX}max:{field}"

    @staticmethod
    def count(field: str | None = None, *value: Any) -> str:
        if field is None:
            return f"{META_PREFIX}count"
        if value:
            return f"{META_PREFIX}count:{field}:{json.dumps(value[0])}"
        return f"{META_PREFIX}count:{field}"


def parse_meta_field(text: str) -> MetaFieldMarker | None:
    if not text.startswith(META_PREFIX):
        return None

    kind, *rest = text[len(META_PREFIX):].split(":", 2)
    if kind in PAGINATION_KINDS:
        return MetaFieldMarker(kind=kind)

    if kind in NUMERIC_AGGREGATES:
        if not rest or not rest[0]:
            raise ConfigurationError(
                runtime_error(
                    f"Response marker '{text}'",
                    f"aggregate '{kind}' needs a field name",
                    f"write it as '{META_PREFIX}{kind}:<field>'",
                )
            )
        return MetaFieldMarker(kind=kind, field=rest[0])

    if kind == "count":
        field = rest[0] if rest and rest[0] else None
        if len(rest) > 1:
            try:
                value = json.loads(rest[1])
            except json.JSONDecodeError as exc:
                raise ConfigurationError(
                    runtime_error(
                        f"Response marker '{text}'",
                        "count filter value is not valid JSON",
                        'quote strings, for example collectionsMeta.count:status:"active"',
                    )
                ) from exc
            return MetaFieldMarker(kind="count", field=field, value=value, has_value=True)
        return MetaFieldMarker(kind="count", field=field)

    return None


def parse_descriptor(descriptor: Any) -> Node:
    if isinstance(descriptor, list) and len(descriptor) > 0:
        return DataArrayMarker()

    if isinstance(descriptor, FieldSpec):
        if descriptor.kind == "array":
            return DataArrayMarker()
        if descriptor.kind == "object":
            return ObjectNode(
                {k: parse_descriptor(v) for k, v in (descriptor.children or {}).items() if not k.startswith("_")}
            )
        return Passthrough(descriptor)

    if isinstance(descriptor, str):
        if descriptor == DATA_MARKER:
            return DataArrayMarker()
        marker = parse_meta_field(descriptor)
        return marker if marker is not None else Passthrough(descriptor)

    if isinstance(descriptor, dict):
        return ObjectNode(
            {k: parse_descriptor(v) for k, v in descriptor.items() if not (isinstance(k, str) and k.startswith("_"))}
        )

    return Passthrough(descriptor)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def calculate_aggregate(items: list[Record], marker: MetaFieldMarker) -> int | float | None:
    if marker.kind == "count":
        if marker.field is None or not marker.has_value:
            return len(items)
        return sum(1 for item in items if item.get(marker.field) == marker.value)

    values = [item.get(marker.field) for item in items]
    numbers = [v for v in values if _is_number(v)]
    if not numbers:
        return None

    if marker.kind == "avg":
        return sum(numbers) / len(numbers)
    if marker.kind == "sum":
        return sum(numbers)
    if marker.kind == "min":
        return min(numbers)
    if marker.kind == "max":
        return max(numbers)
    return None


class ResponseComposer:
    """Places a data page, pagination values and aggregates into a response shape."""

    def parse(self, descriptor: Any) -> Node:
        return parse_descriptor(descriptor)

    def compose(
        self,
        tree: Node,
        page: list[Record],
        all_items: list[Record],
        pagination: dict[str, int],
    ) -> Any:
        if isinstance(tree, DataArrayMarker):
            return page

        if isinstance(tree, MetaFieldMarker):
            if tree.kind in PAGINATION_KINDS:
                return pagination.get(tree.kind)
            return calculate_aggregate(all_items, tree)

        if isinstance(tree, ObjectNode):
            result: dict[str, Any] = {}
            for key, child in tree.children.items():
                if isinstance(child, Passthrough):
                    continue
                value = self.compose(child, page, all_items, pagination)
                if isinstance(child, ObjectNode) and not value:
                    continue
                result[key] = value
            return result

        return tree.value
