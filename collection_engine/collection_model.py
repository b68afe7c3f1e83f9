from __future__ import annotations

from dataclasses import dataclass, field as dc_field, replace
from typing import Any, Callable, Literal, Optional

from collection_engine.errors import ConfigurationError, runtime_error

FieldKind = Literal["primitive", "object", "array"]
RelationKind = Literal["belongsTo", "hasMany", "hasOne"]

FIELD_KINDS: tuple[str, ...] = ("primitive", "object", "array")
RELATION_KINDS: tuple[str, ...] = ("belongsTo", "hasMany", "hasOne")
OPERATION_NAMES: tuple[str, ...] = ("list", "get", "create", "update", "replace", "delete")
RESERVED_FIELDS: tuple[str, ...] = ("id", "createdAt", "updatedAt")


@dataclass(frozen=True)
class FieldSpec:
    kind: str
    field_type: str
    children: dict[str, FieldSpec] | None = None  # object kind
    element: FieldSpec | None = None  # array kind
    params: dict[str, Any] | None = None


def field(field_type: str = "string", **params: Any) -> FieldSpec:
    return FieldSpec(kind="primitive", field_type=field_type, params=params or None)


def object_field(children: dict[str, FieldSpec] | None = None, **named: FieldSpec) -> FieldSpec:
    merged = dict(children or {})
    merged.update(named)
    return FieldSpec(kind="object", field_type="object", children=merged)


def array_field(element: FieldSpec, *, min_items: int = 3, max_items: int = 5) -> FieldSpec:
    return FieldSpec(
        kind="array",
        field_type="array",
        element=element,
        params={"min_items": min_items, "max_items": max_items},
    )


def field_to_dict(spec: FieldSpec) -> dict[str, Any]:
    """Plain-dict rendering of a field descriptor for snapshots and tooling."""
    out: dict[str, Any] = {"kind": spec.kind, "fieldType": spec.field_type}
    if spec.children is not None:
        out["children"] = {name: field_to_dict(child) for name, child in spec.children.items()}
    if spec.element is not None:
        out["element"] = field_to_dict(spec.element)
    if spec.params:
        out["params"] = dict(spec.params)
    return out


@dataclass(frozen=True)
class RelationSpec:
    collection: str
    foreign_key: str
    kind: str = "belongsTo"
    references: str = "id"
    # accessor name in the collection's relation table; defaults to get_<relation>
    accessor: str | None = None


@dataclass(frozen=True)
class JoinField:
    """Output field filled at read time from a dot-separated relation path."""

    path: str
    field: str | None = None


@dataclass(frozen=True)
class OperationConfig:
    enabled: bool = True
    delay_ms: int = 0
    # list only: response descriptor composed from page + aggregates
    response_shape: Any = None
    joins: dict[str, JoinField] = dc_field(default_factory=dict)
    disable_query_params: bool = False


HookFn = Callable[..., Any]


@dataclass(frozen=True)
class CollectionHooks:
    before_create: Optional[HookFn] = None
    after_create: Optional[HookFn] = None
    before_update: Optional[HookFn] = None
    after_update: Optional[HookFn] = None
    before_delete: Optional[HookFn] = None
    after_delete: Optional[HookFn] = None


@dataclass(frozen=True)
class CollectionDefinition:
    name: str
    schema: FieldSpec | dict[str, FieldSpec]
    relations: dict[str, RelationSpec] = dc_field(default_factory=dict)
    # None means EngineConfig.default_seed_count
    seed_count: int | None = None
    seed_instruction: str = ""
    operations: dict[str, bool | OperationConfig] = dc_field(default_factory=dict)
    base_path: str | None = None
    hooks: CollectionHooks = dc_field(default_factory=CollectionHooks)

    def operation(self, name: str) -> OperationConfig:
        op = self.operations.get(name, True)
        if isinstance(op, OperationConfig):
            return op
        return OperationConfig(enabled=bool(op))

    def enabled_operations(self) -> list[str]:
        return [name for name in OPERATION_NAMES if self.operation(name).enabled]

    def belongs_to(self) -> dict[str, RelationSpec]:
        return {k: r for k, r in self.relations.items() if r.kind == "belongsTo"}


def accessor_name(relation_name: str, relation: RelationSpec) -> str:
    return relation.accessor or f"get_{relation_name}"


def _normalize_operations(ops: dict[str, bool | OperationConfig]) -> dict[str, OperationConfig]:
    normalized: dict[str, OperationConfig] = {}
    for name in OPERATION_NAMES:
        value = ops.get(name, True)
        if isinstance(value, OperationConfig):
            normalized[name] = value
        else:
            normalized[name] = OperationConfig(enabled=bool(value))
    return normalized


def normalize_definition(definition: CollectionDefinition, *, default_seed_count: int) -> CollectionDefinition:
    """
    Fill defaults so that two definitions describing the same collection
    compare equal:
      - dict schemas become object FieldSpecs
      - seed_count / base_path defaults
      - every operation becomes an OperationConfig
    """
    validate_definition(definition)

    schema = definition.schema
    if isinstance(schema, dict):
        schema = object_field(schema)

    seed_count = definition.seed_count
    if seed_count is None:
        seed_count = default_seed_count

    return replace(
        definition,
        name=definition.name.strip(),
        schema=schema,
        relations=dict(definition.relations),
        seed_count=seed_count,
        operations=_normalize_operations(definition.operations),
        base_path=definition.base_path or f"/{definition.name.strip()}",
    )


def definitions_equivalent(a: CollectionDefinition, b: CollectionDefinition) -> bool:
    # hooks are callables; identity of behaviour cannot be compared
    return (
        a.name == b.name
        and a.schema == b.schema
        and a.relations == b.relations
        and a.seed_count == b.seed_count
        and a.seed_instruction == b.seed_instruction
        and a.base_path == b.base_path
        and a.operations == b.operations
    )


def _validate_field(spec: object, *, location: str) -> None:
    if not isinstance(spec, FieldSpec):
        raise ConfigurationError(
            runtime_error(
                location,
                f"expected a FieldSpec, got {type(spec).__name__}",
                "build field descriptors with field(), object_field() or array_field()",
            )
        )
    if spec.kind not in FIELD_KINDS:
        allowed = ", ".join(FIELD_KINDS)
        raise ConfigurationError(
            runtime_error(location, f"unsupported field kind '{spec.kind}'", f"use one of: {allowed}")
        )
    if spec.kind == "object":
        for child_name, child in (spec.children or {}).items():
            _validate_field(child, location=f"{location}.{child_name}")
    if spec.kind == "array":
        if spec.element is None:
            raise ConfigurationError(
                runtime_error(location, "array field has no element descriptor", "pass an element to array_field()")
            )
        _validate_field(spec.element, location=f"{location}[]")


def validate_definition(definition: CollectionDefinition) -> None:
    if not isinstance(definition.name, str) or not definition.name.strip():
        raise ConfigurationError("Collection name cannot be empty.")

    loc = f"Collection '{definition.name}'"

    schema = definition.schema
    if isinstance(schema, dict):
        for name, child in schema.items():
            _validate_field(child, location=f"{loc}, field '{name}'")
    else:
        _validate_field(schema, location=f"{loc}, schema")
        if schema.kind != "object":
            raise ConfigurationError(
                runtime_error(
                    loc,
                    f"entity schema must be an object descriptor, got kind '{schema.kind}'",
                    "wrap the entity fields in object_field()",
                )
            )

    if definition.seed_count is not None:
        if isinstance(definition.seed_count, bool) or not isinstance(definition.seed_count, int):
            raise ConfigurationError(
                runtime_error(loc, "seed_count must be an integer", "set seed_count to a whole number >= 0")
            )
        if definition.seed_count < 0:
            raise ConfigurationError(
                runtime_error(loc, f"seed_count cannot be negative ({definition.seed_count})", "set seed_count >= 0")
            )

    for op_name, op in definition.operations.items():
        if op_name not in OPERATION_NAMES:
            allowed = ", ".join(OPERATION_NAMES)
            raise ConfigurationError(
                runtime_error(loc, f"unknown operation '{op_name}'", f"use one of: {allowed}")
            )
        if isinstance(op, OperationConfig):
            if op.response_shape is not None and op_name != "list":
                raise ConfigurationError(
                    runtime_error(
                        f"{loc}, operation '{op_name}'",
                        "response_shape is only supported on the list operation",
                        "move response_shape to operations['list']",
                    )
                )
            for out_field, join in op.joins.items():
                if not isinstance(join, JoinField) or not join.path.strip():
                    raise ConfigurationError(
                        runtime_error(
                            f"{loc}, operation '{op_name}', join '{out_field}'",
                            "join must be a JoinField with a non-empty path",
                            "use JoinField('relation.path')",
                        )
                    )

    accessors: set[str] = set()
    for rel_name, rel in definition.relations.items():
        rel_loc = f"{loc}, relation '{rel_name}'"
        if not isinstance(rel, RelationSpec):
            raise ConfigurationError(
                runtime_error(rel_loc, "relation must be a RelationSpec", "declare relations with RelationSpec(...)")
            )
        if rel.kind not in RELATION_KINDS:
            allowed = ", ".join(RELATION_KINDS)
            raise ConfigurationError(
                runtime_error(rel_loc, f"unsupported relation kind '{rel.kind}'", f"use one of: {allowed}")
            )
        if not rel.collection.strip():
            raise ConfigurationError(
                runtime_error(rel_loc, "target collection is empty", "set RelationSpec.collection")
            )
        if not rel.foreign_key.strip():
            raise ConfigurationError(
                runtime_error(rel_loc, "foreign_key is empty", "set RelationSpec.foreign_key")
            )
        if rel.kind == "belongsTo" and rel.foreign_key in RESERVED_FIELDS:
            raise ConfigurationError(
                runtime_error(
                    rel_loc,
                    f"foreign_key '{rel.foreign_key}' is a reserved record field",
                    "store the foreign key in its own field (for example 'userId')",
                )
            )
        name = accessor_name(rel_name, rel)
        if name in accessors:
            raise ConfigurationError(
                runtime_error(rel_loc, f"duplicate relation accessor '{name}'", "give each relation a unique accessor")
            )
        accessors.add(name)
