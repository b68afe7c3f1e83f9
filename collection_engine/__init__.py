"""Stateful collection engine: synthetic record tables with FK-consistent
seeding, read-time joins and composed list responses.

Typical use::

    registry = CollectionRegistry(EngineConfig(seed=7))
    users = registry.register(CollectionDefinition("users", {"name": field("person.fullName")}))
    page = await users.list(limit=5)
"""

from __future__ import annotations

from collection_engine.collection import Collection
from collection_engine.collection_model import (
    CollectionDefinition,
    CollectionHooks,
    FieldSpec,
    JoinField,
    OperationConfig,
    RelationSpec,
    array_field,
    field,
    object_field,
)
from collection_engine.config import EngineConfig
from collection_engine.errors import (
    CollectionEngineError,
    ConfigurationError,
    NotFoundError,
    OperationDisabledError,
    RelationResolutionError,
)
from collection_engine.generators import GeneratorSynthesizer
from collection_engine.logging_setup import setup_logging
from collection_engine.persistence import JsonFilePersistence, MemoryPersistence, SqlitePersistence
from collection_engine.registry import CollectionRegistry
from collection_engine.response import ResponseComposer, meta
from collection_engine.store import CollectionStore

__all__ = [
    "Collection",
    "CollectionDefinition",
    "CollectionEngineError",
    "CollectionHooks",
    "CollectionRegistry",
    "CollectionStore",
    "ConfigurationError",
    "EngineConfig",
    "FieldSpec",
    "GeneratorSynthesizer",
    "JoinField",
    "JsonFilePersistence",
    "MemoryPersistence",
    "NotFoundError",
    "OperationConfig",
    "OperationDisabledError",
    "RelationResolutionError",
    "RelationSpec",
    "ResponseComposer",
    "SqlitePersistence",
    "array_field",
    "field",
    "meta",
    "object_field",
    "setup_logging",
]
