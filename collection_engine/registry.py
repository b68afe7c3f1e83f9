from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from collection_engine.collection import Collection
from collection_engine.collection_model import (
    CollectionDefinition,
    definitions_equivalent,
    field_to_dict,
    normalize_definition,
)
from collection_engine.config import EngineConfig
from collection_engine.dependencies import DependencyResolver
from collection_engine.errors import ConfigurationError, runtime_error
from collection_engine.generators import GeneratorSynthesizer
from collection_engine.joins import JoinResolver
from collection_engine.persistence import Persistence, persistence_from_config
from collection_engine.seeding import ReferentialSeeder
from collection_engine.store import CollectionStore

logger = logging.getLogger("registry")


@dataclass
class RegistryEntry:
    definition: CollectionDefinition
    store: CollectionStore
    handle: Collection


class CollectionRegistry:
    """
    Name -> (definition, store, handle) for every registered collection.

    One registry is one isolated world of collections: stores, FK pools and
    joins only ever see collections registered on the same registry.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        synthesizer: Any = None,
        persistence: Persistence | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.synthesizer = synthesizer if synthesizer is not None else GeneratorSynthesizer(seed=self.config.seed)
        self.persistence = persistence if persistence is not None else persistence_from_config(self.config)

        # bumped on every register/unregister/clear; invalidates the cached seed order
        self.version = 0
        self._entries: dict[str, RegistryEntry] = {}

        self._resolver = DependencyResolver(self)
        self._seeder = ReferentialSeeder(self, seed=self.config.seed, shuffle=self.config.shuffle_fk_pools)
        self._joins = JoinResolver(self)

    @property
    def resolver(self) -> DependencyResolver:
        return self._resolver

    @property
    def joins(self) -> JoinResolver:
        return self._joins

    # -------------------------
    # Registration
    # -------------------------
    def register(self, definition: CollectionDefinition) -> Collection:
        normalized = normalize_definition(definition, default_seed_count=self.config.default_seed_count)
        name = normalized.name

        existing = self._entries.get(name)
        if existing is not None:
            if definitions_equivalent(existing.definition, normalized):
                logger.warning("Collection '%s' is already registered; returning the existing handle", name)
                return existing.handle
            raise ConfigurationError(
                runtime_error(
                    f"Collection '{name}'",
                    "already registered with a different definition",
                    "use a unique collection name or unregister the old definition first",
                )
            )

        store = CollectionStore(
            normalized,
            synthesizer=self.synthesizer,
            persistence=self.persistence,
            seeder=self._seeder,
            default_page_limit=self.config.default_page_limit,
        )
        handle = Collection(normalized, store, self)
        self._entries[name] = RegistryEntry(definition=normalized, store=store, handle=handle)
        self.version += 1

        logger.debug(
            "Registered collection '%s' base_path=%s seed_count=%s relations=%s",
            name, normalized.base_path, normalized.seed_count, list(normalized.relations)
        )
        return handle

    def unregister(self, name: str) -> bool:
        if self._entries.pop(name, None) is None:
            return False
        self.version += 1
        logger.debug("Unregistered collection '%s'", name)
        return True

    def clear(self) -> None:
        """Drop every registration. Persisted data is left untouched."""
        self._entries.clear()
        self.version += 1

    # -------------------------
    # Lookups
    # -------------------------
    def get(self, name: str) -> Collection | None:
        entry = self._entries.get(name)
        return entry.handle if entry is not None else None

    def get_store(self, name: str) -> CollectionStore | None:
        entry = self._entries.get(name)
        return entry.store if entry is not None else None

    def get_definition(self, name: str) -> CollectionDefinition | None:
        entry = self._entries.get(name)
        return entry.definition if entry is not None else None

    def has(self, name: str) -> bool:
        return name in self._entries

    def names(self) -> list[str]:
        return list(self._entries)

    def definitions(self) -> dict[str, CollectionDefinition]:
        return {name: entry.definition for name, entry in self._entries.items()}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    # -------------------------
    # Seeding
    # -------------------------
    def seed_order(self) -> list[str]:
        return self._resolver.seed_order()

    async def seed_all(self) -> None:
        """Initialize every registered store, parents first."""
        for name in self.seed_order():
            store = self.get_store(name)
            if store is not None:
                await store.initialize()

    # -------------------------
    # Export
    # -------------------------
    def export_snapshot(self) -> list[dict[str, Any]]:
        """
        Plain-data description of every registered collection, for tooling.
        Stores are not touched, so nothing is seeded by exporting.
        """
        snapshot: list[dict[str, Any]] = []
        for name, entry in self._entries.items():
            definition = entry.definition
            snapshot.append(
                {
                    "name": name,
                    "basePath": definition.base_path,
                    "operations": definition.enabled_operations(),
                    "seedInstruction": definition.seed_instruction,
                    "schema": field_to_dict(definition.schema),  # type: ignore[arg-type]
                    "relations": {
                        rel_name: asdict(relation) for rel_name, relation in definition.relations.items()
                    },
                }
            )
        return snapshot
