from __future__ import annotations

import hashlib
import logging
import random
from typing import TYPE_CHECKING, Any, Iterable

from collection_engine.collection_model import CollectionDefinition, RelationSpec
from collection_engine.errors import runtime_error

if TYPE_CHECKING:
    from collection_engine.registry import CollectionRegistry

logger = logging.getLogger("seeding")


def _stable_subseed(base_seed: int, name: str) -> int:
    """
    Deterministically derive a per-FK seed from base_seed and a string name.
    Avoids Python's built-in hash() which is randomized between runs.
    """
    h = hashlib.sha256(f"{base_seed}:{name}".encode("utf-8")).hexdigest()
    return int(h[:8], 16)


class FKValuePool:
    """
    Parent key values handed out round-robin. Every value is drawn once
    before any value repeats, so N draws over M values cover all M when
    N >= M; with shuffling, N < M draws are a uniform random subset.
    """

    def __init__(self, values: Iterable[Any], *, rng: random.Random | None = None, shuffle: bool = True) -> None:
        self.values = list(values)
        if not self.values:
            raise ValueError("FKValuePool needs at least one parent value.")
        self._rng = rng or random.Random()
        self._shuffle = shuffle
        self._cursor = 0
        if shuffle:
            self._rng.shuffle(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def draw(self) -> Any:
        if self._cursor == len(self.values):
            self._cursor = 0
            if self._shuffle:
                self._rng.shuffle(self.values)
        value = self.values[self._cursor]
        self._cursor += 1
        return value


class ReferentialSeeder:
    """
    Builds FK value pools for a collection about to be seeded. Parents are
    initialized first (recursively, through their own seeders), so touching
    a child before its parents never fails.
    """

    def __init__(self, registry: CollectionRegistry, *, seed: int | None = None, shuffle: bool = True) -> None:
        self._registry = registry
        self._seed = seed
        self._shuffle = shuffle

    def _rng_for(self, child: str, relation: RelationSpec) -> random.Random:
        if self._seed is None:
            return random.Random()
        return random.Random(
            _stable_subseed(self._seed, f"fk:{child}:{relation.foreign_key}:{relation.collection}")
        )

    def _integrity_fallback(self, child: str, relation: RelationSpec, issue: str) -> None:
        message = runtime_error(
            f"Collection '{child}', FK field '{relation.foreign_key}'",
            issue,
            f"register and seed '{relation.collection}' before '{child}' to keep FK values referentially valid",
        )
        logger.warning("%s Falling back to unconstrained values.", message)

    async def build_pools(self, definition: CollectionDefinition) -> dict[str, FKValuePool]:
        """FK field name -> pool, for every belongsTo relation whose parent has rows."""
        belongs_to = definition.belongs_to()
        if not belongs_to:
            return {}

        # fail fast on cycles before awaiting any parent
        order = self._registry.resolver.seed_order(roots=[definition.name])
        logger.debug("Seed order for '%s': %s", definition.name, order)

        pools: dict[str, FKValuePool] = {}
        for relation in belongs_to.values():
            parent_store = self._registry.get_store(relation.collection)
            if parent_store is None:
                self._integrity_fallback(
                    definition.name, relation, f"parent collection '{relation.collection}' is not registered"
                )
                continue

            await parent_store.initialize()
            parent_values = await parent_store.values_of(relation.references)
            if not parent_values:
                self._integrity_fallback(
                    definition.name, relation, f"parent collection '{relation.collection}' has no rows"
                )
                continue

            pools[relation.foreign_key] = FKValuePool(
                parent_values,
                rng=self._rng_for(definition.name, relation),
                shuffle=self._shuffle,
            )
            logger.debug(
                "FK pool for '%s.%s' -> '%s.%s' values=%d",
                definition.name, relation.foreign_key, relation.collection, relation.references, len(parent_values)
            )

        return pools
