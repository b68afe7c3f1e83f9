from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from collection_engine.errors import ConfigurationError, runtime_error

if TYPE_CHECKING:
    from collection_engine.registry import CollectionRegistry

logger = logging.getLogger("dependencies")


class DependencyResolver:
    """
    Seed ordering over the registered collections.

    Edge A -> B when A has a belongsTo relation targeting B. The order is
    computed on demand and cached until the registry changes, because
    collections may register in any order across modules.
    """

    def __init__(self, registry: CollectionRegistry) -> None:
        self._registry = registry
        self._cached_version: int | None = None
        self._cached_order: list[str] = []

    def build_graph(self) -> dict[str, list[str]]:
        """name -> belongsTo targets, in declaration order. Unregistered targets are leaf nodes."""
        graph: dict[str, list[str]] = {}
        for name, definition in self._registry.definitions().items():
            deps = graph.setdefault(name, [])
            for relation in definition.belongs_to().values():
                if relation.collection not in deps:
                    deps.append(relation.collection)
                graph.setdefault(relation.collection, [])
        return graph

    def seed_order(self, roots: Iterable[str] | None = None) -> list[str]:
        """
        Return collection names with every dependency before its dependents.
        With `roots`, only collections reachable from them are ordered.
        Raises ConfigurationError naming a collection on a dependency cycle.
        """
        if roots is None:
            version = self._registry.version
            if self._cached_version != version:
                graph = self.build_graph()
                self._cached_order = _topological_order(graph, list(graph))
                self._cached_version = version
                logger.debug("Resolved seed order: %s", self._cached_order)
            return list(self._cached_order)

        graph = self.build_graph()
        return _topological_order(graph, [r for r in roots])

    def invalidate(self) -> None:
        self._cached_version = None

    def dependencies_of(self, name: str) -> set[str]:
        definition = self._registry.definitions().get(name)
        if definition is None:
            return set()
        return {r.collection for r in definition.belongs_to().values()}

    def dependents_of(self, name: str) -> set[str]:
        """Collections with any relation pointing at `name`."""
        dependents: set[str] = set()
        for other, definition in self._registry.definitions().items():
            if any(r.collection == name for r in definition.relations.values()):
                dependents.add(other)
        return dependents

    def related_collections(self, name: str) -> set[str]:
        """Transitive closure over dependencies and dependents, including `name`."""
        visited: set[str] = set()
        stack = [name]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            stack.extend(self.dependencies_of(current) - visited)
            stack.extend(self.dependents_of(current) - visited)
        return visited


def _topological_order(graph: dict[str, list[str]], roots: list[str]) -> list[str]:
    out: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()

    def visit(name: str) -> None:
        if name in visited:
            return
        if name in visiting:
            raise ConfigurationError(
                runtime_error(
                    "Collection relations",
                    f"circular dependency detected involving collection '{name}'",
                    "remove one belongsTo relation from the cycle or model it as hasMany/hasOne",
                )
            )
        visiting.add(name)
        for dep in graph.get(name, []):
            visit(dep)
        visiting.discard(name)
        visited.add(name)
        out.append(name)

    for root in roots:
        visit(root)
    return out
