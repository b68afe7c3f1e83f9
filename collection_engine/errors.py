from __future__ import annotations


def runtime_error(location: str, issue: str, hint: str) -> str:
    return f"{location}: {issue}. Fix: {hint}."


class CollectionEngineError(Exception):
    """Base class for every error raised by the collection engine."""


class ConfigurationError(CollectionEngineError, ValueError):
    """Invalid or conflicting collection definition, or a cyclic dependency graph."""


class NotFoundError(CollectionEngineError, LookupError):
    def __init__(self, collection: str, record_id: object) -> None:
        super().__init__(f"{collection} not found: {record_id}")
        self.collection = collection
        self.record_id = record_id


class OperationDisabledError(CollectionEngineError):
    def __init__(self, collection: str, operation: str) -> None:
        super().__init__(
            runtime_error(
                f"Collection '{collection}'",
                f"operation '{operation}' is disabled",
                f"enable operations.{operation} in the collection definition",
            )
        )
        self.collection = collection
        self.operation = operation


class RelationResolutionError(CollectionEngineError, LookupError):
    """A join referenced a relation or collection that does not exist."""
