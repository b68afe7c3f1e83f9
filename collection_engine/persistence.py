from __future__ import annotations

import json
import logging
import os
import sqlite3
from typing import Any, Protocol

from collection_engine.config import PERSISTENCE_MODES, EngineConfig
from collection_engine.errors import ConfigurationError, runtime_error

logger = logging.getLogger("persistence")

Record = dict[str, Any]


class Persistence(Protocol):
    """
    Contract consumed by CollectionStore. Every method may also be a
    coroutine function; the store awaits whatever comes back.
    """

    def load(self, name: str) -> list[Record] | None: ...

    def save(self, name: str, records: list[Record]) -> None: ...

    def create(self, name: str, record: Record) -> None: ...

    def update(self, name: str, record_id: str, changes: Record) -> None: ...

    def delete(self, name: str, record_id: str) -> None: ...


class MemoryPersistence:
    """Nothing survives the process; load always reports no data."""

    def load(self, name: str) -> list[Record] | None:
        return None

    def save(self, name: str, records: list[Record]) -> None:
        return None

    def create(self, name: str, record: Record) -> None:
        return None

    def update(self, name: str, record_id: str, changes: Record) -> None:
        return None

    def delete(self, name: str, record_id: str) -> None:
        return None


class JsonFilePersistence:
    """
    All collections in one JSON document: {collection_name: [records...]}.
    Incremental hooks rewrite the affected collection.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def _load_all(self) -> dict[str, list[Record]]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(
                runtime_error(
                    f"Persistence file '{self.path}'",
                    "top-level JSON value must be an object keyed by collection name",
                    "delete the file or restore an object-shaped document",
                )
            )
        return data

    def _save_all(self, data: dict[str, list[Record]]) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def load(self, name: str) -> list[Record] | None:
        return self._load_all().get(name) or None

    def save(self, name: str, records: list[Record]) -> None:
        data = self._load_all()
        data[name] = list(records)
        self._save_all(data)
        logger.debug("Saved %d records for '%s' to %s", len(records), name, self.path)

    def create(self, name: str, record: Record) -> None:
        data = self._load_all()
        data.setdefault(name, []).append(record)
        self._save_all(data)

    def update(self, name: str, record_id: str, changes: Record) -> None:
        data = self._load_all()
        for row in data.get(name, []):
            if row.get("id") == record_id:
                row.update(changes)
                break
        self._save_all(data)

    def delete(self, name: str, record_id: str) -> None:
        data = self._load_all()
        data[name] = [row for row in data.get(name, []) if row.get("id") != record_id]
        self._save_all(data)

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)


CREATE_RECORDS_SQL = """
CREATE TABLE IF NOT EXISTS collection_records (
    collection TEXT NOT NULL,
    record_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    payload TEXT NOT NULL,
    PRIMARY KEY (collection, record_id)
);
"""

CREATE_INDEXES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_collection_records_position ON collection_records(collection, position);",
]


def _connect(db_path: str) -> sqlite3.Connection:
    return sqlite3.connect(db_path, timeout=30)


class SqlitePersistence:
    """
    One row per record, payload stored as JSON. Insert order is kept in
    `position` so a reload yields records in their original order.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        with _connect(db_path) as conn:
            conn.execute(CREATE_RECORDS_SQL)
            for stmt in CREATE_INDEXES_SQL:
                conn.execute(stmt)
            conn.commit()

    def load(self, name: str) -> list[Record] | None:
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT payload FROM collection_records WHERE collection = ? ORDER BY position;",
                (name,),
            ).fetchall()
        if not rows:
            return None
        return [json.loads(payload) for (payload,) in rows]

    def save(self, name: str, records: list[Record]) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("BEGIN;")
            conn.execute("DELETE FROM collection_records WHERE collection = ?;", (name,))
            conn.executemany(
                "INSERT INTO collection_records (collection, record_id, position, payload) VALUES (?, ?, ?, ?);",
                [(name, str(r["id"]), i, json.dumps(r)) for i, r in enumerate(records)],
            )
            conn.commit()
        logger.debug("Saved %d records for '%s' to %s", len(records), name, self.db_path)

    def create(self, name: str, record: Record) -> None:
        with _connect(self.db_path) as conn:
            (next_pos,) = conn.execute(
                "SELECT COALESCE(MAX(position), -1) + 1 FROM collection_records WHERE collection = ?;",
                (name,),
            ).fetchone()
            conn.execute(
                "INSERT OR REPLACE INTO collection_records (collection, record_id, position, payload) VALUES (?, ?, ?, ?);",
                (name, str(record["id"]), next_pos, json.dumps(record)),
            )
            conn.commit()

    def update(self, name: str, record_id: str, changes: Record) -> None:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT payload FROM collection_records WHERE collection = ? AND record_id = ?;",
                (name, str(record_id)),
            ).fetchone()
            if row is None:
                return
            payload = json.loads(row[0])
            payload.update(changes)
            conn.execute(
                "UPDATE collection_records SET payload = ? WHERE collection = ? AND record_id = ?;",
                (json.dumps(payload), name, str(record_id)),
            )
            conn.commit()

    def delete(self, name: str, record_id: str) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                "DELETE FROM collection_records WHERE collection = ? AND record_id = ?;",
                (name, str(record_id)),
            )
            conn.commit()


def persistence_from_config(cfg: EngineConfig) -> Persistence:
    mode = cfg.persistence_mode
    if mode == "memory":
        return MemoryPersistence()
    if mode == "file":
        return JsonFilePersistence(cfg.resolved_persistence_path())
    if mode == "sqlite":
        return SqlitePersistence(cfg.resolved_persistence_path())
    allowed = ", ".join(PERSISTENCE_MODES)
    raise ConfigurationError(
        runtime_error("EngineConfig.persistence_mode", f"unsupported mode '{mode}'", f"use one of: {allowed}")
    )
