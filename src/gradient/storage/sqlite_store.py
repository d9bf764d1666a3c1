"""
SQLite document store.

A single-file, human-inspectable store for local use. Documents are kept in
memory for queries and watches exactly as MemoryStore does; every committed
batch is also written through to SQLite in one transaction.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from gradient.exceptions import StoreError
from gradient.storage.base import BatchOperation
from gradient.storage.memory_store import MemoryStore

logger = logging.getLogger(__name__)


class SQLiteStore(MemoryStore):
    """
    SQLite-backed document store.

    Features:
    - Human-inspectable database
    - ACID transactions (a batch is one transaction)
    - Portable single-file database
    """

    def __init__(self, db_path: str | Path):
        super().__init__()
        self._db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    async def initialize(self) -> None:
        """Open the database and load every stored document."""
        if self._conn is not None:
            return
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path))
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    body TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                )
            """)
            self._conn.commit()
            rows = self._conn.execute("SELECT collection, id, body FROM documents").fetchall()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Cannot open {self._db_path}: {e}") from e

        loaded = 0
        for collection, document_id, body in rows:
            try:
                self._collections.setdefault(collection, {})[document_id] = json.loads(body)
                loaded += 1
            except ValueError:
                logger.warning("Skipping undecodable row %s/%s", collection, document_id)
        logger.debug("Loaded %d document(s) from %s", loaded, self._db_path)

    async def close(self) -> None:
        await super().close()
        if self._conn:
            self._conn.close()
            self._conn = None

    async def persist(self, working: dict[str, dict[str, dict[str, Any]]], operations: list[BatchOperation]) -> None:
        if self._conn is None:
            raise StoreError("SQLiteStore is not initialized")

        touched = {(op.collection, op.document_id) for op in operations}
        try:
            with self._conn:
                for collection, document_id in touched:
                    document = working[collection].get(document_id)
                    if document is None:
                        self._conn.execute(
                            "DELETE FROM documents WHERE collection = ? AND id = ?",
                            (collection, document_id),
                        )
                    else:
                        self._conn.execute(
                            "INSERT OR REPLACE INTO documents (collection, id, body) VALUES (?, ?, ?)",
                            (collection, document_id, json.dumps(document)),
                        )
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise StoreError(f"Failed to persist batch: {e}") from e
