"""Persistence for the collection registry."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from db.migrations import ensure_collections_table
from engine.clock import now_ms


@dataclass(frozen=True)
class Collection:
    id: str
    name: str
    root_path: str
    created_at: int
    updated_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "rootPath": self.root_path,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


def _row_to_collection(row: sqlite3.Row | None) -> Collection | None:
    if not row:
        return None
    return Collection(
        id=row["id"],
        name=row["name"],
        root_path=row["root_path"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class CollectionStore:
    def __init__(self, db_path: str, *, clock=now_ms) -> None:
        self.db_path = db_path
        self._clock = clock

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        ensure_collections_table(conn)
        return conn

    def create(self, name: str, root_path: str) -> Collection:
        now = self._clock()
        collection = Collection(
            id=uuid4().hex,
            name=name,
            root_path=root_path,
            created_at=now,
            updated_at=now,
        )
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO collections (id, name, root_path, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    collection.id,
                    collection.name,
                    collection.root_path,
                    collection.created_at,
                    collection.updated_at,
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return collection

    def get(self, collection_id: str) -> Collection | None:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM collections WHERE id=?", (collection_id,))
            return _row_to_collection(cur.fetchone())
        finally:
            conn.close()

    def find_by_root_path(self, root_path: str) -> Collection | None:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM collections WHERE root_path=? ORDER BY created_at ASC LIMIT 1",
                (root_path,),
            )
            return _row_to_collection(cur.fetchone())
        finally:
            conn.close()

    def list_all(self) -> list[Collection]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM collections ORDER BY created_at DESC, rowid DESC")
            return [_row_to_collection(row) for row in cur.fetchall()]
        finally:
            conn.close()

    def update(
        self,
        collection_id: str,
        *,
        name: str | None = None,
        root_path: str | None = None,
    ) -> Collection | None:
        """Update name and/or root path; ``None`` leaves a field unchanged."""
        now = self._clock()
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE collections
                SET name=COALESCE(?, name),
                    root_path=COALESCE(?, root_path),
                    updated_at=?
                WHERE id=?
                """,
                (name, root_path, now, collection_id),
            )
            conn.commit()
            if cur.rowcount != 1:
                return None
            cur.execute("SELECT * FROM collections WHERE id=?", (collection_id,))
            return _row_to_collection(cur.fetchone())
        finally:
            conn.close()

    def delete(self, collection_id: str) -> bool:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM collections WHERE id=?", (collection_id,))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()
