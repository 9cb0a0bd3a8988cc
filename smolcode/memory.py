"""A fact store backed by SQLite with full-text search."""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

_SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    docid INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    content TEXT NOT NULL
);
CREATE VIRTUAL TABLE IF NOT EXISTS memories_fts USING fts5(
    content, content='memories', content_rowid='docid'
);
CREATE TRIGGER IF NOT EXISTS memories_after_insert AFTER INSERT ON memories BEGIN
    INSERT INTO memories_fts(rowid, content) VALUES (new.docid, new.content);
END;
CREATE TRIGGER IF NOT EXISTS memories_after_delete AFTER DELETE ON memories BEGIN
    INSERT INTO memories_fts(memories_fts, rowid, content)
        VALUES ('delete', old.docid, old.content);
END;
CREATE TRIGGER IF NOT EXISTS memories_after_update AFTER UPDATE ON memories BEGIN
    INSERT INTO memories_fts(memories_fts, rowid, content)
        VALUES ('delete', old.docid, old.content);
    INSERT INTO memories_fts(rowid, content) VALUES (new.docid, new.content);
END;
"""

_FTS_KEYWORDS = frozenset({"AND", "OR", "NOT"})
_BAREWORD = re.compile(r"[A-Za-z0-9_]+")


@dataclass
class Memory:
    """A stored fact."""

    id: str
    content: str


class NotFoundError(LookupError):
    """No memory exists with the requested ID."""


def _prepare_token(token: str) -> str:
    if _BAREWORD.fullmatch(token) and token.upper() not in _FTS_KEYWORDS:
        return token
    escaped = token.replace('"', '""')
    return f'"{escaped}"'


def prepare_fts_query(query: str) -> str:
    """Turn free text into an FTS query that matches every term literally."""
    terms = query.split()
    if not terms:
        return '""'
    return " ".join(_prepare_token(term) for term in terms)


class MemoryManager:
    """Stores facts by ID in an SQLite database and searches them by content."""

    def __init__(self, db_path: Union[str, Path]) -> None:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(str(path), isolation_level=None)
        try:
            self._db.executescript(_SCHEMA)
        except sqlite3.Error:
            self._db.close()
            raise

    def __enter__(self) -> "MemoryManager":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._db.close()

    def add_memory(self, memory_id: str, content: str) -> None:
        """Store a fact, replacing the content of an existing one with the same ID."""
        self._db.execute(
            "INSERT INTO memories (id, content) VALUES (?, ?) "
            "ON CONFLICT(id) DO UPDATE SET content = excluded.content",
            (memory_id, content),
        )

    def get_memory_by_id(self, memory_id: str) -> Memory:
        """Return the fact with the given ID or raise :class:`NotFoundError`."""
        row = self._db.execute(
            "SELECT id, content FROM memories WHERE id = ?", (memory_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"memory with id '{memory_id}': memory: not found")
        return Memory(id=row[0], content=row[1])

    def search_memory(self, query: str) -> list[Memory]:
        """Return the facts containing every term of ``query``, best match first."""
        if not query.strip():
            return []
        fts_query = prepare_fts_query(query)
        doc_ids = [
            row[0]
            for row in self._db.execute(
                "SELECT rowid FROM memories_fts WHERE memories_fts MATCH ? ORDER BY rank",
                (fts_query,),
            )
        ]
        memories = []
        for doc_id in doc_ids:
            row = self._db.execute(
                "SELECT id, content FROM memories WHERE docid = ?", (doc_id,)
            ).fetchone()
            if row is None:
                raise LookupError(
                    f"FTS returned docID {doc_id} but no matching memory found"
                )
            memories.append(Memory(id=row[0], content=row[1]))
        return memories

    def forget(self, memory_id: str) -> None:
        """Delete the fact with the given ID or raise :class:`NotFoundError`."""
        cursor = self._db.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(
                f"memory with id '{memory_id}' not found to forget: memory: not found"
            )