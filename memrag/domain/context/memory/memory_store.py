import json
import sqlite3
from pathlib import Path
from typing import Any, Iterable, List, Optional

import structlog

from memrag.domain.models.memory import MemoryEntry, MemoryType

logger = structlog.get_logger(__name__)

_COLUMNS = "id, content, timestamp, importance_score, memory_type, is_archived, metadata"


class MemoryStore:
    """SQLite-backed durable record of memory entries.

    Single-writer: the memory manager is the only caller, one turn at a time.
    Pass ``":memory:"`` as the path for a throwaway store.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS memories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                content TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                importance_score REAL NOT NULL,
                memory_type TEXT NOT NULL,
                is_archived INTEGER NOT NULL,
                metadata TEXT NOT NULL
            )
        """)
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_timestamp ON memories(timestamp)")
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_archived ON memories(is_archived)")
        self._conn.commit()
        logger.debug("Memory store initialized", db_path=self.db_path)

    def insert(self, entry: MemoryEntry) -> int:
        """Persist an entry and return its row id"""

        cursor = self._conn.execute(
            """
            INSERT INTO memories
            (content, timestamp, importance_score, memory_type, is_archived, metadata)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                entry.content,
                entry.timestamp,
                entry.importance_score,
                entry.memory_type.value,
                1 if entry.is_archived else 0,
                json.dumps(entry.metadata),
            ),
        )
        self._conn.commit()
        return cursor.lastrowid

    def list_active(self, limit: Optional[int] = None) -> List[MemoryEntry]:
        """Non-archived entries, newest first"""
        return self._list(archived=False, limit=limit)

    def list_archived(self, limit: Optional[int] = None) -> List[MemoryEntry]:
        """Archived entries, newest first"""
        return self._list(archived=True, limit=limit)

    def _list(self, archived: bool, limit: Optional[int]) -> List[MemoryEntry]:
        sql = (
            f"SELECT {_COLUMNS} FROM memories WHERE is_archived = ? "
            "ORDER BY timestamp DESC, id DESC"
        )
        params: List[Any] = [1 if archived else 0]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def archive(self, memory_ids: Iterable[int]) -> None:
        """Flag the given entries as archived in one statement"""

        ids = sorted({memory_id for memory_id in memory_ids if memory_id is not None})
        if not ids:
            return

        placeholders = ",".join("?" for _ in ids)
        self._conn.execute(
            f"UPDATE memories SET is_archived = 1 WHERE id IN ({placeholders})", ids
        )
        self._conn.commit()

    def update_importance_score(self, memory_id: int, score: float) -> None:
        self._conn.execute(
            "UPDATE memories SET importance_score = ? WHERE id = ?", (score, memory_id)
        )
        self._conn.commit()

    def search(self, query: str, archived: Optional[bool] = None, limit: int = 5) -> List[MemoryEntry]:
        """Substring search, most important and most recent first"""

        sql = f"SELECT {_COLUMNS} FROM memories WHERE content LIKE ?"
        params: List[Any] = [f"%{query}%"]
        if archived is not None:
            sql += " AND is_archived = ?"
            params.append(1 if archived else 0)
        sql += " ORDER BY importance_score DESC, timestamp DESC LIMIT ?"
        params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def count(self, archived: Optional[bool] = None) -> int:
        if archived is None:
            row = self._conn.execute("SELECT COUNT(*) FROM memories").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM memories WHERE is_archived = ?", (1 if archived else 0,)
            ).fetchone()
        return row[0]

    def clear_all(self) -> None:
        self._conn.execute("DELETE FROM memories")
        self._conn.commit()
        logger.info("Memory store cleared")

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> MemoryEntry:
        return MemoryEntry(
            id=row["id"],
            content=row["content"],
            timestamp=row["timestamp"],
            importance_score=row["importance_score"],
            memory_type=MemoryType(row["memory_type"]),
            is_archived=bool(row["is_archived"]),
            metadata=json.loads(row["metadata"]),
        )
