from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional

from .errors import StorageCorruptionError, StorageUnavailableError
from .models import Todo
from .repositories import Repository, not_found, todo_from_record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "todos"
    id: str = "id"
    document: str = "document"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()


class SQLiteRepository(Repository):
    """
    Document-store repository on SQLite.

    Each todo is one row keyed by id holding the full JSON record; created_at
    and updated_at are copied into columns only for indexing. The repository
    is built on four primitives: get, put, delete and scan.
    """

    name = "sqlite"

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise StorageUnavailableError(
                f"Cannot open SQLite database {self._db_path}: {e}", {"path": self._db_path}
            ) from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageUnavailableError(f"SQLite operation failed: {e}", {"path": self._db_path}) from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.document} TEXT NOT NULL,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_created_at ON {_COLS.table}({_COLS.created_at})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_updated_at ON {_COLS.table}({_COLS.updated_at})"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> Todo:
        try:
            document: Dict[str, Any] = json.loads(row[_COLS.document])
        except ValueError as e:
            raise StorageCorruptionError(
                f"Undecodable document for todo {row[_COLS.id]}: {e}", {"id": row[_COLS.id]}
            ) from e
        return todo_from_record(document, self.name)

    # primitives

    def _get(self, todo_id: str) -> Optional[sqlite3.Row]:
        with self._conn() as conn:
            return conn.execute(
                f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (todo_id,)
            ).fetchone()

    def _put(self, todo: Todo) -> None:
        record = todo.to_json()
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {_COLS.document}, {_COLS.created_at}, {_COLS.updated_at})
                VALUES (?, ?, ?, ?)
                ON CONFLICT({_COLS.id}) DO UPDATE SET
                    {_COLS.document} = excluded.{_COLS.document},
                    {_COLS.created_at} = excluded.{_COLS.created_at},
                    {_COLS.updated_at} = excluded.{_COLS.updated_at}
                """,
                (
                    record["id"],
                    json.dumps(record, ensure_ascii=False),
                    record["createdAt"],
                    record["updatedAt"],
                ),
            )

    def _delete(self, todo_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (todo_id,))
            return cur.rowcount > 0

    def _scan(self) -> List[sqlite3.Row]:
        with self._conn() as conn:
            return conn.execute(f"SELECT * FROM {_COLS.table}").fetchall()

    def _truncate(self) -> None:
        with self._conn() as conn:
            conn.execute(f"DELETE FROM {_COLS.table}")

    def _count(self) -> int:
        with self._conn() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS cnt FROM {_COLS.table}").fetchone()
            return int(row["cnt"]) if row else 0

    # Repository contract; sqlite3 blocks, so every primitive runs in a worker thread

    async def find_by_id(self, todo_id: str) -> Optional[Todo]:
        row = await asyncio.to_thread(self._get, todo_id)
        return self._row_to_entity(row) if row else None

    async def find_all(self) -> List[Todo]:
        return [self._row_to_entity(r) for r in await asyncio.to_thread(self._scan)]

    async def save(self, todo: Todo) -> None:
        await asyncio.to_thread(self._put, todo)
        logger.debug("Saved todo %s", todo.id)

    async def remove(self, todo_id: str) -> None:
        if not await asyncio.to_thread(self._delete, todo_id):
            raise not_found(todo_id)
        logger.debug("Removed todo %s", todo_id)

    async def clear(self) -> None:
        await asyncio.to_thread(self._truncate)

    async def count(self) -> int:
        return await asyncio.to_thread(self._count)
