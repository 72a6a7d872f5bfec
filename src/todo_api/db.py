from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Generator, List, Optional, Tuple

from .models import COLUMN_NAMES, TABLE_NAME, TodoRecord
from .repositories import ListQuery, Repository, parse_sort
from .schemas import TodoUpdate

logger = logging.getLogger(__name__)

_ID = COLUMN_NAMES["id"]
_TITLE = COLUMN_NAMES["title"]
_DESCRIPTION = COLUMN_NAMES["description"]
_CREATED_AT = COLUMN_NAMES["created_at"]
_DUE_AT = COLUMN_NAMES["due_at"]
_COMPLETED = COLUMN_NAMES["completed"]

# Columns written on insert; id comes from AUTOINCREMENT
_INSERT_COLUMNS = (_TITLE, _DESCRIPTION, _CREATED_AT, _DUE_AT, _COMPLETED)
# created_at is not updatable
_UPDATE_COLUMNS = (_TITLE, _DESCRIPTION, _DUE_AT, _COMPLETED)

_LIKE_ESCAPE = "\\"


def _lower(value: Optional[str]) -> Optional[str]:
    # SQLite lower() only folds ASCII; use the same folding as InMemoryRepository
    return value.lower() if value is not None else None


def _escape_like(text: str) -> str:
    """Escape LIKE wildcards so the search text matches literally."""
    for ch in (_LIKE_ESCAPE, "%", "_"):
        text = text.replace(ch, _LIKE_ESCAPE + ch)
    return text


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.create_function("py_lower", 1, _lower)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                    {_ID} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_TITLE} TEXT NOT NULL,
                    {_DESCRIPTION} TEXT NULL,
                    {_CREATED_AT} TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    {_DUE_AT} TIMESTAMP NULL,
                    {_COMPLETED} INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_completed ON {TABLE_NAME}({_COMPLETED})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_created_at ON {TABLE_NAME}({_CREATED_AT})"
            )

    def _fetch(self, conn: sqlite3.Connection, todo_id: int) -> Optional[TodoRecord]:
        row = conn.execute(f"SELECT * FROM {TABLE_NAME} WHERE {_ID} = ?", (todo_id,)).fetchone()
        return TodoRecord.from_row(row) if row else None

    def create(self, record: TodoRecord) -> TodoRecord:
        self._prepare_insert(record)
        row = record.to_row()
        placeholders = ", ".join("?" for _ in _INSERT_COLUMNS)
        with self._conn() as conn:
            cur = conn.execute(
                f"INSERT INTO {TABLE_NAME} ({', '.join(_INSERT_COLUMNS)}) VALUES ({placeholders})",
                [row[c] for c in _INSERT_COLUMNS],
            )
            record.id = cur.lastrowid
        logger.info("Created todo %s", record.id)
        return record

    def get(self, todo_id: int) -> Optional[TodoRecord]:
        with self._conn() as conn:
            return self._fetch(conn, todo_id)

    def update(self, todo_id: int, data: TodoUpdate) -> Optional[TodoRecord]:
        with self._conn() as conn:
            current = self._fetch(conn, todo_id)
            if current is None:
                return None
            updated = self._apply_update(current, data)
            row = updated.to_row()
            assignments = ", ".join(f"{c} = ?" for c in _UPDATE_COLUMNS)
            conn.execute(
                f"UPDATE {TABLE_NAME} SET {assignments} WHERE {_ID} = ?",
                [*(row[c] for c in _UPDATE_COLUMNS), todo_id],
            )
            result = self._fetch(conn, todo_id)
        logger.info("Updated todo %s", todo_id)
        return result

    def delete(self, todo_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {TABLE_NAME} WHERE {_ID} = ?", (todo_id,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info("Deleted todo %s", todo_id)
        return deleted

    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[TodoRecord], int]:
        q = query or ListQuery()
        clauses = []
        params: list = []

        if q.completed is not None:
            clauses.append(f"{_COMPLETED} = ?")
            params.append(1 if q.completed else 0)

        if q.search:
            clauses.append(
                f"(py_lower({_TITLE}) LIKE ? ESCAPE '{_LIKE_ESCAPE}'"
                f" OR py_lower({_DESCRIPTION}) LIKE ? ESCAPE '{_LIKE_ESCAPE}')"
            )
            like = f"%{_escape_like(q.search.lower())}%"
            params.extend([like, like])

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        field, descending = parse_sort(q.sort)
        direction = "DESC" if descending else "ASC"
        order_sql = f"ORDER BY {COLUMN_NAMES[field]} {direction}, {_ID} {direction}"

        with self._conn() as conn:
            count_row = conn.execute(
                f"SELECT COUNT(*) as cnt FROM {TABLE_NAME} {where_sql}", params
            ).fetchone()
            total = int(count_row["cnt"]) if count_row else 0

            rows = conn.execute(
                f"""
                SELECT * FROM {TABLE_NAME}
                {where_sql}
                {order_sql}
                LIMIT ? OFFSET ?
                """,
                [*params, max(q.limit, 0), max(q.offset, 0)],
            ).fetchall()
            return [TodoRecord.from_row(r) for r in rows], total
