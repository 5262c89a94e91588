from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional, Tuple

from .models import TaskEntity
from .query import TaskFilter
from .repositories import (
    GROUPABLE_FIELDS,
    Repository,
    TaskQuery,
    apply_changes,
    new_entity,
    utcnow,
)
from .schemas import TaskCreate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "tasks"
    id: str = "id"
    owner: str = "owner"
    title: str = "title"
    description: str = "description"
    status: str = "status"
    priority: str = "priority"
    due_date: str = "due_date"
    tags: str = "tags"
    completed_at: str = "completed_at"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()

_SQLITE_MAX_INT = 2**63 - 1

# Storage fields that map 1:1 onto columns and may appear in ORDER BY.
_ORDERABLE = frozenset(
    {
        _COLS.title,
        _COLS.description,
        _COLS.status,
        _COLS.priority,
        _COLS.due_date,
        _COLS.completed_at,
        _COLS.created_at,
        _COLS.updated_at,
    }
)


def _dt_out(value: Optional[datetime]) -> Optional[str]:
    # Fixed-width ISO text keeps lexical and chronological order identical.
    return value.isoformat(timespec="microseconds") if value else None


def _dt_in(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _py_lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if value is not None else None


def where_clause(task_filter: TaskFilter) -> Tuple[str, List[Any]]:
    """Translate a TaskFilter into a SQL WHERE clause and its parameters."""
    clauses = [f"{_COLS.owner} = ?"]
    params: List[Any] = [task_filter.owner_id]

    if task_filter.status is not None:
        clauses.append(f"{_COLS.status} = ?")
        params.append(task_filter.status)

    if task_filter.priority is not None:
        clauses.append(f"{_COLS.priority} = ?")
        params.append(task_filter.priority)

    if task_filter.search is not None:
        # instr avoids LIKE wildcards; py_lower folds non-ASCII letters too
        clauses.append(
            f"(instr(py_lower({_COLS.title}), ?) > 0"
            f" OR instr(py_lower(coalesce({_COLS.description}, '')), ?) > 0)"
        )
        needle = task_filter.search.lower()
        params.extend([needle, needle])

    return f"WHERE {' AND '.join(clauses)}", params


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.
    Each operation opens its own connection.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        # SQLite's lower() only folds ASCII
        conn.create_function("py_lower", 1, _py_lower, deterministic=True)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.owner} TEXT NOT NULL,
                    {_COLS.title} TEXT NOT NULL,
                    {_COLS.description} TEXT NULL,
                    {_COLS.status} TEXT NOT NULL DEFAULT 'pending',
                    {_COLS.priority} TEXT NOT NULL DEFAULT 'medium',
                    {_COLS.due_date} TEXT NULL,
                    {_COLS.tags} TEXT NOT NULL DEFAULT '[]',
                    {_COLS.completed_at} TEXT NULL,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_owner_status "
                f"ON {_COLS.table}({_COLS.owner}, {_COLS.status})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_owner_created_at "
                f"ON {_COLS.table}({_COLS.owner}, {_COLS.created_at})"
            )
        logger.debug("SQLite schema ready at %s", self._db_path)

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        return {
            "id": str(row[_COLS.id]),
            "owner": str(row[_COLS.owner]),
            "title": str(row[_COLS.title]),
            "description": row[_COLS.description],
            "status": str(row[_COLS.status]),
            "priority": str(row[_COLS.priority]),
            "due_date": _dt_in(row[_COLS.due_date]),
            "tags": json.loads(row[_COLS.tags] or "[]"),
            "completed_at": _dt_in(row[_COLS.completed_at]),
            "created_at": _dt_in(row[_COLS.created_at]),  # type: ignore
            "updated_at": _dt_in(row[_COLS.updated_at]),  # type: ignore
        }

    def _fetch(self, conn: sqlite3.Connection, task_id: str) -> Optional[TaskEntity]:
        row = conn.execute(f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (task_id,)).fetchone()
        return self._row_to_entity(row) if row else None

    def create(self, owner_id: str, data: TaskCreate) -> TaskEntity:
        entity = new_entity(owner_id, data, utcnow())
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {_COLS.owner}, {_COLS.title}, {_COLS.description},
                    {_COLS.status}, {_COLS.priority}, {_COLS.due_date}, {_COLS.tags},
                    {_COLS.completed_at}, {_COLS.created_at}, {_COLS.updated_at})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entity["id"],
                    entity["owner"],
                    entity["title"],
                    entity["description"],
                    entity["status"],
                    entity["priority"],
                    _dt_out(entity["due_date"]),
                    json.dumps(entity["tags"]),
                    _dt_out(entity["completed_at"]),
                    _dt_out(entity["created_at"]),
                    _dt_out(entity["updated_at"]),
                ),
            )
            created = self._fetch(conn, entity["id"])
            assert created is not None
            return created

    def get(self, task_id: str) -> Optional[TaskEntity]:
        with self._conn() as conn:
            return self._fetch(conn, task_id)

    def update(self, task_id: str, changes: Dict[str, Any]) -> Optional[TaskEntity]:
        with self._conn() as conn:
            current = self._fetch(conn, task_id)
            if current is None:
                return None
            updated = apply_changes(current, changes, utcnow())
            conn.execute(
                f"""
                UPDATE {_COLS.table}
                SET {_COLS.title} = ?, {_COLS.description} = ?, {_COLS.status} = ?,
                    {_COLS.priority} = ?, {_COLS.due_date} = ?, {_COLS.tags} = ?,
                    {_COLS.completed_at} = ?, {_COLS.updated_at} = ?
                WHERE {_COLS.id} = ?
                """,
                (
                    updated["title"],
                    updated["description"],
                    updated["status"],
                    updated["priority"],
                    _dt_out(updated["due_date"]),
                    json.dumps(updated["tags"]),
                    _dt_out(updated["completed_at"]),
                    _dt_out(updated["updated_at"]),
                    task_id,
                ),
            )
            return self._fetch(conn, task_id)

    def delete(self, task_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (task_id,))
            return cur.rowcount > 0

    def list(self, query: TaskQuery) -> Tuple[List[TaskEntity], int]:
        q = query
        where_sql, params = where_clause(q.filter)

        direction = "DESC" if q.ordering.descending else "ASC"
        column = q.ordering.storage_field
        if column in _ORDERABLE:
            order_sql = f"ORDER BY {column} {direction}, rowid {direction}"
        else:
            # No task has this field: insertion order only
            order_sql = f"ORDER BY rowid {direction}"

        # SQLite integers are signed 64-bit
        limit = min(max(q.take, 0), _SQLITE_MAX_INT)
        offset = min(max(q.skip, 0), _SQLITE_MAX_INT)

        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                {where_sql}
                {order_sql}
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
            count_row = conn.execute(
                f"SELECT COUNT(*) AS cnt FROM {_COLS.table} {where_sql}", params
            ).fetchone()
            total = int(count_row["cnt"]) if count_row else 0
            return [self._row_to_entity(r) for r in rows], total

    def count(self, task_filter: TaskFilter) -> int:
        where_sql, params = where_clause(task_filter)
        with self._conn() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS cnt FROM {_COLS.table} {where_sql}", params).fetchone()
            return int(row["cnt"]) if row else 0

    def group_counts(self, owner_id: str, field_name: str) -> List[Tuple[str, int]]:
        if field_name not in GROUPABLE_FIELDS:
            raise ValueError(f"cannot group tasks by {field_name!r}")
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT {field_name} AS grp, COUNT(*) AS cnt FROM {_COLS.table}
                WHERE {_COLS.owner} = ?
                GROUP BY {field_name}
                """,
                (owner_id,),
            ).fetchall()
            return [(str(r["grp"]), int(r["cnt"])) for r in rows]
