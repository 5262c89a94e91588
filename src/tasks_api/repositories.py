from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Dict, List, Optional, Tuple

from .models import MUTABLE_FIELDS, TaskEntity, stamp_completed_at
from .query import Ordering, TaskFilter
from .schemas import TaskCreate
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

# Fields the stats aggregator may group on.
GROUPABLE_FIELDS = frozenset({"status", "priority"})


@dataclass(frozen=True)
class TaskQuery:
    """
    Everything a backend needs to answer one list request.
    """
    filter: TaskFilter
    ordering: Ordering = field(default_factory=Ordering)
    skip: int = 0
    take: int = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return uuid.uuid4().hex


def _copy(entity: TaskEntity) -> TaskEntity:
    # tags is the only mutable value inside an entity
    return {**entity, "tags": list(entity["tags"])}  # type: ignore[typeddict-item]


def new_entity(owner_id: str, data: TaskCreate, now: datetime) -> TaskEntity:
    """Build a fresh entity from a create payload, stamping completion if needed."""
    entity: TaskEntity = {
        "id": new_task_id(),
        "owner": owner_id,
        "title": data.title,
        "description": data.description,
        "status": data.status.value,
        "priority": data.priority.value,
        "due_date": data.due_date,
        "tags": list(data.tags),
        "completed_at": None,
        "created_at": now,
        "updated_at": now,
    }
    return stamp_completed_at(entity, now)


def apply_changes(existing: TaskEntity, changes: Dict[str, Any], now: datetime) -> TaskEntity:
    """
    Return a copy of existing with only the supplied fields replaced.
    Owner, id and created_at are never touched.
    """
    updated = _copy(existing)
    for name, value in changes.items():
        if name not in MUTABLE_FIELDS:
            continue
        if name == "tags":
            value = list(value or [])
        updated[name] = value  # type: ignore[literal-required]
    updated["updated_at"] = now
    return stamp_completed_at(updated, now)


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for task storage backends."""

    @abstractmethod
    def create(self, owner_id: str, data: TaskCreate) -> TaskEntity:
        """Create and return a new TaskEntity owned by owner_id."""

    @abstractmethod
    def get(self, task_id: str) -> Optional[TaskEntity]:
        """Return a TaskEntity by id, or None if not found."""

    @abstractmethod
    def update(self, task_id: str, changes: Dict[str, Any]) -> Optional[TaskEntity]:
        """
        Apply a partial update. changes holds only the fields supplied by the
        caller, keyed by storage name. Return updated entity or None if not found.
        """

    @abstractmethod
    def delete(self, task_id: str) -> bool:
        """Delete a TaskEntity by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self, query: TaskQuery) -> Tuple[List[TaskEntity], int]:
        """
        Return one page of TaskEntities and the total count matching the filter.
        - Owner/search/status/priority filtering via TaskFilter
        - Ordering on any field; unknown fields fall back to insertion order
        - skip/take window
        The page and the total are independent reads.
        """

    @abstractmethod
    def count(self, task_filter: TaskFilter) -> int:
        """Count tasks matching the filter."""

    @abstractmethod
    def group_counts(self, owner_id: str, field_name: str) -> List[Tuple[str, int]]:
        """
        Group owner_id's tasks by field_name ('status' or 'priority').
        Only values that occur are returned; order is unspecified.
        """


def _sort_value(task: TaskEntity, storage_field: Optional[str]) -> Tuple[bool, Any]:
    # (present, value): missing values sort before any present one.
    if storage_field is None:
        return (False, None)
    value = task.get(storage_field)  # type: ignore[misc]
    if value is None:
        return (False, None)
    return (True, value)


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TaskEntity] = {}

    def _now(self) -> datetime:
        return utcnow()

    def create(self, owner_id: str, data: TaskCreate) -> TaskEntity:
        entity = new_entity(owner_id, data, self._now())
        with self._lock:
            self._items[entity["id"]] = entity
        return _copy(entity)

    def get(self, task_id: str) -> Optional[TaskEntity]:
        with self._lock:
            item = self._items.get(task_id)
            return None if item is None else _copy(item)

    def update(self, task_id: str, changes: Dict[str, Any]) -> Optional[TaskEntity]:
        with self._lock:
            existing = self._items.get(task_id)
            if existing is None:
                return None
            updated = apply_changes(existing, changes, self._now())
            self._items[task_id] = updated
            return _copy(updated)

    def delete(self, task_id: str) -> bool:
        with self._lock:
            return self._items.pop(task_id, None) is not None

    def list(self, query: TaskQuery) -> Tuple[List[TaskEntity], int]:
        q = query
        with self._lock:
            # dict order is insertion order; the index breaks ties deterministically
            matched = [(i, t) for i, t in enumerate(self._items.values()) if q.filter.matches(t)]
        total = len(matched)

        column = q.ordering.storage_field
        ordered = sorted(
            matched,
            key=lambda pair: (_sort_value(pair[1], column), pair[0]),
            reverse=q.ordering.descending,
        )

        start = max(q.skip, 0)
        end = start + max(q.take, 0)
        # Return copies to avoid external mutation
        return [_copy(t) for _, t in ordered[start:end]], total

    def count(self, task_filter: TaskFilter) -> int:
        with self._lock:
            return sum(1 for t in self._items.values() if task_filter.matches(t))

    def group_counts(self, owner_id: str, field_name: str) -> List[Tuple[str, int]]:
        if field_name not in GROUPABLE_FIELDS:
            raise ValueError(f"cannot group tasks by {field_name!r}")
        with self._lock:
            counts = Counter(t[field_name] for t in self._items.values() if t["owner"] == owner_id)  # type: ignore[literal-required]
        return list(counts.items())


# PUBLIC_INTERFACE
def build_repository(settings: Optional[Settings] = None) -> Repository:
    """
    Construct the repository selected by settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository at settings.sqlite_db_path
    """
    settings = settings or get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using SQLite task repository at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    logger.info("Using in-memory task repository")
    return InMemoryRepository()
