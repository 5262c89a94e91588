from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional, TypedDict


# PUBLIC_INTERFACE
class TaskStatus(str, Enum):
    """Lifecycle state of a task. Any value may be written at any time."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# PUBLIC_INTERFACE
class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    Storage-level representation of a task, shared by all repository backends.

    Fields:
    - id: Opaque identifier assigned by the store
    - owner: Identity of the owning user; set at creation, never changed
    - title: Short title (1..100 chars, trimmed on input via schemas)
    - description: Optional detailed description (<= 500 chars)
    - status: One of TaskStatus values (stored as plain string)
    - priority: One of TaskPriority values (stored as plain string)
    - due_date: Optional due datetime (UTC)
    - tags: Ordered list of tag strings
    - completed_at: Set the first time the task is saved as completed
    - created_at / updated_at: Store-managed UTC timestamps
    """

    id: str
    owner: str
    title: str
    description: Optional[str]
    status: str
    priority: str
    due_date: Optional[datetime]
    tags: List[str]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


# Mutable fields accepted by create/update payloads, in storage naming.
MUTABLE_FIELDS = ("title", "description", "status", "priority", "due_date", "tags")


# PUBLIC_INTERFACE
def stamp_completed_at(entity: TaskEntity, now: datetime) -> TaskEntity:
    """
    Set completed_at when the task is completed and it has never been set.

    A later move away from completed leaves the timestamp in place.
    """
    if entity["status"] == TaskStatus.COMPLETED.value and entity["completed_at"] is None:
        entity["completed_at"] = now
    return entity
