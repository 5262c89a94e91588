from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer
from pydantic.alias_generators import to_camel

from .models import TaskPriority, TaskStatus

# Shared type for incoming due_date which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


def _to_utc(value: datetime) -> datetime:
    # Naive values are taken to be UTC so every stored datetime is comparable.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_due_date(value: Optional[DueDateInput]) -> Optional[datetime]:
    """
    Internal helper to normalize due_date input into a UTC datetime.
    - None or an empty string clears the date.
    - If value is a string, attempt to parse via datetime.fromisoformat; if time is missing, set to 00:00.
    - If value is a date (not datetime), convert to datetime at 00:00.
    - If value is a datetime, return it converted to UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return _to_utc(value)

    if isinstance(value, date):
        # Promote a date to a datetime at midnight
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        # Attempt full datetime parsing first
        try:
            return _to_utc(datetime.fromisoformat(s.replace("Z", "+00:00")))
        except ValueError:
            # If only a date is provided, convert to midnight
            try:
                d = date.fromisoformat(s)
                return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
            except ValueError as e:
                raise ValueError(
                    "Invalid dueDate format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00')."
                ) from e

    # Any other type is invalid
    raise ValueError("Invalid type for dueDate; expected date, datetime, or ISO8601 string.")


def _clean_title(v: Any) -> str:
    if v is None:
        raise ValueError("Task title is required")
    if not isinstance(v, str):
        raise ValueError("Title must be a string")
    s = v.strip()
    if not (1 <= len(s) <= TITLE_MAX_LENGTH):
        raise ValueError(f"Title must be between 1 and {TITLE_MAX_LENGTH} characters")
    return s


def _clean_description(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    s = v.strip()
    if len(s) > DESCRIPTION_MAX_LENGTH:
        raise ValueError(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")
    return s


def _clean_tags(v: Any) -> Any:
    if v is None:
        return []
    if not isinstance(v, list):
        # let pydantic report the type error
        return v
    return [t.strip() if isinstance(t, str) else t for t in v if not (isinstance(t, str) and not t.strip())]


class _CamelModel(BaseModel):
    """Base for wire schemas: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# PUBLIC_INTERFACE
class TaskCreate(_CamelModel):
    """
    Schema for creating a new task. The owner comes from the authenticated caller.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "Buy groceries",
                "description": "Milk, eggs, bread",
                "status": "pending",
                "priority": "high",
                "dueDate": "2025-02-01",
                "tags": ["home", "errands"],
            }
        },
    )

    title: str = Field(..., description="Short title for the task (1..100 chars after trimming)")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Task status")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Due date/time of the task. Accepts ISO8601 date or datetime; dates are set to 00:00 UTC",
    )
    tags: List[str] = Field(default_factory=list, description="Ordered list of tags")

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v: Any) -> str:
        """
        Strip whitespace and enforce 1..100 length.
        """
        return _clean_title(v)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_description(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        """
        Normalize dueDate from str/date/datetime to a UTC datetime.
        """
        return _parse_due_date(v)

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: Optional[List[str]]) -> List[str]:
        return _clean_tags(v)


# PUBLIC_INTERFACE
class TaskUpdate(_CamelModel):
    """
    Schema for updating an existing task.
    All fields are optional; only provided fields will be updated. An explicit
    null clears description and dueDate, and empties tags.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "status": "in-progress",
                "priority": "urgent",
                "dueDate": None,
            }
        },
    )

    title: Optional[str] = Field(default=None, description="Short title for the task")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    status: Optional[TaskStatus] = Field(default=None, description="Task status")
    priority: Optional[TaskPriority] = Field(default=None, description="Task priority")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Due date/time of the task; null or empty string clears it",
    )
    tags: Optional[List[str]] = Field(default=None, description="Replacement list of tags")

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v: Any) -> str:
        """
        If title is provided, strip whitespace and enforce 1..100 length. Null is rejected.
        """
        return _clean_title(v)

    @field_validator("status", "priority", mode="before")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("Value cannot be null")
        return v

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_description(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: Optional[List[str]]) -> List[str]:
        return _clean_tags(v)

    def changes(self) -> Dict[str, Any]:
        """
        Return only the fields present in the request body, keyed by storage name.
        Enum members are flattened to their string values.
        """
        out: Dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            out[name] = value.value if isinstance(value, (TaskStatus, TaskPriority)) else value
        return out


# PUBLIC_INTERFACE
class TaskOut(_CamelModel):
    """
    Schema returned by the API for a task.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "3f1c7d0e2b9a4e6f8d5c1a2b3c4d5e6f",
                "owner": "user-42",
                "title": "Buy groceries",
                "description": "Milk, eggs, bread",
                "status": "completed",
                "priority": "high",
                "dueDate": "2025-02-01T00:00:00Z",
                "tags": ["home"],
                "completedAt": "2025-01-31T18:02:11.204512Z",
                "createdAt": "2025-01-25T10:15:30.123456Z",
                "updatedAt": "2025-01-31T18:02:11.204512Z",
            }
        },
    )

    id: str = Field(..., description="Unique identifier of the task")
    owner: str = Field(..., description="Identity of the owning user")
    title: str = Field(..., description="Short title for the task")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    status: TaskStatus = Field(..., description="Task status")
    priority: TaskPriority = Field(..., description="Task priority")
    due_date: Optional[datetime] = Field(default=None, description="Due date/time as an ISO8601 datetime")
    tags: List[str] = Field(default_factory=list, description="Ordered list of tags")
    completed_at: Optional[datetime] = Field(
        default=None, description="Timestamp of the first save with status 'completed'"
    )
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


# PUBLIC_INTERFACE
class PaginationMeta(BaseModel):
    """Page metadata attached to list responses."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int = Field(..., description="Total number of tasks matching the filters")
    page: int = Field(..., description="Current page (1-based)")
    limit: int = Field(..., description="Page size")
    total_pages: int = Field(..., description="Number of pages for the current limit")
    has_more: bool = Field(..., description="Whether a further page exists")


class StatsGroup(BaseModel):
    key: str = Field(..., description="Grouped value (a status or a priority)")
    count: int = Field(..., description="Number of tasks with that value")


# PUBLIC_INTERFACE
class TaskStats(_CamelModel):
    """Aggregate counts of the caller's tasks. Absent groups mean zero."""

    total: int
    by_status: List[StatsGroup]
    by_priority: List[StatsGroup]


class _Envelope(BaseModel):
    """Response envelope; message is left out entirely when there is none."""

    @model_serializer(mode="wrap")
    def _drop_empty_message(self, handler):
        data = handler(self)
        if isinstance(data, dict) and data.get("message") is None:
            data.pop("message", None)
        return data


class TaskEnvelope(_Envelope):
    success: bool = True
    message: Optional[str] = None
    data: TaskOut


class TaskListEnvelope(BaseModel):
    success: bool = True
    data: List[TaskOut]
    pagination: PaginationMeta


class StatsEnvelope(BaseModel):
    success: bool = True
    data: TaskStats


class MessageEnvelope(_Envelope):
    success: bool = True
    message: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
