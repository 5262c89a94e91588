"""
Request-to-query translation for task retrieval.

Holds the pure decision functions used by the task endpoints:
- authorize: ownership check run before any single-task read or write
- build_filter: list parameters -> store-agnostic TaskFilter predicate
- build_ordering: sortBy/order -> Ordering
- paginate: page/limit/total -> Page window and metadata

None of these touch a store; repositories consume the values they return.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional

from .models import TaskEntity

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
DEFAULT_MAX_LIMIT = 100
DEFAULT_SORT_FIELD = "createdAt"

NOT_FOUND = "not-found"
FORBIDDEN = "forbidden"

# API field name -> storage field name. Both spellings are accepted for sorting.
SORTABLE_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "dueDate": "due_date",
    "completedAt": "completed_at",
    "title": "title",
    "description": "description",
    "status": "status",
    "priority": "priority",
}
SORTABLE_FIELDS.update({v: v for v in list(SORTABLE_FIELDS.values())})


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None


# PUBLIC_INTERFACE
def authorize(task: Optional[TaskEntity], caller_id: str) -> AccessDecision:
    """
    Decide whether caller_id may read or write task.

    A missing task is 'not-found' whoever asks. An existing task owned by
    someone else is 'forbidden', so its existence is visible to the caller.
    """
    if task is None:
        return AccessDecision(False, NOT_FOUND)
    if task["owner"] != caller_id:
        return AccessDecision(False, FORBIDDEN)
    return AccessDecision(True)


@dataclass(frozen=True)
class TaskFilter:
    """
    Conjunctive predicate over a single owner's tasks.

    search matches case-insensitively as a substring of title OR description.
    status and priority are exact matches and are not validated, so unknown
    values select nothing.
    """

    owner_id: str
    search: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None

    def matches(self, task: TaskEntity) -> bool:
        if task["owner"] != self.owner_id:
            return False
        if self.status is not None and task["status"] != self.status:
            return False
        if self.priority is not None and task["priority"] != self.priority:
            return False
        if self.search is not None:
            s = self.search.lower()
            title_ok = s in (task["title"] or "").lower()
            desc_ok = s in (task["description"] or "").lower()
            return title_ok or desc_ok
        return True


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    return value


# PUBLIC_INTERFACE
def build_filter(
    owner_id: str,
    search: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
) -> TaskFilter:
    """Build the list predicate. Empty values impose no constraint."""
    return TaskFilter(
        owner_id=owner_id,
        search=_blank_to_none(search),
        status=_blank_to_none(status),
        priority=_blank_to_none(priority),
    )


@dataclass(frozen=True)
class Ordering:
    """
    Requested sort. field is the caller's name, passed through unchecked;
    storage_field is its storage column, or None when no task carries it.
    """

    field: str = DEFAULT_SORT_FIELD
    descending: bool = True

    @property
    def storage_field(self) -> Optional[str]:
        return SORTABLE_FIELDS.get(self.field)


# PUBLIC_INTERFACE
def build_ordering(field: Optional[str] = None, direction: Optional[str] = None) -> Ordering:
    """Only 'asc' sorts ascending; anything else, including nothing, is descending."""
    field = (field or "").strip() or DEFAULT_SORT_FIELD
    ascending = (direction or "").strip().lower() == "asc"
    return Ordering(field=field, descending=not ascending)


@dataclass(frozen=True)
class Page:
    """Skip/take window plus the metadata returned alongside a page."""

    skip: int
    take: int
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool

    def meta(self) -> dict:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
            "has_more": self.has_more,
        }


def parse_int(value: Any, default: int) -> int:
    """Lenient integer parse: None, blanks and garbage fall back to default."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


# PUBLIC_INTERFACE
def window(page: Any = None, limit: Any = None, max_limit: int = DEFAULT_MAX_LIMIT) -> tuple:
    """
    Parse and clamp page/limit, returning (page, limit).
    page is at least 1; limit lies in [1, max_limit].
    """
    p = max(parse_int(page, DEFAULT_PAGE), 1)
    n = min(max(parse_int(limit, DEFAULT_LIMIT), 1), max(max_limit, 1))
    return p, n


# PUBLIC_INTERFACE
def paginate(page: Any, limit: Any, total: int, max_limit: int = DEFAULT_MAX_LIMIT) -> Page:
    """
    Compute the result window and page metadata.

    >>> p = paginate(2, 10, 25)
    >>> (p.skip, p.take, p.total_pages, p.has_more)
    (10, 10, 3, True)
    """
    p, n = window(page, limit, max_limit)
    total = max(int(total), 0)
    total_pages = math.ceil(total / n)
    return Page(
        skip=(p - 1) * n,
        take=n,
        page=p,
        limit=n,
        total=total,
        total_pages=total_pages,
        has_more=p < total_pages,
    )
