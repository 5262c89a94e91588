from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status

from ..auth import get_current_owner
from ..models import TaskEntity, TaskStatus
from ..query import FORBIDDEN, authorize, build_filter, build_ordering, paginate, window
from ..repositories import Repository, TaskQuery
from ..schemas import (
    MessageEnvelope,
    StatsEnvelope,
    TaskCreate,
    TaskEnvelope,
    TaskListEnvelope,
    TaskOut,
    TaskUpdate,
)
from ..stats import aggregate_stats
from ..utils import pagination_envelope

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/tasks",
    tags=["tasks"],
)

_GUARDED_RESPONSES = {
    401: {"description": "Not authenticated"},
    403: {"description": "Task belongs to another user"},
    404: {"description": "Task not found"},
}


def get_repository(request: Request) -> Repository:
    """
    Dependency returning the repository the application was built with.
    """
    return request.app.state.repository


def _owned_task(repo: Repository, task_id: str, owner_id: str, action: str) -> TaskEntity:
    """
    Load task_id and run the ownership guard. 404 when missing, 403 when it
    belongs to someone else.
    """
    task = repo.get(task_id)
    decision = authorize(task, owner_id)
    if decision.allowed:
        assert task is not None
        return task
    if decision.reason == FORBIDDEN:
        logger.warning("Denied %s of task %s to owner=%s", action, task_id, owner_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not authorized to {action} this task",
        )
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TaskEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a new task owned by the caller and return it.",
    responses={
        201: {"description": "Task created successfully"},
        401: {"description": "Not authenticated"},
        422: {"description": "Validation error"},
    },
)
def create_task(
    payload: TaskCreate,
    owner_id: str = Depends(get_current_owner),
    repo: Repository = Depends(get_repository),
) -> TaskEnvelope:
    """
    Create a new task. status defaults to pending and priority to medium.
    """
    created = repo.create(owner_id, payload)
    logger.info("Created task %s for owner=%s", created["id"], owner_id)
    return TaskEnvelope(message="Task created successfully", data=TaskOut(**created))


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=TaskListEnvelope,
    summary="List Tasks",
    description=(
        "List the caller's tasks with optional filters, sorting and pagination.\n\n"
        "Query parameters:\n"
        "- search: case-insensitive substring of title or description\n"
        "- status: exact status match\n"
        "- priority: exact priority match\n"
        "- page: 1-based page number (default 1)\n"
        "- limit: page size (default 10, clamped to 1..MAX_PAGE_LIMIT)\n"
        "- sortBy: field to sort on (default createdAt)\n"
        "- order: 'asc' sorts ascending, anything else descending\n\n"
        "Non-numeric page/limit fall back to their defaults."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        401: {"description": "Not authenticated"},
    },
)
def list_tasks(
    request: Request,
    search: Optional[str] = Query(None, description="Search text for title/description"),
    task_status: Optional[str] = Query(None, alias="status", description="Filter by status"),
    priority: Optional[str] = Query(None, description="Filter by priority"),
    page: Optional[str] = Query(None, description="Page number, 1-based"),
    limit: Optional[str] = Query(None, description="Page size"),
    sort_by: Optional[str] = Query(None, alias="sortBy", description="Field to sort by"),
    order: Optional[str] = Query(None, description="'asc' or 'desc'"),
    owner_id: str = Depends(get_current_owner),
    repo: Repository = Depends(get_repository),
) -> TaskListEnvelope:
    """
    List tasks with pagination and filters.
    """
    max_limit = request.app.state.settings.max_page_limit
    page_no, page_size = window(page, limit, max_limit)

    query = TaskQuery(
        filter=build_filter(owner_id, search=search, status=task_status, priority=priority),
        ordering=build_ordering(sort_by, order),
        skip=(page_no - 1) * page_size,
        take=page_size,
    )
    items, total = repo.list(query)
    envelope = pagination_envelope(
        items=[TaskOut(**it) for it in items],
        page=paginate(page_no, page_size, total, max_limit),
    )
    return TaskListEnvelope(**envelope)


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=StatsEnvelope,
    summary="Task Statistics",
    description=(
        "Count the caller's tasks in total, by status and by priority. "
        "Groups with no tasks are omitted."
    ),
    responses={401: {"description": "Not authenticated"}},
)
def get_task_stats(
    owner_id: str = Depends(get_current_owner),
    repo: Repository = Depends(get_repository),
) -> StatsEnvelope:
    return StatsEnvelope(data=aggregate_stats(repo, owner_id))


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskEnvelope,
    summary="Get Task",
    description="Get a single task by ID.",
    responses={200: {"description": "Task found"}, **_GUARDED_RESPONSES},
)
def get_task(
    task_id: str,
    owner_id: str = Depends(get_current_owner),
    repo: Repository = Depends(get_repository),
) -> TaskEnvelope:
    """
    Retrieve a single task by its ID.
    """
    task = _owned_task(repo, task_id, owner_id, "access")
    return TaskEnvelope(data=TaskOut(**task))


def _update(task_id: str, payload: TaskUpdate, owner_id: str, repo: Repository) -> TaskEnvelope:
    _owned_task(repo, task_id, owner_id, "update")
    changes = payload.changes()
    updated = repo.update(task_id, changes)
    if not updated:
        # Deleted between the guard and the write
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    logger.info("Updated task %s fields=%s", task_id, sorted(changes))
    return TaskEnvelope(message="Task updated successfully", data=TaskOut(**updated))


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskEnvelope,
    summary="Update Task",
    description=(
        "Partially update a task. Fields absent from the body are left unchanged; "
        "an explicit null clears description and dueDate."
    ),
    responses={200: {"description": "Task updated"}, **_GUARDED_RESPONSES},
)
def put_task(
    task_id: str,
    payload: TaskUpdate = Body(...),
    owner_id: str = Depends(get_current_owner),
    repo: Repository = Depends(get_repository),
) -> TaskEnvelope:
    return _update(task_id, payload, owner_id, repo)


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=TaskEnvelope,
    summary="Patch Task",
    description="Same partial-update semantics as PUT.",
    responses={200: {"description": "Task updated"}, **_GUARDED_RESPONSES},
)
def patch_task(
    task_id: str,
    payload: TaskUpdate = Body(...),
    owner_id: str = Depends(get_current_owner),
    repo: Repository = Depends(get_repository),
) -> TaskEnvelope:
    return _update(task_id, payload, owner_id, repo)


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/renew",
    response_model=TaskEnvelope,
    summary="Renew Task",
    description="Set a task back to pending and clear its due date. completedAt is kept.",
    responses={200: {"description": "Task renewed"}, **_GUARDED_RESPONSES},
)
def renew_task(
    task_id: str,
    owner_id: str = Depends(get_current_owner),
    repo: Repository = Depends(get_repository),
) -> TaskEnvelope:
    _owned_task(repo, task_id, owner_id, "update")
    renewed = repo.update(task_id, {"status": TaskStatus.PENDING.value, "due_date": None})
    if not renewed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    logger.info("Renewed task %s", task_id)
    return TaskEnvelope(message="Task renewed and set to pending", data=TaskOut(**renewed))


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    response_model=MessageEnvelope,
    summary="Delete Task",
    description="Permanently delete a task by ID.",
    responses={200: {"description": "Task deleted"}, **_GUARDED_RESPONSES},
)
def delete_task(
    task_id: str,
    owner_id: str = Depends(get_current_owner),
    repo: Repository = Depends(get_repository),
) -> MessageEnvelope:
    """
    Delete a task. Returns 200 with an empty data object.
    """
    _owned_task(repo, task_id, owner_id, "delete")
    if not repo.delete(task_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    logger.info("Deleted task %s", task_id)
    return MessageEnvelope(message="Task deleted successfully")
