from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from ..schemas import (
    CountOut,
    DescriptionUpdate,
    SubtaskCreate,
    SubtaskOut,
    TagAdd,
    TodoCreate,
    TodoOut,
)
from ..services import SORT_FIELDS, ListQuery, TodoService, get_service
from ..utils import pagination_envelope

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["todos"],
)


class PaginationEnvelope(BaseModel):
    """
    Envelope for paginated list responses.
    """
    items: List[TodoOut] = Field(..., description="List of Todo items")
    total: int = Field(..., description="Total number of items matching the query")
    limit: int = Field(..., description="Limit applied to the query")
    offset: int = Field(..., description="Offset applied to the query")


async def _get_service(service: TodoService = Depends(get_service)) -> AsyncIterator[TodoService]:
    """
    Dependency wrapper for the application service to keep signatures clean.

    Domain events recorded while handling the request are drained and logged
    once the handler finishes.
    """
    try:
        yield service
    finally:
        for event in service.pull_domain_events():
            logger.info("%s %s %s", event.event_type, event.aggregate_id, event.data)


def _resolve_sort(sort: Optional[str], order: Optional[str]) -> str:
    """
    Combine `sort` and `order` into one ListQuery sort key.

    Unknown fields fall back to newest-first by created_at; `order`, when
    given, replaces the direction implied by a '-' prefix.
    """
    key = (sort or "-created_at").strip().lower()
    descending = key.startswith("-")
    field = key.lstrip("-")
    if field not in SORT_FIELDS:
        field, descending = "created_at", True
    if order:
        direction = order.strip().lower()
        if direction not in ("asc", "desc"):
            raise HTTPException(status_code=400, detail="order must be 'asc' or 'desc'")
        descending = direction == "desc"
    return f"-{field}" if descending else field


# PUBLIC_INTERFACE
@router.post(
    "/todos",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a pending Todo from a title (trimmed, 1..500 characters).",
    responses={
        201: {"description": "Todo created"},
        422: {"description": "Title missing, blank or too long"},
    },
)
async def create_todo(payload: TodoCreate, service: TodoService = Depends(_get_service)) -> TodoOut:
    todo = await service.create_todo(payload.title)
    return TodoOut.from_domain(todo)


# PUBLIC_INTERFACE
@router.get(
    "/todos",
    response_model=PaginationEnvelope,
    summary="List Todos",
    description=(
        "List todos with optional filters and pagination.\n\n"
        "Query parameters:\n"
        "- limit: max number of items to return (0..1000)\n"
        "- offset: number of items to skip (>=0)\n"
        "- completed: filter by completion status\n"
        "- q: search query for title/description (substring match)\n"
        "- sort: one of created_at, -created_at, updated_at, -updated_at\n"
        "- order: asc or desc (if provided, it overrides the direction in sort)\n\n"
        "Returns a pagination envelope with items and total count."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
    },
)
async def list_todos(
    limit: int = Query(50, ge=0, le=1000, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    completed: Optional[bool] = Query(None, description="Filter by completion status"),
    q: Optional[str] = Query(None, description="Search text for title/description"),
    sort: Optional[str] = Query(
        "-created_at",
        description="Sort by field: created_at, -created_at, updated_at, -updated_at",
    ),
    order: Optional[str] = Query(
        None, description="Override sort direction: 'asc' or 'desc'"
    ),
    service: TodoService = Depends(_get_service),
) -> PaginationEnvelope:
    query = ListQuery(
        limit=limit,
        offset=offset,
        completed=completed,
        search=(q or "").strip() or None,
        sort=_resolve_sort(sort, order),
    )
    items, total = await service.list_todos(query)
    return PaginationEnvelope(
        **pagination_envelope([TodoOut.from_domain(t) for t in items], total, limit, offset)
    )


# PUBLIC_INTERFACE
@router.get(
    "/todos/count",
    response_model=CountOut,
    summary="Count Todos",
    description="Return the number of stored todos.",
)
async def count_todos(service: TodoService = Depends(_get_service)) -> CountOut:
    return CountOut(count=await service.count_todos())


# PUBLIC_INTERFACE
@router.delete(
    "/todos",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear Todos",
    description="Delete every stored todo.",
)
async def clear_todos(service: TodoService = Depends(_get_service)) -> Response:
    await service.clear_todos()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.get(
    "/todos/{todo_id}",
    response_model=TodoOut,
    summary="Get Todo",
    description="Return one Todo with its subtasks, tags and description.",
    responses={
        200: {"description": "Todo found"},
        404: {"description": "Todo not found"},
    },
)
async def get_todo(todo_id: str, service: TodoService = Depends(_get_service)) -> TodoOut:
    return TodoOut.from_domain(await service.get_todo(todo_id))


# PUBLIC_INTERFACE
@router.put(
    "/todos/{todo_id}",
    response_model=TodoOut,
    summary="Save Todo",
    description=(
        "Insert or replace a Todo from its full stored representation. "
        "The body id must match the path id. Last write wins."
    ),
    responses={
        200: {"description": "Todo saved"},
        400: {"description": "Body does not describe a valid todo"},
    },
)
async def put_todo(todo_id: str, payload: TodoOut, service: TodoService = Depends(_get_service)) -> TodoOut:
    """
    Upsert semantics: used by remote repositories to persist aggregates.
    """
    todo = await service.save_todo(todo_id, payload.model_dump())
    return TodoOut.from_domain(todo)


# PUBLIC_INTERFACE
@router.delete(
    "/todos/{todo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Todo",
    description="Remove a Todo and its subtasks.",
    responses={
        204: {"description": "Todo deleted"},
        404: {"description": "Todo not found"},
    },
)
async def delete_todo(todo_id: str, service: TodoService = Depends(_get_service)) -> Response:
    await service.delete_todo(todo_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.put(
    "/todos/{todo_id}/toggle",
    response_model=TodoOut,
    summary="Toggle Todo",
    description="Flip completion. Completing a todo also completes all of its subtasks.",
    responses={404: {"description": "Todo not found"}},
)
async def toggle_todo(todo_id: str, service: TodoService = Depends(_get_service)) -> TodoOut:
    return TodoOut.from_domain(await service.toggle_todo(todo_id))


# PUBLIC_INTERFACE
@router.put(
    "/todos/{todo_id}/description",
    response_model=TodoOut,
    summary="Update Description",
    description="Replace the markdown description of a Todo.",
    responses={404: {"description": "Todo not found"}},
)
async def update_description(
    todo_id: str, payload: DescriptionUpdate, service: TodoService = Depends(_get_service)
) -> TodoOut:
    return TodoOut.from_domain(await service.update_description(todo_id, payload.description))


# PUBLIC_INTERFACE
@router.post(
    "/todos/{todo_id}/subtasks",
    response_model=SubtaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add Subtask",
    responses={404: {"description": "Todo not found"}},
)
async def add_subtask(
    todo_id: str, payload: SubtaskCreate, service: TodoService = Depends(_get_service)
) -> SubtaskOut:
    return SubtaskOut.from_domain(await service.add_subtask(todo_id, payload.title))


# PUBLIC_INTERFACE
@router.patch(
    "/todos/{todo_id}/subtasks/{subtask_id}",
    response_model=SubtaskOut,
    summary="Toggle Subtask",
    responses={404: {"description": "Todo or subtask not found"}},
)
async def toggle_subtask(
    todo_id: str, subtask_id: str, service: TodoService = Depends(_get_service)
) -> SubtaskOut:
    return SubtaskOut.from_domain(await service.toggle_subtask(todo_id, subtask_id))


# PUBLIC_INTERFACE
@router.delete(
    "/todos/{todo_id}/subtasks/{subtask_id}",
    response_model=TodoOut,
    summary="Delete Subtask",
    responses={404: {"description": "Todo or subtask not found"}},
)
async def remove_subtask(
    todo_id: str, subtask_id: str, service: TodoService = Depends(_get_service)
) -> TodoOut:
    return TodoOut.from_domain(await service.remove_subtask(todo_id, subtask_id))


# PUBLIC_INTERFACE
@router.get(
    "/tags",
    response_model=List[str],
    summary="List Tags",
    description="Return the tags a Todo may carry.",
)
async def list_tags(service: TodoService = Depends(_get_service)) -> List[str]:
    return service.list_tags()


# PUBLIC_INTERFACE
@router.post(
    "/todos/{todo_id}/tags",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add Tag",
    responses={400: {"description": "Unknown tag"}, 404: {"description": "Todo not found"}},
)
async def add_tag(todo_id: str, payload: TagAdd, service: TodoService = Depends(_get_service)) -> TodoOut:
    return TodoOut.from_domain(await service.add_tag(todo_id, payload.tag))


# PUBLIC_INTERFACE
@router.delete(
    "/todos/{todo_id}/tags/{tag}",
    response_model=TodoOut,
    summary="Remove Tag",
    responses={404: {"description": "Todo or tag not found"}},
)
async def remove_tag(todo_id: str, tag: str, service: TodoService = Depends(_get_service)) -> TodoOut:
    return TodoOut.from_domain(await service.remove_tag(todo_id, tag))
