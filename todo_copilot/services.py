from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from .errors import NotFoundError, ValidationError
from .events import DomainEvent, todo_completion_changed, todo_created, todo_deleted
from .models import Subtask, Todo
from .repositories import Repository, get_repository, not_found
from .utils import utcnow
from .values import ALLOWED_TAGS

logger = logging.getLogger(__name__)

SORT_FIELDS = {"created_at", "updated_at"}


@dataclass(frozen=True)
class ListQuery:
    """
    Query parameters for listing todos.
    """
    limit: int = 50
    offset: int = 0
    completed: Optional[bool] = None
    search: Optional[str] = None
    sort: str = "-created_at"  # allowed: created_at, -created_at, updated_at, -updated_at


def _matches(todo: Todo, needle: str) -> bool:
    return needle in todo.title.value.lower() or needle in todo.description.value.lower()


# PUBLIC_INTERFACE
class TodoService:
    """
    Application service for todo use cases.

    Loads aggregates from the repository, applies domain operations, saves the
    result and records domain events. Existence checks happen here so the
    entity operations never have to report missing ids.

    Domain events accumulate in an instance-owned buffer until
    pull_domain_events() is called.
    """

    def __init__(self, repository: Repository) -> None:
        self._repository = repository
        self._events: List[DomainEvent] = []

    @property
    def repository(self) -> Repository:
        return self._repository

    async def _require(self, todo_id: str) -> Todo:
        todo = await self._repository.find_by_id(todo_id)
        if todo is None:
            raise not_found(todo_id)
        return todo

    # Commands

    async def create_todo(self, title: str) -> Todo:
        logger.debug("Creating todo")
        todo = Todo.create(title)
        await self._repository.save(todo)
        self._events.append(todo_created(todo.id, todo.title.value, todo.created_at))
        logger.info("Todo created: %s", todo.id)
        return todo

    async def save_todo(self, todo_id: str, record: Mapping[str, Any]) -> Todo:
        """
        Upsert a todo from a full persisted record (last write wins).

        The record id must match todo_id.
        """
        if record.get("id") != todo_id:
            raise ValidationError(
                "Todo id in body does not match path", {"path_id": todo_id, "body_id": record.get("id")}
            )
        try:
            todo = Todo.from_json(record)
        except (KeyError, TypeError) as e:
            raise ValidationError(f"Incomplete todo record: {e}", {"id": todo_id}) from e
        await self._repository.save(todo)
        logger.info("Todo saved: %s", todo.id)
        return todo

    async def toggle_todo(self, todo_id: str) -> Todo:
        todo = await self._require(todo_id)
        updated = todo.toggle_completion()
        await self._repository.save(updated)
        self._events.append(todo_completion_changed(updated.id, updated.status, updated.updated_at))
        logger.info("Todo %s toggled to %s", updated.id, updated.status)
        return updated

    async def update_description(self, todo_id: str, description: str) -> Todo:
        todo = await self._require(todo_id)
        updated = todo.update_description(description)
        await self._repository.save(updated)
        logger.info("Todo %s description updated", todo_id)
        return updated

    async def delete_todo(self, todo_id: str) -> None:
        todo = await self._require(todo_id)
        await self._repository.remove(todo.id)
        self._events.append(todo_deleted(todo.id, utcnow()))
        logger.info("Todo deleted: %s", todo_id)

    async def clear_todos(self) -> None:
        await self._repository.clear()
        logger.info("All todos cleared")

    async def add_subtask(self, todo_id: str, title: str) -> Subtask:
        todo = await self._require(todo_id)
        updated = todo.add_subtask(title)
        await self._repository.save(updated)
        subtask = updated.subtasks[-1]
        logger.info("Subtask %s added to todo %s", subtask.id, todo_id)
        return subtask

    async def toggle_subtask(self, todo_id: str, subtask_id: str) -> Subtask:
        todo = await self._require(todo_id)
        if todo.find_subtask(subtask_id) is None:
            raise NotFoundError(
                f"Subtask with id {subtask_id} not found", {"id": todo_id, "subtask_id": subtask_id}
            )
        updated = todo.toggle_subtask(subtask_id)
        await self._repository.save(updated)
        return next(s for s in updated.subtasks if s.id == subtask_id)

    async def remove_subtask(self, todo_id: str, subtask_id: str) -> Todo:
        todo = await self._require(todo_id)
        if todo.find_subtask(subtask_id) is None:
            raise NotFoundError(
                f"Subtask with id {subtask_id} not found", {"id": todo_id, "subtask_id": subtask_id}
            )
        updated = todo.remove_subtask(subtask_id)
        await self._repository.save(updated)
        logger.info("Subtask %s removed from todo %s", subtask_id, todo_id)
        return updated

    async def add_tag(self, todo_id: str, tag: str) -> Todo:
        todo = await self._require(todo_id)
        updated = todo.add_tag(tag)
        if updated is not todo:
            await self._repository.save(updated)
        return updated

    async def remove_tag(self, todo_id: str, tag: str) -> Todo:
        todo = await self._require(todo_id)
        if not todo.has_tag(tag):
            raise NotFoundError(f"Tag {tag} not found on todo {todo_id}", {"id": todo_id, "tag": tag})
        updated = todo.remove_tag(tag)
        await self._repository.save(updated)
        return updated

    # Queries

    async def get_todo(self, todo_id: str) -> Todo:
        logger.debug("Fetching todo %s", todo_id)
        return await self._require(todo_id)

    async def list_todos(self, query: Optional[ListQuery] = None) -> Tuple[List[Todo], int]:
        """
        Return a page of todos and the total count matching the filters.
        - Filter by completed
        - Substring search across title and description (case-insensitive)
        - Sorting by created_at/updated_at (asc/desc)
        - limit/offset pagination
        """
        q = query or ListQuery()
        items = await self._repository.find_all()

        if q.completed is not None:
            items = [t for t in items if t.completed == q.completed]
        if q.search:
            needle = q.search.lower()
            items = [t for t in items if _matches(t, needle)]
        total = len(items)

        sort_key = q.sort.strip().lower() if q.sort else "-created_at"
        reverse = sort_key.startswith("-")
        field = sort_key[1:] if reverse else sort_key
        if field not in SORT_FIELDS:
            field = "created_at"
        items = sorted(items, key=lambda t: getattr(t, field), reverse=reverse)

        start = max(q.offset, 0)
        end = start + max(q.limit, 0)
        logger.debug("Listing todos: %d of %d", len(items[start:end]), total)
        return items[start:end], total

    async def count_todos(self) -> int:
        return await self._repository.count()

    def list_tags(self) -> List[str]:
        return list(ALLOWED_TAGS)

    def pull_domain_events(self) -> List[DomainEvent]:
        """Return the events recorded since the last call and empty the buffer."""
        events = list(self._events)
        self._events.clear()
        return events


# PUBLIC_INTERFACE
def get_service() -> TodoService:
    """
    Return a service bound to the configured repository.

    The repository is shared by the process; the service, and with it the
    domain event buffer, is built per request.
    """
    return TodoService(get_repository())
