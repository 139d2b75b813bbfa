from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable, List, Literal, Mapping, Optional, Tuple, TypedDict, Union

from .errors import ValidationError
from .utils import format_timestamp, next_timestamp, parse_timestamp
from .values import (
    Description,
    SubtaskId,
    Tag,
    Title,
    TodoId,
    new_subtask_id,
    new_todo_id,
)

TodoStatus = Literal["Pending", "Completed"]


# PUBLIC_INTERFACE
class SubtaskRecord(TypedDict):
    """
    Persisted shape of a subtask.

    Fields:
    - id: opaque unique token
    - title: raw title string
    - completed: completion flag
    - parentId: id of the owning todo
    """

    id: str
    title: str
    completed: bool
    parentId: str


# PUBLIC_INTERFACE
class TodoRecord(TypedDict):
    """
    Persisted shape of a todo, shared by every storage backend and the HTTP API.

    Fields:
    - id: opaque unique token
    - title: raw title string (1..500 chars after trimming)
    - completed: completion flag
    - createdAt / updatedAt: ISO-8601 UTC timestamps
    - subtasks: ordered list of SubtaskRecord
    - description: markdown text, may be empty
    - tags: tag names from ALLOWED_TAGS
    """

    id: str
    title: str
    completed: bool
    createdAt: str
    updatedAt: str
    subtasks: List[SubtaskRecord]
    description: str
    tags: List[str]


def _timestamp(value: Union[str, datetime], name: str) -> datetime:
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {name} timestamp: {value!r}", {"field": name}) from e


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Subtask:
    """A child task owned by a Todo. Every mutator returns a new instance."""

    id: SubtaskId
    title: Title
    completed: bool
    parent_id: TodoId

    @classmethod
    def create(cls, title: str, parent_id: TodoId) -> "Subtask":
        return cls(new_subtask_id(), Title.create(title), False, parent_id)

    @classmethod
    def from_persistence(cls, id: str, title: str, completed: bool, parent_id: str) -> "Subtask":
        """Rebuild a stored subtask. The title is validated again."""
        return cls(SubtaskId(id), Title.create(title), bool(completed), TodoId(parent_id))

    @classmethod
    def from_json(cls, record: Mapping[str, Any], parent_id: Optional[str] = None) -> "Subtask":
        return cls.from_persistence(
            record["id"],
            record["title"],
            record["completed"],
            record.get("parentId") or parent_id,
        )

    def toggle_completion(self) -> "Subtask":
        return replace(self, completed=not self.completed)

    def mark_completed(self) -> "Subtask":
        return replace(self, completed=True)

    def to_json(self) -> SubtaskRecord:
        return {
            "id": self.id,
            "title": self.title.value,
            "completed": self.completed,
            "parentId": self.parent_id,
        }


# PUBLIC_INTERFACE
@dataclass(frozen=True, eq=False)
class Todo:
    """
    Todo aggregate root.

    Instances are immutable: every operation that changes state returns a new
    Todo with a strictly later `updated_at`. The aggregate owns its subtasks;
    they are exposed as a tuple so callers cannot mutate them in place.

    Completing a todo completes all of its subtasks. Reopening a todo leaves
    the subtasks as they are.

    Equality compares only `id` and `completed`.
    """

    id: TodoId
    title: Title
    completed: bool
    created_at: datetime
    updated_at: datetime
    subtasks: Tuple[Subtask, ...] = ()
    description: Description = field(default_factory=Description.empty)
    tags: Tuple[Tag, ...] = ()

    @classmethod
    def create(cls, title: str) -> "Todo":
        """Create a new pending todo with a fresh id and timestamps."""
        todo_title = Title.create(title)
        now = next_timestamp()
        return cls(new_todo_id(), todo_title, False, now, now)

    @classmethod
    def from_persistence(
        cls,
        id: str,
        title: str,
        completed: bool,
        created_at: Union[str, datetime],
        updated_at: Union[str, datetime],
        subtasks: Iterable[Union[Subtask, Mapping[str, Any]]] = (),
        description: str = "",
        tags: Iterable[str] = (),
    ) -> "Todo":
        """
        Rebuild a todo from stored fields without minting a new id or
        timestamps. Stored values are validated the same way as new input.
        """
        todo_id = TodoId(id)
        rebuilt: List[Subtask] = []
        seen = set()
        for s in subtasks:
            sub = s if isinstance(s, Subtask) else Subtask.from_json(s, todo_id)
            if sub.parent_id != todo_id:
                raise ValidationError(
                    f"Subtask {sub.id} belongs to todo {sub.parent_id}, not {todo_id}",
                    {"todo_id": todo_id, "subtask_id": sub.id},
                )
            if sub.id in seen:
                raise ValidationError(f"Duplicate subtask id {sub.id}", {"todo_id": todo_id})
            seen.add(sub.id)
            rebuilt.append(sub)

        unique_tags: List[Tag] = []
        for name in tags:
            tag = Tag.create(name)
            if tag not in unique_tags:
                unique_tags.append(tag)

        return cls(
            todo_id,
            Title.create(title),
            bool(completed),
            _timestamp(created_at, "createdAt"),
            _timestamp(updated_at, "updatedAt"),
            tuple(rebuilt),
            Description.create(description or ""),
            tuple(unique_tags),
        )

    @classmethod
    def from_json(cls, record: Mapping[str, Any]) -> "Todo":
        """
        Rebuild a todo from a persisted record.

        Raises:
            KeyError/TypeError if required fields are missing or malformed.
            ValidationError if stored values break the domain invariants.
        """
        return cls.from_persistence(
            record["id"],
            record["title"],
            record["completed"],
            record["createdAt"],
            record["updatedAt"],
            record.get("subtasks") or (),
            record.get("description") or "",
            record.get("tags") or (),
        )

    def _touch(self, **changes: Any) -> "Todo":
        return replace(self, updated_at=next_timestamp(self.updated_at), **changes)

    @property
    def status(self) -> TodoStatus:
        return "Completed" if self.completed else "Pending"

    def toggle_completion(self) -> "Todo":
        """Flip completion. When the todo becomes completed, so do its subtasks."""
        completed = not self.completed
        subtasks = self.subtasks
        if completed:
            subtasks = tuple(s.mark_completed() for s in subtasks)
        return self._touch(completed=completed, subtasks=subtasks)

    def add_subtask(self, title: str) -> "Todo":
        subtask = Subtask.create(title, self.id)
        return self._touch(subtasks=self.subtasks + (subtask,))

    def remove_subtask(self, subtask_id: str) -> "Todo":
        return self._touch(subtasks=tuple(s for s in self.subtasks if s.id != subtask_id))

    def toggle_subtask(self, subtask_id: str) -> "Todo":
        # Unknown ids are ignored; callers check existence first.
        return self._touch(
            subtasks=tuple(s.toggle_completion() if s.id == subtask_id else s for s in self.subtasks)
        )

    def find_subtask(self, subtask_id: str) -> Optional[Subtask]:
        for s in self.subtasks:
            if s.id == subtask_id:
                return s
        return None

    def update_description(self, text: str) -> "Todo":
        return self._touch(description=Description.create(text))

    def has_tag(self, name: str) -> bool:
        return any(t.name == name for t in self.tags)

    def add_tag(self, name: str) -> "Todo":
        tag = Tag.create(name)
        if tag in self.tags:
            return self
        return self._touch(tags=self.tags + (tag,))

    def remove_tag(self, name: str) -> "Todo":
        if not self.has_tag(name):
            return self
        return self._touch(tags=tuple(t for t in self.tags if t.name != name))

    def to_json(self) -> TodoRecord:
        return {
            "id": self.id,
            "title": self.title.value,
            "completed": self.completed,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "subtasks": [s.to_json() for s in self.subtasks],
            "description": self.description.value,
            "tags": [t.name for t in self.tags],
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Todo):
            return NotImplemented
        return self.id == other.id and self.completed == other.completed

    def __hash__(self) -> int:
        return hash(self.id)
