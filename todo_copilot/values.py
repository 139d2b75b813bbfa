"""
Value objects and identifier types for the Todo aggregate.

All value objects are immutable and compare by value. Their factories are the
only place where input is validated; invalid input raises ValidationError.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import NewType, Tuple

from .errors import ValidationError

TodoId = NewType("TodoId", str)
SubtaskId = NewType("SubtaskId", str)

TITLE_MAX_LENGTH = 500
DESCRIPTION_MAX_LENGTH = 10_000
ALLOWED_TAGS: Tuple[str, ...] = ("Summary", "Research", "Split")


def new_todo_id() -> TodoId:
    return TodoId(str(uuid.uuid4()))


def new_subtask_id() -> SubtaskId:
    return SubtaskId(str(uuid.uuid4()))


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Title:
    """
    Title of a todo or subtask.

    Invariant: the stored value is trimmed and 1..500 characters long.
    """

    value: str

    @classmethod
    def create(cls, raw: str) -> "Title":
        """Trim raw input and validate its length."""
        if not isinstance(raw, str):
            raise ValidationError("Title must be a string", {"type": type(raw).__name__})
        s = raw.strip()
        if not s:
            raise ValidationError("Todo title cannot be empty")
        if len(s) > TITLE_MAX_LENGTH:
            raise ValidationError(
                f"Todo title cannot exceed {TITLE_MAX_LENGTH} characters",
                {"length": len(s), "max_length": TITLE_MAX_LENGTH},
            )
        return cls(s)

    def __str__(self) -> str:
        return self.value


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Description:
    """
    Markdown description of a todo. May be empty; at most 10,000 characters.
    """

    value: str = ""

    @classmethod
    def create(cls, raw: str) -> "Description":
        if not isinstance(raw, str):
            raise ValidationError("Description must be a string", {"type": type(raw).__name__})
        if len(raw) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters",
                {"length": len(raw), "max_length": DESCRIPTION_MAX_LENGTH},
            )
        return cls(raw)

    @classmethod
    def empty(cls) -> "Description":
        return cls("")

    @property
    def is_empty(self) -> bool:
        return len(self.value) == 0

    @property
    def has_content(self) -> bool:
        return len(self.value.strip()) > 0

    def __len__(self) -> int:
        return len(self.value)

    def __str__(self) -> str:
        return self.value


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Tag:
    """A label from the fixed ALLOWED_TAGS vocabulary."""

    name: str

    @classmethod
    def create(cls, name: str) -> "Tag":
        if name not in ALLOWED_TAGS:
            raise ValidationError(
                f"Invalid tag name: {name}. Allowed tags are: {', '.join(ALLOWED_TAGS)}",
                {"tag": name, "allowed": list(ALLOWED_TAGS)},
            )
        return cls(name)

    def __str__(self) -> str:
        return self.name
