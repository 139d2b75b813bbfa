from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Subtask, Todo
from .values import ALLOWED_TAGS, DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH


def _validate_title(v: str) -> str:
    """
    Strip whitespace and enforce 1..500 length.
    """
    if v is None:
        raise ValueError("title is required")
    s = v.strip()
    if not (1 <= len(s) <= TITLE_MAX_LENGTH):
        raise ValueError(f"title length must be between 1 and {TITLE_MAX_LENGTH} characters")
    return s


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating a new Todo item.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"title": "Buy groceries"}})

    title: str = Field(..., description="Short title for the todo item", min_length=1)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _validate_title(v)


# PUBLIC_INTERFACE
class SubtaskCreate(BaseModel):
    """
    Schema for adding a subtask to a Todo.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"title": "Get leash"}})

    title: str = Field(..., description="Short title for the subtask", min_length=1)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _validate_title(v)


# PUBLIC_INTERFACE
class DescriptionUpdate(BaseModel):
    """
    Schema for replacing the markdown description of a Todo.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"description": "## Notes\n- milk\n- eggs"}})

    description: str = Field(
        default="", description="Markdown description (may be empty)", max_length=DESCRIPTION_MAX_LENGTH
    )


# PUBLIC_INTERFACE
class TagAdd(BaseModel):
    """
    Schema for tagging a Todo.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"tag": "Research"}})

    tag: str = Field(..., description=f"One of: {', '.join(ALLOWED_TAGS)}")


# PUBLIC_INTERFACE
class SubtaskOut(BaseModel):
    """
    Subtask as stored and returned by the API.
    """

    id: str = Field(..., description="Unique identifier of the subtask")
    title: str = Field(..., description="Subtask title")
    completed: bool = Field(..., description="Completion status flag")
    parentId: str = Field(..., description="Identifier of the owning todo")

    @classmethod
    def from_domain(cls, subtask: Subtask) -> "SubtaskOut":
        return cls(**subtask.to_json())


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Todo as stored and returned by the API. This is also the body accepted by
    PUT /todos/{id}.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "3f0c2a9e-5d7b-4d55-9a57-0f5b9c1b2e11",
                "title": "Buy groceries",
                "completed": False,
                "createdAt": "2025-01-25T10:15:30.123Z",
                "updatedAt": "2025-01-26T09:00:00.000Z",
                "subtasks": [],
                "description": "",
                "tags": ["Summary"],
            }
        }
    )

    id: str = Field(..., description="Unique identifier of the todo item", min_length=1)
    title: str = Field(..., description="Short title for the todo item")
    completed: bool = Field(..., description="Completion status flag")
    createdAt: str = Field(..., description="Creation timestamp (ISO-8601, UTC)")
    updatedAt: str = Field(..., description="Last update timestamp (ISO-8601, UTC)")
    subtasks: List[SubtaskOut] = Field(default_factory=list, description="Ordered subtasks")
    description: str = Field(default="", description="Markdown description")
    tags: List[str] = Field(default_factory=list, description="Tag names")

    @classmethod
    def from_domain(cls, todo: Todo) -> "TodoOut":
        return cls(**todo.to_json())


# PUBLIC_INTERFACE
class CountOut(BaseModel):
    """Number of stored todos."""

    count: int = Field(..., description="Number of stored todos", ge=0)
