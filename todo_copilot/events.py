from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict

from .models import TodoStatus
from .utils import format_timestamp, utcnow
from .values import TodoId


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class DomainEvent:
    """
    Something that happened to a Todo aggregate.

    Events are collected by the application service and drained by callers
    for audit trails.
    """

    aggregate_id: TodoId
    event_type: str
    data: Dict[str, Any]
    aggregate_type: str = "Todo"
    timestamp: datetime = field(default_factory=utcnow)


def todo_created(todo_id: TodoId, title: str, created_at: datetime) -> DomainEvent:
    return DomainEvent(
        aggregate_id=todo_id,
        event_type="TodoCreated",
        data={"title": title, "createdAt": format_timestamp(created_at)},
    )


def todo_completion_changed(todo_id: TodoId, status: TodoStatus, changed_at: datetime) -> DomainEvent:
    return DomainEvent(
        aggregate_id=todo_id,
        event_type="TodoCompleted" if status == "Completed" else "TodoUncompleted",
        data={"status": status, "changedAt": format_timestamp(changed_at)},
    )


def todo_deleted(todo_id: TodoId, deleted_at: datetime) -> DomainEvent:
    return DomainEvent(
        aggregate_id=todo_id,
        event_type="TodoDeleted",
        data={"deletedAt": format_timestamp(deleted_at)},
    )
