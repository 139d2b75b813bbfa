from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional

from .errors import NotFoundError, StorageCorruptionError
from .models import Todo, TodoRecord
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class Repository(ABC):
    """
    Abstract repository contract for todo storage backends.

    All operations are coroutines. Backends store the TodoRecord shape and
    rebuild aggregates with Todo.from_json, never Todo.create.
    """

    name: str = "abstract"

    @abstractmethod
    async def find_by_id(self, todo_id: str) -> Optional[Todo]:
        """Return the Todo with this id, or None if absent."""

    @abstractmethod
    async def find_all(self) -> List[Todo]:
        """Return all todos. Ordering is unspecified."""

    @abstractmethod
    async def save(self, todo: Todo) -> None:
        """Insert or replace a todo by id. A failed save leaves storage unchanged."""

    @abstractmethod
    async def remove(self, todo_id: str) -> None:
        """Delete a todo. Raise NotFoundError if it does not exist."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every stored todo."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored todos."""

    async def close(self) -> None:
        """Release connections held by the backend. Local backends hold none."""


# PUBLIC_INTERFACE
def todo_from_record(record: Mapping[str, Any], source: str) -> Todo:
    """
    Rebuild a Todo from a stored record.

    Structural damage (missing keys, wrong types, bad JSON shapes) is reported
    as StorageCorruptionError. Values that break domain invariants keep
    raising ValidationError.
    """
    try:
        return Todo.from_json(record)
    except (KeyError, TypeError, AttributeError) as e:
        raise StorageCorruptionError(
            f"Malformed todo record in {source}: {e}",
            {"source": source},
        ) from e


def not_found(todo_id: str) -> NotFoundError:
    return NotFoundError(f"Todo with id {todo_id} not found", {"id": todo_id})


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.

    Stores serialized records rather than Todo objects so loading goes through
    the same reconstruction path as the persistent backends.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TodoRecord] = {}

    async def find_by_id(self, todo_id: str) -> Optional[Todo]:
        with self._lock:
            record = self._items.get(todo_id)
        return None if record is None else todo_from_record(record, self.name)

    async def find_all(self) -> List[Todo]:
        with self._lock:
            records = list(self._items.values())
        return [todo_from_record(r, self.name) for r in records]

    async def save(self, todo: Todo) -> None:
        record = todo.to_json()
        with self._lock:
            self._items[todo.id] = record
        logger.debug("Saved todo %s", todo.id)

    async def remove(self, todo_id: str) -> None:
        with self._lock:
            if self._items.pop(todo_id, None) is None:
                raise not_found(todo_id)
        logger.debug("Removed todo %s", todo_id)

    async def clear(self) -> None:
        with self._lock:
            self._items.clear()

    async def count(self) -> int:
        with self._lock:
            return len(self._items)


# PUBLIC_INTERFACE
def build_repository(settings: Settings) -> Repository:
    """
    Create the repository selected by settings.persistence_backend.
    - memory: InMemoryRepository
    - localstorage: LocalStorageRepository over a JSON file
    - sqlite: SQLiteRepository document store
    - api: ApiRepository talking to a remote todo API
    """
    backend = settings.persistence_backend
    if backend == "localstorage":
        from .storage import JsonFileStorage, LocalStorageRepository

        return LocalStorageRepository(
            JsonFileStorage(settings.storage_path, quota_bytes=settings.storage_quota_bytes)
        )
    if backend == "sqlite":
        from .db import SQLiteRepository

        return SQLiteRepository(settings.sqlite_db_path)
    if backend == "api":
        from .remote import ApiRepository, TodoApiClient

        client = TodoApiClient(
            settings.remote_api_url,
            timeout=settings.remote_api_timeout,
            max_attempts=settings.remote_api_retries,
        )
        return ApiRepository(client)
    return InMemoryRepository()


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_repository() -> Repository:
    """Return the process-wide repository configured from the environment."""
    settings = get_settings()
    repo = build_repository(settings)
    logger.info("Using %s persistence backend", repo.name)
    return repo
