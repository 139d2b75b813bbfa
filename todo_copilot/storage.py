"""
Local-storage persistence.

Mirrors the browser localStorage layout used by the web client: a flat
string-to-string key-value store where one key holds the JSON array of all
todos and another holds the schema version. The store itself is a port so the
same repository runs over an in-process dict or a JSON file on disk.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Dict, List, Optional

from .errors import QuotaExceededError, StorageCorruptionError
from .models import Todo
from .repositories import Repository, not_found, todo_from_record

logger = logging.getLogger(__name__)

TODOS_KEY = "todo_app:todos"
VERSION_KEY = "todo_app:version"
STORAGE_VERSION = 1


def _size_of(items: Dict[str, str]) -> int:
    return sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in items.items())


# PUBLIC_INTERFACE
class Storage(ABC):
    """Key-value port modelled on the Web Storage API."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string or None."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a string. Raise QuotaExceededError without writing when full."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete a key; missing keys are ignored."""


class MemoryStorage(Storage):
    """Dict-backed storage with an optional byte quota."""

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self._items: Dict[str, str] = {}
        self._quota = quota_bytes
        self._lock = RLock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            candidate = dict(self._items)
            candidate[key] = value
            if self._quota is not None and _size_of(candidate) > self._quota:
                raise QuotaExceededError(
                    "Storage quota exceeded. Please delete some todos.",
                    {"quota_bytes": self._quota},
                )
            self._items = candidate

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


class JsonFileStorage(Storage):
    """
    Storage persisted as one JSON object in a file.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a failed write never leaves a half-written file.
    """

    def __init__(self, path: str, quota_bytes: Optional[int] = None) -> None:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self._path = path
        self._quota = quota_bytes
        self._lock = RLock()

    @property
    def path(self) -> str:
        return self._path

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self._path):
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                raw = f.read()
            data = json.loads(raw) if raw.strip() else {}
        except (OSError, ValueError) as e:
            raise StorageCorruptionError(
                f"Failed to read storage file {self._path}: {e}", {"path": self._path}
            ) from e
        if not isinstance(data, dict):
            raise StorageCorruptionError(
                f"Storage file {self._path} does not contain a JSON object", {"path": self._path}
            )
        for key, value in data.items():
            if not isinstance(value, str):
                raise StorageCorruptionError(
                    f"Storage file {self._path} holds a non-string value under {key!r}",
                    {"path": self._path, "key": key},
                )
        return data

    def _write(self, items: Dict[str, str]) -> None:
        directory = os.path.dirname(self._path) or "."
        fd, tmp_path = tempfile.mkstemp(prefix=".todos-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, ensure_ascii=False)
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._read()
            items[key] = value
            if self._quota is not None and _size_of(items) > self._quota:
                raise QuotaExceededError(
                    "Storage quota exceeded. Please delete some todos.",
                    {"quota_bytes": self._quota, "path": self._path},
                )
            self._write(items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._read()
            if key in items:
                del items[key]
                self._write(items)


# PUBLIC_INTERFACE
class LocalStorageRepository(Repository):
    """
    Repository persisting all todos as one JSON array under TODOS_KEY.

    On construction the schema version is checked: a missing version is
    written, a different version resets the stored todos. Unparseable data
    raises StorageCorruptionError.

    Storage calls run in a worker thread; read-modify-write cycles hold the
    repository lock so concurrent saves never drop each other's records.
    """

    name = "localstorage"

    def __init__(self, storage: Optional[Storage] = None) -> None:
        self._storage = storage if storage is not None else MemoryStorage()
        self._lock = RLock()
        self._initialize_storage()

    def _initialize_storage(self) -> None:
        stored_version = self._storage.get_item(VERSION_KEY)
        if stored_version is None:
            self._storage.set_item(VERSION_KEY, str(STORAGE_VERSION))
        elif not isinstance(stored_version, str):
            raise StorageCorruptionError(
                f"Storage version must be a string, found {type(stored_version).__name__}"
            )
        elif stored_version.strip() != str(STORAGE_VERSION):
            logger.warning(
                "Storage version mismatch (found %s, expected %s), resetting todos",
                stored_version,
                STORAGE_VERSION,
            )
            self._storage.remove_item(TODOS_KEY)
            self._storage.set_item(VERSION_KEY, str(STORAGE_VERSION))
        # verify integrity up front
        self._read_records()

    def _read_records(self) -> List[Dict[str, Any]]:
        data = self._storage.get_item(TODOS_KEY)
        if not data:
            return []
        try:
            records = json.loads(data)
        except (TypeError, ValueError) as e:
            raise StorageCorruptionError(f"Failed to parse todos from storage: {e}") from e
        if not isinstance(records, list):
            raise StorageCorruptionError("Failed to parse todos from storage: expected a JSON array")
        return records

    def _write_records(self, records: List[Dict[str, Any]]) -> None:
        self._storage.set_item(TODOS_KEY, json.dumps(records, ensure_ascii=False))

    def _upsert_record(self, record: Dict[str, Any]) -> None:
        with self._lock:
            records = self._read_records()
            for i, existing in enumerate(records):
                if isinstance(existing, dict) and existing.get("id") == record["id"]:
                    records[i] = record
                    break
            else:
                records.append(record)
            self._write_records(records)

    def _remove_record(self, todo_id: str) -> bool:
        with self._lock:
            records = self._read_records()
            remaining = [r for r in records if not (isinstance(r, dict) and r.get("id") == todo_id)]
            if len(remaining) == len(records):
                return False
            self._write_records(remaining)
            return True

    async def find_by_id(self, todo_id: str) -> Optional[Todo]:
        for record in await asyncio.to_thread(self._read_records):
            if isinstance(record, dict) and record.get("id") == todo_id:
                return todo_from_record(record, self.name)
        return None

    async def find_all(self) -> List[Todo]:
        return [todo_from_record(r, self.name) for r in await asyncio.to_thread(self._read_records)]

    async def save(self, todo: Todo) -> None:
        await asyncio.to_thread(self._upsert_record, dict(todo.to_json()))
        logger.debug("Saved todo %s", todo.id)

    async def remove(self, todo_id: str) -> None:
        if not await asyncio.to_thread(self._remove_record, todo_id):
            raise not_found(todo_id)
        logger.debug("Removed todo %s", todo_id)

    async def clear(self) -> None:
        await asyncio.to_thread(self._storage.remove_item, TODOS_KEY)

    async def count(self) -> int:
        return len(await asyncio.to_thread(self._read_records))
