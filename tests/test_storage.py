import asyncio
import json
import sqlite3
import threading

import pytest

from todo_copilot.db import SQLiteRepository
from todo_copilot.errors import QuotaExceededError, StorageCorruptionError
from todo_copilot.models import Todo
from todo_copilot.storage import (
    STORAGE_VERSION,
    TODOS_KEY,
    VERSION_KEY,
    JsonFileStorage,
    LocalStorageRepository,
    MemoryStorage,
)


class TestLocalStorageInitialization:
    def test_writes_version_on_first_use(self):
        storage = MemoryStorage()
        LocalStorageRepository(storage)
        assert storage.get_item(VERSION_KEY) == str(STORAGE_VERSION)

    @pytest.mark.asyncio
    async def test_version_mismatch_resets_todos(self):
        storage = MemoryStorage()
        storage.set_item(VERSION_KEY, "0")
        storage.set_item(TODOS_KEY, "this was written by an older release")

        repo = LocalStorageRepository(storage)
        assert await repo.count() == 0
        assert storage.get_item(VERSION_KEY) == str(STORAGE_VERSION)
        assert storage.get_item(TODOS_KEY) is None

    @pytest.mark.parametrize("payload", ["{not json", '{"id": "t-1"}'])
    def test_unparseable_todos_raise_corruption(self, payload):
        storage = MemoryStorage()
        storage.set_item(VERSION_KEY, str(STORAGE_VERSION))
        storage.set_item(TODOS_KEY, payload)
        with pytest.raises(StorageCorruptionError):
            LocalStorageRepository(storage)

    @pytest.mark.asyncio
    async def test_malformed_record_raises_corruption(self):
        storage = MemoryStorage()
        storage.set_item(VERSION_KEY, str(STORAGE_VERSION))
        storage.set_item(TODOS_KEY, json.dumps([{"id": "t-1", "completed": False}]))
        repo = LocalStorageRepository(storage)
        with pytest.raises(StorageCorruptionError):
            await repo.find_all()

    @pytest.mark.parametrize(
        "content",
        [
            {VERSION_KEY: 1},
            {VERSION_KEY: "1", TODOS_KEY: [1]},
            {VERSION_KEY: "1", TODOS_KEY: {"id": "t-1"}},
        ],
    )
    def test_non_string_file_values_raise_corruption(self, tmp_path, content):
        path = tmp_path / "todos.json"
        path.write_text(json.dumps(content), encoding="utf-8")
        with pytest.raises(StorageCorruptionError):
            LocalStorageRepository(JsonFileStorage(str(path)))


class TestLocalStorageQuota:
    @pytest.mark.asyncio
    async def test_failed_save_leaves_storage_unchanged(self):
        storage = MemoryStorage(quota_bytes=600)
        repo = LocalStorageRepository(storage)
        first = Todo.create("Small")
        await repo.save(first)
        before = storage.get_item(TODOS_KEY)

        with pytest.raises(QuotaExceededError):
            await repo.save(Todo.create("x" * 500))

        assert storage.get_item(TODOS_KEY) == before
        assert await repo.count() == 1
        assert await repo.find_by_id(first.id) == first

    @pytest.mark.asyncio
    async def test_file_quota(self, tmp_path):
        path = tmp_path / "todos.json"
        repo = LocalStorageRepository(JsonFileStorage(str(path), quota_bytes=600))
        await repo.save(Todo.create("Small"))
        before = path.read_text(encoding="utf-8")

        with pytest.raises(QuotaExceededError):
            await repo.save(Todo.create("x" * 500))
        assert path.read_text(encoding="utf-8") == before


class TestJsonFileStorage:
    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "data" / "todos.json")
        todo = Todo.create("Persist me").add_subtask("Twice")
        await LocalStorageRepository(JsonFileStorage(path)).save(todo)

        reopened = LocalStorageRepository(JsonFileStorage(path))
        found = await reopened.find_by_id(todo.id)
        assert found == todo
        assert found.subtasks[0].title.value == "Twice"

    @pytest.mark.asyncio
    async def test_writes_leave_no_temp_files(self, tmp_path):
        repo = LocalStorageRepository(JsonFileStorage(str(tmp_path / "todos.json")))
        for i in range(3):
            await repo.save(Todo.create(f"Task {i}"))
        assert sorted(p.name for p in tmp_path.iterdir()) == ["todos.json"]

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "todos.json"
        path.write_text("{broken", encoding="utf-8")
        with pytest.raises(StorageCorruptionError):
            LocalStorageRepository(JsonFileStorage(str(path)))

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "todos.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        with pytest.raises(StorageCorruptionError):
            JsonFileStorage(str(path)).get_item(TODOS_KEY)


class TestSQLiteRepository:
    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        db_path = str(tmp_path / "todos.db")
        todo = Todo.create("Persist me").add_tag("Research")
        await SQLiteRepository(db_path).save(todo)

        found = await SQLiteRepository(db_path).find_by_id(todo.id)
        assert found == todo
        assert found.has_tag("Research")

    @pytest.mark.asyncio
    async def test_undecodable_document(self, tmp_path):
        db_path = str(tmp_path / "todos.db")
        repo = SQLiteRepository(db_path)
        conn = sqlite3.connect(db_path)
        conn.execute(
            "INSERT INTO todos (id, document, created_at, updated_at) VALUES (?, ?, ?, ?)",
            ("t-1", "not json", "2025-01-01T00:00:00.000Z", "2025-01-01T00:00:00.000Z"),
        )
        conn.commit()
        conn.close()

        with pytest.raises(StorageCorruptionError):
            await repo.find_by_id("t-1")
        with pytest.raises(StorageCorruptionError):
            await repo.find_all()
        assert await repo.count() == 1


class ThreadRecordingStorage(MemoryStorage):
    """MemoryStorage that notes which thread touched it."""

    def __init__(self):
        super().__init__()
        self.threads = []

    def get_item(self, key):
        self.threads.append(threading.get_ident())
        return super().get_item(key)

    def set_item(self, key, value):
        self.threads.append(threading.get_ident())
        super().set_item(key, value)

    def remove_item(self, key):
        self.threads.append(threading.get_ident())
        super().remove_item(key)


class ThreadRecordingSQLiteRepository(SQLiteRepository):
    def __init__(self, db_path):
        self.threads = []
        super().__init__(db_path)

    def _conn(self):
        self.threads.append(threading.get_ident())
        return super()._conn()


class TestBlockingIOOffTheEventLoop:
    @pytest.mark.asyncio
    async def test_local_storage_calls_run_in_worker_threads(self):
        storage = ThreadRecordingStorage()
        repo = LocalStorageRepository(storage)
        storage.threads.clear()

        todo = Todo.create("Off loop")
        await repo.save(todo)
        await repo.find_by_id(todo.id)
        await repo.find_all()
        await repo.count()
        await repo.remove(todo.id)
        await repo.clear()

        assert storage.threads
        assert threading.get_ident() not in storage.threads

    @pytest.mark.asyncio
    async def test_sqlite_calls_run_in_worker_threads(self, tmp_path):
        repo = ThreadRecordingSQLiteRepository(str(tmp_path / "todos.db"))
        repo.threads.clear()

        todo = Todo.create("Off loop")
        await repo.save(todo)
        await repo.find_by_id(todo.id)
        await repo.find_all()
        await repo.count()
        await repo.remove(todo.id)
        await repo.clear()

        assert len(repo.threads) == 6
        assert threading.get_ident() not in repo.threads

    @pytest.mark.asyncio
    async def test_concurrent_saves_all_persist(self, tmp_path):
        repo = LocalStorageRepository(JsonFileStorage(str(tmp_path / "todos.json")))
        todos = [Todo.create(f"Task {i}") for i in range(20)]

        await asyncio.gather(*(repo.save(t) for t in todos))

        assert await repo.count() == 20
        assert {t.id for t in await repo.find_all()} == {t.id for t in todos}

    @pytest.mark.asyncio
    async def test_concurrent_sqlite_saves_all_persist(self, tmp_path):
        repo = SQLiteRepository(str(tmp_path / "todos.db"))
        todos = [Todo.create(f"Task {i}") for i in range(20)]

        await asyncio.gather(*(repo.save(t) for t in todos))

        assert await repo.count() == 20
