"""
Contract tests run against every repository backend.
"""
import httpx
import pytest
import pytest_asyncio

from todo_copilot.db import SQLiteRepository
from todo_copilot.errors import NotFoundError
from todo_copilot.main import app
from todo_copilot.models import Todo
from todo_copilot.remote import ApiRepository, TodoApiClient
from todo_copilot.repositories import InMemoryRepository
from todo_copilot.services import TodoService, get_service
from todo_copilot.storage import JsonFileStorage, LocalStorageRepository, MemoryStorage
from todo_copilot.utils import format_timestamp

API_BASE_URL = "http://testserver/api/v1"
BACKENDS = ["memory", "localstorage", "localstorage-file", "sqlite", "api"]


@pytest_asyncio.fixture(params=BACKENDS)
async def repository(request, tmp_path):
    kind = request.param
    if kind == "memory":
        yield InMemoryRepository()
    elif kind == "localstorage":
        yield LocalStorageRepository(MemoryStorage())
    elif kind == "localstorage-file":
        yield LocalStorageRepository(JsonFileStorage(str(tmp_path / "todos.json")))
    elif kind == "sqlite":
        yield SQLiteRepository(str(tmp_path / "todos.db"))
    else:
        server_service = TodoService(InMemoryRepository())
        app.dependency_overrides[get_service] = lambda: server_service
        client = TodoApiClient(API_BASE_URL, backoff=0, transport=httpx.ASGITransport(app=app))
        repo = ApiRepository(client)
        yield repo
        await repo.close()
        app.dependency_overrides.clear()


def make_todo(title="Buy milk"):
    return Todo.create(title).add_subtask("Get leash").add_tag("Summary").update_description("2 litres")


class TestRepositoryContract:
    @pytest.mark.asyncio
    async def test_save_then_find(self, repository):
        todo = make_todo()
        await repository.save(todo)

        found = await repository.find_by_id(todo.id)
        assert found == todo
        assert found.title.value == "Buy milk"
        assert found.description.value == "2 litres"
        assert [t.name for t in found.tags] == ["Summary"]
        assert [s.id for s in found.subtasks] == [s.id for s in todo.subtasks]
        assert format_timestamp(found.created_at) == format_timestamp(todo.created_at)
        assert format_timestamp(found.updated_at) == format_timestamp(todo.updated_at)

    @pytest.mark.asyncio
    async def test_find_unknown_returns_none(self, repository):
        assert await repository.find_by_id("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_save_is_upsert(self, repository):
        todo = make_todo()
        await repository.save(todo)
        done = todo.toggle_completion()
        await repository.save(done)

        assert await repository.count() == 1
        found = await repository.find_by_id(todo.id)
        assert found.completed is True
        assert all(s.completed for s in found.subtasks)

    @pytest.mark.asyncio
    async def test_find_all_and_count(self, repository):
        todos = [make_todo(f"Task {i}") for i in range(3)]
        for todo in todos:
            await repository.save(todo)

        assert await repository.count() == 3
        found = await repository.find_all()
        assert {t.id for t in found} == {t.id for t in todos}

    @pytest.mark.asyncio
    async def test_remove(self, repository):
        keep, drop = make_todo("Keep"), make_todo("Drop")
        await repository.save(keep)
        await repository.save(drop)

        await repository.remove(drop.id)
        assert await repository.find_by_id(drop.id) is None
        assert await repository.find_by_id(keep.id) == keep
        assert await repository.count() == 1

        with pytest.raises(NotFoundError):
            await repository.remove(drop.id)

    @pytest.mark.asyncio
    async def test_remove_on_empty_repository(self, repository):
        with pytest.raises(NotFoundError):
            await repository.remove("missing")

    @pytest.mark.asyncio
    async def test_clear(self, repository):
        for i in range(2):
            await repository.save(make_todo(f"Task {i}"))
        await repository.clear()
        assert await repository.count() == 0
        assert await repository.find_all() == []
