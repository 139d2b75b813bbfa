"""
Test configuration and fixtures
"""
import os

import pytest
from fastapi.testclient import TestClient

# Default to the memory backend so importing the app never touches the filesystem
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from todo_copilot.main import app  # noqa: E402
from todo_copilot.repositories import InMemoryRepository  # noqa: E402
from todo_copilot.services import TodoService, get_service  # noqa: E402


@pytest.fixture(scope="function")
def service():
    """Fresh service over an empty in-memory repository"""
    return TodoService(InMemoryRepository())


@pytest.fixture(scope="function")
def app_service(service):
    """Route the app's service dependency to the per-test service"""
    app.dependency_overrides[get_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app_service):
    """Create a test client bound to an empty repository"""
    with TestClient(app) as test_client:
        yield test_client
