import json
import logging

from todo_copilot.db import SQLiteRepository
from todo_copilot.generate_openapi import generate_openapi
from todo_copilot.logging_config import configure_logging
from todo_copilot.remote import ApiRepository
from todo_copilot.repositories import InMemoryRepository, build_repository
from todo_copilot.settings import get_settings
from todo_copilot.storage import LocalStorageRepository

ENV_VARS = [
    "PERSISTENCE_BACKEND",
    "TODO_STORAGE_PATH",
    "STORAGE_QUOTA_BYTES",
    "SQLITE_DB_PATH",
    "REMOTE_API_URL",
    "REMOTE_API_TIMEOUT",
    "REMOTE_API_RETRIES",
    "CORS_ALLOW_ORIGINS",
    "LOG_LEVEL",
]


def clear_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_defaults(self, monkeypatch):
        clear_env(monkeypatch)
        settings = get_settings()
        assert settings.persistence_backend == "memory"
        assert settings.storage_quota_bytes is None
        assert settings.remote_api_timeout == 5.0
        assert settings.remote_api_retries == 3
        assert settings.cors_allow_origins == ["*"]
        assert settings.log_level == "INFO"

    def test_overrides_and_fallbacks(self, monkeypatch):
        clear_env(monkeypatch)
        monkeypatch.setenv("PERSISTENCE_BACKEND", "SQLite")
        monkeypatch.setenv("STORAGE_QUOTA_BYTES", "5242880")
        monkeypatch.setenv("REMOTE_API_TIMEOUT", "not-a-number")
        monkeypatch.setenv("REMOTE_API_RETRIES", "0")
        monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://a.test, http://b.test,")
        monkeypatch.setenv("LOG_LEVEL", "verbose")

        settings = get_settings()
        assert settings.persistence_backend == "sqlite"
        assert settings.storage_quota_bytes == 5242880
        assert settings.remote_api_timeout == 5.0
        assert settings.remote_api_retries == 3
        assert settings.cors_allow_origins == ["http://a.test", "http://b.test"]
        assert settings.log_level == "INFO"

    def test_unknown_backend_falls_back_to_memory(self, monkeypatch):
        clear_env(monkeypatch)
        monkeypatch.setenv("PERSISTENCE_BACKEND", "dynamodb")
        assert get_settings().persistence_backend == "memory"


class TestBuildRepository:
    def test_each_backend(self, monkeypatch, tmp_path):
        clear_env(monkeypatch)
        monkeypatch.setenv("TODO_STORAGE_PATH", str(tmp_path / "todos.json"))
        monkeypatch.setenv("SQLITE_DB_PATH", str(tmp_path / "todos.db"))

        expected = {
            "memory": InMemoryRepository,
            "localstorage": LocalStorageRepository,
            "sqlite": SQLiteRepository,
            "api": ApiRepository,
        }
        for backend, repo_type in expected.items():
            monkeypatch.setenv("PERSISTENCE_BACKEND", backend)
            repo = build_repository(get_settings())
            assert isinstance(repo, repo_type)
            assert repo.name == backend


class TestLoggingAndOpenApi:
    def test_configure_logging_is_idempotent(self):
        configure_logging("DEBUG")
        configure_logging("WARNING")
        root = logging.getLogger()
        try:
            assert root.level == logging.WARNING
            assert len([h for h in root.handlers if h.get_name() == "todo_copilot"]) == 1
        finally:
            configure_logging("INFO")

    def test_generate_openapi(self, tmp_path):
        path = generate_openapi(str(tmp_path / "interfaces" / "openapi.json"))
        with open(path, encoding="utf-8") as f:
            schema = json.load(f)
        assert schema["info"]["title"] == "Todo Copilot Backend"
        assert "/api/v1/todos/{todo_id}/subtasks/{subtask_id}" in schema["paths"]
        assert {t["name"] for t in schema["tags"]} >= {"health", "todos"}
