import json
import logging

from tasks_api.generate_openapi import generate_openapi
from tasks_api.logging_setup import setup_logging
from tasks_api.main import create_app
from tasks_api.repositories import InMemoryRepository, build_repository
from tasks_api.db import SQLiteRepository
from tasks_api.settings import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ["PERSISTENCE_BACKEND", "SQLITE_DB_PATH", "CORS_ALLOW_ORIGINS", "OWNER_HEADER",
                     "MAX_PAGE_LIMIT", "LOG_LEVEL", "LOG_FILE"]:
            monkeypatch.delenv(name, raising=False)
        s = get_settings()
        assert s.persistence_backend == "memory"
        assert s.sqlite_db_path == "./data/tasks.db"
        assert s.cors_allow_origins == ["*"]
        assert s.owner_header == "X-User-Id"
        assert s.max_page_limit == 100
        assert s.log_level == logging.INFO
        assert s.log_file is None

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("PERSISTENCE_BACKEND", "SQLite")
        monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://a.test, http://b.test")
        monkeypatch.setenv("MAX_PAGE_LIMIT", "25")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        s = get_settings()
        assert s.persistence_backend == "sqlite"
        assert s.cors_allow_origins == ["http://a.test", "http://b.test"]
        assert s.max_page_limit == 25
        assert s.log_level == logging.DEBUG

    def test_bad_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("PERSISTENCE_BACKEND", "mongo")
        monkeypatch.setenv("MAX_PAGE_LIMIT", "lots")
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        s = get_settings()
        assert s.persistence_backend == "memory"
        assert s.max_page_limit == 100
        assert s.log_level == logging.INFO

    def test_build_repository_follows_backend(self, tmp_path):
        assert isinstance(build_repository(Settings()), InMemoryRepository)
        repo = build_repository(Settings(persistence_backend="sqlite", sqlite_db_path=str(tmp_path / "x" / "t.db")))
        assert isinstance(repo, SQLiteRepository)
        assert (tmp_path / "x" / "t.db").exists()

    def test_max_page_limit_reaches_list_endpoint(self):
        from fastapi.testclient import TestClient

        c = TestClient(create_app(Settings(max_page_limit=5), repository=InMemoryRepository()))
        res = c.get("/api/tasks?limit=50", headers={"X-User-Id": "u"})
        assert res.json()["pagination"]["limit"] == 5


class TestTooling:
    def test_generate_openapi(self, tmp_path):
        out = generate_openapi(tmp_path / "interfaces" / "openapi.json")
        schema = json.loads(out.read_text(encoding="utf-8"))
        assert "/api/tasks" in schema["paths"]
        assert "/api/tasks/{task_id}/renew" in schema["paths"]
        assert {t["name"] for t in schema["tags"]} >= {"health", "tasks"}

    def test_setup_logging_writes_file(self, tmp_path):
        root = logging.getLogger()
        saved = list(root.handlers), root.level
        log_file = tmp_path / "logs" / "api.log"
        try:
            setup_logging(console_level=logging.WARNING, log_file=log_file)
            logging.getLogger("tasks_api.test").debug("hello file")
            for h in root.handlers:
                h.flush()
            assert "hello file" in log_file.read_text(encoding="utf-8")
        finally:
            for h in list(root.handlers):
                root.removeHandler(h)
                h.close()
            for h in saved[0]:
                root.addHandler(h)
            root.setLevel(saved[1])
            logging.captureWarnings(False)
