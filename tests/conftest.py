from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from tasks_api.db import SQLiteRepository
from tasks_api.main import create_app
from tasks_api.repositories import InMemoryRepository, Repository
from tasks_api.settings import Settings

OWNER = "user-alice"
OTHER = "user-bob"


def parse_dt(value: str) -> datetime:
    # fromisoformat only learned to read a trailing 'Z' in 3.11
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture()
def settings() -> Settings:
    return Settings(persistence_backend="memory", max_page_limit=100)


@pytest.fixture(params=["memory", "sqlite"])
def repo(request: pytest.FixtureRequest, tmp_path: Path) -> Repository:
    """Every repository backend, so behaviour is checked against both."""
    if request.param == "sqlite":
        return SQLiteRepository(str(tmp_path / "tasks.db"))
    return InMemoryRepository()


@pytest.fixture()
def client(settings: Settings, repo: Repository) -> TestClient:
    """HTTP client over each repository backend in turn."""
    app = create_app(settings, repository=repo)
    return TestClient(app)


@pytest.fixture()
def auth() -> dict:
    return {"X-User-Id": OWNER}


@pytest.fixture()
def other_auth() -> dict:
    return {"X-User-Id": OTHER}
