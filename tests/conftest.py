"""Shared fixtures: in-memory and on-disk stores, a frozen clock and wired repositories."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

import pytest

from api.app import create_app
from clocket_core.config import Settings
from clocket_core.registry import Repositories, build_repositories
from clocket_core.storage import JSONFileStore, MemoryStore

FROZEN_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def frozen_clock() -> datetime:
    return FROZEN_NOW


def seed(store: MemoryStore, key: str, state: Dict[str, Any]) -> None:
    """Write a raw persisted document, as an older app version would have left it."""
    store.set(key, json.dumps(state))


def stored(store: MemoryStore, key: str) -> Dict[str, Any]:
    return json.loads(store.get(key))


@pytest.fixture()
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def file_store(tmp_path: Path) -> JSONFileStore:
    return JSONFileStore(tmp_path / "data")


@pytest.fixture()
def clock():
    return frozen_clock


@pytest.fixture()
def repos(memory_store: MemoryStore) -> Repositories:
    return build_repositories(memory_store, clock=frozen_clock)


@pytest.fixture()
def app(memory_store: MemoryStore):
    flask_app = create_app(config=Settings(env="development"), store=memory_store, clock=frozen_clock)
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture()
def client(app):
    return app.test_client()
