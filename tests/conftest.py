# tests/conftest.py

from __future__ import annotations

import itertools
from datetime import datetime
from pathlib import Path

import pytest

from taskflow.config import Settings
from taskflow.storage.kv_store import MemoryKeyValueStorage
from taskflow.tasks.task_store import EntityStore

from .fakes import FakeClock, FakeSink, fixed_device

NOW = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture()
def storage() -> MemoryKeyValueStorage:
    return MemoryKeyValueStorage()


@pytest.fixture()
def store(storage: MemoryKeyValueStorage, clock: FakeClock) -> EntityStore:
    """
    EntityStore wired with deterministic fakes: fake clock, sequential ids, fixed device.
    """
    counter = itertools.count(1)
    return EntityStore(
        storage,
        clock=clock,
        id_factory=lambda: f"id-{next(counter)}",
        device_info=fixed_device,
    )


@pytest.fixture()
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings pointing at a per-test temporary directory.

    Built directly rather than from the environment, to keep tests isolated.
    """
    return Settings(
        app_name="taskflow-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        storage_path=tmp_path / "data" / "storage.sqlite3",
        storage_key="task-flow-storage",
        notifications_enabled=True,
    )
