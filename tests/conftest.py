"""Pytest configuration and shared fixtures"""
import json
from typing import Optional

import pytest

from definitions import SETTINGS_STORAGE_KEY
from settings import SettingsManager
from storage import MemoryStorage, StorageBackend, StorageError


class FailingStorage(StorageBackend):
    """Backend whose reads and writes always fail"""

    def __init__(self):
        self.write_attempts = 0

    def get_item(self, key: str) -> Optional[str]:
        raise StorageError("storage unavailable")

    def set_item(self, key: str, value: str) -> None:
        self.write_attempts += 1
        raise StorageError("quota exceeded")

    def remove_item(self, key: str) -> None:
        raise StorageError("storage unavailable")


@pytest.fixture
def memory_storage():
    storage = MemoryStorage()
    yield storage
    storage.close()


@pytest.fixture
def manager(memory_storage):
    """An initialized settings manager on empty in-memory storage"""
    settings_manager = SettingsManager(memory_storage)
    settings_manager.initialize()
    return settings_manager


@pytest.fixture
def stored_blob(memory_storage):
    """Read back the persisted settings blob"""
    def read():
        raw = memory_storage.get_item(SETTINGS_STORAGE_KEY)
        return json.loads(raw) if raw is not None else None
    return read
