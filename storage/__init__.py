"""
Storage Backends Package
Durable key-value surfaces the settings manager persists into.
"""
from .base import StorageBackend, StorageError, StorageEvent, StorageListener
from .memory import MemoryStorage
from .json_file import JsonFileStorage

__all__ = [
    'StorageBackend',
    'StorageError',
    'StorageEvent',
    'StorageListener',
    'MemoryStorage',
    'JsonFileStorage',
]
