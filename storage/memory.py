"""
In-process storage backend.

Several MemoryStorage views can share one area, the way browser tabs share
localStorage: a write through one view is broadcast to listeners registered
on every other view of the same area, never to the writer itself.
"""

import threading
from typing import Callable, Dict, List, Optional

from logging_config import get_logger
from .base import StorageBackend, StorageEvent, StorageListener

logger = get_logger(__name__)


class _MemoryArea:
    """Shared data plus the views attached to it."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.views: List["MemoryStorage"] = []
        self.lock = threading.RLock()

    def broadcast(self, origin: "MemoryStorage", event: StorageEvent) -> None:
        with self.lock:
            targets = [view for view in self.views if view is not origin]
        for view in targets:
            view._dispatch(event)


class MemoryStorage(StorageBackend):
    """Dictionary-backed storage with a cross-view change channel."""

    def __init__(self, initial: Optional[Dict[str, str]] = None, _area: Optional[_MemoryArea] = None):
        self._area = _area if _area is not None else _MemoryArea()
        self._listeners: List[StorageListener] = []
        if initial:
            self._area.data.update(initial)
        with self._area.lock:
            self._area.views.append(self)

    def open_context(self) -> "MemoryStorage":
        """Return a new view onto the same area (a second 'tab')."""
        return MemoryStorage(_area=self._area)

    def get_item(self, key: str) -> Optional[str]:
        with self._area.lock:
            return self._area.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._area.lock:
            old_value = self._area.data.get(key)
            self._area.data[key] = value
        if old_value != value:
            self._area.broadcast(self, StorageEvent(key, old_value, value))

    def remove_item(self, key: str) -> None:
        with self._area.lock:
            if key not in self._area.data:
                return
            old_value = self._area.data.pop(key)
        self._area.broadcast(self, StorageEvent(key, old_value, None))

    def clear(self) -> None:
        with self._area.lock:
            had_data = bool(self._area.data)
            self._area.data.clear()
        if had_data:
            self._area.broadcast(self, StorageEvent(None, None, None))

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        self._listeners.clear()
        with self._area.lock:
            if self in self._area.views:
                self._area.views.remove(self)

    def _dispatch(self, event: StorageEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Storage listener failed for key {event.key}: {e}", exc_info=True)
