"""
JSON file storage backend.

The file holds one JSON object mapping storage keys to string values. Writes go
through a uniquely named temp file followed by os.replace so readers in other
processes never see a half-written file. Writes made by other processes are
picked up by poll(), which a daemon thread calls periodically once somebody
subscribes.
"""

import json
import os
import shutil
import threading
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from logging_config import get_logger
from .base import StorageBackend, StorageError, StorageEvent, StorageListener

logger = get_logger(__name__)


class JsonFileStorage(StorageBackend):
    """localStorage-shaped store persisted to a single JSON file."""

    def __init__(self, path: Union[str, Path], watch_interval: float = 1.0, auto_watch: bool = True):
        """
        Args:
            path: Location of the JSON file (created on first write)
            watch_interval: Seconds between polls on the watcher thread
            auto_watch: Start the watcher thread on first subscribe
        """
        self.path = Path(path)
        self.watch_interval = watch_interval
        self.auto_watch = auto_watch

        self._lock = threading.RLock()
        self._listeners: List[StorageListener] = []
        self._snapshot: Dict[str, str] = {}
        self._file_stamp: Optional[Tuple[int, int, int]] = None

        self._stop_event = threading.Event()
        self._watch_thread: Optional[threading.Thread] = None

    # --- Key-value surface ---

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Storage values must be strings, got {type(value).__name__}")
        with self._lock:
            data = self._read_for_update()
            data[key] = value
            self._write_all(data)
            # Only the written key is marked as seen; other keys may carry
            # changes from another process that poll() has not reported yet
            self._snapshot[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read_for_update()
            if key not in data:
                return
            del data[key]
            self._write_all(data)
            self._snapshot.pop(key, None)

    # --- Change channel ---

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        with self._lock:
            if not self._listeners:
                self._take_baseline()
            self._listeners.append(listener)
        if self.auto_watch:
            self._start_watcher()

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
                idle = not self._listeners
            if idle:
                self._stop_watcher()

        return unsubscribe

    def poll(self) -> List[StorageEvent]:
        """
        Compare the file with what this instance last saw and dispatch an event
        for every key another process added, changed or removed.

        Returns:
            The dispatched events (empty when nothing changed or the file is unreadable)
        """
        with self._lock:
            stamp = self._stat()
            if stamp == self._file_stamp:
                return []
            try:
                current = self._read_all()
            except StorageError as e:
                logger.warning(f"Skipping settings file poll: {e}")
                return []
            self._file_stamp = stamp

            events = []
            for key in sorted(set(self._snapshot) | set(current)):
                old_value = self._snapshot.get(key)
                new_value = current.get(key)
                if old_value != new_value:
                    events.append(StorageEvent(key, old_value, new_value))
            self._snapshot = dict(current)
            listeners = list(self._listeners)

        for event in events:
            for listener in listeners:
                try:
                    listener(event)
                except Exception as e:
                    logger.error(f"Storage listener failed for key {event.key}: {e}", exc_info=True)
        return events

    def close(self) -> None:
        with self._lock:
            self._listeners.clear()
        self._stop_watcher()

    # --- Internals ---

    def _stat(self) -> Optional[Tuple[int, int, int]]:
        try:
            st = self.path.stat()
        except OSError:
            return None
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def _take_baseline(self) -> None:
        try:
            self._snapshot = self._read_all()
        except StorageError as e:
            logger.warning(f"Could not read settings file baseline: {e}")
            self._snapshot = {}
        self._file_stamp = self._stat()

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in {self.path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"{self.path} must contain a JSON object")
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _read_for_update(self) -> Dict[str, str]:
        try:
            return self._read_all()
        except StorageError as e:
            # Keep the broken file for inspection and start over
            logger.error(f"{e} - starting a fresh storage file")
            backup_path = self.path.with_suffix('.json.corrupted')
            try:
                shutil.copy2(self.path, backup_path)
                logger.info(f"Backed up corrupted storage to {backup_path}")
            except OSError as copy_error:
                logger.warning(f"Could not back up corrupted storage: {copy_error}")
            return {}

    def _write_all(self, data: Dict[str, str]) -> None:
        temp_path = self.path.parent / f"{self.path.stem}_{uuid.uuid4().hex}.json.tmp"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=4, sort_keys=True, ensure_ascii=False)
            os.replace(temp_path, self.path)
        except OSError as e:
            try:
                if temp_path.exists():
                    os.remove(temp_path)
            except OSError:
                pass
            raise StorageError(f"Cannot write {self.path}: {e}") from e

    def _start_watcher(self) -> None:
        if self._watch_thread and self._watch_thread.is_alive():
            return
        self._stop_event.clear()
        self._watch_thread = threading.Thread(
            target=self._watch_loop, daemon=True, name="SettingsFileWatcher"
        )
        self._watch_thread.start()
        logger.debug(f"Watching {self.path} every {self.watch_interval}s")

    def _stop_watcher(self) -> None:
        self._stop_event.set()
        thread = self._watch_thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=max(self.watch_interval * 2, 1.0))
        self._watch_thread = None

    def _watch_loop(self) -> None:
        while not self._stop_event.wait(timeout=self.watch_interval):
            self.poll()
