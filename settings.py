"""
Classworks Settings Manager
Loads, caches, validates and persists the settings catalog in a storage backend.

One SettingsManager is built at application start and handed to every consumer
(server routes, startup sequence). Tests build their own instances.
"""

import json
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from benedict import benedict

from definitions import (
    CLOUD_OVERRIDES,
    CLOUD_PROVIDER,
    DEBUG_CONFIG_KEY,
    DEVELOPER_GATE_KEY,
    PROVIDER_KEY,
    SETTINGS_DEFINITIONS,
    SETTINGS_STORAGE_KEY,
    Setting,
    iter_defaults,
    stringify,
)
from logging_config import CHANGES_LOGGER, get_logger
from storage import StorageBackend, StorageError, StorageEvent

logger = get_logger(__name__)
change_logger = get_logger(CHANGES_LOGGER)

WatchCallback = Callable[[Dict[str, Any]], None]


def _noop() -> None:
    pass


class SettingsManager:
    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        definitions: Optional[Dict[str, Setting]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            storage: Durable backend; None means no durable storage is available
            definitions: Setting catalog (defaults to SETTINGS_DEFINITIONS)
            overrides: Values forced in cloud provider mode (defaults to CLOUD_OVERRIDES)
        """
        self.storage = storage
        self._definitions = definitions if definitions is not None else SETTINGS_DEFINITIONS
        self._overrides = overrides if overrides is not None else CLOUD_OVERRIDES
        self._settings: Dict[str, Any] = {}
        self._initialized = False
        # Cross-process updates arrive on the storage watcher thread
        self._lock = threading.RLock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def definitions(self) -> Dict[str, Setting]:
        return self._definitions

    def initialize(self) -> None:
        """Load settings once; later calls are no-ops."""
        with self._lock:
            if self._initialized:
                return
            self.load_settings()
            self._initialized = True

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            self.initialize()

    def load_settings(self) -> Dict[str, Any]:
        """
        Read the settings blob, falling back to defaults.
        Missing, unreadable or corrupted storage is logged, never raised.
        """
        with self._lock:
            loaded: Dict[str, Any] = {}
            if self.storage is not None:
                try:
                    stored = self.storage.get_item(SETTINGS_STORAGE_KEY)
                    if stored:
                        loaded = self._parse_blob(stored)
                except (StorageError, ValueError) as e:
                    logger.error(f"Failed to load settings: {e}")
                    loaded = {}
            else:
                logger.debug("No durable storage available, using defaults")

            self._settings = self._complete(loaded)
            return self._settings

    def reload(self) -> Dict[str, Any]:
        """Re-read settings from storage, discarding the in-memory cache."""
        with self._lock:
            self.load_settings()
            self._initialized = True
            logger.info("Settings reloaded from storage")
            return dict(self._settings)

    def save_settings(self) -> bool:
        """Persist the whole cache. Failures are logged and leave the cache authoritative."""
        if self.storage is None:
            return False
        try:
            with self._lock:
                blob = json.dumps(self._settings, ensure_ascii=False)
            self.storage.set_item(SETTINGS_STORAGE_KEY, blob)
            return True
        except (StorageError, TypeError, ValueError) as e:
            logger.error(f"Failed to save settings: {e}")
            return False

    def get(self, key: str) -> Any:
        """
        Get a setting value.
        Priority:
        1. Definition default while a developer-gated key is locked
        2. Cloud override while the provider is Classworks cloud
        3. Cached value (from storage or default)
        """
        self._ensure_initialized()

        definition = self._definitions.get(key)
        if definition is None:
            logger.warning(f"Undefined setting: {key}")
            return None

        with self._lock:
            if definition.requires_developer and not self._settings.get(DEVELOPER_GATE_KEY):
                return definition.default

            if self._settings.get(PROVIDER_KEY) == CLOUD_PROVIDER and key in self._overrides:
                return self._overrides[key]

            return self._settings.get(key, definition.default)

    def set(self, key: str, value: Any) -> bool:
        """Coerce, validate, store and persist a value. Returns False when rejected."""
        self._ensure_initialized()

        definition = self._definitions.get(key)
        if definition is None:
            logger.warning(f"Undefined setting: {key}")
            return False

        with self._lock:
            if definition.requires_developer and not self._settings.get(DEVELOPER_GATE_KEY):
                logger.warning(f"Setting {key} requires developer options to be enabled")
                return False

            try:
                value = definition.type.coerce(value)
            except (ValueError, OverflowError) as e:
                logger.warning(f"Invalid value for setting {key}: {e}")
                return False

            if not definition.is_valid(value):
                logger.warning(f"Invalid value for setting {key}: {value!r}")
                return False

            old_value = self._settings.get(key)
            self._settings[key] = value
            self.save_settings()
            self._log_change(key, old_value, value)

        # Keep the deprecated slot in sync for older readers
        if definition.legacy_key and self.storage is not None:
            try:
                self.storage.set_item(definition.legacy_key, stringify(value))
            except StorageError as e:
                logger.error(f"Failed to update legacy key {definition.legacy_key}: {e}")

        return True

    def reset(self, key: str) -> None:
        """Restore a single setting to its default. Allowed regardless of the developer gate."""
        self._ensure_initialized()

        definition = self._definitions.get(key)
        if definition is None:
            logger.warning(f"Undefined setting: {key}")
            return

        with self._lock:
            self._settings[key] = definition.default
            self.save_settings()

    def reset_all(self) -> None:
        self._ensure_initialized()
        with self._lock:
            self._settings = dict(iter_defaults(self._definitions))
            self.save_settings()
        logger.info("All settings reset to defaults")

    def watch(self, callback: WatchCallback) -> Callable[[], None]:
        """
        Call callback with the new settings whenever another context rewrites them.

        Returns:
            Function that stops watching; calling it more than once is harmless.
            Without a change channel this is a no-op.
        """
        self._ensure_initialized()

        if self.storage is None:
            return _noop

        def handler(event: StorageEvent) -> None:
            if event.key != SETTINGS_STORAGE_KEY:
                return
            updated = self._apply_external(event.new_value)
            if updated is not None:
                callback(updated)

        unsubscribe = self.storage.subscribe(handler)
        if unsubscribe is None:
            return _noop

        state = {"active": True}

        def stop() -> None:
            if state["active"]:
                state["active"] = False
                unsubscribe()

        return stop

    def get_definition(self, key: str) -> Optional[Setting]:
        return self._definitions.get(key)

    def export_all(self) -> Dict[str, Any]:
        """Flat key -> effective value for every catalog key (gate and overrides applied)."""
        self._ensure_initialized()
        return {key: self.get(key) for key in self._definitions}

    def export_tree(self) -> Dict[str, Any]:
        """Effective values nested by dotted key path, e.g. {"font": {"size": 28}}."""
        tree = benedict(keypath_separator=".")
        for key, value in self.export_all().items():
            tree[key] = value
        return tree.dict()

    # --- Internals ---

    def _parse_blob(self, raw: str) -> Dict[str, Any]:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("settings blob is not a JSON object")
        return data

    def _complete(self, loaded: Dict[str, Any]) -> Dict[str, Any]:
        """Sanitize known keys and backfill defaults; unknown keys are kept as-is."""
        settings = dict(loaded)
        for key, definition in self._definitions.items():
            if key not in settings:
                settings[key] = definition.default
                continue
            value = settings[key]
            try:
                value = definition.type.coerce(value)
                valid = definition.is_valid(value)
            except (TypeError, ValueError, OverflowError) as e:
                logger.warning(f"Stored value for {key} has the wrong type, using default: {e}")
                settings[key] = definition.default
                continue
            if not valid:
                logger.warning(f"Stored value for {key} is invalid, using default")
                value = definition.default
            settings[key] = value
        return settings

    def _apply_external(self, raw: Optional[str]) -> Optional[Dict[str, Any]]:
        """Replace the cache with a blob written elsewhere; malformed blobs are ignored."""
        if raw is None:
            logger.warning("Settings were removed by another context, keeping current values")
            return None
        try:
            loaded = self._parse_blob(raw)
        except ValueError as e:
            logger.warning(f"Ignoring malformed settings update: {e}")
            return None
        with self._lock:
            self._settings = self._complete(loaded)
            logger.debug("Settings updated by another context")
            return dict(self._settings)

    def _log_change(self, key: str, old_value: Any, new_value: Any) -> None:
        if not (self._settings.get(DEVELOPER_GATE_KEY) and self._settings.get(DEBUG_CONFIG_KEY)):
            return
        record = {
            "key": key,
            "old": old_value,
            "new": new_value,
            "time": datetime.now().strftime("%H:%M:%S"),
        }
        change_logger.info(f"[Settings] {key}: {record}", extra={"setting_change": record})
