"""
Classworks Setting Definitions
The static catalog of recognized settings, their validators and the cloud overrides.
"""

import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional, Tuple
from urllib.parse import urlparse

from logging_config import get_logger

logger = get_logger(__name__)

# Storage key holding the serialized settings blob
SETTINGS_STORAGE_KEY = "Classworks_settings"

# Gate and provider keys consulted by the settings manager
DEVELOPER_GATE_KEY = "developer.enabled"
DEBUG_CONFIG_KEY = "developer.showDebugConfig"
PROVIDER_KEY = "server.provider"
CLOUD_PROVIDER = "classworkscloud"

# Values forced while the provider is Classworks cloud
CLOUD_OVERRIDES: Dict[str, Any] = {
    "server.domain": "https://kv.wuyuan.dev",
    "server.siteKey": "",
}


class SettingType(Enum):
    """Scalar kinds a setting may hold."""
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"

    def matches(self, value: Any) -> bool:
        """True if value already has this runtime type."""
        if self is SettingType.BOOLEAN:
            return isinstance(value, bool)
        if self is SettingType.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        return isinstance(value, str)

    def coerce(self, value: Any) -> Any:
        """
        Convert value to this type.

        Raises:
            ValueError: value cannot be represented as this type
        """
        if self.matches(value):
            if self is SettingType.NUMBER and not _is_finite(value):
                raise ValueError(f"{value!r} is not a finite number")
            return value
        if self is SettingType.BOOLEAN:
            if isinstance(value, str):
                word = value.strip().lower()
                if word in _TRUE_WORDS:
                    return True
                if word in _FALSE_WORDS:
                    return False
            return bool(value)
        if self is SettingType.NUMBER:
            try:
                number = float(value.strip() if isinstance(value, str) else value)
            except (TypeError, ValueError, OverflowError) as e:
                raise ValueError(f"{value!r} is not a number") from e
            if not math.isfinite(number):
                raise ValueError(f"{value!r} is not a finite number")
            return int(number) if number.is_integer() else number
        return stringify(value)


_TRUE_WORDS = ('true', '1', 'yes', 'on')
_FALSE_WORDS = ('false', '0', 'no', 'off')


def _is_finite(number: Any) -> bool:
    # Integers beyond float range have no double representation
    try:
        return math.isfinite(number)
    except OverflowError:
        return False


def stringify(value: Any) -> str:
    """String form used for string coercion and legacy mirror slots."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class Setting:
    """Represents a single configurable setting"""
    type: SettingType
    default: Any
    description: Optional[str] = None
    icon: Optional[str] = None
    validate: Optional[str] = None  # Name of a predicate in VALIDATORS
    requires_developer: bool = False  # Hidden/locked unless developer.enabled
    legacy_key: Optional[str] = None  # Deprecated slot mirrored on every set

    def is_valid(self, value: Any) -> bool:
        if self.validate is None:
            return True
        predicate = VALIDATORS.get(self.validate)
        if predicate is None:
            logger.error(f"Unknown validator '{self.validate}'")
            return False
        return predicate(value)


# ==========================================
# Validators (referenced by name from the catalog)
# ==========================================

def _one_of(*choices: str) -> Callable[[Any], bool]:
    return lambda value: value in choices


def _in_range(low: float, high: float) -> Callable[[Any], bool]:
    return lambda value: low <= value <= high


def _is_server_url(value: Any) -> bool:
    # Empty means "not configured"
    if not value:
        return True
    try:
        parsed = urlparse(value)
    except ValueError as e:
        logger.error(f"Invalid domain format: {e}")
        return False
    if not parsed.scheme or not (parsed.netloc or parsed.path):
        logger.error(f"Invalid domain format: {value!r}")
        return False
    return True


VALIDATORS: Dict[str, Callable[[Any], bool]] = {
    "access_type": _one_of("readonly", "readwrite"),
    "empty_subject_display": _one_of("card", "button"),
    "server_url": _is_server_url,
    "data_provider": _one_of("kv-local", "kv-server", CLOUD_PROVIDER),
    "refresh_interval": _in_range(10, 3600),
    "font_size": _in_range(16, 100),
    "theme_mode": _one_of("light", "dark"),
}


# Generated once per process; persisted with the first save
_DEVICE_UUID = str(uuid.uuid4())

SETTINGS_DEFINITIONS: Dict[str, Setting] = {
    # Device
    "device.uuid": Setting(SettingType.STRING, _DEVICE_UUID, "Device unique identifier", "mdi-identifier"),

    # Namespace
    "namespace.password": Setting(SettingType.STRING, "", "Namespace access password", "mdi-key"),
    "namespace.accessType": Setting(SettingType.STRING, "readwrite", "Access permission type", "mdi-shield-lock", validate="access_type"),

    # Storage
    "storage.persistOnLoad": Setting(SettingType.BOOLEAN, True, "Request persistent storage on page load", "mdi-database-sync"),

    # Display
    "display.emptySubjectDisplay": Setting(SettingType.STRING, "card", "How empty subjects are displayed", "mdi-card-outline", validate="empty_subject_display"),
    "display.dynamicSort": Setting(SettingType.BOOLEAN, True, "Reorder cards by content", "mdi-sort-variant"),
    "display.showRandomButton": Setting(SettingType.BOOLEAN, False, "Show the random pick button", "mdi-shuffle-variant"),
    "display.showFullscreenButton": Setting(SettingType.BOOLEAN, True, "Show the fullscreen button", "mdi-fullscreen"),
    "display.cardHoverEffect": Setting(SettingType.BOOLEAN, True, "Card hover feedback", "mdi-gesture-tap"),
    "display.enhancedTouchMode": Setting(SettingType.BOOLEAN, True, "Enhanced touch mode", "mdi-gesture-tap-button"),
    "display.showAntiScreenBurnCard": Setting(SettingType.BOOLEAN, False, "Show the anti screen burn card", "mdi-monitor-shimmer"),
    "display.showListCard": Setting(SettingType.BOOLEAN, True, "Show the list card", "mdi-list-box"),
    "display.showExamScheduleButton": Setting(SettingType.BOOLEAN, True, "Show the exam schedule board", "mdi-calendar-check"),

    # Server (includes the data provider)
    "server.domain": Setting(SettingType.STRING, "", "Backend server domain", "mdi-web", validate="server_url"),
    "server.classNumber": Setting(SettingType.STRING, "高一6班", "Class identifier", "mdi-account-group"),
    "server.siteKey": Setting(SettingType.STRING, "", "Site token sent as x-site-key", "mdi-key-chain"),
    "server.provider": Setting(SettingType.STRING, "kv-local", "Data provider", "mdi-database", validate="data_provider"),

    # Refresh
    "refresh.auto": Setting(SettingType.BOOLEAN, False, "Refresh data automatically", "mdi-refresh-auto"),
    "refresh.interval": Setting(SettingType.NUMBER, 300, "Auto refresh interval (s)", "mdi-timer-outline", validate="refresh_interval"),

    # Font
    "font.size": Setting(SettingType.NUMBER, 28, "Font size", "mdi-format-size", validate="font_size"),

    # Editing
    "edit.autoSave": Setting(SettingType.BOOLEAN, True, "Save edits automatically", "mdi-content-save-outline"),
    "edit.blockNonTodayAutoSave": Setting(SettingType.BOOLEAN, True, "Never auto-save data from other days", "mdi-calendar-lock"),
    "edit.refreshBeforeEdit": Setting(SettingType.BOOLEAN, True, "Refresh before editing", "mdi-refresh"),
    "edit.confirmNonTodaySave": Setting(SettingType.BOOLEAN, True, "Confirm saving data from other days", "mdi-calendar-alert"),

    # Developer
    DEVELOPER_GATE_KEY: Setting(SettingType.BOOLEAN, False, "Enable developer options", "mdi-developer-board"),
    DEBUG_CONFIG_KEY: Setting(SettingType.BOOLEAN, False, "Log configuration changes", "mdi-bug-outline"),
    "developer.disableMessageLog": Setting(SettingType.BOOLEAN, False, "Disable message logging", "mdi-message-off-outline", requires_developer=True),

    # Theme
    "theme.mode": Setting(SettingType.STRING, "dark", "Theme mode", "mdi-theme-light-dark", validate="theme_mode"),
}


def get_definition(key: str) -> Optional[Setting]:
    return SETTINGS_DEFINITIONS.get(key)


def iter_defaults(definitions: Optional[Dict[str, Setting]] = None) -> Iterator[Tuple[str, Any]]:
    """Yield (key, default) for every catalog entry."""
    for key, definition in (definitions if definitions is not None else SETTINGS_DEFINITIONS).items():
        yield key, definition.default
