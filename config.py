"""
Classworks Configuration Loader
Environment-driven process configuration (file locations, server bind, logging).
User-facing settings live in the settings manager, not here.
"""
import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# ==========================================
# Path Configuration
# ==========================================
if "__compiled__" in globals() or getattr(sys, 'frozen', False):
    ROOT_DIR = Path(sys.executable).parent
else:
    ROOT_DIR = Path(__file__).parent

# ==========================================
# Version
# ==========================================
VERSION = "1.0.0"

# Only load .env if it exists
env_file = ROOT_DIR / '.env'
if env_file.exists():
    load_dotenv(env_file)


def env_bool(name: str, default: bool) -> bool:
    """Read a boolean environment variable ('true', '1', 'yes', 'on')."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('true', '1', 'yes', 'on')


def env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        print(f"Warning: {name}={value!r} is not a number, using {default}")
        return default


# ==========================================
# EXPORTED CONFIG DICTS
# ==========================================

# Settings file can be moved for Docker/persistent volumes
STORAGE = {
    "settings_file": Path(os.getenv("CLASSWORKS_SETTINGS_FILE", str(ROOT_DIR / "settings.json"))),
    # Seconds between checks for writes made by other processes
    "watch_interval": env_float("CLASSWORKS_WATCH_INTERVAL", 1.0),
    "watch_enabled": env_bool("CLASSWORKS_WATCH_ENABLED", True),
}

SERVER = {
    "host": os.getenv("CLASSWORKS_HOST", "127.0.0.1"),
    "port": int(env_float("CLASSWORKS_PORT", 9030)),
}

DEBUG = {
    # Default to WARNING for frozen builds (less log noise in production)
    "log_level": os.getenv("CLASSWORKS_LOG_LEVEL", "WARNING" if getattr(sys, 'frozen', False) else "INFO"),
    "log_file": os.getenv("CLASSWORKS_LOG_FILE", "classworks.log"),
    "log_to_console": env_bool("CLASSWORKS_LOG_TO_CONSOLE", not getattr(sys, 'frozen', False)),
    "log_detailed": env_bool("CLASSWORKS_LOG_DETAILED", False),
    "log_changes": env_bool("CLASSWORKS_LOG_CHANGES", True),
}
