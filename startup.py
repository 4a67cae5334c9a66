"""
Startup storage sequence.

Asks the host platform for notification permission and, when granted and
storage.persistOnLoad is on, for persistent storage. Every request is best
effort: refusals, missing capabilities and errors all count as "not granted".
"""

from abc import ABC
from typing import Optional

from logging_config import get_logger
from settings import SettingsManager

logger = get_logger(__name__)

PERMISSION_GRANTED = "granted"


class PermissionHost(ABC):
    """
    Host platform permission capabilities.
    Subclasses override whichever requests the platform supports;
    the rest raise NotImplementedError and are treated as unsupported.
    """

    async def request_notification_permission(self) -> str:
        """
        Returns:
            str: "granted", "denied" or "default"
        """
        raise NotImplementedError

    async def request_persistent_storage(self) -> bool:
        """
        Returns:
            bool: Whether the platform will keep storage from eviction
        """
        raise NotImplementedError


async def request_notification_permission(host: PermissionHost) -> bool:
    """
    Returns:
        bool: True only if the host reported "granted"
    """
    try:
        permission = await host.request_notification_permission()
    except NotImplementedError:
        logger.warning("Host does not support notification permission requests")
        return False
    except Exception as e:
        logger.warning(f"Notification permission request failed: {e}")
        return False

    if permission == PERMISSION_GRANTED:
        logger.info("Notification permission granted")
        return True
    logger.warning("Notification permission denied")
    return False


async def request_persistent_storage(host: PermissionHost) -> bool:
    """
    Returns:
        bool: Whether persistent storage was enabled
    """
    try:
        return bool(await host.request_persistent_storage())
    except NotImplementedError:
        logger.debug("Host does not support persistent storage requests")
        return False
    except Exception as e:
        logger.warning(f"Persistent storage request failed: {e}")
        return False


async def initialize_storage(manager: SettingsManager, host: Optional[PermissionHost]) -> bool:
    """
    Run the startup permission sequence.

    Args:
        manager: Settings manager consulted for storage.persistOnLoad
        host: Permission host, or None when there is no interactive context

    Returns:
        bool: Whether persistent storage was granted
    """
    if host is None:
        logger.debug("No permission host, skipping storage permission requests")
        return False

    notification_granted = await request_notification_permission(host)
    if not (notification_granted and manager.get("storage.persistOnLoad")):
        return False

    persisted = await request_persistent_storage(host)
    logger.info(f"Persistent storage: {'enabled' if persisted else 'not enabled'}")
    return persisted
