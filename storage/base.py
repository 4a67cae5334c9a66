"""
Base Storage Backend
All durable key-value backends used by the settings manager inherit from this class.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional


class StorageError(Exception):
    """Raised when the backend cannot read or write its durable state."""


@dataclass(frozen=True)
class StorageEvent:
    """A value changed in another execution context."""
    key: Optional[str]  # None means the whole area was cleared
    old_value: Optional[str]
    new_value: Optional[str]


StorageListener = Callable[[StorageEvent], None]


class StorageBackend(ABC):
    """
    Durable string key-value surface (localStorage-shaped).

    Subclasses that can observe writes made by other execution contexts
    override subscribe(); the default implementation has no change channel.
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """
        Return the stored string for key, or None when absent.

        Raises:
            StorageError: the backend could not be read
        """
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """
        Store value under key.

        Raises:
            StorageError: the backend could not be written
        """
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass

    def subscribe(self, listener: StorageListener) -> Optional[Callable[[], None]]:
        """
        Register listener for writes made by other contexts.

        Returns:
            An unsubscribe function, or None when this backend has no change channel.
        """
        return None

    def close(self) -> None:
        """Release background resources (threads, handles)."""
        pass
