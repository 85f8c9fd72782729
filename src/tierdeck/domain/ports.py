"""
Ports (interfaces) for durable storage.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """
    Port for a durable key-value store holding serialized deck state.

    Implementations:
        - MemoryStore: In-process dict, for tests and throwaway sessions.
        - SqliteStore: Single-table SQLite database.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """
        Fetch the value stored under key.

        Returns:
            The stored string, or None if the key is absent.
        """
        pass

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        """Insert or overwrite the value stored under key."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""
        pass

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix, sorted."""
        pass
