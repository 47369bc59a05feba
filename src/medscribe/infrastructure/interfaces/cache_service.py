"""Abstract interface for cache service operations."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any


class CacheService(ABC):
    """
    Abstract base class for cache backends.

    The cache accelerates reads and never holds the only copy of anything.
    Implementations log backend failures and degrade: reads miss, writes
    report False, counters report 0 and locks are not acquired.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """
        Retrieves a value from cache.

        Args:
            key: The cache key.

        Returns:
            The decoded value or None on a miss.
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """
        Stores a JSON-serializable value.

        Args:
            key: The cache key.
            value: The value to cache.
            ttl_seconds: Expiry; the backend default when None.

        Returns:
            True if the value was stored.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Removes a key. Returns True if the call reached the backend."""
        pass

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Removes every key matching a glob pattern and returns how many."""
        pass

    @abstractmethod
    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl_seconds: int | None = None,
    ) -> Any:
        """
        Returns the cached value, computing and storing it on a miss.

        Errors raised by ``factory`` propagate to the caller.
        """
        pass

    @abstractmethod
    async def increment(self, key: str, ttl_seconds: int | None = None) -> int:
        """Atomically increments a counter and returns the new value."""
        pass

    @abstractmethod
    async def acquire_lock(
        self, name: str, ttl_seconds: int, wait_seconds: float = 0
    ) -> str | None:
        """
        Acquires a distributed lock.

        Args:
            name: Lock name.
            ttl_seconds: Expiry that frees the lock if the holder dies.
            wait_seconds: How long to keep retrying; 0 tries once.

        Returns:
            An ownership token, or None if the lock was not acquired.
        """
        pass

    @abstractmethod
    async def extend_lock(self, name: str, token: str, ttl_seconds: int) -> bool:
        """
        Resets a lock's expiry, only if ``token`` still owns it.

        Returns:
            True if the lock is still owned and was extended.
        """
        pass

    @abstractmethod
    async def release_lock(self, name: str, token: str) -> bool:
        """
        Releases a lock only if ``token`` still owns it.

        Returns:
            True if the lock was released by this call.
        """
        pass
