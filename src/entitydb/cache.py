"""
Shared caches for entitydb.

Resolved metadata for throwaway projection types (DTOs) is kept in bounded
cachetools caches so repeated projections do not re-walk the type.
"""
import logging
import threading

import cachetools

logger = logging.getLogger(__name__)


class Cache:
    """Cache manager for the entitydb package.

    Thread-safe singleton that owns all named LRU caches.
    """

    _instance = None
    _caches: dict[str, cachetools.LRUCache] = {}
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'Cache':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_cache(self, name: str, maxsize: int = 128) -> cachetools.LRUCache:
        """Get or create an LRU cache with the given name.

        Args:
            name: Name of the cache
            maxsize: Maximum cache size

        Returns
            LRUCache instance
        """
        if name not in self._caches:
            with self._lock:
                if name not in self._caches:
                    self._caches[name] = cachetools.LRUCache(maxsize=maxsize)
        return self._caches[name]

    def get_or_create(self, name: str, key, factory, maxsize: int = 128):
        """Return the cached value for key, building it with factory on a miss.
        """
        cache = self.get_cache(name, maxsize=maxsize)
        with self._lock:
            if key in cache:
                logger.debug(f'Cache hit in {name} for {key!r}')
                return cache[key]
            logger.debug(f'Cache miss in {name} for {key!r}')
            value = factory()
            cache[key] = value
            return value

    def clear_all(self) -> None:
        """Clear all managed caches."""
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def clear_cache(self, name: str) -> None:
        """Clear a specific cache by name."""
        with self._lock:
            if name in self._caches:
                self._caches[name].clear()
