"""
Read-through cache resolution.

Data is served from storage if available, otherwise fetched from the origin,
written back to storage on a best-effort basis, and returned.
"""
from enum import Enum
from typing import Tuple

from catcache.errors import FetchError, NotFoundError, StoreError
from catcache.origin import OriginFetcher
from catcache.storage import Storage
from catcache.utils import say


class Origin(Enum):
    """Where a resolved blob came from."""
    CACHE = 'cache'
    REMOTE = 'remote'


class CacheResolver:
    """
    Read-through cache over a storage backend and an origin fetcher.

    A storage hit always short-circuits: the origin is consulted only on a
    miss. Concurrent misses for the same key are not coalesced; each fetches
    and writes back, and the last write wins.
    """

    def __init__(self, storage: Storage, fetcher: OriginFetcher):
        """
        Initialize resolver.

        Args:
            storage: Storage instance holding cached entries
            fetcher: Fetcher used on a cache miss
        """
        self.storage = storage
        self.fetcher = fetcher

    def resolve(self, key: str) -> Tuple[bytes, Origin]:
        """
        Get data from cache, or fetch it from the origin and store it.

        Args:
            key: A validated 3-digit code

        Returns:
            Tuple of (data, origin)

        Raises:
            NotFoundError: If the entry is neither cached nor available remotely
        """
        # Try to get from cache; an unreadable entry counts as a miss
        try:
            return self.storage.get(key), Origin.CACHE
        except NotFoundError:
            pass

        # Not in cache - retrieve the data
        try:
            data = self.fetcher.fetch(key)
        except FetchError as e:
            say(f'Origin fetch for {key} failed: {e}')
            raise NotFoundError(f'{key} not cached and not available remotely') from e

        self._write_back(key, data)

        return data, Origin.REMOTE

    def _write_back(self, key: str, data: bytes) -> None:
        """Store fetched data for next time. Failures are logged, not raised."""
        try:
            self.storage.put(key, data)
        except (StoreError, OSError) as e:
            say(f'Write-back of {key} failed: {e}')
