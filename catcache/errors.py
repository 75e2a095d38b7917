"""
Exception hierarchy for the cache.

Every error carries a short, stable ``message`` that is safe to return to an
HTTP client; details (paths, low-level causes) stay in the exception chain
and the log.

    CacheError
    +-- InvalidKeyError
    +-- NotFoundError
    |   +-- StoreReadError
    +-- FetchError
    +-- StoreError
        +-- StoreWriteError
"""


class CacheError(Exception):
    """Base class for all cache errors."""

    message = 'internal error'

    def __init__(self, detail: str = ''):
        super().__init__(detail or self.message)
        self.detail = detail


class InvalidKeyError(CacheError):
    """The external key is not a 3-digit code."""

    message = 'bad code'


class NotFoundError(CacheError):
    """No entry exists for the key (locally, and remotely for GET)."""

    message = 'not found'


class StoreReadError(NotFoundError):
    """An entry exists but could not be read; treated as a miss."""


class FetchError(CacheError):
    """The origin was unreachable or answered with a non-2xx status."""

    message = 'fetch failed'


class StoreError(CacheError):
    """A storage backend operation failed."""

    message = 'storage failed'


class StoreWriteError(StoreError):
    """Writing or removing an entry failed."""

    message = 'write failed'
