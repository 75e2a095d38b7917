"""
Key validation and key-to-path mapping.

A key is a 3-digit code (e.g. '200'). Each key maps to exactly one entry
named '<key>.jpg' inside the cache root.
"""
import os
import re

from catcache.errors import InvalidKeyError

# ASCII digits only; \d would also accept other Unicode digits
KEY_PATTERN = re.compile(r'[0-9]{3}')
EXTENSION = '.jpg'


def validate(raw) -> str:
    """
    Check that a raw path segment is a valid key.

    Args:
        raw: The value supplied by the client, untouched

    Returns:
        The key, unchanged

    Raises:
        InvalidKeyError: Unless raw is exactly three ASCII digits
    """
    if not isinstance(raw, str) or not KEY_PATTERN.fullmatch(raw):
        raise InvalidKeyError(f'invalid key {raw!r}')
    return raw


def filename_for(key: str) -> str:
    """Entry name for a key, e.g. '200' -> '200.jpg'."""
    return validate(key) + EXTENSION


def to_storage_path(key: str, root: str) -> str:
    """
    Map a key to its file path inside the cache root.

    The result is always a direct child of root. The containment check
    holds regardless of what the key format allows.
    """
    path = os.path.join(root, filename_for(key))

    # Catches absolute names (join drops root) and '..' components
    if os.path.dirname(os.path.normpath(path)) != os.path.normpath(root):
        raise InvalidKeyError(f'key {key!r} escapes the cache root')

    return path
