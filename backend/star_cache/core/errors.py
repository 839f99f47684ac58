"""Error hierarchy for Star Cache.

All project exceptions inherit from StarCacheError so the CLI and HTTP layers
can catch them at one boundary:

    StarCacheError
    ├── InvalidInputError
    ├── QuotaExceededError
    ├── TransportError
    ├── StoreCorruptionError
    ├── StoreLockedError
    └── IndexQueryError
"""

from __future__ import annotations


class StarCacheError(Exception):
    """Base class for all Star Cache errors."""


class InvalidInputError(StarCacheError):
    """Missing credential or malformed arguments."""


class QuotaExceededError(StarCacheError):
    """The remote API rate limit has been exhausted."""


class TransportError(StarCacheError):
    """A remote call failed or timed out."""


class StoreCorruptionError(StarCacheError):
    """The persistent store could not be read or written."""


class StoreLockedError(StarCacheError):
    """Another process holds the persistent store."""


class IndexQueryError(StarCacheError):
    """A full-text query could not be executed."""


__all__ = [
    "StarCacheError",
    "InvalidInputError",
    "QuotaExceededError",
    "TransportError",
    "StoreCorruptionError",
    "StoreLockedError",
    "IndexQueryError",
]
