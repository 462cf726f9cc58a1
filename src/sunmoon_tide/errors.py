"""Exception hierarchy for tide prediction and tile handling."""
from __future__ import annotations


class SunmoonTideError(Exception):
    """Base error for the package."""


class InvalidInputError(SunmoonTideError, ValueError):
    """A date, coordinate or argument cannot be used for a computation."""


class IntegrityError(SunmoonTideError):
    """A checksum or manifest signature does not match its content."""


class CorruptPayloadError(IntegrityError):
    """A compressed tile payload could not be inflated or parsed."""


class StorageCapacityError(SunmoonTideError):
    """A tile cannot fit in the storage quota even after eviction."""


class TileFetchError(SunmoonTideError):
    """A tile could not be downloaded from the tile server."""
