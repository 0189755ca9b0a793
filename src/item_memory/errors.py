"""
Error kinds raised by item-memory.

Only DimensionMismatch and PersistenceWriteFailed are meant to reach callers.
The remaining kinds are raised internally and absorbed by the component that
owns the degraded path (embedding fallback, local-only sync, skipped prices).
"""


class ItemMemoryError(Exception):
    """Base class for all item-memory errors."""


class DimensionMismatch(ItemMemoryError, ValueError):
    """A vector does not have the dimension the index was built with."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected vector of dimension {expected}, got {actual}")


class EmbeddingUnavailable(ItemMemoryError, RuntimeError):
    """The learned embedding model is missing or failed."""


class SyncUnreachable(ItemMemoryError, ConnectionError):
    """No peer could be reached to propagate updates."""


class PersistenceWriteFailed(ItemMemoryError, OSError):
    """
    Writing the index blob failed.

    The in-memory index is still valid; the save can be retried.
    """

    retryable = True


class ParsePriceFailed(ItemMemoryError, ValueError):
    """A price value could not be turned into a positive number."""
