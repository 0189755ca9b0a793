"""
In-memory blob storage implementation.

Holds named blobs in a dictionary, suitable for testing. Data is lost on
restart; use FileBlobStore or RedisBlobStore to survive process restarts.
"""

import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class InMemoryBlobStore:
    """In-memory implementation of the BlobStore protocol."""

    def __init__(self):
        self._blobs: Dict[str, str] = {}

        logger.info("InMemoryBlobStore initialized")

    def read(self, key: str) -> Optional[str]:
        return self._blobs.get(key)

    def write(self, key: str, blob: str) -> None:
        self._blobs[key] = blob
        logger.debug(f"Stored blob {key} ({len(blob)} chars)")

    def delete(self, key: str) -> bool:
        return self._blobs.pop(key, None) is not None
