"""
Redis blob storage implementation.

Stores each blob under a single Redis key. ``SET`` replaces the value
atomically, so readers never observe a partially written blob.
"""

import logging
from typing import Optional

try:
    import redis
except ImportError:
    redis = None  # type: ignore

logger = logging.getLogger(__name__)


class RedisBlobStore:
    """Redis implementation of the BlobStore protocol."""

    def __init__(
        self,
        url: Optional[str] = None,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        key_prefix: str = "item-memory:blob:",
    ):
        """
        Initialize the Redis store.

        Args:
            url: Redis URL (takes precedence over host/port/db)
            host: Redis host
            port: Redis port
            db: Redis database number
            key_prefix: Prefix for Redis keys
        """
        if redis is None:
            raise ImportError(
                "redis package is required for RedisBlobStore. Install with: pip install redis"
            )

        if url:
            self.client = redis.Redis.from_url(url, decode_responses=True)
        else:
            self.client = redis.Redis(host=host, port=port, db=db, decode_responses=True)
        self._key_prefix = key_prefix

        try:
            self.client.ping()
            logger.info(f"RedisBlobStore initialized (prefix={key_prefix})")
        except redis.ConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    def _get_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def read(self, key: str) -> Optional[str]:
        return self.client.get(self._get_key(key))

    def write(self, key: str, blob: str) -> None:
        self.client.set(self._get_key(key), blob)
        logger.debug(f"Stored blob {key} in Redis ({len(blob)} chars)")

    def delete(self, key: str) -> bool:
        return self.client.delete(self._get_key(key)) > 0
