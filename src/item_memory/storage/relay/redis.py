"""
Redis pub/sub peer relay.

Every peer publishes its field updates to one channel and listens on it for
updates from the others. Redis only forwards messages; it is never the
authority for any node.
"""

import asyncio
import json
import logging
from typing import List, Optional

from item_memory.errors import SyncUnreachable
from item_memory.models import FieldUpdate
from item_memory.storage.protocols import UpdateHandler

try:
    import redis
    import redis.asyncio as aioredis
except ImportError:
    redis = None  # type: ignore
    aioredis = None  # type: ignore

logger = logging.getLogger(__name__)


class RedisPeerRelay:
    """Redis implementation of the PeerRelay protocol."""

    def __init__(
        self,
        peer_id: str,
        url: str = "redis://localhost:6379/0",
        channel: str = "item-memory:sync",
    ):
        """
        Initialize the Redis relay.

        Args:
            peer_id: Identity of the local peer (own messages are skipped)
            url: Redis URL
            channel: Pub/sub channel shared by all peers
        """
        if aioredis is None:
            raise ImportError(
                "redis package is required for RedisPeerRelay. Install with: pip install redis"
            )

        self.peer_id = peer_id
        self.client = aioredis.Redis.from_url(url, decode_responses=True)
        self._channel = channel
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None

        logger.info(f"RedisPeerRelay initialized (peer={peer_id}, channel={channel})")

    async def attach(self, handler: UpdateHandler) -> None:
        self._pubsub = self.client.pubsub()
        await self._pubsub.subscribe(self._channel)
        self._listener = asyncio.create_task(self._listen(handler))
        logger.info(f"Subscribed to {self._channel}")

    async def _listen(self, handler: UpdateHandler) -> None:
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue

            try:
                envelope = json.loads(message["data"])
                if envelope.get("origin") == self.peer_id:
                    continue
                updates = [FieldUpdate.model_validate(item) for item in envelope["updates"]]
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Dropping malformed relay message: {e}")
                continue

            try:
                await handler(updates)
            except Exception as e:
                logger.error(f"Failed to apply {len(updates)} relayed updates: {e}")

    async def publish(self, updates: List[FieldUpdate]) -> int:
        payload = json.dumps(
            {"origin": self.peer_id, "updates": [update.model_dump() for update in updates]}
        )

        try:
            receivers = await self.client.publish(self._channel, payload)
        except (redis.ConnectionError, redis.TimeoutError, OSError) as e:
            raise SyncUnreachable(f"Redis relay unreachable: {e}") from e

        # Our own subscription counts as a receiver
        if self._pubsub is not None:
            receivers -= 1

        logger.debug(f"Published {len(updates)} updates to {max(0, receivers)} peers")
        return max(0, receivers)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (redis.ConnectionError, redis.TimeoutError, OSError):
            return False

    async def close(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.aclose()
            self._pubsub = None

        await self.client.aclose()
        logger.info(f"RedisPeerRelay closed (peer={self.peer_id})")
