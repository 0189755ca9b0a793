"""
In-process peer relay.

Connects several sync services living in the same process, which is how
replication is exercised in tests and demos. Peers can be partitioned from
the hub to simulate being offline.
"""

import logging
from typing import Dict, List, Optional, Set

from item_memory.errors import SyncUnreachable
from item_memory.models import FieldUpdate
from item_memory.storage.protocols import UpdateHandler

logger = logging.getLogger(__name__)


class InMemoryRelayHub:
    """
    Broadcast hub shared by in-process peers.

    Example:
        >>> hub = InMemoryRelayHub()
        >>> phone = SyncService("phone", relay=hub.connect("phone"))
        >>> laptop = SyncService("laptop", relay=hub.connect("laptop"))
    """

    def __init__(self):
        self._peers: Dict[str, "InMemoryPeerRelay"] = {}
        self._partitioned: Set[str] = set()
        self.deliveries = 0

        logger.info("InMemoryRelayHub initialized")

    def connect(self, peer_id: str) -> "InMemoryPeerRelay":
        relay = InMemoryPeerRelay(self, peer_id)
        self._peers[peer_id] = relay
        logger.debug(f"Peer {peer_id} connected to hub ({len(self._peers)} peers)")
        return relay

    def disconnect(self, peer_id: str) -> None:
        self._peers.pop(peer_id, None)
        self._partitioned.discard(peer_id)

    def partition(self, peer_id: str) -> None:
        """Cut a peer off: its publishes fail and it receives nothing."""
        self._partitioned.add(peer_id)
        logger.info(f"Peer {peer_id} partitioned from hub")

    def heal(self, peer_id: str) -> None:
        self._partitioned.discard(peer_id)
        logger.info(f"Peer {peer_id} reconnected to hub")

    def is_reachable(self, peer_id: str) -> bool:
        return peer_id in self._peers and peer_id not in self._partitioned

    @property
    def peer_ids(self) -> List[str]:
        return list(self._peers)

    async def broadcast(self, origin: str, updates: List[FieldUpdate]) -> int:
        if not self.is_reachable(origin):
            raise SyncUnreachable(f"Peer {origin} cannot reach the relay hub")

        targets = [
            relay
            for peer_id, relay in list(self._peers.items())
            if peer_id != origin and peer_id not in self._partitioned and relay.handler is not None
        ]

        for relay in targets:
            await relay.handler([update.model_copy(deep=True) for update in updates])
            self.deliveries += 1

        logger.debug(f"Relayed {len(updates)} updates from {origin} to {len(targets)} peers")
        return len(targets)


class InMemoryPeerRelay:
    """One peer's connection to an InMemoryRelayHub (PeerRelay protocol)."""

    def __init__(self, hub: InMemoryRelayHub, peer_id: str):
        self._hub = hub
        self.peer_id = peer_id
        self.handler: Optional[UpdateHandler] = None

    async def attach(self, handler: UpdateHandler) -> None:
        self.handler = handler

    async def publish(self, updates: List[FieldUpdate]) -> int:
        return await self._hub.broadcast(self.peer_id, updates)

    async def ping(self) -> bool:
        return self._hub.is_reachable(self.peer_id)

    async def close(self) -> None:
        self.handler = None
        self._hub.disconnect(self.peer_id)
