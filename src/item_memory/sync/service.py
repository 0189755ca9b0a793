"""
Replicated graph store.

Holds item, recognition, price and settings records as nodes whose fields
are last-write-wins registers, and replicates field updates to peers
through a PeerRelay. Local reads and writes never wait on the network: a
missing or partitioned peer only delays convergence.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from item_memory.models import FieldUpdate, GraphNode, MetadataValue, SyncStats
from item_memory.storage.graph.memory import InMemoryNodeStore
from item_memory.storage.protocols import NodeStore, PeerRelay
from item_memory.sync.registers import DELETED_FIELD, OWNER_FIELD, materialize, merge
from item_memory.sync.subscription import NodePredicate, Subscription

logger = logging.getLogger(__name__)

CLOCK_EPSILON = 1e-6
DEFAULT_SYNC_TIMEOUT = 2.0

KIND_ITEM = "item"
KIND_RECOGNITION = "recognition"
KIND_PRICE_DATA = "price_data"
KIND_SETTING = "setting"


class SyncService:
    """
    Peer-to-peer replicated node store with per-field LWW merge.

    Example:
        >>> hub = InMemoryRelayHub()
        >>> sync = SyncService("phone", relay=hub.connect("phone"))
        >>> await sync.start()
        >>> sync.put("item-1", {"kind": "item", "name": "Camera"})
        >>> await sync.flush()
    """

    def __init__(
        self,
        peer_id: str,
        store: Optional[NodeStore] = None,
        relay: Optional[PeerRelay] = None,
        timeout: float = DEFAULT_SYNC_TIMEOUT,
        owner_key: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the sync service.

        Args:
            peer_id: Identity of this replica, also the LWW tiebreaker
            store: Local replica storage (default: in-memory)
            relay: Transport to other peers (None = local-only)
            timeout: Seconds to wait for a propagation or reachability check
            owner_key: Pseudonymous identity stamped on nodes created here
            clock: Wall clock in epoch seconds
        """
        self._peer_id = peer_id
        self._store = store if store is not None else InMemoryNodeStore()
        self._relay = relay
        self._timeout = timeout
        self._owner_key = owner_key
        self._clock = clock
        self._last_timestamp = 0.0

        self._subscriptions: List[Subscription] = []
        self._inflight: Set[asyncio.Task] = set()
        self._backlog: List[Tuple[str, str]] = []
        self._started = False

        self._stats = SyncStats(peer_id=peer_id)

        logger.info(
            f"SyncService initialized (peer={peer_id}, "
            f"store={type(self._store).__name__}, "
            f"relay={type(relay).__name__ if relay else None}, timeout={timeout}s)"
        )

    @property
    def peer_id(self) -> str:
        return self._peer_id

    @property
    def owner_key(self) -> Optional[str]:
        return self._owner_key

    @property
    def has_relay(self) -> bool:
        return self._relay is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Attach to the relay and push anything written while offline."""
        if self._started:
            return

        self._started = True
        if self._relay is None:
            logger.info(f"SyncService {self._peer_id} running local-only (no relay)")
            return

        await self._relay.attach(self._on_remote)
        if self._backlog:
            await self.flush()

    async def stop(self) -> None:
        """Wait for in-flight propagation, then detach from the relay."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

        for subscription in list(self._subscriptions):
            subscription.cancel()

        if self._relay is not None and self._started:
            await self._relay.close()

        self._started = False
        logger.info(f"SyncService {self._peer_id} stopped")

    # ------------------------------------------------------------------
    # Local reads and writes
    # ------------------------------------------------------------------

    def _tick(self) -> float:
        timestamp = max(self._clock(), self._last_timestamp + CLOCK_EPSILON)
        self._last_timestamp = timestamp
        return timestamp

    def _observe(self, timestamp: float) -> None:
        if timestamp > self._last_timestamp:
            self._last_timestamp = timestamp

    def put(
        self,
        node_id: str,
        fields: Dict[str, MetadataValue],
        owner_key: Optional[str] = None,
    ) -> GraphNode:
        """
        Write fields locally and schedule propagation to peers.

        Every touched field is stamped with the current local time. The call
        never waits for the network.

        Args:
            node_id: Node to write
            fields: Field values (plain JSON values)
            owner_key: Owner identity to stamp on the node

        Returns:
            The node as stored locally after the write

        Raises:
            ValueError: If there is nothing to write
        """
        if not fields and owner_key is None:
            raise ValueError("put requires at least one field")

        timestamp = self._tick()
        updates = [
            FieldUpdate(
                node_id=node_id,
                field=field,
                value=value,
                timestamp=timestamp,
                origin_peer=self._peer_id,
            )
            for field, value in fields.items()
        ]

        if owner_key is not None:
            updates.append(
                FieldUpdate(
                    node_id=node_id,
                    field=OWNER_FIELD,
                    value=owner_key,
                    timestamp=timestamp,
                    origin_peer=self._peer_id,
                )
            )

        self._apply(updates)
        self._schedule(updates)

        logger.debug(f"Put {len(updates)} fields on node {node_id}")
        return self.get(node_id, include_deleted=True)

    def delete(self, node_id: str) -> Optional[GraphNode]:
        """Tombstone a node. The tombstone replicates like any other field."""
        if self._store.get_node(node_id) is None:
            logger.debug(f"Cannot delete node {node_id}: not found")
            return None

        node = self.put(node_id, {DELETED_FIELD: True})
        logger.info(f"Tombstoned node {node_id}")
        return node

    def get(self, node_id: str, include_deleted: bool = False) -> Optional[GraphNode]:
        """Return the locally known state of a node, or None."""
        registers = self._store.get_node(node_id)
        if registers is None:
            return None

        node = materialize(node_id, registers)
        if node.deleted and not include_deleted:
            return None
        return node

    def nodes(
        self, predicate: Optional[NodePredicate] = None, include_deleted: bool = False
    ) -> List[GraphNode]:
        result = []
        for node_id in self._store.node_ids():
            node = self.get(node_id, include_deleted=include_deleted)
            if node is not None and (predicate is None or predicate(node)):
                result.append(node)
        return result

    def subscribe(
        self, predicate: Optional[NodePredicate] = None, include_existing: bool = True
    ) -> Subscription:
        """
        Open a live feed of node creates/updates (tombstones included).

        Args:
            predicate: Only nodes for which this returns True are delivered
            include_existing: Replay current live nodes first (restart support)
        """
        subscription = Subscription(predicate, on_cancel=self._unsubscribe)
        self._subscriptions.append(subscription)

        if include_existing:
            for node in self.nodes():
                subscription.push(node)

        logger.debug(f"Subscription opened ({len(self._subscriptions)} active)")
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _apply(self, updates: Iterable[FieldUpdate]) -> int:
        """Merge updates into the replica and notify subscribers. Returns accepted count."""
        accepted = 0
        changed: List[str] = []

        for update in updates:
            current = self._store.get_register(update.node_id, update.field)
            incoming = update.to_register()

            if merge(current, incoming) is incoming:
                self._store.set_register(update.node_id, update.field, incoming)
                accepted += 1
                if update.node_id not in changed:
                    changed.append(update.node_id)

        for node_id in changed:
            node = self.get(node_id, include_deleted=True)
            for subscription in list(self._subscriptions):
                subscription.push(node)

        return accepted

    # ------------------------------------------------------------------
    # Replication
    # ------------------------------------------------------------------

    def apply_remote(self, updates: Union[FieldUpdate, dict, Iterable[Union[FieldUpdate, dict]]]) -> int:
        """
        Merge updates received from other peers.

        Stale and duplicate updates are ignored, so redelivery is harmless.

        Returns:
            Number of registers that changed
        """
        if isinstance(updates, (FieldUpdate, dict)):
            updates = [updates]

        batch = [
            update if isinstance(update, FieldUpdate) else FieldUpdate.model_validate(update)
            for update in updates
        ]

        for update in batch:
            self._observe(update.timestamp)

        accepted = self._apply(batch)

        self._stats.updates_received += len(batch)
        self._stats.updates_applied += accepted
        self._stats.updates_ignored += len(batch) - accepted

        logger.debug(f"Applied {accepted}/{len(batch)} remote updates")
        return accepted

    async def _on_remote(self, updates: List[FieldUpdate]) -> None:
        self.apply_remote(updates)

    def _schedule(self, updates: List[FieldUpdate]) -> None:
        if self._relay is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop yet: propagate on the next flush/start
            self._backlog.extend((u.node_id, u.field) for u in updates)
            return

        task = loop.create_task(self._propagate(updates))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _propagate(self, updates: List[FieldUpdate], timeout: Optional[float] = None) -> bool:
        if self._relay is None or not updates:
            return False

        timeout = self._timeout if timeout is None else timeout
        try:
            peers = await asyncio.wait_for(self._relay.publish(updates), timeout)
        except Exception as e:
            # Any relay failure leaves the updates for the next flush
            self._stats.propagation_failures += 1
            self._stats.reachable = False
            self._backlog.extend((u.node_id, u.field) for u in updates)
            logger.warning(
                f"Propagation of {len(updates)} updates failed ({type(e).__name__}: {e}), "
                f"keeping them for retry (backlog={len(self._backlog)})"
            )
            return False

        self._stats.updates_sent += len(updates)
        self._stats.peers_connected = peers
        self._stats.reachable = True
        self._stats.last_propagated_at = time.time()
        logger.debug(f"Propagated {len(updates)} updates to {peers} peers")
        return True

    def _drain_backlog(self) -> List[FieldUpdate]:
        """Current state of every backlogged field (older values are superseded anyway)."""
        keys = list(dict.fromkeys(self._backlog))
        self._backlog.clear()

        updates = []
        for node_id, field in keys:
            register = self._store.get_register(node_id, field)
            if register is not None:
                updates.append(
                    FieldUpdate(
                        node_id=node_id,
                        field=field,
                        value=register.value,
                        timestamp=register.timestamp,
                        origin_peer=register.peer_id,
                    )
                )
        return updates

    async def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight propagation and retry the backlog.

        The backlog is only retried when the in-flight propagations went
        through, so an unreachable relay is not hammered twice per write.

        Returns:
            True if everything written locally has been handed to the relay
        """
        if self._relay is None:
            return False

        results = []
        if self._inflight:
            results = await asyncio.gather(*list(self._inflight), return_exceptions=True)

        healthy = all(result is True for result in results)
        if self._backlog and healthy:
            healthy = await self._propagate(self._drain_backlog(), timeout)

        return healthy and not self._backlog

    async def check_reachability(self, timeout: Optional[float] = None) -> bool:
        """Probe the relay within ``timeout`` seconds (default: the sync timeout)."""
        if self._relay is None:
            return False

        timeout = self._timeout if timeout is None else timeout
        try:
            reachable = await asyncio.wait_for(self._relay.ping(), timeout)
        except Exception as e:
            logger.warning(f"Peer reachability check failed: {e}")
            reachable = False

        self._stats.reachable = reachable
        return reachable

    def snapshot_updates(self, node_ids: Optional[Iterable[str]] = None) -> List[FieldUpdate]:
        """Every register as a FieldUpdate, for catching up a fresh peer."""
        updates = []
        for node_id in node_ids if node_ids is not None else self._store.node_ids():
            registers = self._store.get_node(node_id) or {}
            for field, register in registers.items():
                updates.append(
                    FieldUpdate(
                        node_id=node_id,
                        field=field,
                        value=register.value,
                        timestamp=register.timestamp,
                        origin_peer=register.peer_id,
                    )
                )
        return updates

    async def announce(self) -> bool:
        """Publish the whole replica so peers that joined late catch up."""
        return await self._propagate(self.snapshot_updates())

    def stats(self) -> SyncStats:
        stats = self._stats.model_copy()
        stats.backlog = len(set(self._backlog))
        stats.nodes = len(self._store.node_ids())
        return stats

    def clear(self) -> int:
        """Drop the local replica (peers keep their copies)."""
        return self._store.clear()

    # ------------------------------------------------------------------
    # Record helpers
    # ------------------------------------------------------------------

    def create_item(self, item_data: Dict[str, Any], item_id: Optional[str] = None) -> GraphNode:
        """Create an item node owned by this device's owner key."""
        item_id = item_id or uuid.uuid4().hex
        now = time.time()
        fields = {
            **item_data,
            "kind": KIND_ITEM,
            "created_at": now,
            "updated_at": now,
            DELETED_FIELD: False,
        }
        return self.put(item_id, fields, owner_key=self._owner_key)

    def update_item(self, item_id: str, updates: Dict[str, Any]) -> GraphNode:
        return self.put(item_id, {**updates, "updated_at": time.time()})

    def store_recognition(self, item_id: str, recognition_data: Dict[str, Any]) -> GraphNode:
        """Record an AI recognition event for an item."""
        recognition_id = f"recognition:{uuid.uuid4().hex}"
        fields = {
            **recognition_data,
            "kind": KIND_RECOGNITION,
            "item_id": item_id,
            "created_at": time.time(),
        }
        return self.put(recognition_id, fields, owner_key=self._owner_key)

    def store_price_data(self, item_name: str, price_data: Dict[str, Any]) -> GraphNode:
        """Record marketplace price observations for an item name."""
        data_id = f"price_data:{uuid.uuid4().hex}"
        fields = {
            **price_data,
            "kind": KIND_PRICE_DATA,
            "item_name": item_name,
            "scraped_at": time.time(),
        }
        return self.put(data_id, fields)

    def set_setting(self, key: str, value: MetadataValue) -> GraphNode:
        return self.put(
            f"setting:{key}",
            {"kind": KIND_SETTING, "key": key, "value": value, "updated_at": time.time()},
        )

    def get_setting(self, key: str, default: MetadataValue = None) -> MetadataValue:
        node = self.get(f"setting:{key}")
        if node is None:
            return default
        return node.fields.get("value", default)

    def owner_items(self, owner_key: Optional[str] = None) -> List[GraphNode]:
        """Live item nodes belonging to ``owner_key`` (default: this device's owner)."""
        owner_key = owner_key or self._owner_key
        return self.nodes(
            lambda node: node.fields.get("kind") == KIND_ITEM
            and (owner_key is None or node.owner_key == owner_key)
        )

    def recognitions_for(self, item_id: str, include_deleted: bool = False) -> List[GraphNode]:
        return self.nodes(
            lambda node: node.fields.get("kind") == KIND_RECOGNITION
            and node.fields.get("item_id") == item_id,
            include_deleted=include_deleted,
        )
