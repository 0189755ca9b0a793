"""Live subscriptions to graph node changes."""

import asyncio
import logging
from collections import OrderedDict
from typing import Callable, Optional

from item_memory.models import GraphNode

logger = logging.getLogger(__name__)

NodePredicate = Callable[[GraphNode], bool]


class Subscription:
    """
    Async stream of node creates/updates matching a predicate.

    Pending deliveries are coalesced per node id: a consumer that falls
    behind receives the latest state of each changed node once, so the
    backlog is bounded by the number of distinct nodes. Consumers must still
    apply deliveries idempotently, since the same node can arrive again.

    Example:
        >>> async with sync.subscribe(lambda n: n.fields.get("kind") == "item") as feed:
        ...     async for node in feed:
        ...         render(node)
    """

    def __init__(
        self,
        predicate: Optional[NodePredicate] = None,
        on_cancel: Optional[Callable[["Subscription"], None]] = None,
    ):
        self._predicate = predicate
        self._on_cancel = on_cancel
        self._pending: "OrderedDict[str, GraphNode]" = OrderedDict()
        self._ready = asyncio.Event()
        self._cancelled = False
        self.delivered = 0
        self.coalesced = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> int:
        return len(self._pending)

    def matches(self, node: GraphNode) -> bool:
        if self._predicate is None:
            return True
        try:
            return bool(self._predicate(node))
        except Exception as e:
            logger.warning(f"Subscription predicate failed for node {node.id}: {e}")
            return False

    def push(self, node: GraphNode) -> bool:
        """Queue a node for delivery. Returns False if it was not queued."""
        if self._cancelled or not self.matches(node):
            return False

        if node.id in self._pending:
            self.coalesced += 1
        self._pending[node.id] = node
        self._ready.set()
        return True

    def cancel(self) -> None:
        """Stop the stream. Iteration ends once pending nodes are drained."""
        if self._cancelled:
            return

        self._cancelled = True
        self._ready.set()
        if self._on_cancel is not None:
            self._on_cancel(self)

    async def get(self, timeout: Optional[float] = None) -> GraphNode:
        """
        Wait for the next node.

        Raises:
            asyncio.TimeoutError: If nothing arrives within ``timeout``
            StopAsyncIteration: If the subscription is cancelled and drained
        """
        if timeout is None:
            return await self.__anext__()
        return await asyncio.wait_for(self.__anext__(), timeout)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> GraphNode:
        while True:
            if self._pending:
                _, node = self._pending.popitem(last=False)
                self.delivered += 1
                return node

            if self._cancelled:
                raise StopAsyncIteration

            self._ready.clear()
            await self._ready.wait()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()
