"""
Storage protocol definitions for item-memory.

These protocols define the interface that storage implementations must
provide. They are implementation-agnostic: the vector index, the persisted
blob, the graph replica and the peer relay can each be backed by memory,
files, SQL databases or Redis.
"""

from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from item_memory.models import EmbeddingRecord, FieldRegister, FieldUpdate, SimilarityResult


class VectorIndex(Protocol):
    """
    Protocol for the per-device embedding index.

    Implementations must hold vectors of a single fixed dimension and answer
    top-k cosine similarity queries.
    """

    @property
    def dimension(self) -> int:
        """Dimension D shared by every stored vector."""
        ...

    def insert(
        self,
        record_id: str,
        vector: Sequence[float],
        metadata: Optional[Dict[str, Any]] = None,
        method: Optional[str] = None,
        created_at: Optional[float] = None,
    ) -> EmbeddingRecord:
        """
        Insert or replace the record stored under ``record_id``.

        Args:
            record_id: Item id
            vector: Embedding of length D
            metadata: JSON metadata stored with the vector
            method: How the vector was produced
            created_at: Epoch seconds (None = now)

        Returns:
            The stored record (a copy)

        Raises:
            DimensionMismatch: If ``len(vector) != D``
        """
        ...

    def search(
        self,
        query: Sequence[float],
        k: int = 5,
        min_score: float = 0.0,
        method: Optional[str] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> List[SimilarityResult]:
        """
        Return the top ``k`` records by cosine similarity.

        Args:
            query: Query vector of length D
            k: Maximum number of results
            min_score: Minimum similarity score (-1.0 to 1.0)
            method: Only compare against records produced by this method
            exclude: Record ids to skip

        Returns:
            Results sorted by descending score, ties by most recent record

        Raises:
            DimensionMismatch: If ``len(query) != D``
        """
        ...

    def remove(self, record_id: str) -> bool:
        """
        Remove a record.

        Returns:
            True if a record was removed, False if it was absent
        """
        ...

    def get(self, record_id: str) -> Optional[EmbeddingRecord]:
        """Retrieve a copy of a record by id."""
        ...

    def records(self) -> List[EmbeddingRecord]:
        """Copies of all records in insertion order."""
        ...

    def clear(self) -> int:
        """Remove every record. Returns how many were removed."""
        ...

    def __len__(self) -> int:
        ...


class BlobStore(Protocol):
    """
    Protocol for named durable blobs (device local storage).

    ``write`` must replace the blob atomically: readers see either the old or
    the new blob, never a partial one.
    """

    def read(self, key: str) -> Optional[str]:
        """Return the blob stored under ``key`` or None."""
        ...

    def write(self, key: str, blob: str) -> None:
        """
        Replace the blob stored under ``key``.

        Raises:
            OSError or a backend error if the medium rejects the write
        """
        ...

    def delete(self, key: str) -> bool:
        """Delete a blob. Returns False if it did not exist."""
        ...


class NodeStore(Protocol):
    """
    Protocol for the local replica of the graph store.

    Holds one last-write-wins register per (node, field). Merging is done by
    the sync service; stores only read and write registers.
    """

    def get_register(self, node_id: str, field: str) -> Optional[FieldRegister]:
        """Return the register for one field, or None."""
        ...

    def set_register(self, node_id: str, field: str, register: FieldRegister) -> None:
        """Store the register for one field, replacing any previous one."""
        ...

    def get_node(self, node_id: str) -> Optional[Dict[str, FieldRegister]]:
        """Return all registers of a node, or None if the node is unknown."""
        ...

    def node_ids(self) -> List[str]:
        """Ids of all locally known nodes (tombstoned ones included)."""
        ...

    def clear(self) -> int:
        """Drop the whole replica. Returns the number of nodes dropped."""
        ...


UpdateHandler = Callable[[List[FieldUpdate]], Awaitable[Any]]


class PeerRelay(Protocol):
    """
    Protocol for the peer-to-peer transport.

    Delivery is at-least-once: handlers must tolerate duplicates and any
    ordering. No acknowledgment is required for correctness.
    """

    async def attach(self, handler: UpdateHandler) -> None:
        """Start delivering updates from other peers to ``handler``."""
        ...

    async def publish(self, updates: List[FieldUpdate]) -> int:
        """
        Send updates to the other peers.

        Returns:
            Number of peers the updates were handed to

        Raises:
            SyncUnreachable: If no peer could be reached
        """
        ...

    async def ping(self) -> bool:
        """True if the relay can currently reach its peers."""
        ...

    async def close(self) -> None:
        """Stop delivery and release connections."""
        ...
