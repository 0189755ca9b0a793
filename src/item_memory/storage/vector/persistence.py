"""
Persistence for the vector index.

The index is serialized into one JSON blob:

    {"vectors": [[id, [floats]], ...], "metadata": [[id, {...}], ...],
     "timestamp": <ms>, "dimension": D, "created_at": [[id, ts], ...],
     "methods": [[id, method], ...], "version": 1}

Floats are written with their shortest round-tripping representation, so
vectors load back bit-for-bit. Blobs holding only the first three keys are
still accepted.
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

from item_memory.errors import DimensionMismatch, PersistenceWriteFailed
from item_memory.storage.protocols import BlobStore, VectorIndex
from item_memory.storage.vector.memory import InMemoryVectorIndex

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def dump_index(index: VectorIndex) -> str:
    """Serialize the whole index into a JSON blob."""
    records = index.records()

    payload = {
        "version": FORMAT_VERSION,
        "dimension": index.dimension,
        "vectors": [[record.id, record.vector] for record in records],
        "metadata": [[record.id, record.metadata] for record in records],
        "created_at": [[record.id, record.created_at] for record in records],
        "methods": [[record.id, record.method] for record in records],
        "timestamp": int(time.time() * 1000),
    }
    return json.dumps(payload)


def load_index(blob: str, dimension: Optional[int] = None) -> InMemoryVectorIndex:
    """
    Rebuild an index from a blob produced by ``dump_index``.

    Args:
        blob: Serialized index
        dimension: Expected dimension (None = take it from the blob)

    Raises:
        ValueError: If the blob is not a valid index blob
        DimensionMismatch: If the blob dimension differs from ``dimension``
    """
    try:
        payload = json.loads(blob)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValueError(f"Index blob is not valid JSON: {e}") from e

    if not isinstance(payload, dict) or not isinstance(payload.get("vectors"), list):
        raise ValueError("Index blob has no 'vectors' list")

    try:
        index = _rebuild(payload, dimension)
    except DimensionMismatch:
        raise
    except (TypeError, ValueError, KeyError, IndexError) as e:
        raise ValueError(f"Malformed index blob: {e}") from e

    logger.info(f"Loaded {len(index)} vectors from blob (dimension={index.dimension})")
    return index


def _pairs(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    entries = payload.get(key) or []
    if not isinstance(entries, list):
        raise ValueError(f"'{key}' must be a list of [id, value] pairs")
    return dict(_pair(entry, key) for entry in entries)


def _pair(entry: Any, key: str) -> Tuple[str, Any]:
    if not isinstance(entry, list) or len(entry) != 2 or not isinstance(entry[0], str):
        raise ValueError(f"'{key}' entry is not an [id, value] pair: {entry!r}")
    return entry[0], entry[1]


def _rebuild(payload: Dict[str, Any], dimension: Optional[int]) -> InMemoryVectorIndex:
    vectors = [_pair(entry, "vectors") for entry in payload["vectors"]]
    for record_id, vector in vectors:
        if not isinstance(vector, list):
            raise ValueError(f"Vector of {record_id} is not a list")

    stored_dimension = payload.get("dimension")
    if stored_dimension is None:
        stored_dimension = len(vectors[0][1]) if vectors else dimension
    if stored_dimension is None:
        raise ValueError("Cannot infer dimension of an empty legacy index blob")
    if isinstance(stored_dimension, bool) or not isinstance(stored_dimension, int):
        raise ValueError(f"Index dimension is not an integer: {stored_dimension!r}")

    if dimension is not None and stored_dimension != dimension:
        raise DimensionMismatch(dimension, stored_dimension)

    metadata = _pairs(payload, "metadata")
    created_at = _pairs(payload, "created_at")
    methods = _pairs(payload, "methods")
    saved_at = float(payload.get("timestamp") or 0) / 1000.0

    index = InMemoryVectorIndex(dimension=stored_dimension)
    for record_id, vector in vectors:
        index.insert(
            record_id,
            vector,
            metadata=metadata.get(record_id) or {},
            method=methods.get(record_id),
            created_at=created_at.get(record_id, saved_at),
        )
    return index


class IndexPersistence:
    """
    Saves and restores a vector index through a BlobStore.

    A save snapshots the index into a complete blob before handing it to the
    store, and saves are serialized so an older snapshot never overwrites a
    newer one.
    """

    def __init__(self, store: BlobStore, key: str = "item_vectors"):
        """
        Args:
            store: Durable blob storage medium
            key: Name of the index blob
        """
        self._store = store
        self._key = key
        self._lock = asyncio.Lock()
        self.saves = 0
        self.failed_saves = 0
        self.last_saved_at: Optional[float] = None

        logger.info(f"IndexPersistence initialized (key={key}, store={type(store).__name__})")

    @property
    def key(self) -> str:
        return self._key

    async def save(self, index: VectorIndex) -> str:
        """
        Persist the index.

        Returns:
            The blob that was written

        Raises:
            PersistenceWriteFailed: If the store rejected the write; the
                previously saved blob and the in-memory index are untouched
        """
        async with self._lock:
            blob = dump_index(index)
            try:
                await asyncio.to_thread(self._store.write, self._key, blob)
            except Exception as e:
                self.failed_saves += 1
                logger.error(f"Failed to save index blob {self._key}: {e}")
                raise PersistenceWriteFailed(f"Failed to save index blob {self._key}: {e}") from e

        self.saves += 1
        self.last_saved_at = time.time()
        logger.debug(f"Saved {len(index)} vectors to blob {self._key}")
        return blob

    async def load(self, dimension: Optional[int] = None) -> Optional[InMemoryVectorIndex]:
        """Load the saved index, or None if nothing was saved yet."""
        blob = await asyncio.to_thread(self._store.read, self._key)
        if blob is None:
            logger.info(f"No saved index blob {self._key}")
            return None
        return load_index(blob, dimension)

    def exists(self) -> bool:
        return self._store.read(self._key) is not None

    async def clear(self) -> bool:
        return await asyncio.to_thread(self._store.delete, self._key)
