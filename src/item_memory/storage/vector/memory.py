"""
In-memory vector index.

Stores one embedding per item id and answers top-k cosine similarity
queries with a linear scan. The scan is the documented scaling limit of the
index: it is meant for hundreds to low thousands of items per device.
"""

import copy
import itertools
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from item_memory.errors import DimensionMismatch
from item_memory.models import EmbeddingRecord, SimilarityResult

logger = logging.getLogger(__name__)


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    A zero-norm vector on either side gives 0.0.

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    a = np.asarray(vec1, dtype=np.float64)
    b = np.asarray(vec2, dtype=np.float64)

    if a.shape != b.shape:
        raise DimensionMismatch(a.size, b.size)

    magnitude1 = float(np.linalg.norm(a))
    magnitude2 = float(np.linalg.norm(b))

    if magnitude1 == 0 or magnitude2 == 0:
        return 0.0

    return _clamp(float(np.dot(a, b)) / (magnitude1 * magnitude2))


def _clamp(score: float) -> float:
    if math.isnan(score):
        return 0.0
    return max(-1.0, min(1.0, score))


@dataclass(frozen=True)
class _StoredVector:
    vector: np.ndarray  # read-only
    norm: float
    metadata: Dict[str, Any]
    created_at: float
    method: Optional[str]
    seq: int


class InMemoryVectorIndex:
    """
    In-memory implementation of the VectorIndex protocol.

    Vectors are copied on insert, stored read-only and copied again on the
    way out, so callers can never mutate index-owned data.
    """

    def __init__(self, dimension: int = 1280):
        if dimension <= 0:
            raise ValueError("Index dimension must be positive")

        self._dimension = dimension
        self._records: Dict[str, _StoredVector] = {}
        self._seq = itertools.count()

        logger.info(f"InMemoryVectorIndex initialized (dimension={dimension})")

    @property
    def dimension(self) -> int:
        return self._dimension

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def _check_vector(self, vector: Sequence[float]) -> np.ndarray:
        if len(vector) != self._dimension:
            raise DimensionMismatch(self._dimension, len(vector))

        array = np.array(vector, dtype=np.float64)
        if not np.all(np.isfinite(array)):
            raise ValueError("Vector has non-finite components")
        return array

    def insert(
        self,
        record_id: str,
        vector: Sequence[float],
        metadata: Optional[Dict[str, Any]] = None,
        method: Optional[str] = None,
        created_at: Optional[float] = None,
    ) -> EmbeddingRecord:
        """
        Insert or replace the record for ``record_id``.

        Raises:
            DimensionMismatch: If the vector length differs from the index dimension
            ValueError: If the vector holds NaN or infinite components
        """
        array = self._check_vector(vector)

        record = EmbeddingRecord(
            id=record_id,
            vector=array.tolist(),
            metadata=metadata or {},
            created_at=time.time() if created_at is None else created_at,
            method=method,
        )

        array.setflags(write=False)

        replaced = record_id in self._records
        self._records[record_id] = _StoredVector(
            vector=array,
            norm=float(np.linalg.norm(array)),
            metadata=copy.deepcopy(record.metadata),
            created_at=record.created_at,
            method=method,
            seq=next(self._seq),
        )

        logger.debug(
            f"{'Replaced' if replaced else 'Inserted'} vector {record_id} "
            f"(method={method}, total={len(self._records)})"
        )
        return record

    def search(
        self,
        query: Sequence[float],
        k: int = 5,
        min_score: float = 0.0,
        method: Optional[str] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> List[SimilarityResult]:
        """
        Top-k cosine similarity search.

        Zero-norm vectors carry no signal and never rank. Ties are broken by
        most recent ``created_at``, then most recent insertion.

        Args:
            query: Query vector of the index dimension
            k: Maximum number of results
            min_score: Results scoring below this are dropped
            method: Only compare against records produced by this method
            exclude: Record ids to skip

        Raises:
            DimensionMismatch: If the query length differs from the index dimension
            ValueError: If the query holds NaN or infinite components
        """
        query_vector = self._check_vector(query)

        if k <= 0:
            return []

        query_norm = float(np.linalg.norm(query_vector))
        if query_norm == 0:
            logger.debug("Zero-norm query carries no signal, returning no results")
            return []

        excluded = set(exclude or ())
        candidates = []

        for record_id, stored in self._records.items():
            if record_id in excluded:
                continue
            if method is not None and stored.method != method:
                continue
            if stored.norm == 0:
                continue

            score = _clamp(float(np.dot(query_vector, stored.vector)) / (query_norm * stored.norm))

            if score >= min_score:
                candidates.append((score, stored.created_at, stored.seq, record_id))

        candidates.sort(key=lambda c: (c[0], c[1], c[2]), reverse=True)

        results = [
            SimilarityResult(
                id=record_id,
                score=score,
                metadata=copy.deepcopy(self._records[record_id].metadata),
            )
            for score, _, _, record_id in candidates[:k]
        ]

        logger.debug(f"{len(results)} results found (k={k}, min_score={min_score})")
        return results

    def remove(self, record_id: str) -> bool:
        """Remove a record. Removing an absent id is a no-op."""
        if self._records.pop(record_id, None) is None:
            return False

        logger.debug(f"Removed vector {record_id}")
        return True

    def get(self, record_id: str) -> Optional[EmbeddingRecord]:
        stored = self._records.get(record_id)
        if stored is None:
            return None
        return self._to_record(record_id, stored)

    def ids(self) -> List[str]:
        return list(self._records)

    def records(self) -> List[EmbeddingRecord]:
        """All records in insertion order."""
        ordered = sorted(self._records.items(), key=lambda item: item[1].seq)
        return [self._to_record(record_id, stored) for record_id, stored in ordered]

    def clear(self) -> int:
        count = len(self._records)
        self._records.clear()
        logger.info(f"Cleared all vectors ({count} total)")
        return count

    def stats(self) -> dict:
        methods: Dict[str, int] = {}
        for stored in self._records.values():
            key = stored.method or "unknown"
            methods[key] = methods.get(key, 0) + 1

        return {
            "total_vectors": len(self._records),
            "dimension": self._dimension,
            "methods": methods,
        }

    @staticmethod
    def _to_record(record_id: str, stored: _StoredVector) -> EmbeddingRecord:
        return EmbeddingRecord(
            id=record_id,
            vector=stored.vector.tolist(),
            metadata=copy.deepcopy(stored.metadata),
            created_at=stored.created_at,
            method=stored.method,
        )
