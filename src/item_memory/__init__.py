"""
item-memory: local-first similarity index and peer-to-peer sync for photographed items.

Core components:
- embeddings: Image/text embeddings with deterministic fallbacks
- storage: Vector index, index persistence, graph replicas and peer relays
- sync: Replicated graph store with per-field last-write-wins merge
- pricing: Price insight aggregation and marketplace category hints
- recognition_service: Pipeline tying recognition results to all of the above
"""

__version__ = "0.1.0"

from item_memory.bootstrap import build_recognition_service
from item_memory.config import ItemMemorySettings
from item_memory.errors import (
    DimensionMismatch,
    EmbeddingUnavailable,
    ItemMemoryError,
    ParsePriceFailed,
    PersistenceWriteFailed,
    SyncUnreachable,
)
from item_memory.models import (
    EmbeddingRecord,
    GraphNode,
    PriceInsight,
    RecognitionPayload,
    RecognitionResult,
    SimilarityResult,
)
from item_memory.recognition_service import RecognitionService

__all__ = [
    "__version__",
    # Models
    "EmbeddingRecord",
    "SimilarityResult",
    "GraphNode",
    "PriceInsight",
    "RecognitionPayload",
    "RecognitionResult",
    # Errors
    "ItemMemoryError",
    "DimensionMismatch",
    "EmbeddingUnavailable",
    "SyncUnreachable",
    "PersistenceWriteFailed",
    "ParsePriceFailed",
    # Services
    "ItemMemorySettings",
    "RecognitionService",
    "build_recognition_service",
]
