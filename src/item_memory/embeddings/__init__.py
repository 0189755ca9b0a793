"""
Embedding abstractions for item-memory.

Provides protocol-based embedding interfaces, deterministic fallbacks and
the generator that chooses between them:
- EmbeddingGenerator: model first, deterministic fallback otherwise
- PixelBucketEmbedding / HashedTextEmbedding: fallback embedders
- ClipEmbedding: CLIP image and text embeddings via sentence-transformers
"""

from item_memory.embeddings.fallback import HashedTextEmbedding, PixelBucketEmbedding
from item_memory.embeddings.generator import EmbeddingGenerator, EmbeddingOutcome
from item_memory.embeddings.protocol import ImageEmbedding, TextEmbedding

__all__ = [
    "ImageEmbedding",
    "TextEmbedding",
    "EmbeddingGenerator",
    "EmbeddingOutcome",
    "PixelBucketEmbedding",
    "HashedTextEmbedding",
]

# Optional adapters (import only if dependencies available)
try:
    from item_memory.embeddings.clip_embedding import ClipEmbedding  # noqa: F401

    __all__.append("ClipEmbedding")
except ImportError:
    pass
