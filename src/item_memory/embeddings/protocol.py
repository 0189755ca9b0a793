"""
Embedding protocols for item-memory.

Provides a unified interface for turning item photos and item descriptions
into dense vectors for similarity search.
"""

from typing import List, Protocol

from PIL import Image
from typing_extensions import runtime_checkable


@runtime_checkable
class ImageEmbedding(Protocol):
    """
    Protocol for image embedding providers.

    All implementations must:

    1. Return deterministic vectors for the same input
    2. Expose their output dimension for compatibility checking
    3. Raise EmbeddingUnavailable when the model cannot produce a vector

    Example:
        >>> embedder = ClipEmbedding()
        >>> vector = await embedder.embed_image(image)
        >>> len(vector) == embedder.dimension
        True
    """

    @property
    def dimension(self) -> int:
        """Number of elements in each embedding vector."""
        ...

    @property
    def model_name(self) -> str:
        """Identifier of the embedding model (e.g., "clip-ViT-B-32")."""
        ...

    async def embed_image(self, image: Image.Image) -> List[float]:
        """
        Generate an embedding for an RGB image at canonical resolution.

        Args:
            image: Decoded RGB image

        Returns:
            Embedding vector

        Raises:
            EmbeddingUnavailable: If the model is missing or inference failed
        """
        ...


@runtime_checkable
class TextEmbedding(Protocol):
    """
    Protocol for text embedding providers.

    Used for item descriptions when no photo is available.
    """

    @property
    def dimension(self) -> int:
        """Number of elements in each embedding vector."""
        ...

    @property
    def model_name(self) -> str:
        """Identifier of the embedding model."""
        ...

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate an embedding for a piece of text.

        Args:
            text: Non-empty text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingUnavailable: If the model is missing or inference failed
        """
        ...
