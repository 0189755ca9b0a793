"""CLIP embedding adapter for item-memory."""

import asyncio
import logging
from typing import List, Optional

from PIL import Image

from item_memory.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)


class ClipEmbedding:
    """
    CLIP image/text embedding adapter.

    CLIP maps photos and descriptions into the same vector space, so one
    adapter serves both the ImageEmbedding and TextEmbedding protocols.

    Supported models (sentence-transformers names):
    - clip-ViT-B-32 (512 dims) - Default, good balance
    - clip-ViT-B-16 (512 dims) - Higher quality, slower
    - clip-ViT-L-14 (768 dims) - Best quality, largest

    Inference runs in a worker thread so the event loop keeps serving other
    tasks while the model is busy.

    Example:
        >>> embedder = ClipEmbedding(model_name="clip-ViT-B-32", device="cpu")
        >>> vector = await embedder.embed_image(image)
        >>> len(vector)
        512
    """

    def __init__(
        self,
        model_name: str = "clip-ViT-B-32",
        device: Optional[str] = None,
        normalize_embeddings: bool = True,
        cache_folder: Optional[str] = None,
    ):
        """
        Initialize CLIP embedder.

        Args:
            model_name: sentence-transformers model identifier
            device: Device for computation ("cuda", "cpu", or None for auto)
            normalize_embeddings: L2 normalize vectors
            cache_folder: Directory for model cache (None = default ~/.cache)
        """
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ImportError(
                "sentence-transformers is required for ClipEmbedding. "
                "Install with: pip install item-memory[transformers]"
            ) from e

        self._model_name = model_name
        self._normalize = normalize_embeddings

        logger.info(f"Loading CLIP model: {model_name}")
        self._model = SentenceTransformer(model_name, device=device, cache_folder=cache_folder)
        self._dimension = self._model.get_sentence_embedding_dimension()
        logger.info(f"Model loaded: {model_name} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        """Vector dimension produced by this model."""
        return self._dimension

    @property
    def model_name(self) -> str:
        """Identifier of the loaded model."""
        return self._model_name

    def _encode(self, value) -> List[float]:
        embedding = self._model.encode(
            value,
            normalize_embeddings=self._normalize,
            show_progress_bar=False,
        )
        return embedding.tolist()

    async def embed_image(self, image: Image.Image) -> List[float]:
        """
        Generate embedding for an item photo.

        Raises:
            EmbeddingUnavailable: If inference fails
        """
        try:
            return await asyncio.to_thread(self._encode, image)
        except Exception as e:
            raise EmbeddingUnavailable(f"{self._model_name} image inference failed: {e}") from e

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for an item description.

        Raises:
            ValueError: If text is empty
            EmbeddingUnavailable: If inference fails
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        try:
            return await asyncio.to_thread(self._encode, text)
        except Exception as e:
            raise EmbeddingUnavailable(f"{self._model_name} text inference failed: {e}") from e
