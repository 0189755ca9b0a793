"""
Embedding generation with graceful degradation.

The generator prefers a learned model and falls back to the deterministic
embedders in ``fallback.py``. It never raises for any input: malformed input
produces a zero vector flagged as carrying no signal.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, List, Optional

from item_memory.embeddings.fallback import HashedTextEmbedding, PixelBucketEmbedding, fit_dimension
from item_memory.embeddings.images import (
    CANONICAL_SIZE,
    InvalidImage,
    canonicalize,
    decode_image,
    is_image_input,
)
from item_memory.embeddings.protocol import ImageEmbedding, TextEmbedding
from item_memory.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)

NO_SIGNAL_METHOD = "none"


@dataclass
class EmbeddingOutcome:
    """
    Result of one embedding request.

    Attributes:
        vector: Embedding of exactly the generator's dimension
        method: Producer of the vector ("model:<name>", "fallback:<name>" or "none")
        has_signal: False for the all-zero vector, which must not be ranked
        warnings: Degradations that happened while producing the vector
    """

    vector: List[float]
    method: str
    has_signal: bool = True
    warnings: List[str] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.method.startswith("fallback:")


class EmbeddingGenerator:
    """
    Produces fixed-length vectors from item photos or descriptions.

    Example:
        >>> generator = EmbeddingGenerator(dimension=1280)
        >>> outcome = await generator.generate("data:image/png;base64,...")
        >>> outcome.method
        'fallback:pixel-bucket'
    """

    def __init__(
        self,
        dimension: int = 1280,
        image_model: Optional[ImageEmbedding] = None,
        text_model: Optional[TextEmbedding] = None,
        timeout: Optional[float] = None,
        canonical_size: int = CANONICAL_SIZE,
    ):
        """
        Initialize the generator.

        Args:
            dimension: Output dimension D; model vectors are padded/truncated to it
            image_model: Optional learned image embedder
            text_model: Optional learned text embedder
            timeout: Seconds allowed per model call (None = unbounded)
            canonical_size: Square resolution images are resized to before embedding
        """
        self._dimension = dimension
        self._image_model = image_model
        self._text_model = text_model
        self._timeout = timeout
        self._canonical_size = canonical_size

        self._pixel_fallback = PixelBucketEmbedding(dimension)
        self._text_fallback = HashedTextEmbedding(dimension)

        self.fallbacks = 0
        self.model_failures = 0
        self.malformed_inputs = 0

        logger.info(
            f"EmbeddingGenerator initialized (dimension={dimension}, "
            f"image_model={image_model.model_name if image_model else None}, "
            f"text_model={text_model.model_name if text_model else None})"
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    async def generate(self, data: Any) -> EmbeddingOutcome:
        """Embed an image (data URI, bytes, PIL image) or a text description."""
        if is_image_input(data):
            return await self.embed_image(data)
        if isinstance(data, str):
            return await self.embed_text(data)
        return self._malformed(f"Unsupported embedding input type: {type(data).__name__}")

    async def embed_image(self, data: Any) -> EmbeddingOutcome:
        try:
            image = canonicalize(decode_image(data), self._canonical_size)
        except InvalidImage as e:
            return self._malformed(f"Malformed image input: {e}")

        warnings: List[str] = []
        if self._image_model is not None:
            vector = await self._try_model(
                self._image_model.model_name, self._image_model.embed_image(image), warnings
            )
            if vector is not None:
                return self._outcome(vector, f"model:{self._image_model.model_name}", warnings)

        self.fallbacks += 1
        return self._outcome(
            self._pixel_fallback.compute(image), self._pixel_fallback.model_name, warnings
        )

    async def embed_text(self, text: Any) -> EmbeddingOutcome:
        if not isinstance(text, str) or not text.strip():
            return self._malformed("Cannot embed empty or non-text description")

        warnings: List[str] = []
        if self._text_model is not None:
            vector = await self._try_model(
                self._text_model.model_name, self._text_model.embed_text(text), warnings
            )
            if vector is not None:
                return self._outcome(vector, f"model:{self._text_model.model_name}", warnings)

        self.fallbacks += 1
        return self._outcome(
            self._text_fallback.compute(text), self._text_fallback.model_name, warnings
        )

    async def _try_model(
        self, model_name: str, call: Awaitable[List[float]], warnings: List[str]
    ) -> Optional[List[float]]:
        try:
            if self._timeout is not None:
                vector = await asyncio.wait_for(call, self._timeout)
            else:
                vector = await call
            if not all(math.isfinite(v) for v in vector):
                raise EmbeddingUnavailable("model returned non-finite components")
            return vector
        except asyncio.TimeoutError:
            message = f"{model_name} timed out after {self._timeout}s, using fallback embedding"
        except EmbeddingUnavailable as e:
            message = f"{model_name} unavailable ({e}), using fallback embedding"
        except Exception as e:
            message = f"{model_name} failed ({type(e).__name__}: {e}), using fallback embedding"

        self.model_failures += 1
        warnings.append(message)
        logger.warning(message)
        return None

    def _outcome(self, vector: List[float], method: str, warnings: List[str]) -> EmbeddingOutcome:
        fitted = fit_dimension(vector, self._dimension)
        has_signal = any(v != 0.0 for v in fitted)

        if not has_signal:
            message = f"{method} produced an all-zero vector (no signal)"
            warnings.append(message)
            logger.warning(message)

        logger.debug(f"Generated embedding via {method} (signal={has_signal})")
        return EmbeddingOutcome(vector=fitted, method=method, has_signal=has_signal, warnings=warnings)

    def _malformed(self, message: str) -> EmbeddingOutcome:
        self.malformed_inputs += 1
        logger.warning(message)
        return EmbeddingOutcome(
            vector=[0.0] * self._dimension,
            method=NO_SIGNAL_METHOD,
            has_signal=False,
            warnings=[message],
        )

    def stats(self) -> dict:
        return {
            "dimension": self._dimension,
            "has_image_model": self._image_model is not None,
            "has_text_model": self._text_model is not None,
            "fallbacks": self.fallbacks,
            "model_failures": self.model_failures,
            "malformed_inputs": self.malformed_inputs,
        }
