"""
Deterministic fallback embedders.

Used whenever no learned model is configured or the model fails. Both
embedders are pure functions of their input: same input, same vector.
"""

import logging
from typing import List

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

PIXEL_GRID = 32


def fit_dimension(vector, dimension: int) -> List[float]:
    """Zero-pad or truncate a vector to exactly ``dimension`` elements."""
    values = [float(v) for v in vector[:dimension]]
    if len(values) < dimension:
        values.extend([0.0] * (dimension - len(values)))
    return values


def stable_hash(token: str) -> int:
    """
    Process-independent 32-bit string hash.

    Rolling ``h * 31 + code`` wrapped to a signed 32-bit integer, returned as
    its absolute value. Python's built-in ``hash`` is salted per process and
    cannot be used for persisted vectors.
    """
    h = 0
    for char in token:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


class PixelBucketEmbedding:
    """
    Pixel-bucket average image embedding.

    The image is box-downsampled to a ``grid`` x ``grid`` raster. Each cell
    contributes ``(r + g + b) / 3 / 255``, row-major, and the result is
    zero-padded or truncated to ``dimension``.
    """

    def __init__(self, dimension: int = 1280, grid: int = PIXEL_GRID):
        self._dimension = dimension
        self._grid = grid

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return "fallback:pixel-bucket"

    def compute(self, image: Image.Image) -> List[float]:
        cells = image.convert("RGB").resize((self._grid, self._grid), Image.Resampling.BOX)
        pixels = np.asarray(cells, dtype=np.float64)
        averages = (pixels[..., 0] + pixels[..., 1] + pixels[..., 2]) / 3.0 / 255.0
        return fit_dimension(averages.reshape(-1).tolist(), self._dimension)

    async def embed_image(self, image: Image.Image) -> List[float]:
        return self.compute(image)


class HashedTextEmbedding:
    """
    Hashed bag-of-words text embedding.

    Each lowercase whitespace token lands in bucket ``stable_hash(token) % D``
    with weight ``1 / (position + 1)``. The vector is L2-normalized; blank
    text gives the zero vector.
    """

    def __init__(self, dimension: int = 1280):
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return "fallback:hashed-bow"

    def compute(self, text: str) -> List[float]:
        vector = np.zeros(self._dimension, dtype=np.float64)

        for position, token in enumerate(text.lower().split()):
            vector[stable_hash(token) % self._dimension] += 1.0 / (position + 1)

        magnitude = float(np.linalg.norm(vector))
        if magnitude > 0:
            vector /= magnitude

        return vector.tolist()

    async def embed_text(self, text: str) -> List[float]:
        return self.compute(text)
