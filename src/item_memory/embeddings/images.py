"""Image decoding helpers for the embedding generator."""

import base64
import binascii
import io
import logging
from typing import Union

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

CANONICAL_SIZE = 224

ImageInput = Union[str, bytes, bytearray, Image.Image]


class InvalidImage(ValueError):
    """Input could not be decoded into a non-empty image."""


def is_image_input(value: object) -> bool:
    """True for values routed to the image path (data URIs, raw bytes, PIL images)."""
    if isinstance(value, (bytes, bytearray, Image.Image)):
        return True
    return isinstance(value, str) and value.lstrip().startswith("data:")


def _decode_data_uri(data: str) -> bytes:
    header, sep, payload = data.strip().partition(",")
    if not sep:
        raise InvalidImage("data URI has no payload")

    if not header.endswith(";base64"):
        raise InvalidImage(f"Unsupported data URI encoding: {header[:40]}")

    try:
        return base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise InvalidImage(f"Invalid base64 payload: {e}") from e


def decode_image(data: ImageInput) -> Image.Image:
    """
    Decode a data URI, base64 string, raw bytes or PIL image.

    Args:
        data: Image input

    Returns:
        Loaded PIL image

    Raises:
        InvalidImage: If the input is empty, of the wrong type or not an image
    """
    if isinstance(data, Image.Image):
        image = data
    else:
        if isinstance(data, str):
            if data.lstrip().startswith("data:"):
                raw = _decode_data_uri(data)
            else:
                try:
                    raw = base64.b64decode(data, validate=True)
                except (binascii.Error, ValueError) as e:
                    raise InvalidImage(f"Not a data URI or base64 image: {e}") from e
        elif isinstance(data, (bytes, bytearray)):
            raw = bytes(data)
        else:
            raise InvalidImage(f"Unsupported image input type: {type(data).__name__}")

        if not raw:
            raise InvalidImage("Empty image data")

        try:
            image = Image.open(io.BytesIO(raw))
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
            raise InvalidImage(f"Could not decode image: {e}") from e

    if image.width == 0 or image.height == 0:
        raise InvalidImage("Image has no pixels")

    return image


def canonicalize(image: Image.Image, size: int = CANONICAL_SIZE) -> Image.Image:
    """Convert to RGB and resize to the canonical square resolution."""
    rgb = image.convert("RGB")
    if rgb.size != (size, size):
        rgb = rgb.resize((size, size), Image.Resampling.BILINEAR)
    return rgb


def encode_data_uri(image: Image.Image, fmt: str = "PNG") -> str:
    """Encode an image as a base64 data URI."""
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/{fmt.lower()};base64,{encoded}"
