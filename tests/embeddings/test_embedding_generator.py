"""
Unit tests for EmbeddingGenerator.

Covers dispatch between image and text inputs, model fallback (failure,
unavailability, timeout) and the zero-vector result for malformed input.
"""

import asyncio
import io
from unittest.mock import AsyncMock, Mock

import pytest
from PIL import Image

from item_memory.embeddings import EmbeddingGenerator
from item_memory.embeddings.generator import NO_SIGNAL_METHOD
from item_memory.embeddings.images import encode_data_uri
from item_memory.errors import EmbeddingUnavailable


@pytest.fixture
def red_image_uri():
    """Solid-color 32x32 PNG as a data URI."""
    return encode_data_uri(Image.new("RGB", (32, 32), (255, 0, 0)))


@pytest.fixture
def mock_image_model():
    model = Mock()
    model.model_name = "mock-clip"
    model.dimension = 4
    model.embed_image = AsyncMock(return_value=[0.1, 0.2, 0.3, 0.4])
    return model


@pytest.fixture
def mock_text_model():
    model = Mock()
    model.model_name = "mock-text"
    model.dimension = 4
    model.embed_text = AsyncMock(return_value=[0.5, 0.5, 0.0, 0.0])
    return model


@pytest.mark.asyncio
async def test_image_without_model_uses_pixel_fallback(red_image_uri):
    generator = EmbeddingGenerator(dimension=1280)

    outcome = await generator.generate(red_image_uri)

    assert outcome.method == "fallback:pixel-bucket"
    assert outcome.used_fallback
    assert outcome.has_signal
    assert len(outcome.vector) == 1280
    assert outcome.vector[0] == pytest.approx(1 / 3)
    assert generator.fallbacks == 1


@pytest.mark.asyncio
async def test_same_image_gives_identical_vectors(red_image_uri):
    generator = EmbeddingGenerator(dimension=1280)

    first = await generator.generate(red_image_uri)
    second = await generator.generate(red_image_uri)

    assert first.vector == second.vector


@pytest.mark.asyncio
async def test_accepts_bytes_and_pil_images():
    generator = EmbeddingGenerator(dimension=64)
    image = Image.new("RGB", (10, 10), (0, 255, 0))

    from_pil = await generator.generate(image)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    from_bytes = await generator.generate(buffer.getvalue())

    assert from_pil.vector == from_bytes.vector


@pytest.mark.asyncio
async def test_image_model_output_is_fitted(red_image_uri, mock_image_model):
    generator = EmbeddingGenerator(dimension=6, image_model=mock_image_model)

    outcome = await generator.generate(red_image_uri)

    assert outcome.method == "model:mock-clip"
    assert outcome.vector == [0.1, 0.2, 0.3, 0.4, 0.0, 0.0]
    assert not outcome.used_fallback
    mock_image_model.embed_image.assert_awaited_once()

    image = mock_image_model.embed_image.call_args.args[0]
    assert image.size == (224, 224)
    assert image.mode == "RGB"


@pytest.mark.asyncio
async def test_model_failure_falls_back(red_image_uri, mock_image_model):
    mock_image_model.embed_image = AsyncMock(side_effect=RuntimeError("GPU on fire"))
    generator = EmbeddingGenerator(dimension=1280, image_model=mock_image_model)

    outcome = await generator.generate(red_image_uri)

    assert outcome.method == "fallback:pixel-bucket"
    assert outcome.has_signal
    assert generator.model_failures == 1
    assert any("GPU on fire" in warning for warning in outcome.warnings)


@pytest.mark.asyncio
async def test_model_unavailable_falls_back(red_image_uri, mock_image_model):
    mock_image_model.embed_image = AsyncMock(side_effect=EmbeddingUnavailable("not loaded"))
    generator = EmbeddingGenerator(dimension=1280, image_model=mock_image_model)

    outcome = await generator.generate(red_image_uri)

    assert outcome.used_fallback
    assert "unavailable" in outcome.warnings[0]


@pytest.mark.asyncio
async def test_non_finite_model_output_falls_back(red_image_uri, mock_image_model):
    mock_image_model.embed_image = AsyncMock(return_value=[float("nan"), 0.2, 0.3, 0.4])
    generator = EmbeddingGenerator(dimension=1280, image_model=mock_image_model)

    outcome = await generator.generate(red_image_uri)

    assert outcome.method == "fallback:pixel-bucket"
    assert generator.model_failures == 1
    assert "non-finite" in outcome.warnings[0]


@pytest.mark.asyncio
async def test_model_timeout_falls_back(red_image_uri, mock_image_model):
    async def slow_embed(image):
        await asyncio.sleep(5)
        return [1.0, 0.0, 0.0, 0.0]

    mock_image_model.embed_image = slow_embed
    generator = EmbeddingGenerator(dimension=1280, image_model=mock_image_model, timeout=0.05)

    outcome = await generator.generate(red_image_uri)

    assert outcome.used_fallback
    assert generator.model_failures == 1
    assert "timed out" in outcome.warnings[0]


@pytest.mark.asyncio
async def test_text_without_model_uses_hashed_fallback():
    generator = EmbeddingGenerator(dimension=1280)

    outcome = await generator.generate("Vintage leather jacket")

    assert outcome.method == "fallback:hashed-bow"
    assert outcome.has_signal


@pytest.mark.asyncio
async def test_text_model_is_used(mock_text_model):
    generator = EmbeddingGenerator(dimension=4, text_model=mock_text_model)

    outcome = await generator.generate("Vintage leather jacket")

    assert outcome.method == "model:mock-text"
    mock_text_model.embed_text.assert_awaited_once_with("Vintage leather jacket")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "bad_input",
    [
        None,
        42,
        b"",
        b"definitely not an image",
        "data:image/png;base64,",
        "data:image/png;base64,bm90IGFuIGltYWdl",
        "   ",
    ],
)
async def test_malformed_input_gives_zero_vector(bad_input):
    generator = EmbeddingGenerator(dimension=32)

    outcome = await generator.generate(bad_input)

    assert outcome.vector == [0.0] * 32
    assert outcome.method == NO_SIGNAL_METHOD
    assert not outcome.has_signal
    assert outcome.warnings
    assert generator.malformed_inputs == 1


@pytest.mark.asyncio
async def test_oversized_image_gives_zero_vector(red_image_uri, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    generator = EmbeddingGenerator(dimension=32)

    outcome = await generator.embed_image(red_image_uri)

    assert outcome.method == NO_SIGNAL_METHOD
    assert not outcome.has_signal
    assert generator.malformed_inputs == 1


@pytest.mark.asyncio
async def test_black_image_has_no_signal():
    generator = EmbeddingGenerator(dimension=1280)

    outcome = await generator.generate(encode_data_uri(Image.new("RGB", (32, 32), (0, 0, 0))))

    assert outcome.method == "fallback:pixel-bucket"
    assert not outcome.has_signal
    assert "no signal" in outcome.warnings[0]


def test_stats():
    generator = EmbeddingGenerator(dimension=16)
    stats = generator.stats()

    assert stats["dimension"] == 16
    assert stats["has_image_model"] is False
    assert stats["fallbacks"] == 0
