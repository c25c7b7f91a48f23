"""Tests for embedding extraction."""
import cv2
import numpy as np
import pytest

from conftest import FakeEmbeddingModel, make_frame
from facialauth.core.exceptions import (
    EmbeddingExtractionError,
    InvalidEmbeddingError,
    InvalidImageError,
    ModelNotLoadedError,
)
from facialauth.services.embedding_extractor import FaceEmbeddingExtractor


@pytest.fixture
def extractor(model):
    return FaceEmbeddingExtractor(model, min_resolution=224)


def encode_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()


class TestImageQuality:
    """Test suite for enrollment sample screening."""

    def test_reference_size_scores_full(self, extractor):
        quality = extractor.validate_image_quality(make_frame(size=512))

        assert quality.score == pytest.approx(1.0)
        assert quality.is_good

    def test_small_image(self, extractor):
        quality = extractor.validate_image_quality(make_frame(size=200))

        assert quality.score == pytest.approx(0.2)
        assert quality.issues == ["Resolution too low"]
        assert not quality.is_good

    def test_mid_size_image_scores_by_pixel_count(self, extractor):
        quality = extractor.validate_image_quality(make_frame(size=256))

        assert quality.score == pytest.approx(0.25)
        assert not quality.is_good

    def test_extreme_aspect_ratio(self, extractor):
        quality = extractor.validate_image_quality(np.zeros((300, 1200, 3), dtype=np.uint8))

        assert quality.score == pytest.approx(0.8)
        assert quality.issues == ["Unsuitable aspect ratio"]

    def test_corrupt_bytes(self, extractor):
        quality = extractor.validate_image_quality(b"not an image")

        assert quality.score == 0.0
        assert not quality.is_good

    def test_encoded_bytes_are_decoded(self, extractor):
        quality = extractor.validate_image_quality(encode_png(make_frame(size=512)))

        assert quality.is_good


class TestExtract:
    """Test suite for single and batch extraction."""

    async def test_returns_model_vector(self, extractor, model):
        embedding = await extractor.extract(make_frame())

        assert embedding.dtype == np.float32
        np.testing.assert_array_equal(embedding, model.embedding)

    async def test_rejects_low_resolution(self, extractor, model):
        with pytest.raises(InvalidImageError):
            await extractor.extract(make_frame(size=100))
        assert model.infer_calls == 0

    async def test_rejects_undecodable_bytes(self, extractor):
        with pytest.raises(InvalidImageError):
            await extractor.extract(b"\x00\x01\x02")

    async def test_requires_loaded_model(self):
        extractor = FaceEmbeddingExtractor(FakeEmbeddingModel(loaded=False))

        with pytest.raises(ModelNotLoadedError):
            await extractor.extract(make_frame())

    async def test_rejects_non_finite_output(self):
        model = FakeEmbeddingModel(embedding=[1.0, np.inf, 0.0])

        with pytest.raises(InvalidEmbeddingError):
            await FaceEmbeddingExtractor(model).extract(make_frame())

    async def test_rejects_matrix_output(self):
        model = FakeEmbeddingModel(embed=lambda image: np.ones((2, 4)))

        with pytest.raises(InvalidEmbeddingError):
            await FaceEmbeddingExtractor(model).extract(make_frame())

    async def test_batch_is_sequential_and_ordered(self):
        model = FakeEmbeddingModel(embed=lambda image: np.full(4, float(image[0, 0, 0])))
        extractor = FaceEmbeddingExtractor(model)

        embeddings = await extractor.extract_batch([make_frame(1), make_frame(2), make_frame(3)])

        assert [float(e[0]) for e in embeddings] == [1.0, 2.0, 3.0]

    async def test_batch_fails_fast_with_index(self, extractor, model):
        """Should stop at the first failing image and report its index."""
        images = [make_frame(), make_frame(size=64), make_frame()]

        with pytest.raises(EmbeddingExtractionError) as exc_info:
            await extractor.extract_batch(images)

        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.__cause__, InvalidImageError)
        assert model.infer_calls == 1
