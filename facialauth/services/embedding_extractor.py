"""Embedding extraction on top of the inference capability."""
import asyncio
from typing import List, Sequence

import numpy as np

from facialauth.core.exceptions import (
    EmbeddingExtractionError,
    InvalidEmbeddingError,
    InvalidImageError,
    ModelNotLoadedError,
)
from facialauth.core.logging import get_logger
from facialauth.core.utils.image import ImageInput, as_image_array, image_size
from facialauth.domain.interfaces.recognition.embedding_model import EmbeddingModel
from facialauth.domain.value_objects.recognition import ImageQuality

logger = get_logger(__name__)

REFERENCE_PIXELS = 512 * 512


class FaceEmbeddingExtractor:
    """Validates images and delegates to the embedding model.

    Calls against one extractor are serialized: two extractions never run
    concurrently on the same model.
    """

    def __init__(self, model: EmbeddingModel, min_resolution: int = 224) -> None:
        self.model = model
        self.min_resolution = min_resolution
        self._lock = asyncio.Lock()

    def validate_image_quality(self, image: ImageInput) -> ImageQuality:
        """Score an image for use as an enrollment sample."""
        try:
            array = as_image_array(image)
        except ValueError:
            return ImageQuality(score=0.0, issues=["Corrupt image"])

        width, height = image_size(array)
        if width < self.min_resolution or height < self.min_resolution:
            return ImageQuality(score=0.2, issues=["Resolution too low"])

        issues = []
        score = min(1.0, (width * height) / REFERENCE_PIXELS)

        aspect_ratio = width / height
        if aspect_ratio < 0.5 or aspect_ratio > 2.0:
            issues.append("Unsuitable aspect ratio")
            score *= 0.8

        return ImageQuality(score=score, issues=issues)

    def _prepare(self, image: ImageInput) -> np.ndarray:
        try:
            array = as_image_array(image)
        except ValueError as e:
            raise InvalidImageError(f"Invalid image: {e}")

        width, height = image_size(array)
        if width < self.min_resolution or height < self.min_resolution:
            raise InvalidImageError(
                "Image resolution below minimum",
                details={"width": width, "height": height, "min_resolution": self.min_resolution},
            )
        return array

    async def extract(self, image: ImageInput) -> np.ndarray:
        """
        Extract the embedding of one image.

        Returns:
            The model's vector as float32, values unchanged

        Raises:
            ModelNotLoadedError: If the model has not been loaded
            InvalidImageError: If the image is undecodable or below the minimum resolution
            InvalidEmbeddingError: If the model output is not a finite vector
        """
        if not self.model.is_loaded:
            raise ModelNotLoadedError("Embedding model is not loaded")

        array = self._prepare(image)

        async with self._lock:
            output = await self.model.infer(array)

        embedding = np.asarray(output, dtype=np.float32)
        if embedding.ndim != 1 or embedding.size == 0:
            raise InvalidEmbeddingError(
                "Model returned an unsupported output shape", details={"shape": embedding.shape}
            )
        if not np.all(np.isfinite(embedding)):
            raise InvalidEmbeddingError("Model returned non-finite values")

        logger.debug("Embedding extracted", dimension=int(embedding.size))
        return embedding

    async def extract_batch(self, images: Sequence[ImageInput]) -> List[np.ndarray]:
        """
        Extract embeddings sequentially, stopping at the first failure.

        Raises:
            EmbeddingExtractionError: Carrying the index of the failing image
        """
        embeddings = []
        for index, image in enumerate(images):
            try:
                embeddings.append(await self.extract(image))
            except Exception as e:
                logger.error("Batch extraction failed", index=index, total=len(images), error=str(e))
                raise EmbeddingExtractionError(
                    f"Extraction failed for image {index}: {e}",
                    index=index,
                    details={"cause": getattr(e, "code", type(e).__name__)},
                ) from e
            logger.debug("Batch item processed", index=index + 1, total=len(images))
        return embeddings

