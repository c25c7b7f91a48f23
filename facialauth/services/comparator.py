"""Embedding comparison and averaging."""
import time
from typing import Optional, Sequence

import numpy as np

from facialauth.core.exceptions import (
    DimensionMismatchError,
    EmptyEmbeddingsError,
    InvalidEmbeddingError,
    ZeroNormError,
)
from facialauth.core.logging import get_logger
from facialauth.domain.value_objects.recognition import BestMatchResult, ComparisonResult

logger = get_logger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.85


def as_vector(embedding: Sequence[float]) -> np.ndarray:
    """Convert an embedding to a one-dimensional float64 array.

    Raises:
        InvalidEmbeddingError: If the input is not one-dimensional or holds non-finite values
    """
    vector = np.asarray(embedding, dtype=np.float64)
    if vector.ndim != 1:
        raise InvalidEmbeddingError(
            "Embedding must be one-dimensional", details={"shape": vector.shape}
        )
    if not np.all(np.isfinite(vector)):
        raise InvalidEmbeddingError("Embedding contains non-finite values")
    return vector


def normalize(embedding: Sequence[float]) -> np.ndarray:
    """Scale a vector to unit norm. A zero vector is returned unchanged."""
    vector = np.asarray(embedding, dtype=np.float32)
    norm = float(np.linalg.norm(vector.astype(np.float64)))
    if norm == 0:
        return vector
    return (vector.astype(np.float64) / norm).astype(np.float32)


def average_embedding(embeddings: Sequence[Sequence[float]]) -> np.ndarray:
    """Elementwise mean of equally sized embeddings, L2-normalized.

    Raises:
        EmptyEmbeddingsError: If no embeddings are given
        DimensionMismatchError: If the embeddings differ in length
    """
    if len(embeddings) == 0:
        raise EmptyEmbeddingsError("No embeddings to average")

    vectors = [as_vector(embedding) for embedding in embeddings]
    dimension = len(vectors[0])
    if dimension == 0:
        raise EmptyEmbeddingsError("Embeddings are empty")
    if any(len(vector) != dimension for vector in vectors):
        raise DimensionMismatchError(
            "All embeddings must come from the same extractor",
            details={"dimensions": sorted({len(vector) for vector in vectors})},
        )

    mean = np.mean(np.stack(vectors), axis=0)
    return normalize(mean.astype(np.float32))


class EmbeddingComparator:
    """Cosine similarity and Euclidean distance between embeddings.

    Example:
        ```python
        comparator = EmbeddingComparator(similarity_threshold=0.85)
        result = comparator.compare(captured, stored)
        if comparator.is_match(result):
            ...
        ```
    """

    def __init__(self, similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> None:
        self.similarity_threshold = similarity_threshold

    def compare(self, embedding1: Sequence[float], embedding2: Sequence[float]) -> ComparisonResult:
        """
        Compare two embeddings.

        Raises:
            DimensionMismatchError: If the embeddings differ in length
            EmptyEmbeddingsError: If the embeddings are empty
            ZeroNormError: If either embedding has zero norm
            InvalidEmbeddingError: If either embedding holds non-finite values
        """
        vector1 = as_vector(embedding1)
        vector2 = as_vector(embedding2)

        if len(vector1) != len(vector2):
            raise DimensionMismatchError(
                "Embedding dimensions do not match",
                details={"embedding1": len(vector1), "embedding2": len(vector2)},
            )
        if len(vector1) == 0:
            raise EmptyEmbeddingsError("Embeddings are empty")

        started = time.perf_counter()

        norm1 = float(np.linalg.norm(vector1))
        norm2 = float(np.linalg.norm(vector2))
        if norm1 == 0 or norm2 == 0:
            raise ZeroNormError("Cannot compare a vector with zero norm")

        cosine = float(np.dot(vector1, vector2) / (norm1 * norm2))
        cosine = min(1.0, max(-1.0, cosine))
        distance = float(np.linalg.norm(vector1 - vector2))

        result = ComparisonResult(
            cosine_similarity=cosine,
            euclidean_distance=distance,
            processing_time=time.perf_counter() - started,
            embedding1_norm=norm1,
            embedding2_norm=norm2,
        )
        logger.debug(
            "Embeddings compared",
            cosine_similarity=round(cosine, 4),
            euclidean_distance=round(distance, 4),
        )
        return result

    def is_match(self, result: ComparisonResult, threshold: Optional[float] = None) -> bool:
        threshold = self.similarity_threshold if threshold is None else threshold
        return result.cosine_similarity >= threshold

    def are_from_same_person(
        self,
        embedding1: Sequence[float],
        embedding2: Sequence[float],
        threshold: Optional[float] = None,
    ) -> bool:
        return self.is_match(self.compare(embedding1, embedding2), threshold)

    def best_match(
        self,
        target: Sequence[float],
        candidates: Sequence[Sequence[float]],
    ) -> Optional[BestMatchResult]:
        """Linear scan for the candidate most similar to ``target``.

        Every candidate is compared; ties keep the first one seen.

        Returns:
            The best match, or None when ``candidates`` is empty
        """
        if len(candidates) == 0:
            return None

        best: Optional[BestMatchResult] = None
        for index, candidate in enumerate(candidates):
            result = self.compare(target, candidate)
            if best is None or result.cosine_similarity > best.similarity:
                best = BestMatchResult(
                    index=index,
                    similarity=result.cosine_similarity,
                    comparison=result,
                )

        logger.debug(
            "Best match found",
            candidates=len(candidates),
            index=best.index,
            similarity=round(best.similarity, 4),
        )
        return best
