"""Embedding inference capability interface."""
from abc import ABC, abstractmethod

import numpy as np


class EmbeddingModel(ABC):
    """Interface for the model turning a face image into a fixed-length vector."""

    @property
    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether ``infer`` may be called."""
        pass

    @abstractmethod
    async def load(self) -> None:
        """
        Load model weights.

        Raises:
            ModelLoadError: If the model is missing or cannot be loaded
        """
        pass

    @abstractmethod
    async def infer(self, image: np.ndarray) -> np.ndarray:
        """
        Compute the embedding of the face in ``image``.

        Args:
            image: Decoded image array

        Returns:
            One-dimensional float vector. Its length is fixed per model.
        """
        pass
