"""Face detector capability interface."""
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ...entities.face import DetectedFace


class FaceDetector(ABC):
    """Interface for the face rectangle/landmark detector."""

    @abstractmethod
    async def detect(self, frame: np.ndarray) -> List[DetectedFace]:
        """
        Detect faces in a single frame.

        Args:
            frame: Decoded image array (H x W or H x W x C)

        Returns:
            Detected faces with normalized (0-1) bounding boxes. An empty list
            when no face is present.

        Raises:
            Exception: Any detector failure. Callers processing a live stream
                treat it as a per-frame error.
        """
        pass
