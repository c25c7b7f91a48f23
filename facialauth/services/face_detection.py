"""Rate-limited, single-flight access to a face detector."""
import time
from typing import List, Optional

import numpy as np

from facialauth.core.logging import get_logger
from facialauth.domain.entities.face import DetectedFace
from facialauth.domain.interfaces.recognition.face_detection import FaceDetector

logger = get_logger(__name__)


class ThrottledFaceDetector:
    """Wraps a FaceDetector for live streams.

    Requests arriving less than ``min_interval`` seconds after the last accepted
    one, or while a detection is still running, return an empty list instead of
    queueing.
    """

    def __init__(self, detector: FaceDetector, min_interval: float = 0.1) -> None:
        self._detector = detector
        self.min_interval = min_interval
        self._last_detection: Optional[float] = None
        self._in_flight = False
        self._generation = 0

    @property
    def is_busy(self) -> bool:
        return self._in_flight

    def reset(self) -> None:
        """Forget throttle state. A detection still running is left to finish on its own."""
        self._generation += 1
        self._last_detection = None
        self._in_flight = False

    async def detect(self, frame: np.ndarray, timestamp: Optional[float] = None) -> List[DetectedFace]:
        """Run detection unless throttled or busy.

        Raises:
            Exception: Whatever the wrapped detector raised
        """
        timestamp = time.monotonic() if timestamp is None else timestamp

        if self._in_flight:
            logger.debug("Detection in flight, skipping frame", timestamp=timestamp)
            return []

        if self._last_detection is not None and timestamp - self._last_detection < self.min_interval:
            return []
        self._last_detection = timestamp

        generation = self._generation
        self._in_flight = True
        try:
            return await self._detector.detect(frame)
        finally:
            if generation == self._generation:
                self._in_flight = False
