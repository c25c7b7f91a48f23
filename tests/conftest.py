"""Shared fixtures and fakes for the facial authentication tests."""
from typing import Callable, List, Optional, Sequence, Union

import numpy as np
import pytest

from facialauth.core.config import Settings
from facialauth.domain.entities.face import BoundingBox, DetectedFace, FaceLandmarks
from facialauth.domain.interfaces.recognition import EmbeddingModel, FaceDetector
from facialauth.infrastructure.storage import InMemorySecureStorage

FRAME_SIZE = 512
DIMENSION = 8


def make_frame(value: int = 128, size: int = FRAME_SIZE) -> np.ndarray:
    return np.full((size, size, 3), value, dtype=np.uint8)


def full_landmarks() -> FaceLandmarks:
    eye = [(0.1 * i, 0.1) for i in range(6)]
    return FaceLandmarks(
        left_eye=eye,
        right_eye=eye,
        nose=[(0.5, 0.5)],
        outer_lips=[(0.4, 0.7), (0.6, 0.7)],
    )


def make_face(
    left: float = 0.225,
    top: float = 0.225,
    size: float = 0.55,
    confidence: float = 0.9,
    landmarks: Optional[FaceLandmarks] = None,
) -> DetectedFace:
    """A face with area ``size**2``, centered by default."""
    return DetectedFace(
        bounding_box=BoundingBox(left=left, top=top, width=size, height=size),
        confidence=confidence,
        landmarks=landmarks,
    )


DetectionScript = Union[List[DetectedFace], Exception]


class FakeDetector(FaceDetector):
    """Replays scripted detection results, then repeats ``default``."""

    def __init__(self, default: Optional[List[DetectedFace]] = None) -> None:
        self.default = default if default is not None else [make_face()]
        self.script: List[DetectionScript] = []
        self.calls = 0

    def queue(self, *results: DetectionScript) -> None:
        self.script.extend(results)

    async def detect(self, frame: np.ndarray) -> List[DetectedFace]:
        self.calls += 1
        result = self.script.pop(0) if self.script else self.default
        if isinstance(result, Exception):
            raise result
        return list(result)


class FakeEmbeddingModel(EmbeddingModel):
    """Returns ``embedding`` for every image, or ``embed(image)`` when given."""

    def __init__(
        self,
        embedding: Optional[Sequence[float]] = None,
        embed: Optional[Callable[[np.ndarray], np.ndarray]] = None,
        loaded: bool = True,
    ) -> None:
        self.embedding = np.asarray(
            embedding if embedding is not None else np.arange(1, DIMENSION + 1), dtype=np.float32
        )
        self.embed = embed
        self._loaded = loaded
        self.load_calls = 0
        self.infer_calls = 0

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        self.load_calls += 1
        self._loaded = True

    async def infer(self, image: np.ndarray) -> np.ndarray:
        self.infer_calls += 1
        if self.embed is not None:
            return self.embed(image)
        return self.embedding.copy()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with short delays and small sample counts."""
    return Settings(
        _env_file=None,
        STORAGE_BACKEND="memory",
        RECOGNITION_BACKEND="none",
        MAX_TRAINING_SAMPLES=3,
        REQUIRED_CONSECUTIVE_FRAMES=2,
        RESULT_RESET_DELAY=0.01,
        CANCEL_RESET_DELAY=0.01,
        SESSION_TIMEOUT=5.0,
        TRAINING_MODE="fast",
    )


@pytest.fixture
def good_face() -> DetectedFace:
    return make_face(landmarks=full_landmarks())


@pytest.fixture
def detector() -> FakeDetector:
    return FakeDetector([make_face(landmarks=full_landmarks())])


@pytest.fixture
def model() -> FakeEmbeddingModel:
    return FakeEmbeddingModel()


@pytest.fixture
def storage() -> InMemorySecureStorage:
    return InMemorySecureStorage("TestNamespace")


@pytest.fixture
def frame() -> np.ndarray:
    return make_frame()
