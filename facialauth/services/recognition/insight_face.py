"""
InsightFace-based face detector and embedding model.

This module adapts InsightFace's ``FaceAnalysis`` pipeline to the two
capabilities consumed by the authentication services: face detection on live
frames and embedding inference on captured samples.

Example:
    ```python
    backend = InsightFaceBackend()
    await backend.load()
    faces = await backend.detect(frame)
    embedding = await backend.infer(frame)
    ```

Note:
    This implementation uses CPU inference by default. For GPU support,
    pass ``providers=["CUDAExecutionProvider"]``.
"""
import asyncio
from typing import List, Optional, Sequence

import numpy as np
from insightface.app import FaceAnalysis
from insightface.app.common import Face as InsightFace

from facialauth.core.config import Settings, settings as default_settings
from facialauth.core.exceptions import ModelLoadError, ModelNotLoadedError, NoFaceDetectedError
from facialauth.core.logging import get_logger
from facialauth.domain.entities.face import BoundingBox, DetectedFace
from facialauth.domain.interfaces.recognition import EmbeddingModel, FaceDetector

logger = get_logger(__name__)


class InsightFaceBackend(FaceDetector, EmbeddingModel):
    """
    Detector and embedding model backed by one InsightFace model pack.

    InsightFace exposes 5-point and 106-point keypoints rather than named
    landmark contours, so detected faces carry no ``landmarks`` and are scored
    on size, confidence and centering only.

    Performance Characteristics:
        - Detection time: ~50ms per face
        - Memory usage: ~1-2GB
    """

    def __init__(
        self,
        model_name: str = "buffalo_l",
        cache_dir: str = ".model_cache",
        det_size: int = 640,
        providers: Optional[Sequence[str]] = None,
    ) -> None:
        self.model_name = model_name
        self.cache_dir = cache_dir
        self.det_size = det_size
        self.providers = list(providers or ["CPUExecutionProvider"])
        self.model: Optional[FaceAnalysis] = None

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "InsightFaceBackend":
        config = config or default_settings
        return cls(model_name=config.MODEL_NAME, cache_dir=config.MODEL_CACHE_DIR)

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    async def load(self) -> None:
        if self.model is not None:
            return
        try:
            model = FaceAnalysis(
                name=self.model_name,
                root=self.cache_dir,
                providers=self.providers
            )
            # Detection size affects accuracy significantly
            model.prepare(ctx_id=0, det_size=(self.det_size, self.det_size))
        except Exception as e:
            logger.error("Model loading failed", model=self.model_name, error=str(e), exc_info=True)
            raise ModelLoadError(
                f"Failed to load InsightFace model: {self.model_name}",
                details={"cause": str(e)}
            ) from e
        self.model = model
        logger.info("InsightFace model loaded", model=self.model_name, providers=self.providers)

    async def detect(self, frame: np.ndarray) -> List[DetectedFace]:
        faces = await self._analyze(frame)
        height, width = frame.shape[:2]
        return [self._convert_to_face(face, width, height) for face in faces]

    async def infer(self, image: np.ndarray) -> np.ndarray:
        faces = await self._analyze(image)
        if not faces:
            raise NoFaceDetectedError("No faces detected in image")

        best = max(faces, key=lambda face: float(face.det_score))
        return np.asarray(best.normed_embedding, dtype=np.float32)

    async def _analyze(self, image: np.ndarray) -> List[InsightFace]:
        if self.model is None:
            raise ModelNotLoadedError("InsightFace model is not loaded")

        if image.ndim == 2:
            image = np.stack([image] * 3, axis=-1)

        faces = await asyncio.to_thread(self.model.get, image)
        logger.debug("Face analysis results", faces_found=len(faces), image_shape=image.shape)
        return faces

    @staticmethod
    def _convert_to_face(face_data: InsightFace, width: int, height: int) -> DetectedFace:
        """Convert an InsightFace result to normalized (0-1) coordinates."""
        x1, y1, x2, y2 = (float(v) for v in face_data.bbox)
        bounding_box = BoundingBox(
            left=x1 / width,
            top=y1 / height,
            width=max(x2 - x1, 0.0) / width,
            height=max(y2 - y1, 0.0) / height
        )
        return DetectedFace(
            bounding_box=bounding_box,
            confidence=min(max(float(face_data.det_score), 0.0), 1.0),
            landmarks=None
        )
