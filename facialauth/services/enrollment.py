"""Enrollment: turning many captured samples into one master embedding."""
import asyncio
import math
import time
from typing import Callable, List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict

from facialauth.core.config import Settings, settings as default_settings
from facialauth.core.exceptions import (
    FacialAuthError,
    InsufficientValidDataError,
    TrainingInProgressError,
)
from facialauth.core.logging import get_logger
from facialauth.core.utils.image import ImageInput
from facialauth.domain.entities.profile import utcnow
from facialauth.domain.value_objects.events import (
    TrainingCompleted,
    TrainingEvent,
    TrainingFailed,
    TrainingProgress,
    TrainingSampleCaptured,
    TrainingSampleValidated,
    TrainingStarted,
)
from facialauth.domain.value_objects.recognition import TrainingMetrics, TrainingMode
from facialauth.services.comparator import average_embedding, normalize
from facialauth.services.embedding_extractor import FaceEmbeddingExtractor

logger = get_logger(__name__)

TrainingSink = Callable[[TrainingEvent], None]


class EnrollmentResult(BaseModel):
    """Master embedding produced by an enrollment run."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    embedding: np.ndarray
    metrics: TrainingMetrics


class EnrollmentService:
    """Builds a user's master embedding from enrollment samples.

    The master embedding is the normalized elementwise mean of one embedding
    per valid sample. The training mode only changes how many progress
    "epochs" are reported; the result is identical for every mode.

    Example:
        ```python
        service = EnrollmentService(extractor, sink=events.publish)
        result = await service.train("alice", frames, TrainingMode.FAST)
        await store.save("alice", "Alice", result.embedding)
        ```
    """

    def __init__(
        self,
        extractor: FaceEmbeddingExtractor,
        similarity_threshold: float = 0.85,
        min_valid_samples: int = 3,
        epoch_delay: float = 0.0,
        sink: Optional[TrainingSink] = None,
    ) -> None:
        self.extractor = extractor
        self.similarity_threshold = similarity_threshold
        self.min_valid_samples = min_valid_samples
        self.epoch_delay = epoch_delay
        self.sink = sink
        self._training = False

    @classmethod
    def from_settings(
        cls,
        extractor: FaceEmbeddingExtractor,
        sink: Optional[TrainingSink] = None,
        config: Optional[Settings] = None,
    ) -> "EnrollmentService":
        config = config or default_settings
        return cls(
            extractor,
            similarity_threshold=config.SIMILARITY_THRESHOLD,
            min_valid_samples=config.MIN_VALID_SAMPLES,
            epoch_delay=config.TRAINING_EPOCH_DELAY,
            sink=sink,
        )

    @property
    def is_training(self) -> bool:
        return self._training

    def _emit(self, event: TrainingEvent) -> None:
        if self.sink is not None:
            self.sink(event)

    async def train(
        self,
        user_id: str,
        images: Sequence[ImageInput],
        mode: TrainingMode = TrainingMode.STANDARD,
    ) -> EnrollmentResult:
        """
        Build the master embedding for ``user_id``.

        Raises:
            TrainingInProgressError: If this service is already training
            InsufficientValidDataError: If fewer than ``min_valid_samples`` samples pass screening
            DimensionMismatchError: If samples produce embeddings of different lengths
        """
        if self._training:
            raise TrainingInProgressError("An enrollment is already in progress")

        self._training = True
        start_time = utcnow()
        started = time.perf_counter()
        logger.info(
            "Enrollment started",
            user_id=user_id,
            mode=mode.value,
            samples=len(images),
            epochs=mode.epochs,
        )

        try:
            self._emit(TrainingStarted(mode=mode))

            valid_images = self._screen_samples(images)
            embeddings = await self._extract_embeddings(valid_images)
            master = average_embedding(embeddings)
            final_loss, final_accuracy = await self._report_epochs(embeddings, mode)

            metrics = TrainingMetrics(
                mode=mode,
                total_time=time.perf_counter() - started,
                final_accuracy=final_accuracy,
                final_loss=final_loss,
                epochs_completed=mode.epochs,
                samples_used=len(embeddings),
                start_time=start_time,
                end_time=utcnow(),
            )
            self._emit(TrainingCompleted(metrics=metrics))
            logger.info(
                "Enrollment completed",
                user_id=user_id,
                samples_used=metrics.samples_used,
                total_time=round(metrics.total_time, 3),
                dimension=int(master.size),
            )
            return EnrollmentResult(embedding=master, metrics=metrics)

        except FacialAuthError as e:
            logger.error("Enrollment failed", user_id=user_id, error=str(e), code=e.code)
            self._emit(TrainingFailed(error=e))
            raise
        finally:
            self._training = False

    def _screen_samples(self, images: Sequence[ImageInput]) -> List[ImageInput]:
        valid_images = []
        for index, image in enumerate(images):
            quality = self.extractor.validate_image_quality(image)
            self._emit(TrainingSampleValidated(is_valid=quality.is_good, quality=quality.score))
            if quality.is_good:
                valid_images.append(image)
            else:
                logger.debug("Sample rejected", index=index, issues=quality.issues)

        if len(valid_images) < self.min_valid_samples:
            raise InsufficientValidDataError(
                "Not enough valid enrollment samples",
                details={"valid": len(valid_images), "required": self.min_valid_samples},
            )

        logger.debug(
            "Samples screened",
            valid=len(valid_images),
            rejected=len(images) - len(valid_images),
        )
        return valid_images

    async def _extract_embeddings(self, images: Sequence[ImageInput]) -> List[np.ndarray]:
        embeddings = []
        for index, image in enumerate(images):
            embeddings.append(await self.extractor.extract(image))
            self._emit(TrainingSampleCaptured(sample_count=index + 1, total_needed=len(images)))
        return embeddings

    async def _report_epochs(self, embeddings: Sequence[np.ndarray], mode: TrainingMode):
        """Emit per-epoch pacing telemetry.

        Epoch k folds in the first ceil(k * n / epochs) samples. Loss is one
        minus the mean cosine between each folded sample and the running
        master; accuracy is the share of folded samples at or above the
        similarity threshold.
        """
        samples = np.stack([normalize(embedding) for embedding in embeddings]).astype(np.float64)
        count = len(samples)
        epochs = mode.epochs

        loss = accuracy = 0.0
        for epoch in range(1, epochs + 1):
            folded = samples[: math.ceil(epoch * count / epochs)]
            running_master = normalize(folded.mean(axis=0)).astype(np.float64)
            similarities = folded @ running_master
            loss = float(1.0 - similarities.mean())
            accuracy = float(np.mean(similarities >= self.similarity_threshold))

            self._emit(TrainingProgress(progress=epoch / epochs, epoch=epoch, loss=loss, accuracy=accuracy))
            logger.debug("Epoch reported", epoch=epoch, epochs=epochs, loss=round(loss, 4), accuracy=round(accuracy, 4))

            if self.epoch_delay > 0:
                await asyncio.sleep(self.epoch_delay)

        return loss, accuracy
