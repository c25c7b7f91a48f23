"""Real-time frame admission and auto-capture.

Frames are admitted at most once per ``processing_interval`` seconds, kept in a
small ring buffer and run through the face detector. A consecutive-good-frame
counter decides when a frame is stable enough to capture automatically.
"""
import asyncio
import time
from collections import deque
from typing import Callable, Deque, Optional, Set, Tuple

import numpy as np

from facialauth.core.config import Settings, settings as default_settings
from facialauth.core.logging import get_logger
from facialauth.core.utils.image import copy_frame
from facialauth.domain.entities.face import DetectedFace
from facialauth.domain.value_objects.events import (
    CaptureStatusUpdated,
    FacesDetected,
    FrameCaptured,
    ProcessingFailed,
    ProcessorEvent,
)
from facialauth.domain.value_objects.recognition import (
    CaptureRequirements,
    CaptureStatus,
    FaceIssue,
    FaceValidation,
    SessionMetrics,
)
from facialauth.services.face_detection import ThrottledFaceDetector
from facialauth.services.quality import VALID_QUALITY_SCORE, FaceQualityValidator

logger = get_logger(__name__)

EventSink = Callable[[ProcessorEvent], None]


def _discard(event: ProcessorEvent) -> None:
    pass


class RealTimeProcessor:
    """Frame admission state machine (``idle`` <-> ``processing``) with auto-capture.

    All methods must be called from the event loop that owns the processor.
    Producers running on other threads hand frames over with
    :meth:`submit_frame_threadsafe`.

    Example:
        ```python
        processor = RealTimeProcessor(ThrottledFaceDetector(detector), FaceQualityValidator(), sink)
        processor.enable_auto_capture(CaptureRequirements())
        processor.start()
        processor.submit_frame(frame)
        ```
    """

    def __init__(
        self,
        detector: ThrottledFaceDetector,
        validator: FaceQualityValidator,
        sink: Optional[EventSink] = None,
        processing_interval: float = 0.1,
        buffer_size: int = 3,
        required_consecutive_frames: int = 5,
    ) -> None:
        self._detector = detector
        self._validator = validator
        self._sink = sink or _discard
        self.processing_interval = processing_interval
        self.required_consecutive_frames = required_consecutive_frames

        self._processing = False
        self._buffer: Deque[np.ndarray] = deque(maxlen=buffer_size)
        self._last_admitted: Optional[float] = None
        self._detection_pending = False
        self._session = 0
        self._tasks: Set[asyncio.Task] = set()

        self._auto_capture = False
        self._requirements = CaptureRequirements()
        self._consecutive_good_frames = 0

        self._metrics = SessionMetrics()

    @classmethod
    def from_settings(
        cls,
        detector: ThrottledFaceDetector,
        validator: FaceQualityValidator,
        sink: Optional[EventSink] = None,
        config: Optional[Settings] = None,
    ) -> "RealTimeProcessor":
        config = config or default_settings
        return cls(
            detector,
            validator,
            sink,
            processing_interval=config.PROCESSING_INTERVAL,
            buffer_size=config.FRAME_BUFFER_SIZE,
            required_consecutive_frames=config.REQUIRED_CONSECUTIVE_FRAMES,
        )

    def configure(self, config: Settings, validator: Optional[FaceQualityValidator] = None) -> None:
        """Apply admission settings (and optionally a new validator) from ``config``.

        The buffer keeps its most recent frames when it shrinks.
        """
        if validator is not None:
            self._validator = validator
        self.processing_interval = config.PROCESSING_INTERVAL
        self.required_consecutive_frames = config.REQUIRED_CONSECUTIVE_FRAMES
        self._detector.min_interval = config.DETECTION_INTERVAL
        if self._buffer.maxlen != config.FRAME_BUFFER_SIZE:
            self._buffer = deque(self._buffer, maxlen=config.FRAME_BUFFER_SIZE)
        self._consecutive_good_frames = 0

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def consecutive_good_frames(self) -> int:
        return self._consecutive_good_frames

    @property
    def requirements(self) -> CaptureRequirements:
        return self._requirements

    @property
    def metrics(self) -> SessionMetrics:
        """Snapshot of the counters of the current (or last) session."""
        return self._metrics.model_copy()

    def start(self) -> None:
        logger.debug("Starting frame processing")
        self._processing = True
        self._session += 1
        self._detection_pending = False
        self._metrics = SessionMetrics()
        self._consecutive_good_frames = 0
        self._last_admitted = None
        self._detector.reset()

    def stop(self) -> None:
        if not self._processing:
            return
        metrics = self._metrics
        logger.debug(
            "Stopping frame processing",
            frames_processed=metrics.frames_processed,
            dropped_frames=metrics.dropped_frames,
            busy_drops=metrics.busy_drops,
            drop_rate=round(metrics.drop_rate, 3),
            average_processing_ms=round(metrics.average_processing_time * 1000, 2),
        )
        self._processing = False
        self._buffer.clear()
        self._consecutive_good_frames = 0

    def enable_auto_capture(self, requirements: Optional[CaptureRequirements] = None) -> None:
        self._requirements = requirements or CaptureRequirements()
        self._auto_capture = True
        self._consecutive_good_frames = 0
        logger.debug(
            "Auto-capture enabled",
            min_quality=self._requirements.min_quality_score,
            min_confidence=self._requirements.min_confidence,
            consecutive_frames=self.required_consecutive_frames,
        )

    def disable_auto_capture(self) -> None:
        self._auto_capture = False
        self._consecutive_good_frames = 0

    def capture_current_frame(self) -> Optional[np.ndarray]:
        """Manual capture: the most recently buffered frame, bypassing hysteresis."""
        if not self._buffer:
            return None
        return copy_frame(self._buffer[-1])

    def submit_frame(self, frame: np.ndarray, timestamp: Optional[float] = None) -> Optional[asyncio.Task]:
        """Admit a frame without blocking and schedule its detection.

        Returns:
            The detection task, or None when the frame was dropped
        """
        admitted = self._admit(frame, timestamp)
        if admitted is None or not self._claim_detection():
            return None

        task = asyncio.get_running_loop().create_task(self._run_detection(*admitted))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def submit_frame_threadsafe(
        self,
        loop: asyncio.AbstractEventLoop,
        frame: np.ndarray,
        timestamp: Optional[float] = None,
    ) -> None:
        """Hand a frame from a producer thread to the processing loop."""
        frame = copy_frame(frame)
        timestamp = time.monotonic() if timestamp is None else timestamp
        loop.call_soon_threadsafe(self.submit_frame, frame, timestamp)

    async def process_frame(self, frame: np.ndarray, timestamp: Optional[float] = None) -> Optional[CaptureStatus]:
        """Admit a frame and wait for its detection result.

        Returns:
            The capture status emitted for this frame, or None if the frame was
            dropped, failed detection or auto-capture is disabled
        """
        admitted = self._admit(frame, timestamp)
        if admitted is None or not self._claim_detection():
            return None
        return await self._run_detection(*admitted)

    def _admit(self, frame: np.ndarray, timestamp: Optional[float]) -> Optional[Tuple[np.ndarray, float]]:
        if not self._processing:
            return None

        timestamp = time.monotonic() if timestamp is None else timestamp
        if self._last_admitted is not None and timestamp - self._last_admitted < self.processing_interval:
            self._metrics.dropped_frames += 1
            return None
        self._last_admitted = timestamp

        self._metrics.frames_processed += 1
        frame = copy_frame(frame)
        self._buffer.append(frame)
        return frame, timestamp

    def _claim_detection(self) -> bool:
        if self._detection_pending:
            self._metrics.busy_drops += 1
            return False
        self._detection_pending = True
        return True

    async def _run_detection(self, frame: np.ndarray, timestamp: float) -> Optional[CaptureStatus]:
        session = self._session
        started = time.perf_counter()
        try:
            faces = await self._detector.detect(frame, timestamp)
        except Exception as e:
            if session != self._session:
                return None
            logger.warning("Face detection failed for frame", error=str(e), timestamp=timestamp)
            self._sink(ProcessingFailed(message=str(e), timestamp=timestamp))
            return None
        finally:
            if session == self._session:
                self._detection_pending = False

        # Results of a session that was stopped (and maybe restarted) meanwhile are dropped
        if session != self._session or not self._processing:
            logger.debug("Discarding detection from a finished session", timestamp=timestamp)
            return None
        self._metrics.record_processing_time(time.perf_counter() - started)
        return self._handle_detection(faces, timestamp)

    def _handle_detection(self, faces: list, timestamp: float) -> Optional[CaptureStatus]:
        best_face = self._validator.best_face(faces)
        validation = self._validator.validate(best_face) if best_face is not None else None
        self._sink(FacesDetected(faces=faces, best_validation=validation, timestamp=timestamp))

        if not self._auto_capture:
            return None

        if best_face is None:
            self._consecutive_good_frames = 0
            return self._update_status(CaptureStatus.NO_FACE_DETECTED, 0.0)

        if self._meets_requirements(best_face, validation):
            self._consecutive_good_frames += 1
            progress = min(1.0, self._consecutive_good_frames / self.required_consecutive_frames)
            self._update_status(CaptureStatus.VALIDATING, progress)

            if self._consecutive_good_frames >= self.required_consecutive_frames:
                self._consecutive_good_frames = 0
                self._emit_capture(best_face, validation, timestamp)
            return CaptureStatus.VALIDATING

        self._consecutive_good_frames = max(0, self._consecutive_good_frames - 1)
        requirements = self._requirements
        if validation.quality_score < requirements.min_quality_score:
            status = CaptureStatus.POOR_QUALITY
        elif best_face.confidence < requirements.min_confidence:
            status = CaptureStatus.LOW_CONFIDENCE
        else:
            status = CaptureStatus.NOT_CENTERED
        return self._update_status(status, 0.0)

    def _meets_requirements(self, face: DetectedFace, validation: FaceValidation) -> bool:
        requirements = self._requirements
        issues = validation.issues
        if not requirements.require_centered:
            issues = [issue for issue in issues if issue is not FaceIssue.NOT_CENTERED]
        acceptable = not issues and validation.quality_score >= VALID_QUALITY_SCORE
        return (
            validation.quality_score >= requirements.min_quality_score
            and face.confidence >= requirements.min_confidence
            and acceptable
        )

    def _update_status(self, status: CaptureStatus, progress: float) -> CaptureStatus:
        self._sink(CaptureStatusUpdated(status=status, progress=progress))
        return status

    def _emit_capture(self, face: DetectedFace, validation: FaceValidation, timestamp: float) -> None:
        frame = self.capture_current_frame()
        if frame is None:
            return
        logger.info("Auto-capture triggered", quality=round(validation.quality_score, 3))
        self._sink(FrameCaptured(frame=frame, face=face, validation=validation, timestamp=timestamp))
