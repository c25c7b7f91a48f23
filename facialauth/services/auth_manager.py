"""Session orchestration for enrollment and verification.

The manager owns every subsystem outright. Subsystems report back through
plain event callbacks and everything the caller observes is published on one
:class:`EventChannel`.

All methods must be called from the event loop that owns the manager; that
loop is the only place session state is mutated.
"""
import asyncio
import time
from typing import Awaitable, Callable, Dict, List, Optional, Set

import numpy as np

from facialauth.core.config import Settings, settings as default_settings
from facialauth.core.exceptions import (
    CameraPermissionDeniedError,
    CameraUnavailableError,
    FacialAuthError,
    InvalidUserIdError,
    MaxAttemptsExceededError,
    ModelLoadError,
    OperationInProgressError,
    ProcessingFailedError,
    ProfileAlreadyExistsError,
    SessionTimeoutError,
    SimilarityThresholdNotMetError,
    UserNotRegisteredError,
)
from facialauth.core.logging import get_logger
from facialauth.domain.entities.profile import UserProfile
from facialauth.domain.interfaces.recognition import EmbeddingModel, FaceDetector
from facialauth.domain.interfaces.storage import SecureStorage
from facialauth.domain.value_objects.events import (
    AuthEvent,
    FrameCaptured,
    MetricsUpdated,
    OperationCancelled,
    OperationFailed,
    OperationSucceeded,
    ProcessorEvent,
    RegistrationProgress,
    StateChanged,
    TrainingEvent,
    TrainingProgress,
)
from facialauth.domain.value_objects.recognition import (
    AuthMetrics,
    CaptureRequirements,
    CaptureStatus,
    ComparisonResult,
    SessionMetrics,
    TrainingMode,
)
from facialauth.domain.value_objects.session import (
    Authentication,
    AuthState,
    Operation,
    Registration,
)
from facialauth.services.comparator import EmbeddingComparator
from facialauth.services.embedding_extractor import FaceEmbeddingExtractor
from facialauth.services.enrollment import EnrollmentService
from facialauth.services.face_detection import ThrottledFaceDetector
from facialauth.services.quality import FaceQualityValidator
from facialauth.services.realtime_processor import RealTimeProcessor
from facialauth.services.secure_embeddings import SecureEmbeddingStore

logger = get_logger(__name__)

PermissionCheck = Callable[[], Awaitable[bool]]

TERMINAL_STATES = (AuthState.SUCCESS, AuthState.FAILED, AuthState.CANCELLED)
READY_STATES = (AuthState.CAMERA_READY,) + TERMINAL_STATES

# Registration progress is split between frame capture and training.
CAPTURE_PROGRESS_SHARE = 0.5


class EventChannel:
    """Single-subscriber queue of :data:`AuthEvent` values.

    Example:
        ```python
        async for event in manager.events:
            if event.kind == "operation_succeeded":
                break
        ```
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[AuthEvent]" = asyncio.Queue()

    def publish(self, event: AuthEvent) -> None:
        self._queue.put_nowait(event)

    async def get(self) -> AuthEvent:
        return await self._queue.get()

    def drain(self) -> List[AuthEvent]:
        """Return every queued event without waiting."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def empty(self) -> bool:
        return self._queue.empty()

    def __aiter__(self) -> "EventChannel":
        return self

    async def __anext__(self) -> AuthEvent:
        return await self._queue.get()


class FacialAuthManager:
    """Coordinates capture, enrollment, verification and storage for one session.

    State machine::

        idle -> initializing -> cameraReady -> registering | authenticating
             -> processing -> success | failed -> cameraReady
        cancelled -> cameraReady

    Only one operation may be active at a time. Precondition violations of
    the caller-facing methods are raised; failures during an active operation
    are published as :class:`OperationFailed`.

    Example:
        ```python
        manager = FacialAuthManager(detector, model, storage)
        await manager.initialize()
        await manager.register_user("alice", "Alice")
        camera.on_frame(manager.submit_frame)
        ```
    """

    def __init__(
        self,
        detector: FaceDetector,
        model: EmbeddingModel,
        storage: SecureStorage,
        config: Optional[Settings] = None,
        permission_check: Optional[PermissionCheck] = None,
    ) -> None:
        self.config = config or default_settings
        self.model = model
        self.storage = storage
        self.permission_check = permission_check
        self.events = EventChannel()

        self.validator = FaceQualityValidator.from_settings(self.config)
        self.processor = RealTimeProcessor.from_settings(
            ThrottledFaceDetector(detector, min_interval=self.config.DETECTION_INTERVAL),
            self.validator,
            sink=self._on_processor_event,
            config=self.config,
        )
        self.extractor = FaceEmbeddingExtractor(model, min_resolution=self.config.MIN_IMAGE_RESOLUTION)
        self.enrollment = EnrollmentService.from_settings(
            self.extractor, sink=self._on_training_event, config=self.config
        )
        self.comparator = EmbeddingComparator(self.config.SIMILARITY_THRESHOLD)
        self.store = SecureEmbeddingStore(storage, schema_version=self.config.SCHEMA_VERSION)

        self._state = AuthState.IDLE
        self._initialized = False
        self._operation: Optional[Operation] = None
        self._captured_frames: List[np.ndarray] = []
        self._failed_attempts: Dict[str, int] = {}

        self._timeout_task: Optional[asyncio.Task] = None
        self._revert_task: Optional[asyncio.Task] = None
        self._work_tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def current_operation(self) -> Optional[Operation]:
        return self._operation

    @property
    def session_metrics(self) -> SessionMetrics:
        return self.processor.metrics

    @property
    def capture_requirements(self) -> CaptureRequirements:
        return CaptureRequirements(
            min_quality_score=self.config.CAPTURE_MIN_QUALITY,
            min_confidence=self.config.CAPTURE_MIN_CONFIDENCE,
            require_centered=self.config.CAPTURE_REQUIRE_CENTERED,
        )

    # Lifecycle

    async def initialize(self) -> None:
        """
        Check camera permission, load the model, prepare storage and start frame processing.

        Raises:
            CameraPermissionDeniedError: If the permission check refuses access
            ModelLoadError: If the embedding model cannot be loaded
            StorageBackendError: If the storage cannot be prepared
        """
        if self._initialized:
            return

        self._set_state(AuthState.INITIALIZING)
        try:
            if self.permission_check is not None and not await self.permission_check():
                raise CameraPermissionDeniedError("Camera access was denied")
            if not self.model.is_loaded:
                await self.model.load()
            await self.storage.initialize()
        except FacialAuthError as e:
            logger.error("Initialization failed", error=str(e), code=e.code)
            self._set_state(AuthState.FAILED)
            raise
        except Exception as e:
            logger.error("Initialization failed", error=str(e), exc_info=True)
            self._set_state(AuthState.FAILED)
            raise ModelLoadError(f"Initialization failed: {e}", details={"cause": type(e).__name__}) from e

        self._initialized = True
        self.processor.start()
        self._set_state(AuthState.CAMERA_READY)
        logger.info("Facial authentication ready", namespace=self.storage.namespace)

    async def close(self) -> None:
        """Stop frame processing, cancel pending timers and release storage."""
        self.processor.stop()
        tasks = [self._timeout_task, self._revert_task, *self._work_tasks]
        for task in tasks:
            if task is not None and not task.done():
                task.cancel()
        await asyncio.gather(*(task for task in tasks if task is not None), return_exceptions=True)

        self._operation = None
        self._captured_frames.clear()
        await self.storage.close()
        self._initialized = False
        self._set_state(AuthState.IDLE)
        logger.info("Facial authentication closed")

    # Configuration

    def update_configuration(self, config: Settings) -> None:
        """
        Replace the settings and push the new thresholds to every subsystem.

        Timeouts, reset delays and attempt limits are read from the new
        settings from the next operation on.

        Raises:
            OperationInProgressError: If an operation is active
        """
        if self._operation is not None:
            raise OperationInProgressError(
                "Configuration cannot change during an operation",
                details={"operation": self._operation.kind.value}
            )

        self.config = config
        self.validator = FaceQualityValidator.from_settings(config)
        self.processor.configure(config, validator=self.validator)
        self.extractor.min_resolution = config.MIN_IMAGE_RESOLUTION
        self.enrollment.similarity_threshold = config.SIMILARITY_THRESHOLD
        self.enrollment.min_valid_samples = config.MIN_VALID_SAMPLES
        self.enrollment.epoch_delay = config.TRAINING_EPOCH_DELAY
        self.comparator.similarity_threshold = config.SIMILARITY_THRESHOLD
        self.store.schema_version = config.SCHEMA_VERSION
        logger.info(
            "Configuration updated",
            similarity_threshold=config.SIMILARITY_THRESHOLD,
            required_frames=config.REQUIRED_CONSECUTIVE_FRAMES,
        )

    # Operations

    async def register_user(
        self,
        user_id: str,
        display_name: str,
        re_enroll: bool = False,
        mode: Optional[TrainingMode] = None,
    ) -> None:
        """
        Start enrolling ``user_id`` from auto-captured frames.

        Raises:
            CameraUnavailableError: If the manager is not initialized
            OperationInProgressError: If another operation is active
            InvalidUserIdError: If ``user_id`` is blank
            ProfileAlreadyExistsError: If the user exists and ``re_enroll`` is False
        """
        self._check_user_id(user_id)
        operation = Registration(
            user_id=user_id,
            display_name=display_name,
            re_enroll=re_enroll,
            mode=mode or TrainingMode(self.config.TRAINING_MODE),
        )
        self._claim(operation)

        try:
            if not re_enroll and await self.store.exists(user_id):
                raise ProfileAlreadyExistsError(
                    f"User already registered: {user_id}",
                    details={"user_id": user_id}
                )
        except Exception:
            self._release(operation)
            raise

        if self._operation is operation:
            self._begin(operation, AuthState.REGISTERING)
            self.events.publish(RegistrationProgress(progress=0.0))

    async def authenticate_user(self, user_id: str) -> None:
        """
        Start verifying a fresh capture against the stored profile of ``user_id``.

        Raises:
            CameraUnavailableError: If the manager is not initialized
            OperationInProgressError: If another operation is active
            MaxAttemptsExceededError: If the user has used up their failed attempts
            InvalidUserIdError: If ``user_id`` is blank
            UserNotRegisteredError: If no profile exists for ``user_id``
        """
        self._check_user_id(user_id)
        operation = Authentication(user_id=user_id)
        self._claim(operation)

        try:
            if self.failed_attempts(user_id) >= self.config.MAX_ATTEMPTS:
                raise MaxAttemptsExceededError(
                    "Too many failed authentication attempts",
                    details={"user_id": user_id, "max_attempts": self.config.MAX_ATTEMPTS}
                )
            if not await self.store.exists(user_id):
                raise UserNotRegisteredError(
                    f"User not registered: {user_id}",
                    details={"user_id": user_id}
                )
        except Exception:
            self._release(operation)
            raise

        if self._operation is operation:
            self._begin(operation, AuthState.AUTHENTICATING)

    def cancel(self) -> None:
        """Discard the active operation and its buffered frames.

        An extraction already in flight is not aborted; its result is ignored.
        """
        operation = self._operation
        if operation is None:
            return

        logger.info("Operation cancelled", operation=operation.kind.value, user_id=operation.user_id)
        self._operation = None
        self._cancel_timeout()
        self._captured_frames.clear()
        self.processor.disable_auto_capture()
        self.processor.stop()

        self._set_state(AuthState.CANCELLED)
        self.events.publish(OperationCancelled(operation=operation.kind))
        self._schedule_revert(self.config.CANCEL_RESET_DELAY)

    # Frames

    def submit_frame(self, frame: np.ndarray, timestamp: Optional[float] = None) -> Optional[asyncio.Task]:
        """Hand a camera frame to the processor without blocking."""
        return self.processor.submit_frame(frame, timestamp)

    async def process_frame(self, frame: np.ndarray, timestamp: Optional[float] = None) -> Optional[CaptureStatus]:
        """Hand a camera frame to the processor and wait for its detection."""
        return await self.processor.process_frame(frame, timestamp)

    def capture_frame(self) -> bool:
        """Manually capture the most recent frame for the active operation.

        Returns:
            True if a frame was available and accepted
        """
        frame = self.processor.capture_current_frame()
        if frame is None or self._operation is None:
            return False
        return self._accept_capture(frame, quality=None)

    # Profiles

    async def is_user_registered(self, user_id: str) -> bool:
        return await self.store.exists(user_id)

    async def list_users(self) -> List[str]:
        return await self.store.list_users()

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return await self.store.get_profile(user_id)

    async def verify_integrity(self, user_id: str) -> bool:
        return await self.store.verify_integrity(user_id)

    async def delete_user(self, user_id: str) -> None:
        """
        Delete the stored profile of ``user_id``.

        Raises:
            UserNotRegisteredError: If no profile exists
        """
        await self.store.delete(user_id)
        self._failed_attempts.pop(user_id, None)

    def failed_attempts(self, user_id: str) -> int:
        return self._failed_attempts.get(user_id, 0)

    def reset_attempts(self, user_id: str) -> None:
        self._failed_attempts.pop(user_id, None)

    # Internals

    @staticmethod
    def _check_user_id(user_id: str) -> None:
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidUserIdError("User id must be a non-empty string", details={"user_id": user_id})

    def _claim(self, operation: Operation) -> None:
        if self._operation is not None:
            raise OperationInProgressError(
                "Another operation is already in progress",
                details={"operation": self._operation.kind.value}
            )
        if not self._initialized or self._state not in READY_STATES:
            raise CameraUnavailableError(
                "Camera is not ready",
                details={"state": self._state.value}
            )
        self._operation = operation

    def _release(self, operation: Operation) -> None:
        if self._operation is operation:
            self._operation = None

    def _begin(self, operation: Operation, state: AuthState) -> None:
        if self._revert_task is not None:
            self._revert_task.cancel()
            self._revert_task = None

        self._captured_frames.clear()
        if not self.processor.is_processing:
            self.processor.start()
        self.processor.enable_auto_capture(self.capture_requirements)

        self._timeout_task = asyncio.get_running_loop().create_task(self._expire(operation))
        self._set_state(state)
        logger.info("Operation started", operation=operation.kind.value, user_id=operation.user_id)

    def _set_state(self, state: AuthState) -> None:
        previous = self._state
        if state is previous:
            return
        self._state = state
        logger.debug("State changed", state=state.value, previous=previous.value)
        self.events.publish(StateChanged(state=state, previous=previous))

    def _on_processor_event(self, event: ProcessorEvent) -> None:
        self.events.publish(event)
        if isinstance(event, FrameCaptured):
            self._accept_capture(event.frame, quality=event.validation.quality_score)

    def _on_training_event(self, event: TrainingEvent) -> None:
        self.events.publish(event)
        if isinstance(event, TrainingProgress):
            progress = CAPTURE_PROGRESS_SHARE + (1 - CAPTURE_PROGRESS_SHARE) * event.progress
            self.events.publish(RegistrationProgress(progress=progress))

    def _accept_capture(self, frame: np.ndarray, quality: Optional[float]) -> bool:
        operation = self._operation
        if operation is None or self._state not in (AuthState.REGISTERING, AuthState.AUTHENTICATING):
            return False

        if isinstance(operation, Registration):
            self._captured_frames.append(frame)
            captured = len(self._captured_frames)
            total = self.config.MAX_TRAINING_SAMPLES
            self.events.publish(RegistrationProgress(progress=CAPTURE_PROGRESS_SHARE * min(1.0, captured / total)))
            logger.debug("Registration sample captured", user_id=operation.user_id, captured=captured, total=total)
            if captured < total:
                return True

            frames = list(self._captured_frames)
            self._captured_frames.clear()
            self.processor.disable_auto_capture()
            self._set_state(AuthState.PROCESSING)
            self._spawn(self._complete_registration(operation, frames))
        else:
            self.processor.disable_auto_capture()
            self._set_state(AuthState.PROCESSING)
            self._spawn(self._complete_authentication(operation, frame, quality))
        return True

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._work_tasks.add(task)
        task.add_done_callback(self._work_tasks.discard)

    async def _complete_registration(self, operation: Registration, frames: List[np.ndarray]) -> None:
        try:
            result = await self.enrollment.train(operation.user_id, frames, operation.mode)
            if self._operation is not operation:
                logger.debug("Discarding stale enrollment result", user_id=operation.user_id)
                return
            profile = await self.store.save(operation.user_id, operation.display_name, result.embedding)
        except FacialAuthError as e:
            self._fail(operation, e)
            return
        except Exception as e:
            logger.error("Unexpected enrollment failure", user_id=operation.user_id, exc_info=True)
            self._fail(operation, ProcessingFailedError(f"Enrollment failed: {e}"))
            return

        self._succeed(operation, profile)

    async def _complete_authentication(
        self,
        operation: Authentication,
        frame: np.ndarray,
        quality: Optional[float],
    ) -> None:
        started = time.perf_counter()
        try:
            embedding = await self.extractor.extract(frame)
            if self._operation is not operation:
                logger.debug("Discarding stale authentication result", user_id=operation.user_id)
                return
            stored = await self.store.load(operation.user_id)
            comparison = self.comparator.compare(embedding, stored)
            profile = await self.store.get_profile(operation.user_id)
            if profile is None:
                raise UserNotRegisteredError(
                    f"User not registered: {operation.user_id}",
                    details={"user_id": operation.user_id}
                )
        except FacialAuthError as e:
            self._fail(operation, e)
            return
        except Exception as e:
            logger.error("Unexpected authentication failure", user_id=operation.user_id, exc_info=True)
            self._fail(operation, ProcessingFailedError(f"Authentication failed: {e}"))
            return

        if self.config.LOG_METRICS:
            self.events.publish(MetricsUpdated(metrics=AuthMetrics(
                processing_time=time.perf_counter() - started,
                similarity_score=comparison.cosine_similarity,
                face_quality=quality if quality is not None else 0.0,
            )))

        self._decide(operation, profile, comparison)

    def _decide(self, operation: Authentication, profile: UserProfile, comparison: ComparisonResult) -> None:
        if self.comparator.is_match(comparison):
            self._failed_attempts.pop(operation.user_id, None)
            self._succeed(operation, profile, comparison)
            return

        attempts = self._failed_attempts.get(operation.user_id, 0) + 1
        self._failed_attempts[operation.user_id] = attempts
        self._fail(operation, SimilarityThresholdNotMetError(
            "Face does not match the registered profile",
            details={
                "similarity": round(comparison.cosine_similarity, 4),
                "threshold": self.comparator.similarity_threshold,
                "attempts": attempts,
            }
        ))

    def _succeed(
        self,
        operation: Operation,
        profile: UserProfile,
        comparison: Optional[ComparisonResult] = None,
    ) -> None:
        if not self._finish(operation, AuthState.SUCCESS):
            return
        logger.info("Operation succeeded", operation=operation.kind.value, user_id=operation.user_id)
        self.events.publish(OperationSucceeded(operation=operation.kind, profile=profile, comparison=comparison))

    def _fail(self, operation: Operation, error: FacialAuthError) -> None:
        if not self._finish(operation, AuthState.FAILED):
            return
        logger.error(
            "Operation failed",
            operation=operation.kind.value,
            user_id=operation.user_id,
            code=error.code,
            error=str(error),
        )
        self.events.publish(OperationFailed(operation=operation.kind, error=error))

    def _finish(self, operation: Operation, state: AuthState) -> bool:
        if self._operation is not operation:
            return False

        self._operation = None
        self._cancel_timeout()
        self._captured_frames.clear()
        self.processor.disable_auto_capture()
        self._set_state(state)
        self._schedule_revert(self.config.RESULT_RESET_DELAY)
        return True

    async def _expire(self, operation: Operation) -> None:
        await asyncio.sleep(self.config.SESSION_TIMEOUT)
        if self._operation is operation:
            self._fail(operation, SessionTimeoutError(
                "Operation timed out",
                details={"timeout": self.config.SESSION_TIMEOUT}
            ))

    def _cancel_timeout(self) -> None:
        task = self._timeout_task
        self._timeout_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _schedule_revert(self, delay: float) -> None:
        if self._revert_task is not None:
            self._revert_task.cancel()
        self._revert_task = asyncio.get_running_loop().create_task(self._revert_after(delay))

    async def _revert_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._operation is not None or self._state not in TERMINAL_STATES:
            return
        if not self.processor.is_processing:
            self.processor.start()
        self._set_state(AuthState.CAMERA_READY)
