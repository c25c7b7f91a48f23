"""Tests for the session orchestrator."""
import asyncio
import itertools

import pytest

from conftest import FakeEmbeddingModel, make_frame
from facialauth.core.exceptions import (
    CameraPermissionDeniedError,
    CameraUnavailableError,
    ErrorCategory,
    InsufficientValidDataError,
    InvalidUserIdError,
    MaxAttemptsExceededError,
    ModelLoadError,
    OperationInProgressError,
    ProfileAlreadyExistsError,
    SessionTimeoutError,
    SimilarityThresholdNotMetError,
    UserNotRegisteredError,
)
from facialauth.domain.value_objects.events import (
    FacesDetected,
    MetricsUpdated,
    OperationCancelled,
    OperationFailed,
    OperationSucceeded,
    RegistrationProgress,
    StateChanged,
)
from facialauth.domain.value_objects.recognition import FaceIssue, TrainingMode
from facialauth.domain.value_objects.session import AuthState, OperationKind, Registration
from facialauth.services.auth_manager import FacialAuthManager

OUTCOMES = (OperationSucceeded, OperationFailed, OperationCancelled)


class GatedModel(FakeEmbeddingModel):
    """Embedding model whose inference can be held until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.gated = False

    async def infer(self, image):
        if self.gated:
            await self.gate.wait()
        return await super().infer(image)


# Frame timestamps keep increasing across every camera so no frame is throttled.
_clock = itertools.count(1)


class Camera:
    """Feeds frames to a manager one second apart."""

    def __init__(self, manager: FacialAuthManager, size: int = 512) -> None:
        self.manager = manager
        self.size = size

    async def show(self, count: int) -> None:
        for _ in range(count):
            await self.manager.process_frame(make_frame(size=self.size), timestamp=float(next(_clock)))


async def collect_until(manager, *event_types, timeout=2.0):
    """Consume events until one of ``event_types`` arrives; return all of them."""
    seen = []

    async def scan():
        while True:
            event = await manager.events.get()
            seen.append(event)
            if isinstance(event, event_types):
                return

    await asyncio.wait_for(scan(), timeout)
    return seen


async def wait_for_state(manager, state, timeout=2.0):
    events = await collect_until(manager, StateChanged, timeout=timeout)
    while events[-1].state is not state:
        events = await collect_until(manager, StateChanged, timeout=timeout)


@pytest.fixture
async def make_manager(detector, storage, test_settings):
    """Build managers sharing the test fakes; closed after the test."""
    managers = []

    def build(model=None, config=None, **kwargs):
        manager = FacialAuthManager(
            detector,
            model or FakeEmbeddingModel(),
            storage,
            config=config or test_settings,
            **kwargs,
        )
        managers.append(manager)
        return manager

    yield build

    for manager in managers:
        await manager.close()


@pytest.fixture
async def manager(make_manager):
    manager = make_manager()
    await manager.initialize()
    manager.events.drain()
    return manager


async def enroll(manager, user_id="alice", display_name="Alice", **kwargs):
    """Run a full registration and return the terminal event."""
    await manager.register_user(user_id, display_name, **kwargs)
    frames = manager.config.MAX_TRAINING_SAMPLES * manager.config.REQUIRED_CONSECUTIVE_FRAMES
    await Camera(manager).show(frames)
    events = await collect_until(manager, *OUTCOMES)
    return events


class TestInitialization:
    """Test suite for manager start-up."""

    async def test_initialize_reaches_camera_ready(self, make_manager):
        model = FakeEmbeddingModel(loaded=False)
        manager = make_manager(model=model)

        await manager.initialize()

        states = [event.state for event in manager.events.drain() if isinstance(event, StateChanged)]
        assert states == [AuthState.INITIALIZING, AuthState.CAMERA_READY]
        assert model.load_calls == 1
        assert manager.processor.is_processing

    async def test_permission_denied_can_be_retried(self, make_manager):
        """Should fail initialization when the permission check refuses, and allow a retry."""
        answers = [False, True]

        async def permission_check():
            return answers.pop(0)

        manager = make_manager(permission_check=permission_check)

        with pytest.raises(CameraPermissionDeniedError):
            await manager.initialize()
        assert manager.state is AuthState.FAILED

        await manager.initialize()
        assert manager.state is AuthState.CAMERA_READY

    async def test_unexpected_load_error_fails_initialization(self, make_manager):
        """Should move to failed with a typed error when the model raises something untyped."""
        class BrokenModel(FakeEmbeddingModel):
            async def load(self):
                raise RuntimeError("weights missing")

        manager = make_manager(model=BrokenModel(loaded=False))

        with pytest.raises(ModelLoadError) as exc_info:
            await manager.initialize()

        assert exc_info.value.category is ErrorCategory.CONFIGURATION
        assert manager.state is AuthState.FAILED
        states = [event.state for event in manager.events.drain() if isinstance(event, StateChanged)]
        assert states == [AuthState.INITIALIZING, AuthState.FAILED]

    async def test_operations_require_initialization(self, make_manager):
        manager = make_manager()

        with pytest.raises(CameraUnavailableError):
            await manager.register_user("alice", "Alice")
        assert manager.current_operation is None


class TestRegistration:
    """Test suite for enrollment through the session."""

    async def test_successful_registration(self, manager):
        events = await enroll(manager)

        outcome = events[-1]
        assert isinstance(outcome, OperationSucceeded)
        assert outcome.operation is OperationKind.REGISTRATION
        assert outcome.profile.user_id == "alice"
        assert outcome.profile.samples_count == 1

        states = [event.state for event in events if isinstance(event, StateChanged)]
        assert states == [AuthState.REGISTERING, AuthState.PROCESSING, AuthState.SUCCESS]

        progress = [event.progress for event in events if isinstance(event, RegistrationProgress)]
        assert progress == sorted(progress)
        assert progress[0] == 0.0
        assert progress[-1] == pytest.approx(1.0)

        assert manager.current_operation is None
        assert await manager.is_user_registered("alice")
        assert await manager.list_users() == ["alice"]
        assert await manager.verify_integrity("alice")

    async def test_returns_to_camera_ready(self, manager):
        await enroll(manager)

        await wait_for_state(manager, AuthState.CAMERA_READY)

        assert manager.state is AuthState.CAMERA_READY

    async def test_existing_profile_requires_re_enroll(self, manager):
        await enroll(manager)

        with pytest.raises(ProfileAlreadyExistsError):
            await manager.register_user("alice", "Alice")
        assert manager.current_operation is None

        events = await enroll(manager, re_enroll=True)
        assert events[-1].profile.samples_count == 2

    async def test_concurrent_registration_is_rejected(self, manager):
        """Should reject a second registration without disturbing the first."""
        results = await asyncio.gather(
            manager.register_user("alice", "Alice"),
            manager.register_user("bob", "Bob"),
            return_exceptions=True,
        )

        assert results[0] is None
        assert isinstance(results[1], OperationInProgressError)
        assert manager.current_operation == Registration(
            user_id="alice", display_name="Alice", mode=TrainingMode.FAST
        )
        assert manager.state is AuthState.REGISTERING

        with pytest.raises(OperationInProgressError):
            await manager.authenticate_user("alice")

        events = await enroll_remaining(manager)
        assert isinstance(events[-1], OperationSucceeded)
        assert events[-1].profile.user_id == "alice"

    async def test_insufficient_samples_writes_nothing(self, manager):
        """Should fail with insufficient data and leave storage untouched."""
        await manager.register_user("alice", "Alice")
        await Camera(manager, size=128).show(6)

        events = await collect_until(manager, *OUTCOMES)

        failure = events[-1]
        assert isinstance(failure, OperationFailed)
        assert isinstance(failure.error, InsufficientValidDataError)
        assert failure.category is ErrorCategory.INPUT
        assert await manager.list_users() == []

    async def test_cancel_discards_operation(self, manager):
        await manager.register_user("alice", "Alice")
        await Camera(manager).show(2)

        manager.cancel()

        assert manager.current_operation is None
        assert manager.state is AuthState.CANCELLED
        events = await collect_until(manager, OperationCancelled)
        assert events[-1].operation is OperationKind.REGISTRATION

        await wait_for_state(manager, AuthState.CAMERA_READY)
        assert manager.processor.is_processing
        assert await manager.list_users() == []

    async def test_session_timeout(self, make_manager, test_settings):
        manager = make_manager(config=test_settings.model_copy(update={"SESSION_TIMEOUT": 0.05}))
        await manager.initialize()

        await manager.register_user("alice", "Alice")
        events = await collect_until(manager, *OUTCOMES)

        assert isinstance(events[-1], OperationFailed)
        assert isinstance(events[-1].error, SessionTimeoutError)
        assert manager.current_operation is None


async def enroll_remaining(manager):
    frames = manager.config.MAX_TRAINING_SAMPLES * manager.config.REQUIRED_CONSECUTIVE_FRAMES
    await Camera(manager).show(frames)
    return await collect_until(manager, *OUTCOMES)


class TestAuthentication:
    """Test suite for verification through the session."""

    async def authenticate(self, manager, user_id="alice"):
        await manager.authenticate_user(user_id)
        await Camera(manager).show(manager.config.REQUIRED_CONSECUTIVE_FRAMES)
        return await collect_until(manager, *OUTCOMES)

    async def test_matching_face_succeeds(self, manager):
        await enroll(manager)

        events = await self.authenticate(manager)

        outcome = events[-1]
        assert isinstance(outcome, OperationSucceeded)
        assert outcome.operation is OperationKind.AUTHENTICATION
        assert outcome.profile.user_id == "alice"
        assert outcome.comparison.cosine_similarity == pytest.approx(1.0, abs=1e-5)
        assert manager.failed_attempts("alice") == 0

    async def test_unknown_user_never_reaches_comparator(self, manager, monkeypatch):
        """Should reject an unregistered user before any comparison."""
        calls = []
        monkeypatch.setattr(manager.comparator, "compare", lambda *args: calls.append(args))

        with pytest.raises(UserNotRegisteredError):
            await manager.authenticate_user("ghost")

        assert calls == []
        assert manager.current_operation is None
        assert manager.state is AuthState.CAMERA_READY

    async def test_different_face_fails_and_counts_attempts(self, manager):
        await enroll(manager)
        manager.model.embedding = manager.model.embedding[::-1].copy()

        for attempt in range(1, manager.config.MAX_ATTEMPTS + 1):
            events = await self.authenticate(manager)
            failure = events[-1]
            assert isinstance(failure, OperationFailed)
            assert isinstance(failure.error, SimilarityThresholdNotMetError)
            assert failure.category is ErrorCategory.COMPARISON
            assert manager.failed_attempts("alice") == attempt

        with pytest.raises(MaxAttemptsExceededError):
            await manager.authenticate_user("alice")

        manager.reset_attempts("alice")
        manager.model.embedding = manager.model.embedding[::-1].copy()
        events = await self.authenticate(manager)
        assert isinstance(events[-1], OperationSucceeded)

    async def test_stale_result_is_discarded(self, make_manager):
        """Should ignore an extraction that finishes after its operation was cancelled."""
        model = GatedModel()
        manager = make_manager(model=model)
        await manager.initialize()
        await enroll(manager)

        model.gated = True
        await manager.authenticate_user("alice")
        await Camera(manager).show(manager.config.REQUIRED_CONSECUTIVE_FRAMES)
        await asyncio.sleep(0)
        assert manager.state is AuthState.PROCESSING

        manager.cancel()
        model.gate.set()
        await wait_for_state(manager, AuthState.CAMERA_READY)

        leftovers = manager.events.drain()
        assert not any(isinstance(event, (OperationSucceeded, OperationFailed)) for event in leftovers)
        assert manager.failed_attempts("alice") == 0

    async def test_metrics_are_published_when_enabled(self, make_manager, test_settings):
        manager = make_manager(config=test_settings.model_copy(update={"LOG_METRICS": True}))
        await manager.initialize()
        await enroll(manager)

        events = await self.authenticate(manager)

        metrics = [event.metrics for event in events if isinstance(event, MetricsUpdated)]
        assert len(metrics) == 1
        assert metrics[0].similarity_score == pytest.approx(1.0, abs=1e-5)
        assert metrics[0].face_quality == pytest.approx(1.0)

    async def test_manual_capture(self, manager):
        await enroll(manager)
        await manager.authenticate_user("alice")
        await Camera(manager).show(1)

        assert manager.capture_frame()

        events = await collect_until(manager, *OUTCOMES)
        assert isinstance(events[-1], OperationSucceeded)


class TestProfileManagement:
    """Test suite for profile passthroughs."""

    async def test_profile_lifecycle(self, manager):
        await enroll(manager)

        profile = await manager.get_profile("alice")
        assert profile.display_name == "Alice"

        await manager.delete_user("alice")

        assert await manager.get_profile("alice") is None
        assert not await manager.is_user_registered("alice")
        with pytest.raises(UserNotRegisteredError):
            await manager.delete_user("alice")

    async def test_deleted_user_cannot_authenticate(self, manager):
        await enroll(manager)
        await manager.delete_user("alice")

        with pytest.raises(UserNotRegisteredError):
            await manager.authenticate_user("alice")

    async def test_session_metrics_snapshot(self, manager):
        await Camera(manager).show(3)

        metrics = manager.session_metrics
        assert metrics.frames_processed == 3
        assert metrics.dropped_frames == 0
        assert metrics.drop_rate == 0.0

    async def test_blank_user_id_is_rejected(self, manager):
        """Should raise a typed input error for an empty or blank user id."""
        for user_id in ("", "   "):
            with pytest.raises(InvalidUserIdError) as exc_info:
                await manager.register_user(user_id, "Nobody")
            assert exc_info.value.category is ErrorCategory.INPUT

            with pytest.raises(InvalidUserIdError):
                await manager.authenticate_user(user_id)

        assert manager.current_operation is None
        assert manager.state is AuthState.CAMERA_READY


class TestConfiguration:
    """Test suite for runtime configuration changes."""

    async def test_update_pushes_thresholds_to_subsystems(self, manager, test_settings):
        config = test_settings.model_copy(update={
            "SIMILARITY_THRESHOLD": 0.95,
            "REQUIRED_CONSECUTIVE_FRAMES": 4,
            "CAPTURE_MIN_QUALITY": 0.9,
            "MIN_FACE_SIZE": 0.4,
        })

        manager.update_configuration(config)

        assert manager.config is config
        assert manager.comparator.similarity_threshold == 0.95
        assert manager.enrollment.similarity_threshold == 0.95
        assert manager.processor.required_consecutive_frames == 4
        assert manager.capture_requirements.min_quality_score == 0.9

        await Camera(manager).show(1)
        detections = [event for event in manager.events.drain() if isinstance(event, FacesDetected)]
        assert FaceIssue.TOO_SMALL in detections[-1].best_validation.issues

    async def test_new_threshold_applies_to_authentication(self, manager, test_settings):
        await enroll(manager)
        await wait_for_state(manager, AuthState.CAMERA_READY)
        manager.model.embedding = manager.model.embedding * [1, 1, 1, 1, 1, 1, 1, 0.5]
        manager.update_configuration(test_settings.model_copy(update={"SIMILARITY_THRESHOLD": 0.9999}))

        await manager.authenticate_user("alice")
        await Camera(manager).show(manager.config.REQUIRED_CONSECUTIVE_FRAMES)
        events = await collect_until(manager, *OUTCOMES)

        assert isinstance(events[-1].error, SimilarityThresholdNotMetError)

    async def test_update_rejected_during_operation(self, manager, test_settings):
        await manager.register_user("alice", "Alice")

        with pytest.raises(OperationInProgressError):
            manager.update_configuration(test_settings.model_copy(update={"SIMILARITY_THRESHOLD": 0.5}))

        assert manager.comparator.similarity_threshold == test_settings.SIMILARITY_THRESHOLD
