"""Events emitted by the frame processor, the enrollment service and the session.

Each event carries a ``kind`` tag so a single subscriber can dispatch on it.
"""
from typing import List, Literal, Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from facialauth.core.exceptions import ErrorCategory, FacialAuthError
from facialauth.domain.entities.face import DetectedFace
from facialauth.domain.entities.profile import UserProfile
from facialauth.domain.value_objects.recognition import (
    AuthMetrics,
    CaptureStatus,
    ComparisonResult,
    FaceValidation,
    TrainingMetrics,
    TrainingMode,
)
from facialauth.domain.value_objects.session import AuthState, OperationKind


class _Event(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)


# Frame processor

class FacesDetected(_Event):
    kind: Literal["faces_detected"] = "faces_detected"
    faces: List[DetectedFace]
    best_validation: Optional[FaceValidation] = None
    timestamp: float


class CaptureStatusUpdated(_Event):
    kind: Literal["capture_status"] = "capture_status"
    status: CaptureStatus
    progress: float = Field(..., ge=0, le=1)


class FrameCaptured(_Event):
    kind: Literal["frame_captured"] = "frame_captured"
    frame: np.ndarray
    face: DetectedFace
    validation: FaceValidation
    timestamp: float


class ProcessingFailed(_Event):
    """A single frame could not be processed. The frame loop keeps running."""
    kind: Literal["processing_failed"] = "processing_failed"
    message: str
    timestamp: float


# Enrollment

class TrainingStarted(_Event):
    kind: Literal["training_started"] = "training_started"
    mode: TrainingMode


class TrainingSampleValidated(_Event):
    kind: Literal["training_sample_validated"] = "training_sample_validated"
    is_valid: bool
    quality: float


class TrainingSampleCaptured(_Event):
    kind: Literal["training_sample_captured"] = "training_sample_captured"
    sample_count: int
    total_needed: int


class TrainingProgress(_Event):
    """Pacing telemetry. Loss and accuracy are illustrative, not a model-quality guarantee."""
    kind: Literal["training_progress"] = "training_progress"
    progress: float = Field(..., ge=0, le=1)
    epoch: int
    loss: float
    accuracy: float


class TrainingCompleted(_Event):
    kind: Literal["training_completed"] = "training_completed"
    metrics: TrainingMetrics


class TrainingFailed(_Event):
    kind: Literal["training_failed"] = "training_failed"
    error: FacialAuthError


# Session

class StateChanged(_Event):
    kind: Literal["state_changed"] = "state_changed"
    state: AuthState
    previous: AuthState


class RegistrationProgress(_Event):
    kind: Literal["registration_progress"] = "registration_progress"
    progress: float = Field(..., ge=0, le=1)


class MetricsUpdated(_Event):
    kind: Literal["metrics_updated"] = "metrics_updated"
    metrics: AuthMetrics


class OperationSucceeded(_Event):
    kind: Literal["operation_succeeded"] = "operation_succeeded"
    operation: OperationKind
    profile: UserProfile
    comparison: Optional[ComparisonResult] = None


class OperationFailed(_Event):
    kind: Literal["operation_failed"] = "operation_failed"
    operation: OperationKind
    error: FacialAuthError

    @property
    def category(self) -> ErrorCategory:
        return self.error.category


class OperationCancelled(_Event):
    kind: Literal["operation_cancelled"] = "operation_cancelled"
    operation: OperationKind


ProcessorEvent = Union[FacesDetected, CaptureStatusUpdated, FrameCaptured, ProcessingFailed]

TrainingEvent = Union[
    TrainingStarted,
    TrainingSampleValidated,
    TrainingSampleCaptured,
    TrainingProgress,
    TrainingCompleted,
    TrainingFailed,
]

AuthEvent = Union[
    ProcessorEvent,
    TrainingEvent,
    StateChanged,
    RegistrationProgress,
    MetricsUpdated,
    OperationSucceeded,
    OperationFailed,
    OperationCancelled,
]
