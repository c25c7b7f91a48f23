"""Value objects package."""
from .recognition import (
    AuthMetrics,
    BestMatchResult,
    CaptureRequirements,
    CaptureStatus,
    ComparisonResult,
    FaceIssue,
    FaceValidation,
    ImageQuality,
    SessionMetrics,
    TrainingMetrics,
    TrainingMode,
)
from .session import Authentication, AuthState, Operation, OperationKind, Registration

__all__ = [
    "AuthMetrics",
    "AuthState",
    "Authentication",
    "BestMatchResult",
    "CaptureRequirements",
    "CaptureStatus",
    "ComparisonResult",
    "FaceIssue",
    "FaceValidation",
    "ImageQuality",
    "Operation",
    "OperationKind",
    "Registration",
    "SessionMetrics",
    "TrainingMetrics",
    "TrainingMode",
]
