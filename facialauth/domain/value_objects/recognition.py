"""Face recognition value objects."""
import time
from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from facialauth.domain.entities.profile import utcnow


class FaceIssue(str, Enum):
    """Reasons a detected face is not suitable for capture."""
    TOO_SMALL = "Face too small - move closer"
    TOO_LARGE = "Face too large - move back a little"
    LOW_CONFIDENCE = "Unreliable detection"
    NOT_CENTERED = "Center your face on the screen"


class FaceValidation(BaseModel):
    """Quality assessment of a single detected face."""
    is_valid: bool
    quality_score: float = Field(..., ge=0, le=1)
    issues: List[FaceIssue] = Field(default_factory=list)
    centeredness: float
    face_size: float

    @property
    def feedback(self) -> str:
        if self.is_valid:
            return "Perfect! Hold that position"
        if self.issues:
            return self.issues[0].value
        return "Position your face correctly"


class CaptureRequirements(BaseModel):
    """Thresholds a face must meet for auto-capture. Fixed for a session."""
    model_config = ConfigDict(frozen=True)

    min_quality_score: float = 0.8
    min_confidence: float = 0.7
    require_centered: bool = True


class CaptureStatus(str, Enum):
    NO_FACE_DETECTED = "noFaceDetected"
    POOR_QUALITY = "poorQuality"
    LOW_CONFIDENCE = "lowConfidence"
    NOT_CENTERED = "notCentered"
    VALIDATING = "validating"

    @property
    def message(self) -> str:
        return _CAPTURE_MESSAGES[self]


_CAPTURE_MESSAGES = {
    CaptureStatus.NO_FACE_DETECTED: "Position your face in front of the camera",
    CaptureStatus.POOR_QUALITY: "Improve the lighting",
    CaptureStatus.LOW_CONFIDENCE: "Hold your face steady",
    CaptureStatus.NOT_CENTERED: "Center your face",
    CaptureStatus.VALIDATING: "Validating... hold your position",
}


class ImageQuality(BaseModel):
    """Screening result for an enrollment sample image."""
    score: float = Field(..., ge=0, le=1)
    issues: List[str] = Field(default_factory=list)

    @property
    def is_good(self) -> bool:
        return self.score >= 0.7 and not self.issues


class ComparisonResult(BaseModel):
    """Result of comparing two embeddings."""
    cosine_similarity: float = Field(..., ge=-1, le=1)
    euclidean_distance: float = Field(..., ge=0)
    processing_time: float = Field(..., description="Seconds spent comparing")
    embedding1_norm: float
    embedding2_norm: float


class BestMatchResult(BaseModel):
    """Best candidate found by a linear scan."""
    index: int
    similarity: float
    comparison: ComparisonResult


class AuthMetrics(BaseModel):
    """Per-authentication telemetry."""
    processing_time: float
    similarity_score: float
    face_quality: float
    timestamp: datetime = Field(default_factory=utcnow)


class SessionMetrics(BaseModel):
    """Frame admission counters for one processing session."""
    frames_processed: int = 0
    dropped_frames: int = 0
    busy_drops: int = 0
    average_processing_time: float = 0.0
    started_at: float = Field(default_factory=time.monotonic)

    @property
    def drop_rate(self) -> float:
        total = self.frames_processed + self.dropped_frames
        if total == 0:
            return 0.0
        return (self.dropped_frames + self.busy_drops) / total

    @property
    def current_fps(self) -> float:
        elapsed = time.monotonic() - self.started_at
        if self.frames_processed == 0 or elapsed <= 0:
            return 0.0
        return self.frames_processed / elapsed

    def record_processing_time(self, seconds: float) -> None:
        # Simple moving average
        if self.average_processing_time == 0:
            self.average_processing_time = seconds
        else:
            self.average_processing_time = self.average_processing_time * 0.9 + seconds * 0.1


class TrainingMode(str, Enum):
    """Enrollment pacing. Only affects how progress is reported."""
    FAST = "fast"
    STANDARD = "standard"
    DEEP = "deep"

    @property
    def epochs(self) -> int:
        return {"fast": 3, "standard": 8, "deep": 15}[self.value]

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class TrainingMetrics(BaseModel):
    """Summary of an enrollment run."""
    mode: TrainingMode
    total_time: float
    final_accuracy: float
    final_loss: float
    epochs_completed: int
    samples_used: int
    start_time: datetime
    end_time: datetime

