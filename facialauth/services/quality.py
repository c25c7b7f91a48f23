"""Quality scoring for detected faces."""
from typing import Optional, Sequence

from facialauth.core.config import Settings, settings as default_settings
from facialauth.domain.entities.face import DetectedFace, FaceLandmarks
from facialauth.domain.value_objects.recognition import FaceIssue, FaceValidation

MIN_EYE_POINTS = 6
VALID_QUALITY_SCORE = 0.8


class FaceQualityValidator:
    """Grades a detected face against size, confidence, centering and landmark rules.

    Scoring starts at 1.0 and is multiplied down for every problem found:

    ==========================  ======  ===================
    condition                   factor  issue recorded
    ==========================  ======  ===================
    area < min_face_size        0.5     ``TOO_SMALL``
    area > max_face_size        0.7     ``TOO_LARGE``
    confidence < min_confidence 0.6     ``LOW_CONFIDENCE``
    center distance > limit     0.8     ``NOT_CENTERED``
    landmark problems           <= 1    none
    ==========================  ======  ===================

    A face is valid only when no issue was recorded and the score is at least 0.8.
    Validation never fails: missing landmarks only lower the score.
    """

    def __init__(
        self,
        min_face_size: float = 0.15,
        max_face_size: float = 0.8,
        min_confidence: float = 0.7,
        max_center_distance: float = 0.3,
    ) -> None:
        self.min_face_size = min_face_size
        self.max_face_size = max_face_size
        self.min_confidence = min_confidence
        self.max_center_distance = max_center_distance

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "FaceQualityValidator":
        config = config or default_settings
        return cls(
            min_face_size=config.MIN_FACE_SIZE,
            max_face_size=config.MAX_FACE_SIZE,
            min_confidence=config.MIN_DETECTION_CONFIDENCE,
            max_center_distance=config.MAX_CENTER_DISTANCE,
        )

    def validate(self, face: DetectedFace) -> FaceValidation:
        issues = []
        quality_score = 1.0

        face_area = face.bounding_box.area
        if face_area < self.min_face_size:
            issues.append(FaceIssue.TOO_SMALL)
            quality_score *= 0.5
        elif face_area > self.max_face_size:
            issues.append(FaceIssue.TOO_LARGE)
            quality_score *= 0.7

        if face.confidence < self.min_confidence:
            issues.append(FaceIssue.LOW_CONFIDENCE)
            quality_score *= 0.6

        distance = face.bounding_box.distance_from_center()
        if distance > self.max_center_distance:
            issues.append(FaceIssue.NOT_CENTERED)
            quality_score *= 0.8

        if face.landmarks is not None:
            quality_score *= landmark_quality(face.landmarks)

        return FaceValidation(
            is_valid=not issues and quality_score >= VALID_QUALITY_SCORE,
            quality_score=quality_score,
            issues=issues,
            centeredness=1.0 - distance,
            face_size=face_area,
        )

    def best_face(self, faces: Sequence[DetectedFace]) -> Optional[DetectedFace]:
        """Return the face with the highest quality score, first seen on ties."""
        if not faces:
            return None
        if len(faces) == 1:
            return faces[0]
        return max(faces, key=lambda face: self.validate(face).quality_score)


def landmark_quality(landmarks: FaceLandmarks) -> float:
    score = 1.0

    if landmarks.left_eye is not None and landmarks.right_eye is not None:
        if len(landmarks.left_eye) < MIN_EYE_POINTS or len(landmarks.right_eye) < MIN_EYE_POINTS:
            score *= 0.8
    else:
        score *= 0.7

    if landmarks.nose is None:
        score *= 0.8

    if landmarks.outer_lips is None:
        score *= 0.8

    return score
