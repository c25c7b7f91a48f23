"""Core face domain entities."""
import math
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

Point = Tuple[float, float]


class BoundingBox(BaseModel):
    """Face bounding box in normalized (0-1) frame coordinates."""
    left: float = Field(..., description="Left coordinate of the bounding box")
    top: float = Field(..., description="Top coordinate of the bounding box")
    width: float = Field(..., ge=0, description="Width of the bounding box")
    height: float = Field(..., ge=0, description="Height of the bounding box")

    @property
    def center(self) -> Point:
        return (self.left + self.width / 2, self.top + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def distance_from_center(self) -> float:
        """Euclidean distance between the box center and the frame center."""
        x, y = self.center
        return math.hypot(x - 0.5, y - 0.5)


class FaceLandmarks(BaseModel):
    """Landmark point-sets reported by the detector, each optional."""
    left_eye: Optional[List[Point]] = None
    right_eye: Optional[List[Point]] = None
    nose: Optional[List[Point]] = None
    outer_lips: Optional[List[Point]] = None
    inner_lips: Optional[List[Point]] = None
    left_eyebrow: Optional[List[Point]] = None
    right_eyebrow: Optional[List[Point]] = None
    face_contour: Optional[List[Point]] = None


class DetectedFace(BaseModel):
    """A single face found in a frame. Ephemeral, never persisted."""
    bounding_box: BoundingBox = Field(..., description="Normalized bounding box")
    confidence: float = Field(..., ge=0, le=1, description="Detector confidence")
    landmarks: Optional[FaceLandmarks] = Field(None, description="Landmark point-sets, if available")
