"""Session state and operation value objects."""
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from facialauth.domain.value_objects.recognition import TrainingMode


class AuthState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    CAMERA_READY = "cameraReady"
    REGISTERING = "registering"
    AUTHENTICATING = "authenticating"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OperationKind(str, Enum):
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


class Registration(BaseModel):
    """Enrollment of a new (or re-enrolled) user."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[OperationKind.REGISTRATION] = OperationKind.REGISTRATION
    user_id: str = Field(..., min_length=1)
    display_name: str
    re_enroll: bool = False
    mode: TrainingMode = TrainingMode.STANDARD


class Authentication(BaseModel):
    """Verification of a fresh capture against a stored profile."""
    model_config = ConfigDict(frozen=True)

    kind: Literal[OperationKind.AUTHENTICATION] = OperationKind.AUTHENTICATION
    user_id: str = Field(..., min_length=1)


Operation = Union[Registration, Authentication]
