import uuid
from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from fitleague.models.enums import AdmissionStatus, AttemptStatus, InvalidReason

T = TypeVar("T")


class StandardResponse(BaseModel, Generic[T]):
    data: Optional[T] = None
    message: Optional[str] = None
    success: bool = True


class ActivityCandidate(BaseModel):
    """Activity normalized from a provider payload, before admission."""
    external_id: str = Field(min_length=1)
    source: str = "strava"
    user_id: uuid.UUID
    name: str | None = None
    sport_type: str = "Run"
    start_date: datetime
    elapsed_time: int = Field(ge=0)  # seconds
    moving_time: int = Field(ge=0)  # seconds
    distance: float = Field(default=0.0, ge=0)  # meters
    average_heartrate: float | None = Field(default=None, ge=0)
    max_heartrate: float | None = Field(default=None, ge=0)


class AdmissionResult(BaseModel):
    activity_id: uuid.UUID | None
    status: AdmissionStatus
    is_valid: bool
    reason: InvalidReason | None = None
    message: str | None = None
    points: int = 0


class MissionSignupRequest(BaseModel):
    user_id: uuid.UUID
    timezone: str | None = None


class MissionAttemptResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    mission_id: uuid.UUID
    status: AttemptStatus
    progress: float
    start_date_user_timezone: str
    end_date_user_timezone: str
    timezone: str

    model_config = ConfigDict(from_attributes=True)


class MissionFinalizeResponse(BaseModel):
    mission_id: uuid.UUID
    already_inactive: bool
    achieved: int
    not_achieved: int

    model_config = ConfigDict(from_attributes=True)


class RotationSummaryResponse(BaseModel):
    week: str
    leagues: int
    users: int
    promoted: int
    relegated: int
    remained: int
    skipped: int
    errors: list[str]

    model_config = ConfigDict(from_attributes=True)
