"""Time event model definitions."""
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class EventKind(str, Enum):
    """The four clock actions a user can perform."""

    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"
    START_LUNCH = "start_lunch"
    RESUME_SHIFT = "resume_shift"


class TimeEventCreate(BaseModel):
    """Time event creation model."""

    user_id: str
    kind: EventKind
    timestamp: datetime
    date: date
    timezone: str


class TimeEvent(TimeEventCreate):
    """Recorded time event. Immutable once stored."""

    id: str = Field(alias="_id", serialization_alias="id")
    is_valid: bool = True
    created_at: datetime

    model_config = {"populate_by_name": True, "frozen": True}
