"""Work session model definitions."""
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    """Lifecycle of a workday."""

    ACTIVE = "active"
    ON_LUNCH = "on_lunch"
    COMPLETED = "completed"


OPEN_STATUSES = frozenset({SessionStatus.ACTIVE, SessionStatus.ON_LUNCH})


class SessionTotals(BaseModel):
    """Derived totals of a session."""

    total_work_minutes: int = 0
    total_lunch_minutes: int = 0
    total_work_hours: float = 0.0


class WorkSession(SessionTotals):
    """One workday of a user, keyed by the local date it started on."""

    id: str = Field(alias="_id", serialization_alias="id")
    user_id: str
    date: date
    status: SessionStatus = SessionStatus.ACTIVE
    clock_in_time: Optional[datetime] = None
    clock_out_time: Optional[datetime] = None
    lunch_start_time: Optional[datetime] = None
    lunch_end_time: Optional[datetime] = None
    # Totals of earlier stints when a completed day is re-opened
    carried_work_minutes: int = 0
    carried_lunch_minutes: int = 0
    is_valid_session: bool = True
    validation_errors: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}

    @property
    def is_open(self) -> bool:
        """True while the user is clocked in or on lunch."""
        return self.status in OPEN_STATUSES


class SessionPage(BaseModel):
    """A page of a user's session history."""

    sessions: list[WorkSession]
    total: int
    total_pages: int
    current_page: int
    has_next: bool
    has_prev: bool
