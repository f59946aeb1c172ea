"""Result models for rule checks, action gates and clock actions."""
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from timeclock.models.time_event import TimeEvent
from timeclock.models.work_session import WorkSession


class RuleCode(str, Enum):
    """Machine-readable identifier of a business rule."""

    SEQUENCE = "sequence"
    REST_PERIOD = "rest_period"
    LUNCH_WINDOW = "lunch_window"
    LUNCH_DURATION = "lunch_duration"
    DAILY_CAP = "daily_cap"
    WEEKLY_CAP = "weekly_cap"


class RulePassed(BaseModel):
    """A rule check that passed."""

    is_valid: Literal[True] = True


class RuleViolation(BaseModel):
    """A rule check that failed."""

    is_valid: Literal[False] = False
    code: RuleCode
    message: str
    detail: Optional[str] = None


ValidationOutcome = Union[RulePassed, RuleViolation]


class ActionState(BaseModel):
    """Whether one action is currently available."""

    enabled: bool
    reason: Optional[str] = None
    code: Optional[RuleCode] = None


class ActionGate(BaseModel):
    """Availability of the four clock actions at an instant."""

    clock_in: ActionState
    clock_out: ActionState
    start_lunch: ActionState
    resume_shift: ActionState

    def restrictions(self) -> list[str]:
        """Reasons of actions blocked by a time-based rule rather than by the sequence."""
        states = (self.clock_in, self.clock_out, self.start_lunch, self.resume_shift)
        return [
            state.reason
            for state in states
            if not state.enabled
            and state.reason
            and state.code is not None
            and state.code != RuleCode.SEQUENCE
        ]


class TrackingStatus(str, Enum):
    """User-facing status derived from the current session."""

    CLOCKED_OUT = "clocked_out"
    CLOCKED_IN = "clocked_in"
    ON_LUNCH = "on_lunch"


class ClockActionAccepted(BaseModel):
    """The action was recorded."""

    outcome: Literal["accepted"] = "accepted"
    session: WorkSession
    event: TimeEvent
    action_gate: ActionGate


class ClockActionRejected(BaseModel):
    """One or more rules rejected the action. Nothing was stored."""

    outcome: Literal["rejected"] = "rejected"
    message: str = "Validation failed"
    violations: list[RuleViolation]


class ClockActionNotFound(BaseModel):
    """The action needs a session that does not exist."""

    outcome: Literal["not_found"] = "not_found"
    message: str


ClockActionResult = Annotated[
    Union[ClockActionAccepted, ClockActionRejected, ClockActionNotFound],
    Field(discriminator="outcome"),
]


class CurrentStatus(BaseModel):
    """Snapshot of where a user stands right now."""

    status: TrackingStatus
    session: Optional[WorkSession] = None
    action_gate: ActionGate
    restrictions: list[str] = Field(default_factory=list)


class TodaySession(BaseModel):
    """Today's session with freshly projected totals."""

    session: Optional[WorkSession] = None
    worked_hours: float = 0.0
    lunch_minutes: int = 0
    remaining_hours: float
    status: TrackingStatus
    action_gate: ActionGate


class SessionIntegrityReport(BaseModel):
    """Result of re-validating a stored session against its events."""

    session_id: str
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
