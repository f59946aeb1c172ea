"""Rule evaluator - pure checks of the time-tracking business rules.

Every check takes the proposed timestamp and the history it needs as
arguments and returns a ValidationOutcome. Nothing here touches storage or
reads the system clock.
"""
import math
from datetime import datetime
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field

from timeclock.models.time_event import EventKind, TimeEvent
from timeclock.models.tracking import (
    RuleCode,
    RulePassed,
    RuleViolation,
    ValidationOutcome,
)
from timeclock.models.work_session import SessionStatus, WorkSession
from timeclock.services.projector import project_closed
from timeclock.utils.timezone import (
    get_zone,
    iso_week_bounds,
    local_date,
    minutes_between,
    round_minutes,
    to_local,
)


class WorkRules(BaseModel):
    """Limits applied by the rule evaluator."""

    model_config = ConfigDict(frozen=True)

    timezone: str = "America/Santiago"
    min_rest_minutes: int = 60
    lunch_window_start_hour: int = 12
    lunch_window_end_hour: int = 20
    max_lunch_minutes: int = 120
    max_daily_work_minutes: int = 600
    max_weekly_work_minutes: int = 2700

    @classmethod
    def from_settings(cls, settings) -> "WorkRules":
        """Build rules from application settings."""
        return cls(
            timezone=settings.timezone,
            min_rest_minutes=settings.min_rest_minutes,
            lunch_window_start_hour=settings.lunch_window_start_hour,
            lunch_window_end_hour=settings.lunch_window_end_hour,
            max_lunch_minutes=settings.max_lunch_minutes,
            max_daily_work_minutes=settings.max_daily_work_minutes,
            max_weekly_work_minutes=settings.max_weekly_work_minutes,
        )

    @property
    def zone(self) -> ZoneInfo:
        return get_zone(self.timezone)


class RuleContext(BaseModel):
    """History a set of rule checks is evaluated against."""

    session: Optional[WorkSession] = None
    last_clock_out: Optional[TimeEvent] = None
    week_sessions: list[WorkSession] = Field(default_factory=list)


PASSED = RulePassed()


def _format_hour(hour: int) -> str:
    suffix = "AM" if hour < 12 or hour == 24 else "PM"
    display = hour % 12 or 12
    return f"{display}:00 {suffix}"


def check_sequence(action: EventKind, session: Optional[WorkSession]) -> ValidationOutcome:
    """
    Check that the action follows from the current session status.

    Args:
        action: Proposed action
        session: The user's open session, or today's session, or None

    Returns:
        RulePassed or a sequence RuleViolation
    """
    status = session.status if session is not None else None

    if action == EventKind.CLOCK_IN:
        if session is not None and session.is_open:
            return RuleViolation(
                code=RuleCode.SEQUENCE,
                message="There is already an active session",
            )
    elif action == EventKind.CLOCK_OUT:
        if session is None or not session.is_open:
            return RuleViolation(
                code=RuleCode.SEQUENCE,
                message="There is no active session to close",
            )
    elif action == EventKind.START_LUNCH:
        if status != SessionStatus.ACTIVE:
            return RuleViolation(
                code=RuleCode.SEQUENCE,
                message="Lunch can only start during an active session",
            )
    elif action == EventKind.RESUME_SHIFT:
        if status != SessionStatus.ON_LUNCH:
            return RuleViolation(
                code=RuleCode.SEQUENCE,
                message="The shift can only be resumed while on lunch",
            )

    return PASSED


def check_rest_period(
    timestamp: datetime,
    last_clock_out: Optional[TimeEvent],
    rules: WorkRules,
) -> ValidationOutcome:
    """
    Check the minimum rest since the user's last clock-out.

    A clock-in exactly `min_rest_minutes` after the last clock-out passes;
    earlier ones report the remaining minutes rounded up.
    """
    if last_clock_out is None:
        return PASSED

    remaining = rules.min_rest_minutes - minutes_between(last_clock_out.timestamp, timestamp)
    if remaining > 0:
        remaining_minutes = math.ceil(remaining)
        return RuleViolation(
            code=RuleCode.REST_PERIOD,
            message=(
                f"At least {rules.min_rest_minutes} minutes must pass "
                "since the last clock-out"
            ),
            detail=f"Remaining time: {remaining_minutes} minutes",
        )

    return PASSED


def check_lunch_window(timestamp: datetime, rules: WorkRules) -> ValidationOutcome:
    """Check that lunch starts inside the local lunch window [start, end)."""
    hour = to_local(timestamp, rules.zone).hour

    if hour < rules.lunch_window_start_hour or hour >= rules.lunch_window_end_hour:
        return RuleViolation(
            code=RuleCode.LUNCH_WINDOW,
            message=(
                "Lunch can only start between "
                f"{_format_hour(rules.lunch_window_start_hour)} and "
                f"{_format_hour(rules.lunch_window_end_hour)}"
            ),
        )

    return PASSED


def check_lunch_duration(
    lunch_start: datetime,
    lunch_end: datetime,
    rules: WorkRules,
) -> ValidationOutcome:
    """Check that a lunch does not last longer than `max_lunch_minutes`."""
    duration = minutes_between(lunch_start, lunch_end)

    if duration > rules.max_lunch_minutes:
        return RuleViolation(
            code=RuleCode.LUNCH_DURATION,
            message=f"Lunch cannot last more than {rules.max_lunch_minutes} minutes",
            detail=f"Current duration: {round_minutes(duration)} minutes",
        )

    return PASSED


def check_daily_cap(
    session: WorkSession,
    timestamp: datetime,
    rules: WorkRules,
) -> ValidationOutcome:
    """Check that closing the session now stays within the daily cap."""
    total = project_closed(session, timestamp).total_work_minutes

    if total > rules.max_daily_work_minutes:
        return RuleViolation(
            code=RuleCode.DAILY_CAP,
            message=(
                f"Daily work cannot exceed {rules.max_daily_work_minutes / 60:g} hours"
            ),
            detail=f"Current total: {total / 60:.1f} hours",
        )

    return PASSED


def check_weekly_cap(
    timestamp: datetime,
    week_sessions: Iterable[WorkSession],
    rules: WorkRules,
    closing: Optional[WorkSession] = None,
) -> ValidationOutcome:
    """
    Check the ISO-week total of worked minutes.

    Sessions dated outside the week are ignored. The week is the one of
    `timestamp`, or, when a session is being closed, the one of the date
    that session started on. The closing session counts with the total it
    would have if closed at `timestamp`.

    Args:
        timestamp: Proposed action time
        week_sessions: The user's sessions of that week
        rules: Limits
        closing: Session the action closes, if any
    """
    day = closing.date if closing is not None else local_date(timestamp, rules.zone)
    monday, sunday = iso_week_bounds(day)
    closing_id = closing.id if closing is not None else None

    total = sum(
        session.total_work_minutes
        for session in week_sessions
        if monday <= session.date <= sunday and session.id != closing_id
    )
    if closing is not None:
        total += project_closed(closing, timestamp).total_work_minutes

    if total > rules.max_weekly_work_minutes:
        return RuleViolation(
            code=RuleCode.WEEKLY_CAP,
            message=(
                f"Weekly work cannot exceed {rules.max_weekly_work_minutes / 60:g} hours"
            ),
            detail=f"Current weekly total: {total / 60:.1f} hours",
        )

    return PASSED


def evaluate(
    action: EventKind,
    timestamp: datetime,
    context: RuleContext,
    rules: WorkRules,
) -> list[ValidationOutcome]:
    """
    Run every rule that applies to an action.

    Args:
        action: Proposed action
        timestamp: Proposed action time
        context: Current session and history
        rules: Limits

    Returns:
        One outcome per rule evaluated, failures included
    """
    session = context.session
    outcomes: list[ValidationOutcome] = [check_sequence(action, session)]

    if action == EventKind.CLOCK_IN:
        outcomes.append(check_rest_period(timestamp, context.last_clock_out, rules))
        outcomes.append(check_weekly_cap(timestamp, context.week_sessions, rules))

    elif action == EventKind.START_LUNCH:
        outcomes.append(check_lunch_window(timestamp, rules))

    elif action == EventKind.RESUME_SHIFT:
        if session is not None and session.lunch_start_time is not None:
            outcomes.append(
                check_lunch_duration(session.lunch_start_time, timestamp, rules)
            )

    elif action == EventKind.CLOCK_OUT:
        if session is not None and session.is_open:
            outcomes.append(check_daily_cap(session, timestamp, rules))
            outcomes.append(
                check_weekly_cap(timestamp, context.week_sessions, rules, closing=session)
            )
            if session.status == SessionStatus.ON_LUNCH and session.lunch_start_time:
                outcomes.append(
                    check_lunch_duration(session.lunch_start_time, timestamp, rules)
                )

    return outcomes


def violations(outcomes: Iterable[ValidationOutcome]) -> list[RuleViolation]:
    """Keep only the failed outcomes."""
    return [outcome for outcome in outcomes if isinstance(outcome, RuleViolation)]
