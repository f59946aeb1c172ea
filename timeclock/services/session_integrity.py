"""Session integrity - re-validates a stored session against its events."""
from typing import Iterable

from timeclock.models.time_event import EventKind, TimeEvent
from timeclock.models.tracking import RuleViolation
from timeclock.models.work_session import WorkSession
from timeclock.services.rules import WorkRules, check_lunch_duration


def check_session_integrity(
    session: WorkSession,
    events: Iterable[TimeEvent],
    rules: WorkRules,
) -> list[str]:
    """
    Find inconsistencies between a session and the events of its day.

    Args:
        session: Stored session
        events: The user's events dated on the session's date
        rules: Limits used for the lunch duration check

    Returns:
        Human-readable problems; empty when the session is consistent
    """
    errors: list[str] = []
    kinds = {event.kind for event in events}

    if not kinds:
        errors.append("No time events recorded")

    if EventKind.CLOCK_IN not in kinds:
        errors.append("Missing clock-in event")
        if EventKind.CLOCK_OUT in kinds:
            errors.append("Clock-out recorded without a prior clock-in")

    if EventKind.RESUME_SHIFT in kinds and EventKind.START_LUNCH not in kinds:
        errors.append("Lunch end recorded without a lunch start")

    if session.clock_in_time and session.clock_out_time:
        if session.clock_in_time >= session.clock_out_time:
            errors.append("Clock-in time is not before clock-out time")

    if session.lunch_start_time and session.lunch_end_time:
        if session.lunch_start_time >= session.lunch_end_time:
            errors.append("Lunch start time is not before lunch end time")
        else:
            outcome = check_lunch_duration(
                session.lunch_start_time, session.lunch_end_time, rules
            )
            if isinstance(outcome, RuleViolation):
                errors.append(f"{outcome.message}. {outcome.detail}")

    return errors
