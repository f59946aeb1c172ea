"""Session projector - derives worked and lunch totals from session timestamps."""
from datetime import datetime
from typing import Any

from timeclock.models.work_session import SessionStatus, SessionTotals, WorkSession
from timeclock.utils.timezone import minutes_between, round_minutes


def project_session(session: WorkSession, now: datetime) -> SessionTotals:
    """
    Recompute the totals of a session.

    Completed stints use their recorded clock-out; an in-progress stint is
    measured up to `now`, as is a lunch that has not ended yet. Totals
    carried over from earlier stints of the same day are added on top.

    Args:
        session: Session to project
        now: Instant used for open stints and open lunches

    Returns:
        Projected totals (never negative)
    """
    span = 0.0
    if session.clock_in_time is not None:
        end = session.clock_out_time if session.clock_out_time is not None else now
        span = minutes_between(session.clock_in_time, end)

    lunch = 0.0
    if session.lunch_start_time is not None:
        if session.lunch_end_time is not None:
            lunch = minutes_between(session.lunch_start_time, session.lunch_end_time)
        elif session.status == SessionStatus.ON_LUNCH:
            lunch = minutes_between(session.lunch_start_time, now)
    lunch = max(0.0, lunch)

    work_minutes = round_minutes(max(0.0, span - lunch)) + session.carried_work_minutes
    lunch_minutes = round_minutes(lunch) + session.carried_lunch_minutes

    return SessionTotals(
        total_work_minutes=work_minutes,
        total_lunch_minutes=lunch_minutes,
        total_work_hours=round(work_minutes / 60, 2),
    )


def closing_fields(session: WorkSession, at: datetime) -> dict[str, Any]:
    """Fields that close a session at the given instant, ending an open lunch."""
    fields: dict[str, Any] = {
        "clock_out_time": at,
        "status": SessionStatus.COMPLETED,
    }
    if session.status == SessionStatus.ON_LUNCH and session.lunch_end_time is None:
        fields["lunch_end_time"] = at
    return fields


def project_closed(session: WorkSession, at: datetime) -> SessionTotals:
    """Totals the session would have if it were closed at `at`."""
    return project_session(session.model_copy(update=closing_fields(session, at)), at)
