"""Time tracking service - clock actions on work sessions."""
import logging
import math
from datetime import date, datetime
from typing import Any, Optional

from timeclock.exceptions import ConcurrencyConflictError
from timeclock.models.time_event import EventKind, TimeEvent, TimeEventCreate
from timeclock.models.tracking import (
    ActionGate,
    ClockActionAccepted,
    ClockActionNotFound,
    ClockActionRejected,
    ClockActionResult,
    CurrentStatus,
    SessionIntegrityReport,
    TodaySession,
    TrackingStatus,
)
from timeclock.models.work_session import (
    SessionPage,
    SessionStatus,
    SessionTotals,
    WorkSession,
)
from timeclock.services.action_gate import build_action_gate
from timeclock.services.projector import closing_fields, project_session
from timeclock.services.rules import RuleContext, WorkRules, evaluate, violations
from timeclock.services.session_integrity import check_session_integrity
from timeclock.services.user_locks import UserLocks, user_locks
from timeclock.utils.timezone import iso_week_bounds, local_date, to_local

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

STATUS_BY_SESSION = {
    SessionStatus.ACTIVE: TrackingStatus.CLOCKED_IN,
    SessionStatus.ON_LUNCH: TrackingStatus.ON_LUNCH,
    SessionStatus.COMPLETED: TrackingStatus.CLOCKED_OUT,
}


def _tracking_status(session: Optional[WorkSession]) -> TrackingStatus:
    if session is None:
        return TrackingStatus.CLOCKED_OUT
    return STATUS_BY_SESSION[session.status]


class TimeTrackingService:
    """Service for clocking in and out of work sessions."""

    def __init__(
        self,
        repository,
        rules: Optional[WorkRules] = None,
        strict_gate: bool = True,
        expected_daily_hours: int = 8,
        max_conflict_retries: int = 2,
        locks: Optional[UserLocks] = None,
    ):
        """
        Initialize service.

        Args:
            repository: Clock repository
            rules: Business rule limits
            strict_gate: Make the action gate apply every evaluator rule
            expected_daily_hours: Hours a full workday is expected to last
            max_conflict_retries: Retries after a concurrent write conflict
            locks: Per-user lock registry (process-wide by default)
        """
        self.repository = repository
        self.rules = rules or WorkRules()
        self.strict_gate = strict_gate
        self.expected_daily_hours = expected_daily_hours
        self.max_conflict_retries = max_conflict_retries
        self.locks = locks or user_locks

    # Clock actions

    async def clock_in(self, user_id: str, timestamp: datetime) -> ClockActionResult:
        """Start a workday, or re-open today's completed one."""
        return await self._perform(EventKind.CLOCK_IN, user_id, timestamp)

    async def clock_out(self, user_id: str, timestamp: datetime) -> ClockActionResult:
        """Close the open session."""
        return await self._perform(EventKind.CLOCK_OUT, user_id, timestamp)

    async def start_lunch(self, user_id: str, timestamp: datetime) -> ClockActionResult:
        """Start the lunch break of the active session."""
        return await self._perform(EventKind.START_LUNCH, user_id, timestamp)

    async def resume_shift(self, user_id: str, timestamp: datetime) -> ClockActionResult:
        """End the lunch break and resume work."""
        return await self._perform(EventKind.RESUME_SHIFT, user_id, timestamp)

    async def _perform(
        self,
        action: EventKind,
        user_id: str,
        timestamp: datetime,
    ) -> ClockActionResult:
        """
        Run one clock action under the user's lock.

        The evaluate-then-write cycle is retried when storage reports a
        concurrent write for the same user.

        Raises:
            ConcurrencyConflictError: If the conflict persists after retries
        """
        moment = to_local(timestamp, self.rules.zone)
        attempt = 0

        while True:
            try:
                async with self.locks.lock_for(user_id):
                    return await self._apply(action, user_id, moment)
            except ConcurrencyConflictError:
                attempt += 1
                if attempt > self.max_conflict_retries:
                    logger.error(
                        "Giving up on %s for user %s after %d conflicts",
                        action.value, user_id, attempt,
                    )
                    raise
                logger.warning(
                    "Concurrent write on %s for user %s, retrying (%d/%d)",
                    action.value, user_id, attempt, self.max_conflict_retries,
                )

    async def _apply(
        self,
        action: EventKind,
        user_id: str,
        moment: datetime,
    ) -> ClockActionResult:
        context = await self._load_context(user_id, moment)

        if action != EventKind.CLOCK_IN and context.session is None:
            return ClockActionNotFound(message="No work session found for today")

        failed = violations(evaluate(action, moment, context, self.rules))
        if failed:
            logger.warning(
                "Rejected %s for user %s: %s",
                action.value, user_id, ", ".join(v.code.value for v in failed),
            )
            return ClockActionRejected(violations=failed)

        session = await self._transition(action, user_id, moment, context.session)
        event = await self.repository.create_event(
            TimeEventCreate(
                user_id=user_id,
                kind=action,
                timestamp=moment,
                date=local_date(moment, self.rules.zone),
                timezone=self.rules.timezone,
            )
        )
        logger.info("Recorded %s for user %s at %s", action.value, user_id, moment.isoformat())

        week_sessions = [s for s in context.week_sessions if s.id != session.id]
        week_sessions.append(session)
        refreshed = RuleContext(
            session=session,
            last_clock_out=event if action == EventKind.CLOCK_OUT else context.last_clock_out,
            week_sessions=week_sessions,
        )

        return ClockActionAccepted(
            session=session,
            event=event,
            action_gate=self._gate(moment, refreshed),
        )

    async def _transition(
        self,
        action: EventKind,
        user_id: str,
        moment: datetime,
        session: Optional[WorkSession],
    ) -> WorkSession:
        """Apply the action to the session and store it with fresh totals."""
        fields: dict[str, Any]

        if action == EventKind.CLOCK_IN:
            if session is None:
                # One insert holds the whole first stint; its totals start at zero
                fields = {"clock_in_time": moment, "status": SessionStatus.ACTIVE}
                fields.update(SessionTotals().model_dump())
                return await self.repository.create_session(
                    user_id, local_date(moment, self.rules.zone), fields
                )
            else:
                # Re-opening a completed day keeps the earlier stint's totals
                fields = {
                    "clock_in_time": moment,
                    "clock_out_time": None,
                    "lunch_start_time": None,
                    "lunch_end_time": None,
                    "carried_work_minutes": session.total_work_minutes,
                    "carried_lunch_minutes": session.total_lunch_minutes,
                    "status": SessionStatus.ACTIVE,
                }
        elif action == EventKind.CLOCK_OUT:
            fields = closing_fields(session, moment)
        elif action == EventKind.START_LUNCH:
            fields = {"lunch_start_time": moment, "status": SessionStatus.ON_LUNCH}
        else:
            fields = {"lunch_end_time": moment, "status": SessionStatus.ACTIVE}

        totals = project_session(session.model_copy(update=fields), moment)
        fields.update(totals.model_dump())

        updated = await self.repository.update_session(session.id, fields)
        if updated is None:
            raise ConcurrencyConflictError(f"Session {session.id} disappeared during update")

        return updated

    # Read operations

    async def get_current_status(self, user_id: str, now: datetime) -> CurrentStatus:
        """
        Get where a user stands right now.

        Session totals are projected to `now` but not stored.
        """
        moment = to_local(now, self.rules.zone)
        context = await self._load_context(user_id, moment)
        gate = self._gate(moment, context)

        session = context.session
        if session is not None:
            session = session.model_copy(update=project_session(session, moment).model_dump())

        return CurrentStatus(
            status=_tracking_status(session),
            session=session,
            action_gate=gate,
            restrictions=gate.restrictions(),
        )

    async def get_today_session(self, user_id: str, now: datetime) -> TodaySession:
        """
        Get today's session with totals re-projected to `now` and stored.

        The open session is returned even when it started on an earlier date.
        """
        moment = to_local(now, self.rules.zone)

        async with self.locks.lock_for(user_id):
            context = await self._load_context(user_id, moment)
            session = context.session
            if session is not None:
                totals = project_session(session, moment)
                session = await self.repository.update_session(
                    session.id, totals.model_dump()
                ) or session.model_copy(update=totals.model_dump())
                context = context.model_copy(update={"session": session})

        gate = self._gate(moment, context)

        if session is None:
            return TodaySession(
                remaining_hours=float(self.expected_daily_hours),
                status=TrackingStatus.CLOCKED_OUT,
                action_gate=gate,
            )

        return TodaySession(
            session=session,
            worked_hours=session.total_work_hours,
            lunch_minutes=session.total_lunch_minutes,
            remaining_hours=round(max(0.0, self.expected_daily_hours - session.total_work_hours), 2),
            status=_tracking_status(session),
            action_gate=gate,
        )

    async def get_action_gate(self, user_id: str, now: datetime) -> ActionGate:
        """Get the availability of each action for a user."""
        moment = to_local(now, self.rules.zone)
        context = await self._load_context(user_id, moment)
        return self._gate(moment, context)

    async def get_recent_activities(self, user_id: str, limit: int = 5) -> list[TimeEvent]:
        """Latest time events of a user, newest first."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        return await self.repository.find_recent_events(user_id, limit)

    async def get_user_sessions(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> SessionPage:
        """
        List a user's sessions, newest first.

        Args:
            user_id: User ID
            page: 1-based page number
            limit: Page size (capped at 100)
            start_date: Optional first date, inclusive
            end_date: Optional last date, inclusive

        Returns:
            Page of sessions with paging metadata
        """
        page = max(1, page)
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        sessions, total = await self.repository.page_sessions_by_user(
            user_id,
            skip=(page - 1) * limit,
            limit=limit,
            start=start_date,
            end=end_date,
        )
        total_pages = math.ceil(total / limit)

        return SessionPage(
            sessions=sessions,
            total=total,
            total_pages=total_pages,
            current_page=page,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

    async def revalidate_session(
        self,
        session_id: str,
        user_id: Optional[str] = None,
    ) -> Optional[SessionIntegrityReport]:
        """
        Re-check a stored session against the events of its day.

        Stores the verdict on the session.

        Args:
            session_id: Session ID
            user_id: When given, only sessions of this user are considered

        Returns:
            Integrity report, or None if the session does not exist
        """
        session = await self.repository.find_session_by_id(session_id)
        if session is None or (user_id is not None and session.user_id != user_id):
            return None

        events = await self.repository.find_events_by_user_and_date(
            session.user_id, session.date
        )
        errors = check_session_integrity(session, events, self.rules)

        await self.repository.update_session(
            session.id,
            {"is_valid_session": not errors, "validation_errors": errors},
        )
        if errors:
            logger.warning("Session %s failed revalidation: %s", session.id, "; ".join(errors))

        return SessionIntegrityReport(
            session_id=session.id,
            is_valid=not errors,
            errors=errors,
        )

    # Helpers

    async def _load_context(self, user_id: str, moment: datetime) -> RuleContext:
        """Gather the session and history the rules need."""
        today = local_date(moment, self.rules.zone)

        session = await self.repository.find_open_session(user_id)
        if session is None:
            session = await self.repository.find_session_by_user_and_date(user_id, today)

        last_clock_out = await self.repository.find_last_event_by_user_and_kind(
            user_id, EventKind.CLOCK_OUT
        )
        # An open session is checked against the week of the date it started on
        anchor = session.date if session is not None and session.is_open else today
        monday, sunday = iso_week_bounds(anchor)
        week_sessions = await self.repository.find_sessions_by_user_and_date_range(
            user_id, monday, sunday
        )

        return RuleContext(
            session=session,
            last_clock_out=last_clock_out,
            week_sessions=week_sessions,
        )

    def _gate(self, moment: datetime, context: RuleContext) -> ActionGate:
        return build_action_gate(moment, context, self.rules, strict=self.strict_gate)
