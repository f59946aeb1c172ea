"""Action gate - which clock actions a user may take at an instant."""
from datetime import datetime

from timeclock.models.tracking import ActionGate, ActionState, RuleCode, RuleViolation
from timeclock.models.work_session import SessionStatus
from timeclock.services.rules import (
    RuleContext,
    WorkRules,
    check_daily_cap,
    check_lunch_duration,
    check_lunch_window,
    check_rest_period,
    check_weekly_cap,
)

ENABLED = ActionState(enabled=True)


def _blocked(reason: str, code: RuleCode = RuleCode.SEQUENCE) -> ActionState:
    return ActionState(enabled=False, reason=reason, code=code)


def _first_failure(*outcomes) -> ActionState:
    for outcome in outcomes:
        if isinstance(outcome, RuleViolation):
            reason = outcome.message
            if outcome.detail:
                reason = f"{reason}. {outcome.detail}"
            return _blocked(reason, outcome.code)
    return ENABLED


def build_action_gate(
    now: datetime,
    context: RuleContext,
    rules: WorkRules,
    strict: bool = True,
) -> ActionGate:
    """
    Compute the availability of each action.

    The gate drives the UI; the rule evaluator still re-checks every
    submitted action. With `strict` off the gate only applies the rest
    period and lunch window. With `strict` on it also applies the daily and
    weekly caps and the lunch duration, so it never enables an action the
    evaluator would reject.

    Args:
        now: Instant to evaluate at
        context: Current session and history
        rules: Limits
        strict: Apply every rule the evaluator applies

    Returns:
        ActionGate with a reason on each disabled action
    """
    session = context.session
    status = session.status if session is not None else None

    if status == SessionStatus.ACTIVE:
        clock_out = ENABLED
        if strict:
            clock_out = _first_failure(
                check_daily_cap(session, now, rules),
                check_weekly_cap(now, context.week_sessions, rules, closing=session),
            )
        return ActionGate(
            clock_in=_blocked("Already has an active session"),
            clock_out=clock_out,
            start_lunch=_first_failure(check_lunch_window(now, rules)),
            resume_shift=_blocked("Not on lunch"),
        )

    if status == SessionStatus.ON_LUNCH:
        resume_shift = ENABLED
        if strict and session.lunch_start_time is not None:
            resume_shift = _first_failure(
                check_lunch_duration(session.lunch_start_time, now, rules)
            )
        return ActionGate(
            clock_in=_blocked("Currently on lunch"),
            clock_out=_blocked("Must end lunch first"),
            start_lunch=_blocked("Already on lunch"),
            resume_shift=resume_shift,
        )

    # No session yet, or the day's session is completed
    checks = [check_rest_period(now, context.last_clock_out, rules)]
    if strict:
        checks.append(check_weekly_cap(now, context.week_sessions, rules))
    return ActionGate(
        clock_in=_first_failure(*checks),
        clock_out=_blocked("No active session"),
        start_lunch=_blocked("Must clock in first"),
        resume_shift=_blocked("Not on lunch"),
    )
