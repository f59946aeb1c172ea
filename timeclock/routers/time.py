"""Time endpoints - clock actions and session history."""
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from timeclock.exceptions import ConcurrencyConflictError
from timeclock.models.time_event import TimeEvent
from timeclock.models.tracking import (
    ClockActionAccepted,
    ClockActionNotFound,
    ClockActionRejected,
    CurrentStatus,
    SessionIntegrityReport,
    TodaySession,
)
from timeclock.models.work_session import SessionPage
from timeclock.routers.dependencies import (
    get_current_user_id,
    get_now,
    get_tracking_service,
)
from timeclock.services.time_tracking_service import TimeTrackingService


router = APIRouter(prefix="/time", tags=["time"])


class ClockActionRequest(BaseModel):
    """Request model for a clock action."""

    timestamp: Optional[datetime] = None


async def _run(action, user_id: str, request: Optional[ClockActionRequest], now: datetime):
    """Run a clock action and map its result onto an HTTP response."""
    timestamp = request.timestamp if request and request.timestamp else now

    try:
        result = await action(user_id, timestamp)
    except ConcurrencyConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if isinstance(result, ClockActionRejected):
        raise HTTPException(
            status_code=422,
            detail={
                "message": result.message,
                "violations": [v.model_dump(mode="json") for v in result.violations],
            },
        )
    if isinstance(result, ClockActionNotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)

    return result


@router.post("/clock-in", response_model=ClockActionAccepted)
async def clock_in(
    request: Optional[ClockActionRequest] = None,
    user_id: str = Depends(get_current_user_id),
    service: TimeTrackingService = Depends(get_tracking_service),
    now: datetime = Depends(get_now),
):
    """
    Clock in.

    - Requires authentication
    - No other session may be open
    - At least one hour must have passed since the last clock-out
    """
    return await _run(service.clock_in, user_id, request, now)


@router.post("/clock-out", response_model=ClockActionAccepted)
async def clock_out(
    request: Optional[ClockActionRequest] = None,
    user_id: str = Depends(get_current_user_id),
    service: TimeTrackingService = Depends(get_tracking_service),
    now: datetime = Depends(get_now),
):
    """
    Clock out of the open session.

    - Requires authentication
    - Daily and weekly hour caps apply
    """
    return await _run(service.clock_out, user_id, request, now)


@router.post("/start-lunch", response_model=ClockActionAccepted)
async def start_lunch(
    request: Optional[ClockActionRequest] = None,
    user_id: str = Depends(get_current_user_id),
    service: TimeTrackingService = Depends(get_tracking_service),
    now: datetime = Depends(get_now),
):
    """
    Start lunch.

    - Requires authentication
    - Only between 12:00 PM and 8:00 PM local time
    """
    return await _run(service.start_lunch, user_id, request, now)


@router.post("/resume-shift", response_model=ClockActionAccepted)
async def resume_shift(
    request: Optional[ClockActionRequest] = None,
    user_id: str = Depends(get_current_user_id),
    service: TimeTrackingService = Depends(get_tracking_service),
    now: datetime = Depends(get_now),
):
    """
    End lunch and resume the shift.

    - Requires authentication
    - Lunch may last at most two hours
    """
    return await _run(service.resume_shift, user_id, request, now)


@router.get("/current-status", response_model=CurrentStatus)
async def get_current_status(
    user_id: str = Depends(get_current_user_id),
    service: TimeTrackingService = Depends(get_tracking_service),
    now: datetime = Depends(get_now),
):
    """Get the current status and which actions are available."""
    return await service.get_current_status(user_id, now)


@router.get("/today-session", response_model=TodaySession)
async def get_today_session(
    user_id: str = Depends(get_current_user_id),
    service: TimeTrackingService = Depends(get_tracking_service),
    now: datetime = Depends(get_now),
):
    """Get today's session with live totals."""
    return await service.get_today_session(user_id, now)


@router.get("/recent-activities", response_model=list[TimeEvent])
async def get_recent_activities(
    limit: int = Query(5, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    service: TimeTrackingService = Depends(get_tracking_service),
):
    """List the latest time events, most recent first."""
    return await service.get_recent_activities(user_id, limit)


@router.get("/sessions", response_model=SessionPage)
async def list_sessions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: TimeTrackingService = Depends(get_tracking_service),
):
    """
    List work sessions for the authenticated user.

    - Optional filters: start_date, end_date (inclusive)
    - Results sorted by date descending
    """
    return await service.get_user_sessions(
        user_id,
        page=page,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
    )


@router.post("/sessions/{session_id}/revalidate", response_model=SessionIntegrityReport)
async def revalidate_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TimeTrackingService = Depends(get_tracking_service),
):
    """
    Re-check one of the user's sessions against its recorded events.

    - Returns 404 if the session does not exist or belongs to someone else
    """
    report = await service.revalidate_session(session_id, user_id=user_id)

    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Work session not found")

    return report
