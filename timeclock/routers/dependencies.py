"""Shared FastAPI dependencies."""
from datetime import datetime, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from timeclock.config import settings
from timeclock.database import get_database
from timeclock.repositories.clock_repository import ClockRepository
from timeclock.services.rules import WorkRules
from timeclock.services.time_tracking_service import TimeTrackingService
from timeclock.utils.auth import verify_access_token

security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """
    Dependency to get current user ID from JWT token.

    Raises:
        HTTPException: If token is missing or invalid (401)
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    try:
        return verify_access_token(credentials.credentials)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )


def get_now() -> datetime:
    """Current instant. The only place request handling reads the clock."""
    return datetime.now(timezone.utc)


async def get_clock_repository(db=Depends(get_database)) -> ClockRepository:
    """Dependency to get the clock repository."""
    return ClockRepository(db)


async def get_tracking_service(
    repository=Depends(get_clock_repository),
) -> TimeTrackingService:
    """Dependency to get a time tracking service configured from settings."""
    return TimeTrackingService(
        repository,
        rules=WorkRules.from_settings(settings),
        strict_gate=settings.strict_action_gate,
        expected_daily_hours=settings.expected_daily_hours,
        max_conflict_retries=settings.max_conflict_retries,
    )
