"""Re-validate every work session of a user against its recorded events.

Rule limits and the time zone come from the application settings
(environment / .env), the same as for the API.

Usage:
    python scripts/revalidate_sessions.py <mongodb_url> <user_id> [db_name]
"""
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from motor.motor_asyncio import AsyncIOMotorClient

from timeclock.config import settings
from timeclock.repositories.clock_repository import ClockRepository
from timeclock.services.rules import WorkRules
from timeclock.services.time_tracking_service import TimeTrackingService

PAGE_SIZE = 100

logger = logging.getLogger("revalidate_sessions")


def build_service(db) -> TimeTrackingService:
    """Tracking service over a database, with rules from settings."""
    return TimeTrackingService(
        ClockRepository(db),
        rules=WorkRules.from_settings(settings),
    )


async def revalidate_user_sessions(service: TimeTrackingService, user_id: str) -> int:
    """Revalidate all sessions of a user. Returns the number of invalid sessions."""
    invalid = 0
    page = 1

    while True:
        result = await service.get_user_sessions(user_id, page=page, limit=PAGE_SIZE)
        for session in result.sessions:
            report = await service.revalidate_session(session.id)
            if report and not report.is_valid:
                invalid += 1
                logger.info("%s %s: %s", session.date, session.id, "; ".join(report.errors))
        if not result.has_next:
            break
        page += 1

    return invalid


async def revalidate_sessions(mongodb_url: str, user_id: str, db_name: str) -> int:
    """Connect to MongoDB and revalidate a user's sessions."""
    client = AsyncIOMotorClient(mongodb_url, tz_aware=True)
    try:
        invalid = await revalidate_user_sessions(build_service(client[db_name]), user_id)
    finally:
        client.close()

    logger.info("Done! %d invalid session(s)", invalid)
    return invalid


if __name__ == "__main__":
    if len(sys.argv) not in (3, 4):
        print("Usage: python revalidate_sessions.py <mongodb_url> <user_id> [db_name]")
        sys.exit(1)

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    db_name = sys.argv[3] if len(sys.argv) == 4 else settings.mongodb_db_name
    asyncio.run(revalidate_sessions(sys.argv[1], sys.argv[2], db_name))
