"""Clock repository - MongoDB storage for time events and work sessions."""
import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from timeclock.exceptions import ConcurrencyConflictError
from timeclock.models.time_event import EventKind, TimeEvent, TimeEventCreate
from timeclock.models.work_session import OPEN_STATUSES, SessionStatus, WorkSession
from timeclock.utils.timezone import from_storage

logger = logging.getLogger(__name__)

SESSION_TIME_FIELDS = (
    "clock_in_time",
    "clock_out_time",
    "lunch_start_time",
    "lunch_end_time",
)


def _to_storage(value: Any) -> Any:
    """Convert a model value into something BSON can hold."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return value.isoformat()
    return value


def _object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


class ClockRepository:
    """Repository for time events and work sessions."""

    def __init__(self, db):
        """Initialize repository with database connection."""
        self.db = db
        self.time_events = db["time_events"]
        self.work_sessions = db["work_sessions"]

    def _doc_to_event(self, doc: dict) -> TimeEvent:
        """
        Convert database document to TimeEvent model.
        """
        return TimeEvent(
            _id=str(doc["_id"]),
            user_id=doc["user_id"],
            kind=doc["kind"],
            timestamp=from_storage(doc["timestamp"]),
            date=doc["date"],
            timezone=doc["timezone"],
            is_valid=doc.get("is_valid", True),
            created_at=from_storage(doc["created_at"]),
        )

    def _doc_to_session(self, doc: dict) -> WorkSession:
        """
        Convert database document to WorkSession model.
        """
        return WorkSession(
            _id=str(doc["_id"]),
            user_id=doc["user_id"],
            date=doc["date"],
            status=doc.get("status", SessionStatus.ACTIVE.value),
            clock_in_time=from_storage(doc.get("clock_in_time")),
            clock_out_time=from_storage(doc.get("clock_out_time")),
            lunch_start_time=from_storage(doc.get("lunch_start_time")),
            lunch_end_time=from_storage(doc.get("lunch_end_time")),
            total_work_minutes=doc.get("total_work_minutes", 0),
            total_lunch_minutes=doc.get("total_lunch_minutes", 0),
            total_work_hours=doc.get("total_work_hours", 0.0),
            carried_work_minutes=doc.get("carried_work_minutes", 0),
            carried_lunch_minutes=doc.get("carried_lunch_minutes", 0),
            is_valid_session=doc.get("is_valid_session", True),
            validation_errors=doc.get("validation_errors") or [],
            created_at=from_storage(doc["created_at"]),
            updated_at=from_storage(doc["updated_at"]),
        )

    async def ensure_indexes(self) -> None:
        """
        Create the indexes that back per-user serialization.

        - one session per (user_id, date)
        - at most one open session per user, across dates
        """
        await self.work_sessions.create_index(
            [("user_id", ASCENDING), ("date", ASCENDING)],
            unique=True,
            name="user_date_unique",
        )
        await self.work_sessions.create_index(
            [("user_id", ASCENDING)],
            unique=True,
            partialFilterExpression={"open": True},
            name="one_open_session_per_user",
        )
        await self.time_events.create_index(
            [("user_id", ASCENDING), ("kind", ASCENDING), ("timestamp", DESCENDING)],
            name="user_kind_timestamp",
        )
        logger.info("Clock repository indexes ensured")

    # Time events

    async def create_event(self, event: TimeEventCreate) -> TimeEvent:
        """
        Store a new time event.

        Args:
            event: Event data

        Returns:
            Created event
        """
        event_doc = {
            "user_id": event.user_id,
            "kind": event.kind.value,
            "timestamp": event.timestamp,
            "date": event.date.isoformat(),
            "timezone": event.timezone,
            "is_valid": True,
            "created_at": datetime.now(timezone.utc),
        }

        result = await self.time_events.insert_one(event_doc)
        event_doc["_id"] = result.inserted_id

        return self._doc_to_event(event_doc)

    async def find_last_event_by_user_and_kind(
        self,
        user_id: str,
        kind: EventKind,
    ) -> Optional[TimeEvent]:
        """Most recent event of a kind for a user, of any date."""
        doc = await self.time_events.find_one(
            {"user_id": user_id, "kind": kind.value},
            sort=[("timestamp", DESCENDING)],
        )

        if not doc:
            return None

        return self._doc_to_event(doc)

    async def find_recent_events(self, user_id: str, limit: int) -> list[TimeEvent]:
        """Latest events of a user, newest first."""
        cursor = (
            self.time_events.find({"user_id": user_id})
            .sort("timestamp", DESCENDING)
            .limit(limit)
        )
        event_docs = await cursor.to_list(length=limit)

        return [self._doc_to_event(doc) for doc in event_docs]

    async def find_events_by_user_and_date(
        self,
        user_id: str,
        day: date,
    ) -> list[TimeEvent]:
        """Events of a user on a local date, oldest first."""
        cursor = self.time_events.find(
            {"user_id": user_id, "date": day.isoformat()}
        ).sort("timestamp", ASCENDING)
        event_docs = await cursor.to_list(length=None)

        return [self._doc_to_event(doc) for doc in event_docs]

    # Work sessions

    async def find_session_by_id(self, session_id: str) -> Optional[WorkSession]:
        """Look up a session by ID. Malformed IDs are treated as missing."""
        object_id = _object_id(session_id)
        if object_id is None:
            return None

        doc = await self.work_sessions.find_one({"_id": object_id})

        if not doc:
            return None

        return self._doc_to_session(doc)

    async def find_session_by_user_and_date(
        self,
        user_id: str,
        day: date,
    ) -> Optional[WorkSession]:
        """The session a user started on a local date, if any."""
        doc = await self.work_sessions.find_one(
            {"user_id": user_id, "date": day.isoformat()}
        )

        if not doc:
            return None

        return self._doc_to_session(doc)

    async def find_open_session(self, user_id: str) -> Optional[WorkSession]:
        """The user's active or on-lunch session, whatever its date."""
        doc = await self.work_sessions.find_one({"user_id": user_id, "open": True})

        if not doc:
            return None

        return self._doc_to_session(doc)

    async def create_session(
        self,
        user_id: str,
        day: date,
        fields: Optional[dict[str, Any]] = None,
    ) -> WorkSession:
        """
        Create an active session for a user and local date.

        The first stint (clock-in time, status, totals) is written by the
        same insert that claims the unique indexes.

        Args:
            user_id: User ID
            day: Local date the session starts on
            fields: Initial field values

        Raises:
            ConcurrencyConflictError: If the user already has a session on
                that date or another open session
        """
        now = datetime.now(timezone.utc)
        session_doc = {
            "user_id": user_id,
            "date": day.isoformat(),
            "status": SessionStatus.ACTIVE.value,
            "open": True,
            "clock_in_time": None,
            "clock_out_time": None,
            "lunch_start_time": None,
            "lunch_end_time": None,
            "total_work_minutes": 0,
            "total_lunch_minutes": 0,
            "total_work_hours": 0.0,
            "carried_work_minutes": 0,
            "carried_lunch_minutes": 0,
            "is_valid_session": True,
            "validation_errors": [],
            "created_at": now,
            "updated_at": now,
        }
        for key, value in (fields or {}).items():
            session_doc[key] = _to_storage(value)
        session_doc["open"] = SessionStatus(session_doc["status"]) in OPEN_STATUSES

        try:
            result = await self.work_sessions.insert_one(session_doc)
        except DuplicateKeyError as e:
            raise ConcurrencyConflictError(
                f"User {user_id} already has a session on {day} or an open session"
            ) from e

        session_doc["_id"] = result.inserted_id

        return self._doc_to_session(session_doc)

    async def update_session(
        self,
        session_id: str,
        fields: dict[str, Any],
    ) -> Optional[WorkSession]:
        """
        Update fields of a session.

        Args:
            session_id: Session ID
            fields: Field values to set

        Returns:
            Updated session, or None if it does not exist

        Raises:
            ConcurrencyConflictError: If the update would open a second
                session for the user
        """
        object_id = _object_id(session_id)
        if object_id is None:
            return None

        update_doc = {key: _to_storage(value) for key, value in fields.items()}
        if "status" in fields:
            update_doc["open"] = SessionStatus(fields["status"]) in OPEN_STATUSES
        update_doc["updated_at"] = datetime.now(timezone.utc)

        try:
            updated_doc = await self.work_sessions.find_one_and_update(
                {"_id": object_id},
                {"$set": update_doc},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise ConcurrencyConflictError(
                f"Session {session_id} conflicts with another open session"
            ) from e

        if not updated_doc:
            return None

        return self._doc_to_session(updated_doc)

    async def find_sessions_by_user_and_date_range(
        self,
        user_id: str,
        start: date,
        end: date,
    ) -> list[WorkSession]:
        """Sessions of a user dated between start and end, inclusive."""
        cursor = self.work_sessions.find(
            {
                "user_id": user_id,
                "date": {"$gte": start.isoformat(), "$lte": end.isoformat()},
            }
        ).sort("date", ASCENDING)
        session_docs = await cursor.to_list(length=None)

        return [self._doc_to_session(doc) for doc in session_docs]

    async def page_sessions_by_user(
        self,
        user_id: str,
        skip: int,
        limit: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> tuple[list[WorkSession], int]:
        """
        Page through a user's sessions, newest date first.

        Returns:
            The page of sessions and the total number of matching sessions
        """
        query: dict[str, Any] = {"user_id": user_id}

        if start or end:
            query["date"] = {}
            if start:
                query["date"]["$gte"] = start.isoformat()
            if end:
                query["date"]["$lte"] = end.isoformat()

        total = await self.work_sessions.count_documents(query)
        cursor = (
            self.work_sessions.find(query)
            .sort("date", DESCENDING)
            .skip(skip)
            .limit(limit)
        )
        session_docs = await cursor.to_list(length=limit)

        return [self._doc_to_session(doc) for doc in session_docs], total
