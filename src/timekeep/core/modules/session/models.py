"""Session record models."""

from datetime import UTC, datetime, timedelta
from typing import Annotated, Any, NewType
from uuid import uuid4

from pydantic import BaseModel, BeforeValidator, Field

from timekeep.core.db import MongoModel
from timekeep.utils import parse_timestamp

SessionId = NewType("SessionId", str)

DEFAULT_SESSION_TIMEOUT = 480  # Minutes (8 hours)

# Legacy records may hold ISO strings or garbage; unparsable values read as absent
Timestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]

_EPOCH = datetime.min.replace(tzinfo=UTC)


def new_session_id() -> SessionId:
    return SessionId(str(uuid4()))


class Location(BaseModel):
    """Approximate client location derived from the IP address."""

    city: str
    country: str


class SessionRecord(MongoModel):
    """Server-side record of one authenticated session.

    Keyed by session_id (stored as _id), indexed on user_id.
    """

    session_id: SessionId = Field(alias="_id", default_factory=new_session_id)
    user_id: str
    session_identifier: str | None = None  # Token-derived value (e.g. JWT jti) correlating requests to this record
    user_agent: str | None = None
    ip_address: str | None = None
    location: Location | None = None
    created_at: Timestamp = None
    login_time: Timestamp = None  # Legacy creation timestamp
    last_activity: Timestamp = None
    expires_at: Timestamp = None
    session_timeout: int | None = None  # Minutes; unset means the configured default
    is_active: bool | None = None  # Only an explicit True makes the record usable
    updated_at: Timestamp = None
    invalidation_reason: str | None = None

    @property
    def started_at(self) -> datetime | None:
        """Creation time, falling back to the legacy login time."""
        return self.created_at or self.login_time

    @property
    def last_seen(self) -> datetime | None:
        """Last activity, falling back to the login time."""
        return self.last_activity or self.login_time

    def is_idle(self, now: datetime, default_timeout: int = DEFAULT_SESSION_TIMEOUT) -> bool:
        """Whether the record has seen no activity for longer than its timeout."""
        last_seen = self.last_seen
        timeout = timedelta(minutes=self.session_timeout or default_timeout)
        return last_seen is not None and now - last_seen > timeout

    def is_usable(self, now: datetime, default_timeout: int = DEFAULT_SESSION_TIMEOUT) -> bool:
        """Whether the record may back an authorized request at `now`."""
        if self.is_active is not True or self.expires_at is None or self.expires_at <= now:
            return False
        return not self.is_idle(now, default_timeout)

    def recency_key(self) -> datetime:
        return self.last_seen or _EPOCH


class UnparsedSession(BaseModel):
    """A stored document that could not be read as a SessionRecord."""

    session_id: Any
    started_at: datetime | None = None  # Best-effort creation time from the raw document
    error: str

    @classmethod
    def from_document(cls, doc: dict[str, Any], error: str) -> "UnparsedSession":
        return cls(
            session_id=doc.get("_id"),
            started_at=parse_timestamp(doc.get("created_at")) or parse_timestamp(doc.get("login_time")),
            error=error,
        )


class SessionValidationResult(BaseModel):
    """Whether a user still holds any usable session."""

    has_active_sessions: bool = Field(..., description="At least one session is usable")
    session_count: int = Field(0, description="Number of usable sessions")
    error_message: str | None = Field(None, description="Set when the sessions could not be read")


class SessionMetadata(BaseModel):
    """Client details supplied when a session is created."""

    user_agent: str = "Unknown"
    ip_address: str | None = None
    location: Location | None = None
    session_identifier: str | None = None
    login_time: datetime | None = None
    session_timeout: int | None = None


class CurrentSessionSignal(BaseModel):
    """What the current request tells us about the session it belongs to.

    Checked in order: explicit session id, token-derived identifier, then the
    user agent and IP address pair.
    """

    session_id: str | None = None
    session_identifier: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None


class SessionView(BaseModel):
    """Session information (API representation)."""

    id: str = Field(..., description="Session ID")
    ip_address: str = Field(..., description="Client IP address")
    user_agent: str = Field(..., description="Client user agent")
    login_time: datetime | None = Field(None, description="When the session was created")
    last_activity: datetime | None = Field(None, description="When the session was last used")
    is_current: bool = Field(..., description="Whether this session made the current request")
    location: Location | None = Field(None, description="Approximate client location")

    @classmethod
    def from_domain(cls, record: SessionRecord, is_current: bool) -> "SessionView":
        """Create view model from domain model."""
        return cls(
            id=record.session_id,
            ip_address=record.ip_address or "Unknown",
            user_agent=record.user_agent or "Unknown",
            login_time=record.login_time or record.created_at,
            last_activity=record.last_seen,
            is_current=is_current,
            location=record.location,
        )
