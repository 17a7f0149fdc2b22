from collections.abc import Sequence
from datetime import datetime, timedelta

import structlog

from timekeep.core.modules.session.models import (
    DEFAULT_SESSION_TIMEOUT,
    CurrentSessionSignal,
    SessionMetadata,
    SessionRecord,
    SessionValidationResult,
    SessionView,
)
from timekeep.core.modules.session.store import SessionStore
from timekeep.core.modules.session.validators import validate_ip_address, validate_login_time, validate_user_agent
from timekeep.errors import AccessDeniedError, NotFoundError, StoreError, ValidationError
from timekeep.utils import now as utc_now

logger = structlog.get_logger(__name__)


def resolve_current_session(
    sessions: Sequence[SessionRecord], signal: CurrentSessionSignal | None
) -> SessionRecord | None:
    """Pick the session that made the current request, if the signal identifies one."""
    if signal is None:
        return None

    if signal.session_id:
        return next((s for s in sessions if s.session_id == signal.session_id), None)

    if signal.session_identifier:
        match = next((s for s in sessions if s.session_identifier == signal.session_identifier), None)
        if match is not None:
            return match

    if signal.user_agent and signal.ip_address:
        candidates = [s for s in sessions if s.user_agent == signal.user_agent and s.ip_address == signal.ip_address]
        if candidates:
            return max(candidates, key=SessionRecord.recency_key)

    return None


class SessionService:
    """Creates session records and manages a user's set of sessions."""

    def __init__(self, store: SessionStore, default_timeout: int = DEFAULT_SESSION_TIMEOUT) -> None:
        self._store = store
        self._default_timeout = default_timeout

    async def create_session(
        self, user_id: str, metadata: SessionMetadata, now: datetime | None = None
    ) -> SessionRecord:
        """Record a new session after a successful login.

        Existing sessions of the user are left alone; any number may be active.
        """
        current_time = now or utc_now()
        login_time = metadata.login_time or current_time

        validate_user_agent(metadata.user_agent)
        if metadata.ip_address is not None:
            validate_ip_address(metadata.ip_address)
        validate_login_time(login_time, current_time)

        timeout = metadata.session_timeout or self._default_timeout
        record = SessionRecord(
            user_id=user_id,
            session_identifier=metadata.session_identifier,
            user_agent=metadata.user_agent,
            ip_address=metadata.ip_address,
            location=metadata.location,
            created_at=current_time,
            login_time=login_time,
            last_activity=login_time,
            expires_at=login_time + timedelta(minutes=timeout),
            session_timeout=timeout,
            is_active=True,
            updated_at=current_time,
        )
        await self._store.put(record)
        logger.info("session_created", session_id=record.session_id, user_id=user_id)
        return record

    async def get_session(self, session_id: str) -> SessionRecord:
        record = await self._store.get(session_id)
        if record is None:
            raise NotFoundError(f"Session '{session_id}' not found")
        return record

    async def get_usable_sessions(self, user_id: str, now: datetime | None = None) -> list[SessionRecord]:
        """Sessions of the user that are active, unexpired and not idle past their timeout."""
        current_time = now or utc_now()
        return [
            s for s in await self._store.list_by_user(user_id) if s.is_usable(current_time, self._default_timeout)
        ]

    async def validate_user_sessions(self, user_id: str, now: datetime | None = None) -> SessionValidationResult:
        """Check whether the user still holds a usable session.

        Active, unexpired sessions that sat idle past their timeout are marked
        inactive with reason "expired" so cleanup reclaims them. A store failure
        is reported in the result as having no active sessions.
        """
        current_time = now or utc_now()
        try:
            sessions = await self._store.list_by_user(user_id)
            live = [
                s for s in sessions if s.is_active is True and s.expires_at is not None and s.expires_at > current_time
            ]
            idle = [s.session_id for s in live if s.is_idle(current_time, self._default_timeout)]
            if idle:
                await self._store.deactivate(idle, "expired", current_time)
                logger.info("sessions_idle_expired", user_id=user_id, count=len(idle))
        except StoreError as e:
            logger.warning("session_validation_failed", user_id=user_id, error=str(e))
            return SessionValidationResult(has_active_sessions=False, error_message=str(e))

        count = len(live) - len(idle)
        return SessionValidationResult(has_active_sessions=count > 0, session_count=count)

    async def list_user_sessions(
        self, user_id: str, signal: CurrentSessionSignal | None = None, now: datetime | None = None
    ) -> list[SessionView]:
        """List usable sessions, current one first, then by most recent activity."""
        sessions = await self.get_usable_sessions(user_id, now)
        current = resolve_current_session(sessions, signal)

        sessions.sort(key=SessionRecord.recency_key, reverse=True)
        sessions.sort(key=lambda s: s is not current)
        return [SessionView.from_domain(s, is_current=s is current) for s in sessions]

    async def terminate_session(
        self, user_id: str, session_id: str, signal: CurrentSessionSignal | None = None, now: datetime | None = None
    ) -> None:
        """Deactivate one of the user's sessions. The current session cannot be terminated."""
        current_time = now or utc_now()
        record = await self.get_session(session_id)
        if record.user_id != user_id:
            raise AccessDeniedError("You can only terminate your own sessions")

        current = resolve_current_session(await self.get_usable_sessions(user_id, current_time), signal)
        if current is not None and current.session_id == session_id:
            raise ValidationError("Cannot terminate the current session")

        await self._store.deactivate([session_id], "terminated_by_user", current_time)
        logger.info("session_terminated", session_id=session_id, user_id=user_id)

    async def terminate_other_sessions(
        self, user_id: str, signal: CurrentSessionSignal | None = None, now: datetime | None = None
    ) -> int:
        """Deactivate every usable session of the user except the current one."""
        current_time = now or utc_now()
        sessions = await self.get_usable_sessions(user_id, current_time)
        current = resolve_current_session(sessions, signal)

        others = [s.session_id for s in sessions if s is not current]
        count = await self._store.deactivate(others, "terminated_by_user", current_time)
        logger.info("sessions_terminated", user_id=user_id, count=count)
        return count

    async def logout(self, session_id: str, now: datetime | None = None) -> None:
        """Deactivate the session that is logging out. Unknown ids are ignored."""
        count = await self._store.deactivate([session_id], "logout", now or utc_now())
        logger.info("session_logged_out", session_id=session_id, found=count > 0)
