from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from pymongo.asynchronous.database import AsyncDatabase

from timekeep.config import Config
from timekeep.core.core import Core
from timekeep.core.modules.identity.extractor import extract_identity
from timekeep.core.modules.identity.models import IdentityContext
from timekeep.core.modules.session.cleanup import CleanupResult
from timekeep.core.modules.session.models import (
    CurrentSessionSignal,
    SessionMetadata,
    SessionRecord,
    SessionValidationResult,
    SessionView,
)
from timekeep.errors import AccessDeniedError, AuthenticationError


class App:
    """Facade for session operations, resolves the caller before delegating to Core.

    Request-time methods take the opaque authorization context supplied by the
    surrounding framework.
    """

    def __init__(self, config: Config, database: AsyncDatabase[dict[str, Any]] | None = None) -> None:
        self._core = Core(config, database)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Application lifespan management - delegates to Core."""
        async with self._core.lifespan():
            yield

    async def create_session(self, authorizer: Any, metadata: SessionMetadata) -> SessionRecord:
        """Record a session for the authenticated caller."""
        identity = self._require_identity(authorizer)
        return await self._core.services.session.create_session(identity.user_id, metadata)

    async def list_sessions(
        self, authorizer: Any, user_id: str, signal: CurrentSessionSignal | None = None
    ) -> list[SessionView]:
        """List the caller's own usable sessions."""
        self._require_self(authorizer, user_id)
        return await self._core.services.session.list_user_sessions(user_id, signal)

    async def terminate_session(
        self, authorizer: Any, user_id: str, session_id: str, signal: CurrentSessionSignal | None = None
    ) -> None:
        """Terminate one of the caller's sessions other than the current one."""
        self._require_self(authorizer, user_id)
        await self._core.services.session.terminate_session(user_id, session_id, signal)

    async def terminate_other_sessions(self, authorizer: Any, signal: CurrentSessionSignal | None = None) -> int:
        """Terminate all of the caller's sessions except the current one."""
        identity = self._require_identity(authorizer)
        return await self._core.services.session.terminate_other_sessions(identity.user_id, signal)

    async def logout(self, authorizer: Any, session_id: str) -> None:
        """End the caller's session."""
        identity = self._require_identity(authorizer)
        record = await self._core.services.store.get(session_id)
        if record is not None and record.user_id != identity.user_id:
            raise AccessDeniedError("You can only log out of your own sessions")
        await self._core.services.session.logout(session_id)

    async def validate_sessions(self, authorizer: Any) -> SessionValidationResult:
        """Report whether the caller still holds a usable session."""
        identity = self._require_identity(authorizer)
        return await self._core.services.session.validate_user_sessions(identity.user_id)

    async def run_cleanup(self, now: datetime | None = None) -> CleanupResult:
        """Run one cleanup pass over all sessions."""
        return await self._core.services.cleanup.run(now)

    def _require_identity(self, authorizer: Any) -> IdentityContext:
        identity = extract_identity(authorizer)
        if identity is None:
            raise AuthenticationError
        return identity

    def _require_self(self, authorizer: Any, user_id: str) -> IdentityContext:
        identity = self._require_identity(authorizer)
        if identity.user_id != user_id:
            raise AccessDeniedError("You can only manage your own sessions")
        return identity
