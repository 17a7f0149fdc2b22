import time
from datetime import datetime, timedelta

import structlog
from pydantic import BaseModel, Field

from timekeep.core.modules.session.classifier import (
    RETENTION_PERIOD,
    Keep,
    Reclaim,
    ReclaimReason,
    Verdict,
    classify,
    classify_unparsed,
)
from timekeep.core.modules.session.models import DEFAULT_SESSION_TIMEOUT, SessionRecord, UnparsedSession
from timekeep.core.modules.session.reclaim import ReclaimEngine
from timekeep.core.modules.session.store import SessionStore
from timekeep.errors import ClassificationError
from timekeep.utils import now as utc_now

logger = structlog.get_logger(__name__)


class CleanupResult(BaseModel):
    """Counters reported by one cleanup run."""

    total_sessions: int = Field(0, description="Records seen by the scan")
    expired_sessions: int = Field(0, description="Reclaimed for absolute or idle-timeout expiry")
    inactive_sessions: int = Field(0, description="Reclaimed because they were deactivated")
    orphaned_sessions: int = Field(0, description="Reclaimed for exceeding the retention period")
    deleted_sessions: int = Field(0, description="Deletions confirmed by the store")
    errors: int = Field(0, description="Unreadable or unclassifiable documents plus failed deletes")


class CleanupJob:
    """Scans all sessions, classifies them and reclaims the dead ones.

    Holds no state between runs, so running it again is always safe.
    """

    def __init__(
        self,
        store: SessionStore,
        engine: ReclaimEngine,
        default_timeout: int = DEFAULT_SESSION_TIMEOUT,
        retention: timedelta = RETENTION_PERIOD,
    ) -> None:
        self._store = store
        self._engine = engine
        self._default_timeout = default_timeout
        self._retention = retention

    async def run(self, now: datetime | None = None) -> CleanupResult:
        started = time.monotonic()
        current_time = now or utc_now()
        result = CleanupResult()
        candidates: list[str] = []

        logger.info("session_cleanup_started", now=current_time.isoformat())

        async for record in self._store.scan_all():
            result.total_sessions += 1
            verdict = self._classify(record, current_time)
            if isinstance(record, UnparsedSession):
                # Counted as an error even when retention reclaims it
                result.errors += 1
            if verdict is None:
                result.errors += 1
                continue

            match verdict:
                case Keep():
                    continue
                case Reclaim(reason=ReclaimReason.EXPIRED):
                    result.expired_sessions += 1
                case Reclaim(reason=ReclaimReason.INACTIVE):
                    result.inactive_sessions += 1
                case Reclaim(reason=ReclaimReason.ORPHANED):
                    result.orphaned_sessions += 1
            candidates.append(record.session_id)

        if result.total_sessions == 0:
            logger.info("session_cleanup_empty", duration=round(time.monotonic() - started, 3))
            return result

        logger.info(
            "session_cleanup_analyzed",
            total_sessions=result.total_sessions,
            candidates=len(candidates),
            classification_errors=result.errors,
        )

        if candidates:
            result.deleted_sessions = await self._engine.reclaim(candidates)
            # Candidates the engine could not delete stay behind for the next run
            result.errors += len(candidates) - result.deleted_sessions

        logger.info("session_cleanup_completed", **result.model_dump(), duration=round(time.monotonic() - started, 3))
        return result

    def _classify(self, record: SessionRecord | UnparsedSession, now: datetime) -> Verdict | None:
        """Verdict for one scanned item, or None if the record cannot be classified."""
        if isinstance(record, UnparsedSession):
            return classify_unparsed(record, now, retention=self._retention)
        try:
            return classify(record, now, default_timeout=self._default_timeout, retention=self._retention)
        except ClassificationError as e:
            logger.warning("session_classification_failed", session_id=record.session_id, error=str(e))
            return None
