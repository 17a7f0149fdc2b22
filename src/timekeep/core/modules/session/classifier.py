"""Keep-or-reclaim decisions for session records."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from timekeep.core.modules.session.models import DEFAULT_SESSION_TIMEOUT, SessionRecord, UnparsedSession
from timekeep.errors import ClassificationError

RETENTION_PERIOD = timedelta(days=30)


class ReclaimReason(StrEnum):
    """Why a session record is removed. Timeout-derived expiry reports as EXPIRED."""

    EXPIRED = "expired"
    INACTIVE = "inactive"
    ORPHANED = "orphaned"


@dataclass(frozen=True)
class Keep:
    """The record stays."""


@dataclass(frozen=True)
class Reclaim:
    """The record is deleted for `reason`."""

    reason: ReclaimReason


Verdict = Keep | Reclaim

KEEP = Keep()


def classify(
    record: SessionRecord,
    now: datetime,
    *,
    default_timeout: int = DEFAULT_SESSION_TIMEOUT,
    retention: timedelta = RETENTION_PERIOD,
) -> Verdict:
    """Decide whether a record should be reclaimed at `now`.

    Rules, first match wins:
        1. expires_at has passed -> EXPIRED
        2. is_active is False -> INACTIVE
        3. idle longer than session_timeout minutes -> EXPIRED
        4. created at least `retention` ago -> ORPHANED

    Raises:
        ClassificationError: If rules 1-2 do not apply and the record has no
            creation or activity timestamp to evaluate rules 3-4 against.
    """
    if record.expires_at is not None and record.expires_at <= now:
        return Reclaim(ReclaimReason.EXPIRED)

    if record.is_active is False:
        return Reclaim(ReclaimReason.INACTIVE)

    started_at = record.started_at
    if record.last_seen is None and started_at is None:
        raise ClassificationError(f"Session '{record.session_id}' has no usable timestamps")

    if record.is_idle(now, default_timeout):
        return Reclaim(ReclaimReason.EXPIRED)

    if started_at is not None and started_at <= now - retention:
        return Reclaim(ReclaimReason.ORPHANED)

    return KEEP


def classify_unparsed(document: UnparsedSession, now: datetime, *, retention: timedelta = RETENTION_PERIOD) -> Verdict:
    """Apply the retention rule to a document that could not be read as a record.

    Only its raw creation time is trusted, so the other rules never match.
    """
    if document.started_at is not None and document.started_at <= now - retention:
        return Reclaim(ReclaimReason.ORPHANED)
    return KEEP
