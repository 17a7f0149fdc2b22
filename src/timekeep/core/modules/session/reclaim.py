import asyncio
from collections.abc import Iterable, Sequence
from itertools import batched

import structlog

from timekeep.config import MAX_RECLAIM_BATCH_SIZE
from timekeep.core.modules.session.store import SessionStore

logger = structlog.get_logger(__name__)


class ReclaimEngine:
    """Deletes session records in paced, bounded batches."""

    def __init__(
        self, store: SessionStore, batch_size: int = MAX_RECLAIM_BATCH_SIZE, batch_delay: float = 0.1
    ) -> None:
        if not 1 <= batch_size <= MAX_RECLAIM_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_RECLAIM_BATCH_SIZE}")
        self._store = store
        self._batch_size = batch_size
        self._batch_delay = batch_delay

    async def reclaim(self, session_ids: Iterable[str]) -> int:
        """Delete the given sessions and return how many deletions were confirmed.

        Each batch fans out one delete per id and waits for all of them. Ids
        whose delete failed are retried one at a time. Errors are logged, never
        raised.
        """
        unique_ids = list(dict.fromkeys(session_ids))
        batches = list(batched(unique_ids, self._batch_size))
        deleted = 0

        for index, batch in enumerate(batches):
            deleted += await self._delete_batch(batch)
            logger.debug("session_batch_deleted", batch=index + 1, batches=len(batches), deleted=deleted)
            if index < len(batches) - 1:
                await asyncio.sleep(self._batch_delay)

        return deleted

    async def _delete_batch(self, batch: Sequence[str]) -> int:
        deletes = (self._store.delete(session_id) for session_id in batch)
        outcomes = await asyncio.gather(*deletes, return_exceptions=True)
        errors = {
            session_id: outcome
            for session_id, outcome in zip(batch, outcomes, strict=True)
            if isinstance(outcome, BaseException)
        }
        if not errors:
            return len(batch)

        logger.warning(
            "session_batch_delete_failed",
            batch_size=len(batch),
            failed=len(errors),
            error=str(next(iter(errors.values()))),
        )
        # Only the failed ids are retried
        return len(batch) - len(errors) + await self._delete_individually(list(errors))

    async def _delete_individually(self, batch: Sequence[str]) -> int:
        deleted = 0
        for session_id in batch:
            try:
                await self._store.delete(session_id)
            except Exception:
                logger.exception("session_delete_failed", session_id=session_id)
                continue
            deleted += 1
        return deleted
