from collections.abc import AsyncIterator, Collection
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError

from timekeep.core.modules.session.models import SessionRecord, UnparsedSession
from timekeep.errors import StoreError

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 100


class SessionStore:
    """Point operations and paginated scans over the session collection."""

    def __init__(self, collection: AsyncCollection[dict[str, Any]], page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self._collection = collection
        self._page_size = page_size

    async def on_start(self) -> None:
        """Create indexes on startup."""
        # Secondary lookup path for listing a user's sessions
        await self._collection.create_index([("user_id", 1)])

    async def scan_all(self) -> AsyncIterator[SessionRecord | UnparsedSession]:
        """Yield every stored session, one bounded page at a time.

        Documents that fail validation are yielded as UnparsedSession so the
        caller can count them and still apply retention to them. Pages are
        keyed by the last `_id` seen. A failed page read ends the scan early;
        callers get a partial view instead of an error.
        """
        last_id: Any = None
        pages = 0
        while True:
            query = {} if last_id is None else {"_id": {"$gt": last_id}}
            try:
                page = await self._collection.find(query).sort("_id", 1).limit(self._page_size).to_list()
            except PyMongoError as e:
                logger.exception("session_scan_failed", pages_read=pages, error=str(e))
                return

            pages += 1
            for doc in page:
                yield self._read(doc)

            if len(page) < self._page_size:
                logger.debug("session_scan_finished", pages_read=pages)
                return
            last_id = page[-1]["_id"]

    async def get(self, session_id: str) -> SessionRecord | None:
        try:
            doc = await self._collection.find_one({"_id": session_id})
        except PyMongoError as e:
            raise StoreError(f"Failed to read session '{session_id}'") from e
        return SessionRecord.model_validate(doc) if doc is not None else None

    async def put(self, record: SessionRecord) -> SessionRecord:
        """Insert or replace a record by its session id."""
        try:
            await self._collection.replace_one({"_id": record.session_id}, record.to_mongo(), upsert=True)
        except PyMongoError as e:
            raise StoreError(f"Failed to save session '{record.session_id}'") from e
        return record

    async def delete(self, session_id: str) -> bool:
        """Delete a record. Returns False if it was already gone."""
        try:
            result = await self._collection.delete_one({"_id": session_id})
        except PyMongoError as e:
            raise StoreError(f"Failed to delete session '{session_id}'") from e
        return result.deleted_count > 0

    async def list_by_user(self, user_id: str) -> list[SessionRecord]:
        """All records of one user, most recent login first."""
        try:
            docs = await self._collection.find({"user_id": user_id}).sort("login_time", -1).to_list()
        except PyMongoError as e:
            raise StoreError(f"Failed to list sessions of user '{user_id}'") from e
        return [record for doc in docs if isinstance(record := self._read(doc), SessionRecord)]

    async def deactivate(self, session_ids: Collection[str], reason: str, now: datetime) -> int:
        """Mark records inactive without deleting them. Returns the number updated."""
        if not session_ids:
            return 0
        try:
            result = await self._collection.update_many(
                {"_id": {"$in": list(session_ids)}},
                {"$set": {"is_active": False, "invalidation_reason": reason, "updated_at": now}},
            )
        except PyMongoError as e:
            raise StoreError("Failed to deactivate sessions") from e
        return result.modified_count

    @staticmethod
    def _read(doc: dict[str, Any]) -> SessionRecord | UnparsedSession:
        try:
            return SessionRecord.model_validate(doc)
        except ValidationError as e:
            logger.warning("session_record_invalid", session_id=doc.get("_id"), error=str(e))
            return UnparsedSession.from_document(doc, str(e))
