"""Tests for the App facade wired to an in-memory database."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from timekeep.app import App
from timekeep.core.core import Core
from timekeep.core.modules.session.models import CurrentSessionSignal, SessionMetadata
from timekeep.errors import AccessDeniedError, AuthenticationError
from timekeep.utils import now as utc_now


@pytest.fixture
def app(config, database):
    return App(config, database)


@pytest.fixture
def sessions(database, config):
    return database.get_collection(config.sessions_collection)


ALICE = {"userId": "alice", "email": "alice@example.com", "role": "employee"}
BOB = {"userId": "bob", "role": "manager"}


class TestRequestPath:
    """Tests for the request-time operations."""

    async def test_lifespan_creates_index(self, app, sessions):
        async with app.lifespan():
            pass
        assert sessions.indexes == [[("user_id", 1)]]

    async def test_create_and_list(self, app):
        """Test that a caller can create several sessions and list them."""
        first = await app.create_session(ALICE, SessionMetadata(user_agent="Firefox", session_identifier="jti-1"))
        await app.create_session(ALICE, SessionMetadata(user_agent="Chrome", session_identifier="jti-2"))

        views = await app.list_sessions(ALICE, "alice", CurrentSessionSignal(session_identifier="jti-1"))

        assert len(views) == 2
        assert views[0].id == first.session_id
        assert views[0].is_current is True

    async def test_missing_identity(self, app):
        """Test that requests without an identity are rejected."""
        with pytest.raises(AuthenticationError):
            await app.create_session(None, SessionMetadata())
        with pytest.raises(AuthenticationError):
            await app.list_sessions({"role": "admin"}, "alice")

    async def test_cannot_manage_other_users_sessions(self, app):
        """Test that callers only see and terminate their own sessions."""
        record = await app.create_session(ALICE, SessionMetadata(user_agent="Firefox"))

        with pytest.raises(AccessDeniedError):
            await app.list_sessions(BOB, "alice")
        with pytest.raises(AccessDeniedError):
            await app.terminate_session(BOB, "alice", record.session_id)
        with pytest.raises(AccessDeniedError):
            await app.logout(BOB, record.session_id)

    async def test_terminate_then_cleanup(self, app, sessions):
        """Test that terminated sessions are reclaimed as inactive by cleanup."""
        here = await app.create_session(ALICE, SessionMetadata(user_agent="Firefox"))
        there = await app.create_session(ALICE, SessionMetadata(user_agent="Chrome"))

        await app.terminate_session(ALICE, "alice", there.session_id, CurrentSessionSignal(session_id=here.session_id))
        result = await app.run_cleanup()

        assert result.inactive_sessions == 1
        assert result.deleted_sessions == 1
        assert list(sessions.docs) == [here.session_id]

    async def test_logout_and_terminate_others(self, app, sessions):
        """Test logout and bulk termination through the facade."""
        keep = await app.create_session(ALICE, SessionMetadata(user_agent="Firefox", session_identifier="keep"))
        await app.create_session(ALICE, SessionMetadata(user_agent="Chrome"))
        await app.create_session(ALICE, SessionMetadata(user_agent="Edge"))

        count = await app.terminate_other_sessions(ALICE, CurrentSessionSignal(session_identifier="keep"))
        await app.logout(ALICE, keep.session_id)

        assert count == 2
        assert all(doc["is_active"] is False for doc in sessions.docs.values())

    async def test_validate_sessions(self, app):
        """Test that the caller's usable sessions are reported."""
        await app.create_session(ALICE, SessionMetadata(user_agent="Firefox"))

        result = await app.validate_sessions(ALICE)

        assert result.has_active_sessions is True
        assert result.session_count == 1
        assert (await app.validate_sessions(BOB)).has_active_sessions is False
        with pytest.raises(AuthenticationError):
            await app.validate_sessions(None)


class TestLifecycle:
    """Tests for startup and shutdown wiring."""

    async def test_lifespan_starts_and_stops_components(self, config, database):
        """Test that components with startup and cleanup hooks are called."""
        core = Core(config, database)
        core.services.store.on_stop = AsyncMock()

        async with core.lifespan():
            core.services.store.on_stop.assert_not_awaited()

        core.services.store.on_stop.assert_awaited_once()
        assert core.mongo_client is None
        assert database.get_collection(config.sessions_collection).indexes == [[("user_id", 1)]]


class TestCleanup:
    """Tests for the cleanup entry on the facade."""

    async def test_run_cleanup_at_given_time(self, app, sessions, make_record, now):
        """Test that cleanup classifies against the supplied time."""
        sessions.insert_raw(make_record(session_id="revoked", is_active=False).to_mongo())
        sessions.insert_raw(make_record(session_id="live").to_mongo())

        result = await app.run_cleanup(now)

        assert result.inactive_sessions == 1
        assert result.expired_sessions == 0
        assert list(sessions.docs) == ["live"]

    async def test_run_cleanup_reports_counters(self, app, sessions, make_record):
        """Test a cleanup pass over records written by other collaborators."""
        current = utc_now()
        for record in (
            make_record(session_id="A", expires_at=current - timedelta(hours=1), created_at=current),
            make_record(
                session_id="B",
                expires_at=current + timedelta(hours=1),
                is_active=False,
                created_at=current,
            ),
            make_record(
                session_id="live",
                created_at=current,
                login_time=current,
                last_activity=current,
                expires_at=current + timedelta(hours=1),
            ),
        ):
            sessions.insert_raw(record.to_mongo())

        result = await app.run_cleanup()

        assert result.total_sessions == 3
        assert result.expired_sessions == 1
        assert result.inactive_sessions == 1
        assert result.deleted_sessions == 2
        assert list(sessions.docs) == ["live"]
