from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any
from urllib.parse import urlparse

from pymongo import AsyncMongoClient
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase

from timekeep.config import Config
from timekeep.core.modules.session.cleanup import CleanupJob
from timekeep.core.modules.session.reclaim import ReclaimEngine
from timekeep.core.modules.session.service import SessionService
from timekeep.core.modules.session.store import SessionStore


class Services:
    """Session components wired to one collection and configuration."""

    store: SessionStore
    session: SessionService
    cleanup: CleanupJob

    def __init__(self, collection: AsyncCollection[dict[str, Any]], config: Config) -> None:
        self.store = SessionStore(collection, page_size=config.scan_page_size)
        self.session = SessionService(self.store, default_timeout=config.default_session_timeout)
        engine = ReclaimEngine(
            self.store, batch_size=config.reclaim_batch_size, batch_delay=config.reclaim_batch_delay
        )
        self.cleanup = CleanupJob(
            self.store,
            engine,
            default_timeout=config.default_session_timeout,
            retention=timedelta(days=config.session_retention_days),
        )
        self._components = [self.store, self.session, engine, self.cleanup]

    async def start_all(self) -> None:
        """Start all components that have startup logic."""
        for component in self._components:
            if hasattr(component, "on_start"):
                await component.on_start()

    async def stop_all(self) -> None:
        """Stop all components that have cleanup logic."""
        for component in self._components:
            if hasattr(component, "on_stop"):
                await component.on_stop()


class Core:
    """Container providing config, database, and all service instances."""

    config: Config
    mongo_client: AsyncMongoClient[dict[str, Any]] | None
    database: AsyncDatabase[dict[str, Any]]
    services: Services

    def __init__(self, config: Config, database: AsyncDatabase[dict[str, Any]] | None = None) -> None:
        """Initialize core with config and MongoDB, unless a database handle is supplied."""
        self.config = config
        if database is None:
            self.mongo_client = AsyncMongoClient(config.database_url, uuidRepresentation="standard", tz_aware=True)
            database = self.mongo_client.get_database(urlparse(config.database_url).path[1:])
        else:
            self.mongo_client = None
        self.database = database
        self.services = Services(self.database.get_collection(config.sessions_collection), config)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Manage application lifecycle - startup and shutdown."""
        await self.on_start()
        try:
            yield
        finally:
            await self.on_stop()

    async def on_start(self) -> None:
        """Start all services on application startup."""
        await self.services.start_all()

    async def on_stop(self) -> None:
        """Stop services, then close the MongoDB connection if we opened it."""
        await self.services.stop_all()
        if self.mongo_client is not None:
            await self.mongo_client.aclose()
