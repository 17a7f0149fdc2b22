"""Entry point for the scheduled session cleanup."""

import asyncio
from datetime import datetime

import structlog

from timekeep.app import App
from timekeep.config import Config
from timekeep.core.modules.session.cleanup import CleanupResult
from timekeep.logging import setup_logging

logger = structlog.get_logger(__name__)


async def run_once(app: App, now: datetime | None = None) -> CleanupResult:
    async with app.lifespan():
        return await app.run_cleanup(now)


async def run_forever(app: App, interval: int) -> None:
    """Run cleanup every `interval` seconds until cancelled."""
    async with app.lifespan():
        while True:
            try:
                await app.run_cleanup()
            except Exception:
                # The next scheduled run picks up whatever this one missed
                logger.exception("session_cleanup_run_failed")
            await asyncio.sleep(interval)


def main() -> None:
    config = Config()
    setup_logging(config.debug)
    app = App(config)
    if config.cleanup_interval > 0:
        asyncio.run(run_forever(app, config.cleanup_interval))
    else:
        asyncio.run(run_once(app))


if __name__ == "__main__":
    main()
