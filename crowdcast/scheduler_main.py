"""
Headless Pipeline Entry Point.

Usage:
    python -m crowdcast.scheduler_main

Runs the collection, flush, notification and expiry jobs without the HTTP
API. Requires POINT_SOURCE_URL for collection cycles.
"""

import asyncio
import signal

import structlog

from crowdcast.bootstrap import build_pipeline
from crowdcast.config import settings
from crowdcast.db.engine import close_db, get_session_factory, init_db
from crowdcast.db.store import SQLDurableStore
from crowdcast.logging_config import configure_logging

logger = structlog.get_logger(__name__)


async def main():
    configure_logging(settings.log_level, settings.log_format)
    logger.info("pipeline_runner_starting", version=settings.app_version)

    await init_db(settings)
    store = SQLDurableStore(get_session_factory(settings))
    pipeline = build_pipeline(settings, store)
    if pipeline.point_source is None:
        logger.warning("no_point_source", msg="Set POINT_SOURCE_URL to enable collection cycles")

    await pipeline.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)

    logger.info("pipeline_runner_running", msg="Waiting for jobs... Ctrl+C to stop.")
    await stop_event.wait()

    await pipeline.stop()
    await close_db()
    logger.info("pipeline_runner_shutdown_complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
