"""
CrowdCast — FastAPI Application.

Run: uvicorn crowdcast.main:app --host 0.0.0.0 --port 8080

The lifespan builds the pipeline from settings, creates tables outside
production, and starts the scheduled jobs; shutdown flushes and stops them.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from crowdcast import __version__
from crowdcast.api.routers.alerts import router as alerts_router
from crowdcast.api.routers.crowd import router as crowd_router
from crowdcast.bootstrap import build_pipeline
from crowdcast.config import Settings, settings as default_settings
from crowdcast.db.engine import close_db, get_session_factory, init_db
from crowdcast.db.store import SQLDurableStore
from crowdcast.errors import CrowdCastError
from crowdcast.logging_config import configure_logging
from crowdcast.pipeline import CrowdPipeline

logger = structlog.get_logger(__name__)


def create_app(
    pipeline: Optional[CrowdPipeline] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API app.

    When ``pipeline`` is given it is used as-is and the lifespan does not
    touch the database or the scheduler.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if pipeline is not None:
            yield
            return

        configure_logging(settings.log_level, settings.log_format)
        await init_db(settings)
        store = SQLDurableStore(get_session_factory(settings))
        app.state.pipeline = build_pipeline(settings, store)
        await app.state.pipeline.start()
        logger.info("crowdcast_started", version=__version__, environment=settings.environment)
        try:
            yield
        finally:
            await app.state.pipeline.stop()
            await close_db()
            logger.info("crowdcast_stopped")

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    if pipeline is not None:
        app.state.pipeline = pipeline

    @app.exception_handler(CrowdCastError)
    async def crowdcast_error_handler(request: Request, exc: CrowdCastError):
        logger.warning(
            "request_failed",
            path=request.url.path,
            code=exc.code.value,
            error=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health", tags=["health"])
    async def health(request: Request):
        current = getattr(request.app.state, "pipeline", None)
        return {
            "status": "ok",
            "version": __version__,
            "pipeline_running": bool(current and current.running),
        }

    app.include_router(crowd_router)
    app.include_router(alerts_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "crowdcast.main:app",
        host=default_settings.api_host,
        port=default_settings.api_port,
        reload=default_settings.debug,
    )
