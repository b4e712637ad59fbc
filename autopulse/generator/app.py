"""Generator service FastAPI application.

Exposes the scheduled trigger (``/cron/generator``), guarded by a shared
bearer secret. A run always answers 200 with its summary unless it failed
before a work list existed, which answers 500 with the error and duration.
"""

import secrets
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from autopulse import __version__
from autopulse.core.db import Database
from autopulse.core.logging import get_logger, setup_logging
from autopulse.core.repositories import insert_cron_log
from autopulse.core.settings import Settings, get_settings
from autopulse.generator.embeddings import EmbeddingClient
from autopulse.generator.pipeline import GeneratorPipeline
from autopulse.generator.writer import WriterFactory

setup_logging("generator")
logger = get_logger(__name__)

JOB_NAME = "generate-articles"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    app.state.database = Database(settings)
    app.state.writer = WriterFactory.create_writer(settings)
    app.state.embedder = EmbeddingClient(settings) if settings.embeddings_enabled else None
    logger.info(
        f"Generator service started (writer={app.state.writer.provider_name}, "
        f"embeddings={'on' if app.state.embedder else 'off'})"
    )
    try:
        yield
    finally:
        logger.info("Shutting down generator service")
        await app.state.writer.aclose()
        if app.state.embedder is not None:
            await app.state.embedder.aclose()
        await app.state.database.dispose()


app = FastAPI(
    title="AutoPulse Generator",
    version=__version__,
    description="Scheduled article generation runs",
    lifespan=lifespan,
)


def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings)
) -> None:
    """Require ``Authorization: Bearer <cron_secret>``; an unset secret rejects every call."""
    expected = settings.cron_secret
    scheme, _, token = (authorization or "").partition(" ")

    if not expected or scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        logger.warning("Rejected unauthorized generator trigger")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_pipeline(request: Request, settings: Settings = Depends(get_settings)) -> GeneratorPipeline:
    """Build a pipeline from the process-wide clients."""
    state = request.app.state
    return GeneratorPipeline(
        database=state.database,
        writer=state.writer,
        embedder=state.embedder,
        settings=settings,
    )


async def write_run_log(database: Optional[Database], status_value: str, details: Dict[str, Any]) -> None:
    """Append a cron_logs row. Never raises."""
    if database is None:
        return
    try:
        async with database.session() as session:
            await insert_cron_log(session, JOB_NAME, status_value, details)
    except Exception as e:
        logger.warning(f"Failed to write run log: {e}")


@app.get("/healthz")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "generator"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "generator",
        "version": __version__,
        "endpoints": {
            "health": "/healthz",
            "run": "/cron/generator (GET/POST, bearer auth)",
        }
    }


async def _run_generator(pipeline: GeneratorPipeline):
    start_time = time.monotonic()
    logger.info("Generator run triggered", extra={"endpoint": "/cron/generator"})

    try:
        summary = await pipeline.run()
    except Exception as e:
        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.error(f"Generator run aborted after {duration_ms}ms: {e}", exc_info=True)
        await write_run_log(
            getattr(pipeline, 'database', None),
            "error",
            {"error": str(e), "error_type": type(e).__name__, "duration_ms": duration_ms},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(e), "duration_ms": duration_ms},
        )

    duration_ms = int((time.monotonic() - start_time) * 1000)
    result = summary.to_dict()
    await write_run_log(
        getattr(pipeline, 'database', None),
        "success",
        {**{k: v for k, v in result.items() if k != 'articles'}, "duration_ms": duration_ms},
    )
    return {"success": True, "duration_ms": duration_ms, "summary": result}


@app.get("/cron/generator")
async def trigger_generator_get(
    _: None = Depends(verify_cron_secret),
    pipeline: GeneratorPipeline = Depends(get_pipeline)
):
    """Scheduler entry point."""
    return await _run_generator(pipeline)


@app.post("/cron/generator")
async def trigger_generator_post(
    _: None = Depends(verify_cron_secret),
    pipeline: GeneratorPipeline = Depends(get_pipeline)
):
    """Manual trigger, same contract as the scheduled call."""
    return await _run_generator(pipeline)


if __name__ == "__main__":
    settings = get_settings()
    logger.info("Starting generator service via uvicorn")
    uvicorn.run(
        "autopulse.generator.app:app",
        host=settings.service_host,
        port=settings.service_port or 8005,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
