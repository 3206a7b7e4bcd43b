"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from prometheus_fastapi_instrumentator import Instrumentator

from procurement_bot.api.routes import jobs
from procurement_bot.config import settings
from procurement_bot.jobs.store import create_job_store
from procurement_bot.logging_config import setup_logging
from procurement_bot.worker.controller import JobController

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Procurement Bot...")

    store = await create_job_store(settings)
    app.state.job_store = store
    app.state.controller = JobController(store)

    yield

    logger.info("Shutting down...")
    running = app.state.controller.running_jobs()
    if running:
        logger.warning(f"{len(running)} worker(s) still running: {', '.join(running)}")
    await store.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Procurement Bot",
    description="Marketplace price discovery and invoice reconciliation",
    version="0.1.0",
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health", "/favicon.ico"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

app.include_router(jobs.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/favicon.ico")
async def favicon():
    """Return empty favicon response to avoid 404 noise."""
    return Response(status_code=204)


if __name__ == "__main__":
    uvicorn.run(
        "procurement_bot.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
