"""
FastAPI application entry point for YT-Trimmer.

YT-Trimmer downloads a YouTube video with yt-dlp, trims it to a requested
window with ffmpeg and streams progress to the browser over Server-Sent
Events.
"""

import asyncio
import logging
import os
import shutil
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trimmer import __version__
from trimmer.config import Settings, get_settings
from trimmer.routers import health, trim
from trimmer.services.artifacts import sweep_stale_artifacts
from trimmer.services.progress_bus import ProgressBus
from trimmer.services.rate_limiter import RateLimiter
from trimmer.services.stage_runner import SubprocessStageRunner
from trimmer.services.task_orchestrator import TaskOrchestrator
from trimmer.services.validators import TrimValidationError

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _periodic_cleanup(app: FastAPI, settings: Settings) -> None:
    """Sweep stale temp files and expired rate-limit windows forever."""
    loop = asyncio.get_event_loop()
    while True:
        await asyncio.sleep(settings.cleanup_interval_seconds)
        try:
            removed = await loop.run_in_executor(
                None,
                sweep_stale_artifacts,
                settings.work_directory,
                settings.stale_artifact_age_seconds,
            )
            if removed:
                logger.info(f"Periodic cleanup removed {len(removed)} stale file(s)")
            pruned = app.state.rate_limiter.prune()
            if pruned:
                logger.debug(
                    f"Dropped {pruned} expired rate-limit window(s), "
                    f"{len(app.state.rate_limiter)} active"
                )
        except OSError as e:
            logger.warning(f"Error during periodic cleanup: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for startup and shutdown events.

    Creates the progress bus, rate limiter and orchestrator on startup and
    tears them down on shutdown.
    """
    settings = get_settings()
    logger.info(f"Starting YT-Trimmer {__version__}...")

    os.makedirs(settings.work_directory, exist_ok=True)
    os.makedirs(settings.output_directory, exist_ok=True)
    logger.info(f"Work directory: {settings.work_directory}")
    logger.info(f"Output directory: {settings.output_directory}")

    progress_bus = ProgressBus(snapshot_ttl_seconds=settings.snapshot_ttl_seconds)
    rate_limiter = RateLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds)
    runner = SubprocessStageRunner(
        stderr_tail_chars=settings.stderr_tail_chars,
        timeout_seconds=settings.stage_timeout_seconds,
        excerpt_chars=settings.error_excerpt_chars,
    )
    orchestrator = TaskOrchestrator(bus=progress_bus, runner=runner, settings=settings)

    # Store in app state for dependency injection
    app.state.progress_bus = progress_bus
    app.state.rate_limiter = rate_limiter
    app.state.orchestrator = orchestrator

    _verify_external_tools(settings)

    cleanup_task = asyncio.create_task(_periodic_cleanup(app, settings))
    logger.info(
        f"Rate limiting: {settings.rate_limit_max} requests / "
        f"{settings.rate_limit_window_seconds}s"
    )
    logger.info(f"Max clip duration: {settings.max_clip_duration_seconds // 60} minutes")
    logger.info("YT-Trimmer ready to accept requests.")

    yield

    logger.info("Shutting down YT-Trimmer...")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    # Orchestrator may have been swapped (tests); shut down whatever is installed
    await app.state.orchestrator.shutdown()
    app.state.progress_bus.close()
    app.state.rate_limiter.clear()
    logger.info("Shutdown complete")


def _verify_external_tools(settings: Settings) -> None:
    """Verify that required external tools are available."""
    tools = {
        settings.ytdlp_path: "yt-dlp for YouTube downloads",
        settings.ffmpeg_path: "FFmpeg for trimming",
    }

    for tool, description in tools.items():
        if shutil.which(tool):
            logger.info(f"✓ {description} available")
        else:
            logger.warning(f"✗ {description} NOT FOUND - trims will fail")


# Create FastAPI application
app = FastAPI(
    title="YT-Trimmer",
    description="""
Download a YouTube video, trim it to a time range and fetch the clip.

## Usage

1. Submit a trim: `POST /trim`
2. Follow progress: `GET /progress/{task_id}` (Server-Sent Events)
3. Fetch the clip: `GET /download/{filename}` once the `complete` event arrives
    """,
    version=__version__,
    debug=get_settings().debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TrimValidationError)
async def trim_validation_error_handler(request: Request, exc: TrimValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": str(exc), "errors": exc.errors},
    )


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(trim.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {
        "service": get_settings().app_name,
        "version": __version__,
        "status": "running",
        "docs": "/docs",
    }


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "trimmer.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
