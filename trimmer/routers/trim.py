"""
Trim API Router - Submit trims, stream their progress, download results.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import FileResponse, StreamingResponse
from starlette.background import BackgroundTask

from trimmer.auth import verify_api_key
from trimmer.config import Settings, get_settings
from trimmer.schemas.requests import OutputFormat, TrimRequest
from trimmer.schemas.responses import (
    ErrorResponse,
    ProgressResponse,
    TrimSubmitResponse,
    VideoFormats,
    VideoInfoResponse,
)
from trimmer.services.artifacts import remove_file
from trimmer.services.disk_checker import check_disk_space
from trimmer.services.progress_bus import ProgressBus
from trimmer.services.rate_limiter import RateLimiter
from trimmer.services.task_orchestrator import TaskOrchestrator
from trimmer.services.validators import is_supported_url, normalize_url, sanitize_filename
from trimmer.services.video_downloader import VideoDownloaderService, VideoInfoError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Trim"])


# ============================================================================
# Dependencies
# ============================================================================


def _app_state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not initialized",
        )
    return value


def get_progress_bus(request: Request) -> ProgressBus:
    """Get the progress bus from app state (created at startup)."""
    return _app_state(request, "progress_bus")


def get_orchestrator(request: Request) -> TaskOrchestrator:
    """Get the task orchestrator from app state (created at startup)."""
    return _app_state(request, "orchestrator")


def get_rate_limiter(request: Request) -> RateLimiter:
    return _app_state(request, "rate_limiter")


async def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    client_key = request.client.host if request.client else "unknown"
    if not limiter.check(client_key):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please wait a minute.",
        )


async def require_disk_space(settings: Settings = Depends(get_settings)) -> None:
    disk = check_disk_space(settings.work_directory, settings.min_free_disk_mb)
    if not disk.has_space:
        raise HTTPException(
            status_code=status.HTTP_507_INSUFFICIENT_STORAGE,
            detail="Server storage is almost full. Please try again later.",
        )


def _format_sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/trim",
    response_model=TrimSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": ErrorResponse}},
    dependencies=[
        Depends(verify_api_key),
        Depends(enforce_rate_limit),
        Depends(require_disk_space),
    ],
)
async def submit_trim(
    request: TrimRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> TrimSubmitResponse:
    """
    Submit a trim task.

    Returns the task id immediately; the download and trim run in the
    background. Follow progress on GET /progress/{task_id}.

    Validation errors are answered with 400 and no task is created.
    """
    logger.info(f"Received trim request (format={request.output_format.value})")
    task = orchestrator.submit(request)

    return TrimSubmitResponse(
        task_id=task.id,
        message="Processing started. Follow the progress stream.",
    )


@router.get("/progress/{task_id}")
async def stream_progress(
    task_id: str,
    request: Request,
    bus: ProgressBus = Depends(get_progress_bus),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    """
    Server-Sent Events stream of a task's progress.

    Sends a `connected` event, then the latest snapshot, then live updates.
    The stream ends after the terminal event (`complete` or `error`).
    Reconnecting with the same task id resumes from the latest snapshot.
    """
    if task_id not in bus:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task not found: {task_id}",
        )

    subscription = bus.register(task_id)
    logger.debug(f"SSE connection established: {task_id}")

    async def event_stream():
        try:
            yield _format_sse({"status": "connected", "progress": 0})
            while True:
                try:
                    event = await asyncio.wait_for(
                        subscription.get(), timeout=settings.progress_keepalive_seconds
                    )
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        break
                    yield ": keep-alive\n\n"
                    continue

                if event is None:
                    # Replaced by a newer subscriber or the snapshot expired
                    break
                yield _format_sse(event.to_payload())
                if event.is_terminal:
                    break
        finally:
            bus.unregister(task_id, subscription)
            logger.debug(f"SSE connection closed: {task_id}")

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/tasks/{task_id}", response_model=ProgressResponse)
async def get_task_progress(
    task_id: str,
    bus: ProgressBus = Depends(get_progress_bus),
) -> ProgressResponse:
    """Latest progress snapshot of a task, for clients that poll."""
    snapshot = bus.snapshot(task_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task not found: {task_id}",
        )
    return ProgressResponse(task_id=task_id, **snapshot.to_payload())


def _delete_after_download(path: Path) -> None:
    try:
        if remove_file(path):
            logger.info(f"Download complete, file deleted: {path.name}")
    except OSError as e:
        logger.warning(f"Could not delete file after download: {e}")


@router.get("/download/{filename}")
async def download_artifact(
    filename: str,
    settings: Settings = Depends(get_settings),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> FileResponse:
    """
    Stream a finished clip as an attachment.

    The name is sanitized before lookup, so traversal attempts resolve to a
    plain name inside the output directory. A clip whose task is still
    running is refused with 409. With auto-delete enabled the file is
    removed once the response has been sent.
    """
    base = sanitize_filename(filename, default="")
    output_format = OutputFormat.AUDIO if filename.lower().endswith(".mp3") else OutputFormat.VIDEO
    safe_filename = f"{base}.{output_format.extension}"
    file_path = Path(settings.output_directory) / safe_filename

    logger.info(f"Download requested: {safe_filename}")

    if base and orchestrator.is_output_pending(safe_filename):
        logger.warning(f"Download refused, still being produced: {safe_filename}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="File is still being processed",
        )

    if not base or not file_path.is_file():
        logger.warning(f"File not found: {safe_filename}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found",
        )

    background = None
    if settings.auto_delete_after_download:
        background = BackgroundTask(_delete_after_download, file_path)

    return FileResponse(
        path=file_path,
        filename=safe_filename,
        media_type=output_format.media_type,
        background=background,
    )


@router.get(
    "/video-info",
    response_model=VideoInfoResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def get_video_info(
    url: str = "",
    settings: Settings = Depends(get_settings),
) -> VideoInfoResponse:
    """
    Preview metadata for a source video (title, duration, thumbnail).

    Falls back to data derived from the video id when yt-dlp cannot reach
    the video, so the client can still show a preview card.
    """
    normalized = normalize_url(url)
    if not is_supported_url(normalized):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid YouTube URL",
        )

    downloader = VideoDownloaderService(settings)
    try:
        logger.info(f"Fetching video info: {normalized}")
        info = await downloader.get_video_info(normalized)
    except VideoInfoError as e:
        logger.error(f"Error fetching video info: {e}")
        info = downloader.fallback_info(normalized)

    return VideoInfoResponse(
        id=info.video_id,
        title=info.title,
        duration=info.duration_seconds,
        duration_formatted=info.duration_formatted,
        thumbnail=info.thumbnail_url,
        uploader=info.uploader,
        view_count=info.view_count,
        formats=VideoFormats(video=info.video_qualities, audio=info.audio_formats),
    )
