"""
Health check endpoints for the trimmer service.
"""

import shutil
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from trimmer import __version__
from trimmer.config import Settings, get_settings
from trimmer.schemas.responses import DiskInfo, HealthResponse
from trimmer.services.disk_checker import check_disk_space

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """
    Basic health check endpoint.

    Returns 200 while the service is running, with free disk space and
    whether yt-dlp and ffmpeg are on the PATH.
    """
    disk = check_disk_space(settings.work_directory, settings.min_free_disk_mb)
    return HealthResponse(
        status="OK",
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        disk=DiskInfo(free_space_mb=disk.free_mb, has_enough_space=disk.has_space),
        tools={
            "yt-dlp": shutil.which(settings.ytdlp_path) is not None,
            "ffmpeg": shutil.which(settings.ffmpeg_path) is not None,
        },
    )
