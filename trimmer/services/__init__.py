"""
Services for the trimmer.

Includes:
- Pipeline engine (stage runner, orchestrator, progress bus, artifacts)
- Tool adapters (yt-dlp downloader, ffmpeg trimmer)
- Request gating (validators, rate limiter, disk checks)
"""

from trimmer.services.artifacts import (
    ArtifactMissing,
    CleanupReport,
    cleanup_task_artifacts,
    resolve_downloaded_file,
    sweep_stale_artifacts,
)
from trimmer.services.progress_bus import ProgressBus, ProgressEvent, Subscription, TaskStatus
from trimmer.services.rate_limiter import RateLimiter
from trimmer.services.stage_runner import (
    StageFailed,
    StageResult,
    StageRunner,
    StageSpawnError,
    SubprocessStageRunner,
)
from trimmer.services.task_orchestrator import TaskOrchestrator, TrimTask
from trimmer.services.validators import TrimValidationError, validate_trim_request
from trimmer.services.video_downloader import VideoDownloaderService
from trimmer.services.video_trimmer import VideoTrimmerService

__all__ = [
    # Pipeline
    "TaskOrchestrator",
    "TrimTask",
    "ProgressBus",
    "ProgressEvent",
    "Subscription",
    "TaskStatus",
    "StageRunner",
    "SubprocessStageRunner",
    "StageResult",
    "StageFailed",
    "StageSpawnError",
    "ArtifactMissing",
    "CleanupReport",
    "cleanup_task_artifacts",
    "resolve_downloaded_file",
    "sweep_stale_artifacts",
    # Tools
    "VideoDownloaderService",
    "VideoTrimmerService",
    # Gating
    "RateLimiter",
    "TrimValidationError",
    "validate_trim_request",
]
