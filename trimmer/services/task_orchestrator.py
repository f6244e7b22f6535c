"""
Task Orchestrator - Drives one trim task from submission to a terminal state.

Pipeline per task (strictly sequential):
1. Fetch: yt-dlp downloads the source to a task-scoped temp path
2. Resolve: locate the file yt-dlp actually wrote
3. Cut: ffmpeg trims the requested window into the output directory
4. Clean: remove the task's intermediates (best effort)
5. Complete: verify the final artifact and announce its filename

Progress ranges: starting 0-5, downloading 5-65, trimming 70-95,
cleaning 95-99, complete 100. Any failure publishes `error` (reported as 0)
after best-effort cleanup. Nothing is retried.
"""

import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from trimmer.config import Settings, get_settings
from trimmer.schemas.requests import OutputFormat, TrimRequest
from trimmer.services.artifacts import (
    ArtifactMissing,
    cleanup_task_artifacts,
    remove_file,
    resolve_downloaded_file,
    task_id_fragment,
    temp_path_for,
)
from trimmer.services.progress_bus import ProgressBus, ProgressEvent, TaskStatus
from trimmer.services.stage_runner import StageFailed, StageRunner, StageSpawnError
from trimmer.services.validators import MAX_FILENAME_LENGTH, validate_trim_request
from trimmer.services.video_downloader import VideoDownloaderService
from trimmer.services.video_trimmer import VideoTrimmerService

logger = logging.getLogger(__name__)


# Progress landmarks
STARTING_PERCENT = 0
LAUNCH_PERCENT = 5
DOWNLOAD_MIN_PERCENT = 5
DOWNLOAD_MAX_PERCENT = 65
DOWNLOAD_SCALE = 0.6
TRIM_START_PERCENT = 70
TRIM_ACTIVE_PERCENT = 85
TRIM_DONE_PERCENT = 95
CLEANING_PERCENT = 96
CLEANED_PERCENT = 99
COMPLETE_PERCENT = 100

MAX_ERROR_MESSAGE_CHARS = 300


def scale_download_percent(raw_percent: float) -> float:
    """Map the downloader's 0-100 onto the 5-65 band of the task scale."""
    return min(DOWNLOAD_MIN_PERCENT + raw_percent * DOWNLOAD_SCALE, DOWNLOAD_MAX_PERCENT)


def generate_task_id() -> str:
    return f"task_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class TrimTask:
    """One clip request moving through the pipeline."""

    id: str
    source_url: str
    start: str
    end: str
    start_offset: int
    end_offset: int
    duration_seconds: int
    output_format: OutputFormat
    quality: int
    temp_path: Path
    final_path: Path
    output_filename: str
    status: TaskStatus = TaskStatus.STARTING
    last_progress_percent: float = 0.0
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)


class TaskOrchestrator:
    """
    Owns the lifecycle of every trim task in the process.

    Tasks run concurrently on the event loop; the orchestrator only shares
    the ProgressBus between them. Temp and final paths embed the task id so
    concurrent tasks never collide in the shared working directory.
    """

    def __init__(
        self,
        bus: ProgressBus,
        runner: StageRunner,
        settings: Optional[Settings] = None,
        downloader: Optional[VideoDownloaderService] = None,
        trimmer: Optional[VideoTrimmerService] = None,
    ):
        self.settings = settings or get_settings()
        self.bus = bus
        self.runner = runner
        self.downloader = downloader or VideoDownloaderService(self.settings)
        self.trimmer = trimmer or VideoTrimmerService(self.settings)

        self.work_dir = Path(self.settings.work_directory)
        self.output_dir = Path(self.settings.output_directory)

        self._tasks: dict[str, TrimTask] = {}
        self._running: dict[str, asyncio.Task] = {}
        self._claimed_filenames: set[str] = set()

        # Optional admission control; 0 keeps spawning unbounded
        self._semaphore: Optional[asyncio.Semaphore] = None
        if self.settings.max_concurrent_tasks > 0:
            self._semaphore = asyncio.Semaphore(self.settings.max_concurrent_tasks)

    # ============================================================================
    # Submission
    # ============================================================================

    def submit(self, request: TrimRequest) -> TrimTask:
        """
        Validate a request, create its task and start the pipeline.

        Must be called from a running event loop. Returns as soon as the task
        is scheduled; progress is observable through the bus.

        Raises:
            TrimValidationError: If the request is rejected (no task is created)
        """
        validated = validate_trim_request(request, self.settings)

        task_id = generate_task_id()
        while task_id in self._tasks:
            task_id = generate_task_id()

        extension = validated.output_format.extension
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        output_filename = self._claim_output_filename(validated.filename, extension, task_id)
        task = TrimTask(
            id=task_id,
            source_url=validated.url,
            start=validated.start,
            end=validated.end,
            start_offset=validated.start_offset,
            end_offset=validated.end_offset,
            duration_seconds=validated.duration_seconds,
            output_format=validated.output_format,
            quality=validated.quality,
            temp_path=temp_path_for(task_id, self.work_dir, extension),
            final_path=self.output_dir / output_filename,
            output_filename=output_filename,
        )
        self._tasks[task_id] = task

        logger.info(
            f"Processing trim request {task_id}: start={task.start} end={task.end} "
            f"duration={task.duration_seconds}s format={task.output_format.value} "
            f"quality={task.quality} filename={output_filename}"
        )

        self._emit(task, TaskStatus.STARTING, STARTING_PERCENT, "Queued for processing")
        self._running[task_id] = asyncio.create_task(self.run(task), name=task_id)
        return task

    def _claim_output_filename(self, base: str, extension: str, task_id: str) -> str:
        """Pick a final filename no other task is using or has produced."""
        candidate = f"{base}.{extension}"
        if candidate in self._claimed_filenames or (self.output_dir / candidate).exists():
            # Keep the decorated name within what /download will accept
            suffix = f"_{task_id_fragment(task_id)}"
            base = base[: MAX_FILENAME_LENGTH - len(suffix)]
            candidate = f"{base}{suffix}.{extension}"
        self._claimed_filenames.add(candidate)
        return candidate

    # ============================================================================
    # Pipeline
    # ============================================================================

    async def run(self, task: TrimTask) -> None:
        """Run the pipeline for a task; always ends in a terminal event."""
        try:
            if self._semaphore is not None:
                async with self._semaphore:
                    await self._execute(task)
            else:
                await self._execute(task)

        except asyncio.CancelledError:
            logger.warning(f"[{task.id}] Pipeline cancelled")
            self._fail(task, "Server shutting down")
            raise

        except (StageSpawnError, StageFailed, ArtifactMissing) as e:
            logger.error(f"[{task.id}] Error processing video: {e}")
            self._fail(task, str(e))

        except Exception as e:
            logger.exception(f"[{task.id}] Unexpected pipeline error: {e}")
            self._fail(task, f"Unexpected error: {e}")

        finally:
            self._claimed_filenames.discard(task.output_filename)
            self._running.pop(task.id, None)
            self._schedule_forget(task.id)

    def _schedule_forget(self, task_id: str) -> None:
        # Task records live as long as the bus keeps their terminal snapshot
        asyncio.get_running_loop().call_later(
            self.bus.snapshot_ttl_seconds, self._tasks.pop, task_id, None
        )

    async def _execute(self, task: TrimTask) -> None:
        # Step 1: Download
        self._emit(task, TaskStatus.STARTING, LAUNCH_PERCENT, "Starting video download...")

        def on_download_output(chunk: str, percent: Optional[float]) -> None:
            if percent is None:
                return
            scaled = scale_download_percent(percent)
            # Duplicate or out-of-order log lines must not move the bar backwards
            if scaled > task.last_progress_percent:
                self._emit(
                    task,
                    TaskStatus.DOWNLOADING,
                    scaled,
                    f"Downloading video... {_round_percent(percent)}%",
                )

        logger.info(f"[{task.id}] Starting download (format={task.output_format.value})")
        await self.runner.run(
            self.downloader.executable,
            self.downloader.build_download_args(
                task.source_url, task.output_format, task.quality, task.temp_path
            ),
            on_download_output,
        )

        self._emit(
            task,
            TaskStatus.DOWNLOADING,
            DOWNLOAD_MAX_PERCENT,
            "Download finished, preparing to trim...",
        )

        # Step 2: Locate the real download (yt-dlp may decorate the name)
        source_path = resolve_downloaded_file(task.temp_path, self.settings.media_extensions)
        if not source_path.is_file():
            raise ArtifactMissing("Downloaded file not found")
        logger.info(f"[{task.id}] Downloaded file found: {source_path.name}")

        # Step 3: Trim
        self._emit(task, TaskStatus.TRIMMING, TRIM_START_PERCENT, "Trimming to the selected range...")

        def on_trim_output(chunk: str, percent: Optional[float]) -> None:
            if self.trimmer.is_activity(chunk) and task.last_progress_percent < TRIM_ACTIVE_PERCENT:
                self._emit(task, TaskStatus.TRIMMING, TRIM_ACTIVE_PERCENT, "Trimming video...")

        await self.runner.run(
            self.trimmer.executable,
            self.trimmer.build_trim_args(
                source_path,
                task.start,
                task.duration_seconds,
                task.final_path,
                task.output_format,
            ),
            on_trim_output,
        )
        self._emit(task, TaskStatus.TRIMMING, TRIM_DONE_PERCENT, "Trim finished")
        logger.info(f"[{task.id}] Trim complete")

        # Step 4: Cleanup (failures here are warnings only)
        self._emit(task, TaskStatus.CLEANING, CLEANING_PERCENT, "Removing temporary files...")
        report = cleanup_task_artifacts(
            task.id, task.temp_path, self.work_dir, exclude=[task.final_path]
        )
        if not report.ok:
            logger.warning(
                f"[{task.id}] Cleanup left {len(report.failed)} file(s): "
                f"{[p.name for p in report.failed]}"
            )
        self._emit(task, TaskStatus.CLEANING, CLEANED_PERCENT, "Temporary files removed")

        # Step 5: Verify and complete
        if not task.final_path.is_file():
            raise ArtifactMissing("Trimmed file not found")

        self._emit(
            task,
            TaskStatus.COMPLETE,
            COMPLETE_PERCENT,
            "Done! Your clip is ready to download.",
            filename=task.output_filename,
        )
        logger.info(
            f"[{task.id}] Task completed successfully in "
            f"{time.time() - task.created_at:.1f}s: {task.final_path}"
        )

    def _fail(self, task: TrimTask, detail: str) -> None:
        """Best-effort cleanup of everything the task produced, then `error`."""
        try:
            report = cleanup_task_artifacts(task.id, task.temp_path, self.work_dir)
            if not report.ok:
                logger.warning(f"[{task.id}] Cleanup after failure left {len(report.failed)} file(s)")
            if remove_file(task.final_path):
                logger.debug(f"[{task.id}] Partial output removed: {task.final_path.name}")
        except OSError as e:
            logger.warning(f"[{task.id}] Error during cleanup: {e}")

        if len(detail) > MAX_ERROR_MESSAGE_CHARS:
            detail = detail[:MAX_ERROR_MESSAGE_CHARS] + "..."
        task.error = detail
        self._emit(task, TaskStatus.ERROR, 0, f"Error: {detail}")

    def _emit(
        self,
        task: TrimTask,
        status: TaskStatus,
        percent: float,
        message: str,
        filename: Optional[str] = None,
    ) -> None:
        """Publish progress. Non-error percentages never go below the last one."""
        if status is not TaskStatus.ERROR:
            percent = max(percent, task.last_progress_percent)
            task.last_progress_percent = percent

        task.status = status
        self.bus.publish(
            ProgressEvent(
                task_id=task.id,
                status=status,
                percent=_round_percent(percent),
                message=message,
                filename=filename,
            )
        )

    # ============================================================================
    # Queries & lifecycle
    # ============================================================================

    def get_task(self, task_id: str) -> Optional[TrimTask]:
        return self._tasks.get(task_id)

    def is_output_pending(self, filename: str) -> bool:
        """True while a task is still producing `filename`."""
        return filename in self._claimed_filenames

    def is_running(self, task_id: str) -> bool:
        return task_id in self._running

    async def wait(self, task_id: str) -> None:
        """Wait until a running task reaches a terminal state."""
        running = self._running.get(task_id)
        if running is not None:
            await asyncio.gather(running, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel running pipelines; each still cleans up and publishes `error`."""
        running = list(self._running.values())
        if not running:
            return
        logger.info(f"Cancelling {len(running)} running task(s)")
        for pipeline in running:
            pipeline.cancel()
        await asyncio.gather(*running, return_exceptions=True)


def _round_percent(value: float) -> int:
    return int(math.floor(value + 0.5))
