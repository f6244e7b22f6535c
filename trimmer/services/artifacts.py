"""
Artifact Resolver & Janitor - Locate and remove the files a task produces.

yt-dlp is given an intended output path but may save under a decorated name
(a format qualifier like `.f399.mp4`, or a doubled extension after audio
extraction). Resolution is a best-available-match heuristic, not a
guaranteed exact answer.

Every temp artifact name embeds the task id, which is what keeps cleanup
from touching another task's files.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

TEMP_PREFIX = "temp_"
TASK_PREFIX = "task_"
DEFAULT_MEDIA_EXTENSIONS = (".mp4", ".mp3", ".webm", ".mkv", ".m4a", ".opus")


@dataclass
class CleanupReport:
    """What a janitor pass removed and what it could not remove."""

    removed: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def task_id_fragment(task_id: str) -> str:
    """The unique part of a task id (`task_<ms>_<hex>` -> `<ms>_<hex>`)."""
    if task_id.startswith(TASK_PREFIX):
        return task_id[len(TASK_PREFIX):]
    return task_id


def temp_path_for(task_id: str, work_dir: PathLike, extension: str) -> Path:
    """Intended download path for a task: `<work_dir>/temp_<task_id>.<ext>`."""
    return Path(work_dir) / f"{TEMP_PREFIX}{task_id}.{extension}"


def _stem(path: Path) -> str:
    return path.name[: -len(path.suffix)] if path.suffix else path.name


def resolve_downloaded_file(
    intended_path: PathLike,
    media_extensions: Iterable[str] = DEFAULT_MEDIA_EXTENSIONS,
) -> Path:
    """
    Find the file yt-dlp actually wrote for an intended output path.

    Preference order:
    1. The intended path itself
    2. Files starting with the intended stem and ending in a media
       extension, ranked by matching extension, then size, then name
    3. The intended path (the caller's existence check then fails fast)

    Args:
        intended_path: Path passed to yt-dlp with -o
        media_extensions: Extensions that count as finished media files

    Returns:
        Best matching path
    """
    intended = Path(intended_path)
    if intended.is_file():
        return intended

    directory = intended.parent
    stem = _stem(intended)
    extensions = tuple(ext.lower() for ext in media_extensions)

    try:
        entries = list(directory.iterdir())
    except OSError as e:
        logger.warning(f"Cannot scan {directory} for downloaded file: {e}")
        return intended

    candidates = [
        entry
        for entry in entries
        if entry.name.startswith(stem)
        and entry.name.lower().endswith(extensions)
        and entry.is_file()
    ]

    if not candidates:
        logger.warning(f"No downloaded file matches {intended.name}")
        return intended

    def rank(path: Path) -> tuple:
        try:
            size = path.stat().st_size
        except OSError:
            size = 0
        same_extension = path.suffix.lower() == intended.suffix.lower()
        return (not same_extension, -size, path.name)

    candidates.sort(key=rank)
    if len(candidates) > 1:
        logger.info(
            f"Multiple download candidates for {intended.name}: "
            f"{[c.name for c in candidates]}, using {candidates[0].name}"
        )
    return candidates[0]


def cleanup_task_artifacts(
    task_id: str,
    temp_path: PathLike,
    work_dir: Optional[PathLike] = None,
    exclude: Iterable[PathLike] = (),
) -> CleanupReport:
    """
    Remove every intermediate file belonging to one task.

    Matches files in the working directory prefixed by the temp stem or by
    `temp_<task-id-fragment>`. Paths in `exclude` (the final output) are
    kept. A file that cannot be deleted is logged and skipped.

    Args:
        task_id: Task whose artifacts are removed
        temp_path: Intended temp path of the task
        work_dir: Directory to scan (defaults to the temp path's directory)
        exclude: Paths that must survive

    Returns:
        CleanupReport listing removed and failed files
    """
    temp_path = Path(temp_path)
    directory = Path(work_dir) if work_dir is not None else temp_path.parent
    prefixes = (_stem(temp_path), f"{TEMP_PREFIX}{task_id_fragment(task_id)}")
    excluded = {Path(p).resolve() for p in exclude}
    report = CleanupReport()

    try:
        entries = list(directory.iterdir())
    except OSError as e:
        logger.warning(f"[{task_id}] Cleanup could not scan {directory}: {e}")
        return report

    for entry in entries:
        if not entry.name.startswith(prefixes):
            continue
        if entry.resolve() in excluded or not entry.is_file():
            continue
        try:
            entry.unlink()
            report.removed.append(entry)
            logger.debug(f"[{task_id}] Temp file deleted: {entry.name}")
        except OSError as e:
            report.failed.append(entry)
            logger.warning(f"[{task_id}] Could not delete temp file {entry.name}: {e}")

    return report


def sweep_stale_artifacts(
    work_dir: PathLike,
    max_age_seconds: float,
    now: Optional[float] = None,
) -> list[Path]:
    """
    Remove temp_* files older than max_age_seconds.

    Backstop for tasks whose normal cleanup never ran (process crash,
    hard kill). Only temp-prefixed files are considered.
    """
    directory = Path(work_dir)
    now = time.time() if now is None else now
    removed: list[Path] = []

    if not directory.is_dir():
        return removed

    for entry in directory.iterdir():
        if not entry.name.startswith(TEMP_PREFIX) or not entry.is_file():
            continue
        try:
            age = now - entry.stat().st_mtime
            if age > max_age_seconds:
                entry.unlink()
                removed.append(entry)
                logger.info(f"Cleaned up old temp file: {entry.name}")
        except OSError as e:
            logger.warning(f"Error during stale artifact sweep for {entry.name}: {e}")

    return removed


def remove_file(path: PathLike) -> bool:
    """Delete a file if it exists. Returns True if something was removed."""
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False


class ArtifactMissing(Exception):
    """Exception raised when a stage reported success but its output is absent."""
    pass
