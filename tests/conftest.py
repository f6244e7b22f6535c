"""
Pytest configuration and fixtures.
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

import pytest

# Add app directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from trimmer.config import Settings  # noqa: E402
from trimmer.services.progress_bus import ProgressBus  # noqa: E402
from trimmer.services.stage_runner import (  # noqa: E402
    StageFailed,
    StageResult,
    StageSpawnError,
    extract_percent,
)

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


class FakeStageRunner:
    """
    Scripted stand-in for SubprocessStageRunner.

    Plays canned output chunks through the callback and writes the file the
    real tool would have written, unless told to fail.
    """

    def __init__(self):
        self.calls: list[tuple[str, list[str]]] = []
        self.download_chunks = [
            "[download]  10.0% of 5.00MiB at 1.00MiB/s ETA 00:04\n",
            "[download]  50.0% of 5.00MiB at 1.00MiB/s ETA 00:02\n",
            "[download] 100.0% of 5.00MiB at 1.00MiB/s ETA 00:00\n",
        ]
        self.trim_chunks = ["frame=  120 fps=0.0 q=-1.0 size=  512kB time=00:00:04.00\n"]
        self.media_urls = {"video": "https://media.example/video", "audio": "https://media.example/audio"}

        # Failure knobs
        self.spawn_error_stage: Optional[str] = None
        self.fail_stage: Optional[str] = None
        self.write_download = True
        self.write_output = True
        self.download_suffix: Optional[str] = None  # e.g. ".f399.mp4"
        self.gate: Optional[asyncio.Event] = None

    async def run(self, executable, args, on_output=None, capture_stdout=False):
        args = list(args)
        self.calls.append((executable, args))
        stage = os.path.basename(executable)

        if stage == self.spawn_error_stage:
            raise StageSpawnError(stage, "No such file or directory")

        if self.gate is not None:
            await self.gate.wait()

        if stage == "yt-dlp" and "-g" in args:
            kind = "audio" if "bestaudio" in args[args.index("-f") + 1].split("/")[0] else "video"
            return StageResult(exit_code=0, stdout=f"{self.media_urls[kind]}\n")

        if stage == "yt-dlp":
            chunks = self.download_chunks
            target = Path(args[args.index("-o") + 1])
            if self.download_suffix:
                target = target.with_name(target.stem + self.download_suffix)
            write = self.write_download
        else:
            chunks = self.trim_chunks
            target = Path(args[-1])
            write = self.write_output

        for chunk in chunks:
            if on_output is not None:
                on_output(chunk, extract_percent(chunk))
            await asyncio.sleep(0)

        if stage == self.fail_stage:
            # Leave a partial file behind like an interrupted tool would
            target.write_bytes(b"partial")
            raise StageFailed(stage, 1, "ERROR: something broke")

        if write:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(b"media data")
        return StageResult(exit_code=0)


class RecordingBus(ProgressBus):
    """ProgressBus that also keeps every published event in order."""

    def __init__(self, snapshot_ttl_seconds: float = 600):
        super().__init__(snapshot_ttl_seconds)
        self.events = []

    def publish(self, event):
        self.events.append(event)
        super().publish(event)

    def events_for(self, task_id: str):
        return [e for e in self.events if e.task_id == task_id]


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every directory at a temp path."""
    return Settings(
        work_directory=str(tmp_path / "work"),
        output_directory=str(tmp_path / "output"),
        trimmer_api_key=None,
        min_free_disk_mb=0,
    )


@pytest.fixture
def fake_runner():
    return FakeStageRunner()


@pytest.fixture
def recording_bus():
    return RecordingBus()
