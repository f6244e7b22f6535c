"""
API tests for the trim, progress, download and info endpoints.

The real application and lifespan are used; only the orchestrator's stage
runner is replaced with a scripted one.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from trimmer.config import Settings, get_settings
from trimmer.main import app
from trimmer.services.rate_limiter import RateLimiter
from trimmer.services.task_orchestrator import TaskOrchestrator
from trimmer.services.video_downloader import VideoDownloaderService, VideoInfo, VideoInfoError

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


def _sse_events(body: str):
    return [
        json.loads(line[len("data: "):])
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


@pytest.fixture
def client(tmp_path, monkeypatch, fake_runner):
    monkeypatch.setenv("WORK_DIRECTORY", str(tmp_path / "work"))
    monkeypatch.setenv("OUTPUT_DIRECTORY", str(tmp_path / "output"))
    monkeypatch.setenv("MIN_FREE_DISK_MB", "0")
    monkeypatch.delenv("TRIMMER_API_KEY", raising=False)
    get_settings.cache_clear()

    with TestClient(app) as test_client:
        app.state.orchestrator = TaskOrchestrator(
            bus=app.state.progress_bus,
            runner=fake_runner,
            settings=get_settings(),
        )
        yield test_client

    app.dependency_overrides.clear()
    get_settings.cache_clear()


def _submit(client, **overrides):
    body = {"url": VIDEO_URL, "start": "00:00:10", "end": "00:00:20"}
    body.update(overrides)
    return client.post("/trim", json=body)


class TestSubmitTrim:
    """Tests for POST /trim."""

    def test_accepts_valid_request(self, client):
        response = _submit(client)

        assert response.status_code == 202
        data = response.json()
        assert data["success"] is True
        assert data["task_id"].startswith("task_")

    def test_validation_errors_return_400(self, client, fake_runner):
        response = _submit(client, start="00:02:00", end="00:01:00")

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert "End time must be after start time" in data["errors"]
        assert fake_runner.calls == []

    def test_api_key_required_when_configured(self, client, tmp_path):
        secured = Settings(
            work_directory=str(tmp_path / "work"),
            output_directory=str(tmp_path / "output"),
            min_free_disk_mb=0,
            trimmer_api_key="secret",
        )
        app.dependency_overrides[get_settings] = lambda: secured

        assert _submit(client).status_code == 401
        response = client.post(
            "/trim",
            json={"url": VIDEO_URL, "start": "0:10", "end": "0:20"},
            headers={"X-Trimmer-API-Key": "secret"},
        )
        assert response.status_code == 202

    def test_rate_limited(self, client):
        app.state.rate_limiter = RateLimiter(max_requests=2, window_seconds=60)

        assert _submit(client, start="bad").status_code == 400
        assert _submit(client, start="bad").status_code == 400
        assert _submit(client, start="bad").status_code == 429

    def test_low_disk_space(self, client, tmp_path):
        starved = Settings(
            work_directory=str(tmp_path / "work"),
            output_directory=str(tmp_path / "output"),
            min_free_disk_mb=10**12,
        )
        app.dependency_overrides[get_settings] = lambda: starved

        assert _submit(client).status_code == 507


class TestProgressStream:
    """Tests for GET /progress/{task_id} and GET /tasks/{task_id}."""

    def test_stream_ends_with_complete(self, client):
        task_id = _submit(client, filename="clip").json()["task_id"]

        response = client.get(f"/progress/{task_id}")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _sse_events(response.text)
        assert events[0] == {"status": "connected", "progress": 0}
        assert events[-1]["status"] == "complete"
        assert events[-1]["progress"] == 100
        assert events[-1]["filename"] == "clip.mp4"

        progress = [e["progress"] for e in events[1:]]
        assert progress == sorted(progress)

    def test_reconnect_gets_terminal_snapshot(self, client):
        task_id = _submit(client).json()["task_id"]
        client.get(f"/progress/{task_id}")

        events = _sse_events(client.get(f"/progress/{task_id}").text)

        assert len(events) == 2
        assert events[1]["status"] == "complete"

    def test_stream_reports_error(self, client, fake_runner):
        fake_runner.fail_stage = "ffmpeg"
        task_id = _submit(client).json()["task_id"]

        events = _sse_events(client.get(f"/progress/{task_id}").text)

        assert events[-1]["status"] == "error"
        assert events[-1]["message"].startswith("Error: ffmpeg exited with code 1")
        assert "filename" not in events[-1]

    def test_unknown_task(self, client):
        assert client.get("/progress/task_0_missing").status_code == 404
        assert client.get("/tasks/task_0_missing").status_code == 404

    def test_polling_snapshot(self, client):
        task_id = _submit(client).json()["task_id"]
        client.get(f"/progress/{task_id}")

        response = client.get(f"/tasks/{task_id}")

        assert response.status_code == 200
        assert response.json()["status"] == "complete"
        assert response.json()["task_id"] == task_id


class TestDownload:
    """Tests for GET /download/{filename}."""

    def test_download_then_auto_delete(self, client):
        task_id = _submit(client, filename="clip").json()["task_id"]
        client.get(f"/progress/{task_id}")

        response = client.get("/download/clip.mp4")
        assert response.status_code == 200
        assert response.content == b"media data"
        assert response.headers["content-type"] == "video/mp4"
        assert "clip.mp4" in response.headers["content-disposition"]

        assert client.get("/download/clip.mp4").status_code == 404

    def test_audio_media_type(self, client, tmp_path):
        output_dir = tmp_path / "output"
        (output_dir / "song.mp3").write_bytes(b"mp3 data")

        response = client.get("/download/song.mp3")

        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/mpeg"

    def test_traversal_stays_in_output_directory(self, client, tmp_path):
        (tmp_path / "secret.mp4").write_bytes(b"outside")
        (tmp_path / "output" / "secret.mp4").write_bytes(b"inside")

        response = client.get("/download/..%5Csecret.mp4")

        assert response.status_code == 200
        assert response.content == b"inside"

    def test_missing_file(self, client):
        assert client.get("/download/nothing.mp4").status_code == 404

    def test_long_colliding_names_are_both_downloadable(self, client):
        names = []
        for _ in range(2):
            task_id = _submit(client, filename="a" * 90).json()["task_id"]
            events = _sse_events(client.get(f"/progress/{task_id}").text)
            assert events[-1]["status"] == "complete"
            names.append(events[-1]["filename"])

        assert names[0] != names[1]
        for name in names:
            assert client.get(f"/download/{name}").status_code == 200

    def test_clip_still_being_produced_is_refused(self, client, fake_runner, tmp_path):
        fake_runner.gate = asyncio.Event()
        assert _submit(client, filename="clip").status_code == 202
        partial = tmp_path / "output" / "clip.mp4"
        partial.write_bytes(b"partial")

        response = client.get("/download/clip.mp4")

        assert response.status_code == 409
        assert partial.read_bytes() == b"partial"


class TestVideoInfo:
    """Tests for GET /video-info."""

    def test_returns_metadata(self, client, mocker):
        info = VideoInfo(
            video_id="dQw4w9WgXcQ",
            title="Never Gonna Give You Up",
            duration_seconds=213,
            duration_formatted="3:33",
            thumbnail_url="https://i.ytimg.com/vi/dQw4w9WgXcQ/maxresdefault.jpg",
            uploader="Rick Astley",
            view_count=1000,
            video_qualities=[360, 720],
        )
        mocker.patch.object(VideoDownloaderService, "get_video_info", AsyncMock(return_value=info))

        response = client.get("/video-info", params={"url": VIDEO_URL})

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Never Gonna Give You Up"
        assert data["duration"] == 213
        assert data["formats"] == {"video": [360, 720], "audio": ["mp3"]}

    def test_falls_back_when_lookup_fails(self, client, mocker):
        mocker.patch.object(
            VideoDownloaderService,
            "get_video_info",
            AsyncMock(side_effect=VideoInfoError("Failed to get video info: blocked")),
        )

        response = client.get("/video-info", params={"url": "youtu.be/dQw4w9WgXcQ"})

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "dQw4w9WgXcQ"
        assert data["title"] == "YouTube Video"
        assert data["thumbnail"] == "https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg"

    def test_rejects_unsupported_url(self, client):
        response = client.get("/video-info", params={"url": "https://vimeo.com/1"})
        assert response.status_code == 400


class TestServiceEndpoints:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "OK"
        assert set(data["tools"]) == {"yt-dlp", "ffmpeg"}
        assert data["disk"]["has_enough_space"] is True

    def test_root(self, client):
        data = client.get("/").json()
        assert data["service"] == "yt-trimmer"
        assert data["docs"] == "/docs"

    def test_debug_follows_settings(self, client):
        assert app.debug is get_settings().debug is False
