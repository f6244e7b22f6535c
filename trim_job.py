#!/usr/bin/env python3
"""
Client script for the YT-Trimmer API.

Submits a trim, follows the Server-Sent Events progress stream until the
task finishes, then downloads the clip.

Usage:
    python trim_job.py URL --start 00:01:00 --end 00:01:30
    python trim_job.py URL --start 1:00 --end 1:30 --format audio
    python trim_job.py URL --start 1:00 --end 1:30 --poll     # Poll instead of SSE

Environment (.env):
    TRIMMER_BASE_URL   Server address (default http://localhost:3000)
    TRIMMER_API_KEY    Sent as X-Trimmer-API-Key when set
"""

import argparse
import json
import os
import sys
import time
from pathlib import Path

import requests
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Configuration
BASE_URL = os.getenv("TRIMMER_BASE_URL", "http://localhost:3000")
API_KEY = os.getenv("TRIMMER_API_KEY")

# Output directory
OUTPUT_DIR = Path("trimmed_clips")


def _headers() -> dict:
    headers = {"Content-Type": "application/json"}
    if API_KEY:
        headers["X-Trimmer-API-Key"] = API_KEY
    return headers


def submit_trim(url: str, start: str, end: str, output_format: str = "video",
                quality: int = None, filename: str = None):
    """Submit a trim task. Returns the task id or None."""
    payload = {
        "url": url,
        "start": start,
        "end": end,
        "format": output_format,
    }
    if quality is not None:
        payload["quality"] = quality
    if filename:
        payload["filename"] = filename

    print(f"\nSubmitting trim")
    print(f"   Video: {url}")
    print(f"   Range: {start} - {end}")
    print(f"   Format: {output_format}" + (f" ({quality}p)" if quality else ""))

    response = requests.post(f"{BASE_URL}/trim", headers=_headers(), json=payload)

    if response.status_code != 202:
        print(f"Failed to submit trim: {response.status_code}")
        try:
            body = response.json()
            for error in body.get("errors", []):
                print(f"   - {error}")
            if not body.get("errors"):
                print(f"   {body.get('detail') or body.get('message')}")
        except ValueError:
            print(response.text)
        return None

    task_id = response.json()["task_id"]
    print(f"Task submitted: {task_id}")
    return task_id


def follow_progress(task_id: str):
    """Read the SSE stream until a terminal event. Returns the final event."""
    print(f"\nFollowing progress for {task_id}...")
    start_time = time.time()
    last_event = None

    with requests.get(f"{BASE_URL}/progress/{task_id}", stream=True, timeout=(10, None)) as response:
        if response.status_code != 200:
            print(f"Failed to open progress stream: {response.status_code}")
            return None

        for line in response.iter_lines(decode_unicode=True):
            if not line or not line.startswith("data: "):
                continue
            event = json.loads(line[len("data: "):])
            if event.get("status") == "connected":
                continue

            elapsed = time.time() - start_time
            print(f"   [{event.get('progress', 0):3d}%] [{elapsed:6.1f}s] "
                  f"{event.get('status')}: {event.get('message', '')}")
            last_event = event

            if event.get("status") in ("complete", "error"):
                break

    return last_event


def poll_progress(task_id: str, poll_interval: int = 2):
    """Poll GET /tasks/{task_id} until a terminal status. Returns the final snapshot."""
    print(f"\nPolling task {task_id}...")
    start_time = time.time()
    last_message = ""

    while True:
        response = requests.get(f"{BASE_URL}/tasks/{task_id}")
        if response.status_code != 200:
            print(f"Failed to get task status: {response.status_code}")
            return None

        snapshot = response.json()
        if snapshot.get("message") != last_message:
            elapsed = time.time() - start_time
            print(f"   [{snapshot.get('progress', 0):3d}%] [{elapsed:6.1f}s] "
                  f"{snapshot.get('status')}: {snapshot.get('message', '')}")
            last_message = snapshot.get("message")

        if snapshot.get("status") in ("complete", "error"):
            return snapshot

        time.sleep(poll_interval)


def download_clip(filename: str):
    """Download a finished clip into OUTPUT_DIR. Returns the local path or None."""
    OUTPUT_DIR.mkdir(exist_ok=True)
    local_path = OUTPUT_DIR / filename

    print(f"\nDownloading {filename}...")
    with requests.get(f"{BASE_URL}/download/{filename}", stream=True) as response:
        if response.status_code != 200:
            print(f"Download failed: {response.status_code}")
            return None
        with open(local_path, "wb") as f:
            for chunk in response.iter_content(chunk_size=1024 * 1024):
                f.write(chunk)

    size_mb = local_path.stat().st_size / (1024 * 1024)
    print(f"Saved {local_path} ({size_mb:.1f} MB)")
    return local_path


def main():
    parser = argparse.ArgumentParser(
        description="Trim a YouTube video through the YT-Trimmer API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python trim_job.py https://youtu.be/dQw4w9WgXcQ --start 0:30 --end 1:15
  python trim_job.py https://youtu.be/dQw4w9WgXcQ --start 0:30 --end 1:15 --quality 1080
  python trim_job.py https://youtu.be/dQw4w9WgXcQ --start 0:30 --end 1:15 --format audio
        """
    )
    parser.add_argument("url", help="YouTube video URL")
    parser.add_argument("--start", required=True, help="Start time (HH:MM:SS or MM:SS)")
    parser.add_argument("--end", required=True, help="End time (HH:MM:SS or MM:SS)")
    parser.add_argument("--format", dest="output_format", choices=["video", "audio"], default="video")
    parser.add_argument("--quality", type=int, default=None, help="Maximum video height (e.g. 720)")
    parser.add_argument("--filename", type=str, default=None, help="Output name without extension")
    parser.add_argument("--poll", action="store_true", help="Poll /tasks instead of the SSE stream")
    parser.add_argument("--no-download", action="store_true", help="Skip downloading the finished clip")

    args = parser.parse_args()

    task_id = submit_trim(
        args.url,
        args.start,
        args.end,
        output_format=args.output_format,
        quality=args.quality,
        filename=args.filename,
    )
    if not task_id:
        return 1

    final = poll_progress(task_id) if args.poll else follow_progress(task_id)

    if not final or final.get("status") != "complete":
        print(f"\nTrim failed: {final.get('message') if final else 'no result'}")
        return 1

    print(f"\nTrim complete: {final.get('filename')}")
    if not args.no_download:
        download_clip(final["filename"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
