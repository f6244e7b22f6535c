"""
Stage Runner - Runs one external tool and streams its progress text.

Both pipeline stages (yt-dlp fetch, ffmpeg cut) go through a StageRunner.
The tools print progress as incidental log text with no fixed schema, so
percentage extraction is lenient: the first percentage-shaped token in a
line wins and a line without one is ignored.
"""

import asyncio
import codecs
import logging
import os
import re
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

PERCENT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)%")

READ_CHUNK_SIZE = 4096
TERMINATE_GRACE_SECONDS = 5

# Called for every decoded line with the extracted percentage (or None)
OutputCallback = Callable[[str, Optional[float]], None]


def extract_percent(text: str) -> Optional[float]:
    """Return the first percentage in text, or None. Never raises."""
    if not text:
        return None
    match = PERCENT_PATTERN.search(text)
    if match is None:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


@dataclass(frozen=True)
class StageResult:
    """Outcome of one external tool invocation."""

    exit_code: int
    stderr_tail: str = ""
    stdout: Optional[str] = None  # Only captured on request

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class StageRunner(Protocol):
    """Capability interface for running a pipeline stage."""

    async def run(
        self,
        executable: str,
        args: list[str],
        on_output: Optional[OutputCallback] = None,
        capture_stdout: bool = False,
    ) -> StageResult:
        ...


class _TailBuffer:
    """Keeps only the last `limit` characters written to it."""

    def __init__(self, limit: int):
        self.limit = limit
        self._text = ""

    def write(self, chunk: str) -> None:
        self._text = (self._text + chunk)[-self.limit:]

    def getvalue(self) -> str:
        return self._text


class SubprocessStageRunner:
    """
    Default StageRunner backed by asyncio subprocesses.

    The command is always an argument list (never a shell), so URLs and
    filenames cannot inject commands. stdout and stderr are consumed
    concurrently, chunk by chunk, as they arrive.
    """

    def __init__(
        self,
        stderr_tail_chars: int = 500,
        timeout_seconds: Optional[float] = None,
        excerpt_chars: int = 200,
    ):
        self.stderr_tail_chars = stderr_tail_chars
        self.excerpt_chars = excerpt_chars
        self.timeout_seconds = timeout_seconds or None

    async def run(
        self,
        executable: str,
        args: list[str],
        on_output: Optional[OutputCallback] = None,
        capture_stdout: bool = False,
    ) -> StageResult:
        """
        Run `executable args...` to completion.

        Args:
            executable: Program name or path
            args: Arguments, passed verbatim
            on_output: Receives (chunk, percent_or_None) for every chunk from
                either stream
            capture_stdout: Keep the full stdout text in the result

        Returns:
            StageResult for a zero exit status

        Raises:
            StageSpawnError: If the program cannot be launched
            StageFailed: On a non-zero exit status or timeout
        """
        stage = os.path.basename(executable)
        logger.debug(f"Running: {executable} {' '.join(args[:12])}")

        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.error(f"{stage} could not be launched: {e}")
            raise StageSpawnError(stage, str(e)) from e
        except OSError as e:
            logger.error(f"{stage} spawn error: {e}")
            raise StageSpawnError(stage, str(e)) from e

        stderr_tail = _TailBuffer(self.stderr_tail_chars)
        stdout_parts: list[str] = []

        async def pump(stream: asyncio.StreamReader, is_stderr: bool) -> None:
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            # Text after the last line break; a token may straddle two reads
            pending = ""
            while True:
                data = await stream.read(READ_CHUNK_SIZE)
                if not data:
                    text = decoder.decode(b"", final=True)
                else:
                    text = decoder.decode(data)
                if text:
                    if is_stderr:
                        stderr_tail.write(text)
                    elif capture_stdout:
                        stdout_parts.append(text)
                    logger.debug(f"{stage} {'stderr' if is_stderr else 'stdout'}: {text[:200]!r}")
                    if on_output is not None:
                        lines = (pending + text).splitlines(keepends=True)
                        pending = ""
                        if lines and not lines[-1].endswith(("\n", "\r")):
                            pending = lines.pop()
                        for line in lines:
                            on_output(line, extract_percent(line))
                if not data:
                    if pending and on_output is not None:
                        on_output(pending, extract_percent(pending))
                    return

        pumps = [
            asyncio.ensure_future(pump(proc.stdout, is_stderr=False)),
            asyncio.ensure_future(pump(proc.stderr, is_stderr=True)),
        ]
        readers = asyncio.gather(*pumps)

        try:
            await asyncio.wait_for(readers, timeout=self.timeout_seconds)
            exit_code = await proc.wait()
        except asyncio.TimeoutError:
            logger.warning(f"{stage} timed out after {self.timeout_seconds}s, terminating")
            await self._terminate(proc)
            raise StageFailed(
                stage,
                -1,
                stderr_tail.getvalue(),
                reason=f"timed out after {self.timeout_seconds:.0f}s",
                excerpt_chars=self.excerpt_chars,
            )
        except BaseException:
            # Cancellation or a failing output callback
            for reader in pumps:
                reader.cancel()
            await self._terminate(proc)
            raise

        result = StageResult(
            exit_code=exit_code,
            stderr_tail=stderr_tail.getvalue(),
            stdout="".join(stdout_parts) if capture_stdout else None,
        )

        if not result.success:
            logger.error(
                f"{stage} failed (exit {exit_code}): {result.stderr_tail[-500:]}"
            )
            raise StageFailed(
                stage, exit_code, result.stderr_tail, excerpt_chars=self.excerpt_chars
            )

        return result

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM, then SIGKILL after a grace period."""
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Process did not exit after SIGTERM, sending SIGKILL")
            proc.kill()
            await proc.wait()


class StageSpawnError(Exception):
    """Exception raised when an external tool cannot be launched."""

    def __init__(self, stage: str, detail: str):
        self.stage = stage
        self.detail = detail
        super().__init__(f"{stage} could not be started: {detail}")


class StageFailed(Exception):
    """Exception raised when an external tool exits with a non-zero status."""

    def __init__(
        self,
        stage: str,
        exit_code: int,
        stderr_tail: str = "",
        reason: Optional[str] = None,
        excerpt_chars: int = 200,
    ):
        self.stage = stage
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        excerpt = stderr_tail.strip()[-excerpt_chars:]
        summary = reason or f"exited with code {exit_code}"
        message = f"{stage} {summary}"
        if excerpt:
            message = f"{message}: {excerpt}"
        super().__init__(message)
