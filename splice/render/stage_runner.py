"""Single FFmpeg invocation: descriptor in, typed result out.

The orchestrating code awaits ``StageRunner.run`` like a blocking call. Progress
lines from ``-progress pipe:1`` are parsed while the process runs and handed
to the caller's callback without ever holding up the wait.
"""

import asyncio
import logging
import shlex
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from splice.exceptions import StageError, StageTimeoutError
from splice.render.filters import FilterChain, FilterGraph

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Amount of engine stderr kept in StageError messages
STDERR_TAIL_CHARS = 2000


@dataclass(frozen=True)
class StageInput:
    """One ``-i`` input with the options that must precede it."""

    path: str
    options: tuple[str, ...] = ()


@dataclass
class StageDescriptor:
    """Declarative description of one engine invocation."""

    name: str
    inputs: list[StageInput]
    output_path: str
    video_filters: FilterChain = field(default_factory=FilterChain)
    audio_filters: FilterChain = field(default_factory=FilterChain)
    filter_complex: FilterGraph | None = None
    maps: list[str] = field(default_factory=list)
    output_options: list[str] = field(default_factory=list)
    # Used to turn out_time into a fraction; None = no fractional progress
    expected_duration_s: float | None = None

    def build_command(self, ffmpeg_path: str = "ffmpeg") -> list[str]:
        cmd = [ffmpeg_path, "-y", "-hide_banner", "-nostdin", "-loglevel", "error"]
        for stage_input in self.inputs:
            cmd.extend(stage_input.options)
            cmd.extend(["-i", stage_input.path])

        if self.filter_complex:
            cmd.extend(["-filter_complex", self.filter_complex.render()])
        if self.video_filters:
            cmd.extend(["-vf", self.video_filters.render()])
        if self.audio_filters:
            cmd.extend(["-af", self.audio_filters.render()])
        for stream_map in self.maps:
            cmd.extend(["-map", stream_map])

        cmd.extend(self.output_options)
        cmd.extend(["-progress", "pipe:1", self.output_path])
        return cmd


@dataclass
class StageResult:
    stage: str
    output_path: str
    returncode: int
    elapsed_s: float


def parse_progress_line(line: str) -> float | None:
    """Return the encoded position in seconds from an ``out_time_*`` line.

    Both ``out_time_us`` and the historically misnamed ``out_time_ms`` carry
    microseconds. Returns None for other keys and ``N/A`` values.
    """
    key, sep, value = line.partition("=")
    if not sep or key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        micros = int(value)
    except ValueError:
        return None
    return max(0.0, micros / 1_000_000)


class StageRunner:
    """Runs ``StageDescriptor``s through the FFmpeg binary."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout_s: float | None = None,
        cancel_check: Optional[Callable[[], Any]] = None,
    ):
        self.ffmpeg_path = ffmpeg_path
        # 0 / None = unbounded
        self.timeout_s = timeout_s or None
        self._cancel_check = cancel_check

    async def _is_cancelled(self) -> bool:
        """Check if the owning operation has been cancelled."""
        if self._cancel_check is None:
            return False
        result = self._cancel_check()
        if asyncio.iscoroutine(result):
            return await result
        return bool(result)

    async def run(
        self,
        descriptor: StageDescriptor,
        on_progress: ProgressCallback | None = None,
    ) -> StageResult:
        """
        Run one stage to completion.

        Raises:
            StageError: engine missing or non-zero exit
            StageTimeoutError: the stage exceeded ``timeout_s``
            asyncio.CancelledError: cancelled; the subprocess has been killed
        """
        if await self._is_cancelled():
            logger.info(f"[STAGE] {descriptor.name}: cancelled before start")
            raise asyncio.CancelledError()

        cmd = descriptor.build_command(self.ffmpeg_path)
        logger.info(f"[STAGE] {descriptor.name}: {shlex.join(cmd)}")
        started = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise StageError(
                f"FFmpeg not found: {self.ffmpeg_path}", stage=descriptor.name
            ) from e

        try:
            stderr = await asyncio.wait_for(
                self._communicate(proc, descriptor, on_progress), self.timeout_s
            )
        except asyncio.TimeoutError:
            await self._kill(proc)
            logger.error(f"[STAGE] {descriptor.name}: timed out after {self.timeout_s}s")
            raise StageTimeoutError(descriptor.name, self.timeout_s)
        except asyncio.CancelledError:
            await self._kill(proc)
            logger.info(f"[STAGE] {descriptor.name}: cancelled, subprocess killed")
            raise

        elapsed = time.monotonic() - started
        returncode = proc.returncode
        if returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace").strip()
            tail = stderr_text[-STDERR_TAIL_CHARS:]
            logger.error(f"[STAGE] {descriptor.name} failed (exit {returncode}): {stderr_text}")
            raise StageError(
                f"Stage '{descriptor.name}' failed (exit {returncode}): {tail}",
                stage=descriptor.name,
                returncode=returncode,
                stderr=tail,
            )

        logger.info(f"[STAGE] {descriptor.name}: done in {elapsed:.2f}s")
        return StageResult(
            stage=descriptor.name,
            output_path=descriptor.output_path,
            returncode=returncode,
            elapsed_s=elapsed,
        )

    async def _communicate(
        self,
        proc: asyncio.subprocess.Process,
        descriptor: StageDescriptor,
        on_progress: ProgressCallback | None,
    ) -> bytes:
        # stderr is drained concurrently so a chatty engine cannot fill the pipe
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        try:
            await self._read_progress(proc, descriptor, on_progress)
            stderr = await stderr_task
            await proc.wait()
        finally:
            if not stderr_task.done():
                stderr_task.cancel()
        return stderr

    async def _read_progress(
        self,
        proc: asyncio.subprocess.Process,
        descriptor: StageDescriptor,
        on_progress: ProgressCallback | None,
    ) -> None:
        expected = descriptor.expected_duration_s
        async for raw_line in proc.stdout:
            if on_progress is None:
                continue
            line = raw_line.decode("utf-8", errors="replace").strip()
            if line == "progress=end":
                self._emit(on_progress, 1.0, descriptor.name)
                continue
            if not expected or expected <= 0:
                continue
            position = parse_progress_line(line)
            if position is not None:
                self._emit(on_progress, min(1.0, position / expected), descriptor.name)

    @staticmethod
    def _emit(on_progress: ProgressCallback, fraction: float, stage: str) -> None:
        try:
            on_progress(fraction)
        except Exception as e:
            logger.warning(f"[STAGE] {stage}: progress callback failed: {e}")

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()
