"""
Pytest fixtures for splice tests.

Media is synthesized with FFmpeg's lavfi sources, so no test data directory
is needed. Tests that run the real engine are marked with
@pytest.mark.requires_ffmpeg and skipped when ffmpeg/ffprobe are missing.
Engine-free tests use ``RecordingRunner``, which records every
StageDescriptor and creates its output file instead of running FFmpeg.
"""

import shutil
import subprocess
import tempfile
from pathlib import Path

import pytest

from splice.exceptions import StageError
from splice.render.stage_runner import StageDescriptor, StageResult


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring ffmpeg and ffprobe on PATH"
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def ffmpeg_has_filter(name: str) -> bool:
    if not _ffmpeg_available():
        return False
    result = subprocess.run(
        ["ffmpeg", "-hide_banner", "-filters"], capture_output=True, text=True
    )
    return any(
        len(parts) > 1 and parts[1] == name
        for parts in (line.split() for line in result.stdout.splitlines())
    )


# Skip decorator for tests requiring the engine
requires_ffmpeg = pytest.mark.skipif(
    not _ffmpeg_available(),
    reason="ffmpeg/ffprobe not available on PATH",
)


def _ffmpeg(*args: str) -> None:
    subprocess.run(["ffmpeg", "-y", "-hide_banner", "-loglevel", "error", *args], check=True)


def make_video(
    path: Path,
    duration: float = 2.0,
    size: str = "320x240",
    rate: int = 25,
    with_audio: bool = True,
) -> Path:
    """Generate a test-pattern video (with a sine tone unless ``with_audio`` is False)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    args = ["-f", "lavfi", "-i", f"testsrc=size={size}:rate={rate}:duration={duration}"]
    if with_audio:
        args += ["-f", "lavfi", "-i", f"sine=frequency=440:sample_rate=44100:duration={duration}"]
    args += ["-c:v", "libx264", "-preset", "ultrafast", "-pix_fmt", "yuv420p"]
    if with_audio:
        args += ["-c:a", "aac", "-shortest"]
    _ffmpeg(*args, str(path))
    return path


def make_image(path: Path, size: str = "200x300", color: str = "red") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    _ffmpeg("-f", "lavfi", "-i", f"color=c={color}:size={size}", "-frames:v", "1", str(path))
    return path


def make_audio(path: Path, duration: float = 2.0, frequency: int = 880) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    _ffmpeg(
        "-f", "lavfi",
        "-i", f"sine=frequency={frequency}:sample_rate=44100:duration={duration}",
        "-c:a", "aac",
        str(path),
    )
    return path


class RecordingRunner:
    """StageRunner double: records descriptors and touches their outputs."""

    def __init__(self, fail_on: str | None = None, progress_steps: tuple[float, ...] = (0.5, 1.0)):
        self.descriptors: list[StageDescriptor] = []
        self.fail_on = fail_on
        self.progress_steps = progress_steps

    @property
    def stage_names(self) -> list[str]:
        return [d.name for d in self.descriptors]

    def get(self, name: str) -> StageDescriptor:
        for descriptor in self.descriptors:
            if descriptor.name == name:
                return descriptor
        raise KeyError(name)

    async def run(self, descriptor: StageDescriptor, on_progress=None) -> StageResult:
        self.descriptors.append(descriptor)
        if descriptor.name == self.fail_on:
            raise StageError(
                f"Stage '{descriptor.name}' failed (exit 1): simulated",
                stage=descriptor.name,
                returncode=1,
                stderr="simulated",
            )
        if on_progress is not None:
            for step in self.progress_steps:
                on_progress(step)
        Path(descriptor.output_path).write_bytes(b"\x00" * 16)
        return StageResult(
            stage=descriptor.name,
            output_path=descriptor.output_path,
            returncode=0,
            elapsed_s=0.0,
        )


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="splice_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Project root with one project ``p1`` and empty source/artifacts folders."""
    root = tmp_path / "projects"
    (root / "p1" / "source").mkdir(parents=True)
    return root


@pytest.fixture
def source_dir(project_root: Path) -> Path:
    return project_root / "p1" / "source"


@pytest.fixture
def artifacts_dir(project_root: Path) -> Path:
    return project_root / "p1" / "artifacts"


@pytest.fixture
def fake_head(source_dir: Path) -> str:
    """Placeholder source file for engine-free tests; returns its logical path."""
    (source_dir / "input.mp4").write_bytes(b"\x00" * 16)
    return "/projects/p1/source/input.mp4"


@pytest.fixture
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def no_probe(monkeypatch):
    """Make engine-free tests independent of ffprobe on the host."""
    monkeypatch.setattr("splice.render.stitch.has_audio_track", lambda path: True)
    monkeypatch.setattr("splice.render.executor.try_get_duration", lambda path: 10.0)
