"""Media file information utilities using FFprobe."""

import json
import subprocess
from dataclasses import dataclass

from splice.config import get_settings


@dataclass
class MediaInfo:
    """Media file information."""

    duration_s: float | None = None
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    sample_rate: int | None = None
    channels: int | None = None
    has_video: bool = False
    has_audio: bool = False


def _run_ffprobe(file_path: str, *args: str) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        str(file_path),
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
    except FileNotFoundError:
        raise RuntimeError(f"ffprobe not found: {settings.ffprobe_path}")
    except subprocess.TimeoutExpired:
        raise RuntimeError(f"ffprobe timed out on: {file_path}")

    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse ffprobe output: {e}")


def _parse_frame_rate(value: str) -> float | None:
    if "/" in value:
        num, den = value.split("/", 1)
        try:
            if int(den) > 0:
                return int(num) / int(den)
        except ValueError:
            return None
        return None
    try:
        return float(value)
    except ValueError:
        return None


def get_media_duration(file_path: str) -> float:
    """
    Get media file duration in seconds.

    Args:
        file_path: Path to media file

    Returns:
        Duration in seconds

    Raises:
        RuntimeError: If ffprobe fails or duration not found
    """
    data = _run_ffprobe(file_path, "-show_format")
    format_info = data.get("format", {})

    if "duration" not in format_info:
        raise RuntimeError(f"Duration not found in: {file_path}")

    return float(format_info["duration"])


def get_video_dimensions(file_path: str) -> tuple[int, int]:
    """
    Get video width and height.

    Raises:
        RuntimeError: If ffprobe fails or video stream not found
    """
    data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "v")

    streams = data.get("streams", [])
    if not streams:
        raise RuntimeError(f"No video stream found in: {file_path}")

    stream = streams[0]
    width = stream.get("width")
    height = stream.get("height")

    if width is None or height is None:
        raise RuntimeError(f"Video dimensions not found in: {file_path}")

    return width, height


def has_audio_track(file_path: str) -> bool:
    """Check if media file has an audio track (False when probing fails)."""
    try:
        data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "a")
        return len(data.get("streams", [])) > 0
    except RuntimeError:
        return False


def get_video_codec(file_path: str) -> str | None:
    """Codec name of the first video stream, or None when there is none."""
    data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "v")
    streams = data.get("streams", [])
    if not streams:
        return None
    return streams[0].get("codec_name")


def get_media_info(file_path: str) -> MediaInfo:
    """
    Get complete media file information.

    Raises:
        RuntimeError: If ffprobe fails
    """
    data = _run_ffprobe(file_path, "-show_format", "-show_streams")
    info = MediaInfo()

    format_info = data.get("format", {})
    if "duration" in format_info:
        info.duration_s = float(format_info["duration"])

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")

        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.width = stream.get("width")
            info.height = stream.get("height")
            info.video_codec = stream.get("codec_name")
            info.fps = _parse_frame_rate(stream.get("r_frame_rate", "0/1"))

        elif codec_type == "audio" and not info.has_audio:
            info.has_audio = True
            info.audio_codec = stream.get("codec_name")
            info.sample_rate = int(stream.get("sample_rate", 0)) or None
            info.channels = stream.get("channels")

    return info


def try_get_duration(file_path: str) -> float | None:
    """Duration in seconds, or None when the file cannot be probed."""
    try:
        return get_media_duration(file_path)
    except RuntimeError:
        return None
