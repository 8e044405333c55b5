"""Upload standardization.

Sources in codecs browsers and editors handle poorly (HEVC/H.265) are
re-encoded to the baseline H.264/AAC profile before they enter a project.
"""

import asyncio
import logging
import os
from pathlib import Path

from splice.config import get_settings
from splice.render.encoding import EncodingProfile
from splice.render.stage_runner import StageDescriptor, StageInput, StageRunner
from splice.utils.media_info import get_video_codec, try_get_duration

logger = logging.getLogger(__name__)

HEVC_CODECS = frozenset({"hevc", "h265"})


def needs_standardization(file_path: str | os.PathLike) -> bool:
    """True when the first video stream is HEVC/H.265.

    Raises:
        RuntimeError: If ffprobe fails
    """
    codec = get_video_codec(str(file_path))
    logger.info(f"[STANDARDIZE] Detected codec for {file_path}: {codec}")
    return (codec or "").lower() in HEVC_CODECS


def standardized_name(input_path: str | os.PathLike) -> str:
    return f"{Path(input_path).stem}_clean.mp4"


def build_standardize_stage(
    input_path: str, output_path: str, profile: EncodingProfile
) -> StageDescriptor:
    return StageDescriptor(
        name="standardize",
        inputs=[StageInput(input_path)],
        output_path=output_path,
        maps=["0:v:0", "0:a:0?"],
        output_options=[
            *profile.video_args(),
            *profile.audio_args(),
            *profile.container_args(),
        ],
    )


async def standardize_video(
    input_path: str | os.PathLike,
    output_dir: str | os.PathLike,
    runner: StageRunner | None = None,
) -> str:
    """
    Re-encode a video to web-friendly H.264/AAC MP4.

    Args:
        input_path: Source video
        output_dir: Directory receiving ``<name>_clean.mp4``
        runner: Stage runner (defaults to one built from settings)

    Returns:
        The output file name

    Raises:
        StageError: If the engine fails
    """
    settings = get_settings()
    runner = runner or StageRunner(settings.ffmpeg_path, timeout_s=settings.stage_timeout_s)
    profile = EncodingProfile(
        video_codec=settings.render_video_codec,
        preset=settings.render_preset,
        crf=settings.render_crf,
        pixel_format=settings.render_pixel_format,
        audio_codec=settings.render_audio_codec,
        audio_bitrate=settings.render_audio_bitrate,
        sample_rate=settings.render_audio_sample_rate,
        channels=settings.render_audio_channels,
    )

    output_name = standardized_name(input_path)
    output_path = Path(output_dir) / output_name
    logger.info(f"[STANDARDIZE] {input_path} -> {output_path}")

    descriptor = build_standardize_stage(str(input_path), str(output_path), profile)
    descriptor.expected_duration_s = await asyncio.to_thread(try_get_duration, str(input_path))
    await runner.run(descriptor)

    logger.info("[STANDARDIZE] Standardization complete")
    return output_name
