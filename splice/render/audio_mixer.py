"""
Audio pieces of the stitch pipeline.

This module handles:
- Playback-speed tempo chains (atempo is limited to 0.5x-2.0x per filter)
- Per-clip and global gain filters
- Audio-overlay normalization and concatenation stages
- The two-input gain mix of segment audio and overlay audio
"""

import math

from splice.render.encoding import EncodingProfile
from splice.render.filters import Filter, FilterChain, FilterGraph, format_number
from splice.render.stage_runner import StageDescriptor, StageInput
from splice.schemas.operation import AudioClip, GlobalMix

ATEMPO_MIN = 0.5
ATEMPO_MAX = 2.0


def atempo_factors(speed: float) -> list[float]:
    """
    Split a playback speed into atempo factors each within [0.5, 2.0].

    The product of the factors equals ``speed``: 3.0 -> [2.0, 1.5],
    0.25 -> [0.5, 0.5], 1.0 -> [].
    """
    if speed <= 0:
        raise ValueError(f"speed must be positive (got {speed})")
    if math.isclose(speed, 1.0):
        return []

    factors: list[float] = []
    while speed > ATEMPO_MAX:
        factors.append(ATEMPO_MAX)
        speed /= ATEMPO_MAX
    while speed < ATEMPO_MIN:
        factors.append(ATEMPO_MIN)
        speed /= ATEMPO_MIN
    if not math.isclose(speed, 1.0):
        factors.append(speed)
    return factors


def build_atempo_chain(speed: float) -> list[Filter]:
    return [Filter.of("atempo", factor) for factor in atempo_factors(speed)]


def build_volume_filter(gain: float) -> Filter:
    return Filter.of("volume", gain)


def clip_audio_chain(speed: float, volume: float) -> FilterChain:
    """Tempo chain followed by the clip gain (gain omitted at unity)."""
    filters = build_atempo_chain(speed)
    if not math.isclose(volume, 1.0):
        filters.append(build_volume_filter(volume))
    return FilterChain.of(*filters)


def build_gain_mix_graph(global_mix: GlobalMix) -> FilterGraph:
    """``[0:a]`` (segment audio) and ``[1:a]`` (overlay) gained and summed into ``[aout]``.

    The mix lasts as long as the first input so the video length never changes.
    """
    graph = FilterGraph()
    graph.add(["0:a"], build_volume_filter(global_mix.video_mix_gain), ["va"])
    graph.add(["1:a"], build_volume_filter(global_mix.audio_mix_gain), ["oa"])
    graph.add(
        ["va", "oa"],
        Filter.of("amix", inputs=2, duration="first", normalize=0),
        ["aout"],
    )
    return graph


def concat_input(manifest_path: str) -> StageInput:
    """Concat-demuxer input reading a manifest of absolute paths."""
    return StageInput(str(manifest_path), ("-f", "concat", "-safe", "0"))


class AudioMixer:
    """Builds the audio stages of a stitch for one encoding profile."""

    def __init__(self, profile: EncodingProfile):
        self.profile = profile

    def overlay_segment_stage(
        self,
        index: int,
        clip: AudioClip,
        input_path: str,
        output_path: str,
    ) -> StageDescriptor:
        """Trim one overlay entry, apply its gain and encode to the baseline audio codec."""
        duration = clip.segment_duration
        chain = FilterChain()
        if not math.isclose(clip.volume, 1.0):
            chain = FilterChain.of(build_volume_filter(clip.volume))
        return StageDescriptor(
            name=f"audio_{index}",
            inputs=[
                StageInput(
                    input_path,
                    ("-ss", format_number(clip.start), "-t", format_number(duration)),
                )
            ],
            output_path=output_path,
            audio_filters=chain,
            maps=["0:a:0"],
            output_options=["-vn", *self.profile.audio_args(), "-t", format_number(duration)],
            expected_duration_s=duration,
        )

    def overlay_concat_stage(
        self,
        manifest_path: str,
        output_path: str,
        expected_duration_s: float | None = None,
    ) -> StageDescriptor:
        return StageDescriptor(
            name="audio_concat",
            inputs=[concat_input(manifest_path)],
            output_path=output_path,
            output_options=["-c", "copy"],
            expected_duration_s=expected_duration_s,
        )

    def gain_stage(
        self,
        manifest_path: str,
        output_path: str,
        gain: float,
        expected_duration_s: float | None = None,
    ) -> StageDescriptor:
        """Concat segments, copy video, re-encode only the audio with ``gain`` applied."""
        return StageDescriptor(
            name="mix_gain",
            inputs=[concat_input(manifest_path)],
            output_path=output_path,
            audio_filters=FilterChain.of(build_volume_filter(gain)),
            maps=["0:v:0", "0:a:0"],
            output_options=[
                "-c:v", "copy",
                *self.profile.audio_args(),
                *self.profile.container_args(),
            ],
            expected_duration_s=expected_duration_s,
        )

    def mix_stage(
        self,
        video_path: str,
        overlay_path: str,
        output_path: str,
        global_mix: GlobalMix,
        expected_duration_s: float | None = None,
    ) -> StageDescriptor:
        """Copy the video stream and replace audio with the gain-mixed sum of both inputs."""
        return StageDescriptor(
            name="mix",
            inputs=[StageInput(video_path), StageInput(overlay_path)],
            output_path=output_path,
            filter_complex=build_gain_mix_graph(global_mix),
            maps=["0:v:0", "[aout]"],
            output_options=[
                "-c:v", "copy",
                *self.profile.audio_args(),
                *self.profile.container_args(),
            ],
            expected_duration_s=expected_duration_s,
        )
