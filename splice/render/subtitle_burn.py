"""
Subtitle burn-in.

Cues are written to a tracked SRT file, which the ``subtitles`` filter then
renders into the video with a fixed style.
"""

import logging
from typing import Sequence

from splice.render.executor import ExecutionContext, StageExecutor
from splice.render.filters import Filter, FilterChain, filter_path
from splice.render.stage_runner import StageDescriptor, StageInput
from splice.schemas.operation import SubtitleCue, SubtitleParams

logger = logging.getLogger(__name__)

SUBTITLE_STYLE = ",".join(
    [
        "Fontname=Arial",
        "FontSize=20",
        "PrimaryColour=&H00FFFFFF",
        "OutlineColour=&H00000000",
        "BorderStyle=1",
        "Outline=2",
        "Shadow=0",
        "MarginV=20",
    ]
)

# libass rejects an SRT without cues; an empty list becomes one invisible cue
_PLACEHOLDER_CUE = SubtitleCue(start=0, end=0.001, text="\u200b")


def format_srt_timestamp(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS,mmm``."""
    total_ms = max(0, round(seconds * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def _cue_text(text: str) -> str:
    # A blank line inside a cue would end it early
    lines = [line for line in text.replace("\r\n", "\n").split("\n") if line.strip()]
    return "\n".join(lines) or "\u200b"


def render_srt(cues: Sequence[SubtitleCue]) -> str:
    """Render cues as SRT: index, time range, text, blank separator."""
    if not cues:
        cues = [_PLACEHOLDER_CUE]
    blocks = []
    for index, cue in enumerate(cues, start=1):
        end = max(cue.end, cue.start)
        blocks.append(
            f"{index}\n"
            f"{format_srt_timestamp(cue.start)} --> {format_srt_timestamp(end)}\n"
            f"{_cue_text(cue.text)}\n"
        )
    return "\n".join(blocks)


def build_subtitles_filter(srt_path: str) -> Filter:
    return Filter.of("subtitles", filename=filter_path(srt_path), force_style=SUBTITLE_STYLE)


class SubtitleBurnExecutor(StageExecutor):
    async def execute(self, ctx: ExecutionContext) -> None:
        params: SubtitleParams = ctx.operation.params
        if not params.subtitles:
            logger.info(f"[SUBTITLE] {ctx.operation.id}: no cues, burning placeholder")

        srt_path = ctx.tracker.write_text("subtitles", ".srt", render_srt(params.subtitles))
        ctx.progress.complete_stage("subtitles")

        partial = ctx.partial_path()
        duration = await self.probe_duration(ctx.input_path)
        descriptor = StageDescriptor(
            name="burn",
            inputs=[StageInput(str(ctx.input_path))],
            output_path=str(partial),
            video_filters=FilterChain.of(build_subtitles_filter(str(srt_path))),
            maps=["0:v:0", "0:a:0?"],
            output_options=[
                *self.profile.video_args(),
                "-c:a", "copy",
                *self.profile.container_args(),
            ],
            expected_duration_s=duration,
        )
        await self.run_stage(ctx, descriptor, "burn")
        ctx.finalize(partial)
