"""
Multi-clip stitch with optional audio overlay.

Stage sequence:
1. Normalize every clip (video or still image) to a segment with the
   project's frame size, frame rate and baseline codecs, always carrying
   both a video and an audio stream.
2. Write a concat manifest of the segments in clip order.
3. Normalize and concatenate the audio overlay entries, if any.
4. Final mix: stream-copy concat at unity gain, an audio-only re-encode for
   other gains, or concat + two-input gain mix when an overlay exists.

Every intermediate file lives in the operation's ``ResourceTracker``.
"""

import asyncio
import logging
import math
from pathlib import Path
from typing import Callable, Sequence

from splice.exceptions import EmptyClipListError, SourceNotFoundError
from splice.render.audio_mixer import AudioMixer, clip_audio_chain, concat_input
from splice.render.encoding import EncodingProfile
from splice.render.executor import ExecutionContext, StageExecutor
from splice.render.filters import Filter, FilterChain, concat_manifest_line, format_number
from splice.render.stage_runner import StageDescriptor, StageInput, StageRunner
from splice.schemas.operation import AudioClip, GlobalMix, StitchClip, StitchOperation
from splice.utils.media_info import has_audio_track

logger = logging.getLogger(__name__)


def build_manifest(paths: Sequence[Path | str]) -> str:
    """Concat-demuxer manifest listing ``paths`` in order."""
    return "".join(concat_manifest_line(str(p)) + "\n" for p in paths)


def output_duration(clip: StitchClip) -> float:
    """Length of the normalized segment after the playback-rate change."""
    if clip.type == "image":
        return clip.segment_duration
    return clip.segment_duration / clip.playback_rate


class StitchExecutor(StageExecutor):
    """Concatenate clips into one artifact, optionally mixing an overlay track."""

    def __init__(
        self,
        runner: StageRunner,
        profile: EncodingProfile,
        max_parallel_clips: int = 1,
    ):
        super().__init__(runner, profile)
        self.max_parallel_clips = max(1, max_parallel_clips)
        self.audio = AudioMixer(profile)

    async def execute(self, ctx: ExecutionContext) -> None:
        operation: StitchOperation = ctx.operation
        params = operation.params
        if not params.clips:
            raise EmptyClipListError(operation.id)

        total_duration = sum(output_duration(c) for c in params.clips)
        logger.info(
            f"[STITCH] {operation.id}: {len(params.clips)} clips, "
            f"{len(params.audio_clips)} audio clips, ~{total_duration:.2f}s"
        )

        segments = await self._normalize_clips(ctx, params.clips)
        ctx.progress.complete_stage("clips")

        manifest = ctx.tracker.write_text("video_parts", ".txt", build_manifest(segments))
        overlay = await self._build_overlay(ctx, params.audio_clips)

        partial = ctx.partial_path()
        await self._final_mix(ctx, manifest, overlay, params.global_mix, partial, total_duration)
        ctx.finalize(partial)
        logger.info(f"[STITCH] {operation.id}: wrote {ctx.output_path}")

    # ------------------------------------------------------------------
    # Stage 1: per-clip normalization
    # ------------------------------------------------------------------

    async def _normalize_clips(
        self, ctx: ExecutionContext, clips: Sequence[StitchClip]
    ) -> list[Path]:
        count = len(clips)
        fractions = [0.0] * count

        def clip_progress(index: int) -> Callable[[float], None]:
            def report(fraction: float) -> None:
                fractions[index] = fraction
                ctx.progress.report("clips", sum(fractions) / count)

            return report

        if self.max_parallel_clips == 1:
            segments = []
            for index, clip in enumerate(clips):
                segment = await self._normalize_clip(ctx, index, clip, clip_progress(index))
                clip_progress(index)(1.0)
                segments.append(segment)
            return segments

        semaphore = asyncio.Semaphore(self.max_parallel_clips)

        async def bounded(index: int, clip: StitchClip) -> Path:
            async with semaphore:
                segment = await self._normalize_clip(ctx, index, clip, clip_progress(index))
                clip_progress(index)(1.0)
                return segment

        tasks = [asyncio.ensure_future(bounded(i, c)) for i, c in enumerate(clips)]
        try:
            # gather keeps the results in clip order regardless of finish order
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def _resolve_source(self, ctx: ExecutionContext, url: str, field: str, index: int) -> Path:
        path = ctx.paths.resolve_clip_url(ctx.project.id, url)
        if not path.is_file():
            raise SourceNotFoundError(str(path), field=field, index=index)
        return path

    async def _normalize_clip(
        self,
        ctx: ExecutionContext,
        index: int,
        clip: StitchClip,
        on_progress: Callable[[float], None],
    ) -> Path:
        source = self._resolve_source(ctx, clip.url, "params.clips", index)
        output = ctx.tracker.temp_path(f"clip_{index}", ".mp4")

        if clip.type == "image":
            descriptor = self.image_stage(index, clip, str(source), str(output))
        else:
            source_has_audio = await asyncio.to_thread(has_audio_track, str(source))
            descriptor = self.video_stage(index, clip, str(source), str(output), source_has_audio)

        await self.runner.run(descriptor, on_progress)
        return output

    def image_stage(
        self, index: int, clip: StitchClip, source: str, output: str
    ) -> StageDescriptor:
        """Loop a still image for the clip duration with a silent stereo track."""
        duration = format_number(clip.segment_duration)
        fps = format_number(self.profile.fps)
        return StageDescriptor(
            name=f"clip_{index}",
            inputs=[
                StageInput(source, ("-loop", "1", "-framerate", fps, "-t", duration)),
                StageInput(
                    self.profile.silence_source().render(),
                    ("-f", "lavfi", "-t", duration),
                ),
            ],
            output_path=output,
            video_filters=FilterChain.of(*self.profile.scale_pad_chain()),
            maps=["0:v:0", "1:a:0"],
            output_options=[
                *self.profile.video_args(),
                *self.profile.audio_args(),
                "-t", duration,
                *self.profile.container_args(),
            ],
            expected_duration_s=clip.segment_duration,
        )

    def video_stage(
        self,
        index: int,
        clip: StitchClip,
        source: str,
        output: str,
        source_has_audio: bool = True,
    ) -> StageDescriptor:
        """Trim, retime and re-encode one video clip to the baseline profile."""
        span = clip.segment_duration
        length = output_duration(clip)
        speed = clip.playback_rate

        inputs = [StageInput(source, ("-ss", format_number(clip.start), "-t", format_number(span)))]
        video_filters = self.profile.scale_pad_chain()
        if not math.isclose(speed, 1.0):
            video_filters.insert(0, Filter.of("setpts", f"PTS/{format_number(speed)}"))

        if source_has_audio:
            audio_filters = clip_audio_chain(speed, clip.volume)
            audio_map = "0:a:0"
        else:
            logger.info(f"[STITCH] clip {index} has no audio stream, adding silence")
            inputs.append(
                StageInput(
                    self.profile.silence_source().render(),
                    ("-f", "lavfi", "-t", format_number(length)),
                )
            )
            audio_filters = FilterChain()
            audio_map = "1:a:0"

        return StageDescriptor(
            name=f"clip_{index}",
            inputs=inputs,
            output_path=output,
            video_filters=FilterChain.of(*video_filters),
            audio_filters=audio_filters,
            maps=["0:v:0", audio_map],
            output_options=[
                *self.profile.video_args(),
                *self.profile.audio_args(),
                "-t", format_number(length),
                *self.profile.container_args(),
            ],
            expected_duration_s=length,
        )

    # ------------------------------------------------------------------
    # Stage 3: audio overlay
    # ------------------------------------------------------------------

    async def _build_overlay(
        self, ctx: ExecutionContext, audio_clips: Sequence[AudioClip]
    ) -> Path | None:
        if not audio_clips:
            ctx.progress.skip_stage("audio")
            return None

        # One extra slot for the final concatenation
        steps = len(audio_clips) + 1
        parts: list[Path] = []
        for index, clip in enumerate(audio_clips):
            source = self._resolve_source(ctx, clip.url, "params.audioClips", index)
            output = ctx.tracker.temp_path(f"audio_{index}", ".m4a")
            await self.runner.run(
                self.audio.overlay_segment_stage(index, clip, str(source), str(output)),
                on_progress=lambda f, i=index: ctx.progress.report("audio", (i + f) / steps),
            )
            parts.append(output)

        manifest = ctx.tracker.write_text("audio_parts", ".txt", build_manifest(parts))
        overlay = ctx.tracker.temp_path("overlay", ".m4a")
        await self.runner.run(
            self.audio.overlay_concat_stage(
                str(manifest),
                str(overlay),
                sum(c.segment_duration for c in audio_clips),
            )
        )
        ctx.progress.complete_stage("audio")
        return overlay

    # ------------------------------------------------------------------
    # Stage 4: final mix
    # ------------------------------------------------------------------

    def concat_stage(self, manifest: str, output: str, expected_duration_s: float) -> StageDescriptor:
        """Zero-copy concatenation of normalized segments."""
        return StageDescriptor(
            name="concat",
            inputs=[concat_input(manifest)],
            output_path=output,
            output_options=["-c", "copy", *self.profile.container_args()],
            expected_duration_s=expected_duration_s,
        )

    async def _final_mix(
        self,
        ctx: ExecutionContext,
        manifest: Path,
        overlay: Path | None,
        global_mix: GlobalMix,
        partial: Path,
        total_duration: float,
    ) -> None:
        def report(offset: float, share: float) -> Callable[[float], None]:
            return lambda f: ctx.progress.report("mix", offset + f * share)

        if overlay is None:
            if math.isclose(global_mix.video_mix_gain, 1.0):
                descriptor = self.concat_stage(str(manifest), str(partial), total_duration)
            else:
                descriptor = self.audio.gain_stage(
                    str(manifest), str(partial), global_mix.video_mix_gain, total_duration
                )
            await self.runner.run(descriptor, report(0.0, 1.0))
        else:
            # Concat and mix are always two invocations
            intermediate = ctx.tracker.temp_path("concat", ".mp4")
            await self.runner.run(
                self.concat_stage(str(manifest), str(intermediate), total_duration),
                report(0.0, 0.5),
            )
            await self.runner.run(
                self.audio.mix_stage(
                    str(intermediate), str(overlay), str(partial), global_mix, total_duration
                ),
                report(0.5, 0.5),
            )
        ctx.progress.complete_stage("mix")
