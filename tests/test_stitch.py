"""Tests for the stitch executor.

Unit tests run the full dispatcher against RecordingRunner; integration
tests run the real engine on synthetic media.
"""

import asyncio
import shutil
import subprocess
from pathlib import Path

import pytest

from conftest import RecordingRunner, make_audio, make_image, make_video, requires_ffmpeg
from splice.config import Settings
from splice.exceptions import EmptyClipListError, SourceNotFoundError, StageError
from splice.render.pipeline import OperationPipeline
from splice.render.stage_runner import StageRunner
from splice.render.stitch import build_manifest, output_duration
from splice.schemas.operation import StitchClip
from splice.utils.media_info import get_media_duration, get_media_info

PROJECT = {"id": "p1", "width": 640, "height": 360, "fps": 25}


def stitch_op(clips, audio_clips=(), global_mix=None, op_id="st1") -> dict:
    params = {"clips": list(clips), "audioClips": list(audio_clips)}
    if global_mix is not None:
        params["globalMix"] = global_mix
    return {"id": op_id, "type": "stitch", "params": params}


def video_clip(name: str, start: float = 0, end: float = 1, **extra) -> dict:
    return {"url": f"/projects/p1/source/{name}", "start": start, "end": end, "type": "video", **extra}


def image_clip(name: str, duration: float = 3) -> dict:
    return {"url": f"/projects/p1/source/{name}", "type": "image", "duration": duration}


@pytest.fixture
def placeholders(source_dir: Path):
    """Placeholder source files for engine-free tests."""
    for name in ("a.mp4", "b.mp4", "still.png", "music.m4a"):
        (source_dir / name).write_bytes(b"\x00" * 16)
    return source_dir


def leftovers(artifacts_dir: Path) -> list[str]:
    if not artifacts_dir.exists():
        return []
    return sorted(p.name for p in artifacts_dir.iterdir())


class TestHelpers:
    def test_manifest_in_order(self):
        assert build_manifest(["/w/clip_0.mp4", "/w/clip_1.mp4"]) == (
            "file '/w/clip_0.mp4'\nfile '/w/clip_1.mp4'\n"
        )

    def test_output_duration_accounts_for_speed(self):
        assert output_duration(StitchClip(url="a", start=0, end=6, playback_rate=3)) == 2
        assert output_duration(StitchClip(url="a", type="image", duration=3, playback_rate=3)) == 3


class TestStitchStages:
    @pytest.mark.asyncio
    async def test_unity_gain_uses_stream_copy_concat(
        self, project_root: Path, artifacts_dir: Path, placeholders, no_probe
    ):
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())

        result = await pipeline.process(
            PROJECT, stitch_op([video_clip("a.mp4"), video_clip("b.mp4"), image_clip("still.png")])
        )

        assert result == "/projects/p1/artifacts/v1_stitch_st1.mp4"
        assert runner.stage_names == ["clip_0", "clip_1", "clip_2", "concat"]
        cmd = runner.get("concat").build_command()
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd[cmd.index("-f") + 1] == "concat"
        assert leftovers(artifacts_dir) == ["v1_stitch_st1.mp4"]

    @pytest.mark.asyncio
    async def test_image_clip_stage(self, project_root: Path, placeholders, no_probe):
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())
        await pipeline.process(PROJECT, stitch_op([image_clip("still.png", duration=3)]))

        descriptor = runner.get("clip_0")
        image_input, silence_input = descriptor.inputs
        assert image_input.options == ("-loop", "1", "-framerate", "25", "-t", "3")
        assert silence_input.options == ("-f", "lavfi", "-t", "3")
        assert silence_input.path.startswith("anullsrc=channel_layout=stereo")
        assert descriptor.maps == ["0:v:0", "1:a:0"]
        vf = descriptor.video_filters.render()
        assert vf.startswith("scale=640:360:force_original_aspect_ratio=decrease,pad=640:360")

    @pytest.mark.asyncio
    async def test_speed_change_filters(self, project_root: Path, placeholders, no_probe):
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())
        await pipeline.process(
            PROJECT, stitch_op([video_clip("a.mp4", 0, 6, playbackRate=3.0, volume=0.5)])
        )

        descriptor = runner.get("clip_0")
        assert descriptor.video_filters.names()[0] == "setpts"
        assert descriptor.video_filters.render().startswith("setpts=PTS/3,")
        assert descriptor.audio_filters.render() == "atempo=2,atempo=1.5,volume=0.5"
        cmd = descriptor.build_command()
        # 6s of source at 3x lasts 2s
        assert cmd[len(cmd) - cmd[::-1].index("-t")] == "2"
        assert descriptor.expected_duration_s == 2

    @pytest.mark.asyncio
    async def test_short_clip_clamped(self, project_root: Path, placeholders, no_probe):
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())
        await pipeline.process(PROJECT, stitch_op([video_clip("a.mp4", 1.0, 1.02)]))

        assert runner.get("clip_0").inputs[0].options == ("-ss", "1", "-t", "0.1")

    @pytest.mark.asyncio
    async def test_source_without_audio_gets_silence(
        self, project_root: Path, placeholders, no_probe, monkeypatch
    ):
        monkeypatch.setattr("splice.render.stitch.has_audio_track", lambda path: False)
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())
        await pipeline.process(PROJECT, stitch_op([video_clip("a.mp4")]))

        descriptor = runner.get("clip_0")
        assert descriptor.inputs[1].options[:2] == ("-f", "lavfi")
        assert descriptor.maps == ["0:v:0", "1:a:0"]
        assert not descriptor.audio_filters

    @pytest.mark.asyncio
    async def test_video_gain_reencodes_audio_only(self, project_root: Path, placeholders, no_probe):
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())
        await pipeline.process(
            PROJECT, stitch_op([video_clip("a.mp4")], global_mix={"videoMixGain": 0.5})
        )
        assert runner.stage_names == ["clip_0", "mix_gain"]

    @pytest.mark.asyncio
    async def test_overlay_is_concat_then_mix(
        self, project_root: Path, artifacts_dir: Path, placeholders, no_probe
    ):
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())
        await pipeline.process(
            PROJECT,
            stitch_op(
                [video_clip("a.mp4")],
                audio_clips=[{"url": "/projects/p1/source/music.m4a", "start": 0, "end": 1, "volume": 0.7}],
                global_mix={"videoMixGain": 0.5, "audioMixGain": 1.0},
            ),
        )

        assert runner.stage_names == ["clip_0", "audio_0", "audio_concat", "concat", "mix"]
        concat = runner.get("concat")
        mix = runner.get("mix")
        assert mix.inputs[0].path == concat.output_path
        assert mix.inputs[1].path == runner.get("audio_concat").output_path
        assert mix.filter_complex.render().endswith("amix=inputs=2:duration=first:normalize=0[aout]")
        assert leftovers(artifacts_dir) == ["v1_stitch_st1.mp4"]

    @pytest.mark.asyncio
    async def test_artifact_clip_urls_resolve_to_artifacts(
        self, project_root: Path, artifacts_dir: Path, placeholders, no_probe
    ):
        artifacts_dir.mkdir(parents=True)
        (artifacts_dir / "v1_trim_t1.mp4").write_bytes(b"\x00")
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())

        await pipeline.process(
            {**PROJECT, "operations": [{"id": "t1", "type": "trim", "params": {"start": 0, "end": 1}}]},
            stitch_op([{"url": "http://host/projects/p1/artifacts/v1_trim_t1.mp4", "end": 1}]),
        )
        assert Path(runner.get("clip_0").inputs[0].path).parent.name == "artifacts"


    @pytest.mark.asyncio
    async def test_clip_names_with_hash_resolve(
        self, project_root: Path, source_dir: Path, placeholders, no_probe
    ):
        (source_dir / "take#1.mp4").write_bytes(b"\x00")
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())

        await pipeline.process(PROJECT, stitch_op([video_clip("take#1.mp4")]))

        assert Path(runner.get("clip_0").inputs[0].path).name == "take#1.mp4"


class TestStitchFailures:
    @pytest.mark.asyncio
    async def test_zero_clips_creates_nothing(self, project_root: Path, artifacts_dir: Path):
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())

        with pytest.raises(EmptyClipListError):
            await pipeline.process(PROJECT, stitch_op([]))

        assert runner.descriptors == []
        assert not artifacts_dir.exists()

    @pytest.mark.asyncio
    async def test_missing_clip_aborts_and_cleans_up(
        self, project_root: Path, artifacts_dir: Path, placeholders, no_probe
    ):
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())

        with pytest.raises(SourceNotFoundError) as exc_info:
            await pipeline.process(
                PROJECT, stitch_op([video_clip("a.mp4"), video_clip("missing.mp4")])
            )

        assert exc_info.value.location.field == "params.clips"
        assert exc_info.value.location.index == 1
        assert runner.stage_names == ["clip_0"]
        assert leftovers(artifacts_dir) == []

    @pytest.mark.asyncio
    async def test_missing_overlay_source_names_audio_list(
        self, project_root: Path, artifacts_dir: Path, placeholders, no_probe
    ):
        runner = RecordingRunner()
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())

        with pytest.raises(SourceNotFoundError) as exc_info:
            await pipeline.process(
                PROJECT,
                stitch_op(
                    [video_clip("a.mp4")],
                    audio_clips=[{"url": "music.m4a", "end": 1}, {"url": "gone.m4a", "end": 1}],
                ),
            )

        info = exc_info.value.to_error_info()
        assert info.location.field == "params.audioClips"
        assert info.location.index == 1
        assert leftovers(artifacts_dir) == []

    @pytest.mark.asyncio
    async def test_mix_failure_leaves_no_artifact(
        self, project_root: Path, artifacts_dir: Path, placeholders, no_probe
    ):
        pipeline = OperationPipeline(
            project_root, runner=RecordingRunner(fail_on="mix"), settings=Settings()
        )
        with pytest.raises(StageError):
            await pipeline.process(
                PROJECT,
                stitch_op(
                    [video_clip("a.mp4"), image_clip("still.png")],
                    audio_clips=[{"url": "music.m4a", "end": 1}],
                ),
            )
        assert leftovers(artifacts_dir) == []

    @pytest.mark.asyncio
    async def test_progress_never_reaches_100_on_failure(
        self, project_root: Path, placeholders, no_probe
    ):
        seen: list[int] = []
        pipeline = OperationPipeline(
            project_root,
            runner=RecordingRunner(fail_on="concat"),
            settings=Settings(),
            progress_callback=lambda p: seen.append(p.percent),
        )
        with pytest.raises(StageError):
            await pipeline.process(PROJECT, stitch_op([video_clip("a.mp4")]))

        assert seen == sorted(seen)
        assert 100 not in seen


class DelayedRunner(RecordingRunner):
    """Finishes later clips first to exercise ordering under parallelism."""

    def __init__(self, delays: dict[str, float]):
        super().__init__()
        self.delays = delays
        self.manifest = ""
        self.completed: list[str] = []

    async def run(self, descriptor, on_progress=None):
        await asyncio.sleep(self.delays.get(descriptor.name, 0))
        if descriptor.name == "concat":
            self.manifest = Path(descriptor.inputs[0].path).read_text(encoding="utf-8")
        result = await super().run(descriptor, on_progress)
        self.completed.append(descriptor.name)
        return result


class TestParallelNormalization:
    @pytest.mark.asyncio
    async def test_manifest_keeps_clip_order(self, project_root: Path, placeholders, no_probe):
        runner = DelayedRunner({"clip_0": 0.15, "clip_1": 0.05, "clip_2": 0.0})
        pipeline = OperationPipeline(
            project_root, runner=runner, settings=Settings(max_parallel_clips=3)
        )

        await pipeline.process(
            PROJECT, stitch_op([video_clip("a.mp4"), video_clip("b.mp4"), image_clip("still.png")])
        )

        assert runner.completed[:3] == ["clip_2", "clip_1", "clip_0"]
        lines = runner.manifest.splitlines()
        assert [line.rsplit("clip_", 1)[1][0] for line in lines] == ["0", "1", "2"]

    @pytest.mark.asyncio
    async def test_failure_cancels_siblings(
        self, project_root: Path, artifacts_dir: Path, placeholders, no_probe
    ):
        class FailingDelayedRunner(DelayedRunner):
            async def run(self, descriptor, on_progress=None):
                if descriptor.name == "clip_1":
                    raise StageError("boom", stage="clip_1")
                return await super().run(descriptor, on_progress)

        runner = FailingDelayedRunner({"clip_0": 0.5})
        pipeline = OperationPipeline(
            project_root, runner=runner, settings=Settings(max_parallel_clips=2)
        )
        with pytest.raises(StageError):
            await pipeline.process(PROJECT, stitch_op([video_clip("a.mp4"), video_clip("b.mp4")]))

        assert "clip_0" not in runner.completed
        assert leftovers(artifacts_dir) == []


class SpyRunner(StageRunner):
    """Real runner that records descriptors and keeps copies of stage outputs."""

    def __init__(self, keep_dir: Path):
        super().__init__(ffmpeg_path="ffmpeg", timeout_s=120)
        self.keep_dir = keep_dir
        self.descriptors = []

    async def run(self, descriptor, on_progress=None):
        self.descriptors.append(descriptor)
        result = await super().run(descriptor, on_progress)
        shutil.copy(descriptor.output_path, self.keep_dir / descriptor.name)
        return result


def decoded_video_md5(path: Path) -> str:
    result = subprocess.run(
        ["ffmpeg", "-v", "error", "-i", str(path), "-map", "0:v:0", "-f", "md5", "-"],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@requires_ffmpeg
@pytest.mark.requires_ffmpeg
class TestStitchIntegration:
    @pytest.mark.asyncio
    async def test_two_videos_and_image(
        self, project_root: Path, source_dir: Path, artifacts_dir: Path, temp_output_dir: Path
    ):
        make_video(source_dir / "a.mp4", duration=3)
        make_video(source_dir / "b.mp4", duration=3, size="640x480", with_audio=False)
        make_image(source_dir / "still.png")
        runner = SpyRunner(temp_output_dir)
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())

        logical = await pipeline.process(
            PROJECT,
            stitch_op(
                [video_clip("a.mp4", 0, 1.5), video_clip("b.mp4", 1, 2), image_clip("still.png", 3)]
            ),
        )

        output = pipeline.paths.to_host_path(logical)
        assert get_media_duration(str(output)) == pytest.approx(5.5, abs=0.3)
        info = get_media_info(str(output))
        assert (info.width, info.height) == (640, 360)
        assert info.has_audio
        assert [d.name for d in runner.descriptors][-1] == "concat"
        assert leftovers(artifacts_dir) == ["v1_stitch_st1.mp4"]

    @pytest.mark.asyncio
    async def test_overlay_mix_copies_video(
        self, project_root: Path, source_dir: Path, artifacts_dir: Path, temp_output_dir: Path
    ):
        make_video(source_dir / "a.mp4", duration=2)
        make_audio(source_dir / "music.m4a", duration=2)
        runner = SpyRunner(temp_output_dir)
        pipeline = OperationPipeline(project_root, runner=runner, settings=Settings())

        logical = await pipeline.process(
            PROJECT,
            stitch_op(
                [video_clip("a.mp4", 0, 2)],
                audio_clips=[{"url": "/projects/p1/source/music.m4a", "start": 0, "end": 2}],
                global_mix={"videoMixGain": 0.5, "audioMixGain": 1.0},
            ),
        )

        output = pipeline.paths.to_host_path(logical)
        assert decoded_video_md5(output) == decoded_video_md5(temp_output_dir / "clip_0")
        info = get_media_info(str(output))
        assert info.audio_codec == "aac"
        assert [d.name for d in runner.descriptors][-2:] == ["concat", "mix"]
        assert leftovers(artifacts_dir) == ["v1_stitch_st1.mp4"]
