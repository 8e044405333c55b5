"""
Operation pipeline entry point.

``OperationPipeline.process`` validates an operation against its project,
computes the artifact name and path, routes the operation to its executor and
returns the artifact's logical path. It never mutates the project; appending
the operation to the history is the caller's job after success.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional

from splice.config import Settings, get_settings
from splice.exceptions import (
    EmptyClipListError,
    NoCurrentHeadError,
    SourceNotFoundError,
    UnknownOperationTypeError,
)
from splice.render.encoding import EncodingProfile
from splice.render.executor import ExecutionContext, StageExecutor
from splice.render.progress import OperationProgress, ProgressAggregator
from splice.render.resource_tracker import ResourceTracker
from splice.render.stage_runner import StageRunner
from splice.render.stitch import StitchExecutor
from splice.render.subtitle_burn import SubtitleBurnExecutor
from splice.render.text_overlay import TextOverlayExecutor
from splice.render.trim import TrimExecutor
from splice.schemas.operation import (
    Operation,
    StitchOperation,
    SubtitleOperation,
    TextOperation,
    TrimOperation,
    parse_operation,
)
from splice.schemas.project import Project, parse_project
from splice.utils.paths import ProjectPaths, artifact_filename

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[OperationProgress], None]


class OperationPipeline:
    """
    Turns one operation into one artifact.

    Usage:
        pipeline = OperationPipeline(project_root="/srv/projects")
        logical_path = await pipeline.process(project, operation)
    """

    def __init__(
        self,
        project_root: str | os.PathLike | None = None,
        runner: StageRunner | None = None,
        settings: Settings | None = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.settings = settings or get_settings()
        self.paths = ProjectPaths(project_root or self.settings.project_root)
        self.runner = runner or StageRunner(
            ffmpeg_path=self.settings.ffmpeg_path,
            timeout_s=self.settings.stage_timeout_s,
        )
        self._progress_callback = progress_callback

    def _executor_for(self, operation: Operation, profile: EncodingProfile) -> StageExecutor:
        match operation:
            case TrimOperation():
                return TrimExecutor(self.runner, profile)
            case TextOperation():
                return TextOverlayExecutor(
                    self.runner, profile, fontfile=self.settings.drawtext_fontfile
                )
            case SubtitleOperation():
                return SubtitleBurnExecutor(self.runner, profile)
            case StitchOperation():
                return StitchExecutor(
                    self.runner, profile, max_parallel_clips=self.settings.max_parallel_clips
                )
            case _:
                raise UnknownOperationTypeError(getattr(operation, "type", None))

    def _resolve_input(self, project: Project, operation: Operation) -> Path | None:
        if isinstance(operation, StitchOperation):
            return None
        if not project.current_head:
            raise NoCurrentHeadError(project.id)
        input_path = self.paths.to_host_path(project.current_head)
        if not input_path.is_file():
            raise SourceNotFoundError(str(input_path))
        return input_path

    async def process(
        self,
        project: Project | dict[str, Any],
        operation: Operation | dict[str, Any],
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Run one operation and return the logical path of its artifact.

        Args:
            project: Project record (model or raw dict)
            operation: Operation record (model or raw dict)
            on_progress: Per-call progress callback; overrides the pipeline's

        Returns:
            ``/projects/{projectId}/artifacts/v{n}_{type}_{id}.mp4``

        Raises:
            ValidationError: bad input, no subprocess spawned
            ResourceError: a referenced source file is missing
            StageError: the engine failed or timed out
            ArtifactWriteError: writing a temp file or the artifact failed
        """
        project = parse_project(project)
        operation = parse_operation(operation)

        # Preconditions run before anything touches the filesystem
        if isinstance(operation, StitchOperation) and not operation.params.clips:
            raise EmptyClipListError(operation.id)
        input_path = self._resolve_input(project, operation)

        profile = EncodingProfile.for_project(project, self.settings)
        executor = self._executor_for(operation, profile)

        artifacts_dir = self.paths.ensure_artifacts_dir(project.id)
        filename = artifact_filename(project.next_sequence_number, operation.type, operation.id)
        output_path = artifacts_dir / filename
        logical_path = self.paths.artifact_logical_path(project.id, filename)

        progress = ProgressAggregator(
            operation.type, operation.id, on_progress or self._progress_callback
        )
        logger.info(
            f"[PIPELINE] {project.id}: {operation.type} {operation.id} -> {logical_path}"
        )

        work_dir = artifacts_dir / f".splice-{operation.id}"
        try:
            async with ResourceTracker(work_dir) as tracker:
                ctx = ExecutionContext(
                    project=project,
                    operation=operation,
                    output_path=output_path,
                    tracker=tracker,
                    progress=progress,
                    paths=self.paths,
                    input_path=input_path,
                )
                await executor.execute(ctx)
        except asyncio.CancelledError:
            progress.fail("cancelled", cancelled=True)
            logger.info(f"[PIPELINE] {operation.id}: cancelled")
            raise
        except Exception as e:
            progress.fail(str(e))
            logger.error(f"[PIPELINE] {operation.id} failed: {e}")
            raise

        progress.finish()
        logger.info(f"[PIPELINE] {operation.id}: completed")
        return logical_path

    def process_sync(
        self,
        project: Project | dict[str, Any],
        operation: Operation | dict[str, Any],
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Blocking wrapper around ``process`` for callers without an event loop."""
        return asyncio.run(self.process(project, operation, on_progress))
