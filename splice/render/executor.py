"""Shared plumbing for the per-operation stage executors."""

import asyncio
from dataclasses import dataclass
from pathlib import Path

from splice.render.encoding import EncodingProfile
from splice.render.progress import ProgressAggregator
from splice.render.resource_tracker import ResourceTracker
from splice.render.stage_runner import StageDescriptor, StageResult, StageRunner
from splice.schemas.operation import Operation
from splice.schemas.project import Project
from splice.utils.media_info import try_get_duration
from splice.utils.paths import ProjectPaths


@dataclass
class ExecutionContext:
    """Everything one executor needs to turn an operation into an artifact."""

    project: Project
    operation: Operation
    output_path: Path
    tracker: ResourceTracker
    progress: ProgressAggregator
    paths: ProjectPaths
    input_path: Path | None = None

    def partial_path(self) -> Path:
        """Tracked path the last stage writes to before promotion."""
        return self.tracker.temp_path("partial", self.output_path.suffix or ".mp4")

    def finalize(self, partial: Path) -> Path:
        """Move the finished partial file onto the artifact path."""
        return self.tracker.promote(partial, self.output_path)


class StageExecutor:
    """Base class: runs stages through a ``StageRunner`` with one encoding profile."""

    def __init__(self, runner: StageRunner, profile: EncodingProfile):
        self.runner = runner
        self.profile = profile

    async def execute(self, ctx: ExecutionContext) -> None:
        raise NotImplementedError

    async def run_stage(
        self,
        ctx: ExecutionContext,
        descriptor: StageDescriptor,
        progress_stage: str,
    ) -> StageResult:
        """Run a descriptor, feeding its fractions into ``progress_stage``."""
        result = await self.runner.run(
            descriptor,
            on_progress=lambda fraction: ctx.progress.report(progress_stage, fraction),
        )
        ctx.progress.complete_stage(progress_stage)
        return result

    @staticmethod
    async def probe_duration(path: Path | str) -> float | None:
        """Source duration for progress estimates (None when unknown)."""
        return await asyncio.to_thread(try_get_duration, str(path))
