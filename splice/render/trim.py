import logging

from splice.exceptions import StageError
from splice.render.executor import ExecutionContext, StageExecutor
from splice.render.filters import format_number
from splice.render.stage_runner import StageDescriptor, StageInput
from splice.schemas.operation import TrimOperation

logger = logging.getLogger(__name__)


class TrimExecutor(StageExecutor):
    """Cut ``[start, end)`` out of the current head and re-encode it."""

    async def execute(self, ctx: ExecutionContext) -> None:
        operation: TrimOperation = ctx.operation
        start = operation.params.start
        end = operation.params.end
        if end <= start:
            raise StageError(f"trim end ({end}) must be greater than start ({start})", stage="trim")

        duration = end - start
        partial = ctx.partial_path()
        logger.info(f"[TRIM] {operation.id}: {start}s -> {end}s ({duration:.3f}s)")

        descriptor = StageDescriptor(
            name="trim",
            inputs=[
                StageInput(
                    str(ctx.input_path),
                    ("-ss", format_number(start), "-t", format_number(duration)),
                )
            ],
            output_path=str(partial),
            maps=["0:v:0", "0:a:0?"],
            output_options=[
                *self.profile.video_args(),
                *self.profile.audio_args(),
                *self.profile.container_args(),
            ],
            expected_duration_s=duration,
        )
        await self.run_stage(ctx, descriptor, "trim")
        ctx.finalize(partial)
