import logging

from splice.render.executor import ExecutionContext, StageExecutor
from splice.render.filters import Filter, FilterChain, filter_path, format_number
from splice.render.stage_runner import StageDescriptor, StageInput
from splice.schemas.operation import TextParams

logger = logging.getLogger(__name__)


def build_drawtext_filter(params: TextParams, fontfile: str = "") -> Filter:
    """
    Text placed at ``x``/``y`` percent of the free space in the frame.

    ``expansion=none`` keeps ``%`` in user text literal; quoting and escaping
    of the text itself happen when the filter is rendered.
    """
    options: dict = {}
    if fontfile:
        options["fontfile"] = filter_path(fontfile)
    options.update(
        text=params.text,
        fontcolor=params.color,
        fontsize=params.font_size,
        x=f"(w-text_w)*{format_number(params.x)}/100",
        y=f"(h-text_h)*{format_number(params.y)}/100",
        expansion="none",
    )
    return Filter.of("drawtext", **options)


class TextOverlayExecutor(StageExecutor):
    """Burn a single text label into every frame of the current head."""

    def __init__(self, runner, profile, fontfile: str = ""):
        super().__init__(runner, profile)
        self.fontfile = fontfile

    async def execute(self, ctx: ExecutionContext) -> None:
        params: TextParams = ctx.operation.params
        partial = ctx.partial_path()
        duration = await self.probe_duration(ctx.input_path)
        logger.info(f"[TEXT] {ctx.operation.id}: '{params.text}' at ({params.x}%, {params.y}%)")

        descriptor = StageDescriptor(
            name="text",
            inputs=[StageInput(str(ctx.input_path))],
            output_path=str(partial),
            video_filters=FilterChain.of(build_drawtext_filter(params, self.fontfile)),
            maps=["0:v:0", "0:a:0?"],
            output_options=[
                *self.profile.video_args(),
                "-c:a", "copy",
                *self.profile.container_args(),
            ],
            expected_duration_s=duration,
        )
        await self.run_stage(ctx, descriptor, "text")
        ctx.finalize(partial)
