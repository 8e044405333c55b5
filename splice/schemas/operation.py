"""Operation records submitted to the pipeline.

An operation is a closed tagged union discriminated on ``type``: one model
per supported kind. Records are frozen once constructed; project history
only ever grows by appending new operations.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from splice.exceptions import InvalidOperationError, UnknownOperationTypeError

# Segments shorter than this make the engine produce empty streams
MIN_SEGMENT_DURATION_S = 0.1

# Operation ids appear verbatim in artifact and work-directory names
OPERATION_ID_PATTERN = r"^[A-Za-z0-9._-]+$"


class OperationModel(BaseModel):
    """Base for immutable records exchanged with the project store (camelCase on the wire)."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


def clamp_duration(duration: float) -> float:
    """Clamp a segment duration to the minimum the engine handles reliably."""
    return max(MIN_SEGMENT_DURATION_S, duration)


# =============================================================================
# Trim
# =============================================================================


class TrimParams(OperationModel):
    start: float = Field(ge=0)
    end: float

    @model_validator(mode="after")
    def check_range(self) -> "TrimParams":
        if self.end <= self.start:
            raise ValueError(f"end ({self.end}) must be greater than start ({self.start})")
        return self


class TrimOperation(OperationModel):
    type: Literal["trim"] = "trim"
    id: str = Field(min_length=1, pattern=OPERATION_ID_PATTERN)
    params: TrimParams


# =============================================================================
# Text overlay
# =============================================================================


class TextParams(OperationModel):
    text: str
    x: float = Field(default=50, ge=0, le=100)  # percent of (frame width - text width)
    y: float = Field(default=50, ge=0, le=100)
    font_size: int = Field(default=24, gt=0)
    color: str = "white"


class TextOperation(OperationModel):
    type: Literal["text"] = "text"
    id: str = Field(min_length=1, pattern=OPERATION_ID_PATTERN)
    params: TextParams


# =============================================================================
# Subtitle burn-in
# =============================================================================


class SubtitleCue(OperationModel):
    start: float = Field(ge=0)
    end: float = Field(ge=0)
    text: str


class SubtitleParams(OperationModel):
    subtitles: tuple[SubtitleCue, ...] = ()


class SubtitleOperation(OperationModel):
    type: Literal["subtitle"] = "subtitle"
    id: str = Field(min_length=1, pattern=OPERATION_ID_PATTERN)
    params: SubtitleParams


# =============================================================================
# Stitch
# =============================================================================


class StitchClip(OperationModel):
    url: str = Field(min_length=1)
    start: float = Field(default=0, ge=0)
    end: float | None = None
    type: Literal["video", "image"] = "video"
    playback_rate: float = Field(default=1.0, gt=0)
    volume: float = Field(default=1.0, ge=0)
    duration: float | None = None  # images only

    @model_validator(mode="after")
    def check_end(self) -> "StitchClip":
        if self.type == "video" and self.end is None:
            raise ValueError("video clips require an end time")
        if self.type == "image" and self.end is None and self.duration is None:
            raise ValueError("image clips require a duration or an end time")
        return self

    @property
    def segment_duration(self) -> float:
        """Source span in seconds, clamped to the minimum segment length."""
        if self.type == "image" and self.duration is not None:
            return clamp_duration(self.duration)
        return clamp_duration((self.end or 0) - self.start)


class AudioClip(OperationModel):
    url: str = Field(min_length=1)
    start: float = Field(default=0, ge=0)
    end: float
    volume: float = Field(default=1.0, ge=0)

    @property
    def segment_duration(self) -> float:
        return clamp_duration(self.end - self.start)


class GlobalMix(OperationModel):
    video_mix_gain: float = Field(default=1.0, ge=0)
    audio_mix_gain: float = Field(default=1.0, ge=0)


class StitchParams(OperationModel):
    clips: tuple[StitchClip, ...] = ()
    audio_clips: tuple[AudioClip, ...] = ()
    global_mix: GlobalMix = Field(default_factory=GlobalMix)


class StitchOperation(OperationModel):
    type: Literal["stitch"] = "stitch"
    id: str = Field(min_length=1, pattern=OPERATION_ID_PATTERN)
    params: StitchParams


Operation = Annotated[
    Union[TrimOperation, TextOperation, SubtitleOperation, StitchOperation],
    Field(discriminator="type"),
]

OPERATION_MODELS = (TrimOperation, TextOperation, SubtitleOperation, StitchOperation)
MODELS_BY_TYPE: dict[str, type[OperationModel]] = {
    "trim": TrimOperation,
    "text": TextOperation,
    "subtitle": SubtitleOperation,
    "stitch": StitchOperation,
}


def describe_validation_error(exc: PydanticValidationError) -> tuple[str, str | None]:
    """Flatten the first pydantic error into a message and a dotted field path."""
    errors = exc.errors()
    if not errors:
        return str(exc), None
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    message = first.get("msg", "invalid value")
    if field:
        message = f"{field}: {message}"
    return message, field


def parse_operation(data: Any) -> Operation:
    """Validate a raw operation payload into its typed variant.

    Raises:
        UnknownOperationTypeError: ``type`` is missing or not supported.
        InvalidOperationError: the payload does not match the variant's schema.
    """
    if isinstance(data, OPERATION_MODELS):
        return data
    if not isinstance(data, dict):
        raise InvalidOperationError(f"operation must be an object, got {type(data).__name__}")

    op_type = data.get("type")
    model = MODELS_BY_TYPE.get(op_type) if isinstance(op_type, str) else None
    if model is None:
        raise UnknownOperationTypeError(str(op_type) if op_type is not None else None)

    # The concrete model keeps error locations relative to the operation
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        message, field = describe_validation_error(e)
        raise InvalidOperationError(message, field=field) from e
