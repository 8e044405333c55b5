from typing import Any

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from splice.exceptions import InvalidOperationError
from splice.schemas.operation import Operation, OperationModel, describe_validation_error


class PriorOperation(OperationModel):
    """An entry of the project's history.

    History is only counted and carried along, so entries of kinds this
    package does not execute are kept as they are.
    """

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_operation(cls, operation: Operation) -> "PriorOperation":
        return cls(
            id=operation.id,
            type=operation.type,
            params=operation.params.model_dump(by_alias=True),
        )


class Project(OperationModel):
    """Read-only view of a project as supplied by the external project store."""

    id: str = Field(min_length=1)
    name: str = "Untitled Project"
    width: int = Field(default=1920, ge=16, le=8192)
    height: int = Field(default=1080, ge=16, le=8192)
    fps: float = Field(default=30, gt=0, le=240)
    operations: tuple[PriorOperation, ...] = ()
    current_head: str | None = None

    @field_validator("width", "height")
    @classmethod
    def validate_even(cls, v: int, info) -> int:
        if v % 2 != 0:
            raise ValueError(f"{info.field_name} must be an even number (got {v})")
        return v

    @property
    def next_sequence_number(self) -> int:
        """Sequence number of the next operation appended to the history."""
        return len(self.operations) + 1


def parse_project(data: Any) -> Project:
    """Validate a raw project record.

    Raises:
        InvalidOperationError: the record does not match the project schema.
    """
    if isinstance(data, Project):
        return data
    try:
        return Project.model_validate(data)
    except PydanticValidationError as e:
        message, field = describe_validation_error(e)
        raise InvalidOperationError(f"invalid project: {message}", field=field) from e
