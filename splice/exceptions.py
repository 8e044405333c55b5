"""Custom exceptions for the splice pipeline.

Every failure the pipeline reports to its caller is a ``SpliceError``
subclass carrying a machine-readable code, a human-readable message and,
through ``to_error_info``, the retryability and suggested recovery actions
registered in ``splice.constants.error_codes``.
"""

from splice.constants.error_codes import get_error_spec
from splice.schemas.envelope import ErrorInfo, ErrorLocation, SuggestedAction


class SpliceError(Exception):
    """Base exception for all splice pipeline errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for caller-facing payloads."""
        spec = get_error_spec(self.code)
        retryable = spec.get("retryable", False)

        suggested_actions: list[SuggestedAction] = []
        if "suggested_action" in spec:
            action = SuggestedAction(
                action=spec["suggested_action"],
                parameters=spec.get("parameters", {}),
            )
            suggested_actions.append(action)

        # Use suggested_fix from spec, or explicit override from exception
        suggested_fix = self.suggested_fix or spec.get("suggested_fix")

        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=retryable,
            suggested_fix=suggested_fix,
            suggested_actions=suggested_actions,
        )


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(SpliceError):
    """Base class for malformed or missing operation input.

    Raised before any subprocess is spawned; nothing needs cleaning up.
    """

    code = "VALIDATION_ERROR"
    message = "Invalid operation input"


class NoCurrentHeadError(ValidationError):
    """Project has no current head but the operation needs one."""

    code = "NO_CURRENT_HEAD"
    message = "no current head"

    def __init__(self, project_id: str | None = None):
        message = f"no current head for project {project_id}" if project_id else self.message
        super().__init__(message, location=ErrorLocation(field="currentHead"))


class EmptyClipListError(ValidationError):
    """Stitch operation without clips."""

    code = "EMPTY_CLIP_LIST"
    message = "stitch requires at least one clip"

    def __init__(self, operation_id: str | None = None):
        location = ErrorLocation(field="params.clips", operation_id=operation_id)
        super().__init__(self.message, location=location)


class UnknownOperationTypeError(ValidationError):
    """Operation type tag is not one of the supported kinds."""

    code = "UNKNOWN_OPERATION_TYPE"
    message = "unknown operation type"

    def __init__(self, operation_type: str | None = None):
        message = f"unknown operation type: {operation_type}" if operation_type else self.message
        super().__init__(message, location=ErrorLocation(field="type"))


class InvalidOperationError(ValidationError):
    """Operation payload failed schema validation."""

    code = "INVALID_OPERATION"
    message = "Invalid operation payload"

    def __init__(self, message: str | None = None, *, field: str | None = None):
        location = ErrorLocation(field=field) if field else None
        super().__init__(message or self.message, location=location)


class InvalidPathError(ValidationError):
    """Logical path does not follow the /projects/{id}/{folder}/{file} scheme."""

    code = "INVALID_PATH"
    message = "Invalid logical path"

    def __init__(self, path: str | None = None, reason: str | None = None):
        message = self.message
        if path:
            message = f"Invalid logical path: {path}"
            if reason:
                message += f" ({reason})"
        super().__init__(message)


# =============================================================================
# Resource Errors
# =============================================================================


class ResourceError(SpliceError):
    """Base class for source files the operation depends on."""

    code = "RESOURCE_ERROR"
    message = "Resource error"


class SourceNotFoundError(ResourceError):
    """Referenced source file is missing on disk."""

    code = "SOURCE_NOT_FOUND"
    message = "file not found"

    def __init__(
        self, path: str | None = None, *, field: str | None = None, index: int | None = None
    ):
        self.path = path
        message = f"file not found: {path}" if path else self.message
        location = (
            ErrorLocation(field=field, index=index)
            if field is not None or index is not None
            else None
        )
        super().__init__(message, location=location)


class ProjectNotFoundError(ResourceError):
    """Project not found in the project store."""

    code = "PROJECT_NOT_FOUND"
    message = "Project not found"

    def __init__(self, project_id: str | None = None):
        message = f"Project not found: {project_id}" if project_id else self.message
        super().__init__(message)


# =============================================================================
# Engine Errors
# =============================================================================


class StageError(SpliceError):
    """The transcoding engine reported a failure for one stage."""

    code = "STAGE_FAILED"
    message = "Stage failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        stage: str | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.stage = stage
        self.returncode = returncode
        self.stderr = stderr
        location = ErrorLocation(stage=stage) if stage else None
        super().__init__(message or self.message, location=location)


class StageTimeoutError(StageError):
    """Stage exceeded the configured timeout and was terminated."""

    code = "STAGE_TIMEOUT"
    message = "Stage timed out"

    def __init__(self, stage: str | None = None, timeout_s: float | None = None):
        message = self.message
        if stage and timeout_s is not None:
            message = f"Stage '{stage}' timed out after {timeout_s:g}s"
        super().__init__(message, stage=stage)


# =============================================================================
# IO Errors
# =============================================================================


class ArtifactWriteError(SpliceError):
    """Writing a manifest, subtitle file or the final artifact failed."""

    code = "IO_ERROR"
    message = "Failed to write file"

    def __init__(self, path: str | None = None, reason: str | None = None):
        message = self.message
        if path:
            message = f"Failed to write {path}"
            if reason:
                message += f": {reason}"
        super().__init__(message)
