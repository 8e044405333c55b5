"""Error codes dictionary for pipeline failures.

This is the single source of truth for all error codes, their retryability,
and suggested recovery actions. Used by ``SpliceError.to_error_info`` to
build machine-readable error payloads for callers.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_fix: str
    parameters: dict[str, Any]


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Validation errors (not retryable, fix input)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "NO_CURRENT_HEAD": {
        "retryable": False,
        "suggested_action": "upload_source",
        "suggested_fix": "Upload a source video or run a stitch operation first",
    },
    "EMPTY_CLIP_LIST": {
        "retryable": False,
        "suggested_fix": "Add at least one clip to the stitch operation",
    },
    "UNKNOWN_OPERATION_TYPE": {
        "retryable": False,
        "suggested_fix": "Use one of: trim, text, subtitle, stitch",
    },
    "INVALID_OPERATION": {
        "retryable": False,
    },
    "INVALID_PATH": {
        "retryable": False,
    },
    # ==========================================================================
    # Resource errors (retryable after the source is restored)
    # ==========================================================================
    "RESOURCE_ERROR": {
        "retryable": False,
    },
    "SOURCE_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_assets",
        "suggested_fix": "Re-upload the missing asset and retry",
    },
    "PROJECT_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_ids",
    },
    # ==========================================================================
    # Engine errors
    # ==========================================================================
    "STAGE_FAILED": {
        "retryable": False,
        "suggested_fix": "Check that every input is a readable media file",
    },
    "STAGE_TIMEOUT": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 5000, "max_retries": 1},
    },
    "IO_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
    "INTERNAL_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested actions
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
