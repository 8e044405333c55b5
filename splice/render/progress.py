"""Operation-wide progress built from weighted per-stage fractions."""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class OperationStatus(Enum):
    """Operation processing status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class OperationProgress:
    """Progress information for one operation."""

    operation_id: str
    status: OperationStatus
    percent: int = 0
    current_stage: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "operation_id": self.operation_id,
            "status": self.status.value,
            "percent": self.percent,
            "current_stage": self.current_stage,
            "error_message": self.error_message,
        }


# Share of the overall percentage owned by each stage, per operation type
WEIGHTS: dict[str, dict[str, float]] = {
    "trim": {"trim": 1.0},
    "text": {"text": 1.0},
    "subtitle": {"subtitles": 0.05, "burn": 0.95},
    "stitch": {"clips": 0.5, "audio": 0.1, "mix": 0.4},
}

_TERMINAL = (OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED)

# 100 is reserved for finish()
MAX_RUNNING_PERCENT = 99

ProgressListener = Callable[[OperationProgress], None]


class ProgressAggregator:
    """
    Maps per-stage fractions in [0, 1] to a single 0-99 percentage.

    Emitted percentages never decrease. ``finish`` is the only way to reach
    100; ``fail`` reports FAILED without moving the percentage.
    """

    def __init__(
        self,
        operation_type: str,
        operation_id: str,
        callback: ProgressListener | None = None,
    ):
        if operation_type not in WEIGHTS:
            raise KeyError(f"no progress weights for operation type: {operation_type}")
        self.operation_type = operation_type
        self.weights = WEIGHTS[operation_type]
        self._callback = callback
        self._fractions: dict[str, float] = {stage: 0.0 for stage in self.weights}
        self.progress = OperationProgress(operation_id=operation_id, status=OperationStatus.PENDING)
        self.history: list[int] = []

    @property
    def percent(self) -> int:
        return self.progress.percent

    def _running_percent(self) -> int:
        total = sum(self.weights[s] * f for s, f in self._fractions.items())
        # Round away float noise (0.1 + 0.4 + 0.5 != 1.0) before flooring
        return min(MAX_RUNNING_PERCENT, math.floor(round(total * 100, 6)))

    def report(self, stage: str, fraction: float) -> None:
        """Record progress within a stage; lower values than already seen are ignored."""
        if stage not in self._fractions:
            raise KeyError(f"unknown stage '{stage}' for {self.operation_type}")
        if self.progress.status in _TERMINAL:
            return
        fraction = max(0.0, min(1.0, fraction))
        self._fractions[stage] = max(self._fractions[stage], fraction)
        percent = max(self.progress.percent, self._running_percent())
        if (
            percent == self.progress.percent
            and stage == self.progress.current_stage
            and self.progress.status == OperationStatus.PROCESSING
        ):
            return
        self.progress.status = OperationStatus.PROCESSING
        self.progress.current_stage = stage
        self._publish(percent)

    def complete_stage(self, stage: str) -> None:
        self.report(stage, 1.0)

    def skip_stage(self, stage: str) -> None:
        """Credit a stage that has nothing to do."""
        logger.debug(f"[PROGRESS] {self.progress.operation_id}: skipping {stage}")
        self.report(stage, 1.0)

    def finish(self) -> None:
        self.progress.status = OperationStatus.COMPLETED
        self.progress.current_stage = None
        self._publish(100)

    def fail(self, message: str, *, cancelled: bool = False) -> None:
        self.progress.status = OperationStatus.CANCELLED if cancelled else OperationStatus.FAILED
        self.progress.error_message = message
        self._publish(self.progress.percent)

    def _publish(self, percent: int) -> None:
        self.progress.percent = percent
        self.history.append(percent)
        if self._callback is None:
            return
        try:
            self._callback(self.progress)
        except Exception as e:
            logger.warning(f"[PROGRESS] callback failed for {self.progress.operation_id}: {e}")
