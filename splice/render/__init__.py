from splice.render.audio_mixer import AudioMixer
from splice.render.encoding import EncodingProfile
from splice.render.pipeline import OperationPipeline
from splice.render.progress import OperationProgress, OperationStatus, ProgressAggregator
from splice.render.resource_tracker import ResourceTracker
from splice.render.stage_runner import StageDescriptor, StageInput, StageResult, StageRunner

__all__ = [
    "OperationPipeline",
    "StageRunner",
    "StageDescriptor",
    "StageInput",
    "StageResult",
    "ResourceTracker",
    "ProgressAggregator",
    "OperationProgress",
    "OperationStatus",
    "EncodingProfile",
    "AudioMixer",
]
