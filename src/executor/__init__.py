from .engine import (
    DuplicateBroadcast,
    ExecutionPipeline,
    ExecutionResult,
    ExecutionStatus,
    PipelineConfig,
    PipelineOutcome,
    PipelineState,
    RouterCall,
)
from .recovery import FailureCategory, FailureClassifier, TargetCooldown

__all__ = [
    "ExecutionPipeline",
    "ExecutionResult",
    "ExecutionStatus",
    "PipelineConfig",
    "PipelineOutcome",
    "PipelineState",
    "RouterCall",
    "DuplicateBroadcast",
    "FailureCategory",
    "FailureClassifier",
    "TargetCooldown",
]
