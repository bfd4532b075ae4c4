"""
intentcad.execution

In-order execution of operation sequences against the evaluator, with a
trimesh fallback for create operations when the evaluator is unavailable.
"""

from intentcad.execution.engine import (
    EngineState,
    ExecutionEngine,
    ExecutionProgress,
    ExecutionResult,
    ProgressStatus,
)
from intentcad.execution.fallback import LocalFallback

__all__ = [
    "EngineState",
    "ExecutionEngine",
    "ExecutionProgress",
    "ExecutionResult",
    "LocalFallback",
    "ProgressStatus",
]
