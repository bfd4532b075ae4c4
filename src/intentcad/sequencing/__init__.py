"""
intentcad.sequencing

Structured intent -> ordered, dependency-annotated operations.
"""

from intentcad.sequencing.contract import (
    DependencyIssue,
    DependencyResolution,
    GeometryIntent,
    Operation,
    OperationCategory,
)
from intentcad.sequencing.sequencer import (
    OperationSequencer,
    build_operation_sequence,
    build_refinement_sequence,
    validate_intent,
)

__all__ = [
    "DependencyIssue",
    "DependencyResolution",
    "GeometryIntent",
    "Operation",
    "OperationCategory",
    "OperationSequencer",
    "build_operation_sequence",
    "build_refinement_sequence",
    "validate_intent",
]
