"""
intentcad.intent

Design-intent vocabulary, canonical hashing, the workspace compiler,
bounded undo/redo history and the semantic IR generator.

Everything in this package is pure and synchronous.
"""

from intentcad.intent.compiler import IntentCompiler
from intentcad.intent.hashing import build_geometry_ir, hash_geometry_ir
from intentcad.intent.history import IntentHistory
from intentcad.intent.model import (
    ConstraintKind,
    GeometryIR,
    ManufacturingConstraint,
    OperationIntent,
    OperationKind,
    PrimitiveIntent,
    PrimitiveKind,
    Transform,
)

__all__ = [
    "ConstraintKind",
    "GeometryIR",
    "IntentCompiler",
    "IntentHistory",
    "ManufacturingConstraint",
    "OperationIntent",
    "OperationKind",
    "PrimitiveIntent",
    "PrimitiveKind",
    "Transform",
    "build_geometry_ir",
    "hash_geometry_ir",
]
