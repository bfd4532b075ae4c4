"""
Intent Compiler
===============

Projects current design-object state into a canonical GeometryIR.

Rules:
- object ids are emitted in lexicographic order
- declared kinds map onto PrimitiveKind; unknown / compound kinds become box
- only numeric dimension values become parameters (strings, bools, nested
  data are dropped)
- every IR carries the baseline constraints, then object-declared ones

This module:
- NEVER raises; bad input degrades instead of failing
- DOES NOT keep state between compiles
- DOES NOT talk to the evaluator
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from intentcad.intent.hashing import build_geometry_ir
from intentcad.intent.model import (
    BOOLEAN_KINDS,
    ConstraintKind,
    FEATURE_KINDS,
    GeometryIR,
    ManufacturingConstraint,
    OperationIntent,
    OperationKind,
    PrimitiveIntent,
    Transform,
    coerce_primitive_kind,
)

DEFAULT_PART = "workspace_part"

BASELINE_CONSTRAINTS = (
    ManufacturingConstraint(ConstraintKind.PROCESS, "cnc_mill"),
    ManufacturingConstraint(ConstraintKind.MIN_WALL_THICKNESS, 1.0),
)


def _now_ms() -> float:
    return float(int(time.time() * 1000))


def _coerce_operation(value: Any, allowed, default: OperationKind) -> OperationKind:
    try:
        kind = OperationKind(value)
    except ValueError:
        kind = None
    if kind not in allowed:
        logger.warning(f"'{value}' is not one of {sorted(k.value for k in allowed)}; using {default.value}")
        return default
    return kind


def numeric_parameters(dimensions: Optional[Mapping[str, Any]]) -> Dict[str, float]:
    """Keep numeric fields only. Booleans are not numbers here."""
    params: Dict[str, float] = {}
    if not isinstance(dimensions, Mapping):
        return params
    for key, value in dimensions.items():
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            params[str(key)] = value
    return params


class IntentCompiler:
    """
    Workspace -> GeometryIR.

    The IR is the ONLY thing the evaluator's compile entry point receives.
    """

    def __init__(self, part: str = DEFAULT_PART):
        self.part = part

    # ------------------------------------------------------------------
    # Full compile
    # ------------------------------------------------------------------

    def compile_workspace(self, objects: Mapping[str, Any]) -> GeometryIR:
        operations = []
        declared: List[ManufacturingConstraint] = []

        for object_id in sorted(objects or {}, key=str):
            obj = objects[object_id]
            if not isinstance(obj, Mapping):
                logger.debug(f"Skipping non-mapping workspace object '{object_id}'")
                obj = {}

            operations.append(self._object_to_intent(str(object_id), obj))
            declared.extend(self._object_constraints(object_id, obj))

        return build_geometry_ir(
            self.part,
            operations,
            BASELINE_CONSTRAINTS + tuple(declared),
        )

    def _object_to_intent(self, object_id: str, obj: Mapping[str, Any]) -> PrimitiveIntent:
        kind = coerce_primitive_kind(obj.get("kind", obj.get("type")))

        transform = None
        raw_transform = obj.get("transform")
        if isinstance(raw_transform, Mapping):
            transform = Transform.from_dict(raw_transform)

        return PrimitiveIntent(
            id=object_id,
            kind=kind,
            parameters=numeric_parameters(obj.get("dimensions")),
            transform=transform,
            timestamp=_now_ms(),
        )

    def _object_constraints(
        self, object_id: str, obj: Mapping[str, Any]
    ) -> List[ManufacturingConstraint]:
        raw = obj.get("constraints")
        if not isinstance(raw, (list, tuple)):
            return []

        constraints = []
        for entry in raw:
            constraint = (
                ManufacturingConstraint.from_dict(entry)
                if isinstance(entry, Mapping)
                else None
            )
            if constraint is None:
                logger.debug(f"Dropping unknown constraint on '{object_id}': {entry!r}")
                continue
            constraints.append(constraint)
        return constraints

    # ------------------------------------------------------------------
    # One-off edits
    # ------------------------------------------------------------------

    def compile_boolean_op(
        self,
        operation: OperationKind | str,
        target_id: str,
        tool_id: str,
        timestamp: Optional[float] = None,
    ) -> OperationIntent:
        kind = _coerce_operation(operation, BOOLEAN_KINDS, OperationKind.UNION)

        stamp = timestamp if timestamp is not None else _now_ms()
        return OperationIntent(
            id=f"{kind.value}_{target_id}_{tool_id}_{int(_now_ms())}",
            kind=kind,
            target=target_id,
            operand=tool_id,
            parameters={},
            timestamp=stamp,
        )

    def compile_feature_op(
        self,
        operation: OperationKind | str,
        target_id: str,
        parameters: Mapping[str, Any],
        timestamp: Optional[float] = None,
    ) -> OperationIntent:
        kind = _coerce_operation(operation, FEATURE_KINDS, OperationKind.FILLET)

        stamp = timestamp if timestamp is not None else _now_ms()
        return OperationIntent(
            id=f"{kind.value}_{target_id}_{int(_now_ms())}",
            kind=kind,
            target=target_id,
            parameters=dict(parameters or {}),
            timestamp=stamp,
        )
