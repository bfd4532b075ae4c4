"""
Operation Sequencer
===================

Turns one structured GeometryIntent into a dependency-annotated,
topologically valid list of Operations.

Shape of every sequence:
    CREATE (base geometry)
    FEATURE x N     each depends on [CREATE.id] only
    ANALYZE         only if manufacturability directives are present;
                    depends on the last emitted operation

Features never depend on each other: the execution boundary applies them
one after another against the evolving geometry handle.

This module:
- DOES NOT execute anything
- NEVER raises for dependency problems (they are returned as data)
- DOES NOT produce reproducible ids (live, interactive edits only)
"""

from __future__ import annotations

import itertools
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from loguru import logger
from pydantic import ValidationError

from intentcad.intent.model import PrimitiveKind
from intentcad.sequencing.contract import (
    BaseGeometrySpec,
    DependencyIssue,
    DependencyResolution,
    FeatureSpec,
    GeometryIntent,
    IntentValidation,
    Manufacturability,
    Operation,
    OperationCategory,
    SequenceValidation,
    radius_of,
)

# ---------------------------------------------------------------------------
# Dispatch tables
# ---------------------------------------------------------------------------

CREATE_OPERATIONS: Dict[PrimitiveKind, str] = {
    PrimitiveKind.BOX: "CREATE_BOX",
    PrimitiveKind.CYLINDER: "CREATE_CYLINDER",
    PrimitiveKind.SPHERE: "CREATE_SPHERE",
    PrimitiveKind.EXTRUSION: "CREATE_EXTRUSION",
    PrimitiveKind.CONE: "CREATE_CONE",
    PrimitiveKind.TORUS: "CREATE_TORUS",
}

FEATURE_OPERATIONS: Dict[str, str] = {
    "hole": "ADD_HOLE",
    "fillet": "ADD_FILLET",
    "chamfer": "ADD_CHAMFER",
    "pocket": "ADD_POCKET",
    "boss": "ADD_BOSS",
}

CREATE_ESTIMATE_MS = 100
FEATURE_ESTIMATE_MS = 150
ANALYZE_ESTIMATE_MS = 50

# Shared across sequencer instances so ids stay unique process-wide.
_operation_counter = itertools.count(1)


def _fmt(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        return "?"
    if isinstance(value, (int, float)):
        return f"{value:g}"
    return str(value)

def _diameter_label(parameters: Mapping[str, Any]) -> str:
    radius = radius_of(parameters)
    return _fmt(radius * 2 if radius is not None else None)


class OperationSequencer:
    """
    Builds operation sequences from parsed intent.
    """

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_sequence(self, intent: GeometryIntent | Mapping[str, Any]) -> List[Operation]:
        if not isinstance(intent, GeometryIntent):
            intent = GeometryIntent.model_validate(intent)

        operations: List[Operation] = []

        base_op = self._create_base_geometry_operation(intent.base_geometry)
        operations.append(base_op)

        for feature in intent.features:
            operations.append(self._create_feature_operation(feature, base_op.id))

        if intent.manufacturability is not None:
            operations.append(
                self._create_analysis_operation(operations[-1].id, intent.manufacturability)
            )

        logger.debug(f"Sequenced {len(operations)} operation(s) for '{intent.base_geometry.type}'")
        return operations

    def resolve_dependencies(self, operations: Iterable[Operation]) -> DependencyResolution:
        """
        Depth-first topological ordering over declared dependencies.

        Missing, self-referential and circular dependencies are reported
        in `issues`; the offending edge is skipped and every operation
        still appears exactly once in `ordered`.
        """
        operations = list(operations)
        by_id = {op.id: op for op in operations}
        ordered: List[Operation] = []
        issues: List[DependencyIssue] = []
        visited: Set[str] = set()
        visiting: Set[str] = set()

        # Explicit stack: chains can be deeper than the recursion limit.
        for root in operations:
            if root.id in visited:
                continue
            visiting.add(root.id)
            stack = [(root, iter(root.depends_on))]

            while stack:
                op, deps = stack[-1]
                descended = False
                for dep_id in deps:
                    if dep_id == op.id:
                        issues.append(DependencyIssue(op.id, dep_id, "self"))
                        continue
                    dep = by_id.get(dep_id)
                    if dep is None:
                        issues.append(DependencyIssue(op.id, dep_id, "missing"))
                        continue
                    if dep_id in visiting:
                        issues.append(DependencyIssue(op.id, dep_id, "cycle"))
                        continue
                    if dep_id in visited:
                        continue
                    visiting.add(dep_id)
                    stack.append((dep, iter(dep.depends_on)))
                    descended = True
                    break

                if not descended:
                    stack.pop()
                    visiting.discard(op.id)
                    visited.add(op.id)
                    ordered.append(op)

        if issues:
            logger.warning(f"Dependency resolution found {len(issues)} issue(s)")
        return DependencyResolution(ordered=ordered, issues=issues)

    def validate_sequence(self, operations: Iterable[Operation]) -> SequenceValidation:
        operations = list(operations)
        op_ids = {op.id for op in operations}
        errors: List[str] = []

        for op in operations:
            if op.id in op.depends_on:
                errors.append(DependencyIssue(op.id, op.id, "self").message)
            for dep_id in op.depends_on:
                if dep_id not in op_ids:
                    errors.append(DependencyIssue(op.id, dep_id, "missing").message)

        return SequenceValidation(valid=not errors, errors=errors)

    @staticmethod
    def estimate_total_time(operations: Iterable[Operation]) -> float:
        return sum(op.estimated_time or 0 for op in operations)

    # ------------------------------------------------------------------
    # Operation builders
    # ------------------------------------------------------------------

    def _create_base_geometry_operation(self, base: BaseGeometrySpec) -> Operation:
        params = dict(base.parameters)
        declared = base.type.lower()

        try:
            kind = PrimitiveKind(declared)
        except ValueError:
            kind = None

        if kind is None:
            operation = CREATE_OPERATIONS[PrimitiveKind.BOX]
            description = "Create default box shape"
        else:
            operation = CREATE_OPERATIONS[kind]
            description = _create_description(kind, params)

        position = base.position.model_dump() if base.position else {"x": 0.0, "y": 0.0, "z": 0.0}

        return Operation(
            id=self._generate_operation_id(),
            category=OperationCategory.CREATE,
            operation=operation,
            parameters={**params, "position": position},
            depends_on=[],
            streaming=True,
            description=description,
            estimated_time=CREATE_ESTIMATE_MS,
        )

    def _create_feature_operation(self, feature: FeatureSpec, base_id: str) -> Operation:
        params = dict(feature.parameters)
        declared = feature.type.lower()
        operation = FEATURE_OPERATIONS.get(declared)

        if operation is None:
            operation = "MODIFY"
            description = f"Apply feature: {feature.type}"
        else:
            description = feature.description or _feature_description(declared, params)

        return Operation(
            id=self._generate_operation_id(),
            category=OperationCategory.FEATURE,
            operation=operation,
            parameters={**params, "name": feature.name},
            depends_on=[base_id],
            streaming=True,
            description=description,
            estimated_time=FEATURE_ESTIMATE_MS,
        )

    def _create_analysis_operation(self, geometry_op_id: str, mfg: Manufacturability) -> Operation:
        return Operation(
            id=self._generate_operation_id(),
            category=OperationCategory.ANALYZE,
            operation="ANALYZE_DFM",
            parameters={"processes": list(mfg.processes), "complexity": mfg.complexity},
            depends_on=[geometry_op_id],
            streaming=False,
            description="Analyze manufacturability",
            estimated_time=ANALYZE_ESTIMATE_MS,
        )

    @staticmethod
    def _generate_operation_id() -> str:
        return f"op_{next(_operation_counter)}_{int(time.time() * 1000)}"


def _create_description(kind: PrimitiveKind, params: Mapping[str, Any]) -> str:
    if kind is PrimitiveKind.BOX:
        return (
            f"Create box: {_fmt(params.get('width'))}×{_fmt(params.get('height'))}"
            f"×{_fmt(params.get('depth'))}mm"
        )
    if kind is PrimitiveKind.CYLINDER:
        return f"Create cylinder: Ø{_diameter_label(params)}mm × {_fmt(params.get('height'))}mm"
    if kind is PrimitiveKind.SPHERE:
        return f"Create sphere: Ø{_diameter_label(params)}mm"
    if kind is PrimitiveKind.CONE:
        return f"Create cone: Ø{_diameter_label(params)}mm × {_fmt(params.get('height'))}mm"
    if kind is PrimitiveKind.TORUS:
        return (
            f"Create torus: major={_fmt(params.get('majorRadius'))}mm, "
            f"minor={_fmt(params.get('minorRadius'))}mm"
        )
    if kind is PrimitiveKind.EXTRUSION:
        return (
            f"Create extrusion: {_fmt(params.get('width'))}×{_fmt(params.get('depth'))}mm "
            f"profile, {_fmt(params.get('height'))}mm tall"
        )
    raise AssertionError(f"Unhandled primitive kind: {kind}")


def _feature_description(kind: str, params: Mapping[str, Any]) -> str:
    if kind == "hole":
        return f"Add hole: Ø{_fmt(params.get('diameter'))}mm"
    if kind == "fillet":
        return f"Add fillet: R{_fmt(params.get('radius'))}mm"
    if kind == "chamfer":
        return f"Add chamfer: {_fmt(params.get('distance'))}mm"
    if kind == "pocket":
        return f"Add pocket: depth {_fmt(params.get('depth'))}mm"
    return f"Add boss: Ø{_fmt(params.get('diameter'))}mm"


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------

def validate_intent(raw: Any) -> IntentValidation:
    """
    Check interpreter output against the GeometryIntent contract.

    Returns the parsed intent when valid; errors are returned, not raised.
    """
    if isinstance(raw, GeometryIntent):
        return IntentValidation(valid=True, intent=raw)

    if not isinstance(raw, Mapping):
        return IntentValidation(valid=False, errors=["Intent must be a JSON object"])

    try:
        intent = GeometryIntent.model_validate(raw)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        ]
        return IntentValidation(valid=False, errors=errors)

    return IntentValidation(valid=True, intent=intent)


def build_operation_sequence(intent: GeometryIntent | Mapping[str, Any]) -> List[Operation]:
    sequencer = OperationSequencer()
    operations = sequencer.build_sequence(intent)
    return sequencer.resolve_dependencies(operations).ordered


def build_refinement_sequence(
    original: GeometryIntent | Mapping[str, Any],
    refined: GeometryIntent | Mapping[str, Any],
) -> List[Operation]:
    """
    Sequence for a refined intent.

    The whole sequence is rebuilt; `original` is accepted so a
    parameter-level diff can replace this without changing callers.
    """
    return build_operation_sequence(refined)
