"""
Geometry Evaluator
==================

Serves boundary requests inside the evaluator process.

Responsibilities:
- Own the geometry registry (handles -> CAD shapes)
- Dispatch every boundary operation to a CAD adapter
- Compile GeometryIR designs (memoized by IR hash)
- Validate / compile semantic IR graphs

Non-responsibilities:
- No transport (see intentcad.boundary.worker)
- No retries, no fallbacks
- No geometry algorithms (CadQuery / OpenCascade do the work)

Handlers raise on failure; the worker turns exceptions into error
responses. COMPILE_* handlers instead report failure in their result,
because the kernel bridge treats "error" as a status, not an exception.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import cadquery as cq
from loguru import logger

import intentcad
from intentcad.boundary.payloads import PayloadError, geometry_handle, map_operation_to_payload
from intentcad.boundary.protocol import EVALUATOR_NAME, BoundaryOperation
from intentcad.evaluator.adapters.boolean_adapter import BooleanAdapterError, execute_boolean
from intentcad.evaluator.adapters.export_adapter import execute_export
from intentcad.evaluator.adapters.feature_adapter import FeatureAdapterError, execute_feature
from intentcad.evaluator.adapters.primitive_adapter import (
    PrimitiveAdapterError,
    apply_transform,
    execute_primitive,
)
from intentcad.evaluator.dfm import DEFAULT_MIN_WALL, analyze, normalize_process, topology_summary
from intentcad.evaluator.graph import (
    SemanticGraph,
    SemanticGraphError,
    iter_primitive_nodes,
    validate_semantic_ir,
)
from intentcad.evaluator.registry import BodyRegistry, RegistryError
from intentcad.evaluator.tessellate import clamp_subdivisions, tessellate
from intentcad.intent.hashing import hash_geometry_ir
from intentcad.intent.model import (
    ConstraintKind,
    GeometryIR,
    OperationIntent,
    OperationKind,
    PrimitiveIntent,
    PrimitiveKind,
    Transform,
    coerce_primitive_kind,
)
from intentcad.sequencing.contract import Operation, OperationCategory
from intentcad.sequencing.sequencer import CREATE_OPERATIONS

KERNEL_FEATURES = [
    "brep-primitives",
    "edge-features",
    "booleans",
    "semantic-ir",
    "manufacturing-analysis",
    "step-export",
]
ANALYSIS_FRESH_SECONDS = 300.0

CREATE_KINDS: Dict[BoundaryOperation, PrimitiveKind] = {
    BoundaryOperation(name): kind for kind, name in CREATE_OPERATIONS.items()
}

FEATURE_OPERATIONS = (
    BoundaryOperation.ADD_HOLE,
    BoundaryOperation.ADD_FILLET,
    BoundaryOperation.ADD_CHAMFER,
    BoundaryOperation.ADD_POCKET,
    BoundaryOperation.ADD_BOSS,
)

BOOLEAN_OPERATIONS = (
    BoundaryOperation.BOOLEAN_UNION,
    BoundaryOperation.BOOLEAN_SUBTRACT,
    BoundaryOperation.BOOLEAN_INTERSECT,
)

INTENT_OPERATIONS: Dict[OperationKind, str] = {
    OperationKind.UNION: "BOOLEAN_UNION",
    OperationKind.SUBTRACT: "BOOLEAN_SUBTRACT",
    OperationKind.INTERSECT: "BOOLEAN_INTERSECT",
    OperationKind.FILLET: "ADD_FILLET",
    OperationKind.HOLE: "ADD_HOLE",
    OperationKind.CHAMFER: "ADD_CHAMFER",
}


class GeometryEvaluatorError(Exception):
    pass


class CompileError(Exception):
    pass


def _primitive_payload(kind: PrimitiveKind, parameters: Mapping[str, Any]) -> Dict[str, Any]:
    op = Operation(
        id="compile",
        category=OperationCategory.CREATE,
        operation=CREATE_OPERATIONS[kind],
        parameters=dict(parameters),
    )
    return map_operation_to_payload(op, None)


def _bounding_box(shape) -> Dict[str, float]:
    bb = shape.BoundingBox()
    return {
        "min_x": bb.xmin,
        "min_y": bb.ymin,
        "min_z": bb.zmin,
        "max_x": bb.xmax,
        "max_y": bb.ymax,
        "max_z": bb.zmax,
    }


def _combine(shapes: List[Any]):
    if len(shapes) == 1:
        return shapes[0]
    wp = cq.Workplane(obj=shapes[0])
    for shape in shapes[1:]:
        wp = wp.union(shape)
    return wp.val()


class GeometryEvaluator:
    """
    Deterministic CAD evaluator behind the boundary.
    """

    def __init__(self, subdivisions: int = 32) -> None:
        self.registry = BodyRegistry()
        self.graph = SemanticGraph()
        self.subdivisions = clamp_subdivisions(subdivisions)

        self._compile_cache: Dict[str, Dict[str, Any]] = {}
        self._analysis_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}

        self._handlers: Dict[BoundaryOperation, Callable[[Dict[str, Any]], Any]] = {
            **{op: self._creator(kind) for op, kind in CREATE_KINDS.items()},
            **{op: self._feature_handler(op.value) for op in FEATURE_OPERATIONS},
            **{op: self._boolean_handler(op.value) for op in BOOLEAN_OPERATIONS},
            BoundaryOperation.ANALYZE_DFM: self._analyze_dfm,
            BoundaryOperation.EXPORT_STL: self._export_handler("stl"),
            BoundaryOperation.EXPORT_OBJ: self._export_handler("obj"),
            BoundaryOperation.EXPORT_STEP: self._export_handler("step"),
            BoundaryOperation.GET_MESH: self._get_mesh,
            BoundaryOperation.COMPUTE_BOUNDING_BOX: self._compute_bounding_box,
            BoundaryOperation.REMOVE_GEOMETRY: self._remove_geometry,
            BoundaryOperation.CLEAR_CACHE: self._clear_cache,
            BoundaryOperation.COMPILE_INTENT: self._compile_intent,
            BoundaryOperation.COMPILE_SEMANTIC_IR: self._compile_semantic_ir,
            BoundaryOperation.VALIDATE_SEMANTIC_IR: self._validate_semantic_ir,
            BoundaryOperation.ADD_IR_NODE: self._add_ir_node,
            BoundaryOperation.GRAPH_STATS: lambda payload: self.graph.stats(),
            BoundaryOperation.CACHE_STATS: lambda payload: self.cache_stats(),
            BoundaryOperation.SET_SUBDIVISIONS: self._set_subdivisions,
            BoundaryOperation.KERNEL_INFO: lambda payload: self.kernel_info(),
        }

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def handle(self, operation: str, payload: Optional[Mapping[str, Any]] = None) -> Any:
        try:
            op = BoundaryOperation(operation)
        except ValueError:
            raise GeometryEvaluatorError(f"Unknown operation: {operation}") from None

        return self._handlers[op](dict(payload or {}))

    @property
    def operations(self) -> List[BoundaryOperation]:
        return list(self._handlers)

    def kernel_info(self) -> Dict[str, Any]:
        return {
            "name": EVALUATOR_NAME,
            "version": intentcad.__version__,
            "cadquery": getattr(cq, "__version__", "unknown"),
            "features": list(KERNEL_FEATURES),
            "architecture": "process",
            "ir_system": "enhanced",
            "legacy_support": True,
            "subdivisions": self.subdivisions,
        }

    def cache_stats(self) -> Dict[str, int]:
        now = time.monotonic()
        fresh = sum(
            1 for stamp, _ in self._analysis_cache.values()
            if now - stamp <= ANALYSIS_FRESH_SECONDS
        )
        return {
            "compiler_cache_size": len(self._compile_cache),
            "analyzer_cache_total": len(self._analysis_cache),
            "analyzer_cache_fresh": fresh,
            "ir_graph_nodes": len(self.graph),
        }

    # ------------------------------------------------------------------
    # Geometry handlers
    # ------------------------------------------------------------------

    def _register(self, shape) -> Dict[str, Any]:
        geometry_id = self.registry.add(shape)
        return {"geometryId": geometry_id, "mesh": tessellate(shape, self.subdivisions)}

    def _creator(self, kind: PrimitiveKind) -> Callable[[Dict[str, Any]], Any]:
        def create(payload: Dict[str, Any]) -> Dict[str, Any]:
            return self._register(execute_primitive(kind, payload))

        return create

    def _feature_handler(self, name: str) -> Callable[[Dict[str, Any]], Any]:
        def feature(payload: Dict[str, Any]) -> Dict[str, Any]:
            shape = self.registry.get(geometry_handle(payload))
            return self._register(execute_feature(name, payload, shape))

        return feature

    def _boolean_handler(self, name: str) -> Callable[[Dict[str, Any]], Any]:
        def boolean(payload: Dict[str, Any]) -> Dict[str, Any]:
            shapes = [
                self.registry.get(geometry_handle(payload, "geometryId1")),
                self.registry.get(geometry_handle(payload, "geometryId2")),
            ]
            return self._register(execute_boolean(name, shapes))

        return boolean

    def _export_handler(self, fmt: str) -> Callable[[Dict[str, Any]], Any]:
        def export(payload: Dict[str, Any]) -> Dict[str, Any]:
            shape = self.registry.get(geometry_handle(payload))
            filename = str(payload.get("filename") or f"model.{fmt}")
            return execute_export(fmt, shape, filename=filename, subdivisions=self.subdivisions)

        return export

    def _analyze_dfm(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        geometry_id = geometry_handle(payload)
        shape = self.registry.get(geometry_id)

        report = analyze(
            shape,
            processes=payload.get("processes") or [],
            complexity=str(payload.get("complexity") or "medium"),
            min_wall_thickness=float(payload.get("minWallThickness") or DEFAULT_MIN_WALL),
        )
        self._analysis_cache[geometry_id] = (time.monotonic(), report)
        return {"analysis": report, "analyzedGeometryId": geometry_id}

    def _get_mesh(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return tessellate(self.registry.get(geometry_handle(payload)), self.subdivisions)

    def _compute_bounding_box(self, payload: Dict[str, Any]) -> Dict[str, float]:
        return _bounding_box(self.registry.get(geometry_handle(payload)))

    def _remove_geometry(self, payload: Dict[str, Any]) -> Dict[str, bool]:
        geometry_id = geometry_handle(payload)
        self._analysis_cache.pop(geometry_id, None)
        return {"success": self.registry.remove(geometry_id)}

    def _clear_cache(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.registry.clear()
        self._compile_cache.clear()
        self._analysis_cache.clear()
        logger.debug("Evaluator caches cleared")
        return {"success": True, "message": "Cache cleared"}

    def _set_subdivisions(self, payload: Dict[str, Any]) -> Dict[str, int]:
        requested = payload.get("subdivisions", self.subdivisions)
        try:
            self.subdivisions = clamp_subdivisions(requested)
        except (TypeError, ValueError):
            raise GeometryEvaluatorError(f"Invalid subdivisions: {requested!r}") from None
        return {"subdivisions": self.subdivisions}

    # ------------------------------------------------------------------
    # Intent compilation
    # ------------------------------------------------------------------

    def _compile_intent(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ir = GeometryIR.from_dict(payload.get("ir") or {})
        intent_hash = ir.hash or hash_geometry_ir(ir)

        cached = self._compile_cache.get(intent_hash)
        if cached is not None:
            logger.debug(f"Compile cache hit for {intent_hash}")
            return {**cached, "status": "cached"}

        try:
            result = self._compile(ir, intent_hash, include_step=bool(payload.get("includeStep")))
        except (
            CompileError,
            PayloadError,
            PrimitiveAdapterError,
            FeatureAdapterError,
            BooleanAdapterError,
            RegistryError,
        ) as exc:
            logger.warning(f"Compile of {intent_hash} failed: {exc}")
            return {
                "status": "error",
                "intent_hash": intent_hash,
                "error": {"code": "COMPILE_ERROR", "message": str(exc)},
            }

        self._compile_cache[intent_hash] = result
        return result

    def _compile(self, ir: GeometryIR, intent_hash: str, *, include_step: bool) -> Dict[str, Any]:
        problems = ir.validate_references(known_handles=self.registry.ids())
        if problems:
            raise CompileError("; ".join(problems))

        bodies: Dict[str, Any] = {}

        for intent in ir.operations:
            if isinstance(intent, PrimitiveIntent):
                bodies[intent.id] = self._compile_primitive(intent.kind, intent.parameters, intent.transform)
            elif isinstance(intent, OperationIntent):
                self._compile_operation(intent, bodies)

        result: Dict[str, Any] = {
            "status": "compiled",
            "intent_hash": intent_hash,
            "mesh": None,
            "topology": None,
            "step": None,
            "mfg_report": None,
        }
        if not bodies:
            return result

        shape = _combine(list(bodies.values()))
        result["mesh"] = tessellate(shape, self.subdivisions)
        result["topology"] = topology_summary(shape)
        result["mfg_report"] = analyze(shape, **self._constraint_options(ir))
        if include_step:
            result["step"] = execute_export(
                "step", shape, filename=f"{ir.part}.step", subdivisions=self.subdivisions
            )["content"]
        return result

    def _compile_primitive(self, kind: PrimitiveKind, parameters, transform: Optional[Transform]):
        shape = execute_primitive(kind, _primitive_payload(kind, parameters))
        if transform is not None:
            shape = apply_transform(shape, transform)
        return shape

    def _compile_operation(self, intent: OperationIntent, bodies: Dict[str, Any]) -> None:
        """
        Apply one operation intent.

        The result is stored under the intent id; consumed bodies leave
        the live set so the final union only holds leaf results.
        """
        name = INTENT_OPERATIONS[intent.kind]
        target = bodies.pop(intent.target, None)
        if target is None:
            target = self.registry.get(intent.target)

        if intent.is_boolean:
            tool = bodies.pop(intent.operand, None)
            if tool is None:
                tool = self.registry.get(intent.operand)
            bodies[intent.id] = execute_boolean(name, [target, tool])
            return

        op = Operation(
            id=intent.id,
            category=OperationCategory.FEATURE,
            operation=name,
            parameters=dict(intent.parameters),
        )
        bodies[intent.id] = execute_feature(name, map_operation_to_payload(op, intent.target), target)

    @staticmethod
    def _constraint_options(ir: GeometryIR) -> Dict[str, Any]:
        processes = []
        min_wall = DEFAULT_MIN_WALL
        for constraint in ir.constraints:
            if constraint.kind is ConstraintKind.PROCESS and constraint.value:
                processes.append(normalize_process(constraint.value))
            elif constraint.kind is ConstraintKind.MIN_WALL_THICKNESS:
                try:
                    min_wall = float(constraint.value)
                except (TypeError, ValueError):
                    continue
        return {"processes": processes, "min_wall_thickness": min_wall}

    # ------------------------------------------------------------------
    # Semantic IR
    # ------------------------------------------------------------------

    def _compile_semantic_ir(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        semantic = payload.get("semantic") or {}
        self.graph.load(semantic)
        report = self.graph.validate().to_dict()

        if not report["valid"]:
            return {
                "status": "error",
                "error": {"code": "VALIDATION_ERROR", "message": "Semantic IR validation failed"},
                "validation_result": report,
            }

        shapes = []
        try:
            for node in iter_primitive_nodes(self.graph):
                data = (node.get("content") or {}).get("data") or {}
                kind = coerce_primitive_kind(data.get("primitive_type"))
                shapes.append(
                    self._compile_primitive(
                        kind, data.get("parameters") or {}, Transform.from_dict(data.get("transform"))
                    )
                )
        except PrimitiveAdapterError as exc:
            return {
                "status": "error",
                "error": {"code": "COMPILE_ERROR", "message": str(exc)},
                "validation_result": report,
            }

        mesh = tessellate(_combine(shapes), self.subdivisions) if shapes else None
        return {
            "status": "compiled",
            "nodes_processed": len(self.graph),
            "validation_result": report,
            "mesh": mesh,
            "manufacturing_analysis": report["manufacturing_analysis"],
        }

    def _validate_semantic_ir(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return validate_semantic_ir(payload.get("semantic") or {})

    def _add_ir_node(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            node_id = self.graph.add(payload.get("node") or {})
        except SemanticGraphError as exc:
            return {"status": "error", "error": str(exc)}
        return {"status": "success", "node_id": node_id}
