"""
Semantic IR Generator
=====================

Builds the richer, graph-shaped IR accepted by the evaluator's semantic
entry points (compile_semantic_ir / validate_semantic_ir).

Shape:
    {
        "nodes": [ {id, node_type, content: {type, data}, dependencies, metadata} ],
        "constraints": [ {id, constraint_type, parameters, affected_nodes} ],
        "metadata": {version, created_at, created_by},
    }

Node types: primitive | feature | constraint | boolean_op | analysis

This module:
- DOES NOT validate the graph (the evaluator does)
- DOES NOT hash (semantic IR is keyed by canonical JSON at the bridge)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from intentcad.intent.model import PrimitiveKind, coerce_primitive_kind

SEMANTIC_IR_VERSION = "2.0"
GENERATOR_NAME = "intentcad-semantic-generator"


class NodeType(str, Enum):
    PRIMITIVE = "primitive"
    FEATURE = "feature"
    BOOLEAN_OP = "boolean_op"
    CONSTRAINT = "constraint"
    ANALYSIS = "analysis"


class TargetProcess(str, Enum):
    CNC_MILLING = "cnc_milling"
    PRINTING_3D = "3d_printing"
    INJECTION_MOLDING = "injection_molding"


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MaterialProperties:
    name: str
    density: float                # g/cm^3
    tensile_strength: float       # MPa
    yield_strength: float         # MPa
    elastic_modulus: float        # GPa
    thermal_conductivity: float   # W/m.K
    cost_per_kg: float            # USD
    cnc_rating: int               # 0-10
    printing_rating: int
    molding_rating: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "density": self.density,
            "tensile_strength": self.tensile_strength,
            "yield_strength": self.yield_strength,
            "elastic_modulus": self.elastic_modulus,
            "thermal_conductivity": self.thermal_conductivity,
            "cost_per_kg": self.cost_per_kg,
            "manufacturability": {
                "cnc_rating": self.cnc_rating,
                "printing_rating": self.printing_rating,
                "molding_rating": self.molding_rating,
            },
        }


DEFAULT_MATERIALS: Dict[str, MaterialProperties] = {
    "aluminum": MaterialProperties("Aluminum 6061", 2.70, 310, 276, 69, 167, 1.85, 9, 3, 6),
    "steel": MaterialProperties("Steel 1045", 7.85, 625, 530, 200, 49, 0.85, 7, 2, 4),
    "plastic": MaterialProperties("ABS Plastic", 1.04, 40, 30, 2.3, 0.25, 2.50, 6, 9, 10),
}


def resolve_material(
    value: Any, database: Optional[Mapping[str, MaterialProperties]] = None
) -> MaterialProperties:
    database = database or {}
    if isinstance(value, MaterialProperties):
        return value
    if isinstance(value, str):
        key = value.lower()
        if key in database:
            return database[key]
        if key in DEFAULT_MATERIALS:
            return DEFAULT_MATERIALS[key]
    return DEFAULT_MATERIALS["aluminum"]


# ---------------------------------------------------------------------------
# Estimates
# ---------------------------------------------------------------------------

def _dim(dims: Mapping[str, float], name: str) -> float:
    value = dims.get(name, 0.0)
    return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else 0.0


def _radius(dims: Mapping[str, float]) -> float:
    radius = _dim(dims, "radius")
    return radius if radius else _dim(dims, "diameter") / 2.0


def estimate_volume(kind: PrimitiveKind, dims: Mapping[str, float]) -> float:
    r = _radius(dims)
    if kind in (PrimitiveKind.BOX, PrimitiveKind.EXTRUSION):
        return _dim(dims, "width") * _dim(dims, "height") * _dim(dims, "depth")
    if kind is PrimitiveKind.CYLINDER:
        return math.pi * r ** 2 * _dim(dims, "height")
    if kind is PrimitiveKind.SPHERE:
        return 4.0 / 3.0 * math.pi * r ** 3
    if kind is PrimitiveKind.CONE:
        return math.pi * r ** 2 * _dim(dims, "height") / 3.0
    if kind is PrimitiveKind.TORUS:
        major, minor = _dim(dims, "majorRadius"), _dim(dims, "minorRadius")
        return 2.0 * math.pi ** 2 * major * minor ** 2
    return 1000.0


def estimate_surface_area(kind: PrimitiveKind, dims: Mapping[str, float]) -> float:
    r = _radius(dims)
    if kind in (PrimitiveKind.BOX, PrimitiveKind.EXTRUSION):
        w, h, d = _dim(dims, "width"), _dim(dims, "height"), _dim(dims, "depth")
        return 2.0 * (w * h + w * d + h * d)
    if kind is PrimitiveKind.CYLINDER:
        return 2.0 * math.pi * r * (r + _dim(dims, "height"))
    if kind is PrimitiveKind.SPHERE:
        return 4.0 * math.pi * r ** 2
    return 1000.0


def complexity_score(features: List[Mapping[str, Any]], constraint_count: int) -> float:
    score = 1.0 + 0.5 * len(features)
    for feature in features:
        kind = feature.get("type")
        if kind in ("fillet", "chamfer"):
            score += 0.3
        elif kind in ("shell", "draft"):
            score += 0.5
        elif kind == "extrude":
            score += 0.4
    score += 0.2 * constraint_count
    return min(score, 10.0)


def recommended_processes(volume: float, material: MaterialProperties) -> List[str]:
    processes: List[str] = []
    if volume < 1000:
        processes.append(TargetProcess.CNC_MILLING.value)
    if volume < 10000:
        processes.append(TargetProcess.PRINTING_3D.value)
    if volume > 5000:
        processes.append(TargetProcess.INJECTION_MOLDING.value)

    if material.cnc_rating > 7:
        processes.append(TargetProcess.CNC_MILLING.value)
    if material.printing_rating > 7:
        processes.append(TargetProcess.PRINTING_3D.value)
    if material.molding_rating > 7:
        processes.append(TargetProcess.INJECTION_MOLDING.value)

    # de-duplicate, keep first-seen order
    unique = list(dict.fromkeys(processes))
    return unique or [TargetProcess.CNC_MILLING.value]


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

@dataclass
class SemanticIROptions:
    include_manufacturing: bool = True
    target_process: str = TargetProcess.CNC_MILLING.value
    feature_detection: bool = True
    material_database: Dict[str, MaterialProperties] = field(default_factory=dict)


class SemanticIRGenerator:
    """
    Workspace objects -> semantic IR graph.

    Objects are visited in sorted id order so the generated graph is
    stable for a given workspace (only metadata.created_at varies).
    """

    def __init__(self, options: Optional[SemanticIROptions] = None):
        self.options = options or SemanticIROptions()

    def generate(self, objects: Mapping[str, Any]) -> Dict[str, Any]:
        opts = self.options
        nodes: List[Dict[str, Any]] = []
        constraints: List[Dict[str, Any]] = []
        created_at = datetime.now(timezone.utc).isoformat()

        object_ids = sorted(objects or {}, key=str)

        for object_id in object_ids:
            obj = objects[object_id] if isinstance(objects[object_id], Mapping) else {}
            features = [f for f in obj.get("features") or [] if isinstance(f, Mapping)]
            mfg_constraints = [
                c for c in obj.get("manufacturing_constraints") or [] if isinstance(c, Mapping)
            ]

            nodes.append(self._primitive_node(object_id, obj, features, mfg_constraints, created_at))

            if opts.feature_detection:
                for index, feature in enumerate(features):
                    nodes.append(self._feature_node(f"{object_id}_feature_{index}", feature, object_id, created_at))

            if opts.include_manufacturing:
                for index, constraint in enumerate(mfg_constraints):
                    nodes.append(
                        self._constraint_node(f"{object_id}_constraint_{index}", constraint, object_id, created_at)
                    )

            for index, assembly in enumerate(obj.get("assembly_constraints") or []):
                if isinstance(assembly, Mapping):
                    constraints.append(self._assembly_constraint(f"{object_id}_assembly_{index}", assembly, object_id))

        if opts.include_manufacturing:
            constraints.extend(global_constraints(opts.target_process, object_ids))

        return {
            "nodes": nodes,
            "constraints": constraints,
            "metadata": {
                "version": SEMANTIC_IR_VERSION,
                "created_at": created_at,
                "created_by": GENERATOR_NAME,
            },
        }

    # ------------------------------------------------------------------
    # Node builders
    # ------------------------------------------------------------------

    def _primitive_node(self, object_id, obj, features, mfg_constraints, created_at) -> Dict[str, Any]:
        declared = obj.get("kind", obj.get("type"))
        kind = coerce_primitive_kind(declared)
        dims = _normalize_dimensions(obj.get("dimensions"))
        material = resolve_material(obj.get("material"), self.options.material_database)
        volume = estimate_volume(kind, dims)

        return {
            "id": object_id,
            "node_type": NodeType.PRIMITIVE.value,
            "content": {
                "type": "geometric_primitive",
                "data": {
                    "primitive_type": kind.value,
                    "parameters": dims,
                    "transform": obj.get("transform") or {
                        "position": [0, 0, 0],
                        "rotation": [0, 0, 0],
                        "scale": [1, 1, 1],
                    },
                    "material_properties": material.to_dict(),
                    "surface_finish": obj.get("surface_finish") or {
                        "roughness": 3.2,
                        "process": "machined",
                    },
                    "manufacturing_metadata": {
                        "complexity_score": complexity_score(features, len(mfg_constraints)),
                        "volume_estimate": volume,
                        "surface_area_estimate": estimate_surface_area(kind, dims),
                        "tool_access_analysis": {
                            "top_accessible": True,
                            "side_accessible": True,
                            "bottom_accessible": False,
                            "required_setups": min(len(features), 3) if features else 1,
                        },
                        "recommended_processes": recommended_processes(volume, material),
                    },
                },
            },
            "dependencies": [],
            "metadata": {
                "name": obj.get("description") or f"{kind.value} {object_id}",
                "description": f"{kind.value} primitive with manufacturing metadata",
                "created_at": created_at,
            },
        }

    def _feature_node(self, node_id, feature, parent_id, created_at) -> Dict[str, Any]:
        kind = str(feature.get("type", "feature"))
        return {
            "id": node_id,
            "node_type": NodeType.FEATURE.value,
            "content": {
                "type": "manufacturing_feature",
                "data": {
                    "feature_type": kind,
                    "parameters": _normalize_dimensions(feature.get("parameters")),
                    "location": feature.get("location"),
                    "target_process": self.options.target_process,
                },
            },
            "dependencies": [parent_id],
            "metadata": {
                "name": f"{kind} feature",
                "description": f"Manufacturing-aware {kind} feature",
                "created_at": created_at,
            },
        }

    def _constraint_node(self, node_id, constraint, target_id, created_at) -> Dict[str, Any]:
        kind = str(constraint.get("type", "constraint"))
        process = constraint.get("process", "any")
        return {
            "id": node_id,
            "node_type": NodeType.CONSTRAINT.value,
            "content": {
                "type": "manufacturing_constraint",
                "data": {
                    "constraint_type": kind,
                    "value": constraint.get("value"),
                    "target_process": process,
                    "severity": constraint.get("severity", "warning"),
                },
            },
            "dependencies": [target_id],
            "metadata": {
                "name": f"{kind} constraint",
                "description": constraint.get("description") or f"Manufacturing constraint for {process}",
                "created_at": created_at,
            },
        }

    @staticmethod
    def _assembly_constraint(constraint_id, constraint, source_id) -> Dict[str, Any]:
        target = constraint.get("target_object")
        return {
            "id": constraint_id,
            "constraint_type": "assembly_constraint",
            "parameters": {
                "type": constraint.get("type"),
                "source_object": source_id,
                "target_object": target,
                **dict(constraint.get("parameters") or {}),
            },
            "affected_nodes": [n for n in (source_id, target) if n],
        }


def global_constraints(target_process: str, object_ids: List[str]) -> List[Dict[str, Any]]:
    """Design-wide constraints implied by the target process."""
    if target_process == TargetProcess.CNC_MILLING.value:
        return [
            {
                "id": "global_min_feature_size",
                "constraint_type": "minimum_feature_size",
                "parameters": {"min_diameter": 0.5, "min_width": 0.2, "reason": "Tool size limitations"},
                "affected_nodes": list(object_ids),
            },
            {
                "id": "global_tool_access",
                "constraint_type": "tool_accessibility",
                "parameters": {"max_aspect_ratio": 10, "min_corner_radius": 0.1, "reason": "CNC tool access requirements"},
                "affected_nodes": list(object_ids),
            },
        ]
    if target_process == TargetProcess.PRINTING_3D.value:
        return [
            {
                "id": "global_overhang_angle",
                "constraint_type": "overhang_limitation",
                "parameters": {"max_angle": 45, "support_threshold": 0.1, "reason": "Support structure requirements"},
                "affected_nodes": list(object_ids),
            }
        ]
    if target_process == TargetProcess.INJECTION_MOLDING.value:
        return [
            {
                "id": "global_draft_angle",
                "constraint_type": "draft_angle_requirement",
                "parameters": {"min_angle": 0.5, "wall_thickness": 1.0, "reason": "Part ejection requirements"},
                "affected_nodes": list(object_ids),
            }
        ]
    return []


def _normalize_dimensions(dimensions: Any) -> Dict[str, float]:
    """Numbers pass through; numeric strings are parsed; anything else is dropped."""
    normalized: Dict[str, float] = {}
    if not isinstance(dimensions, Mapping):
        return normalized
    for key, value in dimensions.items():
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            normalized[str(key)] = value
        elif isinstance(value, str):
            try:
                normalized[str(key)] = float(value)
            except ValueError:
                continue
    return normalized
