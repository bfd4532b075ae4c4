"""
Semantic IR Graph
=================

Structural and manufacturing validation of semantic IR graphs, plus the
graph statistics reported by GRAPH_STATS.

Validation checks:
- every node has a unique id
- every dependency names an existing node of a compatible type
- the dependency graph is acyclic
- primitive dimensions (width/height/depth/radius/diameter) are positive
- design constraints only affect existing nodes

Problems are returned as a report, never raised. Pure Python: no CAD
kernel is needed here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from intentcad.intent.semantic import NodeType

POSITIVE_PARAMETER_MARKERS = ("width", "height", "depth", "radius", "diameter")
MIN_FEATURE_WIDTH = 0.5
FEATURE_COMPLEXITY_PENALTY = 5.0
MIN_FEATURE_PENALTY = 20.0
MAX_HEALTHY_DEPTH = 10
MAX_HEALTHY_AVG_DEPENDENCIES = 5.0

GEOMETRIC_NODE_TYPES = frozenset({"primitive", "feature", "boolean_op"})

# (dependency type, dependent type)
_COMPATIBLE = frozenset(
    {
        ("primitive", "feature"),
        ("primitive", "boolean_op"),
        ("feature", "feature"),
        ("feature", "boolean_op"),
        ("boolean_op", "feature"),
        ("boolean_op", "boolean_op"),
    }
)


class SemanticGraphError(Exception):
    pass


def types_compatible(dependency_type: str, node_type: str) -> bool:
    if node_type == NodeType.ANALYSIS.value:
        return dependency_type in GEOMETRIC_NODE_TYPES
    if node_type == NodeType.CONSTRAINT.value:
        return True
    return (dependency_type, node_type) in _COMPATIBLE


def _node_id(node: Mapping[str, Any]) -> Optional[str]:
    value = node.get("id")
    return str(value) if value not in (None, "") else None


def _dependencies(node: Mapping[str, Any]) -> List[str]:
    return [str(d) for d in node.get("dependencies") or []]


def _primitive_parameters(node: Mapping[str, Any]) -> Mapping[str, Any]:
    content = node.get("content") or {}
    data = content.get("data") if isinstance(content, Mapping) else None
    if isinstance(data, Mapping) and isinstance(data.get("parameters"), Mapping):
        return data["parameters"]
    params = node.get("parameters")
    return params if isinstance(params, Mapping) else {}


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

@dataclass
class ValidationReport:
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    score: float = 100.0
    violations: List[Dict[str, Any]] = field(default_factory=list)
    complexity: float = 0.0

    @property
    def valid(self) -> bool:
        return not self.errors

    def error(self, error_type: str, message: str, node_id: Optional[str] = None,
              fix: Optional[str] = None) -> None:
        self.errors.append(
            {
                "error_type": error_type,
                "node_id": node_id,
                "message": message,
                "code": error_type.upper(),
                "suggested_fix": fix,
            }
        )

    def warning(self, warning_type: str, message: str, severity: str = "low",
                node_id: Optional[str] = None, suggestion: Optional[str] = None) -> None:
        self.warnings.append(
            {
                "warning_type": warning_type,
                "node_id": node_id,
                "message": message,
                "severity": severity,
                "suggestion": suggestion,
            }
        )

    def summary(self) -> str:
        if self.valid and not self.warnings:
            return "Validation passed without issues"
        if self.valid:
            return f"Validation passed with {len(self.warnings)} warnings"
        return (
            f"Validation failed with {len(self.errors)} errors "
            f"and {len(self.warnings)} warnings"
        )

    def manufacturing_analysis(self) -> Dict[str, Any]:
        return {
            "manufacturability_score": max(self.score, 0.0),
            "compatible_processes": ["cnc_milling", "cnc_turning", "3d_printing"],
            "constraint_violations": list(self.violations),
            "complexity_score": self.complexity,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "manufacturing_analysis": self.manufacturing_analysis(),
            "summary": self.summary(),
        }


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

class SemanticGraph:
    """
    Insertion-ordered node graph.

    `add` enforces integrity for incremental edits (ADD_IR_NODE);
    `load` accepts anything and leaves the judging to `validate`.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, Dict[str, Any]] = {}
        self._raw: List[Dict[str, Any]] = []
        self._constraints: List[Dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def nodes(self) -> Dict[str, Dict[str, Any]]:
        return self._nodes

    def clear(self) -> None:
        self._nodes.clear()
        self._raw.clear()
        self._constraints.clear()

    def load(self, semantic: Mapping[str, Any]) -> None:
        self.clear()
        for node in semantic.get("nodes") or []:
            if not isinstance(node, Mapping):
                continue
            node = dict(node)
            self._raw.append(node)
            node_id = _node_id(node)
            if node_id is not None and node_id not in self._nodes:
                self._nodes[node_id] = node
        self._constraints = [
            dict(c) for c in semantic.get("constraints") or [] if isinstance(c, Mapping)
        ]

    def add(self, node: Mapping[str, Any]) -> str:
        node_id = _node_id(node)
        if node_id is None:
            raise SemanticGraphError("IR node requires an id")
        if node_id in self._nodes:
            raise SemanticGraphError(f"IR node '{node_id}' already exists")
        for dep in _dependencies(node):
            if dep not in self._nodes:
                raise SemanticGraphError(f"Missing dependency: {dep}")
        node = dict(node)
        self._nodes[node_id] = node
        self._raw.append(node)
        return node_id

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> ValidationReport:
        report = ValidationReport()
        self._check_ids(report)
        self._check_dependencies(report)
        self._check_cycles(report)
        self._check_parameters(report)
        self._check_constraints(report)
        self._analyze_manufacturing(report)
        self._analyze_performance(report)
        return report

    def _check_ids(self, report: ValidationReport) -> None:
        seen: Set[str] = set()
        for node in self._raw:
            node_id = _node_id(node)
            if node_id is None:
                report.error("invalid_content", "IR node is missing an id")
                continue
            if node_id in seen:
                report.error("graph_structure", f"Duplicate node id: {node_id}", node_id,
                             "Give every node a unique id")
            seen.add(node_id)

    def _check_dependencies(self, report: ValidationReport) -> None:
        for node_id, node in self._nodes.items():
            node_type = str(node.get("node_type", ""))
            for dep_id in _dependencies(node):
                dep = self._nodes.get(dep_id)
                if dep is None:
                    report.error("missing_dependency", f"Missing dependency: {dep_id}", node_id,
                                 "Add the missing dependency node")
                    continue
                dep_type = str(dep.get("node_type", ""))
                if not types_compatible(dep_type, node_type):
                    report.error(
                        "type_mismatch",
                        f"Incompatible types: {node_type} cannot depend on {dep_type}",
                        node_id,
                        "Check node type compatibility",
                    )

    def _check_cycles(self, report: ValidationReport) -> None:
        visiting: Set[str] = set()
        done: Set[str] = set()
        reported: Set[str] = set()

        def visit(node_id: str) -> None:
            if node_id in done:
                return
            visiting.add(node_id)
            for dep_id in _dependencies(self._nodes[node_id]):
                if dep_id not in self._nodes:
                    continue
                if dep_id in visiting:
                    if node_id not in reported:
                        reported.add(node_id)
                        report.error(
                            "circular_dependency",
                            f"Circular dependency between {node_id} and {dep_id}",
                            node_id,
                            "Break the dependency cycle",
                        )
                    continue
                visit(dep_id)
            visiting.discard(node_id)
            done.add(node_id)

        for node_id in self._nodes:
            visit(node_id)

    def _check_parameters(self, report: ValidationReport) -> None:
        for node_id, node in self._nodes.items():
            if node.get("node_type") != NodeType.PRIMITIVE.value:
                continue
            for name, value in _primitive_parameters(node).items():
                if not any(marker in name for marker in POSITIVE_PARAMETER_MARKERS):
                    continue
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    continue
                if value <= 0:
                    report.error("invalid_parameter", f"Parameter '{name}' must be positive",
                                 node_id, "Use positive values for geometric dimensions")

    def _check_constraints(self, report: ValidationReport) -> None:
        for constraint in self._constraints:
            constraint_id = str(constraint.get("id", "constraint"))
            for target in constraint.get("affected_nodes") or []:
                if str(target) not in self._nodes:
                    report.error(
                        "graph_structure",
                        f"Constraint {constraint_id} affects unknown node {target}",
                        None,
                        "Remove the constraint or add the node",
                    )

    def _analyze_manufacturing(self, report: ValidationReport) -> None:
        features = 0
        for node_id, node in self._nodes.items():
            node_type = node.get("node_type")
            if node_type == NodeType.FEATURE.value:
                features += 1
                report.score -= FEATURE_COMPLEXITY_PENALTY
            elif node_type == NodeType.PRIMITIVE.value:
                width = _primitive_parameters(node).get("width")
                if isinstance(width, (int, float)) and 0 < width < MIN_FEATURE_WIDTH:
                    report.violations.append(
                        {
                            "node_id": node_id,
                            "constraint_type": "MinFeatureSize",
                            "severity": "major",
                            "description": "Feature size below manufacturing minimum",
                            "affected_processes": ["cnc_milling"],
                        }
                    )
                    report.score -= MIN_FEATURE_PENALTY
        report.complexity = min(1.0 + 0.5 * features + 0.2 * len(self._constraints), 10.0)

    def _analyze_performance(self, report: ValidationReport) -> None:
        stats = self.stats()
        if stats["max_depth"] > MAX_HEALTHY_DEPTH:
            report.warning(
                "performance",
                f"Deep dependency chain detected (depth: {stats['max_depth']})",
                "medium",
                suggestion="Consider flattening the dependency structure",
            )
        if stats["avg_dependencies"] > MAX_HEALTHY_AVG_DEPENDENCIES:
            report.warning(
                "performance",
                f"High average dependencies per node: {stats['avg_dependencies']:.1f}",
                suggestion="Consider reducing inter-node dependencies",
            )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        nodes = self._nodes
        edges = {
            node_id: [d for d in _dependencies(node) if d in nodes]
            for node_id, node in nodes.items()
        }
        depended_on = {dep for deps in edges.values() for dep in deps}
        edge_count = sum(len(deps) for deps in edges.values())

        depth: Dict[str, int] = {}

        def depth_of(node_id: str, trail: Set[str]) -> int:
            if node_id in depth:
                return depth[node_id]
            if node_id in trail:
                return 0
            trail.add(node_id)
            value = 1 + max((depth_of(d, trail) for d in edges[node_id]), default=0)
            trail.discard(node_id)
            depth[node_id] = value
            return value

        max_depth = max((depth_of(n, set()) for n in nodes), default=0)

        return {
            "node_count": len(nodes),
            "edge_count": edge_count,
            "root_count": sum(1 for deps in edges.values() if not deps),
            "leaf_count": sum(1 for n in nodes if n not in depended_on),
            "max_depth": max_depth,
            "avg_dependencies": (edge_count / len(nodes)) if nodes else 0.0,
        }


def validate_semantic_ir(semantic: Mapping[str, Any]) -> Dict[str, Any]:
    graph = SemanticGraph()
    graph.load(semantic)
    return graph.validate().to_dict()


def iter_primitive_nodes(graph: SemanticGraph) -> Iterable[Dict[str, Any]]:
    for node in graph.nodes.values():
        if node.get("node_type") == NodeType.PRIMITIVE.value:
            yield node
