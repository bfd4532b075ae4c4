"""
Intent Model
============

Data definitions for the design-intent IR.

Properties:
- Immutable once built (a change produces a new IR, never a mutation)
- Closed vocabularies (str Enums) for every kind field
- JSON-shaped on the wire (to_dict / from_dict)

This module:
- DOES NOT hash (see intentcad.intent.hashing)
- DOES NOT compile workspace state
- DOES NOT talk to the evaluator
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

Vec3 = Tuple[float, float, float]


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------

class PrimitiveKind(str, Enum):
    BOX = "box"
    CYLINDER = "cylinder"
    SPHERE = "sphere"
    EXTRUSION = "extrusion"
    CONE = "cone"
    TORUS = "torus"


class OperationKind(str, Enum):
    UNION = "union"
    SUBTRACT = "subtract"
    INTERSECT = "intersect"
    FILLET = "fillet"
    HOLE = "hole"
    CHAMFER = "chamfer"


BOOLEAN_KINDS = frozenset(
    {OperationKind.UNION, OperationKind.SUBTRACT, OperationKind.INTERSECT}
)
FEATURE_KINDS = frozenset(
    {OperationKind.FILLET, OperationKind.HOLE, OperationKind.CHAMFER}
)


class ConstraintKind(str, Enum):
    MIN_WALL_THICKNESS = "min_wall_thickness"
    TOOL_DIAMETER = "tool_diameter"
    MAX_OVERHANG = "max_overhang"
    PROCESS = "process"
    MATERIAL = "material"


def coerce_primitive_kind(value: Any) -> PrimitiveKind:
    """
    Map a declared object kind to a primitive kind.

    Compound or unrecognized kinds degrade to BOX rather than failing.
    """
    if isinstance(value, PrimitiveKind):
        return value
    try:
        return PrimitiveKind(str(value).lower())
    except ValueError:
        return PrimitiveKind.BOX


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------

def _vec3(value: Any, default: Vec3) -> Vec3:
    if value is None:
        return default
    if isinstance(value, Mapping):
        value = (value.get("x", default[0]), value.get("y", default[1]), value.get("z", default[2]))
    try:
        x, y, z = value
        return (float(x), float(y), float(z))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Transform:
    position: Vec3 = (0.0, 0.0, 0.0)
    rotation: Vec3 = (0.0, 0.0, 0.0)
    scale: Vec3 = (1.0, 1.0, 1.0)

    def to_dict(self) -> Dict[str, List[float]]:
        return {
            "position": list(self.position),
            "rotation": list(self.rotation),
            "scale": list(self.scale),
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["Transform"]:
        if not data:
            return None
        return cls(
            position=_vec3(data.get("position"), (0.0, 0.0, 0.0)),
            rotation=_vec3(data.get("rotation"), (0.0, 0.0, 0.0)),
            scale=_vec3(data.get("scale"), (1.0, 1.0, 1.0)),
        )


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PrimitiveIntent:
    """
    Geometry creation intent.

    `parameters` only ever holds numbers (width, height, radius, ...).
    """

    id: str
    kind: PrimitiveKind
    parameters: Mapping[str, float] = field(default_factory=dict)
    transform: Optional[Transform] = None
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", dict(self.parameters))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "parameters": dict(self.parameters),
            "timestamp": self.timestamp,
        }
        if self.transform is not None:
            data["transform"] = self.transform.to_dict()
        return data


@dataclass(frozen=True)
class OperationIntent:
    """
    Requested change to existing geometry.

    `target` (and `operand`, for booleans) name earlier primitive
    intents or already-compiled geometry handles.
    """

    id: str
    kind: OperationKind
    target: str
    operand: Optional[str] = None
    parameters: Mapping[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", dict(self.parameters))

    @property
    def is_boolean(self) -> bool:
        return self.kind in BOOLEAN_KINDS

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "target": self.target,
            "parameters": dict(self.parameters),
            "timestamp": self.timestamp,
        }
        if self.operand is not None:
            data["operand"] = self.operand
        return data


Intent = Union[PrimitiveIntent, OperationIntent]


def intent_from_dict(data: Mapping[str, Any]) -> Intent:
    kind = data.get("type")
    if kind in {k.value for k in OperationKind}:
        return OperationIntent(
            id=str(data["id"]),
            kind=OperationKind(kind),
            target=str(data.get("target", "")),
            operand=data.get("operand"),
            parameters=data.get("parameters") or {},
            timestamp=float(data.get("timestamp", 0.0)),
        )
    return PrimitiveIntent(
        id=str(data["id"]),
        kind=coerce_primitive_kind(kind),
        parameters=data.get("parameters") or {},
        transform=Transform.from_dict(data.get("transform")),
        timestamp=float(data.get("timestamp", 0.0)),
    )


# ---------------------------------------------------------------------------
# Constraints
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ManufacturingConstraint:
    kind: ConstraintKind
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["ManufacturingConstraint"]:
        try:
            kind = ConstraintKind(data.get("type") or data.get("kind"))
        except ValueError:
            return None
        return cls(kind=kind, value=data.get("value"))


# ---------------------------------------------------------------------------
# Geometry IR (whole design)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GeometryIR:
    """
    Canonical IR of one design.

    Built fresh on every compile; `hash` is derived from the semantic
    content only (see intentcad.intent.hashing.build_geometry_ir).
    """

    part: str
    operations: Tuple[Intent, ...]
    constraints: Tuple[ManufacturingConstraint, ...]
    hash: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "operations", tuple(self.operations))
        object.__setattr__(self, "constraints", tuple(self.constraints))

    @property
    def primitives(self) -> List[PrimitiveIntent]:
        return [op for op in self.operations if isinstance(op, PrimitiveIntent)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "part": self.part,
            "operations": [op.to_dict() for op in self.operations],
            "constraints": [c.to_dict() for c in self.constraints],
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GeometryIR":
        constraints = [
            ManufacturingConstraint.from_dict(raw)
            for raw in data.get("constraints") or []
        ]
        return cls(
            part=str(data.get("part", "")),
            operations=tuple(intent_from_dict(raw) for raw in data.get("operations") or []),
            constraints=tuple(c for c in constraints if c is not None),
            hash=str(data.get("hash", "")),
        )

    def validate_references(self, known_handles: Iterable[str] = ()) -> List[str]:
        """
        Check id uniqueness and that every operation references an earlier
        intent or an already-compiled handle.

        Problems are returned, never raised.
        """
        problems: List[str] = []
        seen = set(known_handles)
        ids = set()

        for op in self.operations:
            if op.id in ids:
                problems.append(f"Duplicate intent id '{op.id}'")
            ids.add(op.id)

            if isinstance(op, OperationIntent):
                if op.target not in seen:
                    problems.append(
                        f"Operation '{op.id}' targets unknown geometry '{op.target}'"
                    )
                if op.is_boolean and op.operand is None:
                    problems.append(f"Boolean operation '{op.id}' has no operand")
                if op.operand is not None and op.operand not in seen:
                    problems.append(
                        f"Operation '{op.id}' uses unknown operand '{op.operand}'"
                    )

            seen.add(op.id)

        return problems
