from dataclasses import asdict, dataclass
from typing import Dict, List

from intentcad.execution.fallback import FALLBACK_BUILDERS
from intentcad.intent.model import PrimitiveKind
from intentcad.sequencing.sequencer import FEATURE_OPERATIONS


@dataclass(frozen=True)
class Capability:
    name: str
    supported: bool
    fallback: bool = False
    notes: str = ""


_PRIMITIVE_NOTES = {
    PrimitiveKind.EXTRUSION: "Rectangular profile only",
    PrimitiveKind.TORUS: "Minor radius must be smaller than major radius",
}

_FEATURE_NOTES = {
    "hole": "Blind or through-all, drilled from the top face",
    "fillet": "Single edge, selected by index",
    "chamfer": "Single edge, symmetric distance",
    "pocket": "Rectangular, cut from the top face",
    "boss": "Cylindrical, added on the top face",
}


def get_capabilities() -> Dict[str, List[Capability]]:
    """
    Canonical declaration of what intentcad supports TODAY.

    `fallback` marks what still works with the evaluator down.
    """
    return {
        "primitives": [
            Capability(kind.value, True, kind in FALLBACK_BUILDERS, _PRIMITIVE_NOTES.get(kind, ""))
            for kind in PrimitiveKind
        ],
        "features": [
            Capability(name, True, False, _FEATURE_NOTES.get(name, ""))
            for name in FEATURE_OPERATIONS
        ]
        + [Capability("shell", False, notes="Planned")],
        "booleans": [
            Capability("union", True),
            Capability("subtract", True),
            Capability("intersect", True, notes="Both operands must be solids"),
        ],
        "export": [
            Capability("STL", True),
            Capability("OBJ", True),
            Capability("STEP", True),
        ],
        "analysis": [
            Capability("dfm", True, notes="cnc_milling, cnc_turning, 3d_printing, injection_molding"),
            Capability("semantic_ir", True, notes="Graph validation and statistics"),
        ],
    }


def capabilities_as_dict() -> Dict[str, List[dict]]:
    return {
        group: [asdict(c) for c in items]
        for group, items in get_capabilities().items()
    }
