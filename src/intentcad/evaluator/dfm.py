"""
Design-for-manufacturing checks on a finished body.

Deliberately coarse: bounding-box envelope, minimum section and
topology counts per requested process. Scores start at 100 and lose
points per issue.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

DEFAULT_MIN_WALL = 1.0
ISSUE_PENALTY = 15.0
WARNING_PENALTY = 5.0

# Largest part dimension (mm) each process handles comfortably.
PROCESS_ENVELOPES: Dict[str, float] = {
    "cnc_milling": 1000.0,
    "cnc_turning": 500.0,
    "3d_printing": 300.0,
    "injection_molding": 600.0,
}

PROCESS_ALIASES: Dict[str, str] = {
    "cnc_mill": "cnc_milling",
    "cnc": "cnc_milling",
    "milling": "cnc_milling",
    "turning": "cnc_turning",
    "3d_print": "3d_printing",
    "fdm": "3d_printing",
    "sla": "3d_printing",
    "injection_mold": "injection_molding",
    "molding": "injection_molding",
}

HIGH_FACE_COUNT = 100


def normalize_process(name: Any) -> str:
    key = str(name).strip().lower().replace(" ", "_").replace("-", "_")
    return PROCESS_ALIASES.get(key, key)


def shape_metrics(shape) -> Dict[str, Any]:
    bb = shape.BoundingBox()
    return {
        "volume": float(shape.Volume()),
        "surface_area": float(shape.Area()),
        "bounding_box": {
            "min": [bb.xmin, bb.ymin, bb.zmin],
            "max": [bb.xmax, bb.ymax, bb.zmax],
            "size": [bb.xlen, bb.ylen, bb.zlen],
        },
        "topology": topology_summary(shape),
    }


def topology_summary(shape) -> Dict[str, int]:
    return {
        "solids": len(shape.Solids()),
        "faces": len(shape.Faces()),
        "edges": len(shape.Edges()),
        "vertices": len(shape.Vertices()),
    }


def analyze(
    shape,
    processes: Optional[Iterable[str]] = None,
    complexity: str = "medium",
    min_wall_thickness: float = DEFAULT_MIN_WALL,
) -> Dict[str, Any]:
    metrics = shape_metrics(shape)
    size = metrics["bounding_box"]["size"]
    topology = metrics["topology"]

    requested = [normalize_process(p) for p in (processes or [])] or ["cnc_milling"]
    requested = list(dict.fromkeys(requested))

    shared_issues: List[str] = []
    if min(size) < min_wall_thickness:
        shared_issues.append(
            f"Minimum section {min(size):g}mm is below {min_wall_thickness:g}mm wall thickness"
        )
    if topology["solids"] > 1:
        shared_issues.append(f"Body has {topology['solids']} disconnected solids")

    reports = []
    for process in requested:
        issues = list(shared_issues)
        warnings: List[str] = []

        envelope = PROCESS_ENVELOPES.get(process)
        if envelope is None:
            warnings.append(f"No rules for process '{process}'")
        elif max(size) > envelope:
            issues.append(f"Largest dimension {max(size):g}mm exceeds {envelope:g}mm envelope")

        if process == "cnc_milling" and topology["faces"] > HIGH_FACE_COUNT:
            warnings.append(f"{topology['faces']} faces; expect multiple setups")
        if process == "injection_molding" and complexity == "high":
            warnings.append("Complex geometry increases tooling cost")

        score = 100.0 - ISSUE_PENALTY * len(issues) - WARNING_PENALTY * len(warnings)
        reports.append(
            {
                "process": process,
                "feasible": not issues,
                "score": max(score, 0.0),
                "issues": issues,
                "warnings": warnings,
            }
        )

    return {
        **metrics,
        "complexity": complexity,
        "processes": reports,
        "manufacturable": any(r["feasible"] for r in reports),
    }
