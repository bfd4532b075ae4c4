"""
Operation -> boundary payload mapping.

Shared by the evaluator path and the local fallback so both see the same
defaulting (radius from diameter, 32 segments, 32x32 sphere, 32x16 torus).
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from intentcad.sequencing.contract import Operation, radius_of

DEFAULT_SEGMENTS = 32
DEFAULT_SPHERE_SEGMENTS = (32, 32)
DEFAULT_TORUS_SEGMENTS = (32, 16)
ORIGIN = {"x": 0, "y": 0, "z": 0}


class PayloadError(ValueError):
    pass


def map_operation_to_payload(
    operation: Operation, current_geometry_id: Optional[str]
) -> Dict[str, Any]:
    params = operation.parameters
    name = operation.operation

    if name == "CREATE_BOX":
        return {
            "width": params.get("width"),
            "height": params.get("height"),
            "depth": params.get("depth"),
        }

    if name == "CREATE_EXTRUSION":
        return {
            "width": params.get("width"),
            "depth": params.get("depth"),
            "height": params.get("height"),
        }

    if name in ("CREATE_CYLINDER", "CREATE_CONE"):
        return {
            "radius": radius_of(params),
            "height": params.get("height"),
            "segments": params.get("segments") or DEFAULT_SEGMENTS,
        }

    if name == "CREATE_SPHERE":
        return {
            "radius": radius_of(params),
            "segmentsLat": params.get("segmentsLat") or DEFAULT_SPHERE_SEGMENTS[0],
            "segmentsLon": params.get("segmentsLon") or DEFAULT_SPHERE_SEGMENTS[1],
        }

    if name == "CREATE_TORUS":
        return {
            "majorRadius": params.get("majorRadius"),
            "minorRadius": params.get("minorRadius"),
            "segmentsMajor": params.get("segmentsMajor") or DEFAULT_TORUS_SEGMENTS[0],
            "segmentsMinor": params.get("segmentsMinor") or DEFAULT_TORUS_SEGMENTS[1],
        }

    if name == "ADD_HOLE":
        return {
            "geometryId": current_geometry_id,
            "position": params.get("position") or dict(ORIGIN),
            "diameter": params.get("diameter"),
            "depth": params.get("depth"),
        }

    if name == "ADD_FILLET":
        return {
            "geometryId": current_geometry_id,
            "edgeIndex": params.get("edgeIndex") or 0,
            "radius": params.get("radius"),
        }

    if name == "ADD_CHAMFER":
        return {
            "geometryId": current_geometry_id,
            "edgeIndex": params.get("edgeIndex") or 0,
            "distance": params.get("distance"),
        }

    if name == "ADD_POCKET":
        return {
            "geometryId": current_geometry_id,
            "position": params.get("position") or dict(ORIGIN),
            "width": params.get("width"),
            "length": params.get("length", params.get("width")),
            "depth": params.get("depth"),
        }

    if name == "ADD_BOSS":
        return {
            "geometryId": current_geometry_id,
            "position": params.get("position") or dict(ORIGIN),
            "radius": radius_of(params),
            "height": params.get("height"),
        }

    if name in ("BOOLEAN_UNION", "BOOLEAN_SUBTRACT", "BOOLEAN_INTERSECT"):
        return {
            "geometryId1": current_geometry_id,
            "geometryId2": params.get("toolGeometryId"),
        }

    if name in ("EXPORT_STL", "EXPORT_OBJ", "EXPORT_STEP"):
        extension = name.rsplit("_", 1)[1].lower()
        return {
            "geometryId": current_geometry_id,
            "filename": params.get("filename") or f"model.{extension}",
        }

    if name == "ANALYZE_DFM":
        return {**params, "geometryId": current_geometry_id}

    return dict(params)


# ---------------------------------------------------------------------------
# Payload readers (both execution paths)
# ---------------------------------------------------------------------------

def require_positive(payload: Mapping[str, Any], key: str) -> float:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PayloadError(f"'{key}' must be a number, got {value!r}")
    if value <= 0:
        raise PayloadError(f"'{key}' must be positive, got {value!r}")
    return float(value)


def segment_count(payload: Mapping[str, Any], key: str, default: int) -> int:
    value = payload.get(key) or default
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise PayloadError(f"'{key}' must be an integer, got {value!r}")
    if count < 3:
        raise PayloadError(f"'{key}' must be at least 3, got {count}")
    return count


def position_of(payload: Mapping[str, Any]) -> tuple:
    position = payload.get("position") or ORIGIN
    try:
        if isinstance(position, Mapping):
            values = (position.get("x", 0), position.get("y", 0), position.get("z", 0))
        else:
            values = tuple(position)
        x, y, z = (float(v) for v in values)
    except (TypeError, ValueError):
        raise PayloadError(f"Invalid position: {position!r}")
    return (x, y, z)


def geometry_handle(payload: Mapping[str, Any], key: str = "geometryId") -> str:
    handle = payload.get(key)
    if not handle:
        raise PayloadError(f"Operation requires '{key}' (no current geometry)")
    return str(handle)
