"""
Local Fallback Geometry
=======================

Tessellated primitives built in-process with trimesh, used when the
evaluator never became ready.

Shapes are centred on the origin like the evaluator's, so a preview does
not jump when the evaluator comes back. Results carry `approximate: True`.

This module:
- DOES NOT do features, booleans, export or analysis
- DOES NOT talk to the evaluator
"""

from __future__ import annotations

import secrets
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

import trimesh

from intentcad.boundary.payloads import (
    DEFAULT_SEGMENTS,
    DEFAULT_SPHERE_SEGMENTS,
    DEFAULT_TORUS_SEGMENTS,
    PayloadError,
    require_positive,
    segment_count,
)
from intentcad.errors import FallbackUnsupportedError
from intentcad.evaluator.tessellate import mesh_buffers
from intentcad.intent.model import PrimitiveKind
from intentcad.sequencing.sequencer import CREATE_OPERATIONS


def _box(payload: Mapping[str, Any]) -> trimesh.Trimesh:
    return trimesh.creation.box(
        extents=(
            require_positive(payload, "width"),
            require_positive(payload, "height"),
            require_positive(payload, "depth"),
        )
    )


def _extrusion(payload: Mapping[str, Any]) -> trimesh.Trimesh:
    # Rectangular profile in XY, extruded along Z.
    return trimesh.creation.box(
        extents=(
            require_positive(payload, "width"),
            require_positive(payload, "depth"),
            require_positive(payload, "height"),
        )
    )


def _cylinder(payload: Mapping[str, Any]) -> trimesh.Trimesh:
    return trimesh.creation.cylinder(
        radius=require_positive(payload, "radius"),
        height=require_positive(payload, "height"),
        sections=segment_count(payload, "segments", DEFAULT_SEGMENTS),
    )


def _sphere(payload: Mapping[str, Any]) -> trimesh.Trimesh:
    return trimesh.creation.uv_sphere(
        radius=require_positive(payload, "radius"),
        count=[
            segment_count(payload, "segmentsLat", DEFAULT_SPHERE_SEGMENTS[0]),
            segment_count(payload, "segmentsLon", DEFAULT_SPHERE_SEGMENTS[1]),
        ],
    )


def _cone(payload: Mapping[str, Any]) -> trimesh.Trimesh:
    height = require_positive(payload, "height")
    mesh = trimesh.creation.cone(
        radius=require_positive(payload, "radius"),
        height=height,
        sections=segment_count(payload, "segments", DEFAULT_SEGMENTS),
    )
    # trimesh puts the base on z=0
    mesh.apply_translation((0.0, 0.0, -height / 2.0))
    return mesh


def _torus(payload: Mapping[str, Any]) -> trimesh.Trimesh:
    major = require_positive(payload, "majorRadius")
    minor = require_positive(payload, "minorRadius")
    if minor >= major:
        raise PayloadError("Torus minor radius must be smaller than major radius")
    return trimesh.creation.torus(
        major_radius=major,
        minor_radius=minor,
        major_sections=segment_count(payload, "segmentsMajor", DEFAULT_TORUS_SEGMENTS[0]),
        minor_sections=segment_count(payload, "segmentsMinor", DEFAULT_TORUS_SEGMENTS[1]),
    )


FALLBACK_BUILDERS: Dict[PrimitiveKind, Callable[[Mapping[str, Any]], trimesh.Trimesh]] = {
    PrimitiveKind.BOX: _box,
    PrimitiveKind.CYLINDER: _cylinder,
    PrimitiveKind.SPHERE: _sphere,
    PrimitiveKind.EXTRUSION: _extrusion,
    PrimitiveKind.CONE: _cone,
    PrimitiveKind.TORUS: _torus,
}

FALLBACK_OPERATIONS: Dict[str, PrimitiveKind] = {
    operation: kind for kind, operation in CREATE_OPERATIONS.items()
}


def new_local_id() -> str:
    return f"local_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


class LocalFallback:
    """
    Create-only geometry source.

    Keeps the meshes it made so `get` can hand them back for previews.
    """

    def __init__(self) -> None:
        self._meshes: Dict[str, trimesh.Trimesh] = {}

    def __len__(self) -> int:
        return len(self._meshes)

    @staticmethod
    def supports(operation: str) -> bool:
        return operation in FALLBACK_OPERATIONS

    def execute(self, operation: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        kind = FALLBACK_OPERATIONS.get(operation)
        if kind is None:
            raise FallbackUnsupportedError(
                f"Operation {operation} is not available in fallback mode"
            )

        mesh = FALLBACK_BUILDERS[kind](payload)
        geometry_id = new_local_id()
        self._meshes[geometry_id] = mesh

        return {
            "geometryId": geometry_id,
            "mesh": mesh_buffers(mesh),
            "approximate": True,
        }

    def get(self, geometry_id: str) -> Optional[trimesh.Trimesh]:
        return self._meshes.get(geometry_id)

    def ids(self) -> List[str]:
        return list(self._meshes)

    def clear(self) -> None:
        self._meshes.clear()
