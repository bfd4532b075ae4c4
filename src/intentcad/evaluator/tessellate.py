"""
Shape -> flat mesh buffers.

Mesh density follows the evaluator's subdivision level: the angular
tolerance is one subdivision of a full turn, the linear tolerance a
fraction of the bounding-box diagonal.
"""

from __future__ import annotations

import math
from typing import Dict, Tuple

import numpy as np
import trimesh

MIN_SUBDIVISIONS = 4
MAX_SUBDIVISIONS = 64
MIN_LINEAR_TOLERANCE = 1e-3


def clamp_subdivisions(value: int) -> int:
    return max(MIN_SUBDIVISIONS, min(MAX_SUBDIVISIONS, int(value)))


def tolerances(shape, subdivisions: int) -> Tuple[float, float]:
    subdivisions = clamp_subdivisions(subdivisions)
    diagonal = shape.BoundingBox().DiagonalLength
    linear = max(diagonal / (subdivisions * 8.0), MIN_LINEAR_TOLERANCE)
    angular = 2.0 * math.pi / subdivisions
    return linear, angular


def to_trimesh(shape, subdivisions: int) -> trimesh.Trimesh:
    linear, angular = tolerances(shape, subdivisions)
    vertices, triangles = shape.tessellate(linear, angular)

    return trimesh.Trimesh(
        vertices=np.array([(v.x, v.y, v.z) for v in vertices], dtype=np.float64).reshape(-1, 3),
        faces=np.array(triangles, dtype=np.int64).reshape(-1, 3),
        process=False,
    )


def mesh_buffers(mesh: trimesh.Trimesh) -> Dict[str, np.ndarray]:
    """Flat float32/uint32 buffers, as carried across the boundary."""
    if len(mesh.faces):
        normals = np.asarray(mesh.vertex_normals, dtype=np.float32).reshape(-1)
    else:
        normals = np.zeros(0, dtype=np.float32)

    return {
        "vertices": np.asarray(mesh.vertices, dtype=np.float32).reshape(-1),
        "indices": np.asarray(mesh.faces, dtype=np.uint32).reshape(-1),
        "normals": normals,
    }


def tessellate(shape, subdivisions: int) -> Dict[str, np.ndarray]:
    return mesh_buffers(to_trimesh(shape, subdivisions))
