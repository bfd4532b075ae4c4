from __future__ import annotations

from typing import Any, Mapping

import cadquery as cq

from intentcad.boundary.payloads import PayloadError, position_of, require_positive

# Cutters overshoot the stock so no coplanar faces reach the boolean.
CUT_CLEARANCE = 1.0


class FeatureAdapterError(Exception):
    pass


def execute_feature(operation: str, payload: Mapping[str, Any], input_shape):
    """
    Execute a feature on a single body.
    """
    try:
        if operation == "ADD_HOLE":
            return _hole(payload, input_shape)

        if operation == "ADD_FILLET":
            return _fillet(payload, input_shape)

        if operation == "ADD_CHAMFER":
            return _chamfer(payload, input_shape)

        if operation == "ADD_POCKET":
            return _pocket(payload, input_shape)

        if operation == "ADD_BOSS":
            return _boss(payload, input_shape)

    except PayloadError as e:
        raise FeatureAdapterError(f"Invalid {operation} parameters: {e}")

    raise FeatureAdapterError(f"Unknown feature operation: {operation}")


# ---------------------------
# Feature implementations
# ---------------------------

def _fillet(payload, shape):
    radius = require_positive(payload, "radius")
    edge = select_edge(shape, payload.get("edgeIndex", 0))

    try:
        return shape.fillet(radius, [edge])
    except Exception as e:
        raise FeatureAdapterError(f"Fillet failed (radius={radius}): {e}")


def _chamfer(payload, shape):
    distance = require_positive(payload, "distance")
    edge = select_edge(shape, payload.get("edgeIndex", 0))

    try:
        return shape.chamfer(distance, None, [edge])
    except Exception as e:
        raise FeatureAdapterError(f"Chamfer failed (distance={distance}): {e}")


def _hole(payload, shape):
    diameter = require_positive(payload, "diameter")
    x, y, _ = position_of(payload)

    bb = shape.BoundingBox()

    # No depth means through-all
    if payload.get("depth") is None:
        depth = bb.zlen
    else:
        depth = require_positive(payload, "depth")

    try:
        cutter = (
            cq.Workplane("XY")
            .workplane(offset=bb.zmax - depth)
            .center(x, y)
            .circle(diameter / 2.0)
            .extrude(depth + CUT_CLEARANCE)
        )
        result = cq.Workplane(obj=shape).cut(cutter)
    except Exception as e:
        raise FeatureAdapterError(f"Hole operation failed: {e}")

    return result.val()


def _pocket(payload, shape):
    width = require_positive(payload, "width")
    length = require_positive(payload, "length")
    depth = require_positive(payload, "depth")
    x, y, _ = position_of(payload)

    bb = shape.BoundingBox()
    if depth >= bb.zlen:
        raise FeatureAdapterError(
            f"Pocket depth {depth} must be less than part height {bb.zlen:g}"
        )

    try:
        cutter = (
            cq.Workplane("XY")
            .workplane(offset=bb.zmax - depth)
            .center(x, y)
            .rect(width, length)
            .extrude(depth + CUT_CLEARANCE)
        )
        result = cq.Workplane(obj=shape).cut(cutter)
    except Exception as e:
        raise FeatureAdapterError(f"Pocket operation failed: {e}")

    return result.val()


def _boss(payload, shape):
    radius = require_positive(payload, "radius")
    height = require_positive(payload, "height")
    x, y, _ = position_of(payload)

    bb = shape.BoundingBox()

    try:
        boss = (
            cq.Workplane("XY")
            .workplane(offset=bb.zmax)
            .center(x, y)
            .circle(radius)
            .extrude(height)
        )
        result = cq.Workplane(obj=shape).union(boss)
    except Exception as e:
        raise FeatureAdapterError(f"Boss operation failed: {e}")

    return result.val()


# ---------------------------
# Topology selection
# ---------------------------

def sorted_edges(shape) -> list:
    """
    Edges in a deterministic order: by centre (x, y, z), then length.

    Edge indices in requests refer to this order.
    """

    def key(edge):
        c = edge.Center()
        return (round(c.x, 6), round(c.y, 6), round(c.z, 6), round(edge.Length(), 6))

    return sorted(shape.Edges(), key=key)


def select_edge(shape, edge_index):
    if isinstance(edge_index, bool) or not isinstance(edge_index, int):
        raise FeatureAdapterError(f"edgeIndex must be an integer, got {edge_index!r}")

    edges = sorted_edges(shape)

    # HARD GUARANTEE: index resolves to exactly one edge
    if not 0 <= edge_index < len(edges):
        raise FeatureAdapterError(
            f"edgeIndex {edge_index} out of range (shape has {len(edges)} edges)"
        )

    return edges[edge_index]
