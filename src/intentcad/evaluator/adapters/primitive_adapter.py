from __future__ import annotations

import math
from typing import Any, Callable, Dict, Mapping

import cadquery as cq

from intentcad.boundary.payloads import PayloadError, require_positive
from intentcad.intent.model import PrimitiveKind, Transform


class PrimitiveAdapterError(Exception):
    pass


def execute_primitive(kind: PrimitiveKind, payload: Mapping[str, Any]):
    """
    Build a primitive solid centred on the origin.

    Returns:
        cq.Shape
    """
    builder = PRIMITIVE_BUILDERS.get(kind)
    if builder is None:
        raise PrimitiveAdapterError(f"Unknown primitive kind: {kind}")

    try:
        return builder(payload)
    except PayloadError as e:
        raise PrimitiveAdapterError(f"Invalid {kind.value} parameters: {e}")
    except PrimitiveAdapterError:
        raise
    except Exception as e:
        # OCC rejects degenerate solids (e.g. torus minor >= major)
        raise PrimitiveAdapterError(f"Failed to build {kind.value}: {e}")


def _box(payload):
    width = require_positive(payload, "width")
    height = require_positive(payload, "height")
    depth = require_positive(payload, "depth")

    return cq.Workplane("XY").box(width, height, depth).val()


def _cylinder(payload):
    radius = require_positive(payload, "radius")
    height = require_positive(payload, "height")

    wp = cq.Workplane("XY").workplane(offset=-height / 2.0).circle(radius).extrude(height)
    return wp.val()


def _sphere(payload):
    radius = require_positive(payload, "radius")
    return cq.Workplane("XY").sphere(radius).val()


def _cone(payload):
    radius = require_positive(payload, "radius")
    height = require_positive(payload, "height")

    return cq.Solid.makeCone(radius, 0.0, height, pnt=cq.Vector(0, 0, -height / 2.0))


def _torus(payload):
    major = require_positive(payload, "majorRadius")
    minor = require_positive(payload, "minorRadius")
    if minor >= major:
        raise PrimitiveAdapterError("Torus minorRadius must be smaller than majorRadius")

    return cq.Solid.makeTorus(major, minor)


def _extrusion(payload):
    width = require_positive(payload, "width")
    depth = require_positive(payload, "depth")
    height = require_positive(payload, "height")

    wp = cq.Workplane("XY").workplane(offset=-height / 2.0).rect(width, depth).extrude(height)
    return wp.val()


PRIMITIVE_BUILDERS: Dict[PrimitiveKind, Callable[[Mapping[str, Any]], Any]] = {
    PrimitiveKind.BOX: _box,
    PrimitiveKind.CYLINDER: _cylinder,
    PrimitiveKind.SPHERE: _sphere,
    PrimitiveKind.EXTRUSION: _extrusion,
    PrimitiveKind.CONE: _cone,
    PrimitiveKind.TORUS: _torus,
}


# ---------------------------
# Placement
# ---------------------------

def apply_transform(shape, transform: Transform):
    """
    Rotate (XYZ Euler, radians) about the origin, then translate.

    Scale is not applied: B-rep primitives are sized by their parameters.
    """
    wp = cq.Workplane(obj=shape)

    axes = ((1, 0, 0), (0, 1, 0), (0, 0, 1))
    for axis, angle in zip(axes, transform.rotation):
        if angle:
            wp = wp.rotate((0, 0, 0), axis, math.degrees(angle))

    if any(transform.position):
        wp = wp.translate(transform.position)

    return wp.val()
