from __future__ import annotations

import cadquery as cq


class BooleanAdapterError(Exception):
    pass


def execute_boolean(operation: str, shapes: list):
    if len(shapes) < 2:
        raise BooleanAdapterError(f"{operation} needs at least two bodies")

    try:
        if operation == "BOOLEAN_UNION":
            return _union(shapes)

        if operation == "BOOLEAN_SUBTRACT":
            return _difference(shapes)

        if operation == "BOOLEAN_INTERSECT":
            return _intersection(shapes)

    except Exception as e:
        raise BooleanAdapterError(f"{operation} failed: {e}")

    raise BooleanAdapterError(f"Unknown boolean operation: {operation}")


def _union(shapes):
    wp = cq.Workplane(obj=shapes[0])
    for shape in shapes[1:]:
        wp = wp.union(shape)
    return wp.val()


def _difference(shapes):
    wp = cq.Workplane(obj=shapes[0])
    for shape in shapes[1:]:
        wp = wp.cut(shape)
    return wp.val()


def _intersection(shapes):
    wp = cq.Workplane(obj=shapes[0])
    for shape in shapes[1:]:
        wp = wp.intersect(shape)

    result = wp.val()
    if not result.Solids():
        raise BooleanAdapterError("Bodies do not intersect")
    return result
