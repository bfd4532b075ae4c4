import pytest

from intentcad.intent.hashing import (
    HASH_PREFIX,
    PRIMITIVE_HASH_TAGS,
    build_geometry_ir,
    canonical_json,
    hash_geometry_ir,
)
from intentcad.intent.model import (
    ConstraintKind,
    GeometryIR,
    ManufacturingConstraint,
    OperationIntent,
    OperationKind,
    PrimitiveIntent,
    PrimitiveKind,
    Transform,
)


# ----------------------------
# Helpers
# ----------------------------

CONSTRAINTS = (
    ManufacturingConstraint(ConstraintKind.PROCESS, "cnc_mill"),
    ManufacturingConstraint(ConstraintKind.MIN_WALL_THICKNESS, 1.0),
)


def box(id="a", timestamp=0.0, **params):
    params = params or {"width": 100, "height": 50, "depth": 25}
    return PrimitiveIntent(id=id, kind=PrimitiveKind.BOX, parameters=params, timestamp=timestamp)


def ir_of(*ops):
    return build_geometry_ir("part", ops, CONSTRAINTS)


# ----------------------------
# Tests
# ----------------------------

def test_hash_has_prefix_and_fixed_length():
    ir = ir_of(box())
    assert ir.hash.startswith(HASH_PREFIX)
    assert len(ir.hash) == len(HASH_PREFIX) + 32


def test_parameter_insertion_order_does_not_matter():
    a = ir_of(box(width=100, height=50, depth=25))
    b = ir_of(box(depth=25, width=100, height=50))
    assert a.hash == b.hash


def test_operation_order_does_not_matter():
    first = box("a")
    second = PrimitiveIntent(id="b", kind=PrimitiveKind.CYLINDER, parameters={"radius": 5, "height": 10})
    assert ir_of(first, second).hash == ir_of(second, first).hash


def test_timestamps_are_excluded():
    assert ir_of(box(timestamp=1.0)).hash == ir_of(box(timestamp=99999.0)).hash


def test_int_and_float_hash_the_same():
    assert ir_of(box(width=100)).hash == ir_of(box(width=100.0)).hash


def test_width_change_changes_hash():
    assert ir_of(box(width=100)).hash != ir_of(box(width=101)).hash


def test_large_integers_keep_full_precision():
    # 2**53 and 2**53 + 1 collapse to one float
    assert ir_of(box(width=2**53)).hash != ir_of(box(width=2**53 + 1)).hash


def test_fractional_floats_are_kept():
    assert ir_of(box(width=100.5)).hash != ir_of(box(width=100)).hash


def test_transform_is_semantic():
    plain = box()
    moved = PrimitiveIntent(
        id="a",
        kind=PrimitiveKind.BOX,
        parameters=dict(plain.parameters),
        transform=Transform(position=(1.0, 0.0, 0.0)),
    )
    assert ir_of(plain).hash != ir_of(moved).hash


def test_constraints_are_semantic():
    a = build_geometry_ir("part", [box()], CONSTRAINTS)
    b = build_geometry_ir("part", [box()], CONSTRAINTS[:1])
    assert a.hash != b.hash


def test_hash_geometry_ir_recomputes_stored_hash():
    ir = ir_of(box(), OperationIntent(id="f", kind=OperationKind.FILLET, target="a", parameters={"radius": 2}))
    assert hash_geometry_ir(ir) == ir.hash


def test_round_trip_through_dict_keeps_hash():
    ir = ir_of(box(), OperationIntent(id="u", kind=OperationKind.UNION, target="a", operand="b"))
    restored = GeometryIR.from_dict(ir.to_dict())
    assert hash_geometry_ir(restored) == ir.hash


def test_canonical_json_is_key_order_independent():
    assert canonical_json({"b": 1, "a": {"y": 2, "x": 3}}) == canonical_json({"a": {"x": 3, "y": 2}, "b": 1})


@pytest.mark.parametrize("kind", list(PrimitiveKind))
def test_every_primitive_kind_hashes(kind):
    assert kind in PRIMITIVE_HASH_TAGS
    ir = ir_of(PrimitiveIntent(id="p", kind=kind, parameters={"radius": 1}))
    assert ir.hash.startswith(HASH_PREFIX)
