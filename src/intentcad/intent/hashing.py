"""
Canonical Hashing
=================

Content addressing for GeometryIR.

Canonicalization rules:
- every parameter mapping is emitted with lexicographically sorted keys
- the operation sequence is ordered by intent id
- numbers are normalized to float (100 and 100.0 hash the same)
- transient fields (timestamps) never reach the digest

hash(A) == hash(B) iff A and B are semantically identical under these
rules. The functions here are total: they never raise for a
structurally valid IR.
"""

from __future__ import annotations

import hashlib
import json
import math
from typing import Any, Dict, Iterable, Mapping

from intentcad.intent.model import (
    GeometryIR,
    Intent,
    ManufacturingConstraint,
    OperationIntent,
    PrimitiveIntent,
    PrimitiveKind,
)

HASH_PREFIX = "intent_"

# Every primitive kind must canonicalize; a new kind without an entry
# here fails the kind-coverage test.
PRIMITIVE_HASH_TAGS: Dict[PrimitiveKind, str] = {
    PrimitiveKind.BOX: "box",
    PrimitiveKind.CYLINDER: "cylinder",
    PrimitiveKind.SPHERE: "sphere",
    PrimitiveKind.EXTRUSION: "extrusion",
    PrimitiveKind.CONE: "cone",
    PrimitiveKind.TORUS: "torus",
}


# ---------------------------------------------------------------------------
# Canonical form
# ---------------------------------------------------------------------------

def _canonical_value(value: Any) -> Any:
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return repr(value)
        # 100 and 100.0 are the same dimension
        return int(value) if value.is_integer() else value
    if isinstance(value, Mapping):
        return {str(k): _canonical_value(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [_canonical_value(v) for v in value]
    if hasattr(value, "value"):
        return _canonical_value(value.value)
    return str(value)


def canonical_intent(intent: Intent) -> Dict[str, Any]:
    if isinstance(intent, PrimitiveIntent):
        payload: Dict[str, Any] = {
            "id": intent.id,
            "type": PRIMITIVE_HASH_TAGS[intent.kind],
            "parameters": _canonical_value(intent.parameters),
        }
        if intent.transform is not None:
            payload["transform"] = _canonical_value(intent.transform.to_dict())
        return payload

    if isinstance(intent, OperationIntent):
        return {
            "id": intent.id,
            "type": intent.kind.value,
            "target": intent.target,
            "operand": intent.operand,
            "parameters": _canonical_value(intent.parameters),
        }

    return {"unknown": str(intent)}


def canonical_payload(
    part: str,
    operations: Iterable[Intent],
    constraints: Iterable[ManufacturingConstraint],
) -> Dict[str, Any]:
    ordered = sorted(operations, key=lambda op: op.id)
    return {
        "part": part,
        "operations": [canonical_intent(op) for op in ordered],
        "constraints": [
            {"type": c.kind.value, "value": _canonical_value(c.value)}
            for c in constraints
        ],
    }


def canonical_json(payload: Any) -> str:
    """Stable serialization used both for hashing and as a cache key."""
    return json.dumps(
        _canonical_value(payload),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        default=str,
    )


# ---------------------------------------------------------------------------
# Digest
# ---------------------------------------------------------------------------

def hash_content(
    part: str,
    operations: Iterable[Intent],
    constraints: Iterable[ManufacturingConstraint],
) -> str:
    serialized = canonical_json(canonical_payload(part, operations, constraints))
    digest = hashlib.blake2b(serialized.encode("utf-8"), digest_size=16).hexdigest()
    return f"{HASH_PREFIX}{digest}"


def hash_geometry_ir(ir: GeometryIR) -> str:
    """Recompute the content hash of an existing IR (ignores ir.hash)."""
    return hash_content(ir.part, ir.operations, ir.constraints)


def build_geometry_ir(
    part: str,
    operations: Iterable[Intent],
    constraints: Iterable[ManufacturingConstraint],
) -> GeometryIR:
    operations = tuple(operations)
    constraints = tuple(constraints)
    return GeometryIR(
        part=part,
        operations=operations,
        constraints=constraints,
        hash=hash_content(part, operations, constraints),
    )
