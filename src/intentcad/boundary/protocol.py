"""
Boundary Protocol
=================

Message shapes exchanged with the geometry evaluator process.

Request  : {id, operation, payload}
Response : {id, status: "ok" | "error", result, error}
Control  : {type: "READY", info} | {type: "INIT_ERROR", error}

Mesh buffers travel flat: vertices (float32, xyz...), indices (uint32,
triangles), normals (float32, may be empty).

This module:
- DOES NOT move bytes (see intentcad.boundary.transport)
- DOES NOT interpret payloads (see intentcad.boundary.payloads)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import numpy as np

EVALUATOR_NAME = "intentcad-evaluator"


class MessageType(str, Enum):
    READY = "READY"
    INIT_ERROR = "INIT_ERROR"


class ResponseStatus(str, Enum):
    OK = "ok"
    ERROR = "error"


class BoundaryOperation(str, Enum):
    # primitives
    CREATE_BOX = "CREATE_BOX"
    CREATE_CYLINDER = "CREATE_CYLINDER"
    CREATE_SPHERE = "CREATE_SPHERE"
    CREATE_EXTRUSION = "CREATE_EXTRUSION"
    CREATE_CONE = "CREATE_CONE"
    CREATE_TORUS = "CREATE_TORUS"

    # features
    ADD_HOLE = "ADD_HOLE"
    ADD_FILLET = "ADD_FILLET"
    ADD_CHAMFER = "ADD_CHAMFER"
    ADD_POCKET = "ADD_POCKET"
    ADD_BOSS = "ADD_BOSS"

    # booleans
    BOOLEAN_UNION = "BOOLEAN_UNION"
    BOOLEAN_SUBTRACT = "BOOLEAN_SUBTRACT"
    BOOLEAN_INTERSECT = "BOOLEAN_INTERSECT"

    # analysis / export
    ANALYZE_DFM = "ANALYZE_DFM"
    EXPORT_STL = "EXPORT_STL"
    EXPORT_OBJ = "EXPORT_OBJ"
    EXPORT_STEP = "EXPORT_STEP"

    # geometry cache
    GET_MESH = "GET_MESH"
    COMPUTE_BOUNDING_BOX = "COMPUTE_BOUNDING_BOX"
    REMOVE_GEOMETRY = "REMOVE_GEOMETRY"
    CLEAR_CACHE = "CLEAR_CACHE"

    # kernel
    COMPILE_INTENT = "COMPILE_INTENT"
    COMPILE_SEMANTIC_IR = "COMPILE_SEMANTIC_IR"
    VALIDATE_SEMANTIC_IR = "VALIDATE_SEMANTIC_IR"
    ADD_IR_NODE = "ADD_IR_NODE"
    GRAPH_STATS = "GRAPH_STATS"
    CACHE_STATS = "CACHE_STATS"
    SET_SUBDIVISIONS = "SET_SUBDIVISIONS"
    KERNEL_INFO = "KERNEL_INFO"


# ---------------------------------------------------------------------------
# Mesh
# ---------------------------------------------------------------------------

@dataclass
class MeshData:
    vertices: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    indices: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.uint32))
    normals: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=np.float32).reshape(-1)
        self.indices = np.asarray(self.indices, dtype=np.uint32).reshape(-1)
        self.normals = np.asarray(self.normals, dtype=np.float32).reshape(-1)

    @property
    def vertex_count(self) -> int:
        return self.vertices.size // 3

    @property
    def triangle_count(self) -> int:
        return self.indices.size // 3

    @property
    def is_empty(self) -> bool:
        return self.vertices.size == 0

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["MeshData"]:
        if not data:
            return None
        return cls(
            vertices=data.get("vertices") if data.get("vertices") is not None else [],
            indices=data.get("indices") if data.get("indices") is not None else [],
            normals=data.get("normals") if data.get("normals") is not None else [],
        )

    def to_dict(self) -> Dict[str, list]:
        return {
            "vertices": self.vertices.tolist(),
            "indices": self.indices.tolist(),
            "normals": self.normals.tolist(),
        }


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BoundaryRequest:
    id: str
    operation: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> Dict[str, Any]:
        return {"id": self.id, "operation": self.operation, "payload": dict(self.payload)}

    @classmethod
    def from_message(cls, message: Mapping[str, Any]) -> "BoundaryRequest":
        return cls(
            id=str(message.get("id", "")),
            operation=str(message.get("operation", "")),
            payload=dict(message.get("payload") or {}),
        )


@dataclass(frozen=True)
class BoundaryResponse:
    id: str
    status: ResponseStatus
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ResponseStatus.OK

    @classmethod
    def success(cls, request_id: str, result: Any) -> "BoundaryResponse":
        return cls(id=request_id, status=ResponseStatus.OK, result=result)

    @classmethod
    def failure(cls, request_id: str, error: str) -> "BoundaryResponse":
        return cls(id=request_id, status=ResponseStatus.ERROR, error=error)

    def to_message(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
        }

    @classmethod
    def from_message(cls, message: Mapping[str, Any]) -> "BoundaryResponse":
        try:
            status = ResponseStatus(message.get("status"))
        except ValueError:
            status = ResponseStatus.ERROR
        error = message.get("error")
        if status is ResponseStatus.ERROR and not error:
            error = "Unknown evaluator error"
        return cls(
            id=str(message.get("id", "")),
            status=status,
            result=message.get("result"),
            error=error,
        )


def ready_message(info: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    return {"type": MessageType.READY.value, "info": dict(info or {})}


def init_error_message(error: str) -> Dict[str, Any]:
    return {"type": MessageType.INIT_ERROR.value, "error": error}


def control_type(message: Mapping[str, Any]) -> Optional[MessageType]:
    """Return the control type of a message, or None for a response."""
    raw = message.get("type")
    if raw is None:
        return None
    try:
        return MessageType(raw)
    except ValueError:
        return None
