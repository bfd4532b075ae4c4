from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Dict

import cadquery as cq

from intentcad.evaluator.tessellate import to_trimesh


class ExportAdapterError(Exception):
    pass


def execute_export(fmt: str, shape, *, filename: str, subdivisions: int) -> Dict[str, Any]:
    """
    Serialize a body.

    STL / OBJ are written from the tessellated mesh; STEP is written by
    the CAD kernel and keeps exact geometry.
    """
    fmt = fmt.lower()

    if fmt == "stl":
        content = _mesh_export(shape, "stl_ascii", subdivisions)
    elif fmt == "obj":
        content = _mesh_export(shape, "obj", subdivisions)
    elif fmt == "step":
        content = _step_export(shape)
    else:
        raise ExportAdapterError(f"Unsupported export format: {fmt}")

    return {"content": content, "format": fmt, "filename": filename}


def _mesh_export(shape, file_type: str, subdivisions: int) -> str:
    try:
        exported = to_trimesh(shape, subdivisions).export(file_type=file_type)
    except Exception as e:
        raise ExportAdapterError(f"Mesh export failed: {e}")

    if isinstance(exported, bytes):
        return exported.decode("utf-8")
    return exported


def _step_export(shape) -> str:
    with tempfile.TemporaryDirectory(prefix="intentcad_") as tmp:
        path = Path(tmp) / "model.step"
        try:
            cq.exporters.export(shape, str(path), exportType="STEP")
        except Exception as e:
            raise ExportAdapterError(f"STEP export failed: {e}")
        return path.read_text()
