"""
Geometry registry.

Maps geometry handles (geo_<epoch-ms>_<suffix>) to CAD shapes. Every
operation that produces geometry registers a NEW handle; inputs stay
live so earlier handles remain addressable.
"""

from __future__ import annotations

import secrets
import time
from typing import Dict, List


class RegistryError(Exception):
    pass


def new_geometry_id() -> str:
    return f"geo_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


class BodyRegistry:
    """
    Explicit body registry.

    Maps geometry id -> cq.Shape
    """

    def __init__(self) -> None:
        self._bodies: Dict[str, object] = {}

    def __len__(self) -> int:
        return len(self._bodies)

    # ----------------------------
    # Access
    # ----------------------------

    def add(self, shape) -> str:
        geometry_id = new_geometry_id()
        while geometry_id in self._bodies:
            geometry_id = new_geometry_id()
        self._bodies[geometry_id] = shape
        return geometry_id

    def get(self, geometry_id: str):
        if geometry_id not in self._bodies:
            raise RegistryError(f"Geometry '{geometry_id}' not found in cache")
        return self._bodies[geometry_id]

    def exists(self, geometry_id: str) -> bool:
        return geometry_id in self._bodies

    def remove(self, geometry_id: str) -> bool:
        return self._bodies.pop(geometry_id, None) is not None

    def clear(self) -> None:
        self._bodies.clear()

    def ids(self) -> List[str]:
        return list(self._bodies)
