"""
Sequencer Contract
==================

Two shapes live here:

1. GeometryIntent: what the natural-language interpreter MUST emit
   (consumed, validated with pydantic; camelCase on the wire).
2. Operation: what the sequencer emits and the execution engine drains.

If the interpreter cannot express something in GeometryIntent, it is not
supported by the sequencer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Interpreter output (consumed)
# ---------------------------------------------------------------------------

class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class BaseGeometrySpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1)
    parameters: Dict[str, Any]
    position: Optional[Position] = None


class FeatureSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1)
    name: str = ""
    parameters: Dict[str, Any]
    description: Optional[str] = None


class Manufacturability(BaseModel):
    processes: List[str] = Field(default_factory=list)
    complexity: str = "medium"
    warnings: List[str] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)


class GeometryIntent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    intent: str = ""
    base_geometry: BaseGeometrySpec = Field(..., alias="baseGeometry")
    features: List[FeatureSpec] = Field(default_factory=list)
    material: Optional[str] = None
    units: Optional[str] = None
    manufacturability: Optional[Manufacturability] = None
    clarifications: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None


# ---------------------------------------------------------------------------
# Sequencer output (produced)
# ---------------------------------------------------------------------------

class OperationCategory(str, Enum):
    CREATE = "CREATE"
    MODIFY = "MODIFY"
    FEATURE = "FEATURE"
    BOOLEAN = "BOOLEAN"
    ANALYZE = "ANALYZE"
    EXPORT = "EXPORT"


@dataclass(frozen=True)
class Operation:
    """
    One executable step.

    Ids are NOT content-derived: two runs over the same intent produce
    different ids. Only the compiler's GeometryIR is content-addressed.
    """

    id: str
    category: OperationCategory
    operation: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)
    streaming: bool = True
    description: str = ""
    estimated_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.category.value,
            "operation": self.operation,
            "parameters": dict(self.parameters),
            "dependsOn": list(self.depends_on),
            "streaming": self.streaming,
            "description": self.description,
            "estimatedTime": self.estimated_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Operation":
        return cls(
            id=str(data["id"]),
            category=OperationCategory(data.get("type", data.get("category", "MODIFY"))),
            operation=str(data["operation"]),
            parameters=dict(data.get("parameters") or {}),
            depends_on=list(data.get("dependsOn", data.get("depends_on")) or []),
            streaming=bool(data.get("streaming", True)),
            description=str(data.get("description", "")),
            estimated_time=data.get("estimatedTime", data.get("estimated_time")),
        )


def radius_of(params: Mapping[str, Any]) -> Optional[float]:
    """Radius from `radius`, or half of `diameter`."""
    radius = params.get("radius")
    if radius:
        return radius
    diameter = params.get("diameter")
    if isinstance(diameter, (int, float)) and not isinstance(diameter, bool):
        return diameter / 2
    return None


# ---------------------------------------------------------------------------
# Validation results (returned, never raised)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DependencyIssue:
    operation_id: str
    dependency_id: str
    reason: str  # missing | self | cycle

    @property
    def message(self) -> str:
        if self.reason == "self":
            return f"Operation {self.operation_id} depends on itself"
        if self.reason == "cycle":
            return (
                f"Operation {self.operation_id} has a circular dependency "
                f"through {self.dependency_id}"
            )
        return (
            f"Operation {self.operation_id} depends on non-existent "
            f"operation {self.dependency_id}"
        )


@dataclass
class DependencyResolution:
    ordered: List[Operation]
    issues: List[DependencyIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


@dataclass
class SequenceValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class IntentValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)
    intent: Optional[GeometryIntent] = None
