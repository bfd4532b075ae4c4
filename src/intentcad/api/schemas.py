from pydantic import BaseModel, Field
from typing import Any, Literal, Optional


class HealthResponse(BaseModel):
    ok: bool = True
    service: str = "intentcad-api"
    evaluator: str = "unknown"


class CompileRequest(BaseModel):
    objects: dict[str, dict[str, Any]] = Field(default_factory=dict)


class CompileResponse(BaseModel):
    ok: bool = True
    status: str  # compiled|cached|fallback|error
    intent_hash: str
    can_undo: bool = False
    can_redo: bool = False
    mesh: Optional[dict[str, Any]] = None
    topology: Optional[dict[str, Any]] = None
    mfg_report: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class ValidateResponse(BaseModel):
    ok: bool = True
    valid: bool
    errors: list[dict[str, Any]] = Field(default_factory=list)
    warnings: list[dict[str, Any]] = Field(default_factory=list)
    manufacturing_analysis: Optional[dict[str, Any]] = None
    summary: str = ""


class SequenceRequest(BaseModel):
    intent: dict[str, Any]


class SequenceResponse(BaseModel):
    ok: bool = True
    operations: list[dict[str, Any]]
    estimated_time: float = 0.0


class SubmitJobRequest(BaseModel):
    intent: dict[str, Any]
    export: Optional[Literal["stl", "obj", "step"]] = None


class Artifact(BaseModel):
    kind: str
    filename: str
    mime: str
    url: str


class JobStatusResponse(BaseModel):
    ok: bool = True
    job_id: str
    status: str  # queued|running|done|failed
    progress: float = 0.0
    message: str = ""
    result: Optional[dict[str, Any]] = None
    error: Optional[dict[str, Any]] = None
