from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse
from pathlib import Path

from intentcad.api.schemas import (
    CompileRequest,
    CompileResponse,
    HealthResponse,
    JobStatusResponse,
    SequenceRequest,
    SequenceResponse,
    SubmitJobRequest,
    ValidateResponse,
)
from intentcad.api.jobs import Job, JobStore, start_job
from intentcad.capabilities import capabilities_as_dict
from intentcad.config import Settings
from intentcad.errors import IntentValidationError
from intentcad.kernel_bridge import KernelResult
from intentcad.pipeline import DesignSession, plan_intent
from intentcad.sequencing.sequencer import OperationSequencer

router = APIRouter()


def _session(request: Request) -> DesignSession:
    return request.app.state.session


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _jobs(request: Request) -> JobStore:
    return request.app.state.jobs


def _compile_response(session: DesignSession, res: KernelResult) -> CompileResponse:
    return CompileResponse(
        ok=res.error is None,
        status=res.status.value,
        intent_hash=res.intent_hash,
        can_undo=session.history.can_undo(),
        can_redo=session.history.can_redo(),
        mesh=res.mesh.to_dict() if res.mesh is not None else None,
        topology=res.topology,
        mfg_report=res.mfg_report,
        error=res.error,
    )


def _job_response(job: Job) -> JobStatusResponse:
    return JobStatusResponse(
        ok=True,
        job_id=job.job_id,
        status=job.status,
        progress=job.progress,
        message=job.message,
        result=job.result,
        error=job.error,
    )


def _invalid_intent(exc: IntentValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail={"type": "InvalidIntent", "message": exc.message})


@router.get("/health", response_model=HealthResponse)
def health(request: Request):
    return HealthResponse(ok=True, evaluator=_session(request).bridge.state.value)


@router.get("/capabilities")
def capabilities():
    return capabilities_as_dict()


# ---------------------------------------------------------------------------
# IR path
# ---------------------------------------------------------------------------

@router.post("/ir/compile", response_model=CompileResponse)
async def compile_ir(req: CompileRequest, request: Request):
    session = _session(request)
    res = await session.compile(req.objects)
    return _compile_response(session, res)


@router.post("/ir/undo", response_model=CompileResponse)
async def undo(request: Request):
    session = _session(request)
    res = await session.undo()
    if res is None:
        raise HTTPException(status_code=409, detail={"type": "NothingToUndo", "message": "Nothing to undo"})
    return _compile_response(session, res)


@router.post("/ir/redo", response_model=CompileResponse)
async def redo(request: Request):
    session = _session(request)
    res = await session.redo()
    if res is None:
        raise HTTPException(status_code=409, detail={"type": "NothingToRedo", "message": "Nothing to redo"})
    return _compile_response(session, res)


@router.post("/ir/validate", response_model=ValidateResponse)
async def validate_ir(req: CompileRequest, request: Request):
    res = await _session(request).validate(req.objects)
    return ValidateResponse(ok=True, **res.to_dict())


# ---------------------------------------------------------------------------
# Sequence path
# ---------------------------------------------------------------------------

@router.post("/sequence", response_model=SequenceResponse)
def sequence(req: SequenceRequest):
    try:
        plan = plan_intent(req.intent)
    except IntentValidationError as exc:
        raise _invalid_intent(exc)

    return SequenceResponse(
        ok=True,
        operations=[op.to_dict() for op in plan.operations],
        estimated_time=OperationSequencer.estimate_total_time(plan.operations),
    )


@router.post("/jobs/submit", response_model=JobStatusResponse)
def submit_job(req: SubmitJobRequest, request: Request):
    # Reject malformed intent before a job exists.
    try:
        plan_intent(req.intent)
    except IntentValidationError as exc:
        raise _invalid_intent(exc)

    store = _jobs(request)
    job = store.create()
    start_job(store, job.job_id, req.intent, _settings(request), req.export)
    return _job_response(job)


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
def get_job(job_id: str, request: Request):
    try:
        return _job_response(_jobs(request).get(job_id))
    except KeyError:
        raise HTTPException(status_code=404, detail={"type": "NotFound", "message": "Job not found"})


@router.get("/artifacts/{job_id}/{filename}")
def download_artifact(job_id: str, filename: str, request: Request):
    base = Path(_settings(request).artifacts_dir).resolve()
    target = (base / job_id / filename).resolve()

    # path safety
    if not target.is_relative_to(base):
        raise HTTPException(status_code=400, detail={"type": "BadPath", "message": "Invalid artifact path"})

    if not target.exists():
        raise HTTPException(status_code=404, detail={"type": "NotFound", "message": "Artifact not found"})

    return FileResponse(path=str(target), filename=filename)
