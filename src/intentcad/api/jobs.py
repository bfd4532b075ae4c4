from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
import asyncio
import uuid
import time
import threading

from loguru import logger

from intentcad.api.schemas import Artifact
from intentcad.config import Settings
from intentcad.errors import IntentCadError
from intentcad.execution.engine import ExecutionEngine, ExecutionProgress, ProgressStatus
from intentcad.pipeline import run_intent

ARTIFACT_MIME = {
    "stl": "model/stl",
    "obj": "model/obj",
    "step": "model/step",
}


@dataclass
class Job:
    job_id: str
    status: str = "queued"
    progress: float = 0.0
    message: str = ""
    result: Optional[dict] = None
    error: Optional[dict] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)


class JobStore:
    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(self) -> Job:
        job = Job(job_id=str(uuid.uuid4()))
        with self._lock:
            self._jobs[job.job_id] = job
        return job

    def get(self, job_id: str) -> Job:
        with self._lock:
            if job_id not in self._jobs:
                raise KeyError(job_id)
            return self._jobs[job_id]

    def update(
        self,
        job_id: str,
        *,
        status: Optional[str] = None,
        progress: Optional[float] = None,
        message: Optional[str] = None,
        result: Optional[dict] = None,
        error: Optional[dict] = None,
    ) -> Job:
        with self._lock:
            job = self._jobs[job_id]
            if status is not None:
                job.status = status
            if progress is not None:
                job.progress = progress
            if message is not None:
                job.message = message
            if result is not None:
                job.result = result
            if error is not None:
                job.error = error
            job.updated_at = time.time()
            return job

    def record_progress(self, job_id: str, event: ExecutionProgress) -> Job:
        # Leave headroom so only the finished job reports 1.0.
        fraction = event.current / event.total if event.total else 1.0
        if event.status is ProgressStatus.RUNNING:
            message = f"Running {event.operation.description or event.operation.operation}"
        elif event.status is ProgressStatus.ERROR:
            message = f"Failed: {event.error}"
        else:
            message = f"Completed {event.current}/{event.total}"
        return self.update(job_id, progress=round(0.05 + 0.9 * fraction, 3), message=message)


job_store = JobStore()


# ---------------------------------------------------------------------------
# Job execution
# ---------------------------------------------------------------------------

def _job_dir(settings: Settings, job_id: str) -> Path:
    d = settings.ensure_artifacts_dir() / job_id
    d.mkdir(parents=True, exist_ok=True)
    return d


def write_artifact(settings: Settings, job_id: str, fmt: str, content: Any) -> dict:
    dst = _job_dir(settings, job_id) / f"model.{fmt}"
    if isinstance(content, bytes):
        dst.write_bytes(content)
    else:
        dst.write_text(str(content))

    return Artifact(
        kind=fmt,
        filename=dst.name,
        mime=ARTIFACT_MIME.get(fmt, "application/octet-stream"),
        url=f"/artifacts/{job_id}/{dst.name}",
    ).model_dump()


async def execute_job(
    store: JobStore,
    job_id: str,
    intent: dict,
    settings: Settings,
    export: Optional[str] = None,
) -> Job:
    store.update(job_id, status="running", progress=0.05, message="Running...")

    engine = ExecutionEngine(settings=settings)
    try:
        run = await run_intent(
            intent,
            engine=engine,
            on_progress=lambda event: store.record_progress(job_id, event),
        )
        execution = run.execution
        result = {
            "operations": [op.to_dict() for op in run.operations],
            "completed": list(execution.completed),
            "geometry_id": execution.last_geometry_id,
            "fallback": engine.using_fallback,
            "artifacts": [],
        }

        if not execution.ok:
            return store.update(
                job_id,
                status="failed",
                progress=1.0,
                message=execution.error_message or "Failed",
                result=result,
                error={
                    "type": execution.error.__class__.__name__,
                    "message": execution.error_message,
                    "operation": execution.failed_operation.to_dict(),
                },
            )

        if export and execution.last_geometry_id:
            try:
                content = await engine.export_geometry(execution.last_geometry_id, export)
                result["artifacts"].append(write_artifact(settings, job_id, export, content))
            except IntentCadError as exc:
                logger.warning(f"Job {job_id}: export skipped: {exc}")
                result["export_error"] = exc.message

        return store.update(job_id, status="done", progress=1.0, message="Done", result=result)
    finally:
        await engine.dispose()


def start_job(store: JobStore, job_id: str, intent: dict, settings: Settings,
              export: Optional[str] = None) -> threading.Thread:
    def worker():
        try:
            asyncio.run(execute_job(store, job_id, intent, settings, export))
        except Exception as e:
            logger.exception(f"Job {job_id} failed")
            store.update(
                job_id,
                status="failed",
                progress=1.0,
                message="Internal failure" if not isinstance(e, IntentCadError) else e.message,
                error={"type": e.__class__.__name__, "message": str(e)},
            )

    thread = threading.Thread(target=worker, daemon=True)
    thread.start()
    return thread
