"""
Execution Engine
================

Runs an operation sequence against the evaluator, strictly in order,
streaming progress and mesh updates.

States:
    UNSTARTED -> INITIALIZING -> READY
                              -> FALLBACK_READY   (permanent for this engine)
    READY | FALLBACK_READY <-> EXECUTING

Guarantees:
- one operation in flight at a time; never pipelined
- each operation receives the geometry handle produced by the previous
  handle-producing operation
- the first failure aborts the sequence; it is reported through
  on_progress and returned in the ExecutionResult
- a second execute_sequence() while one is running raises EngineBusyError

This module:
- DOES NOT roll back partially executed sequences
- DOES NOT retry failed operations
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from loguru import logger

from intentcad.boundary.payloads import map_operation_to_payload
from intentcad.boundary.protocol import BoundaryOperation, MeshData
from intentcad.boundary.transport import Transport, TransportFactory, default_transport_factory
from intentcad.config import Settings, settings as default_settings
from intentcad.errors import (
    BoundaryClosedError,
    EngineBusyError,
    FallbackUnsupportedError,
    IntentCadError,
)
from intentcad.execution.fallback import LocalFallback
from intentcad.sequencing.contract import Operation, OperationCategory

EXPORT_FORMATS = {
    "stl": BoundaryOperation.EXPORT_STL,
    "obj": BoundaryOperation.EXPORT_OBJ,
    "step": BoundaryOperation.EXPORT_STEP,
}

_export_counter = itertools.count(1)


class EngineState(str, Enum):
    UNSTARTED = "unstarted"
    INITIALIZING = "initializing"
    READY = "ready"
    FALLBACK_READY = "fallback_ready"
    EXECUTING = "executing"
    DISPOSED = "disposed"


class ProgressStatus(str, Enum):
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ExecutionProgress:
    current: int
    total: int
    operation: Operation
    status: ProgressStatus
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class ExecutionResult:
    ok: bool
    last_geometry_id: Optional[str] = None
    completed: List[str] = field(default_factory=list)
    failed_operation: Optional[Operation] = None
    error: Optional[BaseException] = None

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return _message(self.error)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


ProgressCallback = Callable[[ExecutionProgress], None]
MeshCallback = Callable[[str, MeshData], None]


class ExecutionPublisher(Protocol):
    """Optional sink that sees every progress event and mesh update."""

    def progress(self, event: ExecutionProgress) -> None:
        ...

    def mesh(self, geometry_id: str, mesh: MeshData) -> None:
        ...


def _message(exc: BaseException) -> str:
    if isinstance(exc, IntentCadError):
        return exc.message
    return str(exc) or exc.__class__.__name__


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class ExecutionEngine:
    def __init__(
        self,
        transport_factory: Optional[TransportFactory] = None,
        settings: Optional[Settings] = None,
        publisher: Optional[ExecutionPublisher] = None,
    ) -> None:
        self._settings = settings or default_settings
        self._factory = transport_factory or default_transport_factory(self._settings)
        self._publisher = publisher

        self._transport: Optional[Transport] = None
        self._fallback = LocalFallback()
        self._state = EngineState.UNSTARTED
        self._init_task: Optional[asyncio.Task] = None
        self._busy = False
        self._geometry: Dict[str, Dict[str, Any]] = {}

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def using_fallback(self) -> bool:
        return self._transport is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ensure_ready(self) -> None:
        if self._state is EngineState.DISPOSED:
            raise BoundaryClosedError("Execution engine has been disposed")
        if self._state in (EngineState.READY, EngineState.FALLBACK_READY, EngineState.EXECUTING):
            return

        if self._init_task is None:
            self._init_task = asyncio.get_running_loop().create_task(self._initialize())

        await asyncio.shield(self._init_task)

    async def _initialize(self) -> None:
        self._state = EngineState.INITIALIZING
        logger.info("Starting geometry evaluator")

        if self._factory is None:
            logger.warning("Evaluator disabled, executing with local fallback geometry")
            self._state = EngineState.FALLBACK_READY
            return

        transport: Optional[Transport] = None
        try:
            transport = self._factory()
            await transport.start()
            await transport.wait_ready(self._settings.init_timeout)
        except Exception as exc:
            logger.warning(f"Evaluator unavailable, executing with local fallback geometry: {exc}")
            if transport is not None:
                try:
                    await transport.close()
                except Exception as close_exc:
                    logger.debug(f"Ignoring error while closing transport: {close_exc}")
            self._state = EngineState.FALLBACK_READY
            return

        self._transport = transport
        self._state = EngineState.READY
        logger.info("Geometry evaluator ready")

    async def dispose(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
        self._geometry.clear()
        self._fallback.clear()
        self._state = EngineState.DISPOSED
        logger.info("Execution engine disposed")

    # ------------------------------------------------------------------
    # Sequences
    # ------------------------------------------------------------------

    async def execute_sequence(
        self,
        operations: Iterable[Operation],
        on_progress: Optional[ProgressCallback] = None,
        on_mesh_update: Optional[MeshCallback] = None,
    ) -> ExecutionResult:
        if self._busy:
            raise EngineBusyError("Execution engine is already running a sequence")
        self._busy = True

        try:
            await self.ensure_ready()
            resting = self._state
            self._state = EngineState.EXECUTING
            try:
                return await self._run(list(operations), on_progress, on_mesh_update)
            finally:
                self._state = resting
        finally:
            self._busy = False

    async def _run(
        self,
        operations: List[Operation],
        on_progress: Optional[ProgressCallback],
        on_mesh_update: Optional[MeshCallback],
    ) -> ExecutionResult:
        total = len(operations)
        result = ExecutionResult(ok=True)
        logger.info(f"Executing {total} operations")

        for index, operation in enumerate(operations):
            self._emit(on_progress, ExecutionProgress(index, total, operation, ProgressStatus.RUNNING))

            try:
                outcome = await self._dispatch(operation, result.last_geometry_id)
            except Exception as exc:
                logger.error(f"Operation {operation.operation} ({operation.id}) failed: {_message(exc)}")
                self._emit(
                    on_progress,
                    ExecutionProgress(
                        index + 1, total, operation, ProgressStatus.ERROR, error=_message(exc)
                    ),
                )
                result.ok = False
                result.failed_operation = operation
                result.error = exc
                return result

            self._emit(
                on_progress,
                ExecutionProgress(index + 1, total, operation, ProgressStatus.COMPLETE, result=outcome),
            )
            result.completed.append(operation.id)

            geometry_id = outcome.get("geometryId") if isinstance(outcome, dict) else None
            if geometry_id:
                result.last_geometry_id = geometry_id
                self._geometry[geometry_id] = outcome
                mesh = MeshData.from_dict(outcome.get("mesh"))
                if mesh is not None:
                    self._publish_mesh(on_mesh_update, geometry_id, mesh)

        logger.info(f"Sequence complete ({total} operations)")
        return result

    async def execute_operation(
        self, operation: Operation, geometry_id: Optional[str] = None
    ) -> Dict[str, Any]:
        await self.ensure_ready()
        outcome = await self._dispatch(operation, geometry_id)
        if isinstance(outcome, dict) and outcome.get("geometryId"):
            self._geometry[outcome["geometryId"]] = outcome
        return outcome

    async def _dispatch(self, operation: Operation, geometry_id: Optional[str]) -> Any:
        payload = map_operation_to_payload(operation, geometry_id)

        if self._transport is None:
            return self._fallback.execute(operation.operation, payload)

        return await self._transport.request(
            operation.operation, payload, self._settings.operation_timeout
        )

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    async def export_geometry(self, geometry_id: str, fmt: str = "stl") -> Any:
        fmt = fmt.lower()
        boundary_op = EXPORT_FORMATS.get(fmt)
        if boundary_op is None:
            raise ValueError(f"Unsupported export format: {fmt}")

        await self.ensure_ready()
        if self._transport is None:
            raise FallbackUnsupportedError(f"Export to {fmt.upper()} is not available in fallback mode")

        operation = Operation(
            id=f"export_{next(_export_counter)}_{int(time.time() * 1000)}",
            category=OperationCategory.EXPORT,
            operation=boundary_op.value,
            parameters={"filename": f"model.{fmt}"},
            depends_on=[],
            streaming=False,
            description=f"Export as {fmt.upper()}",
        )
        outcome = await self._dispatch(operation, geometry_id)
        return outcome.get("content") if isinstance(outcome, dict) else outcome

    def get_geometry(self, geometry_id: str) -> Optional[Dict[str, Any]]:
        return self._geometry.get(geometry_id)

    def clear_cache(self) -> None:
        self._geometry.clear()
        self._fallback.clear()
        if self._transport is not None:
            self._transport.notify(BoundaryOperation.CLEAR_CACHE.value, {})
        logger.debug("Execution caches cleared")

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def _emit(self, callback: Optional[ProgressCallback], event: ExecutionProgress) -> None:
        if callback is not None:
            callback(event)
        if self._publisher is not None:
            self._publisher.progress(event)

    def _publish_mesh(self, callback: Optional[MeshCallback], geometry_id: str, mesh: MeshData) -> None:
        if callback is not None:
            callback(geometry_id, mesh)
        if self._publisher is not None:
            self._publisher.mesh(geometry_id, mesh)
