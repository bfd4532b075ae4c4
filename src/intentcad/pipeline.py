"""
intentcad Pipeline Orchestration
================================

Purpose:
- Wire the intent stages to the evaluator facades
- Enforce stage order
- Provide the two entry points used by the API and the CLI

    workspace objects --> GeometryIR --> history --> KernelBridge
    structured intent --> validation --> sequence --> ExecutionEngine

This module:
- DOES NOT contain geometry logic
- DOES NOT talk to the boundary directly
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional, TypeVar

from loguru import logger

from intentcad.errors import IntentCadError, IntentValidationError
from intentcad.execution.engine import (
    ExecutionEngine,
    ExecutionResult,
    MeshCallback,
    ProgressCallback,
)
from intentcad.intent.compiler import IntentCompiler
from intentcad.intent.history import IntentHistory
from intentcad.intent.model import GeometryIR
from intentcad.intent.semantic import SemanticIRGenerator
from intentcad.kernel_bridge import KernelBridge, KernelResult, SemanticKernelResult, ValidationResult
from intentcad.sequencing.contract import GeometryIntent, Operation
from intentcad.sequencing.sequencer import OperationSequencer, validate_intent

T = TypeVar("T")


# -----------------------------
# Errors
# -----------------------------

class PipelineStageError(RuntimeError):
    def __init__(self, stage: str, original: Exception):
        super().__init__(f"Pipeline failed at stage: {stage}")
        self.stage = stage
        self.original = original


def _run_stage(stage: str, fn: Callable[[], T]) -> T:
    try:
        return fn()
    except IntentCadError:
        raise
    except Exception as exc:
        raise PipelineStageError(stage=stage, original=exc) from exc


# -----------------------------
# Design session (IR path)
# -----------------------------

class DesignSession:
    """
    One editing session over a workspace.

    Every compile pushes a new IR onto the history; undo / redo recompile
    the IR they land on. The evaluator's hash-keyed cache turns those
    recompiles into `cached` results.
    """

    def __init__(
        self,
        bridge: Optional[KernelBridge] = None,
        *,
        compiler: Optional[IntentCompiler] = None,
        history: Optional[IntentHistory] = None,
        semantic: Optional[SemanticIRGenerator] = None,
    ):
        self.bridge = bridge or KernelBridge()
        self.compiler = compiler or IntentCompiler()
        self.history = history or IntentHistory()
        self.semantic = semantic or SemanticIRGenerator()

    async def start(self) -> None:
        await self.bridge.initialize()

    async def close(self) -> None:
        await self.bridge.dispose()

    @property
    def current(self) -> Optional[GeometryIR]:
        return self.history.current()

    # -------------------------
    # Compile / history
    # -------------------------

    async def compile(self, objects: Mapping[str, Any]) -> KernelResult:
        ir = _run_stage("workspace -> IR", lambda: self.compiler.compile_workspace(objects))
        self.history.push(ir)
        logger.debug(f"Compiling {ir.hash} ({len(ir.operations)} intents)")
        return await self.bridge.compile_intent(ir)

    async def undo(self) -> Optional[KernelResult]:
        ir = self.history.undo()
        if ir is None:
            return None
        return await self.bridge.compile_intent(ir)

    async def redo(self) -> Optional[KernelResult]:
        ir = self.history.redo()
        if ir is None:
            return None
        return await self.bridge.compile_intent(ir)

    # -------------------------
    # Semantic IR
    # -------------------------

    async def validate(self, objects: Mapping[str, Any]) -> ValidationResult:
        semantic = _run_stage("workspace -> semantic IR", lambda: self.semantic.generate(objects))
        return await self.bridge.validate_semantic_ir(semantic)

    async def compile_semantic(self, objects: Mapping[str, Any]) -> SemanticKernelResult:
        semantic = _run_stage("workspace -> semantic IR", lambda: self.semantic.generate(objects))
        return await self.bridge.compile_semantic_ir(semantic)


# -----------------------------
# Intent run (sequence path)
# -----------------------------

@dataclass
class IntentRunResult:
    intent: GeometryIntent
    operations: List[Operation] = field(default_factory=list)
    execution: Optional[ExecutionResult] = None

    @property
    def ok(self) -> bool:
        return self.execution is not None and self.execution.ok


def plan_intent(raw: Any, sequencer: Optional[OperationSequencer] = None) -> IntentRunResult:
    """
    Validate structured intent and turn it into an ordered sequence.

    Raises IntentValidationError for malformed intent or an unresolvable
    sequence.
    """
    sequencer = sequencer or OperationSequencer()

    validation = validate_intent(raw)
    if not validation.valid:
        raise IntentValidationError("; ".join(validation.errors))

    operations = _run_stage("intent -> sequence", lambda: sequencer.build_sequence(validation.intent))
    resolution = sequencer.resolve_dependencies(operations)
    if not resolution.ok:
        raise IntentValidationError("; ".join(issue.message for issue in resolution.issues))

    return IntentRunResult(intent=validation.intent, operations=resolution.ordered)


async def run_intent(
    raw: Any,
    *,
    engine: Optional[ExecutionEngine] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_mesh_update: Optional[MeshCallback] = None,
) -> IntentRunResult:
    """
    Full sequence path:
        structured intent --> operations --> evaluator

    An engine passed in is left running; one created here is disposed.
    """
    run = plan_intent(raw)
    owned = engine is None
    engine = engine or ExecutionEngine()

    logger.info(f"Running intent: {len(run.operations)} operations")
    try:
        run.execution = await engine.execute_sequence(run.operations, on_progress, on_mesh_update)
    finally:
        if owned:
            await engine.dispose()

    if not run.execution.ok:
        logger.warning(f"Intent run stopped at {run.execution.failed_operation.operation}: "
                       f"{run.execution.error_message}")
    return run
