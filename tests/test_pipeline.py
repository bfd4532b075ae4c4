import pytest

from intentcad.config import Settings
from intentcad.errors import IntentValidationError
from intentcad.execution.engine import ExecutionEngine
from intentcad.kernel_bridge import CompileStatus, KernelBridge
from intentcad.pipeline import DesignSession, plan_intent, run_intent
from intentcad.sequencing.contract import OperationCategory


OFFLINE = Settings(evaluator="disabled")

PLATE = {"plate": {"type": "box", "dimensions": {"width": 100, "height": 10, "depth": 50}}}
WIDER = {"plate": {"type": "box", "dimensions": {"width": 120, "height": 10, "depth": 50}}}

INTENT = {
    "intent": "mounting plate",
    "baseGeometry": {"type": "box", "parameters": {"width": 100, "height": 10, "depth": 50}},
    "features": [{"type": "hole", "parameters": {"diameter": 6, "depth": 10}}],
    "manufacturability": {"processes": ["cnc_milling"], "complexity": "low"},
}


def compile_handler(payload):
    return {"status": "compiled", "intent_hash": payload["ir"]["hash"], "mesh": None}


# ----------------------------
# Design session
# ----------------------------

@pytest.mark.asyncio
async def test_compile_pushes_history(transports, fast_settings):
    session = DesignSession(KernelBridge(transports(handlers={"COMPILE_INTENT": compile_handler}), fast_settings))
    await session.start()

    first = await session.compile(PLATE)
    second = await session.compile(WIDER)

    assert first.status is CompileStatus.COMPILED
    assert first.intent_hash != second.intent_hash
    assert session.current.hash == second.intent_hash
    assert session.history.can_undo()
    await session.close()


@pytest.mark.asyncio
async def test_undo_and_redo_recompile(transports, fast_settings):
    session = DesignSession(KernelBridge(transports(handlers={"COMPILE_INTENT": compile_handler}), fast_settings))
    await session.start()
    first = await session.compile(PLATE)
    second = await session.compile(WIDER)

    undone = await session.undo()
    redone = await session.redo()

    assert undone.intent_hash == first.intent_hash
    assert redone.intent_hash == second.intent_hash
    assert await session.redo() is None
    assert transports.created[0].operations == ["COMPILE_INTENT"] * 4


@pytest.mark.asyncio
async def test_undo_with_nothing_to_undo():
    session = DesignSession(KernelBridge(settings=OFFLINE))
    await session.start()
    assert await session.undo() is None
    await session.compile(PLATE)
    assert await session.undo() is None


@pytest.mark.asyncio
async def test_offline_compile_is_fallback_but_recorded():
    session = DesignSession(KernelBridge(settings=OFFLINE))
    await session.start()

    result = await session.compile(PLATE)

    assert result.status is CompileStatus.FALLBACK
    assert session.current.hash == result.intent_hash


@pytest.mark.asyncio
async def test_validate_generates_semantic_ir(transports, fast_settings):
    seen = []

    def validate(payload):
        seen.append(payload["semantic"])
        return {"valid": True, "errors": [], "warnings": []}

    session = DesignSession(KernelBridge(transports(handlers={"VALIDATE_SEMANTIC_IR": validate}), fast_settings))
    await session.start()

    result = await session.validate(PLATE)

    assert result.valid
    assert [node["id"] for node in seen[0]["nodes"]] == ["plate"]


# ----------------------------
# Planning
# ----------------------------

def test_plan_intent_orders_operations():
    plan = plan_intent(INTENT)

    categories = [op.category for op in plan.operations]
    assert categories == [OperationCategory.CREATE, OperationCategory.FEATURE, OperationCategory.ANALYZE]
    assert plan.operations[1].depends_on == [plan.operations[0].id]
    assert plan.intent.intent == "mounting plate"


def test_plan_intent_rejects_malformed_intent():
    with pytest.raises(IntentValidationError, match="baseGeometry"):
        plan_intent({"intent": "no geometry"})


def test_plan_intent_rejects_non_objects():
    with pytest.raises(IntentValidationError, match="JSON object"):
        plan_intent(["box"])


# ----------------------------
# Running
# ----------------------------

@pytest.mark.asyncio
async def test_run_intent_offline_disposes_its_engine(monkeypatch):
    created = []

    class TrackingEngine(ExecutionEngine):
        def __init__(self):
            super().__init__(settings=OFFLINE)
            created.append(self)

    monkeypatch.setattr("intentcad.pipeline.ExecutionEngine", TrackingEngine)

    run = await run_intent({"baseGeometry": {"type": "cylinder", "parameters": {"radius": 5, "height": 10}}})

    assert run.ok
    assert created[0].state.value == "disposed"


@pytest.mark.asyncio
async def test_run_intent_leaves_caller_engine_running():
    engine = ExecutionEngine(settings=OFFLINE)
    events = []

    run = await run_intent(INTENT, engine=engine, on_progress=events.append)

    # hole is not available without the evaluator
    assert not run.ok
    assert run.execution.failed_operation.operation == "ADD_HOLE"
    assert engine.state.value == "fallback_ready"
    assert events[-1].status.value == "error"
