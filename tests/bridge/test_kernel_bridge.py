import asyncio

import pytest

from intentcad.config import Settings
from intentcad.errors import BoundaryTimeoutError, EvaluatorError
from intentcad.intent.compiler import IntentCompiler
from intentcad.kernel_bridge import (
    FALLBACK_MESSAGE,
    BridgeState,
    CompileStatus,
    KernelBridge,
    empty_cache_stats,
    empty_graph_stats,
)


# ----------------------------
# Helpers
# ----------------------------

def make_ir(width=100):
    return IntentCompiler().compile_workspace(
        {"a": {"type": "box", "dimensions": {"width": width, "height": 50, "depth": 25}}}
    )


def compiled(status="compiled", intent_hash=None):
    def handler(payload):
        return {
            "status": status,
            "intent_hash": intent_hash or payload["ir"]["hash"],
            "mesh": {"vertices": [0, 0, 0, 1, 0, 0, 0, 1, 0], "indices": [0, 1, 2], "normals": []},
            "topology": {"solids": 1},
            "step": None,
            "mfg_report": {"manufacturable": True},
        }

    return handler


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def ready_bridge(transports, settings, handlers, **kwargs):
    bridge = KernelBridge(transports(handlers=handlers), settings, **kwargs)
    await bridge.initialize()
    assert bridge.is_kernel_ready()
    return bridge


# ----------------------------
# Lifecycle
# ----------------------------

@pytest.mark.asyncio
async def test_initialize_reaches_ready(transports, fast_settings):
    bridge = KernelBridge(transports(), fast_settings)
    assert bridge.state is BridgeState.UNINITIALIZED
    await bridge.initialize()
    assert bridge.state is BridgeState.READY


@pytest.mark.asyncio
async def test_concurrent_initialize_shares_one_attempt(transports, fast_settings):
    bridge = KernelBridge(transports(), fast_settings)
    await asyncio.gather(bridge.initialize(), bridge.initialize(), bridge.initialize())
    assert len(transports.created) == 1
    assert bridge.is_kernel_ready()


@pytest.mark.asyncio
async def test_ready_timeout_falls_back_without_raising(transports, fast_settings):
    bridge = KernelBridge(transports(hang=True), fast_settings)
    await bridge.initialize()
    assert bridge.state is BridgeState.FALLBACK
    assert transports.created[0].closed


@pytest.mark.asyncio
async def test_start_failure_falls_back(transports, fast_settings):
    bridge = KernelBridge(transports(start_error=OSError("spawn failed")), fast_settings)
    await bridge.initialize()
    assert bridge.state is BridgeState.FALLBACK


@pytest.mark.asyncio
async def test_disabled_evaluator_is_fallback():
    bridge = KernelBridge(settings=Settings(evaluator="disabled"))
    await bridge.initialize()
    assert bridge.state is BridgeState.FALLBACK


@pytest.mark.asyncio
async def test_dispose_closes_transport(transports, fast_settings):
    bridge = await ready_bridge(transports, fast_settings, {})
    await bridge.dispose()
    assert transports.created[0].closed
    assert not bridge.is_kernel_ready()


# ----------------------------
# compile_intent
# ----------------------------

@pytest.mark.asyncio
async def test_fallback_result_carries_hash_and_no_mesh():
    bridge = KernelBridge(settings=Settings(evaluator="disabled"))
    await bridge.initialize()
    ir = make_ir()

    result = await bridge.compile_intent(ir)

    assert result.status is CompileStatus.FALLBACK
    assert result.intent_hash == ir.hash
    assert result.mesh is None
    assert result.error == FALLBACK_MESSAGE


@pytest.mark.asyncio
async def test_compile_returns_mesh_and_reports(transports, fast_settings):
    bridge = await ready_bridge(transports, fast_settings, {"COMPILE_INTENT": compiled()})
    ir = make_ir()

    result = await bridge.compile_intent(ir)

    assert result.status is CompileStatus.COMPILED
    assert result.intent_hash == ir.hash
    assert result.mesh.triangle_count == 1
    assert result.topology == {"solids": 1}
    assert result.mfg_report == {"manufacturable": True}
    operation, payload = transports.created[0].requests[0]
    assert operation == "COMPILE_INTENT"
    assert payload["ir"]["hash"] == ir.hash


@pytest.mark.asyncio
async def test_cached_status_passes_through(transports, fast_settings):
    bridge = await ready_bridge(transports, fast_settings, {"COMPILE_INTENT": compiled("cached")})
    result = await bridge.compile_intent(make_ir())
    assert result.status is CompileStatus.CACHED


@pytest.mark.asyncio
async def test_stale_evaluator_hash_is_an_error(transports, fast_settings):
    bridge = await ready_bridge(
        transports, fast_settings, {"COMPILE_INTENT": compiled(intent_hash="intent_stale")}
    )
    ir = make_ir()
    result = await bridge.compile_intent(ir)
    assert result.status is CompileStatus.ERROR
    assert result.intent_hash == ir.hash
    assert result.mesh is None
    assert "intent_stale" in result.error


@pytest.mark.asyncio
async def test_evaluator_compile_error(transports, fast_settings):
    handler = {"status": "error", "error": {"code": "COMPILE_ERROR", "message": "Fillet failed"}}
    bridge = await ready_bridge(transports, fast_settings, {"COMPILE_INTENT": handler})
    ir = make_ir()

    result = await bridge.compile_intent(ir)

    assert result.status is CompileStatus.ERROR
    assert result.intent_hash == ir.hash
    assert result.error == "Fillet failed"


@pytest.mark.asyncio
async def test_boundary_failure_is_an_error_result(transports, fast_settings):
    bridge = await ready_bridge(
        transports, fast_settings, {"COMPILE_INTENT": BoundaryTimeoutError("Operation COMPILE_INTENT timed out")}
    )
    ir = make_ir()

    result = await bridge.compile_intent(ir)

    assert result.status is CompileStatus.ERROR
    assert result.intent_hash == ir.hash
    assert "timed out" in result.error


# ----------------------------
# Semantic IR
# ----------------------------

SEMANTIC = {"nodes": [{"id": "a", "node_type": "primitive", "dependencies": []}], "constraints": []}


@pytest.mark.asyncio
async def test_validation_is_cached(transports, fast_settings):
    handler = {"valid": True, "errors": [], "warnings": [], "summary": "Validation passed without issues"}
    bridge = await ready_bridge(transports, fast_settings, {"VALIDATE_SEMANTIC_IR": handler})

    first = await bridge.validate_semantic_ir(SEMANTIC)
    second = await bridge.validate_semantic_ir(dict(reversed(list(SEMANTIC.items()))))

    assert first.valid and second.valid
    assert transports.created[0].operations == ["VALIDATE_SEMANTIC_IR"]


@pytest.mark.asyncio
async def test_validation_cache_expires(transports, fast_settings):
    clock = Clock()
    bridge = await ready_bridge(
        transports, fast_settings, {"VALIDATE_SEMANTIC_IR": {"valid": True}}, clock=clock
    )

    await bridge.validate_semantic_ir(SEMANTIC)
    clock.now += fast_settings.validation_cache_ttl + 1
    result = await bridge.validate_semantic_ir(SEMANTIC)

    assert result.summary == "Validation completed"
    assert transports.created[0].operations == ["VALIDATE_SEMANTIC_IR", "VALIDATE_SEMANTIC_IR"]


@pytest.mark.asyncio
async def test_clear_caches_drops_validation_cache(transports, fast_settings):
    bridge = await ready_bridge(
        transports,
        fast_settings,
        {"VALIDATE_SEMANTIC_IR": {"valid": True}, "CLEAR_CACHE": {"success": True}},
    )
    await bridge.validate_semantic_ir(SEMANTIC)
    await bridge.clear_caches()
    await bridge.validate_semantic_ir(SEMANTIC)
    assert transports.created[0].operations == ["VALIDATE_SEMANTIC_IR", "CLEAR_CACHE", "VALIDATE_SEMANTIC_IR"]


@pytest.mark.asyncio
async def test_validation_when_not_ready():
    bridge = KernelBridge(settings=Settings(evaluator="disabled"))
    result = await bridge.validate_semantic_ir(SEMANTIC)
    assert not result.valid
    assert result.errors[0]["code"] == "KERNEL_NOT_READY"


@pytest.mark.asyncio
async def test_validation_failure_is_not_cached(transports, fast_settings):
    bridge = await ready_bridge(transports, fast_settings, {"VALIDATE_SEMANTIC_IR": EvaluatorError("bad graph")})
    first = await bridge.validate_semantic_ir(SEMANTIC)
    await bridge.validate_semantic_ir(SEMANTIC)
    assert first.errors == [{"message": "bad graph", "code": "VALIDATION_ERROR"}]
    assert len(transports.created[0].requests) == 2


@pytest.mark.asyncio
async def test_compile_semantic_ir(transports, fast_settings):
    handler = {
        "status": "compiled",
        "nodes_processed": 1,
        "validation_result": {"valid": True},
        "mesh": None,
        "manufacturing_analysis": {"manufacturability_score": 100.0},
    }
    bridge = await ready_bridge(transports, fast_settings, {"COMPILE_SEMANTIC_IR": handler})
    result = await bridge.compile_semantic_ir(SEMANTIC)
    assert result.status is CompileStatus.COMPILED
    assert result.nodes_processed == 1
    assert result.mesh is None


@pytest.mark.asyncio
async def test_compile_semantic_ir_validation_error(transports, fast_settings):
    handler = {
        "status": "error",
        "error": {"code": "VALIDATION_ERROR", "message": "Semantic IR validation failed"},
        "validation_result": {"valid": False},
    }
    bridge = await ready_bridge(transports, fast_settings, {"COMPILE_SEMANTIC_IR": handler})
    result = await bridge.compile_semantic_ir(SEMANTIC)
    assert result.status is CompileStatus.ERROR
    assert result.error == "Semantic IR validation failed"
    assert result.validation_result == {"valid": False}


@pytest.mark.asyncio
async def test_add_ir_node(transports, fast_settings):
    bridge = await ready_bridge(
        transports, fast_settings, {"ADD_IR_NODE": lambda p: {"status": "success", "node_id": p["node"]["id"]}}
    )
    result = await bridge.add_ir_node({"id": "n1", "node_type": "primitive"})
    assert result.success
    assert result.node_id == "n1"


# ----------------------------
# Read operations
# ----------------------------

@pytest.mark.asyncio
async def test_read_operations_default_when_unavailable():
    bridge = KernelBridge(settings=Settings(evaluator="disabled"))
    await bridge.initialize()

    assert await bridge.get_ir_graph_stats() == empty_graph_stats()
    assert await bridge.get_cache_stats() == empty_cache_stats()
    info = await bridge.get_kernel_info()
    assert info["architecture"] == "fallback"
    assert info["features"] == []
    assert (await bridge.add_ir_node({"id": "x"})).success is False


@pytest.mark.asyncio
async def test_read_operations_default_on_failure(transports, fast_settings):
    bridge = await ready_bridge(transports, fast_settings, {})
    assert await bridge.get_ir_graph_stats() == empty_graph_stats()
    assert (await bridge.get_kernel_info())["architecture"] == "error"


@pytest.mark.asyncio
async def test_graph_stats_merge_over_defaults(transports, fast_settings):
    bridge = await ready_bridge(transports, fast_settings, {"GRAPH_STATS": {"node_count": 3}})
    stats = await bridge.get_ir_graph_stats()
    assert stats["node_count"] == 3
    assert stats["edge_count"] == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("requested, applied", [(1, 4), (32, 32), (500, 64)])
async def test_set_subdivisions_clamps(transports, fast_settings, requested, applied):
    bridge = await ready_bridge(transports, fast_settings, {"SET_SUBDIVISIONS": lambda p: p})
    assert await bridge.set_subdivisions(requested) == applied
    assert transports.created[0].requests[-1] == ("SET_SUBDIVISIONS", {"subdivisions": applied})
