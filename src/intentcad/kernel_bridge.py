"""
Kernel Bridge
=============

Asynchronous facade over the geometry evaluator for whole-design
compilation and semantic IR services.

States:
    UNINITIALIZED -> INITIALIZING -> READY
                                  -> FALLBACK   (evaluator unreachable)

Contract:
- initialize() is idempotent, shares one in-flight attempt and NEVER
  raises; it always settles in READY or FALLBACK
- compile_intent() returns status compiled | cached | fallback | error;
  for compiled / cached / error the intent_hash equals the input IR hash
- read operations (stats, info) return zero-value defaults instead of
  raising when the evaluator is unavailable or fails
- validation results are cached per canonical input for a bounded time

This module:
- DOES NOT execute operation sequences (see intentcad.execution)
- DOES NOT own history
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from intentcad.boundary.protocol import EVALUATOR_NAME, BoundaryOperation, MeshData
from intentcad.boundary.transport import Transport, TransportFactory, default_transport_factory
from intentcad.config import Settings, settings as default_settings
from intentcad.errors import IntentCadError
from intentcad.evaluator.tessellate import clamp_subdivisions
from intentcad.intent.hashing import canonical_json
from intentcad.intent.model import GeometryIR

FALLBACK_MESSAGE = "Kernel not initialized - using fallback mode"
NOT_READY_MESSAGE = "Kernel not initialized"


class BridgeState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FALLBACK = "fallback"


class CompileStatus(str, Enum):
    COMPILED = "compiled"
    CACHED = "cached"
    FALLBACK = "fallback"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class KernelResult:
    status: CompileStatus
    intent_hash: str
    mesh: Optional[MeshData] = None
    topology: Optional[Dict[str, Any]] = None
    step: Optional[str] = None
    mfg_report: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "intent_hash": self.intent_hash,
            "mesh": self.mesh.to_dict() if self.mesh is not None else None,
            "topology": self.topology,
            "step": self.step,
            "mfg_report": self.mfg_report,
            "error": self.error,
        }


@dataclass
class SemanticKernelResult:
    status: CompileStatus
    nodes_processed: int = 0
    mesh: Optional[MeshData] = None
    manufacturing_analysis: Optional[Dict[str, Any]] = None
    validation_result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class ValidationResult:
    valid: bool
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    manufacturing_analysis: Optional[Dict[str, Any]] = None
    summary: str = "Validation completed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "manufacturing_analysis": self.manufacturing_analysis,
            "summary": self.summary,
        }


@dataclass
class AddNodeResult:
    success: bool
    node_id: Optional[str] = None
    error: Optional[str] = None


def empty_graph_stats() -> Dict[str, Any]:
    return {
        "node_count": 0,
        "edge_count": 0,
        "root_count": 0,
        "leaf_count": 0,
        "max_depth": 0,
        "avg_dependencies": 0,
    }


def empty_cache_stats() -> Dict[str, int]:
    return {
        "compiler_cache_size": 0,
        "analyzer_cache_total": 0,
        "analyzer_cache_fresh": 0,
        "ir_graph_nodes": 0,
    }


def fallback_kernel_info(architecture: str = "fallback", ir_system: str = "legacy") -> Dict[str, Any]:
    return {
        "name": EVALUATOR_NAME,
        "version": "unknown",
        "features": [],
        "architecture": architecture,
        "ir_system": ir_system,
        "legacy_support": True,
    }


# ---------------------------------------------------------------------------
# Bridge
# ---------------------------------------------------------------------------

class KernelBridge:
    """
    Handles both the content-addressed GeometryIR path and the semantic
    IR path against one evaluator.
    """

    def __init__(
        self,
        transport_factory: Optional[TransportFactory] = None,
        settings: Optional[Settings] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or default_settings
        self._factory = transport_factory or default_transport_factory(self._settings)
        self._clock = clock

        self._transport: Optional[Transport] = None
        self._state = BridgeState.UNINITIALIZED
        self._init_task: Optional[asyncio.Task] = None
        self._validation_cache: Dict[str, Tuple[float, ValidationResult]] = {}

    @property
    def state(self) -> BridgeState:
        return self._state

    def is_kernel_ready(self) -> bool:
        return self._state is BridgeState.READY and self._transport is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        if self._state in (BridgeState.READY, BridgeState.FALLBACK):
            return

        if self._init_task is None:
            self._init_task = asyncio.get_running_loop().create_task(self._do_initialize())

        await asyncio.shield(self._init_task)

    async def _do_initialize(self) -> None:
        self._state = BridgeState.INITIALIZING
        logger.info("Initializing geometry kernel")

        if self._factory is None:
            logger.warning("Evaluator disabled, kernel bridge running in fallback mode")
            self._state = BridgeState.FALLBACK
            return

        transport: Optional[Transport] = None
        try:
            transport = self._factory()
            await transport.start()
            info = await transport.wait_ready(self._settings.init_timeout)
        except Exception as exc:
            # Any failure to come up is a mode, not an error.
            logger.warning(f"Geometry kernel not available, using fallback mode: {exc}")
            if transport is not None:
                await _close_quietly(transport)
            self._state = BridgeState.FALLBACK
            return

        self._transport = transport
        self._state = BridgeState.READY
        logger.info(f"Geometry kernel ready ({info.get('name', EVALUATOR_NAME)} {info.get('version', '')})")

    async def dispose(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            await _close_quietly(transport)
        self._validation_cache.clear()
        self._init_task = None
        self._state = BridgeState.UNINITIALIZED

    async def _request(self, operation: BoundaryOperation, payload: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._transport.request(
            operation.value, dict(payload or {}), self._settings.operation_timeout
        )

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    async def compile_intent(self, ir: GeometryIR) -> KernelResult:
        if not self.is_kernel_ready():
            logger.warning("Kernel not ready, returning fallback")
            return KernelResult(CompileStatus.FALLBACK, ir.hash, mesh=None, error=FALLBACK_MESSAGE)

        try:
            raw = await self._request(BoundaryOperation.COMPILE_INTENT, {"ir": ir.to_dict()})
        except IntentCadError as exc:
            logger.error(f"Kernel compilation error: {exc}")
            return KernelResult(CompileStatus.ERROR, ir.hash, error=exc.message)

        if not isinstance(raw, Mapping):
            return KernelResult(CompileStatus.ERROR, ir.hash, error="Malformed compile result")

        status = raw.get("status")
        if status == CompileStatus.ERROR.value:
            error = raw.get("error") or {}
            message = error.get("message") if isinstance(error, Mapping) else str(error)
            return KernelResult(CompileStatus.ERROR, ir.hash, error=message or "Compilation error")

        if status not in (CompileStatus.COMPILED.value, CompileStatus.CACHED.value):
            return KernelResult(CompileStatus.ERROR, ir.hash, error=f"Unexpected compile status: {status}")

        returned = raw.get("intent_hash")
        if returned and returned != ir.hash:
            logger.error(f"Evaluator answered for {returned} while compiling {ir.hash}")
            return KernelResult(
                CompileStatus.ERROR, ir.hash, error=f"Stale compile result for {returned}"
            )

        if status == CompileStatus.CACHED.value:
            logger.debug(f"Evaluator cache hit for {ir.hash}")

        return KernelResult(
            status=CompileStatus(status),
            intent_hash=ir.hash,
            mesh=MeshData.from_dict(raw.get("mesh")),
            topology=raw.get("topology"),
            step=raw.get("step"),
            mfg_report=raw.get("mfg_report"),
        )

    async def compile_semantic_ir(self, semantic: Mapping[str, Any]) -> SemanticKernelResult:
        if not self.is_kernel_ready():
            logger.warning("Kernel not ready, returning fallback")
            return SemanticKernelResult(CompileStatus.FALLBACK, error=FALLBACK_MESSAGE)

        try:
            raw = await self._request(BoundaryOperation.COMPILE_SEMANTIC_IR, {"semantic": dict(semantic)})
        except IntentCadError as exc:
            logger.error(f"Semantic kernel compilation error: {exc}")
            return SemanticKernelResult(CompileStatus.ERROR, error=exc.message)

        if not isinstance(raw, Mapping) or raw.get("status") == CompileStatus.ERROR.value:
            raw = raw if isinstance(raw, Mapping) else {}
            error = raw.get("error") or {}
            message = error.get("message") if isinstance(error, Mapping) else str(error)
            return SemanticKernelResult(
                CompileStatus.ERROR,
                validation_result=raw.get("validation_result"),
                error=message or "Semantic compilation error",
            )

        try:
            status = CompileStatus(raw.get("status"))
        except ValueError:
            status = CompileStatus.COMPILED

        return SemanticKernelResult(
            status=status,
            nodes_processed=int(raw.get("nodes_processed") or 0),
            mesh=MeshData.from_dict(raw.get("mesh")),
            manufacturing_analysis=raw.get("manufacturing_analysis"),
            validation_result=raw.get("validation_result"),
        )

    # ------------------------------------------------------------------
    # Validation (cached)
    # ------------------------------------------------------------------

    async def validate_semantic_ir(self, semantic: Mapping[str, Any]) -> ValidationResult:
        if not self.is_kernel_ready():
            return ValidationResult(
                valid=False,
                errors=[{"message": NOT_READY_MESSAGE, "code": "KERNEL_NOT_READY"}],
            )

        key = canonical_json(semantic)
        cached = self._cached_validation(key)
        if cached is not None:
            logger.debug("Validation cache hit")
            return cached

        try:
            raw = await self._request(BoundaryOperation.VALIDATE_SEMANTIC_IR, {"semantic": dict(semantic)})
        except IntentCadError as exc:
            logger.error(f"Semantic IR validation error: {exc}")
            return ValidationResult(
                valid=False,
                errors=[{"message": exc.message or "Validation error", "code": "VALIDATION_ERROR"}],
            )

        raw = raw if isinstance(raw, Mapping) else {}
        result = ValidationResult(
            valid=bool(raw.get("valid")),
            errors=list(raw.get("errors") or []),
            warnings=list(raw.get("warnings") or []),
            manufacturing_analysis=raw.get("manufacturing_analysis"),
            summary=raw.get("summary") or "Validation completed",
        )

        self._purge_expired()
        self._validation_cache[key] = (self._clock(), result)
        return result

    def _cached_validation(self, key: str) -> Optional[ValidationResult]:
        entry = self._validation_cache.get(key)
        if entry is None:
            return None
        stamp, result = entry
        if self._clock() - stamp >= self._settings.validation_cache_ttl:
            del self._validation_cache[key]
            return None
        return result

    def _purge_expired(self) -> None:
        now = self._clock()
        ttl = self._settings.validation_cache_ttl
        for key in [k for k, (stamp, _) in self._validation_cache.items() if now - stamp >= ttl]:
            del self._validation_cache[key]

    # ------------------------------------------------------------------
    # Graph / cache / configuration
    # ------------------------------------------------------------------

    async def add_ir_node(self, node: Mapping[str, Any]) -> AddNodeResult:
        if not self.is_kernel_ready():
            return AddNodeResult(success=False, error=NOT_READY_MESSAGE)

        try:
            raw = await self._request(BoundaryOperation.ADD_IR_NODE, {"node": dict(node)})
        except IntentCadError as exc:
            logger.error(f"Add IR node error: {exc}")
            return AddNodeResult(success=False, error=exc.message)

        raw = raw if isinstance(raw, Mapping) else {}
        return AddNodeResult(
            success=raw.get("status") == "success",
            node_id=raw.get("node_id"),
            error=raw.get("error"),
        )

    async def get_ir_graph_stats(self) -> Dict[str, Any]:
        return await self._read(BoundaryOperation.GRAPH_STATS, empty_graph_stats())

    async def get_cache_stats(self) -> Dict[str, Any]:
        return await self._read(BoundaryOperation.CACHE_STATS, empty_cache_stats())

    async def get_kernel_info(self) -> Dict[str, Any]:
        if not self.is_kernel_ready():
            return fallback_kernel_info()
        return await self._read(
            BoundaryOperation.KERNEL_INFO, fallback_kernel_info("error", "unknown")
        )

    async def _read(self, operation: BoundaryOperation, defaults: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_kernel_ready():
            return defaults
        try:
            raw = await self._request(operation)
        except IntentCadError as exc:
            logger.error(f"{operation.value} failed: {exc}")
            return defaults
        if not isinstance(raw, Mapping):
            return defaults
        return {**defaults, **raw}

    async def clear_caches(self) -> None:
        if self.is_kernel_ready():
            try:
                await self._request(BoundaryOperation.CLEAR_CACHE)
            except IntentCadError as exc:
                logger.error(f"Clearing evaluator caches failed: {exc}")
        self._validation_cache.clear()

    async def set_subdivisions(self, subdivisions: int) -> int:
        level = clamp_subdivisions(subdivisions)
        if self.is_kernel_ready():
            try:
                await self._request(BoundaryOperation.SET_SUBDIVISIONS, {"subdivisions": level})
            except IntentCadError as exc:
                logger.error(f"Setting subdivisions failed: {exc}")
        return level


async def _close_quietly(transport: Transport) -> None:
    try:
        await transport.close()
    except Exception as exc:
        logger.debug(f"Ignoring error while closing transport: {exc}")
