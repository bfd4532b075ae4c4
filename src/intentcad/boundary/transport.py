"""
Evaluator Transport
===================

Request/response channel between the asyncio foreground and the
evaluator process.

Properties:
- The evaluator runs in a separate process (multiprocessing, spawn)
- Nothing is shared: messages cross two queues and are correlated by id
- Every request resolves exactly once: result, EvaluatorError,
  BoundaryTimeoutError or BoundaryClosedError

This module:
- DOES NOT pipeline (callers await each request before issuing the next)
- DOES NOT retry
- DOES NOT interpret results
"""

from __future__ import annotations

import asyncio
import multiprocessing
import queue
import uuid
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from loguru import logger

from intentcad.boundary.protocol import (
    BoundaryRequest,
    BoundaryResponse,
    MessageType,
    control_type,
)
from intentcad.boundary.worker import worker_main
from intentcad.config import Settings, settings as default_settings
from intentcad.errors import (
    BoundaryClosedError,
    BoundaryError,
    BoundaryTimeoutError,
    EvaluatorError,
)

POLL_INTERVAL = 0.25
JOIN_TIMEOUT = 2.0


class Transport(Protocol):
    """What the kernel bridge and execution engine need from a boundary."""

    async def start(self) -> None:
        ...

    async def wait_ready(self, timeout: float) -> Dict[str, Any]:
        ...

    async def request(
        self, operation: str, payload: Mapping[str, Any], timeout: float
    ) -> Any:
        ...

    def notify(self, operation: str, payload: Mapping[str, Any]) -> None:
        ...

    async def close(self) -> None:
        ...


TransportFactory = Callable[[], Transport]


def _request_id() -> str:
    return f"req_{uuid.uuid4().hex[:16]}"


class EvaluatorTransport:
    """
    Transport backed by a spawned evaluator process.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        worker_target: Callable[..., None] = worker_main,
    ) -> None:
        self._settings = settings or default_settings
        self._worker_target = worker_target

        self._process: Optional[multiprocessing.Process] = None
        self._requests = None
        self._responses = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready: Optional[asyncio.Future] = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._process is not None:
            return
        if self._closed:
            raise BoundaryClosedError("Evaluator transport already closed")

        ctx = multiprocessing.get_context("spawn")
        self._requests = ctx.Queue()
        self._responses = ctx.Queue()
        self._process = ctx.Process(
            target=self._worker_target,
            args=(
                self._requests,
                self._responses,
                self._settings.log_level,
                self._settings.subdivisions,
            ),
            name="intentcad-evaluator",
            daemon=True,
        )

        self._loop = asyncio.get_running_loop()
        self._ready = self._loop.create_future()

        await self._loop.run_in_executor(None, self._process.start)
        logger.info(f"Evaluator process started (pid={self._process.pid})")

        self._reader = self._loop.create_task(self._read_responses())

    async def wait_ready(self, timeout: float) -> Dict[str, Any]:
        if self._ready is None:
            raise BoundaryError("Evaluator transport not started")
        try:
            return await asyncio.wait_for(asyncio.shield(self._ready), timeout)
        except asyncio.TimeoutError:
            raise BoundaryTimeoutError(
                f"Evaluator did not become ready within {timeout:g}s"
            ) from None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._ready is not None and not self._ready.done():
            self._ready.cancel()
        self._fail_pending(BoundaryClosedError("Evaluator boundary closed"))

        if self._requests is not None:
            self._requests.put(None)
        if self._responses is not None:
            self._responses.put(None)

        if self._reader is not None:
            try:
                await asyncio.wait_for(self._reader, JOIN_TIMEOUT + POLL_INTERVAL)
            except asyncio.TimeoutError:
                self._reader.cancel()

        process = self._process
        if process is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, process.join, JOIN_TIMEOUT)
            if process.is_alive():
                process.terminate()
                await loop.run_in_executor(None, process.join, JOIN_TIMEOUT)
            logger.info(f"Evaluator process stopped (exitcode={process.exitcode})")

    @property
    def alive(self) -> bool:
        return (
            not self._closed
            and self._process is not None
            and self._process.is_alive()
        )

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(
        self, operation: str, payload: Mapping[str, Any], timeout: float
    ) -> Any:
        if self._closed or self._requests is None or self._loop is None:
            raise BoundaryClosedError("Evaluator boundary is not open")

        request = BoundaryRequest(id=_request_id(), operation=operation, payload=dict(payload))
        future = self._loop.create_future()
        self._pending[request.id] = future

        try:
            self._requests.put(request.to_message())
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise BoundaryTimeoutError(f"Operation {operation} timed out") from None
        finally:
            self._pending.pop(request.id, None)

    def notify(self, operation: str, payload: Mapping[str, Any]) -> None:
        """Fire-and-forget; the evaluator's reply is dropped."""
        if self._closed or self._requests is None:
            return
        request = BoundaryRequest(id=_request_id(), operation=operation, payload=dict(payload))
        self._requests.put(request.to_message())

    # ------------------------------------------------------------------
    # Reader
    # ------------------------------------------------------------------

    def _next_message(self) -> Any:
        try:
            return self._responses.get(timeout=POLL_INTERVAL)
        except queue.Empty:
            return queue.Empty

    async def _read_responses(self) -> None:
        loop = asyncio.get_running_loop()

        while True:
            try:
                message = await loop.run_in_executor(None, self._next_message)
            except (EOFError, OSError) as exc:
                self._fail_pending(BoundaryClosedError(f"Evaluator channel broken: {exc}"))
                return

            if message is None:
                return

            if message is queue.Empty:
                if self._process is not None and not self._process.is_alive() and not self._closed:
                    error = BoundaryClosedError(
                        f"Evaluator process exited (exitcode={self._process.exitcode})"
                    )
                    logger.error(str(error))
                    self._fail_pending(error)
                    return
                continue

            self._dispatch(message)

    def _dispatch(self, message: Mapping[str, Any]) -> None:
        kind = control_type(message)

        if kind is MessageType.READY:
            if self._ready is not None and not self._ready.done():
                self._ready.set_result(dict(message.get("info") or {}))
            return

        if kind is MessageType.INIT_ERROR:
            error = BoundaryError(str(message.get("error") or "Evaluator failed to initialize"))
            logger.error(f"Evaluator initialization failed: {error.message}")
            if self._ready is not None and not self._ready.done():
                self._ready.set_exception(error)
            return

        response = BoundaryResponse.from_message(message)
        future = self._pending.get(response.id)
        if future is None:
            logger.debug(f"Dropping response for unknown request {response.id}")
            return
        if future.done():
            return

        if response.ok:
            future.set_result(response.result)
        else:
            future.set_exception(EvaluatorError(response.error or "Unknown evaluator error"))

    def _fail_pending(self, error: BoundaryError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(error)


def default_transport_factory(settings: Settings) -> Optional[TransportFactory]:
    """Evaluator process transports, or None when the evaluator is disabled."""
    if settings.evaluator == "disabled":
        return None
    return lambda: EvaluatorTransport(settings)
