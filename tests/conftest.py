import asyncio

import pytest

from intentcad.config import Settings
from intentcad.errors import BoundaryClosedError, BoundaryTimeoutError, EvaluatorError


# ----------------------------
# In-memory boundary
# ----------------------------

class FakeTransport:
    """
    Transport double.

    `handlers` maps an operation name to a result, an exception instance,
    or a (sync or async) callable taking the payload.
    """

    def __init__(self, handlers=None, *, info=None, ready_error=None, start_error=None, hang=False):
        self.handlers = dict(handlers or {})
        self.info = info or {"name": "fake-evaluator", "version": "0.0"}
        self.ready_error = ready_error
        self.start_error = start_error
        self.hang = hang

        self.requests = []
        self.notifications = []
        self.started = False
        self.closed = False

    @property
    def operations(self):
        return [operation for operation, _ in self.requests]

    async def start(self):
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    async def wait_ready(self, timeout):
        if self.hang:
            await asyncio.sleep(timeout)
            raise BoundaryTimeoutError(f"Evaluator did not become ready within {timeout:g}s")
        if self.ready_error is not None:
            raise self.ready_error
        return dict(self.info)

    async def request(self, operation, payload, timeout):
        if self.closed:
            raise BoundaryClosedError("Evaluator boundary is not open")
        self.requests.append((operation, dict(payload)))

        handler = self.handlers.get(operation)
        if handler is None:
            raise EvaluatorError(f"Unknown operation: {operation}")
        if isinstance(handler, BaseException):
            raise handler
        if not callable(handler):
            return handler

        result = handler(payload)
        if asyncio.iscoroutine(result):
            try:
                result = await asyncio.wait_for(result, timeout)
            except asyncio.TimeoutError:
                raise BoundaryTimeoutError(f"Operation {operation} timed out") from None
        return result

    def notify(self, operation, payload):
        self.notifications.append((operation, dict(payload)))

    async def close(self):
        self.closed = True


# ----------------------------
# Fixtures
# ----------------------------

@pytest.fixture
def fast_settings():
    return Settings(
        init_timeout=0.2,
        operation_timeout=0.2,
        evaluator="process",
        validation_cache_ttl=300,
        history_limit=100,
    )


@pytest.fixture
def transports():
    """
    transports(**kwargs) -> factory building FakeTransport(**kwargs).
    Every transport built is appended to transports.created.
    """
    created = []

    def factory_for(**kwargs):
        def factory():
            transport = FakeTransport(**kwargs)
            created.append(transport)
            return transport

        return factory

    factory_for.created = created
    return factory_for
