"""
Evaluator process entry point.

Runs in a spawned child process. Imports the CadQuery-backed evaluator,
announces READY (or INIT_ERROR), then serves requests strictly in order
until the `None` sentinel arrives.
"""

from __future__ import annotations

from typing import Any, Mapping

from loguru import logger

from intentcad.boundary.protocol import (
    BoundaryRequest,
    BoundaryResponse,
    init_error_message,
    ready_message,
)
from intentcad.logging_setup import configure_logging


def serve_request(evaluator: Any, message: Mapping[str, Any]) -> BoundaryResponse:
    request = BoundaryRequest.from_message(message)
    try:
        result = evaluator.handle(request.operation, request.payload)
    except Exception as exc:
        logger.warning(f"{request.operation} failed: {exc}")
        return BoundaryResponse.failure(request.id, str(exc) or exc.__class__.__name__)
    return BoundaryResponse.success(request.id, result)


def worker_main(requests, responses, log_level: str = "INFO", subdivisions: int = 32) -> None:
    configure_logging(log_level)

    try:
        # OCP / CadQuery load here, inside the child, so a missing or
        # broken install surfaces as INIT_ERROR instead of a dead process.
        from intentcad.evaluator.kernel import GeometryEvaluator

        evaluator = GeometryEvaluator(subdivisions=subdivisions)
    except Exception as exc:
        logger.error(f"Evaluator initialization failed: {exc}")
        responses.put(init_error_message(f"Initialization failed: {exc}"))
        return

    logger.info("Evaluator ready")
    responses.put(ready_message(evaluator.kernel_info()))

    while True:
        message = requests.get()
        if message is None:
            break
        responses.put(serve_request(evaluator, message).to_message())

    logger.info("Evaluator shutting down")
