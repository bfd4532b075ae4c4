class IntentCadError(Exception):
    """
    User-facing, structured error.

    These errors are safe to surface to a UI layer or an LLM
    without leaking stack traces.
    """

    code = "INTENTCAD_ERROR"

    def __init__(self, message: str, *, code: str | None = None):
        self.code = code or self.code
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# ---------------------------------------------------------------------------
# Boundary failures
# ---------------------------------------------------------------------------

class BoundaryError(IntentCadError):
    """The evaluator boundary could not service a request."""

    code = "BOUNDARY_ERROR"


class BoundaryTimeoutError(BoundaryError):
    code = "BOUNDARY_TIMEOUT"


class BoundaryClosedError(BoundaryError):
    code = "BOUNDARY_CLOSED"


class EvaluatorError(BoundaryError):
    """The evaluator answered, but reported a failure."""

    code = "EVALUATOR_ERROR"


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class FallbackUnsupportedError(IntentCadError):
    code = "FALLBACK_UNSUPPORTED"


class EngineBusyError(IntentCadError):
    code = "ENGINE_BUSY"


class IntentValidationError(IntentCadError):
    code = "INVALID_INTENT"
