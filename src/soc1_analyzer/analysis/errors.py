"""Error taxonomy for model analysis.

Transport errors (classified per call) and the merge failure raised when no
chunk of a document produced a result are separate branches under
``AnalysisError``.  Parse failures never raise: they surface as
low-confidence stub records (see ``parsing``).
"""

import openai

TOO_LARGE_MESSAGE = "The PDF document is too large for analysis. Please try with a shorter document or split it into smaller sections."
RATE_LIMIT_MESSAGE = "API rate limit exceeded. Please wait a moment and try again."
UNAVAILABLE_MESSAGE = "The AI service is temporarily unavailable. Please try again later."

_TOO_LARGE_HINTS = ("token", "length", "context", "too long", "exceeded")
_RATE_LIMIT_HINTS = ("rate", "limit")


class AnalysisError(Exception):
    """Base class for errors that stop an analysis."""


class TransportError(AnalysisError):
    """A request to the model endpoint failed."""

    kind = "generic"

    def __init__(self, message: str, status_code: int | None = None, body: object = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ConnectionRefusedTransportError(TransportError):
    """The endpoint refused the connection (server not running)."""

    kind = "connection_refused"


class ConnectionResetTransportError(TransportError):
    """The endpoint dropped the connection mid-request."""

    kind = "connection_reset"


class TransportTimeoutError(TransportError):
    """The endpoint did not answer within the configured timeout."""

    kind = "timeout"


class EmptyResponseError(TransportError):
    """The endpoint answered, but the envelope held no choices."""


class NoValidResultsError(AnalysisError):
    """Every chunk of a multi-chunk analysis failed."""

    def __init__(self, message: str = "No valid results from any document sections"):
        super().__init__(message)


def _iter_causes(exc: BaseException):
    """Yield *exc* and every exception in its cause/context chain (cycle-safe)."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _status_message(status_code: int, detail: str) -> str:
    """Pick a user-facing message for an HTTP error status."""
    lowered = detail.lower()
    if status_code == 400:
        if any(hint in lowered for hint in _TOO_LARGE_HINTS):
            return TOO_LARGE_MESSAGE
        if any(hint in lowered for hint in _RATE_LIMIT_HINTS):
            return RATE_LIMIT_MESSAGE
    if status_code >= 500:
        return UNAVAILABLE_MESSAGE
    return f"API request failed: {status_code} - {detail}"


def _error_detail(exc: openai.APIStatusError) -> str:
    """Extract the provider's error message from an APIStatusError body, if any."""
    body = exc.body
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return exc.message or ""


def classify_transport_error(exc: BaseException) -> TransportError:
    """Map an SDK / OS-level exception onto the transport error taxonomy."""
    if isinstance(exc, TransportError):
        return exc

    if isinstance(exc, openai.APIStatusError):
        detail = _error_detail(exc)
        return TransportError(_status_message(exc.status_code, detail), status_code=exc.status_code, body=exc.body)

    for cause in _iter_causes(exc):
        if isinstance(cause, (openai.APITimeoutError, TimeoutError)):
            return TransportTimeoutError("The model endpoint took too long to respond")
        if isinstance(cause, ConnectionRefusedError) or "connection refused" in str(cause).lower():
            return ConnectionRefusedTransportError("Model endpoint connection refused. Please ensure the server is running")
        if isinstance(cause, ConnectionResetError) or "connection reset" in str(cause).lower():
            return ConnectionResetTransportError("Model endpoint connection reset. The server may have stopped or is overloaded")

    if isinstance(exc, openai.APIConnectionError):
        return TransportError("Network connection failed. Please check your connection and try again.")
    return TransportError(f"Model request failed: {exc}")
