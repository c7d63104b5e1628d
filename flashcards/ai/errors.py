"""
Evaluation error taxonomy.

Every failure the evaluation worker can hit is one of these. The worker
recovers all of them and turns them into failure outcomes; none of them
terminate the worker or the process.
"""

from __future__ import annotations


class EvaluationError(Exception):
    """Base class for evaluation failures."""

    kind: str = "evaluation_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ClientUnavailable(EvaluationError):
    """The evaluation client could not be constructed (e.g. missing API key)."""

    kind = "client_unavailable"


class TransportError(EvaluationError):
    """The remote grading call failed."""

    kind = "transport"


class EvaluationTimeout(EvaluationError):
    """The grading call did not finish before the deadline."""

    kind = "timeout"

    def __init__(self, seconds: float):
        super().__init__(
            f"AI evaluation timed out after {seconds:g} seconds. "
            "Press Ctrl+E (:e) to retry."
        )
        self.seconds = seconds


class MalformedResponse(EvaluationError):
    """The reply could not be decoded, or decoded to an invalid value."""

    kind = "malformed_response"

    def __init__(self, reason: str, raw: str, cleaned: str):
        super().__init__(f"{reason}\nRaw: {raw}\nCleaned: {cleaned}")
        self.reason = reason
        self.raw = raw
        self.cleaned = cleaned
