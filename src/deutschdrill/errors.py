from __future__ import annotations


class DrillError(Exception):
    """Base class for failures that end a generation attempt."""

    kind = "error"


class ConfigurationError(DrillError, RuntimeError):
    kind = "configuration"


class TransportError(DrillError):
    kind = "transport"

    def __init__(self, reason: str, status: int | None = None):
        self.reason = reason
        self.status = status
        if status is not None:
            super().__init__(f"LLM API error: {status} {reason}".rstrip())
        else:
            super().__init__(f"LLM API error: {reason}")


class ExtractionError(DrillError, ValueError):
    kind = "extraction"

    def __init__(self, message: str, raw: str | None = None):
        # raw model output is kept for logs only
        self.raw = raw
        super().__init__(message)
