"""Exception hierarchy for CodeWeave.

Every error raised out of the engine carries a ``kind`` string so callers
can branch on it without importing individual classes, and a ``retryable``
flag telling them whether the same request may succeed on another attempt.
"""

from __future__ import annotations


class CodeWeaveError(Exception):
    """Base class for all engine errors."""

    kind: str = "engine_error"
    retryable: bool = False

    def __init__(self, message: str = "", *, backend: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.message = message
        self.backend = backend


class ConfigError(CodeWeaveError):
    """Invalid or unreadable configuration."""

    kind = "config"


class BackendUnavailableError(CodeWeaveError):
    """No candidate backend passed its health check."""

    kind = "backend_unavailable"

    def __init__(self, message: str = "", *, tried: list[str] | None = None) -> None:
        super().__init__(message or "No healthy backend available for the request")
        self.tried = list(tried or [])


class BackendTimeoutError(CodeWeaveError):
    """The selected backend did not finish generating before its deadline."""

    kind = "backend_timeout"
    retryable = True


class RateLimitedError(CodeWeaveError):
    """The backend asked us to slow down."""

    kind = "rate_limited"
    retryable = True

    def __init__(
        self,
        message: str = "",
        *,
        backend: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, backend=backend)
        self.retry_after = retry_after


class BackendRequestError(CodeWeaveError):
    """The backend failed the request or returned nothing usable."""

    kind = "backend_request"


class GenerationCancelledError(CodeWeaveError):
    """The caller cancelled the request."""

    kind = "cancelled"


class ValidationStageError(CodeWeaveError):
    """A single validation stage failed or did not finish in time."""

    kind = "validation_stage"

    def __init__(self, stage: str, cause: BaseException | None = None) -> None:
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "timed out"
        super().__init__(f"Validation stage '{stage}' incomplete ({detail})")
        self.stage = stage
        self.cause = cause
