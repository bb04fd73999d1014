"""FinalityError — base exception class for all conduit-finality errors."""

from __future__ import annotations

import enum


class ErrorKind(enum.StrEnum):
    """How a caller should treat an error.

    TRANSIENT errors are retried inside polling loops and only escape when
    raised outside one. All other kinds are terminal for the current flow.
    """

    TRANSIENT = "transient"
    BUSINESS = "business"
    SECURITY = "security"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"


class FinalityError(Exception):
    """Base error for all payment finality operations.

    Attributes:
        message: Human-readable error description.
        status_code: Suggested HTTP status code.
        code: Machine-readable error code string.
        kind: Error classification callers branch on.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "finality-error",
        kind: ErrorKind = ErrorKind.TRANSIENT,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.kind = kind

    @property
    def is_retryable(self) -> bool:
        """Whether a polling loop may absorb this error and try again."""
        return self.kind is ErrorKind.TRANSIENT


class ConfigurationError(FinalityError):
    """Missing required setup (endpoint URL, signing agent, session)."""

    def __init__(self, message: str, *, code: str = "configuration-error") -> None:
        super().__init__(message, status_code=500, code=code, kind=ErrorKind.CONFIGURATION)
