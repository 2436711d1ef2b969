"""Custom exception hierarchy for probemaster."""

from __future__ import annotations


class ProbeMasterError(Exception):
    """Base exception for all probemaster errors."""


class ProbeMasterConfigError(ProbeMasterError):
    """Invalid or missing configuration."""


class ProbeMasterTransportError(ProbeMasterError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class ProbeMasterAuthorizationError(ProbeMasterTransportError):
    """Server rejected the shared access key (HTTP 401).

    This is the only authorization signal the engine understands. Poll
    loops skip the cycle without moving cursors; nothing is retried early.
    """


class ProbeMasterStreamBusyError(ProbeMasterError):
    """The byte stream is locked or already held by another reader.

    Raised only after the bounded wait-and-retry attempts are exhausted.
    """


class ProbeMasterPersistenceError(ProbeMasterError):
    """Durable key/value store failure."""
