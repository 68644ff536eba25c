"""
Gateway error taxonomy.

Every error that can reach a client carries the HTTP status it maps to; the
API layer renders all of them as the `{error: {message, type}}` envelope.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence


class GatewayError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(GatewayError):
    """The inbound request is unusable (missing prompt, unreadable body)."""

    status_code = 400


class AuthorizationError(GatewayError):
    status_code = 401


class NotFoundError(GatewayError):
    status_code = 404


class ConfigurationError(GatewayError):
    """No upstream accounts are configured, so no attempt is possible."""


class FailureKind(str, Enum):
    rate_limited = "rate_limited"
    fatal = "fatal"


class UpstreamFailure(GatewayError):
    """
    One failed upstream attempt.

    `rate_limited` failures are recovered by the dispatcher (next account);
    `fatal` ones abort dispatch and reach the client with their message intact.
    """

    def __init__(
        self,
        message: str,
        *,
        classification: FailureKind,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.upstream_status = status_code
        self.classification = classification
        self.attempted_indices: tuple[int, ...] = ()

    @property
    def rate_limited(self) -> bool:
        return self.classification is FailureKind.rate_limited

    def __repr__(self) -> str:
        return (
            f"UpstreamFailure(status={self.upstream_status}, "
            f"classification={self.classification.value}, message={self.message!r})"
        )


class ExhaustedPoolError(GatewayError):
    """Every configured account was tried and all of them were quota-limited."""

    def __init__(self, message: str, attempted_indices: Sequence[int] = ()):
        super().__init__(message)
        self.attempted_indices = tuple(attempted_indices)
