"""Typed exception hierarchy for the metered Runway client.

WHY: Callers need to tell a misconfigured client apart from a rejected
request, a flaky network, a provider outage, or a task that simply failed
on Runway's side. Each of these calls for a different reaction (fix config,
fix input, retry later, show the user a failure).

HOW: Every error raised by this package derives from ReveniumError, which
carries an error_type tag, a message, an optional wrapped cause, an
optional HTTP status code, and a free-form details dict. One subclass per
error type makes ``except TaskError:`` style handling possible.

RULES:
- str(error) is "[TYPE] message" or "[TYPE] message: cause"
- http_status falls back to a per-type default when no status_code was set
- with_details() mutates and returns self so calls can be chained
- The original exception is also chained via ``raise ... from exc`` at the
  raise site; ``cause`` keeps it reachable after the fact
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Error type tags
# ---------------------------------------------------------------------------

ERROR_TYPE_CONFIG = "CONFIG_ERROR"
ERROR_TYPE_METERING = "METERING_ERROR"
ERROR_TYPE_PROVIDER = "PROVIDER_ERROR"
ERROR_TYPE_AUTH = "AUTH_ERROR"
ERROR_TYPE_NETWORK = "NETWORK_ERROR"
ERROR_TYPE_TASK = "TASK_ERROR"
ERROR_TYPE_VALIDATION = "VALIDATION_ERROR"
ERROR_TYPE_INTERNAL = "INTERNAL_ERROR"

_DEFAULT_HTTP_STATUS: dict[str, int] = {
    ERROR_TYPE_CONFIG: 400,
    ERROR_TYPE_VALIDATION: 400,
    ERROR_TYPE_AUTH: 401,
    ERROR_TYPE_PROVIDER: 502,
    ERROR_TYPE_TASK: 502,
    ERROR_TYPE_NETWORK: 503,
    ERROR_TYPE_METERING: 500,
}


class ReveniumError(Exception):
    """Base class for every error raised by revenium_runway.

    WHY: A single base type lets callers catch everything from this package
    in one clause while still exposing the finer-grained type tag.

    HOW: Subclasses only pin ``error_type``; all state lives here.

    RULES:
    - message is always set
    - cause is the wrapped lower-level exception, or None
    - status_code is 0 when no HTTP response was involved
    """

    error_type = ERROR_TYPE_INTERNAL

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        status_code: int = 0,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.cause = cause
        self.status_code = status_code
        self.details: dict[str, Any] = dict(details or {})
        super().__init__(self._render())

    def _render(self) -> str:
        if self.cause is not None:
            return f"[{self.error_type}] {self.message}: {self.cause}"
        return f"[{self.error_type}] {self.message}"

    @property
    def http_status(self) -> int:
        """HTTP status associated with this error (explicit or per-type default)."""
        if self.status_code:
            return self.status_code
        return _DEFAULT_HTTP_STATUS.get(self.error_type, 500)

    def with_details(self, key: str, value: Any) -> ReveniumError:
        self.details[key] = value
        return self


class ConfigurationError(ReveniumError):
    """Missing or malformed configuration (API keys, base URLs)."""

    error_type = ERROR_TYPE_CONFIG


class ValidationError(ReveniumError):
    """Request or payload rejected as invalid. Never retried."""

    error_type = ERROR_TYPE_VALIDATION


class AuthenticationError(ReveniumError):
    """Credentials rejected by the provider (401/403)."""

    error_type = ERROR_TYPE_AUTH


class NetworkError(ReveniumError):
    """Transport-level failure: connect, read, or timeout."""

    error_type = ERROR_TYPE_NETWORK


class ProviderError(ReveniumError):
    """Non-2xx or undecodable response from the Runway task API."""

    error_type = ERROR_TYPE_PROVIDER


class TaskError(ReveniumError):
    """A generation task did not reach SUCCEEDED.

    WHY: Polling can end badly in several ways (the task failed or was
    canceled upstream, the caller cancelled, or a timeout/attempt ceiling
    was hit). The orchestrator needs to know which, and whether a status
    was ever observed, to decide whether usage must still be metered.

    HOW: The poller fills ``reason`` and ``last_status``. The orchestrator
    attaches the built GenerationResult as ``result`` when it metered the
    call before re-raising.

    RULES:
    - reason is one of TASK_FAILED, TASK_CANCELED, POLL_TIMEOUT,
      POLL_MAX_ATTEMPTS, POLL_CANCELLED, or None for other task errors
    - last_status is the last TaskStatusResponse seen, or None
    - result is None unless the orchestrator produced one
    """

    error_type = ERROR_TYPE_TASK

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        reason: str | None = None,
        last_status: Any = None,
    ) -> None:
        super().__init__(message, cause)
        self.reason = reason
        self.last_status = last_status
        self.result: Any = None


class MeteringError(ReveniumError):
    """Usage record could not be delivered after all retries."""

    error_type = ERROR_TYPE_METERING


class InternalError(ReveniumError):
    """Unexpected fault inside the package."""

    error_type = ERROR_TYPE_INTERNAL


# Poll termination reasons carried on TaskError.reason
TASK_FAILED = "failed"
TASK_CANCELED = "canceled"
POLL_TIMEOUT = "timeout"
POLL_MAX_ATTEMPTS = "max_attempts"
POLL_CANCELLED = "cancelled_by_caller"
