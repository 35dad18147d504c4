"""Error taxonomy for pinchgate.

Purpose:
- Give dispatch, queue, gateway and governance code one family of typed
  exceptions with a stable ``code`` so callers (CLI, automation) can branch on
  the kind of failure instead of parsing messages.
- ``str(error)`` is always the single human-readable message shown to users.

Usage:
- Catch ``PinchGateError`` for any expected failure and inspect ``code`` or
  ``details``.
- ``NotFoundError``, ``ForbiddenError`` and ``InvalidInputError`` are raised
  before any side effect or audit write.
"""

from __future__ import annotations

from typing import Any, Optional


class PinchGateError(Exception):
    """Base error for every expected pinchgate failure.

    Args:
        message: Human-readable error description.
        details: Optional structured context (never secret values).
    """

    code = "error"

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(PinchGateError):
    """Unknown ability, governance task, feature flag or queue item."""

    code = "not_found"


class ForbiddenError(PinchGateError):
    """The actor may not run this ability (capability missing or ability disabled)."""

    code = "forbidden"


class InvalidInputError(PinchGateError):
    """Input failed schema validation.

    Args:
        message: Human-readable description of the first violation.
        violation: The first violation as ``{"loc": ..., "msg": ..., "type": ...}``.
    """

    code = "invalid_input"

    def __init__(self, message: str, *, violation: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, details=violation)
        self.violation = violation or {}


class UnavailableError(PinchGateError):
    """The AI gateway circuit is open.

    Args:
        message: Human-readable description.
        retry_after: Seconds until the gateway will be tried again.
    """

    code = "unavailable"

    def __init__(self, message: str, *, retry_after: int = 0) -> None:
        super().__init__(message, details={"retry_after": retry_after})
        self.retry_after = retry_after


class AlreadyProcessedError(PinchGateError):
    """The queue item exists but is no longer pending."""

    code = "already_processed"

    def __init__(self, message: str, *, status: Optional[str] = None) -> None:
        super().__init__(message, details={"status": status})
        self.status = status


class UpstreamFailureError(PinchGateError):
    """A handler or the AI gateway reported a failure.

    Args:
        message: Human-readable description.
        status_code: HTTP status code when the failure came from a gateway response.
        details: Optional structured payload.
    """

    code = "upstream_failure"

    def __init__(self, message: str, *, status_code: Optional[int] = None, details: Optional[Any] = None) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code


class DeliveryFailureError(PinchGateError):
    """A webhook delivery did not succeed."""

    code = "delivery_failure"
