"""Error taxonomy shared by the ledger, session store and orchestrator."""

from __future__ import annotations


class DeliveryError(Exception):
    """Base class for failures that abort a user-requested transition.

    ``code`` is a stable machine-readable identifier carried into render
    payloads; ``message`` is safe to show to the user.
    """

    code = "delivery_error"
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None, **details) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class NotFound(DeliveryError):
    code = "not_found"
    default_message = "Not found."


class InsufficientFunds(DeliveryError):
    code = "insufficient_funds"
    default_message = "Insufficient balance."

    def __init__(self, message: str | None = None, *, required: int = 0, available: int = 0) -> None:
        super().__init__(message, required=required, available=available)
        self.required = required
        self.available = available


class OutOfRange(DeliveryError):
    code = "out_of_range"
    default_message = "Selection is out of range."


class ResolutionFailed(DeliveryError):
    code = "resolution_failed"
    default_message = "This video is not available right now."


class SessionExpired(DeliveryError):
    code = "session_expired"
    default_message = "Your search session has expired. Please search again."


class UpstreamError(DeliveryError):
    code = "upstream_unavailable"
    default_message = "The source site is unavailable. Please try again."
    retryable = True


class UpstreamTimeout(UpstreamError):
    code = "upstream_timeout"
    default_message = "The source site took too long to answer. Please try again."


class UpstreamUnavailable(UpstreamError):
    code = "upstream_unavailable"


class ActionInProgress(DeliveryError):
    code = "in_progress"
    default_message = "That request is already being processed."


class InvalidTransition(DeliveryError):
    code = "invalid_transition"
    default_message = "That action is not available right now."
