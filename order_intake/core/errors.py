"""
Intake Error Taxonomy

Every failure of the intake pipeline is raised as a subclass of IntakeError.
The HTTP layer maps ``http_status`` and ``to_dict()`` straight onto the
response, so services never build HTTP responses themselves.

    ValidationFailed      400  malformed or missing fields
    InvalidPromotion      400  promotion line missing, ineligible or for another item
    ChannelDisabled       400  branch not accepting this channel or service type
    ZoneInactive          400  delivery zone disabled
    BelowMinimum          400  subtotal under the zone/branch minimum
    InvalidPaymentMethod  400  payment method outside the lifecycle table
    NotFound              404  branch, item, extra or zone missing
    IdempotencyConflict   409  same idempotency key, order not complete yet
    SequenceUnavailable   500  order number could not be allocated
    WriteFailed           500  persistence failed (after compensation)
    UpstreamUnavailable   503  a read collaborator failed
    UpstreamTimeout       504  a collaborator exceeded its time bound
"""

from typing import Any, Optional


class IntakeError(Exception):
    """Base class for typed intake failures."""

    kind: str = "intake_error"
    http_status: int = 400
    retryable: bool = False

    def __init__(self, message: str, **payload: Any):
        super().__init__(message)
        self.message = message
        self.payload = payload
        # Orchestrator state in which the failure happened
        self.state: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "kind": self.kind}
        body.update(self.payload)
        if self.retryable:
            body["retryable"] = True
        return body

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.message!r} {self.payload}>"


class ValidationFailed(IntakeError):
    kind = "validation"


class NotFound(IntakeError):
    kind = "not_found"
    http_status = 404


class InvalidPromotion(IntakeError):
    kind = "invalid_promotion"


class ChannelDisabled(IntakeError):
    kind = "channel_disabled"


class ZoneInactive(IntakeError):
    kind = "zone_inactive"


class BelowMinimum(IntakeError):
    """Subtotal under the applicable minimum; ``minimum`` is always in the payload."""

    kind = "below_minimum"

    def __init__(self, message: str, minimum: float, **payload: Any):
        super().__init__(message, minimum=minimum, **payload)
        self.minimum = minimum


class InvalidPaymentMethod(IntakeError):
    kind = "invalid_payment_method"


class UpstreamTimeout(IntakeError):
    kind = "upstream_timeout"
    http_status = 504
    retryable = True

    def __init__(self, message: str, component: str, **payload: Any):
        super().__init__(message, component=component, **payload)
        self.component = component


class IdempotencyConflict(IntakeError):
    """Another submission with the same idempotency key has not finished writing."""

    kind = "idempotency_conflict"
    http_status = 409
    retryable = True


class SequenceUnavailable(IntakeError):
    kind = "sequence_unavailable"
    http_status = 500
    retryable = True


class WriteFailed(IntakeError):
    kind = "write_failed"
    http_status = 500
    retryable = True


class UpstreamUnavailable(IntakeError):
    """A read collaborator answered with an error instead of data."""

    kind = "upstream_unavailable"
    http_status = 503
    retryable = True

    def __init__(self, message: str, component: str, **payload: Any):
        super().__init__(message, component=component, **payload)
        self.component = component


class StoreError(Exception):
    """Raised by a store when a single-table call fails; never sent to clients as-is."""
