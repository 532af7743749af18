"""
Error taxonomy shared by the lifecycle engine, streaming layer and HTTP surface.

Every error carries a machine-readable ``kind``, a human-readable ``reason``
and the HTTP status it maps to. ``to_dict()`` is the body the HTTP layer
returns, so clients never have to parse the message text.
"""

from typing import Any, Dict, Iterable, List, Optional


class OrderDeskError(Exception):
    """Base exception for all OrderDesk domain errors."""

    kind = "error"
    http_status = 500

    def __init__(self, reason: str, *, http_status: Optional[int] = None, **details: Any):
        super().__init__(reason)
        self.reason = reason
        self.details: Dict[str, Any] = details
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.kind, "reason": self.reason}
        body.update(self.details)
        return body


class ValidationError(OrderDeskError):
    """Malformed caller input."""
    kind = "validation_error"
    http_status = 400


class AuthenticationError(OrderDeskError):
    """Credential missing or not recognised."""
    kind = "authentication_error"
    http_status = 401


class AuthorizationError(OrderDeskError):
    """Actor does not own the resource."""
    kind = "authorization_error"
    http_status = 403


class NotFoundError(OrderDeskError):
    """Referenced order or merchant does not exist."""
    kind = "not_found"
    http_status = 404


class PreconditionFailedError(OrderDeskError):
    """Resource exists but its state does not permit the action."""
    kind = "precondition_failed"
    http_status = 403


class InvalidTransitionError(PreconditionFailedError):
    """Requested status is not reachable from the order's current status."""
    kind = "invalid_transition"
    http_status = 400

    def __init__(self, current: str, requested: str, allowed: Iterable[str], reason: Optional[str] = None):
        allowed_list: List[str] = list(allowed)
        if reason is None:
            reason = (
                f"Invalid status transition: {current} -> {requested}. "
                f"Allowed next: {', '.join(allowed_list) or 'none (terminal)'}"
            )
        super().__init__(reason, current=current, requested=requested, allowed=allowed_list)
        self.current = current
        self.requested = requested
        self.allowed = allowed_list


class StaleStatusError(OrderDeskError):
    """
    Store-level compare-and-set failure: the order's persisted status is no
    longer the one the caller validated against.
    """
    kind = "stale_status"
    http_status = 409

    def __init__(self, order_id: str, expected: str, actual: str):
        super().__init__(
            f"Order {order_id} status changed concurrently: expected {expected}, found {actual}",
            order_id=order_id,
            expected=expected,
            actual=actual,
        )
        self.order_id = order_id
        self.expected = expected
        self.actual = actual


__all__ = [
    "OrderDeskError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "PreconditionFailedError",
    "InvalidTransitionError",
    "StaleStatusError",
]
