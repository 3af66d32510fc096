"""Exception hierarchy shared by the order flow, activation and gateways.

Every error carries a short human readable reason. Chat handlers show it to
the buyer or admin, the HTTP surface returns it in the error body.
"""
from __future__ import annotations


class OrderFlowError(RuntimeError):
    """Base class for all domain errors."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason or self.__class__.__name__)
        self.reason = reason or self.__class__.__name__


class ValidationError(OrderFlowError):
    """Malformed input. The caller reprompts in the same state."""


class ConflictError(OrderFlowError):
    """The request clashes with the current state of an order."""


class DuplicateOrder(ConflictError):
    """The buyer already has an in-progress order."""


class OrderAlreadyProcessed(ConflictError):
    """The order is no longer in the status the caller expected."""


class NotFoundError(OrderFlowError):
    """An order, subscriber or package does not exist."""


class OrderNotFound(NotFoundError):
    pass


class SubscriberNotFound(NotFoundError):
    pass


class UnknownPackage(NotFoundError):
    pass


class SubscriberUnresolved(ValidationError):
    """The order reached review without a subscriber key."""


class AuthorizationError(OrderFlowError):
    """A non-admin attempted an admin action."""


class TransportError(OrderFlowError):
    """An outbound message could not be delivered."""
