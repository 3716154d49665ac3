"""Domain-level exceptions.

All business rule violations are expressed as subclasses of DomainException
so the presentation layer can catch them uniformly and display
user-friendly messages.  Nothing raised from the core should need more
than ``except DomainException`` to degrade into a visible, recoverable state.
"""

from __future__ import annotations


class DomainException(Exception):
    """Base class for all domain errors."""


class ValidationError(DomainException):
    """A business rule or invariant was violated."""


class EntityNotFoundError(DomainException):
    """A requested entity does not exist."""


class PharmacyMismatchError(ValidationError):
    """An item from a second pharmacy was added to a bound cart."""

    def __init__(self, bound_pharmacy_id: str, attempted_pharmacy_id: str) -> None:
        super().__init__(
            "You can only add medicines from one pharmacy at a time. "
            "Please clear your cart to add from another pharmacy."
        )
        self.bound_pharmacy_id = bound_pharmacy_id
        self.attempted_pharmacy_id = attempted_pharmacy_id


class InvalidQuoteError(ValidationError):
    """A quote failed line-level validation."""


class InvalidTransitionError(ValidationError):
    """The requested transition is not valid from the order's current status."""


class QuoteWindowExpiredError(DomainException):
    """The quote window for an order has closed."""

    def __init__(self, order_id: str) -> None:
        super().__init__(
            f"Quote window for order {order_id} expired. "
            "You cannot respond to this order now."
        )
        self.order_id = order_id


class NetworkError(DomainException):
    """A remote call failed transiently; the caller may retry."""

    retryable = True


class ConversionConflictError(DomainException):
    """The repository reports the order was already converted."""

    def __init__(self, order_id: str, existing_order_id: str) -> None:
        super().__init__(
            f"Order {order_id} was already converted to order {existing_order_id}"
        )
        self.order_id = order_id
        self.existing_order_id = existing_order_id
