"""Order domain exceptions.

Validation errors are raised by ``OrderService.create_order`` and never
leave a record behind.  ``InvalidTransitionError`` comes from the state
machine; the service converts it to a ``False`` return for the
customer-facing and operations entry points.
"""

from __future__ import annotations


class OrderValidationError(Exception):
    """A checkout submission was rejected; fix the input before retrying."""


class EmptyCartError(OrderValidationError):
    """The order has no line items."""


class TotalMismatchError(OrderValidationError):
    """The submitted total does not match the sum of the line items."""

    def __init__(self, submitted, computed) -> None:
        super().__init__(
            f"Submitted total {submitted} does not match item sum {computed}."
        )
        self.submitted = submitted
        self.computed = computed


class MissingAddressError(OrderValidationError):
    """A delivery order was submitted without an address."""


class InvalidTransitionError(Exception):
    """The requested status transition is not in the transition table."""

    def __init__(self, current, requested) -> None:
        super().__init__(f"Cannot transition from {current} to {requested}.")
        self.current = current
        self.requested = requested


class OrderNotFound(Exception):
    """The requested order does not exist in the store."""


class DuplicateOrderId(Exception):
    """An order with the same id is already stored."""


class OrderStoreTimeout(Exception):
    """The store could not acquire the order's lock in time."""


class TrackingUpdateNotAllowed(Exception):
    """Tracking fields can only change while the order is delivering."""
