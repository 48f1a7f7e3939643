"""Customer cancellation policy.

An order can be cancelled by its customer while the kitchen has not
handed it to dispatch: ``pending`` or ``preparing``.  Once ``delivering``
the answer is permanently no.
"""

from __future__ import annotations

from typing import Union

from modules.orders.constants import CANCELLABLE_STATES, OrderStatus


def can_cancel(status: Union[OrderStatus, str]) -> bool:
    try:
        return OrderStatus(status) in CANCELLABLE_STATES
    except ValueError:
        return False
