"""Order repository interface.

Extends ``IRepository[Order]`` with the operations the Order aggregate
needs: per-user listing, atomic field-level updates and idempotency-key
look-up.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Callable, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    Implementations own the canonical records.  Reads return immutable
    snapshots; writes to the same order id are serialized.
    """

    @abstractmethod
    def list_by_user(self, user_id: str) -> List[Order]:
        """Orders owned by *user_id*, newest first; ``[]`` when none."""

    @abstractmethod
    def update(self, id: str, mutator: Callable[[Order], Order]) -> Order:
        """Replace the order with ``mutator(current)`` atomically.

        Raises:
            OrderNotFound: no order with that id.
            OrderStoreTimeout: the order's lock could not be acquired.
        """

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""
