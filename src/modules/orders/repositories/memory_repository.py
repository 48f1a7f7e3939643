"""In-process implementation of the Order repository.

Satisfies ``IOrderRepository`` with a dict of immutable ``Order``
snapshots.  One store instance is built per process (or per test) and
injected into ``OrderService``.

Concurrency control:
- ``_registry_lock`` guards the dicts themselves and is only held for
  look-ups and swaps, never while a mutator runs.
- each order id has its own ``threading.Lock``; ``update`` holds it for
  the read-mutate-swap so two writers on the same order serialize, while
  different orders proceed in parallel.
- lock acquisition is bounded by ``lock_timeout``; on expiry the caller
  gets ``OrderStoreTimeout`` instead of hanging.
"""

from __future__ import annotations

import itertools
import threading
from typing import Any, Callable, Dict, List, Optional

import structlog

from modules.orders.constants import OrderStatus
from modules.orders.exceptions import DuplicateOrderId, OrderNotFound, OrderStoreTimeout
from modules.orders.models import Order
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class InMemoryOrderRepository(IOrderRepository):
    """Concrete Order repository backed by process memory."""

    def __init__(self, lock_timeout: float = 5.0) -> None:
        self._lock_timeout = lock_timeout
        self._registry_lock = threading.Lock()
        self._orders: Dict[str, Order] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._sequence: Dict[str, int] = {}
        self._by_idempotency_key: Dict[str, str] = {}
        self._counter = itertools.count()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def save(self, entity: Order) -> Order:
        """Insert a new order and return the stored snapshot.

        If ``entity.idempotency_key`` is already known the existing order is
        returned and nothing is inserted, so two concurrent replays of the
        same checkout still produce a single order.

        Raises:
            DuplicateOrderId: an order with ``entity.id`` already exists.
        """
        with self._registry_lock:
            key = entity.idempotency_key
            if key and key in self._by_idempotency_key:
                existing = self._orders[self._by_idempotency_key[key]]
                logger.info(
                    "order.idempotency_hit", order_id=existing.id, key=key
                )
                return existing
            if entity.id in self._orders:
                raise DuplicateOrderId(f"Order {entity.id} already exists.")

            self._orders[entity.id] = entity
            self._locks[entity.id] = threading.Lock()
            self._sequence[entity.id] = next(self._counter)
            if key:
                self._by_idempotency_key[key] = entity.id

        logger.info("order.saved", order_id=entity.id, user_id=entity.user_id)
        return entity

    put = save

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, id: str, mutator: Callable[[Order], Order]) -> Order:
        """Apply ``mutator`` to the current snapshot under the order's lock."""
        with self._registry_lock:
            lock = self._locks.get(id)
        if lock is None:
            raise OrderNotFound(f"Order {id} not found.")

        if not lock.acquire(timeout=self._lock_timeout):
            logger.error("order.lock_timeout", order_id=id, timeout=self._lock_timeout)
            raise OrderStoreTimeout(
                f"Timed out after {self._lock_timeout}s waiting for order {id}."
            )
        try:
            current = self._orders[id]
            updated = mutator(current)
            if updated.id != id:
                raise ValueError("A mutator cannot change the order id.")
            with self._registry_lock:
                self._orders[id] = updated
        finally:
            lock.release()

        logger.debug("order.updated", order_id=id, status=str(updated.status))
        return updated

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Return the current snapshot, or ``None`` for unknown ids."""
        return self._orders.get(id)

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        """List orders newest first, optionally filtered.

        Supported filter keys:
        - ``user_id``
        - ``status``
        """
        filters = filters or {}
        with self._registry_lock:
            rows = [(order, self._sequence[order.id]) for order in self._orders.values()]

        if "user_id" in filters:
            rows = [r for r in rows if r[0].user_id == filters["user_id"]]
        if "status" in filters:
            wanted = OrderStatus(filters["status"])
            rows = [r for r in rows if r[0].status == wanted]

        rows.sort(key=lambda r: (r[0].created_at, r[1]), reverse=True)
        return [order for order, _ in rows]

    def list_by_user(self, user_id: str) -> List[Order]:
        return self.list({"user_id": user_id})

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        with self._registry_lock:
            order_id = self._by_idempotency_key.get(key)
            return self._orders.get(order_id) if order_id else None

    # ------------------------------------------------------------------
    # Delete (IRepository contract)
    # ------------------------------------------------------------------

    def delete(self, id: str) -> bool:
        """Orders are kept for the life of the process; always ``False``."""
        logger.warning("order.delete_refused", order_id=id)
        return False

    def __len__(self) -> int:
        return len(self._orders)
