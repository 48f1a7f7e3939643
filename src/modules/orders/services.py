"""Order service layer (Use Cases).

Orchestrates order creation, look-up, customer cancellation and
operations-originated status changes against the injected
``IOrderRepository``.  Every status change goes through
``StatusMachine.transition`` inside ``repository.update``, so it happens
under the order's lock and two writers on one order never interleave.

Rules enforced here:
- A checkout needs at least one item, a total matching the item sum and,
  for delivery, an address.  Nothing is stored when a rule fails.
- Replaying a checkout with the same idempotency key returns the
  original order id.
- Customers may cancel only while ``CancellationPolicy`` allows it.
- Refused or unknown-order transitions return ``False``; they are
  expected outcomes for a UI, not errors.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, List, Optional, Union

import structlog
import uuid6

from modules.orders.constants import (
    ORDER_ID_MAX_RETRIES,
    DeliveryType,
    OrderStatus,
)
from modules.orders.dtos import OrderOutputDTO, StatusUpdateDTO
from modules.orders.events import OrderCancelled, OrderCreated, OrderStatusChanged
from modules.orders.exceptions import (
    DuplicateOrderId,
    EmptyCartError,
    InvalidTransitionError,
    MissingAddressError,
    OrderNotFound,
    TotalMismatchError,
    TrackingUpdateNotAllowed,
)
from modules.orders.models import (
    DeliveryInfo,
    Order,
    OrderLineItem,
    StatusChange,
    compute_total,
    generate_order_id,
)
from modules.orders.policies import can_cancel
from modules.orders.state_machine import StatusMachine
from shared.infrastructure.bus import InMemoryEventBus

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.repositories.interfaces import IOrderRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """Application service for Order use-cases.

    Receives the repository (and optionally bus, state machine and clock)
    via constructor injection.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        event_bus: Optional[IEventBus] = None,
        state_machine: Optional[StatusMachine] = None,
        total_tolerance: Decimal = Decimal("0.01"),
        order_id_max_retries: int = ORDER_ID_MAX_RETRIES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._order_repo = order_repository
        self._event_bus = event_bus if event_bus is not None else InMemoryEventBus()
        self._machine = state_machine or StatusMachine()
        self._total_tolerance = total_tolerance
        self._order_id_max_retries = order_id_max_retries
        self._clock = clock

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, dto: CreateOrderDTO) -> str:
        """Validate a checkout submission and store it as a pending order.

        Returns the new order id, or the original id when a submission that
        passes validation replays a known idempotency key.

        Raises:
            EmptyCartError: ``dto.items`` is empty.
            TotalMismatchError: ``dto.total`` differs from the item sum by
                more than the configured tolerance.
            MissingAddressError: delivery order without an address.
        """
        log = logger.bind(user_id=dto.user_id, delivery_type=str(dto.delivery_type))
        log.info("order.creation_started")

        # 1. Cart must not be empty
        if not dto.items:
            log.warning("order.empty_cart")
            raise EmptyCartError("Order must have at least one item.")

        items = tuple(
            OrderLineItem(
                name=item.name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                observations=item.observations or None,
            )
            for item in dto.items
        )

        # 2. Client total must match the item sum
        computed = compute_total(items)
        if abs(computed - dto.total) > self._total_tolerance:
            log.warning(
                "order.total_mismatch",
                submitted=str(dto.total),
                computed=str(computed),
            )
            raise TotalMismatchError(dto.total, computed)

        # 3. Delivery needs an address; pickup never keeps one
        info = dto.delivery_info
        address = (info.address or "").strip()
        is_delivery = dto.delivery_type == DeliveryType.DELIVERY
        if is_delivery and not address:
            log.warning("order.missing_address")
            raise MissingAddressError("Delivery orders require an address.")

        delivery_info = DeliveryInfo(
            name=info.name,
            phone=info.phone,
            time=info.time,
            address=address if is_delivery else None,
            complement=info.complement or None,
        )

        # 4. Idempotency check
        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                log.info(
                    "order.idempotency_hit",
                    order_id=existing.id,
                    key=dto.idempotency_key,
                )
                return existing.id

        # 5. Persist with a fresh id
        now = self._clock()
        created = StatusChange(
            id=uuid6.uuid7(),
            old_status=None,
            new_status=OrderStatus.PENDING,
            notes="Order created",
            created_at=now,
        )
        for attempt in range(self._order_id_max_retries):
            order = Order(
                id=generate_order_id(now),
                user_id=dto.user_id,
                items=items,
                total=computed,
                delivery_type=dto.delivery_type,
                delivery_info=delivery_info,
                payment_method=dto.payment_method,
                created_at=now,
                history=(created,),
                idempotency_key=dto.idempotency_key,
            )
            try:
                stored = self._order_repo.save(order)
            except DuplicateOrderId:
                log.warning("order.id_collision", attempt=attempt, order_id=order.id)
                continue
            break
        else:
            raise RuntimeError(
                f"Failed to generate unique order id after "
                f"{self._order_id_max_retries} attempts"
            )

        if stored.id != order.id:
            # Lost an idempotency race to a concurrent replay.
            return stored.id

        log.info("order.created", order_id=stored.id, total=str(stored.total))
        self._event_bus.publish(
            OrderCreated(
                aggregate_id=stored.id,
                user_id=stored.user_id,
                total=str(stored.total),
            )
        )
        return stored.id

    def cancel_order(self, order_id: str, notes: str = "") -> bool:
        """Cancel an order on the customer's behalf.

        Returns ``False`` when the order does not exist or can no longer be
        cancelled; the order is left untouched in both cases.
        """
        log = logger.bind(order_id=order_id)

        def _cancel(current: Order) -> Order:
            if not can_cancel(current.status):
                raise InvalidTransitionError(current.status, OrderStatus.CANCELLED)
            return self._machine.transition(
                current,
                OrderStatus.CANCELLED,
                notes=notes or "Order cancelled",
                now=self._clock(),
            )

        try:
            order = self._order_repo.update(order_id, _cancel)
        except OrderNotFound:
            log.info("order.cancel_not_found")
            return False
        except InvalidTransitionError as exc:
            log.warning("order.cancel_not_allowed", current_status=str(exc.current))
            return False

        previous = order.history[-1].old_status
        log.info("order.cancelled", previous_status=str(previous))
        self._event_bus.publish(
            OrderCancelled(aggregate_id=order.id, previous_status=str(previous))
        )
        return True

    def advance_status(
        self,
        order_id: str,
        next_status: Union[OrderStatus, str],
        extra: Optional[StatusUpdateDTO] = None,
    ) -> bool:
        """Apply a kitchen/dispatch status change.

        ``extra`` may carry notes, an estimated delivery time and, when the
        target is ``delivering``, the courier's current location.  Returns
        ``False`` for unknown orders and for transitions the state machine
        refuses.
        """
        extra = extra or StatusUpdateDTO()
        log = logger.bind(order_id=order_id, new_status=str(next_status))

        location = extra.current_location
        if location is not None and str(next_status) != OrderStatus.DELIVERING.value:
            log.warning("order.location_ignored")
            location = None

        def _advance(current: Order) -> Order:
            return self._machine.transition(
                current,
                next_status,
                notes=extra.notes,
                estimated_delivery=extra.estimated_delivery,
                current_location=location,
                now=self._clock(),
            )

        try:
            order = self._order_repo.update(order_id, _advance)
        except OrderNotFound:
            log.info("order.advance_not_found")
            return False
        except InvalidTransitionError as exc:
            log.warning("order.invalid_transition", current_status=str(exc.current))
            return False

        old_status = order.history[-1].old_status
        log.info("order.status_updated", old_status=str(old_status))
        self._event_bus.publish(
            OrderStatusChanged(
                aggregate_id=order.id,
                old_status=str(old_status),
                new_status=str(order.status),
            )
        )
        return True

    def update_location(self, order_id: str, current_location: str) -> bool:
        """Record where a delivering order currently is.

        Returns ``False`` for unknown orders and for orders that are not
        ``delivering``.
        """
        log = logger.bind(order_id=order_id)

        def _track(current: Order) -> Order:
            if current.status != OrderStatus.DELIVERING:
                raise TrackingUpdateNotAllowed(
                    f"Order {current.id} is {current.status}, not delivering."
                )
            return dataclasses.replace(current, current_location=current_location)

        try:
            self._order_repo.update(order_id, _track)
        except OrderNotFound:
            log.info("order.tracking_not_found")
            return False
        except TrackingUpdateNotAllowed:
            log.warning("order.tracking_not_allowed")
            return False

        log.info("order.location_updated")
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Optional[Order]:
        """Retrieve a single order snapshot, or ``None``."""
        return self._order_repo.get_by_id(order_id)

    def get_order_view(self, order_id: str) -> Optional[OrderOutputDTO]:
        """Retrieve an order already projected for display, or ``None``."""
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            return None
        return OrderOutputDTO.from_entity(order)

    def list_orders_for_user(self, user_id: str) -> List[Order]:
        """Return the user's orders, most recent first."""
        return self._order_repo.list_by_user(user_id)
