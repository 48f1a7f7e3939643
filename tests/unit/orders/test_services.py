"""Unit tests for OrderService.

Covers:
- Checkout validation (empty cart, total mismatch, missing address).
- Successful creation: pending status, recomputed total, history, event.
- Idempotent replays and id-collision retries.
- Operations transitions with extras, tracking updates and queries.
- Failing event handlers never change the outcome of a command.
- Collaborator failures with a mocked repository.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from modules.orders.constants import DeliveryType, OrderStatus
from modules.orders.dtos import CreateOrderItemDTO, DeliveryInfoDTO, StatusUpdateDTO
from modules.orders.events import OrderCancelled, OrderCreated, OrderStatusChanged
from modules.orders.exceptions import (
    EmptyCartError,
    MissingAddressError,
    OrderNotFound,
    OrderStoreTimeout,
    TotalMismatchError,
)
from modules.orders.services import OrderService

pytestmark = pytest.mark.unit

ETA = datetime(2026, 10, 19, 13, 15, tzinfo=timezone.utc)


# ===========================================================================
# create_order
# ===========================================================================


class TestCreateOrder:
    def test_creates_pending_order(self, service, repository, make_dto, clock):
        order_id = service.create_order(make_dto())

        order = repository.get_by_id(order_id)
        assert order_id.startswith("order_")
        assert order.status == OrderStatus.PENDING
        assert order.total == Decimal("20.00")
        assert order.user_id == "user-1"
        assert order.created_at == datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        assert order.items[0].name == "Burger"
        assert order.items[0].quantity == 2

    def test_records_initial_history(self, service, make_dto):
        order = service.get_order(service.create_order(make_dto()))

        assert len(order.history) == 1
        assert order.history[0].old_status is None
        assert order.history[0].new_status == OrderStatus.PENDING
        assert order.history[0].notes == "Order created"

    def test_publishes_created_event(self, service, captured_events, make_dto):
        order_id = service.create_order(make_dto())

        assert len(captured_events) == 1
        event = captured_events[0]
        assert isinstance(event, OrderCreated)
        assert event.aggregate_id == order_id
        assert event.total == "20.00"

    def test_multiple_items(self, service, make_dto):
        dto = make_dto(
            items=[
                CreateOrderItemDTO(name="Burger", unit_price="10.00", quantity=2),
                CreateOrderItemDTO(
                    name="Batata", unit_price="7.50", quantity=1, observations="sem sal"
                ),
            ],
            total=Decimal("27.50"),
        )
        order = service.get_order(service.create_order(dto))

        assert order.total == Decimal("27.50")
        assert [i.name for i in order.items] == ["Burger", "Batata"]
        assert order.items[1].observations == "sem sal"

    def test_total_within_tolerance_stores_item_sum(self, service, make_dto):
        order_id = service.create_order(make_dto(total=Decimal("19.999")))
        assert service.get_order(order_id).total == Decimal("20.00")

    def test_empty_cart_rejected(self, service, repository, make_dto):
        with pytest.raises(EmptyCartError):
            service.create_order(make_dto(items=[], total=Decimal("0")))
        assert len(repository) == 0

    def test_total_mismatch_rejected(self, service, repository, make_dto):
        with pytest.raises(TotalMismatchError) as exc_info:
            service.create_order(make_dto(total=Decimal("15.00")))

        assert exc_info.value.computed == Decimal("20.00")
        assert exc_info.value.submitted == Decimal("15.00")
        assert len(repository) == 0

    @pytest.mark.parametrize("address", [None, "", "   "])
    def test_delivery_without_address_rejected(self, service, repository, make_dto, address):
        info = DeliveryInfoDTO(name="Ana", phone="11 5555-0000", time="12:00", address=address)
        with pytest.raises(MissingAddressError):
            service.create_order(make_dto(delivery_type=DeliveryType.DELIVERY, delivery_info=info))
        assert len(repository) == 0

    def test_pickup_drops_address(self, service, make_dto):
        info = DeliveryInfoDTO(
            name="Ana", phone="11 5555-0000", time="12:00", address="Rua A, 1"
        )
        order = service.get_order(service.create_order(make_dto(delivery_info=info)))
        assert order.delivery_info.address is None

    def test_delivery_keeps_trimmed_address(self, service, make_dto):
        info = DeliveryInfoDTO(
            name="Ana", phone="11 5555-0000", time="12:00", address="  Rua A, 1 "
        )
        order_id = service.create_order(
            make_dto(delivery_type=DeliveryType.DELIVERY, delivery_info=info)
        )
        assert service.get_order(order_id).delivery_info.address == "Rua A, 1"

    def test_idempotent_replay(self, service, repository, captured_events, make_dto):
        first = service.create_order(make_dto(idempotency_key="checkout-42"))
        second = service.create_order(make_dto(idempotency_key="checkout-42"))

        assert first == second
        assert len(repository) == 1
        assert len(captured_events) == 1

    @pytest.mark.parametrize(
        "overrides,error",
        [
            ({"items": [], "total": Decimal("0")}, EmptyCartError),
            ({"total": Decimal("15.00")}, TotalMismatchError),
            ({"delivery_type": DeliveryType.DELIVERY,
              "delivery_info": DeliveryInfoDTO(name="Ana", phone="11 5555-0000", time="12:00")},
             MissingAddressError),
        ],
    )
    def test_invalid_replay_is_rejected(self, service, repository, make_dto, overrides, error):
        service.create_order(make_dto(idempotency_key="checkout-42"))

        with pytest.raises(error):
            service.create_order(make_dto(idempotency_key="checkout-42", **overrides))
        assert len(repository) == 1
    def test_different_keys_create_distinct_orders(self, service, repository, make_dto):
        first = service.create_order(make_dto(idempotency_key="a"))
        second = service.create_order(make_dto(idempotency_key="b"))
        assert first != second
        assert len(repository) == 2

    def test_id_collision_retries(self, service, repository, make_dto):
        with patch(
            "modules.orders.services.generate_order_id",
            side_effect=["order_SAME", "order_SAME", "order_OTHER"],
        ):
            first = service.create_order(make_dto())
            second = service.create_order(make_dto())

        assert first == "order_SAME"
        assert second == "order_OTHER"
        assert len(repository) == 2

    def test_id_collision_exhausted(self, repository, event_bus, clock, make_dto):
        service = OrderService(
            repository, event_bus=event_bus, clock=clock, order_id_max_retries=2
        )
        with patch("modules.orders.services.generate_order_id", return_value="order_SAME"):
            service.create_order(make_dto())
            with pytest.raises(RuntimeError, match="unique order id"):
                service.create_order(make_dto())
        assert len(repository) == 1


# ===========================================================================
# advance_status / update_location
# ===========================================================================


class TestAdvanceStatus:
    def test_full_delivery_path(self, service, pending_delivery_order):
        order_id = pending_delivery_order

        assert service.advance_status(order_id, OrderStatus.PREPARING) is True
        assert service.advance_status(
            order_id,
            OrderStatus.DELIVERING,
            StatusUpdateDTO(estimated_delivery=ETA, current_location="Av. Paulista"),
        ) is True
        assert service.advance_status(order_id, "completed") is True

        order = service.get_order(order_id)
        assert order.status == OrderStatus.COMPLETED
        assert order.estimated_delivery == ETA
        assert [h.new_status for h in order.history] == [
            OrderStatus.PENDING,
            OrderStatus.PREPARING,
            OrderStatus.DELIVERING,
            OrderStatus.COMPLETED,
        ]

    def test_pickup_skips_delivering(self, service, pending_pickup_order):
        service.advance_status(pending_pickup_order, OrderStatus.PREPARING)

        assert service.advance_status(pending_pickup_order, OrderStatus.DELIVERING) is False
        assert service.advance_status(pending_pickup_order, OrderStatus.COMPLETED) is True

    def test_invalid_transition_returns_false(self, service, pending_delivery_order):
        assert service.advance_status(pending_delivery_order, OrderStatus.COMPLETED) is False
        assert service.get_order(pending_delivery_order).status == OrderStatus.PENDING

    def test_unknown_status_name_returns_false(self, service, pending_delivery_order):
        assert service.advance_status(pending_delivery_order, "shipped") is False

    def test_unknown_order_returns_false(self, service):
        assert service.advance_status("order_missing", OrderStatus.PREPARING) is False

    def test_terminal_order_is_frozen(self, service, pending_pickup_order):
        service.advance_status(pending_pickup_order, OrderStatus.PREPARING)
        service.advance_status(pending_pickup_order, OrderStatus.COMPLETED)
        before = service.get_order(pending_pickup_order)

        for target in OrderStatus:
            assert service.advance_status(pending_pickup_order, target) is False
        assert service.update_location(pending_pickup_order, "Centro") is False
        assert service.get_order(pending_pickup_order) == before

    def test_location_ignored_for_other_targets(self, service, pending_delivery_order):
        assert service.advance_status(
            pending_delivery_order,
            OrderStatus.PREPARING,
            StatusUpdateDTO(current_location="Centro", notes="Na chapa", estimated_delivery=ETA),
        ) is True

        order = service.get_order(pending_delivery_order)
        assert order.current_location is None
        assert order.estimated_delivery == ETA
        assert order.history[-1].notes == "Na chapa"

    def test_publishes_status_changed(self, service, captured_events, pending_delivery_order):
        captured_events.clear()
        service.advance_status(pending_delivery_order, OrderStatus.PREPARING)

        assert len(captured_events) == 1
        event = captured_events[0]
        assert isinstance(event, OrderStatusChanged)
        assert (event.old_status, event.new_status) == ("pending", "preparing")


class TestUpdateLocation:
    def test_updates_while_delivering(self, service, pending_delivery_order):
        service.advance_status(pending_delivery_order, OrderStatus.PREPARING)
        service.advance_status(pending_delivery_order, OrderStatus.DELIVERING)

        assert service.update_location(pending_delivery_order, "Rua Augusta") is True

        order = service.get_order(pending_delivery_order)
        assert order.current_location == "Rua Augusta"
        assert order.status == OrderStatus.DELIVERING

    def test_refused_before_delivering(self, service, pending_delivery_order):
        assert service.update_location(pending_delivery_order, "Rua Augusta") is False
        assert service.get_order(pending_delivery_order).current_location is None

    def test_unknown_order(self, service):
        assert service.update_location("order_missing", "Rua Augusta") is False


# ===========================================================================
# Queries
# ===========================================================================


class TestQueries:
    def test_get_unknown_order(self, service):
        assert service.get_order("order_missing") is None
        assert service.get_order_view("order_missing") is None

    def test_get_order_view(self, service, pending_delivery_order):
        view = service.get_order_view(pending_delivery_order)
        assert view.id == pending_delivery_order
        assert view.progress == 25
        assert view.can_cancel is True
        assert view.address == "Rua das Flores, 123"

    def test_list_orders_for_user_newest_first(self, service, make_dto):
        first = service.create_order(make_dto())
        second = service.create_order(make_dto())
        service.create_order(make_dto(user_id="user-2"))

        assert [o.id for o in service.list_orders_for_user("user-1")] == [second, first]

    def test_list_orders_for_unknown_user(self, service):
        assert service.list_orders_for_user("nobody") == []


# ===========================================================================
# Failing event handlers
# ===========================================================================


class FailingHandler:
    def handle(self, event) -> None:
        raise RuntimeError("handler failed")


class TestFailingEventHandler:
    @pytest.fixture()
    def failing_bus(self, event_bus):
        for event_class in (OrderCreated, OrderCancelled, OrderStatusChanged):
            event_bus.subscribe(event_class, FailingHandler())
        return event_bus

    def test_create_still_returns_id(self, service, repository, failing_bus, make_dto):
        order_id = service.create_order(make_dto())

        assert repository.get_by_id(order_id) is not None

    def test_cancel_still_returns_true(self, service, failing_bus, pending_pickup_order, caplog):
        with caplog.at_level(logging.ERROR):
            assert service.cancel_order(pending_pickup_order) is True

        assert service.get_order(pending_pickup_order).status == OrderStatus.CANCELLED
        assert "event.handler_failed" in caplog.text
        assert service.cancel_order(pending_pickup_order) is False

    def test_advance_still_returns_true(self, service, failing_bus, pending_delivery_order):
        assert service.advance_status(pending_delivery_order, OrderStatus.PREPARING) is True
        assert service.get_order(pending_delivery_order).status == OrderStatus.PREPARING

    def test_later_handlers_still_run(self, service, failing_bus, captured_events, make_dto):
        order_id = service.create_order(make_dto())

        assert [e.aggregate_id for e in captured_events] == [order_id]


# ===========================================================================
# Mocked repository
# ===========================================================================


class TestWithMockedRepository:
    @pytest.fixture()
    def service_and_repo(self):
        order_repo = MagicMock()
        return OrderService(order_repo), order_repo

    def test_cancel_not_found_from_store(self, service_and_repo):
        service, order_repo = service_and_repo
        order_repo.update.side_effect = OrderNotFound("gone")

        assert service.cancel_order("order_1") is False

    def test_store_timeout_propagates(self, service_and_repo):
        service, order_repo = service_and_repo
        order_repo.update.side_effect = OrderStoreTimeout("slow")

        with pytest.raises(OrderStoreTimeout):
            service.cancel_order("order_1")

    def test_validation_failure_never_touches_store(self, service_and_repo, make_dto):
        service, order_repo = service_and_repo

        with pytest.raises(TotalMismatchError):
            service.create_order(make_dto(total=Decimal("1.00")))

        order_repo.save.assert_not_called()

    def test_get_order_reads_through(self, service_and_repo):
        service, order_repo = service_and_repo
        sentinel = object()
        order_repo.get_by_id.return_value = sentinel

        assert service.get_order("order_1") is sentinel
        order_repo.get_by_id.assert_called_once_with("order_1")
