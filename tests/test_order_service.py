"""Unit tests for the order builder and order queries."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from common.exceptions import (
    EmptyCartError, NotFoundError, OrdersClosedError, OutOfStockError, ValidationError,
)
from common.helpers import now_utc
from modules.admin.settings_service import set_setting
from modules.canteen.models import Canteen
from modules.cart.models import CartItem
from modules.cart.service import cart_service
from modules.catalog.models import MenuItem
from modules.order.models import Order, OrderItem, OrderStatus, OrderStatusLog
from modules.order.service import order_service, pickup_time_slots


@pytest.mark.unit
class TestPlaceOrder:
    """Building a pending order from the cart."""

    def test_totals_and_snapshot(self, db, seed, place_order) -> None:
        order = place_order()

        assert order.status == OrderStatus.PENDING.value
        assert order.canteen_amount == Decimal("156.00")
        assert order.platform_fee == Decimal("3.00")
        assert order.total_amount == Decimal("159.00")
        assert order.payment_reference is None

        items = db.query(OrderItem).filter(OrderItem.order_id == order.id).order_by(OrderItem.id).all()
        assert [(i.item_name, i.price, i.quantity, i.total_price) for i in items] == [
            ("Masala Dosa", Decimal("60.00"), 2, Decimal("120.00")),
            ("Masala Chai", Decimal("12.00"), 3, Decimal("36.00")),
        ]
        assert sum(i.total_price for i in items) + order.platform_fee == order.total_amount

    def test_cart_is_kept_until_payment(self, db, seed, place_order) -> None:
        place_order()
        assert db.query(CartItem).filter(CartItem.user_id == seed.asha.user_id).count() == 2

    def test_initial_status_log_entry(self, db, seed, place_order) -> None:
        order = place_order()

        logs = db.query(OrderStatusLog).filter(OrderStatusLog.order_id == order.id).all()
        assert [(log.old_status, log.new_status) for log in logs] == [(None, "pending")]

    def test_item_snapshot_ignores_later_price_change(self, db, seed, place_order) -> None:
        order = place_order()
        db.query(MenuItem).filter(MenuItem.id == seed.dosa_id).update({MenuItem.price: Decimal("99.00")})
        db.commit()

        item = db.query(OrderItem).filter(OrderItem.order_id == order.id, OrderItem.menu_item_id == seed.dosa_id).one()
        assert item.price == Decimal("60.00")

    def test_platform_fee_from_system_setting(self, db, seed, place_order) -> None:
        set_setting(db, "platform_fee", "5")
        db.commit()

        order = place_order()
        assert order.platform_fee == Decimal("5.00")
        assert order.total_amount == Decimal("161.00")

    def test_platform_fee_canteen_override(self, db, seed, place_order) -> None:
        set_setting(db, "platform_fee", "5")
        db.query(Canteen).filter(Canteen.id == seed.main_id).update({Canteen.platform_fee: Decimal("2.50")})
        db.commit()

        order = place_order()
        assert order.platform_fee == Decimal("2.50")

    def test_empty_cart(self, db, seed, pickup_time) -> None:
        with pytest.raises(EmptyCartError):
            order_service.place_order(db, seed.asha, seed.main_id, pickup_time)

    def test_cart_lines_from_another_canteen_do_not_count(self, db, seed, pickup_time) -> None:
        cart_service.add_item(db, seed.asha, seed.coffee_id, 1)
        db.commit()

        with pytest.raises(EmptyCartError):
            order_service.place_order(db, seed.asha, seed.main_id, pickup_time)

    def test_closed_canteen(self, db, seed, pickup_time) -> None:
        cart_service.add_item(db, seed.asha, seed.dosa_id, 1)
        db.query(Canteen).filter(Canteen.id == seed.main_id).update({Canteen.accepting_orders: False})
        db.commit()

        with pytest.raises(OrdersClosedError):
            order_service.place_order(db, seed.asha, seed.main_id, pickup_time)
        assert db.query(Order).count() == 0

    def test_missing_pickup_time(self, db, seed) -> None:
        cart_service.add_item(db, seed.asha, seed.dosa_id, 1)
        db.commit()

        with pytest.raises(ValidationError):
            order_service.place_order(db, seed.asha, seed.main_id, None)

    def test_pickup_time_too_soon(self, db, seed) -> None:
        cart_service.add_item(db, seed.asha, seed.dosa_id, 1)
        db.commit()

        with pytest.raises(ValidationError):
            order_service.place_order(db, seed.asha, seed.main_id, now_utc() + timedelta(minutes=5))

    def test_insufficient_stock_creates_nothing(self, db, seed, pickup_time) -> None:
        cart_service.add_item(db, seed.asha, seed.chai_id, 4)
        db.commit()
        db.query(MenuItem).filter(MenuItem.id == seed.chai_id).update({MenuItem.available_quantity: 3})
        db.commit()

        with pytest.raises(OutOfStockError):
            order_service.place_order(db, seed.asha, seed.main_id, pickup_time)
        assert db.query(Order).count() == 0
        assert db.query(OrderItem).count() == 0

    def test_unknown_canteen(self, db, seed, pickup_time) -> None:
        with pytest.raises(NotFoundError):
            order_service.place_order(db, seed.asha, 9999, pickup_time)


@pytest.mark.unit
class TestPickupSlots:

    def test_slots_start_after_lead_time_on_slot_boundary(self) -> None:
        now = datetime(2026, 10, 17, 10, 7, 30, tzinfo=timezone.utc)

        slots = pickup_time_slots(now)

        assert len(slots) == 8
        assert slots[0] == datetime(2026, 10, 17, 10, 45, tzinfo=timezone.utc)
        assert slots[-1] == datetime(2026, 10, 17, 12, 30, tzinfo=timezone.utc)
        assert all(b - a == timedelta(minutes=15) for a, b in zip(slots, slots[1:]))


@pytest.mark.unit
class TestExpiry:

    def test_stale_pending_orders_are_cancelled(self, db, seed, place_order) -> None:
        stale = place_order()
        db.query(Order).filter(Order.id == stale.id).update(
            {Order.created_at: now_utc() - timedelta(minutes=45)}
        )
        db.commit()

        assert order_service.release_expired_orders(db) == 1

        order = db.query(Order).filter(Order.id == stale.id).one()
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancelled_at is not None
        last_log = order.status_logs[-1]
        assert last_log.changed_by == "system"

    def test_fresh_orders_are_kept(self, db, seed, place_order) -> None:
        place_order()
        assert order_service.release_expired_orders(db) == 0

    def test_zero_window_disables_expiry(self, db, seed, place_order, monkeypatch) -> None:
        stale = place_order()
        db.query(Order).filter(Order.id == stale.id).update(
            {Order.created_at: now_utc() - timedelta(days=1)}
        )
        db.commit()
        monkeypatch.setattr("modules.order.service.PENDING_ORDER_EXPIRE_MINUTES", 0)

        assert order_service.release_expired_orders(db) == 0
        assert db.query(Order.status).filter(Order.id == stale.id).scalar() == "pending"


@pytest.mark.unit
class TestOrderQueries:

    def test_list_orders_newest_first(self, db, seed, place_order) -> None:
        first = place_order()
        second = place_order(lines=[(seed.dosa_id, 1)])

        orders = order_service.list_orders(db, seed.asha)
        assert [o.id for o in orders] == [second.id, first.id]

    def test_order_visibility(self, db, seed, place_order) -> None:
        order = place_order()

        assert order_service.get_order(db, seed.asha, order.id).id == order.id
        assert order_service.get_order(db, seed.main_admin, order.id).id == order.id
        with pytest.raises(NotFoundError):
            order_service.get_order(db, seed.ravi, order.id)
        with pytest.raises(NotFoundError):
            order_service.get_order(db, seed.library_admin, order.id)

    def test_canteen_orders_filter(self, db, seed, place_order) -> None:
        place_order()

        assert len(order_service.list_canteen_orders(db, seed.main_admin, seed.main_id)) == 1
        assert order_service.list_canteen_orders(db, seed.main_admin, seed.main_id, "ready") == []
        with pytest.raises(ValidationError):
            order_service.list_canteen_orders(db, seed.main_admin, seed.main_id, "shipped")
