"""Unit tests for canteen controls, menu management and daily statistics."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from common.exceptions import AuthorizationError, NotFoundError, ValidationError
from modules.admin.dashboard_service import dashboard_service
from modules.canteen.models import Canteen
from modules.canteen.service import canteen_service
from modules.cart.models import CartItem
from modules.cart.service import cart_service
from modules.catalog.models import MenuItem
from modules.catalog.service import catalog_service
from modules.order.models import Order
from modules.sync.models import ChangeLog


def _order_at(db, canteen_id, created_at, status="preparing", total="103.00", fee="3.00"):
    order = Order(
        user_id="user-asha",
        canteen_id=canteen_id,
        total_amount=Decimal(total),
        canteen_amount=Decimal(total) - Decimal(fee),
        platform_fee=Decimal(fee),
        status=status,
        pickup_time=created_at,
        created_at=created_at,
    )
    db.add(order)
    db.commit()
    return order


@pytest.mark.unit
class TestOrderAcceptance:

    def test_toggle_flips_and_reports_new_value(self, db, seed) -> None:
        assert canteen_service.toggle_order_acceptance(db, seed.main_admin, seed.main_id) is False
        db.commit()
        assert db.query(Canteen.accepting_orders).filter(Canteen.id == seed.main_id).scalar() is False

        assert canteen_service.toggle_order_acceptance(db, seed.main_admin, seed.main_id) is True
        db.commit()

        changes = db.query(ChangeLog).filter(ChangeLog.table_name == "canteens").count()
        assert changes == 2

    def test_only_owning_admin_may_toggle(self, db, seed) -> None:
        with pytest.raises(AuthorizationError):
            canteen_service.toggle_order_acceptance(db, seed.library_admin, seed.main_id)
        with pytest.raises(AuthorizationError):
            canteen_service.toggle_order_acceptance(db, seed.asha, seed.main_id)

    def test_inactive_canteens_hidden(self, db, seed) -> None:
        db.query(Canteen).filter(Canteen.id == seed.library_id).update({Canteen.is_active: False})
        db.commit()

        assert [c.id for c in canteen_service.list_canteens(db)] == [seed.main_id]
        with pytest.raises(NotFoundError):
            canteen_service.get_active_canteen(db, seed.library_id)


@pytest.mark.unit
class TestMenuManagement:

    def test_menu_listing(self, db, seed) -> None:
        names = [i.name for i in catalog_service.list_menu_items(db, seed.main_id)]
        assert names == ["Masala Chai", "Masala Dosa", "Brownie"]
        assert [i.name for i in catalog_service.list_menu_items(db, seed.main_id, "Breakfast")] == ["Masala Dosa"]
        assert catalog_service.list_categories(db, seed.main_id) == ["Beverages", "Breakfast", "Desserts"]

    def test_create_and_update_item(self, db, seed) -> None:
        item = catalog_service.create_item(db, seed.main_admin, seed.main_id, {
            "name": " Vada Pav ", "price": "25", "category": "Snacks", "available_quantity": 20,
        })
        db.commit()
        assert item.name == "Vada Pav"
        assert item.price == Decimal("25.00")

        catalog_service.update_item(db, seed.main_admin, item.id, {"price": "30.50", "available_quantity": 5})
        db.commit()
        stored = db.query(MenuItem).filter(MenuItem.id == item.id).one()
        assert stored.price == Decimal("30.50")
        assert stored.available_quantity == 5

    @pytest.mark.parametrize("data", [
        {"name": "Tea", "price": "-1", "category": "Beverages"},
        {"name": "", "price": "10", "category": "Beverages"},
        {"name": "Tea", "category": "Beverages"},
        {"name": "Tea", "price": "10", "category": "Beverages", "available_quantity": -3},
    ])
    def test_invalid_items_rejected(self, db, seed, data) -> None:
        with pytest.raises(ValidationError):
            catalog_service.create_item(db, seed.main_admin, seed.main_id, data)

    def test_other_admin_cannot_edit(self, db, seed) -> None:
        with pytest.raises(AuthorizationError):
            catalog_service.update_item(db, seed.library_admin, seed.dosa_id, {"price": "1"})

    def test_toggle_availability(self, db, seed) -> None:
        item = catalog_service.toggle_availability(db, seed.main_admin, seed.dosa_id)
        db.commit()
        assert item.is_available is False
        assert item.in_stock is False

    def test_delete_removes_cart_lines(self, db, seed) -> None:
        cart_service.add_item(db, seed.asha, seed.chai_id, 1)
        db.commit()

        catalog_service.delete_item(db, seed.main_admin, seed.chai_id)
        db.commit()

        assert db.query(MenuItem).filter(MenuItem.id == seed.chai_id).count() == 0
        assert db.query(CartItem).count() == 0

    def test_delete_records_each_cart_line(self, db, seed) -> None:
        asha_line = cart_service.add_item(db, seed.asha, seed.chai_id, 1)
        ravi_line = cart_service.add_item(db, seed.ravi, seed.chai_id, 2)
        db.commit()
        line_ids = {seed.asha.user_id: asha_line.id, seed.ravi.user_id: ravi_line.id}

        catalog_service.delete_item(db, seed.main_admin, seed.chai_id)
        db.commit()

        entries = db.query(ChangeLog).filter(
            ChangeLog.table_name == "cart_items", ChangeLog.action == "delete",
        ).all()
        assert {e.user_id: e.row_id for e in entries} == {u: str(i) for u, i in line_ids.items()}

    def test_delete_refused_once_ordered(self, db, seed, place_order) -> None:
        place_order()

        with pytest.raises(ValidationError):
            catalog_service.delete_item(db, seed.main_admin, seed.dosa_id)

    def test_decrement_stock_clamps(self, db, seed) -> None:
        assert catalog_service.decrement_stock(db, seed.chai_id, 2) is True
        assert catalog_service.decrement_stock(db, seed.chai_id, 10) is False
        db.commit()

        assert db.query(MenuItem.available_quantity).filter(MenuItem.id == seed.chai_id).scalar() == 0


@pytest.mark.unit
class TestDailyStats:
    """Stats for a day in Asia/Kolkata (UTC+05:30)."""

    def test_day_boundary_uses_local_midnight(self, db, seed) -> None:
        # 23:50 IST on the 16th and 00:10 IST on the 17th
        _order_at(db, seed.main_id, datetime(2026, 10, 16, 18, 20, tzinfo=timezone.utc), total="50.00")
        _order_at(db, seed.main_id, datetime(2026, 10, 16, 18, 40, tzinfo=timezone.utc), total="103.00")

        day16 = dashboard_service.compute_daily_stats(db, seed.main_admin, seed.main_id, date(2026, 10, 16))
        day17 = dashboard_service.compute_daily_stats(db, seed.main_admin, seed.main_id, date(2026, 10, 17))

        assert day16.order_count == 1
        assert day16.gross_revenue == Decimal("50.00")
        assert day17.order_count == 1
        assert day17.gross_revenue == Decimal("103.00")

    def test_aggregates(self, db, seed) -> None:
        noon = datetime(2026, 10, 17, 6, 30, tzinfo=timezone.utc)
        _order_at(db, seed.main_id, noon, status="completed", total="103.00")
        _order_at(db, seed.main_id, noon, status="pending", total="63.00")
        _order_at(db, seed.main_id, noon, status="cancelled", total="203.00")
        _order_at(db, seed.library_id, noon, status="completed", total="58.00")

        stats = dashboard_service.compute_daily_stats(db, seed.main_admin, seed.main_id, date(2026, 10, 17))

        assert stats.order_count == 3
        assert stats.pending_orders == 1
        assert stats.cancelled_orders == 1
        assert stats.gross_revenue == Decimal("166.00")
        assert stats.platform_fees == Decimal("6.00")
        assert stats.canteen_revenue == Decimal("160.00")

    def test_empty_day(self, db, seed) -> None:
        stats = dashboard_service.compute_daily_stats(db, seed.main_admin, seed.main_id, date(2026, 1, 1))

        assert stats.order_count == 0
        assert stats.gross_revenue == Decimal("0.00")

    def test_other_admin_rejected(self, db, seed) -> None:
        with pytest.raises(AuthorizationError):
            dashboard_service.compute_daily_stats(db, seed.library_admin, seed.main_id, date(2026, 10, 17))
