"""Unit tests for the order state machine."""

import pytest

from common.exceptions import AuthorizationError, InvalidTransitionError, NotFoundError
from modules.cart.models import CartItem
from modules.cart.service import cart_service
from modules.catalog.models import MenuItem
from modules.order.models import Order, OrderStatus, OrderStatusLog
from modules.order.status_service import order_status_service


def _stock(db, item_id):
    return db.query(MenuItem.available_quantity).filter(MenuItem.id == item_id).scalar()


def _paid_order(db, place_order, reference="pay_001"):
    order = place_order()
    order_status_service.confirm_payment(db, order.id, reference, method="gateway_sandbox")
    db.commit()
    return order


@pytest.mark.unit
class TestConfirmPayment:
    """pending -> preparing on payment."""

    def test_confirm_moves_to_preparing(self, db, seed, place_order) -> None:
        order = place_order()

        order_status_service.confirm_payment(db, order.id, "pay_001", method="gateway_sandbox")
        db.commit()

        order = db.query(Order).filter(Order.id == order.id).one()
        assert order.status == OrderStatus.PREPARING.value
        assert order.payment_reference == "pay_001"
        assert order.payment_method == "gateway_sandbox"
        assert order.paid_at is not None

    def test_confirm_decrements_stock_and_clears_cart(self, db, seed, place_order) -> None:
        _paid_order(db, place_order)

        assert _stock(db, seed.dosa_id) == 8
        assert _stock(db, seed.chai_id) == 2
        assert db.query(CartItem).filter(CartItem.user_id == seed.asha.user_id).count() == 0

    def test_confirm_keeps_other_canteen_cart_lines(self, db, seed, place_order) -> None:
        order = place_order()
        db.query(CartItem).filter(CartItem.user_id == seed.asha.user_id).delete()
        db.add(CartItem(user_id=seed.asha.user_id, menu_item_id=seed.coffee_id, quantity=1))
        db.commit()

        order_status_service.confirm_payment(db, order.id, "pay_001")
        db.commit()

        assert db.query(CartItem).filter(CartItem.user_id == seed.asha.user_id).count() == 1

    def test_same_reference_twice_is_a_no_op(self, db, seed, place_order) -> None:
        order = _paid_order(db, place_order)
        order_status_service.advance_status(db, seed.main_admin, order.id)
        db.commit()

        again = order_status_service.confirm_payment(db, order.id, "pay_001")
        db.commit()

        assert again.status == OrderStatus.READY.value
        assert _stock(db, seed.dosa_id) == 8

    def test_different_reference_rejected(self, db, seed, place_order) -> None:
        order = _paid_order(db, place_order)

        with pytest.raises(InvalidTransitionError):
            order_status_service.confirm_payment(db, order.id, "pay_999")

    def test_cancelled_order_cannot_be_paid(self, db, seed, place_order) -> None:
        order = place_order()
        order_status_service.cancel(db, seed.asha, order.id, "changed my mind")
        db.commit()

        with pytest.raises(InvalidTransitionError):
            order_status_service.confirm_payment(db, order.id, "pay_001")
        assert db.query(Order.payment_reference).filter(Order.id == order.id).scalar() is None

    def test_oversold_stock_is_clamped_to_zero(self, db, seed, place_order) -> None:
        order = place_order()
        db.query(MenuItem).filter(MenuItem.id == seed.dosa_id).update({MenuItem.available_quantity: 1})
        db.commit()

        order_status_service.confirm_payment(db, order.id, "pay_001")
        db.commit()

        assert _stock(db, seed.dosa_id) == 0

    def test_unknown_order(self, db, seed) -> None:
        with pytest.raises(NotFoundError):
            order_status_service.confirm_payment(db, 9999, "pay_001")


@pytest.mark.unit
class TestAdvanceStatus:
    """Kitchen flow driven by the canteen admin."""

    def test_full_flow_is_logged(self, db, seed, place_order) -> None:
        order = _paid_order(db, place_order)

        order_status_service.advance_status(db, seed.main_admin, order.id)
        order_status_service.advance_status(db, seed.main_admin, order.id)
        db.commit()

        logs = (
            db.query(OrderStatusLog)
            .filter(OrderStatusLog.order_id == order.id)
            .order_by(OrderStatusLog.id)
            .all()
        )
        assert [(log.old_status, log.new_status) for log in logs] == [
            (None, "pending"),
            ("pending", "preparing"),
            ("preparing", "ready"),
            ("ready", "completed"),
        ]
        assert logs[-1].changed_by == seed.main_admin.user_id

    def test_pending_order_cannot_be_advanced(self, db, seed, place_order) -> None:
        order = place_order()

        with pytest.raises(InvalidTransitionError):
            order_status_service.advance_status(db, seed.main_admin, order.id)

    def test_completed_is_terminal(self, db, seed, place_order) -> None:
        order = _paid_order(db, place_order)
        order_status_service.advance_status(db, seed.main_admin, order.id)
        order_status_service.advance_status(db, seed.main_admin, order.id)
        db.commit()

        with pytest.raises(InvalidTransitionError):
            order_status_service.advance_status(db, seed.main_admin, order.id)

    @pytest.mark.parametrize("paid", [False, True], ids=["cancelled-while-pending", "cancelled-while-preparing"])
    def test_cancelled_is_terminal(self, db, seed, place_order, paid) -> None:
        order = _paid_order(db, place_order) if paid else place_order()
        order_status_service.cancel(db, seed.main_admin, order.id, "Kitchen closed early")
        db.commit()

        with pytest.raises(InvalidTransitionError):
            order_status_service.advance_status(db, seed.main_admin, order.id)
        with pytest.raises(InvalidTransitionError):
            order_status_service.advance_status(db, seed.main_admin, order.id, expected_status="preparing")
        assert db.query(Order.status).filter(Order.id == order.id).scalar() == "cancelled"

    def test_stale_expected_status_rejected(self, db, seed, place_order) -> None:
        """Two admin screens both showing 'preparing': only the first click advances."""
        order = _paid_order(db, place_order)

        order_status_service.advance_status(db, seed.main_admin, order.id, expected_status="preparing")
        db.commit()

        with pytest.raises(InvalidTransitionError):
            order_status_service.advance_status(db, seed.main_admin, order.id, expected_status="preparing")
        assert db.query(Order.status).filter(Order.id == order.id).scalar() == "ready"

    def test_stale_session_loses_compare_and_set(self, db, session_factory, seed, place_order) -> None:
        order = _paid_order(db, place_order)

        other = session_factory()
        try:
            stale = other.query(Order).filter(Order.id == order.id).one()   # noqa: F841  loads 'preparing'

            order_status_service.advance_status(db, seed.main_admin, order.id)
            db.commit()

            with pytest.raises(InvalidTransitionError):
                order_status_service.advance_status(other, seed.main_admin, order.id)
            other.rollback()
        finally:
            other.close()

        logs = db.query(OrderStatusLog).filter(
            OrderStatusLog.order_id == order.id, OrderStatusLog.new_status == "ready",
        ).count()
        assert logs == 1

    def test_other_canteen_admin_rejected(self, db, seed, place_order) -> None:
        order = _paid_order(db, place_order)

        with pytest.raises(AuthorizationError):
            order_status_service.advance_status(db, seed.library_admin, order.id)


@pytest.mark.unit
class TestCancel:

    def test_customer_cancels_pending(self, db, seed, place_order) -> None:
        order = place_order()

        order_status_service.cancel(db, seed.asha, order.id, "changed my mind")
        db.commit()

        order = db.query(Order).filter(Order.id == order.id).one()
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "changed my mind"
        assert order.cancelled_at is not None

    def test_customer_cannot_cancel_once_preparing(self, db, seed, place_order) -> None:
        order = _paid_order(db, place_order)

        with pytest.raises(InvalidTransitionError):
            order_status_service.cancel(db, seed.asha, order.id)

    def test_admin_cancels_preparing(self, db, seed, place_order) -> None:
        order = _paid_order(db, place_order)

        order_status_service.cancel(db, seed.main_admin, order.id, "Out of batter")
        db.commit()

        assert db.query(Order.status).filter(Order.id == order.id).scalar() == "cancelled"

    def test_admin_cannot_cancel_ready(self, db, seed, place_order) -> None:
        order = _paid_order(db, place_order)
        order_status_service.advance_status(db, seed.main_admin, order.id)
        db.commit()

        with pytest.raises(InvalidTransitionError):
            order_status_service.cancel(db, seed.main_admin, order.id)

    def test_strangers_rejected(self, db, seed, place_order) -> None:
        order = place_order()

        with pytest.raises(NotFoundError):
            order_status_service.cancel(db, seed.ravi, order.id)
        with pytest.raises(AuthorizationError):
            order_status_service.cancel(db, seed.library_admin, order.id)
