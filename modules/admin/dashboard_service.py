"""
Admin Dashboard Service
=========================
Same-day statistics for a canteen, derived from the order ledger.
Nothing here is stored; every call recomputes from orders.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy import func as sa_func

from common.helpers import day_bounds_utc, local_today, to_money
from config.settings import STATS_TIMEZONE
from modules.canteen.service import canteen_service
from modules.order.models import Order, OrderStatus
from modules.user.models import SessionContext


@dataclass
class DailyStats:
    day: date
    order_count: int
    gross_revenue: Decimal
    platform_fees: Decimal
    canteen_revenue: Decimal
    pending_orders: int
    cancelled_orders: int

    def to_dict(self) -> dict:
        return {
            "day": self.day.isoformat(),
            "order_count": self.order_count,
            "gross_revenue": str(self.gross_revenue),
            "platform_fees": str(self.platform_fees),
            "canteen_revenue": str(self.canteen_revenue),
            "pending_orders": self.pending_orders,
            "cancelled_orders": self.cancelled_orders,
        }


class DashboardService:

    def compute_daily_stats(
        self, db: Session, ctx: SessionContext, canteen_id: int, day: Optional[date] = None,
    ) -> DailyStats:
        """
        Orders created in [day 00:00, day+1 00:00) of STATS_TIMEZONE.
        Cancelled orders count as orders but add nothing to revenue or fees.
        """
        canteen_service.get_owned_canteen(db, ctx, canteen_id)
        day = day or local_today(STATS_TIMEZONE)
        start, end = day_bounds_utc(day, STATS_TIMEZONE)

        in_day = (
            Order.canteen_id == canteen_id,
            Order.created_at >= start,
            Order.created_at < end,
        )

        status_counts = dict(
            db.query(Order.status, sa_func.count(Order.id))
            .filter(*in_day)
            .group_by(Order.status)
            .all()
        )

        gross, fees, canteen_part = (
            db.query(
                sa_func.coalesce(sa_func.sum(Order.total_amount), 0),
                sa_func.coalesce(sa_func.sum(Order.platform_fee), 0),
                sa_func.coalesce(sa_func.sum(Order.canteen_amount), 0),
            )
            .filter(*in_day, Order.status != OrderStatus.CANCELLED.value)
            .one()
        )

        return DailyStats(
            day=day,
            order_count=sum(status_counts.values()),
            gross_revenue=to_money(gross),
            platform_fees=to_money(fees),
            canteen_revenue=to_money(canteen_part),
            pending_orders=status_counts.get(OrderStatus.PENDING.value, 0),
            cancelled_orders=status_counts.get(OrderStatus.CANCELLED.value, 0),
        )


dashboard_service = DashboardService()
