"""
Canteen Module - Service Layer
================================
Listing for customers, ownership checks and the order-acceptance
toggle for admins.
"""

import logging
from typing import List, Optional

from sqlalchemy import not_
from sqlalchemy.orm import Session

from common.exceptions import AuthorizationError, NotFoundError
from modules.canteen.models import Canteen
from modules.sync.service import change_feed
from modules.user.models import SessionContext

logger = logging.getLogger("cafepreorder.canteen")


class CanteenService:

    def list_canteens(self, db: Session) -> List[Canteen]:
        return (
            db.query(Canteen)
            .filter(Canteen.is_active == True)  # noqa: E712
            .order_by(Canteen.name)
            .all()
        )

    def get_active_canteen(self, db: Session, canteen_id: int) -> Canteen:
        """Canteen a customer may select; inactive ones are reported as missing."""
        canteen = db.query(Canteen).filter(Canteen.id == canteen_id).first()
        if not canteen or not canteen.is_active:
            raise NotFoundError("Canteen not found.")
        return canteen

    def get_admin_canteen(self, db: Session, ctx: SessionContext) -> Optional[Canteen]:
        return db.query(Canteen).filter(Canteen.admin_user_id == ctx.user_id).first()

    def admin_canteen_ids(self, db: Session, ctx: SessionContext) -> List[int]:
        if not ctx.is_admin:
            return []
        rows = db.query(Canteen.id).filter(Canteen.admin_user_id == ctx.user_id).all()
        return [r[0] for r in rows]

    def get_owned_canteen(self, db: Session, ctx: SessionContext, canteen_id: int, lock: bool = False) -> Canteen:
        """Canteen administered by the caller. Raises NotFound / Authorization errors."""
        q = db.query(Canteen).filter(Canteen.id == canteen_id)
        if lock:
            q = q.with_for_update()
        canteen = q.first()
        if not canteen:
            raise NotFoundError("Canteen not found.")
        if not ctx.is_admin or canteen.admin_user_id != ctx.user_id:
            raise AuthorizationError("You do not manage this canteen.")
        return canteen

    # ==========================================
    # Order acceptance
    # ==========================================

    def toggle_order_acceptance(self, db: Session, ctx: SessionContext, canteen_id: int) -> bool:
        """
        Flip accepting_orders in one UPDATE (no read-modify-write).
        Returns the new value.
        """
        canteen = self.get_owned_canteen(db, ctx, canteen_id)

        db.query(Canteen).filter(Canteen.id == canteen_id).update(
            {Canteen.accepting_orders: not_(Canteen.accepting_orders)},
            synchronize_session=False,
        )
        db.expire(canteen)
        new_value = bool(
            db.query(Canteen.accepting_orders).filter(Canteen.id == canteen_id).scalar()
        )
        change_feed.record(db, "canteens", canteen_id, "update", canteen_id=canteen_id)
        db.flush()

        logger.info(f"Canteen #{canteen_id} accepting_orders -> {new_value} (by {ctx.user_id})")
        return new_value


# Singleton
canteen_service = CanteenService()
