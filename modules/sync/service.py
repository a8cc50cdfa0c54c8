"""
Sync Module - Change Feed Service
===================================
Writes change entries alongside mutations and serves them to pollers.
Visibility mirrors row ownership: public catalog tables for everyone,
cart/order rows for their owner, order rows for the owning canteen admin.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from modules.sync.models import ChangeLog
from modules.user.models import SessionContext

logger = logging.getLogger("cafepreorder.sync")

PUBLIC_TABLES = ("canteens", "menu_items")

# Which client view each table feeds
TABLE_VIEWS = {
    "canteens": ("canteens",),
    "menu_items": ("menu", "cart"),
    "cart_items": ("cart",),
    "orders": ("orders", "admin_orders"),
}


class ChangeFeed:

    def record(
        self, db: Session, table_name: str, row_id, action: str,
        user_id: Optional[str] = None, canteen_id: Optional[int] = None,
    ) -> ChangeLog:
        entry = ChangeLog(
            table_name=table_name,
            row_id=str(row_id),
            action=action,
            user_id=user_id,
            canteen_id=canteen_id,
        )
        db.add(entry)
        return entry

    def changes_since(
        self, db: Session, ctx: SessionContext, cursor: int = 0,
        limit: int = 500, admin_canteen_ids: Optional[List[int]] = None,
    ) -> Tuple[List[ChangeLog], int]:
        """
        Entries after `cursor` visible to the caller.
        Returns: (entries, next_cursor). next_cursor only moves forward.
        """
        visible = [ChangeLog.table_name.in_(PUBLIC_TABLES), ChangeLog.user_id == ctx.user_id]
        if admin_canteen_ids:
            visible.append(ChangeLog.canteen_id.in_(admin_canteen_ids))

        entries = (
            db.query(ChangeLog)
            .filter(ChangeLog.id > cursor, or_(*visible))
            .order_by(ChangeLog.id)
            .limit(limit)
            .all()
        )
        next_cursor = entries[-1].id if entries else cursor
        return entries, next_cursor

    def latest_cursor(self, db: Session) -> int:
        last = db.query(ChangeLog.id).order_by(ChangeLog.id.desc()).first()
        return last[0] if last else 0


# Singleton
change_feed = ChangeFeed()
