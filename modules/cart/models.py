"""
Cart Module - Models
=====================
One line per (user, menu item) with a positive quantity.
"""

from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from config.database import Base
from common.helpers import now_utc


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=now_utc)

    menu_item = relationship("MenuItem")

    __table_args__ = (
        UniqueConstraint("user_id", "menu_item_id", name="uq_cart_user_item"),
        CheckConstraint("quantity >= 1", name="ck_cart_qty"),
    )
