"""
Catalog Module - Models
========================
MenuItem doubles as the inventory record: available_quantity and
is_available are what the cart and order builder check.
"""

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Numeric,
    ForeignKey, DateTime, CheckConstraint, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from config.database import Base
from common.helpers import now_utc


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    canteen_id = Column(Integer, ForeignKey("canteens.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String, nullable=False)
    image_url = Column(String, nullable=True)

    available_quantity = Column(Integer, default=0, server_default="0", nullable=False)
    is_available = Column(Boolean, default=True, server_default="true", nullable=False)

    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=now_utc)

    canteen = relationship("Canteen", back_populates="menu_items")

    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_menu_item_qty"),
        CheckConstraint("price >= 0", name="ck_menu_item_price"),
        Index("ix_menu_items_canteen_category", "canteen_id", "category"),
    )

    @property
    def in_stock(self) -> bool:
        """Orderable right now: flagged available and at least one unit left."""
        return bool(self.is_available) and (self.available_quantity or 0) > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "canteen_id": self.canteen_id,
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "category": self.category,
            "image_url": self.image_url,
            "available_quantity": self.available_quantity,
            "is_available": bool(self.is_available),
            "in_stock": self.in_stock,
        }

    def __repr__(self):
        return f"<MenuItem {self.name}>"
