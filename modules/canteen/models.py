"""
Canteen Module - Models
========================
A food outlet customers order from. `accepting_orders` gates new carts
and orders; `is_active` gates whether it is listed at all.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, Numeric, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from config.database import Base
from common.helpers import now_utc


class Canteen(Base):
    __tablename__ = "canteens"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    image_url = Column(String, nullable=True)

    accepting_orders = Column(Boolean, default=True, server_default="true", nullable=False)
    is_active = Column(Boolean, default=True, server_default="true", nullable=False, index=True)

    # Per-canteen override of the platform fee (NULL = use system setting)
    platform_fee = Column(Numeric(10, 2), nullable=True)

    admin_user_id = Column(String(64), ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=now_utc)

    admin = relationship("Profile", foreign_keys=[admin_user_id])
    menu_items = relationship("MenuItem", back_populates="canteen")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "location": self.location or "",
            "image_url": self.image_url,
            "accepting_orders": bool(self.accepting_orders),
            "is_active": bool(self.is_active),
        }

    def __repr__(self):
        return f"<Canteen {self.name}>"
