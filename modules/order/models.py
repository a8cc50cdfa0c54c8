"""
Order Module - Models
======================
Order with price snapshot per item, plus an append-only status log.
Orders and order items are never deleted.
"""

import enum
from sqlalchemy import (
    Column, Integer, String, Numeric, Text,
    ForeignKey, DateTime, CheckConstraint, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from config.database import Base
from common.helpers import now_utc


class OrderStatus(str, enum.Enum):
    PENDING = "pending"        # placed, awaiting payment
    PREPARING = "preparing"    # paid, kitchen working on it
    READY = "ready"            # waiting at the counter
    COMPLETED = "completed"    # picked up
    CANCELLED = "cancelled"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False, index=True)
    canteen_id = Column(Integer, ForeignKey("canteens.id", ondelete="RESTRICT"), nullable=False, index=True)

    # Amounts (total_amount = canteen_amount + platform_fee = Σ items.total_price + platform_fee)
    total_amount = Column(Numeric(10, 2), nullable=False)
    canteen_amount = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)

    status = Column(String(16), default=OrderStatus.PENDING.value, nullable=False)
    pickup_time = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text, nullable=True)

    # Payment
    payment_method = Column(String, nullable=True)        # gateway_razorpay / gateway_sandbox
    gateway_order_id = Column(String, nullable=True)      # handle returned by the gateway at checkout
    payment_reference = Column(String, unique=True, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Cancellation
    cancellation_reason = Column(String, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=now_utc)

    # Relationships
    customer = relationship("Profile", foreign_keys=[user_id])
    canteen = relationship("Canteen", foreign_keys=[canteen_id])
    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    status_logs = relationship("OrderStatusLog", back_populates="order", order_by="OrderStatusLog.id")

    __table_args__ = (
        Index("ix_orders_canteen_created", "canteen_id", "created_at"),
        Index("ix_orders_status", "status"),
    )

    def to_dict(self, with_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "canteen_id": self.canteen_id,
            "status": self.status,
            "total_amount": str(self.total_amount),
            "canteen_amount": str(self.canteen_amount),
            "platform_fee": str(self.platform_fee),
            "pickup_time": self.pickup_time.isoformat() if self.pickup_time else None,
            "notes": self.notes,
            "payment_reference": self.payment_reference,
            "payment_method": self.payment_method,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "cancellation_reason": self.cancellation_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if with_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id", ondelete="RESTRICT"), nullable=False)

    # Snapshot at time of order; never re-read from the live menu item
    item_name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_qty"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "name": self.item_name,
            "price": str(self.price),
            "quantity": self.quantity,
            "total_price": str(self.total_price),
        }


class OrderStatusLog(Base):
    __tablename__ = "order_status_logs"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False, index=True)
    old_status = Column(String(16), nullable=True)
    new_status = Column(String(16), nullable=False)
    changed_by = Column(String(64), nullable=False)       # user id, "gateway" or "system"
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="status_logs")

    def to_dict(self) -> dict:
        return {
            "old_status": self.old_status,
            "new_status": self.new_status,
            "changed_by": self.changed_by,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
