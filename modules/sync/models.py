"""
Sync Module - Models
=====================
Append-only change feed. The autoincrement id is the polling cursor.
Rows are written in the same transaction as the change they describe.
"""

from sqlalchemy import Column, Integer, String, DateTime, Index

from config.database import Base
from common.helpers import now_utc


class ChangeLog(Base):
    __tablename__ = "change_log"

    id = Column(Integer, primary_key=True)
    table_name = Column(String(32), nullable=False)
    row_id = Column(String(64), nullable=False)
    action = Column(String(8), nullable=False)           # insert / update / delete
    user_id = Column(String(64), nullable=True)          # owning customer, if any
    canteen_id = Column(Integer, nullable=True)          # owning canteen, if any
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    __table_args__ = (
        Index("ix_change_log_user", "user_id", "id"),
        Index("ix_change_log_canteen", "canteen_id", "id"),
    )

    def to_dict(self) -> dict:
        return {
            "cursor": self.id,
            "table": self.table_name,
            "row_id": self.row_id,
            "action": self.action,
            "canteen_id": self.canteen_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
