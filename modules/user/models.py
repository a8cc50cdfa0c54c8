"""
User Module - Profile Model
=============================
One profile row per identity-provider subject. The role is a closed
enum validated once, when the identity is established.
"""

import enum
from dataclasses import dataclass

from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.sql import func

from config.database import Base
from common.helpers import now_utc


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)           # identity provider subject
    email = Column(String, nullable=False)
    name = Column(String, nullable=False)
    role = Column(String(16), default=Role.USER.value, nullable=False)

    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=now_utc)

    __table_args__ = (
        Index("ix_profiles_email", "email"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    def __repr__(self):
        return f"<Profile {self.email} ({self.role})>"


@dataclass(frozen=True)
class SessionContext:
    """The authenticated caller, passed explicitly into every service call."""
    user_id: str
    email: str
    name: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def from_profile(cls, profile: Profile) -> "SessionContext":
        return cls(
            user_id=profile.id,
            email=profile.email,
            name=profile.name,
            role=Role(profile.role),
        )
