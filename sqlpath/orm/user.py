"""
sqlpath/orm/user.py
Learner / admin account with subscription and gamification fields

The subscription plan is stored as the free-form plan string written by the
payment flow or an admin ("free", "basic_monthly", "pro_annual", ...).
Feature access is keyed by the normalised tier derived from it.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.orm import relationship

from sqlpath.orm.base import BaseModel


class SubscriptionTier(str, Enum):
    """Normalised subscription tiers; one PlanPermission row each."""
    free = "free"
    basic = "basic"
    pro = "pro"


def normalize_tier(plan: Optional[str]) -> SubscriptionTier:
    """
    Map a stored plan string to its tier.

    'pro_annual' -> pro, 'basic_monthly' -> basic, anything else -> free.
    """
    value = (plan or "free").lower()
    if "pro" in value:
        return SubscriptionTier.pro
    if "basic" in value:
        return SubscriptionTier.basic
    return SubscriptionTier.free


class User(BaseModel):
    """
    Platform account.

    Gamification fields are denormalised here so the dashboard and the
    leaderboard read a single row:
    - total_xp / total_completed: lifetime counters
    - streak / last_active: daily streak bookkeeping
    - last_industry / last_difficulty / last_context / last_index:
      where the practice track should resume
    """
    __tablename__ = "users"

    # Authentication
    email = Column(String(255), nullable=False, unique=True, index=True)
    username = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Subscription
    subscription_plan = Column(String(50), default="free", nullable=False)
    subscription_end_date = Column(DateTime, nullable=True)

    # Gamification
    total_xp = Column(Integer, default=0, nullable=False, index=True)
    total_completed = Column(Integer, default=0, nullable=False)
    streak = Column(Integer, default=0, nullable=False)
    last_active = Column(DateTime, default=datetime.utcnow, nullable=True)

    # Practice track resume point
    last_industry = Column(String(100), nullable=True)
    last_difficulty = Column(String(50), nullable=True)
    last_context = Column(Text, nullable=True)
    last_index = Column(Integer, default=0, nullable=False)

    # Relationships
    enrollments = relationship(
        "CourseEnrollment",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="noload"
    )

    module_progress = relationship(
        "ModuleProgress",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="noload"
    )

    path_enrollments = relationship(
        "PathEnrollment",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="noload"
    )

    @property
    def tier(self) -> SubscriptionTier:
        return normalize_tier(self.subscription_plan)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "is_admin": self.is_admin,
            "subscription_plan": self.subscription_plan,
            "subscription_tier": self.tier.value,
            "subscription_end_date": self.subscription_end_date.isoformat() if self.subscription_end_date else None,
            "total_xp": self.total_xp,
            "total_completed": self.total_completed,
            "streak": self.streak,
            "last_active": self.last_active.isoformat() if self.last_active else None,
            "last_industry": self.last_industry,
            "last_difficulty": self.last_difficulty,
            "last_context": self.last_context,
            "last_index": self.last_index,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, plan={self.subscription_plan})>"
