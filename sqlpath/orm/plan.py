"""
sqlpath/orm/plan.py
Subscription plans: per-tier permissions, prices and payment records
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, Boolean, Numeric, ForeignKey, DateTime

from sqlpath.orm.base import Base, BaseModel


class BillingCycle(str, Enum):
    monthly = "monthly"
    annual = "annual"


UNLIMITED_LESSONS = -1


class PlanPermission(BaseModel):
    """
    Feature/quota limits of one tier. Read-mostly, admin-writable.

    course_lesson_limit: how many distinct modules a learner may begin
    within a single course; -1 means unlimited.
    """
    __tablename__ = "plan_permissions"

    tier = Column(String(20), nullable=False, unique=True, index=True)
    course_lesson_limit = Column(Integer, nullable=False, default=UNLIMITED_LESSONS)
    allow_ai_tutor = Column(Boolean, nullable=False, default=False)
    allow_live_instructor = Column(Boolean, nullable=False, default=False)

    @property
    def is_unlimited(self) -> bool:
        return self.course_lesson_limit == UNLIMITED_LESSONS

    def to_dict(self):
        return {
            "tier": self.tier,
            "course_lesson_limit": self.course_lesson_limit,
            "allow_ai_tutor": self.allow_ai_tutor,
            "allow_live_instructor": self.allow_live_instructor,
        }


class SubscriptionPrice(Base):
    """Price row keyed by '{tier}_{cycle}', e.g. 'basic_monthly'."""
    __tablename__ = "subscription_prices"

    id = Column(String(30), primary_key=True)
    tier = Column(String(20), nullable=False)
    cycle = Column(String(20), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    updated_at = Column(DateTime, nullable=True)


class SubscriptionPayment(BaseModel):
    """One confirmed upgrade. The payment reference makes upgrades idempotent."""
    __tablename__ = "subscription_payments"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    plan = Column(String(50), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    reference = Column(String(120), nullable=False, unique=True)
    duration_days = Column(Integer, nullable=False)
