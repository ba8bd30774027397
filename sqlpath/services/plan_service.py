"""
sqlpath/services/plan_service.py
Subscription tiers: permissions, prices, upgrades and admin plan changes

Permissions are read on every gate evaluation, so they are cached per tier
in-process. Any write to a permission row or to a learner's plan
invalidates the cache.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.constants import DEFAULT_PLAN_SETTINGS, PLAN_DURATION_DAYS
from sqlpath.exceptions import ResourceNotFoundError
from sqlpath.orm.plan import PlanPermission, SubscriptionPrice, SubscriptionPayment, BillingCycle
from sqlpath.orm.user import User, SubscriptionTier, normalize_tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionSet:
    """Immutable copy of a PlanPermission row, safe to cache."""
    tier: str
    course_lesson_limit: int
    allow_ai_tutor: bool
    allow_live_instructor: bool

    @classmethod
    def from_orm(cls, row: PlanPermission) -> "PermissionSet":
        return cls(
            tier=row.tier,
            course_lesson_limit=row.course_lesson_limit,
            allow_ai_tutor=row.allow_ai_tutor,
            allow_live_instructor=row.allow_live_instructor,
        )

    @classmethod
    def locked(cls, tier: str) -> "PermissionSet":
        """Used when a tier has no permission row: nothing new may be started."""
        return cls(tier=tier, course_lesson_limit=0, allow_ai_tutor=False, allow_live_instructor=False)

    def to_dict(self):
        return {
            "tier": self.tier,
            "course_lesson_limit": self.course_lesson_limit,
            "allow_ai_tutor": self.allow_ai_tutor,
            "allow_live_instructor": self.allow_live_instructor,
        }


# ================= PERMISSION CACHE =================

_permission_cache: Dict[str, PermissionSet] = {}


def invalidate_permission_cache(tier: Optional[str] = None) -> None:
    """Drop one tier (or every tier) from the cache."""
    if tier is None:
        _permission_cache.clear()
    else:
        _permission_cache.pop(normalize_tier(tier).value, None)


def plan_end_date(plan: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """+30 days for monthly plans, +365 for annual, None for free."""
    now = now or datetime.utcnow()
    value = (plan or "").lower()
    if "monthly" in value:
        return now + timedelta(days=PLAN_DURATION_DAYS["monthly"])
    if "annual" in value:
        return now + timedelta(days=PLAN_DURATION_DAYS["annual"])
    return None


class PlanService:
    """Reads and writes tier permissions, prices and learner plans."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ---- Permissions ----

    async def fetch_plan_permissions(self, tier_or_plan: Optional[str]) -> PermissionSet:
        """
        Permissions for a tier. Accepts raw plan strings ('basic_monthly').
        """
        tier = normalize_tier(tier_or_plan).value
        cached = _permission_cache.get(tier)
        if cached is not None:
            return cached

        result = await self.db.execute(
            select(PlanPermission).where(PlanPermission.tier == tier)
        )
        row = result.scalar_one_or_none()

        if row is None:
            logger.warning(f"No plan permissions configured for tier '{tier}' - treating as locked")
            return PermissionSet.locked(tier)

        permissions = PermissionSet.from_orm(row)
        _permission_cache[tier] = permissions
        return permissions

    async def fetch_all_plan_permissions(self) -> List[PlanPermission]:
        result = await self.db.execute(select(PlanPermission).order_by(PlanPermission.id))
        return list(result.scalars().all())

    async def update_plan_permission(self, tier: str, updates: Dict[str, Any]) -> PlanPermission:
        """Admin edit of a tier's limits. Only known fields are applied."""
        tier = normalize_tier(tier).value
        result = await self.db.execute(
            select(PlanPermission).where(PlanPermission.tier == tier)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise ResourceNotFoundError("Plan permission", tier)

        for key in ("course_lesson_limit", "allow_ai_tutor", "allow_live_instructor"):
            if key in updates and updates[key] is not None:
                setattr(row, key, updates[key])

        await self.db.commit()
        invalidate_permission_cache(tier)
        logger.info(f"Updated plan permissions for tier '{tier}': {updates}")
        return row

    # ---- Prices ----

    async def fetch_plan_settings(self) -> Dict[str, Dict[str, float]]:
        """Price grid {tier: {cycle: amount}}; missing rows fall back to defaults."""
        settings = {tier: dict(cycles) for tier, cycles in DEFAULT_PLAN_SETTINGS.items()}

        result = await self.db.execute(select(SubscriptionPrice))
        for row in result.scalars().all():
            if row.tier in settings and row.cycle in settings[row.tier]:
                settings[row.tier][row.cycle] = float(row.amount)

        return settings

    async def save_plan_settings(self, settings: Dict[str, Dict[str, float]]) -> Dict[str, Dict[str, float]]:
        """Upsert one price row per (tier, cycle)."""
        now = datetime.utcnow()
        for tier in (SubscriptionTier.basic.value, SubscriptionTier.pro.value):
            for cycle in (BillingCycle.monthly.value, BillingCycle.annual.value):
                amount = settings.get(tier, {}).get(cycle)
                if amount is None:
                    continue
                price_id = f"{tier}_{cycle}"
                row = await self.db.get(SubscriptionPrice, price_id)
                if row is None:
                    row = SubscriptionPrice(id=price_id, tier=tier, cycle=cycle, amount=Decimal("0"))
                    self.db.add(row)
                row.amount = Decimal(str(amount))
                row.updated_at = now

        await self.db.commit()
        return await self.fetch_plan_settings()

    # ---- Learner plans ----

    async def upgrade_subscription(
        self,
        user: User,
        tier: str,
        cycle: str,
        reference: str,
        amount: float,
    ) -> User:
        """
        Apply a confirmed payment: plan '{tier}_{cycle}' for 30/365 days.

        Replaying the same payment reference is a no-op.
        """
        existing = await self.db.execute(
            select(SubscriptionPayment).where(SubscriptionPayment.reference == reference)
        )
        if existing.scalar_one_or_none() is not None:
            logger.info(f"Payment reference {reference} already applied - skipping")
            return user

        plan = f"{tier}_{cycle}"
        duration_days = PLAN_DURATION_DAYS[cycle]

        self.db.add(SubscriptionPayment(
            user_id=user.id,
            plan=plan,
            amount=Decimal(str(amount)),
            reference=reference,
            duration_days=duration_days,
        ))
        user.subscription_plan = plan
        user.subscription_end_date = datetime.utcnow() + timedelta(days=duration_days)

        await self.db.commit()
        invalidate_permission_cache(plan)
        logger.info(f"User {user.id} upgraded to {plan} (ref {reference})")
        return user

    async def update_learner_plan(self, user_id: int, plan: str) -> User:
        """Admin override of a learner's plan string."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise ResourceNotFoundError("User", user_id)

        user.subscription_plan = plan
        user.subscription_end_date = plan_end_date(plan)

        await self.db.commit()
        invalidate_permission_cache(plan)
        logger.info(f"Admin set plan of user {user_id} to {plan}")
        return user

    async def fetch_all_learners(self) -> List[User]:
        result = await self.db.execute(
            select(User).order_by(User.last_active.desc())
        )
        return list(result.scalars().all())
