"""
sqlpath/routes/subscription.py
Plan prices and applying a confirmed payment

The payment widget runs client-side; this endpoint receives its
confirmation. Replaying a payment reference does nothing.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.database import get_db
from sqlpath.orm.user import User
from sqlpath.rbac import get_current_user
from sqlpath.schemas.progress import SubscriptionUpgradeRequest, StandardResponse, ok
from sqlpath.services.plan_service import PlanService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscription", tags=["Subscription"])


@router.get("/prices", response_model=StandardResponse)
async def get_prices(db: AsyncSession = Depends(get_db)):
    settings = await PlanService(db).fetch_plan_settings()
    return ok("Plan prices", prices=settings)


@router.post("/upgrade", response_model=StandardResponse)
async def upgrade(
    request: SubscriptionUpgradeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await PlanService(db).upgrade_subscription(
        current_user, request.tier, request.cycle, request.reference, request.amount
    )
    return ok(
        "Subscription updated",
        subscription_plan=user.subscription_plan,
        subscription_end_date=user.subscription_end_date.isoformat() if user.subscription_end_date else None,
    )
