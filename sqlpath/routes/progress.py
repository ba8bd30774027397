"""
sqlpath/routes/progress.py
Learner dashboard: reconciled progress and bundle enrollment

The dashboard is recomputed on every request from the learner's raw
enrollment / module-progress rows; stored statuses are corrected as a
side effect (see ProgressReconciliationService).
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.database import get_db
from sqlpath.orm.user import User
from sqlpath.rbac import get_current_user
from sqlpath.schemas.progress import StandardResponse, ok
from sqlpath.services import enrollment_service
from sqlpath.services.path_service import PathService
from sqlpath.services.progress_service import ProgressReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/progress", tags=["Progress"])


@router.get("/dashboard", response_model=StandardResponse)
async def get_dashboard(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    In-progress and completed items, most recent first.

    The first in-progress item is the "last active" card.
    """
    user_id = current_user.id
    result = await ProgressReconciliationService(db).reconcile_user(user_id)
    last_active = result.last_active

    return ok(
        "Progress reconciled",
        **result.to_dict(),
        last_active=last_active.to_dict() if last_active else None,
    )


@router.post("/paths/{path_id}/enroll", response_model=StandardResponse)
async def enroll_in_path(
    path_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    path = await PathService(db).get_path(path_id, published_only=True)
    enrollment = await enrollment_service.enroll_in_path(db, current_user.id, path.id)
    logger.info(f"User {current_user.id} enrolled in learning path {path.id}")
    return ok("Enrolled in learning path", enrollment=enrollment.to_dict())
