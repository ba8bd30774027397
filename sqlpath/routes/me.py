"""
sqlpath/routes/me.py
Learner stats, achievements, plan permissions and the leaderboard
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.constants import ACHIEVEMENTS
from sqlpath.database import get_db
from sqlpath.orm.user import User
from sqlpath.rbac import get_current_user
from sqlpath.schemas.progress import StandardResponse, ok
from sqlpath.services import achievement_service, stats_service
from sqlpath.services.access_gate import AccessGateService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Learner"])


@router.get("/me/stats", response_model=StandardResponse)
async def get_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    completed_courses = await achievement_service.fetch_completed_course_count(db, current_user.id)
    return ok(
        "Learner stats",
        total_xp=current_user.total_xp,
        total_completed=current_user.total_completed,
        streak=current_user.streak,
        completed_courses=completed_courses,
        last_active=current_user.last_active.isoformat() if current_user.last_active else None,
        practice_resume={
            "industry": current_user.last_industry,
            "difficulty": current_user.last_difficulty,
            "context": current_user.last_context,
            "index": current_user.last_index,
        },
    )


@router.get("/me/attempts", response_model=StandardResponse)
async def get_attempts(
    industry: Optional[str] = None,
    difficulty: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    attempts = await stats_service.fetch_challenge_attempts(db, current_user.id, industry, difficulty)
    return ok("Attempt history", attempts=[a.to_dict() for a in attempts])


@router.get("/me/achievements", response_model=StandardResponse)
async def get_achievements(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Every achievement with its unlock state."""
    unlocked = {a.achievement_key: a for a in await achievement_service.fetch_user_achievements(db, current_user.id)}
    items = []
    for achievement in ACHIEVEMENTS:
        row = unlocked.get(achievement.key)
        items.append({
            "key": achievement.key,
            "title": achievement.title,
            "description": achievement.description,
            "target": achievement.target,
            "kind": achievement.kind,
            "unlocked": row is not None,
            "unlocked_at": row.unlocked_at.isoformat() if row else None,
        })
    return ok("Achievements", achievements=items, unlocked_count=len(unlocked))


@router.get("/me/permissions", response_model=StandardResponse)
async def get_permissions(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    permissions = await AccessGateService(db).get_permissions_for_user(current_user)
    return ok(
        "Plan permissions",
        subscription_plan=current_user.subscription_plan,
        permissions=permissions.to_dict(),
    )


@router.get("/leaderboard", response_model=StandardResponse)
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entries = await stats_service.fetch_leaderboard(db, limit=limit)
    return ok("Leaderboard", entries=entries)
