"""
sqlpath/services/achievement_service.py
Achievement evaluation and unlocking

Achievements are evaluated after every correct submission against the
learner's current counters. Unlocking is idempotent: the unique
(user_id, achievement_key) constraint turns a second unlock into a no-op.
"""
import logging
from datetime import datetime
from typing import List, Set

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.constants import ACHIEVEMENTS, Achievement
from sqlpath.orm.progress import CourseEnrollment, EnrollmentStatus
from sqlpath.orm.reward import UserAchievement
from sqlpath.orm.user import User

logger = logging.getLogger(__name__)


def achievement_reached(achievement: Achievement, total_completed: int, total_xp: int, streak: int, completed_courses: int) -> bool:
    value = {
        "challenge": total_completed,
        "xp": total_xp,
        "streak": streak,
        "course": completed_courses,
    }.get(achievement.kind, 0)
    return value >= achievement.target


async def fetch_user_achievements(db: AsyncSession, user_id: int) -> List[UserAchievement]:
    result = await db.execute(
        select(UserAchievement)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.unlocked_at)
    )
    return list(result.scalars().all())


async def fetch_completed_course_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(CourseEnrollment.id)).where(
            CourseEnrollment.user_id == user_id,
            CourseEnrollment.status == EnrollmentStatus.completed
        )
    )
    return result.scalar() or 0


async def unlock_achievement(db: AsyncSession, user_id: int, achievement: Achievement) -> bool:
    """Returns True only when the achievement was newly unlocked."""
    existing = await db.execute(
        select(UserAchievement.id).where(
            UserAchievement.user_id == user_id,
            UserAchievement.achievement_key == achievement.key
        )
    )
    if existing.scalar_one_or_none() is not None:
        return False

    db.add(UserAchievement(
        user_id=user_id,
        achievement_key=achievement.key,
        title=achievement.title,
        description=achievement.description,
        unlocked_at=datetime.utcnow(),
    ))
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent unlock of the same key
        await db.rollback()
        return False

    logger.info(f"User {user_id} unlocked achievement '{achievement.key}'")
    return True


async def check_achievements(db: AsyncSession, user: User) -> List[Achievement]:
    """Unlock every achievement the learner now qualifies for. Returns the new ones."""
    # Read everything up front: a rolled-back unlock expires the user row
    user_id = user.id
    total_completed = user.total_completed or 0
    total_xp = user.total_xp or 0
    streak = user.streak or 0

    unlocked: Set[str] = {a.achievement_key for a in await fetch_user_achievements(db, user_id)}
    completed_courses = await fetch_completed_course_count(db, user_id)

    newly_unlocked = []
    for achievement in ACHIEVEMENTS:
        if achievement.key in unlocked:
            continue
        if not achievement_reached(achievement, total_completed, total_xp, streak, completed_courses):
            continue
        if await unlock_achievement(db, user_id, achievement):
            newly_unlocked.append(achievement)

    return newly_unlocked
