"""
sqlpath/services/stats_service.py
Learner counters: XP, completed challenges, daily streak, leaderboard
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.orm.challenge import ChallengeAttempt, XpEvent
from sqlpath.orm.user import User

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


def calculate_streak(last_active: Optional[datetime], current_streak: int, now: Optional[datetime] = None) -> int:
    """
    Daily streak after activity at `now`.

    Same calendar day -> unchanged; at most one day apart (rounded up)
    -> +1; otherwise the streak restarts at 1.
    """
    now = now or datetime.utcnow()
    if last_active is None:
        return 1

    if last_active.date() == now.date():
        return current_streak

    diff_days = math.ceil(abs((now - last_active).total_seconds()) / SECONDS_PER_DAY)
    if diff_days <= 1:
        return current_streak + 1
    return 1


@dataclass
class PracticePosition:
    """Where the practice track resumes after a correct answer."""
    industry: Optional[str]
    difficulty: Optional[str]
    context: Optional[str]
    next_index: int


async def record_correct_submission(
    db: AsyncSession,
    user: User,
    points: int,
    first_time: bool,
    practice_position: Optional[PracticePosition] = None,
    now: Optional[datetime] = None
) -> User:
    """
    Update the learner's counters after a correct answer.

    Points and the completed count only move on the first correct answer of
    a challenge; the streak and last_active move on every one. The practice
    resume point is only touched for practice-track answers.
    """
    now = now or datetime.utcnow()
    points_to_add = points if first_time else 0

    user.total_xp = (user.total_xp or 0) + points_to_add
    if points_to_add > 0:
        user.total_completed = (user.total_completed or 0) + 1

    user.streak = calculate_streak(user.last_active, user.streak or 0, now)
    user.last_active = now

    if practice_position is not None:
        user.last_industry = practice_position.industry
        user.last_difficulty = practice_position.difficulty
        user.last_context = practice_position.context
        user.last_index = practice_position.next_index

    await db.commit()
    return user


async def log_challenge_attempt(
    db: AsyncSession,
    user_id: int,
    challenge_ref: str,
    query: str,
    is_correct: bool,
    points_earned: int,
    feedback: Optional[str] = None,
    industry: Optional[str] = None,
    difficulty: Optional[str] = None
) -> ChallengeAttempt:
    attempt = ChallengeAttempt(
        user_id=user_id,
        challenge_ref=str(challenge_ref),
        query=query or "",
        is_correct=is_correct,
        feedback=feedback,
        points_earned=points_earned,
        industry=industry,
        difficulty=difficulty,
    )
    db.add(attempt)
    await db.commit()
    return attempt


async def log_xp_event(db: AsyncSession, user_id: int, xp: int, challenge_ref: Optional[str] = None) -> XpEvent:
    event = XpEvent(user_id=user_id, xp=xp, challenge_ref=str(challenge_ref) if challenge_ref is not None else None)
    db.add(event)
    await db.commit()
    return event


async def fetch_challenge_attempts(
    db: AsyncSession,
    user_id: int,
    industry: Optional[str] = None,
    difficulty: Optional[str] = None
) -> List[ChallengeAttempt]:
    query = select(ChallengeAttempt).where(ChallengeAttempt.user_id == user_id)
    if industry is not None:
        query = query.where(ChallengeAttempt.industry == industry)
    if difficulty is not None:
        query = query.where(ChallengeAttempt.difficulty == difficulty)
    result = await db.execute(query.order_by(ChallengeAttempt.created_at, ChallengeAttempt.id))
    return list(result.scalars().all())


async def has_solved(db: AsyncSession, user_id: int, challenge_ref: str) -> bool:
    """True when a correct attempt for this challenge is already logged."""
    result = await db.execute(
        select(func.count(ChallengeAttempt.id)).where(
            ChallengeAttempt.user_id == user_id,
            ChallengeAttempt.challenge_ref == str(challenge_ref),
            ChallengeAttempt.is_correct == True
        )
    )
    return (result.scalar() or 0) > 0


async def fetch_leaderboard(db: AsyncSession, limit: int = 10) -> List[dict]:
    """Top learners by lifetime XP."""
    result = await db.execute(
        select(User.id, User.username, User.total_xp)
        .where(User.is_active == True)
        .order_by(User.total_xp.desc(), User.id)
        .limit(limit)
    )
    return [
        {"rank": position, "user_id": row.id, "username": row.username, "xp": row.total_xp}
        for position, row in enumerate(result.all(), start=1)
    ]
