"""
sqlpath/services/challenge_service.py
Practice track, challenge inventory and the admin challenge library

PRACTICE TRACK:
- Each difficulty has a fixed 20-topic curriculum (constants.CURRICULA).
- Position i is gated by the tier's course_lesson_limit (i >= limit is locked).
- Generated challenges are cached per (topic, industry, difficulty) and
  reused for every learner, except on the personalised track where the
  learner's own context makes each challenge unique.

SUBMISSIONS:
- Every graded answer is logged as a ChallengeAttempt.
- XP is only awarded for the first correct answer of a challenge.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.config.feature_flags import feature_flags
from sqlpath.constants import CURRICULA, INDUSTRIES, PERSONALIZED_INDUSTRY, ChallengeDefinition
from sqlpath.exceptions import ResourceNotFoundError, ChallengePayloadError, InvalidRequestError
from sqlpath.orm.challenge import ChallengeInventory, SavedChallenge
from sqlpath.orm.user import User
from sqlpath.schemas.challenge import Challenge, ValidationVerdict, parse_challenge, challenge_to_dict
from sqlpath.services import gemini_service, stats_service, achievement_service
from sqlpath.services.access_gate import AccessGateService, is_practice_index_locked

logger = logging.getLogger(__name__)


# ================= CURRICULUM =================

def get_curriculum(difficulty: str) -> List[ChallengeDefinition]:
    curriculum = CURRICULA.get(difficulty)
    if curriculum is None:
        raise ResourceNotFoundError("Curriculum", difficulty)
    return curriculum


def get_definition(difficulty: str, index: int) -> ChallengeDefinition:
    curriculum = get_curriculum(difficulty)
    if index < 0 or index >= len(curriculum):
        raise ResourceNotFoundError("Curriculum position", index)
    return curriculum[index]


def curriculum_overview(difficulty: str, course_lesson_limit: int) -> List[Dict[str, Any]]:
    """Curriculum with a per-position lock flag for the learner's tier."""
    return [
        {
            "index": index,
            "id": definition.id,
            "topic": definition.topic,
            "description": definition.description,
            "locked": is_practice_index_locked(index, course_lesson_limit),
        }
        for index, definition in enumerate(get_curriculum(difficulty))
    ]


def check_industry(industry: str) -> str:
    """Practice refs and the inventory are keyed by industry, so only catalogue values are accepted."""
    if industry not in INDUSTRIES:
        raise InvalidRequestError(f"Unknown industry '{industry}'")
    return industry


def practice_ref(difficulty: str, industry: str, definition_id: int) -> str:
    return f"practice:{difficulty}:{industry}:{definition_id}"[:64]


# ================= INVENTORY =================

async def fetch_from_inventory(db: AsyncSession, topic: str, industry: str, difficulty: str) -> Optional[Challenge]:
    result = await db.execute(
        select(ChallengeInventory).where(
            and_(
                ChallengeInventory.topic == topic,
                ChallengeInventory.industry == industry,
                ChallengeInventory.difficulty == difficulty
            )
        ).limit(1)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return None

    try:
        return parse_challenge(row.challenge_json)
    except ChallengePayloadError as e:
        logger.warning(f"Ignoring invalid inventory entry {row.id}: {e.errors}")
        return None


async def save_to_inventory(db: AsyncSession, topic: str, industry: str, difficulty: str, challenge: Challenge) -> None:
    """Insert once per key; a concurrent duplicate insert is ignored."""
    if await fetch_from_inventory(db, topic, industry, difficulty) is not None:
        return

    db.add(ChallengeInventory(
        topic=topic,
        industry=industry,
        difficulty=difficulty,
        challenge_json=challenge_to_dict(challenge),
    ))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info(f"Inventory entry for ({topic}, {industry}, {difficulty}) already exists")


async def get_practice_challenge(
    db: AsyncSession,
    user: User,
    difficulty: str,
    industry: str,
    index: int,
    custom_context: Optional[str] = None
) -> Challenge:
    """
    Challenge at curriculum position `index`.

    Raises:
        LessonLimitReachedError: position is beyond the tier's limit
        ResourceNotFoundError: unknown difficulty or position
        InvalidRequestError: industry not in the catalogue
    """
    check_industry(industry)
    definition = get_definition(difficulty, index)
    await AccessGateService(db).enforce_practice_access(user, index)

    cacheable = industry != PERSONALIZED_INDUSTRY and feature_flags.FEATURE_CHALLENGE_INVENTORY

    if cacheable:
        cached = await fetch_from_inventory(db, definition.topic, industry, difficulty)
        if cached is not None:
            return cached

    challenge = await gemini_service.generate_challenge(definition, industry, difficulty, custom_context)

    # The placeholder has no tables; never cache it
    if cacheable and challenge.tables:
        await save_to_inventory(db, definition.topic, industry, difficulty, challenge)

    return challenge


# ================= SUBMISSIONS =================

@dataclass
class SubmissionOutcome:
    verdict: ValidationVerdict
    points_awarded: int = 0
    first_time: bool = False
    unlocked_achievements: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self):
        verdict = self.verdict.model_dump(by_alias=True)
        if not self.verdict.is_correct:
            # Result rows are only revealed for correct answers
            verdict["data"] = []
        return {
            "verdict": verdict,
            "points_awarded": self.points_awarded,
            "first_time": self.first_time,
            "unlocked_achievements": self.unlocked_achievements,
        }


async def grade_and_record(
    db: AsyncSession,
    user: User,
    challenge: Challenge,
    answer: str,
    challenge_ref: str,
    industry: Optional[str],
    difficulty: Optional[str],
    custom_context: Optional[str] = None,
    practice_position: Optional[stats_service.PracticePosition] = None
) -> SubmissionOutcome:
    """Grade, log the attempt and, when correct, update XP / streak / achievements."""
    verdict = await gemini_service.validate_submission(challenge, answer, industry, custom_context)
    first_time = verdict.is_correct and not await stats_service.has_solved(db, user.id, challenge_ref)
    points_awarded = verdict.points if first_time else 0

    await stats_service.log_challenge_attempt(
        db,
        user_id=user.id,
        challenge_ref=challenge_ref,
        query=answer,
        is_correct=verdict.is_correct,
        points_earned=points_awarded,
        feedback=verdict.feedback,
        industry=industry,
        difficulty=difficulty,
    )

    outcome = SubmissionOutcome(verdict=verdict, points_awarded=points_awarded, first_time=first_time)
    if not verdict.is_correct:
        return outcome

    if points_awarded > 0:
        await stats_service.log_xp_event(db, user.id, points_awarded, challenge_ref)

    await stats_service.record_correct_submission(
        db, user, verdict.points, first_time, practice_position=practice_position
    )

    if feature_flags.FEATURE_ACHIEVEMENTS:
        unlocked = await achievement_service.check_achievements(db, user)
        outcome.unlocked_achievements = [
            {"key": a.key, "title": a.title, "description": a.description} for a in unlocked
        ]

    return outcome


async def submit_practice_answer(
    db: AsyncSession,
    user: User,
    challenge_data: Dict[str, Any],
    answer: str,
    difficulty: str,
    industry: str,
    index: int,
    custom_context: Optional[str] = None
) -> SubmissionOutcome:
    """
    Grade a practice-track answer. The challenge document comes back from
    the client because personalised challenges are never stored.
    """
    check_industry(industry)
    definition = get_definition(difficulty, index)
    await AccessGateService(db).enforce_practice_access(user, index)
    challenge = parse_challenge(challenge_data)

    position = stats_service.PracticePosition(
        industry=industry,
        difficulty=difficulty,
        context=custom_context,
        next_index=index + 1,
    )
    return await grade_and_record(
        db,
        user,
        challenge,
        answer,
        challenge_ref=practice_ref(difficulty, industry, definition.id),
        industry=industry,
        difficulty=difficulty,
        custom_context=custom_context,
        practice_position=position,
    )


# ================= SAVED CHALLENGES (ADMIN LIBRARY) =================

async def save_admin_challenge(
    db: AsyncSession,
    challenge: Challenge,
    industry: str,
    difficulty: str,
    is_published: bool = True
) -> SavedChallenge:
    saved = SavedChallenge(
        title=challenge.title,
        topic=challenge.topic,
        difficulty=difficulty,
        industry=industry,
        challenge_json=challenge_to_dict(challenge),
        is_published=is_published,
    )
    db.add(saved)
    await db.commit()
    await db.refresh(saved)
    logger.info(f"Saved challenge {saved.id} '{saved.title}'")
    return saved


async def fetch_saved_challenges(db: AsyncSession, published_only: bool = False) -> List[SavedChallenge]:
    query = select(SavedChallenge)
    if published_only:
        query = query.where(SavedChallenge.is_published == True)
    result = await db.execute(query.order_by(SavedChallenge.created_at.desc(), SavedChallenge.id.desc()))
    return list(result.scalars().all())


async def get_saved_challenge(db: AsyncSession, challenge_id: int, published_only: bool = False) -> SavedChallenge:
    saved = await db.get(SavedChallenge, challenge_id)
    if saved is None or (published_only and not saved.is_published):
        raise ResourceNotFoundError("Challenge", challenge_id)
    return saved


async def toggle_challenge_publish(db: AsyncSession, challenge_id: int) -> SavedChallenge:
    saved = await get_saved_challenge(db, challenge_id)
    saved.is_published = not saved.is_published
    await db.commit()
    return saved


async def delete_saved_challenge(db: AsyncSession, challenge_id: int) -> None:
    saved = await get_saved_challenge(db, challenge_id)
    await db.delete(saved)
    await db.commit()
    logger.info(f"Deleted saved challenge {challenge_id}")


async def submit_saved_challenge_answer(db: AsyncSession, user: User, challenge_id: int, answer: str) -> SubmissionOutcome:
    saved = await get_saved_challenge(db, challenge_id, published_only=True)
    challenge = parse_challenge(saved.challenge_json)
    return await grade_and_record(
        db,
        user,
        challenge,
        answer,
        challenge_ref=f"saved:{saved.id}",
        industry=saved.industry,
        difficulty=saved.difficulty,
    )
