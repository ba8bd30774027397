"""
sqlpath/routes/practice.py
Practice track and the published challenge library

Practice positions beyond the tier's course_lesson_limit are locked; the
curriculum listing marks them so the client can show the upgrade prompt
before the learner clicks.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.database import get_db
from sqlpath.orm.user import User
from sqlpath.rbac import get_current_user
from sqlpath.schemas.challenge import challenge_to_dict
from sqlpath.schemas.progress import (
    AnswerSubmission,
    PracticeChallengeRequest,
    PracticeSubmission,
    StandardResponse,
    ok,
)
from sqlpath.services import challenge_service
from sqlpath.services.access_gate import AccessGateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/practice", tags=["Practice"])


@router.get("/curriculum/{difficulty}", response_model=StandardResponse)
async def get_curriculum(
    difficulty: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    permissions = await AccessGateService(db).get_permissions_for_user(current_user)
    topics = challenge_service.curriculum_overview(difficulty, permissions.course_lesson_limit)
    return ok(
        "Curriculum",
        difficulty=difficulty,
        topics=topics,
        resume_index=current_user.last_index if current_user.last_difficulty == difficulty else 0,
    )


@router.post("/challenge", response_model=StandardResponse)
async def get_practice_challenge(
    request: PracticeChallengeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    challenge = await challenge_service.get_practice_challenge(
        db,
        current_user,
        request.difficulty,
        request.industry,
        request.index,
        request.custom_context,
    )
    return ok("Challenge ready", index=request.index, challenge=challenge_to_dict(challenge))


@router.post("/submit", response_model=StandardResponse)
async def submit_practice_answer(
    submission: PracticeSubmission,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    outcome = await challenge_service.submit_practice_answer(
        db,
        current_user,
        submission.challenge,
        submission.answer,
        submission.difficulty,
        submission.industry,
        submission.index,
        submission.custom_context,
    )
    message = "Correct answer" if outcome.verdict.is_correct else "Not quite right"
    return ok(message, **outcome.to_dict())


# ================= CHALLENGE LIBRARY =================

@router.get("/library", response_model=StandardResponse)
async def list_library(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    saved = await challenge_service.fetch_saved_challenges(db, published_only=True)
    return ok("Challenge library", challenges=[c.to_dict() for c in saved])


@router.get("/library/{challenge_id}", response_model=StandardResponse)
async def get_library_challenge(
    challenge_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    saved = await challenge_service.get_saved_challenge(db, challenge_id, published_only=True)
    return ok("Challenge", challenge=saved.to_dict())


@router.post("/library/{challenge_id}/submit", response_model=StandardResponse)
async def submit_library_answer(
    challenge_id: int,
    submission: AnswerSubmission,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    outcome = await challenge_service.submit_saved_challenge_answer(
        db, current_user, challenge_id, submission.answer
    )
    message = "Correct answer" if outcome.verdict.is_correct else "Not quite right"
    return ok(message, **outcome.to_dict())
