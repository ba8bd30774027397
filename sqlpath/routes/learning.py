"""
sqlpath/routes/learning.py
Course player: enter, jump, next and submit

Every navigation runs the tier access gate; a denial surfaces as
HTTP 402 LESSON_LIMIT_REACHED with the counts the upgrade prompt needs.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.database import get_db
from sqlpath.orm.user import User
from sqlpath.rbac import get_current_user
from sqlpath.schemas.progress import AnswerSubmission, StandardResponse, ok
from sqlpath.services.learning_service import LearningService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/learning", tags=["Learning"])


@router.post("/courses/{course_id}/enter", response_model=StandardResponse)
async def enter_course(
    course_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Open the course at the first module not yet completed."""
    entry = await LearningService(db).enter_course(current_user, course_id)
    return ok("Module opened", **entry.to_dict())


@router.post("/courses/{course_id}/modules/{module_id}/enter", response_model=StandardResponse)
async def enter_module(
    course_id: int,
    module_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entry = await LearningService(db).enter_module(current_user, course_id, module_id)
    return ok("Module opened", **entry.to_dict())


@router.post("/courses/{course_id}/modules/{module_id}/next", response_model=StandardResponse)
async def next_module(
    course_id: int,
    module_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entry = await LearningService(db).next_module(current_user, course_id, module_id)
    message = "Course completed" if entry.course_completed else "Module opened"
    return ok(message, **entry.to_dict())


@router.post("/courses/{course_id}/modules/{module_id}/submit", response_model=StandardResponse)
async def submit_module_answer(
    course_id: int,
    module_id: int,
    submission: AnswerSubmission,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    outcome = await LearningService(db).submit_module_answer(
        current_user, course_id, module_id, submission.answer
    )
    message = "Correct answer" if outcome.verdict.is_correct else "Not quite right"
    return ok(message, **outcome.to_dict())
