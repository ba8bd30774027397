"""
sqlpath/services/learning_service.py
Course navigation and module submissions

Every navigation point (course entry, jump, next) runs the access gate
again against fresh progress rows. Only after a permit is the module
start recorded, so a denied request never consumes lesson budget.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.exceptions import ContentNotReadyError, ModuleNotStartedError, ResourceNotFoundError
from sqlpath.orm.course import Course, CourseModule
from sqlpath.orm.progress import EnrollmentStatus
from sqlpath.orm.user import User
from sqlpath.schemas.challenge import parse_challenge
from sqlpath.services import enrollment_service
from sqlpath.services.access_gate import AccessGateService, AccessDecision
from sqlpath.services.challenge_service import SubmissionOutcome, grade_and_record
from sqlpath.services.course_service import CourseService

logger = logging.getLogger(__name__)


@dataclass
class ModuleEntry:
    """What the learner sees after a permitted navigation."""
    course: Course
    module: Optional[CourseModule]
    index: int
    decision: Optional[AccessDecision] = None
    completed_module_ids: Set[int] = field(default_factory=set)
    resumed: bool = False
    course_completed: bool = False

    def to_dict(self):
        return {
            "course_id": self.course.id,
            "course_title": self.course.title,
            "module": self.module.to_dict() if self.module else None,
            "index": self.index,
            "total_modules": len(self.course.modules),
            "resumed": self.resumed,
            "course_completed": self.course_completed,
            "completed_module_ids": sorted(self.completed_module_ids),
            "access": self.decision.to_dict() if self.decision else None,
        }


def resume_index(modules: List[CourseModule], completed_ids: Set[int]) -> int:
    """First module not yet completed; the first module when all are done."""
    for index, module in enumerate(modules):
        if module.id not in completed_ids:
            return index
    return 0


def _module_index(course: Course, module_id: int) -> int:
    for index, module in enumerate(course.modules):
        if module.id == module_id:
            return index
    raise ResourceNotFoundError("Module", module_id)


class LearningService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.courses = CourseService(db)
        self.gate = AccessGateService(db)

    async def _open_module(self, user: User, course: Course, index: int, resumed: bool = False) -> ModuleEntry:
        """Gate, require content, then record the start."""
        module = course.modules[index]
        decision = await self.gate.enforce_module_access(user, course, module.id)

        if not module.has_content:
            raise ContentNotReadyError()

        await enrollment_service.enroll_in_course(self.db, user.id, course.id)
        await enrollment_service.log_module_start(self.db, user.id, course.id, module.id)

        completed = await enrollment_service.completed_module_ids(self.db, user.id, course.id)
        return ModuleEntry(
            course=course,
            module=module,
            index=index,
            decision=decision,
            completed_module_ids=completed,
            resumed=resumed,
        )

    async def enter_course(self, user: User, course_id: int) -> ModuleEntry:
        """Open a course at its resume point."""
        course = await self.courses.get_course(course_id, published_only=True)
        if not course.modules:
            raise ContentNotReadyError("This course has no lessons yet")

        completed = await enrollment_service.completed_module_ids(self.db, user.id, course.id)
        index = resume_index(course.modules, completed)
        return await self._open_module(user, course, index, resumed=index > 0)

    async def enter_module(self, user: User, course_id: int, module_id: int) -> ModuleEntry:
        """Jump straight to a module."""
        course = await self.courses.get_course(course_id, published_only=True)
        return await self._open_module(user, course, _module_index(course, module_id))

    async def next_module(self, user: User, course_id: int, module_id: int) -> ModuleEntry:
        """
        Advance past `module_id`, which must have been entered. After the
        last module the enrollment is marked completed and no module is
        returned.
        """
        course = await self.courses.get_course(course_id, published_only=True)
        next_index = _module_index(course, module_id) + 1

        if await enrollment_service.get_module_progress(self.db, user.id, module_id) is None:
            raise ModuleNotStartedError(module_id)

        if next_index < len(course.modules):
            return await self._open_module(user, course, next_index)

        await enrollment_service.update_enrollment_status(
            self.db, user.id, course.id, EnrollmentStatus.completed
        )
        logger.info(f"User {user.id} finished course {course.id}")
        completed = await enrollment_service.completed_module_ids(self.db, user.id, course.id)
        return ModuleEntry(
            course=course,
            module=None,
            index=len(course.modules),
            completed_module_ids=completed,
            course_completed=True,
        )

    async def submit_module_answer(self, user: User, course_id: int, module_id: int, answer: str) -> SubmissionOutcome:
        """
        Grade an answer to a course module.

        The module must have been entered first. The first correct answer
        completes the module with its XP; later correct answers earn nothing.
        """
        course = await self.courses.get_course(course_id, published_only=True)
        module = course.modules[_module_index(course, module_id)]

        progress = await enrollment_service.get_module_progress(self.db, user.id, module.id)
        if progress is None:
            raise ModuleNotStartedError(module.id)
        if not module.has_content:
            raise ContentNotReadyError()

        user_id = user.id
        already_completed = progress.is_completed
        challenge = parse_challenge(module.challenge_json)
        outcome = await grade_and_record(
            self.db,
            user,
            challenge,
            answer,
            challenge_ref=f"module:{module.id}",
            industry=course.industry,
            difficulty=course.skill_level,
            custom_context=course.main_context,
        )

        if outcome.verdict.is_correct:
            xp = 0 if already_completed else outcome.points_awarded
            await enrollment_service.log_module_completion(self.db, user_id, course.id, module.id, xp)
            await enrollment_service.update_enrollment_status(self.db, user_id, course.id)

        return outcome
