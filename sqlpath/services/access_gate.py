"""
sqlpath/services/access_gate.py
Tier-based lesson limiting

The gate decides whether a learner may enter a module. It is evaluated
fresh at every navigation point (course entry, next, jump) and never
records anything itself: on a permit the caller logs the module start,
on a deny the caller shows an upgrade prompt.

Rules, in order:
1. course_lesson_limit == -1 -> permit
2. module already started (in any course) -> permit
3. otherwise permit iff modules started in THIS course < limit
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.exceptions import LessonLimitReachedError, FeatureNotInPlanError
from sqlpath.orm.plan import UNLIMITED_LESSONS
from sqlpath.orm.progress import ModuleProgress
from sqlpath.orm.user import User
from sqlpath.services.plan_service import PlanService, PermissionSet

logger = logging.getLogger(__name__)

REASON_UNLIMITED = "unlimited"
REASON_ALREADY_STARTED = "already_started"
REASON_WITHIN_LIMIT = "within_limit"
REASON_LIMIT_REACHED = "limit_reached"

FEATURE_AI_TUTOR = "ai_tutor"
FEATURE_LIVE_INSTRUCTOR = "live_instructor"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str
    started_in_course: int
    limit: int

    def to_dict(self):
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "started_in_course": self.started_in_course,
            "limit": self.limit,
        }


def check_module_access(
    module_id: int,
    course_module_ids: Iterable[int],
    started_module_ids: Iterable[int],
    course_lesson_limit: int,
) -> AccessDecision:
    """
    Pure gate predicate.

    Args:
        module_id: requested module
        course_module_ids: every module id of the owning course
        started_module_ids: modules the learner has ever started, all courses
        course_lesson_limit: tier limit, -1 for unlimited
    """
    started: Set[int] = set(started_module_ids)
    started_in_course = len(started.intersection(course_module_ids))

    if course_lesson_limit == UNLIMITED_LESSONS:
        return AccessDecision(True, REASON_UNLIMITED, started_in_course, course_lesson_limit)

    if module_id in started:
        return AccessDecision(True, REASON_ALREADY_STARTED, started_in_course, course_lesson_limit)

    if started_in_course < course_lesson_limit:
        return AccessDecision(True, REASON_WITHIN_LIMIT, started_in_course, course_lesson_limit)

    return AccessDecision(False, REASON_LIMIT_REACHED, started_in_course, course_lesson_limit)


def is_practice_index_locked(index: int, course_lesson_limit: int) -> bool:
    """Practice curriculum: positions at or beyond the limit are locked."""
    if course_lesson_limit == UNLIMITED_LESSONS:
        return False
    return index >= course_lesson_limit


class AccessGateService:
    """Store-backed gate: loads permissions and the started set, then decides."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.plans = PlanService(db)

    async def get_permissions_for_user(self, user: User) -> PermissionSet:
        return await self.plans.fetch_plan_permissions(user.subscription_plan)

    async def fetch_started_module_ids(self, user_id: int) -> Set[int]:
        """Every module with a progress row (started or completed)."""
        result = await self.db.execute(
            select(ModuleProgress.module_id).where(ModuleProgress.user_id == user_id)
        )
        return set(result.scalars().all())

    async def evaluate(self, user: User, course, module_id: int) -> AccessDecision:
        permissions = await self.get_permissions_for_user(user)
        started = await self.fetch_started_module_ids(user.id)
        return check_module_access(
            module_id,
            [m.id for m in course.modules],
            started,
            permissions.course_lesson_limit,
        )

    async def enforce_module_access(self, user: User, course, module_id: int) -> AccessDecision:
        """
        Raises:
            LessonLimitReachedError: the tier's per-course budget is spent
        """
        decision = await self.evaluate(user, course, module_id)
        if not decision.allowed:
            logger.info(
                f"Gate denied user {user.id} module {module_id} in course {course.id} "
                f"({decision.started_in_course}/{decision.limit})"
            )
            raise LessonLimitReachedError(
                course_id=course.id,
                module_id=module_id,
                started_in_course=decision.started_in_course,
                limit=decision.limit,
                tier=user.tier.value,
            )
        return decision

    async def enforce_practice_access(self, user: User, index: int) -> None:
        permissions = await self.get_permissions_for_user(user)
        if is_practice_index_locked(index, permissions.course_lesson_limit):
            raise LessonLimitReachedError(
                course_id=0,
                module_id=index,
                started_in_course=index,
                limit=permissions.course_lesson_limit,
                tier=user.tier.value,
            )

    async def enforce_feature(self, user: User, feature: str) -> None:
        """
        Raises:
            FeatureNotInPlanError: tier lacks the AI tutor / live instructor
        """
        permissions = await self.get_permissions_for_user(user)
        allowed = {
            FEATURE_AI_TUTOR: permissions.allow_ai_tutor,
            FEATURE_LIVE_INSTRUCTOR: permissions.allow_live_instructor,
        }.get(feature, False)

        if not allowed:
            raise FeatureNotInPlanError(feature, user.tier.value)
